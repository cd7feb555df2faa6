"""
Tests for storage backends and transaction support
"""

import pytest
import tempfile
import os
from datetime import datetime, timezone

from microlending.exceptions import StorageError
from microlending.storage import (
    InMemoryStorage, SQLiteStorage, StorageRecord, create_storage
)


# Test data
test_data = {
    "id": "loan_001",
    "principal": "5000.00",
    "status": "active",
    "created_at": datetime.now(timezone.utc).isoformat(),
    "updated_at": datetime.now(timezone.utc).isoformat()
}


@pytest.fixture(params=["memory", "sqlite"])
def storage(request):
    """Each test runs against both backends"""
    if request.param == "memory":
        backend = InMemoryStorage()
    else:
        backend = SQLiteStorage(":memory:")
    yield backend
    backend.close()


class TestStorageOperations:
    """Test basic CRUD on both backends"""

    def test_save_and_load(self, storage):
        """Test save and load round trip"""
        storage.save("loans", "loan_001", test_data)
        assert storage.load("loans", "loan_001") == test_data

    def test_load_missing(self, storage):
        """Test loading a missing record"""
        assert storage.load("loans", "missing") is None

    def test_overwrite(self, storage):
        """Test saving an existing id replaces the record"""
        storage.save("loans", "loan_001", test_data)
        storage.save("loans", "loan_001", {**test_data, "status": "paid"})

        assert storage.load("loans", "loan_001")["status"] == "paid"
        assert storage.count("loans") == 1

    def test_exists_and_delete(self, storage):
        """Test exists and delete"""
        storage.save("loans", "loan_001", test_data)
        assert storage.exists("loans", "loan_001")

        assert storage.delete("loans", "loan_001") is True
        assert not storage.exists("loans", "loan_001")
        assert storage.delete("loans", "loan_001") is False

    def test_find(self, storage):
        """Test filtering records"""
        storage.save("payments", "p1", {"id": "p1", "loan_id": "A"})
        storage.save("payments", "p2", {"id": "p2", "loan_id": "B"})
        storage.save("payments", "p3", {"id": "p3", "loan_id": "A"})

        found = storage.find("payments", {"loan_id": "A"})
        assert sorted(record["id"] for record in found) == ["p1", "p3"]
        assert storage.find("payments", {"loan_id": "C"}) == []

    def test_load_all_and_clear(self, storage):
        """Test load_all and clear_table"""
        storage.save("loans", "a", {"id": "a"})
        storage.save("loans", "b", {"id": "b"})
        assert len(storage.load_all("loans")) == 2

        storage.clear_table("loans")
        assert storage.count("loans") == 0

    def test_returned_records_are_copies(self, storage):
        """Test callers cannot mutate stored state through a loaded dict"""
        storage.save("loans", "loan_001", test_data)
        loaded = storage.load("loans", "loan_001")
        loaded["status"] = "paid"

        assert storage.load("loans", "loan_001")["status"] == "active"


class TestTransactions:
    """Test atomic blocks on both backends"""

    def test_atomic_commits(self, storage):
        """Test all writes of a successful block are kept"""
        with storage.atomic():
            storage.save("loans", "a", {"id": "a"})
            storage.save("payments", "p", {"id": "p"})

        assert storage.exists("loans", "a")
        assert storage.exists("payments", "p")

    def test_atomic_rolls_back_every_write(self, storage):
        """Test a failure inside the block discards all of its writes"""
        storage.save("loans", "a", {"id": "a", "status": "active"})

        with pytest.raises(RuntimeError):
            with storage.atomic():
                storage.save("loans", "a", {"id": "a", "status": "paid"})
                storage.save("payments", "p", {"id": "p"})
                storage.delete("loans", "a")
                raise RuntimeError("persistence failed")

        assert storage.load("loans", "a") == {"id": "a", "status": "active"}
        assert not storage.exists("payments", "p")

    def test_reads_inside_block_see_own_writes(self, storage):
        """Test uncommitted writes are visible to the writer"""
        with storage.atomic():
            storage.save("payments", "p", {"id": "p", "loan_id": "A"})
            assert len(storage.find("payments", {"loan_id": "A"})) == 1

    def test_nested_blocks_commit_together(self, storage):
        """Test a nested block joins the outer transaction"""
        with storage.atomic():
            storage.save("loans", "a", {"id": "a"})
            with storage.atomic():
                storage.save("loans", "b", {"id": "b"})

        assert storage.count("loans") == 2

    def test_failed_nested_block_dooms_outer(self, storage):
        """Test a swallowed failure in a nested block still rolls back the outer block"""
        with pytest.raises(StorageError):
            with storage.atomic():
                storage.save("loans", "a", {"id": "a"})
                try:
                    with storage.atomic():
                        storage.save("loans", "b", {"id": "b"})
                        raise RuntimeError("inner failure")
                except RuntimeError:
                    pass

        assert storage.count("loans") == 0

    def test_rollback_restores_cleared_table(self, storage):
        """Test clearing a table inside a failed block is undone"""
        storage.save("loans", "a", {"id": "a"})
        storage.save("loans", "b", {"id": "b"})

        with pytest.raises(RuntimeError):
            with storage.atomic():
                storage.clear_table("loans")
                storage.save("loans", "c", {"id": "c"})
                raise RuntimeError("boom")

        assert sorted(record["id"] for record in storage.load_all("loans")) == ["a", "b"]

    def test_rollback_keeps_records_written_before(self, storage):
        """Test records the block never touched survive its rollback"""
        for i in range(5):
            storage.save("payments", f"p{i}", {"id": f"p{i}"})

        with pytest.raises(RuntimeError):
            with storage.atomic():
                storage.save("payments", "p0", {"id": "p0", "amount": "1"})
                storage.save("payments", "p0", {"id": "p0", "amount": "2"})
                raise RuntimeError("boom")

        assert storage.count("payments") == 5
        assert storage.load("payments", "p0") == {"id": "p0"}

    def test_storage_usable_after_rollback(self, storage):
        """Test the backend lock is released after a rollback"""
        with pytest.raises(RuntimeError):
            with storage.atomic():
                storage.save("loans", "a", {"id": "a"})
                raise RuntimeError("boom")

        with storage.atomic():
            storage.save("loans", "b", {"id": "b"})
        assert storage.exists("loans", "b")


class TestInMemoryTransactions:
    """Test in-memory transaction bookkeeping"""

    def test_begin_does_not_copy_existing_data(self, monkeypatch):
        """Test a block only records the records it writes"""
        storage = InMemoryStorage()
        for i in range(1000):
            storage.save("audit_events", f"e{i}", {"id": f"e{i}"})

        copies = []
        original_copy = InMemoryStorage._copy

        def counting_copy(value):
            copies.append(value)
            return original_copy(value)

        monkeypatch.setattr(storage, "_copy", counting_copy)

        with storage.atomic():
            storage.save("audit_events", "new", {"id": "new"})

        assert len(copies) == 1
        assert storage.count("audit_events") == 1001


class TestSQLitePersistence:
    """Test SQLite-specific behaviour"""

    def setup_method(self):
        """Set up a temporary database file"""
        self.temp_db = tempfile.NamedTemporaryFile(delete=False, suffix='.db')
        self.temp_db.close()

    def teardown_method(self):
        """Remove the temporary database file"""
        for suffix in ("", "-wal", "-shm"):
            path = self.temp_db.name + suffix
            if os.path.exists(path):
                os.unlink(path)

    def test_data_survives_reopen(self):
        """Test committed data is on disk"""
        storage = SQLiteStorage(self.temp_db.name)
        storage.save("loans", "loan_001", test_data)
        storage.close()

        reopened = SQLiteStorage(self.temp_db.name)
        assert reopened.load("loans", "loan_001") == test_data
        reopened.close()

    def test_rolled_back_data_not_on_disk(self):
        """Test a rolled back block leaves nothing on disk"""
        storage = SQLiteStorage(self.temp_db.name)
        storage.save("loans", "seed", {"id": "seed"})
        with pytest.raises(RuntimeError):
            with storage.atomic():
                storage.save("loans", "loan_001", test_data)
                raise RuntimeError("boom")
        storage.close()

        reopened = SQLiteStorage(self.temp_db.name)
        assert reopened.load("loans", "loan_001") is None
        assert reopened.exists("loans", "seed")
        reopened.close()


class TestCreateStorage:
    """Test backend selection"""

    def test_memory(self):
        """Test the in-memory backend"""
        assert isinstance(create_storage("memory"), InMemoryStorage)

    def test_sqlite(self):
        """Test the SQLite backend"""
        storage = create_storage("sqlite", ":memory:")
        assert isinstance(storage, SQLiteStorage)
        storage.close()

    def test_unknown_backend(self):
        """Test an unknown backend name"""
        with pytest.raises(ValueError):
            create_storage("postgres")


class TestStorageRecord:
    """Test the record base class"""

    def test_touch_updates_timestamp(self):
        """Test touch refreshes updated_at only"""
        earlier = datetime(2024, 1, 1, tzinfo=timezone.utc)
        record = StorageRecord(id="r1", created_at=earlier, updated_at=earlier)
        record.touch()

        assert record.created_at == earlier
        assert record.updated_at > earlier
        assert record.to_dict()["created_at"] == earlier.isoformat()
