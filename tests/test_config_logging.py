"""
Tests for configuration and structured logging
"""

import json
import logging
import pytest

from microlending import config as config_module
from microlending.config import LendingConfig, get_config, reload_config
from microlending.logging_config import JSONFormatter, setup_logging, get_logger, log_action
from microlending.service import LendingSystem
from microlending.storage import InMemoryStorage, SQLiteStorage
from microlending.exceptions import (
    AlreadySettledError, InvalidAmountError, InvalidDateError, LendingError,
    LoanNotFoundError, NotFoundError, PaymentNotFoundError, StorageError, ValidationError
)


class TestConfig:
    """Test environment-based configuration"""

    def test_defaults(self):
        """Test default settings"""
        settings = LendingConfig()
        assert settings.default_installment_count == 12
        assert settings.schedule_cache_size == 256
        assert settings.enable_audit_logging is True

    def test_environment_override(self, monkeypatch):
        """Test MICROLENDING_ prefixed variables"""
        monkeypatch.setenv("MICROLENDING_STORAGE_BACKEND", "memory")
        monkeypatch.setenv("MICROLENDING_DEFAULT_MORA_RATE_PERCENT", "7.5")
        monkeypatch.setenv("MICROLENDING_SCHEDULE_CACHE_SIZE", "16")

        settings = LendingConfig()
        assert settings.storage_backend == "memory"
        assert settings.default_mora_rate_percent == "7.5"
        assert settings.schedule_cache_size == 16

    def test_reload_config(self, monkeypatch):
        """Test reloading picks up new environment values"""
        original = config_module.config
        monkeypatch.setenv("MICROLENDING_API_PORT", "9999")
        try:
            assert reload_config().api_port == 9999
            assert get_config().api_port == 9999
        finally:
            config_module.config = original

    def test_system_built_from_config(self):
        """Test backend selection from configuration"""
        memory = LendingSystem(config=LendingConfig(storage_backend="memory"))
        assert isinstance(memory.storage, InMemoryStorage)

        sqlite = LendingSystem(config=LendingConfig(storage_backend="sqlite", sqlite_path=":memory:"))
        assert isinstance(sqlite.storage, SQLiteStorage)
        sqlite.close()

    def test_audit_switch(self):
        """Test disabling the audit trail"""
        system = LendingSystem(storage=InMemoryStorage(),
                               config=LendingConfig(storage_backend="memory", enable_audit_logging=False))
        system.create_loan("1000", "10", 4, "2024-01-01")
        assert system.audit_trail.get_all_events() == []


class TestLogging:
    """Test structured logging"""

    def test_json_formatter(self):
        """Test JSON output carries the structured fields"""
        record = logging.LogRecord("microlending.payments", logging.INFO, __file__, 1,
                                   "Payment posted", None, None)
        record.action = "post_payment"
        record.resource = "loan-1"
        record.extra = {"amount": "458.34"}

        entry = json.loads(JSONFormatter().format(record))
        assert entry["level"] == "INFO"
        assert entry["logger"] == "microlending.payments"
        assert entry["message"] == "Payment posted"
        assert entry["action"] == "post_payment"
        assert entry["resource"] == "loan-1"
        assert entry["extra"] == {"amount": "458.34"}

    def test_json_formatter_drops_missing_fields(self):
        """Test None fields are omitted"""
        record = logging.LogRecord("microlending", logging.WARNING, __file__, 1, "plain", None, None)
        entry = json.loads(JSONFormatter().format(record))
        assert "action" not in entry
        assert "resource" not in entry

    def test_setup_logging(self):
        """Test handler setup"""
        logger = setup_logging("DEBUG", logger_name="microlending_setup_test", log_format="text")
        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 1
        assert logger.propagate is False

        logger = setup_logging("INFO", logger_name="microlending_setup_test")
        assert len(logger.handlers) == 1
        assert isinstance(logger.handlers[0].formatter, JSONFormatter)

    def test_log_action(self, caplog):
        """Test structured fields are attached to the record"""
        logger = get_logger("microlending.test")
        with caplog.at_level(logging.INFO, logger="microlending.test"):
            log_action(logger, "info", "Loan created", action="create_loan",
                       resource="loan-1", extra={"total_payable": "5500.00"})

        record = caplog.records[-1]
        assert record.action == "create_loan"
        assert record.resource == "loan-1"
        assert record.extra == {"total_payable": "5500.00"}

    def test_rejected_payment_logged_as_warning(self, caplog):
        """Test rejected operations log a warning"""
        system = LendingSystem(storage=InMemoryStorage(), config=LendingConfig(storage_backend="memory"))
        loan = system.create_loan("1000", "10", 4, "2024-01-01")

        with caplog.at_level(logging.INFO, logger="microlending.payments"):
            with pytest.raises(InvalidAmountError):
                system.post_payment(loan.id, "-1", "2024-01-08")
            system.post_payment(loan.id, "275", "2024-01-08")

        levels = [(r.levelname, r.action) for r in caplog.records if r.name == "microlending.payments"]
        assert levels == [("WARNING", "post_payment"), ("INFO", "post_payment")]


class TestExceptions:
    """Test the exception hierarchy"""

    def test_hierarchy(self):
        """Test base classes"""
        assert issubclass(LoanNotFoundError, NotFoundError)
        assert issubclass(PaymentNotFoundError, NotFoundError)
        assert issubclass(InvalidAmountError, ValidationError)
        assert issubclass(InvalidDateError, ValidationError)
        assert issubclass(ValidationError, ValueError)
        for error_type in (NotFoundError, AlreadySettledError, ValidationError, StorageError):
            assert issubclass(error_type, LendingError)

    def test_codes(self):
        """Test stable error codes"""
        assert LoanNotFoundError("L1").code == "loan_not_found"
        assert PaymentNotFoundError("P1").code == "payment_not_found"
        assert AlreadySettledError("L1").code == "already_settled"
        assert InvalidAmountError("bad").code == "invalid_amount"
        assert InvalidDateError("bad").code == "invalid_date"

    def test_messages_carry_ids(self):
        """Test ids are kept on the exception"""
        error = LoanNotFoundError("L1")
        assert error.loan_id == "L1"
        assert str(error) == "Loan L1 not found"
        assert PaymentNotFoundError("P1").payment_id == "P1"
