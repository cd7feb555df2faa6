"""
Test suite for schedule projection

Tests weekly spacing, installment statuses, duplicate installment numbers,
suppression and the projection cache.
"""

import pytest
from datetime import date, datetime, timezone, timedelta
from decimal import Decimal

from microlending.config import LendingConfig
from microlending.models import Loan, Payment, PaymentTimeliness
from microlending.schedule import InstallmentStatus, project_installments
from microlending.service import LendingSystem
from microlending.storage import InMemoryStorage


def make_payment(number, amount, sequence, is_partial=False, payment_date=date(2024, 1, 8)):
    now = datetime.now(timezone.utc)
    return Payment(
        id=f"pay-{sequence}",
        created_at=now,
        updated_at=now,
        loan_id="loan-1",
        amount_paid=Decimal(amount),
        payment_date=payment_date,
        installment_number=number,
        timeliness=PaymentTimeliness.ON_TIME,
        mora_amount=Decimal('0.00'),
        is_partial=is_partial,
        remaining_amount=Decimal('0.00'),
        sequence=sequence
    )


class TestProjectInstallments:
    """Test the pure projection"""

    def setup_method(self):
        """Set up test environment"""
        self.system = LendingSystem(storage=InMemoryStorage(), config=LendingConfig(storage_backend="memory"))
        self.loan = self.system.create_loan("5000", "10", 12, "2024-01-01")

    def test_twelve_weekly_installments(self):
        """Test one pending row per installment, seven days apart"""
        schedule = project_installments(self.loan, date(2024, 1, 8), [])

        assert len(schedule) == 12
        assert [row.number for row in schedule] == list(range(1, 13))
        assert schedule[0].scheduled_date == date(2024, 1, 8)
        assert schedule[-1].scheduled_date == date(2024, 3, 25)
        assert all(row.status == InstallmentStatus.PENDING for row in schedule)
        assert all(row.scheduled_amount == "458.34" for row in schedule)

    @pytest.mark.parametrize("anchor", [
        date(2024, 1, 29),   # month end
        date(2024, 2, 26),   # leap day
        date(2024, 3, 4),    # US spring forward
        date(2024, 3, 28),   # EU spring forward
        date(2024, 10, 21),  # fall back
        date(2024, 12, 23),  # year end
    ])
    def test_exact_seven_day_spacing(self, anchor):
        """Test spacing across month, leap day, DST and year boundaries"""
        schedule = project_installments(self.loan, anchor, [])

        for previous, current in zip(schedule, schedule[1:]):
            assert current.scheduled_date - previous.scheduled_date == timedelta(days=7)
        assert schedule[0].scheduled_date == anchor

    def test_paid_and_partial_rows(self):
        """Test rows with ledger payments carry the payment detail"""
        payments = [
            make_payment(1, '458.34', 1),
            make_payment(2, '200.00', 2, is_partial=True),
        ]
        schedule = project_installments(self.loan, date(2024, 1, 8), payments)

        assert schedule[0].status == InstallmentStatus.PAID
        assert schedule[0].paid_amount == Decimal('458.34')
        assert schedule[0].paid_date == date(2024, 1, 8)
        assert schedule[1].status == InstallmentStatus.PARTIAL
        assert schedule[2].status == InstallmentStatus.PENDING

    def test_counted_installments_without_payments(self):
        """Test installments counted as paid but with no ledger row"""
        self.loan.installments_paid_count = 2
        schedule = project_installments(self.loan, date(2024, 1, 8), [])

        assert [row.status for row in schedule[:3]] == [
            InstallmentStatus.PAID, InstallmentStatus.PAID, InstallmentStatus.PENDING
        ]
        assert schedule[0].paid_amount is None

    def test_duplicate_installment_latest_sequence_wins(self):
        """Test a completing payment supersedes the partial for the same week"""
        partial = make_payment(1, '200.00', 1, is_partial=True)
        completing = make_payment(1, '458.34', 2)

        for ledger in ([partial, completing], [completing, partial]):
            schedule = project_installments(self.loan, date(2024, 1, 8), ledger)
            assert schedule[0].status == InstallmentStatus.PAID
            assert schedule[0].paid_amount == Decimal('458.34')

    def test_suppressed_schedule_is_empty(self):
        """Test suppression"""
        self.loan.schedule_suppressed = True
        assert project_installments(self.loan, date(2024, 1, 8), []) == []

    def test_zero_installments_is_empty(self):
        """Test a loan without installments"""
        now = datetime.now(timezone.utc)
        loan = Loan(
            id="loan-0", created_at=now, updated_at=now,
            principal=Decimal('100.00'), rate_percent=Decimal('0'), mora_rate_percent=Decimal('5'),
            loan_date=date(2024, 1, 1), installment_count=0,
            installment_amount=Decimal('0.00'), total_payable=Decimal('100.00')
        )
        assert project_installments(loan, date(2024, 1, 8), []) == []

    def test_to_dict(self):
        """Test row serialization"""
        schedule = project_installments(self.loan, date(2024, 1, 8), [make_payment(1, '458.34', 1)])

        assert schedule[0].to_dict() == {
            'number': 1,
            'scheduled_date': '2024-01-08',
            'scheduled_amount': '458.34',
            'status': 'paid',
            'paid_date': '2024-01-08',
            'paid_amount': '458.34',
            'mora': '0.00',
            'remaining': '0.00',
        }
        assert schedule[1].to_dict()['paid_amount'] is None


class TestScheduleProjector:
    """Test projection of stored loans"""

    def setup_method(self):
        """Set up test environment"""
        self.system = LendingSystem(storage=InMemoryStorage(), config=LendingConfig(storage_backend="memory"))
        self.loan = self.system.create_loan("5000", "10", 12, "2024-01-01")

    def test_projection_is_idempotent(self):
        """Test repeated projections without mutation are identical"""
        first = self.system.project_schedule(self.loan.id)
        second = self.system.project_schedule(self.loan.id)
        assert first == second

    def test_projection_follows_payments(self):
        """Test a posted payment shows up in the next projection"""
        self.system.project_schedule(self.loan.id)
        self.system.post_payment(self.loan.id, "458.34", "2024-01-08")

        schedule = self.system.project_schedule(self.loan.id)
        assert schedule[0].status == InstallmentStatus.PAID
        assert schedule[1].status == InstallmentStatus.PENDING

    def test_projection_follows_anchor_changes(self):
        """Test a new custom anchor shows up in the next projection"""
        self.system.project_schedule(self.loan.id)
        self.system.set_payment_weekday(self.loan.id, 4)

        schedule = self.system.project_schedule(self.loan.id)
        assert schedule[0].scheduled_date == date(2024, 1, 12)

    def test_override_anchor_is_not_persisted(self):
        """Test a preview anchor leaves the loan untouched"""
        preview = self.system.project_schedule(self.loan.id, "2024-01-10")

        assert preview[0].scheduled_date == date(2024, 1, 10)
        assert self.system.project_schedule(self.loan.id)[0].scheduled_date == date(2024, 1, 8)
        assert self.system.get_loan(self.loan.id).custom_first_installment_date is None

    def test_suppressed_stored_loan(self):
        """Test suppression through the stored flag"""
        self.system.set_custom_anchor(self.loan.id, None, suppress=True)
        assert self.system.project_schedule(self.loan.id) == []

    def test_mutating_returned_list_does_not_affect_cache(self):
        """Test callers get their own list"""
        schedule = self.system.project_schedule(self.loan.id)
        schedule.clear()
        assert len(self.system.project_schedule(self.loan.id)) == 12

    def test_cache_is_bounded(self):
        """Test the LRU cache evicts old entries"""
        projector = self.system.schedule_projector
        projector.cache_size = 2
        for day in ("2024-01-09", "2024-01-10", "2024-01-11"):
            projector.project_schedule(self.loan.id, day)
        assert len(projector._cache) == 2

    def test_anchor_and_schedule_from_one_read(self, monkeypatch):
        """Test the reported anchor matches the rows it came with"""
        self.system.set_payment_weekday(self.loan.id, 4)
        loan_manager = self.system.loan_manager
        original_require = loan_manager.require_loan
        reads = []

        def counting_require(loan_id):
            reads.append(loan_id)
            return original_require(loan_id)

        monkeypatch.setattr(loan_manager, "require_loan", counting_require)

        anchor, schedule = self.system.anchored_schedule(self.loan.id)
        assert reads == [self.loan.id]
        assert anchor == date(2024, 1, 12)
        assert schedule[0].scheduled_date == anchor

        anchor, schedule = self.system.anchored_schedule(self.loan.id, "2024-01-10")
        assert anchor == schedule[0].scheduled_date == date(2024, 1, 10)
