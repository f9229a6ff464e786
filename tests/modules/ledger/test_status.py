from datetime import date
from decimal import Decimal

from src.modules.ledger.models import LedgerStatus
from src.modules.ledger.status import accepts_payments, derive_status, effective_status

TODAY = date(2026, 3, 2)
YESTERDAY = date(2026, 3, 1)
TOMORROW = date(2026, 3, 3)


class TestDeriveStatus:
    """Tests for ledger status derivation."""

    def test_nothing_paid_not_due_is_pending(self):
        assert derive_status(Decimal("900"), Decimal("0"), TOMORROW, TODAY) == LedgerStatus.PENDING

    def test_due_today_is_not_overdue(self):
        assert derive_status(Decimal("900"), Decimal("0"), TODAY, TODAY) == LedgerStatus.PENDING

    def test_nothing_paid_past_due_is_overdue(self):
        assert derive_status(Decimal("900"), Decimal("0"), YESTERDAY, TODAY) == LedgerStatus.OVERDUE

    def test_partial_payment(self):
        assert derive_status(Decimal("900"), Decimal("400"), TOMORROW, TODAY) == LedgerStatus.PARTIAL

    def test_partial_wins_over_overdue(self):
        assert derive_status(Decimal("900"), Decimal("1"), YESTERDAY, TODAY) == LedgerStatus.PARTIAL

    def test_fully_paid(self):
        assert derive_status(Decimal("900"), Decimal("900"), YESTERDAY, TODAY) == LedgerStatus.PAID

    def test_zero_final_amount_is_paid(self):
        assert derive_status(Decimal("0"), Decimal("0"), YESTERDAY, TODAY) == LedgerStatus.PAID

    def test_waived_stays_waived(self):
        status = derive_status(
            Decimal("900"), Decimal("100"), YESTERDAY, TODAY, current=LedgerStatus.WAIVED.value
        )
        assert status == LedgerStatus.WAIVED


class TestEffectiveStatus:
    def test_stored_pending_reads_overdue_after_due_date(self):
        status = effective_status(
            LedgerStatus.PENDING.value, Decimal("900"), Decimal("0"), YESTERDAY, TODAY
        )
        assert status == LedgerStatus.OVERDUE

    def test_stored_waived_is_kept(self):
        status = effective_status(
            LedgerStatus.WAIVED.value, Decimal("900"), Decimal("0"), YESTERDAY, TODAY
        )
        assert status == LedgerStatus.WAIVED


def test_accepts_payments():
    assert accepts_payments(LedgerStatus.PENDING.value)
    assert accepts_payments(LedgerStatus.PARTIAL.value)
    assert accepts_payments(LedgerStatus.OVERDUE.value)
    assert not accepts_payments(LedgerStatus.PAID.value)
    assert not accepts_payments(LedgerStatus.WAIVED.value)
