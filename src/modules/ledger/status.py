"""
Ledger status derivation.

Status is never an independent flag: it is recomputed from the final amount,
the sum of payments and the due date every time the entry is written, and
re-derived against today's date when read.

    pending -> partial | paid | overdue
    overdue -> partial | paid
    partial -> paid            (a past-due partial entry stays partial)
    paid, waived               terminal for payments
"""

from datetime import date
from decimal import Decimal

from src.modules.ledger.models import LedgerStatus

TERMINAL_STATUSES = frozenset({LedgerStatus.PAID.value, LedgerStatus.WAIVED.value})


def derive_status(
    final_amount: Decimal,
    paid_total: Decimal,
    due_date: date,
    today: date,
    current: str | None = None,
) -> LedgerStatus:
    """Status of an entry from its amounts and due date.

    Payment progress wins over the date: once anything is paid the entry is
    partial (or paid), never overdue.
    """
    if current == LedgerStatus.WAIVED.value:
        return LedgerStatus.WAIVED
    if paid_total >= final_amount:
        return LedgerStatus.PAID
    if paid_total > 0:
        return LedgerStatus.PARTIAL
    if due_date < today:
        return LedgerStatus.OVERDUE
    return LedgerStatus.PENDING


def effective_status(
    stored: str, final_amount: Decimal, paid_total: Decimal, due_date: date, today: date
) -> LedgerStatus:
    """Status as of `today` for read paths (a stored pending entry may have gone overdue)."""
    return derive_status(final_amount, paid_total, due_date, today, current=stored)


def accepts_payments(status: str) -> bool:
    return status not in TERMINAL_STATUSES
