"""
FIFO debt aging.

Pure functions: given a customer's debit items (invoices, positive
adjustments) and credit items (payments, negative adjustments), settle the
oldest debits first and bucket what is left by age. No database access and
no cached state, so the result can always be re-derived from history.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence, Tuple

from poultry_backend.app.domain.ledger.money import ZERO

# Same-day ordering: invoices settle before adjustments.
SOURCE_ORDER = {"invoice": 0, "adjustment": 1, "payment": 2}


@dataclass(frozen=True)
class AgingItem:
    """A dated debit or credit taken from ledger history."""
    source: str
    source_id: int
    item_date: date
    amount: Decimal


@dataclass
class OutstandingItem:
    item: AgingItem
    outstanding: Decimal
    age_days: int


@dataclass
class AgingBucket:
    label: str
    min_days: int
    max_days: Optional[int]  # None means open-ended
    amount: Decimal = ZERO


@dataclass
class AgingSnapshot:
    customer_id: int
    as_of: date
    buckets: List[AgingBucket]
    total_outstanding: Decimal
    unapplied_credit: Decimal
    outstanding_items: List[OutstandingItem] = field(default_factory=list)
    last_payment_date: Optional[date] = None

    @property
    def overdue_amount(self) -> Decimal:
        """Outstanding amount in the two oldest buckets (61+ days by default)."""
        return sum((b.amount for b in self.buckets[2:]), ZERO)

    @property
    def oldest_outstanding_date(self) -> Optional[date]:
        if not self.outstanding_items:
            return None
        return min(o.item.item_date for o in self.outstanding_items)


def bucket_ranges(boundaries: Sequence[int]) -> List[Tuple[str, int, Optional[int]]]:
    """[30, 60, 90] -> 0-30, 31-60, 61-90, 91+."""
    ranges = []
    lower = 0
    for upper in boundaries:
        ranges.append((f"{lower}-{upper}", lower, upper))
        lower = upper + 1
    ranges.append((f"{lower}+", lower, None))
    return ranges


def bucket_index(age_days: int, boundaries: Sequence[int]) -> int:
    for index, upper in enumerate(boundaries):
        if age_days <= upper:
            return index
    return len(boundaries)


def _settle_order(item: AgingItem):
    return (item.item_date, SOURCE_ORDER.get(item.source, 9), item.source_id)


def allocate_fifo(debits: Iterable[AgingItem], total_credit: Decimal) -> Tuple[List[Tuple[AgingItem, Decimal]], Decimal]:
    """
    Apply total_credit to debits oldest first.

    Returns:
        (list of (debit, outstanding remainder) with remainder > 0, unapplied credit)
    """
    remaining = total_credit
    open_items = []
    for item in sorted(debits, key=_settle_order):
        applied = min(item.amount, remaining)
        remaining -= applied
        left = item.amount - applied
        if left > ZERO:
            open_items.append((item, left))
    return open_items, remaining


def compute_aging(
    customer_id: int,
    as_of: date,
    debits: Iterable[AgingItem],
    credits: Iterable[AgingItem],
    boundaries: Sequence[int],
) -> AgingSnapshot:
    """
    Build the aging snapshot of one customer as of a date.

    Items dated after `as_of` are ignored. Debit and credit amounts are
    positive; the direction comes from which argument they are passed in.
    """
    debits = [d for d in debits if d.item_date <= as_of]
    credits = [c for c in credits if c.item_date <= as_of]

    total_credit = sum((c.amount for c in credits), ZERO)
    open_items, unapplied = allocate_fifo(debits, total_credit)

    buckets = [AgingBucket(label, low, high) for label, low, high in bucket_ranges(boundaries)]
    outstanding = []
    for item, left in open_items:
        age = (as_of - item.item_date).days
        buckets[bucket_index(age, boundaries)].amount += left
        outstanding.append(OutstandingItem(item=item, outstanding=left, age_days=age))

    payment_dates = [c.item_date for c in credits if c.source == "payment"]

    return AgingSnapshot(
        customer_id=customer_id,
        as_of=as_of,
        buckets=buckets,
        total_outstanding=sum((b.amount for b in buckets), ZERO),
        unapplied_credit=unapplied,
        outstanding_items=outstanding,
        last_payment_date=max(payment_dates) if payment_dates else None,
    )
