"""Calendar and frequency helpers shared by the budget and projection services."""

import calendar
import statistics
from collections import defaultdict
from dataclasses import dataclass
from typing import Iterable, Optional

from ..schemas import Transaction

# Monthly equivalents of each frequency. Used for both configured items and
# detected patterns so the two never disagree.
FREQUENCY_TO_MONTHLY: dict[str, float] = {
    "weekly": 52 / 12,
    "biweekly": 26 / 12,
    "monthly": 1.0,
    "quarterly": 1 / 3,
    "yearly": 1 / 12,
}


def convert_to_monthly(amount: float, frequency: str) -> float:
    return amount * FREQUENCY_TO_MONTHLY.get(frequency, 1.0)


# ── Month arithmetic ──────────────────────────────────────────────────────────


def add_months(year: int, month: int, offset: int) -> tuple[int, int]:
    index = year * 12 + (month - 1) + offset
    return index // 12, index % 12 + 1


def month_key(year: int, month: int) -> str:
    return f"{year:04d}-{month:02d}"


def parse_month(key: str) -> tuple[int, int]:
    """YYYY-MM → (year, month)."""
    year, month = int(key[:4]), int(key[5:7])
    if not 1 <= month <= 12:
        raise ValueError(f"invalid month {key!r}")
    return year, month


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def month_offset(from_date: str, year: int, month: int) -> int:
    """Whole months from the month of ``from_date`` to (year, month)."""
    return (year * 12 + month) - (int(from_date[:4]) * 12 + int(from_date[5:7]))


def occurs_in_month(start_date: str, end_date: Optional[str], year: int, month: int) -> bool:
    """Configured items occur every month between their start and end month."""
    key = month_key(year, month)
    if start_date[:7] > key:
        return False
    if end_date is not None and end_date[:7] < key:
        return False
    return True


def recurring_occurs_in_month(frequency: Optional[str], origin_date: str, year: int, month: int) -> bool:
    """Whether a recurring transaction lands in (year, month).

    Weekly and biweekly transactions are not projected; configure them as
    income sources or expenses instead.
    """
    offset = month_offset(origin_date, year, month)
    if offset < 0:
        return False
    if frequency == "monthly":
        return True
    if frequency == "quarterly":
        return offset % 3 == 0
    if frequency == "yearly":
        return int(origin_date[5:7]) == month
    return False


# ── Recurring representatives ─────────────────────────────────────────────────


@dataclass(frozen=True)
class RecurringItem:
    """One projected stand-in for a whole recurring group."""

    key: str
    name: str
    amount: float                   # signed mean of the group
    frequency: Optional[str]
    origin_date: str
    type: str
    category: str
    account_id: str
    transfer_account_id: Optional[str] = None


def collapse_recurring(
    transactions: Iterable[Transaction],
    exclude_ids: Optional[set[str]] = None,
) -> list[RecurringItem]:
    """Collapse recurring transactions to one item per recurring group and sign.

    Transactions without a group id stand alone. Money in and money out of one
    group (a charge and its refund) become separate items. An item with any
    member in ``exclude_ids`` is dropped; it is already represented by a
    configured item.
    """
    exclude_ids = exclude_ids or set()
    groups: dict[str, list[Transaction]] = defaultdict(list)
    for tx in transactions:
        if tx.is_recurring:
            direction = "in" if tx.amount > 0 else "out"
            groups[f"{tx.recurring_group_id or tx.id}:{direction}"].append(tx)

    items = []
    for key, members in groups.items():
        if any(t.id in exclude_ids for t in members):
            continue
        members = sorted(members, key=lambda t: (t.date, t.id))
        first, last = members[0], members[-1]
        frequency = last.recurring_pattern.frequency if last.recurring_pattern else last.recurring_type
        items.append(RecurringItem(
            key=key,
            name=last.description,
            amount=statistics.fmean(t.amount for t in members),
            frequency=frequency,
            origin_date=first.date,
            type=last.type,
            category=last.category,
            account_id=last.account_id,
            transfer_account_id=last.transfer_account_id,
        ))
    return items
