"""Daily budget limit evaluation.

Pure functions over plain values; nothing here touches the database. The
services layer projects ORM rows into ``SpendItem`` and calls these.

Daily rollover is computed, not stored: a limit row stays active across a
long ``start_date``..``end_date`` window and every evaluation sums only the
transactions dated "today" in the reference timezone.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Iterable, Optional

from dateutil import tz

from spendshare.core.models import BudgetPeriod, TransactionType, normalize_category_name

ZERO = Decimal("0")
HUNDRED = Decimal("100")
UNCATEGORIZED = "Uncategorized"


@dataclass(frozen=True)
class SpendItem:
    amount: Decimal
    type: str
    date: date
    category_id: Optional[int] = None
    category_name: Optional[str] = None


@dataclass(frozen=True)
class LimitStatus:
    label: str
    spent: Decimal
    limit: Decimal
    percentage: Decimal
    is_over_budget: bool
    overspend: Decimal
    budget_id: Optional[int] = None
    category_id: Optional[int] = None
    color: Optional[str] = None

    @property
    def capped_percentage(self) -> Decimal:
        """Percentage clamped to 100 for progress bars."""
        return min(self.percentage, HUNDRED)

    @property
    def remaining(self) -> Decimal:
        return max(self.limit - self.spent, ZERO)


@dataclass(frozen=True)
class CategoryTotal:
    name: str
    total: Decimal
    transactions: int


def reference_today(now: datetime | None = None, tz_name: str | None = None) -> date:
    """Calendar date of ``now`` in the reference timezone.

    Naive ``now`` values are taken as UTC.
    """
    if tz_name is None:
        from spendshare.core.config import settings

        tz_name = settings.REFERENCE_TIMEZONE
    zone = tz.gettz(tz_name)
    if zone is None:
        raise ValueError(f"Unknown timezone: {tz_name}")
    if now is None:
        now = datetime.now(tz.UTC)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=tz.UTC)
    return now.astimezone(zone).date()


def end_of_year(today: date) -> date:
    return date(today.year, 12, 31)


def is_active_daily(period: BudgetPeriod | str, start_date: date, end_date: date, today: date) -> bool:
    """A limit counts for ``today`` iff it is daily and its window covers today."""
    if BudgetPeriod(period) is not BudgetPeriod.DAILY:
        return False
    return start_date <= today <= end_date


def evaluate(spent: Decimal, limit: Decimal, label: str, **extra) -> LimitStatus:
    """Turn a spend figure and a limit into a status.

    A zero limit reports 0% instead of dividing by zero.
    """
    spent = Decimal(spent)
    limit = Decimal(limit)
    percentage = spent / limit * HUNDRED if limit > ZERO else ZERO
    over = percentage > HUNDRED
    return LimitStatus(
        label=label,
        spent=spent,
        limit=limit,
        percentage=percentage,
        is_over_budget=over,
        overspend=spent - limit if over else ZERO,
        **extra,
    )


def _is_expense(item: SpendItem) -> bool:
    return str(getattr(item.type, "value", item.type)).lower() == TransactionType.EXPENSE.value


def daily_spend(
    items: Iterable[SpendItem],
    today: date,
    *,
    category_ids: Optional[set[int]] = None,
) -> Decimal:
    """Sum of expense amounts dated ``today``.

    With ``category_ids`` only matching items count, so uncategorized items
    never match; without it every expense counts (the aggregate limit).
    """
    total = ZERO
    for item in items:
        if not _is_expense(item) or item.date != today:
            continue
        if category_ids is not None and item.category_id not in category_ids:
            continue
        total += Decimal(item.amount)
    return total


def reconcile_category_ids(categories: Iterable[tuple[int, str]], name: str) -> set[int]:
    """Ids of every category whose normalized name equals ``name``'s."""
    key = normalize_category_name(name)
    return {cat_id for cat_id, cat_name in categories if normalize_category_name(cat_name) == key}


def category_breakdown(items: Iterable[SpendItem], kind: TransactionType) -> list[CategoryTotal]:
    """Totals per normalized category name for one transaction type, largest first.

    The first spelling seen for a name is the one reported.
    """
    totals: dict[str, list] = {}
    for item in items:
        if str(getattr(item.type, "value", item.type)).lower() != kind.value:
            continue
        name = item.category_name or UNCATEGORIZED
        key = normalize_category_name(name)
        entry = totals.setdefault(key, [name, ZERO, 0])
        entry[1] += Decimal(item.amount)
        entry[2] += 1
    result = [CategoryTotal(name=n, total=t, transactions=c) for n, t, c in totals.values() if t > ZERO]
    result.sort(key=lambda c: c.total, reverse=True)
    return result
