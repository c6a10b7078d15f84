"""Tests for the pure daily limit computations."""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from spendshare.core.models import BudgetPeriod, TransactionType
from spendshare.processing.budget_engine import (
    SpendItem,
    category_breakdown,
    daily_spend,
    end_of_year,
    evaluate,
    is_active_daily,
    reconcile_category_ids,
    reference_today,
)

TODAY = date(2026, 3, 14)


def item(amount, category_id=None, *, day=TODAY, kind="expense", name=None):
    return SpendItem(
        amount=Decimal(str(amount)),
        type=kind,
        date=day,
        category_id=category_id,
        category_name=name,
    )


def test_over_budget_reports_overspend():
    status = evaluate(Decimal("550"), Decimal("500"), "Food")

    assert status.percentage == Decimal("110")
    assert status.is_over_budget
    assert status.overspend == Decimal("50")
    assert status.capped_percentage == Decimal("100")
    assert status.remaining == Decimal("0")


def test_exactly_at_limit_is_not_over():
    status = evaluate(Decimal("500"), Decimal("500"), "Food")

    assert status.percentage == Decimal("100")
    assert not status.is_over_budget
    assert status.overspend == Decimal("0")


@pytest.mark.parametrize("spent", ["0", "10", "99999"])
def test_zero_limit_reports_zero_percent(spent):
    status = evaluate(Decimal(spent), Decimal("0"), "Food")

    assert status.percentage == Decimal("0")
    assert not status.is_over_budget
    assert status.overspend == Decimal("0")


def test_daily_spend_counts_only_todays_expenses():
    items = [
        item(100, 1),
        item(50, 1, day=TODAY - timedelta(days=1)),
        item(70, 1, kind="income"),
        item(30, 2),
    ]

    assert daily_spend(items, TODAY, category_ids={1}) == Decimal("100")
    assert daily_spend(items, TODAY) == Decimal("130")


def test_uncategorized_counts_only_toward_aggregate():
    items = [item(20), item(5, 3)]

    assert daily_spend(items, TODAY, category_ids={3}) == Decimal("5")
    assert daily_spend(items, TODAY) == Decimal("25")


def test_active_window_requires_daily_period():
    start, end = TODAY, end_of_year(TODAY)

    assert is_active_daily(BudgetPeriod.DAILY, start, end, TODAY)
    assert is_active_daily("daily", start, end, date(2026, 12, 31))
    assert not is_active_daily(BudgetPeriod.MONTHLY, start, end, TODAY)
    assert not is_active_daily(BudgetPeriod.DAILY, start, end, TODAY - timedelta(days=1))
    assert not is_active_daily(BudgetPeriod.DAILY, start, end, date(2027, 1, 1))


def test_reconcile_by_normalized_name():
    categories = [(1, "Food"), (2, " food "), (3, "FOOD"), (4, "Fuel"), (5, "Fast  Food")]

    assert reconcile_category_ids(categories, "food") == {1, 2, 3}
    assert reconcile_category_ids(categories, "fast food") == {5}
    assert reconcile_category_ids(categories, "Rent") == set()


def test_category_breakdown_groups_by_name():
    items = [
        item(300, 1, name="Food"),
        item(250, 2, name="food"),
        item(40, None),
        item(1000, 9, kind="income", name="Salary"),
    ]

    expense = category_breakdown(items, TransactionType.EXPENSE)

    assert [(c.name, c.total, c.transactions) for c in expense] == [
        ("Food", Decimal("550"), 2),
        ("Uncategorized", Decimal("40"), 1),
    ]
    income = category_breakdown(items, TransactionType.INCOME)
    assert [c.name for c in income] == ["Salary"]


def test_reference_today_uses_fixed_zone():
    # 20:00 UTC is already the next day in Kolkata (UTC+05:30)
    late_utc = datetime(2026, 3, 14, 20, 0, tzinfo=timezone.utc)

    assert reference_today(late_utc, "Asia/Kolkata") == date(2026, 3, 15)
    assert reference_today(late_utc, "UTC") == date(2026, 3, 14)
    assert reference_today(datetime(2026, 3, 14, 20, 0), "Asia/Kolkata") == date(2026, 3, 15)


def test_reference_today_rejects_unknown_zone():
    with pytest.raises(ValueError):
        reference_today(tz_name="Not/AZone")
