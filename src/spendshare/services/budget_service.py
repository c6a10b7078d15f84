"""Setting, removing and evaluating daily spending limits.

Personal limits are keyed by ``(user, category_id)``. Group limits are keyed
by ``(group, category name)``: the row points at one member's category, but
spend is summed over every category of that name in the group.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Optional

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from spendshare.access.membership import group_member_ids
from spendshare.access.policy import Action, authorize
from spendshare.core.errors import InvalidInput, NotFound
from spendshare.core.logging_setup import get_logger
from spendshare.core.models import (
    Budget,
    BudgetPeriod,
    Category,
    GroupBudget,
    Profile,
    Transaction,
    TransactionType,
    normalize_category_name,
)
from spendshare.events.bus import ChangeAction, ChangeBus, EntityKind, Scope
from spendshare.processing.budget_engine import (
    CategoryTotal,
    LimitStatus,
    SpendItem,
    category_breakdown,
    daily_spend,
    end_of_year,
    evaluate,
    is_active_daily,
    reconcile_category_ids,
    reference_today,
)
from spendshare.services.category_service import resolve_category
from spendshare.services.common import committed, positive_amount
from spendshare.services.group_service import require_member

logger = get_logger(__name__)

TOTAL_LABEL = "Total"


@dataclass
class BudgetOverview:
    """Per-category statuses plus the aggregate status, if a limit is set."""

    categories: list[LimitStatus] = field(default_factory=list)
    total: Optional[LimitStatus] = None

    @property
    def over_budget(self) -> list[LimitStatus]:
        statuses = self.categories + ([self.total] if self.total else [])
        return [s for s in statuses if s.is_over_budget]


def _spend_items(rows) -> list[SpendItem]:
    return [
        SpendItem(
            amount=tx.amount,
            type=tx.type,
            date=tx.date,
            category_id=tx.category_id,
            category_name=tx.category.name if tx.category else None,
        )
        for tx in rows
    ]


def _refresh_window(row, today: date) -> None:
    # Long-lived row: keep one per key and move its window instead of inserting
    if not is_active_daily(row.period, row.start_date, row.end_date, today):
        row.period = BudgetPeriod.DAILY
        row.start_date = today
        row.end_date = end_of_year(today)


# ----------------------------------------------------------------------------
# Personal limits
# ----------------------------------------------------------------------------


def set_category_limit(
    db: Session,
    user_id: str,
    category_id: int,
    amount,
    *,
    today: Optional[date] = None,
    bus: Optional[ChangeBus] = None,
) -> Budget:
    """Upsert the user's daily limit on one of their expense categories."""
    value = positive_amount(amount)
    category = resolve_category(db, user_id, category_id, expected_type=TransactionType.EXPENSE)
    if category.user_id != user_id:
        raise InvalidInput("Personal limits can only be set on your own categories")
    today = today or reference_today()

    rows = (
        db.query(Budget)
        .filter(Budget.user_id == user_id, Budget.category_id == category.id)
        .order_by(Budget.id)
        .all()
    )
    active = [b for b in rows if is_active_daily(b.period, b.start_date, b.end_date, today)]
    budget = active[0] if active else (rows[0] if rows else None)

    if budget is None:
        budget = Budget(
            user_id=user_id,
            category_id=category.id,
            amount=value,
            period=BudgetPeriod.DAILY,
            start_date=today,
            end_date=end_of_year(today),
        )
        authorize(db, user_id, Action.INSERT, budget)
        db.add(budget)
        action = ChangeAction.CREATED
    else:
        authorize(db, user_id, Action.UPDATE, budget)
        budget.amount = value
        _refresh_window(budget, today)
        action = ChangeAction.UPDATED
    with committed(db, bus, [Scope.user(user_id)]) as emit:
        logger.info("user %s limit on category %s -> %s", user_id, category.id, value)
        emit(EntityKind.BUDGET, action, budget.id)
    return budget


def remove_category_limit(
    db: Session,
    user_id: str,
    category_id: int,
    *,
    bus: Optional[ChangeBus] = None,
) -> None:
    rows = (
        db.query(Budget)
        .filter(Budget.user_id == user_id, Budget.category_id == category_id)
        .all()
    )
    if not rows:
        raise NotFound(f"No limit set on category {category_id}")
    for budget in rows:
        authorize(db, user_id, Action.DELETE, budget)
        db.delete(budget)
    with committed(db, bus, [Scope.user(user_id)]) as emit:
        logger.info("user %s removed limit on category %s", user_id, category_id)
        emit(EntityKind.BUDGET, ChangeAction.DELETED, category_id)


def personal_budget_status(
    db: Session, user_id: str, *, today: Optional[date] = None
) -> BudgetOverview:
    """Today's spend against the user's active personal limits.

    Only personal transactions (no group) count.
    """
    today = today or reference_today()
    txs = (
        db.query(Transaction)
        .filter(
            Transaction.user_id == user_id,
            Transaction.group_id.is_(None),
            Transaction.date == today,
        )
        .all()
    )
    items = _spend_items(txs)

    overview = BudgetOverview()
    budgets = (
        db.query(Budget).filter(Budget.user_id == user_id).order_by(Budget.id).all()
    )
    for budget in budgets:
        if not is_active_daily(budget.period, budget.start_date, budget.end_date, today):
            continue
        spent = daily_spend(items, today, category_ids={budget.category_id})
        overview.categories.append(
            evaluate(
                spent,
                budget.amount,
                budget.category.name,
                budget_id=budget.id,
                category_id=budget.category_id,
                color=budget.category.color,
            )
        )

    profile = db.get(Profile, user_id)
    if profile is not None and profile.total_expenditure_limit is not None:
        overview.total = evaluate(daily_spend(items, today), profile.total_expenditure_limit, TOTAL_LABEL)
    return overview


# ----------------------------------------------------------------------------
# Group limits
# ----------------------------------------------------------------------------


def _group_budgets_named(db: Session, group_id: int, name: str) -> list[GroupBudget]:
    key = normalize_category_name(name)
    rows = (
        db.query(GroupBudget)
        .join(Category, Category.id == GroupBudget.category_id)
        .filter(GroupBudget.group_id == group_id)
        .order_by(GroupBudget.id)
        .all()
    )
    return [b for b in rows if normalize_category_name(b.category.name) == key]


def _pick_group_category(db: Session, user_id: str, group_id: int, name: str) -> Category:
    """Caller's own expense category of that name, else any member's."""
    key = normalize_category_name(name)
    candidates = (
        db.query(Category)
        .filter(
            Category.type == TransactionType.EXPENSE,
            Category.user_id.in_(group_member_ids(group_id)),
        )
        .order_by(Category.id)
        .all()
    )
    matching = [c for c in candidates if normalize_category_name(c.name) == key]
    for category in matching:
        if category.user_id == user_id:
            return category
    if matching:
        return matching[0]
    raise InvalidInput(f"No member of this group has an expense category named {name!r}")


def set_group_category_limit(
    db: Session,
    user_id: str,
    group_id: int,
    category_name: str,
    amount,
    *,
    today: Optional[date] = None,
    bus: Optional[ChangeBus] = None,
) -> GroupBudget:
    """Upsert the group's daily limit for a category name. Any member may do this."""
    require_member(db, user_id, group_id)
    value = positive_amount(amount)
    if not normalize_category_name(category_name):
        raise InvalidInput("Category name is required")
    today = today or reference_today()

    existing = _group_budgets_named(db, group_id, category_name)
    if existing:
        budget, duplicates = existing[0], existing[1:]
        authorize(db, user_id, Action.UPDATE, budget)
        budget.amount = value
        _refresh_window(budget, today)
        for extra in duplicates:
            authorize(db, user_id, Action.DELETE, extra)
            db.delete(extra)
        action = ChangeAction.UPDATED
    else:
        category = _pick_group_category(db, user_id, group_id, category_name)
        budget = GroupBudget(
            group_id=group_id,
            category_id=category.id,
            amount=value,
            period=BudgetPeriod.DAILY,
            start_date=today,
            end_date=end_of_year(today),
            created_by=user_id,
        )
        authorize(db, user_id, Action.INSERT, budget)
        db.add(budget)
        action = ChangeAction.CREATED
    with committed(db, bus, [Scope.group(group_id)]) as emit:
        logger.info("user %s set group %s limit %r -> %s", user_id, group_id, category_name, value)
        emit(EntityKind.GROUP_BUDGET, action, budget.id)
    return budget


def remove_group_category_limit(
    db: Session,
    user_id: str,
    group_id: int,
    category_name: str,
    *,
    bus: Optional[ChangeBus] = None,
) -> None:
    require_member(db, user_id, group_id)
    rows = _group_budgets_named(db, group_id, category_name)
    if not rows:
        raise NotFound(f"No group limit set for {category_name!r}")
    for budget in rows:
        authorize(db, user_id, Action.DELETE, budget)
        db.delete(budget)
    with committed(db, bus, [Scope.group(group_id)]) as emit:
        logger.info("user %s removed group %s limit %r", user_id, group_id, category_name)
        emit(EntityKind.GROUP_BUDGET, ChangeAction.DELETED, category_name)


def list_group_budgets(db: Session, user_id: str, group_id: int) -> list[GroupBudget]:
    require_member(db, user_id, group_id)
    return (
        db.query(GroupBudget)
        .filter(GroupBudget.group_id == group_id)
        .order_by(GroupBudget.id)
        .all()
    )


def _group_categories(db: Session, group_id: int) -> list[tuple[int, str]]:
    """(id, name) of every category a group's spend can be filed under."""
    used = select(Transaction.category_id).where(Transaction.group_id == group_id)
    rows = (
        db.query(Category.id, Category.name)
        .filter(or_(Category.user_id.in_(group_member_ids(group_id)), Category.id.in_(used)))
        .all()
    )
    return [(cat_id, name) for cat_id, name in rows]


def group_budget_status(
    db: Session, user_id: str, group_id: int, *, today: Optional[date] = None
) -> BudgetOverview:
    """Today's group spend against the group's active limits.

    Category limits match every group transaction whose category carries
    the limit's category name, whoever owns that category row.
    """
    group = require_member(db, user_id, group_id)
    today = today or reference_today()
    txs = (
        db.query(Transaction)
        .filter(Transaction.group_id == group_id, Transaction.date == today)
        .all()
    )
    items = _spend_items(txs)
    categories = _group_categories(db, group_id)

    overview = BudgetOverview()
    for budget in list_group_budgets(db, user_id, group_id):
        if not is_active_daily(budget.period, budget.start_date, budget.end_date, today):
            continue
        name = budget.category.name
        ids = reconcile_category_ids(categories, name)
        ids.add(budget.category_id)
        overview.categories.append(
            evaluate(
                daily_spend(items, today, category_ids=ids),
                budget.amount,
                name,
                budget_id=budget.id,
                category_id=budget.category_id,
                color=budget.category.color,
            )
        )

    if group.total_expenditure_limit is not None:
        overview.total = evaluate(daily_spend(items, today), group.total_expenditure_limit, TOTAL_LABEL)
    return overview


def group_spending_breakdown(
    db: Session,
    user_id: str,
    group_id: int,
    *,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> dict[str, list[CategoryTotal]]:
    """Group totals per category name, split into expense and income."""
    require_member(db, user_id, group_id)
    query = db.query(Transaction).filter(Transaction.group_id == group_id)
    if start_date is not None:
        query = query.filter(Transaction.date >= start_date)
    if end_date is not None:
        query = query.filter(Transaction.date <= end_date)
    items = _spend_items(query.all())
    return {
        TransactionType.EXPENSE.value: category_breakdown(items, TransactionType.EXPENSE),
        TransactionType.INCOME.value: category_breakdown(items, TransactionType.INCOME),
    }
