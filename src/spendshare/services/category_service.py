"""Per-user categories.

Every user owns their own category rows; two members may both have a
"Food" category and group budgets reconcile them by name.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy.orm import Session

from spendshare.access.membership import group_member_ids
from spendshare.access.policy import Action, authorize, visible
from spendshare.core.errors import InvalidInput
from spendshare.core.logging_setup import get_logger
from spendshare.core.models import (
    Category,
    TransactionType,
    normalize_category_name,
)
from spendshare.events.bus import ChangeAction, ChangeBus, EntityKind, Scope
from spendshare.services.common import commit, committed, get_or_404

logger = get_logger(__name__)


DEFAULT_CATEGORIES: list[dict] = [
    {"name": "Food", "type": TransactionType.EXPENSE, "color": "#ef4444", "icon": "utensils"},
    {"name": "Groceries", "type": TransactionType.EXPENSE, "color": "#f97316", "icon": "shopping-cart"},
    {"name": "Transport", "type": TransactionType.EXPENSE, "color": "#eab308", "icon": "car"},
    {"name": "Rent", "type": TransactionType.EXPENSE, "color": "#8b5cf6", "icon": "home"},
    {"name": "Utilities", "type": TransactionType.EXPENSE, "color": "#06b6d4", "icon": "zap"},
    {"name": "Entertainment", "type": TransactionType.EXPENSE, "color": "#ec4899", "icon": "film"},
    {"name": "Salary", "type": TransactionType.INCOME, "color": "#22c55e", "icon": "briefcase"},
    {"name": "Other Income", "type": TransactionType.INCOME, "color": "#10b981", "icon": "plus-circle"},
]


def _parse_type(value) -> TransactionType:
    try:
        return TransactionType(value)
    except ValueError:
        raise InvalidInput(f"Unknown category type: {value!r}") from None


def _clean_name(name: str | None) -> str:
    cleaned = " ".join((name or "").split())
    if not cleaned:
        raise InvalidInput("Category name is required")
    return cleaned


def seed_default_categories(db: Session, user_id: str) -> int:
    """Create the default categories the user does not have yet.

    Returns:
        Number of categories created
    """
    existing = {
        normalize_category_name(name)
        for (name,) in db.query(Category.name).filter(Category.user_id == user_id).all()
    }
    created = 0
    for entry in DEFAULT_CATEGORIES:
        if normalize_category_name(entry["name"]) in existing:
            continue
        db.add(Category(user_id=user_id, **entry))
        created += 1
    if created:
        commit(db)
        logger.info("seeded %d default categories for user %s", created, user_id)
    return created


def create_category(
    db: Session,
    user_id: str,
    name: str,
    type: TransactionType | str = TransactionType.EXPENSE,
    *,
    color: Optional[str] = None,
    icon: Optional[str] = None,
    bus: Optional[ChangeBus] = None,
) -> Category:
    category = Category(user_id=user_id, name=_clean_name(name), type=_parse_type(type))
    if color:
        category.color = color
    if icon:
        category.icon = icon
    authorize(db, user_id, Action.INSERT, category)
    db.add(category)
    with committed(db, bus, [Scope.user(user_id)]) as emit:
        emit(EntityKind.CATEGORY, ChangeAction.CREATED, category.id)
    return category


def list_categories(
    db: Session,
    user_id: str,
    *,
    type: TransactionType | str | None = None,
    include_shared: bool = False,
) -> list[Category]:
    """The user's categories, optionally with those shared through their groups."""
    if include_shared:
        query = visible(db, user_id, Category)
    else:
        query = db.query(Category).filter(Category.user_id == user_id)
    if type is not None:
        query = query.filter(Category.type == _parse_type(type))
    return query.order_by(Category.name, Category.id).all()


def resolve_category(
    db: Session,
    user_id: str,
    category_id,
    *,
    expected_type: TransactionType | None = None,
) -> Category:
    """Category referenced by a transaction or budget.

    A reference that does not resolve to a row the caller can read is
    rejected as ``InvalidInput`` rather than dropped.
    """
    try:
        category_id = int(category_id)
    except (TypeError, ValueError):
        raise InvalidInput(f"Malformed category reference: {category_id!r}") from None
    category = db.get(Category, category_id)
    if category is None:
        raise InvalidInput(f"Category {category_id} does not exist")
    if not visible(db, user_id, Category).filter(Category.id == category_id).first():
        raise InvalidInput(f"Category {category_id} is not available to you")
    if expected_type is not None and category.type is not expected_type:
        raise InvalidInput(f"Category {category.name!r} is not an {expected_type.value} category")
    return category


def update_category(
    db: Session,
    user_id: str,
    category_id: int,
    *,
    name: Optional[str] = None,
    color: Optional[str] = None,
    icon: Optional[str] = None,
    bus: Optional[ChangeBus] = None,
) -> Category:
    """Update a category.

    A rename leaves group limits under the old name: they move to another
    member's category that still has it. With no such category the limit
    follows the renamed one.
    """
    category = get_or_404(db, Category, category_id, "Category")
    authorize(db, user_id, Action.UPDATE, category)
    groups: list[int] = []
    if name is not None:
        new_name = _clean_name(name)
        if normalize_category_name(new_name) != normalize_category_name(category.name):
            groups = _rebind_group_budgets(db, category, drop_orphans=False)
        category.name = new_name
    if color is not None:
        category.color = color
    if icon is not None:
        category.icon = icon
    scopes = [Scope.user(user_id)] + [Scope.group(gid) for gid in groups]
    with committed(db, bus, scopes) as emit:
        emit(EntityKind.CATEGORY, ChangeAction.UPDATED, category_id)
    return category


def _same_named_category(db: Session, category: Category, group_id: int) -> Optional[Category]:
    """Another member's category of ``group_id`` with the same name and type."""
    key = normalize_category_name(category.name)
    candidates = (
        db.query(Category)
        .filter(
            Category.id != category.id,
            Category.type == category.type,
            Category.user_id.in_(group_member_ids(group_id)),
        )
        .order_by(Category.id)
        .all()
    )
    return next((c for c in candidates if normalize_category_name(c.name) == key), None)


def _rebind_group_budgets(db: Session, category: Category, *, drop_orphans: bool = True) -> list[int]:
    """Point group budgets at another member's same-named category.

    Budgets with no such category are deleted, or left in place when
    ``drop_orphans`` is false. Returns the ids of the groups whose budgets
    changed.
    """
    touched: list[int] = []
    for budget in list(category.group_budgets):
        replacement = _same_named_category(db, category, budget.group_id)
        if replacement is not None:
            budget.category = replacement
        elif drop_orphans:
            logger.info("dropping group budget %s: no member owns %r anymore", budget.id, category.name)
            category.group_budgets.remove(budget)
            db.delete(budget)
        else:
            continue
        touched.append(budget.group_id)
    return touched


def delete_category(
    db: Session,
    user_id: str,
    category_id: int,
    *,
    bus: Optional[ChangeBus] = None,
) -> None:
    """Delete a category.

    Transactions on it become uncategorized and personal budgets on it are
    removed. Group budgets move to another member's category of the same
    name when there is one.
    """
    category = get_or_404(db, Category, category_id, "Category")
    authorize(db, user_id, Action.DELETE, category)
    groups = _rebind_group_budgets(db, category)
    db.delete(category)
    scopes = [Scope.user(user_id)] + [Scope.group(gid) for gid in groups]
    with committed(db, bus, scopes) as emit:
        logger.info("user %s deleted category %s", user_id, category_id)
        emit(EntityKind.CATEGORY, ChangeAction.DELETED, category_id)

