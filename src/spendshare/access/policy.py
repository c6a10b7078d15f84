"""Row-level access rules for every entity.

Each entity has one rule function answering "may ``user_id`` perform
``action`` on ``row``" and one visibility clause used to filter reads in SQL.
Both resolve group membership through ``spendshare.access.membership`` only.

Writes follow check-then-act: services call ``authorize`` for the row as it
is, apply their changes, and call ``authorize`` again for the row as it will
be before anything is flushed, so a rejected request leaves no partial write.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Callable

from sqlalchemy import and_, false, or_, select
from sqlalchemy.orm import Query, Session
from sqlalchemy.sql.elements import ColumnElement

from spendshare.access.membership import (
    account_email,
    is_admin,
    is_member,
    member_group_ids,
)
from spendshare.core.errors import Unauthorized
from spendshare.core.logging_setup import get_logger
from spendshare.core.models import (
    Budget,
    Category,
    Group,
    GroupBudget,
    GroupInvitation,
    GroupMember,
    Profile,
    Transaction,
)

logger = get_logger(__name__)


class Action(str, Enum):
    READ = "read"
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


Rule = Callable[[Session, str, Action, Any], bool]


def _group_rule(db: Session, user_id: str, action: Action, row: Group) -> bool:
    if action is Action.READ:
        return row.created_by == user_id or is_member(db, row.id, user_id)
    if action is Action.INSERT:
        return row.created_by == user_id
    return is_admin(db, row.id, user_id)


def _member_rule(db: Session, user_id: str, action: Action, row: GroupMember) -> bool:
    if action is Action.READ:
        return is_member(db, row.group_id, user_id)
    if action is Action.INSERT:
        # Self-join only; the invitation flow decides when this happens
        return row.user_id == user_id
    if action is Action.DELETE and row.user_id == user_id:
        # Leaving a group
        return True
    return is_admin(db, row.group_id, user_id)


def invitation_addressed_to(db: Session, user_id: str, row: GroupInvitation) -> bool:
    if row.invited_user_id is not None:
        return row.invited_user_id == user_id
    email = account_email(db, user_id)
    return email is not None and row.invited_email == email


def _invitation_rule(db: Session, user_id: str, action: Action, row: GroupInvitation) -> bool:
    if action is Action.INSERT:
        return is_member(db, row.group_id, user_id)
    return row.invited_by == user_id or invitation_addressed_to(db, user_id, row)


def _category_rule(db: Session, user_id: str, action: Action, row: Category) -> bool:
    if row.user_id == user_id:
        return True
    if action is not Action.READ or row.id is None:
        return False
    return bool(
        db.execute(
            select(Category.id).where(
                and_(Category.id == row.id, _shared_category_clause(user_id))
            )
        ).first()
    )


def _transaction_rule(db: Session, user_id: str, action: Action, row: Transaction) -> bool:
    in_group = row.group_id is not None and is_member(db, row.group_id, user_id)
    if action is Action.READ:
        return row.user_id == user_id or in_group
    return row.user_id == user_id and (row.group_id is None or in_group)


def _budget_rule(db: Session, user_id: str, action: Action, row: Budget) -> bool:
    return row.user_id == user_id


def _group_budget_rule(db: Session, user_id: str, action: Action, row: GroupBudget) -> bool:
    member = is_member(db, row.group_id, user_id)
    if action is Action.INSERT:
        return member and row.created_by == user_id
    return member


def _profile_rule(db: Session, user_id: str, action: Action, row: Profile) -> bool:
    return row.user_id == user_id


_RULES: dict[type, Rule] = {
    Group: _group_rule,
    GroupMember: _member_rule,
    GroupInvitation: _invitation_rule,
    Category: _category_rule,
    Transaction: _transaction_rule,
    Budget: _budget_rule,
    GroupBudget: _group_budget_rule,
    Profile: _profile_rule,
}


def is_allowed(db: Session, user_id: str, action: Action, row: Any) -> bool:
    """Evaluate the rule for ``row``'s entity. Unknown entities are denied."""
    rule = _RULES.get(type(row))
    if rule is None or not user_id:
        return False
    return rule(db, user_id, action, row)


def authorize(db: Session, user_id: str, action: Action, row: Any) -> None:
    """Raise ``Unauthorized`` unless ``user_id`` may perform ``action`` on ``row``."""
    if is_allowed(db, user_id, action, row):
        return
    entity = type(row).__name__
    logger.warning("denied %s on %s %s for user %s", action.value, entity, getattr(row, "id", None), user_id)
    raise Unauthorized(f"Not allowed to {action.value} this {entity.lower()}")


# ----------------------------------------------------------------------------
# Read filters
# ----------------------------------------------------------------------------


def addressed_clause(db: Session, user_id: str) -> ColumnElement:
    email = account_email(db, user_id)
    by_email = (
        and_(GroupInvitation.invited_user_id.is_(None), GroupInvitation.invited_email == email)
        if email
        else false()
    )
    return or_(GroupInvitation.invited_user_id == user_id, by_email)


def _shared_category_clause(user_id: str) -> ColumnElement:
    groups = member_group_ids(user_id)
    via_transactions = select(Transaction.category_id).where(
        Transaction.group_id.in_(groups), Transaction.category_id.is_not(None)
    )
    via_budgets = select(GroupBudget.category_id).where(GroupBudget.group_id.in_(groups))
    return or_(Category.id.in_(via_transactions), Category.id.in_(via_budgets))


def _visibility_clause(db: Session, user_id: str, model: type) -> ColumnElement:
    groups = member_group_ids(user_id)
    if model is Group:
        return or_(Group.created_by == user_id, Group.id.in_(groups))
    if model is GroupMember:
        return GroupMember.group_id.in_(groups)
    if model is GroupInvitation:
        return or_(GroupInvitation.invited_by == user_id, addressed_clause(db, user_id))
    if model is Category:
        return or_(Category.user_id == user_id, _shared_category_clause(user_id))
    if model is Transaction:
        return or_(
            Transaction.user_id == user_id,
            and_(Transaction.group_id.is_not(None), Transaction.group_id.in_(groups)),
        )
    if model is Budget:
        return Budget.user_id == user_id
    if model is GroupBudget:
        return GroupBudget.group_id.in_(groups)
    if model is Profile:
        return Profile.user_id == user_id
    return false()


def visible(db: Session, user_id: str, model: type) -> Query:
    """Query over the rows of ``model`` that ``user_id`` may read."""
    if not user_id:
        return db.query(model).filter(false())
    return db.query(model).filter(_visibility_clause(db, user_id, model))
