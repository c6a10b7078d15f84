"""Trusted membership lookups.

These predicates read ``group_members`` and ``groups`` directly with Core
``select`` statements. They never go through ``spendshare.access.policy``,
which itself depends on them to decide row visibility, so evaluating a
membership rule can never re-enter the policy layer.
"""

from __future__ import annotations

from sqlalchemy import Select, and_, exists, or_, select
from sqlalchemy.orm import Session

from spendshare.core.models import Group, GroupMember, MemberRole, Profile


def is_member(db: Session, group_id: int, user_id: str) -> bool:
    """True iff a membership row exists for ``(group_id, user_id)``."""
    stmt = select(
        exists().where(
            and_(GroupMember.group_id == group_id, GroupMember.user_id == user_id)
        )
    )
    return bool(db.execute(stmt).scalar())


def is_admin(db: Session, group_id: int, user_id: str) -> bool:
    """True iff the user created the group or holds an admin membership row."""
    created = exists().where(and_(Group.id == group_id, Group.created_by == user_id))
    admin_row = exists().where(
        and_(
            GroupMember.group_id == group_id,
            GroupMember.user_id == user_id,
            GroupMember.role == MemberRole.ADMIN,
        )
    )
    return bool(db.execute(select(or_(created, admin_row))).scalar())


def member_group_ids(user_id: str) -> Select:
    """Subquery of group ids the user belongs to, for embedding in filters."""
    return select(GroupMember.group_id).where(GroupMember.user_id == user_id)


def group_member_ids(group_id: int) -> Select:
    """Subquery of user ids belonging to a group."""
    return select(GroupMember.user_id).where(GroupMember.group_id == group_id)


def account_email(db: Session, user_id: str) -> str | None:
    """Verified account email of a user, as recorded by the auth collaborator."""
    return db.execute(select(Profile.email).where(Profile.user_id == user_id)).scalar()


def user_id_for_email(db: Session, email: str) -> str | None:
    return db.execute(select(Profile.user_id).where(Profile.email == email)).scalar()
