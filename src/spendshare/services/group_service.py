"""Group lifecycle, membership management and the group aggregate limit."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from sqlalchemy import func, update
from sqlalchemy.orm import Session

from spendshare.access.membership import is_member
from spendshare.access.policy import Action, authorize, visible
from spendshare.core.errors import Conflict, InvalidInput, NotFound, Unauthorized
from spendshare.core.logging_setup import get_logger
from spendshare.core.models import Group, GroupMember, MemberRole
from spendshare.events.bus import ChangeAction, ChangeBus, EntityKind, Scope
from spendshare.services.common import committed, get_or_404, positive_amount

logger = get_logger(__name__)


@dataclass
class GroupSummary:
    group: Group
    member_count: int
    role: Optional[MemberRole]


def _clean_name(name: str | None) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise InvalidInput("Group name is required")
    return cleaned


def _member_scopes(db: Session, group_id: int) -> list[Scope]:
    user_ids = db.query(GroupMember.user_id).filter(GroupMember.group_id == group_id).all()
    return [Scope.group(group_id)] + [Scope.user(uid) for (uid,) in user_ids]


def create_group(
    db: Session,
    user_id: str,
    name: str,
    description: Optional[str] = None,
    *,
    bus: Optional[ChangeBus] = None,
) -> Group:
    """Create a group and its creator's admin membership as one unit.

    Both rows are written in a single transaction; if the membership insert
    fails the group insert is rolled back with it, so no group is ever left
    without an admin member.
    """
    group = Group(name=_clean_name(name), description=description, created_by=user_id)
    authorize(db, user_id, Action.INSERT, group)
    db.add(group)
    try:
        db.flush()  # populate group.id
        member = GroupMember(group_id=group.id, user_id=user_id, role=MemberRole.ADMIN)
        authorize(db, user_id, Action.INSERT, member)
        db.add(member)
    except Exception:
        db.rollback()
        raise
    with committed(db, bus, [Scope.group(group.id), Scope.user(user_id)]) as emit:
        logger.info("user %s created group %s", user_id, group.id)
        emit(EntityKind.GROUP, ChangeAction.CREATED, group.id)
    return group


def get_group(db: Session, user_id: str, group_id: int) -> Group:
    group = get_or_404(db, Group, group_id, "Group")
    authorize(db, user_id, Action.READ, group)
    return group


def require_member(db: Session, user_id: str, group_id: int) -> Group:
    """Group row, provided ``user_id`` belongs to it."""
    group = get_or_404(db, Group, group_id, "Group")
    if not is_member(db, group_id, user_id):
        logger.warning("user %s is not a member of group %s", user_id, group_id)
        raise Unauthorized("Not a member of this group")
    return group


def list_groups(db: Session, user_id: str) -> list[GroupSummary]:
    """Groups visible to the user, newest first, with member count and the user's role."""
    groups = visible(db, user_id, Group).order_by(Group.created_at.desc(), Group.id.desc()).all()
    if not groups:
        return []
    ids = [g.id for g in groups]
    counts = dict(
        db.query(GroupMember.group_id, func.count(GroupMember.id))
        .filter(GroupMember.group_id.in_(ids))
        .group_by(GroupMember.group_id)
        .all()
    )
    roles = dict(
        db.query(GroupMember.group_id, GroupMember.role)
        .filter(GroupMember.group_id.in_(ids), GroupMember.user_id == user_id)
        .all()
    )
    return [GroupSummary(group=g, member_count=counts.get(g.id, 0), role=roles.get(g.id)) for g in groups]


def update_group(
    db: Session,
    user_id: str,
    group_id: int,
    *,
    name: Optional[str] = None,
    description: Optional[str] = None,
    bus: Optional[ChangeBus] = None,
) -> Group:
    group = get_or_404(db, Group, group_id, "Group")
    authorize(db, user_id, Action.UPDATE, group)
    if name is not None:
        group.name = _clean_name(name)
    if description is not None:
        group.description = description
    with committed(db, bus, [Scope.group(group_id)]) as emit:
        emit(EntityKind.GROUP, ChangeAction.UPDATED, group_id)
    return group


def delete_group(db: Session, user_id: str, group_id: int, *, bus: Optional[ChangeBus] = None) -> None:
    """Delete a group with its members, invitations and budgets.

    Its transactions stay with their owners as personal transactions.
    """
    group = get_or_404(db, Group, group_id, "Group")
    authorize(db, user_id, Action.DELETE, group)
    scopes = _member_scopes(db, group_id)
    db.delete(group)
    with committed(db, bus, scopes) as emit:
        logger.info("user %s deleted group %s", user_id, group_id)
        emit(EntityKind.GROUP, ChangeAction.DELETED, group_id)


# ----------------------------------------------------------------------------
# Members
# ----------------------------------------------------------------------------


def list_members(db: Session, user_id: str, group_id: int) -> list[GroupMember]:
    require_member(db, user_id, group_id)
    return (
        visible(db, user_id, GroupMember)
        .filter(GroupMember.group_id == group_id)
        .order_by(GroupMember.joined_at, GroupMember.id)
        .all()
    )


def _get_membership(db: Session, group_id: int, member_user_id: str) -> GroupMember:
    get_or_404(db, Group, group_id, "Group")
    member = (
        db.query(GroupMember)
        .filter(GroupMember.group_id == group_id, GroupMember.user_id == member_user_id)
        .one_or_none()
    )
    if member is None:
        raise NotFound(f"User {member_user_id} is not a member of group {group_id}")
    return member


def _ensure_admin_remains(db: Session, member: GroupMember) -> None:
    """Refuse to drop the last admin of a group."""
    if member.role is not MemberRole.ADMIN:
        return
    others = (
        db.query(GroupMember)
        .filter(GroupMember.group_id == member.group_id, GroupMember.id != member.id)
        .all()
    )
    if not others:
        raise Conflict("The last member cannot leave; delete the group instead")
    if not any(m.role is MemberRole.ADMIN for m in others):
        raise Conflict("Promote another admin before removing the last admin")


def remove_member(
    db: Session,
    user_id: str,
    group_id: int,
    member_user_id: str,
    *,
    bus: Optional[ChangeBus] = None,
) -> None:
    """Remove a member (admins) or leave the group (the member themself)."""
    member = _get_membership(db, group_id, member_user_id)
    authorize(db, user_id, Action.DELETE, member)
    if member_user_id != user_id and member_user_id == member.group.created_by:
        raise Conflict("The group creator cannot be removed")
    _ensure_admin_remains(db, member)
    db.delete(member)
    with committed(db, bus, [Scope.group(group_id), Scope.user(member_user_id)]) as emit:
        logger.info("user %s removed %s from group %s", user_id, member_user_id, group_id)
        emit(EntityKind.GROUP_MEMBER, ChangeAction.DELETED, member_user_id)


def leave_group(db: Session, user_id: str, group_id: int, *, bus: Optional[ChangeBus] = None) -> None:
    remove_member(db, user_id, group_id, user_id, bus=bus)


def set_member_role(
    db: Session,
    user_id: str,
    group_id: int,
    member_user_id: str,
    role: MemberRole | str,
    *,
    bus: Optional[ChangeBus] = None,
) -> GroupMember:
    try:
        role = MemberRole(role)
    except ValueError:
        raise InvalidInput(f"Unknown role: {role!r}") from None
    member = _get_membership(db, group_id, member_user_id)
    authorize(db, user_id, Action.UPDATE, member)
    if role is MemberRole.MEMBER:
        _ensure_admin_remains(db, member)
    member.role = role
    with committed(db, bus, [Scope.group(group_id), Scope.user(member_user_id)]) as emit:
        emit(EntityKind.GROUP_MEMBER, ChangeAction.UPDATED, member_user_id)
    return member


# ----------------------------------------------------------------------------
# Aggregate limit (any member)
# ----------------------------------------------------------------------------


def _write_aggregate_limit(db: Session, user_id: str, group_id: int, amount, bus) -> None:
    # Direct UPDATE: any member may change this field, unlike other group columns
    require_member(db, user_id, group_id)
    value = None if amount is None else positive_amount(amount)
    db.execute(
        update(Group).where(Group.id == group_id).values(total_expenditure_limit=value)
    )
    with committed(db, bus, [Scope.group(group_id)]) as emit:
        db.expire_all()
        logger.info("user %s set group %s total limit -> %s", user_id, group_id, value)
        emit(EntityKind.GROUP, ChangeAction.UPDATED, group_id)


def set_group_aggregate_limit(
    db: Session, user_id: str, group_id: int, amount, *, bus: Optional[ChangeBus] = None
) -> None:
    """Set the group's daily aggregate limit. Any member may do this."""
    _write_aggregate_limit(db, user_id, group_id, amount, bus)


def clear_group_aggregate_limit(
    db: Session, user_id: str, group_id: int, *, bus: Optional[ChangeBus] = None
) -> None:
    _write_aggregate_limit(db, user_id, group_id, None, bus)
