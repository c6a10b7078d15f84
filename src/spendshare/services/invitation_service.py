"""Group invitations: pending -> accepted | declined.

Invitations are unique per ``(group, email)``. Re-inviting an address whose
invitation is no longer pending puts that same row back to pending.
Accepting tolerates the membership row already existing, which is what two
concurrent accepts from the same user look like.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from spendshare.access.membership import is_member, user_id_for_email
from spendshare.access.policy import (
    Action,
    addressed_clause,
    authorize,
    invitation_addressed_to,
    visible,
)
from spendshare.core.errors import Conflict, Unauthorized
from spendshare.core.logging_setup import get_logger
from spendshare.core.models import (
    Group,
    GroupInvitation,
    GroupMember,
    InvitationStatus,
    MemberRole,
    Profile,
)
from spendshare.events.bus import ChangeAction, ChangeBus, EntityKind, Scope
from spendshare.services.common import committed, get_or_404
from spendshare.services.group_service import require_member
from spendshare.services.profile_service import normalize_email

logger = get_logger(__name__)


@dataclass
class InvitationView:
    """An invitation with the display data an invitee needs to decide."""

    invitation: GroupInvitation
    group_name: str
    inviter_name: Optional[str]


def _scopes(invitation: GroupInvitation) -> list[Scope]:
    scopes = [Scope.group(invitation.group_id), Scope.user(invitation.invited_by)]
    if invitation.invited_user_id:
        scopes.append(Scope.user(invitation.invited_user_id))
    return scopes


def create_invitation(
    db: Session,
    user_id: str,
    group_id: int,
    email: str,
    *,
    bus: Optional[ChangeBus] = None,
) -> GroupInvitation:
    """Invite ``email`` into a group. Any member may invite.

    Raises ``Conflict`` when a pending invitation already exists or the
    address belongs to a current member.
    """
    get_or_404(db, Group, group_id, "Group")
    email = normalize_email(email)
    candidate = GroupInvitation(group_id=group_id, invited_by=user_id, invited_email=email)
    authorize(db, user_id, Action.INSERT, candidate)

    invited_user_id = user_id_for_email(db, email)
    if invited_user_id and is_member(db, group_id, invited_user_id):
        raise Conflict(f"{email} is already a member of this group")

    # Looked up directly: earlier invitations may have been sent by someone else
    existing = (
        db.query(GroupInvitation)
        .filter(GroupInvitation.group_id == group_id, GroupInvitation.invited_email == email)
        .one_or_none()
    )
    if existing is not None:
        if existing.status is InvitationStatus.PENDING:
            raise Conflict(f"{email} has already been invited to this group")
        existing.status = InvitationStatus.PENDING
        existing.invited_by = user_id
        if invited_user_id:
            existing.invited_user_id = invited_user_id
        with committed(db, bus, _scopes(existing)) as emit:
            logger.info("user %s re-sent invitation %s to %s", user_id, existing.id, email)
            emit(EntityKind.GROUP_INVITATION, ChangeAction.UPDATED, existing.id)
        return existing

    candidate.invited_user_id = invited_user_id
    db.add(candidate)
    with committed(db, bus, _scopes(candidate)) as emit:
        logger.info("user %s invited %s to group %s", user_id, email, group_id)
        emit(EntityKind.GROUP_INVITATION, ChangeAction.CREATED, candidate.id)
    return candidate


def list_pending_for_user(db: Session, user_id: str) -> list[InvitationView]:
    """Pending invitations addressed to the user, by id or by verified email, newest first."""
    rows = (
        db.query(GroupInvitation, Group.name, Profile.display_name)
        .join(Group, Group.id == GroupInvitation.group_id)
        .outerjoin(Profile, Profile.user_id == GroupInvitation.invited_by)
        .filter(
            GroupInvitation.status == InvitationStatus.PENDING,
            addressed_clause(db, user_id),
        )
        .order_by(GroupInvitation.created_at.desc(), GroupInvitation.id.desc())
        .all()
    )
    return [InvitationView(invitation=inv, group_name=name, inviter_name=inviter) for inv, name, inviter in rows]


def list_group_invitations(db: Session, user_id: str, group_id: int) -> list[GroupInvitation]:
    """Invitations of a group that the (member) caller may see."""
    require_member(db, user_id, group_id)
    return (
        visible(db, user_id, GroupInvitation)
        .filter(GroupInvitation.group_id == group_id)
        .order_by(GroupInvitation.created_at.desc(), GroupInvitation.id.desc())
        .all()
    )


def _addressed_invitation(db: Session, user_id: str, invitation_id: int) -> GroupInvitation:
    invitation = get_or_404(db, GroupInvitation, invitation_id, "Invitation")
    authorize(db, user_id, Action.UPDATE, invitation)
    if not invitation_addressed_to(db, user_id, invitation):
        raise Unauthorized("This invitation is not addressed to you")
    return invitation


def accept_invitation(
    db: Session,
    user_id: str,
    invitation_id: int,
    *,
    bus: Optional[ChangeBus] = None,
) -> GroupInvitation:
    """Join the group and mark the invitation accepted.

    An existing membership row, or one inserted concurrently, counts as
    success. Accepting an already accepted invitation is a no-op.
    """
    invitation = _addressed_invitation(db, user_id, invitation_id)
    if invitation.status is InvitationStatus.DECLINED:
        raise Conflict("This invitation was declined")
    if invitation.status is InvitationStatus.ACCEPTED:
        if is_member(db, invitation.group_id, user_id):
            return invitation
        raise Conflict("This invitation was already used; ask for a new one")

    if not is_member(db, invitation.group_id, user_id):
        member = GroupMember(group_id=invitation.group_id, user_id=user_id, role=MemberRole.MEMBER)
        authorize(db, user_id, Action.INSERT, member)
        try:
            with db.begin_nested():
                db.add(member)
        except IntegrityError:
            logger.info("user %s already joined group %s; keeping existing membership", user_id, invitation.group_id)

    invitation.status = InvitationStatus.ACCEPTED
    invitation.invited_user_id = user_id
    with committed(db, bus, _scopes(invitation)) as emit:
        logger.info("user %s accepted invitation %s", user_id, invitation.id)
        emit(
            EntityKind.GROUP_MEMBER,
            ChangeAction.CREATED,
            user_id,
            scopes=[Scope.group(invitation.group_id), Scope.user(user_id)],
        )
        emit(EntityKind.GROUP_INVITATION, ChangeAction.UPDATED, invitation.id)
    return invitation


def decline_invitation(
    db: Session,
    user_id: str,
    invitation_id: int,
    *,
    bus: Optional[ChangeBus] = None,
) -> GroupInvitation:
    """Mark the invitation declined. Membership is not touched."""
    invitation = _addressed_invitation(db, user_id, invitation_id)
    if invitation.status is InvitationStatus.ACCEPTED:
        raise Conflict("This invitation was already accepted")
    if invitation.status is InvitationStatus.DECLINED:
        return invitation
    invitation.status = InvitationStatus.DECLINED
    invitation.invited_user_id = user_id
    with committed(db, bus, _scopes(invitation)) as emit:
        logger.info("user %s declined invitation %s", user_id, invitation.id)
        emit(EntityKind.GROUP_INVITATION, ChangeAction.UPDATED, invitation.id)
    return invitation


def revoke_invitation(
    db: Session,
    user_id: str,
    invitation_id: int,
    *,
    bus: Optional[ChangeBus] = None,
) -> None:
    """Delete an invitation. Only its sender may revoke it."""
    invitation = get_or_404(db, GroupInvitation, invitation_id, "Invitation")
    authorize(db, user_id, Action.DELETE, invitation)
    if invitation.invited_by != user_id:
        raise Unauthorized("Only the sender can revoke an invitation")
    scopes = _scopes(invitation)
    db.delete(invitation)
    with committed(db, bus, scopes) as emit:
        logger.info("user %s revoked invitation %s", user_id, invitation_id)
        emit(EntityKind.GROUP_INVITATION, ChangeAction.DELETED, invitation_id)
