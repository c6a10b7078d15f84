"""Invitation routes for the invitee (and the inviter, for revocation)."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from spendshare.core.database import get_db
from spendshare.services import invitation_service
from spendshare.web.deps import current_user
from spendshare.web.serializers import invitation_dict

router = APIRouter()


@router.get("")
async def pending_invitations(user_id: str = Depends(current_user), db: Session = Depends(get_db)):
    """Pending invitations addressed to the caller, newest first."""
    return [
        invitation_dict(v.invitation, group_name=v.group_name, inviter_name=v.inviter_name)
        for v in invitation_service.list_pending_for_user(db, user_id)
    ]


@router.post("/{invitation_id}/accept")
async def accept(invitation_id: int, user_id: str = Depends(current_user), db: Session = Depends(get_db)):
    return invitation_dict(invitation_service.accept_invitation(db, user_id, invitation_id))


@router.post("/{invitation_id}/decline")
async def decline(invitation_id: int, user_id: str = Depends(current_user), db: Session = Depends(get_db)):
    return invitation_dict(invitation_service.decline_invitation(db, user_id, invitation_id))


@router.delete("/{invitation_id}", status_code=204)
async def revoke(invitation_id: int, user_id: str = Depends(current_user), db: Session = Depends(get_db)):
    invitation_service.revoke_invitation(db, user_id, invitation_id)
