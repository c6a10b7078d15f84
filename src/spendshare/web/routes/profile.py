"""The caller's own profile."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from spendshare.core.database import get_db
from spendshare.services import profile_service
from spendshare.web.deps import current_user
from spendshare.web.serializers import profile_dict

router = APIRouter()


@router.get("")
async def get_profile(user_id: str = Depends(current_user), db: Session = Depends(get_db)):
    """Verified email, display name and personal daily aggregate limit."""
    return profile_dict(profile_service.get_profile(db, user_id))
