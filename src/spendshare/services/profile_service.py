"""Profiles written by the auth collaborator, plus the personal aggregate limit."""

from __future__ import annotations

import re
from typing import Optional

from sqlalchemy.orm import Session

from spendshare.access.policy import Action, authorize
from spendshare.core.errors import Conflict, InvalidInput
from spendshare.core.logging_setup import get_logger
from spendshare.core.models import Profile
from spendshare.events.bus import ChangeAction, ChangeBus, EntityKind, Scope
from spendshare.services.common import commit, committed, get_or_404, positive_amount

logger = get_logger(__name__)

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def normalize_email(email: str | None) -> str:
    """Lowercased, trimmed address. Raises ``InvalidInput`` when malformed."""
    value = (email or "").strip().lower()
    if not _EMAIL_RE.match(value):
        raise InvalidInput(f"Invalid email address: {email!r}")
    return value


def register_profile(
    db: Session,
    user_id: str,
    email: str,
    display_name: Optional[str] = None,
) -> Profile:
    """Create or refresh the profile of an authenticated account.

    Only the auth collaborator calls this; the stored email is what
    invitation discovery trusts.
    """
    if not user_id or not user_id.strip():
        raise InvalidInput("user_id is required")
    email = normalize_email(email)

    owner = db.query(Profile).filter(Profile.email == email).one_or_none()
    if owner is not None and owner.user_id != user_id:
        raise Conflict(f"Email {email} belongs to another account")

    profile = db.get(Profile, user_id)
    if profile is None:
        profile = Profile(user_id=user_id, email=email, display_name=display_name)
        db.add(profile)
    else:
        profile.email = email
        if display_name is not None:
            profile.display_name = display_name
    commit(db)
    db.refresh(profile)
    return profile


def get_profile(db: Session, user_id: str) -> Profile:
    profile = get_or_404(db, Profile, user_id, "Profile")
    authorize(db, user_id, Action.READ, profile)
    return profile


def set_total_expenditure_limit(
    db: Session,
    user_id: str,
    amount,
    *,
    bus: Optional[ChangeBus] = None,
) -> Profile:
    """Set (``amount``) or clear (``None``) the personal daily aggregate limit."""
    profile = get_or_404(db, Profile, user_id, "Profile")
    authorize(db, user_id, Action.UPDATE, profile)
    profile.total_expenditure_limit = None if amount is None else positive_amount(amount)
    with committed(db, bus, [Scope.user(user_id)]) as emit:
        logger.info("user %s total limit -> %s", user_id, profile.total_expenditure_limit)
        emit(EntityKind.PROFILE, ChangeAction.UPDATED, user_id)
    return profile
