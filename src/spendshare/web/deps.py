"""Request dependencies shared by the routers."""

from __future__ import annotations

from typing import Optional

from fastapi import Header, HTTPException


def current_user(x_user_id: Optional[str] = Header(None)) -> str:
    """Caller identity, as forwarded by the auth collaborator."""
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    return user_id
