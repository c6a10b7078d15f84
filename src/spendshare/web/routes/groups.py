"""Group, membership, group limit and group invitation routes."""

from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from spendshare.core.database import get_db
from spendshare.services import (
    budget_service,
    group_service,
    invitation_service,
    transaction_service,
)
from spendshare.web.deps import current_user
from spendshare.web.serializers import (
    breakdown_dict,
    group_budget_dict,
    group_dict,
    invitation_dict,
    member_dict,
    overview_dict,
    transaction_dict,
)

router = APIRouter()


class CreateGroupRequest(BaseModel):
    """Request to create a group."""

    name: str
    description: Optional[str] = None


class UpdateGroupRequest(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None


class LimitRequest(BaseModel):
    """Daily limit amount; must be positive."""

    amount: float = Field(..., description="Daily limit")


class InviteRequest(BaseModel):
    email: str


class RoleRequest(BaseModel):
    role: str


# ============================================================================
# Groups
# ============================================================================

@router.post("", status_code=201)
async def create_group(
    body: CreateGroupRequest,
    user_id: str = Depends(current_user),
    db: Session = Depends(get_db),
):
    group = group_service.create_group(db, user_id, body.name, body.description)
    return group_dict(group)


@router.get("")
async def list_groups(user_id: str = Depends(current_user), db: Session = Depends(get_db)):
    """Groups the caller belongs to, with member count and the caller's role."""
    return [
        group_dict(s.group, member_count=s.member_count, role=s.role)
        for s in group_service.list_groups(db, user_id)
    ]


@router.get("/{group_id}")
async def get_group(group_id: int, user_id: str = Depends(current_user), db: Session = Depends(get_db)):
    return group_dict(group_service.get_group(db, user_id, group_id))


@router.patch("/{group_id}")
async def update_group(
    group_id: int,
    body: UpdateGroupRequest,
    user_id: str = Depends(current_user),
    db: Session = Depends(get_db),
):
    group = group_service.update_group(
        db, user_id, group_id, name=body.name, description=body.description
    )
    return group_dict(group)


@router.delete("/{group_id}", status_code=204)
async def delete_group(group_id: int, user_id: str = Depends(current_user), db: Session = Depends(get_db)):
    group_service.delete_group(db, user_id, group_id)


# ============================================================================
# Members
# ============================================================================

@router.get("/{group_id}/members")
async def list_members(group_id: int, user_id: str = Depends(current_user), db: Session = Depends(get_db)):
    return [member_dict(m) for m in group_service.list_members(db, user_id, group_id)]


@router.delete("/{group_id}/members/{member_user_id}", status_code=204)
async def remove_member(
    group_id: int,
    member_user_id: str,
    user_id: str = Depends(current_user),
    db: Session = Depends(get_db),
):
    group_service.remove_member(db, user_id, group_id, member_user_id)


@router.patch("/{group_id}/members/{member_user_id}")
async def set_member_role(
    group_id: int,
    member_user_id: str,
    body: RoleRequest,
    user_id: str = Depends(current_user),
    db: Session = Depends(get_db),
):
    member = group_service.set_member_role(db, user_id, group_id, member_user_id, body.role)
    return member_dict(member)


@router.post("/{group_id}/leave", status_code=204)
async def leave_group(group_id: int, user_id: str = Depends(current_user), db: Session = Depends(get_db)):
    group_service.leave_group(db, user_id, group_id)


# ============================================================================
# Aggregate limit (any member)
# ============================================================================

@router.put("/{group_id}/limit")
async def set_group_limit(
    group_id: int,
    body: LimitRequest,
    user_id: str = Depends(current_user),
    db: Session = Depends(get_db),
):
    group_service.set_group_aggregate_limit(db, user_id, group_id, body.amount)
    return group_dict(group_service.get_group(db, user_id, group_id))


@router.delete("/{group_id}/limit", status_code=204)
async def clear_group_limit(group_id: int, user_id: str = Depends(current_user), db: Session = Depends(get_db)):
    group_service.clear_group_aggregate_limit(db, user_id, group_id)


# ============================================================================
# Category limits and spend
# ============================================================================

@router.get("/{group_id}/budgets")
async def group_budget_status(
    group_id: int,
    user_id: str = Depends(current_user),
    db: Session = Depends(get_db),
):
    """Today's status of every active group limit."""
    overview = budget_service.group_budget_status(db, user_id, group_id)
    data = overview_dict(overview)
    data["budgets"] = [
        group_budget_dict(b) for b in budget_service.list_group_budgets(db, user_id, group_id)
    ]
    return data


@router.put("/{group_id}/budgets/{category_name}")
async def set_group_category_limit(
    group_id: int,
    category_name: str,
    body: LimitRequest,
    user_id: str = Depends(current_user),
    db: Session = Depends(get_db),
):
    budget = budget_service.set_group_category_limit(db, user_id, group_id, category_name, body.amount)
    return group_budget_dict(budget)


@router.delete("/{group_id}/budgets/{category_name}", status_code=204)
async def remove_group_category_limit(
    group_id: int,
    category_name: str,
    user_id: str = Depends(current_user),
    db: Session = Depends(get_db),
):
    budget_service.remove_group_category_limit(db, user_id, group_id, category_name)


@router.get("/{group_id}/breakdown")
async def group_breakdown(
    group_id: int,
    start_date: Optional[date] = Query(None, description="Start date (YYYY-MM-DD)"),
    end_date: Optional[date] = Query(None, description="End date (YYYY-MM-DD)"),
    user_id: str = Depends(current_user),
    db: Session = Depends(get_db),
):
    breakdown = budget_service.group_spending_breakdown(
        db, user_id, group_id, start_date=start_date, end_date=end_date
    )
    return {kind: breakdown_dict(totals) for kind, totals in breakdown.items()}


@router.get("/{group_id}/transactions")
async def group_transactions(
    group_id: int,
    limit: Optional[int] = Query(None, ge=1, le=1000),
    user_id: str = Depends(current_user),
    db: Session = Depends(get_db),
):
    txs = transaction_service.list_transactions(db, user_id, group_id=group_id, limit=limit)
    return [transaction_dict(tx) for tx in txs]


# ============================================================================
# Invitations
# ============================================================================

@router.post("/{group_id}/invitations", status_code=201)
async def invite(
    group_id: int,
    body: InviteRequest,
    user_id: str = Depends(current_user),
    db: Session = Depends(get_db),
):
    invitation = invitation_service.create_invitation(db, user_id, group_id, body.email)
    return invitation_dict(invitation)


@router.get("/{group_id}/invitations")
async def group_invitations(group_id: int, user_id: str = Depends(current_user), db: Session = Depends(get_db)):
    return [invitation_dict(i) for i in invitation_service.list_group_invitations(db, user_id, group_id)]
