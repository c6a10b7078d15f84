"""Plain-dict views of ORM rows and engine results for JSON responses."""

from __future__ import annotations

from decimal import Decimal
from typing import Optional

from spendshare.core.models import (
    Category,
    Group,
    GroupBudget,
    GroupInvitation,
    GroupMember,
    Profile,
    Transaction,
)
from spendshare.processing.budget_engine import CategoryTotal, LimitStatus


def _money(value: Optional[Decimal]) -> Optional[float]:
    return None if value is None else float(value)


def group_dict(group: Group, member_count: Optional[int] = None, role=None) -> dict:
    data = {
        "id": group.id,
        "name": group.name,
        "description": group.description,
        "created_by": group.created_by,
        "total_expenditure_limit": _money(group.total_expenditure_limit),
        "created_at": group.created_at.isoformat() if group.created_at else None,
    }
    if member_count is not None:
        data["member_count"] = member_count
        data["role"] = role.value if role else None
    return data


def profile_dict(profile: Profile) -> dict:
    return {
        "user_id": profile.user_id,
        "email": profile.email,
        "display_name": profile.display_name,
        "total_expenditure_limit": _money(profile.total_expenditure_limit),
    }


def member_dict(member: GroupMember) -> dict:
    return {
        "id": member.id,
        "group_id": member.group_id,
        "user_id": member.user_id,
        "role": member.role.value,
        "joined_at": member.joined_at.isoformat() if member.joined_at else None,
    }


def invitation_dict(
    invitation: GroupInvitation,
    group_name: Optional[str] = None,
    inviter_name: Optional[str] = None,
) -> dict:
    data = {
        "id": invitation.id,
        "group_id": invitation.group_id,
        "invited_by": invitation.invited_by,
        "invited_email": invitation.invited_email,
        "invited_user_id": invitation.invited_user_id,
        "status": invitation.status.value,
        "created_at": invitation.created_at.isoformat() if invitation.created_at else None,
    }
    if group_name is not None:
        data["group_name"] = group_name
        data["inviter_name"] = inviter_name
    return data


def category_dict(category: Category) -> dict:
    return {
        "id": category.id,
        "user_id": category.user_id,
        "name": category.name,
        "type": category.type.value,
        "color": category.color,
        "icon": category.icon,
    }


def transaction_dict(tx: Transaction) -> dict:
    return {
        "id": tx.id,
        "user_id": tx.user_id,
        "group_id": tx.group_id,
        "category_id": tx.category_id,
        "category": tx.category.name if tx.category else None,
        "amount": float(tx.amount),
        "type": tx.type.value,
        "description": tx.description,
        "date": tx.date.isoformat(),
    }


def group_budget_dict(budget: GroupBudget) -> dict:
    return {
        "id": budget.id,
        "group_id": budget.group_id,
        "category_id": budget.category_id,
        "category_name": budget.category.name,
        "category_color": budget.category.color,
        "amount": float(budget.amount),
        "period": budget.period.value,
        "start_date": budget.start_date.isoformat(),
        "end_date": budget.end_date.isoformat(),
        "created_by": budget.created_by,
    }


def status_dict(status: LimitStatus) -> dict:
    return {
        "label": status.label,
        "budget_id": status.budget_id,
        "category_id": status.category_id,
        "color": status.color,
        "spent": float(status.spent),
        "limit": float(status.limit),
        "remaining": float(status.remaining),
        "percentage": round(float(status.percentage), 2),
        "capped_percentage": round(float(status.capped_percentage), 2),
        "is_over_budget": status.is_over_budget,
        "overspend": float(status.overspend),
    }


def overview_dict(overview) -> dict:
    return {
        "categories": [status_dict(s) for s in overview.categories],
        "total": status_dict(overview.total) if overview.total else None,
    }


def breakdown_dict(totals: list[CategoryTotal]) -> list[dict]:
    return [
        {"name": t.name, "total": float(t.total), "transactions": t.transactions}
        for t in totals
    ]
