"""Personal budget routes: category limits and the aggregate limit."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from spendshare.core.database import get_db
from spendshare.services import budget_service, profile_service
from spendshare.web.deps import current_user
from spendshare.web.serializers import overview_dict

router = APIRouter()


class LimitRequest(BaseModel):
    amount: float


@router.get("")
async def budget_status(user_id: str = Depends(current_user), db: Session = Depends(get_db)):
    """Today's spend against the caller's active limits."""
    return overview_dict(budget_service.personal_budget_status(db, user_id))


# Declared before /{category_id} so "total" is not parsed as an id
@router.put("/total")
async def set_total_limit(body: LimitRequest, user_id: str = Depends(current_user), db: Session = Depends(get_db)):
    profile = profile_service.set_total_expenditure_limit(db, user_id, body.amount)
    return {"total_expenditure_limit": float(profile.total_expenditure_limit)}


@router.delete("/total", status_code=204)
async def clear_total_limit(user_id: str = Depends(current_user), db: Session = Depends(get_db)):
    profile_service.set_total_expenditure_limit(db, user_id, None)


@router.put("/{category_id}")
async def set_category_limit(
    category_id: int,
    body: LimitRequest,
    user_id: str = Depends(current_user),
    db: Session = Depends(get_db),
):
    budget = budget_service.set_category_limit(db, user_id, category_id, body.amount)
    return {
        "id": budget.id,
        "category_id": budget.category_id,
        "amount": float(budget.amount),
        "period": budget.period.value,
        "start_date": budget.start_date.isoformat(),
        "end_date": budget.end_date.isoformat(),
    }


@router.delete("/{category_id}", status_code=204)
async def remove_category_limit(category_id: int, user_id: str = Depends(current_user), db: Session = Depends(get_db)):
    budget_service.remove_category_limit(db, user_id, category_id)
