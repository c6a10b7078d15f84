"""Category routes."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from spendshare.core.database import get_db
from spendshare.services import category_service
from spendshare.web.deps import current_user
from spendshare.web.serializers import category_dict

router = APIRouter()


class CreateCategoryRequest(BaseModel):
    name: str
    type: str = "expense"
    color: Optional[str] = None
    icon: Optional[str] = None


class UpdateCategoryRequest(BaseModel):
    name: Optional[str] = None
    color: Optional[str] = None
    icon: Optional[str] = None


@router.get("")
async def list_categories(
    type: Optional[str] = Query(None, description="income or expense"),
    include_shared: bool = Query(False, description="Include categories shared through groups"),
    user_id: str = Depends(current_user),
    db: Session = Depends(get_db),
):
    categories = category_service.list_categories(db, user_id, type=type, include_shared=include_shared)
    return [category_dict(c) for c in categories]


@router.post("", status_code=201)
async def create_category(
    body: CreateCategoryRequest,
    user_id: str = Depends(current_user),
    db: Session = Depends(get_db),
):
    category = category_service.create_category(
        db, user_id, body.name, body.type, color=body.color, icon=body.icon
    )
    return category_dict(category)


@router.patch("/{category_id}")
async def update_category(
    category_id: int,
    body: UpdateCategoryRequest,
    user_id: str = Depends(current_user),
    db: Session = Depends(get_db),
):
    category = category_service.update_category(
        db, user_id, category_id, name=body.name, color=body.color, icon=body.icon
    )
    return category_dict(category)


@router.delete("/{category_id}", status_code=204)
async def delete_category(category_id: int, user_id: str = Depends(current_user), db: Session = Depends(get_db)):
    category_service.delete_category(db, user_id, category_id)
