"""Transaction routes."""

from __future__ import annotations

import datetime as dt
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from spendshare.core.database import get_db
from spendshare.services import transaction_service
from spendshare.web.deps import current_user
from spendshare.web.serializers import transaction_dict

router = APIRouter()


class CreateTransactionRequest(BaseModel):
    """Request to record a transaction. ``group_id`` shares it with the group."""

    amount: float
    type: str = "expense"
    date: Optional[dt.date] = None
    description: str = ""
    category_id: Optional[int] = None
    group_id: Optional[int] = None


class UpdateTransactionRequest(BaseModel):
    """Partial update. Sending ``category_id``/``group_id`` as null clears them."""

    amount: Optional[float] = None
    type: Optional[str] = None
    date: Optional[dt.date] = None
    description: Optional[str] = None
    category_id: Optional[int] = None
    group_id: Optional[int] = None


@router.get("")
async def list_transactions(
    personal: bool = Query(False, description="Only the caller's personal transactions"),
    start_date: Optional[dt.date] = Query(None, description="Start date (YYYY-MM-DD)"),
    end_date: Optional[dt.date] = Query(None, description="End date (YYYY-MM-DD)"),
    limit: Optional[int] = Query(None, ge=1, le=1000),
    user_id: str = Depends(current_user),
    db: Session = Depends(get_db),
):
    txs = transaction_service.list_transactions(
        db,
        user_id,
        personal_only=personal,
        start_date=start_date,
        end_date=end_date,
        limit=limit,
    )
    return [transaction_dict(tx) for tx in txs]


@router.post("", status_code=201)
async def create_transaction(
    body: CreateTransactionRequest,
    user_id: str = Depends(current_user),
    db: Session = Depends(get_db),
):
    tx = transaction_service.create_transaction(
        db,
        user_id,
        body.amount,
        body.type,
        date=body.date,
        description=body.description,
        category_id=body.category_id,
        group_id=body.group_id,
    )
    return transaction_dict(tx)


@router.get("/{tx_id}")
async def get_transaction(tx_id: int, user_id: str = Depends(current_user), db: Session = Depends(get_db)):
    return transaction_dict(transaction_service.get_transaction(db, user_id, tx_id))


@router.patch("/{tx_id}")
async def update_transaction(
    tx_id: int,
    body: UpdateTransactionRequest,
    user_id: str = Depends(current_user),
    db: Session = Depends(get_db),
):
    # Only forward the references the client actually sent
    references = {
        name: getattr(body, name)
        for name in ("category_id", "group_id")
        if name in body.model_fields_set
    }
    tx = transaction_service.update_transaction(
        db,
        user_id,
        tx_id,
        amount=body.amount,
        type=body.type,
        date=body.date,
        description=body.description,
        **references,
    )
    return transaction_dict(tx)


@router.delete("/{tx_id}", status_code=204)
async def delete_transaction(tx_id: int, user_id: str = Depends(current_user), db: Session = Depends(get_db)):
    transaction_service.delete_transaction(db, user_id, tx_id)
