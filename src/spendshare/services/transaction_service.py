"""Personal and group transactions.

A transaction with ``group_id`` set is readable by every member of that
group; writes stay with its owner, who must still belong to the group.
"""

from __future__ import annotations

from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from spendshare.access.policy import Action, authorize, visible
from spendshare.core.errors import InvalidInput
from spendshare.core.logging_setup import get_logger
from spendshare.core.models import Group, Transaction, TransactionType
from spendshare.events.bus import ChangeAction, ChangeBus, EntityKind, Scope
from spendshare.processing.budget_engine import reference_today
from spendshare.services.category_service import resolve_category
from spendshare.services.common import committed, get_or_404, positive_amount
from spendshare.services.group_service import require_member

logger = get_logger(__name__)

_UNSET = object()


def _parse_type(value) -> TransactionType:
    try:
        return TransactionType(value)
    except ValueError:
        raise InvalidInput(f"Unknown transaction type: {value!r}") from None


def _parse_date(value) -> date:
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        raise InvalidInput(f"Invalid date: {value!r}") from None


def _scopes(user_id: str, *group_ids: Optional[int]) -> list[Scope]:
    scopes = [Scope.user(user_id)]
    scopes.extend(Scope.group(gid) for gid in group_ids if gid is not None)
    return scopes


def create_transaction(
    db: Session,
    user_id: str,
    amount,
    type: TransactionType | str = TransactionType.EXPENSE,
    *,
    date=None,
    description: str = "",
    category_id: Optional[int] = None,
    group_id: Optional[int] = None,
    bus: Optional[ChangeBus] = None,
) -> Transaction:
    """Record a transaction for ``user_id``.

    Args:
        date: Calendar date; today in the reference timezone when omitted
        category_id: Must resolve to a category the caller can read
        group_id: Makes the transaction visible to the group's members
    """
    tx = Transaction(
        user_id=user_id,
        amount=positive_amount(amount),
        type=_parse_type(type),
        date=reference_today() if date is None else _parse_date(date),
        description=description or "",
        group_id=group_id,
    )
    if category_id is not None:
        tx.category_id = resolve_category(db, user_id, category_id).id
    if group_id is not None:
        get_or_404(db, Group, group_id, "Group")
    authorize(db, user_id, Action.INSERT, tx)
    db.add(tx)
    with committed(db, bus, _scopes(user_id, group_id)) as emit:
        logger.info("user %s added transaction %s (group=%s)", user_id, tx.id, group_id)
        emit(EntityKind.TRANSACTION, ChangeAction.CREATED, tx.id)
    return tx


def get_transaction(db: Session, user_id: str, transaction_id: int) -> Transaction:
    tx = get_or_404(db, Transaction, transaction_id, "Transaction")
    authorize(db, user_id, Action.READ, tx)
    return tx


def list_transactions(
    db: Session,
    user_id: str,
    *,
    group_id: Optional[int] = None,
    personal_only: bool = False,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    limit: Optional[int] = None,
) -> list[Transaction]:
    """Transactions the user can read, newest first.

    With ``group_id`` only that group's transactions are returned, and the
    caller must be a member.
    """
    query = visible(db, user_id, Transaction)
    if group_id is not None:
        require_member(db, user_id, group_id)
        query = query.filter(Transaction.group_id == group_id)
    elif personal_only:
        query = query.filter(Transaction.user_id == user_id, Transaction.group_id.is_(None))
    if start_date is not None:
        query = query.filter(Transaction.date >= start_date)
    if end_date is not None:
        query = query.filter(Transaction.date <= end_date)
    query = query.order_by(Transaction.date.desc(), Transaction.id.desc())
    if limit:
        query = query.limit(limit)
    return query.all()


def update_transaction(
    db: Session,
    user_id: str,
    transaction_id: int,
    *,
    amount=None,
    type=None,
    date=None,
    description: Optional[str] = None,
    category_id=_UNSET,
    group_id=_UNSET,
    bus: Optional[ChangeBus] = None,
) -> Transaction:
    """Edit a transaction. ``category_id``/``group_id`` may be set to ``None`` to clear them.

    The caller is checked against the row as stored and against the row as
    it would be after the edit; nothing is written unless both pass.
    """
    tx = get_or_404(db, Transaction, transaction_id, "Transaction")
    authorize(db, user_id, Action.UPDATE, tx)
    old_group = tx.group_id

    changes: dict = {}
    if amount is not None:
        changes["amount"] = positive_amount(amount)
    if type is not None:
        changes["type"] = _parse_type(type)
    if date is not None:
        changes["date"] = _parse_date(date)
    if description is not None:
        changes["description"] = description
    if category_id is not _UNSET:
        changes["category_id"] = (
            None if category_id is None else resolve_category(db, user_id, category_id).id
        )
    if group_id is not _UNSET:
        if group_id is not None:
            get_or_404(db, Group, group_id, "Group")
        changes["group_id"] = group_id

    # Detached candidate, so the second check cannot flush anything
    candidate = Transaction(
        user_id=tx.user_id,
        group_id=changes.get("group_id", tx.group_id),
    )
    authorize(db, user_id, Action.UPDATE, candidate)

    for field, value in changes.items():
        setattr(tx, field, value)
    with committed(db, bus, _scopes(tx.user_id, old_group, tx.group_id)) as emit:
        logger.info("user %s updated transaction %s", user_id, tx.id)
        emit(EntityKind.TRANSACTION, ChangeAction.UPDATED, tx.id)
    return tx


def delete_transaction(
    db: Session,
    user_id: str,
    transaction_id: int,
    *,
    bus: Optional[ChangeBus] = None,
) -> None:
    tx = get_or_404(db, Transaction, transaction_id, "Transaction")
    authorize(db, user_id, Action.DELETE, tx)
    scopes = _scopes(tx.user_id, tx.group_id)
    db.delete(tx)
    with committed(db, bus, scopes) as emit:
        logger.info("user %s deleted transaction %s", user_id, transaction_id)
        emit(EntityKind.TRANSACTION, ChangeAction.DELETED, transaction_id)
