"""Helpers shared by the service modules."""

from __future__ import annotations

from contextlib import contextmanager
from decimal import Decimal, InvalidOperation
from typing import Callable, Iterable, Iterator, Optional, TypeVar

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from spendshare.core.errors import Conflict, InvalidInput, NotFound
from spendshare.core.logging_setup import get_logger
from spendshare.events.bus import ChangeAction, ChangeBus, ChangeEvent, EntityKind, Scope, get_bus

logger = get_logger(__name__)

M = TypeVar("M")


def get_or_404(db: Session, model: type[M], row_id, label: str | None = None) -> M:
    row = db.get(model, row_id) if row_id is not None else None
    if row is None:
        raise NotFound(f"{label or model.__name__} {row_id} not found")
    return row


def positive_amount(value) -> Decimal:
    """Parse ``value`` as a money amount of at least one cent."""
    try:
        amount = Decimal(str(value)).quantize(Decimal("0.01"))
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidInput(f"Invalid amount: {value!r}") from None
    if amount.is_nan():
        raise InvalidInput(f"Invalid amount: {value!r}")
    if amount <= 0:
        raise InvalidInput("Amount must be at least 0.01")
    return amount


def commit(db: Session) -> None:
    """Commit, turning a uniqueness or FK violation into ``Conflict``."""
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        logger.warning("commit rejected: %s", exc.orig)
        raise Conflict("Conflicting change; the row already exists or is referenced") from exc


@contextmanager
def committed(
    db: Session,
    bus: Optional[ChangeBus],
    scopes: Iterable[Scope],
) -> Iterator[Callable[..., list[ChangeEvent]]]:
    """Commit ``db`` and yield a publisher for ``scopes``.

    The scopes stay locked on the bus from before the commit until the block
    exits, so each scope numbers its events in commit order::

        with committed(db, bus, scopes) as emit:
            emit(EntityKind.TRANSACTION, ChangeAction.CREATED, tx.id)

    ``emit(..., scopes=...)`` narrows one event to a subset of the held scopes.
    """
    bus = bus or get_bus()
    held = list(scopes)

    def emit(
        entity: EntityKind,
        action: ChangeAction,
        row_id=None,
        *,
        scopes: Optional[Iterable[Scope]] = None,
    ) -> list[ChangeEvent]:
        return bus.publish_many(held if scopes is None else scopes, entity, action, row_id)

    with bus.ordered(held):
        commit(db)
        yield emit
