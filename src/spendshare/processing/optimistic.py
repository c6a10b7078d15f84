"""Two-phase local view for optimistic adds and deletes.

A client shows its own mutations immediately and reconciles them with the
server response later. Every tentative change is keyed by a temporary id
and is either committed (replaced by the server row) or rolled back as a
whole; the merged view never contains half of a change.

This is a client-side helper for consumers of the HTTP API and the change
bus (a UI keeping a transaction list). The server never applies tentative
state, so nothing under ``services/`` uses it.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from enum import Enum
from itertools import count
from typing import Any, Callable, Generic, Hashable, Iterable, Optional, TypeVar

T = TypeVar("T")


class PendingKind(str, Enum):
    ADD = "add"
    DELETE = "delete"


@dataclass(frozen=True)
class Pending(Generic[T]):
    temp_id: str
    kind: PendingKind
    row: Optional[T] = None
    target_id: Optional[Hashable] = None


class OptimisticView(Generic[T]):
    """Confirmed rows plus tentative changes, merged on read."""

    def __init__(
        self,
        rows: Iterable[T] = (),
        *,
        key: Callable[[T], Hashable] = lambda row: getattr(row, "id"),
        prefix: str = "temp-",
    ) -> None:
        self._key = key
        self._prefix = prefix
        self._seq = count(1)
        self._lock = threading.Lock()
        self._confirmed: dict[Hashable, T] = {key(r): r for r in rows}
        self._pending: dict[str, Pending[T]] = {}

    def reset(self, rows: Iterable[T]) -> None:
        """Replace confirmed rows after a refetch. Tentative changes survive."""
        with self._lock:
            self._confirmed = {self._key(r): r for r in rows}

    def add(self, row: T) -> str:
        with self._lock:
            temp_id = f"{self._prefix}{next(self._seq)}"
            self._pending[temp_id] = Pending(temp_id, PendingKind.ADD, row=row)
            return temp_id

    def delete(self, row_id: Hashable) -> str:
        with self._lock:
            if row_id not in self._confirmed:
                raise KeyError(row_id)
            temp_id = f"{self._prefix}{next(self._seq)}"
            self._pending[temp_id] = Pending(temp_id, PendingKind.DELETE, target_id=row_id)
            return temp_id

    def commit(self, temp_id: str, server_row: Any = None) -> None:
        """Apply the server's answer for ``temp_id``.

        For an add the server row replaces the tentative one; for a delete the
        confirmed row is dropped.
        """
        with self._lock:
            pending = self._pending.pop(temp_id)
            if pending.kind is PendingKind.ADD:
                row = server_row if server_row is not None else pending.row
                self._confirmed[self._key(row)] = row
            else:
                self._confirmed.pop(pending.target_id, None)

    def rollback(self, temp_id: str) -> None:
        with self._lock:
            self._pending.pop(temp_id, None)

    @property
    def pending(self) -> list[str]:
        with self._lock:
            return list(self._pending)

    def rows(self) -> list[T]:
        """Tentative adds first (newest first), then confirmed rows minus tentative deletes."""
        with self._lock:
            hidden = {p.target_id for p in self._pending.values() if p.kind is PendingKind.DELETE}
            added = [p.row for p in self._pending.values() if p.kind is PendingKind.ADD]
            kept = [r for k, r in self._confirmed.items() if k not in hidden]
            return list(reversed(added)) + kept
