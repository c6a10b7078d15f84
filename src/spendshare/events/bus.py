"""Scoped publish/subscribe channel for committed mutations.

Events are keyed by a ``Scope`` (a group or a user). Subscribers declare the
scope they care about; there is no global broadcast and no string-matched
event names. Within one scope events are numbered and delivered in commit
order (see ``ChangeBus.ordered``); across scopes nothing is ordered.
Delivery is at-least-once: a subscriber that missed events (or raised while
handling one) can ``replay`` from the last sequence it saw, so handlers must
refetch rather than apply deltas.
"""

from __future__ import annotations

import threading
from collections import deque
from contextlib import ExitStack, contextmanager
from dataclasses import dataclass, field
from enum import Enum
from itertools import count
from typing import Callable, Iterable, Iterator, Optional

from spendshare.core.logging_setup import get_logger

logger = get_logger(__name__)


class ScopeKind(str, Enum):
    GROUP = "group"
    USER = "user"


class EntityKind(str, Enum):
    GROUP = "group"
    GROUP_MEMBER = "group_member"
    GROUP_INVITATION = "group_invitation"
    BUDGET = "budget"
    GROUP_BUDGET = "group_budget"
    TRANSACTION = "transaction"
    CATEGORY = "category"
    PROFILE = "profile"


class ChangeAction(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"


@dataclass(frozen=True)
class Scope:
    kind: ScopeKind
    key: str

    @classmethod
    def group(cls, group_id: int) -> "Scope":
        return cls(ScopeKind.GROUP, str(group_id))

    @classmethod
    def user(cls, user_id: str) -> "Scope":
        return cls(ScopeKind.USER, str(user_id))

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.key}"


@dataclass(frozen=True)
class ChangeEvent:
    scope: Scope
    entity: EntityKind
    action: ChangeAction
    row_id: Optional[int | str] = None
    sequence: int = 0


Handler = Callable[[ChangeEvent], None]


@dataclass(eq=False)
class Subscription:
    scope: Scope
    handler: Handler
    _bus: "ChangeBus" = field(repr=False)
    active: bool = True

    def cancel(self) -> None:
        if self.active:
            self._bus._remove(self)
            self.active = False


class _ScopeChannel:
    def __init__(self, history_size: int) -> None:
        self.lock = threading.RLock()
        self.sequence = count(1)
        self.history: deque[ChangeEvent] = deque(maxlen=history_size)
        self.subscribers: list[Subscription] = []


class ChangeBus:
    """In-process scoped event bus.

    A channel is created the first time a scope is subscribed to or
    published on and lives as long as the bus, since its sequence counter
    must keep counting for ``replay`` to work. Channels are therefore bounded
    by the number of users and groups that ever changed, and each one keeps at
    most ``history_size`` events. Lookups for a scope that never had a
    channel do not create one.
    """

    def __init__(self, history_size: int | None = None) -> None:
        if history_size is None:
            from spendshare.core.config import settings

            history_size = settings.EVENT_HISTORY_SIZE
        self._history_size = history_size
        self._channels: dict[Scope, _ScopeChannel] = {}
        self._channels_lock = threading.Lock()

    def _channel(self, scope: Scope) -> _ScopeChannel:
        with self._channels_lock:
            channel = self._channels.get(scope)
            if channel is None:
                channel = _ScopeChannel(self._history_size)
                self._channels[scope] = channel
            return channel

    def _existing_channel(self, scope: Scope) -> Optional[_ScopeChannel]:
        with self._channels_lock:
            return self._channels.get(scope)

    def subscribe(self, scope: Scope, handler: Handler) -> Subscription:
        channel = self._channel(scope)
        sub = Subscription(scope=scope, handler=handler, _bus=self)
        with channel.lock:
            channel.subscribers.append(sub)
        return sub

    def _remove(self, sub: Subscription) -> None:
        channel = self._existing_channel(sub.scope)
        if channel is None:
            return
        with channel.lock:
            if sub in channel.subscribers:
                channel.subscribers.remove(sub)

    @contextmanager
    def ordered(self, scopes: Iterable[Scope]) -> Iterator["ChangeBus"]:
        """Hold the channels of ``scopes`` for the duration of the block.

        Services commit and publish inside this block, so on each scope the
        sequence numbers follow commit order. Channels are locked in a fixed
        order, and the locks are reentrant so ``publish`` may be called
        inside.
        """
        channels = [self._channel(scope) for scope in sorted(set(scopes), key=str)]
        with ExitStack() as stack:
            for channel in channels:
                stack.enter_context(channel.lock)
            yield self

    def publish(
        self,
        scope: Scope,
        entity: EntityKind,
        action: ChangeAction,
        row_id: int | str | None = None,
    ) -> ChangeEvent:
        """Number the event within its scope and deliver it to the scope's subscribers.

        The scope lock is held for numbering and delivery, so two publishers
        on the same scope cannot interleave. A failing handler is logged and
        does not stop delivery to the others.
        """
        channel = self._channel(scope)
        with channel.lock:
            event = ChangeEvent(
                scope=scope,
                entity=entity,
                action=action,
                row_id=row_id,
                sequence=next(channel.sequence),
            )
            channel.history.append(event)
            for sub in list(channel.subscribers):
                try:
                    sub.handler(event)
                except Exception:
                    logger.exception("subscriber failed on %s #%d", scope, event.sequence)
        logger.debug("published %s %s %s on %s", entity.value, action.value, row_id, scope)
        return event

    def publish_many(
        self,
        scopes: Iterable[Scope],
        entity: EntityKind,
        action: ChangeAction,
        row_id: int | str | None = None,
    ) -> list[ChangeEvent]:
        seen: set[Scope] = set()
        events = []
        for scope in scopes:
            if scope in seen:
                continue
            seen.add(scope)
            events.append(self.publish(scope, entity, action, row_id))
        return events

    def replay(self, scope: Scope, after_sequence: int = 0) -> list[ChangeEvent]:
        """Events of ``scope`` still in history with a sequence above ``after_sequence``."""
        channel = self._existing_channel(scope)
        if channel is None:
            return []
        with channel.lock:
            return [e for e in channel.history if e.sequence > after_sequence]


_default_bus: ChangeBus | None = None
_default_lock = threading.Lock()


def get_bus() -> ChangeBus:
    """Process-wide bus used when a caller does not pass its own."""
    global _default_bus
    with _default_lock:
        if _default_bus is None:
            _default_bus = ChangeBus()
        return _default_bus
