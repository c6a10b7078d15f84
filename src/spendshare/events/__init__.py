"""Change notification bus."""

from spendshare.events.bus import (
    ChangeAction,
    ChangeBus,
    ChangeEvent,
    EntityKind,
    Scope,
    ScopeKind,
    Subscription,
    get_bus,
)

__all__ = [
    "ChangeAction",
    "ChangeBus",
    "ChangeEvent",
    "EntityKind",
    "Scope",
    "ScopeKind",
    "Subscription",
    "get_bus",
]
