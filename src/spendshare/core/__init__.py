"""Core module - configuration, database, models and errors."""

from spendshare.core.database import get_db, init_db
from spendshare.core.errors import Conflict, InvalidInput, NotFound, SpendShareError, Unauthorized
from spendshare.core.models import (
    Budget,
    Category,
    Group,
    GroupBudget,
    GroupInvitation,
    GroupMember,
    Profile,
    Transaction,
)

__all__ = [
    "get_db",
    "init_db",
    "Conflict",
    "InvalidInput",
    "NotFound",
    "SpendShareError",
    "Unauthorized",
    "Budget",
    "Category",
    "Group",
    "GroupBudget",
    "GroupInvitation",
    "GroupMember",
    "Profile",
    "Transaction",
]
