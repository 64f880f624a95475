"""
Client-side state package.

Optimistic collections, the shared change-feed subscription manager and
the couple partition check used by every feature screen.
"""

from organizer.store.optimistic import MutationResult, OptimisticCollection
from organizer.store.subscriptions import SubscriptionManager
from organizer.store.tenancy import (
    COUPLE_SCOPED_TABLES,
    PARTITION_COLUMN,
    PartitionScope,
    TenancyCheck,
    TenancyGate,
    TenancyState,
)

__all__ = [
    "MutationResult",
    "OptimisticCollection",
    "SubscriptionManager",
    "COUPLE_SCOPED_TABLES",
    "PARTITION_COLUMN",
    "PartitionScope",
    "TenancyCheck",
    "TenancyGate",
    "TenancyState",
]
