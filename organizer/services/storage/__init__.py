"""
Storage Services Package

Provides abstract interfaces and concrete implementations for the remote
data platform: tables, change feed and object storage.
Supabase is the production backend; the in-memory backend serves tests
and offline demos.
"""

from organizer.services.storage.interface import (
    AuditStorageInterface,
    ChangeCallback,
    ChangeEvent,
    ChangeFeed,
    ChangeNotification,
    DataGateway,
    Filter,
    FilterOp,
    GatewayUnavailableError,
    NotFoundError,
    ObjectStorage,
    Row,
    SchemaError,
    SchemaErrorKind,
    StorageError,
)
from organizer.services.storage.memory import InMemoryBackend, InMemoryGateway
from organizer.services.storage.supabase_gateway import (
    SupabaseAuditStorage,
    SupabaseChangeFeed,
    SupabaseClientFactory,
    SupabaseDataGateway,
    SupabaseObjectStorage,
    classify_error,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "ChangeFeed",
    "DataGateway",
    "ObjectStorage",
    # Value types
    "ChangeCallback",
    "ChangeEvent",
    "ChangeNotification",
    "Filter",
    "FilterOp",
    "Row",
    # Exceptions
    "GatewayUnavailableError",
    "NotFoundError",
    "SchemaError",
    "SchemaErrorKind",
    "StorageError",
    # Supabase implementation
    "SupabaseAuditStorage",
    "SupabaseChangeFeed",
    "SupabaseClientFactory",
    "SupabaseDataGateway",
    "SupabaseObjectStorage",
    "classify_error",
    # In-memory implementation
    "InMemoryBackend",
    "InMemoryGateway",
]
