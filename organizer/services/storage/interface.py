"""
Abstract Remote Data Gateway Interfaces

The application never implements storage itself. It talks to a hosted
platform through three narrow interfaces:

1. DataGateway   - typed CRUD over tables with simple filter predicates
2. ChangeFeed    - publish/subscribe notifications keyed by table + event
3. ObjectStorage - blob upload, public URL and removal

Keeping them abstract lets us:
- Run every screen against an in-memory backend in tests
- Simulate two clients (the couple's two devices) sharing one backend
- Swap the hosted platform without touching screen logic
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from pydantic import BaseModel

from organizer.models.audit import AuditEvent


Row = dict[str, Any]


class FilterOp(str, Enum):
    EQ = "eq"
    IS_NULL = "is_null"
    CONTAINS = "contains"
    GTE = "gte"
    LTE = "lte"


class Filter(BaseModel):
    """A single predicate applied to a table read or write."""

    column: str
    op: FilterOp = FilterOp.EQ
    value: Any = None

    @classmethod
    def eq(cls, column: str, value: Any) -> "Filter":
        return cls(column=column, op=FilterOp.EQ, value=value)

    @classmethod
    def is_null(cls, column: str) -> "Filter":
        return cls(column=column, op=FilterOp.IS_NULL)

    @classmethod
    def contains(cls, column: str, value: Any) -> "Filter":
        return cls(column=column, op=FilterOp.CONTAINS, value=value)

    @classmethod
    def gte(cls, column: str, value: Any) -> "Filter":
        return cls(column=column, op=FilterOp.GTE, value=value)

    @classmethod
    def lte(cls, column: str, value: Any) -> "Filter":
        return cls(column=column, op=FilterOp.LTE, value=value)


class ChangeEvent(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    ANY = "*"


class ChangeNotification(BaseModel):
    """
    "Something in this table changed".

    Carries no payload guarantees; receivers refetch rather than apply a diff.
    """

    table: str
    event: ChangeEvent = ChangeEvent.ANY


ChangeCallback = Callable[[ChangeNotification], Awaitable[None]]


class DataGateway(ABC):
    """
    Abstract interface for table operations.

    Implementations must raise the exceptions defined at the bottom of
    this module (never raw client errors) so callers can tell a schema
    problem from a network problem.
    """

    @abstractmethod
    async def select(
        self,
        table: str,
        filters: Optional[list[Filter]] = None,
        columns: str = "*",
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[Row]:
        """
        Read rows.

        Raises:
            SchemaError: table or column missing, or access denied
            GatewayUnavailableError: network / server failure
        """
        pass

    @abstractmethod
    async def insert(self, table: str, row: Row) -> Row:
        """
        Insert one row.

        Returns:
            The canonical row as stored (server-assigned id, created_at, defaults)
        """
        pass

    @abstractmethod
    async def update(self, table: str, changes: Row, filters: list[Filter]) -> list[Row]:
        """
        Update every row matching filters.

        Returns:
            The updated rows as stored
        """
        pass

    @abstractmethod
    async def delete(self, table: str, filters: list[Filter]) -> list[Row]:
        """
        Delete every row matching filters.

        Returns:
            The deleted rows
        """
        pass

    @abstractmethod
    async def has_column(self, table: str, column: str) -> bool:
        """
        Check whether a column exists on a table.

        Returns False only when the backend reports the column as missing;
        other failures propagate.
        """
        pass


class ChangeFeed(ABC):
    """Abstract publish/subscribe change notifications."""

    @abstractmethod
    async def subscribe(
        self,
        table: str,
        callback: ChangeCallback,
        event: ChangeEvent = ChangeEvent.ANY,
    ) -> Any:
        """
        Start receiving notifications for a table.

        Returns:
            An opaque handle to pass to unsubscribe()
        """
        pass

    @abstractmethod
    async def unsubscribe(self, handle: Any) -> None:
        """Stop a subscription. Unknown handles are ignored."""
        pass


class ObjectStorage(ABC):
    """Abstract blob storage with public URLs."""

    @abstractmethod
    async def upload(
        self,
        bucket: str,
        path: str,
        data: bytes,
        content_type: Optional[str] = None,
    ) -> str:
        """
        Upload a blob.

        Returns:
            The stored path
        """
        pass

    @abstractmethod
    def public_url(self, bucket: str, path: str) -> str:
        """Public URL for a stored path."""
        pass

    @abstractmethod
    async def remove(self, bucket: str, paths: list[str]) -> None:
        """Remove blobs. Missing paths are not an error."""
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass


class StorageError(Exception):
    """Base exception for remote data operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class GatewayUnavailableError(StorageError):
    """Could not reach the backend, or it failed server-side."""
    pass


class SchemaErrorKind(str, Enum):
    MISSING_TABLE = "missing_table"
    MISSING_COLUMN = "missing_column"
    PERMISSION_DENIED = "permission_denied"


class SchemaError(StorageError):
    """
    The remote schema or its access rules do not match what the client expects.

    Always surfaced as a recoverable "configuration" state with guidance,
    never as a generic failure.
    """

    def __init__(self, kind: SchemaErrorKind, message: str, table: Optional[str] = None):
        self.kind = kind
        self.table = table
        super().__init__(message)
