"""
In-Memory Storage Implementation

A single InMemoryBackend plays the role of the hosted platform; any
number of InMemoryGateway clients can attach to it, which is how we
simulate the couple's two devices editing the same tables.

Every successful mutation publishes a ChangeNotification to every
subscriber of that table, including the client that made the change.
Delivery is scheduled as tasks, like a real websocket; call
`await backend.flush()` to wait for all deliveries to finish.

Failure simulation:
- `backend.offline = True` makes every request raise GatewayUnavailableError
- `backend.drop_column(table, column)` makes the schema predate a column
- `backend.drop_table(table)` makes the schema predate a table
"""

import asyncio
import copy
from datetime import date, datetime, timedelta, timezone
from itertools import count
from typing import Any, Optional
from uuid import uuid4

import structlog

from organizer.services.storage.interface import (
    ChangeCallback,
    ChangeEvent,
    ChangeFeed,
    ChangeNotification,
    DataGateway,
    Filter,
    FilterOp,
    GatewayUnavailableError,
    ObjectStorage,
    Row,
    SchemaError,
    SchemaErrorKind,
)


logger = structlog.get_logger(__name__)


def _normalize(value: Any) -> Any:
    """Store values the way the JSON API would return them."""
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _normalize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_normalize(v) for v in value]
    return value


def _matches(row: Row, f: Filter) -> bool:
    actual = row.get(f.column)
    expected = _normalize(f.value)

    if f.op == FilterOp.EQ:
        return actual == expected
    if f.op == FilterOp.IS_NULL:
        return actual is None
    if f.op == FilterOp.CONTAINS:
        if isinstance(expected, list):
            return isinstance(actual, list) and all(v in actual for v in expected)
        if isinstance(expected, dict):
            return isinstance(actual, dict) and all(
                actual.get(k) == v for k, v in expected.items()
            )
        return actual is not None and expected in actual
    if actual is None:
        return False
    if f.op == FilterOp.GTE:
        return actual >= expected
    if f.op == FilterOp.LTE:
        return actual <= expected
    return False


class InMemoryBackend:
    """Shared state behind every in-memory client."""

    def __init__(self):
        self.tables: dict[str, list[Row]] = {}
        self.blobs: dict[tuple[str, str], bytes] = {}
        self.offline = False
        self._missing_tables: set[str] = set()
        self._missing_columns: dict[str, set[str]] = {}
        self._subscribers: dict[int, tuple[str, ChangeEvent, ChangeCallback]] = {}
        self._handles = count(1)
        self._deliveries: set[asyncio.Task] = set()
        self._last_created: Optional[datetime] = None

    # --- schema simulation -------------------------------------------------

    def drop_table(self, table: str) -> None:
        self._missing_tables.add(table)

    def drop_column(self, table: str, column: str) -> None:
        self._missing_columns.setdefault(table, set()).add(column)

    def check_request(self, table: str, columns: Optional[set[str]] = None) -> None:
        if self.offline:
            raise GatewayUnavailableError("Failed to fetch")
        if table in self._missing_tables:
            raise SchemaError(
                SchemaErrorKind.MISSING_TABLE,
                f'relation "public.{table}" does not exist',
                table,
            )
        missing = (columns or set()) & self._missing_columns.get(table, set())
        if missing:
            column = sorted(missing)[0]
            raise SchemaError(
                SchemaErrorKind.MISSING_COLUMN,
                f"column {table}.{column} does not exist",
                table,
            )

    def column_exists(self, table: str, column: str) -> bool:
        return column not in self._missing_columns.get(table, set())

    # --- rows --------------------------------------------------------------

    def _next_created_at(self) -> datetime:
        now = datetime.now(timezone.utc)
        if self._last_created is not None and now <= self._last_created:
            now = self._last_created + timedelta(microseconds=1)
        self._last_created = now
        return now

    def stamp(self, row: Row) -> Row:
        stored = _normalize(dict(row))
        if not stored.get("id"):
            stored["id"] = str(uuid4())
        if not stored.get("created_at"):
            stored["created_at"] = self._next_created_at().isoformat()
        return stored

    def seed(self, table: str, rows: list[Row]) -> list[Row]:
        """Insert rows directly, without notifications. Test setup only."""
        stored = [self.stamp(r) for r in rows]
        self.tables.setdefault(table, []).extend(stored)
        return copy.deepcopy(stored)

    def rows(self, table: str) -> list[Row]:
        return copy.deepcopy(self.tables.get(table, []))

    # --- change feed -------------------------------------------------------

    def add_subscriber(self, table: str, event: ChangeEvent, callback: ChangeCallback) -> int:
        handle = next(self._handles)
        self._subscribers[handle] = (table, event, callback)
        return handle

    def remove_subscriber(self, handle: Any) -> None:
        self._subscribers.pop(handle, None)

    def subscriber_count(self, table: str) -> int:
        return sum(1 for t, _, _ in self._subscribers.values() if t == table)

    def publish(self, table: str, event: ChangeEvent) -> None:
        notification = ChangeNotification(table=table, event=event)
        for sub_table, sub_event, callback in list(self._subscribers.values()):
            if sub_table != table:
                continue
            if sub_event not in (ChangeEvent.ANY, event):
                continue
            task = asyncio.ensure_future(self._deliver(callback, notification))
            self._deliveries.add(task)
            task.add_done_callback(self._deliveries.discard)

    async def _deliver(self, callback: ChangeCallback, notification: ChangeNotification) -> None:
        try:
            await callback(notification)
        except Exception as e:
            logger.error("change_delivery_failed", table=notification.table, error=str(e))

    async def flush(self) -> None:
        """Wait until every scheduled notification (and any it caused) is delivered."""
        while self._deliveries:
            await asyncio.gather(*list(self._deliveries))


class InMemoryGateway(DataGateway, ChangeFeed, ObjectStorage):
    """One client attached to an InMemoryBackend."""

    def __init__(self, backend: Optional[InMemoryBackend] = None):
        self.backend = backend or InMemoryBackend()
        self._handles: set[int] = set()

    # --- DataGateway -------------------------------------------------------

    async def select(
        self,
        table: str,
        filters: Optional[list[Filter]] = None,
        columns: str = "*",
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[Row]:
        requested = {c.strip() for c in columns.split(",") if c.strip() and c.strip() != "*"}
        requested |= {f.column for f in filters or []}
        if order_by:
            requested.add(order_by)
        self.backend.check_request(table, requested)

        await asyncio.sleep(0)
        rows = [r for r in self.backend.rows(table) if all(_matches(r, f) for f in filters or [])]
        if order_by:
            present = [r for r in rows if r.get(order_by) is not None]
            absent = [r for r in rows if r.get(order_by) is None]
            present.sort(key=lambda r: r[order_by], reverse=descending)
            rows = present + absent
        if limit is not None:
            rows = rows[:limit]
        if requested and columns.strip() != "*":
            keep = {c.strip() for c in columns.split(",")}
            rows = [{k: v for k, v in r.items() if k in keep} for r in rows]
        return rows

    async def insert(self, table: str, row: Row) -> Row:
        self.backend.check_request(table, set(row.keys()))
        await asyncio.sleep(0)
        stored = self.backend.stamp(row)
        self.backend.tables.setdefault(table, []).append(stored)
        self.backend.publish(table, ChangeEvent.INSERT)
        return copy.deepcopy(stored)

    async def update(self, table: str, changes: Row, filters: list[Filter]) -> list[Row]:
        self.backend.check_request(table, set(changes.keys()) | {f.column for f in filters})
        await asyncio.sleep(0)
        updated = []
        for stored in self.backend.tables.get(table, []):
            if all(_matches(stored, f) for f in filters):
                stored.update(_normalize(changes))
                updated.append(copy.deepcopy(stored))
        if updated:
            self.backend.publish(table, ChangeEvent.UPDATE)
        return updated

    async def delete(self, table: str, filters: list[Filter]) -> list[Row]:
        self.backend.check_request(table, {f.column for f in filters})
        await asyncio.sleep(0)
        rows = self.backend.tables.get(table, [])
        removed = [r for r in rows if all(_matches(r, f) for f in filters)]
        if removed:
            self.backend.tables[table] = [r for r in rows if r not in removed]
            self.backend.publish(table, ChangeEvent.DELETE)
        return copy.deepcopy(removed)

    async def has_column(self, table: str, column: str) -> bool:
        self.backend.check_request(table)
        return self.backend.column_exists(table, column)

    # --- ChangeFeed --------------------------------------------------------

    async def subscribe(
        self,
        table: str,
        callback: ChangeCallback,
        event: ChangeEvent = ChangeEvent.ANY,
    ) -> Any:
        handle = self.backend.add_subscriber(table, event, callback)
        self._handles.add(handle)
        return handle

    async def unsubscribe(self, handle: Any) -> None:
        self._handles.discard(handle)
        self.backend.remove_subscriber(handle)

    # --- ObjectStorage -----------------------------------------------------

    async def upload(
        self,
        bucket: str,
        path: str,
        data: bytes,
        content_type: Optional[str] = None,
    ) -> str:
        if self.backend.offline:
            raise GatewayUnavailableError("Failed to upload")
        self.backend.blobs[(bucket, path)] = bytes(data)
        return path

    def public_url(self, bucket: str, path: str) -> str:
        return f"memory://{bucket}/{path}"

    async def remove(self, bucket: str, paths: list[str]) -> None:
        if self.backend.offline:
            raise GatewayUnavailableError("Failed to remove")
        for path in paths:
            self.backend.blobs.pop((bucket, path), None)
