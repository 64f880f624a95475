"""
Supabase Storage Implementation

Supabase is the hosted platform behind every screen: Postgres tables via
its auto-generated REST API, a realtime change feed, and object storage
with public URLs.

TRADEOFFS:
- Table access is configured "allow all"; authorization lives in the client
- No transactions across tables (screens order their writes carefully)
- Realtime payloads are ignored; a notification only triggers a refetch

Backend errors are classified here, once, into the exceptions of the
storage interface so no caller ever inspects raw Postgres codes.
"""

import asyncio
from typing import Any, Optional

import structlog
from supabase import AsyncClient, Client, acreate_client, create_client

from organizer.config import SupabaseSettings, get_settings
from organizer.models.audit import AuditEvent
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
    ObjectStorage,
    Row,
    SchemaError,
    SchemaErrorKind,
    StorageError,
)


logger = structlog.get_logger(__name__)

# Postgres / PostgREST codes we translate
MISSING_TABLE_CODES = {"42P01", "PGRST205"}
MISSING_COLUMN_CODES = {"42703", "PGRST204"}
PERMISSION_DENIED_CODES = {"42501"}


def classify_error(exc: Exception, table: Optional[str] = None) -> StorageError:
    """
    Translate a client exception into a storage interface exception.

    PostgREST errors carry a `code` and `message`; transport errors carry
    neither and are treated as the backend being unreachable.
    """
    if isinstance(exc, StorageError):
        return exc

    code = str(getattr(exc, "code", "") or "")
    message = str(getattr(exc, "message", "") or exc)
    lowered = message.lower()

    if code in MISSING_TABLE_CODES or (
        "does not exist" in lowered and "relation" in lowered
    ):
        return SchemaError(SchemaErrorKind.MISSING_TABLE, message, table)
    if code in MISSING_COLUMN_CODES or (
        "column" in lowered and ("does not exist" in lowered or "could not find" in lowered)
    ):
        return SchemaError(SchemaErrorKind.MISSING_COLUMN, message, table)
    if code in PERMISSION_DENIED_CODES or "permission denied" in lowered:
        return SchemaError(SchemaErrorKind.PERMISSION_DENIED, message, table)
    if code:
        return StorageError(f"{table or 'request'} failed ({code}): {message}")
    return GatewayUnavailableError(f"Could not reach the data platform: {message}")


def apply_filters(query: Any, filters: Optional[list[Filter]]) -> Any:
    """Chain filter predicates onto a PostgREST request builder."""
    for f in filters or []:
        if f.op == FilterOp.EQ:
            query = query.eq(f.column, f.value)
        elif f.op == FilterOp.IS_NULL:
            query = query.is_(f.column, "null")
        elif f.op == FilterOp.CONTAINS:
            query = query.contains(f.column, f.value)
        elif f.op == FilterOp.GTE:
            query = query.gte(f.column, f.value)
        elif f.op == FilterOp.LTE:
            query = query.lte(f.column, f.value)
    return query


class SupabaseClientFactory:
    """
    Lazily creates the Supabase clients.

    The synchronous client serves table and storage requests; the async
    client exists only for the realtime websocket.
    """

    def __init__(self, settings: Optional[SupabaseSettings] = None):
        self.settings = settings or get_settings().supabase
        self._client: Optional[Client] = None
        self._async_client: Optional[AsyncClient] = None

    def client(self) -> Client:
        if self._client is None:
            try:
                self._client = create_client(self.settings.url, self.settings.key)
            except Exception as e:
                raise GatewayUnavailableError(f"Failed to create Supabase client: {e}")
        return self._client

    async def async_client(self) -> AsyncClient:
        if self._async_client is None:
            try:
                self._async_client = await acreate_client(self.settings.url, self.settings.key)
            except Exception as e:
                raise GatewayUnavailableError(f"Failed to create realtime client: {e}")
        return self._async_client


class SupabaseDataGateway(DataGateway):
    """Table operations through the PostgREST API."""

    def __init__(self, factory: Optional[SupabaseClientFactory] = None, client: Optional[Client] = None):
        self._factory = factory or SupabaseClientFactory()
        self._client = client

    def _table(self, table: str) -> Any:
        client = self._client or self._factory.client()
        return client.table(table)

    async def select(
        self,
        table: str,
        filters: Optional[list[Filter]] = None,
        columns: str = "*",
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[Row]:
        try:
            query = apply_filters(self._table(table).select(columns), filters)
            if order_by:
                query = query.order(order_by, desc=descending)
            if limit is not None:
                query = query.limit(limit)
            response = query.execute()
            return list(response.data or [])
        except Exception as e:
            raise classify_error(e, table) from e

    async def insert(self, table: str, row: Row) -> Row:
        try:
            response = self._table(table).insert(row).execute()
        except Exception as e:
            raise classify_error(e, table) from e
        if not response.data:
            raise StorageError(f"Insert into {table} returned no row")
        return response.data[0]

    async def update(self, table: str, changes: Row, filters: list[Filter]) -> list[Row]:
        if not filters:
            raise StorageError(f"Refusing unfiltered update on {table}")
        try:
            response = apply_filters(self._table(table).update(changes), filters).execute()
            return list(response.data or [])
        except Exception as e:
            raise classify_error(e, table) from e

    async def delete(self, table: str, filters: list[Filter]) -> list[Row]:
        if not filters:
            raise StorageError(f"Refusing unfiltered delete on {table}")
        try:
            response = apply_filters(self._table(table).delete(), filters).execute()
            return list(response.data or [])
        except Exception as e:
            raise classify_error(e, table) from e

    async def has_column(self, table: str, column: str) -> bool:
        try:
            await self.select(table, columns=column, limit=1)
        except SchemaError as e:
            if e.kind == SchemaErrorKind.MISSING_COLUMN:
                return False
            raise
        return True


class SupabaseChangeFeed(ChangeFeed):
    """
    Realtime change feed over Postgres logical replication.

    One channel per subscription. Payloads are reduced to
    ChangeNotification(table, event) before delivery.
    """

    def __init__(self, factory: Optional[SupabaseClientFactory] = None):
        self._factory = factory or SupabaseClientFactory()
        self._schema = self._factory.settings.schema_name
        self._counter = 0
        self._deliveries: set[asyncio.Task] = set()

    async def subscribe(
        self,
        table: str,
        callback: ChangeCallback,
        event: ChangeEvent = ChangeEvent.ANY,
    ) -> Any:
        client = await self._factory.async_client()
        self._counter += 1
        channel = client.channel(f"realtime-{table}-{self._counter}")

        def on_change(payload: dict) -> None:
            data = payload.get("data", payload) if isinstance(payload, dict) else {}
            kind = str(data.get("type") or data.get("eventType") or "*").upper()
            try:
                change = ChangeEvent(kind)
            except ValueError:
                change = ChangeEvent.ANY
            self._deliver(callback, ChangeNotification(table=table, event=change))

        channel.on_postgres_changes(
            event.value,
            on_change,
            table=table,
            schema=self._schema,
        )
        try:
            await channel.subscribe()
        except Exception as e:
            raise GatewayUnavailableError(f"Realtime subscription to {table} failed: {e}") from e
        logger.debug("realtime_subscribed", table=table, change=event.value)
        return channel

    def _deliver(self, callback: ChangeCallback, notification: ChangeNotification) -> None:
        # Held until done so the loop cannot collect a pending delivery
        task = asyncio.ensure_future(self._run(callback, notification))
        self._deliveries.add(task)
        task.add_done_callback(self._deliveries.discard)

    async def _run(self, callback: ChangeCallback, notification: ChangeNotification) -> None:
        try:
            await callback(notification)
        except Exception as e:
            logger.error("change_delivery_failed", table=notification.table, error=str(e))

    async def unsubscribe(self, handle: Any) -> None:
        client = await self._factory.async_client()
        try:
            await client.remove_channel(handle)
        except Exception as e:
            # Screen is going away; a dangling channel only costs a refetch
            logger.warning("realtime_unsubscribe_failed", error=str(e))


class SupabaseObjectStorage(ObjectStorage):
    """Blob storage buckets with public URLs."""

    def __init__(self, factory: Optional[SupabaseClientFactory] = None):
        self._factory = factory or SupabaseClientFactory()

    def _bucket(self, bucket: str) -> Any:
        return self._factory.client().storage.from_(bucket)

    async def upload(
        self,
        bucket: str,
        path: str,
        data: bytes,
        content_type: Optional[str] = None,
    ) -> str:
        options = {"content-type": content_type} if content_type else None
        try:
            self._bucket(bucket).upload(path, data, file_options=options)
        except Exception as e:
            raise classify_error(e, bucket) from e
        return path

    def public_url(self, bucket: str, path: str) -> str:
        return self._bucket(bucket).get_public_url(path)

    async def remove(self, bucket: str, paths: list[str]) -> None:
        if not paths:
            return
        try:
            self._bucket(bucket).remove(paths)
        except Exception as e:
            raise classify_error(e, bucket) from e


class SupabaseAuditStorage(AuditStorageInterface):
    """Audit events appended to a table. Append-only."""

    def __init__(self, gateway: Optional[DataGateway] = None, table: Optional[str] = None):
        self._gateway = gateway or SupabaseDataGateway()
        self._table = table or get_settings().supabase.audit_table

    async def append_event(self, event: AuditEvent) -> bool:
        try:
            await self._gateway.insert(self._table, event.to_row())
            return True
        except StorageError as e:
            # Audit logging must not break the main flow
            logger.warning("audit_append_failed", error=str(e), event_id=str(event.event_id))
            return False
