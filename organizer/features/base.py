"""
Feature Screen Building Blocks

Every screen is a controller owning one or more OptimisticCollections,
each backed by one table. table_collection() wires a collection to a
table once, so no screen hand-writes fetch/insert/update/delete again.
"""

from typing import Any, Callable, Optional, Type, TypeVar

import structlog
from pydantic import BaseModel, ValidationError
from pydantic_core import to_jsonable_python

from organizer.audit.logger import AuditLogger
from organizer.models.records import RecordValidationError
from organizer.services.storage.interface import DataGateway, Filter, Row, SchemaError
from organizer.store.optimistic import OptimisticCollection
from organizer.store.subscriptions import SubscriptionManager


logger = structlog.get_logger(__name__)

M = TypeVar("M", bound=BaseModel)


def validate_record(model: Type[M], data: dict[str, Any]) -> M:
    """
    Build a record from form data.

    Raises:
        RecordValidationError: first problem found, before any remote call
    """
    try:
        return model.model_validate(data)
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(p) for p in first.get("loc", ())) or None
        message = first.get("msg", "Invalid value")
        raise RecordValidationError(f"{field}: {message}" if field else message, field) from e


def record_changes(record: BaseModel, *exclude: str) -> dict[str, Any]:
    """Writable fields of a record as typed values, for an optimistic update."""
    columns = record.to_row().keys() if hasattr(record, "to_row") else type(record).model_fields
    return {name: getattr(record, name) for name in columns if name not in exclude}


def parse_rows(model: Type[M], rows: list[Row], table: str) -> list[M]:
    """Rows -> records; rows that do not fit the model are skipped with a warning."""
    records = []
    for row in rows:
        try:
            records.append(model.model_validate(row))
        except ValidationError as e:
            logger.warning("row_skipped", table=table, id=row.get("id"), error=str(e))
    return records


def table_collection(
    gateway: DataGateway,
    table: str,
    model: Type[M],
    filters: Optional[Callable[[], list[Filter]]] = None,
    order_by: Optional[str] = "created_at",
    descending: bool = False,
    stamp: Optional[Callable[[Row], Row]] = None,
    sort_key: Optional[Callable[[M], Any]] = None,
    visible: Optional[Callable[[M], bool]] = None,
    audit: Optional[AuditLogger] = None,
    name: Optional[str] = None,
    key_column: str = "id",
    write_filters: Optional[Callable[[], list[Filter]]] = None,
) -> OptimisticCollection[M]:
    """
    An OptimisticCollection over one table.

    Args:
        filters: Called on every fetch, so the slice can follow UI state
        stamp: Adds columns to inserted rows (e.g. the couple id)
        key_column: Column identifying a row. Anything other than `id` is a
            natural key the client already knows, so inserts carry it as is
        write_filters: Extra filters for updates and deletes (e.g. the couple
            id of a link table whose key is only unique per couple)
    """

    def keyed(key: str) -> list[Filter]:
        return [Filter.eq(key_column, key)] + (write_filters() if write_filters else [])

    async def fetch() -> list[M]:
        rows = await gateway.select(
            table,
            filters() if filters else None,
            order_by=order_by,
            descending=descending,
        )
        return parse_rows(model, rows, table)

    async def insert(record: M) -> M:
        row = record.to_row() if hasattr(record, "to_row") else record.model_dump(mode="json")
        if stamp:
            row = stamp(row)
        return model.model_validate(await gateway.insert(table, row))

    async def update(key: str, changes: dict[str, Any]) -> Optional[M]:
        rows = await gateway.update(table, to_jsonable_python(changes), keyed(key))
        return model.model_validate(rows[0]) if rows else None

    async def delete(key: str) -> None:
        await gateway.delete(table, keyed(key))

    natural = {} if key_column == "id" else {
        "key": lambda record: getattr(record, key_column, None),
        "assign_key": lambda record, _: record,
    }

    return OptimisticCollection(
        name=name or table,
        fetch=fetch,
        insert=insert,
        update=update,
        delete=delete,
        sort_key=sort_key,
        visible=visible,
        audit=audit,
        **natural,
    )


class FeatureController:
    """
    Mount / unmount for a screen's collections.

    Subclasses fill self._bindings with (collection, tables) pairs.
    """

    def __init__(
        self,
        gateway: DataGateway,
        subscriptions: SubscriptionManager,
        audit: Optional[AuditLogger] = None,
    ):
        self._gateway = gateway
        self._subscriptions = subscriptions
        self._audit = audit
        self._bindings: list[tuple[OptimisticCollection, list[str]]] = []
        self.mounted = False

    async def mount(self) -> None:
        """Subscribe every collection to its tables, then fetch."""
        for collection, tables in self._bindings:
            await collection.bind(self._subscriptions, tables)
        await self.refresh()
        self.mounted = True

    async def unmount(self) -> None:
        for collection, _ in self._bindings:
            await collection.close()
        self.mounted = False

    async def refresh(self) -> None:
        for collection, _ in self._bindings:
            await collection.refresh()

    @property
    def schema_error(self) -> Optional[SchemaError]:
        """The first collection whose fetch failed on the remote schema."""
        for collection, _ in self._bindings:
            if isinstance(collection.fetch_exception, SchemaError):
                return collection.fetch_exception
        return None
