"""
Optimistic Collection

DESIGN DECISION: Every screen mutates remote rows the same way, so the
pattern lives here once:

1. Apply the change locally first (inserts get a random temporary key)
2. Fire the remote mutation
3. On success, swap the temporary/optimistic copy for the canonical row
4. On failure, undo the local change and refetch the whole slice
5. Any change notification for a bound table triggers the same refetch

Correctness rests on the refetch, not on the in-place patch. A refetch
is authoritative: whatever it returns replaces the list, pending
temporary rows included. A fetch generation counter makes sure an older
refetch that lands late never overwrites a newer one.

There is no locking and no versioning. Two devices editing the same
table converge on "last refetch wins".
"""

from typing import Any, Awaitable, Callable, Generic, Iterator, Optional, TypeVar
from uuid import uuid4

import structlog
from pydantic import BaseModel, ConfigDict

from organizer.audit.logger import AuditLogger
from organizer.store.subscriptions import SubscriptionManager
from organizer.services.storage.interface import ChangeNotification


logger = structlog.get_logger(__name__)

T = TypeVar("T", bound=BaseModel)


class MutationResult(BaseModel):
    """Outcome of one optimistic mutation, for inline display."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    ok: bool
    operation: str
    record: Any = None
    error: Optional[str] = None
    rolled_back: bool = False


def _default_key(record: BaseModel) -> Optional[str]:
    return getattr(record, "id", None)


def _default_assign_key(record: T, key: str) -> T:
    return record.model_copy(update={"id": key})


class OptimisticCollection(Generic[T]):
    """
    In-memory list of records kept consistent with a remote table.

    Args:
        name: Collection name used in logs and audit events
        fetch: Reads the full slice of state
        insert: Persists a new record, returns the canonical row
        update: Persists changes for a key, returns the canonical row (or None)
        delete: Removes a key remotely
        key: Extracts the identity of a record
        assign_key: Returns a copy of a record carrying the given key
        sort_key: Keeps the list ordered after local patches
        visible: Records failing this predicate are not kept in the list
        audit: Optional audit logger for rollbacks and failed refetches
    """

    def __init__(
        self,
        name: str,
        fetch: Callable[[], Awaitable[list[T]]],
        insert: Optional[Callable[[T], Awaitable[T]]] = None,
        update: Optional[Callable[[str, dict[str, Any]], Awaitable[Optional[T]]]] = None,
        delete: Optional[Callable[[str], Awaitable[Any]]] = None,
        key: Callable[[T], Optional[str]] = _default_key,
        assign_key: Callable[[T, str], T] = _default_assign_key,
        sort_key: Optional[Callable[[T], Any]] = None,
        visible: Optional[Callable[[T], bool]] = None,
        audit: Optional[AuditLogger] = None,
    ):
        self.name = name
        self._fetch = fetch
        self._insert = insert
        self._update = update
        self._delete = delete
        self._key = key
        self._assign_key = assign_key
        self._sort_key = sort_key
        self._visible = visible
        self._audit = audit

        self._items: list[T] = []
        self._pending: set[str] = set()
        self._generation = 0
        self._subscriptions: Optional[SubscriptionManager] = None
        self._tables: list[str] = []
        self._closed = False

        self.loaded = False
        self.last_error: Optional[str] = None
        self.fetch_error: Optional[str] = None
        self.fetch_exception: Optional[Exception] = None

    # =========================================================================
    # READ ACCESS
    # =========================================================================

    @property
    def items(self) -> list[T]:
        return list(self._items)

    @property
    def pending(self) -> set[str]:
        """Temporary keys of inserts still waiting for the server."""
        return set(self._pending)

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[T]:
        return iter(list(self._items))

    def keys(self) -> list[Optional[str]]:
        return [self._key(r) for r in self._items]

    def get(self, key: str) -> Optional[T]:
        index = self._index_of(key)
        return self._items[index] if index is not None else None

    def is_pending(self, key: str) -> bool:
        return key in self._pending

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def bind(self, subscriptions: SubscriptionManager, tables: list[str]) -> None:
        """Mount: refetch whenever any of these tables changes."""
        self._subscriptions = subscriptions
        self._tables = list(tables)
        self._closed = False
        for table in self._tables:
            await subscriptions.add(table, self._on_change)

    async def close(self) -> None:
        """Unmount: stop listening. In-flight requests resolve into nothing."""
        self._closed = True
        if self._subscriptions:
            for table in self._tables:
                await self._subscriptions.remove(table, self._on_change)
        self._subscriptions = None
        self._tables = []

    async def _on_change(self, notification: ChangeNotification) -> None:
        logger.debug(
            "change_received",
            collection=self.name,
            table=notification.table,
            change=notification.event.value,
        )
        await self.refresh()

    async def refresh(self) -> bool:
        """
        Replace the list with a fresh fetch.

        Returns:
            True if this fetch was applied
        """
        if self._closed:
            return False

        self._generation += 1
        generation = self._generation

        try:
            records = await self._fetch()
        except Exception as e:
            if generation == self._generation:
                self.fetch_error = str(e)
                self.fetch_exception = e
            logger.warning("refetch_failed", collection=self.name, error=str(e))
            if self._audit:
                await self._audit.log_refetch_failed(self.name, str(e))
            return False

        if generation != self._generation or self._closed:
            logger.debug("stale_refetch_discarded", collection=self.name, generation=generation)
            return False

        self._items = self._arrange([r for r in records if self._keep(r)])
        self._pending.clear()
        self.loaded = True
        self.fetch_error = None
        self.fetch_exception = None
        return True

    # =========================================================================
    # MUTATIONS
    # =========================================================================

    async def insert(self, record: T) -> MutationResult:
        if self._insert is None:
            raise TypeError(f"{self.name} does not support insert")

        temp_key = str(uuid4())
        optimistic = self._assign_key(record, temp_key)
        # Natural keys (e.g. an email) are known before the server answers
        temp_key = self._key(optimistic) or temp_key
        self._pending.add(temp_key)
        if self._keep(optimistic):
            self._items = self._arrange(self._items + [optimistic])

        try:
            canonical = await self._insert(record)
        except Exception as e:
            self._pending.discard(temp_key)
            self._drop(temp_key)
            return await self._recover("insert", e, None)

        self._pending.discard(temp_key)
        canonical_key = self._key(canonical)
        index = self._index_of(temp_key)

        if index is not None:
            if canonical_key != temp_key:
                self._drop(canonical_key)
            index = self._index_of(temp_key)
            if self._keep(canonical):
                self._items[index] = canonical
                self._items = self._arrange(self._items)
            else:
                del self._items[index]
        elif self._index_of(canonical_key) is None and self._keep(canonical):
            # A refetch dropped the temporary row before the canonical one existed
            await self.refresh()

        self.last_error = None
        return MutationResult(ok=True, operation="insert", record=canonical)

    async def update(self, key: str, changes: dict[str, Any]) -> MutationResult:
        if self._update is None:
            raise TypeError(f"{self.name} does not support update")

        index = self._index_of(key)
        if index is None:
            return MutationResult(ok=False, operation="update", error="Record no longer exists")
        if key in self._pending:
            return MutationResult(ok=False, operation="update", error="Record is still being saved")

        previous = self._items[index]
        optimistic = previous.model_copy(update=changes)
        new_key = self._key(optimistic) or key
        self._put(key, optimistic, index)

        try:
            canonical = await self._update(key, changes)
        except Exception as e:
            self._drop(new_key)
            self._put(key, previous, index)
            return await self._recover("update", e, key)

        if canonical is not None and self._index_of(new_key) is not None:
            self._put(new_key, canonical, self._index_of(new_key))

        self.last_error = None
        return MutationResult(ok=True, operation="update", record=canonical or optimistic)

    async def remove(self, key: str) -> MutationResult:
        if self._delete is None:
            raise TypeError(f"{self.name} does not support delete")

        index = self._index_of(key)
        if index is None:
            return MutationResult(ok=False, operation="delete", error="Record no longer exists")
        if key in self._pending:
            return MutationResult(ok=False, operation="delete", error="Record is still being saved")

        previous = self._items[index]
        del self._items[index]

        try:
            await self._delete(key)
        except Exception as e:
            if self._index_of(key) is None:
                self._items.insert(min(index, len(self._items)), previous)
            return await self._recover("delete", e, key)

        self.last_error = None
        return MutationResult(ok=True, operation="delete", record=previous)

    async def mutate(
        self,
        operation: str,
        transform: Callable[[list[T]], list[T]],
        remote: Callable[[], Awaitable[Any]],
    ) -> MutationResult:
        """
        Optimistic change spanning several records.

        `transform` produces the new local list; on failure the list from
        before the transform is restored, then refetched.
        """
        snapshot = list(self._items)
        self._items = self._arrange([r for r in transform(list(self._items)) if self._keep(r)])

        try:
            result = await remote()
        except Exception as e:
            self._items = snapshot
            return await self._recover(operation, e, None)

        self.last_error = None
        return MutationResult(ok=True, operation=operation, record=result)

    # =========================================================================
    # INTERNALS
    # =========================================================================

    async def _recover(self, operation: str, error: Exception, key: Optional[str]) -> MutationResult:
        message = str(error) or error.__class__.__name__
        self.last_error = message
        logger.warning(
            "optimistic_mutation_failed",
            collection=self.name,
            operation=operation,
            key=key,
            error=message,
        )
        if self._audit:
            await self._audit.log_mutation_rolled_back(self.name, operation, message, key)
        await self.refresh()
        return MutationResult(ok=False, operation=operation, error=message, rolled_back=True)

    def _keep(self, record: T) -> bool:
        return self._visible is None or self._visible(record)

    def _arrange(self, records: list[T]) -> list[T]:
        if self._sort_key is None:
            return list(records)
        return sorted(records, key=self._sort_key)

    def _index_of(self, key: Optional[str]) -> Optional[int]:
        if key is None:
            return None
        for i, record in enumerate(self._items):
            if self._key(record) == key:
                return i
        return None

    def _drop(self, key: Optional[str]) -> None:
        if key is None:
            return
        self._items = [r for r in self._items if self._key(r) != key]

    def _put(self, key: str, record: T, index: int) -> None:
        """Place a record at its old position (or drop it if no longer visible)."""
        self._drop(key)
        if self._keep(record):
            self._items.insert(min(index, len(self._items)), record)
            self._items = self._arrange(self._items)
