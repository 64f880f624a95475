"""
Subscription Manager

DESIGN DECISION: Screens never subscribe to the change feed directly.
They register a refetch callback per table here, and the manager keeps
exactly one feed subscription per table no matter how many screens are
mounted. This:
1. Avoids duplicate subscriptions for tables shared by several screens
2. Fans every notification out to every interested screen
3. Isolates a failing callback so the others still refetch
"""

import asyncio
from typing import Any

import structlog

from organizer.services.storage.interface import (
    ChangeCallback,
    ChangeEvent,
    ChangeFeed,
    ChangeNotification,
)


logger = structlog.get_logger(__name__)


class SubscriptionManager:
    """Maps table name -> set of interested refetch callbacks."""

    def __init__(self, feed: ChangeFeed):
        self._feed = feed
        self._listeners: dict[str, list[ChangeCallback]] = {}
        self._handles: dict[str, Any] = {}
        self._lock = asyncio.Lock()

    async def add(self, table: str, callback: ChangeCallback) -> None:
        """Register a callback; subscribes to the feed on first listener."""
        async with self._lock:
            listeners = self._listeners.setdefault(table, [])
            if callback in listeners:
                return
            listeners.append(callback)
            if table not in self._handles:
                self._handles[table] = await self._feed.subscribe(
                    table, self._dispatch, ChangeEvent.ANY
                )
                logger.info("table_subscribed", table=table)

    async def remove(self, table: str, callback: ChangeCallback) -> None:
        """Unregister a callback; unsubscribes when the last listener leaves."""
        async with self._lock:
            listeners = self._listeners.get(table, [])
            if callback in listeners:
                listeners.remove(callback)
            if not listeners:
                self._listeners.pop(table, None)
                handle = self._handles.pop(table, None)
                if handle is not None:
                    await self._feed.unsubscribe(handle)
                    logger.info("table_unsubscribed", table=table)

    async def close(self) -> None:
        """Drop every subscription."""
        async with self._lock:
            for table, handle in list(self._handles.items()):
                await self._feed.unsubscribe(handle)
            self._handles.clear()
            self._listeners.clear()

    def listener_count(self, table: str) -> int:
        return len(self._listeners.get(table, []))

    def is_subscribed(self, table: str) -> bool:
        return table in self._handles

    async def _dispatch(self, notification: ChangeNotification) -> None:
        callbacks = list(self._listeners.get(notification.table, []))
        if not callbacks:
            return
        results = await asyncio.gather(
            *(cb(notification) for cb in callbacks),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, Exception):
                logger.error(
                    "change_callback_failed",
                    table=notification.table,
                    change=notification.event.value,
                    error=str(result),
                )
