"""
Audit Logger

DESIGN DECISION: Every access decision and every failure recovery is
logged. This provides:
1. Traceability of who saw what (access control lives in the client)
2. Debugging capability for rollbacks and refetches
3. Evidence when the backend schema drifts

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace related events
"""

import functools
import logging
from collections import deque
from contextlib import contextmanager
from typing import Any, Awaitable, Callable, Iterator, Optional, TypeVar
from uuid import UUID, uuid4

import structlog

from organizer.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from organizer.services.storage.interface import AuditStorageInterface


def configure_logging(level: str = "INFO") -> None:
    """Configure structlog for local structured logging."""
    logging.basicConfig(format="%(message)s", level=getattr(logging, level.upper(), logging.INFO))
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer()
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


configure_logging()

F = TypeVar("F", bound=Callable[..., Awaitable[Any]])


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. The append-only audit table (when a storage backend is given)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
        keep_events: int = 500,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
            keep_events: How many recent events stay in memory
        """
        self._storage = storage
        self._logger = structlog.get_logger("organizer.audit")
        self.events: deque[AuditEvent] = deque(maxlen=keep_events)

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Events logged inside a correlated() block carry its correlation id.

        Returns True if storage write succeeded (or no storage configured).
        """
        if event.correlation_id is None:
            bound = structlog.contextvars.get_contextvars().get("correlation_id")
            if bound:
                event = event.model_copy(update={"correlation_id": UUID(bound)})

        self.events.append(event)
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    def events_of(self, event_type) -> list[AuditEvent]:
        """Events of one type logged by this instance, oldest first."""
        return [e for e in self.events if e.event_type == event_type]

    async def log_mutation_rolled_back(
        self,
        collection: str,
        operation: str,
        error_message: str,
        entity_id: Optional[str] = None,
    ) -> None:
        await self.log(AuditEventBuilder.mutation_rolled_back(
            collection=collection,
            operation=operation,
            error_message=error_message,
            entity_id=entity_id,
        ))

    async def log_refetch_failed(self, collection: str, error_message: str) -> None:
        await self.log(AuditEventBuilder.refetch_failed(collection, error_message))

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log external service error."""
        event = AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., saving a recurring
    expense that also touches the calendar). correlated() binds it for
    every event logged during that action.
    """
    return uuid4()


@contextmanager
def correlated(correlation_id: Optional[UUID] = None) -> Iterator[UUID]:
    """
    Tag every log line and audit event inside the block with one
    correlation id. Tasks started inside the block inherit it, and a
    nested block keeps the outer id.
    """
    bound = structlog.contextvars.get_contextvars().get("correlation_id")
    correlation_id = correlation_id or (UUID(bound) if bound else create_correlation_id())
    with structlog.contextvars.bound_contextvars(correlation_id=str(correlation_id)):
        yield correlation_id


def correlated_action(func: F) -> F:
    """Run an async user action inside its own correlated() block."""

    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        with correlated():
            return await func(*args, **kwargs)

    return wrapper
