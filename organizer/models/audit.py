"""
Audit Models for Couple Organizer

Every significant action (sign-in, access decisions, failed mutations,
external service errors) is recorded as an AuditEvent. Audit logs are
append-only: we never delete or modify them.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Session
    SIGN_IN_SUCCEEDED = "sign_in_succeeded"
    SIGN_IN_DENIED = "sign_in_denied"
    SIGN_IN_FAILED = "sign_in_failed"
    CONFIGURATION_ERROR = "configuration_error"
    SIGNED_OUT = "signed_out"
    CREDENTIAL_EXPIRED = "credential_expired"

    # Access control
    NAVIGATION_REDIRECTED = "navigation_redirected"
    RENDER_DENIED = "render_denied"

    # Data
    MUTATION_ROLLED_BACK = "mutation_rolled_back"
    REFETCH_FAILED = "refetch_failed"
    TENANCY_GATE_TRIPPED = "tenancy_gate_tripped"

    # AI
    AI_CALL_RETRIED = "ai_call_retried"
    AI_CALL_FAILED = "ai_call_failed"

    # Calendar
    CALENDAR_EVENT_CREATED = "calendar_event_created"
    CALENDAR_EVENT_UPDATED = "calendar_event_updated"
    CALENDAR_EVENT_DELETED = "calendar_event_deleted"

    # External services
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """A single audit event."""

    event_id: UUID = Field(default_factory=uuid4)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # What entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'profile', 'expenses', 'calendar_event')"
    )
    entity_id: Optional[str] = None

    # Who triggered it
    actor_email: Optional[str] = None

    correlation_id: Optional[UUID] = None

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)

    error_message: Optional[str] = None

    is_user_action: bool = False

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "actor_email": self.actor_email,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_row(self) -> dict:
        """Row for the append-only audit table."""
        row = self.to_log_dict()
        row["details"] = self.details or {}
        return row


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.sign_in_denied(email, reason="not_registered")
        event = AuditEventBuilder.mutation_rolled_back("expenses", "insert", error)
    """

    @staticmethod
    def sign_in_succeeded(email: str, role: Optional[str], views: list[str]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SIGN_IN_SUCCEEDED,
            entity_type="profile",
            entity_id=email,
            actor_email=email,
            description=f"Signed in as {role or 'unknown role'}",
            details={"role": role, "permitted_views": views},
            is_user_action=True,
        )

    @staticmethod
    def sign_in_denied(email: str, reason: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SIGN_IN_DENIED,
            severity=AuditSeverity.WARNING,
            entity_type="profile",
            entity_id=email,
            actor_email=email,
            description=f"Sign-in denied: {reason}",
            details={"reason": reason},
            is_user_action=True,
        )

    @staticmethod
    def sign_in_failed(error_message: str, email: Optional[str] = None) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SIGN_IN_FAILED,
            severity=AuditSeverity.ERROR,
            actor_email=email,
            description="Sign-in failed",
            error_message=error_message,
        )

    @staticmethod
    def configuration_error(
        area: str,
        error_message: str,
        details: Optional[dict] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CONFIGURATION_ERROR,
            severity=AuditSeverity.ERROR,
            entity_type=area,
            description=f"Backend configuration error in {area}",
            error_message=error_message,
            details=details or {},
        )

    @staticmethod
    def signed_out(email: str, revoked: bool) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SIGNED_OUT,
            entity_type="profile",
            entity_id=email,
            actor_email=email,
            description="Signed out",
            details={"token_revoked": revoked},
            is_user_action=True,
        )

    @staticmethod
    def credential_expired(email: Optional[str], service: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CREDENTIAL_EXPIRED,
            severity=AuditSeverity.WARNING,
            actor_email=email,
            description=f"Delegated credential rejected by {service}",
            details={"service": service},
        )

    @staticmethod
    def navigation_redirected(email: str, requested: str, target: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.NAVIGATION_REDIRECTED,
            severity=AuditSeverity.WARNING,
            entity_type="view",
            entity_id=requested,
            actor_email=email,
            description=f"View '{requested}' not permitted, redirected to '{target}'",
            details={"requested": requested, "target": target},
        )

    @staticmethod
    def render_denied(email: str, view: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RENDER_DENIED,
            severity=AuditSeverity.WARNING,
            entity_type="view",
            entity_id=view,
            actor_email=email,
            description=f"Render of '{view}' denied",
        )

    @staticmethod
    def mutation_rolled_back(
        collection: str,
        operation: str,
        error_message: str,
        entity_id: Optional[str] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MUTATION_ROLLED_BACK,
            severity=AuditSeverity.WARNING,
            entity_type=collection,
            entity_id=entity_id,
            description=f"Optimistic {operation} on {collection} failed, state refetched",
            error_message=error_message,
            details={"operation": operation},
        )

    @staticmethod
    def refetch_failed(collection: str, error_message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REFETCH_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type=collection,
            description=f"Refetch of {collection} failed",
            error_message=error_message,
        )

    @staticmethod
    def tenancy_gate_tripped(state: str, tables: list[str], couple_id: Optional[str]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TENANCY_GATE_TRIPPED,
            severity=AuditSeverity.WARNING,
            entity_type="tenancy",
            entity_id=couple_id,
            description=f"Couple partition check stopped rendering: {state}",
            details={"state": state, "tables": tables},
        )

    @staticmethod
    def ai_call_retried(feature: str, attempt: int, error_message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.AI_CALL_RETRIED,
            severity=AuditSeverity.WARNING,
            entity_type="ai",
            entity_id=feature,
            description=f"Transient AI failure on attempt {attempt}, retrying",
            error_message=error_message,
            details={"attempt": attempt},
        )

    @staticmethod
    def ai_call_failed(feature: str, error_message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.AI_CALL_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="ai",
            entity_id=feature,
            description=f"AI call failed for {feature}",
            error_message=error_message,
        )

    @staticmethod
    def calendar_event(action: str, event_id: str, record_id: Optional[str]) -> AuditEvent:
        event_type = {
            "created": AuditEventType.CALENDAR_EVENT_CREATED,
            "updated": AuditEventType.CALENDAR_EVENT_UPDATED,
            "deleted": AuditEventType.CALENDAR_EVENT_DELETED,
        }[action]
        return AuditEvent(
            event_type=event_type,
            entity_type="calendar_event",
            entity_id=event_id,
            description=f"Calendar event {action}",
            details={"record_id": record_id},
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={"service": service},
            correlation_id=correlation_id,
        )
