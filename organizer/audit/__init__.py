"""Audit logging package."""

from organizer.audit.logger import (
    AuditLogger,
    configure_logging,
    correlated,
    correlated_action,
    create_correlation_id,
)

__all__ = [
    "AuditLogger",
    "configure_logging",
    "correlated",
    "correlated_action",
    "create_correlation_id",
]
