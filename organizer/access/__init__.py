"""
Access control package.

Permission resolution (pure functions) and the session that applies it
to navigation and rendering.
"""

from organizer.access.permissions import (
    LEGACY_ROLE_VIEWS,
    SAFE_DEFAULT_VIEW,
    can_render,
    gate_navigation,
    legacy_views_for_role,
    resolve_permitted_views,
)
from organizer.access.session import (
    ConfigurationError,
    NotRegisteredError,
    SessionError,
    SessionManager,
    SessionStore,
    SignInError,
    new_client_key,
)

__all__ = [
    # Permissions
    "LEGACY_ROLE_VIEWS",
    "SAFE_DEFAULT_VIEW",
    "can_render",
    "gate_navigation",
    "legacy_views_for_role",
    "resolve_permitted_views",
    # Session
    "SessionManager",
    "SessionStore",
    "new_client_key",
    # Exceptions
    "ConfigurationError",
    "NotRegisteredError",
    "SessionError",
    "SignInError",
]
