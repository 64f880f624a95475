"""
Session Management

DESIGN DECISION: The current user and current view are explicit session
state, owned by one SessionManager, instead of globals scattered across
screens. The session is:
- Created once by sign_in() or restore()
- Persisted to durable client storage (profile + bearer token + view)
- Torn down explicitly by sign_out()

Sign-in failures are kept distinct so the UI can react correctly:
- NotRegisteredError: the email has no profile (deny, do not create one)
- ConfigurationError: the backend schema or access rules are wrong
  (show setup guidance, never "not registered")
- SignInError: identity provider or network trouble (retry)
"""

import re
from pathlib import Path
from typing import Awaitable, Callable, Optional
from uuid import uuid4

import structlog
from pydantic import ValidationError

from organizer.access.permissions import can_render, gate_navigation, resolve_permitted_views
from organizer.audit.logger import AuditLogger, correlated_action
from organizer.models.audit import AuditEventBuilder
from organizer.models.profile import IdentityAssertion, Session, UserProfile, View
from organizer.services.identity.google_identity import IdentityProvider, IdentityProviderError
from organizer.services.storage.interface import (
    DataGateway,
    Filter,
    SchemaError,
    StorageError,
)


logger = structlog.get_logger(__name__)

PROFILES_TABLE = "user_profiles"

_CLIENT_KEY = re.compile(r"^[0-9a-f]{32}$")


def new_client_key() -> str:
    """Random key identifying one browser client."""
    return uuid4().hex


class SessionStore:
    """Durable client storage for the session (a JSON file)."""

    def __init__(self, path: Path):
        self._path = Path(path)

    @classmethod
    def for_client(cls, directory: Path, client_key: str) -> "SessionStore":
        """
        The store of one browser client.

        Raises:
            ValueError: the key is not one made by new_client_key()
        """
        if not _CLIENT_KEY.match(client_key or ""):
            raise ValueError("Invalid client key")
        return cls(Path(directory) / f"{client_key}.json")

    def load(self) -> Optional[Session]:
        if not self._path.exists():
            return None
        try:
            return Session.model_validate_json(self._path.read_text(encoding="utf-8"))
        except (ValidationError, ValueError, OSError) as e:
            # Corrupt or outdated file: behave as signed out
            logger.warning("session_file_unreadable", path=str(self._path), error=str(e))
            self.clear()
            return None

    def save(self, session: Session) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(session.model_dump_json(), encoding="utf-8")

    def clear(self) -> None:
        self._path.unlink(missing_ok=True)


class SessionManager:
    """
    Resolves identities to profiles and gates every view transition.
    """

    def __init__(
        self,
        gateway: DataGateway,
        identity: IdentityProvider,
        store: SessionStore,
        audit: Optional[AuditLogger] = None,
        default_view: View = View.DASHBOARD,
    ):
        self._gateway = gateway
        self._identity = identity
        self._store = store
        self._audit = audit or AuditLogger()
        self._default_view = default_view
        self._session: Optional[Session] = None
        self._sign_out_hooks: list[Callable[[], Awaitable[None]]] = []
        self.expired_notice: Optional[str] = None

    # =========================================================================
    # STATE
    # =========================================================================

    @property
    def session(self) -> Optional[Session]:
        return self._session

    @property
    def is_signed_in(self) -> bool:
        return self._session is not None

    @property
    def profile(self) -> Optional[UserProfile]:
        return self._session.profile if self._session else None

    @property
    def access_token(self) -> Optional[str]:
        return self._session.access_token if self._session else None

    @property
    def current_view(self) -> Optional[View]:
        return self._session.current_view if self._session else None

    @property
    def permitted_views(self) -> list[View]:
        return resolve_permitted_views(self.profile)

    # =========================================================================
    # SIGN IN
    # =========================================================================

    def authorization_url(self, state: Optional[str] = None) -> str:
        return self._identity.authorization_url(state)

    async def sign_in_with_code(self, code: str) -> Session:
        """Complete the OAuth redirect: code -> token -> profile."""
        try:
            token = await self._identity.exchange_code(code)
        except IdentityProviderError as e:
            await self._audit.log(AuditEventBuilder.sign_in_failed(str(e)))
            raise SignInError(str(e)) from e
        return await self.sign_in(token.access_token)

    async def sign_in(self, access_token: str) -> Session:
        """
        Resolve a bearer token to a session.

        Raises:
            SignInError: identity provider or network failure
            NotRegisteredError: no profile for this email
            ConfigurationError: profile table missing or unreadable, or the row is invalid
        """
        try:
            assertion = await self._identity.fetch_identity(access_token)
        except IdentityProviderError as e:
            await self._audit.log(AuditEventBuilder.sign_in_failed(str(e)))
            raise SignInError(str(e)) from e

        profile = await self.lookup_profile(assertion)
        if assertion.picture and not profile.picture:
            profile = profile.model_copy(update={"picture": assertion.picture})

        views = resolve_permitted_views(profile)
        session = Session(
            profile=profile,
            access_token=access_token,
            current_view=gate_navigation(profile, self._default_view),
        )
        self._session = session
        self._store.save(session)
        self.expired_notice = None

        await self._audit.log(AuditEventBuilder.sign_in_succeeded(
            profile.email, profile.role.value if profile.role else None, [v.value for v in views],
        ))
        return session

    async def lookup_profile(self, assertion: IdentityAssertion) -> UserProfile:
        """Find exactly one profile for the asserted email."""
        try:
            rows = await self._gateway.select(
                PROFILES_TABLE, [Filter.eq("email", assertion.email)],
            )
        except SchemaError as e:
            await self._audit.log(AuditEventBuilder.configuration_error(
                PROFILES_TABLE, str(e), {"kind": e.kind.value},
            ))
            raise ConfigurationError(
                "The user profile table is missing or not readable. "
                "Run the database setup before signing in.",
                kind=e.kind.value,
            ) from e
        except StorageError as e:
            await self._audit.log(AuditEventBuilder.sign_in_failed(str(e), assertion.email))
            raise SignInError(f"Could not load your profile: {e}") from e

        if not rows:
            await self._audit.log(AuditEventBuilder.sign_in_denied(assertion.email, "not_registered"))
            raise NotRegisteredError(assertion.email)

        if len(rows) > 1:
            logger.warning(
                "duplicate_profiles",
                email=assertion.email,
                count=len(rows),
                ids=[r.get("id") for r in rows],
            )
            rows = sorted(rows, key=lambda r: (
                r.get("created_at") is None,
                str(r.get("created_at") or ""),
                str(r.get("id") or ""),
            ))

        try:
            return UserProfile.model_validate(rows[0])
        except ValidationError as e:
            await self._audit.log(AuditEventBuilder.configuration_error(
                PROFILES_TABLE, str(e), {"kind": "invalid_profile", "email": assertion.email},
            ))
            raise ConfigurationError(
                "Your profile is incomplete (missing name or email). "
                "Ask an admin to fix it before signing in.",
                kind="invalid_profile",
            ) from e

    def restore(self) -> Optional[Session]:
        """Pick up the session persisted by a previous run."""
        session = self._store.load()
        if session is None:
            return None
        session.current_view = gate_navigation(session.profile, session.current_view)
        self._session = session
        return session

    def replace_profile(self, profile: UserProfile) -> None:
        """Adopt an edited version of the signed-in profile (admin self-edit)."""
        if not self._session or self._session.profile.email != profile.email:
            return
        if not profile.picture:
            profile = profile.model_copy(update={"picture": self._session.profile.picture})
        self._session.profile = profile
        self._session.current_view = gate_navigation(profile, self._session.current_view)
        self._store.save(self._session)

    # =========================================================================
    # GATES
    # =========================================================================

    async def navigate(self, requested: View) -> View:
        """Move to a view, or to the first permitted one if it is not allowed."""
        session = self._require_session()
        target = gate_navigation(session.profile, requested)
        if target != requested:
            await self._audit.log(AuditEventBuilder.navigation_redirected(
                session.profile.email, requested.value, target.value,
            ))
        session.current_view = target
        self._store.save(session)
        return target

    async def check_render(self, view: View) -> bool:
        """Render gate. False means show the access-denied placeholder."""
        session = self._require_session()
        allowed = can_render(session.profile, view)
        if not allowed:
            await self._audit.log(AuditEventBuilder.render_denied(session.profile.email, view.value))
        return allowed

    # =========================================================================
    # SIGN OUT
    # =========================================================================

    def on_sign_out(self, hook: Callable[[], Awaitable[None]]) -> None:
        """Run `hook` after every sign-out, including one forced by an expired credential."""
        self._sign_out_hooks.append(hook)

    async def sign_out(self, revoke: bool = True) -> None:
        """Revoke the token (best-effort) and clear durable storage."""
        session = self._session
        revoked = False
        if session and session.access_token and revoke:
            try:
                revoked = await self._identity.revoke(session.access_token)
            except Exception as e:
                logger.warning("token_revoke_failed", error=str(e))
        self._store.clear()
        self._session = None
        for hook in list(self._sign_out_hooks):
            try:
                await hook()
            except Exception as e:
                logger.error("sign_out_hook_failed", error=str(e))
        if session:
            await self._audit.log(AuditEventBuilder.signed_out(session.profile.email, revoked))

    @correlated_action
    async def handle_credential_expired(self, service: str) -> None:
        """A delegated call got HTTP 401: sign out so the user re-consents."""
        email = self.profile.email if self.profile else None
        await self._audit.log(AuditEventBuilder.credential_expired(email, service))
        await self.sign_out(revoke=False)
        self.expired_notice = "Your Google session expired. Sign in again to continue."

    def _require_session(self) -> Session:
        if self._session is None:
            raise SessionError("Not signed in")
        return self._session


class SessionError(Exception):
    """Base exception for session operations."""
    pass


class SignInError(SessionError):
    """Identity provider or network failure. Retryable."""
    pass


class NotRegisteredError(SessionError):
    """The signed-in email has no profile."""

    def __init__(self, email: str):
        self.email = email
        super().__init__(f"{email} is not registered. Ask an administrator for access.")


class ConfigurationError(SessionError):
    """The backend schema or access rules do not match what the app expects."""

    def __init__(self, message: str, kind: Optional[str] = None):
        self.kind = kind
        super().__init__(message)
