"""
Profile Administration

Admins create and edit user profiles: who may sign in, with which role,
in which couple and with which explicit view list. Profiles are never
hard-deleted here.

Profiles are keyed by email. `user_profiles` rows need not carry an `id`
column at all, so nothing here looks one up.
"""

from typing import Any, Callable, Optional

from organizer.audit.logger import AuditLogger
from organizer.features.base import FeatureController, record_changes, table_collection, validate_record
from organizer.models.profile import Role, UserProfile, View
from organizer.models.records import RecordValidationError
from organizer.store.optimistic import MutationResult
from organizer.store.subscriptions import SubscriptionManager
from organizer.services.storage.interface import DataGateway


PROFILES_TABLE = "user_profiles"


class ProfileAdmin(FeatureController):
    """Controller for the admin screen."""

    def __init__(
        self,
        gateway: DataGateway,
        subscriptions: SubscriptionManager,
        on_profile_changed: Optional[Callable[[UserProfile], None]] = None,
        audit: Optional[AuditLogger] = None,
    ):
        super().__init__(gateway, subscriptions, audit)
        self._on_profile_changed = on_profile_changed
        self.profiles = table_collection(
            gateway, PROFILES_TABLE, UserProfile,
            order_by="name",
            sort_key=lambda p: p.name.lower(),
            audit=audit,
            key_column="email",
        )
        self._bindings = [(self.profiles, [PROFILES_TABLE])]

    def _email_taken(self, email: str, except_email: Optional[str] = None) -> bool:
        email = email.strip().lower()
        return email != except_email and self.profiles.get(email) is not None

    async def create_profile(
        self,
        email: str,
        name: str,
        role: Role = Role.VISITOR,
        couple_id: Optional[str] = None,
        allowed_views: Optional[list[View]] = None,
    ) -> MutationResult:
        if not email or "@" not in email:
            raise RecordValidationError("A valid email is required.", "email")
        if not name or not name.strip():
            raise RecordValidationError("A name is required.", "name")
        if self._email_taken(email):
            raise RecordValidationError(f"{email} already has a profile.", "email")

        profile = validate_record(UserProfile, {
            "email": email.strip(),
            "name": name,
            "role": role,
            "couple_id": couple_id or None,
            "allowed_views": allowed_views,
        })
        return await self.profiles.insert(profile)

    async def update_profile(self, email: str, changes: dict[str, Any]) -> MutationResult:
        email = email.strip().lower()
        current = self.profiles.get(email)
        if current is None:
            return MutationResult(ok=False, operation="update", error="Record no longer exists")
        if "email" in changes and self._email_taken(changes["email"], except_email=email):
            raise RecordValidationError(f"{changes['email']} already has a profile.", "email")

        edited = validate_record(UserProfile, {**current.model_dump(), **changes})
        typed_changes = {k: v for k, v in record_changes(edited).items() if k in changes}
        result = await self.profiles.update(email, typed_changes)
        if result.ok and self._on_profile_changed:
            self._on_profile_changed(result.record if isinstance(result.record, UserProfile) else edited)
        return result

    async def set_allowed_views(self, email: str, views: list[View]) -> MutationResult:
        """An empty list hands the profile back to its role's legacy view set."""
        return await self.update_profile(email, {"allowed_views": list(dict.fromkeys(views))})
