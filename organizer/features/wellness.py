"""
Mood Tracker

Each person records one mood per day in `mood_entries`. Only today's
entries are fetched; saving again the same day updates the existing
entry instead of adding a second one.
"""

from datetime import date
from typing import Callable, Optional

from organizer.audit.logger import AuditLogger
from organizer.features.base import FeatureController, table_collection, validate_record
from organizer.models.profile import UserProfile
from organizer.models.records import MoodEntry
from organizer.services.storage.interface import DataGateway, Filter
from organizer.store.optimistic import MutationResult
from organizer.store.subscriptions import SubscriptionManager


MOOD_TABLE = "mood_entries"


class MoodTracker(FeatureController):
    """Controller for the mood part of the wellness screen."""

    def __init__(
        self,
        gateway: DataGateway,
        subscriptions: SubscriptionManager,
        profile: UserProfile,
        partner_name: Optional[str] = None,
        audit: Optional[AuditLogger] = None,
        today: Callable[[], date] = date.today,
    ):
        super().__init__(gateway, subscriptions, audit)
        self._profile = profile
        self._partner_name = partner_name
        self._today = today
        self.entries = table_collection(
            gateway, MOOD_TABLE, MoodEntry,
            filters=lambda: [Filter.eq("entry_date", self._today().isoformat())],
            visible=lambda e: e.entry_date == self._today(),
            audit=audit,
        )
        self._bindings = [(self.entries, [MOOD_TABLE])]

    @property
    def me(self) -> str:
        return self._profile.name

    @property
    def partner_name(self) -> Optional[str]:
        return self._partner_name

    def entry_of(self, user: Optional[str]) -> Optional[MoodEntry]:
        if not user:
            return None
        return next((e for e in self.entries if e.user_id == user), None)

    @property
    def my_mood(self) -> Optional[MoodEntry]:
        return self.entry_of(self.me)

    @property
    def partner_mood(self) -> Optional[MoodEntry]:
        return self.entry_of(self._partner_name)

    async def set_mood(self, mood: int) -> MutationResult:
        """
        Raises:
            RecordValidationError: mood outside 1-5
        """
        entry = validate_record(MoodEntry, {"user_id": self.me, "mood": mood, "entry_date": self._today()})
        existing = self.my_mood
        if existing is not None and existing.id:
            if existing.mood == entry.mood:
                return MutationResult(ok=True, operation="update", record=existing)
            return await self.entries.update(existing.id, {"mood": entry.mood})
        return await self.entries.insert(entry)

    def mood_summary(self) -> str:
        """Today's moods as a sentence for the wellness prompt; empty when none is set."""
        parts = []
        if self.my_mood:
            parts.append(f'{self.me} is feeling "{self.my_mood.label}".')
        if self.partner_mood:
            parts.append(f'{self._partner_name} is feeling "{self.partner_mood.label}".')
        return " ".join(parts)
