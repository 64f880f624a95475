"""
Main Orchestrator for Couple Organizer

This module ties the components together: one data gateway and one change
feed shared through a SubscriptionManager, and per browser client a
session plus the screen controllers built on top of it.

DESIGN DECISION: Screens are created per signed-in profile and never
hold credentials of their own:
- Table access goes through the single gateway
- Delegated Google calls read the bearer token from the client's session
- A 401 from Google signs that session out so the user re-consents

Shared state (AppComponents) is process-wide. Session state
(ClientComponents) belongs to one browser client, identified by a key
from new_client_key(), with its own session file.
"""

from typing import Optional

import structlog

from organizer.access import SessionManager, SessionStore, new_client_key
from organizer.agents import (
    AutocompleteSuggester,
    ItineraryAssistant,
    RestaurantRecommender,
    WellnessSuggester,
)
from organizer.audit import AuditLogger
from organizer.config import Settings, get_settings
from organizer.features import (
    ExpensePlanner,
    MoodTracker,
    ProfileAdmin,
    ReminderBoard,
    RestaurantList,
    TripBoard,
    TripDetail,
)
from organizer.features.admin import PROFILES_TABLE
from organizer.models.profile import UserProfile, View
from organizer.models.records import Trip
from organizer.services.ai import CompletionService, GeminiCompletionService
from organizer.services.calendar import CalendarSync, GoogleCalendarService
from organizer.services.identity import GoogleIdentityProvider, IdentityProvider
from organizer.services.storage import (
    ChangeFeed,
    DataGateway,
    Filter,
    InMemoryBackend,
    InMemoryGateway,
    ObjectStorage,
    StorageError,
    SupabaseAuditStorage,
    SupabaseChangeFeed,
    SupabaseClientFactory,
    SupabaseDataGateway,
    SupabaseObjectStorage,
)
from organizer.store import SubscriptionManager


logger = structlog.get_logger(__name__)


class AppComponents:
    """
    Process-wide components, wired once and shared by every client.

    Per-client sessions come from new_client().
    """

    def __init__(
        self,
        gateway: DataGateway,
        feed: ChangeFeed,
        storage: ObjectStorage,
        identity: IdentityProvider,
        audit: AuditLogger,
        completion: Optional[CompletionService] = None,
        use_remote: bool = True,
        settings: Optional[Settings] = None,
    ):
        self.gateway = gateway
        self.feed = feed
        self.storage = storage
        self.identity = identity
        self.audit = audit
        self.subscriptions = SubscriptionManager(feed)
        self.use_remote = use_remote
        self.settings = settings or get_settings()

        self.completion = completion
        self.itinerary_assistant: Optional[ItineraryAssistant] = None
        self.wellness: Optional[WellnessSuggester] = None
        if completion is not None:
            self.itinerary_assistant = ItineraryAssistant(completion)
            self.wellness = WellnessSuggester(completion)

    def new_client(self, client_key: Optional[str] = None) -> "ClientComponents":
        """
        Build the session and calendar sync of one browser client.

        Raises:
            ValueError: the client key is malformed
        """
        app = self.settings.app
        client_key = client_key or new_client_key()
        store = SessionStore.for_client(app.session_path, client_key)
        session = SessionManager(
            self.gateway,
            self.identity,
            store,
            audit=self.audit,
            default_view=View(app.default_view),
        )

        calendar_sync = None
        if self.use_remote:
            calendar = GoogleCalendarService(token_provider=lambda: session.access_token)
            calendar_sync = CalendarSync(
                calendar,
                on_auth_error=lambda: session.handle_credential_expired("google_calendar"),
                audit=self.audit,
            )
        return ClientComponents(self, client_key, session, calendar_sync)

    async def partner_name(self, profile: UserProfile) -> Optional[str]:
        """Name of the other profile in the same couple, if any."""
        if not profile.couple_id:
            return None
        try:
            rows = await self.gateway.select(PROFILES_TABLE, [Filter.eq("couple_id", profile.couple_id)])
        except StorageError as e:
            logger.warning("partner_lookup_failed", error=str(e))
            return None
        for row in rows:
            if str(row.get("email", "")).lower() != profile.email:
                return row.get("name")
        return None

    async def shutdown(self) -> None:
        await self.subscriptions.close()


class ClientComponents:
    """
    One browser client: its session, its calendar credential and the
    screen controllers for whoever is signed in there.
    """

    def __init__(
        self,
        app: AppComponents,
        client_key: str,
        session: SessionManager,
        calendar_sync: Optional[CalendarSync] = None,
    ):
        self.app = app
        self.client_key = client_key
        self.session = session
        self.calendar_sync = calendar_sync

        # Recent suggestions and debounce state are per person
        self.recommender: Optional[RestaurantRecommender] = None
        self.autocomplete: Optional[AutocompleteSuggester] = None
        if app.completion is not None:
            settings = app.settings.app
            self.recommender = RestaurantRecommender(app.completion, settings.recommendation_history_size)
            self.autocomplete = AutocompleteSuggester(
                app.completion,
                min_length=settings.autocomplete_min_length,
                debounce_seconds=settings.autocomplete_debounce_seconds,
            )

    def _profile(self) -> UserProfile:
        profile = self.session.profile
        if profile is None:
            raise RuntimeError("No signed-in profile")
        return profile

    # =========================================================================
    # SCREENS
    # =========================================================================

    async def reminder_board(self) -> ReminderBoard:
        profile = self._profile()
        return ReminderBoard(
            self.app.gateway,
            self.app.subscriptions,
            profile,
            partner_name=await self.app.partner_name(profile),
            audit=self.app.audit,
        )

    def expense_planner(self) -> ExpensePlanner:
        return ExpensePlanner(
            self.app.gateway,
            self.app.subscriptions,
            self._profile(),
            calendar_sync=self.calendar_sync,
            audit=self.app.audit,
        )

    def trip_board(self) -> TripBoard:
        return TripBoard(self.app.gateway, self.app.subscriptions, self._profile(), audit=self.app.audit)

    def trip_detail(self, trip: Trip) -> TripDetail:
        return TripDetail(
            self.app.gateway,
            self.app.subscriptions,
            self.app.storage,
            trip,
            bucket=self.app.settings.supabase.trip_gallery_bucket,
            audit=self.app.audit,
        )

    def profile_admin(self) -> ProfileAdmin:
        return ProfileAdmin(
            self.app.gateway,
            self.app.subscriptions,
            on_profile_changed=self.session.replace_profile,
            audit=self.app.audit,
        )

    def restaurant_list(self) -> RestaurantList:
        return RestaurantList(self.app.gateway, self.app.subscriptions, self._profile(), audit=self.app.audit)

    async def mood_tracker(self) -> MoodTracker:
        profile = self._profile()
        return MoodTracker(
            self.app.gateway,
            self.app.subscriptions,
            profile,
            partner_name=await self.app.partner_name(profile),
            audit=self.app.audit,
        )


def create_app_components(
    use_remote: bool = True,
    identity: Optional[IdentityProvider] = None,
    completion: Optional[CompletionService] = None,
) -> AppComponents:
    """
    Factory function to create the shared application components.

    Args:
        use_remote: Whether to connect to Supabase and Google.
                    Set to False for an in-memory demo without credentials.
        identity: Identity provider override
        completion: Completion service override

    Returns:
        Wired AppComponents; call new_client() per browser client
    """
    settings = get_settings()

    if use_remote:
        factory = SupabaseClientFactory()
        gateway: DataGateway = SupabaseDataGateway(factory)
        feed: ChangeFeed = SupabaseChangeFeed(factory)
        storage: ObjectStorage = SupabaseObjectStorage(factory)
        audit = AuditLogger(SupabaseAuditStorage(gateway))
    else:
        memory = InMemoryGateway(InMemoryBackend())
        gateway, feed, storage = memory, memory, memory
        audit = AuditLogger()  # Local-only logging

    identity = identity or GoogleIdentityProvider()

    if completion is None and use_remote:
        try:
            completion = GeminiCompletionService(audit=audit)
        except Exception as e:
            # AI screens degrade to "unavailable"; everything else still works
            logger.warning("ai_not_configured", error=str(e))
            completion = None

    return AppComponents(
        gateway=gateway,
        feed=feed,
        storage=storage,
        identity=identity,
        audit=audit,
        completion=completion,
        use_remote=use_remote,
        settings=settings,
    )
