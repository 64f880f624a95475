"""
AI Suggestion Agents

DESIGN DECISION: Each agent is a thin prompt builder + result parser on
top of the shared CompletionService. Agents:
- NEVER write to the data platform (results only feed a form)
- NEVER invent structure: unparseable items are dropped, not guessed
- Pass user text through verbatim, with the context needed to avoid
  repeating what the user already has

1. RESTAURANT RECOMMENDER:
   - CAN: Search the web for real places matching a craving
   - MUST: Return places the couple has not listed yet

2. AUTOCOMPLETE:
   - CAN: Suggest short completions for the recommender search box
   - NEVER raises; a failure just clears the suggestions

3. ITINERARY ASSISTANT:
   - CAN: Propose activities for a trip
   - MUST: Avoid items already on the itinerary

4. WELLNESS SUGGESTER:
   - CAN: Suggest one small activity for the current mood (free text)
"""

import asyncio
from typing import Any, Awaitable, Callable, Optional, TypeVar

import structlog
from pydantic import ValidationError

from organizer.models.records import (
    AIRecommendation,
    ItineraryCategory,
    ItineraryItem,
    ItinerarySuggestion,
    RecommenderQuery,
    RecordValidationError,
    Trip,
)
from organizer.services.ai.gemini_service import AIServiceError, CompletionService


logger = structlog.get_logger(__name__)

T = TypeVar("T")


def _as_list(data: Any, *keys: str) -> list:
    """Models sometimes wrap the array in an object."""
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        for key in keys:
            if isinstance(data.get(key), list):
                return data[key]
        return [data]
    return []


class Debouncer:
    """
    Clear-the-previous-timer debounce.

    A new call cancels a call that is still waiting out its delay. Once the
    wrapped coroutine has started it is never cancelled; its result is just
    not delivered to a superseded caller.
    """

    def __init__(self, delay_seconds: float):
        self._delay = delay_seconds
        self._timer: Optional[asyncio.Task] = None

    @property
    def waiting(self) -> bool:
        return self._timer is not None and not self._timer.done()

    async def call(self, fn: Callable[[], Awaitable[T]]) -> Optional[T]:
        """
        Run fn after the quiet period.

        Returns:
            fn's result, or None if a newer call superseded this one
        """
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        timer = asyncio.ensure_future(self._wait_then_run(fn))
        self._timer = timer
        await asyncio.wait({timer})
        if timer.cancelled() or timer is not self._timer:
            return None
        return timer.result()

    async def _wait_then_run(self, fn: Callable[[], Awaitable[T]]) -> T:
        await asyncio.sleep(self._delay)
        return await asyncio.shield(asyncio.ensure_future(fn()))


class RestaurantRecommender:
    """
    Finds restaurants for a craving, using web search.

    Remembers the last few searches (newest first, without duplicates) so
    the screen can offer them again.
    """

    def __init__(self, completion: CompletionService, history_size: int = 5):
        self._completion = completion
        self._history_size = history_size
        self.history: list[RecommenderQuery] = []

    def remember(self, query: RecommenderQuery) -> None:
        key = (query.cravings.strip().lower(), query.exclusions.strip().lower())
        self.history = [
            q for q in self.history
            if (q.cravings.strip().lower(), q.exclusions.strip().lower()) != key
        ]
        self.history.insert(0, query)
        del self.history[self._history_size:]

    async def recommend(
        self,
        query: RecommenderQuery,
        known_restaurants: Optional[list[str]] = None,
        location: Optional[str] = None,
    ) -> list[AIRecommendation]:
        """
        Ask for up to five recommendations.

        Raises:
            RecordValidationError: empty craving
            AIServiceError: the call failed or returned no JSON

        Only a query that produced a parsed answer enters the history.
        """
        if not query.cravings.strip():
            raise RecordValidationError("Tell us what you are craving.", "cravings")

        known = ", ".join(known_restaurants or []) or "none"
        prompt = f"""You are a restaurant guide for a couple.

They are craving: {query.cravings}
Avoid: {query.exclusions or "nothing in particular"}
Location: {location or "not specified"}
Restaurants they already have on their list (do not suggest these): {known}

Search the web for real, currently open places. Suggest up to 5.

Respond with ONLY a JSON array, each item in this exact format:
{{"restaurant_name": "...", "category": "...", "reason": "why it matches", "price_range": 1-4,
"delivery": true, "dine_in": true, "address": "...", "rating": 4.5, "maps_url": "..."}}"""

        data = await self._completion.complete_json(prompt, "restaurant_recommender", use_search=True)

        known_lower = {name.strip().lower() for name in known_restaurants or []}
        results = []
        for item in _as_list(data, "recommendations", "restaurants"):
            try:
                recommendation = AIRecommendation.model_validate(item)
            except ValidationError as e:
                logger.warning("recommendation_dropped", error=str(e))
                continue
            if recommendation.restaurant_name.strip().lower() in known_lower:
                continue
            results.append(recommendation)

        self.remember(query)
        return results


class AutocompleteSuggester:
    """Search-box completions. Debounced, never raises."""

    def __init__(
        self,
        completion: CompletionService,
        min_length: int = 3,
        debounce_seconds: float = 0.25,
    ):
        self._completion = completion
        self._min_length = min_length
        self._debouncer = Debouncer(debounce_seconds)
        self.suggestions: list[str] = []

    async def suggest(self, text: str) -> list[str]:
        query = text.strip()
        if len(query) < self._min_length:
            return []

        prompt = f"""Complete this restaurant search for a couple deciding where to eat.

They typed: "{query}"

Respond with ONLY a JSON array of up to 5 short completions (2-5 words each)."""

        try:
            data = await self._completion.complete_json(prompt, "autocomplete", temperature=0.4)
        except AIServiceError as e:
            logger.info("autocomplete_unavailable", error=str(e))
            return []

        lowered = query.lower()
        suggestions: list[str] = []
        for item in _as_list(data, "suggestions"):
            if not isinstance(item, str):
                continue
            suggestion = item.strip()
            if not suggestion or suggestion.lower() in lowered:
                continue
            if suggestion.lower() in (s.lower() for s in suggestions):
                continue
            suggestions.append(suggestion)
        return suggestions[:5]

    async def on_input(self, text: str) -> list[str]:
        """Typing handler: debounce, then replace the current suggestions."""
        if len(text.strip()) < self._min_length:
            self.suggestions = []
            return self.suggestions

        result = await self._debouncer.call(lambda: self.suggest(text))
        if result is not None:
            self.suggestions = result
        return self.suggestions


class ItineraryAssistant:
    """Proposes itinerary items that are not already planned."""

    def __init__(self, completion: CompletionService):
        self._completion = completion

    async def suggest(
        self,
        trip: Trip,
        existing: list[ItineraryItem],
        request: str = "",
    ) -> list[ItinerarySuggestion]:
        planned = "\n".join(
            f"- {item.item_date.isoformat()}: {item.description}" for item in existing
        ) or "- nothing yet"
        dates = ""
        if trip.start_date and trip.end_date:
            dates = f"from {trip.start_date.isoformat()} to {trip.end_date.isoformat()}"
        categories = ", ".join(c.value for c in ItineraryCategory)

        prompt = f"""You are planning a trip to {trip.destination} {dates} for a couple.

Already on the itinerary (do NOT repeat these):
{planned}

Extra wishes: {request or "none"}

Suggest up to 5 new items. Respond with ONLY a JSON array, each item:
{{"description": "...", "category": one of [{categories}], "item_date": "YYYY-MM-DD",
"start_time": "HH:MM", "location": "...", "estimated_cost": 0}}"""

        data = await self._completion.complete_json(prompt, "itinerary_assistant")

        taken = {item.description.strip().lower() for item in existing}
        known_categories = {c.value for c in ItineraryCategory}
        suggestions = []
        for raw in _as_list(data, "items", "suggestions"):
            if not isinstance(raw, dict):
                continue
            if raw.get("category") not in known_categories:
                raw = {**raw, "category": ItineraryCategory.ACTIVITY.value}
            try:
                suggestion = ItinerarySuggestion.model_validate(raw)
            except ValidationError as e:
                logger.warning("itinerary_suggestion_dropped", error=str(e))
                continue
            if suggestion.description.strip().lower() in taken:
                continue
            taken.add(suggestion.description.strip().lower())
            suggestions.append(suggestion)
        return suggestions


class WellnessSuggester:
    """One small, mood-aware activity suggestion."""

    def __init__(self, completion: CompletionService):
        self._completion = completion

    async def suggest(
        self,
        mood: str,
        note: str = "",
        recent_activities: Optional[list[str]] = None,
        moods_today: str = "",
    ) -> str:
        """`moods_today` is the couple's recorded moods, e.g. from MoodTracker.mood_summary()."""
        if not mood.strip():
            raise RecordValidationError("Pick a mood first.", "mood")

        recent = ", ".join(recent_activities or []) or "none"
        prompt = f"""Someone in a couple is feeling "{mood}" today.
Their note: {note or "no note"}
Activities they did recently: {recent}
Today's recorded moods: {moods_today or "none"}

Suggest ONE small, concrete wellness activity (under 30 minutes) that fits
this mood. Lean cozy and restful for low moods, livelier for good ones. Two or three friendly sentences, no lists."""

        return await self._completion.complete_text(prompt, "wellness_suggester", temperature=0.9)
