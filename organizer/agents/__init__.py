"""AI agents package."""

from organizer.agents.suggestion_agents import (
    AutocompleteSuggester,
    Debouncer,
    ItineraryAssistant,
    RestaurantRecommender,
    WellnessSuggester,
)

__all__ = [
    "AutocompleteSuggester",
    "Debouncer",
    "ItineraryAssistant",
    "RestaurantRecommender",
    "WellnessSuggester",
]
