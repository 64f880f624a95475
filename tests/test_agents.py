"""Tests for the AI suggestion agents (no real model calls)."""

import asyncio
from datetime import date

import pytest

from organizer.agents import (
    AutocompleteSuggester,
    Debouncer,
    ItineraryAssistant,
    RestaurantRecommender,
    WellnessSuggester,
)
from organizer.models.records import (
    ItineraryCategory,
    ItineraryItem,
    RecommenderQuery,
    RecordValidationError,
    Trip,
)
from organizer.services.ai import AIResponseFormatError, AIServiceError

from tests.conftest import FakeCompletion


class TestDebouncer:

    async def test_newer_call_supersedes_waiting_one(self):
        debouncer = Debouncer(0.05)
        calls = []

        async def work(value):
            calls.append(value)
            return value

        first, second = await asyncio.gather(
            debouncer.call(lambda: work("a")),
            debouncer.call(lambda: work("ab")),
        )
        assert first is None
        assert second == "ab"
        assert calls == ["ab"]

    async def test_single_call_runs(self):
        debouncer = Debouncer(0)

        async def work():
            return 42

        assert await debouncer.call(work) == 42
        assert not debouncer.waiting


class TestRestaurantRecommender:

    async def test_known_restaurants_are_filtered(self):
        completion = FakeCompletion(json_result=[
            {"restaurant_name": "Sushi Place", "price_range": 3},
            {"restaurant_name": "  cantina  "},
            {"category": "no name"},
        ])
        recommender = RestaurantRecommender(completion)
        results = await recommender.recommend(RecommenderQuery(cravings="sushi"), known_restaurants=["Cantina"])

        assert [r.restaurant_name for r in results] == ["Sushi Place"]
        assert completion.calls[0]["use_search"] is True
        assert "Cantina" in completion.prompts[0]

    async def test_wrapped_array_is_accepted(self):
        completion = FakeCompletion(json_result={"recommendations": [{"restaurant_name": "Taqueria"}]})
        recommender = RestaurantRecommender(completion)
        results = await recommender.recommend(RecommenderQuery(cravings="tacos"))
        assert results[0].restaurant_name == "Taqueria"

    async def test_empty_craving_rejected(self):
        completion = FakeCompletion(json_result=[])
        recommender = RestaurantRecommender(completion)
        with pytest.raises(RecordValidationError):
            await recommender.recommend(RecommenderQuery(cravings="   "))
        assert completion.calls == []

    @pytest.mark.parametrize("error", [AIServiceError("down"), AIResponseFormatError("no JSON", "sorry")])
    async def test_failed_call_is_not_remembered(self, error):
        recommender = RestaurantRecommender(FakeCompletion(error=error))
        recommender.remember(RecommenderQuery(cravings="sushi"))
        with pytest.raises(AIServiceError):
            await recommender.recommend(RecommenderQuery(cravings="pizza"))
        assert [q.cravings for q in recommender.history] == ["sushi"]

    async def test_answered_query_is_remembered(self):
        recommender = RestaurantRecommender(FakeCompletion(json_result=[]))
        await recommender.recommend(RecommenderQuery(cravings="pizza"))
        assert [q.cravings for q in recommender.history] == ["pizza"]

    def test_history_is_newest_first_without_duplicates(self):
        recommender = RestaurantRecommender(FakeCompletion(), history_size=2)
        recommender.remember(RecommenderQuery(cravings="pizza"))
        recommender.remember(RecommenderQuery(cravings="sushi"))
        recommender.remember(RecommenderQuery(cravings="Pizza "))
        assert [q.cravings for q in recommender.history] == ["Pizza ", "sushi"]

        recommender.remember(RecommenderQuery(cravings="ramen"))
        assert [q.cravings for q in recommender.history] == ["ramen", "Pizza "]


class TestAutocomplete:

    async def test_short_input_makes_no_call(self):
        completion = FakeCompletion(json_result=["anything"])
        suggester = AutocompleteSuggester(completion, min_length=3)
        assert await suggester.suggest("ab") == []
        assert completion.calls == []

    async def test_failure_clears_suggestions(self):
        suggester = AutocompleteSuggester(FakeCompletion(error=AIServiceError("down")))
        assert await suggester.suggest("sushi") == []

    async def test_drops_echoes_and_duplicates(self):
        completion = FakeCompletion(json_result=["sushi", "sushi rodizio", "Sushi Rodizio", 3, "sushi delivery"])
        suggester = AutocompleteSuggester(completion)
        assert await suggester.suggest("sushi") == ["sushi rodizio", "sushi delivery"]

    async def test_on_input_replaces_suggestions(self):
        completion = FakeCompletion(json_result=["pizza napoletana"])
        suggester = AutocompleteSuggester(completion, debounce_seconds=0)
        assert await suggester.on_input("pizz") == ["pizza napoletana"]
        assert await suggester.on_input("p") == []
        assert suggester.suggestions == []


class TestItineraryAssistant:

    async def test_unknown_category_becomes_activity_and_repeats_dropped(self):
        completion = FakeCompletion(json_result=[
            {"description": "Boat tour", "category": "cruise", "item_date": "2024-07-02"},
            {"description": "Museum", "category": "activity"},
            {"description": "boat tour", "category": "activity"},
            {"description": "Pastéis de Belém", "category": "food", "estimated_cost": 10},
            "not an object",
        ])
        trip = Trip(id="t-1", name="Lisboa", destination="Lisboa",
                    start_date=date(2024, 7, 1), end_date=date(2024, 7, 10))
        existing = [ItineraryItem(trip_id="t-1", item_date=date(2024, 7, 1), description="Museum")]

        suggestions = await ItineraryAssistant(completion).suggest(trip, existing)

        assert [s.description for s in suggestions] == ["Boat tour", "Pastéis de Belém"]
        assert suggestions[0].category == ItineraryCategory.ACTIVITY
        assert suggestions[1].category == ItineraryCategory.FOOD
        assert "Museum" in completion.prompts[0]
        assert "2024-07-01 to 2024-07-10" in completion.prompts[0]


class TestWellness:

    async def test_mood_required(self):
        completion = FakeCompletion(text_result="Take a walk.")
        with pytest.raises(RecordValidationError):
            await WellnessSuggester(completion).suggest("  ")
        assert completion.calls == []

    async def test_returns_text(self):
        completion = FakeCompletion(text_result="Take a short walk together.")
        result = await WellnessSuggester(completion).suggest("tired", recent_activities=["yoga"])
        assert result == "Take a short walk together."
        assert "yoga" in completion.prompts[0]
        assert completion.calls[0]["feature"] == "wellness_suggester"

    async def test_recorded_moods_reach_the_prompt(self):
        completion = FakeCompletion(text_result="Cook together.")
        await WellnessSuggester(completion).suggest("tired", moods_today='Ana is feeling "Low".')
        assert 'Ana is feeling "Low".' in completion.prompts[0]
