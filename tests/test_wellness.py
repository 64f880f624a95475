"""Tests for daily mood tracking."""

from datetime import date

import pytest

from organizer.features import MoodTracker
from organizer.models.records import RecordValidationError


TODAY = date(2024, 7, 1)


@pytest.fixture
async def moods(gateway, subscriptions, nicolas):
    tracker = MoodTracker(gateway, subscriptions, nicolas, partner_name="Ana", today=lambda: TODAY)
    await tracker.mount()
    yield tracker
    await tracker.unmount()


class TestMoodTracker:

    async def test_only_todays_entries_are_loaded(self, backend, moods):
        backend.seed("mood_entries", [
            {"user_id": "Ana", "mood": 2, "entry_date": "2024-07-01"},
            {"user_id": "Nicolas", "mood": 5, "entry_date": "2024-06-30"},
        ])
        await moods.refresh()
        assert moods.partner_mood.mood == 2
        assert moods.my_mood is None

    async def test_second_save_updates_same_entry(self, backend, moods):
        first = await moods.set_mood(4)
        assert first.ok
        await backend.flush()
        second = await moods.set_mood(1)
        assert second.ok
        await backend.flush()

        rows = backend.rows("mood_entries")
        assert len(rows) == 1
        assert rows[0]["mood"] == 1
        assert rows[0]["entry_date"] == "2024-07-01"
        assert rows[0]["user_id"] == "Nicolas"

    @pytest.mark.parametrize("mood", [0, 6])
    async def test_out_of_range_rejected(self, backend, moods, mood):
        with pytest.raises(RecordValidationError):
            await moods.set_mood(mood)
        assert backend.rows("mood_entries") == []

    async def test_summary_names_both_moods(self, backend, moods):
        backend.seed("mood_entries", [{"user_id": "Ana", "mood": 2, "entry_date": "2024-07-01"}])
        await moods.set_mood(5)
        await backend.flush()
        assert moods.mood_summary() == 'Nicolas is feeling "Great". Ana is feeling "Low".'

    async def test_no_moods_means_empty_summary(self, moods):
        assert moods.mood_summary() == ""
