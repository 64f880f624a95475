"""Tests for the shared reminders board."""

from datetime import date, timedelta

import pytest

from organizer.features import ReminderBoard, ReminderFilter, urgency_key
from organizer.models.records import RecordValidationError, Reminder


TODAY = date(2024, 5, 10)


@pytest.fixture
async def board(gateway, subscriptions, nicolas):
    board = ReminderBoard(gateway, subscriptions, nicolas, partner_name="Ana")
    await board.mount()
    yield board
    await board.unmount()


@pytest.fixture
async def other_board(other_gateway, other_subscriptions, ana):
    board = ReminderBoard(other_gateway, other_subscriptions, ana, partner_name="Nicolas")
    await board.mount()
    yield board
    await board.unmount()


def seed(backend, title, assigned_to, due=None, done=False, created_by="Nicolas"):
    return backend.seed("reminders", [{
        "title": title,
        "created_by": created_by,
        "assigned_to": assigned_to,
        "due_date": due.isoformat() if due else None,
        "is_done": done,
    }])[0]


class TestTwoDevices:

    async def test_done_on_one_device_disappears_on_the_other(self, backend, board, other_board):
        row = seed(backend, "Pay rent", ["Nicolas", "Ana"])
        await board.refresh()
        await other_board.refresh()
        assert other_board.reminders.get(row["id"]) is not None

        result = await board.mark_done(row["id"])
        await backend.flush()

        assert result.ok
        assert board.reminders.get(row["id"]) is None
        assert other_board.reminders.get(row["id"]) is None

    async def test_new_reminder_reaches_the_other_device(self, backend, board, other_board):
        result = await board.add("Buy flowers", assigned_to=["Ana"])
        await backend.flush()

        assert result.ok
        assert [r.title for r in other_board.visible(ReminderFilter.ME)] == ["Buy flowers"]


class TestBoard:

    async def test_done_reminders_are_not_fetched(self, backend, board):
        seed(backend, "Open", ["Nicolas"])
        seed(backend, "Closed", ["Nicolas"], done=True)
        await board.refresh()
        assert [r.title for r in board.reminders] == ["Open"]

    async def test_filters(self, backend, board):
        seed(backend, "Mine", ["Nicolas"])
        seed(backend, "Hers", ["Ana"])
        seed(backend, "Ours", ["Nicolas", "Ana"])
        await board.refresh()

        assert {r.title for r in board.visible(ReminderFilter.ME, TODAY)} == {"Mine", "Ours"}
        assert {r.title for r in board.visible(ReminderFilter.OTHER, TODAY)} == {"Hers"}
        assert len(board.visible(ReminderFilter.ALL, TODAY)) == 3

    async def test_urgency_order(self, backend, board):
        seed(backend, "Undated", ["Nicolas"])
        seed(backend, "Next week", ["Nicolas"], due=TODAY + timedelta(days=7))
        seed(backend, "Today", ["Nicolas"], due=TODAY)
        seed(backend, "Late", ["Nicolas"], due=TODAY - timedelta(days=2))
        await board.refresh()

        titles = [r.title for r in board.visible(ReminderFilter.ME, TODAY)]
        assert titles == ["Late", "Today", "Next week", "Undated"]

    def test_urgency_ties_break_by_age(self):
        older = Reminder(title="a", created_by="x", created_at="2024-01-01T00:00:00+00:00")
        newer = Reminder(title="b", created_by="x", created_at="2024-02-01T00:00:00+00:00")
        assert urgency_key(older, TODAY) < urgency_key(newer, TODAY)

    async def test_add_defaults_to_me(self, board):
        result = await board.add("  Call mom  ", subtasks=["dial", " "])
        assert result.ok
        reminder = result.record
        assert reminder.title == "Call mom"
        assert reminder.assigned_to == ["Nicolas"]
        assert reminder.created_by == "Nicolas"
        assert [st.text for st in reminder.subtasks] == ["dial"]

    async def test_add_requires_title(self, board):
        with pytest.raises(RecordValidationError):
            await board.add("   ")

    async def test_toggle_subtask(self, backend, board):
        result = await board.add("Trip prep", subtasks=["passports", "bags"])
        reminder = result.record
        first = reminder.subtasks[0]
        await backend.flush()

        toggled = await board.toggle_subtask(reminder.id, first.id)
        await backend.flush()

        assert toggled.ok
        updated = board.reminders.get(reminder.id)
        assert updated.subtasks[0].is_done is True
        assert updated.subtasks[1].is_done is False

    async def test_on_day(self, backend, board):
        seed(backend, "Dentist", ["Nicolas"], due=TODAY)
        seed(backend, "Other", ["Nicolas"], due=TODAY + timedelta(days=1))
        await board.refresh()
        assert [r.title for r in board.on_day(TODAY)] == ["Dentist"]

    async def test_offline_delete_is_undone(self, backend, board):
        row = seed(backend, "Keep me", ["Nicolas"])
        await board.refresh()
        backend.offline = True

        result = await board.delete(row["id"])

        assert not result.ok
        assert board.reminders.get(row["id"]) is not None
