"""
Tests for Couple Organizer models

Test strategy:
1. Unit tests for individual components (models, permissions, codecs)
2. Integration tests for screens against the in-memory backend
3. No real API calls in tests (use fakes)
"""

import pytest
from datetime import date, timedelta

from organizer.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from organizer.models.profile import IdentityAssertion, Role, Session, UserProfile, View
from organizer.models.records import (
    Expense,
    Goal,
    MonthlyClosing,
    RecurringExpense,
    Reminder,
    Trip,
)


class TestProfileModels:
    """Tests for identity and profile models."""

    def test_identity_email_is_normalized(self):
        assertion = IdentityAssertion(email="  Ana@Example.COM ")
        assert assertion.email == "ana@example.com"

    def test_profile_drops_unknown_views(self):
        profile = UserProfile(
            email="ana@example.com",
            name="Ana",
            allowed_views=["travel", "old-screen", "expenses"],
        )
        assert profile.allowed_views == [View.TRAVEL, View.EXPENSES]

    def test_profile_allows_null_views(self):
        profile = UserProfile(email="ana@example.com", name="Ana", allowed_views=None)
        assert profile.allowed_views is None
        assert profile.role == Role.VISITOR

    def test_profile_row_excludes_server_fields(self):
        profile = UserProfile(
            id="p1",
            email="ana@example.com",
            name="Ana",
            picture="https://example.com/a.png",
            allowed_views=[View.TRAVEL],
        )
        row = profile.to_row()
        assert "id" not in row
        assert "picture" not in row
        assert "created_at" not in row
        assert row["allowed_views"] == ["travel"]
        assert row["role"] == "visitor"

    def test_session_round_trips_as_json(self):
        session = Session(
            profile=UserProfile(email="ana@example.com", name="Ana"),
            access_token="tok",
            current_view=View.TRAVEL,
        )
        restored = Session.model_validate_json(session.model_dump_json())
        assert restored.profile.email == "ana@example.com"
        assert restored.current_view == View.TRAVEL

    def test_sign_in_time_is_utc_aware(self):
        session = Session(profile=UserProfile(email="ana@example.com", name="Ana"))
        assert session.signed_in_at.utcoffset() == timedelta(0)


class TestRecordModels:
    """Tests for domain record models."""

    def test_reminder_accepts_legacy_assignee(self):
        reminder = Reminder(title="Pay rent", created_by="Ana", assigned_to="Ana")
        assert reminder.assigned_to == ["Ana"]

    def test_reminder_null_assignee_becomes_empty(self):
        reminder = Reminder(title="Pay rent", created_by="Ana", assigned_to=None)
        assert reminder.assigned_to == []

    def test_reminder_progress(self):
        reminder = Reminder(
            title="Trip prep",
            created_by="Ana",
            subtasks=[{"text": "passports", "is_done": True}, {"text": "bags"}],
        )
        assert reminder.progress == 0.5
        assert not reminder.all_subtasks_done

    def test_expense_rejects_negative_amount(self):
        with pytest.raises(ValueError):
            Expense(description="Rent", amount=-1)

    def test_recurring_rejects_end_before_start(self):
        with pytest.raises(ValueError):
            RecurringExpense(
                description="Gym",
                amount=100,
                day_of_month=5,
                start_date=date(2024, 5, 1),
                end_date=date(2024, 4, 1),
            )

    def test_recurring_day_of_month_bounds(self):
        with pytest.raises(ValueError):
            RecurringExpense(description="Gym", amount=100, day_of_month=32, start_date=date(2024, 5, 1))

    def test_goal_progress_is_capped(self):
        goal = Goal(name="Trip", target_amount=100, current_amount=250)
        assert goal.progress == 1.0

    def test_closing_month_format(self):
        with pytest.raises(ValueError):
            MonthlyClosing(month_year="2024-5")
        closing = MonthlyClosing(month_year="2024-05", goal_allocations=None)
        assert closing.goal_allocations == {}

    def test_trip_rejects_end_before_start(self):
        with pytest.raises(ValueError):
            Trip(name="Rio", destination="Rio", start_date=date(2024, 5, 2), end_date=date(2024, 5, 1))

    def test_row_is_json_ready(self):
        expense = Expense(description="Rent", amount=10, due_date=date(2024, 5, 3), couple_id="c1")
        row = expense.to_row()
        assert row["due_date"] == "2024-05-03"
        assert row["payment_source"] == "Conta Pessoal"
        assert "id" not in row


class TestAuditModels:
    """Tests for audit event models."""

    def test_sign_in_denied_event(self):
        event = AuditEventBuilder.sign_in_denied("ana@example.com", "not_registered")
        assert event.event_type == AuditEventType.SIGN_IN_DENIED
        assert event.severity == AuditSeverity.WARNING
        assert event.actor_email == "ana@example.com"

    def test_calendar_event_types(self):
        created = AuditEventBuilder.calendar_event("created", "evt-1", "rec-1")
        deleted = AuditEventBuilder.calendar_event("deleted", "evt-1", "rec-1")
        assert created.event_type == AuditEventType.CALENDAR_EVENT_CREATED
        assert deleted.event_type == AuditEventType.CALENDAR_EVENT_DELETED

    def test_to_row_is_serializable(self):
        event = AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            description="boom",
            details={"a": 1},
        )
        row = event.to_row()
        assert row["event_type"] == "external_service_error"
        assert row["details"] == {"a": 1}
        assert isinstance(row["event_id"], str)

    def test_timestamp_is_utc_aware(self):
        event = AuditEventBuilder.sign_in_denied("ana@example.com", "not_registered")
        assert event.timestamp.utcoffset() == timedelta(0)
        assert event.to_row()["timestamp"].endswith("+00:00")
