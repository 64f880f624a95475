"""Tests for the audit logger: correlation ids and the in-memory buffer."""

from uuid import uuid4

import pytest

from organizer.audit import AuditLogger, correlated, correlated_action
from organizer.models.audit import AuditEventBuilder, AuditEventType
from organizer.services.calendar import CalendarError, CalendarSync


class TestCorrelation:

    async def test_events_inside_block_share_one_id(self, audit):
        with correlated() as correlation_id:
            await audit.log_refetch_failed("notes", "down")
            await audit.log_mutation_rolled_back("notes", "update", "down", "n-1")
        await audit.log_refetch_failed("notes", "down again")

        first, second, outside = audit.events
        assert first.correlation_id == correlation_id
        assert second.correlation_id == correlation_id
        assert outside.correlation_id is None

    async def test_nested_block_keeps_outer_id(self, audit):
        with correlated() as outer:
            with correlated() as inner:
                await audit.log_refetch_failed("notes", "down")
        assert inner == outer
        assert audit.events[0].correlation_id == outer

    async def test_explicit_id_is_not_overwritten(self, audit):
        explicit = uuid4()
        with correlated():
            await audit.log_external_service_error("google_calendar", "boom", correlation_id=explicit)
        assert audit.events[0].correlation_id == explicit

    async def test_decorated_action_correlates_its_events(self, audit):
        @correlated_action
        async def two_steps():
            await audit.log_refetch_failed("a", "x")
            await audit.log_refetch_failed("b", "y")

        await two_steps()
        await two_steps()
        ids = [e.correlation_id for e in audit.events]
        assert ids[0] == ids[1]
        assert ids[2] == ids[3]
        assert ids[0] != ids[2]
        assert None not in ids


class TestBuffer:

    async def test_only_recent_events_are_kept(self):
        audit = AuditLogger(keep_events=3)
        for i in range(5):
            await audit.log(AuditEventBuilder.refetch_failed(f"c-{i}", "down"))
        assert [e.entity_type for e in audit.events] == ["c-2", "c-3", "c-4"]
        assert len(audit.events_of(AuditEventType.REFETCH_FAILED)) == 3


class FailingCalendar:

    async def delete_event(self, event_id):
        raise CalendarError("HTTP 500")


async def test_calendar_failure_is_audited_as_external_error(audit):
    sync = CalendarSync(FailingCalendar(), audit=audit)
    with pytest.raises(CalendarError):
        await sync.remove("evt-1", "rec-1")
    [event] = audit.events_of(AuditEventType.EXTERNAL_SERVICE_ERROR)
    assert event.details == {"service": "google_calendar"}
    assert event.error_message == "HTTP 500"
