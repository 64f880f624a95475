"""Google Calendar package."""

from organizer.services.calendar.google_calendar import (
    CalendarAuthError,
    CalendarError,
    CalendarEventGoneError,
    CalendarSync,
    GoogleCalendarService,
    build_recurring_event,
    monthly_rule,
)

__all__ = [
    "CalendarAuthError",
    "CalendarError",
    "CalendarEventGoneError",
    "CalendarSync",
    "GoogleCalendarService",
    "build_recurring_event",
    "monthly_rule",
]
