"""
Google Calendar Sync

A recurring expense can carry a linked all-day recurring event in the
user's Google Calendar (monthly, on the expense's day of month, optionally
ending on the expense's end date). The linked event id is stored on the
expense row.

RULES:
- Sync on, no event yet     -> create, store the new id
- Sync on, event exists     -> update in place (recreate if it vanished)
- Sync off, event exists    -> delete, clear the id
- Deleting the expense      -> delete the event first
- HTTP 401                  -> the delegated credential expired; run the
                               session's sign-out / re-consent path
- HTTP 404/410 on delete    -> already gone, not an error
"""

from datetime import date
from typing import Any, Awaitable, Callable, Optional

import requests
import structlog

from organizer.audit.logger import AuditLogger
from organizer.config import GoogleOAuthSettings, get_settings
from organizer.models.audit import AuditEventBuilder


logger = structlog.get_logger(__name__)

CALENDAR_API = "https://www.googleapis.com/calendar/v3/calendars"

GONE_STATUSES = {404, 410}


def monthly_rule(day_of_month: int, end_date: Optional[date] = None) -> str:
    rule = f"RRULE:FREQ=MONTHLY;BYMONTHDAY={day_of_month}"
    if end_date:
        rule += f";UNTIL={end_date.strftime('%Y%m%d')}"
    return rule


def build_recurring_event(
    summary: str,
    amount: float,
    day_of_month: int,
    start_date: date,
    end_date: Optional[date] = None,
) -> dict[str, Any]:
    """Request body for a monthly all-day event starting on start_date."""
    return {
        "summary": summary,
        "description": f"Recurring expense: R$ {amount:,.2f}",
        "start": {"date": start_date.isoformat()},
        "end": {"date": start_date.isoformat()},
        "recurrence": [monthly_rule(day_of_month, end_date)],
    }


class GoogleCalendarService:
    """Calendar REST calls under the delegated bearer token."""

    def __init__(
        self,
        token_provider: Callable[[], Optional[str]],
        settings: Optional[GoogleOAuthSettings] = None,
        session: Optional[requests.Session] = None,
    ):
        self._token_provider = token_provider
        self._settings = settings or get_settings().google_oauth
        self._http = session or requests.Session()

    @property
    def _events_url(self) -> str:
        return f"{CALENDAR_API}/{self._settings.calendar_id}/events"

    def _headers(self) -> dict[str, str]:
        token = self._token_provider()
        if not token:
            raise CalendarAuthError("Google Calendar is not connected. Sign in with Google again.")
        return {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }

    def _send(self, method: str, url: str, body: Optional[dict] = None) -> requests.Response:
        headers = self._headers()
        try:
            response = self._http.request(
                method,
                url,
                headers=headers,
                json=body,
                timeout=self._settings.request_timeout_seconds,
            )
        except requests.RequestException as e:
            raise CalendarError(f"Could not reach Google Calendar: {e}") from e
        if response.status_code == 401:
            raise CalendarAuthError("Google session expired.")
        return response

    async def create_event(self, body: dict[str, Any]) -> str:
        response = self._send("POST", self._events_url, body)
        if not response.ok:
            raise CalendarError(f"Event creation failed ({response.status_code}): {response.text}")
        return response.json()["id"]

    async def update_event(self, event_id: str, body: dict[str, Any]) -> str:
        response = self._send("PUT", f"{self._events_url}/{event_id}", body)
        if response.status_code in GONE_STATUSES:
            raise CalendarEventGoneError(event_id)
        if not response.ok:
            raise CalendarError(f"Event update failed ({response.status_code}): {response.text}")
        return response.json().get("id", event_id)

    async def delete_event(self, event_id: str) -> bool:
        """
        Delete an event.

        Returns:
            False if it was already gone
        """
        response = self._send("DELETE", f"{self._events_url}/{event_id}")
        if response.status_code in GONE_STATUSES:
            logger.info("calendar_event_already_gone", event_id=event_id)
            return False
        if not response.ok:
            raise CalendarError(f"Event deletion failed ({response.status_code}): {response.text}")
        return True


class CalendarSync:
    """
    Keeps one recurring expense's linked event in step with the expense.

    Args:
        calendar: REST client
        on_auth_error: Session hook run on HTTP 401 before the error propagates
        audit: Optional audit logger
    """

    def __init__(
        self,
        calendar: GoogleCalendarService,
        on_auth_error: Optional[Callable[[], Awaitable[None]]] = None,
        audit: Optional[AuditLogger] = None,
    ):
        self._calendar = calendar
        self._on_auth_error = on_auth_error
        self._audit = audit

    async def sync(
        self,
        enabled: bool,
        event_id: Optional[str],
        body: dict[str, Any],
        record_id: Optional[str] = None,
    ) -> Optional[str]:
        """
        Apply the sync rules.

        Returns:
            The event id to store on the record (None when unlinked)

        Raises:
            CalendarAuthError: credential expired (session hook already run)
            CalendarError: any other calendar failure
        """
        try:
            if enabled and not event_id:
                new_id = await self._calendar.create_event(body)
                await self._log("created", new_id, record_id)
                return new_id
            if enabled and event_id:
                try:
                    updated_id = await self._calendar.update_event(event_id, body)
                except CalendarEventGoneError:
                    # Deleted outside the app; relink instead of keeping a dead id
                    new_id = await self._calendar.create_event(body)
                    await self._log("created", new_id, record_id)
                    return new_id
                await self._log("updated", updated_id, record_id)
                return updated_id
            if not enabled and event_id:
                await self._calendar.delete_event(event_id)
                await self._log("deleted", event_id, record_id)
                return None
            return None
        except CalendarAuthError:
            await self._expired()
            raise
        except CalendarError as e:
            await self._failed(e)
            raise

    async def remove(self, event_id: Optional[str], record_id: Optional[str] = None) -> None:
        """Delete the linked event ahead of its record. Gone events are fine."""
        if not event_id:
            return
        try:
            await self._calendar.delete_event(event_id)
        except CalendarAuthError:
            await self._expired()
            raise
        except CalendarError as e:
            await self._failed(e)
            raise
        await self._log("deleted", event_id, record_id)

    async def _expired(self) -> None:
        logger.warning("calendar_credential_expired")
        if self._on_auth_error:
            await self._on_auth_error()

    async def _failed(self, error: Exception) -> None:
        logger.warning("calendar_sync_failed", error=str(error))
        if self._audit:
            await self._audit.log_external_service_error("google_calendar", str(error))

    async def _log(self, action: str, event_id: str, record_id: Optional[str]) -> None:
        logger.info("calendar_event_synced", action=action, event_id=event_id, record_id=record_id)
        if self._audit:
            await self._audit.log(AuditEventBuilder.calendar_event(action, event_id, record_id))


class CalendarError(Exception):
    """Base exception for calendar calls."""
    pass


class CalendarAuthError(CalendarError):
    """Delegated credential missing or rejected (HTTP 401)."""
    pass


class CalendarEventGoneError(CalendarError):
    """The linked event no longer exists (HTTP 404/410)."""

    def __init__(self, event_id: str):
        self.event_id = event_id
        super().__init__(f"Calendar event {event_id} no longer exists")
