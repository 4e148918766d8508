"""
Calendar side effect: Google Calendar (REST + service account) and an in-memory double.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol
from urllib.parse import quote

import httpx
from google.auth import exceptions as google_auth_exceptions
from google.auth.transport.requests import Request as GoogleAuthRequest
from google.oauth2 import service_account

from birthdays.errors import CalendarError

logger = logging.getLogger(__name__)

GOOGLE_CALENDAR_API_BASE = "https://www.googleapis.com/calendar/v3"
CALENDAR_SCOPES = ["https://www.googleapis.com/auth/calendar"]
YEARLY_RECURRENCE = "RRULE:FREQ=YEARLY"


@dataclass
class CalendarEvent:
    """A recurring all-day event, ready to be inserted."""

    event_id: str
    summary: str
    description: str
    date: str
    recurrence: list[str] = field(default_factory=lambda: [YEARLY_RECURRENCE])

    def as_payload(self) -> dict:
        return {
            "id": self.event_id,
            "summary": self.summary,
            "description": self.description,
            "start": {"date": self.date},
            "end": {"date": self.date},
            "recurrence": list(self.recurrence),
        }


class CalendarClient(Protocol):
    """Defines what the workflow needs from a calendar service."""

    def insert_event(self, event: CalendarEvent) -> str:
        """Create the event and return its id once the service confirmed it."""
        ...


@dataclass
class InMemoryCalendarClient:
    """Test double for calendar interactions."""

    calendar_id: str = "primary"
    events: dict = None

    def __post_init__(self):
        if self.events is None:
            self.events = {}

    def insert_event(self, event: CalendarEvent) -> str:
        # Re-inserting an existing id leaves the first event in place.
        self.events.setdefault(event.event_id, event.as_payload())
        return event.event_id


def _safe_google_error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        payload = None

    if isinstance(payload, dict):
        error_payload = payload.get("error")
        if isinstance(error_payload, dict):
            message = error_payload.get("message")
            if isinstance(message, str) and message.strip():
                return " ".join(message.split())[:200]
        if isinstance(error_payload, str) and error_payload.strip():
            return " ".join(error_payload.split())[:200]

    raw_text = response.text.strip()
    if raw_text:
        return " ".join(raw_text.split())[:200]
    return "Request failed without an error payload"


class GoogleCalendarClient:
    """
    Inserts events through the Google Calendar v3 REST API.

    Authenticates with service-account credentials; the target calendar must be
    shared with the service account's email address.
    """

    def __init__(
        self,
        calendar_id: str,
        credentials: Any,
        http_client: Optional[httpx.Client] = None,
    ):
        if not calendar_id:
            raise ValueError("A calendar id is required for GoogleCalendarClient")
        self.calendar_id = calendar_id
        self._credentials = credentials
        self._http_client = http_client or httpx.Client(
            base_url=GOOGLE_CALENDAR_API_BASE, timeout=30.0
        )

    @classmethod
    def from_service_account_info(
        cls, info: dict, calendar_id: str
    ) -> "GoogleCalendarClient":
        credentials = service_account.Credentials.from_service_account_info(
            info, scopes=CALENDAR_SCOPES
        )
        return cls(calendar_id, credentials)

    def _access_token(self) -> str:
        if not self._credentials.valid:
            try:
                self._credentials.refresh(GoogleAuthRequest())
            except google_auth_exceptions.GoogleAuthError as exc:
                raise CalendarError(
                    f"Google Calendar credential refresh failed: {exc}"
                ) from exc
        return self._credentials.token

    def insert_event(self, event: CalendarEvent) -> str:
        path = f"/calendars/{quote(self.calendar_id, safe='')}/events"
        headers = {"Authorization": f"Bearer {self._access_token()}"}
        try:
            response = self._http_client.post(
                path, json=event.as_payload(), headers=headers
            )
        except httpx.HTTPError as exc:
            raise CalendarError(f"Google Calendar request failed: {exc}") from exc

        if response.status_code == 409:
            # The id is derived from the record, so a duplicate means an earlier
            # attempt already created it.
            logger.info("Calendar event %s already exists", event.event_id)
            return event.event_id

        if response.status_code < 200 or response.status_code >= 300:
            raise CalendarError(
                "Google Calendar insert failed "
                f"({response.status_code}): {_safe_google_error_message(response)}"
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise CalendarError("Google Calendar returned invalid JSON") from exc
        return payload.get("id") or event.event_id
