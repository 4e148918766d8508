import json
import unittest
from unittest.mock import MagicMock

import httpx
from google.auth import exceptions as google_auth_exceptions

from birthdays.calendar_client import (
    GOOGLE_CALENDAR_API_BASE,
    CalendarEvent,
    GoogleCalendarClient,
    InMemoryCalendarClient,
)
from birthdays.errors import CalendarError


def _event() -> CalendarEvent:
    return CalendarEvent(
        event_id="0a1b2c3d4e",
        summary="🎂 Ama's Birthday",
        description="Turning 35 this year 🎉",
        date="1990-05-04",
    )


def _credentials(valid: bool = True) -> MagicMock:
    credentials = MagicMock()
    credentials.valid = valid
    credentials.token = "service-token"
    return credentials


class GoogleCalendarClientTests(unittest.TestCase):
    def _client(self, handler, credentials=None) -> GoogleCalendarClient:
        http_client = httpx.Client(
            base_url=GOOGLE_CALENDAR_API_BASE,
            transport=httpx.MockTransport(handler),
        )
        return GoogleCalendarClient(
            "admin@example.com", credentials or _credentials(), http_client=http_client
        )

    def test_insert_event_posts_all_day_yearly_event(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"id": "0a1b2c3d4e", "status": "confirmed"})

        event_id = self._client(handler).insert_event(_event())

        self.assertEqual(event_id, "0a1b2c3d4e")
        (request,) = requests
        self.assertEqual(request.method, "POST")
        self.assertIn("/calendar/v3/calendars/", str(request.url))
        self.assertTrue(str(request.url).endswith("/events"))
        self.assertIn("admin", str(request.url))
        self.assertEqual(request.headers["Authorization"], "Bearer service-token")
        body = json.loads(request.content)
        self.assertEqual(body["id"], "0a1b2c3d4e")
        self.assertEqual(body["start"], {"date": "1990-05-04"})
        self.assertEqual(body["end"], {"date": "1990-05-04"})
        self.assertEqual(body["recurrence"], ["RRULE:FREQ=YEARLY"])

    def test_existing_event_counts_as_created(self):
        client = self._client(
            lambda request: httpx.Response(
                409, json={"error": {"code": 409, "message": "The requested identifier already exists."}}
            )
        )
        self.assertEqual(client.insert_event(_event()), "0a1b2c3d4e")

    def test_api_error_raises_calendar_error(self):
        client = self._client(
            lambda request: httpx.Response(
                403, json={"error": {"code": 403, "message": "Rate Limit Exceeded"}}
            )
        )
        with self.assertRaises(CalendarError) as ctx:
            client.insert_event(_event())
        self.assertIn("403", str(ctx.exception))
        self.assertIn("Rate Limit Exceeded", str(ctx.exception))
        self.assertEqual(ctx.exception.client_message(), "Failed to add to calendar")

    def test_network_error_raises_calendar_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("timed out", request=request)

        with self.assertRaises(CalendarError):
            self._client(handler).insert_event(_event())

    def test_expired_credentials_are_refreshed(self):
        credentials = _credentials(valid=False)
        client = self._client(
            lambda request: httpx.Response(200, json={"id": "0a1b2c3d4e"}),
            credentials=credentials,
        )
        client.insert_event(_event())
        credentials.refresh.assert_called_once()

    def test_refresh_failure_raises_calendar_error(self):
        credentials = _credentials(valid=False)
        credentials.refresh.side_effect = google_auth_exceptions.RefreshError(
            "invalid_grant"
        )
        handler = MagicMock()
        client = self._client(handler, credentials=credentials)

        with self.assertRaises(CalendarError):
            client.insert_event(_event())
        handler.assert_not_called()

    def test_calendar_id_is_required(self):
        with self.assertRaises(ValueError):
            GoogleCalendarClient("", _credentials())


class InMemoryCalendarClientTests(unittest.TestCase):
    def test_insert_is_keyed_by_event_id(self):
        calendar = InMemoryCalendarClient()
        self.assertEqual(calendar.insert_event(_event()), "0a1b2c3d4e")
        calendar.insert_event(_event())
        self.assertEqual(len(calendar.events), 1)
        self.assertEqual(calendar.events["0a1b2c3d4e"]["summary"], "🎂 Ama's Birthday")


if __name__ == "__main__":
    unittest.main()
