import unittest
from datetime import date, datetime, timezone
from unittest.mock import MagicMock

from birthdays.calendar_client import InMemoryCalendarClient, YEARLY_RECURRENCE
from birthdays.db import BirthdayStatus, InMemoryBirthdayStore
from birthdays.errors import (
    CalendarError,
    NotFoundError,
    StoreError,
    TransitionError,
    ValidationError,
)
from birthdays.workflow import (
    BirthdayWorkflow,
    age_this_year,
    calendar_event_id_for,
)

SUBMITTED = datetime(2025, 3, 1, 9, 30, tzinfo=timezone.utc)
REVIEWED = datetime(2025, 3, 2, 18, 0, tzinfo=timezone.utc)


class FlakyStore(InMemoryBirthdayStore):
    """Fails the first update to ``failing_status``, like a dropped connection."""

    def __init__(self, failing_status=BirthdayStatus.APPROVED):
        super().__init__()
        self.failing_status = failing_status
        self.failures_left = 1

    def update_birthday(self, birthday_id, **kwargs):
        if self.failures_left and kwargs["status"] == self.failing_status:
            self.failures_left -= 1
            raise StoreError("connection reset")
        super().update_birthday(birthday_id, **kwargs)


class SubmitTests(unittest.TestCase):
    def setUp(self):
        self.store = InMemoryBirthdayStore()
        self.calendar = MagicMock()
        self.workflow = BirthdayWorkflow(
            self.store, self.calendar, clock=lambda: SUBMITTED
        )

    def test_submit_creates_pending_record(self):
        record = self.workflow.submit("Ama", "1990-05-04")

        self.assertEqual(record.status, BirthdayStatus.PENDING)
        self.assertEqual(record.relationship, "")
        self.assertEqual(record.submitted_at, SUBMITTED)
        self.assertIsNone(record.approved_at)
        self.assertIsNone(record.declined_at)
        self.assertIs(self.store.get_birthday(record.id), record)
        self.calendar.insert_event.assert_not_called()

    def test_submit_keeps_relationship(self):
        record = self.workflow.submit("Kofi", "2000-01-01", "Sister")
        self.assertEqual(record.relationship, "Sister")

    def test_missing_name_or_birthday_is_rejected(self):
        for name, birthday in [(None, "1990-05-04"), ("Ama", None), ("", ""), ("  ", "1990-05-04")]:
            with self.subTest(name=name, birthday=birthday):
                with self.assertRaises(ValidationError) as ctx:
                    self.workflow.submit(name, birthday)
                self.assertEqual(str(ctx.exception), "Name and birthday are required")
        self.assertEqual(self.store.records, {})

    def test_unparseable_birthday_is_rejected(self):
        with self.assertRaises(ValidationError):
            self.workflow.submit("Ama", "May 4th")
        with self.assertRaises(ValidationError):
            self.workflow.submit("Ama", "1990-02-30")
        self.assertEqual(self.store.records, {})

    def test_listing_is_newest_first_regardless_of_insert_order(self):
        times = iter(
            [
                datetime(2025, 1, 2, tzinfo=timezone.utc),
                datetime(2025, 1, 3, tzinfo=timezone.utc),
                datetime(2025, 1, 1, tzinfo=timezone.utc),
            ]
        )
        workflow = BirthdayWorkflow(self.store, self.calendar, clock=lambda: next(times))
        workflow.submit("Middle", "1990-01-01")
        workflow.submit("Newest", "1991-01-01")
        workflow.submit("Oldest", "1992-01-01")

        names = [r.name for r in workflow.list_birthdays()]
        self.assertEqual(names, ["Newest", "Middle", "Oldest"])


class ApproveTests(unittest.TestCase):
    def setUp(self):
        self.store = InMemoryBirthdayStore()
        self.calendar = InMemoryCalendarClient()
        self.now = SUBMITTED
        self.workflow = BirthdayWorkflow(
            self.store, self.calendar, clock=lambda: self.now
        )

    def test_approve_creates_yearly_event_and_marks_approved(self):
        record = self.workflow.submit("Ama", "1990-05-04")
        self.now = REVIEWED

        approved = self.workflow.approve(record.id)

        self.assertEqual(approved.status, BirthdayStatus.APPROVED)
        self.assertEqual(approved.approved_at, REVIEWED)
        self.assertIsNone(approved.declined_at)
        self.assertEqual(len(self.calendar.events), 1)
        event = self.calendar.events[approved.calendar_event_id]
        self.assertEqual(event["summary"], "🎂 Ama's Birthday")
        self.assertEqual(event["description"], "Turning 35 this year 🎉")
        self.assertEqual(event["start"], {"date": "1990-05-04"})
        self.assertEqual(event["end"], {"date": "1990-05-04"})
        self.assertEqual(event["recurrence"], [YEARLY_RECURRENCE])

    def test_description_includes_relationship(self):
        record = self.workflow.submit("Kofi", "2000-01-01", "Brother")
        approved = self.workflow.approve(record.id)
        event = self.calendar.events[approved.calendar_event_id]
        self.assertEqual(
            event["description"], "Relationship: Brother\nTurning 25 this year 🎉"
        )

    def test_age_ignores_whether_birthday_has_passed(self):
        self.assertEqual(age_this_year("1990-12-31", date(2025, 1, 1)), 35)
        self.assertEqual(age_this_year("1990-01-01", date(2025, 12, 31)), 35)

    def test_approve_unknown_id(self):
        with self.assertRaises(NotFoundError):
            self.workflow.approve("missing")
        self.assertEqual(self.store.records, {})
        self.assertEqual(self.calendar.events, {})

    def test_approve_twice_is_rejected(self):
        record = self.workflow.submit("Ama", "1990-05-04")
        self.workflow.approve(record.id)

        with self.assertRaises(TransitionError):
            self.workflow.approve(record.id)
        self.assertEqual(len(self.calendar.events), 1)

    def test_approve_declined_record_is_rejected(self):
        record = self.workflow.submit("Ama", "1990-05-04")
        self.workflow.decline(record.id)

        with self.assertRaises(TransitionError):
            self.workflow.approve(record.id)
        self.assertEqual(self.calendar.events, {})
        self.assertEqual(self.store.get_birthday(record.id).status, BirthdayStatus.DECLINED)

    def test_calendar_failure_leaves_record_pending(self):
        calendar = MagicMock()
        calendar.insert_event.side_effect = CalendarError("quota exceeded")
        workflow = BirthdayWorkflow(self.store, calendar, clock=lambda: self.now)
        record = workflow.submit("Ama", "1990-05-04")

        with self.assertRaises(CalendarError):
            workflow.approve(record.id)

        stored = self.store.get_birthday(record.id)
        self.assertEqual(stored.status, BirthdayStatus.PENDING)
        self.assertIsNone(stored.approved_at)
        self.assertIsNone(stored.calendar_event_id)
        calendar.insert_event.assert_called_once()

    def test_retry_after_lost_event_id_does_not_duplicate_event(self):
        store = FlakyStore(failing_status=BirthdayStatus.PENDING)
        workflow = BirthdayWorkflow(store, self.calendar, clock=lambda: self.now)
        record = workflow.submit("Ama", "1990-05-04")

        with self.assertRaises(StoreError):
            workflow.approve(record.id)
        stored = store.get_birthday(record.id)
        self.assertEqual(stored.status, BirthdayStatus.PENDING)
        self.assertIsNone(stored.calendar_event_id)

        approved = workflow.approve(record.id)
        self.assertEqual(approved.status, BirthdayStatus.APPROVED)
        self.assertEqual(list(self.calendar.events), [calendar_event_id_for(record.id)])

    def test_retry_reuses_saved_event_without_calendar_call(self):
        store = FlakyStore()
        calendar = MagicMock(wraps=InMemoryCalendarClient())
        workflow = BirthdayWorkflow(store, calendar, clock=lambda: self.now)
        record = workflow.submit("Ama", "1990-05-04")

        with self.assertRaises(StoreError):
            workflow.approve(record.id)
        pending = store.get_birthday(record.id)
        self.assertEqual(pending.status, BirthdayStatus.PENDING)
        self.assertEqual(pending.calendar_event_id, calendar_event_id_for(record.id))

        approved = workflow.approve(record.id)

        self.assertEqual(approved.status, BirthdayStatus.APPROVED)
        self.assertEqual(approved.calendar_event_id, calendar_event_id_for(record.id))
        calendar.insert_event.assert_called_once()

    def test_event_id_is_stable_and_google_compatible(self):
        event_id = calendar_event_id_for("abc123")
        self.assertEqual(event_id, calendar_event_id_for("abc123"))
        self.assertNotEqual(event_id, calendar_event_id_for("abc124"))
        self.assertTrue(set(event_id) <= set("0123456789abcdef"))
        self.assertGreaterEqual(len(event_id), 5)


class DeclineTests(unittest.TestCase):
    def setUp(self):
        self.store = InMemoryBirthdayStore()
        self.calendar = MagicMock()
        self.now = SUBMITTED
        self.workflow = BirthdayWorkflow(
            self.store, self.calendar, clock=lambda: self.now
        )

    def test_decline_marks_declined_without_calendar_call(self):
        record = self.workflow.submit("Efua", "2000-01-01", "Sister")
        self.now = REVIEWED

        declined = self.workflow.decline(record.id)

        self.assertEqual(declined.status, BirthdayStatus.DECLINED)
        self.assertEqual(declined.declined_at, REVIEWED)
        self.assertIsNone(declined.approved_at)
        self.calendar.insert_event.assert_not_called()

    def test_decline_unknown_id(self):
        with self.assertRaises(NotFoundError):
            self.workflow.decline("missing")

    def test_decline_twice_is_rejected(self):
        record = self.workflow.submit("Efua", "2000-01-01")
        self.workflow.decline(record.id)
        with self.assertRaises(TransitionError):
            self.workflow.decline(record.id)


if __name__ == "__main__":
    unittest.main()
