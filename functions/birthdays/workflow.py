"""
Submission lifecycle: intake, listing and the approve / decline transitions.

A record starts ``pending`` and moves exactly once, either to ``approved``
(after its calendar event exists) or to ``declined``. Both HTTP surfaces, the
JSON API and the direct links, go through this module.
"""

from __future__ import annotations

import hashlib
import logging
from datetime import date, datetime, timezone
from typing import Callable, Optional

from birthdays.calendar_client import CalendarClient, CalendarEvent
from birthdays.db import BirthdayRecord, BirthdayStatus, BirthdayStore
from birthdays.errors import CalendarError, NotFoundError, TransitionError, ValidationError

logger = logging.getLogger(__name__)

BIRTHDAY_FORMAT = "%Y-%m-%d"
MISSING_FIELDS_MESSAGE = "Name and birthday are required"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_birthday(value: str) -> date:
    try:
        return datetime.strptime(value, BIRTHDAY_FORMAT).date()
    except ValueError as exc:
        raise ValidationError("Birthday must be a date in YYYY-MM-DD form") from exc


def age_this_year(birthday: str, today: date) -> int:
    """
    Age the person turns during ``today``'s year.

    Plain year subtraction: whether the birthday has already passed is ignored.
    """
    return today.year - parse_birthday(birthday).year


def calendar_event_id_for(birthday_id: str) -> str:
    # Google event ids allow base32hex characters only; hex digits qualify.
    return hashlib.sha1(f"birthday:{birthday_id}".encode("utf-8")).hexdigest()


def build_birthday_event(record: BirthdayRecord, today: date) -> CalendarEvent:
    age = age_this_year(record.birthday, today)
    description = ""
    if record.relationship:
        description += f"Relationship: {record.relationship}\n"
    description += f"Turning {age} this year 🎉"
    return CalendarEvent(
        event_id=calendar_event_id_for(record.id),
        summary=f"🎂 {record.name}'s Birthday",
        description=description,
        date=record.birthday,
    )


class BirthdayWorkflow:
    """Drives birthday records through their review states."""

    def __init__(
        self,
        store: BirthdayStore,
        calendar: CalendarClient,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.calendar = calendar
        self.clock = clock

    def submit(
        self,
        name: Optional[str],
        birthday: Optional[str],
        relationship: Optional[str] = None,
    ) -> BirthdayRecord:
        name = (name or "").strip()
        birthday = (birthday or "").strip()
        if not name or not birthday:
            raise ValidationError(MISSING_FIELDS_MESSAGE)
        parse_birthday(birthday)

        record = self.store.create_birthday(
            name=name,
            birthday=birthday,
            relationship=(relationship or "").strip(),
            submitted_at=self.clock(),
        )
        logger.info("[%s] Birthday submitted for %s", record.id, record.name)
        return record

    def list_birthdays(self) -> list[BirthdayRecord]:
        return self.store.list_birthdays()

    def _get_pending(self, birthday_id: str, action: str) -> BirthdayRecord:
        record = self.store.get_birthday(birthday_id)
        if not record:
            logger.warning("[%s] Cannot %s: birthday not found", birthday_id, action)
            raise NotFoundError()
        if record.status != BirthdayStatus.PENDING:
            logger.warning(
                "[%s] Cannot %s: birthday is already %s",
                birthday_id,
                action,
                record.status.value,
            )
            raise TransitionError(f"Birthday is already {record.status.value}")
        return record

    def approve(self, birthday_id: str) -> BirthdayRecord:
        """
        Create the yearly calendar event, then mark the record approved.

        The confirmed event id is saved on the still-pending record before the
        status changes. A retry after a failed status update finds it there and
        skips the calendar; the id is also derived from the record id, so a
        retry that does reach Google gets a 409 instead of a second event.
        """
        record = self._get_pending(birthday_id, "approve")
        now = self.clock()

        event_id = record.calendar_event_id
        if event_id:
            logger.info("[%s] Reusing calendar event %s", birthday_id, event_id)
        else:
            event = build_birthday_event(record, now.date())
            try:
                event_id = self.calendar.insert_event(event)
            except CalendarError:
                logger.exception("[%s] Calendar insert failed", birthday_id)
                raise
            logger.info("[%s] Calendar event %s created", birthday_id, event_id)
            self.store.update_birthday(
                birthday_id,
                status=BirthdayStatus.PENDING,
                calendar_event_id=event_id,
            )

        self.store.update_birthday(
            birthday_id,
            status=BirthdayStatus.APPROVED,
            approved_at=now,
            calendar_event_id=event_id,
        )
        logger.info("[%s] Birthday approved", birthday_id)
        return self.store.get_birthday(birthday_id) or record

    def decline(self, birthday_id: str) -> BirthdayRecord:
        record = self._get_pending(birthday_id, "decline")
        self.store.update_birthday(
            birthday_id,
            status=BirthdayStatus.DECLINED,
            declined_at=self.clock(),
        )
        logger.info("[%s] Birthday declined", birthday_id)
        return self.store.get_birthday(birthday_id) or record
