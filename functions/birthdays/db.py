"""
Birthday record store: Firestore, SQLAlchemy and an in-memory test implementation.
"""

from __future__ import annotations

import logging
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterator, Optional, Protocol

from dacite import Config, DaciteError, from_dict
from firebase_admin import firestore
from google.api_core import exceptions as google_exceptions
from sqlalchemy import Column, DateTime, String, create_engine, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from birthdays.errors import StoreError

logger = logging.getLogger(__name__)

BIRTHDAYS_COLLECTION = "birthdays"


class BirthdayStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DECLINED = "declined"


@dataclass
class BirthdayRecord:
    id: str
    name: str
    birthday: str
    status: BirthdayStatus
    submitted_at: datetime
    relationship: str = ""
    approved_at: Optional[datetime] = None
    declined_at: Optional[datetime] = None
    calendar_event_id: Optional[str] = None

    def as_dict(self) -> dict:
        """Persisted (camelCase) shape; unset optional fields are left out."""
        data = {
            "id": self.id,
            "name": self.name,
            "birthday": self.birthday,
            "relationship": self.relationship,
            "status": self.status.value,
            "submittedAt": self.submitted_at,
            "approvedAt": self.approved_at,
            "declinedAt": self.declined_at,
            "calendarEventId": self.calendar_event_id,
        }
        return {key: value for key, value in data.items() if value is not None}


class BirthdayStore(Protocol):
    """Interface for birthday persistence."""

    def create_birthday(
        self,
        *,
        name: str,
        birthday: str,
        relationship: str,
        submitted_at: datetime,
    ) -> BirthdayRecord:
        ...

    def get_birthday(self, birthday_id: str) -> Optional[BirthdayRecord]:
        ...

    def list_birthdays(self) -> list[BirthdayRecord]:
        """All records, newest submission first."""
        ...

    def update_birthday(
        self,
        birthday_id: str,
        *,
        status: BirthdayStatus,
        approved_at: Optional[datetime] = None,
        declined_at: Optional[datetime] = None,
        calendar_event_id: Optional[str] = None,
    ) -> None:
        ...


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _transition_fields(
    status: BirthdayStatus,
    approved_at: Optional[datetime],
    declined_at: Optional[datetime],
    calendar_event_id: Optional[str],
) -> dict:
    fields: dict[str, Any] = {"status": status}
    if approved_at is not None:
        fields["approved_at"] = approved_at
    if declined_at is not None:
        fields["declined_at"] = declined_at
    if calendar_event_id is not None:
        fields["calendar_event_id"] = calendar_event_id
    return fields


class InMemoryBirthdayStore:
    """Simple in-memory store for development and tests."""

    def __init__(self):
        self.records: Dict[str, BirthdayRecord] = {}

    def create_birthday(
        self,
        *,
        name: str,
        birthday: str,
        relationship: str,
        submitted_at: datetime,
    ) -> BirthdayRecord:
        record = BirthdayRecord(
            id=uuid.uuid4().hex,
            name=name,
            birthday=birthday,
            relationship=relationship,
            status=BirthdayStatus.PENDING,
            submitted_at=submitted_at,
        )
        self.records[record.id] = record
        return record

    def get_birthday(self, birthday_id: str) -> Optional[BirthdayRecord]:
        return self.records.get(birthday_id)

    def list_birthdays(self) -> list[BirthdayRecord]:
        return sorted(
            self.records.values(), key=lambda r: r.submitted_at, reverse=True
        )

    def update_birthday(
        self,
        birthday_id: str,
        *,
        status: BirthdayStatus,
        approved_at: Optional[datetime] = None,
        declined_at: Optional[datetime] = None,
        calendar_event_id: Optional[str] = None,
    ) -> None:
        record = self.records.get(birthday_id)
        if not record:
            return
        self.records[birthday_id] = replace(
            record,
            **_transition_fields(status, approved_at, declined_at, calendar_event_id),
        )


class SqlBirthdayStore:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for SqlBirthdayStore")
        self.engine = create_engine(
            database_url,
            future=True,
            pool_pre_ping=True,
            pool_recycle=1800,
        )
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)

    @contextmanager
    def _session(self) -> Iterator[Session]:
        try:
            with self.Session() as session:
                yield session
        except SQLAlchemyError as exc:
            logger.exception("Birthday store query failed")
            raise StoreError("Birthday store query failed") from exc

    def _to_record(self, row: "BirthdayRow") -> BirthdayRecord:
        return BirthdayRecord(
            id=row.id,
            name=row.name,
            birthday=row.birthday,
            relationship=row.relationship or "",
            status=BirthdayStatus(row.status),
            submitted_at=_as_utc(row.submitted_at),
            approved_at=_as_utc(row.approved_at),
            declined_at=_as_utc(row.declined_at),
            calendar_event_id=row.calendar_event_id,
        )

    def create_birthday(
        self,
        *,
        name: str,
        birthday: str,
        relationship: str,
        submitted_at: datetime,
    ) -> BirthdayRecord:
        with self._session() as session:
            row = BirthdayRow(
                id=uuid.uuid4().hex,
                name=name,
                birthday=birthday,
                relationship=relationship,
                status=BirthdayStatus.PENDING.value,
                submitted_at=submitted_at,
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return self._to_record(row)

    def get_birthday(self, birthday_id: str) -> Optional[BirthdayRecord]:
        with self._session() as session:
            row = session.get(BirthdayRow, birthday_id)
            if not row:
                return None
            return self._to_record(row)

    def list_birthdays(self) -> list[BirthdayRecord]:
        with self._session() as session:
            stmt = select(BirthdayRow).order_by(BirthdayRow.submitted_at.desc())
            rows = session.execute(stmt).scalars().all()
            return [self._to_record(row) for row in rows]

    def update_birthday(
        self,
        birthday_id: str,
        *,
        status: BirthdayStatus,
        approved_at: Optional[datetime] = None,
        declined_at: Optional[datetime] = None,
        calendar_event_id: Optional[str] = None,
    ) -> None:
        with self._session() as session:
            row = session.get(BirthdayRow, birthday_id)
            if not row:
                return
            fields = _transition_fields(
                status, approved_at, declined_at, calendar_event_id
            )
            fields["status"] = status.value
            for key, value in fields.items():
                setattr(row, key, value)
            session.commit()


# Firestore documents use the camelCase keys of BirthdayRecord.as_dict().
_DOCUMENT_FIELDS = {
    "submittedAt": "submitted_at",
    "approvedAt": "approved_at",
    "declinedAt": "declined_at",
    "calendarEventId": "calendar_event_id",
}


class FirestoreBirthdayStore:
    """Firestore-backed implementation; one document per submission."""

    def __init__(self, client: Any, collection: str = BIRTHDAYS_COLLECTION):
        self.client = client
        self.collection = collection

    @contextmanager
    def _guard(self, action: str) -> Iterator[None]:
        try:
            yield
        except google_exceptions.GoogleAPIError as exc:
            logger.exception("Firestore %s failed", action)
            raise StoreError(f"Firestore {action} failed") from exc

    def _collection(self):
        return self.client.collection(self.collection)

    def _to_record(self, doc_id: str, data: dict) -> BirthdayRecord:
        values = {_DOCUMENT_FIELDS.get(key, key): value for key, value in data.items()}
        values["id"] = doc_id
        values.setdefault("relationship", "")
        try:
            return from_dict(
                data_class=BirthdayRecord,
                data=values,
                config=Config(cast=[BirthdayStatus], check_types=False),
            )
        except (DaciteError, ValueError) as exc:
            # Missing required fields or an unknown status value.
            logger.error("[%s] Malformed birthday document: %s", doc_id, exc)
            raise StoreError(f"Malformed birthday document {doc_id}") from exc

    def create_birthday(
        self,
        *,
        name: str,
        birthday: str,
        relationship: str,
        submitted_at: datetime,
    ) -> BirthdayRecord:
        data = {
            "name": name,
            "birthday": birthday,
            "relationship": relationship,
            "status": BirthdayStatus.PENDING.value,
            "submittedAt": submitted_at,
        }
        with self._guard("insert"):
            _, doc_ref = self._collection().add(data)
        return self._to_record(doc_ref.id, data)

    def get_birthday(self, birthday_id: str) -> Optional[BirthdayRecord]:
        with self._guard("read"):
            doc = self._collection().document(birthday_id).get()
        if not doc.exists:
            return None
        return self._to_record(doc.id, doc.to_dict())

    def list_birthdays(self) -> list[BirthdayRecord]:
        query = self._collection().order_by(
            "submittedAt", direction=firestore.Query.DESCENDING
        )
        with self._guard("query"):
            docs = list(query.stream())
        return [self._to_record(doc.id, doc.to_dict()) for doc in docs]

    def update_birthday(
        self,
        birthday_id: str,
        *,
        status: BirthdayStatus,
        approved_at: Optional[datetime] = None,
        declined_at: Optional[datetime] = None,
        calendar_event_id: Optional[str] = None,
    ) -> None:
        snake_to_camel = {v: k for k, v in _DOCUMENT_FIELDS.items()}
        fields = _transition_fields(status, approved_at, declined_at, calendar_event_id)
        fields["status"] = status.value
        update = {snake_to_camel.get(key, key): value for key, value in fields.items()}
        with self._guard("update"):
            self._collection().document(birthday_id).update(update)


Base = declarative_base()


class BirthdayRow(Base):
    __tablename__ = "birthdays"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    birthday = Column(String, nullable=False)
    relationship = Column(String, nullable=False, default="")
    status = Column(String, nullable=False, index=True)
    submitted_at = Column(DateTime(timezone=True), nullable=False, index=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    declined_at = Column(DateTime(timezone=True), nullable=True)
    calendar_event_id = Column(String, nullable=True)
