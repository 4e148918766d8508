"""
Pydantic schemas for the birthday API.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from birthdays.db import BirthdayRecord


class SubmissionPayload(BaseModel):
    # Optional here so missing fields reach the workflow and yield a 400.
    name: Optional[str] = None
    birthday: Optional[str] = None
    relationship: Optional[str] = None


class BirthdayResponse(BaseModel):
    id: str
    name: str
    birthday: str
    relationship: str
    status: str
    submittedAt: datetime
    approvedAt: Optional[datetime] = None
    declinedAt: Optional[datetime] = None
    calendarEventId: Optional[str] = None

    @classmethod
    def from_record(cls, record: BirthdayRecord) -> "BirthdayResponse":
        return cls(**record.as_dict())


class MessageResponse(BaseModel):
    message: str


class ErrorResponse(BaseModel):
    error: str
