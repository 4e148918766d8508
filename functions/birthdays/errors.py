"""
Error taxonomy for the birthday workflow and its collaborators.
"""

from __future__ import annotations


class BirthdayError(Exception):
    """Base class; carries the HTTP status the routes should answer with."""

    status_code = 500
    # When set, clients see this instead of the exception text.
    public_message: str | None = None

    def client_message(self) -> str:
        return self.public_message or str(self)


class ValidationError(BirthdayError):
    status_code = 400


class NotFoundError(BirthdayError):
    status_code = 404

    def __init__(self, message: str = "Birthday not found"):
        super().__init__(message)


class TransitionError(BirthdayError):
    """Raised when approving or declining a record that is no longer pending."""

    status_code = 409


class CalendarError(BirthdayError):
    public_message = "Failed to add to calendar"


class StoreError(BirthdayError):
    public_message = "Failed to reach the birthday store"


class AuthError(BirthdayError):
    status_code = 403
    public_message = "Authentication failed"
