from __future__ import annotations

import enum


class ErrorKind(str, enum.Enum):
    invalid_input = "invalid_input"
    persistence = "persistence"
    notification = "notification"


class ReconciliationError(Exception):
    """Base error for payment reconciliation and its collaborators."""

    kind: ErrorKind

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidInputError(ReconciliationError):
    kind = ErrorKind.invalid_input


class PersistenceError(ReconciliationError):
    kind = ErrorKind.persistence


class NotificationError(ReconciliationError):
    kind = ErrorKind.notification

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
