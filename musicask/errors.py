"""Error codes and exception types for the MusicAsk service.

Every rejection the stores can produce is a ``MusicAskError``.  The API layer
renders them as failure envelopes; nothing here is fatal and no store mutates
state before raising one.
"""
from __future__ import annotations

import enum


class ErrorCode(str, enum.Enum):
    """Machine-readable failure codes carried in the response envelope."""

    ACTIVE_EVENT_EXISTS = "ACTIVE_EVENT_EXISTS"
    EVENT_NOT_FOUND = "EVENT_NOT_FOUND"
    EVENT_UNAVAILABLE = "EVENT_UNAVAILABLE"
    INVALID_EVENT_CODE = "INVALID_EVENT_CODE"
    REQUEST_NOT_FOUND = "REQUEST_NOT_FOUND"
    VALIDATION_ERROR = "VALIDATION_ERROR"


class MusicAskError(Exception):
    """Base exception for domain rejections."""

    status_code: int = 400

    def __init__(self, code: ErrorCode, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


class ActiveEventExistsError(MusicAskError):
    """Raised when an event would become active while another one already is."""

    status_code = 409

    def __init__(self, active_event_id: str) -> None:
        super().__init__(ErrorCode.ACTIVE_EVENT_EXISTS, "An active event already exists")
        self.active_event_id = active_event_id


class EventNotFoundError(MusicAskError):
    """Raised when an event id does not match any event."""

    status_code = 404

    def __init__(self, event_id: str) -> None:
        super().__init__(ErrorCode.EVENT_NOT_FOUND, "Event not found")
        self.event_id = event_id


class EventUnavailableError(MusicAskError):
    """Raised when a request targets an event that is unknown or already ended."""

    status_code = 409

    def __init__(self, event_id: str) -> None:
        super().__init__(ErrorCode.EVENT_UNAVAILABLE, "Event not found or already ended")
        self.event_id = event_id


class InvalidEventCodeError(MusicAskError):
    """Raised when a join code does not belong to the active event."""

    status_code = 404

    def __init__(self, code: str) -> None:
        super().__init__(ErrorCode.INVALID_EVENT_CODE, "Invalid code or event already ended")
        self.event_code = code


class RequestNotFoundError(MusicAskError):
    """Raised when a request id does not match any request."""

    status_code = 404

    def __init__(self, request_id: str) -> None:
        super().__init__(ErrorCode.REQUEST_NOT_FOUND, "Request not found")
        self.request_id = request_id
