"""
Typed failures raised by the queue engine.

Each error carries an ErrorKind and the HTTP status it maps to. The core
raises them once; the API layer translates them in a single exception
handler instead of re-wrapping at every layer.
"""

import enum
from typing import Any


class ErrorKind(str, enum.Enum):
    NOT_FOUND = "not_found"
    INVALID_TRANSITION = "invalid_transition"
    QUOTA_EXCEEDED = "quota_exceeded"
    QUEUE_FULL = "queue_full"
    RESTAURANT_INACTIVE = "restaurant_inactive"
    SONG_UNAVAILABLE = "song_unavailable"
    DUPLICATE_REQUEST = "duplicate_request"
    INVALID_POSITION = "invalid_position"
    CONCURRENCY_CONFLICT = "concurrency_conflict"
    PERSISTENCE_FAILURE = "persistence_failure"


class QueueError(Exception):
    kind: ErrorKind
    status_code: int = 500

    def __init__(self, detail: str, **context: Any):
        super().__init__(detail)
        self.detail = detail
        self.context = context

    def to_dict(self) -> dict:
        return {"detail": self.detail, "error": self.kind.value}


class NotFound(QueueError):
    kind = ErrorKind.NOT_FOUND
    status_code = 404


class InvalidTransition(QueueError):
    kind = ErrorKind.INVALID_TRANSITION
    status_code = 409


class InvalidPosition(QueueError):
    kind = ErrorKind.INVALID_POSITION
    status_code = 400


class AdmissionRejected(QueueError):
    """Base class for every reason admission can turn a request away."""


class SongUnavailable(AdmissionRejected):
    kind = ErrorKind.SONG_UNAVAILABLE
    status_code = 404


class RestaurantInactive(AdmissionRejected):
    kind = ErrorKind.RESTAURANT_INACTIVE
    status_code = 409


class QuotaExceeded(AdmissionRejected):
    kind = ErrorKind.QUOTA_EXCEEDED
    status_code = 429


class QueueFull(AdmissionRejected):
    kind = ErrorKind.QUEUE_FULL
    status_code = 429


class DuplicateRequest(AdmissionRejected):
    kind = ErrorKind.DUPLICATE_REQUEST
    status_code = 409


class ConcurrencyConflict(QueueError):
    kind = ErrorKind.CONCURRENCY_CONFLICT
    status_code = 503


class PersistenceFailure(QueueError):
    kind = ErrorKind.PERSISTENCE_FAILURE
    status_code = 500


REJECTIONS: dict[ErrorKind, type[AdmissionRejected]] = {
    cls.kind: cls
    for cls in (SongUnavailable, RestaurantInactive, QuotaExceeded, QueueFull, DuplicateRequest)
}
