from __future__ import annotations

from typing import Optional


class TextSyncError(Exception):
    """Base error; ``code`` and ``status`` drive the JSON error response."""

    code = "error"
    status = 500

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.code)
        self.message = message or self.code

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message}


# Input failed shape/length/format constraints; never retried
class ValidationError(TextSyncError):
    code = "validation_error"
    status = 400


# Referenced room or message does not exist (or was just deleted elsewhere)
class NotFound(TextSyncError):
    code = "not_found"
    status = 404


# Unique key collision
class Conflict(TextSyncError):
    code = "conflict"
    status = 409


# Room code collisions used up the whole retry budget
class ExhaustedRetries(TextSyncError):
    code = "exhausted_retries"
    status = 503


# Transient failure talking to the persistence layer
class StoreUnavailable(TextSyncError):
    code = "store_unavailable"
    status = 503


ERRORS_BY_CODE = {
    cls.code: cls
    for cls in (ValidationError, NotFound, Conflict, ExhaustedRetries, StoreUnavailable)
}


def error_from_payload(payload: Optional[dict], status: int) -> TextSyncError:
    """Rebuild a typed error from an ``{"error", "message"}`` response body."""
    payload = payload or {}
    cls = ERRORS_BY_CODE.get(payload.get("error"))
    if cls is None:
        cls = {400: ValidationError, 404: NotFound, 409: Conflict}.get(status, StoreUnavailable)
    return cls(payload.get("message"))
