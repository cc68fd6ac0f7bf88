"""
Outbox Errors

Domain errors raised by the renderer, store, dispatcher and retry
controller. The API layer maps each one to an error code.
"""

from enum import Enum
from typing import Optional


class OutboxError(Exception):
    """Base class for outbox errors."""


class RenderErrorReason(str, Enum):
    UNSUPPORTED_EVENT = "unsupported_event"
    UNSUPPORTED_CHANNEL = "unsupported_channel"
    MISSING_FIELD = "missing_field"


class RenderError(OutboxError):
    """The event/payload/channel combination cannot be rendered."""

    def __init__(self, reason: RenderErrorReason, detail: str = ""):
        self.reason = RenderErrorReason(reason)
        self.detail = detail
        msg = self.reason.value
        if detail:
            msg = f"{msg}: {detail}"
        super().__init__(msg)


class RecordNotFound(OutboxError):
    def __init__(self, record_id: str):
        self.record_id = record_id
        super().__init__(f"Outbox record '{record_id}' not found")


class InvalidState(OutboxError):
    """The record cannot be dispatched or retried in its current shape."""

    def __init__(self, record_id: str, message: str):
        self.record_id = record_id
        super().__init__(message)


class AlreadySent(OutboxError):
    def __init__(self, record_id: str):
        self.record_id = record_id
        super().__init__(f"Outbox record '{record_id}' was already sent")


class DispatchConflict(OutboxError):
    """Another dispatcher or operator action owns the record right now."""

    def __init__(self, record_id: str, message: Optional[str] = None, held_by: Optional[str] = None):
        self.record_id = record_id
        self.held_by = held_by
        super().__init__(message or f"Outbox record '{record_id}' is being dispatched elsewhere")


class StoreUnavailable(OutboxError):
    """The backing store or lease backend failed."""
