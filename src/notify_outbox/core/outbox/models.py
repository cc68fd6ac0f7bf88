"""
Outbox Models

One OutboxRecord per logical notification. Content is rendered once at
enqueue time and frozen in ``rendered``; dispatch and retry only move
``status`` and the attempt bookkeeping fields.
"""

from datetime import datetime, timezone
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional
from uuid import uuid4

from pydantic import BaseModel, Field

from ..phone import mask_phone


def _utcnow() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(timezone.utc)


def new_record_id() -> str:
    return f"ntf_{uuid4().hex}"


class OutboxStatus(str, Enum):
    """Status of an outbox record."""
    QUEUED = "queued"
    DISPATCHING = "dispatching"
    SENT = "sent"
    FAILED = "failed"


# Statuses that hold a dedupe key; at most one per key.
LIVE_STATUSES: FrozenSet[OutboxStatus] = frozenset({
    OutboxStatus.QUEUED,
    OutboxStatus.DISPATCHING,
    OutboxStatus.FAILED,
})

# queued -> queued is a retry re-arming a record that was never dispatched.
# dispatching -> queued only happens when a retry reclaims a record whose
# dispatch lease expired.
VALID_TRANSITIONS: Dict[OutboxStatus, FrozenSet[OutboxStatus]] = {
    OutboxStatus.QUEUED: frozenset({OutboxStatus.DISPATCHING, OutboxStatus.QUEUED}),
    OutboxStatus.DISPATCHING: frozenset({OutboxStatus.SENT, OutboxStatus.FAILED, OutboxStatus.QUEUED}),
    OutboxStatus.FAILED: frozenset({OutboxStatus.QUEUED}),
    OutboxStatus.SENT: frozenset(),
}


def is_valid_transition(current: OutboxStatus, new: OutboxStatus) -> bool:
    return new in VALID_TRANSITIONS.get(current, frozenset())


class Channel(str, Enum):
    """Delivery channels."""
    EMAIL = "email"
    SMS = "sms"
    CHAT = "chat"


class EventType(str, Enum):
    """Domain events the renderer knows how to turn into messages."""
    ORDER_PAID = "order.paid"
    ORDER_SHIPPED = "order.shipped"
    STRINGING_APPLICATION_SUBMITTED = "stringing.application_submitted"
    STRINGING_STATUS_UPDATED = "stringing.status_updated"
    STRINGING_SCHEDULE_CONFIRMED = "stringing.schedule_confirmed"
    STRINGING_SCHEDULE_UPDATED = "stringing.schedule_updated"
    STRINGING_SCHEDULE_CANCELED = "stringing.schedule_canceled"
    STRINGING_APPLICATION_CANCELED = "stringing.application_canceled"
    STRINGING_SERVICE_IN_PROGRESS = "stringing.service_in_progress"
    STRINGING_SERVICE_COMPLETED = "stringing.service_completed"
    RENTAL_RETURNED = "rental.returned"


# Fields cas_status may touch besides status.
MUTABLE_FIELDS: FrozenSet[str] = frozenset({
    "retries",
    "error",
    "last_tried_at",
    "sent_at",
})


class OutboxRecord(BaseModel):
    """A notification in the outbox."""

    id: str = Field(default_factory=new_record_id)
    event_type: str
    channels: List[Channel]
    payload: Dict[str, Any] = Field(default_factory=dict)
    rendered: Dict[str, Dict[str, Any]] = Field(default_factory=dict)

    status: OutboxStatus = OutboxStatus.QUEUED
    retries: int = 0
    dedupe_key: Optional[str] = None
    error: Optional[str] = None

    created_at: datetime = Field(default_factory=_utcnow)
    last_tried_at: Optional[datetime] = None
    sent_at: Optional[datetime] = None

    model_config = {"extra": "forbid"}

    @property
    def is_live(self) -> bool:
        return self.status in LIVE_STATUSES

    def missing_renders(self) -> List[Channel]:
        """Channels that have no rendered content."""
        return [ch for ch in self.channels if not self.rendered.get(ch.value)]

    def summary(self) -> Dict[str, Optional[str]]:
        """Recipient and subject for list views, picked from rendered content."""
        email = self.rendered.get(Channel.EMAIL.value) or {}
        sms = self.rendered.get(Channel.SMS.value) or {}
        chat = self.rendered.get(Channel.CHAT.value) or {}
        to = email.get("to") or (mask_phone(sms["to"]) if sms.get("to") else None)
        subject = email.get("subject") or (chat.get("text") or "").split("\n", 1)[0] or None
        return {"to": to, "subject": subject}


@dataclass
class ChannelOutcome:
    """Result of one channel adapter call during a dispatch."""
    channel: Channel
    ok: bool
    error: Optional[str] = None
    message_id: Optional[str] = None
    duration_seconds: float = 0.0
    skipped: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "channel": self.channel.value,
            "ok": self.ok,
            "error": self.error,
            "message_id": self.message_id,
            "skipped": self.skipped,
            "duration_seconds": round(self.duration_seconds, 4),
        }


@dataclass
class DispatchResult:
    """What a dispatch call did to a record."""
    record_id: str
    status: OutboxStatus
    outcomes: List[ChannelOutcome] = field(default_factory=list)
    noop: bool = False

    @property
    def error(self) -> Optional[str]:
        return aggregate_error(self.outcomes)


def aggregate_error(outcomes: List[ChannelOutcome]) -> Optional[str]:
    """Join per-channel failures as ``<channel>: <reason>; ...`` in channel order."""
    failures = [f"{o.channel.value}: {o.error or 'failed'}" for o in outcomes if not o.ok]
    return "; ".join(failures) if failures else None
