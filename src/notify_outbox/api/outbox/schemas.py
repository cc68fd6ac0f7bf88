"""Request/response models for the outbox operator API."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict

from ...core.outbox.models import ChannelOutcome, OutboxRecord


class OutboxRecordResponse(BaseModel):
    """Full projection of one outbox record."""
    id: str
    event_type: str
    status: str
    channels: List[str]
    rendered: Dict[str, Dict[str, Any]]
    payload: Dict[str, Any]
    retries: int
    error: Optional[str] = None
    dedupe_key: Optional[str] = None
    created_at: datetime
    sent_at: Optional[datetime] = None
    last_tried_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_record(cls, record: OutboxRecord) -> "OutboxRecordResponse":
        return cls(
            id=record.id,
            event_type=record.event_type,
            status=record.status.value,
            channels=[c.value for c in record.channels],
            rendered=record.rendered,
            payload=record.payload,
            retries=record.retries,
            error=record.error,
            dedupe_key=record.dedupe_key,
            created_at=record.created_at,
            sent_at=record.sent_at,
            last_tried_at=record.last_tried_at,
        )


class OutboxListItem(BaseModel):
    """Row in the outbox listing; rendered bodies are left out."""
    id: str
    event_type: str
    status: str
    channels: List[str]
    to: Optional[str] = None
    subject: Optional[str] = None
    retries: int
    error: Optional[str] = None
    dedupe_key: Optional[str] = None
    created_at: datetime
    sent_at: Optional[datetime] = None
    last_tried_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record: OutboxRecord) -> "OutboxListItem":
        summary = record.summary()
        return cls(
            id=record.id,
            event_type=record.event_type,
            status=record.status.value,
            channels=[c.value for c in record.channels],
            to=summary["to"],
            subject=summary["subject"],
            retries=record.retries,
            error=record.error,
            dedupe_key=record.dedupe_key,
            created_at=record.created_at,
            sent_at=record.sent_at,
            last_tried_at=record.last_tried_at,
        )


class OutboxListResponse(BaseModel):
    items: List[OutboxListItem]
    total: int
    counts: Dict[str, int]
    page: int
    limit: int


class ChannelOutcomeResponse(BaseModel):
    channel: str
    ok: bool
    error: Optional[str] = None
    message_id: Optional[str] = None
    skipped: bool = False
    duration_seconds: float = 0.0

    @classmethod
    def from_outcome(cls, outcome: ChannelOutcome) -> "ChannelOutcomeResponse":
        return cls(**outcome.to_dict())


class DispatchResponse(BaseModel):
    """Result of a retry or force dispatch."""
    id: str
    status: str
    retries: int
    error: Optional[str] = None
    outcomes: List[ChannelOutcomeResponse] = []
