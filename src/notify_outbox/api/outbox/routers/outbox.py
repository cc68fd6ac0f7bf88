"""
Outbox Operator API

Endpoints for inspecting outbox records and re-triggering delivery.
Delivery failures come back as 200 with ``status: "failed"``; only
structural problems (unknown id, no rendered content, already sent,
concurrent dispatch) and store outages are HTTP errors.
"""

import logging
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query

from ....core.outbox.errors import AlreadySent
from ....core.outbox.models import DispatchResult, OutboxStatus
from ....core.outbox.service import NotificationOutbox, get_outbox_service
from ...shared.middleware import get_operator_id
from ..schemas import (
    ChannelOutcomeResponse,
    DispatchResponse,
    OutboxListItem,
    OutboxListResponse,
    OutboxRecordResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/outbox", tags=["outbox"])

StatusFilter = Literal["all", "queued", "dispatching", "failed", "sent"]


async def _dispatch_response(service: NotificationOutbox, result: DispatchResult) -> DispatchResponse:
    record = await service.get(result.record_id)
    return DispatchResponse(
        id=record.id,
        status=record.status.value,
        retries=record.retries,
        error=record.error,
        outcomes=[ChannelOutcomeResponse.from_outcome(o) for o in result.outcomes],
    )


@router.get("", response_model=OutboxListResponse)
async def list_outbox(
    status: StatusFilter = Query("all"),
    q: Optional[str] = Query(None, max_length=200),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=50),
    service: NotificationOutbox = Depends(get_outbox_service),
):
    """List outbox records, newest first, with per-status counts."""
    status_filter = None if status == "all" else OutboxStatus(status)
    query = (q or "").strip() or None

    result = await service.list(status=status_filter, query=query, page=page, limit=limit)
    return OutboxListResponse(
        items=[OutboxListItem.from_record(r) for r in result.items],
        total=result.total,
        counts=result.counts,
        page=result.page,
        limit=result.limit,
    )


@router.get("/{record_id}", response_model=OutboxRecordResponse)
async def get_outbox_record(
    record_id: str,
    service: NotificationOutbox = Depends(get_outbox_service),
):
    """Get one outbox record with its rendered content."""
    record = await service.get(record_id)
    return OutboxRecordResponse.from_record(record)


@router.post("/{record_id}/retry", response_model=DispatchResponse)
async def retry_outbox_record(
    record_id: str,
    service: NotificationOutbox = Depends(get_outbox_service),
    operator_id: Optional[str] = Depends(get_operator_id),
):
    """
    Re-arm a record and dispatch it again.

    404 unknown id, 400 no rendered content, 409 already sent or a dispatch
    is in flight (details name the operator holding the record), 503 store
    unavailable.
    """
    result = await service.retry_once(record_id, operator_id=operator_id)
    logger.info(
        f"Operator {operator_id or '-'} retried {record_id} -> {result.status.value}",
        extra={"outbox_id": record_id},
    )
    return await _dispatch_response(service, result)


@router.post("/{record_id}/dispatch", response_model=DispatchResponse)
async def dispatch_outbox_record(
    record_id: str,
    service: NotificationOutbox = Depends(get_outbox_service),
    operator_id: Optional[str] = Depends(get_operator_id),
):
    """Dispatch a record that is still queued. 409 for any other status."""
    result = await service.dispatch_once(record_id, operator_id=operator_id)
    if result.noop:
        raise AlreadySent(record_id)
    logger.info(
        f"Operator {operator_id or '-'} dispatched {record_id} -> {result.status.value}",
        extra={"outbox_id": record_id},
    )
    return await _dispatch_response(service, result)
