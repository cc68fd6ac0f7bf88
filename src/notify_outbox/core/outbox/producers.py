"""
Producer triggers

Domain code calls these when something happened. Each trigger snapshots the
payload, derives the dedupe key and the default channels, and hands off to
``NotificationOutbox.notify``. SMS is added only when the payload carries a
phone number the template can use.

Usage:
    outbox = await get_outbox_service()
    await on_status_updated(outbox, user=user, application=app,
                            admin_detail_url=f"{base}/admin/applications/{app_id}")
"""

import logging
from typing import Any, Dict, List, Mapping, Optional

from ..rendering.context import RenderContext, RenderSettings
from ..rendering.templates import get_template
from .models import Channel, EventType
from .service import NotificationOutbox, NotifyOutcome

logger = logging.getLogger(__name__)

STATUS_COMPLETED = "교체완료"
STATUS_IN_PROGRESS = "작업 중"


def _has_phone(event_type: EventType, payload: Mapping[str, Any]) -> bool:
    template = get_template(event_type)
    return bool(template and template.pick_phone(RenderContext(payload, RenderSettings())))


def _channels(event_type: EventType, payload: Mapping[str, Any], base: List[Channel], with_sms: bool) -> List[Channel]:
    channels = list(base)
    if with_sms and _has_phone(event_type, payload):
        channels.append(Channel.SMS)
    return channels


def _slot(application: Mapping[str, Any]) -> str:
    details = application.get("string_details") or {}
    return f"{details.get('preferred_date')}T{details.get('preferred_time')}"


async def _fire(
    outbox: NotificationOutbox,
    event_type: EventType,
    payload: Dict[str, Any],
    channels: List[Channel],
    dedupe_key: str,
) -> NotifyOutcome:
    outcome = await outbox.notify(event_type.value, payload, channels, dedupe_key=dedupe_key)
    logger.info(
        f"Trigger {event_type.value} -> {outcome.id} ({outcome.status.value}, reused={outcome.reused})",
        extra={"outbox_id": outcome.id, "dedupe_key": dedupe_key},
    )
    return outcome


# ---------------------------------------------------------------------------
# Stringing service
# ---------------------------------------------------------------------------

def _stringing_payload(user: Mapping[str, Any], application: Mapping[str, Any], admin_detail_url: Optional[str]) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"user": dict(user), "application": dict(application)}
    if admin_detail_url:
        payload["admin_detail_url"] = admin_detail_url
    return payload


async def on_application_submitted(
    outbox: NotificationOutbox,
    user: Mapping[str, Any],
    application: Mapping[str, Any],
    admin_detail_url: Optional[str] = None,
    with_sms: bool = True,
) -> NotifyOutcome:
    event = EventType.STRINGING_APPLICATION_SUBMITTED
    payload = _stringing_payload(user, application, admin_detail_url)
    return await _fire(
        outbox, event, payload,
        _channels(event, payload, [Channel.EMAIL, Channel.CHAT], with_sms),
        f"{application['application_id']}:submitted",
    )


async def on_status_updated(
    outbox: NotificationOutbox,
    user: Mapping[str, Any],
    application: Mapping[str, Any],
    admin_detail_url: Optional[str] = None,
    with_sms: bool = True,
) -> NotifyOutcome:
    """
    Route a status change to the matching event.

    ``교체완료`` and ``작업 중`` get their own templates (with SMS); any other
    status is a plain status update to the customer and the admin chat.
    """
    status = application.get("status")
    key = f"{application['application_id']}:status:{status}"
    payload = _stringing_payload(user, application, admin_detail_url)

    if status == STATUS_COMPLETED:
        event = EventType.STRINGING_SERVICE_COMPLETED
        channels = _channels(event, payload, [Channel.EMAIL], with_sms)
    elif status == STATUS_IN_PROGRESS:
        event = EventType.STRINGING_SERVICE_IN_PROGRESS
        channels = _channels(event, payload, [Channel.EMAIL], with_sms)
    else:
        event = EventType.STRINGING_STATUS_UPDATED
        channels = [Channel.EMAIL, Channel.CHAT]
    return await _fire(outbox, event, payload, channels, key)


async def on_schedule_confirmed(
    outbox: NotificationOutbox,
    user: Mapping[str, Any],
    application: Mapping[str, Any],
    with_sms: bool = True,
) -> NotifyOutcome:
    event = EventType.STRINGING_SCHEDULE_CONFIRMED
    payload = _stringing_payload(user, application, None)
    return await _fire(
        outbox, event, payload,
        _channels(event, payload, [Channel.EMAIL], with_sms),
        f"{application['application_id']}:schedule:{_slot(application)}",
    )


async def on_schedule_updated(
    outbox: NotificationOutbox,
    user: Mapping[str, Any],
    application: Mapping[str, Any],
    with_sms: bool = True,
) -> NotifyOutcome:
    event = EventType.STRINGING_SCHEDULE_UPDATED
    payload = _stringing_payload(user, application, None)
    return await _fire(
        outbox, event, payload,
        _channels(event, payload, [Channel.EMAIL], with_sms),
        f"{application['application_id']}:schedule-updated:{_slot(application)}",
    )


async def on_schedule_canceled(
    outbox: NotificationOutbox,
    user: Mapping[str, Any],
    application: Mapping[str, Any],
    with_sms: bool = True,
) -> NotifyOutcome:
    event = EventType.STRINGING_SCHEDULE_CANCELED
    payload = _stringing_payload(user, application, None)
    return await _fire(
        outbox, event, payload,
        _channels(event, payload, [Channel.EMAIL], with_sms),
        f"{application['application_id']}:schedule-canceled:{_slot(application)}",
    )


async def on_application_canceled(
    outbox: NotificationOutbox,
    user: Mapping[str, Any],
    application: Mapping[str, Any],
    with_sms: bool = True,
) -> NotifyOutcome:
    event = EventType.STRINGING_APPLICATION_CANCELED
    payload = _stringing_payload(user, application, None)
    return await _fire(
        outbox, event, payload,
        _channels(event, payload, [Channel.EMAIL], with_sms),
        f"{application['application_id']}:application-canceled",
    )


# ---------------------------------------------------------------------------
# Shop orders and rentals
# ---------------------------------------------------------------------------

async def on_order_paid(outbox: NotificationOutbox, order: Mapping[str, Any], with_sms: bool = False) -> NotifyOutcome:
    event = EventType.ORDER_PAID
    payload = dict(order)
    return await _fire(
        outbox, event, payload,
        _channels(event, payload, [Channel.EMAIL, Channel.CHAT], with_sms),
        f"order.paid:{order['order_id']}",
    )


async def on_order_shipped(outbox: NotificationOutbox, order: Mapping[str, Any], with_sms: bool = True) -> NotifyOutcome:
    event = EventType.ORDER_SHIPPED
    payload = dict(order)
    return await _fire(
        outbox, event, payload,
        _channels(event, payload, [Channel.EMAIL], with_sms),
        f"order.shipped:{order['order_id']}:{order.get('tracking_number')}",
    )


async def on_rental_returned(outbox: NotificationOutbox, rental: Mapping[str, Any], with_sms: bool = False) -> NotifyOutcome:
    event = EventType.RENTAL_RETURNED
    payload = dict(rental)
    return await _fire(
        outbox, event, payload,
        _channels(event, payload, [Channel.EMAIL, Channel.CHAT], with_sms),
        f"rental.returned:{rental['rental_id']}",
    )
