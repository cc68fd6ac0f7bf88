"""
Event templates

One EventTemplate per supported event type: the payload fields it needs,
the channels it can produce, where to find the recipient phone number,
and a builder that turns the payload into a channel-neutral Message.
"""

from dataclasses import dataclass
from typing import Callable, Dict, FrozenSet, List, Optional, Tuple

from ..outbox.models import Channel, EventType
from .context import Message, RenderContext, fmt_kst, format_won, short_code
from .ics import build_ics
from .layout import Cta, Row

EMAIL_SMS = frozenset({Channel.EMAIL, Channel.SMS})
EMAIL_CHAT = frozenset({Channel.EMAIL, Channel.CHAT})
ALL_CHANNELS = frozenset({Channel.EMAIL, Channel.SMS, Channel.CHAT})

STRINGING_PHONE_PATHS = (
    "application.contact_phone",
    "application.phone",
    "application.customer.phone",
    "application.shipping_info.phone",
)
CUSTOMER_PHONE_PATHS = (
    "customer.phone",
    "shipping_info.phone",
    "phone",
)

SELF_SHIP_METHODS = ("self_ship", "self", "자가발송")


@dataclass(frozen=True)
class EventTemplate:
    event_type: EventType
    required: Tuple[str, ...]
    channels: FrozenSet[Channel]
    phone_paths: Tuple[str, ...]
    build: Callable[[RenderContext], Message]

    def pick_phone(self, ctx: RenderContext) -> str:
        for path in self.phone_paths:
            raw = ctx.get(path)
            if raw:
                return "".join(ch for ch in str(raw) if ch.isdigit())
        return ""


# ---------------------------------------------------------------------------
# Stringing service
# ---------------------------------------------------------------------------

def _app_id(ctx: RenderContext) -> str:
    return str(ctx.get("application.application_id"))


def _user_name(ctx: RenderContext) -> str:
    return ctx.get("user.name") or "고객님"


def _when(ctx: RenderContext) -> Optional[str]:
    return fmt_kst(
        ctx.get("application.string_details.preferred_date"),
        ctx.get("application.string_details.preferred_time"),
    )


def _racket(ctx: RenderContext) -> str:
    return (
        ctx.get("application.string_details.racket_type")
        or ctx.get("application.string_details.racket")
        or "-"
    )


def _strings(ctx: RenderContext) -> str:
    items = ctx.get("application.string_details.string_items")
    if isinstance(items, list):
        names = [str(item.get("name")) for item in items if isinstance(item, dict) and item.get("name")]
        return ", ".join(names) or "-"
    types = ctx.get("application.string_details.string_types")
    if isinstance(types, list) and types:
        return ", ".join(str(t) for t in types)
    return "-"


def _applicant(ctx: RenderContext) -> str:
    return f"{_user_name(ctx)} ({ctx.get('user.email') or '-'})"


def _detail_url(ctx: RenderContext) -> str:
    return f"{ctx.base_url}/mypage?tab=applications&applicationId={_app_id(ctx)}"


def _reschedule_url(ctx: RenderContext) -> str:
    return f"{ctx.base_url}/services/apply?orderId={ctx.get('application.order_id', '')}"


def _self_ship_cta(ctx: RenderContext) -> List[Cta]:
    method = (
        ctx.get("application.shipping_info.collection_method")
        or ctx.get("application.collection_method")
        or ""
    )
    if isinstance(method, str) and method.lower() in SELF_SHIP_METHODS:
        return [("운송장 등록하기", f"{ctx.base_url}/services/applications/{_app_id(ctx)}/shipping")]
    return []


def _stringing_sms(ctx: RenderContext, prefix: str) -> str:
    lines = [
        f"[{ctx.brand}] {prefix}",
        f"{_user_name(ctx)}님",
        f"일정: {_when(ctx) or '미정'}",
        f"신청번호: {_app_id(ctx)}",
        f"상세보기: {_detail_url(ctx)}",
    ]
    return "\n".join(lines)


def _stringing_chat(ctx: RenderContext, title: str) -> str:
    lines = [
        f"[{ctx.brand}] {title}",
        f"{short_code(_app_id(ctx))} · {_applicant(ctx)}",
        f"일정: {_when(ctx) or '미정'}",
    ]
    admin_url = ctx.get("admin_detail_url")
    if admin_url:
        lines.append(str(admin_url))
    return "\n".join(lines)


def _stringing_ics(ctx: RenderContext) -> Optional[str]:
    return build_ics(
        uid=f"stringing-{_app_id(ctx)}@notify-outbox",
        summary=f"{ctx.brand} 스트링 교체 예약",
        date_str=ctx.get("application.string_details.preferred_date"),
        time_str=ctx.get("application.string_details.preferred_time"),
        description=f"참조코드 {short_code(_app_id(ctx))}",
    )


def _full_rows(ctx: RenderContext, when_label: str = "일정") -> List[Row]:
    return [
        (when_label, _when(ctx) or "미정"),
        ("신청자", _applicant(ctx)),
        ("라켓", _racket(ctx)),
        ("스트링", _strings(ctx)),
        ("신청번호", f"#{_app_id(ctx)}"),
    ]


def _stringing_message(
    ctx: RenderContext,
    title: str,
    badge: str,
    rows: List[Row],
    ctas: List[Cta],
    sms_prefix: Optional[str] = None,
    note: Optional[str] = None,
    with_ics: bool = False,
    subject: Optional[str] = None,
    preheader: Optional[str] = None,
) -> Message:
    when = _when(ctx)
    return Message(
        title=title,
        subject=subject or f"[{ctx.brand}] {title} · {when or '미정'}",
        email_to=ctx.get("user.email"),
        rows=rows,
        badge=badge,
        preheader=preheader or f"{when or '미정'} · {short_code(_app_id(ctx))}",
        ctas=ctas,
        note=note,
        ics=_stringing_ics(ctx) if with_ics and when else None,
        sms_text=_stringing_sms(ctx, sms_prefix or title),
        chat_text=_stringing_chat(ctx, title),
    )


def _application_submitted(ctx: RenderContext) -> Message:
    ctas = [("신청서 상세 보기", _detail_url(ctx)), ("일정 변경", _reschedule_url(ctx))]
    return _stringing_message(
        ctx, "신청 접수 완료", "접수", _full_rows(ctx), ctas + _self_ship_cta(ctx), with_ics=True,
    )


def _status_updated(ctx: RenderContext) -> Message:
    status = str(ctx.get("application.status"))
    when = _when(ctx)
    rows: List[Row] = [("현재 상태", status)]
    if when:
        rows.append(("일정", when))
    rows.append(("신청번호", f"#{_app_id(ctx)}"))
    ctas = [("신청서 상세 보기", _detail_url(ctx))] + _self_ship_cta(ctx)
    return _stringing_message(
        ctx, "신청 상태 업데이트", status, rows, ctas,
        subject=f"[{ctx.brand}] 신청 상태 업데이트: {status}",
        preheader=f"{status} · {when or '미정'} · {short_code(_app_id(ctx))}",
    )


def _schedule_confirmed(ctx: RenderContext) -> Message:
    ctas = [("신청서 상세 보기", _detail_url(ctx)), ("일정 변경", _reschedule_url(ctx))]
    return _stringing_message(
        ctx, "예약 확정 안내", "확정", _full_rows(ctx), ctas + _self_ship_cta(ctx),
        note="예약 변경/취소는 방문 24시간 전까지 가능합니다. 이후에는 유선 문의 부탁드립니다.",
        with_ics=True,
    )


def _schedule_updated(ctx: RenderContext) -> Message:
    return _stringing_message(
        ctx, "예약 변경 안내", "변경", _full_rows(ctx, when_label="변경된 일정"),
        [("신청서 상세 보기", _detail_url(ctx))], with_ics=True,
    )


def _cancel_rows(ctx: RenderContext) -> List[Row]:
    return [
        ("취소된 일정", _when(ctx) or "미정"),
        ("신청자", _applicant(ctx)),
        ("신청번호", f"#{_app_id(ctx)}"),
    ]


def _schedule_canceled(ctx: RenderContext) -> Message:
    return _stringing_message(
        ctx, "예약 취소 안내", "취소(예약)", _cancel_rows(ctx), [], sms_prefix="신청 취소 안내",
    )


def _application_canceled(ctx: RenderContext) -> Message:
    return _stringing_message(
        ctx, "신청 취소 안내", "취소", _cancel_rows(ctx),
        [("다시 신청하기", _reschedule_url(ctx))],
        note="재신청 시 원하는 날짜/시간을 다시 선택해 주세요. 회신으로 문의 가능합니다.",
    )


def _service_in_progress(ctx: RenderContext) -> Message:
    rows: List[Row] = [
        ("현재 상태", "작업 중"),
        ("일정", _when(ctx) or "미정"),
        ("신청번호", f"#{_app_id(ctx)}"),
    ]
    return _stringing_message(
        ctx, "작업 진행 안내", "작업 중", rows, [("신청서 상세 보기", _detail_url(ctx))],
    )


def _service_completed(ctx: RenderContext) -> Message:
    return _stringing_message(
        ctx, "교체 완료 안내", "교체완료", _full_rows(ctx), [("신청서 상세 보기", _detail_url(ctx))],
    )


# ---------------------------------------------------------------------------
# Shop orders
# ---------------------------------------------------------------------------

def _customer_name(ctx: RenderContext) -> str:
    return ctx.get("customer.name") or "고객님"


def _customer_email(ctx: RenderContext) -> Optional[str]:
    return ctx.get("customer.email") or ctx.get("email")


def _order_url(ctx: RenderContext) -> str:
    return f"{ctx.base_url}/mypage?tab=orders&orderId={ctx.get('order_id')}"


def _items_summary(ctx: RenderContext) -> str:
    items = ctx.get("items")
    if not isinstance(items, list) or not items:
        return "-"
    parts = []
    for item in items:
        if not isinstance(item, dict):
            continue
        name = item.get("name") or "-"
        qty = item.get("quantity")
        parts.append(f"{name} x{qty}" if qty else str(name))
    return ", ".join(parts) or "-"


def _order_paid(ctx: RenderContext) -> Message:
    order_id = str(ctx.get("order_id"))
    total = format_won(ctx.get("total_amount")) if ctx.has("total_amount") else "-"
    title = "결제 완료 안내"
    rows: List[Row] = [
        ("주문번호", f"#{order_id}"),
        ("주문자", f"{_customer_name(ctx)} ({_customer_email(ctx) or '-'})"),
        ("상품", _items_summary(ctx)),
        ("결제금액", total),
    ]
    if ctx.has("payment_method"):
        rows.append(("결제수단", str(ctx.get("payment_method"))))
    return Message(
        title=title,
        subject=f"[{ctx.brand}] {title} · {total}",
        email_to=_customer_email(ctx),
        rows=rows,
        badge="결제완료",
        preheader=f"주문 {short_code(order_id)} · {total}",
        ctas=[("주문 상세 보기", _order_url(ctx))],
        sms_text="\n".join([
            f"[{ctx.brand}] {title}",
            f"{_customer_name(ctx)}님",
            f"주문번호: {order_id}",
            f"결제금액: {total}",
            f"상세보기: {_order_url(ctx)}",
        ]),
        chat_text="\n".join([
            f"[{ctx.brand}] 신규 결제",
            f"{short_code(order_id)} · {_customer_name(ctx)} · {total}",
            _items_summary(ctx),
        ]),
    )


def _order_shipped(ctx: RenderContext) -> Message:
    order_id = str(ctx.get("order_id"))
    courier = str(ctx.get("courier") or "택배")
    tracking = str(ctx.get("tracking_number"))
    title = "상품 발송 안내"
    return Message(
        title=title,
        subject=f"[{ctx.brand}] {title} · {courier} {tracking}",
        email_to=_customer_email(ctx),
        rows=[
            ("주문번호", f"#{order_id}"),
            ("택배사", courier),
            ("운송장번호", tracking),
        ],
        badge="발송",
        preheader=f"{courier} {tracking} · {short_code(order_id)}",
        ctas=[("주문 상세 보기", _order_url(ctx))],
        sms_text="\n".join([
            f"[{ctx.brand}] {title}",
            f"{_customer_name(ctx)}님",
            f"택배사: {courier}",
            f"운송장번호: {tracking}",
        ]),
        chat_text=f"[{ctx.brand}] 발송 처리 {short_code(order_id)} · {courier} {tracking}",
    )


# ---------------------------------------------------------------------------
# Racket rentals
# ---------------------------------------------------------------------------

def _rental_returned(ctx: RenderContext) -> Message:
    rental_id = str(ctx.get("rental_id"))
    racket = str(ctx.get("racket_name") or "-")
    title = "라켓 반납 완료 안내"
    rows: List[Row] = [
        ("대여번호", f"#{rental_id}"),
        ("라켓", racket),
        ("반납일", str(ctx.get("returned_at") or "-")),
    ]
    refund = ctx.get("deposit_refund")
    if refund is not None:
        rows.append(("보증금 환급", format_won(refund)))
    return Message(
        title=title,
        subject=f"[{ctx.brand}] {title} · {racket}",
        email_to=_customer_email(ctx),
        rows=rows,
        badge="반납완료",
        preheader=f"{racket} · {short_code(rental_id)}",
        ctas=[("대여 내역 보기", f"{ctx.base_url}/mypage?tab=rentals&rentalId={rental_id}")],
        sms_text="\n".join([
            f"[{ctx.brand}] {title}",
            f"{_customer_name(ctx)}님",
            f"라켓: {racket}",
            f"대여번호: {rental_id}",
        ]),
        chat_text=f"[{ctx.brand}] 라켓 반납 {short_code(rental_id)} · {_customer_name(ctx)} · {racket}",
    )


_STRINGING_REQUIRED = ("application.application_id", "user.email")

TEMPLATE_REGISTRY: Dict[str, EventTemplate] = {
    t.event_type.value: t
    for t in (
        EventTemplate(EventType.ORDER_PAID, ("order_id",),
                      ALL_CHANNELS, CUSTOMER_PHONE_PATHS, _order_paid),
        EventTemplate(EventType.ORDER_SHIPPED, ("order_id", "tracking_number"),
                      EMAIL_SMS, CUSTOMER_PHONE_PATHS, _order_shipped),
        EventTemplate(EventType.STRINGING_APPLICATION_SUBMITTED, _STRINGING_REQUIRED,
                      ALL_CHANNELS, STRINGING_PHONE_PATHS, _application_submitted),
        EventTemplate(EventType.STRINGING_STATUS_UPDATED, _STRINGING_REQUIRED + ("application.status",),
                      EMAIL_CHAT, STRINGING_PHONE_PATHS, _status_updated),
        EventTemplate(EventType.STRINGING_SCHEDULE_CONFIRMED, _STRINGING_REQUIRED,
                      EMAIL_SMS, STRINGING_PHONE_PATHS, _schedule_confirmed),
        EventTemplate(EventType.STRINGING_SCHEDULE_UPDATED, _STRINGING_REQUIRED,
                      EMAIL_SMS, STRINGING_PHONE_PATHS, _schedule_updated),
        EventTemplate(EventType.STRINGING_SCHEDULE_CANCELED, _STRINGING_REQUIRED,
                      EMAIL_SMS, STRINGING_PHONE_PATHS, _schedule_canceled),
        EventTemplate(EventType.STRINGING_APPLICATION_CANCELED, _STRINGING_REQUIRED,
                      EMAIL_SMS, STRINGING_PHONE_PATHS, _application_canceled),
        EventTemplate(EventType.STRINGING_SERVICE_IN_PROGRESS, _STRINGING_REQUIRED,
                      EMAIL_SMS, STRINGING_PHONE_PATHS, _service_in_progress),
        EventTemplate(EventType.STRINGING_SERVICE_COMPLETED, _STRINGING_REQUIRED,
                      ALL_CHANNELS, STRINGING_PHONE_PATHS, _service_completed),
        EventTemplate(EventType.RENTAL_RETURNED, ("rental_id",),
                      ALL_CHANNELS, CUSTOMER_PHONE_PATHS, _rental_returned),
    )
}


def get_template(event_type: str) -> Optional[EventTemplate]:
    """Look up the template for an event type string."""
    return TEMPLATE_REGISTRY.get(str(getattr(event_type, "value", event_type)))
