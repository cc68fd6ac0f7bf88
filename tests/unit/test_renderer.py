"""
Tests for the pure renderer and its event templates.
"""

import pytest

from notify_outbox.core.outbox.errors import RenderError, RenderErrorReason
from notify_outbox.core.outbox.models import EventType
from notify_outbox.core.rendering.context import RenderSettings, fmt_kst, format_won, short_code
from notify_outbox.core.rendering.ics import build_ics
from notify_outbox.core.rendering.renderer import Renderer


class TestRenderErrors:
    """Unsupported events, channels and missing fields."""

    def test_unknown_event_type(self, renderer, order_payload):
        """Unknown event types are rejected before anything is rendered."""
        with pytest.raises(RenderError) as exc:
            renderer.render("order.refunded", order_payload(), ["email"])
        assert exc.value.reason == RenderErrorReason.UNSUPPORTED_EVENT
        assert exc.value.detail == "order.refunded"

    def test_unknown_channel(self, renderer, order_payload):
        """A channel name outside email/sms/chat is unsupported."""
        with pytest.raises(RenderError) as exc:
            renderer.render("order.paid", order_payload(), ["fax"])
        assert exc.value.reason == RenderErrorReason.UNSUPPORTED_CHANNEL

    def test_channel_not_offered_by_event(self, renderer, stringing_payload):
        """Status updates go to email and chat only."""
        payload = stringing_payload(status="검수 중")
        with pytest.raises(RenderError) as exc:
            renderer.render(EventType.STRINGING_STATUS_UPDATED.value, payload, ["sms"])
        assert exc.value.reason == RenderErrorReason.UNSUPPORTED_CHANNEL

    def test_empty_channel_list(self, renderer, order_payload):
        """At least one channel is required."""
        with pytest.raises(RenderError) as exc:
            renderer.render("order.paid", order_payload(), [])
        assert exc.value.reason == RenderErrorReason.UNSUPPORTED_CHANNEL

    def test_missing_required_field(self, renderer, order_payload):
        """order.shipped needs a tracking number."""
        with pytest.raises(RenderError) as exc:
            renderer.render("order.shipped", order_payload(), ["email"])
        assert exc.value.reason == RenderErrorReason.MISSING_FIELD
        assert exc.value.detail == "tracking_number"

    def test_sms_without_phone(self, renderer, order_payload):
        """Requesting sms with no phone anywhere in the payload fails."""
        payload = order_payload(customer={"name": "김도깨비", "email": "a@example.com"})
        with pytest.raises(RenderError) as exc:
            renderer.render("order.paid", payload, ["email", "sms"])
        assert exc.value.reason == RenderErrorReason.MISSING_FIELD
        assert exc.value.detail == "phone"

    def test_error_message_includes_reason(self):
        err = RenderError(RenderErrorReason.MISSING_FIELD, "order_id")
        assert str(err) == "missing_field: order_id"


class TestOrderTemplates:
    """Shop order events."""

    def test_order_paid_all_channels(self, renderer, order_payload):
        """Email, SMS and chat content for a paid order."""
        rendered = renderer.render("order.paid", order_payload(), ["email", "sms", "chat"])

        assert set(rendered) == {"email", "sms", "chat"}
        email = rendered["email"]
        assert email["to"] == "dokkaebi@example.com"
        assert email["subject"] == "[도깨비 테니스] 결제 완료 안내 · 54,000원"
        assert "#ORD-20260307-0001" in email["html"]
        assert "Luxilon ALU Power x2" in email["text"]
        assert "https://shop.test/mypage?tab=orders&orderId=ORD-20260307-0001" in email["text"]
        assert "ics" not in email

        assert rendered["sms"]["to"] == "01012345678"
        assert "결제금액: 54,000원" in rendered["sms"]["text"]
        assert rendered["chat"]["text"].startswith("[도깨비 테니스] 신규 결제")

    def test_order_paid_without_total(self, renderer, order_payload):
        """A missing total renders as a dash instead of failing."""
        payload = order_payload()
        del payload["total_amount"]
        rendered = renderer.render("order.paid", payload, ["email"])
        assert rendered["email"]["subject"].endswith("· -")

    def test_order_shipped_default_courier(self, renderer, order_payload):
        payload = order_payload(tracking_number="123456789012")
        rendered = renderer.render("order.shipped", payload, ["email", "sms"])
        assert rendered["email"]["subject"] == "[도깨비 테니스] 상품 발송 안내 · 택배 123456789012"
        assert "운송장번호: 123456789012" in rendered["sms"]["text"]

    def test_camel_case_payload(self, renderer):
        """Storefront documents use camelCase keys."""
        payload = {
            "orderId": "ORD-CAMEL",
            "customer": {"name": "김도깨비", "email": "camel@example.com"},
            "totalAmount": 1000,
        }
        rendered = renderer.render("order.paid", payload, ["email"])
        assert "#ORD-CAMEL" in rendered["email"]["html"]
        assert "1,000원" in rendered["email"]["subject"]

    def test_top_level_email_fallback(self, renderer):
        payload = {"order_id": "ORD-1", "email": "guest@example.com"}
        rendered = renderer.render("order.paid", payload, ["email"])
        assert rendered["email"]["to"] == "guest@example.com"

    def test_no_email_recipient_still_renders(self, renderer):
        """Without any email address the content renders with an empty recipient."""
        rendered = renderer.render("order.paid", {"order_id": "ORD-1"}, ["email"])
        assert rendered["email"]["to"] is None

    def test_html_is_escaped(self, renderer, order_payload):
        payload = order_payload(customer={"name": "<script>x</script>", "email": "a@example.com"})
        rendered = renderer.render("order.paid", payload, ["email"])
        assert "<script>" not in rendered["email"]["html"]
        assert "&lt;script&gt;" in rendered["email"]["html"]

    def test_rental_returned(self, renderer):
        payload = {
            "rental_id": "RNT-42",
            "racket_name": "Yonex EZONE 100",
            "deposit_refund": 30000,
            "customer": {"name": "이라켓", "email": "rent@example.com", "phone": "010-5555-1234"},
        }
        rendered = renderer.render("rental.returned", payload, ["email", "sms", "chat"])
        assert rendered["email"]["subject"] == "[도깨비 테니스] 라켓 반납 완료 안내 · Yonex EZONE 100"
        assert "30,000원" in rendered["email"]["text"]
        assert rendered["sms"]["to"] == "01055551234"


class TestStringingTemplates:
    """Stringing application events."""

    def test_application_submitted(self, renderer, stringing_payload):
        rendered = renderer.render(
            "stringing.application_submitted",
            stringing_payload(),
            ["email", "sms", "chat"],
        )

        email = rendered["email"]
        assert email["to"] == "tennis@example.com"
        assert email["subject"] == "[도깨비 테니스] 신청 접수 완료 · 2026-03-07(토) 14:30"
        assert "RPM Blast" in email["text"]
        assert "Wilson Blade 98" in email["text"]
        assert "BEGIN:VCALENDAR" in email["ics"]

        assert rendered["sms"]["to"] == "01098765432"
        assert "일정: 2026-03-07(토) 14:30" in rendered["sms"]["text"]
        assert "DK-C0FFEE" in rendered["chat"]["text"]

    def test_admin_url_in_chat(self, renderer, stringing_payload):
        payload = stringing_payload()
        payload["admin_detail_url"] = "https://admin.test/applications/app_65f0c0ffee"
        rendered = renderer.render("stringing.application_submitted", payload, ["chat"])
        assert rendered["chat"]["text"].endswith("https://admin.test/applications/app_65f0c0ffee")

    def test_status_updated_subject(self, renderer, stringing_payload):
        payload = stringing_payload(status="검수 중")
        rendered = renderer.render("stringing.status_updated", payload, ["email", "chat"])
        assert rendered["email"]["subject"] == "[도깨비 테니스] 신청 상태 업데이트: 검수 중"

    def test_unscheduled_application_has_no_invite(self, renderer, stringing_payload):
        payload = stringing_payload(string_details={"racket_type": "Head Speed"})
        rendered = renderer.render("stringing.schedule_confirmed", payload, ["email"])
        assert "ics" not in rendered["email"]
        assert "미정" in rendered["email"]["subject"]

    def test_self_ship_adds_shipping_cta(self, renderer, stringing_payload):
        payload = stringing_payload(shipping_info={"collection_method": "self_ship"})
        rendered = renderer.render("stringing.application_submitted", payload, ["email"])
        assert "운송장 등록하기" in rendered["email"]["html"]

    def test_cancel_sms_prefix(self, renderer, stringing_payload):
        rendered = renderer.render("stringing.schedule_canceled", stringing_payload(), ["sms"])
        assert rendered["sms"]["text"].startswith("[도깨비 테니스] 신청 취소 안내")

    def test_missing_user_email(self, renderer, stringing_payload):
        payload = stringing_payload()
        del payload["user"]["email"]
        with pytest.raises(RenderError) as exc:
            renderer.render("stringing.service_completed", payload, ["email"])
        assert exc.value.detail == "user.email"

    @pytest.mark.parametrize("event_type", [
        "stringing.schedule_confirmed",
        "stringing.schedule_updated",
        "stringing.schedule_canceled",
        "stringing.application_canceled",
        "stringing.service_in_progress",
        "stringing.service_completed",
    ])
    def test_email_and_sms_render(self, renderer, stringing_payload, event_type):
        """Every stringing event with an SMS variant renders both channels."""
        rendered = renderer.render(event_type, stringing_payload(), ["email", "sms"])
        assert rendered["email"]["subject"].startswith("[도깨비 테니스] ")
        assert rendered["sms"]["to"] == "01098765432"


class TestRendererBehaviour:
    """Purity and settings."""

    def test_render_is_deterministic(self, renderer, stringing_payload):
        payload = stringing_payload()
        first = renderer.render("stringing.schedule_confirmed", payload, ["email", "sms"])
        second = renderer.render("stringing.schedule_confirmed", payload, ["email", "sms"])
        assert first == second

    def test_duplicate_channels_collapse(self, renderer, order_payload):
        rendered = renderer.render("order.paid", order_payload(), ["email", "email"])
        assert list(rendered) == ["email"]

    def test_admin_bcc(self, order_payload):
        renderer = Renderer(RenderSettings(admin_bcc=("ops@example.com",)))
        rendered = renderer.render("order.paid", order_payload(), ["email"])
        assert rendered["email"]["bcc"] == ["ops@example.com"]

    def test_no_bcc_by_default(self, renderer, order_payload):
        rendered = renderer.render("order.paid", order_payload(), ["email"])
        assert "bcc" not in rendered["email"]


class TestFormatting:
    """Formatting helpers."""

    def test_fmt_kst_weekday(self):
        assert fmt_kst("2026-03-07", "14:30") == "2026-03-07(토) 14:30"

    def test_fmt_kst_needs_both_parts(self):
        assert fmt_kst("2026-03-07", None) is None
        assert fmt_kst(None, "14:30") is None

    def test_fmt_kst_bad_date(self):
        assert fmt_kst("someday", "14:30") == "someday 14:30"

    def test_short_code(self):
        assert short_code("app_65f0c0ffee") == "DK-C0FFEE"
        assert short_code(None) == "-"

    def test_format_won(self):
        assert format_won(54000) == "54,000원"
        assert format_won("n/a") == "n/a"


class TestIcs:
    """Calendar invite generation."""

    def test_one_hour_event(self):
        ics = build_ics("uid-1", "예약", "2026-03-07", "14:30")
        assert "DTSTART;TZID=Asia/Seoul:20260307T143000" in ics
        assert "DTEND;TZID=Asia/Seoul:20260307T153000" in ics
        assert "DTSTAMP:20260307T053000Z" in ics
        assert ics.endswith("END:VCALENDAR")

    def test_late_slot_clamped_to_same_day(self):
        ics = build_ics("uid-2", "예약", "2026-03-07", "23:30")
        assert "DTEND;TZID=Asia/Seoul:20260307T235900" in ics

    def test_missing_or_bad_date(self):
        assert build_ics("uid-3", "예약", None) is None
        assert build_ics("uid-4", "예약", "not-a-date", "10:00") is None

    def test_default_time(self):
        ics = build_ics("uid-5", "예약", "2026-03-07")
        assert "DTSTART;TZID=Asia/Seoul:20260307T100000" in ics
