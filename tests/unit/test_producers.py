"""
Tests for the producer triggers.
"""

import pytest

from notify_outbox.core.outbox import producers
from notify_outbox.core.outbox.models import Channel, OutboxStatus


async def _record(outbox, outcome):
    return await outbox.get(outcome.id)


class TestStringingTriggers:
    """Stringing application triggers."""

    @pytest.mark.asyncio
    async def test_application_submitted(self, outbox, stringing_payload, fake_sms, fake_chat):
        p = stringing_payload()

        outcome = await producers.on_application_submitted(
            outbox, p["user"], p["application"], admin_detail_url="https://admin.test/a/1",
        )

        assert outcome.reused is False
        assert outcome.status == OutboxStatus.SENT
        record = await _record(outbox, outcome)
        assert record.event_type == "stringing.application_submitted"
        assert record.channels == [Channel.EMAIL, Channel.CHAT, Channel.SMS]
        assert record.dedupe_key == "app_65f0c0ffee:submitted"
        assert record.payload["admin_detail_url"] == "https://admin.test/a/1"
        assert fake_sms.sent_messages[0]["to"] == "01098765432"
        assert "https://admin.test/a/1" in fake_chat.sent_messages[0]["text"]

    @pytest.mark.asyncio
    async def test_sms_opt_out(self, outbox, stringing_payload, fake_sms):
        p = stringing_payload()

        outcome = await producers.on_application_submitted(outbox, p["user"], p["application"], with_sms=False)

        record = await _record(outbox, outcome)
        assert Channel.SMS not in record.channels
        assert fake_sms.calls == 0

    @pytest.mark.asyncio
    async def test_no_phone_no_sms(self, outbox, stringing_payload):
        """Without a phone the trigger still notifies by email instead of failing to render."""
        p = stringing_payload(contact_phone=None)

        outcome = await producers.on_schedule_confirmed(outbox, p["user"], p["application"])

        record = await _record(outbox, outcome)
        assert record.channels == [Channel.EMAIL]
        assert outcome.status == OutboxStatus.SENT

    @pytest.mark.parametrize("status,event_type,channels", [
        ("교체완료", "stringing.service_completed", [Channel.EMAIL, Channel.SMS]),
        ("작업 중", "stringing.service_in_progress", [Channel.EMAIL, Channel.SMS]),
        ("검수 중", "stringing.status_updated", [Channel.EMAIL, Channel.CHAT]),
    ])
    @pytest.mark.asyncio
    async def test_status_routing(self, outbox, stringing_payload, status, event_type, channels):
        p = stringing_payload(status=status)

        outcome = await producers.on_status_updated(outbox, p["user"], p["application"])

        record = await _record(outbox, outcome)
        assert record.event_type == event_type
        assert record.channels == channels
        assert record.dedupe_key == f"app_65f0c0ffee:status:{status}"

    @pytest.mark.asyncio
    async def test_schedule_keys_include_slot(self, outbox, stringing_payload):
        p = stringing_payload()

        confirmed = await producers.on_schedule_confirmed(outbox, p["user"], p["application"])
        updated = await producers.on_schedule_updated(outbox, p["user"], p["application"])
        canceled = await producers.on_schedule_canceled(outbox, p["user"], p["application"])

        assert (await _record(outbox, confirmed)).dedupe_key == "app_65f0c0ffee:schedule:2026-03-07T14:30"
        assert (await _record(outbox, updated)).dedupe_key == "app_65f0c0ffee:schedule-updated:2026-03-07T14:30"
        assert (await _record(outbox, canceled)).dedupe_key == "app_65f0c0ffee:schedule-canceled:2026-03-07T14:30"

    @pytest.mark.asyncio
    async def test_application_canceled(self, outbox, stringing_payload):
        p = stringing_payload()

        outcome = await producers.on_application_canceled(outbox, p["user"], p["application"])

        record = await _record(outbox, outcome)
        assert record.event_type == "stringing.application_canceled"
        assert record.dedupe_key == "app_65f0c0ffee:application-canceled"


class TestOrderAndRentalTriggers:
    """Shop order and rental triggers."""

    @pytest.mark.asyncio
    async def test_order_paid(self, outbox, order_payload, fake_chat):
        outcome = await producers.on_order_paid(outbox, order_payload())

        record = await _record(outbox, outcome)
        assert record.channels == [Channel.EMAIL, Channel.CHAT]
        assert record.dedupe_key == "order.paid:ORD-20260307-0001"
        assert outcome.status == OutboxStatus.SENT
        assert fake_chat.calls == 1

    @pytest.mark.asyncio
    async def test_order_shipped_includes_sms(self, outbox, order_payload, fake_sms):
        outcome = await producers.on_order_shipped(outbox, order_payload(tracking_number="5555"))

        record = await _record(outbox, outcome)
        assert record.channels == [Channel.EMAIL, Channel.SMS]
        assert record.dedupe_key == "order.shipped:ORD-20260307-0001:5555"
        assert fake_sms.calls == 1

    @pytest.mark.asyncio
    async def test_rental_returned(self, outbox):
        rental = {"rental_id": "RNT-9", "racket_name": "Babolat Pure Aero", "customer": {"email": "r@example.com"}}

        outcome = await producers.on_rental_returned(outbox, rental)

        record = await _record(outbox, outcome)
        assert record.event_type == "rental.returned"
        assert record.dedupe_key == "rental.returned:RNT-9"


class TestTriggerDedupe:
    """Repeated triggers."""

    @pytest.mark.asyncio
    async def test_failed_record_reused_not_resent(self, outbox, order_payload, fake_email):
        """A repeated trigger does not resend a record waiting for an operator retry."""
        fake_email.configure(should_succeed=False)

        first = await producers.on_order_paid(outbox, order_payload())
        second = await producers.on_order_paid(outbox, order_payload())

        assert first.status == OutboxStatus.FAILED
        assert second.reused is True
        assert second.id == first.id
        assert second.status == OutboxStatus.FAILED
        assert fake_email.calls == 1
