"""
Tests for the dispatcher: claim, concurrent fan-out, status transitions.
"""

import asyncio

import pytest

from notify_outbox.core.channels.registry import ChannelRegistry
from notify_outbox.core.channels.sms import GatedSmsAdapter
from notify_outbox.core.outbox.dispatcher import MAX_ERROR_LENGTH, Dispatcher, dispatch_lease_key
from notify_outbox.core.outbox.errors import DispatchConflict, InvalidState, RecordNotFound
from notify_outbox.core.outbox.models import Channel, OutboxRecord, OutboxStatus


async def _enqueue(store, payload, channels=("email", "sms", "chat"), event_type="order.paid"):
    record_id, _ = await store.enqueue_or_reuse(event_type, payload, list(channels))
    return record_id


class TestDispatchSuccess:
    """All channels succeed."""

    @pytest.mark.asyncio
    async def test_all_channels_sent(self, store, dispatcher, order_payload, fake_email, fake_sms, fake_chat, clock):
        record_id = await _enqueue(store, order_payload())

        result = await dispatcher.dispatch(record_id)

        assert result.status == OutboxStatus.SENT
        assert result.error is None
        assert [o.channel for o in result.outcomes] == [Channel.EMAIL, Channel.SMS, Channel.CHAT]
        assert all(o.ok for o in result.outcomes)

        record = await store.get(record_id)
        assert record.status == OutboxStatus.SENT
        assert record.sent_at == clock()
        assert record.error is None
        assert record.retries == 0

        assert fake_email.sent_messages[0]["to"] == "dokkaebi@example.com"
        assert fake_sms.sent_messages[0]["to"] == "01012345678"
        assert fake_chat.calls == 1

    @pytest.mark.asyncio
    async def test_lease_released_after_dispatch(self, store, dispatcher, lease_lock, order_payload):
        record_id = await _enqueue(store, order_payload())
        await dispatcher.dispatch(record_id)

        assert await lease_lock.is_held(dispatch_lease_key(record_id)) is False
        assert dispatcher.inflight == 0

    @pytest.mark.asyncio
    async def test_message_ids_reported(self, store, dispatcher, order_payload):
        record_id = await _enqueue(store, order_payload(), channels=("email",))
        result = await dispatcher.dispatch(record_id)
        assert result.outcomes[0].message_id.startswith("email-")

    @pytest.mark.asyncio
    async def test_sent_record_is_noop(self, store, dispatcher, order_payload, fake_email):
        record_id = await _enqueue(store, order_payload(), channels=("email",))
        await dispatcher.dispatch(record_id)

        again = await dispatcher.dispatch(record_id)

        assert again.noop is True
        assert again.status == OutboxStatus.SENT
        assert fake_email.calls == 1


class TestDispatchFailure:
    """Channel failures land in the record, never in exceptions."""

    @pytest.mark.asyncio
    async def test_partial_failure(self, store, dispatcher, order_payload, fake_sms):
        """One failing channel fails the record; retries stay untouched."""
        fake_sms.configure(should_succeed=False, failure_reason="carrier rejected")
        record_id = await _enqueue(store, order_payload())

        result = await dispatcher.dispatch(record_id)

        assert result.status == OutboxStatus.FAILED
        assert result.error == "sms: carrier rejected"
        record = await store.get(record_id)
        assert record.status == OutboxStatus.FAILED
        assert record.error == "sms: carrier rejected"
        assert record.retries == 0
        assert record.sent_at is None

    @pytest.mark.asyncio
    async def test_errors_joined_in_channel_order(self, store, dispatcher, order_payload, fake_email, fake_chat):
        fake_email.configure(should_succeed=False, failure_reason="bounced")
        fake_chat.configure(should_succeed=False)
        record_id = await _enqueue(store, order_payload())

        result = await dispatcher.dispatch(record_id)

        assert result.error == "email: bounced; chat: Chat delivery failed"

    @pytest.mark.asyncio
    async def test_channel_timeout(self, store, dispatcher, order_payload, fake_chat):
        """A slow adapter is cut off without holding the others back."""
        fake_chat.configure(delay=2.0)
        record_id = await _enqueue(store, order_payload())

        result = await dispatcher.dispatch(record_id)

        assert result.status == OutboxStatus.FAILED
        assert result.error == "chat: timeout after 0.5s"
        ok = {o.channel: o.ok for o in result.outcomes}
        assert ok == {Channel.EMAIL: True, Channel.SMS: True, Channel.CHAT: False}

    @pytest.mark.asyncio
    async def test_adapter_exception(self, store, dispatcher, order_payload, fake_email):
        """A raising adapter becomes a failed outcome with phone numbers masked."""
        fake_email.configure(raise_error=ConnectionError("relay down for 010-1234-5678"))
        record_id = await _enqueue(store, order_payload())

        result = await dispatcher.dispatch(record_id)

        assert result.status == OutboxStatus.FAILED
        assert result.error == "email: ConnectionError: relay down for 010****5678"

    @pytest.mark.asyncio
    async def test_missing_email_recipient(self, store, dispatcher, fake_email):
        record_id = await _enqueue(store, {"order_id": "ORD-NOMAIL"}, channels=("email",))

        result = await dispatcher.dispatch(record_id)

        assert result.status == OutboxStatus.FAILED
        assert result.error == "email: missing recipient"
        assert fake_email.calls == 0

    @pytest.mark.asyncio
    async def test_long_error_truncated(self, store, dispatcher, order_payload, fake_email):
        fake_email.configure(should_succeed=False, failure_reason="x" * 5000)
        record_id = await _enqueue(store, order_payload(), channels=("email",))

        await dispatcher.dispatch(record_id)

        record = await store.get(record_id)
        assert len(record.error) == MAX_ERROR_LENGTH

    @pytest.mark.asyncio
    async def test_sms_dry_run_counts_as_success(self, store, lease_lock, order_payload, fake_email, fake_sms, fake_chat, clock):
        """Disabled SMS is skipped and does not fail the record."""
        channels = ChannelRegistry(email=fake_email, sms=GatedSmsAdapter(fake_sms, enabled=False), chat=fake_chat)
        dispatcher = Dispatcher(store, lease_lock, channels, channel_timeout=0.5, clock=clock)
        record_id = await _enqueue(store, order_payload())

        result = await dispatcher.dispatch(record_id)

        assert result.status == OutboxStatus.SENT
        sms = next(o for o in result.outcomes if o.channel == Channel.SMS)
        assert sms.skipped is True
        assert fake_sms.calls == 0


class TestDispatchGuards:
    """Claiming rules."""

    @pytest.mark.asyncio
    async def test_unknown_record(self, dispatcher):
        with pytest.raises(RecordNotFound):
            await dispatcher.dispatch("ntf_missing")

    @pytest.mark.asyncio
    async def test_concurrent_dispatch_single_winner(self, store, dispatcher, order_payload, fake_email, fake_sms, fake_chat):
        """Two dispatches of one record: one sends, the other conflicts without calling adapters."""
        fake_email.configure(delay=0.05)
        record_id = await _enqueue(store, order_payload())

        results = await asyncio.gather(
            dispatcher.dispatch(record_id),
            dispatcher.dispatch(record_id),
            return_exceptions=True,
        )

        conflicts = [r for r in results if isinstance(r, DispatchConflict)]
        sent = [r for r in results if not isinstance(r, Exception)]
        assert len(conflicts) == 1
        assert len(sent) == 1 and sent[0].status == OutboxStatus.SENT
        assert (fake_email.calls, fake_sms.calls, fake_chat.calls) == (1, 1, 1)

    @pytest.mark.asyncio
    async def test_failed_record_not_dispatchable(self, store, dispatcher, order_payload, fake_email):
        fake_email.configure(should_succeed=False)
        record_id = await _enqueue(store, order_payload(), channels=("email",))
        await dispatcher.dispatch(record_id)

        with pytest.raises(DispatchConflict):
            await dispatcher.dispatch(record_id)
        assert fake_email.calls == 1

    @pytest.mark.asyncio
    async def test_lease_held_elsewhere(self, store, dispatcher, lease_lock, order_payload, fake_email):
        record_id = await _enqueue(store, order_payload(), channels=("email",))
        await lease_lock.acquire(dispatch_lease_key(record_id), "other-worker", 60)

        with pytest.raises(DispatchConflict):
            await dispatcher.dispatch(record_id)

        record = await store.get(record_id)
        assert record.status == OutboxStatus.QUEUED
        assert fake_email.calls == 0

    @pytest.mark.asyncio
    async def test_missing_render_is_invalid_state(self, store, dispatcher, fake_email):
        record = OutboxRecord(event_type="order.paid", channels=[Channel.EMAIL, Channel.SMS],
                              rendered={"email": {"to": "a@example.com", "subject": "s", "html": "h"}})
        await store.insert(record)

        with pytest.raises(InvalidState) as exc:
            await dispatcher.dispatch(record.id)

        assert "sms" in str(exc.value)
        assert (await store.get(record.id)).status == OutboxStatus.QUEUED
        assert fake_email.calls == 0


class TestDrain:
    """Graceful shutdown."""

    @pytest.mark.asyncio
    async def test_drain_waits_for_inflight(self, store, dispatcher, order_payload, fake_email):
        fake_email.configure(delay=0.1)
        record_id = await _enqueue(store, order_payload(), channels=("email",))

        task = asyncio.create_task(dispatcher.dispatch(record_id))
        await asyncio.sleep(0.01)
        assert dispatcher.inflight == 1

        pending = await dispatcher.drain(timeout=1.0)
        assert pending == 1
        assert (await store.get(record_id)).status == OutboxStatus.SENT
        await task

    @pytest.mark.asyncio
    async def test_cancelled_caller_does_not_abandon_record(self, store, dispatcher, order_payload, fake_email):
        """Cancelling the awaiting caller leaves delivery running to completion."""
        fake_email.configure(delay=0.1)
        record_id = await _enqueue(store, order_payload(), channels=("email",))

        task = asyncio.create_task(dispatcher.dispatch(record_id))
        await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        await dispatcher.drain(timeout=1.0)
        assert (await store.get(record_id)).status == OutboxStatus.SENT

    @pytest.mark.asyncio
    async def test_failure_after_cancelled_caller_is_logged(
        self, store, dispatcher, order_payload, fake_email, caplog,
    ):
        """Nobody awaits the delivery any more, so its error is retrieved and logged."""
        fake_email.configure(delay=0.1)
        record_id = await _enqueue(store, order_payload(), channels=("email",))

        task = asyncio.create_task(dispatcher.dispatch(record_id))
        await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        # Re-armed underneath the running delivery, so its final CAS loses.
        assert await store.cas_status(record_id, OutboxStatus.DISPATCHING, OutboxStatus.QUEUED)

        with caplog.at_level("WARNING", logger="notify_outbox.core.outbox.dispatcher"):
            await dispatcher.drain(timeout=1.0)
            await asyncio.sleep(0)

        assert "Outbox delivery ended with DispatchConflict" in caplog.text
        assert (await store.get(record_id)).status == OutboxStatus.QUEUED

    @pytest.mark.asyncio
    async def test_drain_with_nothing_inflight(self, dispatcher):
        assert await dispatcher.drain(timeout=0.1) == 0
