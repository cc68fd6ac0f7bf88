"""
Tests for the retry controller.
"""

import pytest

from notify_outbox.core.outbox.dispatcher import dispatch_lease_key
from notify_outbox.core.outbox.errors import AlreadySent, DispatchConflict, InvalidState, RecordNotFound
from notify_outbox.core.outbox.models import Channel, OutboxRecord, OutboxStatus


async def _failed_record(store, dispatcher, payload, fake_sms):
    fake_sms.configure(should_succeed=False, failure_reason="carrier rejected")
    record_id, _ = await store.enqueue_or_reuse(
        "order.paid", payload, ["email", "sms"], dedupe_key="order.paid:ORD-20260307-0001",
    )
    await dispatcher.dispatch(record_id)
    fake_sms.configure()
    return record_id


class TestRetry:
    """Re-arming failed records."""

    @pytest.mark.asyncio
    async def test_retry_failed_record(self, store, dispatcher, retry_controller, order_payload, fake_email, fake_sms, clock):
        """A failed record is re-armed, resent on every channel and marked sent."""
        record_id = await _failed_record(store, dispatcher, order_payload(), fake_sms)
        clock.advance(60)

        result = await retry_controller.retry(record_id)

        assert result.status == OutboxStatus.SENT
        record = await store.get(record_id)
        assert record.status == OutboxStatus.SENT
        assert record.retries == 1
        assert record.error is None
        assert record.sent_at == clock()
        assert record.last_tried_at == clock()
        assert fake_email.calls == 2
        assert fake_sms.calls == 2

    @pytest.mark.asyncio
    async def test_retry_failing_again(self, store, dispatcher, retry_controller, order_payload, fake_sms):
        """Each retry increments once, and the error reflects the latest attempt."""
        record_id = await _failed_record(store, dispatcher, order_payload(), fake_sms)
        fake_sms.configure(should_succeed=False, failure_reason="quota exceeded")

        await retry_controller.retry(record_id)
        await retry_controller.retry(record_id)

        record = await store.get(record_id)
        assert record.status == OutboxStatus.FAILED
        assert record.retries == 2
        assert record.error == "sms: quota exceeded"

    @pytest.mark.asyncio
    async def test_retry_queued_record(self, store, retry_controller, order_payload):
        record_id, _ = await store.enqueue_or_reuse("order.paid", order_payload(), ["email"])

        result = await retry_controller.retry(record_id)

        assert result.status == OutboxStatus.SENT
        assert (await store.get(record_id)).retries == 1

    @pytest.mark.asyncio
    async def test_retry_sent_record(self, store, dispatcher, retry_controller, order_payload, fake_email):
        """Sent records are terminal and stay untouched."""
        record_id, _ = await store.enqueue_or_reuse("order.paid", order_payload(), ["email"])
        await dispatcher.dispatch(record_id)
        before = await store.get(record_id)

        with pytest.raises(AlreadySent):
            await retry_controller.retry(record_id)

        after = await store.get(record_id)
        assert after == before
        assert fake_email.calls == 1

    @pytest.mark.asyncio
    async def test_retry_without_rendered_content(self, store, retry_controller):
        record = OutboxRecord(event_type="order.paid", channels=[Channel.EMAIL], status=OutboxStatus.FAILED)
        await store.insert(record)

        with pytest.raises(InvalidState) as exc:
            await retry_controller.retry(record.id)

        assert "no rendered payload" in str(exc.value)
        after = await store.get(record.id)
        assert after.status == OutboxStatus.FAILED
        assert after.retries == 0

    @pytest.mark.asyncio
    async def test_retry_unknown_record(self, retry_controller):
        with pytest.raises(RecordNotFound):
            await retry_controller.retry("ntf_missing")


class TestRetryWhileDispatching:
    """Records caught in dispatching."""

    async def _stuck(self, store, lease_lock, payload, owner="crashed-worker"):
        record_id, _ = await store.enqueue_or_reuse("order.paid", payload, ["email"])
        await lease_lock.acquire(dispatch_lease_key(record_id), owner, 15)
        await store.cas_status(record_id, OutboxStatus.QUEUED, OutboxStatus.DISPATCHING)
        return record_id

    @pytest.mark.asyncio
    async def test_live_lease_conflicts(self, store, lease_lock, retry_controller, order_payload, fake_email):
        """A dispatch in flight blocks the retry and nothing changes."""
        record_id = await self._stuck(store, lease_lock, order_payload())

        with pytest.raises(DispatchConflict):
            await retry_controller.retry(record_id)

        record = await store.get(record_id)
        assert record.status == OutboxStatus.DISPATCHING
        assert record.retries == 0
        assert fake_email.calls == 0

    @pytest.mark.asyncio
    async def test_expired_lease_reclaimed(self, store, lease_lock, retry_controller, order_payload, clock):
        """A crashed dispatcher's record is recoverable once its lease runs out."""
        record_id = await self._stuck(store, lease_lock, order_payload())
        clock.advance(16)

        result = await retry_controller.retry(record_id)

        assert result.status == OutboxStatus.SENT
        assert (await store.get(record_id)).retries == 1


class TestRetryAndDedupe:
    """Interaction of retries with dedupe keys."""

    @pytest.mark.asyncio
    async def test_failed_record_is_reused_by_producers(self, store, dispatcher, order_payload, fake_sms):
        record_id = await _failed_record(store, dispatcher, order_payload(), fake_sms)

        again, reused = await store.enqueue_or_reuse(
            "order.paid", order_payload(), ["email", "sms"], dedupe_key="order.paid:ORD-20260307-0001",
        )
        assert reused is True
        assert again == record_id

    @pytest.mark.asyncio
    async def test_new_record_after_successful_retry(self, store, dispatcher, retry_controller, order_payload, fake_sms):
        record_id = await _failed_record(store, dispatcher, order_payload(), fake_sms)
        await retry_controller.retry(record_id)

        again, reused = await store.enqueue_or_reuse(
            "order.paid", order_payload(), ["email", "sms"], dedupe_key="order.paid:ORD-20260307-0001",
        )
        assert reused is False
        assert again != record_id
