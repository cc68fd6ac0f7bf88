"""Fake channel adapters - record sent messages in memory for tests and local runs."""

import asyncio
from typing import Any, Dict, List, Optional, Sequence
from uuid import uuid4

from .ports import ChannelResult, ChatPort, EmailPort, SmsPort


class _FakeAdapter:
    """Shared configure/reset behaviour for the fakes."""

    prefix = "msg"
    default_failure = "delivery failed"

    def __init__(self):
        self.sent_messages: List[Dict[str, Any]] = []
        self.calls = 0
        self.reset()

    def configure(
        self,
        should_succeed: bool = True,
        failure_reason: Optional[str] = None,
        delay: float = 0.0,
        raise_error: Optional[Exception] = None,
    ):
        """Configure the fake adapter behavior for testing."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason or self.default_failure
        self.delay = delay
        self.raise_error = raise_error

    def reset(self):
        """Clear sent messages and restore default behaviour."""
        self.sent_messages.clear()
        self.calls = 0
        self.configure()

    async def _deliver(self, message: Dict[str, Any]) -> ChannelResult:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.raise_error is not None:
            raise self.raise_error
        if not self.should_succeed:
            return ChannelResult.failed(self.failure_reason)

        message_id = f"{self.prefix}-{uuid4().hex[:12]}"
        self.sent_messages.append({"message_id": message_id, **message})
        return ChannelResult.sent(message_id)


class FakeEmailAdapter(_FakeAdapter, EmailPort):
    prefix = "email"
    default_failure = "Email delivery failed"

    async def send_email(
        self,
        to: Optional[str],
        subject: str,
        html: str,
        bcc: Optional[Sequence[str]] = None,
        text: Optional[str] = None,
        ics: Optional[str] = None,
    ) -> ChannelResult:
        return await self._deliver({
            "to": to,
            "subject": subject,
            "html": html,
            "bcc": list(bcc or []),
            "text": text,
            "ics": ics,
        })


class FakeSmsAdapter(_FakeAdapter, SmsPort):
    prefix = "sms"
    default_failure = "SMS delivery failed"

    async def send_sms(self, to: str, text: str) -> ChannelResult:
        return await self._deliver({"to": to, "text": text})


class FakeChatAdapter(_FakeAdapter, ChatPort):
    prefix = "chat"
    default_failure = "Chat delivery failed"

    async def send_chat(self, text: str) -> ChannelResult:
        return await self._deliver({"text": text})
