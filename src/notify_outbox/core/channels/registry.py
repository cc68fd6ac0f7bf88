"""
Channel adapter registry.

Maps each Channel to its adapter and unpacks rendered content into the
adapter call. Fake email adapters are used unless a real one is injected;
chat goes to CHAT_WEBHOOK_URL when it is configured; SMS is always wrapped
in the enable/allow-list gate.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from ..config import OutboxSettings, get_settings
from ..outbox.models import Channel
from .chat import WebhookChatAdapter
from .fakes import FakeChatAdapter, FakeEmailAdapter, FakeSmsAdapter
from .ports import ChannelResult, ChatPort, EmailPort, SmsPort
from .sms import GatedSmsAdapter

logger = logging.getLogger(__name__)


@dataclass
class ChannelRegistry:
    email: EmailPort
    sms: SmsPort
    chat: ChatPort

    async def send(self, channel: Channel, content: Mapping[str, Any]) -> ChannelResult:
        """Deliver one channel's rendered content."""
        channel = Channel(channel)
        if channel == Channel.EMAIL:
            if not content.get("to"):
                return ChannelResult.failed("missing recipient")
            return await self.email.send_email(
                to=content["to"],
                subject=content.get("subject", ""),
                html=content.get("html", ""),
                bcc=content.get("bcc"),
                text=content.get("text"),
                ics=content.get("ics"),
            )
        if channel == Channel.SMS:
            return await self.sms.send_sms(content.get("to", ""), content.get("text", ""))
        return await self.chat.send_chat(content.get("text", ""))


def build_channels(
    settings: Optional[OutboxSettings] = None,
    email: Optional[EmailPort] = None,
    sms: Optional[SmsPort] = None,
    chat: Optional[ChatPort] = None,
) -> ChannelRegistry:
    """Build the registry from settings; explicit adapters win."""
    settings = settings or get_settings()

    if chat is None:
        if settings.chat_webhook_url:
            chat = WebhookChatAdapter(settings.chat_webhook_url, timeout=settings.channel_timeout_seconds)
        else:
            chat = FakeChatAdapter()

    registry = ChannelRegistry(
        email=email or FakeEmailAdapter(),
        sms=GatedSmsAdapter(
            sms or FakeSmsAdapter(),
            enabled=settings.sms_enabled,
            allowlist=settings.sms_allowlist,
        ),
        chat=chat,
    )
    logger.info(
        f"Channels: email={type(registry.email).__name__}, "
        f"sms=Gated({type(registry.sms.inner).__name__}, enabled={settings.sms_enabled}), "
        f"chat={type(registry.chat).__name__}"
    )
    return registry


_channels: Optional[ChannelRegistry] = None


def get_channels() -> ChannelRegistry:
    """Return the process-wide channel registry."""
    global _channels
    if _channels is None:
        _channels = build_channels()
    return _channels


def reset_channels() -> None:
    """Drop the registry (useful for testing)."""
    global _channels
    _channels = None


def describe(registry: ChannelRegistry) -> Dict[str, str]:
    """Adapter class per channel, for the health endpoint."""
    return {
        Channel.EMAIL.value: type(registry.email).__name__,
        Channel.SMS.value: type(registry.sms).__name__,
        Channel.CHAT.value: type(registry.chat).__name__,
    }
