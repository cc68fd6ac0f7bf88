"""
Channel adapters - pluggable delivery for email, SMS and chat.

Usage:
    from notify_outbox.core.channels import build_channels

    channels = build_channels()
    result = await channels.send(Channel.SMS, {"to": "01012345678", "text": "hello"})
"""

from .chat import WebhookChatAdapter
from .fakes import FakeChatAdapter, FakeEmailAdapter, FakeSmsAdapter
from .ports import ChannelResult, ChatPort, EmailPort, SmsPort
from .registry import ChannelRegistry, build_channels, get_channels, reset_channels
from .sms import GatedSmsAdapter

__all__ = [
    "ChannelResult",
    "EmailPort",
    "SmsPort",
    "ChatPort",
    "FakeEmailAdapter",
    "FakeSmsAdapter",
    "FakeChatAdapter",
    "GatedSmsAdapter",
    "WebhookChatAdapter",
    "ChannelRegistry",
    "build_channels",
    "get_channels",
    "reset_channels",
]
