"""Channel ports: abstract interfaces for email, SMS and chat delivery."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Sequence


@dataclass
class ChannelResult:
    """Outcome of one delivery attempt."""
    ok: bool
    message_id: Optional[str] = None
    error: Optional[str] = None
    skipped: bool = False

    @classmethod
    def sent(cls, message_id: Optional[str] = None) -> "ChannelResult":
        return cls(ok=True, message_id=message_id)

    @classmethod
    def failed(cls, error: str) -> "ChannelResult":
        return cls(ok=False, error=error)

    @classmethod
    def dry_run(cls, reason: str) -> "ChannelResult":
        return cls(ok=True, error=reason, skipped=True)


class EmailPort(ABC):
    """Abstract interface for email delivery adapters."""

    @abstractmethod
    async def send_email(
        self,
        to: Optional[str],
        subject: str,
        html: str,
        bcc: Optional[Sequence[str]] = None,
        text: Optional[str] = None,
        ics: Optional[str] = None,
    ) -> ChannelResult:
        ...


class SmsPort(ABC):
    """Abstract interface for SMS delivery adapters."""

    @abstractmethod
    async def send_sms(self, to: str, text: str) -> ChannelResult:
        ...


class ChatPort(ABC):
    """Abstract interface for team chat (webhook) adapters."""

    @abstractmethod
    async def send_chat(self, text: str) -> ChannelResult:
        ...
