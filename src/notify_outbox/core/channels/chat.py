"""Chat webhook adapter (Slack-compatible ``{"text": ...}`` payload) over httpx."""

import logging
from typing import Optional

import httpx

from .ports import ChannelResult, ChatPort

logger = logging.getLogger(__name__)


class WebhookChatAdapter(ChatPort):
    """
    Posts chat messages to an incoming-webhook URL.

    Non-2xx responses and transport errors become failed ChannelResults;
    nothing is raised to the dispatcher.
    """

    def __init__(
        self,
        webhook_url: str,
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.webhook_url = webhook_url
        self.timeout = timeout
        self._transport = transport

    async def send_chat(self, text: str) -> ChannelResult:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.webhook_url, json={"text": text})
        except httpx.HTTPError as e:
            logger.warning(f"Chat webhook error: {type(e).__name__}: {e}")
            return ChannelResult.failed(f"webhook error: {type(e).__name__}")

        if response.status_code >= 300:
            logger.warning(f"Chat webhook returned HTTP {response.status_code}")
            return ChannelResult.failed(f"webhook returned HTTP {response.status_code}")

        return ChannelResult.sent(response.headers.get("x-request-id"))
