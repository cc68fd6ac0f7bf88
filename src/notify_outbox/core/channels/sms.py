"""
SMS gate

Wraps the real SMS adapter with deployment safety checks: digits-only
normalization, masked logging, a global enable flag and an optional
allow-list of recipient numbers. Blocked sends are reported as dry runs
rather than failures so non-production environments still complete
dispatches.
"""

import logging
from typing import Iterable

from ..phone import mask_phone, normalize_phone
from .ports import ChannelResult, SmsPort

logger = logging.getLogger(__name__)

MIN_PHONE_DIGITS = 10


class GatedSmsAdapter(SmsPort):
    """SmsPort decorator enforcing SMS_ENABLED and SMS_ALLOWLIST."""

    def __init__(self, inner: SmsPort, enabled: bool = False, allowlist: Iterable[str] = ()):
        self.inner = inner
        self.enabled = enabled
        self.allowlist = frozenset(normalize_phone(n) for n in allowlist if normalize_phone(n))

    def is_allowed(self, digits: str) -> bool:
        return not self.allowlist or digits in self.allowlist

    async def send_sms(self, to: str, text: str) -> ChannelResult:
        digits = normalize_phone(to)
        masked = mask_phone(digits)

        if len(digits) < MIN_PHONE_DIGITS:
            logger.warning(f"SMS rejected, invalid number {masked}")
            return ChannelResult.failed(f"invalid phone number {masked}")

        if not self.enabled:
            logger.info(f"SMS dry-run (disabled) to {masked}")
            return ChannelResult.dry_run("sms disabled")

        if not self.is_allowed(digits):
            logger.info(f"SMS dry-run (not allow-listed) to {masked}")
            return ChannelResult.dry_run("recipient not in allow-list")

        result = await self.inner.send_sms(digits, text)
        if result.ok:
            logger.info(f"SMS sent to {masked} ({result.message_id})")
        else:
            logger.warning(f"SMS to {masked} failed: {result.error}")
        return result

