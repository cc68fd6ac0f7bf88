"""
Outbox Configuration

Settings for the dispatcher, renderer and channel adapters, read from
environment variables once at construction.
"""

import os
import logging
from typing import Optional, Tuple

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() == "true"


def _env_list(name: str) -> Tuple[str, ...]:
    raw = os.getenv(name, "")
    return tuple(part.strip() for part in raw.split(",") if part.strip())


class OutboxSettings:
    """Outbox settings from environment variables."""

    def __init__(self):
        self.store_backend = os.getenv("OUTBOX_STORE", "sql").lower()
        self.channel_timeout_seconds = float(os.getenv("OUTBOX_CHANNEL_TIMEOUT_SECONDS", "5"))
        self.lease_grace_seconds = float(os.getenv("OUTBOX_LEASE_GRACE_SECONDS", "10"))
        self.admin_lock_seconds = float(os.getenv("OUTBOX_ADMIN_LOCK_SECONDS", "30"))

        # Renderer
        self.brand = os.getenv("NOTIFY_BRAND", "도깨비 테니스")
        self.base_url = os.getenv("NOTIFY_BASE_URL", "").rstrip("/")
        self.admin_bcc = _env_list("ADMIN_NOTIFY_EMAILS")

        # Channels
        self.sms_enabled = _env_bool("SMS_ENABLED")
        self.sms_allowlist = tuple(
            "".join(ch for ch in entry if ch.isdigit())
            for entry in _env_list("SMS_ALLOWLIST")
        )
        self.chat_webhook_url = os.getenv("CHAT_WEBHOOK_URL", "")

        # Logging
        self.log_level = os.getenv("LOG_LEVEL", "INFO")
        self.log_structured = _env_bool("LOG_STRUCTURED", "true")
        self.otlp_endpoint: Optional[str] = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT") or None

    @property
    def dispatch_lease_seconds(self) -> float:
        """TTL of the per-record dispatch lease."""
        return self.channel_timeout_seconds + self.lease_grace_seconds

    def __repr__(self) -> str:
        return (
            f"OutboxSettings(store={self.store_backend}, "
            f"channel_timeout={self.channel_timeout_seconds}s, "
            f"sms_enabled={self.sms_enabled}, chat_webhook={'set' if self.chat_webhook_url else 'unset'})"
        )


_settings: Optional[OutboxSettings] = None


def get_settings() -> OutboxSettings:
    """Get the process-wide settings instance."""
    global _settings
    if _settings is None:
        _settings = OutboxSettings()
        logger.debug(f"Loaded {_settings}")
    return _settings


def reset_settings() -> None:
    """Drop cached settings so the next call re-reads the environment."""
    global _settings
    _settings = None
