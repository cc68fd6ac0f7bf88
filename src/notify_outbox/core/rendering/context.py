"""Render settings and the per-call payload view handed to templates."""

from dataclasses import dataclass, field
from datetime import date
from typing import Any, List, Mapping, Optional, Sequence, Tuple

from .layout import Cta, Row

_WEEKDAYS_KO = ("월", "화", "수", "목", "금", "토", "일")


@dataclass(frozen=True)
class RenderSettings:
    """Static inputs to rendering. Captured once so render() stays pure."""
    brand: str = "도깨비 테니스"
    base_url: str = ""
    admin_bcc: Tuple[str, ...] = ()

    @classmethod
    def from_settings(cls, settings) -> "RenderSettings":
        return cls(
            brand=settings.brand,
            base_url=settings.base_url,
            admin_bcc=tuple(settings.admin_bcc),
        )


_MISSING = object()


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


@dataclass(frozen=True)
class RenderContext:
    payload: Mapping[str, Any]
    settings: RenderSettings

    @property
    def brand(self) -> str:
        return self.settings.brand

    @property
    def base_url(self) -> str:
        return self.settings.base_url

    def get(self, path: str, default: Any = None) -> Any:
        """
        Dotted lookup into the payload, e.g. ``application.string_details.preferred_date``.

        Each segment also matches its camelCase spelling (``order_id`` finds
        ``orderId``) since producers pass through documents from the storefront.
        """
        node: Any = self.payload
        for part in path.split("."):
            if not isinstance(node, Mapping):
                return default
            value = node.get(part, _MISSING)
            if value is _MISSING and "_" in part:
                value = node.get(_camel(part), _MISSING)
            node = value
            if node is _MISSING or node is None:
                return default
        return node

    def has(self, path: str) -> bool:
        value = self.get(path)
        return value is not None and value != ""


@dataclass
class Message:
    """Channel-neutral description of one notification."""
    title: str
    subject: str
    email_to: Optional[str]
    rows: List[Row] = field(default_factory=list)
    badge: Optional[str] = None
    preheader: Optional[str] = None
    ctas: Sequence[Cta] = ()
    note: Optional[str] = None
    ics: Optional[str] = None
    sms_text: Optional[str] = None
    chat_text: str = ""


def fmt_kst(date_str: Optional[str], time_str: Optional[str]) -> Optional[str]:
    """``2025-03-07`` + ``14:30`` -> ``2025-03-07(금) 14:30``."""
    if not date_str or not time_str:
        return None
    try:
        weekday = _WEEKDAYS_KO[date.fromisoformat(date_str).weekday()]
    except ValueError:
        return f"{date_str} {time_str}"
    return f"{date_str}({weekday}) {time_str}"


def short_code(value: Optional[str]) -> str:
    if not value:
        return "-"
    return f"DK-{str(value)[-6:].upper()}"


def format_won(amount: Any) -> str:
    try:
        return f"{int(amount):,}원"
    except (TypeError, ValueError):
        return str(amount)
