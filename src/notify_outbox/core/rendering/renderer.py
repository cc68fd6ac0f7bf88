"""
Renderer

Pure function from (event type, payload, channels) to per-channel
content. No I/O, no clock and no environment reads happen here; brand, base
URL and admin BCC come in through RenderSettings when the renderer is built.

Content shapes:
    email: {"to", "subject", "html", "text", "bcc"?, "ics"?}
    sms:   {"to", "text"}            # "to" is digits only
    chat:  {"text"}
"""

from typing import Any, Dict, List, Mapping, Optional, Sequence

from ..outbox.errors import RenderError, RenderErrorReason
from ..outbox.models import Channel
from .context import Message, RenderContext, RenderSettings
from .layout import plain_text, wrap_email
from .templates import EventTemplate, get_template


def _parse_channels(channels: Sequence[Any], template: EventTemplate) -> List[Channel]:
    if not channels:
        raise RenderError(RenderErrorReason.UNSUPPORTED_CHANNEL, "no channels requested")

    parsed: List[Channel] = []
    for raw in channels:
        try:
            channel = Channel(getattr(raw, "value", raw))
        except ValueError:
            raise RenderError(RenderErrorReason.UNSUPPORTED_CHANNEL, f"unknown channel '{raw}'")
        if channel not in template.channels:
            raise RenderError(
                RenderErrorReason.UNSUPPORTED_CHANNEL,
                f"{template.event_type.value} cannot be sent via {channel.value}",
            )
        if channel not in parsed:
            parsed.append(channel)
    return parsed


class Renderer:
    """Renders outbox content with fixed settings."""

    def __init__(self, settings: Optional[RenderSettings] = None):
        self.settings = settings or RenderSettings()

    def render(
        self,
        event_type: str,
        payload: Mapping[str, Any],
        channels: Sequence[Any],
    ) -> Dict[str, Dict[str, Any]]:
        template = get_template(event_type)
        if template is None:
            raise RenderError(RenderErrorReason.UNSUPPORTED_EVENT, str(event_type))

        requested = _parse_channels(channels, template)

        ctx = RenderContext(payload=payload or {}, settings=self.settings)
        for path in template.required:
            if not ctx.has(path):
                raise RenderError(RenderErrorReason.MISSING_FIELD, path)

        phone = ""
        if Channel.SMS in requested:
            phone = template.pick_phone(ctx)
            if not phone:
                raise RenderError(RenderErrorReason.MISSING_FIELD, "phone")

        message = template.build(ctx)

        rendered: Dict[str, Dict[str, Any]] = {}
        for channel in requested:
            if channel == Channel.EMAIL:
                rendered[channel.value] = self._email(message)
            elif channel == Channel.SMS:
                rendered[channel.value] = {"to": phone, "text": message.sms_text or message.title}
            elif channel == Channel.CHAT:
                rendered[channel.value] = {"text": message.chat_text or message.subject}
        return rendered

    def _email(self, message: Message) -> Dict[str, Any]:
        brand = self.settings.brand
        content: Dict[str, Any] = {
            "to": message.email_to,
            "subject": message.subject,
            "html": wrap_email(
                brand,
                message.title,
                message.rows,
                badge=message.badge,
                preheader=message.preheader,
                ctas=message.ctas,
                note=message.note,
            ),
            "text": plain_text(brand, message.title, message.rows, message.ctas, message.note),
        }
        if self.settings.admin_bcc:
            content["bcc"] = list(self.settings.admin_bcc)
        if message.ics:
            content["ics"] = message.ics
        return content


_default_renderer = Renderer()


def render(
    event_type: str,
    payload: Mapping[str, Any],
    channels: Sequence[Any],
    settings: Optional[RenderSettings] = None,
) -> Dict[str, Dict[str, Any]]:
    """Module-level shortcut; uses default settings unless given."""
    renderer = Renderer(settings) if settings is not None else _default_renderer
    return renderer.render(event_type, payload, channels)
