"""
Notification rendering.

Usage:
    from notify_outbox.core.rendering import Renderer, RenderSettings

    renderer = Renderer(RenderSettings(brand="도깨비 테니스", base_url="https://example.com"))
    rendered = renderer.render("order.paid", payload, ["email", "sms"])
"""

from .context import RenderSettings, fmt_kst, short_code
from .renderer import Renderer, render
from .templates import TEMPLATE_REGISTRY, EventTemplate, get_template

__all__ = [
    "RenderSettings",
    "Renderer",
    "render",
    "TEMPLATE_REGISTRY",
    "EventTemplate",
    "get_template",
    "fmt_kst",
    "short_code",
]
