"""
Email layout

Branded HTML shell (header with badge, summary table, CTA buttons, footer)
and a matching plain-text body. Every dynamic value is HTML-escaped.
"""

from dataclasses import dataclass
from html import escape
from typing import List, Optional, Sequence, Tuple

Row = Tuple[str, str]
Cta = Tuple[str, str]


@dataclass(frozen=True)
class Theme:
    surface: str = "#FCFFFC"
    text: str = "#1A1C1A"
    sub: str = "#4A544A"
    line: str = "#D7E3D7"
    bg_soft: str = "#F3F8F3"
    badge_bg: str = "#E9F6EC"
    badge_text: str = "#248232"
    btn_bg: str = "#2BA84A"
    btn_text: str = "#1A1C1A"
    contact: str = "문의 010-0000-0000 · 영업시간 10:00–19:00"


DEFAULT_THEME = Theme()


def _header(brand: str, title: str, badge: Optional[str], t: Theme) -> str:
    badge_html = ""
    if badge:
        badge_html = (
            f'<span style="font-size:12px;padding:6px 10px;border-radius:999px;'
            f'background:{t.badge_bg};color:{t.badge_text};font-weight:600;">{escape(badge)}</span>'
        )
    return (
        f'<div style="padding:18px 20px;border-bottom:1px solid {t.line};display:flex;'
        f'align-items:center;justify-content:space-between;">'
        f'<div style="font-weight:700;color:{t.text};font-size:16px;">{escape(brand)}</div>'
        f"{badge_html}</div>"
        f'<div style="padding:20px 20px 8px 20px;">'
        f'<h1 style="margin:0 0 4px 0;font-size:20px;line-height:1.35;color:{t.text};">{escape(title)}</h1>'
        f'<p style="margin:0;color:{t.sub};font-size:13px;">{escape(brand)} 알림입니다.</p>'
        f"</div>"
    )


def _summary_table(rows: Sequence[Row], t: Theme) -> str:
    cells = "".join(
        f"<tr>"
        f'<td style="padding:12px 14px;font-weight:600;width:120px;color:{t.text};'
        f'background:{t.bg_soft};border-bottom:1px solid {t.line};">{escape(k)}</td>'
        f'<td style="padding:12px 14px;border-bottom:1px solid {t.line};color:{t.text};">{escape(v)}</td>'
        f"</tr>"
        for k, v in rows
    )
    return (
        f'<table role="presentation" style="border-collapse:collapse;width:100%;background:{t.surface};'
        f'border:1px solid {t.line};border-radius:10px;overflow:hidden;">{cells}</table>'
    )


def _buttons(ctas: Sequence[Cta], t: Theme) -> str:
    if not ctas:
        return ""
    links = "".join(
        f'<a href="{escape(url, quote=True)}" style="display:inline-block;margin-right:8px;'
        f"padding:11px 16px;border-radius:10px;background:{t.btn_bg};color:{t.btn_text};"
        f'text-decoration:none;font-weight:700;font-size:14px;">{escape(label)}</a>'
        for label, url in ctas
    )
    return f'<div style="margin-top:16px;">{links}</div>'


def _footer(brand: str, note: Optional[str], t: Theme) -> str:
    note_html = ""
    if note:
        note_html = (
            f'<div style="margin-top:18px;padding-top:10px;border-top:1px solid {t.line};'
            f'color:{t.sub};font-size:12px;line-height:1.6;">{escape(note)}</div>'
        )
    return (
        f"{note_html}"
        f'<div style="margin-top:14px;color:{t.sub};font-size:12px;">'
        f"ⓒ {escape(brand)} · {escape(t.contact)}</div>"
    )


def wrap_email(
    brand: str,
    title: str,
    rows: Sequence[Row],
    badge: Optional[str] = None,
    preheader: Optional[str] = None,
    ctas: Sequence[Cta] = (),
    note: Optional[str] = None,
    theme: Theme = DEFAULT_THEME,
) -> str:
    """Render the branded HTML email body."""
    pre = ""
    if preheader:
        pre = (
            '<span style="display:none;visibility:hidden;opacity:0;color:transparent;height:0;width:0;">'
            f"{escape(preheader)}</span>"
        )
    return (
        f"{pre}"
        f'<div style="max-width:680px;margin:0 auto;background:{theme.surface};border:1px solid {theme.line};'
        f"border-radius:12px;overflow:hidden;font-family:system-ui,-apple-system,Segoe UI,Roboto,"
        f"'Noto Sans KR',sans-serif;\">"
        f"{_header(brand, title, badge, theme)}"
        f'<div style="padding:18px 20px;">'
        f"{_summary_table(rows, theme)}"
        f"{_buttons(ctas, theme)}"
        f"{_footer(brand, note, theme)}"
        f"</div></div>"
    )


def plain_text(
    brand: str,
    title: str,
    rows: Sequence[Row],
    ctas: Sequence[Cta] = (),
    note: Optional[str] = None,
) -> str:
    """Plain-text alternative of :func:`wrap_email`."""
    lines: List[str] = [f"[{brand}] {title}", ""]
    lines.extend(f"{k}: {v}" for k, v in rows)
    if ctas:
        lines.append("")
        lines.extend(f"{label}: {url}" for label, url in ctas)
    if note:
        lines.extend(["", note])
    return "\n".join(lines)
