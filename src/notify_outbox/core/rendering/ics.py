"""iCalendar invite for a booked stringing slot (Asia/Seoul wall time)."""

from datetime import datetime, timedelta, timezone
from typing import Optional

KST = timezone(timedelta(hours=9), "KST")


def _parse_slot(date_str: str, time_str: Optional[str]) -> Optional[datetime]:
    time_str = time_str or "10:00"
    hh, _, mm = time_str.partition(":")
    try:
        day = datetime.strptime(date_str, "%Y-%m-%d")
        return day.replace(hour=int(hh or 10), minute=int(mm or 0), tzinfo=KST)
    except ValueError:
        return None


def build_ics(
    uid: str,
    summary: str,
    date_str: Optional[str],
    time_str: Optional[str] = None,
    description: str = "",
    prodid: str = "-//Notify Outbox//Stringing//KR",
) -> Optional[str]:
    """
    One-hour VEVENT starting at ``date_str time_str`` KST, or None when the
    date is missing or unparseable.

    The end is clamped to the same day (23:59 at the latest).
    """
    if not date_str:
        return None
    start = _parse_slot(date_str, time_str)
    if start is None:
        return None

    end = start + timedelta(hours=1)
    if end.date() != start.date():
        end = start.replace(hour=23, minute=59)

    stamp = start.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    lines = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        f"PRODID:{prodid}",
        "CALSCALE:GREGORIAN",
        "METHOD:PUBLISH",
        "BEGIN:VEVENT",
        f"UID:{uid}",
        f"DTSTAMP:{stamp}",
        f"SUMMARY:{summary}",
        f"DTSTART;TZID=Asia/Seoul:{start.strftime('%Y%m%dT%H%M00')}",
        f"DTEND;TZID=Asia/Seoul:{end.strftime('%Y%m%dT%H%M00')}",
    ]
    if description:
        lines.append(f"DESCRIPTION:{description}")
    lines.extend(["END:VEVENT", "END:VCALENDAR"])
    return "\r\n".join(lines)
