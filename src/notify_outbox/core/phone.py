"""
Phone number helpers.

Numbers are normalized to bare digits before they reach the SMS adapter
and are only ever logged in masked form (``010****5678``).
"""

import re

_PHONE_IN_TEXT = re.compile(r"(?<!\d)(01[016789])[-. ]?(\d{3,4})[-. ]?(\d{4})(?!\d)")


def normalize_phone(raw) -> str:
    """Strip everything but digits."""
    if raw is None:
        return ""
    return re.sub(r"[^\d]", "", str(raw))


def mask_phone(raw) -> str:
    """
    Mask the middle of a phone number.

    >>> mask_phone("010-1234-5678")
    '010****5678'
    """
    digits = normalize_phone(raw)
    if len(digits) < 8:
        return "*" * len(digits)
    return f"{digits[:3]}{'*' * (len(digits) - 7)}{digits[-4:]}"


def redact_phones(text: str) -> str:
    """Mask every mobile number found in free text."""
    return _PHONE_IN_TEXT.sub(lambda m: mask_phone(m.group(0)), text)
