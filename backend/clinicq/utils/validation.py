"""
Input sanitisation and privacy helpers for patient-supplied fields.
"""

import re
from typing import Optional

# Egyptian mobile numbers: 010, 011, 012 or 015 followed by 8 digits
EGYPTIAN_PHONE_RE = re.compile(r"^01[0125][0-9]{8}$")

_CONTROL_CHARS_RE = re.compile(r"[\x00-\x1f\x7f<>]")
_NAME_DISALLOWED_RE = re.compile(r"[^\u0600-\u06FF\u0750-\u077Fa-zA-Z\s\-'.]")
_WHITESPACE_RE = re.compile(r"\s+")


def sanitize_phone(phone: str) -> str:
    """Keep digits only."""
    return re.sub(r"\D", "", phone or "")


def is_valid_phone(phone: str) -> bool:
    return bool(EGYPTIAN_PHONE_RE.match(sanitize_phone(phone)))


def sanitize_text(text: Optional[str], max_length: int = 500) -> Optional[str]:
    """Strip control characters and angle brackets, collapse whitespace."""
    if not text:
        return None
    cleaned = _CONTROL_CHARS_RE.sub("", text.strip())
    cleaned = _WHITESPACE_RE.sub(" ", cleaned)[:max_length]
    return cleaned or None


def sanitize_name(name: str) -> str:
    """Arabic and Latin letters, spaces and common name punctuation only."""
    cleaned = _NAME_DISALLOWED_RE.sub("", (name or "").strip())
    return _WHITESPACE_RE.sub(" ", cleaned).strip()[:100]


def display_initials(full_name: str) -> str:
    """
    Public display name made of initials.

    "Ahmed Mohamed" -> "A.M.", "Ahmed" -> "A."
    """
    parts = full_name.split()
    if not parts:
        return ""
    return ".".join(part[0] for part in parts) + "."


def phone_last4(phone: str) -> str:
    """Last four digits, used by patients to recognise their own ticket."""
    return sanitize_phone(phone)[-4:]
