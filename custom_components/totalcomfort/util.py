"""Helpers shared across the Total Connect Comfort integration."""

from __future__ import annotations

import math
import re
from typing import Any

_COOKIE_RE = re.compile(r"(?i)\b(cookie|set-cookie)\s*[:=]\s*[^\r\n]+")
_PASSWORD_RE = re.compile(r"(?i)(password|passwd)(\"?\s*[:=]\s*\"?)([^&\s\",}]+)")
_ASPXAUTH_RE = re.compile(r"(?i)(\.?aspxauth[A-Za-z_]*)=([^;\s]+)")
_EMAIL_RE = re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}")


def float_or_none(value: Any) -> float | None:
    """Return value as ``float`` if possible, else ``None``.

    Converts integers, floats, and numeric strings to ``float`` while safely
    handling ``None``, booleans and non-numeric inputs.
    """

    if value is None or isinstance(value, bool):
        return None
    try:
        if isinstance(value, (int, float)):
            num = float(value)
        else:
            string_val = str(value).strip()
            if not string_val:
                return None
            num = float(string_val)
    except (TypeError, ValueError):
        return None
    return num if math.isfinite(num) else None


def int_or_none(value: Any) -> int | None:
    """Return value as ``int`` when it represents a whole number."""

    num = float_or_none(value)
    if num is None or not num.is_integer():
        return None
    return int(num)


def bool_or_none(value: Any) -> bool | None:
    """Interpret the portal's assorted boolean encodings."""

    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "1", "yes"}:
            return True
        if lowered in {"false", "0", "no"}:
            return False
    return None


def redact_text(value: str | None) -> str:
    """Return ``value`` with cookies, passwords and e-mail addresses removed."""

    if not value:
        return ""
    text = str(value)
    redacted = _COOKIE_RE.sub(lambda match: f"{match.group(1)}: ***", text)
    redacted = _ASPXAUTH_RE.sub(lambda match: f"{match.group(1)}=***", redacted)
    redacted = _PASSWORD_RE.sub(
        lambda match: f"{match.group(1)}{match.group(2)}***", redacted
    )
    return _EMAIL_RE.sub("***@***", redacted)


def mask_identifier(value: Any) -> str:
    """Return a masked identifier suitable for log output."""

    if value is None:
        return ""
    trimmed = str(value).strip()
    if not trimmed:
        return ""
    if len(trimmed) <= 4:
        return "***"
    if len(trimmed) <= 8:
        return f"{trimmed[:2]}...{trimmed[-2:]}"
    return f"{trimmed[:4]}...{trimmed[-4:]}"


def username_domain(username: str) -> str:
    """Return the e-mail domain of ``username`` for log output."""

    return username.split("@")[-1] if "@" in username else "<no-domain>"


def preview(text: str | None, limit: int = 200) -> str:
    """Return a redacted, truncated preview of a response body."""

    return redact_text(text)[:limit]
