"""Shared sanitisation helpers for log output."""

from __future__ import annotations

import re

_COOKIE_RE = re.compile(r"(?i)((?:set-)?cookie['\"]?\s*[:=]\s*['\"]?)([^'\"\n]+)")
_TOKEN_RE = re.compile(r"(?i)(x-csrf-token['\"]?\s*[:=]\s*['\"]?)([^'\"\s,}]+)")
_PASSWORD_RE = re.compile(r"(?i)(password['\"]?\s*[:=]\s*['\"]?)([^'\"\s,}]+)")
_SESSION_COOKIE_RE = re.compile(r"(?i)\b(TOKEN|UOS_TOKEN)=([^;\s]+)")


def redact_text(value: str | None) -> str:
    """Return ``value`` with cookies, CSRF tokens and passwords removed."""

    if not value:
        return ""
    text = str(value)
    redacted = _COOKIE_RE.sub(lambda match: f"{match.group(1)}***", text)
    redacted = _TOKEN_RE.sub(lambda match: f"{match.group(1)}***", redacted)
    redacted = _PASSWORD_RE.sub(lambda match: f"{match.group(1)}***", redacted)
    return _SESSION_COOKIE_RE.sub(lambda match: f"{match.group(1)}=***", redacted)


def mask_identifier(value: str | None) -> str:
    """Keep only the first and last characters of a username or identifier."""

    text = (value or "").strip()
    if len(text) <= 4:
        return "***" if text else ""
    return f"{text[0]}***{text[-1]}"


__all__ = ["mask_identifier", "redact_text"]
