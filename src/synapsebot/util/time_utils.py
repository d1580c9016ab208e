"""
Duration and timestamp helpers.

Records on disk carry ISO-8601 strings (``2026-10-19T12:00:00.000Z``) or, in
older documents, unix epoch numbers. Everything here returns timezone-aware
UTC datetimes so comparisons never mix naive and aware values.
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from typing import Any

_UNIT_SECONDS = {
    "s": 1,
    "m": 60,
    "h": 60 * 60,
    "d": 24 * 60 * 60,
    "w": 7 * 24 * 60 * 60,
}

_DURATION_PART = re.compile(r"(\d+)\s*([smhdw])")
_REMINDER_PART = re.compile(r"(\d+)([dhm])")

# Discord refuses communication timeouts longer than 28 days
MAX_TIMEOUT = timedelta(days=28)

MIN_REMINDER = timedelta(minutes=1)
MAX_REMINDER = timedelta(days=30)
_REMINDER_UNIT_CAPS = {"d": 30, "h": 23, "m": 59}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: datetime) -> str:
    """Serialise a datetime as ISO-8601 UTC with millisecond precision and a ``Z`` suffix."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def parse_timestamp(value: Any) -> datetime | None:
    """Parse a stored timestamp into an aware UTC datetime.

    Accepts ISO-8601 strings (``Z`` suffix, explicit offset, or naive which is
    read as UTC), unix epoch seconds, and ``datetime`` objects. Returns
    ``None`` for anything else, including booleans and malformed strings.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def parse_duration(text: str) -> timedelta | None:
    """Parse a moderation duration such as ``1h``, ``2d``, ``1w`` or ``1h30m``.

    Returns ``None`` when the string is empty, contains anything other than
    ``<number><unit>`` groups, or adds up to zero.
    """
    if not text:
        return None

    cleaned = text.strip().lower()
    parts = _DURATION_PART.findall(cleaned)
    if not parts or _DURATION_PART.sub("", cleaned).strip():
        return None

    seconds = sum(int(amount) * _UNIT_SECONDS[unit] for amount, unit in parts)
    if seconds <= 0:
        return None
    return timedelta(seconds=seconds)


def parse_reminder_duration(text: str) -> timedelta | None:
    """Parse a reminder delay built from ``d``/``h``/``m`` groups (``1d12h30m``).

    Each unit may appear once and is capped (30 days, 23 hours, 59 minutes);
    the total must fall between one minute and thirty days.
    """
    if not text:
        return None

    parts = _REMINDER_PART.findall(text.strip().lower())
    if not parts:
        return None

    total = timedelta()
    seen: set[str] = set()
    for amount_text, unit in parts:
        if unit in seen:
            return None
        seen.add(unit)

        amount = int(amount_text)
        if amount <= 0 or amount > _REMINDER_UNIT_CAPS[unit]:
            return None
        total += timedelta(seconds=amount * _UNIT_SECONDS[unit])

    if total < MIN_REMINDER or total > MAX_REMINDER:
        return None
    return total


def is_valid_timeout(text: str) -> bool:
    """Return True when ``text`` parses to a positive duration Discord accepts for timeouts."""
    duration = parse_duration(text)
    return duration is not None and duration <= MAX_TIMEOUT


def format_duration(duration: timedelta) -> str:
    """Compact form used in logs and embeds: ``1d 2h 3m 4s``."""
    total = max(int(duration.total_seconds()), 0)
    days, rest = divmod(total, 86400)
    hours, rest = divmod(rest, 3600)
    minutes, seconds = divmod(rest, 60)

    parts = []
    if days:
        parts.append(f"{days}d")
    if hours:
        parts.append(f"{hours}h")
    if minutes:
        parts.append(f"{minutes}m")
    if seconds:
        parts.append(f"{seconds}s")
    return " ".join(parts) or "0s"


def humanize_duration(duration: timedelta) -> str:
    """Long form shown to users: ``1 day, 2 hours, 30 minutes``."""
    total_minutes = max(int(duration.total_seconds()), 0) // 60
    days, rest = divmod(total_minutes, 1440)
    hours, minutes = divmod(rest, 60)

    parts = []
    for amount, label in ((days, "day"), (hours, "hour"), (minutes, "minute")):
        if amount:
            parts.append(f"{amount} {label}{'s' if amount > 1 else ''}")
    return ", ".join(parts) if parts else "0 minutes"


def time_remaining(target: Any, now: datetime | None = None) -> str:
    """Compact time left until ``target``; ``0s`` once it has passed or cannot be parsed."""
    due = parse_timestamp(target)
    if due is None:
        return "0s"
    remaining = due - (now or utcnow())
    if remaining.total_seconds() <= 0:
        return "0s"
    return format_duration(remaining)
