from __future__ import annotations

from typing import Any

BLANK = "--"
_ZERO_VALUES = {"", BLANK, "00:00", "00:00:00", "0", "null", "none", "n/a"}


def clean_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def is_blank_time(value: Any) -> bool:
    """True for missing, sentinel and all-zero time strings."""
    return clean_text(value).lower() in _ZERO_VALUES


def parse_minutes(value: Any) -> int | None:
    text = clean_text(value)
    if not text or is_blank_time(text):
        return None
    parts = text.split(":")
    if len(parts) < 2:
        return None
    try:
        hours = int(parts[0])
        minutes = int(parts[1][:2])
    except ValueError:
        return None
    if hours < 0 or not 0 <= minutes < 60:
        return None
    return hours * 60 + minutes


def truncate_hhmm(value: Any) -> str:
    """``08:45:12`` -> ``08:45``; anything unparseable becomes the blank sentinel."""
    minutes = parse_minutes(value)
    if minutes is None:
        text = clean_text(value)
        if text in {"00:00", "00:00:00"}:
            return "00:00"
        return BLANK
    return format_minutes(minutes)


def format_minutes(total_minutes: int) -> str:
    hours, minutes = divmod(max(0, int(total_minutes)), 60)
    return f"{hours:02d}:{minutes:02d}"
