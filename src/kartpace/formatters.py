"""Formatting helpers for lap times, deltas and lap ages (all times in ms)."""

from __future__ import annotations


def format_time(ms: int | float | None) -> str:
    """Format milliseconds as s.fff, or '--.-' if missing."""
    if ms is None or ms <= 0:
        return "--.-"
    return f"{ms / 1000:.3f}"


def format_lap_time(ms: int | float | None) -> str:
    """Format milliseconds as m:ss.fff (or s.fff under a minute)."""
    if ms is None or ms <= 0:
        return "--.-"
    total = int(round(ms))
    minutes, rest = divmod(total, 60_000)
    seconds, millis = divmod(rest, 1000)
    if minutes > 0:
        return f"{minutes}:{seconds:02d}.{millis:03d}"
    return f"{seconds}.{millis:03d}"


def format_delta(delta_ms: int | float | None) -> str:
    """Format a delta as +s.fff / -s.fff."""
    if not delta_ms:
        return "0.000"
    seconds = f"{delta_ms / 1000:.3f}"
    return f"+{seconds}" if delta_ms > 0 else seconds


def parse_lap_time(text: str | None) -> int | None:
    """Parse '1:25.123' or '25.123' into milliseconds."""
    if not text:
        return None
    try:
        if ":" in text:
            minutes, seconds = text.split(":", 1)
            return round((int(minutes) * 60 + float(seconds)) * 1000)
        return round(float(text) * 1000)
    except ValueError:
        return None


def percentage_off_best(current_ms: int | None, best_ms: int | None) -> str:
    """Percentage a lap is off the best lap, e.g. '+2.5%'."""
    if not current_ms or not best_ms:
        return "-"
    diff = (current_ms - best_ms) / best_ms * 100
    return f"+{diff:.1f}%" if diff >= 0 else f"{diff:.1f}%"


def format_lap_age(age_seconds: int | None) -> str:
    """Human-readable age such as '5 minutes ago'."""
    if age_seconds is None:
        return "unknown"
    minutes = age_seconds // 60
    hours = minutes // 60
    if hours > 0:
        return f"{hours} hour{'s' if hours != 1 else ''} ago"
    if minutes > 0:
        return f"{minutes} minute{'s' if minutes != 1 else ''} ago"
    return f"{age_seconds} second{'s' if age_seconds != 1 else ''} ago"
