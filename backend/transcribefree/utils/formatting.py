"""Human-readable formatting of sizes, durations and clock times."""

from __future__ import annotations

_SIZE_UNITS = ["Bytes", "KB", "MB", "GB"]


def format_file_size(size: int) -> str:
    """``1536`` -> ``"1.5 KB"``."""
    if size <= 0:
        return "0 Bytes"
    value = float(size)
    exponent = 0
    while value >= 1024 and exponent < len(_SIZE_UNITS) - 1:
        value /= 1024
        exponent += 1
    return f"{round(value, 2):g} {_SIZE_UNITS[exponent]}"


def format_duration(minutes: int) -> str:
    """Whole minutes as ``"1 min"``, ``"45 mins"`` or ``"2h 5m"``."""
    if minutes < 60:
        return f"{minutes} min{'s' if minutes != 1 else ''}"
    hours, remaining = divmod(minutes, 60)
    return f"{hours}h {remaining}m"


def format_clock(seconds: float) -> str:
    """Seconds as ``MM:SS`` (minutes may exceed 59)."""
    seconds = max(0.0, seconds)
    minutes = int(seconds // 60)
    secs = int(seconds % 60)
    return f"{minutes:02d}:{secs:02d}"


def format_eta(seconds: int) -> str:
    if seconds < 60:
        return f"{seconds} seconds"
    mins, secs = divmod(seconds, 60)
    if mins < 60:
        return f"{mins}m {secs}s" if secs else f"{mins} minutes"
    hours, mins = divmod(mins, 60)
    return f"{hours}h {mins}m"


def truncate_words(text: str, limit: int) -> str:
    """Keep the first ``limit`` words, marking the cut with ``...``."""
    words = text.split()
    if len(words) <= limit:
        return text.strip()
    return " ".join(words[:limit]) + "..."
