"""
Helper functions for turning byte counts, rates and media positions into
human-readable strings.
"""

from typing import Optional

_SIZE_UNITS = ("B", "KB", "MB", "GB", "TB")


def format_size(bytes_size: float) -> str:
    """Formats bytes into a human-readable size string (e.g., '145.3 MB')."""
    if bytes_size <= 0:
        return "0 B"
    value = float(bytes_size)
    for unit in _SIZE_UNITS[:-1]:
        if value < 1024:
            return f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} {_SIZE_UNITS[-1]}"


def format_speed(bytes_per_second: float) -> str:
    return f"{format_size(bytes_per_second)}/s"


def format_duration(seconds: Optional[float]) -> str:
    """
    Formats a wall-clock duration such as an ETA (e.g., '2h 34m 12s').

    Unknown durations are shown as '--'.
    """
    if seconds is None:
        return "--"
    hours, remainder = divmod(int(seconds), 3600)
    minutes, secs = divmod(remainder, 60)
    parts = [f"{value}{suffix}" for value, suffix in ((hours, "h"), (minutes, "m")) if value]
    if secs or not parts:
        parts.append(f"{secs}s")
    return " ".join(parts)


def format_timestamp(milliseconds: int) -> str:
    """Formats a media position as HH:MM:SS (e.g., '00:23:40')."""
    hours, remainder = divmod(max(0, milliseconds) // 1000, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"
