from __future__ import annotations

from datetime import timedelta


def as_seconds(value: str | int | float | timedelta) -> str:
    """Normalize a duration to the seconds-suffixed form Consul expects.

    Strings already ending in ``s`` pass through untouched, numbers are taken
    as seconds.
    """
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("s"):
            return text
        value = float(text)
    if isinstance(value, timedelta):
        value = value.total_seconds()
    if float(value).is_integer():
        return f"{int(value)}s"
    return f"{value}s"


def ms_to_seconds(value: int | float) -> float:
    return max(0.0, float(value)) / 1000.0
