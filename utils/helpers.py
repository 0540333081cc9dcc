"""
============================================================================
UPTIME MONITOR - HELPERS UTILITY
============================================================================
Time and number helpers shared by the tracker, the alert formatter and
the aggregator.
============================================================================
"""

import math
from datetime import datetime, timezone
from typing import Iterable, List, Optional


# ============================================================================
# TIME UTILITIES
# ============================================================================

class TimeHelper:
    """
    Time and date manipulation utilities.
    """

    @staticmethod
    def get_utc_now() -> datetime:
        """Current UTC time as a naive datetime (the storage convention)."""
        return datetime.now(timezone.utc).replace(tzinfo=None)

    @staticmethod
    def seconds_to_human_readable(seconds: int) -> str:
        """
        Convert seconds to human-readable format.

        Args:
            seconds: Number of seconds

        Returns:
            Human-readable string (e.g., "2h 30m 15s")
        """
        seconds = int(seconds)
        if seconds < 0:
            return "0s"

        days, remainder = divmod(seconds, 86400)
        hours, remainder = divmod(remainder, 3600)
        minutes, secs = divmod(remainder, 60)

        parts = []
        if days > 0:
            parts.append(f"{days}d")
        if hours > 0:
            parts.append(f"{hours}h")
        if minutes > 0:
            parts.append(f"{minutes}m")
        if secs > 0 or not parts:
            parts.append(f"{secs}s")

        return " ".join(parts)

    @staticmethod
    def format_incident_duration(duration_ms: float) -> str:
        """
        Format an incident duration as ``"Xm Ys"``, or ``"Ys"`` under a minute.

        Minutes are not rolled up into hours: two hours is ``"120m 0s"``.
        """
        total_seconds = max(0, int(duration_ms // 1000))
        minutes, seconds = divmod(total_seconds, 60)
        if minutes > 0:
            return f"{minutes}m {seconds}s"
        return f"{seconds}s"

    @staticmethod
    def minutes_between(start: datetime, end: datetime) -> int:
        """Whole minutes from start to end, halves rounded up."""
        return round_half_up((end - start).total_seconds() / 60)


# ============================================================================
# NUMBER UTILITIES
# ============================================================================

def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going up (not banker's rounding)."""
    return int(math.floor(value + 0.5))


def percentage(part: int, total: int, digits: int = 2) -> Optional[float]:
    """``part / total * 100`` rounded, or None when there is nothing to divide."""
    if total <= 0:
        return None
    return round(part / total * 100, digits)


def mean(values: Iterable[Optional[float]]) -> Optional[float]:
    """Mean of the non-null values, or None when there are none."""
    present: List[float] = [v for v in values if v is not None]
    if not present:
        return None
    return sum(present) / len(present)
