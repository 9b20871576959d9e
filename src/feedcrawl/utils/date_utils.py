"""
Date utility functions for feedcrawl.
"""

from datetime import datetime, timezone
from typing import Optional
from feedcrawl.core.logging import get_logger

logger = get_logger(__name__)


def get_current_timestamp() -> str:
    """
    Get current timestamp in ISO format with UTC timezone.

    Example:
        >>> ts = get_current_timestamp()
        >>> '+00:00' in ts
        True
    """
    return datetime.now(timezone.utc).isoformat()


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 timestamp written by get_current_timestamp().

    Naive values are assumed to be UTC. Returns None if parsing fails.
    """
    if not value:
        return None
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.debug(f"Could not parse timestamp: {value!r}")
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def seconds_since(value: Optional[str]) -> Optional[float]:
    """Seconds elapsed since an ISO timestamp, or None if it can't be parsed."""
    dt = parse_timestamp(value)
    if dt is None:
        return None
    return (datetime.now(timezone.utc) - dt).total_seconds()
