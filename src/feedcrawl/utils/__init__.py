"""
Shared utility functions for feedcrawl.

- Date parsing and formatting
- Retry logic with exponential backoff
"""

from feedcrawl.utils.date_utils import get_current_timestamp, parse_timestamp, seconds_since
from feedcrawl.utils.retry import RetryConfig, compute_backoff_delay, retry_async_with_backoff

__all__ = [
    "get_current_timestamp",
    "parse_timestamp",
    "seconds_since",
    "RetryConfig",
    "compute_backoff_delay",
    "retry_async_with_backoff",
]
