"""
Core utilities for feedcrawl.

This module contains shared pieces used across all components:
- Configuration management
- Structured logging
- Error logging and tracking
- Job models and exceptions
"""

from feedcrawl.core.logging import get_logger, setup_logging
from feedcrawl.core.config import get_config, validate_config, Config
from feedcrawl.core.error_logger import get_error_logger
from feedcrawl.core.error_models import (
    ErrorComponent,
    ErrorSeverity,
    ErrorType,
    ErrorStage,
    ErrorRecord,
)
from feedcrawl.core.exceptions import (
    FeedcrawlError,
    CapacityExceeded,
    PoolTimeoutError,
    PoolClosedError,
    SessionUnhealthyError,
    NavigationError,
    UnsupportedPlatformError,
    InvalidJobTransition,
    JobNotFoundError,
)
from feedcrawl.core.job_models import (
    Platform,
    JobStatus,
    EndReason,
    JobRequest,
    JobCounters,
    JobResult,
    JobSnapshot,
    PoolStatus,
)

__all__ = [
    "get_logger",
    "setup_logging",
    "get_config",
    "validate_config",
    "Config",
    "get_error_logger",
    "ErrorComponent",
    "ErrorSeverity",
    "ErrorType",
    "ErrorStage",
    "ErrorRecord",
    # Exceptions
    "FeedcrawlError",
    "CapacityExceeded",
    "PoolTimeoutError",
    "PoolClosedError",
    "SessionUnhealthyError",
    "NavigationError",
    "UnsupportedPlatformError",
    "InvalidJobTransition",
    "JobNotFoundError",
    # Job models
    "Platform",
    "JobStatus",
    "EndReason",
    "JobRequest",
    "JobCounters",
    "JobResult",
    "JobSnapshot",
    "PoolStatus",
]
