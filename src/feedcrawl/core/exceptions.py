"""
Exception types raised by the crawl engine.
"""

from typing import Optional


class FeedcrawlError(Exception):
    """Base class for every error raised by feedcrawl."""


class CapacityExceeded(FeedcrawlError):
    """Job submission rejected because the concurrent job cap is reached."""

    def __init__(self, max_concurrent_jobs: int):
        self.max_concurrent_jobs = max_concurrent_jobs
        super().__init__(f"Concurrent job limit reached: {max_concurrent_jobs}")


class PoolTimeoutError(FeedcrawlError, TimeoutError):
    """No browser session became available within the pool wait timeout."""

    def __init__(self, platform: str, timeout: float):
        self.platform = platform
        self.timeout = timeout
        super().__init__(f"Timed out after {timeout:.1f}s waiting for a {platform} browser session")


class PoolClosedError(FeedcrawlError):
    """The browser pool was shut down."""

    def __init__(self, platform: str):
        self.platform = platform
        super().__init__(f"Browser pool for {platform} is closed")


class SessionUnhealthyError(FeedcrawlError):
    """A leased browser session failed its health check."""

    def __init__(self, session_id: str, message: Optional[str] = None):
        self.session_id = session_id
        super().__init__(message or f"Browser session {session_id} is unhealthy")


class NavigationError(FeedcrawlError):
    """The target page could not be opened."""

    def __init__(self, url: str, message: str):
        self.url = url
        super().__init__(f"Could not open {url}: {message}")


class UnsupportedPlatformError(FeedcrawlError):
    """No driver or pool is registered for the requested platform."""

    def __init__(self, platform: str):
        self.platform = platform
        super().__init__(f"Unsupported platform: {platform}")


class InvalidJobTransition(FeedcrawlError):
    """A job status update would break the status ordering."""

    def __init__(self, job_id: str, current: str, requested: str):
        self.job_id = job_id
        self.current = current
        self.requested = requested
        super().__init__(f"Job {job_id}: cannot move from '{current}' to '{requested}'")


class JobNotFoundError(FeedcrawlError):
    """Storage has no job with the given id."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job not found: {job_id}")
