"""
Pydantic models for crawl jobs.

This module defines the job request, status, counters and result models
shared by the job lifecycle manager, the executors and the storage layer.
"""

from enum import Enum
from typing import Optional, Dict, List
from pydantic import BaseModel, Field, field_validator, ConfigDict


class Platform(str, Enum):
    """Supported crawl targets."""
    TWITTER_LIST = "twitter_list"
    YOUTUBE_CHANNEL = "youtube_channel"


class JobStatus(str, Enum):
    """Persisted job status."""
    CREATED = "created"
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


class EndReason(str, Enum):
    """Why an extraction loop stopped. Visible in job results."""
    TARGET_REACHED = "TARGET_REACHED"
    CONSECUTIVE_DUPLICATES = "CONSECUTIVE_DUPLICATES"
    MAX_SCROLL_REACHED = "MAX_SCROLL_REACHED"
    NO_MORE_CONTENT = "NO_MORE_CONTENT"
    ERROR_OCCURRED = "ERROR_OCCURRED"
    USER_CANCELLED = "USER_CANCELLED"
    TIMEOUT = "TIMEOUT"


END_REASON_MESSAGES = {
    EndReason.TARGET_REACHED: "Target item count reached",
    EndReason.CONSECUTIVE_DUPLICATES: "Too many consecutive already-stored items",
    EndReason.MAX_SCROLL_REACHED: "Maximum scroll count reached",
    EndReason.NO_MORE_CONTENT: "Reached the end of the page",
    EndReason.ERROR_OCCURRED: "An error occurred",
    EndReason.USER_CANCELLED: "Cancelled by user",
    EndReason.TIMEOUT: "Job timed out",
}

# Allowed status moves. Terminal states accept nothing.
ALLOWED_TRANSITIONS = {
    JobStatus.CREATED: {JobStatus.QUEUED, JobStatus.RUNNING, JobStatus.FAILED},
    JobStatus.QUEUED: {JobStatus.RUNNING, JobStatus.FAILED},
    JobStatus.RUNNING: {JobStatus.RUNNING, JobStatus.COMPLETED, JobStatus.FAILED},
    JobStatus.COMPLETED: set(),
    JobStatus.FAILED: set(),
}


def can_transition(current: JobStatus, requested: JobStatus) -> bool:
    """Return True if a job in ``current`` may be moved to ``requested``."""
    return requested in ALLOWED_TRANSITIONS[JobStatus(current)]


class JobRequest(BaseModel):
    """
    One scrape request as submitted by a caller.

    ``max_items`` and ``duplicate_stop_count`` override the platform defaults
    when given.
    """
    platform: Platform = Field(..., description="Target platform")
    target: str = Field(..., min_length=1, max_length=255, description="List id or channel handle")
    max_items: Optional[int] = Field(None, gt=0, description="Stop after this many new items")
    duplicate_stop_count: Optional[int] = Field(
        None, gt=0, description="Consecutive stored duplicates that end the job"
    )

    model_config = ConfigDict(str_strip_whitespace=True)

    @field_validator("target")
    @classmethod
    def validate_target(cls, v: str) -> str:
        """Reject blank targets and drop a leading '@' from channel handles."""
        v = v.strip()
        if not v:
            raise ValueError("target cannot be empty")
        return v.lstrip("@") or v


class JobCounters(BaseModel):
    """Running totals for one job."""
    item_count: int = 0
    duplicate_count: int = 0
    task_internal_duplicate_count: int = 0
    iterations: int = 0
    skip_counts: Dict[str, int] = Field(default_factory=dict)

    def add_skips(self, counts: Dict[str, int]) -> None:
        for key, value in counts.items():
            self.skip_counts[key] = self.skip_counts.get(key, 0) + int(value)


class JobError(BaseModel):
    """Error details attached to a failed result."""
    code: str
    message: str
    exception_type: Optional[str] = None


class JobResult(BaseModel):
    """Terminal summary of a job run."""
    status: JobStatus
    end_reason: EndReason
    message: str = ""
    counters: JobCounters = Field(default_factory=JobCounters)
    started_at: Optional[str] = None
    finished_at: Optional[str] = None
    duration_seconds: float = Field(0.0, ge=0)
    error: Optional[JobError] = None

    model_config = ConfigDict(use_enum_values=False)

    @property
    def succeeded(self) -> bool:
        return self.status == JobStatus.COMPLETED


class JobSnapshot(BaseModel):
    """
    Point-in-time view of a job.

    Live executor flags (``is_running``, ``timed_out``, ``cancelled``) are only
    set while the job is tracked in memory.
    """
    job_id: str
    platform: Platform
    target: str
    status: JobStatus
    counters: JobCounters = Field(default_factory=JobCounters)
    result: Optional[JobResult] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    is_running: Optional[bool] = None
    timed_out: Optional[bool] = None
    cancelled: Optional[bool] = None
    attempt: Optional[int] = None


class PoolStatus(BaseModel):
    """Occupancy of one platform's browser pool."""
    platform: Platform
    total: int
    idle: int
    leased: int
    waiting: int
    max_size: int
    closed: bool = False


class ManagerOverview(BaseModel):
    """Summary of the jobs tracked by the lifecycle manager."""
    running_jobs: int
    max_concurrent_jobs: int
    job_ids: List[str] = Field(default_factory=list)


class ZombieReport(BaseModel):
    """Result of a zombie cleanup sweep."""
    total: int
    cleaned: List[str] = Field(default_factory=list)
