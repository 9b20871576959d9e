"""
Pydantic models for structured error logging.

This module defines type-safe error record models with automatic
classification so pool, executor and extractor failures are recorded
consistently.
"""

import json
import traceback
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Dict, Any
from pydantic import BaseModel, Field, field_validator, ConfigDict


class ErrorComponent(str, Enum):
    """System components that can generate errors."""
    POOL = "pool"
    EXECUTOR = "executor"
    MANAGER = "manager"
    EXTRACTOR = "extractor"
    STORAGE = "storage"
    CONFIG = "config"
    UNKNOWN = "unknown"


class ErrorSeverity(str, Enum):
    """Error severity levels matching logging standards."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorType(str, Enum):
    """Categorized error types for classification."""
    # Capacity
    CAPACITY = "capacity"
    POOL_TIMEOUT = "pool_timeout"
    POOL_CLOSED = "pool_closed"

    # Browser/extraction
    TIMEOUT = "timeout"
    BROWSER_ERROR = "browser_error"
    SESSION_UNHEALTHY = "session_unhealthy"
    NAVIGATION_ERROR = "navigation_error"
    ELEMENT_NOT_FOUND = "element_not_found"

    # Job lifecycle
    JOB_TIMEOUT = "job_timeout"
    JOB_CANCELLED = "job_cancelled"
    ZOMBIE_JOB = "zombie_job"

    # Storage
    DB_QUERY_ERROR = "db_query_error"

    # Validation/config
    VALIDATION_ERROR = "validation_error"
    CONFIG_ERROR = "config_error"

    UNKNOWN = "unknown"


class ErrorStage:
    """
    Standardized stage names for error logging.

    Use these constants to keep stage names consistent across the codebase.
    """
    # Pool stages
    ACQUIRE_SESSION = "acquire_session"
    RELEASE_SESSION = "release_session"
    CREATE_SESSION = "create_session"
    CLOSE_SESSION = "close_session"
    HEALTH_CHECK = "health_check"
    POOL_SHUTDOWN = "pool_shutdown"

    # Extraction stages
    OPEN_TARGET = "open_target"
    PROCESS_VIEWPORT = "process_viewport"
    SCROLL = "scroll"
    SAVE_RECORDS = "save_records"

    # Job stages
    RUN_JOB = "run_job"
    JOB_TIMEOUT = "job_timeout"
    JOB_CANCEL = "job_cancel"
    JOB_RETRY = "job_retry"
    ZOMBIE_CLEANUP = "zombie_cleanup"

    # Storage stages
    LOAD_PERSISTED_IDS = "load_persisted_ids"
    UPDATE_JOB = "update_job"

    # Config stages
    LOAD_CONFIG = "load_config"


class ErrorRecord(BaseModel):
    """
    Structured error record.

    Validated before writing so that logging an error can never cause a
    second failure.
    """
    component: ErrorComponent = Field(..., description="System component")
    stage: str = Field(..., min_length=1, max_length=100, description="Processing stage")
    error_type: ErrorType = Field(..., description="Error category")
    severity: ErrorSeverity = Field(default=ErrorSeverity.ERROR, description="Severity level")
    platform: str = Field(..., min_length=1, max_length=64, description="Crawl platform")
    message: str = Field(..., min_length=1, description="Human-readable error message")

    target: Optional[str] = Field(None, max_length=255, description="List id or channel handle")
    job_id: Optional[str] = Field(None, max_length=64, description="Job the error belongs to")
    exception_type: Optional[str] = Field(None, max_length=255, description="Exception class name")
    stack_trace: Optional[str] = Field(None, description="Stack trace for unexpected errors")

    metadata: Dict[str, Any] = Field(default_factory=dict, description="Additional context")

    created_at: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat(),
        description="Error timestamp"
    )

    model_config = ConfigDict(
        str_strip_whitespace=True,
        validate_assignment=True,
        use_enum_values=True,
    )

    @field_validator("stage")
    @classmethod
    def validate_stage(cls, v: str) -> str:
        """Ensure stage is not empty and normalized."""
        if not v or not v.strip():
            return "unknown"
        return v.strip().lower().replace(" ", "_")

    @field_validator("message")
    @classmethod
    def validate_message(cls, v: str) -> str:
        """Ensure message is not empty and bounded."""
        if not v or not v.strip():
            return "No error message provided"
        return v.strip()[:5000]

    @field_validator("metadata")
    @classmethod
    def sanitize_metadata(cls, v: Dict[str, Any]) -> Dict[str, Any]:
        """Convert values that are not JSON-serializable to strings."""
        sanitized = {}
        for key, value in v.items():
            try:
                json.dumps(value)
                sanitized[key] = value
            except (TypeError, ValueError):
                sanitized[key] = str(value)
        return sanitized

    @classmethod
    def from_exception(
        cls,
        exc: BaseException,
        component: ErrorComponent,
        stage: str,
        platform: str,
        target: Optional[str] = None,
        job_id: Optional[str] = None,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        error_type: Optional[ErrorType] = None,
        include_stack_trace: Optional[bool] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> "ErrorRecord":
        """
        Create ErrorRecord from an exception with automatic classification.

        Example:
            >>> try:
            ...     await pool.acquire()
            ... except PoolTimeoutError as e:
            ...     record = ErrorRecord.from_exception(
            ...         e,
            ...         component=ErrorComponent.POOL,
            ...         stage=ErrorStage.ACQUIRE_SESSION,
            ...         platform="twitter_list",
            ...     )
        """
        if error_type is None:
            error_type = cls._classify_exception(exc)

        message = str(exc) or f"{type(exc).__name__} occurred"
        exception_type = f"{type(exc).__module__}.{type(exc).__name__}"

        if include_stack_trace is None:
            include_stack_trace = cls._should_include_stack(exc, severity)

        stack_trace = None
        if include_stack_trace:
            stack_trace = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
            if len(stack_trace) > 10000:
                stack_trace = stack_trace[:10000] + "\n... (truncated)"

        return cls(
            component=component,
            stage=stage,
            error_type=error_type,
            severity=severity,
            platform=platform,
            target=target,
            job_id=job_id,
            message=message,
            exception_type=exception_type,
            stack_trace=stack_trace,
            metadata=metadata or {},
        )

    @staticmethod
    def _classify_exception(exc: BaseException) -> ErrorType:
        """
        Classify an exception into an ErrorType.

        Uses the exception class name first, then message patterns.
        """
        exc_name = type(exc).__name__.lower()
        exc_msg = str(exc).lower()

        if exc_name == "capacityexceeded":
            return ErrorType.CAPACITY
        if exc_name == "pooltimeouterror":
            return ErrorType.POOL_TIMEOUT
        if exc_name == "poolclosederror":
            return ErrorType.POOL_CLOSED
        if exc_name == "sessionunhealthyerror":
            return ErrorType.SESSION_UNHEALTHY
        if exc_name == "navigationerror":
            return ErrorType.NAVIGATION_ERROR

        if "validation" in exc_name:
            return ErrorType.VALIDATION_ERROR
        if "timeout" in exc_name or "timeout" in exc_msg:
            return ErrorType.TIMEOUT
        if "playwright" in exc_name or "browser" in exc_name or "target closed" in exc_msg:
            return ErrorType.BROWSER_ERROR
        if "element" in exc_name or "selector" in exc_msg:
            return ErrorType.ELEMENT_NOT_FOUND
        if "postgrest" in exc_name or "api" in exc_name:
            return ErrorType.DB_QUERY_ERROR

        return ErrorType.UNKNOWN

    @staticmethod
    def _should_include_stack(exc: BaseException, severity: ErrorSeverity) -> bool:
        """
        Decide whether to capture a stack trace.

        Expected errors (timeouts, capacity, validation) don't need stacks.
        """
        if severity == ErrorSeverity.CRITICAL:
            return True

        if severity in (ErrorSeverity.WARNING, ErrorSeverity.INFO, ErrorSeverity.DEBUG):
            return False

        expected = (
            "ValidationError",
            "TimeoutError",
            "PoolTimeoutError",
            "CapacityExceeded",
            "PoolClosedError",
            "SessionUnhealthyError",
            "NavigationError",
        )
        return type(exc).__name__ not in expected
