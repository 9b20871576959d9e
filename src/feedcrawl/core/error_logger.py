"""
Centralized error logging with Supabase integration.

This module provides a fail-safe error logger that:
- Logs errors to Supabase with structured schema
- Falls back to local JSON-lines files when the database is unavailable
- Uses Pydantic validation for type safety
- Follows singleton pattern for global access
"""

import os
import json
from pathlib import Path
from typing import Optional, Dict, Any
from datetime import datetime, timezone

from feedcrawl.core.logging import get_logger
from feedcrawl.core.error_models import (
    ErrorRecord,
    ErrorComponent,
    ErrorSeverity,
    ErrorType,
)

logger = get_logger(__name__)

# Singleton instance
_error_logger: Optional["ErrorLogger"] = None


class ErrorLogger:
    """
    Centralized error logger with database and file fallback.

    Usage:
        >>> error_logger = get_error_logger()
        >>> error_logger.log_error(
        ...     component=ErrorComponent.EXECUTOR,
        ...     stage=ErrorStage.JOB_TIMEOUT,
        ...     error_type=ErrorType.JOB_TIMEOUT,
        ...     platform="twitter_list",
        ...     target="1234567890",
        ...     job_id="6f1c...",
        ...     message="Job exceeded 300s and was stopped",
        ... )
    """

    def __init__(self, fallback_dir: Optional[Path] = None, table: Optional[str] = None,
                 use_database: bool = True):
        """
        Initialize error logger.

        Args:
            fallback_dir: Directory for JSON-lines fallback files
            table: Supabase table for error rows
            use_database: Try to connect to Supabase when credentials are present
        """
        self._client = None
        self._db_available = False
        self._table = table or os.getenv("ERROR_LOG_TABLE", "error_logs")
        self._fallback_dir = fallback_dir or Path(os.getenv("ERROR_LOG_FALLBACK_DIR", "logs/errors"))
        self._fallback_dir.mkdir(exist_ok=True, parents=True)

        if use_database:
            self._init_database()

    def _init_database(self) -> None:
        """Attach to the shared Supabase client if one is configured."""
        from feedcrawl.db.supabase_client import get_supabase

        try:
            client = get_supabase()
        except Exception as e:
            logger.warning(f"Error logging: database init failed ({e}), using file fallback")
            return

        if client is None:
            logger.debug("Error logging: Supabase disabled, using file fallback")
            return

        self._client = client
        self._db_available = True
        logger.info("Error logging initialized with Supabase")

    def log_error(
        self,
        component: ErrorComponent,
        stage: str,
        error_type: ErrorType,
        platform: str,
        message: str,
        target: Optional[str] = None,
        job_id: Optional[str] = None,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        exception_type: Optional[str] = None,
        stack_trace: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """
        Record an error.

        This method never raises exceptions.

        Returns:
            True if logged successfully, False otherwise
        """
        try:
            record = ErrorRecord(
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
            return self._write(record)
        except Exception as e:
            logger.error(f"Error logger failed: {e} - Original error: {message}")
            return False

    def log_exception(
        self,
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
    ) -> bool:
        """
        Record an exception with automatic classification.

        Returns:
            True if logged successfully, False otherwise
        """
        try:
            record = ErrorRecord.from_exception(
                exc=exc,
                component=component,
                stage=stage,
                platform=platform,
                target=target,
                job_id=job_id,
                severity=severity,
                error_type=error_type,
                include_stack_trace=include_stack_trace,
                metadata=metadata,
            )
            return self._write(record)
        except Exception as e:
            logger.error(f"Error logger failed: {e} - Original exception: {type(exc).__name__}")
            return False

    def _write(self, record: ErrorRecord) -> bool:
        if self._db_available and self._client:
            return self._write_to_database(record)
        return self._write_to_file(record)

    def _write_to_database(self, record: ErrorRecord) -> bool:
        """Write error record to Supabase."""
        try:
            row = record.model_dump(exclude_none=False)
            self._client.table(self._table).insert(row).execute()
            return True
        except Exception as e:
            logger.warning(f"Database error write failed: {e}, falling back to file")
            return self._write_to_file(record)

    def _write_to_file(self, record: ErrorRecord) -> bool:
        """Append error record to the dated JSON-lines file."""
        try:
            date_str = datetime.now(timezone.utc).strftime("%Y%m%d")
            file_path = self._fallback_dir / f"errors_{date_str}.jsonl"

            with open(file_path, "a", encoding="utf-8") as f:
                json.dump(record.model_dump(), f)
                f.write("\n")

            return True
        except Exception as e:
            logger.error(f"File error write failed: {e}")
            return False


def get_error_logger() -> ErrorLogger:
    """
    Get the global ErrorLogger instance.

    Returns:
        Global ErrorLogger singleton
    """
    global _error_logger
    if _error_logger is None:
        _error_logger = ErrorLogger()
    return _error_logger


def set_error_logger(error_logger: Optional[ErrorLogger]) -> None:
    """Replace the global ErrorLogger (None resets it to lazy creation)."""
    global _error_logger
    _error_logger = error_logger
