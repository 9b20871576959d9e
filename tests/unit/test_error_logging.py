"""
Unit tests for structured error records and the error logger.
"""

import json

import pytest
from feedcrawl.core.error_logger import ErrorLogger, get_error_logger
from feedcrawl.core.error_models import ErrorComponent, ErrorRecord, ErrorSeverity, ErrorStage, ErrorType
from feedcrawl.core.exceptions import (
    CapacityExceeded,
    NavigationError,
    PoolClosedError,
    PoolTimeoutError,
    SessionUnhealthyError,
)


class TestErrorRecord:
    """Tests for ErrorRecord validation."""

    def test_stage_normalized(self):
        record = ErrorRecord(
            component=ErrorComponent.POOL,
            stage=" Create Session ",
            error_type=ErrorType.BROWSER_ERROR,
            platform="twitter_list",
            message="boom",
        )
        assert record.stage == "create_session"
        assert record.component == "pool"

    def test_message_truncated(self):
        record = ErrorRecord(
            component=ErrorComponent.EXECUTOR,
            stage=ErrorStage.RUN_JOB,
            error_type=ErrorType.UNKNOWN,
            platform="twitter_list",
            message="x" * 6000,
        )
        assert len(record.message) == 5000

    def test_metadata_made_serializable(self):
        record = ErrorRecord(
            component=ErrorComponent.MANAGER,
            stage=ErrorStage.JOB_RETRY,
            error_type=ErrorType.UNKNOWN,
            platform="twitter_list",
            message="retrying",
            metadata={"attempt": 2, "when": object()},
        )
        assert record.metadata["attempt"] == 2
        assert isinstance(record.metadata["when"], str)
        json.dumps(record.model_dump())


class TestClassification:
    """Tests for ErrorRecord.from_exception classification."""

    @pytest.mark.parametrize("exc,expected", [
        (CapacityExceeded(3), ErrorType.CAPACITY),
        (PoolTimeoutError("twitter_list", 30.0), ErrorType.POOL_TIMEOUT),
        (PoolClosedError("twitter_list"), ErrorType.POOL_CLOSED),
        (SessionUnhealthyError("s1"), ErrorType.SESSION_UNHEALTHY),
        (NavigationError("https://x.com/i/lists/1", "timeline did not load"), ErrorType.NAVIGATION_ERROR),
        (RuntimeError("Timeout 30000ms exceeded"), ErrorType.TIMEOUT),
        (RuntimeError("Target closed"), ErrorType.BROWSER_ERROR),
        (RuntimeError("something else"), ErrorType.UNKNOWN),
    ])
    def test_classify(self, exc, expected):
        record = ErrorRecord.from_exception(
            exc, component=ErrorComponent.EXECUTOR, stage=ErrorStage.RUN_JOB, platform="twitter_list"
        )
        assert record.error_type == expected.value

    def test_expected_errors_skip_stack(self):
        record = ErrorRecord.from_exception(
            PoolTimeoutError("twitter_list", 1.0),
            component=ErrorComponent.POOL, stage=ErrorStage.ACQUIRE_SESSION, platform="twitter_list",
        )
        assert record.stack_trace is None

    def test_unexpected_errors_keep_stack(self):
        try:
            raise RuntimeError("unexpected")
        except RuntimeError as e:
            record = ErrorRecord.from_exception(
                e, component=ErrorComponent.EXECUTOR, stage=ErrorStage.RUN_JOB, platform="twitter_list"
            )
        assert "RuntimeError: unexpected" in record.stack_trace
        assert record.exception_type == "builtins.RuntimeError"

    def test_warning_severity_skips_stack(self):
        record = ErrorRecord.from_exception(
            RuntimeError("flaky"), component=ErrorComponent.EXTRACTOR, stage=ErrorStage.SCROLL,
            platform="twitter_list", severity=ErrorSeverity.WARNING,
        )
        assert record.stack_trace is None


class TestErrorLogger:
    """Tests for the file fallback of ErrorLogger."""

    def test_writes_jsonl(self, tmp_path):
        error_logger = ErrorLogger(fallback_dir=tmp_path, use_database=False)

        ok = error_logger.log_error(
            component=ErrorComponent.EXECUTOR,
            stage=ErrorStage.JOB_TIMEOUT,
            error_type=ErrorType.JOB_TIMEOUT,
            platform="twitter_list",
            message="Job exceeded its 300s timeout",
            job_id="job-1",
        )

        assert ok
        files = list(tmp_path.glob("errors_*.jsonl"))
        assert len(files) == 1
        row = json.loads(files[0].read_text(encoding="utf-8").strip())
        assert row["job_id"] == "job-1"
        assert row["error_type"] == "job_timeout"
        assert row["severity"] == "error"

    def test_invalid_record_returns_false(self, tmp_path):
        """Logging must never raise, even for a record that fails validation."""
        error_logger = ErrorLogger(fallback_dir=tmp_path, use_database=False)
        ok = error_logger.log_error(
            component=ErrorComponent.POOL,
            stage=ErrorStage.CREATE_SESSION,
            error_type=ErrorType.BROWSER_ERROR,
            platform="",
            message="boom",
        )
        assert ok is False

    def test_database_failure_falls_back_to_file(self, tmp_path):
        error_logger = ErrorLogger(fallback_dir=tmp_path, use_database=False)

        class BrokenClient:
            def table(self, name):
                raise ConnectionError("database unreachable")

        error_logger._client = BrokenClient()
        error_logger._db_available = True

        assert error_logger.log_exception(
            RuntimeError("boom"), component=ErrorComponent.POOL,
            stage=ErrorStage.CLOSE_SESSION, platform="youtube_channel",
        )
        assert list(tmp_path.glob("errors_*.jsonl"))

    def test_global_logger_is_replaceable(self, file_error_logger):
        assert get_error_logger() is file_error_logger
