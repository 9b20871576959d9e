"""
Unit tests for job and record Pydantic models.

Tests validation, serialization, and model construction.
"""

import pytest
from pydantic import ValidationError
from feedcrawl.core.job_models import (
    END_REASON_MESSAGES,
    EndReason,
    JobCounters,
    JobRequest,
    JobResult,
    JobStatus,
    Platform,
    can_transition,
)
from feedcrawl.db.models import TweetRecord, VideoRecord


class TestJobRequest:
    """Tests for JobRequest model."""

    def test_minimal_request(self):
        request = JobRequest(platform="twitter_list", target="1234567890")
        assert request.platform == Platform.TWITTER_LIST
        assert request.max_items is None
        assert request.duplicate_stop_count is None

    def test_strips_at_from_handle(self):
        request = JobRequest(platform="youtube_channel", target="  @veritasium ")
        assert request.target == "veritasium"

    def test_blank_target_rejected(self):
        with pytest.raises(ValidationError):
            JobRequest(platform="twitter_list", target="   ")

    def test_unknown_platform_rejected(self):
        with pytest.raises(ValidationError):
            JobRequest(platform="tiktok", target="x")

    @pytest.mark.parametrize("field", ["max_items", "duplicate_stop_count"])
    def test_overrides_must_be_positive(self, field):
        with pytest.raises(ValidationError):
            JobRequest(platform="twitter_list", target="1", **{field: 0})


class TestJobStatus:
    """Tests for status ordering."""

    def test_terminal_flags(self):
        assert JobStatus.COMPLETED.is_terminal
        assert JobStatus.FAILED.is_terminal
        assert not JobStatus.RUNNING.is_terminal

    @pytest.mark.parametrize("current,requested", [
        (JobStatus.CREATED, JobStatus.QUEUED),
        (JobStatus.QUEUED, JobStatus.RUNNING),
        (JobStatus.QUEUED, JobStatus.FAILED),
        (JobStatus.RUNNING, JobStatus.RUNNING),
        (JobStatus.RUNNING, JobStatus.COMPLETED),
        (JobStatus.RUNNING, JobStatus.FAILED),
    ])
    def test_allowed(self, current, requested):
        assert can_transition(current, requested)

    @pytest.mark.parametrize("current,requested", [
        (JobStatus.COMPLETED, JobStatus.FAILED),
        (JobStatus.FAILED, JobStatus.RUNNING),
        (JobStatus.RUNNING, JobStatus.QUEUED),
        (JobStatus.QUEUED, JobStatus.COMPLETED),
    ])
    def test_rejected(self, current, requested):
        assert not can_transition(current, requested)


class TestEndReason:
    """Tests for EndReason values."""

    def test_every_reason_has_message(self):
        assert set(END_REASON_MESSAGES) == set(EndReason)

    def test_values_are_stable(self):
        assert [r.value for r in EndReason] == [
            "TARGET_REACHED",
            "CONSECUTIVE_DUPLICATES",
            "MAX_SCROLL_REACHED",
            "NO_MORE_CONTENT",
            "ERROR_OCCURRED",
            "USER_CANCELLED",
            "TIMEOUT",
        ]


class TestJobCounters:
    """Tests for JobCounters."""

    def test_add_skips_accumulates(self):
        counters = JobCounters()
        counters.add_skips({"replies": 2})
        counters.add_skips({"replies": 1, "retweets": 1})
        assert counters.skip_counts == {"replies": 3, "retweets": 1}


class TestJobResult:
    """Tests for JobResult."""

    def test_succeeded(self):
        ok = JobResult(status=JobStatus.COMPLETED, end_reason=EndReason.NO_MORE_CONTENT)
        failed = JobResult(status=JobStatus.FAILED, end_reason=EndReason.TIMEOUT)
        assert ok.succeeded
        assert not failed.succeeded

    def test_json_dump(self):
        result = JobResult(status=JobStatus.FAILED, end_reason=EndReason.USER_CANCELLED)
        data = result.model_dump(mode="json")
        assert data["status"] == "failed"
        assert data["end_reason"] == "USER_CANCELLED"
        assert data["counters"]["item_count"] == 0

    def test_negative_duration_rejected(self):
        with pytest.raises(ValidationError):
            JobResult(status=JobStatus.FAILED, end_reason=EndReason.TIMEOUT, duration_seconds=-1)


class TestRecords:
    """Tests for TweetRecord and VideoRecord."""

    def test_tweet_defaults(self):
        record = TweetRecord(id=" 20 ", target="42")
        assert record.id == "20"
        assert record.platform == Platform.TWITTER_LIST
        assert record.image_urls == []

    def test_blank_id_rejected(self):
        with pytest.raises(ValidationError):
            TweetRecord(id="   ", target="42")

    def test_username_strips_at(self):
        assert TweetRecord(id="1", target="42", username="@jack").username == "jack"

    def test_negative_counts_rejected(self):
        with pytest.raises(ValidationError):
            TweetRecord(id="1", target="42", like_count=-1)

    def test_video_requires_title(self):
        with pytest.raises(ValidationError):
            VideoRecord(id="dQw4w9WgXcQ", target="veritasium")

    def test_to_row(self):
        row = VideoRecord(id="dQw4w9WgXcQ", target="veritasium", title="Title").to_row("job-1")
        assert row["job_id"] == "job-1"
        assert row["platform"] == "youtube_channel"
        assert row["title"] == "Title"
