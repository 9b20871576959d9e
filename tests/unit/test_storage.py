"""
Unit tests for job and record storage.

InMemoryStorage is exercised directly; SupabaseStorage is run against a
mocked client to check the queries it builds.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
from feedcrawl.core.exceptions import InvalidJobTransition, JobNotFoundError
from feedcrawl.core.job_models import (
    EndReason,
    JobCounters,
    JobRequest,
    JobResult,
    JobStatus,
    Platform,
)
from feedcrawl.db.models import TweetRecord, VideoRecord
from feedcrawl.db.storage import InMemoryStorage, SupabaseStorage, build_storage

REQUEST = JobRequest(platform=Platform.TWITTER_LIST, target="42")


def completed_result(item_count=1):
    return JobResult(
        status=JobStatus.COMPLETED,
        end_reason=EndReason.TARGET_REACHED,
        counters=JobCounters(item_count=item_count),
    )


class TestInMemoryJobs:
    """Tests for job rows and status ordering."""

    def test_create_job(self, storage):
        async def scenario():
            job_id = await storage.create_job(REQUEST)
            return await storage.get_job(job_id)

        snapshot = asyncio.run(scenario())
        assert snapshot.status == JobStatus.CREATED
        assert snapshot.platform == Platform.TWITTER_LIST
        assert snapshot.target == "42"
        assert snapshot.result is None

    def test_full_lifecycle(self, storage):
        async def scenario():
            job_id = await storage.create_job(REQUEST)
            await storage.update_job_status(job_id, JobStatus.QUEUED)
            await storage.update_job_status(job_id, JobStatus.RUNNING)
            await storage.update_job_status(job_id, JobStatus.COMPLETED, completed_result(3))
            return await storage.get_job(job_id)

        snapshot = asyncio.run(scenario())
        assert snapshot.status == JobStatus.COMPLETED
        assert snapshot.result.end_reason == EndReason.TARGET_REACHED
        assert snapshot.counters.item_count == 3

    def test_terminal_status_is_final(self, storage):
        async def scenario():
            job_id = await storage.create_job(REQUEST)
            await storage.update_job_status(job_id, JobStatus.RUNNING)
            await storage.update_job_status(job_id, JobStatus.COMPLETED, completed_result())
            with pytest.raises(InvalidJobTransition, match="cannot move from 'completed' to 'failed'"):
                await storage.update_job_status(job_id, JobStatus.FAILED)

        asyncio.run(scenario())

    def test_running_to_running_allowed(self, storage):
        """A retried attempt writes running again."""
        async def scenario():
            job_id = await storage.create_job(REQUEST)
            await storage.update_job_status(job_id, JobStatus.RUNNING)
            await storage.update_job_status(job_id, JobStatus.RUNNING)
            return job_id

        job_id = asyncio.run(scenario())
        assert storage.status_history[job_id] == [JobStatus.CREATED, JobStatus.RUNNING, JobStatus.RUNNING]

    def test_unknown_job(self, storage):
        with pytest.raises(JobNotFoundError, match="missing"):
            asyncio.run(storage.get_job("missing"))

    def test_progress_ignored_after_terminal(self, storage):
        async def scenario():
            job_id = await storage.create_job(REQUEST)
            await storage.update_job_status(job_id, JobStatus.RUNNING)
            await storage.update_job_progress(job_id, JobCounters(item_count=2))
            await storage.update_job_status(job_id, JobStatus.COMPLETED, completed_result(2))
            await storage.update_job_progress(job_id, JobCounters(item_count=99))
            return await storage.get_job(job_id)

        assert asyncio.run(scenario()).counters.item_count == 2

    def test_fail_stale_jobs(self, storage):
        async def scenario():
            stale = await storage.create_job(REQUEST)
            fresh = await storage.create_job(REQUEST)
            for job_id in (stale, fresh):
                await storage.update_job_status(job_id, JobStatus.RUNNING)
            storage._jobs[stale]["started_at"] = (
                datetime.now(timezone.utc) - timedelta(hours=1)
            ).isoformat()
            cleaned = await storage.fail_stale_jobs(30 * 60)
            return stale, fresh, cleaned, await storage.get_job(stale), await storage.get_job(fresh)

        stale, fresh, cleaned, stale_snapshot, fresh_snapshot = asyncio.run(scenario())
        assert cleaned == [stale]
        assert stale_snapshot.status == JobStatus.FAILED
        assert stale_snapshot.result.end_reason == EndReason.TIMEOUT
        assert stale_snapshot.result.error.code == "STALE_JOB_CLEANUP"
        assert fresh_snapshot.status == JobStatus.RUNNING


class TestInMemoryRecords:
    """Tests for record persistence and persisted-id lookup."""

    def test_save_and_load_ids(self, storage):
        async def scenario():
            await storage.save_records([TweetRecord(id="1", target="42"), TweetRecord(id="2", target="42")], "job-1")
            return await storage.load_persisted_ids(Platform.TWITTER_LIST, "42")

        assert asyncio.run(scenario()) == {"1", "2"}

    def test_ids_scoped_by_platform_and_target(self, storage):
        storage.seed_records([
            TweetRecord(id="1", target="42"),
            TweetRecord(id="2", target="43"),
            VideoRecord(id="dQw4w9WgXcQ", target="42", title="t"),
        ])

        ids = asyncio.run(storage.load_persisted_ids(Platform.TWITTER_LIST, "42"))
        assert ids == {"1"}

    def test_same_id_stored_once(self, storage):
        async def scenario():
            await storage.save_records([TweetRecord(id="1", target="42", text="old")], "job-1")
            await storage.save_records([TweetRecord(id="1", target="42", text="new")], "job-2")

        asyncio.run(scenario())
        rows = storage.records_for(Platform.TWITTER_LIST, "42")
        assert len(rows) == 1
        assert rows[0]["job_id"] == "job-2"


class TestSupabaseStorage:
    """Tests for SupabaseStorage query construction."""

    @pytest.fixture
    def client(self):
        return MagicMock()

    @pytest.fixture
    def supabase_storage(self, client, app_config):
        return SupabaseStorage(client, app_config)

    def test_create_job(self, client, supabase_storage):
        client.table.return_value.insert.return_value.execute.return_value = MagicMock(data=[{"id": 17}])

        job_id = asyncio.run(supabase_storage.create_job(REQUEST))

        assert job_id == "17"
        client.table.assert_called_with("crawl_jobs")
        row = client.table.return_value.insert.call_args[0][0]
        assert row["status"] == "created"
        assert row["platform"] == "twitter_list"

    def test_update_status_checks_transition(self, client, supabase_storage):
        select = client.table.return_value.select.return_value.eq.return_value.limit.return_value
        select.execute.return_value = MagicMock(data=[{"id": 1, "status": "completed"}])

        with pytest.raises(InvalidJobTransition):
            asyncio.run(supabase_storage.update_job_status("1", JobStatus.RUNNING))
        client.table.return_value.update.assert_not_called()

    def test_save_records_upserts_by_id(self, client, supabase_storage):
        records = [TweetRecord(id="1", target="42"), VideoRecord(id="dQw4w9WgXcQ", target="v", title="t")]

        asyncio.run(supabase_storage.save_records(records, "job-1"))

        tables = [call.args[0] for call in client.table.call_args_list]
        assert tables == ["tweets", "youtube_videos"]
        for call in client.table.return_value.upsert.call_args_list:
            assert call.kwargs["on_conflict"] == "id"
            assert all(row["job_id"] == "job-1" for row in call.args[0])

    def test_load_persisted_ids(self, client, supabase_storage):
        query = client.table.return_value.select.return_value.eq.return_value
        query.execute.return_value = MagicMock(data=[{"id": "1"}, {"id": 2}])

        ids = asyncio.run(supabase_storage.load_persisted_ids(Platform.TWITTER_LIST, "42"))

        assert ids == {"1", "2"}
        client.table.assert_called_with("tweets")


class TestBuildStorage:
    """Tests for backend selection."""

    def test_in_memory_when_supabase_disabled(self, app_config):
        app_config.supabase_enabled = False
        assert isinstance(build_storage(app_config), InMemoryStorage)
