"""
Job and record storage.

``Storage`` is the async interface the job manager, executors and
extraction loop write through. Two implementations are provided:

- InMemoryStorage: process-local, used by default and in tests
- SupabaseStorage: persists jobs and records to Supabase tables
"""

import asyncio
import uuid
from abc import ABC, abstractmethod
from typing import Optional, Dict, Any, List, Set, Sequence, Tuple

from feedcrawl.core.config import Config, get_config
from feedcrawl.core.exceptions import InvalidJobTransition, JobNotFoundError
from feedcrawl.core.job_models import (
    EndReason,
    JobCounters,
    JobError,
    JobRequest,
    JobResult,
    JobSnapshot,
    JobStatus,
    Platform,
    can_transition,
)
from feedcrawl.core.logging import get_logger
from feedcrawl.db.models import Record
from feedcrawl.utils.date_utils import get_current_timestamp, seconds_since

logger = get_logger(__name__)


class Storage(ABC):
    """Persistence for jobs and extracted records."""

    @abstractmethod
    async def create_job(self, request: JobRequest) -> str:
        """Create a job row in status ``created`` and return its id."""

    @abstractmethod
    async def update_job_status(self, job_id: str, status: JobStatus,
                                result: Optional[JobResult] = None) -> None:
        """Move a job to ``status``, attaching ``result`` when given."""

    @abstractmethod
    async def update_job_progress(self, job_id: str, counters: JobCounters) -> None:
        """Store the running counters of a job."""

    @abstractmethod
    async def get_job(self, job_id: str) -> JobSnapshot:
        """Return the stored view of a job. Raises JobNotFoundError."""

    @abstractmethod
    async def load_persisted_ids(self, platform: Platform, target: str) -> Set[str]:
        """Ids of records already stored for this target by earlier runs."""

    @abstractmethod
    async def save_records(self, records: Sequence[Record], job_id: str) -> None:
        """Persist newly accepted records."""

    @abstractmethod
    async def fail_stale_jobs(self, older_than_seconds: float) -> List[str]:
        """Mark ``running`` jobs started longer ago than the threshold as failed."""


def stale_job_result(running_seconds: float, counters: JobCounters) -> JobResult:
    """Terminal result written for a job found stuck in ``running``."""
    return JobResult(
        status=JobStatus.FAILED,
        end_reason=EndReason.TIMEOUT,
        message=f"Job was still running after {running_seconds / 60:.0f} minutes and was cleaned up",
        counters=counters,
        finished_at=get_current_timestamp(),
        duration_seconds=max(running_seconds, 0.0),
        error=JobError(code="STALE_JOB_CLEANUP", message="Job exceeded the stale threshold"),
    )


class InMemoryStorage(Storage):
    """
    Process-local storage.

    Enforces the job status ordering so an out-of-order write surfaces as
    InvalidJobTransition instead of silently rewinding a finished job.
    """

    def __init__(self):
        self._jobs: Dict[str, Dict[str, Any]] = {}
        self._records: Dict[Tuple[str, str], Dict[str, Dict[str, Any]]] = {}
        self.status_history: Dict[str, List[JobStatus]] = {}

    async def create_job(self, request: JobRequest) -> str:
        job_id = str(uuid.uuid4())
        now = get_current_timestamp()
        self._jobs[job_id] = {
            "job_id": job_id,
            "platform": request.platform,
            "target": request.target,
            "status": JobStatus.CREATED,
            "counters": JobCounters(),
            "result": None,
            "created_at": now,
            "updated_at": now,
            "started_at": None,
        }
        self.status_history[job_id] = [JobStatus.CREATED]
        logger.debug(f"Created job {job_id} ({request.platform.value}:{request.target})")
        return job_id

    def _row(self, job_id: str) -> Dict[str, Any]:
        row = self._jobs.get(job_id)
        if row is None:
            raise JobNotFoundError(job_id)
        return row

    async def update_job_status(self, job_id: str, status: JobStatus,
                                result: Optional[JobResult] = None) -> None:
        row = self._row(job_id)
        current = row["status"]
        if not can_transition(current, status):
            raise InvalidJobTransition(job_id, current.value, status.value)

        now = get_current_timestamp()
        row["status"] = status
        row["updated_at"] = now
        if status == JobStatus.RUNNING and row["started_at"] is None:
            row["started_at"] = now
        if result is not None:
            row["result"] = result
            row["counters"] = result.counters.model_copy(deep=True)
        self.status_history[job_id].append(status)

    async def update_job_progress(self, job_id: str, counters: JobCounters) -> None:
        row = self._row(job_id)
        if row["status"].is_terminal:
            return
        row["counters"] = counters.model_copy(deep=True)
        row["updated_at"] = get_current_timestamp()

    async def get_job(self, job_id: str) -> JobSnapshot:
        row = self._row(job_id)
        return JobSnapshot(
            job_id=row["job_id"],
            platform=row["platform"],
            target=row["target"],
            status=row["status"],
            counters=row["counters"].model_copy(deep=True),
            result=row["result"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    async def load_persisted_ids(self, platform: Platform, target: str) -> Set[str]:
        return set(self._records.get((platform.value, target), {}).keys())

    async def save_records(self, records: Sequence[Record], job_id: str) -> None:
        for record in records:
            bucket = self._records.setdefault((record.platform.value, record.target), {})
            bucket[record.id] = record.to_row(job_id)

    async def fail_stale_jobs(self, older_than_seconds: float) -> List[str]:
        cleaned = []
        for job_id, row in self._jobs.items():
            if row["status"] != JobStatus.RUNNING:
                continue
            running_for = seconds_since(row["started_at"] or row["created_at"])
            if running_for is None or running_for <= older_than_seconds:
                continue
            await self.update_job_status(
                job_id, JobStatus.FAILED, stale_job_result(running_for, row["counters"])
            )
            cleaned.append(job_id)
        return cleaned

    def records_for(self, platform: Platform, target: str) -> List[Dict[str, Any]]:
        """Stored rows for a target, in insertion order."""
        return list(self._records.get((platform.value, target), {}).values())

    def seed_records(self, records: Sequence[Record], job_id: str = "seed") -> None:
        """Store records as if an earlier run had saved them."""
        for record in records:
            bucket = self._records.setdefault((record.platform.value, record.target), {})
            bucket[record.id] = record.to_row(job_id)


class SupabaseStorage(Storage):
    """
    Supabase-backed storage.

    The supabase client is synchronous; calls run in a worker thread so the
    event loop keeps serving other jobs.
    """

    def __init__(self, client, config: Optional[Config] = None):
        config = config or get_config()
        self._client = client
        self._jobs_table = config.supabase_jobs_table
        self._record_tables = {
            Platform.TWITTER_LIST: config.supabase_tweets_table,
            Platform.YOUTUBE_CHANNEL: config.supabase_videos_table,
        }

    async def _execute(self, query):
        return await asyncio.to_thread(query.execute)

    async def create_job(self, request: JobRequest) -> str:
        now = get_current_timestamp()
        row = {
            "platform": request.platform.value,
            "target": request.target,
            "status": JobStatus.CREATED.value,
            "max_items": request.max_items,
            "duplicate_stop_count": request.duplicate_stop_count,
            "counters": JobCounters().model_dump(),
            "created_at": now,
            "updated_at": now,
        }
        response = await self._execute(self._client.table(self._jobs_table).insert(row))
        job_id = str(response.data[0]["id"])
        logger.debug(f"Created job {job_id} in '{self._jobs_table}'")
        return job_id

    async def _fetch_row(self, job_id: str) -> Dict[str, Any]:
        response = await self._execute(
            self._client.table(self._jobs_table).select("*").eq("id", job_id).limit(1)
        )
        if not response.data:
            raise JobNotFoundError(job_id)
        return response.data[0]

    async def update_job_status(self, job_id: str, status: JobStatus,
                                result: Optional[JobResult] = None) -> None:
        row = await self._fetch_row(job_id)
        current = JobStatus(row["status"])
        if not can_transition(current, status):
            raise InvalidJobTransition(job_id, current.value, status.value)

        now = get_current_timestamp()
        update: Dict[str, Any] = {"status": status.value, "updated_at": now}
        if status == JobStatus.RUNNING and not row.get("started_at"):
            update["started_at"] = now
        if result is not None:
            update["result"] = result.model_dump(mode="json")
            update["counters"] = result.counters.model_dump()
            update["end_reason"] = result.end_reason.value
        await self._execute(self._client.table(self._jobs_table).update(update).eq("id", job_id))

    async def update_job_progress(self, job_id: str, counters: JobCounters) -> None:
        await self._execute(
            self._client.table(self._jobs_table)
            .update({"counters": counters.model_dump(), "updated_at": get_current_timestamp()})
            .eq("id", job_id)
            .eq("status", JobStatus.RUNNING.value)
        )

    async def get_job(self, job_id: str) -> JobSnapshot:
        row = await self._fetch_row(job_id)
        result = row.get("result")
        return JobSnapshot(
            job_id=str(row["id"]),
            platform=row["platform"],
            target=row["target"],
            status=row["status"],
            counters=JobCounters(**(row.get("counters") or {})),
            result=JobResult(**result) if result else None,
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )

    async def load_persisted_ids(self, platform: Platform, target: str) -> Set[str]:
        table = self._record_tables[platform]
        response = await self._execute(
            self._client.table(table).select("id").eq("target", target)
        )
        return {str(row["id"]) for row in response.data or []}

    async def save_records(self, records: Sequence[Record], job_id: str) -> None:
        by_table: Dict[str, List[Dict[str, Any]]] = {}
        for record in records:
            by_table.setdefault(self._record_tables[record.platform], []).append(record.to_row(job_id))

        for table, rows in by_table.items():
            logger.info(f"Job {job_id}: upserting {len(rows)} records into '{table}'")
            # on_conflict=id -> a record found twice keeps one row
            await self._execute(self._client.table(table).upsert(rows, on_conflict="id"))

    async def fail_stale_jobs(self, older_than_seconds: float) -> List[str]:
        response = await self._execute(
            self._client.table(self._jobs_table).select("*").eq("status", JobStatus.RUNNING.value)
        )
        cleaned = []
        for row in response.data or []:
            running_for = seconds_since(row.get("started_at") or row.get("created_at"))
            if running_for is None or running_for <= older_than_seconds:
                continue
            job_id = str(row["id"])
            counters = JobCounters(**(row.get("counters") or {}))
            await self.update_job_status(
                job_id, JobStatus.FAILED, stale_job_result(running_for, counters)
            )
            cleaned.append(job_id)
        return cleaned


def build_storage(config: Optional[Config] = None) -> Storage:
    """
    Pick the storage backend for this process.

    Supabase when enabled and configured, in-memory otherwise.
    """
    from feedcrawl.db.supabase_client import get_supabase

    config = config or get_config()
    client = get_supabase(config)
    if client is None:
        logger.info("Using in-memory storage")
        return InMemoryStorage()
    return SupabaseStorage(client, config)
