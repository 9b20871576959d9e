"""
Job admission, supervision, retry and cancellation.

Every accepted job runs in its own supervised asyncio task. The manager
keeps the task handle only for cancellation and zombie detection; a job
leaves the running set exactly once, when its supervisor finishes.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Dict, Optional

from feedcrawl.browser.registry import PoolRegistry
from feedcrawl.core.config import Config, get_config
from feedcrawl.core.error_logger import get_error_logger
from feedcrawl.core.error_models import ErrorComponent, ErrorSeverity, ErrorStage, ErrorType
from feedcrawl.core.exceptions import CapacityExceeded, UnsupportedPlatformError
from feedcrawl.core.job_models import (
    EndReason,
    END_REASON_MESSAGES,
    JobRequest,
    JobResult,
    JobSnapshot,
    JobStatus,
    ManagerOverview,
    Platform,
    PoolStatus,
    ZombieReport,
)
from feedcrawl.core.logging import get_logger
from feedcrawl.crawler.drivers import PlatformDriver
from feedcrawl.db.storage import Storage
from feedcrawl.jobs.executor import JobExecutor
from feedcrawl.utils.date_utils import get_current_timestamp
from feedcrawl.utils.retry import RetryConfig, compute_backoff_delay

logger = get_logger(__name__)


@dataclass
class _TrackedJob:
    job_id: str
    request: JobRequest
    executor: JobExecutor
    task: Optional[asyncio.Task] = None
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)
    cancelled: bool = False
    in_backoff: bool = False
    result: Optional[JobResult] = None


class JobLifecycleManager:
    """
    Admits, runs, retries and cancels crawl jobs.

    Args:
        storage: Job and record storage
        registry: Browser pools keyed by platform
        drivers: Platform drivers keyed by platform
        max_concurrent_jobs: Admission cap
        enable_retry: Retry failed jobs with exponential backoff
        retry_config: Attempts and delays; ``max_retries`` extra attempts
            follow the first one

    Example:
        >>> manager = JobLifecycleManager(storage, registry, drivers, max_concurrent_jobs=3)
        >>> job_id = await manager.submit(JobRequest(platform="twitter_list", target="123"))
        >>> result = await manager.wait(job_id)
    """

    def __init__(
        self,
        storage: Storage,
        registry: PoolRegistry,
        drivers: Dict[Platform, PlatformDriver],
        max_concurrent_jobs: int = 3,
        enable_retry: bool = False,
        retry_config: Optional[RetryConfig] = None,
    ):
        if max_concurrent_jobs <= 0:
            raise ValueError("max_concurrent_jobs must be positive")
        self.storage = storage
        self.registry = registry
        self.drivers = drivers
        self.max_concurrent_jobs = max_concurrent_jobs
        self.enable_retry = enable_retry
        self.retry_config = retry_config or RetryConfig(max_retries=5, base_delay=5.0, max_delay=30.0)

        self._running: Dict[str, _TrackedJob] = {}
        self._lock = asyncio.Lock()
        self._closed = False

    @classmethod
    def from_config(cls, storage: Storage, registry: PoolRegistry,
                    drivers: Dict[Platform, PlatformDriver],
                    config: Optional[Config] = None) -> "JobLifecycleManager":
        config = config or get_config()
        return cls(
            storage=storage,
            registry=registry,
            drivers=drivers,
            max_concurrent_jobs=config.max_concurrent_jobs,
            enable_retry=config.enable_retry,
            retry_config=RetryConfig(
                max_retries=config.retry_attempts,
                base_delay=config.retry_delay,
                max_delay=config.retry_max_delay,
            ),
        )

    def _driver(self, platform: Platform) -> PlatformDriver:
        driver = self.drivers.get(platform)
        if driver is None:
            raise UnsupportedPlatformError(platform.value)
        return driver

    def _new_executor(self, job_id: str, request: JobRequest, attempt: int) -> JobExecutor:
        final = not self.enable_retry or attempt > self.retry_config.max_retries
        return JobExecutor(
            job_id=job_id,
            request=request,
            driver=self._driver(request.platform),
            pool=self.registry.get(request.platform),
            storage=self.storage,
            attempt=attempt,
            defer_failure=not final,
        )

    async def submit(self, request: JobRequest) -> str:
        """
        Admit a job and start it in the background.

        The capacity check and registration happen under one lock, so
        concurrent submissions can never exceed ``max_concurrent_jobs``.

        Raises:
            CapacityExceeded: The running set is full
            UnsupportedPlatformError: No driver or pool for the platform
        """
        self._driver(request.platform)
        self.registry.get(request.platform)

        async with self._lock:
            if self._closed:
                raise RuntimeError("JobLifecycleManager is shut down")
            if len(self._running) >= self.max_concurrent_jobs:
                logger.warning(
                    f"Rejecting {request.platform.value}:{request.target}, "
                    f"{len(self._running)}/{self.max_concurrent_jobs} jobs running"
                )
                get_error_logger().log_error(
                    component=ErrorComponent.MANAGER,
                    stage=ErrorStage.RUN_JOB,
                    error_type=ErrorType.CAPACITY,
                    platform=request.platform.value,
                    target=request.target,
                    message=f"Concurrent job limit reached: {self.max_concurrent_jobs}",
                    severity=ErrorSeverity.WARNING,
                )
                raise CapacityExceeded(self.max_concurrent_jobs)

            job_id = await self.storage.create_job(request)
            await self.storage.update_job_status(job_id, JobStatus.QUEUED)
            tracked = _TrackedJob(job_id=job_id, request=request,
                                  executor=self._new_executor(job_id, request, attempt=1))
            self._running[job_id] = tracked
            tracked.task = asyncio.get_running_loop().create_task(self._supervise(tracked))

        logger.info(
            f"[{request.platform.value}] Job {job_id} accepted for '{request.target}' "
            f"({len(self._running)}/{self.max_concurrent_jobs} running)"
        )
        return job_id

    async def _supervise(self, tracked: _TrackedJob) -> None:
        try:
            if self.enable_retry:
                result = await self._run_with_retry(tracked)
            else:
                result = await tracked.executor.run()
            tracked.result = result
        except asyncio.CancelledError:
            logger.info(f"Job {tracked.job_id}: supervisor cancelled")
            raise
        except Exception as e:
            logger.error(f"Job {tracked.job_id}: supervisor failed: {e}")
            get_error_logger().log_exception(
                e,
                component=ErrorComponent.MANAGER,
                stage=ErrorStage.RUN_JOB,
                platform=tracked.request.platform.value,
                target=tracked.request.target,
                job_id=tracked.job_id,
            )
        finally:
            self._deregister(tracked.job_id)

    async def _run_with_retry(self, tracked: _TrackedJob) -> JobResult:
        config = self.retry_config
        attempt = 1
        while True:
            result = await tracked.executor.run()
            if result.status == JobStatus.COMPLETED:
                return result
            if result.end_reason == EndReason.USER_CANCELLED:
                return result
            if tracked.cancelled:
                return await self._write_cancelled(tracked.job_id, result.counters)
            if attempt > config.max_retries:
                logger.error(f"Job {tracked.job_id}: giving up after {attempt} attempt(s)")
                return result

            delay = compute_backoff_delay(attempt, config)
            logger.warning(
                f"Job {tracked.job_id}: attempt {attempt} ended {result.end_reason.value}, "
                f"retry {attempt}/{config.max_retries} in {delay:.1f}s"
            )
            get_error_logger().log_error(
                component=ErrorComponent.MANAGER,
                stage=ErrorStage.JOB_RETRY,
                error_type=ErrorType.UNKNOWN,
                platform=tracked.request.platform.value,
                target=tracked.request.target,
                job_id=tracked.job_id,
                message=result.message or result.end_reason.value,
                severity=ErrorSeverity.WARNING,
                metadata={"attempt": attempt, "delay_seconds": delay},
            )

            tracked.in_backoff = True
            try:
                await asyncio.wait_for(tracked.cancel_event.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass
            finally:
                tracked.in_backoff = False

            if tracked.cancelled:
                logger.info(f"Job {tracked.job_id}: cancelled during backoff, not retrying")
                return await self._write_cancelled(tracked.job_id, result.counters)

            attempt += 1
            tracked.executor = self._new_executor(tracked.job_id, tracked.request, attempt)

    async def _write_cancelled(self, job_id: str, counters=None, message: Optional[str] = None) -> JobResult:
        result = JobResult(
            status=JobStatus.FAILED,
            end_reason=EndReason.USER_CANCELLED,
            message=message or END_REASON_MESSAGES[EndReason.USER_CANCELLED],
            finished_at=get_current_timestamp(),
        )
        if counters is not None:
            result.counters = counters.model_copy(deep=True)
        snapshot = await self.storage.get_job(job_id)
        if not snapshot.status.is_terminal:
            await self.storage.update_job_status(job_id, JobStatus.FAILED, result)
        return result

    def _deregister(self, job_id: str) -> bool:
        tracked = self._running.pop(job_id, None)
        if tracked is None:
            return False
        logger.debug(f"Job {job_id} deregistered ({len(self._running)} running)")
        return True

    async def cancel(self, job_id: str) -> bool:
        """
        Cancel a running job.

        Returns:
            False if the job is not running
        """
        tracked = self._running.get(job_id)
        if tracked is None:
            return False

        tracked.cancelled = True
        tracked.cancel_event.set()
        try:
            if tracked.in_backoff or not await tracked.executor.cancel():
                # between attempts, or the attempt ended with its failure deferred
                await self._write_cancelled(job_id, tracked.executor.counters)
        except Exception as e:
            logger.error(f"Job {job_id}: cancel failed ({e}), writing terminal status directly")
            get_error_logger().log_exception(
                e,
                component=ErrorComponent.MANAGER,
                stage=ErrorStage.JOB_CANCEL,
                platform=tracked.request.platform.value,
                target=tracked.request.target,
                job_id=job_id,
            )
            await self._write_cancelled(job_id, tracked.executor.counters)
        finally:
            self._deregister(job_id)

        logger.info(f"Job {job_id} cancelled")
        return True

    async def status(self, job_id: str) -> JobSnapshot:
        """
        Live snapshot for running jobs, stored state otherwise.

        Raises:
            JobNotFoundError: Unknown job id
        """
        tracked = self._running.get(job_id)
        if tracked is not None:
            snapshot = tracked.executor.snapshot()
            if tracked.in_backoff:
                snapshot = snapshot.model_copy(update={"status": JobStatus.RUNNING, "is_running": True})
            return snapshot
        return await self.storage.get_job(job_id)

    async def wait(self, job_id: str) -> Optional[JobResult]:
        """Wait for a job's supervisor to finish and return its final result."""
        tracked = self._running.get(job_id)
        if tracked is not None and tracked.task is not None:
            await asyncio.wait({tracked.task})
            if tracked.result is not None:
                return tracked.result
        snapshot = await self.storage.get_job(job_id)
        return snapshot.result

    def overview(self) -> ManagerOverview:
        return ManagerOverview(
            running_jobs=len(self._running),
            max_concurrent_jobs=self.max_concurrent_jobs,
            job_ids=list(self._running),
        )

    def pool_status(self, platform: Platform) -> PoolStatus:
        return self.registry.get(platform).status()

    async def force_cleanup_zombies(self) -> ZombieReport:
        """
        Remove jobs that finished but were never deregistered.

        A job is a zombie when its supervisor task has ended while the job is
        still in the running set. A job whose executor is still writing its
        terminal status is not one.
        """
        zombies = [
            tracked for tracked in self._running.values()
            if tracked.task is not None and tracked.task.done()
        ]

        cleaned = []
        for tracked in zombies:
            job_id = tracked.job_id
            logger.warning(f"Job {job_id}: zombie detected, forcing cleanup")
            get_error_logger().log_error(
                component=ErrorComponent.MANAGER,
                stage=ErrorStage.ZOMBIE_CLEANUP,
                error_type=ErrorType.ZOMBIE_JOB,
                platform=tracked.request.platform.value,
                target=tracked.request.target,
                job_id=job_id,
                message="Job finished but was still registered as running",
                severity=ErrorSeverity.WARNING,
            )
            try:
                await tracked.executor.cleanup()
                await self._write_cancelled(job_id, tracked.executor.counters,
                                            message="Zombie job cleaned up")
            except Exception as e:
                logger.error(f"Job {job_id}: zombie cleanup failed: {e}")
                get_error_logger().log_exception(
                    e,
                    component=ErrorComponent.MANAGER,
                    stage=ErrorStage.ZOMBIE_CLEANUP,
                    platform=tracked.request.platform.value,
                    job_id=job_id,
                )
            finally:
                self._deregister(job_id)
            cleaned.append(job_id)

        if cleaned:
            logger.info(f"Zombie sweep cleaned {len(cleaned)} job(s)")
        return ZombieReport(total=len(cleaned), cleaned=cleaned)

    async def shutdown(self) -> None:
        """Cancel every running job, then shut down all pools."""
        async with self._lock:
            self._closed = True
        tasks = [tracked.task for tracked in self._running.values() if tracked.task is not None]
        for job_id in list(self._running):
            await self.cancel(job_id)
        if tasks:
            await asyncio.wait(tasks, timeout=5.0)
        await self.registry.shutdown_all()
        logger.info("Job manager shut down")
