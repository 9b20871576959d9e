"""
Runs one attempt of one job.

The executor leases a browser session, runs the extraction loop and writes
the terminal job status. A hard timeout stops the work even when the loop
is stuck inside a page call: the work task is cancelled, the session is
evicted from its pool and the job is written as failed/TIMEOUT.
"""

import asyncio
import random
import time
from typing import Awaitable, Callable, Optional

from feedcrawl.browser.pool import BrowserResourcePool
from feedcrawl.browser.session import BrowserSession
from feedcrawl.core.error_logger import get_error_logger
from feedcrawl.core.error_models import ErrorComponent, ErrorSeverity, ErrorStage, ErrorType
from feedcrawl.core.exceptions import InvalidJobTransition, SessionUnhealthyError
from feedcrawl.core.job_models import (
    EndReason,
    END_REASON_MESSAGES,
    JobCounters,
    JobError,
    JobRequest,
    JobResult,
    JobSnapshot,
    JobStatus,
)
from feedcrawl.core.logging import get_logger
from feedcrawl.crawler.drivers import PlatformDriver
from feedcrawl.crawler.loop import ExtractionLoop
from feedcrawl.db.storage import Storage
from feedcrawl.utils.date_utils import get_current_timestamp

logger = get_logger(__name__)

COMPLETED_REASONS = {
    EndReason.TARGET_REACHED,
    EndReason.CONSECUTIVE_DUPLICATES,
    EndReason.MAX_SCROLL_REACHED,
    EndReason.NO_MORE_CONTENT,
}

# Seconds a cancelled work task gets to unwind before its session is taken away
UNWIND_GRACE = 1.0

STORAGE_STAGES = {ErrorStage.UPDATE_JOB, ErrorStage.LOAD_PERSISTED_IDS, ErrorStage.SAVE_RECORDS}


class JobExecutor:
    """
    Single-use runner for one job attempt.

    Args:
        job_id: Stored job id
        request: The submitted request
        driver: Platform driver (extractor, loop defaults, timeout)
        pool: Browser pool of the request's platform
        storage: Job and record storage
        attempt: 1-based attempt number
        defer_failure: Do not write a failed status (a later attempt will).
            Cancellations are always written.
        task_timeout: Overrides the driver's timeout (seconds)
    """

    def __init__(
        self,
        job_id: str,
        request: JobRequest,
        driver: PlatformDriver,
        pool: BrowserResourcePool,
        storage: Storage,
        attempt: int = 1,
        defer_failure: bool = False,
        task_timeout: Optional[float] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ):
        self.job_id = job_id
        self.request = request
        self.driver = driver
        self.pool = pool
        self.storage = storage
        self.attempt = attempt
        self.defer_failure = defer_failure
        self.task_timeout = task_timeout if task_timeout is not None else driver.task_timeout
        self.target = driver.extractor.normalize_target(request.target)
        self._sleep = sleep
        self._rng = rng

        self.counters = JobCounters()
        self.session: Optional[BrowserSession] = None
        self.result: Optional[JobResult] = None
        self.is_running = False
        self.timed_out = False
        self.cancelled = False

        self._started_at: Optional[str] = None
        self._t0: Optional[float] = None
        self._work: Optional[asyncio.Task] = None
        self._timer: Optional[asyncio.TimerHandle] = None
        self._stopped = asyncio.Event()
        self._evict_session = False
        self._disposed = False
        self._finalizing = False
        self._finalized = False

    @property
    def _tag(self) -> str:
        return f"[{self.driver.platform.value}] Job {self.job_id}"

    @property
    def finished(self) -> bool:
        return self._finalized

    async def run(self) -> JobResult:
        """Run the attempt to completion and return its terminal result."""
        if self._work is not None:
            raise RuntimeError("JobExecutor instances are single use")
        if self._finalizing:
            return self.result
        if self.cancelled:
            return await self._finalize(self._interrupted_result())

        loop = asyncio.get_running_loop()
        self.is_running = True
        self._started_at = get_current_timestamp()
        self._t0 = time.monotonic()
        logger.info(f"{self._tag}: starting attempt {self.attempt} for '{self.target}' (timeout {self.task_timeout:.0f}s)")

        self._work = loop.create_task(self._execute())
        self._timer = loop.call_later(self.task_timeout, self._on_timeout)
        stopped = loop.create_task(self._stopped.wait())
        try:
            await asyncio.wait({self._work, stopped}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            if not self.timed_out:
                self.cancelled = True
            self._work.cancel()
            await self.cleanup()
            await self._finalize(self._interrupted_result())
            raise
        finally:
            stopped.cancel()
            self._disarm_timer()

        if self._work.done() and not self._work.cancelled():
            result = self._work.result()
        else:
            self._work.cancel()
            await asyncio.wait({self._work}, timeout=UNWIND_GRACE)
            result = self._interrupted_result()

        await self.cleanup()
        return await self._finalize(result)

    async def _execute(self) -> JobResult:
        platform = self.driver.platform
        extractor = self.driver.extractor
        stage = ErrorStage.UPDATE_JOB
        try:
            await self.storage.update_job_status(self.job_id, JobStatus.RUNNING)

            stage = ErrorStage.ACQUIRE_SESSION
            session = await self.pool.acquire()
            if self._disposed:
                await self.pool.evict(session)
                raise asyncio.CancelledError()
            self.session = session
            logger.info(f"{self._tag}: leased session {session.session_id}")

            stage = ErrorStage.OPEN_TARGET
            await extractor.open_target(session, self.target)
            stage = ErrorStage.LOAD_PERSISTED_IDS
            persisted = await self.storage.load_persisted_ids(platform, self.target)
            logger.info(f"{self._tag}: {len(persisted)} record(s) already stored for '{self.target}'")

            loop = ExtractionLoop(
                extractor=extractor,
                storage=self.storage,
                session=session,
                job_id=self.job_id,
                target=self.target,
                settings=self.driver.loop_settings(self.request),
                persisted_ids=persisted,
                counters=self.counters,
                should_stop=self._stop_reason,
                health_check=self._check_session,
                sleep=self._sleep,
                rng=self._rng,
            )
            # only storage writes raise out of the loop
            stage = ErrorStage.SAVE_RECORDS
            outcome = await loop.run()
            status = JobStatus.COMPLETED if outcome.end_reason in COMPLETED_REASONS else JobStatus.FAILED
            return self._build_result(status, outcome.end_reason, outcome.message)

        except SessionUnhealthyError as e:
            self._evict_session = True
            logger.error(f"{self._tag}: {e}")
            self._record_error(e, ErrorStage.HEALTH_CHECK)
            return self._error_result(e)
        except Exception as e:
            logger.error(f"{self._tag}: attempt {self.attempt} failed during {stage}: {e}")
            self._record_error(e, stage)
            return self._error_result(e)

    def _on_timeout(self) -> None:
        if self._finalizing or (self._work is not None and self._work.done()):
            return
        self.timed_out = True
        logger.warning(f"{self._tag}: timed out after {self.task_timeout:.0f}s, stopping")
        get_error_logger().log_error(
            component=ErrorComponent.EXECUTOR,
            stage=ErrorStage.JOB_TIMEOUT,
            error_type=ErrorType.JOB_TIMEOUT,
            platform=self.driver.platform.value,
            target=self.target,
            job_id=self.job_id,
            message=f"Job exceeded its {self.task_timeout:.0f}s timeout",
            metadata={"attempt": self.attempt, "counters": self.counters.model_dump()},
        )
        if self._work is not None:
            self._work.cancel()
        self._stopped.set()

    async def cancel(self) -> bool:
        """
        Stop the attempt and write it as failed/USER_CANCELLED.

        Returns:
            False if the attempt had already finished
        """
        if self._finalizing:
            return False
        self.cancelled = True
        logger.info(f"{self._tag}: cancelling")
        get_error_logger().log_error(
            component=ErrorComponent.EXECUTOR,
            stage=ErrorStage.JOB_CANCEL,
            error_type=ErrorType.JOB_CANCELLED,
            platform=self.driver.platform.value,
            target=self.target,
            job_id=self.job_id,
            message="Job cancelled by user",
            severity=ErrorSeverity.INFO,
        )
        if self._work is not None and not self._work.done():
            self._work.cancel()
        self._stopped.set()

        await self.cleanup()
        await self._finalize(self._interrupted_result())
        return True

    async def cleanup(self) -> None:
        """Give the session back to its pool. Safe to call more than once."""
        if self._disposed:
            return
        self._disposed = True
        self._disarm_timer()

        session, self.session = self.session, None
        if session is None:
            return

        work_alive = self._work is not None and not self._work.done()
        if work_alive and not self.timed_out:
            self._work.cancel()
            await asyncio.wait({self._work}, timeout=UNWIND_GRACE)
            work_alive = not self._work.done()
        try:
            if self.timed_out or self._evict_session or work_alive:
                await self.pool.evict(session)
                logger.info(f"{self._tag}: evicted session {session.session_id}")
            else:
                await self.pool.release(session)
                logger.debug(f"{self._tag}: released session {session.session_id}")
        except Exception as e:
            logger.error(f"{self._tag}: failed to return session {session.session_id}: {e}")
            get_error_logger().log_exception(
                e,
                component=ErrorComponent.POOL,
                stage=ErrorStage.RELEASE_SESSION,
                platform=self.driver.platform.value,
                target=self.target,
                job_id=self.job_id,
            )

    def _disarm_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    async def _finalize(self, result: JobResult) -> JobResult:
        """
        Record the terminal result exactly once.

        ``finished`` turns true only after the terminal write has returned.
        """
        if self._finalizing:
            return self.result
        self._finalizing = True
        self.result = result

        if (result.status == JobStatus.FAILED and self.defer_failure
                and result.end_reason != EndReason.USER_CANCELLED):
            logger.info(f"{self._tag}: attempt {self.attempt} failed ({result.end_reason.value}), leaving status to the next attempt")
            self._mark_finished()
            return result

        try:
            await self.storage.update_job_status(self.job_id, result.status, result)
        except InvalidJobTransition as e:
            logger.warning(f"{self._tag}: terminal status already recorded ({e})")
            return result
        finally:
            self._mark_finished()

        logger.info(
            f"{self._tag}: {result.status.value} ({result.end_reason.value}) "
            f"with {result.counters.item_count} new item(s) in {result.duration_seconds:.1f}s"
        )
        return result

    def _mark_finished(self) -> None:
        self._finalized = True
        self.is_running = False

    def _stop_reason(self) -> Optional[EndReason]:
        if self.timed_out:
            return EndReason.TIMEOUT
        if self.cancelled:
            return EndReason.USER_CANCELLED
        return None

    async def _check_session(self) -> bool:
        session = self.session
        if session is None:
            return False
        try:
            return bool(await self.pool.factory.health_check(session))
        except Exception as e:
            logger.warning(f"{self._tag}: health check raised: {e}")
            return False

    def _build_result(self, status: JobStatus, reason: EndReason, message: str = "",
                      error: Optional[JobError] = None) -> JobResult:
        duration = time.monotonic() - self._t0 if self._t0 is not None else 0.0
        return JobResult(
            status=status,
            end_reason=reason,
            message=message or END_REASON_MESSAGES[reason],
            counters=self.counters.model_copy(deep=True),
            started_at=self._started_at,
            finished_at=get_current_timestamp(),
            duration_seconds=max(duration, 0.0),
            error=error,
        )

    def _error_result(self, exc: Exception) -> JobResult:
        message = str(exc) or type(exc).__name__
        return self._build_result(
            JobStatus.FAILED,
            EndReason.ERROR_OCCURRED,
            message,
            JobError(code=EndReason.ERROR_OCCURRED.value, message=message, exception_type=type(exc).__name__),
        )

    def _interrupted_result(self) -> JobResult:
        if self.timed_out:
            message = f"Job exceeded its {self.task_timeout:.0f}s timeout"
            return self._build_result(
                JobStatus.FAILED, EndReason.TIMEOUT, message,
                JobError(code=EndReason.TIMEOUT.value, message=message),
            )
        return self._build_result(JobStatus.FAILED, EndReason.USER_CANCELLED)

    def _record_error(self, exc: Exception, stage: str) -> None:
        component = ErrorComponent.STORAGE if stage in STORAGE_STAGES else ErrorComponent.EXECUTOR
        get_error_logger().log_exception(
            exc,
            component=component,
            stage=stage,
            platform=self.driver.platform.value,
            target=self.target,
            job_id=self.job_id,
            metadata={"attempt": self.attempt},
        )

    def snapshot(self) -> JobSnapshot:
        """Live view of this attempt."""
        if self.result is not None:
            status = self.result.status
        elif self.is_running:
            status = JobStatus.RUNNING
        else:
            status = JobStatus.QUEUED
        return JobSnapshot(
            job_id=self.job_id,
            platform=self.request.platform,
            target=self.target,
            status=status,
            counters=self.counters.model_copy(deep=True),
            result=self.result,
            is_running=self.is_running,
            timed_out=self.timed_out,
            cancelled=self.cancelled,
            attempt=self.attempt,
        )
