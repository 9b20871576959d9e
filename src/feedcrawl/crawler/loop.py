"""
The scroll-and-extract loop run by every job.

Each iteration reads the current viewport, stores what is new, and then
checks the stop conditions in a fixed order:

    A. target item count reached        -> TARGET_REACHED
    B. persisted-duplicate streak       -> CONSECUTIVE_DUPLICATES
    C. empty page after the first pass  -> NO_MORE_CONTENT
    D. scroll position stopped moving   -> NO_MORE_CONTENT
    E. iteration cap                    -> MAX_SCROLL_REACHED

The first condition satisfied wins.
"""

import asyncio
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Set

from feedcrawl.browser.session import BrowserSession
from feedcrawl.core.error_logger import get_error_logger
from feedcrawl.core.error_models import ErrorComponent, ErrorSeverity, ErrorStage
from feedcrawl.core.exceptions import SessionUnhealthyError
from feedcrawl.core.job_models import END_REASON_MESSAGES, EndReason, JobCounters
from feedcrawl.core.logging import get_logger
from feedcrawl.crawler.extractor import Extractor
from feedcrawl.db.storage import Storage

logger = get_logger(__name__)


@dataclass
class LoopSettings:
    """Thresholds and pacing for one run of the loop. Times in seconds."""
    target_count: int
    duplicate_stop_count: int
    max_iterations: int
    min_scroll_delta: int = 100
    stall_limit: int = 3
    wait_time: float = 3.0
    idle_wait_factor: float = 1.5
    random_delay_enabled: bool = False
    random_delay_min: float = 1.0
    random_delay_max: float = 3.0
    health_check_interval: int = 5

    def __post_init__(self):
        if self.target_count <= 0:
            raise ValueError("target_count must be positive")
        if self.duplicate_stop_count <= 0:
            raise ValueError("duplicate_stop_count must be positive")
        if self.max_iterations <= 0:
            raise ValueError("max_iterations must be positive")
        if self.stall_limit <= 0:
            raise ValueError("stall_limit must be positive")
        if self.health_check_interval <= 0:
            raise ValueError("health_check_interval must be positive")
        if self.random_delay_min > self.random_delay_max:
            raise ValueError("random_delay_min cannot exceed random_delay_max")


@dataclass
class LoopOutcome:
    end_reason: EndReason
    counters: JobCounters
    message: str = ""


class ExtractionLoop:
    """
    Drives an extractor over one leased session until a stop condition fires.

    Per-iteration extraction and scroll errors are logged and counted as an
    iteration. Every ``health_check_interval``-th error since the last check
    triggers ``health_check``; a failed check raises SessionUnhealthyError. Storage
    errors propagate.

    Args:
        extractor: Platform extractor
        storage: Where accepted records and progress are written
        session: Leased browser session
        job_id: Job the records belong to
        target: Normalized target
        settings: Loop thresholds
        persisted_ids: Ids already stored for this target (updated in place)
        counters: Job counters, updated in place
        should_stop: Returns an EndReason when the job was cancelled or timed out
        health_check: Async callable returning False if the session is dead
        sleep: Awaitable sleep, replaceable in tests
        rng: Random source for politeness delays
    """

    def __init__(
        self,
        extractor: Extractor,
        storage: Storage,
        session: BrowserSession,
        job_id: str,
        target: str,
        settings: LoopSettings,
        persisted_ids: Optional[Set[str]] = None,
        counters: Optional[JobCounters] = None,
        should_stop: Optional[Callable[[], Optional[EndReason]]] = None,
        health_check: Optional[Callable[[], Awaitable[bool]]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ):
        self.extractor = extractor
        self.storage = storage
        self.session = session
        self.job_id = job_id
        self.target = target
        self.settings = settings
        self.persisted_ids = persisted_ids if persisted_ids is not None else set()
        self.job_local_ids: Set[str] = set()
        self.counters = counters if counters is not None else JobCounters()
        self.should_stop = should_stop
        self.health_check = health_check
        self.sleep = sleep
        self.rng = rng or random.Random()

        self.consecutive_duplicates = 0
        self.stalled_scrolls = 0
        self.error_count = 0
        self.errors_since_check = 0

    @property
    def _tag(self) -> str:
        return f"[{self.extractor.platform.value}] Job {self.job_id}"

    async def run(self) -> LoopOutcome:
        settings = self.settings
        counters = self.counters

        while True:
            external = self.should_stop() if self.should_stop else None
            if external is not None:
                return self._finish(external)

            if settings.random_delay_enabled:
                await self.sleep(self.rng.uniform(settings.random_delay_min, settings.random_delay_max))

            try:
                result = await self.extractor.process_viewport(
                    self.session, self.target, self.persisted_ids, self.job_local_ids
                )
            except Exception as e:
                counters.iterations += 1
                await self._on_error(e, ErrorStage.PROCESS_VIEWPORT)
                if counters.iterations >= settings.max_iterations:
                    return self._finish(EndReason.MAX_SCROLL_REACHED)
                continue

            if result.accepted:
                await self.storage.save_records(result.accepted, self.job_id)
            counters.item_count += len(result.accepted)
            counters.duplicate_count += result.duplicate_count
            counters.task_internal_duplicate_count += result.job_local_duplicate_count
            counters.add_skips(result.skip_counts)
            await self.storage.update_job_progress(self.job_id, counters)

            # A
            if counters.item_count >= settings.target_count:
                return self._finish(EndReason.TARGET_REACHED)

            # B: only persisted duplicates extend the streak
            if result.duplicate_count > 0:
                self.consecutive_duplicates += result.duplicate_count
            else:
                self.consecutive_duplicates = 0
            if self.consecutive_duplicates >= settings.duplicate_stop_count:
                return self._finish(EndReason.CONSECUTIVE_DUPLICATES)

            # C
            if counters.iterations > 0 and result.total_processed == 0:
                return self._finish(EndReason.NO_MORE_CONTENT)

            counters.iterations += 1
            try:
                before = await self.extractor.current_scroll_offset(self.session)
                await self.extractor.trigger_scroll(self.session)
                wait = settings.wait_time if result.accepted else settings.wait_time * settings.idle_wait_factor
                await self.sleep(wait)
                after = await self.extractor.current_scroll_offset(self.session)
            except Exception as e:
                await self._on_error(e, ErrorStage.SCROLL)
                if counters.iterations >= settings.max_iterations:
                    return self._finish(EndReason.MAX_SCROLL_REACHED)
                continue

            # D
            if after - before < settings.min_scroll_delta:
                self.stalled_scrolls += 1
                logger.debug(f"{self._tag}: scroll moved {after - before}px ({self.stalled_scrolls}/{settings.stall_limit})")
            else:
                self.stalled_scrolls = 0
            if self.stalled_scrolls >= settings.stall_limit:
                return self._finish(EndReason.NO_MORE_CONTENT)

            # E
            if counters.iterations >= settings.max_iterations:
                return self._finish(EndReason.MAX_SCROLL_REACHED)

    async def _on_error(self, exc: Exception, stage: str) -> None:
        self.error_count += 1
        iteration = self.counters.iterations
        logger.warning(f"{self._tag}: {stage} failed at iteration {iteration}: {exc}")
        get_error_logger().log_exception(
            exc,
            component=ErrorComponent.EXTRACTOR,
            stage=stage,
            platform=self.extractor.platform.value,
            target=self.target,
            job_id=self.job_id,
            severity=ErrorSeverity.WARNING,
            metadata={"iteration": iteration, "error_count": self.error_count},
        )

        if self.health_check is None:
            return
        self.errors_since_check += 1
        if self.errors_since_check < self.settings.health_check_interval:
            return
        self.errors_since_check = 0
        if not await self.health_check():
            raise SessionUnhealthyError(
                self.session.session_id,
                f"Browser session {self.session.session_id} failed its health check "
                f"after {self.error_count} error(s); last error: {exc}",
            )
        logger.info(f"{self._tag}: session passed health check, continuing")

    def _finish(self, reason: EndReason) -> LoopOutcome:
        counters = self.counters
        logger.info(
            f"{self._tag}: stopped ({reason.value}) after {counters.iterations} iteration(s), "
            f"{counters.item_count} new, {counters.duplicate_count} stored duplicates, "
            f"{counters.task_internal_duplicate_count} repeated"
        )
        return LoopOutcome(end_reason=reason, counters=counters, message=END_REASON_MESSAGES[reason])
