"""
Extractor interface consumed by the extraction loop.

An extractor knows one platform's pages: how to open a target, which
candidates the current viewport shows, and how to scroll. Deduplication
against the persisted and job-local id sets happens inside
``process_viewport`` so each candidate is classified exactly once.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set, Tuple

from feedcrawl.browser.session import BrowserSession
from feedcrawl.core.job_models import Platform
from feedcrawl.core.logging import get_logger
from feedcrawl.crawler.navigation import open_url, scroll_by_viewport, scroll_offset
from feedcrawl.db.models import Record

logger = get_logger(__name__)

ACCEPTED = "accepted"
JOB_LOCAL = "job_local"
PERSISTED = "persisted"


def classify_candidate(record_id: str, persisted_ids: Set[str], job_local_ids: Set[str]) -> str:
    """
    Decide what to do with one candidate id.

    Job-local hits win over persisted hits. Accepted ids are added to both
    sets before returning.

    Returns:
        One of ``"job_local"``, ``"persisted"`` or ``"accepted"``
    """
    if record_id in job_local_ids:
        return JOB_LOCAL
    if record_id in persisted_ids:
        return PERSISTED
    job_local_ids.add(record_id)
    persisted_ids.add(record_id)
    return ACCEPTED


@dataclass
class ViewportResult:
    """What one pass over the current viewport produced."""
    accepted: List[Record] = field(default_factory=list)
    duplicate_count: int = 0
    job_local_duplicate_count: int = 0
    total_processed: int = 0
    skip_counts: Dict[str, int] = field(default_factory=dict)

    def skip(self, reason: str) -> None:
        self.skip_counts[reason] = self.skip_counts.get(reason, 0) + 1


class Extractor(ABC):
    """
    Platform-specific page logic.

    Subclasses provide ``target_url``, ``collect`` (raw candidates from the
    page) and ``build_record`` (raw candidate -> record or skip reason).
    Scrolling and classification are shared.
    """

    platform: Platform

    def __init__(self, nav_timeout: float = 30.0, nav_retries: int = 2):
        self.nav_timeout = nav_timeout
        self.nav_retries = nav_retries

    def normalize_target(self, target: str) -> str:
        """Canonical form of ``target`` used for storage lookups and records."""
        return target.strip()

    @abstractmethod
    def target_url(self, target: str) -> str:
        """URL of the page to crawl for ``target``."""

    @abstractmethod
    async def collect(self, session: BrowserSession) -> List[Dict[str, Any]]:
        """Raw candidates currently rendered on the page."""

    @abstractmethod
    def build_record(self, raw: Dict[str, Any], target: str) -> Tuple[Optional[Record], Optional[str]]:
        """
        Turn a raw candidate into a record.

        Returns:
            ``(record, None)`` to classify it, ``(None, reason)`` to skip it
            and count it under ``reason``, or ``(record, tag)`` to classify
            it and, if it is new, also count it under ``tag``
        """

    async def open_target(self, session: BrowserSession, target: str) -> None:
        """Navigate the session to the target page."""
        await open_url(session.page, self.target_url(target),
                       timeout=self.nav_timeout, retries=self.nav_retries)

    async def process_viewport(self, session: BrowserSession, target: str,
                               persisted_ids: Set[str], job_local_ids: Set[str]) -> ViewportResult:
        result = ViewportResult()
        for raw in await self.collect(session):
            result.total_processed += 1
            record, skip_reason = self.build_record(raw, target)
            if record is None:
                result.skip(skip_reason or "invalid")
                continue
            decision = classify_candidate(record.id, persisted_ids, job_local_ids)
            if decision == JOB_LOCAL:
                result.job_local_duplicate_count += 1
            elif decision == PERSISTED:
                result.duplicate_count += 1
            else:
                result.accepted.append(record)
                if skip_reason:
                    result.skip(skip_reason)

        logger.debug(
            f"[{self.platform.value}] viewport: {result.total_processed} seen, "
            f"{len(result.accepted)} new, {result.duplicate_count} stored, "
            f"{result.job_local_duplicate_count} repeated"
        )
        return result

    async def trigger_scroll(self, session: BrowserSession) -> None:
        await scroll_by_viewport(session.page)

    async def current_scroll_offset(self, session: BrowserSession) -> int:
        return await scroll_offset(session.page)
