"""
Pytest Configuration and Shared Fixtures

This file contains pytest configuration and fixtures that are available
to all tests in the test suite. Browser and page access is replaced with
in-process fakes so the engine can be exercised without Playwright.
"""

import asyncio
import json
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set

import pytest

from feedcrawl.browser.pool import BrowserResourcePool
from feedcrawl.browser.session import BrowserSession, SessionFactory
from feedcrawl.core.config import Config
from feedcrawl.core.error_logger import ErrorLogger, set_error_logger
from feedcrawl.core.job_models import JobRequest, Platform
from feedcrawl.crawler.drivers import PlatformDriver
from feedcrawl.crawler.extractor import Extractor
from feedcrawl.crawler.loop import LoopSettings
from feedcrawl.db.models import TweetRecord
from feedcrawl.db.storage import InMemoryStorage


# ============================================================================
# Fakes
# ============================================================================

class FakePage:
    """Stands in for a Playwright page; extractors below never touch it."""

    def __init__(self):
        self.closed = False


class FakeSessionFactory(SessionFactory):
    """
    Creates BrowserSessions backed by FakePage.

    Health is read from ``session.healthy`` unless the session id is in
    ``unhealthy``.
    """

    def __init__(self, platform: Platform = Platform.TWITTER_LIST, create_delay: float = 0.0):
        self.platform = platform
        self.create_delay = create_delay
        self.created: List[BrowserSession] = []
        self.closed: List[BrowserSession] = []
        self.unhealthy: Set[str] = set()
        self.fail_next_create = 0
        self.health_checks = 0
        self.stopped = False

    async def create(self) -> BrowserSession:
        if self.create_delay:
            await asyncio.sleep(self.create_delay)
        if self.fail_next_create > 0:
            self.fail_next_create -= 1
            raise RuntimeError("browser launch failed")
        session = BrowserSession(platform=self.platform, page=FakePage())
        self.created.append(session)
        return session

    async def close(self, session: BrowserSession) -> None:
        session.page.closed = True
        self.closed.append(session)

    async def health_check(self, session: BrowserSession) -> bool:
        self.health_checks += 1
        return session.healthy and session.session_id not in self.unhealthy

    async def stop(self) -> None:
        self.stopped = True


class ScriptedExtractor(Extractor):
    """
    Extractor that replays a fixed list of pages.

    Each page is a list of record ids. Pages past the end of the script are
    empty. Every scroll moves the page by ``scroll_step`` pixels.

    Args:
        pages: Ids shown on each successive viewport
        scroll_step: Pixels added to the offset by each scroll
        collect_errors: 1-based collect calls that raise RuntimeError
        open_failures: Number of open_target calls that fail before one succeeds
        hang: collect() never returns (until cancelled)
    """

    platform = Platform.TWITTER_LIST

    def __init__(self, pages: Optional[Sequence[Sequence[str]]] = None, scroll_step: int = 1000,
                 collect_errors: Iterable[int] = (), open_failures: int = 0, hang: bool = False):
        super().__init__(nav_timeout=1.0, nav_retries=0)
        self.pages = [list(page) for page in (pages or [])]
        self.scroll_step = scroll_step
        self.collect_errors = set(collect_errors)
        self.open_failures = open_failures
        self.hang = hang
        self.offset = 0
        self.collect_calls = 0
        self.open_calls = 0
        self.scrolls = 0

    def target_url(self, target: str) -> str:
        return f"https://example.test/lists/{target}"

    async def open_target(self, session: BrowserSession, target: str) -> None:
        self.open_calls += 1
        if self.open_calls <= self.open_failures:
            raise RuntimeError(f"navigation failed ({self.open_calls})")

    async def collect(self, session: BrowserSession) -> List[Dict[str, Any]]:
        self.collect_calls += 1
        if self.hang:
            await asyncio.Event().wait()
        if self.collect_calls in self.collect_errors:
            raise RuntimeError(f"element not found on call {self.collect_calls}")
        index = self.collect_calls - 1
        page = self.pages[index] if index < len(self.pages) else []
        return [{"id": record_id} for record_id in page]

    def build_record(self, raw: Dict[str, Any], target: str):
        return TweetRecord(id=raw["id"], target=target, text=f"tweet {raw['id']}"), None

    async def trigger_scroll(self, session: BrowserSession) -> None:
        self.scrolls += 1
        self.offset += self.scroll_step

    async def current_scroll_offset(self, session: BrowserSession) -> int:
        return self.offset


class SlowTerminalStorage(InMemoryStorage):
    """InMemoryStorage whose terminal status writes take a while, like a remote database."""

    def __init__(self, delay: float = 0.05):
        super().__init__()
        self.delay = delay

    async def update_job_status(self, job_id, status, result=None):
        if status.is_terminal:
            await asyncio.sleep(self.delay)
        await super().update_job_status(job_id, status, result)


class RecordingSleep:
    """Awaitable sleep that records requested delays and yields once."""

    def __init__(self):
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        await asyncio.sleep(0)


def make_loop_settings(**overrides) -> LoopSettings:
    values = {
        "target_count": 100,
        "duplicate_stop_count": 2,
        "max_iterations": 10,
        "min_scroll_delta": 100,
        "stall_limit": 3,
        "wait_time": 0.0,
        "random_delay_enabled": False,
        "health_check_interval": 1,
    }
    values.update(overrides)
    return LoopSettings(**values)


def make_driver(extractor: Extractor, task_timeout: float = 5.0, **loop_overrides) -> PlatformDriver:
    return PlatformDriver(
        platform=extractor.platform,
        extractor=extractor,
        loop_defaults=make_loop_settings(**loop_overrides),
        task_timeout=task_timeout,
    )


def seed_ids(storage: InMemoryStorage, target: str, ids: Iterable[str]) -> None:
    """Store records as if an earlier job had found them."""
    storage.seed_records([TweetRecord(id=record_id, target=target) for record_id in ids])


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture(autouse=True)
def file_error_logger(tmp_path: Path):
    """Route structured error records to a temporary directory."""
    error_logger = ErrorLogger(fallback_dir=tmp_path / "errors", use_database=False)
    set_error_logger(error_logger)
    yield error_logger
    set_error_logger(None)


@pytest.fixture
def error_records(tmp_path: Path):
    """Read back the structured error records written during the test."""
    def _read() -> List[Dict[str, Any]]:
        records = []
        for path in sorted((tmp_path / "errors").glob("errors_*.jsonl")):
            with open(path, encoding="utf-8") as f:
                records.extend(json.loads(line) for line in f if line.strip())
        return records
    return _read


@pytest.fixture
def app_config(tmp_path: Path) -> Config:
    """Config from defaults and the process environment, ignoring configs/.env."""
    return Config(env_path=tmp_path / "test.env")


@pytest.fixture
def storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture
def factory() -> FakeSessionFactory:
    return FakeSessionFactory()


@pytest.fixture
def pool(factory: FakeSessionFactory) -> BrowserResourcePool:
    return BrowserResourcePool(Platform.TWITTER_LIST, factory, max_size=2, wait_timeout=1.0)


@pytest.fixture
def request_factory():
    """Build Twitter list job requests."""
    def _make(target: str = "1234567890", **kwargs) -> JobRequest:
        return JobRequest(platform=Platform.TWITTER_LIST, target=target, **kwargs)
    return _make


# ============================================================================
# Test Markers
# ============================================================================

def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )
