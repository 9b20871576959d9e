"""
Browser sessions and the factories that create them.

A ``BrowserSession`` is one leasable Playwright browser + page. Sessions are
created and destroyed only by a ``SessionFactory`` on behalf of a pool.
"""

import itertools
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from feedcrawl.core.config import Config
from feedcrawl.core.job_models import Platform
from feedcrawl.core.logging import get_logger

logger = get_logger(__name__)

_session_ids = itertools.count(1)


class SessionState(str, Enum):
    """Lifecycle state of a browser session."""
    IDLE = "idle"
    LEASED = "leased"
    RELEASING = "releasing"
    CLOSED = "closed"


@dataclass
class BrowserSession:
    """
    Wrapper around a single browser, context and page.

    ``healthy`` is flipped to False by page crash/close and browser
    disconnect events; the pool reads it through the factory health check.
    """
    platform: Platform
    page: Any = None
    context: Any = None
    browser: Any = None
    session_id: str = field(default_factory=lambda: f"s{next(_session_ids)}")
    state: SessionState = SessionState.IDLE
    healthy: bool = True
    lease_count: int = 0
    created_at: float = field(default_factory=time.monotonic)

    def mark_unhealthy(self, reason: str = "") -> None:
        if self.healthy:
            logger.warning(f"Session {self.session_id} marked unhealthy{': ' + reason if reason else ''}")
        self.healthy = False

    @property
    def is_closed(self) -> bool:
        return self.state == SessionState.CLOSED

    def __hash__(self) -> int:
        return hash(self.session_id)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, BrowserSession) and other.session_id == self.session_id


@dataclass
class BrowserProfile:
    """Launch settings for one platform's browsers."""
    platform: Platform
    headless: bool = True
    nav_timeout: float = 30.0
    viewport: Dict[str, int] = field(default_factory=lambda: {"width": 1280, "height": 720})
    user_agent: Optional[str] = None
    user_data_dir: Optional[Path] = None
    block_resource_types: List[str] = field(default_factory=list)
    extra_headers: Dict[str, str] = field(default_factory=dict)
    health_check_enabled: bool = True
    launch_args: List[str] = field(default_factory=lambda: [
        "--no-sandbox",
        "--disable-setuid-sandbox",
        "--disable-dev-shm-usage",
        "--disable-blink-features=AutomationControlled",
    ])

    @classmethod
    def from_config(cls, platform: Platform, config: Config) -> "BrowserProfile":
        """Build the platform's profile from application config."""
        profile = cls(
            platform=platform,
            headless=config.headless,
            nav_timeout=config.nav_timeout,
            viewport={"width": config.viewport_width, "height": config.viewport_height},
            user_agent=config.user_agent,
            user_data_dir=config.user_data_dir / platform.value,
            block_resource_types=list(config.block_resource_types),
            health_check_enabled=config.browser_health_check,
        )
        if platform == Platform.YOUTUBE_CHANNEL:
            # YouTube needs a large viewport to lay out the video grid and loads slowly
            profile.viewport = {"width": 1920, "height": 1080}
            profile.nav_timeout = config.nav_timeout * 1.5
            profile.extra_headers = {"Accept-Language": "en-US,en;q=0.9"}
        return profile


class SessionFactory(ABC):
    """Creates, checks and destroys sessions for one platform's pool."""

    @abstractmethod
    async def create(self) -> BrowserSession:
        """Launch a new session."""

    @abstractmethod
    async def close(self, session: BrowserSession) -> None:
        """Destroy a session. Must tolerate already-dead browsers."""

    @abstractmethod
    async def health_check(self, session: BrowserSession) -> bool:
        """Return True if the session can still drive its page."""

    async def stop(self) -> None:
        """Release factory-wide resources once its pool is shut down."""


class PlaywrightSessionFactory(SessionFactory):
    """
    Launches one Chromium browser per session with Playwright.

    A single Playwright driver is started lazily and shared by every
    session the factory creates.
    """

    def __init__(self, profile: BrowserProfile):
        self.profile = profile
        self._playwright = None

    async def _driver(self):
        if self._playwright is None:
            from playwright.async_api import async_playwright

            self._playwright = await async_playwright().start()
        return self._playwright

    async def create(self) -> BrowserSession:
        profile = self.profile
        playwright = await self._driver()

        logger.info(
            f"Launching {profile.platform.value} browser "
            f"(headless={profile.headless}, viewport={profile.viewport})"
        )
        browser = await playwright.chromium.launch(headless=profile.headless, args=profile.launch_args)
        session = BrowserSession(platform=profile.platform, browser=browser)
        try:
            context_options: Dict[str, Any] = {"viewport": profile.viewport}
            if profile.user_agent:
                context_options["user_agent"] = profile.user_agent
            storage_state = self._storage_state_path()
            if storage_state is not None and storage_state.exists():
                context_options["storage_state"] = str(storage_state)

            session.context = await browser.new_context(**context_options)
            session.page = await session.context.new_page()
            session.page.set_default_timeout(profile.nav_timeout * 1000)

            if profile.extra_headers:
                await session.page.set_extra_http_headers(profile.extra_headers)
            if profile.block_resource_types:
                await session.page.route("**/*", self._block_route)

            self._watch(session)
        except Exception:
            await self.close(session)
            raise

        logger.info(f"Browser session {session.session_id} ready for {profile.platform.value}")
        return session

    def _storage_state_path(self) -> Optional[Path]:
        if self.profile.user_data_dir is None:
            return None
        return Path(self.profile.user_data_dir) / "storage-state.json"

    async def _block_route(self, route) -> None:
        if route.request.resource_type in self.profile.block_resource_types:
            await route.abort()
        else:
            await route.continue_()

    def _watch(self, session: BrowserSession) -> None:
        """Flip the health flag when the page or browser dies."""
        session.page.on("crash", lambda *_: session.mark_unhealthy("page crashed"))
        session.page.on("close", lambda *_: session.mark_unhealthy("page closed"))
        session.context.on("close", lambda *_: session.mark_unhealthy("context closed"))
        session.browser.on("disconnected", lambda *_: session.mark_unhealthy("browser disconnected"))

    async def close(self, session: BrowserSession) -> None:
        """Close page, context and browser, saving login state first."""
        storage_state = self._storage_state_path()
        if session.context is not None and storage_state is not None and session.healthy:
            try:
                storage_state.parent.mkdir(parents=True, exist_ok=True)
                await session.context.storage_state(path=str(storage_state))
            except Exception as e:
                logger.debug(f"Session {session.session_id}: could not save storage state: {e}")

        for name in ("page", "context", "browser"):
            handle = getattr(session, name)
            if handle is None:
                continue
            try:
                await handle.close()
            except Exception as e:
                logger.debug(f"Session {session.session_id}: closing {name} failed: {e}")
            setattr(session, name, None)

    async def health_check(self, session: BrowserSession) -> bool:
        if not self.profile.health_check_enabled:
            return True
        if session.browser is None or session.page is None or not session.healthy:
            return False
        try:
            await session.page.evaluate("() => document.title")
        except Exception as e:
            session.mark_unhealthy(f"health check failed: {e}")
            return False
        return session.browser.is_connected()

    async def stop(self) -> None:
        """Stop the shared Playwright driver."""
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None
