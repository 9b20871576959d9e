"""
Bounded pool of browser sessions for one platform.

Sessions are created lazily up to ``max_size``. When every session is
leased, callers wait in FIFO order until a session is released or the
wait timeout expires.

Invariant: ``len(sessions) + sessions being created <= max_size``.
"""

import asyncio
from collections import deque
from typing import Deque, Dict, List, Optional

from feedcrawl.browser.session import BrowserSession, SessionFactory, SessionState
from feedcrawl.core.error_logger import get_error_logger
from feedcrawl.core.error_models import ErrorComponent, ErrorStage
from feedcrawl.core.exceptions import PoolClosedError, PoolTimeoutError
from feedcrawl.core.job_models import Platform, PoolStatus
from feedcrawl.core.logging import get_logger

logger = get_logger(__name__)


class BrowserResourcePool:
    """
    Leases browser sessions for one platform.

    A waiter is woken with either a released session or a reserved creation
    slot (``None``) when a session was evicted and capacity freed up.

    Example:
        >>> pool = BrowserResourcePool(Platform.TWITTER_LIST, factory, max_size=3)
        >>> session = await pool.acquire()
        >>> try:
        ...     await session.page.goto(url)
        ... finally:
        ...     await pool.release(session)
    """

    def __init__(self, platform: Platform, factory: SessionFactory, max_size: int,
                 wait_timeout: float = 30.0):
        if max_size <= 0:
            raise ValueError("max_size must be positive")
        if wait_timeout <= 0:
            raise ValueError("wait_timeout must be positive")

        self.platform = platform
        self.factory = factory
        self.max_size = max_size
        self.wait_timeout = wait_timeout

        self._sessions: List[BrowserSession] = []
        self._idle: Deque[BrowserSession] = deque()
        self._waiters: Deque[asyncio.Future] = deque()
        self._creating = 0
        self._lock = asyncio.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _has_capacity(self) -> bool:
        return len(self._sessions) + self._creating < self.max_size

    def _lease(self, session: BrowserSession) -> BrowserSession:
        session.state = SessionState.LEASED
        session.lease_count += 1
        return session

    async def acquire(self, timeout: Optional[float] = None) -> BrowserSession:
        """
        Lease a session, creating one if the pool has room.

        Raises:
            PoolTimeoutError: No session became available within ``timeout``
            PoolClosedError: The pool is shut down
        """
        timeout = self.wait_timeout if timeout is None else timeout
        stale: List[BrowserSession] = []
        waiter: Optional[asyncio.Future] = None
        session: Optional[BrowserSession] = None

        async with self._lock:
            if self._closed:
                raise PoolClosedError(self.platform.value)

            while self._idle:
                candidate = self._idle.popleft()
                if candidate.healthy:
                    session = self._lease(candidate)
                    break
                # died while idle
                self._sessions.remove(candidate)
                candidate.state = SessionState.CLOSED
                stale.append(candidate)

            if session is None:
                if self._has_capacity():
                    self._creating += 1
                else:
                    waiter = asyncio.get_running_loop().create_future()
                    self._waiters.append(waiter)

        for dead in stale:
            await self._close_quietly(dead)

        if session is not None:
            logger.debug(f"[{self.platform.value}] Reusing session {session.session_id}")
            return session
        if waiter is None:
            return await self._create_reserved()
        return await self._wait(waiter, timeout)

    async def _wait(self, waiter: asyncio.Future, timeout: float) -> BrowserSession:
        logger.debug(f"[{self.platform.value}] Pool exhausted, waiting up to {timeout:.1f}s")
        try:
            granted = await asyncio.wait_for(waiter, timeout)
        except asyncio.TimeoutError:
            delivered = self._take_delivery(waiter)
            if delivered is _NOTHING:
                logger.warning(f"[{self.platform.value}] Timed out waiting for a browser session")
                raise PoolTimeoutError(self.platform.value, timeout) from None
            granted = delivered
        except asyncio.CancelledError:
            delivered = self._take_delivery(waiter)
            if delivered is not _NOTHING:
                await self._return_delivery(delivered)
            raise

        if granted is None:
            return await self._create_reserved()
        return granted

    def _take_delivery(self, waiter: asyncio.Future):
        """Result handed to a waiter that gave up, or _NOTHING."""
        try:
            self._waiters.remove(waiter)
        except ValueError:
            pass
        if waiter.done() and not waiter.cancelled() and waiter.exception() is None:
            return waiter.result()
        return _NOTHING

    async def _return_delivery(self, delivered: Optional[BrowserSession]) -> None:
        async with self._lock:
            if delivered is None:
                self._creating -= 1
                self._grant_slots()
                return
            delivered.lease_count -= 1
            if not self._closed:
                self._hand_off(delivered)
                return
        await self.evict(delivered)

    async def _create_reserved(self) -> BrowserSession:
        """Create a session in a slot already counted in ``_creating``."""
        try:
            session = await self.factory.create()
        except BaseException as e:
            async with self._lock:
                self._creating -= 1
                self._grant_slots()
            if isinstance(e, Exception):
                logger.error(f"[{self.platform.value}] Failed to create browser session: {e}")
                get_error_logger().log_exception(
                    e,
                    component=ErrorComponent.POOL,
                    stage=ErrorStage.CREATE_SESSION,
                    platform=self.platform.value,
                )
            raise

        async with self._lock:
            self._creating -= 1
            if not self._closed:
                self._sessions.append(session)
                logger.info(
                    f"[{self.platform.value}] Created session {session.session_id} "
                    f"({len(self._sessions)}/{self.max_size})"
                )
                return self._lease(session)

        session.state = SessionState.CLOSED
        await self._close_quietly(session)
        raise PoolClosedError(self.platform.value)

    def _hand_off(self, session: BrowserSession) -> None:
        """Give a healthy session to the oldest live waiter or park it. Lock held."""
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                self._lease(session)
                waiter.set_result(session)
                return
        session.state = SessionState.IDLE
        self._idle.append(session)

    def _grant_slots(self) -> None:
        """Wake waiters with creation slots while capacity allows. Lock held."""
        while self._waiters and self._has_capacity():
            waiter = self._waiters.popleft()
            if not waiter.done():
                self._creating += 1
                waiter.set_result(None)

    async def release(self, session: BrowserSession) -> None:
        """
        Return a leased session.

        The session is health checked; a healthy one goes to the next waiter
        or back to idle, an unhealthy one is evicted. Releasing a session that
        is already released or closed does nothing.
        """
        if session.state in (SessionState.CLOSED, SessionState.IDLE, SessionState.RELEASING):
            return

        async with self._lock:
            if session not in self._sessions:
                raise ValueError(f"Session {session.session_id} does not belong to this pool")
            session.state = SessionState.RELEASING

        healthy = await self._check(session)
        if not healthy:
            logger.warning(f"[{self.platform.value}] Session {session.session_id} unhealthy on release, evicting")
            await self.evict(session)
            return

        async with self._lock:
            if session.state != SessionState.RELEASING:
                return
            if not self._closed:
                self._hand_off(session)
                return
            if session in self._sessions:
                self._sessions.remove(session)
            session.state = SessionState.CLOSED
        await self._close_quietly(session)

    async def evict(self, session: BrowserSession) -> None:
        """Remove a session from the pool and close it."""
        async with self._lock:
            if session.is_closed:
                return
            if session in self._sessions:
                self._sessions.remove(session)
            if session in self._idle:
                self._idle.remove(session)
            session.state = SessionState.CLOSED

        logger.info(f"[{self.platform.value}] Evicting session {session.session_id}")
        await self._close_quietly(session)

        async with self._lock:
            if not self._closed:
                self._grant_slots()

    async def _check(self, session: BrowserSession) -> bool:
        if not session.healthy:
            return False
        try:
            return bool(await self.factory.health_check(session))
        except Exception as e:
            logger.warning(f"[{self.platform.value}] Health check raised for {session.session_id}: {e}")
            session.mark_unhealthy(str(e))
            return False

    async def health_check_all(self) -> Dict[str, int]:
        """
        Check every idle session and evict the unhealthy ones.

        Returns:
            Dict with ``healthy`` and ``removed`` counts
        """
        async with self._lock:
            candidates = list(self._idle)

        healthy, removed = 0, 0
        for session in candidates:
            if await self._check(session):
                healthy += 1
                continue
            async with self._lock:
                # may have been leased while it was being checked
                if session not in self._idle:
                    continue
            await self.evict(session)
            removed += 1

        if removed:
            logger.info(f"[{self.platform.value}] Health sweep removed {removed} session(s)")
        return {"healthy": healthy, "removed": removed}

    async def shutdown(self) -> None:
        """Fail pending waiters and close every session, leased or idle."""
        async with self._lock:
            if self._closed:
                return
            self._closed = True
            while self._waiters:
                waiter = self._waiters.popleft()
                if not waiter.done():
                    waiter.set_exception(PoolClosedError(self.platform.value))
            sessions = list(self._sessions)
            self._sessions.clear()
            self._idle.clear()
            for session in sessions:
                session.state = SessionState.CLOSED

        logger.info(f"[{self.platform.value}] Shutting down pool ({len(sessions)} session(s))")
        results = await asyncio.gather(
            *(self.factory.close(session) for session in sessions), return_exceptions=True
        )
        for session, result in zip(sessions, results):
            if isinstance(result, Exception):
                logger.error(f"[{self.platform.value}] Error closing session {session.session_id}: {result}")
                get_error_logger().log_exception(
                    result,
                    component=ErrorComponent.POOL,
                    stage=ErrorStage.POOL_SHUTDOWN,
                    platform=self.platform.value,
                )

        try:
            await self.factory.stop()
        except Exception as e:
            logger.error(f"[{self.platform.value}] Error stopping session factory: {e}")

    async def _close_quietly(self, session: BrowserSession) -> None:
        try:
            await self.factory.close(session)
        except Exception as e:
            logger.warning(f"[{self.platform.value}] Error closing session {session.session_id}: {e}")
            get_error_logger().log_exception(
                e,
                component=ErrorComponent.POOL,
                stage=ErrorStage.CLOSE_SESSION,
                platform=self.platform.value,
            )

    def status(self) -> PoolStatus:
        """Current occupancy of the pool."""
        total = len(self._sessions)
        idle = len(self._idle)
        return PoolStatus(
            platform=self.platform,
            total=total,
            idle=idle,
            leased=total - idle,
            waiting=sum(1 for waiter in self._waiters if not waiter.done()),
            max_size=self.max_size,
            closed=self._closed,
        )


_NOTHING = object()
