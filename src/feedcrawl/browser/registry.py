"""
Process-wide registry of browser pools, one per platform.
"""

import asyncio
from typing import Callable, Dict, Optional

from feedcrawl.browser.pool import BrowserResourcePool
from feedcrawl.browser.session import BrowserProfile, PlaywrightSessionFactory, SessionFactory
from feedcrawl.core.config import Config, get_config
from feedcrawl.core.exceptions import UnsupportedPlatformError
from feedcrawl.core.job_models import Platform, PoolStatus
from feedcrawl.core.logging import get_logger

logger = get_logger(__name__)


class PoolRegistry:
    """Maps each platform to its browser pool."""

    def __init__(self):
        self._pools: Dict[Platform, BrowserResourcePool] = {}

    def register(self, pool: BrowserResourcePool) -> BrowserResourcePool:
        if pool.platform in self._pools:
            raise ValueError(f"A pool is already registered for {pool.platform.value}")
        self._pools[pool.platform] = pool
        logger.debug(f"Registered {pool.platform.value} pool (max_size={pool.max_size})")
        return pool

    def get(self, platform: Platform) -> BrowserResourcePool:
        pool = self._pools.get(platform)
        if pool is None:
            raise UnsupportedPlatformError(getattr(platform, "value", str(platform)))
        return pool

    def get_or_create(self, platform: Platform,
                      builder: Callable[[], BrowserResourcePool]) -> BrowserResourcePool:
        """Return the platform's pool, building and registering it on first use."""
        pool = self._pools.get(platform)
        if pool is None:
            pool = self.register(builder())
        return pool

    def platforms(self):
        return list(self._pools)

    def status(self) -> Dict[str, PoolStatus]:
        return {platform.value: pool.status() for platform, pool in self._pools.items()}

    async def shutdown_all(self) -> None:
        """Shut down every pool. Errors in one pool do not stop the others."""
        pools = list(self._pools.values())
        results = await asyncio.gather(*(pool.shutdown() for pool in pools), return_exceptions=True)
        for pool, result in zip(pools, results):
            if isinstance(result, Exception):
                logger.error(f"Error shutting down {pool.platform.value} pool: {result}")
        self._pools.clear()


def build_default_registry(
    config: Optional[Config] = None,
    factory_builder: Optional[Callable[[Platform, Config], SessionFactory]] = None,
) -> PoolRegistry:
    """
    Build a registry with one pool per supported platform.

    Args:
        config: Application config (default: global config)
        factory_builder: Builds the session factory for a platform
            (default: PlaywrightSessionFactory with the platform's profile)
    """
    config = config or get_config()
    if factory_builder is None:
        def factory_builder(platform: Platform, cfg: Config) -> SessionFactory:
            return PlaywrightSessionFactory(BrowserProfile.from_config(platform, cfg))

    sizes = {
        Platform.TWITTER_LIST: config.twitter_pool_size,
        Platform.YOUTUBE_CHANNEL: config.youtube_pool_size,
    }
    registry = PoolRegistry()
    for platform, size in sizes.items():
        registry.register(BrowserResourcePool(
            platform=platform,
            factory=factory_builder(platform, config),
            max_size=size,
            wait_timeout=config.pool_wait_timeout,
        ))
    return registry


_registry: Optional[PoolRegistry] = None


def get_pool_registry() -> PoolRegistry:
    """Get the global pool registry, building it from config on first use."""
    global _registry
    if _registry is None:
        _registry = build_default_registry()
    return _registry


def set_pool_registry(registry: Optional[PoolRegistry]) -> None:
    """Replace the global pool registry (None resets it to lazy creation)."""
    global _registry
    _registry = registry
