"""
Browser sessions and per-platform session pools.
"""

from feedcrawl.browser.session import (
    BrowserSession,
    BrowserProfile,
    SessionFactory,
    SessionState,
    PlaywrightSessionFactory,
)
from feedcrawl.browser.pool import BrowserResourcePool
from feedcrawl.browser.registry import (
    PoolRegistry,
    build_default_registry,
    get_pool_registry,
    set_pool_registry,
)

__all__ = [
    "BrowserSession",
    "BrowserProfile",
    "SessionFactory",
    "SessionState",
    "PlaywrightSessionFactory",
    "BrowserResourcePool",
    "PoolRegistry",
    "build_default_registry",
    "get_pool_registry",
    "set_pool_registry",
]
