"""
Page navigation and scrolling helpers shared by the extractors.
"""

import random
from typing import Iterable, Optional

from feedcrawl.core.exceptions import NavigationError
from feedcrawl.core.logging import get_logger
from feedcrawl.crawler.scripts import SCROLL_JS, SCROLL_OFFSET_JS
from feedcrawl.utils.retry import RetryConfig, retry_async_with_backoff

logger = get_logger(__name__)

SCROLL_FACTOR = 1.5


async def open_url(page, url: str, timeout: float = 30.0, retries: int = 2,
                   settle_range=(1.2, 2.0)) -> None:
    """
    Navigate to ``url``, retrying with backoff.

    Args:
        page: Playwright page instance
        url: URL to open
        timeout: Navigation timeout in seconds
        retries: Extra attempts after the first failure
        settle_range: Random pause (seconds) after the DOM has loaded

    Raises:
        NavigationError: If every attempt fails
    """
    async def _goto():
        logger.info(f"[nav] {url}")
        await page.goto(url, wait_until="domcontentloaded", timeout=timeout * 1000)

    config = RetryConfig(max_retries=max(retries, 0), base_delay=2.0, max_delay=8.0)
    try:
        await retry_async_with_backoff(_goto, config=config)
    except Exception as e:
        raise NavigationError(url, str(e)) from e

    await page.wait_for_timeout(random.uniform(*settle_range) * 1000)


async def wait_for_any(page, selectors: Iterable[str], timeout: float = 10.0) -> Optional[str]:
    """
    Wait for the first of several selectors to appear.

    Returns:
        The selector that matched, or None if none appeared
    """
    for selector in selectors:
        try:
            await page.wait_for_selector(selector, timeout=timeout * 1000)
            logger.debug(f"[nav] Found {selector}")
            return selector
        except Exception:
            logger.debug(f"[nav] Selector {selector} not found, trying next")
    return None


async def scroll_by_viewport(page, factor: float = SCROLL_FACTOR) -> None:
    """Scroll down by ``factor`` viewport heights."""
    await page.evaluate(SCROLL_JS, factor)


async def scroll_offset(page) -> int:
    """Current vertical scroll position in pixels."""
    return int(await page.evaluate(SCROLL_OFFSET_JS) or 0)


