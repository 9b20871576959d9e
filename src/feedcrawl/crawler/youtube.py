"""
YouTube channel videos-tab extractor.
"""

from typing import Any, Dict, List, Optional, Tuple

from feedcrawl.browser.session import BrowserSession
from feedcrawl.core.exceptions import NavigationError
from feedcrawl.core.job_models import Platform
from feedcrawl.core.logging import get_logger
from feedcrawl.crawler.extractor import Extractor
from feedcrawl.crawler.navigation import wait_for_any
from feedcrawl.crawler.parsers import (
    absolute_url,
    normalize_channel_handle,
    video_id_from_class,
    video_id_from_url,
)
from feedcrawl.crawler.scripts import COLLECT_VIDEOS_JS
from feedcrawl.db.models import Record, VideoRecord

logger = get_logger(__name__)

BASE_URL = "https://www.youtube.com"

GRID_SELECTORS = [
    "ytd-rich-grid-renderer #contents",
    "ytd-rich-item-renderer",
    "ytd-two-column-browse-results-renderer",
    'ytd-browse[page-subtype="channels"]',
]
CONSENT_BUTTON = 'button[aria-label*="Accept all"], button[aria-label*="Reject all"]'


class YouTubeChannelExtractor(Extractor):
    """Reads video tiles from ``https://www.youtube.com/@<handle>/videos``."""

    platform = Platform.YOUTUBE_CHANNEL

    def normalize_target(self, target: str) -> str:
        return normalize_channel_handle(target)

    def target_url(self, target: str) -> str:
        return f"{BASE_URL}/@{normalize_channel_handle(target)}/videos"

    async def open_target(self, session: BrowserSession, target: str) -> None:
        await super().open_target(session, target)
        page = session.page

        consent = await page.query_selector(CONSENT_BUTTON)
        if consent:
            logger.info("[youtube] Dismissing consent dialog")
            await consent.click()
            await page.wait_for_timeout(1000)

        found = await wait_for_any(page, GRID_SELECTORS, timeout=self.nav_timeout / 3)
        if found is None:
            raise NavigationError(self.target_url(target), "video grid did not load")
        logger.info(f"[youtube] Video grid for @{normalize_channel_handle(target)} loaded ({found})")

    async def collect(self, session: BrowserSession) -> List[Dict[str, Any]]:
        return await session.page.evaluate(COLLECT_VIDEOS_JS) or []

    def build_record(self, raw: Dict[str, Any], target: str) -> Tuple[Optional[Record], Optional[str]]:
        href = raw.get("href") or ""
        if "/shorts/" in href:
            return None, "shorts"

        video_id = video_id_from_class(raw.get("content_class")) or video_id_from_url(href)
        if not video_id:
            return None, "no_id"

        title = (raw.get("title") or "").strip()
        if not title:
            return None, "no_title"

        record = VideoRecord(
            id=video_id,
            target=target,
            url=absolute_url(BASE_URL, href) or f"{BASE_URL}/watch?v={video_id}",
            title=title,
            text=title,
            author=target,
            published_raw=raw.get("published") or None,
            duration=raw.get("duration") or None,
            view_count_text=raw.get("views") or None,
            thumbnail_url=raw.get("thumbnail") or None,
        )
        return record, None
