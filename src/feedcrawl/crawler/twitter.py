"""
Twitter/X list timeline extractor.
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
    normalize_list_id,
    parse_count,
    tweet_id_from_url,
    username_from_url,
)
from feedcrawl.crawler.scripts import COLLECT_TWEETS_JS
from feedcrawl.db.models import Record, TweetRecord

logger = get_logger(__name__)

BASE_URL = "https://x.com"

# Tried in order until one appears
TIMELINE_SELECTORS = [
    'div[aria-label="Timeline: List"]',
    '[data-testid="primaryColumn"]',
    'article[data-testid="tweet"]',
    'div[data-testid="cellInnerDiv"]',
]
LOGIN_SELECTORS = '[data-testid="loginButton"], a[href="/login"], input[name="text"]'

REPOST_MARKERS = ("reposted", "retweeted")


class TwitterListExtractor(Extractor):
    """
    Reads tweets from ``https://x.com/i/lists/<id>``.

    Replies are skipped and counted under ``replies``. Retweets are kept,
    flagged ``is_retweet``, and counted under ``retweets``.
    """

    platform = Platform.TWITTER_LIST

    def normalize_target(self, target: str) -> str:
        return normalize_list_id(target)

    def target_url(self, target: str) -> str:
        return f"{BASE_URL}/i/lists/{normalize_list_id(target)}"

    async def open_target(self, session: BrowserSession, target: str) -> None:
        await super().open_target(session, target)
        page = session.page

        found = await wait_for_any(page, TIMELINE_SELECTORS, timeout=self.nav_timeout / 3)
        if found is None:
            if await page.query_selector(LOGIN_SELECTORS):
                raise NavigationError(self.target_url(target), "redirected to login, session state has expired")
            raise NavigationError(self.target_url(target), "list timeline did not load")
        logger.info(f"[twitter] Timeline for list {target} loaded ({found})")

    async def collect(self, session: BrowserSession) -> List[Dict[str, Any]]:
        return await session.page.evaluate(COLLECT_TWEETS_JS) or []

    def build_record(self, raw: Dict[str, Any], target: str) -> Tuple[Optional[Record], Optional[str]]:
        status_href = raw.get("status_href") or ""
        tweet_id = tweet_id_from_url(status_href)
        if not tweet_id:
            return None, "no_id"
        if raw.get("is_reply"):
            return None, "replies"

        social = (raw.get("social_context") or "").lower()
        is_retweet = any(marker in social for marker in REPOST_MARKERS)

        record = TweetRecord(
            id=tweet_id,
            target=target,
            url=absolute_url(BASE_URL, status_href),
            text=raw.get("text") or None,
            author=raw.get("author") or None,
            username=username_from_url(status_href) or (raw.get("user_href") or "").strip("/") or None,
            published_raw=raw.get("datetime"),
            is_retweet=is_retweet,
            reply_count=parse_count(raw.get("reply_count")),
            retweet_count=parse_count(raw.get("retweet_count")),
            like_count=parse_count(raw.get("like_count")),
            image_urls=list(raw.get("images") or []),
        )
        return record, ("retweets" if is_retweet else None)
