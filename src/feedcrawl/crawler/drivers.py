"""
Per-platform wiring of extractor, loop thresholds and job timeout.

One generic executor and loop serve every platform; a PlatformDriver
carries the parts that differ.
"""

from dataclasses import dataclass, replace
from typing import Dict, Optional

from feedcrawl.core.config import Config, get_config
from feedcrawl.core.job_models import JobRequest, Platform
from feedcrawl.crawler.extractor import Extractor
from feedcrawl.crawler.loop import LoopSettings
from feedcrawl.crawler.twitter import TwitterListExtractor
from feedcrawl.crawler.youtube import YouTubeChannelExtractor


@dataclass
class PlatformDriver:
    platform: Platform
    extractor: Extractor
    loop_defaults: LoopSettings
    task_timeout: float

    def loop_settings(self, request: JobRequest) -> LoopSettings:
        """Platform defaults with the request's overrides applied."""
        overrides = {}
        if request.max_items is not None:
            overrides["target_count"] = request.max_items
        if request.duplicate_stop_count is not None:
            overrides["duplicate_stop_count"] = request.duplicate_stop_count
        return replace(self.loop_defaults, **overrides)


def _shared_loop_settings(config: Config) -> dict:
    return {
        "min_scroll_delta": config.scroll_min_delta,
        "stall_limit": config.scroll_stall_limit,
        "random_delay_enabled": config.random_delay_enabled,
        "random_delay_min": config.random_delay_min,
        "random_delay_max": config.random_delay_max,
    }


def build_drivers(config: Optional[Config] = None) -> Dict[Platform, PlatformDriver]:
    """Drivers for every supported platform, from config."""
    config = config or get_config()
    shared = _shared_loop_settings(config)

    twitter = PlatformDriver(
        platform=Platform.TWITTER_LIST,
        extractor=TwitterListExtractor(nav_timeout=config.nav_timeout, nav_retries=config.nav_retries),
        loop_defaults=LoopSettings(
            target_count=config.twitter_max_items,
            duplicate_stop_count=config.twitter_duplicate_stop,
            max_iterations=config.twitter_max_scrolls,
            wait_time=config.twitter_wait,
            health_check_interval=config.twitter_health_check_interval,
            **shared,
        ),
        task_timeout=config.task_timeout,
    )

    # channel pages load slower, give them more time and navigation headroom
    youtube = PlatformDriver(
        platform=Platform.YOUTUBE_CHANNEL,
        extractor=YouTubeChannelExtractor(
            nav_timeout=config.nav_timeout * config.youtube_timeout_factor,
            nav_retries=config.nav_retries,
        ),
        loop_defaults=LoopSettings(
            target_count=config.youtube_max_items,
            duplicate_stop_count=config.youtube_duplicate_stop,
            max_iterations=config.youtube_max_scrolls,
            wait_time=config.youtube_wait,
            health_check_interval=config.youtube_health_check_interval,
            **shared,
        ),
        task_timeout=config.task_timeout * config.youtube_timeout_factor,
    )

    return {driver.platform: driver for driver in (twitter, youtube)}
