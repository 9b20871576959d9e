"""
Crawler module for feedcrawl.

This module handles page extraction:
- Extractor interface and per-candidate deduplication
- Twitter list and YouTube channel extractors
- The scroll-and-extract loop and its stop conditions
- Per-platform drivers
"""

from feedcrawl.crawler.extractor import Extractor, ViewportResult, classify_candidate
from feedcrawl.crawler.loop import ExtractionLoop, LoopSettings, LoopOutcome
from feedcrawl.crawler.twitter import TwitterListExtractor
from feedcrawl.crawler.youtube import YouTubeChannelExtractor
from feedcrawl.crawler.drivers import PlatformDriver, build_drivers

__all__ = [
    "Extractor",
    "ViewportResult",
    "classify_candidate",
    "ExtractionLoop",
    "LoopSettings",
    "LoopOutcome",
    "TwitterListExtractor",
    "YouTubeChannelExtractor",
    "PlatformDriver",
    "build_drivers",
]
