"""
Parsing helpers for values scraped from timeline and channel pages.

All functions are pure and never raise on malformed input.
"""

import re
from typing import Optional

TWEET_ID_RE = re.compile(r"/status/(\d+)")
VIDEO_ID_PATTERNS = (
    re.compile(r"[?&]v=([a-zA-Z0-9_-]{11})"),
    re.compile(r"/shorts/([a-zA-Z0-9_-]{11})"),
    re.compile(r"/embed/([a-zA-Z0-9_-]{11})"),
)
CONTENT_ID_RE = re.compile(r"content-id-([a-zA-Z0-9_-]{11})")
LIST_ID_RE = re.compile(r"/lists/(\d+)")

_SUFFIXES = {"k": 1_000, "m": 1_000_000, "b": 1_000_000_000}


def parse_count(text: Optional[str]) -> int:
    """
    Parse an abbreviated engagement or view count.

    Example:
        >>> parse_count("1.2K")
        1200
        >>> parse_count("3,456 views")
        3456
        >>> parse_count("")
        0
    """
    if not text:
        return 0
    cleaned = text.lower().replace(",", "")
    cleaned = re.sub(r"\s*(views?|watching)\s*", "", cleaned).strip()
    match = re.match(r"^(\d+(?:\.\d+)?)\s*([kmb])?", cleaned)
    if not match:
        return 0
    number, suffix = match.groups()
    value = float(number) * _SUFFIXES.get(suffix or "", 1)
    return int(round(value))


def tweet_id_from_url(url: Optional[str]) -> Optional[str]:
    """
    Extract the numeric tweet id from a status link.

    Example:
        >>> tweet_id_from_url("/jack/status/20")
        '20'
    """
    if not url:
        return None
    match = TWEET_ID_RE.search(url)
    return match.group(1) if match else None


def username_from_url(url: Optional[str]) -> Optional[str]:
    """
    Author handle from a status link ("/jack/status/20" -> "jack").
    """
    if not url:
        return None
    path = re.sub(r"^https?://[^/]+", "", url)
    parts = [p for p in path.split("/") if p]
    if len(parts) >= 3 and parts[1] == "status":
        return parts[0]
    return None


def video_id_from_url(url: Optional[str]) -> Optional[str]:
    """
    Extract the 11-character video id from watch, shorts or embed URLs.

    Example:
        >>> video_id_from_url("/watch?v=dQw4w9WgXcQ&t=1")
        'dQw4w9WgXcQ'
    """
    if not url:
        return None
    for pattern in VIDEO_ID_PATTERNS:
        match = pattern.search(url)
        if match:
            return match.group(1)
    return None


def video_id_from_class(class_name: Optional[str]) -> Optional[str]:
    """Video id from a ``content-id-<id>`` class on newer channel layouts."""
    if not class_name:
        return None
    match = CONTENT_ID_RE.search(class_name)
    return match.group(1) if match else None


def normalize_list_id(target: str) -> str:
    """
    Accept a bare list id or a full list URL.

    Example:
        >>> normalize_list_id("https://x.com/i/lists/1234567890")
        '1234567890'
    """
    match = LIST_ID_RE.search(target)
    return match.group(1) if match else target.strip().strip("/")


def normalize_channel_handle(target: str) -> str:
    """
    Accept ``handle``, ``@handle`` or a channel URL and return the bare handle.

    Example:
        >>> normalize_channel_handle("https://www.youtube.com/@veritasium/videos")
        'veritasium'
    """
    match = re.search(r"/@([^/?#]+)", target)
    if match:
        return match.group(1)
    return target.strip().lstrip("@").strip("/")


def absolute_url(base: str, href: Optional[str]) -> Optional[str]:
    """Prefix a site-relative link with ``base``."""
    if not href:
        return None
    if href.startswith("http://") or href.startswith("https://"):
        return href
    return base.rstrip("/") + "/" + href.lstrip("/")
