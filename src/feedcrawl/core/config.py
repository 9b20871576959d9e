"""
Configuration Management for feedcrawl

This module provides centralized configuration management with:
- Environment variable loading (configs/.env)
- Type validation
- Sensible defaults
- Per-platform crawl settings
"""

import os
from pathlib import Path
from typing import Optional, List
from dotenv import load_dotenv


DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

_FALSE_VALUES = {"0", "false", "False"}
_TRUE_VALUES = {"1", "true", "True"}


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default) not in _FALSE_VALUES


def _env_seconds(name: str, default_ms: str) -> float:
    """Read a millisecond setting and return it in seconds."""
    return int(os.getenv(name, default_ms)) / 1000.0


def _env_list(name: str, default: str) -> List[str]:
    raw = os.getenv(name, default)
    return [part.strip() for part in raw.split(",") if part.strip()]


class Config:
    """
    Application configuration loaded from environment variables.

    All configuration is read from configs/.env file or environment variables.
    Millisecond settings (``*_MS``) are exposed in seconds.
    """

    def __init__(self, env_path: Optional[Path] = None):
        """
        Initialize configuration from environment.

        Args:
            env_path: Path to .env file (default: configs/.env)
        """
        if env_path is None:
            env_path = Path("configs/.env")

        load_dotenv(dotenv_path=env_path, override=True)

        # === Job Lifecycle ===
        self.max_concurrent_jobs: int = int(os.getenv("MAX_CONCURRENT_JOBS", "3"))
        self.task_timeout: float = _env_seconds("TASK_TIMEOUT_MS", "300000")
        self.enable_retry: bool = _env_flag("ENABLE_RETRY", "1")
        self.retry_attempts: int = int(os.getenv("RETRY_ATTEMPTS", "5"))
        self.retry_delay: float = _env_seconds("RETRY_DELAY_MS", "5000")
        self.retry_max_delay: float = _env_seconds("RETRY_MAX_DELAY_MS", "30000")

        # === Politeness ===
        self.random_delay_enabled: bool = _env_flag("RANDOM_DELAY_ENABLED", "1")
        self.random_delay_min: float = _env_seconds("RANDOM_DELAY_MIN_MS", "1000")
        self.random_delay_max: float = _env_seconds("RANDOM_DELAY_MAX_MS", "3000")

        # === Browser Pools ===
        self.pool_wait_timeout: float = _env_seconds("POOL_WAIT_TIMEOUT_MS", "30000")
        self.twitter_pool_size: int = int(
            os.getenv("TWITTER_POOL_SIZE", str(self.max_concurrent_jobs or 3))
        )
        # YouTube pages are heavy, keep fewer browsers around
        self.youtube_pool_size: int = int(
            os.getenv("YOUTUBE_POOL_SIZE", str(min(self.max_concurrent_jobs or 2, 2)))
        )

        # === Browser ===
        self.headless: bool = _env_flag("HEADLESS", "1")
        self.nav_timeout: float = _env_seconds("NAV_TIMEOUT_MS", "30000")
        self.nav_retries: int = int(os.getenv("NAV_RETRIES", "2"))
        self.viewport_width: int = int(os.getenv("VIEWPORT_WIDTH", "1280"))
        self.viewport_height: int = int(os.getenv("VIEWPORT_HEIGHT", "720"))
        self.user_agent: str = os.getenv("USER_AGENT", DEFAULT_USER_AGENT)
        self.user_data_dir: Path = Path(os.getenv("USER_DATA_DIR", "data/browser-data"))
        self.browser_health_check: bool = _env_flag("BROWSER_HEALTH_CHECK", "1")
        self.block_resource_types: List[str] = _env_list("BLOCK_RESOURCE_TYPES", "image,media,font")

        # === Extraction Loop ===
        self.scroll_min_delta: int = int(os.getenv("SCROLL_MIN_DELTA_PX", "100"))
        self.scroll_stall_limit: int = int(os.getenv("SCROLL_STALL_LIMIT", "3"))

        # === Twitter Lists ===
        self.twitter_wait: float = _env_seconds("TWITTER_WAIT_MS", "3000")
        self.twitter_max_items: int = int(os.getenv("TWITTER_MAX_ITEMS", "20"))
        self.twitter_duplicate_stop: int = int(os.getenv("TWITTER_DUPLICATE_STOP", "2"))
        self.twitter_max_scrolls: int = int(os.getenv("TWITTER_MAX_SCROLLS", "50"))
        self.twitter_health_check_interval: int = int(os.getenv("TWITTER_HEALTH_CHECK_INTERVAL", "5"))

        # === YouTube Channels ===
        self.youtube_wait: float = _env_seconds("YOUTUBE_WAIT_MS", "3000")
        self.youtube_max_items: int = int(os.getenv("YOUTUBE_MAX_ITEMS", "30"))
        self.youtube_duplicate_stop: int = int(os.getenv("YOUTUBE_DUPLICATE_STOP", "3"))
        self.youtube_max_scrolls: int = int(os.getenv("YOUTUBE_MAX_SCROLLS", "20"))
        self.youtube_health_check_interval: int = int(os.getenv("YOUTUBE_HEALTH_CHECK_INTERVAL", "3"))
        self.youtube_timeout_factor: float = float(os.getenv("YOUTUBE_TIMEOUT_FACTOR", "1.5"))

        # === Supabase Configuration ===
        self.supabase_enabled: bool = os.getenv("SUPABASE_ENABLED", "0") in _TRUE_VALUES
        self.supabase_url: Optional[str] = os.getenv("SUPABASE_URL")
        self.supabase_service_role_key: Optional[str] = os.getenv("SUPABASE_SERVICE_ROLE_KEY")
        self.supabase_jobs_table: str = os.getenv("SUPABASE_JOBS_TABLE", "crawl_jobs")
        self.supabase_tweets_table: str = os.getenv("SUPABASE_TWEETS_TABLE", "tweets")
        self.supabase_videos_table: str = os.getenv("SUPABASE_VIDEOS_TABLE", "youtube_videos")

        # === Logging Configuration ===
        self.log_level: str = os.getenv("LOG_LEVEL", "INFO")
        self.log_dir: Path = Path(os.getenv("LOG_DIR", "logs"))

    def validate(self) -> None:
        """
        Validate configuration values.

        Raises:
            ValueError: If required configuration is missing or invalid
        """
        errors = []

        if self.supabase_enabled:
            if not self.supabase_url:
                errors.append("SUPABASE_URL is required when Supabase is enabled")
            if not self.supabase_service_role_key:
                errors.append("SUPABASE_SERVICE_ROLE_KEY is required when Supabase is enabled")

        if self.max_concurrent_jobs <= 0:
            errors.append(f"MAX_CONCURRENT_JOBS must be positive, got {self.max_concurrent_jobs}")

        if self.task_timeout <= 0:
            errors.append(f"TASK_TIMEOUT_MS must be positive, got {self.task_timeout * 1000:.0f}")

        if self.retry_attempts < 0:
            errors.append(f"RETRY_ATTEMPTS must be non-negative, got {self.retry_attempts}")

        if self.retry_delay <= 0:
            errors.append("RETRY_DELAY_MS must be positive")

        if self.retry_max_delay < self.retry_delay:
            errors.append("RETRY_MAX_DELAY_MS cannot be smaller than RETRY_DELAY_MS")

        if self.random_delay_min > self.random_delay_max:
            errors.append(
                f"RANDOM_DELAY_MIN_MS ({self.random_delay_min * 1000:.0f}) cannot be greater "
                f"than RANDOM_DELAY_MAX_MS ({self.random_delay_max * 1000:.0f})"
            )

        if self.pool_wait_timeout <= 0:
            errors.append("POOL_WAIT_TIMEOUT_MS must be positive")

        for name in ("twitter_pool_size", "youtube_pool_size"):
            if getattr(self, name) <= 0:
                errors.append(f"{name.upper()} must be positive, got {getattr(self, name)}")

        if self.nav_timeout <= 0:
            errors.append("NAV_TIMEOUT_MS must be positive")

        if self.scroll_stall_limit <= 0:
            errors.append(f"SCROLL_STALL_LIMIT must be positive, got {self.scroll_stall_limit}")

        for name in ("twitter_duplicate_stop", "youtube_duplicate_stop",
                     "twitter_max_scrolls", "youtube_max_scrolls",
                     "twitter_health_check_interval", "youtube_health_check_interval"):
            if getattr(self, name) <= 0:
                errors.append(f"{name.upper()} must be positive, got {getattr(self, name)}")

        if self.youtube_timeout_factor < 1:
            errors.append("YOUTUBE_TIMEOUT_FACTOR must be >= 1")

        if errors:
            raise ValueError(f"Configuration validation failed:\n" + "\n".join(f"  - {e}" for e in errors))

    def __repr__(self) -> str:
        """Return string representation of config (without secrets)."""
        return (
            f"Config(\n"
            f"  max_concurrent_jobs={self.max_concurrent_jobs},\n"
            f"  task_timeout={self.task_timeout}s,\n"
            f"  enable_retry={self.enable_retry} (attempts={self.retry_attempts}),\n"
            f"  pools=twitter:{self.twitter_pool_size}/youtube:{self.youtube_pool_size},\n"
            f"  headless={self.headless},\n"
            f"  supabase_enabled={self.supabase_enabled},\n"
            f"  supabase_service_role_key={'***' if self.supabase_service_role_key else 'NOT SET'},\n"
            f"  log_level={self.log_level}\n"
            f")"
        )


# Global configuration instance (lazy-loaded)
_config: Optional[Config] = None


def get_config(env_path: Optional[Path] = None) -> Config:
    """
    Get the global configuration instance.

    Args:
        env_path: Optional path to .env file (only used on first call)

    Returns:
        Global Config instance
    """
    global _config
    if _config is None:
        _config = Config(env_path=env_path)
    return _config


def validate_config(env_path: Optional[Path] = None) -> None:
    """
    Validate configuration and raise error if invalid.

    Call at application startup to fail fast if configuration is incorrect.

    Raises:
        ValueError: If configuration is invalid
    """
    config = get_config(env_path=env_path)
    config.validate()
