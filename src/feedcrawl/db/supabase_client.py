# src/feedcrawl/db/supabase_client.py
from typing import Optional

from feedcrawl.core.config import Config, get_config
from feedcrawl.core.logging import get_logger

logger = get_logger(__name__)

_client = None


def _init_client(config: Optional[Config] = None):
    """
    Lazily create a singleton Supabase client.

    Returns:
        client instance or None if disabled / misconfigured.
    """
    global _client
    if _client is not None:
        return _client

    config = config or get_config()

    if not config.supabase_enabled:
        return None

    if not config.supabase_url or not config.supabase_service_role_key:
        logger.warning("Supabase disabled: SUPABASE_URL or SUPABASE_SERVICE_ROLE_KEY missing")
        return None

    from supabase import create_client

    _client = create_client(config.supabase_url, config.supabase_service_role_key)
    logger.info(f"Supabase client initialized for {config.supabase_url}")
    return _client


def get_supabase(config: Optional[Config] = None):
    """Convenience wrapper used by other modules."""
    return _init_client(config)


def is_supabase_enabled(config: Optional[Config] = None) -> bool:
    """True if a client can be created and used."""
    return _init_client(config) is not None
