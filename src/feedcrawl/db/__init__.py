"""
Database module for feedcrawl.

This module handles all persistence including:
- Pydantic models for extracted records
- Job and record storage backends
- Supabase client
"""

from feedcrawl.db.models import Record, TweetRecord, VideoRecord
from feedcrawl.db.storage import Storage, InMemoryStorage, SupabaseStorage, build_storage
from feedcrawl.db.supabase_client import get_supabase, is_supabase_enabled

__all__ = [
    # Models
    "Record",
    "TweetRecord",
    "VideoRecord",
    # Storage
    "Storage",
    "InMemoryStorage",
    "SupabaseStorage",
    "build_storage",
    # Client functions
    "get_supabase",
    "is_supabase_enabled",
]
