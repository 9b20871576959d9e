"""
Pydantic models for extracted records.

A record is one post or video pulled from a page. Its ``id`` is the
platform's natural id and is the key used for deduplication.
"""

from typing import Optional, Dict, Any, List
from pydantic import BaseModel, Field, field_validator, ConfigDict

from feedcrawl.core.job_models import Platform


class Record(BaseModel):
    """
    Base extracted record.

    Fields other than ``id``, ``platform`` and ``target`` are content and
    are passed through to storage untouched.
    """
    id: str = Field(..., min_length=1, description="Platform-defined natural id")
    platform: Platform = Field(..., description="Platform the record came from")
    target: str = Field(..., min_length=1, description="List id or channel handle it was found on")
    url: Optional[str] = Field(None, description="Canonical URL of the item")
    text: Optional[str] = Field(None, description="Main text content")
    author: Optional[str] = Field(None, description="Display name of the author")
    published_raw: Optional[str] = Field(None, description="Publish time as shown on the page")
    extra: Dict[str, Any] = Field(default_factory=dict, description="Additional fields")

    model_config = ConfigDict(
        str_strip_whitespace=True,
        validate_assignment=True,
    )

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        """Validate id is not blank."""
        if not v or not v.strip():
            raise ValueError("id cannot be empty")
        return v.strip()

    def to_row(self, job_id: str) -> Dict[str, Any]:
        """Flatten into a storage row tagged with the job that found it."""
        row = self.model_dump(mode="json")
        row["job_id"] = job_id
        return row


class TweetRecord(Record):
    """A tweet found on a Twitter list timeline."""
    platform: Platform = Platform.TWITTER_LIST
    username: Optional[str] = Field(None, description="Author handle without '@'")
    is_retweet: bool = Field(default=False, description="Shown as a repost on the timeline")
    reply_count: int = Field(default=0, ge=0)
    retweet_count: int = Field(default=0, ge=0)
    like_count: int = Field(default=0, ge=0)
    image_urls: List[str] = Field(default_factory=list)

    @field_validator("username")
    @classmethod
    def strip_at(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.lstrip("@") or None


class VideoRecord(Record):
    """A video found on a YouTube channel's videos tab."""
    platform: Platform = Platform.YOUTUBE_CHANNEL
    title: str = Field(..., min_length=1, description="Video title")
    duration: Optional[str] = Field(None, description="Duration badge text, e.g. '12:34'")
    view_count_text: Optional[str] = Field(None, description="View count as displayed")
    thumbnail_url: Optional[str] = Field(None)
