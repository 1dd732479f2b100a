"""
Data models for the render cache.
"""

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utc_now() -> datetime:
    """Current instant, always in UTC."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Normalize an instant to UTC; naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class CacheEntry(BaseModel):
    """A rendered page as persisted in the cache store.

    Entries are never updated in place; a newer render for the same key
    replaces the whole entry.
    """

    model_config = ConfigDict(frozen=True)

    key: str = Field(..., description="Derived cache key, also the storage address")
    url: str = Field(..., description="Rendered resource")
    html: str = Field(..., description="Serialized document")
    timestamp: datetime = Field(..., description="Render time (UTC)")

    @field_validator("timestamp")
    @classmethod
    def _timestamp_in_utc(cls, value: datetime) -> datetime:
        return as_utc(value)


class RenderRequest(BaseModel):
    """Request model for render-or-fetch."""

    url: Optional[str] = Field(None, description="Page to render")
    # Raw value; parse_ttl decides what is usable.
    ttl: Any = Field(None, description="Freshness window in milliseconds")

    def identity(self) -> dict:
        """Fields that decide what gets rendered."""
        return {"url": self.url}


class RenderResponse(BaseModel):
    """Successful render-or-fetch response."""

    status: str = "OK"
    data: CacheEntry


def coerce_request(payload: Any) -> RenderRequest:
    """Build a RenderRequest from query params or a JSON body.

    ``cacheTTL`` is accepted as an alias of ``ttl``.
    """
    payload = dict(payload or {})
    ttl = payload.get("ttl", payload.get("cacheTTL"))
    url = payload.get("url")
    return RenderRequest(
        url=url if isinstance(url, str) else None,
        ttl=ttl if isinstance(ttl, (int, float, str)) and not isinstance(ttl, bool) else None,
    )
