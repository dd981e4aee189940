"""
Cache entry model. One record per cache key.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class CacheEntry(BaseModel):
    key: str = Field(..., description="Unique cache key, used verbatim")
    value: Any = Field(..., description="JSON-serializable payload")
    expires_at: datetime = Field(..., description="Absolute UTC expiry")

    def is_expired(self, now: datetime) -> bool:
        """An entry expiring exactly now is already stale."""
        return self.expires_at <= now
