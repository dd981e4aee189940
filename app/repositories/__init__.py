"""
Storage layer. Services depend on the abstract repositories only.
"""

from app.repositories.base import (
    CacheRepository,
    DisasterRepository,
    FeedRepository,
    Repositories,
    ResourceRepository,
)
from app.repositories.registry import build_repositories

__all__ = [
    "CacheRepository",
    "DisasterRepository",
    "FeedRepository",
    "Repositories",
    "ResourceRepository",
    "build_repositories",
]
