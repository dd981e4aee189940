"""
Repository selection.

Rules:
- USE_MOCK_DB=true -> in-memory repositories (no credentials needed)
- otherwise        -> Firestore repositories over the initialized client
"""

import logging

from app.core.settings import Settings
from app.repositories.base import Repositories

logger = logging.getLogger(__name__)


def build_repositories(settings: Settings) -> Repositories:
    if settings.USE_MOCK_DB:
        from app.repositories.memory_repository import build_memory_repositories

        logger.info("[STORE] Using in-memory repositories")
        return build_memory_repositories()

    from app.config.firebase import get_db
    from app.repositories.firestore_repository import build_firestore_repositories

    logger.info("[STORE] Using Firestore repositories")
    return build_firestore_repositories(get_db())
