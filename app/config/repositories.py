"""
Persistence backend selection.
"""

import logging

from app.core.settings import Settings
from app.repositories.base import Repositories
from app.repositories.memory import create_memory_repositories

logger = logging.getLogger(__name__)


def build_repositories(config: Settings) -> Repositories:
    """In-memory store when USE_MOCK_DB is set, Firestore otherwise."""
    if config.USE_MOCK_DB:
        logger.info("[STORE] USING IN-MEMORY DATABASE")
        return create_memory_repositories()

    from app.config.firebase import initialize_firestore
    from app.repositories.firestore import create_firestore_repositories

    return create_firestore_repositories(initialize_firestore())
