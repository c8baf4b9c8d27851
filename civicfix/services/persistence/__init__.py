import logging
from typing import Optional

from civicfix.core.settings import settings
from .base import PersistenceBackend, SubscriptionHandle
from .memory_backend import MemoryBackend

logger = logging.getLogger(__name__)

_backend_instance: Optional[PersistenceBackend] = None


def get_backend() -> PersistenceBackend:
    """
    Resolve the process-wide persistence backend.

    USE_MOCK_DB selects the in-memory backend; otherwise Firestore.
    """
    global _backend_instance
    if _backend_instance is not None:
        return _backend_instance

    if settings.USE_MOCK_DB:
        _backend_instance = MemoryBackend()
        logger.info("[PERSISTENCE] USING MOCK DATABASE (in-memory)")
    else:
        from .firestore_backend import FirestoreBackend
        _backend_instance = FirestoreBackend()
        logger.info("[PERSISTENCE] USING FIRESTORE")

    return _backend_instance


def set_backend(backend: Optional[PersistenceBackend]) -> None:
    """Override the resolved backend (scripts and tests)."""
    global _backend_instance
    _backend_instance = backend


__all__ = ["PersistenceBackend", "SubscriptionHandle", "MemoryBackend", "get_backend", "set_backend"]
