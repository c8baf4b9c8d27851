from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Tuple
import itertools
import logging

from civicfix.models.report import ChangeEvent

logger = logging.getLogger(__name__)

Row = Dict[str, Any]
EventHandler = Callable[[ChangeEvent], None]
ErrorHandler = Callable[[Exception], None]
# (field, "asc" | "desc")
OrderBy = Tuple[str, str]

_handle_ids = itertools.count(1)


class SubscriptionHandle:
    """
    A live change-stream subscription returned by PersistenceBackend.subscribe.

    `active` turns False when the stream is unsubscribed or drops.
    """

    def __init__(self, table: str, handler: EventHandler, on_error: Optional[ErrorHandler] = None):
        self.id = next(_handle_ids)
        self.table = table
        self.handler = handler
        self.on_error = on_error
        self.active = True
        # Backend-specific resources (watch objects, monitor tasks)
        self.native: Any = None
        self.monitor: Any = None

    def __repr__(self) -> str:
        return f"<SubscriptionHandle {self.id} table={self.table} active={self.active}>"


class PersistenceBackend(ABC):
    """
    Durable store for report and user records.

    Contract:
    - insert assigns `id`, `created_at`, `updated_at` and `version` (1)
    - update merges a partial row, refreshes `updated_at`, increments
      `version` and returns the full post-write row
    - subscribe delivers ChangeEvents in commit order on the event loop;
      `on_error` is called once if the stream drops
    - failures propagate as exceptions; callers wrap them
    """

    @abstractmethod
    async def select(
        self,
        table: str,
        filters: Optional[Dict[str, Any]] = None,
        order: Optional[OrderBy] = None
    ) -> List[Row]:
        raise NotImplementedError

    @abstractmethod
    async def get(self, table: str, key: str) -> Optional[Row]:
        """Row stored under `key` (with `id` set to the key), or None."""
        raise NotImplementedError

    @abstractmethod
    async def insert(self, table: str, row: Row) -> Row:
        raise NotImplementedError

    @abstractmethod
    async def update(self, table: str, key: str, partial_row: Row) -> Row:
        raise NotImplementedError

    @abstractmethod
    async def subscribe(
        self,
        table: str,
        handler: EventHandler,
        on_error: Optional[ErrorHandler] = None
    ) -> SubscriptionHandle:
        raise NotImplementedError

    @abstractmethod
    async def unsubscribe(self, handle: SubscriptionHandle) -> None:
        raise NotImplementedError

    async def ping(self) -> bool:
        """Lightweight connectivity check used by /health/db."""
        return True
