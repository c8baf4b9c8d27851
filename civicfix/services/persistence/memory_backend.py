"""
In-memory persistence backend.

Used when USE_MOCK_DB is set and by the test suite. Behaves like the
Firestore backend: change events are delivered asynchronously on the
event loop, in commit order. Failures and stream drops can be injected.
"""

from copy import deepcopy
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
import asyncio
import logging
import uuid

from civicfix.models.report import ChangeEvent, ChangeKind
from .base import (
    ErrorHandler,
    EventHandler,
    OrderBy,
    PersistenceBackend,
    Row,
    SubscriptionHandle,
)

logger = logging.getLogger(__name__)


def _sort_key(value: Any):
    # None sorts before everything else
    return (value is not None, value)


class MemoryBackend(PersistenceBackend):

    def __init__(self):
        self._tables: Dict[str, Dict[str, Row]] = {}
        self._subscriptions: List[SubscriptionHandle] = []
        # op name -> exception raised by the next call
        self._failures: Dict[str, Exception] = {}
        # op name -> seconds to stall the next call
        self._delays: Dict[str, float] = {}
        self._subscribe_failures = 0

    # ----- fault injection -------------------------------------------------

    def fail_next(self, op: str, exc: Optional[Exception] = None) -> None:
        self._failures[op] = exc or ConnectionError(f"simulated {op} failure")

    def stall_next(self, op: str, seconds: float) -> None:
        self._delays[op] = seconds

    def fail_subscribes(self, count: int) -> None:
        self._subscribe_failures = count

    def drop_subscriptions(self, exc: Optional[Exception] = None) -> None:
        """Simulate a network interruption on every live stream."""
        loop = asyncio.get_running_loop()
        error = exc or ConnectionError("change stream interrupted")
        for handle in list(self._subscriptions):
            handle.active = False
            self._subscriptions.remove(handle)
            if handle.on_error:
                loop.call_soon(handle.on_error, error)

    @property
    def active_subscriptions(self) -> int:
        return len(self._subscriptions)

    async def _enter(self, op: str) -> None:
        delay = self._delays.pop(op, None)
        if delay:
            await asyncio.sleep(delay)
        exc = self._failures.pop(op, None)
        if exc is not None:
            raise exc

    # ----- contract ---------------------------------------------------------

    async def select(
        self,
        table: str,
        filters: Optional[Dict[str, Any]] = None,
        order: Optional[OrderBy] = None
    ) -> List[Row]:
        await self._enter("select")
        rows = [deepcopy(row) for row in self._tables.get(table, {}).values()]
        for field, value in (filters or {}).items():
            rows = [row for row in rows if row.get(field) == value]
        if order:
            field, direction = order
            rows.sort(key=lambda row: _sort_key(row.get(field)), reverse=(direction == "desc"))
        return rows

    async def get(self, table: str, key: str) -> Optional[Row]:
        await self._enter("get")
        stored = self._tables.get(table, {}).get(key)
        if stored is None:
            return None
        row = deepcopy(stored)
        row["id"] = key
        return row

    async def insert(self, table: str, row: Row) -> Row:
        await self._enter("insert")
        now = datetime.now(timezone.utc)
        stored = deepcopy(row)
        stored["id"] = stored.get("id") or uuid.uuid4().hex[:20]
        stored["created_at"] = stored.get("created_at") or now
        stored["updated_at"] = now
        stored["version"] = 1
        self._tables.setdefault(table, {})[stored["id"]] = stored
        self._emit(table, ChangeEvent(kind=ChangeKind.INSERT, key=stored["id"], row=deepcopy(stored)))
        return deepcopy(stored)

    async def update(self, table: str, key: str, partial_row: Row) -> Row:
        await self._enter("update")
        rows = self._tables.get(table, {})
        if key not in rows:
            raise LookupError(f"No document {table}/{key}")
        stored = rows[key]
        stored.update(deepcopy(partial_row))
        stored["updated_at"] = datetime.now(timezone.utc)
        stored["version"] = (stored.get("version") or 0) + 1
        self._emit(table, ChangeEvent(kind=ChangeKind.UPDATE, key=key, row=deepcopy(stored)))
        return deepcopy(stored)

    async def delete(self, table: str, key: str) -> None:
        """Not part of normal operation; used by maintenance scripts and tests."""
        await self._enter("delete")
        if self._tables.get(table, {}).pop(key, None) is not None:
            self._emit(table, ChangeEvent(kind=ChangeKind.DELETE, key=key))

    async def subscribe(
        self,
        table: str,
        handler: EventHandler,
        on_error: Optional[ErrorHandler] = None
    ) -> SubscriptionHandle:
        if self._subscribe_failures > 0:
            self._subscribe_failures -= 1
            raise ConnectionError("simulated subscribe failure")
        handle = SubscriptionHandle(table, handler, on_error)
        self._subscriptions.append(handle)
        logger.debug(f"Subscribed {handle}")
        return handle

    async def unsubscribe(self, handle: SubscriptionHandle) -> None:
        handle.active = False
        if handle in self._subscriptions:
            self._subscriptions.remove(handle)
        logger.debug(f"Unsubscribed {handle}")

    def _emit(self, table: str, event: ChangeEvent) -> None:
        targets = [handle for handle in self._subscriptions if handle.table == table and handle.active]
        if not targets:
            return
        loop = asyncio.get_running_loop()
        for handle in targets:
            loop.call_soon(self._deliver, handle, event.model_copy(deep=True))

    @staticmethod
    def _deliver(handle: SubscriptionHandle, event: ChangeEvent) -> None:
        # Events queued before an unsubscribe are dropped
        if handle.active:
            handle.handler(event)
