"""
Firestore persistence backend.

The firebase_admin SDK is blocking, so reads and writes run in the default
executor. Snapshot listeners call back on an SDK thread; events are handed
to the event loop with call_soon_threadsafe so that all store mutations
stay on one task queue.
"""

from functools import partial
from typing import Any, Dict, List, Optional
import asyncio
import logging

from firebase_admin import firestore

from civicfix.config.firebase import get_db
from civicfix.models.report import ChangeEvent, ChangeKind
from civicfix.utils.firestore_helpers import where_filter
from .base import (
    ErrorHandler,
    EventHandler,
    OrderBy,
    PersistenceBackend,
    Row,
    SubscriptionHandle,
)

logger = logging.getLogger(__name__)

_CHANGE_KINDS = {
    "ADDED": ChangeKind.INSERT,
    "MODIFIED": ChangeKind.UPDATE,
    "REMOVED": ChangeKind.DELETE,
}

# How often a live listener is checked for silent termination (seconds)
WATCH_CHECK_INTERVAL = 5.0


def _doc_to_row(doc) -> Row:
    data = doc.to_dict() or {}
    data["id"] = doc.id
    return data


class FirestoreBackend(PersistenceBackend):

    def __init__(self, db=None):
        self.db = db or get_db()

    async def _run(self, fn, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, partial(fn, *args))

    # ----- reads / writes ---------------------------------------------------

    def _select_sync(self, table: str, filters: Optional[Dict[str, Any]], order: Optional[OrderBy]) -> List[Row]:
        query = self.db.collection(table)
        for field, value in (filters or {}).items():
            query = where_filter(query, field, "==", value)
        if order:
            field, direction = order
            query = query.order_by(
                field,
                direction=firestore.Query.DESCENDING if direction == "desc" else firestore.Query.ASCENDING
            )
        return [_doc_to_row(doc) for doc in query.stream()]

    async def select(
        self,
        table: str,
        filters: Optional[Dict[str, Any]] = None,
        order: Optional[OrderBy] = None
    ) -> List[Row]:
        return await self._run(self._select_sync, table, filters, order)

    def _get_sync(self, table: str, key: str) -> Optional[Row]:
        doc = self.db.collection(table).document(key).get()
        if not doc.exists:
            return None
        return _doc_to_row(doc)

    async def get(self, table: str, key: str) -> Optional[Row]:
        return await self._run(self._get_sync, table, key)

    def _insert_sync(self, table: str, row: Row) -> Row:
        collection = self.db.collection(table)
        doc_ref = collection.document(row["id"]) if row.get("id") else collection.document()
        data = dict(row)
        data.update({
            "id": doc_ref.id,
            "created_at": row.get("created_at") or firestore.SERVER_TIMESTAMP,
            "updated_at": firestore.SERVER_TIMESTAMP,
            "version": 1,
        })
        doc_ref.set(data)
        logger.info(f"Document saved to Firestore: {table}/{doc_ref.id}")
        return _doc_to_row(doc_ref.get())

    async def insert(self, table: str, row: Row) -> Row:
        return await self._run(self._insert_sync, table, row)

    def _update_sync(self, table: str, key: str, partial_row: Row) -> Row:
        doc_ref = self.db.collection(table).document(key)
        data = dict(partial_row)
        data["updated_at"] = firestore.SERVER_TIMESTAMP
        data["version"] = firestore.Increment(1)
        # Raises google.api_core.exceptions.NotFound for a missing document
        doc_ref.update(data)
        return _doc_to_row(doc_ref.get())

    async def update(self, table: str, key: str, partial_row: Row) -> Row:
        return await self._run(self._update_sync, table, key, partial_row)

    async def ping(self) -> bool:
        await self._run(lambda: list(self.db.collection("_health").limit(1).stream()))
        return True

    # ----- change stream ----------------------------------------------------

    async def subscribe(
        self,
        table: str,
        handler: EventHandler,
        on_error: Optional[ErrorHandler] = None
    ) -> SubscriptionHandle:
        loop = asyncio.get_running_loop()
        handle = SubscriptionHandle(table, handler, on_error)

        def deliver(event: ChangeEvent) -> None:
            if handle.active:
                handle.handler(event)

        def on_snapshot(col_snapshot, changes, read_time):
            # Runs on the SDK's watch thread
            for change in changes:
                kind = _CHANGE_KINDS.get(change.type.name)
                if kind is None:
                    continue
                doc = change.document
                row = None if kind == ChangeKind.DELETE else _doc_to_row(doc)
                loop.call_soon_threadsafe(deliver, ChangeEvent(kind=kind, key=doc.id, row=row))

        handle.native = await self._run(self.db.collection(table).on_snapshot, on_snapshot)
        handle.monitor = loop.create_task(self._watch_monitor(handle))
        logger.info(f"Listening for changes on '{table}' ({handle})")
        return handle

    async def _watch_monitor(self, handle: SubscriptionHandle) -> None:
        """The SDK closes a failed watch without a callback; poll for that."""
        while handle.active:
            await asyncio.sleep(WATCH_CHECK_INTERVAL)
            if handle.active and not handle.native.is_active:
                handle.active = False
                logger.warning(f"Firestore listener on '{handle.table}' stopped")
                if handle.on_error:
                    handle.on_error(ConnectionError(f"Firestore listener on '{handle.table}' closed"))
                return

    async def unsubscribe(self, handle: SubscriptionHandle) -> None:
        handle.active = False
        if handle.monitor is not None:
            handle.monitor.cancel()
        if handle.native is not None:
            await self._run(handle.native.unsubscribe)
        logger.info(f"Stopped listening on '{handle.table}' ({handle})")
