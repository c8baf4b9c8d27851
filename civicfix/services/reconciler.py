"""
Subscription Reconciler - keeps the Report Store in step with the backend.

Protocol:
- One long-lived subscription to the reports change stream
- insert/update events overwrite the local row (idempotent upsert)
- delete events remove the row; unknown ids are ignored
- A dropped stream marks the state suspect; reconnecting re-subscribes
  and does a full load() since the stream exposes no sequence numbers
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional
import asyncio
import itertools
import logging
import random

from civicfix.core.errors import SubscriptionLostError
from civicfix.core.settings import settings
from civicfix.models.report import ChangeEvent, ChangeKind
from civicfix.services.persistence.base import PersistenceBackend, SubscriptionHandle
from civicfix.services.report_store import ReportStore

logger = logging.getLogger(__name__)


class ReconcilerStatus(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    LIVE = "live"
    SUSPECT = "suspect"      # stream dropped, reconnecting
    FAILED = "failed"        # reconnect attempts exhausted
    STOPPED = "stopped"


StatusListener = Callable[[ReconcilerStatus], None]


class SubscriptionReconciler:

    def __init__(
        self,
        backend: PersistenceBackend,
        store: ReportStore,
        table: Optional[str] = None,
        base_delay: Optional[float] = None,
        max_delay: Optional[float] = None,
        max_attempts: Optional[int] = None,
    ):
        self.backend = backend
        self.store = store
        self.table = table or store.table
        self.base_delay = settings.RECONNECT_BASE_DELAY if base_delay is None else base_delay
        self.max_delay = settings.RECONNECT_MAX_DELAY if max_delay is None else max_delay
        self.max_attempts = settings.RECONNECT_MAX_ATTEMPTS if max_attempts is None else max_attempts

        self.status = ReconcilerStatus.IDLE
        self.last_error: Optional[Exception] = None
        self.reconnect_count = 0
        self.events_applied = 0
        self.live_since: Optional[datetime] = None

        self._handle: Optional[SubscriptionHandle] = None
        self._reconnect_task: Optional[asyncio.Task] = None
        self._loading = False
        self._buffer: List[ChangeEvent] = []
        self._status_listeners: Dict[int, StatusListener] = {}
        self._listener_ids = itertools.count(1)

    # ----- status -----------------------------------------------------------

    @property
    def is_suspect(self) -> bool:
        """True while local state may have missed changes."""
        return self.status in (ReconcilerStatus.SUSPECT, ReconcilerStatus.FAILED)

    @property
    def is_live(self) -> bool:
        return self.status == ReconcilerStatus.LIVE

    def add_status_listener(self, listener: StatusListener) -> int:
        handle = next(self._listener_ids)
        self._status_listeners[handle] = listener
        return handle

    def remove_status_listener(self, handle: int) -> None:
        self._status_listeners.pop(handle, None)

    def _set_status(self, status: ReconcilerStatus) -> None:
        if status == self.status:
            return
        logger.info(f"Reconciler for '{self.table}': {self.status.value} → {status.value}")
        self.status = status
        if status == ReconcilerStatus.LIVE:
            self.live_since = datetime.now(timezone.utc)
        for listener in list(self._status_listeners.values()):
            try:
                listener(status)
            except Exception as e:
                logger.error(f"Reconciler status listener failed: {e}", exc_info=True)

    def describe(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "suspect": self.is_suspect,
            "last_error": str(self.last_error) if self.last_error else None,
            "reconnects": self.reconnect_count,
            "events_applied": self.events_applied,
            "live_since": self.live_since.isoformat() if self.live_since else None,
            "last_loaded_at": self.store.last_loaded_at.isoformat() if self.store.last_loaded_at else None,
            "reports": len(self.store),
        }

    # ----- lifecycle --------------------------------------------------------

    async def start(self) -> None:
        """
        Subscribe and load the initial snapshot.

        If the first attempt fails the reconciler goes suspect, keeps
        reconnecting in the background, and the error is re-raised.
        """
        if self.status in (ReconcilerStatus.CONNECTING, ReconcilerStatus.LIVE, ReconcilerStatus.SUSPECT):
            return

        self._set_status(ReconcilerStatus.CONNECTING)
        try:
            await self._subscribe_and_load()
        except Exception as e:
            self.last_error = e
            if self.status != ReconcilerStatus.STOPPED:
                self._set_status(ReconcilerStatus.SUSPECT)
                self._schedule_reconnect()
            raise

    async def stop(self) -> None:
        """Tear down the subscription. Safe to call more than once."""
        self._set_status(ReconcilerStatus.STOPPED)
        task, self._reconnect_task = self._reconnect_task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        await self._release_handle()
        self._buffer = []

    async def _subscribe_and_load(self) -> None:
        # Subscribe first so nothing committed during the load is missed
        self._loading = True
        self._buffer = []
        try:
            handle = await self.backend.subscribe(self.table, self._on_event)
            handle.on_error = lambda exc, h=handle: self._on_stream_error(exc, h)
            self._handle = handle
            await self.store.load()
        except Exception:
            self._loading = False
            self._buffer = []
            await self._release_handle()
            raise

        self._loading = False
        if self.status == ReconcilerStatus.STOPPED:
            # stop() ran while the load was in flight
            self._buffer = []
            await self._release_handle()
            return

        buffered, self._buffer = self._buffer, []
        for event in buffered:
            self.apply(event)
        self._set_status(ReconcilerStatus.LIVE)

    async def _release_handle(self) -> None:
        handle, self._handle = self._handle, None
        if handle is None:
            return
        try:
            await self.backend.unsubscribe(handle)
        except Exception as e:
            logger.warning(f"Unsubscribe failed for {handle}: {e}")

    # ----- events -----------------------------------------------------------

    def _on_event(self, event: ChangeEvent) -> None:
        if self.status == ReconcilerStatus.STOPPED:
            return
        if self._loading:
            self._buffer.append(event)
            return
        self.apply(event)

    def apply(self, event: ChangeEvent) -> bool:
        """
        Merge one change event into the store.

        Returns True if the snapshot changed. Re-applying the same event
        leaves the snapshot as it was after the first application.
        """
        self.events_applied += 1

        if event.kind == ChangeKind.DELETE:
            return self.store.remove(event.key)

        if not event.row:
            logger.warning(f"Ignoring {event.kind.value} event for {event.key} without a row")
            return False

        row = dict(event.row)
        row.setdefault("id", event.key)
        return self.store.upsert_row(row) is not None

    # ----- reconnect --------------------------------------------------------

    def _on_stream_error(self, exc: Exception, handle: SubscriptionHandle) -> None:
        if self.status == ReconcilerStatus.STOPPED or handle is not self._handle:
            return
        logger.warning(f"Change stream for '{self.table}' lost: {exc}")
        handle.active = False
        self._handle = None
        self.last_error = SubscriptionLostError(f"Change stream lost: {exc}")
        self._set_status(ReconcilerStatus.SUSPECT)
        self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        if self._reconnect_task is not None and not self._reconnect_task.done():
            return
        self._reconnect_task = asyncio.get_running_loop().create_task(self._reconnect())

    def _backoff_delay(self, attempt: int) -> float:
        delay = min(self.max_delay, self.base_delay * (2 ** attempt))
        if delay:
            delay = delay + random.uniform(0, delay / 2)
        return min(self.max_delay, delay)

    async def _reconnect(self) -> None:
        for attempt in range(self.max_attempts):
            delay = self._backoff_delay(attempt)
            if delay:
                await asyncio.sleep(delay)
            if self.status == ReconcilerStatus.STOPPED:
                return
            try:
                await self._release_handle()
                await self._subscribe_and_load()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.last_error = e
                logger.warning(f"Reconnect attempt {attempt + 1}/{self.max_attempts} for '{self.table}' failed: {e}")
                continue

            if self.status == ReconcilerStatus.STOPPED:
                return
            self.reconnect_count += 1
            self.last_error = None
            logger.info(f"Change stream for '{self.table}' restored after {attempt + 1} attempt(s)")
            return

        self.last_error = SubscriptionLostError(
            f"Change stream for '{self.table}' could not be restored after {self.max_attempts} attempts"
        )
        logger.error(str(self.last_error))
        self._set_status(ReconcilerStatus.FAILED)
