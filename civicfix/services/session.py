"""
Session context - the explicit boundary for everything a signed-in user does.

A session is built at login and torn down at logout. Every core operation
goes through it, so the acting identity is always explicit and every
listener registered on the user's behalf is removed on close().
"""

from typing import Any, Callable, Dict, List, Optional
import logging

from civicfix.core.errors import ReportNotFoundError
from civicfix.models.report import Report, ReportDraft
from civicfix.models.user import User
from civicfix.services.persistence.base import PersistenceBackend
from civicfix.services.projections import (
    MapMarker,
    ReportFilter,
    apply_filters,
    for_role,
    map_markers,
    status_counts,
)
from civicfix.services.reconciler import ReconcilerStatus, SubscriptionReconciler
from civicfix.services.report_store import ReportStore

logger = logging.getLogger(__name__)


class Session:

    def __init__(
        self,
        user: User,
        store: ReportStore,
        reconciler: Optional[SubscriptionReconciler] = None,
        owns_sync: bool = False
    ):
        self.user = user
        self.store = store
        self.reconciler = reconciler
        self._owns_sync = owns_sync
        self._store_listeners: List[int] = []
        self._status_listeners: List[int] = []
        self.closed = False

    @classmethod
    async def open(cls, user: User, backend: PersistenceBackend, **store_options) -> "Session":
        """
        Log in: build a private store and reconciler, subscribe and load.

        Raises FetchError if the initial load fails; nothing is left running.
        """
        store = ReportStore(backend, **store_options)
        reconciler = SubscriptionReconciler(backend, store)
        session = cls(user, store, reconciler, owns_sync=True)
        try:
            await reconciler.start()
        except Exception:
            await session.close()
            raise
        logger.info(f"Session opened for {user.id} ({user.user_type.value})")
        return session

    async def close(self) -> None:
        """Log out: drop every listener and stop any owned subscription."""
        if self.closed:
            return
        self.closed = True
        for handle in self._store_listeners:
            self.store.remove_listener(handle)
        self._store_listeners = []
        if self.reconciler is not None:
            for handle in self._status_listeners:
                self.reconciler.remove_status_listener(handle)
            self._status_listeners = []
            if self._owns_sync:
                await self.reconciler.stop()

    async def __aenter__(self) -> "Session":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def _ensure_open(self) -> None:
        if self.closed:
            raise RuntimeError("Session is closed")

    # ----- mutations --------------------------------------------------------

    async def create(self, draft: ReportDraft) -> Report:
        self._ensure_open()
        return await self.store.create(draft, actor=self.user)

    async def update_status(
        self,
        report_id: str,
        new_status: str,
        extra: Optional[Dict[str, Any]] = None,
        note: Optional[str] = None
    ) -> Report:
        self._ensure_open()
        return await self.store.update_status(report_id, new_status, actor=self.user, extra=extra, note=note)

    async def assign(self, report_id: str, employee_id: str, note: Optional[str] = None) -> Report:
        self._ensure_open()
        return await self.store.assign(report_id, employee_id, actor=self.user, note=note)

    # ----- views ------------------------------------------------------------

    # Views default to confirmed rows only. include_pending adds optimistic
    # copies; callers that ask for them must report store.sync_state() too.

    def get(self, report_id: str, include_pending: bool = False) -> Report:
        """A report visible to this user; citizens only see their own."""
        if include_pending:
            report = self.store.get(report_id)
        else:
            report = self.store.get_confirmed(report_id)
        if report is None or not for_role([report], self.user):
            raise ReportNotFoundError(report_id)
        return report

    def visible_reports(self, filters: Optional[ReportFilter] = None, include_pending: bool = False) -> List[Report]:
        reports = self.store.list(include_pending=include_pending)
        return apply_filters(for_role(reports, self.user), filters)

    def counts(self, filters: Optional[ReportFilter] = None, include_pending: bool = False) -> Dict[str, int]:
        return status_counts(self.visible_reports(filters, include_pending))

    def markers(self, filters: Optional[ReportFilter] = None, include_pending: bool = False) -> List[MapMarker]:
        return map_markers(self.visible_reports(filters, include_pending))

    @property
    def is_suspect(self) -> bool:
        return self.reconciler.is_suspect if self.reconciler is not None else False

    # ----- live updates -----------------------------------------------------

    def subscribe(self, callback: Callable[[str, Optional[str]], None]) -> int:
        self._ensure_open()
        handle = self.store.add_listener(callback)
        self._store_listeners.append(handle)
        return handle

    def on_sync_status(self, callback: Callable[[ReconcilerStatus], None]) -> Optional[int]:
        self._ensure_open()
        if self.reconciler is None:
            return None
        handle = self.reconciler.add_status_listener(callback)
        self._status_listeners.append(handle)
        return handle
