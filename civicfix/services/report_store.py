"""
Report Store - the session's authoritative snapshot of reports.

DESIGN NOTE:
- Snapshot is keyed by report id and only replaced wholesale by load()
- Writes are two-phase: an optimistic copy tagged PENDING is visible while
  the write is in flight, then replaced by the row the backend returns
- A failed write leaves the confirmed snapshot exactly as it was
- All methods run on the event loop; there is no internal locking
"""

from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional
import asyncio
import itertools
import logging
import uuid

from pydantic import ValidationError as PydanticValidationError

from civicfix.core.errors import (
    FetchError,
    PermissionDeniedError,
    ReportNotFoundError,
    ValidationError,
    WriteError,
    WriteInFlightError,
    WriteTimeoutError,
)
from civicfix.core.settings import settings
from civicfix.models.report import (
    CATEGORY_DEPARTMENTS,
    Report,
    ReportCategory,
    ReportDraft,
    ReportStatus,
    SyncState,
    default_priority,
)
from civicfix.models.user import User, UserType
from civicfix.services.persistence.base import PersistenceBackend, Row
from civicfix.services.status_workflow import StatusWorkflowEngine
from civicfix.utils.timestamps import to_utc

logger = logging.getLogger(__name__)

# listener(kind, report_id); kind is "load", "upsert" or "remove"
StoreListener = Callable[[str, Optional[str]], None]

REQUIRED_DRAFT_FIELDS = ("title", "description", "category")

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


def _newest_first(report: Report):
    created = to_utc(report.created_at)
    return created or _OLDEST


class ReportStore:
    """
    Single source of truth for the reports visible in a session.
    """

    def __init__(
        self,
        backend: PersistenceBackend,
        table: Optional[str] = None,
        write_timeout: Optional[float] = None,
        fetch_timeout: Optional[float] = None,
        reject_stale_versions: Optional[bool] = None,
    ):
        self.backend = backend
        self.table = table or settings.REPORTS_COLLECTION
        self.write_timeout = write_timeout if write_timeout is not None else settings.WRITE_TIMEOUT_SECONDS
        self.fetch_timeout = fetch_timeout if fetch_timeout is not None else settings.FETCH_TIMEOUT_SECONDS
        self.reject_stale_versions = (
            settings.RECONCILE_REJECT_STALE_VERSIONS if reject_stale_versions is None else reject_stale_versions
        )
        self.workflow = StatusWorkflowEngine

        self._reports: Dict[str, Report] = {}
        # Optimistic copies awaiting backend confirmation
        self._pending: Dict[str, Report] = {}
        self._pending_tokens: Dict[str, object] = {}
        self._listeners: Dict[int, StoreListener] = {}
        self._listener_ids = itertools.count(1)

        self.loaded = False
        self.last_loaded_at: Optional[datetime] = None

    # ----- reads ------------------------------------------------------------

    def get(self, report_id: str) -> Optional[Report]:
        """Current view of a report: the optimistic copy if a write is in flight."""
        return self._pending.get(report_id) or self._reports.get(report_id)

    def get_confirmed(self, report_id: str) -> Optional[Report]:
        return self._reports.get(report_id)

    def sync_state(self, report_id: str) -> Optional[SyncState]:
        if report_id in self._pending:
            return SyncState.PENDING
        if report_id in self._reports:
            return SyncState.CONFIRMED
        return None

    def list(
        self,
        predicate: Optional[Callable[[Report], bool]] = None,
        include_pending: bool = True
    ) -> List[Report]:
        """All visible reports, newest first. Never mutates the snapshot."""
        merged = dict(self._reports)
        if include_pending:
            merged.update(self._pending)
        reports = sorted(merged.values(), key=_newest_first, reverse=True)
        if predicate is not None:
            reports = [report for report in reports if predicate(report)]
        return reports

    def __len__(self) -> int:
        return len(self._reports)

    def __contains__(self, report_id: str) -> bool:
        return report_id in self._reports

    # ----- listeners --------------------------------------------------------

    def add_listener(self, listener: StoreListener) -> int:
        handle = next(self._listener_ids)
        self._listeners[handle] = listener
        return handle

    def remove_listener(self, handle: int) -> None:
        self._listeners.pop(handle, None)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def _notify(self, kind: str, report_id: Optional[str] = None) -> None:
        for listener in list(self._listeners.values()):
            try:
                listener(kind, report_id)
            except Exception as e:
                logger.error(f"Store listener failed on {kind} {report_id}: {e}", exc_info=True)

    # ----- snapshot maintenance ----------------------------------------------

    def _parse_row(self, row: Row) -> Optional[Report]:
        try:
            return Report.model_validate(row)
        except PydanticValidationError as e:
            logger.warning(f"Skipping malformed report row {row.get('id')}: {e}")
            return None

    async def load(self) -> List[Report]:
        """
        Replace the snapshot with the backend's current set.

        Raises:
            FetchError: backend unreachable or slow; the old snapshot is kept
        """
        try:
            rows = await asyncio.wait_for(
                self.backend.select(self.table, order=("created_at", "desc")),
                timeout=self.fetch_timeout
            )
        except asyncio.TimeoutError:
            logger.error(f"Loading reports timed out after {self.fetch_timeout}s")
            raise FetchError(f"Loading reports timed out after {self.fetch_timeout}s")
        except Exception as e:
            logger.error(f"Failed to load reports: {e}", exc_info=True)
            raise FetchError(f"Failed to load reports: {e}") from e

        snapshot: Dict[str, Report] = {}
        for row in rows:
            report = self._parse_row(row)
            if report is not None:
                snapshot[report.id] = report

        self._reports = snapshot
        self.loaded = True
        self.last_loaded_at = datetime.now(timezone.utc)
        logger.info(f"Loaded {len(snapshot)} reports from '{self.table}'")
        self._notify("load")
        return self.list()

    def upsert_row(self, row: Row) -> Optional[Report]:
        """
        Overwrite the local copy with a backend-delivered row.

        With reject_stale_versions on, a row older than the local copy is ignored.
        """
        report = self._parse_row(row)
        if report is None:
            return None

        existing = self._reports.get(report.id)
        if (
            self.reject_stale_versions
            and existing is not None
            and existing.version is not None
            and report.version is not None
            and report.version < existing.version
        ):
            logger.debug(f"Ignoring stale row {report.id} v{report.version} < v{existing.version}")
            return None

        self._reports[report.id] = report
        self._notify("upsert", report.id)
        return report

    def remove(self, report_id: str) -> bool:
        removed = self._reports.pop(report_id, None) is not None
        if removed:
            self._notify("remove", report_id)
        return removed

    async def _write(self, awaitable, action: str) -> Row:
        try:
            return await asyncio.wait_for(awaitable, timeout=self.write_timeout)
        except asyncio.TimeoutError:
            logger.error(f"{action} timed out after {self.write_timeout}s")
            raise WriteTimeoutError(f"{action} timed out after {self.write_timeout}s")
        except Exception as e:
            logger.error(f"{action} failed: {e}", exc_info=True)
            raise WriteError(f"{action} failed: {e}") from e

    # ----- mutations --------------------------------------------------------

    @staticmethod
    def _validate_draft(draft: ReportDraft) -> ReportCategory:
        missing = [
            field for field in REQUIRED_DRAFT_FIELDS
            if not (getattr(draft, field) or "").strip()
        ]
        if missing:
            raise ValidationError(missing)
        try:
            return ReportCategory(draft.category.strip())
        except ValueError:
            raise ValidationError(
                ["category"],
                f"Unknown category '{draft.category}'. Expected one of: "
                f"{', '.join(c.value for c in ReportCategory)}"
            )

    async def create(self, draft: ReportDraft, actor: User) -> Report:
        """
        Submit a new report on behalf of a citizen.

        Raises:
            PermissionDeniedError: actor is not a citizen
            ValidationError: title, description or category missing/invalid
            WriteError: the insert failed or timed out
        """
        if actor.user_type != UserType.CITIZEN:
            raise PermissionDeniedError("Only citizens can submit reports")

        category = self._validate_draft(draft)
        priority = draft.priority or default_priority(category)
        initial_status = ReportStatus.PENDING.value

        row: Dict[str, Any] = {
            "title": draft.title.strip(),
            "description": draft.description.strip(),
            "category": category.value,
            "department": CATEGORY_DEPARTMENTS[category],
            "status": initial_status,
            "priority": priority.value,
            "reporter_id": actor.id,
            "assigned_employee_id": None,
            "location_address": draft.location_address,
            "location_lat": draft.location_lat,
            "location_lng": draft.location_lng,
            "original_image_ref": draft.original_image_ref,
            "audio_ref": draft.audio_ref,
            "completion_image_ref": None,
            "resolution_notes": None,
            "completed_at": None,
            "status_history": [self.workflow.create_status_history_entry(
                from_status="",
                to_status=initial_status,
                changed_by=actor.id,
                note="Report created"
            )],
        }

        now = datetime.now(timezone.utc)
        local_id = f"local-{uuid.uuid4().hex[:12]}"
        self._pending[local_id] = Report.model_validate({**row, "id": local_id, "created_at": now, "updated_at": now})
        self._notify("upsert", local_id)

        try:
            inserted = await self._write(self.backend.insert(self.table, row), "Report insert")
        except WriteError:
            self._pending.pop(local_id, None)
            self._notify("remove", local_id)
            raise

        self._pending.pop(local_id, None)
        report = self.upsert_row(inserted) or self._reports.get(inserted.get("id"))
        self._notify("remove", local_id)
        logger.info(f"Report created: {inserted.get('id')} ({category.value}, {priority.value})")
        return report

    async def update_status(
        self,
        report_id: str,
        new_status: str,
        actor: User,
        extra: Optional[Dict[str, Any]] = None,
        note: Optional[str] = None
    ) -> Report:
        """
        Move a report along its lifecycle (staff only).

        Status, side effects and extra fields go out as one update, so a
        partially-updated report is never observable.

        Raises:
            PermissionDeniedError: actor is not an employee
            ReportNotFoundError: id not in the snapshot
            WriteInFlightError: an earlier change to this report is unconfirmed
            IllegalTransitionError / ValidationError: rejected before any write
            WriteError: the update failed or timed out
        """
        if not actor.is_staff:
            raise PermissionDeniedError("Only employees can change report status")

        if report_id not in self._reports:
            raise ReportNotFoundError(report_id)

        # Each write is validated against, and built from, the confirmed row
        if report_id in self._pending:
            raise WriteInFlightError(report_id)

        current = self._reports[report_id]
        patch = self.workflow.validate_and_transition(
            report=current,
            new_status=new_status,
            changed_by=actor.id,
            extra=extra,
            note=note
        )

        token = object()
        self._pending[report_id] = Report.model_validate({**current.model_dump(), **patch})
        self._pending_tokens[report_id] = token
        self._notify("upsert", report_id)

        try:
            row = await self._write(
                self.backend.update(self.table, report_id, patch),
                f"Status update {report_id} → {patch['status']}"
            )
        except WriteError:
            self._drop_pending(report_id, token)
            raise

        self._drop_pending(report_id, token, notify=False)
        report = self.upsert_row(row)
        if report is None:
            # Returned row was stale or malformed; the overlay is gone either way
            self._notify("upsert", report_id)
            report = self._reports[report_id]
        logger.info(f"Report {report_id} moved to {patch['status']} by {actor.id}")
        return report

    def _drop_pending(self, report_id: str, token: object, notify: bool = True) -> None:
        # A newer in-flight write owns the overlay; leave it alone
        if self._pending_tokens.get(report_id) is not token:
            return
        self._pending_tokens.pop(report_id, None)
        self._pending.pop(report_id, None)
        if notify:
            self._notify("upsert", report_id)

    async def assign(self, report_id: str, employee_id: str, actor: User, note: Optional[str] = None) -> Report:
        """Assign a pending report to an employee, starting work on it."""
        if not employee_id or not employee_id.strip():
            raise ValidationError(["employee_id"])
        return await self.update_status(
            report_id,
            ReportStatus.IN_PROGRESS.value,
            actor,
            extra={"assigned_employee_id": employee_id.strip()},
            note=note
        )
