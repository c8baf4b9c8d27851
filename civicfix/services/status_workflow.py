"""
Status Workflow Engine - strict state machine for the report lifecycle.

DESIGN PRINCIPLES:
- Only the edges in ALLOWED_TRANSITIONS exist (no pending → resolved)
- resolved is terminal
- Every transition is logged in status_history
- Required side effects are applied here, before any write is issued
"""

from datetime import datetime, timezone
from typing import Any, Dict, FrozenSet, List, Optional
import logging

from civicfix.core.errors import IllegalTransitionError, ValidationError
from civicfix.models.report import Report, ReportStatus

logger = logging.getLogger(__name__)


class StatusWorkflowEngine:
    """
    Strict state machine for report status transitions.

    Rules:
    - pending → in-progress assigns the report
    - in-progress → resolved requires completion evidence
    - in-progress → pending reopens (assignee may be cleared or changed)
    """

    # Allowed transitions map: {from_status: [to_status, ...]}
    ALLOWED_TRANSITIONS: Dict[ReportStatus, List[ReportStatus]] = {
        ReportStatus.PENDING: [ReportStatus.IN_PROGRESS],
        ReportStatus.IN_PROGRESS: [ReportStatus.RESOLVED, ReportStatus.PENDING],
        ReportStatus.RESOLVED: []  # Terminal state, no transitions allowed
    }

    # Extra fields a caller may write together with each target status
    PERMITTED_EXTRA: Dict[ReportStatus, FrozenSet[str]] = {
        ReportStatus.IN_PROGRESS: frozenset({"assigned_employee_id"}),
        ReportStatus.RESOLVED: frozenset({"completion_image_ref", "resolution_notes"}),
        ReportStatus.PENDING: frozenset({"assigned_employee_id"}),
    }

    @classmethod
    def is_valid_transition(cls, from_status: str, to_status: str) -> bool:
        """
        Check if a status transition is valid.

        Unknown status values and self-transitions are never valid.
        """
        try:
            from_enum = ReportStatus(from_status)
            to_enum = ReportStatus(to_status)
        except ValueError:
            return False

        return to_enum in cls.ALLOWED_TRANSITIONS.get(from_enum, [])

    @classmethod
    def get_allowed_transitions(cls, current_status: str) -> List[str]:
        """Get list of allowed next statuses from current status."""
        try:
            current_enum = ReportStatus(current_status)
        except ValueError:
            return []
        return [status.value for status in cls.ALLOWED_TRANSITIONS.get(current_enum, [])]

    @classmethod
    def create_status_history_entry(
        cls,
        from_status: str,
        to_status: str,
        changed_by: str,
        note: Optional[str] = None,
        timestamp: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """Create a status history entry for the audit trail."""
        return {
            "from": from_status,
            "to": to_status,
            "changed_by": changed_by,
            "timestamp": timestamp or datetime.now(timezone.utc),
            "note": note or ""
        }

    @classmethod
    def validate_and_transition(
        cls,
        report: Report,
        new_status: str,
        changed_by: str,
        extra: Optional[Dict[str, Any]] = None,
        note: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """
        Validate a transition and build the patch that applies it.

        The returned dict is written as a single partial update: the new
        status, its side-effect fields, the caller's extra fields and the
        extended status_history.

        Raises:
            IllegalTransitionError: the edge does not exist
            ValidationError: evidence missing or extra fields not permitted
        """
        current_status = report.status.value
        target = new_status.value if isinstance(new_status, ReportStatus) else str(new_status)

        if not cls.is_valid_transition(current_status, target):
            raise IllegalTransitionError(current_status, target, cls.get_allowed_transitions(current_status))

        to_enum = ReportStatus(target)
        extra = dict(extra or {})

        not_permitted = sorted(set(extra) - cls.PERMITTED_EXTRA[to_enum])
        if not_permitted:
            raise ValidationError(
                not_permitted,
                f"Field(s) {', '.join(not_permitted)} cannot be set when moving to {target}"
            )

        now = now or datetime.now(timezone.utc)
        patch: Dict[str, Any] = {"status": target}

        if to_enum == ReportStatus.IN_PROGRESS:
            assignee = extra.get("assigned_employee_id") or changed_by
            patch["assigned_employee_id"] = assignee

        elif to_enum == ReportStatus.RESOLVED:
            evidence = extra.get("completion_image_ref")
            if not evidence or not str(evidence).strip():
                raise ValidationError(
                    ["completion_image_ref"],
                    "Resolving a report requires completion evidence (completion_image_ref)"
                )
            patch["completion_image_ref"] = evidence
            patch["completed_at"] = now
            if extra.get("resolution_notes"):
                patch["resolution_notes"] = extra["resolution_notes"]

        elif to_enum == ReportStatus.PENDING:
            # Reopen: keep, clear (explicit None) or reassign
            if "assigned_employee_id" in extra:
                patch["assigned_employee_id"] = extra["assigned_employee_id"] or None

        history_entry = cls.create_status_history_entry(
            from_status=current_status,
            to_status=target,
            changed_by=changed_by,
            note=note,
            timestamp=now
        )
        patch["status_history"] = list(report.status_history) + [history_entry]

        logger.debug(f"Transition {report.id}: {current_status} → {target} by {changed_by}")
        return patch
