from datetime import datetime, timezone

import pytest

from civicfix.core.errors import IllegalTransitionError, ValidationError
from civicfix.models.report import Report, ReportStatus
from civicfix.services.status_workflow import StatusWorkflowEngine

NOW = datetime(2024, 3, 4, 12, 0, tzinfo=timezone.utc)


def _report(status: str = "pending", **fields) -> Report:
    return Report(
        id="r1",
        title="Pothole",
        description="Deep pothole",
        category="Public Works",
        status=status,
        reporter_id="citizen-ana",
        **fields,
    )


@pytest.mark.parametrize("from_status,to_status,expected", [
    ("pending", "in-progress", True),
    ("in-progress", "resolved", True),
    ("in-progress", "pending", True),
    ("pending", "resolved", False),
    ("resolved", "pending", False),
    ("resolved", "in-progress", False),
    ("pending", "pending", False),
    ("in-progress", "in-progress", False),
    ("pending", "closed", False),
])
def test_transition_table(from_status, to_status, expected):
    assert StatusWorkflowEngine.is_valid_transition(from_status, to_status) is expected


def test_resolved_is_terminal():
    assert StatusWorkflowEngine.get_allowed_transitions("resolved") == []
    assert StatusWorkflowEngine.get_allowed_transitions("in-progress") == ["resolved", "pending"]
    assert StatusWorkflowEngine.get_allowed_transitions("bogus") == []


def test_starting_work_assigns_the_actor():
    patch = StatusWorkflowEngine.validate_and_transition(_report(), "in-progress", changed_by="staff-chen", now=NOW)

    assert patch["status"] == "in-progress"
    assert patch["assigned_employee_id"] == "staff-chen"
    assert patch["status_history"][-1] == {
        "from": "pending",
        "to": "in-progress",
        "changed_by": "staff-chen",
        "timestamp": NOW,
        "note": "",
    }


def test_starting_work_with_explicit_assignee():
    patch = StatusWorkflowEngine.validate_and_transition(
        _report(), ReportStatus.IN_PROGRESS, changed_by="staff-chen",
        extra={"assigned_employee_id": "staff-dee"}
    )
    assert patch["assigned_employee_id"] == "staff-dee"


def test_resolving_requires_evidence():
    report = _report("in-progress", assigned_employee_id="staff-chen")

    with pytest.raises(ValidationError) as exc_info:
        StatusWorkflowEngine.validate_and_transition(report, "resolved", changed_by="staff-chen")
    assert exc_info.value.fields == ["completion_image_ref"]

    with pytest.raises(ValidationError):
        StatusWorkflowEngine.validate_and_transition(
            report, "resolved", changed_by="staff-chen", extra={"completion_image_ref": "   "}
        )


def test_resolving_sets_completion_fields():
    report = _report("in-progress", assigned_employee_id="staff-chen")
    patch = StatusWorkflowEngine.validate_and_transition(
        report, "resolved", changed_by="staff-chen",
        extra={"completion_image_ref": "gs://bucket/after.jpg", "resolution_notes": "Patched"},
        now=NOW
    )

    assert patch["completion_image_ref"] == "gs://bucket/after.jpg"
    assert patch["resolution_notes"] == "Patched"
    assert patch["completed_at"] == NOW
    assert "assigned_employee_id" not in patch


def test_skipping_in_progress_is_illegal_even_with_evidence():
    with pytest.raises(IllegalTransitionError) as exc_info:
        StatusWorkflowEngine.validate_and_transition(
            _report(), "resolved", changed_by="staff-chen",
            extra={"completion_image_ref": "gs://bucket/after.jpg"}
        )
    assert exc_info.value.from_status == "pending"
    assert exc_info.value.to_status == "resolved"
    assert exc_info.value.allowed == ["in-progress"]


def test_illegal_edge_is_checked_before_evidence():
    with pytest.raises(IllegalTransitionError):
        StatusWorkflowEngine.validate_and_transition(_report("resolved"), "in-progress", changed_by="staff-chen")


def test_extra_fields_must_match_target():
    with pytest.raises(ValidationError) as exc_info:
        StatusWorkflowEngine.validate_and_transition(
            _report(), "in-progress", changed_by="staff-chen",
            extra={"completion_image_ref": "gs://bucket/after.jpg", "title": "Renamed"}
        )
    assert exc_info.value.fields == ["completion_image_ref", "title"]


def test_reopen_keeps_clears_or_reassigns():
    report = _report("in-progress", assigned_employee_id="staff-chen")

    kept = StatusWorkflowEngine.validate_and_transition(report, "pending", changed_by="staff-chen")
    assert "assigned_employee_id" not in kept

    cleared = StatusWorkflowEngine.validate_and_transition(
        report, "pending", changed_by="staff-chen", extra={"assigned_employee_id": None}
    )
    assert cleared["assigned_employee_id"] is None

    moved = StatusWorkflowEngine.validate_and_transition(
        report, "pending", changed_by="staff-chen", extra={"assigned_employee_id": "staff-dee"}, note="Wrong crew"
    )
    assert moved["assigned_employee_id"] == "staff-dee"
    assert moved["status_history"][-1]["note"] == "Wrong crew"


def test_history_is_appended_not_replaced():
    earlier = StatusWorkflowEngine.create_status_history_entry("", "pending", "citizen-ana", "Report created")
    report = _report(status_history=[earlier])

    patch = StatusWorkflowEngine.validate_and_transition(report, "in-progress", changed_by="staff-chen")

    assert len(patch["status_history"]) == 2
    assert patch["status_history"][0] == earlier
    assert report.status_history == [earlier]
