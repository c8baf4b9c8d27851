"""
Admin endpoints - staff triage and resolution.

SCOPE OF STAFF:
✅ Begin work on a pending report (assigns it)
✅ Assign a pending report to another employee
✅ Resolve an in-progress report with completion evidence
✅ Reopen an in-progress report

❌ NOT edit a citizen's submitted fields
❌ NOT delete reports
❌ NOT change a resolved report
"""

import logging

from fastapi import APIRouter, Depends

from civicfix.core.errors import ReportError
from civicfix.models.report import AssignRequest, Report, StatusUpdateRequest
from civicfix.routes.deps import get_staff_session, to_http_exception
from civicfix.services.session import Session
from civicfix.services.status_workflow import StatusWorkflowEngine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.patch("/reports/{report_id}/status", response_model=Report)
async def change_status(
    report_id: str,
    request: StatusUpdateRequest,
    session: Session = Depends(get_staff_session),
):
    """
    Change report status.

    **Transitions:**
    - pending → in-progress: assigns the report (to the caller unless
      `assigned_employee_id` is given)
    - in-progress → resolved: `completion_image_ref` is required
    - in-progress → pending: reopen; `assigned_employee_id` may be cleared

    Raises:
        404: Report not found
        409: Invalid status transition
        422: Missing evidence or field not allowed for this transition
        503/504: Database unavailable (safe to retry)
    """
    try:
        report = await session.update_status(
            report_id,
            request.status.value,
            extra=request.extra_fields(),
            note=request.note
        )
    except ReportError as e:
        logger.warning(f"Status change {report_id} → {request.status.value} rejected: {e.message}")
        raise to_http_exception(e)
    return report


@router.post("/reports/{report_id}/assign", response_model=Report)
async def assign_report(
    report_id: str,
    request: AssignRequest,
    session: Session = Depends(get_staff_session),
):
    """Assign a pending report to an employee and mark it in progress."""
    try:
        return await session.assign(report_id, request.employee_id)
    except ReportError as e:
        raise to_http_exception(e)


@router.get("/reports/{report_id}/transitions")
async def allowed_transitions(report_id: str, session: Session = Depends(get_staff_session)):
    """Statuses the report can move to next."""
    try:
        report = session.get(report_id)
    except ReportError as e:
        raise to_http_exception(e)
    return {
        "report_id": report_id,
        "status": report.status.value,
        "allowed": StatusWorkflowEngine.get_allowed_transitions(report.status.value),
    }
