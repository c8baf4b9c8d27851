"""
Report endpoints - citizen submission and role-filtered retrieval.
"""

from typing import Dict, List
import logging

from fastapi import APIRouter, Depends, status

from civicfix.core.errors import ReportError
from civicfix.models.report import Report, ReportDraft
from civicfix.routes.deps import get_report_filters, get_session, to_http_exception
from civicfix.services.projections import ReportFilter
from civicfix.services.session import Session

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reports", tags=["Reports"])


@router.post("", response_model=Report, status_code=status.HTTP_201_CREATED)
async def submit_report(draft: ReportDraft, session: Session = Depends(get_session)):
    """
    Submit a new citizen report.

    The report starts as pending with a priority derived from its category.
    Returns the report as confirmed by the database.
    """
    logger.info(f"📝 POST /reports - user={session.user.id} category={draft.category}")
    try:
        report = await session.create(draft)
    except ReportError as e:
        logger.warning(f"❌ POST /reports rejected: {e.message}")
        raise to_http_exception(e)
    logger.info(f"✅ Report created successfully: {report.id}")
    return report


@router.get("", response_model=List[Report])
async def list_reports(
    filters: ReportFilter = Depends(get_report_filters),
    session: Session = Depends(get_session),
):
    """Reports visible to the caller, newest first. Citizens only see their own."""
    return session.visible_reports(filters)


@router.get("/summary")
async def report_summary(
    filters: ReportFilter = Depends(get_report_filters),
    session: Session = Depends(get_session),
) -> Dict:
    """Per-status counts for dashboard tiles."""
    return {
        "counts": session.counts(filters),
        "suspect": session.is_suspect,
    }


@router.get("/{report_id}", response_model=Report)
async def get_report(report_id: str, session: Session = Depends(get_session)):
    try:
        return session.get(report_id)
    except ReportError as e:
        raise to_http_exception(e)
