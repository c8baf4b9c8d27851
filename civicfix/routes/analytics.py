"""
Analytics endpoints - staff dashboard figures.
"""

from fastapi import APIRouter, Depends

from civicfix.routes.deps import get_report_filters, get_staff_session
from civicfix.services.analytics_service import get_analytics_service
from civicfix.services.projections import ReportFilter
from civicfix.services.session import Session

router = APIRouter(prefix="/analytics", tags=["Analytics"])


@router.get("")
async def analytics(
    filters: ReportFilter = Depends(get_report_filters),
    session: Session = Depends(get_staff_session),
):
    """Totals, resolution rate, response times and trends over the current snapshot."""
    return get_analytics_service().build_analytics(session.visible_reports(filters))
