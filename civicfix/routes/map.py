"""Map routes - report markers for the map view.

Reports without coordinates are left off the map rather than placed at a
default location.
"""

from typing import List

from fastapi import APIRouter, Depends

from civicfix.routes.deps import get_report_filters, get_session
from civicfix.services.projections import MapMarker, ReportFilter
from civicfix.services.session import Session

router = APIRouter(prefix="/map", tags=["Map"])


@router.get("/markers", response_model=List[MapMarker])
async def map_markers(
    filters: ReportFilter = Depends(get_report_filters),
    session: Session = Depends(get_session),
):
    """Markers for the reports visible to the caller, coloured by status and priority."""
    return session.markers(filters)
