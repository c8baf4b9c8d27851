"""
View projections - read-only slices derived from the store snapshot.

Everything here is a pure function of its inputs. Counts are recomputed
from the full filtered set on every call, never tracked incrementally.
"""

from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel

from civicfix.models.report import Report, ReportCategory, ReportPriority, ReportStatus
from civicfix.models.user import User

# Marker colours (hex)
GREEN = "#22c55e"
RED = "#ef4444"
AMBER = "#f59e0b"
GRAY = "#6b7280"

PRIORITY_COLORS: Dict[ReportPriority, str] = {
    ReportPriority.HIGH: RED,
    ReportPriority.MEDIUM: AMBER,
    ReportPriority.LOW: GRAY,
}


class ReportFilter(BaseModel):
    """Conjunctive filters; a None field means no filter on that field."""
    status: Optional[ReportStatus] = None
    priority: Optional[ReportPriority] = None
    category: Optional[ReportCategory] = None

    def matches(self, report: Report) -> bool:
        if self.status is not None and report.status != self.status:
            return False
        if self.priority is not None and report.priority != self.priority:
            return False
        if self.category is not None and report.category != self.category:
            return False
        return True


class MapMarker(BaseModel):
    id: str
    title: str
    category: str
    status: ReportStatus
    priority: ReportPriority
    lat: float
    lng: float
    color: str
    location_address: Optional[str] = None


def for_role(reports: Iterable[Report], user: User) -> List[Report]:
    """Citizens see their own reports; staff see everything. Order is preserved."""
    if user.is_staff:
        return list(reports)
    return [report for report in reports if report.reporter_id == user.id]


def apply_filters(reports: Iterable[Report], filters: Optional[ReportFilter] = None) -> List[Report]:
    if filters is None:
        return list(reports)
    return [report for report in reports if filters.matches(report)]


def status_counts(reports: Iterable[Report]) -> Dict[str, int]:
    counts = {status.value: 0 for status in ReportStatus}
    for report in reports:
        counts[report.status.value] += 1
    counts["total"] = sum(counts.values())
    return counts


def marker_color(report: Report) -> str:
    if report.status == ReportStatus.RESOLVED:
        return GREEN
    return PRIORITY_COLORS.get(report.priority, GRAY)


def map_markers(reports: Iterable[Report]) -> List[MapMarker]:
    """Reports without both coordinates are left off the map."""
    return [
        MapMarker(
            id=report.id,
            title=report.title,
            category=report.category.value,
            status=report.status,
            priority=report.priority,
            lat=report.location_lat,
            lng=report.location_lng,
            color=marker_color(report),
            location_address=report.location_address,
        )
        for report in reports
        if report.has_coordinates
    ]
