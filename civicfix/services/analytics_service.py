"""
Analytics Service - dashboard analytics over the report snapshot.

Every figure is recomputed from the reports passed in; nothing is cached
or updated incrementally.
"""

from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional
import logging

from civicfix.models.report import Report, ReportCategory, ReportStatus
from civicfix.services.projections import status_counts
from civicfix.utils.timestamps import to_utc

logger = logging.getLogger(__name__)

# (label, upper bound in hours; None = unbounded)
RESPONSE_TIME_BUCKETS = [
    ("Same Day", 24),
    ("1-2 Days", 48),
    ("3-5 Days", 120),
    ("1+ Week", None),
]


class AnalyticsService:
    """Service for generating dashboard analytics."""

    def resolution_hours(self, report: Report) -> Optional[float]:
        """Hours from submission to resolution, or None if unresolved."""
        if report.status != ReportStatus.RESOLVED:
            return None
        created = to_utc(report.created_at)
        completed = to_utc(report.completed_at)
        if created is None or completed is None:
            return None
        return max((completed - created).total_seconds() / 3600.0, 0.0)

    def _get_category_distribution(self, reports: List[Report]) -> Dict[str, int]:
        distribution = {category.value: 0 for category in ReportCategory}
        for report in reports:
            distribution[report.category.value] += 1
        return distribution

    def _get_response_time_distribution(self, durations: List[float]) -> List[Dict]:
        counts = defaultdict(int)
        for hours in durations:
            for label, bound in RESPONSE_TIME_BUCKETS:
                if bound is None or hours < bound:
                    counts[label] += 1
                    break

        total = len(durations)
        return [
            {
                "time_frame": label,
                "count": counts[label],
                "percentage": round(100.0 * counts[label] / total, 1) if total else 0.0,
            }
            for label, _ in RESPONSE_TIME_BUCKETS
        ]

    def _get_weekly_trends(self, reports: List[Report], now: datetime) -> List[Dict]:
        """Reports submitted and resolved on each of the last seven days."""
        today = now.date()
        days = [today - timedelta(days=offset) for offset in range(6, -1, -1)]
        submitted = defaultdict(int)
        resolved = defaultdict(int)

        for report in reports:
            created = to_utc(report.created_at)
            if created is not None:
                submitted[created.date()] += 1
            completed = to_utc(report.completed_at)
            if completed is not None and report.status == ReportStatus.RESOLVED:
                resolved[completed.date()] += 1

        return [
            {
                "date": day.isoformat(),
                "day": day.strftime("%a"),
                "reports": submitted[day],
                "resolved": resolved[day],
            }
            for day in days
        ]

    def build_analytics(self, reports: Iterable[Report], now: Optional[datetime] = None) -> Dict:
        """
        Build the staff analytics dashboard payload.

        Returns:
            Dict with totals, resolution rate, average resolution time,
            category distribution, response-time buckets and weekly trends
        """
        reports = list(reports)
        now = to_utc(now) or datetime.now(timezone.utc)

        counts = status_counts(reports)
        durations = [hours for hours in (self.resolution_hours(r) for r in reports) if hours is not None]
        total = counts["total"]
        resolved = counts[ReportStatus.RESOLVED.value]

        return {
            "total_reports": total,
            "status_counts": counts,
            "resolved_reports": resolved,
            "resolution_rate": round(resolved / total, 3) if total else 0.0,
            "average_resolution_hours": round(sum(durations) / len(durations), 2) if durations else None,
            "reports_by_category": self._get_category_distribution(reports),
            "response_time": self._get_response_time_distribution(durations),
            "weekly_trends": self._get_weekly_trends(reports, now),
            "generated_at": now.isoformat(),
        }


_analytics_service: Optional[AnalyticsService] = None


def get_analytics_service() -> AnalyticsService:
    global _analytics_service
    if _analytics_service is None:
        _analytics_service = AnalyticsService()
    return _analytics_service
