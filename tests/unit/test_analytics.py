from datetime import datetime, timedelta, timezone

from civicfix.models.report import Report
from civicfix.services.analytics_service import AnalyticsService

NOW = datetime(2024, 3, 10, 18, 0, tzinfo=timezone.utc)


def _report(report_id: str, created_hours_ago: float, resolved_after_hours=None, **fields) -> Report:
    created = NOW - timedelta(hours=created_hours_ago)
    values = {
        "id": report_id,
        "title": report_id,
        "description": "d",
        "category": "Public Works",
        "reporter_id": "citizen-ana",
        "created_at": created,
    }
    if resolved_after_hours is not None:
        values.update(status="resolved", completed_at=created + timedelta(hours=resolved_after_hours))
    values.update(fields)
    return Report(**values)


def test_resolution_hours_only_for_resolved():
    service = AnalyticsService()
    assert service.resolution_hours(_report("a", 30, resolved_after_hours=6)) == 6.0
    assert service.resolution_hours(_report("b", 30)) is None
    assert service.resolution_hours(_report("c", 30, status="resolved")) is None


def test_build_analytics_totals_and_buckets():
    reports = [
        _report("a", 100, resolved_after_hours=2),
        _report("b", 100, resolved_after_hours=30, category="Sanitation"),
        _report("c", 200, resolved_after_hours=200),
        _report("d", 5, status="in-progress"),
    ]

    result = AnalyticsService().build_analytics(reports, now=NOW)

    assert result["total_reports"] == 4
    assert result["resolved_reports"] == 3
    assert result["resolution_rate"] == 0.75
    assert result["average_resolution_hours"] == round((2 + 30 + 200) / 3, 2)
    assert result["status_counts"]["in-progress"] == 1
    assert result["reports_by_category"]["Sanitation"] == 1
    assert result["reports_by_category"]["Public Works"] == 3

    buckets = {row["time_frame"]: row["count"] for row in result["response_time"]}
    assert buckets == {"Same Day": 1, "1-2 Days": 1, "3-5 Days": 0, "1+ Week": 1}


def test_weekly_trends_cover_seven_days_ending_today():
    reports = [
        _report("a", 1),
        _report("b", 30, resolved_after_hours=29),
    ]

    trends = AnalyticsService().build_analytics(reports, now=NOW)["weekly_trends"]

    assert len(trends) == 7
    assert trends[-1]["date"] == "2024-03-10"
    assert trends[-1]["reports"] == 1
    assert trends[-1]["resolved"] == 1
    assert trends[-2]["reports"] == 1


def test_empty_snapshot():
    result = AnalyticsService().build_analytics([], now=NOW)
    assert result["total_reports"] == 0
    assert result["resolution_rate"] == 0.0
    assert result["average_resolution_hours"] is None
    assert all(row["percentage"] == 0.0 for row in result["response_time"])
