"""Analytics endpoints: server-side statistics and derived views."""
from datetime import date
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response

from ..auth import get_current_identity, get_repository
from ..config import settings
from ..domain_errors import ValidationError, handler_boundary
from ..identity import Identity
from ..repository import RecordRepository
from ..schemas import (
    AnalyticsResponse,
    DashboardResponse,
    ProjectPerformanceResponse,
    TimelineResponse,
)
from ..services.aggregation import (
    closed_rate,
    compute_analytics,
    creation_timeline,
    export_csv,
    project_performance,
    recent_defects,
)

router = APIRouter(prefix="/analytics", tags=["analytics"])


def _resolve_zone(tz: str) -> ZoneInfo:
    try:
        return ZoneInfo(tz)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValidationError(f"Unknown time zone: {tz}") from exc


@router.get("", response_model=AnalyticsResponse)
def get_analytics(
    identity: Identity = Depends(get_current_identity),
    repo: RecordRepository = Depends(get_repository),
):
    """Totals, status and priority counts, overdue count."""
    with handler_boundary("fetching analytics"):
        return compute_analytics(repo.list_defects())


@router.get("/dashboard", response_model=DashboardResponse)
def get_dashboard(
    identity: Identity = Depends(get_current_identity),
    repo: RecordRepository = Depends(get_repository),
):
    with handler_boundary("fetching dashboard"):
        defects = repo.list_defects()
        analytics = compute_analytics(defects)
        return DashboardResponse(
            analytics=analytics,
            closed_rate=closed_rate(analytics),
            recent_defects=recent_defects(defects, limit=settings.RECENT_DEFECTS_LIMIT),
        )


@router.get("/projects", response_model=ProjectPerformanceResponse)
def get_project_performance(
    identity: Identity = Depends(get_current_identity),
    repo: RecordRepository = Depends(get_repository),
):
    """Completion rate of every project that has defects."""
    with handler_boundary("fetching project performance"):
        return ProjectPerformanceResponse(
            projects=project_performance(repo.list_projects(), repo.list_defects())
        )


@router.get("/timeline", response_model=TimelineResponse)
def get_timeline(
    tz: str = Query("UTC"),
    identity: Identity = Depends(get_current_identity),
    repo: RecordRepository = Depends(get_repository),
):
    """Defects created per day (latest days only), bucketed in the given time zone."""
    zone = _resolve_zone(tz)
    with handler_boundary("fetching timeline"):
        return TimelineResponse(
            timeline=creation_timeline(repo.list_defects(), tz=zone, max_days=settings.TIMELINE_MAX_DAYS)
        )


@router.get("/export")
def export_defects(
    tz: str = Query("UTC"),
    identity: Identity = Depends(get_current_identity),
    repo: RecordRepository = Depends(get_repository),
):
    """Defect report as a CSV download."""
    zone = _resolve_zone(tz)
    with handler_boundary("exporting defects"):
        content = export_csv(repo.list_defects(), tz=zone)
    filename = f"defects_report_{date.today().isoformat()}.csv"
    return Response(
        content=content,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
