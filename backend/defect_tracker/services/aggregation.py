"""Derived statistics over the defect and project collections.

Every function here is a pure transform over already loaded records; the
wall clock is only read when the caller does not pass ``now``.
"""
from __future__ import annotations

import csv
import io
from collections import Counter
from collections.abc import Iterable
from datetime import date, datetime, timezone, tzinfo
from typing import Optional

from ..schemas import (
    AnalyticsResponse,
    DefectRecord,
    DefectStatus,
    ProjectPerformance,
    ProjectRecord,
    ProjectStatsResponse,
    TimelinePoint,
)

UNKNOWN_LABEL = "unknown"
FILTER_ALL = "all"

CSV_COLUMNS = ("ID", "Название", "Статус", "Приоритет", "Создан", "Обновлен", "Срок")
CSV_NO_DUE_DATE = "Не указан"


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO date or datetime into an aware UTC datetime.

    Date-only values mean midnight UTC; naive datetimes are read as UTC.
    Unparseable input yields None.
    """
    if not value or not isinstance(value, str):
        return None
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        try:
            parsed_date = date.fromisoformat(text)
        except ValueError:
            return None
        parsed = datetime(parsed_date.year, parsed_date.month, parsed_date.day)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def percent(part: int, whole: int) -> int:
    """round(100 * part / whole) with halves rounded up; 0 for an empty whole."""
    if whole <= 0:
        return 0
    return (200 * part + whole) // (2 * whole)


def is_overdue(defect: DefectRecord, now: datetime) -> bool:
    """Due date set, strictly in the past, and the defect is not closed."""
    due = parse_timestamp(defect.due_date)
    return due is not None and due < now and defect.status != DefectStatus.CLOSED.value


def _now(now: Optional[datetime]) -> datetime:
    return now if now is not None else datetime.now(timezone.utc)


def compute_analytics(defects: Iterable[DefectRecord], now: Optional[datetime] = None) -> AnalyticsResponse:
    """Totals, status/priority histograms and overdue count in one pass."""
    now = _now(now)
    status_count: Counter[str] = Counter()
    priority_count: Counter[str] = Counter()
    total = 0
    overdue = 0

    for defect in defects:
        total += 1
        status_count[defect.status or UNKNOWN_LABEL] += 1
        priority_count[defect.priority or UNKNOWN_LABEL] += 1
        if is_overdue(defect, now):
            overdue += 1

    return AnalyticsResponse(
        total_defects=total,
        overdue=overdue,
        status_count=dict(status_count),
        priority_count=dict(priority_count),
    )


def closed_rate(analytics: AnalyticsResponse) -> int:
    return percent(analytics.status_count.get(DefectStatus.CLOSED.value, 0), analytics.total_defects)


def project_performance(
    projects: Iterable[ProjectRecord],
    defects: Iterable[DefectRecord],
) -> list[ProjectPerformance]:
    """Completion rate per project; projects without defects are left out."""
    totals: Counter[str] = Counter()
    closed: Counter[str] = Counter()
    for defect in defects:
        if defect.project_id is None:
            continue
        totals[defect.project_id] += 1
        if defect.status == DefectStatus.CLOSED.value:
            closed[defect.project_id] += 1

    result = []
    for project in projects:
        total = totals.get(project.id, 0)
        if total == 0:
            continue
        completed = closed.get(project.id, 0)
        result.append(
            ProjectPerformance(
                id=project.id,
                name=project.name,
                total=total,
                completed=completed,
                completion_rate=percent(completed, total),
            )
        )
    return result


def project_stats(
    project_id: str,
    defects: Iterable[DefectRecord],
    now: Optional[datetime] = None,
) -> ProjectStatsResponse:
    now = _now(now)
    scoped = [defect for defect in defects if defect.project_id == project_id]
    return ProjectStatsResponse(
        project_id=project_id,
        total_defects=len(scoped),
        completed_defects=sum(1 for d in scoped if d.status == DefectStatus.CLOSED.value),
        active_defects=sum(1 for d in scoped if d.status == DefectStatus.IN_PROGRESS.value),
        overdue_defects=sum(1 for d in scoped if is_overdue(d, now)),
    )


def creation_timeline(
    defects: Iterable[DefectRecord],
    tz: tzinfo = timezone.utc,
    max_days: int = 30,
) -> list[TimelinePoint]:
    """Defects created per calendar day in ``tz``; the latest ``max_days`` days, oldest first.

    Only days with at least one defect appear.
    """
    buckets: Counter[date] = Counter()
    for defect in defects:
        created = parse_timestamp(defect.created_at)
        if created is None:
            continue
        buckets[created.astimezone(tz).date()] += 1

    days = sorted(buckets)[-max_days:] if max_days > 0 else []
    return [TimelinePoint(date=day.isoformat(), count=buckets[day]) for day in days]


def _created_sort_key(defect: DefectRecord) -> datetime:
    return parse_timestamp(defect.created_at) or datetime.min.replace(tzinfo=timezone.utc)


def recent_defects(defects: Iterable[DefectRecord], limit: int = 5) -> list[DefectRecord]:
    """Newest first by creation time."""
    return sorted(defects, key=_created_sort_key, reverse=True)[:limit]


def filter_defects(
    defects: Iterable[DefectRecord],
    *,
    search: Optional[str] = None,
    status: Optional[str] = None,
    priority: Optional[str] = None,
    project_id: Optional[str] = None,
) -> list[DefectRecord]:
    """Defect list filters: text search over title/description plus exact matches.

    ``None``, empty and ``"all"`` disable a filter.
    """
    needle = (search or "").lower()

    def _active(value: Optional[str]) -> bool:
        return bool(value) and value != FILTER_ALL

    result = []
    for defect in defects:
        if needle and needle not in (defect.title or "").lower() and needle not in (defect.description or "").lower():
            continue
        if _active(status) and defect.status != status:
            continue
        if _active(priority) and defect.priority != priority:
            continue
        if _active(project_id) and defect.project_id != project_id:
            continue
        result.append(defect)
    return result


def _format_day(value: Optional[str], tz: tzinfo) -> str:
    parsed = parse_timestamp(value)
    if parsed is None:
        return ""
    return parsed.astimezone(tz).strftime("%d.%m.%Y")


def export_csv(defects: Iterable[DefectRecord], tz: tzinfo = timezone.utc) -> str:
    """Defect report as CSV text (header row always present)."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_COLUMNS)
    for defect in defects:
        writer.writerow(
            (
                defect.id,
                defect.title,
                defect.status,
                defect.priority or "",
                _format_day(defect.created_at, tz),
                _format_day(defect.updated_at, tz),
                _format_day(defect.due_date, tz) if defect.due_date else CSV_NO_DUE_DATE,
            )
        )
    return buffer.getvalue()
