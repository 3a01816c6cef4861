"""Defect lifecycle use-cases used by defect router endpoints."""
from __future__ import annotations

import logging
import uuid
from typing import Optional

import pydantic

from ..domain_errors import NotFound, ValidationError
from ..identity import Identity
from ..repository import RecordRepository
from ..schemas import (
    CommentCreate,
    DefectComment,
    DefectCreate,
    DefectRecord,
    DefectStatus,
    DefectUpdate,
    HistoryAction,
    HistoryEntry,
    utc_now_iso,
)
from ..services.aggregation import filter_defects

logger = logging.getLogger(__name__)

CREATED_DETAILS = "Дефект создан"
UPDATED_DETAILS_PREFIX = "Дефект обновлен: "


def _new_id() -> str:
    return str(uuid.uuid4())


def _get_defect_or_404(*, repo: RecordRepository, defect_id: str) -> DefectRecord:
    defect = repo.get_defect(defect_id)
    if defect is None:
        raise NotFound("Defect not found")
    return defect


def _write_history(*, repo: RecordRepository, defect_id: str, action: HistoryAction, user_id: str, details: str) -> HistoryEntry:
    entry = HistoryEntry(
        id=_new_id(),
        defect_id=defect_id,
        action=action.value,
        user_id=user_id,
        timestamp=utc_now_iso(),
        details=details,
    )
    repo.add_history(entry)
    return entry


def list_defects_use_case(
    *,
    repo: RecordRepository,
    search: Optional[str] = None,
    status: Optional[str] = None,
    priority: Optional[str] = None,
    project_id: Optional[str] = None,
) -> list[DefectRecord]:
    defects = repo.list_defects()
    if not any((search, status, priority, project_id)):
        return defects
    return filter_defects(defects, search=search, status=status, priority=priority, project_id=project_id)


def create_defect_use_case(*, repo: RecordRepository, data: DefectCreate, current_identity: Identity) -> DefectRecord:
    """Create defect in status New and record a `created` history entry."""
    now = utc_now_iso()
    defect = DefectRecord(
        id=_new_id(),
        title=data.title,
        description=data.description,
        priority=data.priority.value,
        assignee=data.assignee,
        project_id=data.project_id,
        due_date=data.due_date,
        status=DefectStatus.NEW.value,
        created_by=current_identity.id,
        created_at=now,
        updated_at=now,
        comments=[],
    )
    repo.save_defect(defect)
    # Separate write: a failure here leaves the defect without history.
    _write_history(
        repo=repo,
        defect_id=defect.id,
        action=HistoryAction.CREATED,
        user_id=current_identity.id,
        details=CREATED_DETAILS,
    )
    logger.info("defect.created id=%s user=%s", defect.id, current_identity.id)
    return defect


def get_defect_detail_use_case(*, repo: RecordRepository, defect_id: str) -> tuple[DefectRecord, list[HistoryEntry]]:
    defect = _get_defect_or_404(repo=repo, defect_id=defect_id)
    return defect, repo.list_history(defect_id)


def update_defect_use_case(
    *,
    repo: RecordRepository,
    defect_id: str,
    data: DefectUpdate,
    current_identity: Identity,
) -> DefectRecord:
    """Shallow-merge supplied fields (last write wins) and record an `updated` history entry."""
    existing = _get_defect_or_404(repo=repo, defect_id=defect_id)
    changes = data.changes()
    supplied = data.supplied_keys()

    merged = existing.model_dump(by_alias=True, mode="json")
    merged.update(changes)
    # The document id always matches its key.
    merged["id"] = defect_id
    merged["updatedAt"] = utc_now_iso()
    try:
        updated = DefectRecord.model_validate(merged)
    except pydantic.ValidationError as exc:
        raise ValidationError(f"Invalid defect fields: {exc.error_count()} error(s)") from exc

    repo.save_defect(updated)
    _write_history(
        repo=repo,
        defect_id=defect_id,
        action=HistoryAction.UPDATED,
        user_id=current_identity.id,
        details=UPDATED_DETAILS_PREFIX + ", ".join(supplied),
    )
    logger.info("defect.updated id=%s user=%s fields=%s", defect_id, current_identity.id, ",".join(supplied))
    return updated


def add_comment_use_case(
    *,
    repo: RecordRepository,
    defect_id: str,
    data: CommentCreate,
    current_identity: Identity,
) -> DefectComment:
    """Append a comment and persist the whole defect. Comments are not recorded in history."""
    defect = _get_defect_or_404(repo=repo, defect_id=defect_id)
    comment = DefectComment(
        id=_new_id(),
        author=current_identity.id,
        comment=data.comment,
        timestamp=utc_now_iso(),
    )
    defect.comments.append(comment)
    repo.save_defect(defect)
    return comment
