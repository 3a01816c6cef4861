"""Defect endpoints."""
from typing import Optional

from fastapi import APIRouter, Depends, Query

from ..auth import get_current_identity, get_repository
from ..domain_errors import handler_boundary
from ..identity import Identity
from ..repository import RecordRepository
from ..schemas import (
    CommentCreate,
    CommentEnvelope,
    DefectCreate,
    DefectDetailResponse,
    DefectEnvelope,
    DefectsEnvelope,
    DefectUpdate,
)
from ..use_cases.defects import (
    add_comment_use_case,
    create_defect_use_case,
    get_defect_detail_use_case,
    list_defects_use_case,
    update_defect_use_case,
)

router = APIRouter(prefix="/defects", tags=["defects"])


@router.get("", response_model=DefectsEnvelope)
def get_defects(
    search: Optional[str] = None,
    status: Optional[str] = None,
    priority: Optional[str] = None,
    project_id: Optional[str] = Query(None, alias="projectId"),
    identity: Identity = Depends(get_current_identity),
    repo: RecordRepository = Depends(get_repository),
):
    """Get defects, optionally filtered."""
    with handler_boundary("fetching defects"):
        defects = list_defects_use_case(
            repo=repo,
            search=search,
            status=status,
            priority=priority,
            project_id=project_id,
        )
    return DefectsEnvelope(defects=defects)


@router.post("", response_model=DefectEnvelope)
def create_defect(
    data: DefectCreate,
    identity: Identity = Depends(get_current_identity),
    repo: RecordRepository = Depends(get_repository),
):
    with handler_boundary("creating defect"):
        defect = create_defect_use_case(repo=repo, data=data, current_identity=identity)
    return DefectEnvelope(defect=defect)


@router.get("/{defect_id}", response_model=DefectDetailResponse)
def get_defect(
    defect_id: str,
    identity: Identity = Depends(get_current_identity),
    repo: RecordRepository = Depends(get_repository),
):
    """Defect with its full history."""
    with handler_boundary("fetching defect"):
        defect, history = get_defect_detail_use_case(repo=repo, defect_id=defect_id)
    return DefectDetailResponse(defect=defect, history=history)


@router.put("/{defect_id}", response_model=DefectEnvelope)
def update_defect(
    defect_id: str,
    data: DefectUpdate,
    identity: Identity = Depends(get_current_identity),
    repo: RecordRepository = Depends(get_repository),
):
    with handler_boundary("updating defect"):
        defect = update_defect_use_case(repo=repo, defect_id=defect_id, data=data, current_identity=identity)
    return DefectEnvelope(defect=defect)


@router.post("/{defect_id}/comments", response_model=CommentEnvelope)
def add_comment(
    defect_id: str,
    data: CommentCreate,
    identity: Identity = Depends(get_current_identity),
    repo: RecordRepository = Depends(get_repository),
):
    with handler_boundary("adding comment"):
        comment = add_comment_use_case(repo=repo, defect_id=defect_id, data=data, current_identity=identity)
    return CommentEnvelope(comment=comment)
