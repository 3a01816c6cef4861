"""Project endpoints."""
from fastapi import APIRouter, Depends

from ..auth import get_current_identity, get_repository
from ..domain_errors import handler_boundary
from ..identity import Identity
from ..repository import RecordRepository
from ..schemas import ProjectCreate, ProjectEnvelope, ProjectsEnvelope, ProjectStatsResponse
from ..services.aggregation import project_stats
from ..use_cases.projects import create_project_use_case

router = APIRouter(prefix="/projects", tags=["projects"])


@router.get("", response_model=ProjectsEnvelope)
def get_projects(
    identity: Identity = Depends(get_current_identity),
    repo: RecordRepository = Depends(get_repository),
):
    """Get all projects."""
    with handler_boundary("fetching projects"):
        return ProjectsEnvelope(projects=repo.list_projects())


@router.post("", response_model=ProjectEnvelope)
def create_project(
    data: ProjectCreate,
    identity: Identity = Depends(get_current_identity),
    repo: RecordRepository = Depends(get_repository),
):
    with handler_boundary("creating project"):
        project = create_project_use_case(repo=repo, data=data, current_identity=identity)
    return ProjectEnvelope(project=project)


@router.get("/{project_id}/stats", response_model=ProjectStatsResponse)
def get_project_stats(
    project_id: str,
    identity: Identity = Depends(get_current_identity),
    repo: RecordRepository = Depends(get_repository),
):
    """Defect counters for one project (unknown ids simply count zero)."""
    with handler_boundary("fetching project stats"):
        return project_stats(project_id, repo.list_defects())
