"""Project use-cases."""
from __future__ import annotations

import uuid

from ..identity import Identity
from ..repository import RecordRepository
from ..schemas import ProjectCreate, ProjectRecord, ProjectStatus, utc_now_iso


def create_project_use_case(*, repo: RecordRepository, data: ProjectCreate, current_identity: Identity) -> ProjectRecord:
    """Any authenticated caller may create a project; it starts active."""
    project = ProjectRecord(
        id=str(uuid.uuid4()),
        name=data.name,
        description=data.description,
        start_date=data.start_date,
        end_date=data.end_date,
        created_by=current_identity.id,
        created_at=utc_now_iso(),
        status=ProjectStatus.ACTIVE.value,
    )
    repo.save_project(project)
    return project
