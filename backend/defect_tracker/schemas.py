"""Pydantic schemas for API."""
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .config import settings


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string with millisecond precision and Z suffix."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


# Closed enumerations. Values are the localized labels stored in documents.
class Role(str, Enum):
    OBSERVER = "observer"
    ENGINEER = "engineer"
    MANAGER = "manager"
    ADMIN = "admin"


class DefectStatus(str, Enum):
    NEW = "Новая"
    IN_PROGRESS = "В работе"
    IN_REVIEW = "На проверке"
    CLOSED = "Закрыта"
    CANCELLED = "Отменена"


class DefectPriority(str, Enum):
    LOW = "Низкий"
    MEDIUM = "Средний"
    HIGH = "Высокий"
    CRITICAL = "Критический"


class ProjectStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"


class HistoryAction(str, Enum):
    CREATED = "created"
    UPDATED = "updated"


VALID_ROLES = frozenset(role.value for role in Role)


class CamelModel(BaseModel):
    """Base for documents exchanged with the browser (camelCase on the wire)."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Stored records. Enumerated fields stay plain strings on read so that
# legacy documents never break listing.
class UserRecord(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    id: str
    email: str
    name: str
    role: str = Role.OBSERVER.value
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class ProjectRecord(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    id: str
    name: str
    description: Optional[str] = ""
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    created_by: str
    created_at: str
    status: str = ProjectStatus.ACTIVE.value


class DefectComment(CamelModel):
    id: str
    author: str
    comment: str
    timestamp: str


class DefectRecord(CamelModel):
    """Defect document. Unknown keys merged in by updates are kept."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    id: str
    title: str
    description: Optional[str] = ""
    priority: Optional[str] = None
    assignee: Optional[str] = None
    project_id: Optional[str] = None
    due_date: Optional[str] = None
    status: Optional[str] = DefectStatus.NEW.value
    created_by: str
    created_at: str
    updated_at: str
    comments: list[DefectComment] = Field(default_factory=list)


class HistoryEntry(CamelModel):
    id: str
    defect_id: str
    action: str
    user_id: str
    timestamp: str
    details: str


# Requests
class SignupRequest(BaseModel):
    email: str
    password: str
    name: str = Field(min_length=1)
    # Accepted for client compatibility and ignored: signup always yields an observer.
    role: Optional[str] = None

    @field_validator("email")
    @classmethod
    def _check_email(cls, value: str) -> str:
        value = value.strip()
        if "@" not in value or value.startswith("@") or value.endswith("@"):
            raise ValueError("must be a valid email address")
        return value

    @field_validator("password")
    @classmethod
    def _check_password(cls, value: str) -> str:
        if len(value) < settings.PASSWORD_MIN_LENGTH:
            raise ValueError(f"must be at least {settings.PASSWORD_MIN_LENGTH} characters")
        return value


class LoginRequest(BaseModel):
    email: str
    password: str


class ProjectCreate(CamelModel):
    name: str = Field(min_length=1)
    description: str = ""
    start_date: Optional[str] = None
    end_date: Optional[str] = None


class DefectCreate(CamelModel):
    title: str = Field(min_length=1)
    description: str = ""
    priority: DefectPriority
    assignee: Optional[str] = None
    project_id: Optional[str] = None
    due_date: Optional[str] = None


class DefectUpdate(CamelModel):
    """Partial defect update; any other supplied keys are merged as-is."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    title: Optional[str] = None
    description: Optional[str] = None
    priority: Optional[DefectPriority] = None
    status: Optional[DefectStatus] = None
    assignee: Optional[str] = None
    project_id: Optional[str] = None
    due_date: Optional[str] = None

    _supplied_keys: list[str] = PrivateAttr(default_factory=list)

    @model_validator(mode="wrap")
    @classmethod
    def _remember_supplied_keys(cls, data: Any, handler):
        update = handler(data)
        if isinstance(data, dict):
            update._supplied_keys = list(data)
        return update

    def changes(self) -> dict[str, Any]:
        """Supplied fields only, keyed by wire name."""
        return self.model_dump(exclude_unset=True, by_alias=True, mode="json")

    def supplied_keys(self) -> list[str]:
        """Keys exactly as the client sent them, in request order."""
        return list(self._supplied_keys)


class CommentCreate(BaseModel):
    comment: str

    @field_validator("comment")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be empty")
        return value


class RoleUpdateRequest(BaseModel):
    # Checked against Role after the admin gate, so non-admins always get 403.
    role: Any = None


# Responses
class IdentityResponse(BaseModel):
    """Identity as reported by the identity provider."""
    id: str
    email: str
    user_metadata: dict[str, Any] = Field(default_factory=dict)


class SignupResponse(BaseModel):
    user: IdentityResponse


class LoginResponse(CamelModel):
    access_token: str
    token_type: str = "bearer"
    user: UserRecord


class MeResponse(BaseModel):
    user: UserRecord
    permissions: dict[str, bool]


class UserEnvelope(BaseModel):
    user: UserRecord


class UsersEnvelope(BaseModel):
    users: list[UserRecord]


class ProjectEnvelope(BaseModel):
    project: ProjectRecord


class ProjectsEnvelope(BaseModel):
    projects: list[ProjectRecord]


class DefectEnvelope(BaseModel):
    defect: DefectRecord


class DefectsEnvelope(BaseModel):
    defects: list[DefectRecord]


class DefectDetailResponse(BaseModel):
    defect: DefectRecord
    history: list[HistoryEntry]


class CommentEnvelope(BaseModel):
    comment: DefectComment


class AnalyticsResponse(CamelModel):
    total_defects: int
    overdue: int
    status_count: dict[str, int]
    priority_count: dict[str, int]


class DashboardResponse(CamelModel):
    analytics: AnalyticsResponse
    closed_rate: int
    recent_defects: list[DefectRecord]


class ProjectPerformance(CamelModel):
    id: str
    name: str
    total: int
    completed: int
    completion_rate: int


class ProjectPerformanceResponse(BaseModel):
    projects: list[ProjectPerformance]


class ProjectStatsResponse(CamelModel):
    project_id: str
    total_defects: int
    completed_defects: int
    active_defects: int
    overdue_defects: int


class TimelinePoint(BaseModel):
    date: str
    count: int


class TimelineResponse(BaseModel):
    timeline: list[TimelinePoint]
