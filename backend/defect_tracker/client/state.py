"""Application state container for a defect tracker front-end.

All view state lives in one ``AppState`` value; it changes only through the
``AppStore`` action methods. Page loads fetch their collections in parallel
and apply them all at once, or record the first error and keep the previous
data. There is no cancellation: a load always runs to completion.
"""
from __future__ import annotations

import logging
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import timezone, tzinfo
from typing import Any, Optional

from ..schemas import (
    AnalyticsResponse,
    DefectRecord,
    HistoryEntry,
    ProjectPerformance,
    ProjectRecord,
    ProjectStatsResponse,
    TimelinePoint,
    UserRecord,
)
from ..services.aggregation import (
    closed_rate,
    creation_timeline,
    filter_defects,
    project_performance,
    project_stats,
)
from .api import ApiClient, ApiError

logger = logging.getLogger(__name__)

UNKNOWN_NAME = "Неизвестно"

PAGE_DASHBOARD = "/"
PAGE_DEFECTS = "/defects"
PAGE_CREATE_DEFECT = "/create-defect"
PAGE_DEFECT_DETAIL = "/defect-detail"
PAGE_PROJECTS = "/projects"
PAGE_ANALYTICS = "/analytics"
PAGE_ADMIN = "/admin"

# Navigation menu: (title, page, permission required to see it).
MENU = (
    ("Дашборд", PAGE_DASHBOARD, "canViewDashboard"),
    ("Дефекты", PAGE_DEFECTS, "canViewDefects"),
    ("Проекты", PAGE_PROJECTS, "canViewProjects"),
    ("Аналитика", PAGE_ANALYTICS, "canViewAnalytics"),
    ("Администратор", PAGE_ADMIN, "canManageUsers"),
)

PAGE_PERMISSIONS = {
    PAGE_CREATE_DEFECT: "canCreateDefects",
    PAGE_DEFECT_DETAIL: "canViewDefects",
    **{page: permission for _, page, permission in MENU},
}


@dataclass
class Notification:
    level: str  # "success" or "error"
    message: str


@dataclass
class UserSession:
    access_token: str
    user: UserRecord
    permissions: dict[str, bool] = field(default_factory=dict)


@dataclass
class PageState:
    loading: bool = False
    error: Optional[str] = None


@dataclass
class DashboardState(PageState):
    analytics: Optional[AnalyticsResponse] = None
    closed_rate: int = 0
    recent_defects: list[DefectRecord] = field(default_factory=list)


@dataclass
class DefectFilter:
    search: str = ""
    status: str = "all"
    priority: str = "all"
    project_id: str = "all"


@dataclass
class DefectsState(PageState):
    defects: list[DefectRecord] = field(default_factory=list)
    projects: list[ProjectRecord] = field(default_factory=list)
    users: list[UserRecord] = field(default_factory=list)
    filter: DefectFilter = field(default_factory=DefectFilter)


@dataclass
class DefectDetailState(PageState):
    defect: Optional[DefectRecord] = None
    history: list[HistoryEntry] = field(default_factory=list)
    projects: list[ProjectRecord] = field(default_factory=list)
    users: list[UserRecord] = field(default_factory=list)


@dataclass
class ProjectsState(PageState):
    projects: list[ProjectRecord] = field(default_factory=list)
    defects: list[DefectRecord] = field(default_factory=list)
    users: list[UserRecord] = field(default_factory=list)


@dataclass
class AnalyticsState(PageState):
    analytics: Optional[AnalyticsResponse] = None
    defects: list[DefectRecord] = field(default_factory=list)
    projects: list[ProjectRecord] = field(default_factory=list)


@dataclass
class AdminState(PageState):
    users: list[UserRecord] = field(default_factory=list)


@dataclass
class AppState:
    session: Optional[UserSession] = None
    current_page: str = PAGE_DASHBOARD
    selected_defect_id: Optional[str] = None
    dashboard: DashboardState = field(default_factory=DashboardState)
    defects: DefectsState = field(default_factory=DefectsState)
    defect_detail: DefectDetailState = field(default_factory=DefectDetailState)
    projects: ProjectsState = field(default_factory=ProjectsState)
    analytics: AnalyticsState = field(default_factory=AnalyticsState)
    admin: AdminState = field(default_factory=AdminState)
    notifications: list[Notification] = field(default_factory=list)


def _fetch_all(calls: dict[str, Callable[[], Any]]) -> dict[str, Any]:
    """Run independent requests in parallel and wait for every one of them."""
    with ThreadPoolExecutor(max_workers=len(calls)) as pool:
        futures = {name: pool.submit(call) for name, call in calls.items()}
        return {name: future.result() for name, future in futures.items()}


class AppStore:
    """Owns AppState; every mutation goes through one of the action methods."""

    def __init__(self, api: ApiClient, tz: tzinfo = timezone.utc) -> None:
        self.api = api
        self.tz = tz
        self.state = AppState()

    # Notifications
    def notify(self, level: str, message: str) -> None:
        self.state.notifications.append(Notification(level=level, message=message))

    def drain_notifications(self) -> list[Notification]:
        pending, self.state.notifications = self.state.notifications, []
        return pending

    # Session
    @property
    def role(self) -> str:
        return self.state.session.user.role if self.state.session else "observer"

    def can(self, permission: str) -> bool:
        return bool(self.state.session and self.state.session.permissions.get(permission, False))

    def signup(self, email: str, password: str, name: str) -> bool:
        try:
            self.api.signup(email, password, name)
        except ApiError as exc:
            self.notify("error", exc.message)
            return False
        self.notify("success", "Регистрация прошла успешно")
        return True

    def login(self, email: str, password: str) -> bool:
        try:
            data = self.api.login(email, password)
            me = self.api.me()
        except ApiError as exc:
            self.notify("error", exc.message)
            return False
        self.state = AppState(
            session=UserSession(
                access_token=data["accessToken"],
                user=UserRecord.model_validate(me["user"]),
                permissions=dict(me.get("permissions") or {}),
            )
        )
        self.notify("success", "Вход выполнен успешно")
        return True

    def logout(self) -> None:
        self.api.access_token = None
        self.state = AppState()
        self.notify("success", "Выход выполнен успешно")

    # Navigation
    def menu(self) -> list[tuple[str, str]]:
        """Menu entries visible to the current role."""
        return [(title, page) for title, page, permission in MENU if self.can(permission)]

    def navigate(self, page: str) -> bool:
        if page not in PAGE_PERMISSIONS:
            raise ValueError(f"Unknown page: {page}")
        if not self.can(PAGE_PERMISSIONS[page]):
            return False
        self.state.current_page = page
        self.state.selected_defect_id = None
        return True

    def view_defect(self, defect_id: str) -> None:
        self.state.current_page = PAGE_DEFECT_DETAIL
        self.state.selected_defect_id = defect_id

    # Loading
    def _load(self, page: PageState, calls: dict[str, Callable[[], Any]], apply: Callable[[dict[str, Any]], None], failure: str) -> bool:
        page.loading = True
        try:
            results = _fetch_all(calls)
        except ApiError as exc:
            logger.warning("Page load failed: %s", exc.message)
            page.error = exc.message or failure
            return False
        finally:
            page.loading = False
        apply(results)
        page.error = None
        return True

    def load_page(self) -> bool:
        """Fetch what the current page shows."""
        loaders = {
            PAGE_DASHBOARD: self._load_dashboard,
            PAGE_DEFECTS: self._load_defects,
            PAGE_DEFECT_DETAIL: self._load_defect_detail,
            PAGE_PROJECTS: self._load_projects,
            PAGE_ANALYTICS: self._load_analytics,
            PAGE_ADMIN: self._load_admin,
        }
        loader = loaders.get(self.state.current_page)
        return loader() if loader else True

    def _load_dashboard(self) -> bool:
        page = self.state.dashboard

        def apply(results: dict[str, Any]) -> None:
            data = results["dashboard"]
            page.analytics = AnalyticsResponse.model_validate(data["analytics"])
            page.closed_rate = data["closedRate"]
            page.recent_defects = [DefectRecord.model_validate(d) for d in data["recentDefects"]]

        return self._load(page, {"dashboard": self.api.dashboard}, apply, "Ошибка загрузки данных")

    def _load_defects(self) -> bool:
        page = self.state.defects

        def apply(results: dict[str, Any]) -> None:
            page.defects = [DefectRecord.model_validate(d) for d in results["defects"]["defects"]]
            page.projects = [ProjectRecord.model_validate(p) for p in results["projects"]["projects"]]
            page.users = [UserRecord.model_validate(u) for u in results["users"]["users"]]

        calls = {
            "defects": self.api.list_defects,
            "projects": self.api.list_projects,
            "users": self.api.list_users,
        }
        return self._load(page, calls, apply, "Ошибка загрузки дефектов")

    def _load_defect_detail(self) -> bool:
        page = self.state.defect_detail
        defect_id = self.state.selected_defect_id
        if defect_id is None:
            page.error = "Дефект не выбран"
            return False

        def apply(results: dict[str, Any]) -> None:
            detail = results["defect"]
            page.defect = DefectRecord.model_validate(detail["defect"])
            page.history = [HistoryEntry.model_validate(h) for h in detail.get("history") or []]
            page.projects = [ProjectRecord.model_validate(p) for p in results["projects"]["projects"]]
            page.users = [UserRecord.model_validate(u) for u in results["users"]["users"]]

        calls = {
            "defect": lambda: self.api.get_defect(defect_id),
            "users": self.api.list_users,
            "projects": self.api.list_projects,
        }
        return self._load(page, calls, apply, "Ошибка загрузки дефекта")

    def _load_projects(self) -> bool:
        page = self.state.projects

        def apply(results: dict[str, Any]) -> None:
            page.projects = [ProjectRecord.model_validate(p) for p in results["projects"]["projects"]]
            page.defects = [DefectRecord.model_validate(d) for d in results["defects"]["defects"]]
            page.users = [UserRecord.model_validate(u) for u in results["users"]["users"]]

        calls = {
            "projects": self.api.list_projects,
            "defects": self.api.list_defects,
            "users": self.api.list_users,
        }
        return self._load(page, calls, apply, "Ошибка загрузки проектов")

    def _load_analytics(self) -> bool:
        page = self.state.analytics

        def apply(results: dict[str, Any]) -> None:
            page.analytics = AnalyticsResponse.model_validate(results["analytics"])
            page.defects = [DefectRecord.model_validate(d) for d in results["defects"]["defects"]]
            page.projects = [ProjectRecord.model_validate(p) for p in results["projects"]["projects"]]

        calls = {
            "analytics": self.api.analytics,
            "defects": self.api.list_defects,
            "projects": self.api.list_projects,
        }
        return self._load(page, calls, apply, "Ошибка загрузки аналитики")

    def _load_admin(self) -> bool:
        page = self.state.admin

        def apply(results: dict[str, Any]) -> None:
            page.users = [UserRecord.model_validate(u) for u in results["users"]["users"]]

        return self._load(page, {"users": self.api.list_users}, apply, "Ошибка загрузки пользователей")

    # Defect list
    def set_defect_filter(self, **changes: str) -> None:
        current = self.state.defects.filter
        for name, value in changes.items():
            if not hasattr(current, name):
                raise ValueError(f"Unknown filter: {name}")
            setattr(current, name, value)

    def visible_defects(self) -> list[DefectRecord]:
        page = self.state.defects
        return filter_defects(
            page.defects,
            search=page.filter.search,
            status=page.filter.status,
            priority=page.filter.priority,
            project_id=page.filter.project_id,
        )

    # Lookups; dangling references render as unknown.
    def user_name(self, user_id: Optional[str], users: list[UserRecord]) -> str:
        return next((u.name for u in users if u.id == user_id), UNKNOWN_NAME)

    def project_name(self, project_id: Optional[str], projects: list[ProjectRecord]) -> str:
        return next((p.name for p in projects if p.id == project_id), UNKNOWN_NAME)

    # Mutations
    def create_defect(self, defect: dict[str, Any]) -> bool:
        try:
            self.api.create_defect(defect)
        except ApiError as exc:
            self.notify("error", exc.message)
            return False
        self.notify("success", "Дефект создан")
        self.navigate(PAGE_DEFECTS)
        return True

    def save_defect(self, updates: dict[str, Any]) -> bool:
        defect_id = self.state.selected_defect_id
        if defect_id is None:
            return False
        try:
            self.api.update_defect(defect_id, updates)
        except ApiError as exc:
            self.state.defect_detail.error = exc.message
            return False
        return self._load_defect_detail()

    def add_comment(self, text: str) -> bool:
        defect_id = self.state.selected_defect_id
        if defect_id is None or not text.strip():
            return False
        try:
            self.api.add_comment(defect_id, text)
        except ApiError as exc:
            self.state.defect_detail.error = exc.message
            return False
        return self._load_defect_detail()

    def create_project(self, project: dict[str, Any]) -> bool:
        try:
            self.api.create_project(project)
        except ApiError as exc:
            self.notify("error", exc.message)
            return False
        self.notify("success", "Проект создан")
        return self._load_projects()

    def update_user_role(self, user_id: str, role: str) -> bool:
        try:
            self.api.update_role(user_id, role)
        except ApiError:
            self.notify("error", "Ошибка при обновлении роли пользователя")
            return False
        self.state.admin.users = [
            user.model_copy(update={"role": role}) if user.id == user_id else user
            for user in self.state.admin.users
        ]
        self.notify("success", "Роль пользователя успешно обновлена")
        return True

    def export_report(self) -> Optional[str]:
        try:
            return self.api.export_csv(tz=getattr(self.tz, "key", "UTC"))
        except ApiError as exc:
            self.notify("error", exc.message)
            return None

    # Derived views
    def project_stats(self, project_id: str) -> ProjectStatsResponse:
        return project_stats(project_id, self.state.projects.defects)

    def project_performance(self) -> list[ProjectPerformance]:
        page = self.state.analytics
        return project_performance(page.projects, page.defects)

    def timeline(self, max_days: int = 30) -> list[TimelinePoint]:
        return creation_timeline(self.state.analytics.defects, tz=self.tz, max_days=max_days)

    def closed_rate(self) -> int:
        analytics = self.state.analytics.analytics
        return closed_rate(analytics) if analytics else 0
