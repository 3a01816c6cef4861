"""HTTP client for the defect tracker API."""
from __future__ import annotations

import logging
from typing import Any, Optional

import requests

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Request failed; ``message`` is the server's error text when it sent one."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class ApiClient:
    """Thin wrapper over every API operation. Responses are returned as parsed JSON."""

    def __init__(
        self,
        base_url: str,
        access_token: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout: int = 10,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.access_token = access_token
        self._session = session or requests.Session()
        self._timeout = timeout

    def _request(
        self,
        method: str,
        endpoint: str,
        *,
        json: Any = None,
        params: Optional[dict[str, Any]] = None,
        authenticated: bool = True,
    ) -> Any:
        headers = {"Content-Type": "application/json"}
        if authenticated and self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        try:
            response = self._session.request(
                method,
                f"{self.base_url}{endpoint}",
                json=json,
                params=params,
                headers=headers,
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            logger.warning("%s %s failed: %s", method, endpoint, exc)
            raise ApiError("Network error") from exc

        if not response.ok:
            try:
                data = response.json()
            except ValueError:
                message = "Network error"
            else:
                error = data.get("error") if isinstance(data, dict) else None
                message = str(error) if error else f"HTTP {response.status_code}"
            raise ApiError(message, response.status_code)
        if "json" not in response.headers.get("content-type", ""):
            return response.text
        return response.json()

    # Auth
    def health(self) -> dict:
        return self._request("GET", "/health", authenticated=False)

    def signup(self, email: str, password: str, name: str, role: str = "observer") -> dict:
        return self._request(
            "POST",
            "/signup",
            json={"email": email, "password": password, "name": name, "role": role},
            authenticated=False,
        )

    def login(self, email: str, password: str) -> dict:
        data = self._request(
            "POST",
            "/auth/login",
            json={"email": email, "password": password},
            authenticated=False,
        )
        self.access_token = data["accessToken"]
        return data

    def me(self) -> dict:
        return self._request("GET", "/auth/me")

    # Projects
    def list_projects(self) -> dict:
        return self._request("GET", "/projects")

    def create_project(self, project: dict) -> dict:
        return self._request("POST", "/projects", json=project)

    def project_stats(self, project_id: str) -> dict:
        return self._request("GET", f"/projects/{project_id}/stats")

    # Defects
    def list_defects(self, **filters: Optional[str]) -> dict:
        params = {key: value for key, value in filters.items() if value}
        return self._request("GET", "/defects", params=params or None)

    def get_defect(self, defect_id: str) -> dict:
        return self._request("GET", f"/defects/{defect_id}")

    def create_defect(self, defect: dict) -> dict:
        return self._request("POST", "/defects", json=defect)

    def update_defect(self, defect_id: str, updates: dict) -> dict:
        return self._request("PUT", f"/defects/{defect_id}", json=updates)

    def add_comment(self, defect_id: str, comment: str) -> dict:
        return self._request("POST", f"/defects/{defect_id}/comments", json={"comment": comment})

    # Analytics
    def analytics(self) -> dict:
        return self._request("GET", "/analytics")

    def dashboard(self) -> dict:
        return self._request("GET", "/analytics/dashboard")

    def export_csv(self, tz: str = "UTC") -> str:
        return self._request("GET", "/analytics/export", params={"tz": tz})

    # Users
    def list_users(self) -> dict:
        return self._request("GET", "/users")

    def update_role(self, user_id: str, role: str) -> dict:
        return self._request("PUT", f"/users/{user_id}/role", json={"role": role})
