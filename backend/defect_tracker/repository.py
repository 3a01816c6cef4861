"""Typed record access over the key-value store.

Key layout:
    user:<id>
    project:<id>
    defect:<id>
    history:<defectId>:<entryId>
"""
from __future__ import annotations

from .kv_store import KeyValueStore
from .schemas import DefectRecord, HistoryEntry, ProjectRecord, UserRecord


def user_key(user_id: str) -> str:
    return f"user:{user_id}"


def project_key(project_id: str) -> str:
    return f"project:{project_id}"


def defect_key(defect_id: str) -> str:
    return f"defect:{defect_id}"


def history_prefix(defect_id: str) -> str:
    return f"history:{defect_id}:"


def history_key(defect_id: str, entry_id: str) -> str:
    return f"{history_prefix(defect_id)}{entry_id}"


USER_PREFIX = "user:"
PROJECT_PREFIX = "project:"
DEFECT_PREFIX = "defect:"


class RecordRepository:
    """Read/write users, projects, defects and history entries.

    No retries and no multi-key transactions: store failures propagate to the
    caller unchanged.
    """

    def __init__(self, store: KeyValueStore) -> None:
        self.store = store

    # Users
    def get_user(self, user_id: str) -> UserRecord | None:
        doc = self.store.get(user_key(user_id))
        return UserRecord.model_validate(doc) if doc is not None else None

    def save_user(self, user: UserRecord) -> None:
        self.store.set(user_key(user.id), _dump(user))

    def list_users(self) -> list[UserRecord]:
        return [UserRecord.model_validate(doc) for doc in self.store.get_by_prefix(USER_PREFIX)]

    # Projects
    def get_project(self, project_id: str) -> ProjectRecord | None:
        doc = self.store.get(project_key(project_id))
        return ProjectRecord.model_validate(doc) if doc is not None else None

    def save_project(self, project: ProjectRecord) -> None:
        self.store.set(project_key(project.id), _dump(project))

    def list_projects(self) -> list[ProjectRecord]:
        return [ProjectRecord.model_validate(doc) for doc in self.store.get_by_prefix(PROJECT_PREFIX)]

    # Defects
    def get_defect(self, defect_id: str) -> DefectRecord | None:
        doc = self.store.get(defect_key(defect_id))
        return DefectRecord.model_validate(doc) if doc is not None else None

    def save_defect(self, defect: DefectRecord) -> None:
        self.store.set(defect_key(defect.id), _dump(defect))

    def list_defects(self) -> list[DefectRecord]:
        return [DefectRecord.model_validate(doc) for doc in self.store.get_by_prefix(DEFECT_PREFIX)]

    # History
    def add_history(self, entry: HistoryEntry) -> None:
        self.store.set(history_key(entry.defect_id, entry.id), _dump(entry))

    def list_history(self, defect_id: str) -> list[HistoryEntry]:
        """All entries for one defect, oldest first."""
        entries = [
            HistoryEntry.model_validate(doc)
            for doc in self.store.get_by_prefix(history_prefix(defect_id))
        ]
        return sorted(entries, key=lambda entry: entry.timestamp)


def _dump(record) -> dict:
    return record.model_dump(by_alias=True, mode="json")
