from __future__ import annotations

import json

import pytest

from defect_tracker.config import Settings
from defect_tracker.kv_store import RedisKeyValueStore, SqlKeyValueStore, build_store
from defect_tracker.repository import RecordRepository, history_key
from defect_tracker.schemas import HistoryEntry, UserRecord


def test_sql_store_get_missing_key_returns_none(store) -> None:
    assert store.get("defect:missing") is None


def test_sql_store_set_overwrites_whole_document(store) -> None:
    store.set("defect:1", {"id": "1", "title": "old", "extra": True})
    store.set("defect:1", {"id": "1", "title": "new"})

    assert store.get("defect:1") == {"id": "1", "title": "new"}


def test_sql_store_prefix_scan_matches_only_prefix(store) -> None:
    store.set("defect:1", {"id": "1"})
    store.set("defect:2", {"id": "2"})
    store.set("project:1", {"id": "p1"})
    store.set("xdefect:3", {"id": "3"})

    ids = sorted(doc["id"] for doc in store.get_by_prefix("defect:"))
    assert ids == ["1", "2"]


def test_sql_store_prefix_treats_like_wildcards_literally(store) -> None:
    store.set("history:a_b:1", {"id": "1"})
    store.set("history:axb:2", {"id": "2"})
    store.set("history:a%:3", {"id": "3"})

    assert [doc["id"] for doc in store.get_by_prefix("history:a_b:")] == ["1"]
    assert [doc["id"] for doc in store.get_by_prefix("history:a%:")] == ["3"]


def test_sql_store_keeps_unicode_values(store) -> None:
    store.set("defect:1", {"status": "В работе"})
    assert store.get("defect:1")["status"] == "В работе"


class _RedisStub:
    def __init__(self) -> None:
        self.data: dict[str, str] = {}
        self.scan_patterns: list[str] = []

    def get(self, key):
        return self.data.get(key)

    def set(self, key, value):
        self.data[key] = value

    def scan_iter(self, match=None, count=None):
        self.scan_patterns.append(match)
        prefix = match.rstrip("*").replace("\\", "")
        keys = [key for key in self.data if key.startswith(prefix)]
        # SCAN may return duplicates.
        return iter(keys + keys[:1])

    def mget(self, keys):
        return [self.data.get(key) for key in keys]


def test_redis_store_round_trips_json_documents() -> None:
    client = _RedisStub()
    kv = RedisKeyValueStore(client)

    kv.set("user:1", {"id": "1", "name": "Иван"})

    assert json.loads(client.data["user:1"]) == {"id": "1", "name": "Иван"}
    assert kv.get("user:1") == {"id": "1", "name": "Иван"}
    assert kv.get("user:2") is None


def test_redis_store_prefix_scan_dedupes_and_escapes_glob() -> None:
    client = _RedisStub()
    kv = RedisKeyValueStore(client)
    kv.set("defect:1", {"id": "1"})
    kv.set("defect:2", {"id": "2"})
    kv.set("project:1", {"id": "p1"})

    ids = sorted(doc["id"] for doc in kv.get_by_prefix("defect:"))
    assert ids == ["1", "2"]

    kv.get_by_prefix("history:a*b:")
    assert client.scan_patterns[-1] == "history:a\\*b:*"


def test_redis_store_empty_prefix_scan_skips_mget() -> None:
    client = _RedisStub()
    client.mget = lambda keys: pytest.fail("mget must not be called without keys")
    assert RedisKeyValueStore(client).get_by_prefix("defect:") == []


def test_build_store_rejects_unknown_backend() -> None:
    with pytest.raises(RuntimeError, match="KV_BACKEND"):
        build_store(Settings(KV_BACKEND="memcached"))


def test_build_store_defaults_to_sql_backend() -> None:
    assert isinstance(build_store(Settings(KV_BACKEND="sql")), SqlKeyValueStore)


def test_repository_stores_camel_case_documents(store, repo) -> None:
    repo.save_user(UserRecord(id="u1", email="a@b.c", name="A", created_at="2024-01-01T00:00:00.000Z"))

    assert store.get("user:u1") == {
        "id": "u1",
        "email": "a@b.c",
        "name": "A",
        "role": "observer",
        "createdAt": "2024-01-01T00:00:00.000Z",
        "updatedAt": None,
    }
    assert repo.get_user("u1").created_at == "2024-01-01T00:00:00.000Z"


def test_repository_history_is_scoped_and_oldest_first(store, repo) -> None:
    for entry_id, ts in (("b", "2024-01-02T00:00:00.000Z"), ("a", "2024-01-01T00:00:00.000Z")):
        repo.add_history(
            HistoryEntry(id=entry_id, defect_id="d1", action="updated", user_id="u", timestamp=ts, details="x")
        )
    repo.add_history(
        HistoryEntry(id="c", defect_id="d10", action="created", user_id="u", timestamp="2024-01-01T00:00:00.000Z", details="x")
    )

    assert store.get(history_key("d1", "a"))["defectId"] == "d1"
    assert [entry.id for entry in repo.list_history("d1")] == ["a", "b"]


def test_repository_tolerates_legacy_defect_documents(store, repo) -> None:
    store.set(
        "defect:old",
        {
            "id": "old",
            "title": "Legacy",
            "status": "archived",
            "createdBy": "u",
            "createdAt": "2023-05-01T00:00:00Z",
            "updatedAt": "2023-05-01T00:00:00Z",
            "customField": 1,
        },
    )

    [defect] = repo.list_defects()
    assert defect.status == "archived"
    assert defect.priority is None
    assert defect.model_dump(by_alias=True)["customField"] == 1
