"""Key-value store backends.

Documents are JSON-compatible dicts stored under string keys. Both backends
offer point get, point set and prefix scan; neither retries on failure and
neither offers atomicity across keys.
"""
from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from functools import lru_cache
from typing import Any

import redis
from sqlalchemy.orm import Session, sessionmaker

from .config import Settings, settings
from .database import Base, SessionLocal
from .models import KVEntry

logger = logging.getLogger(__name__)

Document = dict[str, Any]


class KeyValueStore(ABC):
    """Minimal document store contract used by the repository."""

    @abstractmethod
    def get(self, key: str) -> Document | None:
        ...

    @abstractmethod
    def set(self, key: str, value: Document) -> None:
        ...

    @abstractmethod
    def get_by_prefix(self, prefix: str) -> list[Document]:
        """Return every document whose key starts with prefix (order unspecified)."""


def _like_pattern(prefix: str) -> str:
    escaped = prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"{escaped}%"


class SqlKeyValueStore(KeyValueStore):
    """Store backed by a single SQL table (key text primary key, value JSON)."""

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def _session(self) -> Session:
        return self._session_factory()

    def create_schema(self) -> None:
        bind = self._session_factory.kw.get("bind")
        Base.metadata.create_all(bind=bind)

    def get(self, key: str) -> Document | None:
        with self._session() as db:
            entry = db.get(KVEntry, key)
            return entry.value if entry is not None else None

    def set(self, key: str, value: Document) -> None:
        with self._session() as db:
            db.merge(KVEntry(key=key, value=value))
            db.commit()

    def get_by_prefix(self, prefix: str) -> list[Document]:
        with self._session() as db:
            rows = (
                db.query(KVEntry.value)
                .filter(KVEntry.key.like(_like_pattern(prefix), escape="\\"))
                .all()
            )
            return [row[0] for row in rows]


def _glob_escape(prefix: str) -> str:
    return "".join(f"\\{ch}" if ch in "*?[]\\" else ch for ch in prefix)


class RedisKeyValueStore(KeyValueStore):
    """Store backed by plain Redis strings holding JSON."""

    def __init__(self, client: redis.Redis, scan_count: int = 500) -> None:
        self._client = client
        self._scan_count = scan_count

    def get(self, key: str) -> Document | None:
        raw = self._client.get(key)
        if raw is None:
            return None
        return json.loads(raw)

    def set(self, key: str, value: Document) -> None:
        self._client.set(key, json.dumps(value, ensure_ascii=False))

    def get_by_prefix(self, prefix: str) -> list[Document]:
        # SCAN may yield a key more than once.
        keys = list(dict.fromkeys(
            self._client.scan_iter(match=f"{_glob_escape(prefix)}*", count=self._scan_count)
        ))
        if not keys:
            return []
        return [json.loads(raw) for raw in self._client.mget(keys) if raw is not None]


def build_store(config: Settings) -> KeyValueStore:
    backend = config.KV_BACKEND.lower()
    if backend == "redis":
        logger.info("Using Redis key-value store at %s", config.REDIS_URL)
        return RedisKeyValueStore(redis.from_url(config.REDIS_URL, decode_responses=True))
    if backend == "sql":
        logger.info("Using SQL key-value store (table %s)", config.KV_TABLE_NAME)
        return SqlKeyValueStore(SessionLocal)
    raise RuntimeError(f"Unknown KV_BACKEND: {config.KV_BACKEND!r}")


@lru_cache()
def get_store() -> KeyValueStore:
    """FastAPI dependency: process-wide store instance."""
    return build_store(settings)


def init_store(store: KeyValueStore) -> None:
    """Create backing schema where the backend needs one."""
    if isinstance(store, SqlKeyValueStore):
        store.create_schema()
