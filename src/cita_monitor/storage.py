"""
Subscriber persistence with pluggable key-value backends.
SQLite by default, Redis or in-memory can be selected in config.
"""
import json
import logging
import sqlite3
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, FrozenSet, Generator, Iterable, Optional, Union

from .errors import StoreUnavailable

logger = logging.getLogger(__name__)

Identity = Union[int, str]


class KeyValueBackend(ABC):
    """Abstract durable key-value interface"""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Get value by key, None when absent"""
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store value under key"""
        pass


class MemoryBackend(KeyValueBackend):
    """In-memory backend, lost on restart"""

    def __init__(self):
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value


class SqliteBackend(KeyValueBackend):
    """SQLite key-value table"""

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self._init_db()

    @contextmanager
    def _get_conn(self) -> Generator[sqlite3.Connection, None, None]:
        """Get database connection context manager"""
        try:
            conn = sqlite3.connect(self.db_path, timeout=10)
        except sqlite3.Error as e:
            raise StoreUnavailable(f"Cannot open {self.db_path}: {e}") from e
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            raise StoreUnavailable(f"SQLite error: {e}") from e
        finally:
            conn.close()

    def _init_db(self) -> None:
        """Initialize database tables"""
        with self._get_conn() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS kv (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
            """)

    def get(self, key: str) -> Optional[str]:
        with self._get_conn() as conn:
            row = conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        return row[0] if row else None

    def set(self, key: str, value: str) -> None:
        with self._get_conn() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO kv (key, value) VALUES (?, ?)",
                (key, value)
            )


class RedisBackend(KeyValueBackend):
    """Redis backend"""

    def __init__(self, host: str = "localhost", port: int = 6379, db: int = 0, client=None):
        import redis

        self._errors = (redis.RedisError,)
        if client is not None:
            self._client = client
            return
        try:
            self._client = redis.Redis(host=host, port=port, db=db, decode_responses=True)
            self._client.ping()
            logger.info(f"Connected to Redis at {host}:{port}")
        except redis.RedisError as e:
            raise StoreUnavailable(f"Failed to connect to Redis: {e}") from e

    def get(self, key: str) -> Optional[str]:
        try:
            value = self._client.get(key)
        except self._errors as e:
            raise StoreUnavailable(f"Redis get failed: {e}") from e
        if isinstance(value, bytes):
            value = value.decode("utf-8")
        return value

    def set(self, key: str, value: str) -> None:
        try:
            self._client.set(key, value)
        except self._errors as e:
            raise StoreUnavailable(f"Redis set failed: {e}") from e


def normalize_identity(identity: Identity) -> int:
    """Telegram chat ids are integers; accept their string form too"""
    if isinstance(identity, bool):
        raise ValueError(f"Invalid chat id: {identity!r}")
    try:
        return int(identity)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid chat id: {identity!r}")


class SubscriberStore:
    """Durable set of subscribed chat ids

    The whole set lives under one key. Every operation is a single locked
    read or read-modify-write, so readers never see a half-applied change.
    """

    KEY = "subscribers"

    def __init__(self, backend: KeyValueBackend, key: str = KEY):
        self.backend = backend
        self.key = key
        self._lock = threading.Lock()

    def _read(self) -> FrozenSet[int]:
        raw = self.backend.get(self.key)
        if raw is None:
            return frozenset()
        try:
            return frozenset(int(v) for v in json.loads(raw))
        except (TypeError, ValueError) as e:
            raise StoreUnavailable(f"Corrupted subscriber set under '{self.key}': {e}") from e

    def _write(self, members: Iterable[int]) -> None:
        self.backend.set(self.key, json.dumps(sorted(members)))

    def add(self, identity: Identity) -> None:
        chat_id = normalize_identity(identity)
        with self._lock:
            members = self._read()
            if chat_id in members:
                return
            self._write(members | {chat_id})
        logger.info(f"➕ Subscribed {chat_id}")

    def remove(self, identity: Identity) -> None:
        chat_id = normalize_identity(identity)
        with self._lock:
            members = self._read()
            if chat_id not in members:
                return
            self._write(members - {chat_id})
        logger.info(f"➖ Unsubscribed {chat_id}")

    def remove_many(self, identities: Iterable[Identity]) -> int:
        """Remove several chat ids at once, returns how many were present"""
        targets = {normalize_identity(i) for i in identities}
        if not targets:
            return 0
        with self._lock:
            members = self._read()
            present = members & targets
            if present:
                self._write(members - present)
        return len(present)

    def contains(self, identity: Identity) -> bool:
        chat_id = normalize_identity(identity)
        with self._lock:
            return chat_id in self._read()

    def list_all(self) -> FrozenSet[int]:
        with self._lock:
            return self._read()

    def count(self) -> int:
        return len(self.list_all())
