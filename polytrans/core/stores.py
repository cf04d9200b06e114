"""
Key-value stores used by the engine.

- ConfigStore: settings and named options, no expiry, read-mostly
- JobStore: expiring rows for background job records and results. Every key
  has a single writer except execution locks, which are taken with add();
  expired rows are purged on every write
"""

from __future__ import annotations

import json
import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional, Tuple

from polytrans.config import load_config, save_config
from polytrans.core import database as db
from polytrans.logger import get_logger

logger = get_logger(__name__)

OPTION_PREFIX = "option_"


class ConfigStore:
    """Settings store backed by the app_config table."""

    def load(self) -> Dict[str, Any]:
        return load_config()

    def save(self, config: Dict[str, Any]) -> None:
        save_config(config)

    def get(self, key: str, default: Any = None) -> Any:
        raw = db.get_app_config(OPTION_PREFIX + key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"Option '{key}' holds invalid JSON, returning raw value")
            return raw

    def set(self, key: str, value: Any) -> None:
        db.set_app_config(OPTION_PREFIX + key, json.dumps(value, ensure_ascii=False))

    def delete(self, key: str) -> None:
        db.delete_app_config(OPTION_PREFIX + key)


class JobStore(ABC):
    """Expiring key-value store for job records and results."""

    @abstractmethod
    def set(self, key: str, value: Dict[str, Any], ttl: Optional[float] = None) -> None:
        """Store a JSON-compatible value; ttl is in seconds, None means no expiry."""

    @abstractmethod
    def add(self, key: str, value: Dict[str, Any], ttl: Optional[float] = None) -> bool:
        """Store a value only when the key is absent or expired; returns whether it was stored."""

    @abstractmethod
    def get(self, key: str) -> Optional[Dict[str, Any]]:
        """Return the value, or None when absent or expired."""

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove a key; returns True when something was deleted."""


class SqliteJobStore(JobStore):
    """Job store persisted in the job_store table, shared across processes."""

    shared = True

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock

    def set(self, key: str, value: Dict[str, Any], ttl: Optional[float] = None) -> None:
        expires_at = self._clock() + ttl if ttl else None
        db.job_store_set(key, json.dumps(value, ensure_ascii=False), expires_at)
        self.purge_expired()

    def add(self, key: str, value: Dict[str, Any], ttl: Optional[float] = None) -> bool:
        now = self._clock()
        expires_at = now + ttl if ttl else None
        return db.job_store_add(key, json.dumps(value, ensure_ascii=False), expires_at, now)

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        raw = db.job_store_get(key, self._clock())
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.error(f"Job store key '{key}' holds invalid JSON")
            return None

    def delete(self, key: str) -> bool:
        return db.job_store_delete(key)

    def purge_expired(self) -> int:
        removed = db.job_store_purge_expired(self._clock())
        if removed:
            logger.debug(f"Purged {removed} expired job store rows")
        return removed


class MemoryJobStore(JobStore):
    """In-process job store; only visible to launchers that share this process."""

    shared = False

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._items: Dict[str, Tuple[str, Optional[float]]] = {}
        self._lock = threading.Lock()

    def set(self, key: str, value: Dict[str, Any], ttl: Optional[float] = None) -> None:
        expires_at = self._clock() + ttl if ttl else None
        # Store serialized so callers never share mutable state with the store
        with self._lock:
            self._purge_locked()
            self._items[key] = (json.dumps(value), expires_at)

    def add(self, key: str, value: Dict[str, Any], ttl: Optional[float] = None) -> bool:
        with self._lock:
            self._purge_locked()
            if key in self._items:
                return False
            self._items[key] = (json.dumps(value), self._clock() + ttl if ttl else None)
            return True

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            item = self._items.get(key)
            if item is None:
                return None
            raw, expires_at = item
            if expires_at is not None and expires_at <= self._clock():
                self._items.pop(key, None)
                return None
        return json.loads(raw)

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._items.pop(key, None) is not None

    def purge_expired(self) -> int:
        with self._lock:
            return self._purge_locked()

    def _purge_locked(self) -> int:
        now = self._clock()
        expired = [key for key, (_, expires_at) in self._items.items() if expires_at is not None and expires_at <= now]
        for key in expired:
            del self._items[key]
        return len(expired)
