"""Translation caches keyed by request text and language pair."""

from __future__ import annotations

import hashlib
import json
import logging
import pathlib
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

logger = logging.getLogger(__name__)


def make_cache_key(
    text: str,
    source_language: Optional[str],
    target_language: str,
    model: Optional[str] = None,
) -> str:
    digest = hashlib.sha256()
    for part in (source_language or "", target_language, model or "", text):
        digest.update(part.encode("utf-8"))
        digest.update(b"\x00")
    return digest.hexdigest()


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    size: int = 0

    @property
    def hit_ratio(self) -> float:
        lookups = self.hits + self.misses
        return self.hits / lookups if lookups else 0.0


class TranslationCache(ABC):
    """Storage for complete batch responses."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the cached value or ``None``."""

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store ``value`` under ``key``."""

    @abstractmethod
    def stats(self) -> CacheStats:
        """Return a snapshot of hit/miss counters."""


class MemoryCache(TranslationCache):
    """Thread-safe in-process cache with an optional time-to-live."""

    def __init__(self, ttl_seconds: Optional[float] = None) -> None:
        self.ttl_seconds = ttl_seconds
        self._data: Dict[str, Tuple[str, float]] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                self._misses += 1
                return None
            value, stored_at = entry
            if self.ttl_seconds is not None and time.monotonic() - stored_at > self.ttl_seconds:
                del self._data[key]
                self._misses += 1
                return None
            self._hits += 1
            return value

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = (value, time.monotonic())

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(hits=self._hits, misses=self._misses, size=len(self._data))


class FileCache(TranslationCache):
    """One JSON file per entry inside ``directory``."""

    def __init__(self, directory: pathlib.Path) -> None:
        self.directory = pathlib.Path(directory).expanduser()
        self.directory.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def _path_for(self, key: str) -> pathlib.Path:
        return self.directory / f"{key}.json"

    def get(self, key: str) -> Optional[str]:
        path = self._path_for(key)
        value: Optional[str] = None
        if path.exists():
            try:
                payload = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError) as exc:
                logger.warning("Ignoring unreadable cache entry %s: %s", path.name, exc)
            else:
                candidate = payload.get("value") if isinstance(payload, dict) else None
                if isinstance(candidate, str):
                    value = candidate
        with self._lock:
            if value is None:
                self._misses += 1
            else:
                self._hits += 1
        return value

    def set(self, key: str, value: str) -> None:
        path = self._path_for(key)
        payload = {"value": value, "timestamp": time.time()}
        tmp_path = path.with_name(f"{key}.{threading.get_ident()}.tmp")
        tmp_path.write_text(json.dumps(payload, ensure_ascii=False), encoding="utf-8")
        tmp_path.replace(path)

    def stats(self) -> CacheStats:
        size = sum(1 for _ in self.directory.glob("*.json"))
        with self._lock:
            return CacheStats(hits=self._hits, misses=self._misses, size=size)
