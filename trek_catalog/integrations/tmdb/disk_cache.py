"""
On-disk TMDb response cache with a time-to-live.

Each request key maps to `<sha256>.json` under the cache directory, holding the
payload with its `cachedAt` and `expiresAt` timestamps (epoch seconds). Expired
or unreadable entries count as misses. Entries are written through a temp file
and `os.replace`, so a reader never sees a half-written file.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import time
from dataclasses import dataclass
from pathlib import Path
from tempfile import NamedTemporaryFile
from threading import Lock
from typing import Any, Callable, Mapping

logger = logging.getLogger(__name__)

DEFAULT_CACHE_TTL_SECONDS = 24 * 60 * 60


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    writes: int = 0

    @property
    def hit_rate(self) -> float:
        lookups = self.hits + self.misses
        return self.hits / lookups if lookups else 0.0


def cache_key(url: str, params: Mapping[str, Any] | None) -> str:
    canonical = json.dumps(
        {"url": url, "params": sorted((str(k), str(v)) for k, v in (params or {}).items())},
        sort_keys=True,
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class FileResponseCache:
    def __init__(
        self,
        cache_dir: str | Path,
        *,
        ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be > 0, got {ttl_seconds}")
        self.cache_dir = Path(cache_dir)
        self.ttl_seconds = float(ttl_seconds)
        self.stats = CacheStats()
        self._clock = clock
        self._lock = Lock()

    def path_for(self, url: str, params: Mapping[str, Any] | None) -> Path:
        return self.cache_dir / f"{cache_key(url, params)}.json"

    def _read(self, path: Path) -> dict[str, Any] | None:
        try:
            entry = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as exc:
            logger.debug(f"unreadable cache entry {path.name}: {exc}")
            return None
        if not isinstance(entry, dict) or not isinstance(entry.get("data"), dict):
            return None
        return entry

    def _is_expired(self, entry: Mapping[str, Any]) -> bool:
        expires_at = entry.get("expiresAt")
        return not isinstance(expires_at, (int, float)) or self._clock() > expires_at

    def get(self, url: str, params: Mapping[str, Any] | None) -> dict[str, Any] | None:
        entry = self._read(self.path_for(url, params))
        hit = entry is not None and not self._is_expired(entry)
        with self._lock:
            if hit:
                self.stats.hits += 1
            else:
                self.stats.misses += 1
        return entry["data"] if hit else None

    def put(self, url: str, params: Mapping[str, Any] | None, payload: dict[str, Any]) -> None:
        now = self._clock()
        entry = {
            "url": url,
            "params": {str(k): str(v) for k, v in (params or {}).items()},
            "cachedAt": now,
            "expiresAt": now + self.ttl_seconds,
            "data": payload,
        }
        path = self.path_for(url, params)
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        tmp = NamedTemporaryFile(
            mode="w",
            encoding="utf-8",
            dir=self.cache_dir,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
        )
        tmp_path = Path(tmp.name)
        try:
            with tmp:
                json.dump(entry, tmp)
            os.replace(tmp_path, path)
        finally:
            if tmp_path.exists():
                tmp_path.unlink()
        with self._lock:
            self.stats.writes += 1

    def _entries(self) -> list[Path]:
        if not self.cache_dir.is_dir():
            return []
        return sorted(self.cache_dir.glob("*.json"))

    def cleanup_expired(self) -> int:
        """Delete expired and unreadable entries; returns how many were removed."""

        removed = 0
        for path in self._entries():
            entry = self._read(path)
            if entry is None or self._is_expired(entry):
                path.unlink(missing_ok=True)
                removed += 1
        if removed:
            logger.info(f"removed {removed} expired TMDb cache entries from {self.cache_dir}")
        return removed

    def clear(self) -> int:
        entries = self._entries()
        for path in entries:
            path.unlink(missing_ok=True)
        return len(entries)

    def __len__(self) -> int:
        return len(self._entries())
