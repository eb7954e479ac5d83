"""Fingerprint index deciding whether cached step results are still valid."""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

INDEX_FILENAME = "fingerprints.json"


def cache_name(prefix: str, fingerprint: str) -> str:
    """Name of a cache entry produced under ``fingerprint`` (``<prefix>-F<fingerprint>``)."""
    return f"{prefix}-F{fingerprint}"


class CacheIndex:
    """Tracks the fingerprint each step's cached result was produced under.

    The index is a JSON file inside the cache folder. It only records
    fingerprints; storing the cached results themselves is up to the caller.
    A corrupt or unreadable index is treated as empty so every entry counts
    as stale.
    """

    def __init__(self, cache_folder: Path | str) -> None:
        self.cache_folder = Path(cache_folder)
        self.index_path = self.cache_folder / INDEX_FILENAME
        self._entries: dict[str, dict[str, Any]] = {}
        self._load()

    def _load(self) -> None:
        if not self.index_path.exists():
            return
        try:
            data = json.loads(self.index_path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Failed to read cache index %s: %s - treating as empty", self.index_path, e)
            return
        if not isinstance(data, dict):
            logger.warning("Cache index %s is not a mapping - treating as empty", self.index_path)
            return
        self._entries = {k: v for k, v in data.items() if isinstance(v, dict)}

    def _save(self) -> None:
        self.cache_folder.mkdir(parents=True, exist_ok=True)
        self.index_path.write_text(json.dumps(self._entries, indent=2, sort_keys=True), encoding="utf-8")

    def stored(self, name: str) -> str | None:
        """Fingerprint recorded for ``name``, if any."""
        entry = self._entries.get(name)
        return entry.get("fingerprint") if entry else None

    def is_current(self, name: str, fingerprint: str) -> bool:
        """True when the recorded fingerprint for ``name`` matches ``fingerprint``."""
        stored = self.stored(name)
        if stored is None:
            return False
        if stored != fingerprint:
            logger.info("Fingerprint of %s changed (%s -> %s) - cache is stale", name, stored, fingerprint)
            return False
        return True

    def record(self, name: str, fingerprint: str) -> None:
        self._entries[name] = {
            "fingerprint": fingerprint,
            "recorded_at": datetime.now(UTC).isoformat(),
        }
        self._save()

    def invalidate(self, name: str) -> bool:
        """Drop the entry for ``name``. Returns True if one existed."""
        if self._entries.pop(name, None) is None:
            return False
        self._save()
        logger.info("Invalidated cache entry for %s", name)
        return True

    def __len__(self) -> int:
        return len(self._entries)


__all__ = ["INDEX_FILENAME", "CacheIndex", "cache_name"]
