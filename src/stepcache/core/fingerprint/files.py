"""File and folder hashing for fingerprint inputs."""

from __future__ import annotations

import json
import logging
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any

from stepcache.core.digest import get_hasher, hexdigest

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 1024 * 1024


class HashMode(str, Enum):
    """How a path's state is turned into a hash."""

    CONTENT = "content"
    TIMESTAMP = "timestamp"


def _resolve_files(path: Path) -> list[Path]:
    if path.is_dir():
        return sorted(p for p in path.rglob("*") if p.is_file())
    return [path]


def _update_from_file(hasher: Any, file_path: Path) -> None:
    with file_path.open("rb") as f:
        while chunk := f.read(_CHUNK_SIZE):
            hasher.update(chunk)


def _hash_path(path: Path, mode: HashMode, algorithm: str) -> str:
    files = _resolve_files(path)
    hasher = get_hasher(algorithm)
    if mode is HashMode.TIMESTAMP:
        mtimes = [f.stat().st_mtime_ns for f in files]
        hasher.update(json.dumps(mtimes, separators=(",", ":")).encode("utf-8"))
    elif path.is_dir():
        for file_path in files:
            # Relative name and separators keep file boundaries visible
            hasher.update(file_path.relative_to(path).as_posix().encode("utf-8"))
            hasher.update(b"\x00")
            _update_from_file(hasher, file_path)
            hasher.update(b"\x00")
    else:
        _update_from_file(hasher, path)
    return hexdigest(hasher)


def hash_paths(
    paths: Iterable[Path | str],
    mode: HashMode | str,
    algorithm: str = "md5",
    *,
    omitted: list[str] | None = None,
    max_workers: int = 1,
) -> dict[str, str]:
    """Hash each path, keyed by the path's basename.

    Directories are expanded recursively. Timestamp mode hashes modification
    times only, content mode hashes the file bytes.

    Args:
        paths: Files or folders to hash. Missing paths are skipped silently.
        mode: ``HashMode.CONTENT`` or ``HashMode.TIMESTAMP``
        algorithm: hashlib algorithm name
        omitted: Optional list collecting paths that were skipped
        max_workers: Hash paths on a thread pool when greater than 1

    Returns:
        Mapping of basename -> hash in sorted input-path order. If two inputs
        share a basename the later one wins.
    """
    mode = HashMode(mode)
    candidates = sorted({Path(p) for p in paths}, key=str)

    existing: list[Path] = []
    for path in candidates:
        if path.exists():
            existing.append(path)
        else:
            logger.debug("Skipping missing path %s", path)
            if omitted is not None:
                omitted.append(str(path))

    if max_workers > 1 and len(existing) > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            hashes = list(executor.map(lambda p: _hash_path(p, mode, algorithm), existing))
    else:
        hashes = [_hash_path(p, mode, algorithm) for p in existing]

    result: dict[str, str] = {}
    origin: dict[str, Path] = {}
    for path, value in zip(existing, hashes):
        key = path.name
        if key in origin:
            logger.warning(
                "Paths %s and %s share basename '%s' - only %s is kept",
                origin[key],
                path,
                key,
                path,
            )
            del result[key]
        result[key] = value
        origin[key] = path
    return result


__all__ = ["HashMode", "hash_paths"]
