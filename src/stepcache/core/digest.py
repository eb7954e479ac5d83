"""Digest primitives shared by every hashing step."""

from __future__ import annotations

import hashlib
import json
from typing import TYPE_CHECKING, Any

from stepcache.core.validation import ConfigurationError

if TYPE_CHECKING:
    from collections.abc import Iterable


def get_hasher(algorithm: str) -> Any:
    """Return a fresh hashlib object for ``algorithm``.

    Raises:
        ConfigurationError: If the algorithm is not available
    """
    try:
        return hashlib.new(algorithm)
    except (ValueError, TypeError) as exc:
        raise ConfigurationError(f"Unsupported hash algorithm '{algorithm}'") from exc


def hexdigest(hasher: Any) -> str:
    # shake_* digests need an explicit length
    if hasher.name.startswith("shake_"):
        return hasher.hexdigest(32)
    return hasher.hexdigest()


def digest_bytes(data: bytes, algorithm: str) -> str:
    hasher = get_hasher(algorithm)
    hasher.update(data)
    return hexdigest(hasher)


def digest_object(obj: Any, algorithm: str) -> str:
    """Hash the canonical JSON form of ``obj``."""
    serialized = json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=True)
    return digest_bytes(serialized.encode("utf-8"), algorithm)


def combine_hashes(values: Iterable[str], algorithm: str) -> str:
    """Digest an ordered sequence of component hashes into one value."""
    return digest_object(list(values), algorithm)


__all__ = ["combine_hashes", "digest_bytes", "digest_object", "get_hasher", "hexdigest"]
