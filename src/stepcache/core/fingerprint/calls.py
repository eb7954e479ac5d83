"""Hashing of arbitrary named callables resolved in the running process."""

from __future__ import annotations

import importlib
import inspect
import logging
import re
from typing import TYPE_CHECKING, Any

from stepcache.core.digest import digest_bytes
from stepcache.core.interfaces import canonical_identifier

if TYPE_CHECKING:
    from collections.abc import Iterable

    from stepcache.core.interfaces import CallableRegistry

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")


def canonical_source(obj: Any) -> str | None:
    """Return a whitespace-normalized single-line form of a callable's source.

    Falls back to the code object's bytecode and constants when the source
    cannot be retrieved (for example functions defined in an interactive
    session). Returns None when neither is available.
    """
    try:
        source = inspect.getsource(obj)
    except (OSError, TypeError):
        code = getattr(obj, "__code__", None)
        if code is None:
            return None
        return f"{code.co_code.hex()} {code.co_consts!r}"
    return _WHITESPACE.sub(" ", source).strip()


def _import_attribute(module_name: str, qualname: str) -> Any:
    obj: Any = importlib.import_module(module_name)
    for part in qualname.split("."):
        obj = getattr(obj, part)
    return obj


class ModuleCallableRegistry:
    """Resolves ``module:qualname`` (or dotted) identifiers to callables.

    Explicit registrations take precedence over import-based resolution.
    """

    def __init__(self) -> None:
        self._registered: dict[str, Any] = {}

    def register(self, identifier: str, obj: Any) -> None:
        self._registered[canonical_identifier(identifier)] = obj

    def resolve(self, identifier: str) -> Any | None:
        identifier = canonical_identifier(identifier)
        if identifier in self._registered:
            return self._registered[identifier]

        try:
            if ":" in identifier:
                module_name, _, qualname = identifier.partition(":")
                return _import_attribute(module_name, qualname)

            parts = identifier.split(".")
            for split in range(len(parts) - 1, 0, -1):
                module_name = ".".join(parts[:split])
                try:
                    importlib.import_module(module_name)
                except ImportError:
                    continue
                return _import_attribute(module_name, ".".join(parts[split:]))

            # Bare or unqualified names are looked up in the running script
            return _import_attribute("__main__", identifier)
        except Exception as exc:  # noqa: BLE001 - resolution failures only narrow the inputs
            logger.debug("Could not resolve '%s': %s", identifier, exc)
        return None

    def lookup(self, identifier: str) -> str | None:
        obj = self.resolve(identifier)
        if obj is None or not callable(obj):
            return None
        return canonical_source(obj)


def hash_calls(
    identifiers: Iterable[str],
    algorithm: str = "md5",
    registry: CallableRegistry | None = None,
) -> dict[str, str]:
    """Hash the canonical source of each resolvable identifier.

    Unresolvable identifiers are dropped from the result.
    """
    registry = registry or ModuleCallableRegistry()
    result: dict[str, str] = {}
    for identifier in sorted(set(identifiers)):
        text = registry.lookup(identifier)
        if text is None:
            logger.debug("Dropping unresolvable call '%s'", identifier)
            continue
        result[identifier] = digest_bytes(text.encode("utf-8"), algorithm)
    return result


__all__ = ["ModuleCallableRegistry", "canonical_source", "hash_calls"]
