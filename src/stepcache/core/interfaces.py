"""Interfaces defining the fingerprint data model and collaborator contracts."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Iterable
    from pathlib import Path

_QUALIFIER = re.compile(r":+")

READ_TYPE = "read"


def canonical_identifier(identifier: str) -> str:
    """Collapse qualifier spellings so ``pkg::f``, ``pkg:::f`` and ``pkg:f`` compare equal."""
    return _QUALIFIER.sub(":", identifier.strip(), count=1)


@dataclass(frozen=True)
class DependencyRecord:
    """One step in a dependency closure."""

    call: str
    hash: str
    func: str
    type: str


@dataclass(frozen=True)
class FlagSet:
    """Ignore/monitor requests attached to a dependency closure."""

    ignore: frozenset[str] = frozenset()
    monitor: frozenset[str] = frozenset()

    @classmethod
    def from_iterables(cls, ignore: Iterable[str] = (), monitor: Iterable[str] = ()) -> FlagSet:
        return cls(ignore=frozenset(ignore), monitor=frozenset(monitor))

    def resolved(self) -> FlagSet:
        """Canonicalize spellings and drop ignored entries that are also monitored."""
        monitor = frozenset(canonical_identifier(x) for x in self.monitor)
        ignore = frozenset(canonical_identifier(x) for x in self.ignore) - monitor
        return FlagSet(ignore=ignore, monitor=monitor)

    def __or__(self, other: FlagSet) -> FlagSet:
        return FlagSet(ignore=self.ignore | other.ignore, monitor=self.monitor | other.monitor)


@dataclass(frozen=True)
class DependencyResult:
    """Closure returned by a dependency resolver."""

    records: tuple[DependencyRecord, ...]
    flags: FlagSet = field(default_factory=FlagSet)
    mappings: tuple[Path, ...] = ()

    def __post_init__(self) -> None:
        seen: set[str] = set()
        for record in self.records:
            if record.call in seen:
                raise ValueError(f"Duplicate dependency record for '{record.call}'")
            seen.add(record.call)


@runtime_checkable
class DependencyResolver(Protocol):
    """Returns the dependency closure of a named step."""

    def get_dependencies(
        self,
        name: str,
        direction: str = "in",
        include_self: bool = True,
        graph: Any | None = None,
        **options: Any,
    ) -> DependencyResult: ...


@runtime_checkable
class CallableRegistry(Protocol):
    """Resolves identifiers to canonical source text, or None when unresolvable."""

    def lookup(self, identifier: str) -> str | None: ...


@runtime_checkable
class DiagnosticsSink(Protocol):
    """Accepts leveled human-readable messages."""

    def message(self, level: int, text: str) -> None: ...


__all__ = [
    "READ_TYPE",
    "CallableRegistry",
    "DependencyRecord",
    "DependencyResolver",
    "DependencyResult",
    "DiagnosticsSink",
    "FlagSet",
    "canonical_identifier",
]
