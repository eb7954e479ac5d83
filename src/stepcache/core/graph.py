"""In-memory pipeline graph and the dependency resolver built on it."""

from __future__ import annotations

import logging
import re
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml

from stepcache.core.fingerprint.calls import ModuleCallableRegistry, hash_calls
from stepcache.core.interfaces import (
    DependencyRecord,
    DependencyResult,
    FlagSet,
    canonical_identifier,
)
from stepcache.core.validation import ConfigurationError, raise_for_schema

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping

    from stepcache.core.interfaces import CallableRegistry

logger = logging.getLogger(__name__)

DIRECTIONS = ("in", "out", "both")

_TYPE_PREFIX = re.compile(r"^(read|calc|tool|full|convert|correct|download)")

_STRING_LIST = {"type": "array", "items": {"type": "string"}}

STEP_SCHEMA = {
    "type": "object",
    "properties": {
        "hash": {"type": "string", "minLength": 1},
        "callable": {"type": "string", "minLength": 1},
        "type": {"type": "string"},
        "func": {"type": "string"},
        "calls": _STRING_LIST,
        "flags": {
            "type": "object",
            "properties": {"ignore": _STRING_LIST, "monitor": _STRING_LIST},
            "additionalProperties": False,
        },
        "mappings": _STRING_LIST,
    },
    "anyOf": [{"required": ["hash"]}, {"required": ["callable"]}],
    "additionalProperties": False,
}

GRAPH_SCHEMA = {
    "type": "object",
    "properties": {
        "steps": {"type": "object", "additionalProperties": STEP_SCHEMA},
    },
    "required": ["steps"],
    "additionalProperties": False,
}


class UnknownStepError(KeyError):
    """Raised when a step name is not part of the graph."""

    pass


def infer_step_type(func: str) -> str:
    bare = func.rsplit(":", 1)[-1].rsplit(".", 1)[-1]
    match = _TYPE_PREFIX.match(bare)
    return match.group(1) if match else "other"


@dataclass(frozen=True)
class Step:
    name: str
    hash: str
    type: str = "other"
    func: str = ""
    calls: tuple[str, ...] = ()
    flags: FlagSet = field(default_factory=FlagSet)
    mappings: tuple[Path, ...] = ()


class PipelineGraph:
    """Directed graph of steps; an edge A -> B means A calls B."""

    def __init__(self, steps: Iterable[Step]) -> None:
        self._steps: dict[str, Step] = {}
        for step in steps:
            key = canonical_identifier(step.name)
            if key in self._steps:
                raise ConfigurationError(f"Step '{key}' defined more than once")
            self._steps[key] = step

        self._calls: dict[str, tuple[str, ...]] = {}
        self._callers: dict[str, set[str]] = {key: set() for key in self._steps}
        for key, step in self._steps.items():
            targets = tuple(canonical_identifier(c) for c in step.calls)
            for target in targets:
                if target not in self._steps:
                    raise ConfigurationError(f"Step '{key}' calls unknown step '{target}'")
                self._callers[target].add(key)
            self._calls[key] = targets

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and canonical_identifier(name) in self._steps

    def __len__(self) -> int:
        return len(self._steps)

    def step(self, name: str) -> Step:
        try:
            return self._steps[canonical_identifier(name)]
        except KeyError as exc:
            raise UnknownStepError(name) from exc

    def _walk(self, start: str, edges: Mapping[str, Iterable[str]]) -> set[str]:
        seen: set[str] = set()
        queue = deque(edges[start])
        while queue:
            current = queue.popleft()
            if current in seen:
                continue
            seen.add(current)
            queue.extend(edges[current])
        return seen

    def closure(self, name: str, direction: str = "in", include_self: bool = True) -> list[Step]:
        """Steps reachable from ``name``, sorted by name.

        ``in`` follows calls (what ``name`` depends on), ``out`` follows
        callers (what depends on ``name``), ``both`` is the union.
        """
        if direction not in DIRECTIONS:
            raise ValueError(f"Unknown direction '{direction}', expected one of {DIRECTIONS}")
        key = canonical_identifier(name)
        if key not in self._steps:
            raise UnknownStepError(name)

        found: set[str] = set()
        if direction in ("in", "both"):
            found |= self._walk(key, self._calls)
        if direction in ("out", "both"):
            found |= self._walk(key, self._callers)
        if include_self:
            found.add(key)
        else:
            found.discard(key)
        return [self._steps[k] for k in sorted(found)]


class GraphResolver:
    """Dependency resolver backed by a :class:`PipelineGraph`.

    When no graph is passed, one is built by calling ``builder(**options)``.
    """

    def __init__(self, builder: Callable[..., PipelineGraph] | None = None) -> None:
        self.builder = builder or load_graph

    def get_dependencies(
        self,
        name: str,
        direction: str = "in",
        include_self: bool = True,
        graph: PipelineGraph | None = None,
        **options: Any,
    ) -> DependencyResult:
        if graph is None:
            graph = self.builder(**options)
        steps = graph.closure(name, direction=direction, include_self=include_self)

        flags = FlagSet()
        mappings: dict[Path, None] = {}
        for step in steps:
            flags = flags | step.flags
            for path in step.mappings:
                mappings.setdefault(path, None)

        records = tuple(
            DependencyRecord(call=s.name, hash=s.hash, func=s.func or s.name, type=s.type)
            for s in steps
        )
        return DependencyResult(records=records, flags=flags, mappings=tuple(mappings))


def graph_from_mapping(
    data: Mapping[str, Any],
    base_dir: Path | None = None,
    algorithm: str = "md5",
    registry: CallableRegistry | None = None,
) -> PipelineGraph:
    """Build a graph from a ``{"steps": {...}}`` mapping.

    Steps declare either a precomputed ``hash`` or a ``callable`` identifier
    whose source is hashed. Relative mapping paths resolve against ``base_dir``.

    Raises:
        ConfigurationError: If the mapping is invalid or a callable cannot be resolved
    """
    raise_for_schema(data, GRAPH_SCHEMA, context="graph")
    registry = registry or ModuleCallableRegistry()
    base_dir = Path(base_dir) if base_dir is not None else Path.cwd()

    steps = []
    for raw_name, spec in data["steps"].items():
        name = canonical_identifier(raw_name)
        code_hash = spec.get("hash")
        if code_hash is None:
            identifier = spec["callable"]
            hashed = hash_calls([identifier], algorithm, registry)
            if identifier not in hashed:
                raise ConfigurationError(f"Step '{name}': cannot resolve callable '{identifier}'")
            code_hash = hashed[identifier]

        func = spec.get("func", name)
        flags = spec.get("flags", {})
        mappings = tuple(
            p if p.is_absolute() else base_dir / p
            for p in (Path(m) for m in spec.get("mappings", []))
        )
        steps.append(
            Step(
                name=name,
                hash=code_hash,
                type=spec.get("type", infer_step_type(func)),
                func=func,
                calls=tuple(spec.get("calls", [])),
                flags=FlagSet.from_iterables(flags.get("ignore", []), flags.get("monitor", [])),
                mappings=mappings,
            )
        )
    return PipelineGraph(steps)


def load_graph(
    path: str | Path,
    algorithm: str = "md5",
    registry: CallableRegistry | None = None,
) -> PipelineGraph:
    """Load a pipeline graph from a YAML file."""
    graph_path = Path(path)
    try:
        data = yaml.safe_load(graph_path.read_text(encoding="utf-8")) or {}
    except OSError as exc:
        raise ConfigurationError(f"Cannot read graph file {graph_path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML in graph file {graph_path}: {exc}") from exc
    graph = graph_from_mapping(data, base_dir=graph_path.parent, algorithm=algorithm, registry=registry)
    logger.debug("Loaded %d steps from %s", len(graph), graph_path)
    return graph


__all__ = [
    "DIRECTIONS",
    "GraphResolver",
    "PipelineGraph",
    "Step",
    "UnknownStepError",
    "graph_from_mapping",
    "infer_step_type",
    "load_graph",
]
