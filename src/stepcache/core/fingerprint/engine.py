"""Fingerprint computation for a step and its dependency closure.

The fingerprint combines the code hashes of every step the target depends
on, the modification times of the source folders read by ``read`` steps,
the content of mapping files and the source of explicitly monitored calls.
If all of these stay the same the fingerprint stays the same, so it can be
used to decide whether a cached result is still usable.

Only steps known to the dependency resolver are considered (plus monitored
calls), so a workflow can change without the fingerprint changing. The
reverse also happens since dependencies are sometimes overestimated.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

from stepcache.config import Settings
from stepcache.core.diagnostics import NullDiagnostics
from stepcache.core.digest import combine_hashes
from stepcache.core.fingerprint.calls import ModuleCallableRegistry, hash_calls
from stepcache.core.fingerprint.files import HashMode, hash_paths
from stepcache.core.graph import GraphResolver
from stepcache.core.interfaces import READ_TYPE, canonical_identifier

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    import pandas as pd

    from stepcache.core.interfaces import (
        CallableRegistry,
        DependencyRecord,
        DependencyResolver,
        DiagnosticsSink,
    )

logger = logging.getLogger(__name__)

FUNCTION = "function"
SOURCE = "source"
MAPPING = "mapping"
MONITOR = "monitor"

# Combination order of component categories
CATEGORY_ORDER = (FUNCTION, SOURCE, MAPPING, MONITOR)

DETAILS_LEVEL = 3


@dataclass(frozen=True)
class ComponentHash:
    category: str
    name: str
    value: str


@dataclass(frozen=True)
class Fingerprint:
    """Final digest plus optional breakdown.

    ``components`` is only populated when details were requested. ``omitted``
    lists inputs that were skipped (missing paths, unresolvable calls).
    """

    value: str
    components: tuple[ComponentHash, ...] = ()
    omitted: tuple[str, ...] = ()

    def __str__(self) -> str:
        return self.value

    @property
    def breakdown(self) -> dict[str, str]:
        """``category:name`` -> hash, in combination order."""
        return {f"{c.category}:{c.name}": c.value for c in self.components}

    def to_frame(self) -> pd.DataFrame:
        import pandas as pd

        return pd.DataFrame(
            [{"category": c.category, "name": c.name, "hash": c.value} for c in self.components],
            columns=["category", "name", "hash"],
        )


def source_folder_name(func: str) -> str:
    """Folder name encoded in a read step's function name (``readFAO`` -> ``FAO``)."""
    bare = func.rsplit(":", 1)[-1].rsplit(".", 1)[-1]
    if bare.startswith(READ_TYPE):
        return bare[len(READ_TYPE):]
    return bare


def ordered_components(
    functions: Mapping[str, str],
    sources: Mapping[str, str],
    mappings: Mapping[str, str],
    monitored: Mapping[str, str],
) -> list[ComponentHash]:
    """Arrange component hashes by category, then alphabetically by name."""
    by_category = {FUNCTION: functions, SOURCE: sources, MAPPING: mappings, MONITOR: monitored}
    return [
        ComponentHash(category, name, by_category[category][name])
        for category in CATEGORY_ORDER
        for name in sorted(by_category[category])
    ]


class FingerprintEngine:
    """Computes fingerprints against one settings/resolver/registry combination."""

    def __init__(
        self,
        settings: Settings | None = None,
        resolver: DependencyResolver | None = None,
        registry: CallableRegistry | None = None,
        diagnostics: DiagnosticsSink | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self.resolver = resolver or GraphResolver()
        self.registry = registry or ModuleCallableRegistry()
        self.diagnostics = diagnostics or NullDiagnostics()

    def _source_folders(self, records: Iterable[DependencyRecord]) -> list[Path]:
        names = {source_folder_name(r.func) for r in records if r.type == READ_TYPE}
        return [Path(self.settings.source_folder) / n for n in sorted(names)]

    def compute(
        self,
        name: str,
        details: bool = False,
        graph: Any | None = None,
        **options: Any,
    ) -> Fingerprint:
        """Compute the fingerprint of ``name``.

        Args:
            name: Step to fingerprint
            details: Attach the component breakdown and report it to diagnostics
            graph: Precomputed dependency graph to reuse
            **options: Passed to the resolver when no graph is given

        Raises:
            ValueError: If ``name`` is empty
            ConfigurationError: If the configured hash algorithm is unsupported
        """
        if not name:
            raise ValueError("Step name must not be empty")

        algorithm = self.settings.hash_algorithm
        result = self.resolver.get_dependencies(
            name, direction="in", include_self=True, graph=graph, **options
        )

        functions = {r.call: r.hash for r in sorted(result.records, key=lambda r: r.call)}
        known = {canonical_identifier(call): call for call in functions}

        flags = result.flags.resolved()
        omitted: list[str] = []

        extra = sorted(flags.monitor - set(known))
        monitored = hash_calls(extra, algorithm, self.registry)
        omitted.extend(ident for ident in extra if ident not in monitored)

        for ident in flags.ignore:
            if ident in known:
                functions.pop(known[ident], None)

        sources = hash_paths(
            self._source_folders(result.records),
            HashMode.TIMESTAMP,
            algorithm,
            omitted=omitted,
            max_workers=self.settings.max_workers,
        )
        mappings = hash_paths(
            result.mappings,
            HashMode.CONTENT,
            algorithm,
            omitted=omitted,
            max_workers=self.settings.max_workers,
        )

        components = ordered_components(functions, sources, mappings, monitored)
        value = combine_hashes((c.value for c in components), algorithm)
        logger.debug("Fingerprint for %s: %s (%d components)", name, value, len(components))

        if not details:
            return Fingerprint(value=value, omitted=tuple(omitted))

        self.diagnostics.message(DETAILS_LEVEL, f"hash components ({value}):")
        for component in components:
            self.diagnostics.message(DETAILS_LEVEL, f"  {component.value} | {component.name}")
        return Fingerprint(value=value, components=tuple(components), omitted=tuple(omitted))


def fingerprint(
    name: str,
    details: bool = False,
    graph: Any | None = None,
    *,
    settings: Settings | None = None,
    resolver: DependencyResolver | None = None,
    registry: CallableRegistry | None = None,
    diagnostics: DiagnosticsSink | None = None,
    **options: Any,
) -> Fingerprint:
    """Fingerprint ``name`` and everything it transitively depends on.

    Example:
        >>> fp = fingerprint("calcPopulation", path="pipeline.yaml")  # doctest: +SKIP
        >>> str(fp)  # doctest: +SKIP
        '3f0c...'
    """
    engine = FingerprintEngine(
        settings=settings, resolver=resolver, registry=registry, diagnostics=diagnostics
    )
    return engine.compute(name, details=details, graph=graph, **options)


__all__ = [
    "CATEGORY_ORDER",
    "ComponentHash",
    "Fingerprint",
    "FingerprintEngine",
    "fingerprint",
    "ordered_components",
    "source_folder_name",
]
