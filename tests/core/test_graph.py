"""Tests for the in-memory pipeline graph and its resolver."""

import pytest
import yaml

from stepcache.core.fingerprint.calls import ModuleCallableRegistry, hash_calls
from stepcache.core.graph import (
    GraphResolver,
    PipelineGraph,
    Step,
    UnknownStepError,
    graph_from_mapping,
    infer_step_type,
    load_graph,
)
from stepcache.core.interfaces import DependencyRecord, DependencyResult, FlagSet
from stepcache.core.validation import ConfigurationError


def calc_something():
    return 42


@pytest.fixture
def chain_graph(tmp_path):
    """fullRUN -> calcB -> calcA -> readFAO, plus an unrelated calcZ."""
    return PipelineGraph(
        [
            Step("readFAO", "h0", "read", "readFAO", mappings=(tmp_path / "fao.csv",)),
            Step("calcA", "h1", "calc", "calcA", calls=("readFAO",), flags=FlagSet.from_iterables(ignore=["ext:x"])),
            Step(
                "calcB",
                "h2",
                "calc",
                "calcB",
                calls=("calcA",),
                flags=FlagSet.from_iterables(monitor=["ext:y"]),
                mappings=(tmp_path / "regions.csv", tmp_path / "fao.csv"),
            ),
            Step("fullRUN", "h3", "full", "fullRUN", calls=("calcB",)),
            Step("calcZ", "h9", "calc", "calcZ"),
        ]
    )


class TestPipelineGraph:
    """Tests for closure computation."""

    def test_in_closure_includes_self(self, chain_graph):
        names = [s.name for s in chain_graph.closure("calcB", "in")]

        assert names == ["calcA", "calcB", "readFAO"]

    def test_in_closure_without_self(self, chain_graph):
        names = [s.name for s in chain_graph.closure("calcB", "in", include_self=False)]

        assert names == ["calcA", "readFAO"]

    def test_out_closure(self, chain_graph):
        names = [s.name for s in chain_graph.closure("calcA", "out")]

        assert names == ["calcA", "calcB", "fullRUN"]

    def test_both_directions(self, chain_graph):
        names = [s.name for s in chain_graph.closure("calcA", "both")]

        assert names == ["calcA", "calcB", "fullRUN", "readFAO"]

    def test_cycles_terminate(self):
        graph = PipelineGraph(
            [Step("calcA", "h1", calls=("calcB",)), Step("calcB", "h2", calls=("calcA",))]
        )

        assert [s.name for s in graph.closure("calcA")] == ["calcA", "calcB"]

    def test_unknown_step(self, chain_graph):
        with pytest.raises(UnknownStepError):
            chain_graph.closure("calcMissing")

    def test_unknown_direction(self, chain_graph):
        with pytest.raises(ValueError, match="Unknown direction"):
            chain_graph.closure("calcA", "sideways")

    def test_call_to_undeclared_step_rejected(self):
        with pytest.raises(ConfigurationError, match="unknown step"):
            PipelineGraph([Step("calcA", "h1", calls=("calcNope",))])

    def test_duplicate_step_rejected(self):
        with pytest.raises(ConfigurationError, match="more than once"):
            PipelineGraph([Step("pkg:calcA", "h1"), Step("pkg::calcA", "h2")])

    def test_membership_uses_canonical_names(self):
        graph = PipelineGraph([Step("pkg:calcA", "h1")])

        assert "pkg:::calcA" in graph
        assert len(graph) == 1


class TestGraphResolver:
    """Tests for GraphResolver.get_dependencies."""

    def test_records_flags_and_mappings(self, chain_graph, tmp_path):
        result = GraphResolver().get_dependencies("calcB", graph=chain_graph)

        assert [r.call for r in result.records] == ["calcA", "calcB", "readFAO"]
        assert result.records[2] == DependencyRecord(call="readFAO", hash="h0", func="readFAO", type="read")
        assert result.flags == FlagSet.from_iterables(ignore=["ext:x"], monitor=["ext:y"])
        assert result.mappings == (tmp_path / "regions.csv", tmp_path / "fao.csv")

    def test_builds_graph_from_options(self, chain_graph):
        seen = {}

        def builder(**options):
            seen.update(options)
            return chain_graph

        GraphResolver(builder=builder).get_dependencies("calcA", path="pipeline.yaml")

        assert seen == {"path": "pipeline.yaml"}

    def test_flags_outside_closure_not_included(self, chain_graph):
        result = GraphResolver().get_dependencies("calcA", graph=chain_graph)

        assert result.flags.monitor == frozenset()


class TestDependencyResult:
    def test_duplicate_calls_rejected(self):
        record = DependencyRecord(call="calcA", hash="h1", func="calcA", type="calc")

        with pytest.raises(ValueError, match="Duplicate"):
            DependencyResult(records=(record, record))

    def test_flag_resolution_prefers_monitor(self):
        flags = FlagSet.from_iterables(ignore=["pkg::f", "pkg:g"], monitor=["pkg:::f"]).resolved()

        assert flags.ignore == frozenset({"pkg:g"})
        assert flags.monitor == frozenset({"pkg:f"})


class TestLoadGraph:
    """Tests for YAML graph loading."""

    def test_loads_steps(self, tmp_path):
        graph_file = tmp_path / "pipeline.yaml"
        graph_file.write_text(
            yaml.safe_dump(
                {
                    "steps": {
                        "readFAO": {"hash": "h0"},
                        "calcA": {
                            "hash": "h1",
                            "calls": ["readFAO"],
                            "mappings": ["mappings/regions.csv"],
                            "flags": {"monitor": ["ext::helper"]},
                        },
                    }
                }
            )
        )

        graph = load_graph(graph_file)

        assert graph.step("readFAO").type == "read"
        assert graph.step("calcA").type == "calc"
        assert graph.step("calcA").mappings == (tmp_path / "mappings" / "regions.csv",)
        assert graph.step("calcA").flags.monitor == frozenset({"ext::helper"})

    def test_callable_steps_hashed(self, tmp_path):
        registry = ModuleCallableRegistry()
        registry.register("steps:calc_something", calc_something)

        graph = graph_from_mapping(
            {"steps": {"calcSomething": {"callable": "steps:calc_something"}}},
            base_dir=tmp_path,
            registry=registry,
        )

        expected = hash_calls(["steps:calc_something"], "md5", registry)["steps:calc_something"]
        assert graph.step("calcSomething").hash == expected

    def test_unresolvable_callable_rejected(self, tmp_path):
        with pytest.raises(ConfigurationError, match="cannot resolve"):
            graph_from_mapping({"steps": {"calcA": {"callable": "missing_mod_abc:fn"}}}, base_dir=tmp_path)

    def test_step_without_hash_or_callable_rejected(self, tmp_path):
        with pytest.raises(ConfigurationError):
            graph_from_mapping({"steps": {"calcA": {"type": "calc"}}}, base_dir=tmp_path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="Cannot read graph file"):
            load_graph(tmp_path / "missing.yaml")

    def test_invalid_yaml(self, tmp_path):
        graph_file = tmp_path / "pipeline.yaml"
        graph_file.write_text("steps: [unclosed")

        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            load_graph(graph_file)


@pytest.mark.parametrize(
    ("func", "expected"),
    [
        ("readFAO", "read"),
        ("calcPopulation", "calc"),
        ("pkg:toolGetMapping", "tool"),
        ("convertWDI", "convert"),
        ("helper", "other"),
    ],
)
def test_infer_step_type(func, expected):
    assert infer_step_type(func) == expected
