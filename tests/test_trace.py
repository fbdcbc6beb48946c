"""Tests for bounded dataflow tracing."""

import pytest

from archgraph.models import Component, Connection, SemanticInfo
from archgraph.trace import (
    TracePath,
    TraceResult,
    TraceStep,
    format_trace_output,
    majority_classification,
    trace_dataflow,
)


def _paths(result):
    return sorted(tuple(step.component["name"] for step in p.steps) for p in result.paths)


def _label(conn: Connection, classification: str) -> Connection:
    conn.semantic = SemanticInfo(classification, 0.9)
    return conn


class TestTraceDirections:
    """Tests for forward, backward and combined traces."""

    def test_forward(self, make_chain):
        comps, conns = make_chain(["A", "B", "C"])
        result = trace_dataflow(comps[0], comps, conns, direction="forward")
        assert _paths(result) == [("A", "B", "C")]

    def test_backward(self, make_chain):
        comps, conns = make_chain(["A", "B", "C"])
        result = trace_dataflow(comps[2], comps, conns, direction="backward")
        assert _paths(result) == [("C", "B", "A")]

    def test_both_from_the_middle(self, make_chain):
        comps, conns = make_chain(["A", "B", "C"])
        result = trace_dataflow(comps[1], comps, conns)
        assert _paths(result) == [("B", "A"), ("B", "C")]
        assert result.components_touched[0] == comps[1].component_id
        assert set(result.components_touched) == {c.component_id for c in comps}

    def test_invalid_direction(self, make_chain):
        comps, conns = make_chain(["A", "B"])
        with pytest.raises(ValueError):
            trace_dataflow(comps[0], comps, conns, direction="sideways")


class TestTraceBounds:
    """Tests for termination and depth limits."""

    def test_cycle_terminates(self):
        a = Component.create("A", "service")
        b = Component.create("B", "service")
        conns = [
            Connection.create(a.component_id, b.component_id, "service-call"),
            Connection.create(b.component_id, a.component_id, "service-call"),
        ]
        result = trace_dataflow(a, [a, b], conns, direction="forward", max_depth=10)
        assert _paths(result) == [("A", "B")]

    def test_no_component_repeats_within_a_path(self):
        names = ["A", "B", "C", "D"]
        comps = [Component.create(n, "service") for n in names]
        conns = [
            Connection.create(x.component_id, y.component_id, "service-call")
            for x in comps for y in comps if x is not y
        ]
        result = trace_dataflow(comps[0], comps, conns, direction="both", max_depth=5)
        assert result.paths
        for path in result.paths:
            assert len(path.component_ids) == len(set(path.component_ids))

    def test_max_depth(self, make_chain):
        comps, conns = make_chain(["A", "B", "C", "D", "E"])
        result = trace_dataflow(comps[0], comps, conns, direction="forward", max_depth=2)
        assert _paths(result) == [("A", "B", "C")]

    def test_isolated_start_has_no_paths(self):
        lonely = Component.create("Lonely", "service")
        result = trace_dataflow(lonely, [lonely], [])
        assert result.paths == []
        assert result.components_touched == [lonely.component_id]
        assert result.layers_crossed == ["backend"]


class TestTraceDetails:
    """Tests for file endpoints, classification and layers."""

    def test_file_endpoint_is_materialized(self):
        llm = Component.create("OpenAI", "llm", layer="external")
        conn = Connection.create("FILE:web/pages/chat.tsx", llm.component_id, "service-call",
                                 file="web/pages/chat.tsx", line=8)
        result = trace_dataflow(llm, [llm], [conn], direction="backward")
        step = result.paths[0].steps[1]
        assert step.component["name"] == "web/pages/chat.tsx"
        assert step.component["type"] == "file"
        assert step.file == "web/pages/chat.tsx"
        assert step.line == 8
        assert result.layers_crossed == ["external", "frontend"]

    def test_classification_filter(self):
        a, b, c = (Component.create(n, "service") for n in "ABC")
        conns = [
            _label(Connection.create(a.component_id, b.component_id, "service-call"), "production"),
            _label(Connection.create(a.component_id, c.component_id, "service-call"), "test"),
        ]
        result = trace_dataflow(a, [a, b, c], conns, direction="forward", classification="test")
        assert _paths(result) == [("A", "C")]
        assert result.paths[0].classification == "test"

    def test_path_classification_is_majority(self, make_chain):
        comps, conns = make_chain(["A", "B", "C", "D"])
        for conn, label in zip(conns, ["admin", "production", "admin"]):
            _label(conn, label)
        result = trace_dataflow(comps[0], comps, conns, direction="forward")
        assert result.paths[0].classification == "admin"

    def test_majority_tie_goes_to_first_seen(self):
        assert majority_classification(["test", "production"]) == "test"
        assert majority_classification(["production", "test", "test"]) == "test"
        assert majority_classification([]) is None

    def test_to_dict_shape(self, make_chain):
        comps, conns = make_chain(["A", "B"])
        payload = trace_dataflow(comps[0], comps, conns).to_dict()
        assert payload["query"] == "A"
        first, second = payload["paths"][0]["steps"]
        assert "connection" not in first
        assert second["connection"]["type"] == "service-call"


class TestFormat:
    def test_text_output(self):
        result = TraceResult(
            query="API",
            paths=[TracePath(
                steps=[
                    TraceStep(component={"id": "1", "name": "API", "layer": "backend"}),
                    TraceStep(component={"id": "2", "name": "DB", "layer": "database"}, file="src/db.py", line=3),
                ],
                classification="production",
            )],
            components_touched=["1", "2"],
            layers_crossed=["backend", "database"],
        )
        text = format_trace_output(result)
        assert "Layers crossed: backend -> database" in text
        assert "Path 1 [production]:" in text
        assert "  -> DB [database] (src/db.py:3)" in text
