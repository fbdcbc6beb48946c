"""Tests for impact analysis."""

import pytest

from archgraph.impact import compute_impact, compute_severity
from archgraph.models import Component, Connection


class TestComputeImpact:
    """Tests for compute_impact."""

    def test_database_dependents(self, small_graph, db):
        report = compute_impact(db, *small_graph)
        assert [a.component.name for a in report.direct] == ["API"]
        assert report.transitive == []
        assert report.severity == "critical"
        assert report.total_files_affected == 1
        assert report.summary == "CRITICAL: 1 direct dependent, 0 transitive, 1 file affected"
        assert "src/api/orders.py" in report.affected[0].change_required

    def test_transitive_level(self, make_chain):
        comps, conns = make_chain(["A", "B", "C"])
        report = compute_impact(comps[2], comps, conns)
        assert [a.component.name for a in report.direct] == ["B"]
        assert [a.component.name for a in report.transitive] == ["A"]
        assert report.transitive[0].change_required == "Indirectly affected via B"
        assert report.summary == "HIGH: 1 direct dependent, 1 transitive, 0 files affected"

    def test_no_dependents(self, small_graph, orphan):
        report = compute_impact(orphan, *small_graph)
        assert report.affected == []
        assert report.severity == "high"

    def test_file_sources_count_as_dependents(self):
        llm = Component.create("OpenAI", "llm", layer="external")
        conns = [
            Connection.create(f"FILE:src/{name}.ts", llm.component_id, "service-call", file=f"src/{name}.ts", line=1)
            for name in ("chat", "summarize")
        ]
        report = compute_impact(llm, [llm], conns)
        assert [a.component.type for a in report.direct] == ["file", "file"]
        assert report.severity == "medium"
        assert report.total_files_affected == 2

    def test_to_dict(self, small_graph, db):
        payload = compute_impact(db, *small_graph).to_dict()
        assert payload["component"]["name"] == "DB"
        assert payload["affected"][0]["impact_type"] == "direct"


class TestSeverity:
    @pytest.mark.parametrize("layer,dependents,critical,expected", [
        ("database", 0, False, "critical"),
        ("infra", 0, False, "critical"),
        ("external", 6, False, "critical"),
        ("external", 0, True, "critical"),
        ("backend", 0, False, "high"),
        ("external", 3, False, "high"),
        ("external", 2, False, "medium"),
        ("external", 1, False, "low"),
        ("frontend", 0, False, "low"),
    ])
    def test_levels(self, layer, dependents, critical, expected):
        comp = Component.create("X", "service", layer=layer, critical=critical)
        assert compute_severity(comp, dependents) == expected
