"""Tests for LLM context rendering"""
import json

import pytest

from codebrain.graph.query import QueryOptions, QueryResult
from codebrain.output import compress, estimate_tokens, minimal, render, system_context, to_compact, to_json, to_natural
from conftest import make_node


@pytest.fixture
def result(graph):
    strong = make_node(graph, summary="Validate tokens before refresh", detail="Refresh fails on expired tokens, check expiry first",
                       context={"file": "src/auth.py", "function": "refresh", "lines": [42, 60]}, weight=0.85)
    weak = make_node(graph, summary="Use snake_case", node_type="convention", weight=0.4)
    graph.edges.create(strong.id, weak.id, "semantic")
    return graph.query.execute(QueryOptions())


class TestEstimateTokens:
    """Tests for token estimation."""

    def test_estimate(self):
        assert estimate_tokens("") == 0
        assert estimate_tokens(None) == 0
        assert estimate_tokens("abc") == 1
        assert estimate_tokens("abcdefghi") == 3


class TestCompact:
    """Tests for the compact format."""

    def test_layout(self, result):
        text = to_compact(result, query="auth")
        lines = text.splitlines()

        assert lines[0] == "---BRAIN_CONTEXT---"
        assert lines[1] == "Q: auth"
        assert lines[3] == "Learnings:"
        assert lines[4] == "[1] PATTERN | w:0.85 u:0 | Validate tokens before refresh"
        assert lines[5] == "   @ src/auth.py:refresh L42"
        assert lines[6] == "[2] CONVENTION | w:0.40 u:0 | Use snake_case"
        assert "Connections:" in lines
        assert lines[-2] == f"  {result.nodes[0].id[-8:]} --semantic(0.50)--> {result.nodes[1].id[-8:]}"
        assert lines[-1] == "---END_CONTEXT---"

    def test_truncates_to_budget(self, graph):
        for i in range(50):
            make_node(graph, summary=f"Learning number {i} " + "x" * 60)
        result = graph.query.execute(QueryOptions())

        text = to_compact(result, max_tokens=300)

        assert "... (truncated)" in text
        assert text.endswith("---END_CONTEXT---")
        assert estimate_tokens(text) < 300

    def test_no_query_line(self, result):
        assert "Q:" not in to_compact(result)


class TestNatural:
    """Tests for the natural format."""

    def test_grouped_prose(self, result):
        text = to_natural(result)
        assert text.startswith("Based on previous learnings:")
        assert "**Code Patterns**" in text
        assert "**Project Conventions**" in text
        assert "- Validate tokens before refresh (confidence: 85%)" in text
        assert "  Refresh fails on expired tokens" in text
        assert "- Use snake_case (confidence: 40%)" in text

    def test_empty(self):
        assert to_natural(QueryResult()) == "No relevant learnings found."


class TestJson:
    """Tests for the JSON format."""

    def test_short_keys(self, result):
        data = json.loads(to_json(result, query="auth"))
        assert data["_s"] == "brain-v1"
        assert data["q"] == "auth"
        assert data["l"][0] == {"t": "pattern", "s": "Validate tokens before refresh", "w": 0.85, "u": 0,
                                "f": "src/auth.py"}
        assert "f" not in data["l"][1]
        assert data["c"][0]["r"] == "semantic"


class TestHelpers:
    """Tests for render dispatch and helpers."""

    def test_render_dispatch(self, result):
        assert render(result, "compact").startswith("---BRAIN_CONTEXT---")
        assert render(result, "natural").startswith("Based on")
        assert render(result, "json").startswith("{")

    def test_render_unknown_format(self, result):
        with pytest.raises(ValueError):
            render(result, "xml")

    def test_system_context(self):
        wrapped = system_context("BLOCK")
        assert "BLOCK" in wrapped
        assert wrapped.startswith("The following context")
        assert system_context("") == ""

    def test_compress(self):
        assert compress("short", 100) == "short"
        compressed = compress("x" * 400, 50)
        assert compressed.endswith("...(truncated)")
        assert len(compressed) < 400

    def test_minimal(self, result):
        assert minimal(result.nodes) == "pattern:Validate tokens before refresh | convention:Use snake_case"
