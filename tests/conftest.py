"""Pytest fixtures for codebrain tests"""
import pytest

from codebrain.brain import Brain
from codebrain.config import BrainConfig
from codebrain.graph import KnowledgeGraph
from codebrain.storage import BrainStorage

# 2023-11-15 12:00:00 UTC, mid-day so a few hours either way stay in one day bucket
START_TIME = 1_700_049_600.0
DAY = 86400.0


class FakeClock:
    """Manually advanced wall clock."""

    def __init__(self, start: float = START_TIME):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float = 0.0, days: float = 0.0) -> float:
        self.now += seconds + days * DAY
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def storage(tmp_path):
    """Storage with a short debounce window, closed after the test."""
    store = BrainStorage(tmp_path, debounce_ms=20)
    yield store
    store.close()


@pytest.fixture
def graph(storage, clock):
    return KnowledgeGraph(storage, clock)


@pytest.fixture
def brain(tmp_path, clock):
    """Initialized brain rooted at a temp directory."""
    b = Brain(tmp_path / "project", config=BrainConfig(debounce_ms=20), clock=clock)
    assert b.setup()
    yield b
    b.shutdown()


def make_node(graph, summary="Use retries for flaky calls", node_type="pattern", **kwargs):
    """Create a node with sensible defaults."""
    content = {"summary": summary, "detail": kwargs.pop("detail", f"{summary} in detail")}
    return graph.nodes.create(node_type, content, kwargs.pop("context", None), **kwargs)
