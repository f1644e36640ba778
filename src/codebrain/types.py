"""
Closed enumerations for the knowledge graph.

Node types, edge types, delta operations and provenance sources are plain
``str`` enums so they serialize to JSON unchanged. Each node type carries a
short code (embedded in node IDs) and a partition name (the on-disk document
that holds every node of that type).
"""

from enum import Enum
from typing import Dict, List


SCHEMA_VERSION = 1


class NodeType(str, Enum):
    """Kinds of learned knowledge."""
    PATTERN = "pattern"
    CORRECTION = "correction"
    DECISION = "decision"
    CONVENTION = "convention"
    FEEDBACK = "feedback"
    SESSION = "session"

    @property
    def code(self) -> str:
        """Short code embedded in node IDs (e.g. ``pat``)."""
        return _NODE_CODES[self]

    @property
    def partition(self) -> str:
        """Name of the storage partition holding nodes of this type."""
        return _NODE_PARTITIONS[self]

    @classmethod
    def from_code(cls, code: str) -> "NodeType":
        for node_type, node_code in _NODE_CODES.items():
            if node_code == code:
                return node_type
        raise ValueError(f"Unknown node type code: {code}")

    @classmethod
    def parse(cls, value) -> "NodeType":
        """Accept a NodeType, its value, or its partition name."""
        if isinstance(value, cls):
            return value
        for node_type in cls:
            if value in (node_type.value, node_type.partition):
                return node_type
        raise ValueError(f"Invalid node type: {value}. Must be one of: {[t.value for t in cls]}")


_NODE_CODES: Dict[NodeType, str] = {
    NodeType.PATTERN: "pat",
    NodeType.CORRECTION: "cor",
    NodeType.DECISION: "dec",
    NodeType.CONVENTION: "con",
    NodeType.FEEDBACK: "fbk",
    NodeType.SESSION: "ses",
}

_NODE_PARTITIONS: Dict[NodeType, str] = {
    NodeType.PATTERN: "patterns",
    NodeType.CORRECTION: "corrections",
    NodeType.DECISION: "decisions",
    NodeType.CONVENTION: "conventions",
    NodeType.FEEDBACK: "feedback",
    NodeType.SESSION: "sessions",
}


def partition_names() -> List[str]:
    """All node partition names, in enum order."""
    return [node_type.partition for node_type in NodeType]


class EdgeType(str, Enum):
    """Relations between nodes."""
    SEMANTIC = "semantic"
    FILE = "file"
    TEMPORAL = "temporal"
    CAUSAL = "causal"
    SUPERSEDES = "supersedes"

    @classmethod
    def parse(cls, value) -> "EdgeType":
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise ValueError(f"Invalid edge type: {value}. Must be one of: {[t.value for t in cls]}") from None


class EdgeDirection(str, Enum):
    BIDIRECTIONAL = "bi"
    FORWARD = "forward"
    BACKWARD = "backward"


class DeltaOp(str, Enum):
    """Operations recorded in a delta change entry."""
    ADD = "add"
    MODIFY = "modify"
    DELETE = "delete"


class Source(str, Enum):
    """Provenance of a node."""
    AUTO = "auto"
    USER = "user"
    LLM = "llm"


INDEX_NAMES = ("by_file", "by_symbol", "by_time")
