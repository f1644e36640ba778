"""
Learner protocol.

A learner turns one kind of developer activity into knowledge nodes. The
coordinator asks each registered learner in turn whether it ``detect``s an
event; the first that does will ``extract`` data from it, decide whether the
data is worth keeping (``should_learn``), shape it into node parameters
(``create_node_params``) and name existing nodes it relates to
(``find_related``).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from ..graph.query import QueryOptions
from ..models import Node
from ..types import NodeType, Source

# Runs a query and returns the matching nodes
QueryFn = Callable[[QueryOptions], List[Node]]

Extracted = Union[Dict[str, Any], List[Dict[str, Any]]]


@dataclass
class LearnEvent:
    """A unit of developer activity fed to the brain."""
    type: str  # e.g. "code_accepted", "user_correction", "session_end"
    data: Dict[str, Any] = field(default_factory=dict)
    file: Optional[str] = None
    timestamp: Optional[float] = None
    session_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "data": dict(self.data),
            "file": self.file,
            "timestamp": self.timestamp,
            "session_id": self.session_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LearnEvent":
        if not data.get("type"):
            raise ValueError("Learn event requires a 'type'")
        return cls(
            type=data["type"],
            data=data.get("data") or {},
            file=data.get("file"),
            timestamp=data.get("timestamp"),
            session_id=data.get("session_id"),
        )


@dataclass
class NodeParams:
    """Everything needed to create a node from extracted data."""
    node_type: NodeType
    content: Dict[str, Any]
    context: Dict[str, Any] = field(default_factory=dict)
    weight: Optional[float] = None
    source: Source = Source.AUTO


class Learner(ABC):
    """
    Base class for learners.

    Subclasses list the event types they handle in ``event_types`` and
    implement extraction and node shaping.
    """

    name: str = ""
    event_types: Tuple[str, ...] = ()

    def detect(self, event: LearnEvent) -> bool:
        """Whether this learner handles the event."""
        return event.type in self.event_types

    @abstractmethod
    def extract(self, event: LearnEvent) -> Optional[Extracted]:
        """
        Pull the learnable data out of an event.

        Returns:
            One data dict, a list of them (one node each), or None
        """

    @abstractmethod
    def should_learn(self, data: Dict[str, Any]) -> bool:
        """Reject data too vague or trivial to be worth a node."""

    @abstractmethod
    def create_node_params(self, data: Dict[str, Any]) -> NodeParams:
        """Shape extracted data into node content, context and weight."""

    def find_related(self, data: Dict[str, Any], query_fn: QueryFn) -> List[str]:
        """IDs of existing nodes the new learning should link to."""
        return []


def collect_ids(*groups: List[Node]) -> List[str]:
    """Node IDs from several result lists, first occurrence wins."""
    ids: List[str] = []
    for nodes in groups:
        for node in nodes:
            if node.id not in ids:
                ids.append(node.id)
    return ids


def first_line(text: Optional[str], limit: int = 80) -> str:
    """First non-blank line of a text, cut to ``limit`` characters."""
    for line in (text or "").splitlines():
        line = line.strip()
        if line:
            return line[:limit]
    return ""
