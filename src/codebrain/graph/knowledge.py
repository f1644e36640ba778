"""
Knowledge graph facade.

Wires the node store, indices, edge store, query engine and pruner over one
BrainStorage, and adds the composite operations learners rely on: storing a
learning together with its relations, and chaining nodes in time order.
"""

import logging
import time
from typing import Any, Callable, Dict, List, Optional, Union

from ..models import Node, NodeContent, NodeContext
from ..storage import BrainStorage
from ..types import EdgeDirection, EdgeType, NodeType, Source
from .edges import EdgeStore
from .indices import IndexMaintainer
from .nodes import NodeStore
from .pruning import Pruner
from .query import QueryEngine

logger = logging.getLogger(__name__)

# Nodes already attached to the same file that a new learning gets linked to
MAX_FILE_LINKS = 5


class KnowledgeGraph:
    """All graph components for one project."""

    def __init__(self, storage: BrainStorage, clock: Callable[[], float] = time.time):
        self.storage = storage
        self.clock = clock
        self.indices = IndexMaintainer(storage)
        self.nodes = NodeStore(storage, self.indices, clock)
        self.edges = EdgeStore(storage, clock)
        self.query = QueryEngine(self.nodes, self.edges)
        self.pruner = Pruner(self.nodes)

    def add_learning(self,
                     node_type: Union[NodeType, str],
                     content: Union[NodeContent, Dict[str, Any]],
                     context: Optional[Union[NodeContext, Dict[str, Any]]] = None,
                     related_ids: Optional[List[str]] = None,
                     weight: Optional[float] = None,
                     source: Union[Source, str] = Source.AUTO) -> Node:
        """
        Store a learning and connect it to what it relates to.

        Semantic edges go to every existing node in ``related_ids``; file
        edges go to up to MAX_FILE_LINKS nodes already attached to the same
        file.

        Returns:
            The created node
        """
        node = self.nodes.create(node_type, content, context, weight=weight, source=source)

        for related_id in related_ids or []:
            if related_id != node.id and self.nodes.exists(related_id):
                self.edges.create(node.id, related_id, EdgeType.SEMANTIC, reason="related learning")

        if node.context.file:
            same_file = [i for i in self.indices.lookup("by_file", node.context.file) if i != node.id]
            for other_id in same_file[-MAX_FILE_LINKS:]:
                self.edges.create(node.id, other_id, EdgeType.FILE, weight=0.3, reason=node.context.file)

        return node

    def link_temporal(self, node_ids: List[str]) -> int:
        """
        Chain nodes in creation order with forward temporal edges.

        Returns:
            Number of edges created or strengthened
        """
        nodes = sorted((n for n in (self.nodes.get(i) for i in node_ids) if n),
                       key=lambda n: n.timestamps.created)
        linked = 0
        for earlier, later in zip(nodes, nodes[1:]):
            if self.edges.create(earlier.id, later.id, EdgeType.TEMPORAL, weight=0.3,
                                 direction=EdgeDirection.FORWARD) is not None:
                linked += 1
        return linked

    def pending_count(self) -> int:
        return len(self.nodes.pending) + len(self.edges.pending)

    def pending_changes(self) -> List[Dict[str, Any]]:
        """Pending node then edge changes, without clearing them."""
        return list(self.nodes.pending) + list(self.edges.pending)

    def drain_pending(self) -> List[Dict[str, Any]]:
        """Pending node changes followed by pending edge changes; clears both."""
        return self.nodes.get_and_clear_pending() + self.edges.get_and_clear_pending()

    def rebuild_indices(self) -> Dict[str, int]:
        return self.indices.rebuild(self.nodes.all_nodes())
