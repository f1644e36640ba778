"""
Query Engine - filtered, ranked reads over the knowledge graph.

Algorithm:
1. Scan the requested type partitions (all if unspecified)
2. Keep nodes matching every provided filter
3. Score: weight * 1 / (1 + days since last use)
4. Stable sort, best first; truncate to ``limit``
5. Collect edges between returned nodes, plus edges within ``depth`` hops

Edges whose endpoints were deleted are skipped rather than reported.
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set, Union

from ..models import Edge, Node
from ..types import EdgeType, NodeType
from .edges import EdgeStore
from .indices import parse_day_bucket
from .nodes import NodeStore, matches_criteria
from .ranking import rank

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 50


@dataclass
class QueryOptions:
    """Criteria for a context query. All provided filters must match."""
    query: Optional[str] = None
    file: Optional[str] = None
    types: Optional[List[Union[NodeType, str]]] = None
    min_weight: Optional[float] = None
    since: Optional[float] = None
    limit: Optional[int] = DEFAULT_LIMIT
    depth: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QueryOptions":
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**known)


@dataclass
class QueryResult:
    """Ranked nodes plus the edges connecting them."""
    nodes: List[Node] = field(default_factory=list)
    edges: List[Edge] = field(default_factory=list)
    scores: Dict[str, float] = field(default_factory=dict)
    truncated: bool = False
    stats: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nodes": [n.to_dict() for n in self.nodes],
            "edges": [e.to_dict() for e in self.edges],
            "scores": dict(self.scores),
            "truncated": self.truncated,
            "stats": dict(self.stats),
        }


class QueryEngine:
    """Read path over the node and edge stores."""

    def __init__(self, nodes: NodeStore, edges: EdgeStore):
        self.nodes = nodes
        self.edges = edges

    def execute(self, options: Optional[QueryOptions] = None) -> QueryResult:
        """
        Run a query.

        Args:
            options: Query criteria (defaults to everything, limit 50)

        Returns:
            QueryResult with ranked nodes, connecting edges and a
            ``truncated`` flag set when more nodes matched than were returned
        """
        options = options or QueryOptions()
        now = self.nodes.clock()

        scanned = 0
        matched: List[Node] = []
        for node in self.nodes.all_nodes(options.types):
            scanned += 1
            if matches_criteria(node, file=options.file, min_weight=options.min_weight,
                                since=options.since, query=options.query):
                matched.append(node)

        ranked = rank(matched, now)
        truncated = options.limit is not None and len(ranked) > options.limit
        if options.limit is not None:
            ranked = ranked[:options.limit]

        result_nodes = [node for node, _ in ranked]
        edges = self._collect_edges([n.id for n in result_nodes], options.depth)

        return QueryResult(
            nodes=result_nodes,
            edges=edges,
            scores={node.id: score for node, score in ranked},
            truncated=truncated,
            stats={
                "scanned": scanned,
                "matched": len(matched),
                "returned": len(result_nodes),
                "edges": len(edges),
            },
        )

    def _collect_edges(self, node_ids: List[str], depth: int) -> List[Edge]:
        result_ids: Set[str] = set(node_ids)
        seen: Set[str] = set()
        edges: List[Edge] = []

        def keep(edge: Edge) -> None:
            if edge.id in seen:
                return
            if not (self.nodes.exists(edge.source) and self.nodes.exists(edge.target)):
                return
            seen.add(edge.id)
            edges.append(edge)

        # Edges among the returned nodes
        for node_id in node_ids:
            for edge in self.edges.get_edges(node_id, direction="out"):
                if edge.target in result_ids:
                    keep(edge)

        if depth <= 0:
            return edges

        # Neighbourhood expansion, breadth-first
        visited = set(node_ids)
        frontier = deque((node_id, 0) for node_id in node_ids)
        while frontier:
            node_id, hops = frontier.popleft()
            if hops >= depth:
                continue
            for edge in self.edges.get_edges(node_id, direction="both"):
                neighbor = edge.other(node_id)
                if not self.nodes.exists(neighbor):
                    continue
                keep(edge)
                if neighbor not in visited:
                    visited.add(neighbor)
                    frontier.append((neighbor, hops + 1))
        return edges

    def by_file(self, path: str, limit: Optional[int] = 20) -> List[Node]:
        """Nodes attached to a file, ranked, via the by-file index."""
        found = [n for n in (self.nodes.get(i) for i in self.nodes.indices.lookup("by_file", path)) if n]
        ranked = [node for node, _ in rank(found, self.nodes.clock())]
        return ranked[:limit] if limit is not None else ranked

    def by_time_range(self, since: float, until: Optional[float] = None,
                      limit: Optional[int] = None) -> List[Node]:
        """
        Nodes whose creation day falls within [since, until], newest first.

        Day buckets are compared at UTC midnight, so a node created later on
        the day ``since`` falls in still matches.
        """
        until = self.nodes.clock() if until is None else until
        by_time = self.nodes.storage.get_index("by_time")
        results: List[Node] = []
        seen: Set[str] = set()

        for day, node_ids in by_time.items():
            day_ts = parse_day_bucket(day)
            if day_ts is None:
                continue
            # A bucket covers [day_ts, day_ts + 1 day)
            if day_ts + 86400 <= since or day_ts > until:
                continue
            for node_id in node_ids:
                if node_id in seen:
                    continue
                node = self.nodes.get(node_id)
                if node and since <= node.timestamps.created <= until:
                    seen.add(node_id)
                    results.append(node)

        results.sort(key=lambda n: n.timestamps.created, reverse=True)
        return results[:limit] if limit is not None else results

    def related(self, node_id: str, edge_types: Optional[List[Union[EdgeType, str]]] = None) -> List[Node]:
        """Existing neighbours of a node in either direction."""
        neighbors = self.edges.get_neighbors(node_id, edge_types, direction="both")
        return [n for n in (self.nodes.get(i) for i in neighbors) if n]

    def context_chain(self, node_ids: List[str]) -> List[str]:
        """Human-readable chain of nodes and the edges linking consecutive ones."""
        chain: List[str] = []
        for i, node_id in enumerate(node_ids):
            node = self.nodes.get(node_id)
            if node is None:
                continue
            chain.append(f"[{node.type.value.upper()}] {node.content.summary} (w:{node.scores.weight:.2f})")
            if i + 1 < len(node_ids):
                edge = self.edges.get(node_id, node_ids[i + 1])
                if edge:
                    chain.append(f"  -> {edge.type.value} (w:{edge.props.weight:.2f})")
        return chain
