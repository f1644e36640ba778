"""
Graph edge operations.

The graph document holds three maps:

    adj    source id -> edge type -> [target ids]
    radj   target id -> edge type -> [source ids]
    edges  edge id   -> edge record (weight, direction, reason)

Adding or removing an edge always updates both adjacency maps. Edge records
are addressed by a hash of their endpoints, so readers always cross-check the
record's type against the adjacency entry they arrived from.
"""

import logging
import time
from collections import deque
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from .. import hashing
from ..models import DEFAULT_WEIGHT, DeltaChange, Edge, EdgeProps
from ..storage import BrainStorage
from ..types import DeltaOp, EdgeDirection, EdgeType

logger = logging.getLogger(__name__)

DIRECTIONS = ("out", "in", "both")


class EdgeStore:
    """
    Edge CRUD and traversal over the adjacency lists.

    Features:
    - Duplicate edges strengthen the existing one instead
    - Neighbour and edge lookups by type and direction
    - BFS path finding
    """

    def __init__(self, storage: BrainStorage, clock: Callable[[], float] = time.time):
        self.storage = storage
        self.clock = clock
        self.pending: List[Dict[str, Any]] = []

    def create(self,
               source_id: str,
               target_id: str,
               edge_type: Union[EdgeType, str],
               weight: float = DEFAULT_WEIGHT,
               direction: Union[EdgeDirection, str] = EdgeDirection.BIDIRECTIONAL,
               reason: Optional[str] = None) -> Optional[Edge]:
        """
        Link two nodes.

        Args:
            source_id: Source node ID
            target_id: Target node ID
            edge_type: Relation type
            weight: Edge weight, 0.0-1.0
            direction: bi | forward | backward
            reason: Optional free-text explanation

        Returns:
            The new edge, or the strengthened existing edge for a duplicate
        """
        edge_type = EdgeType.parse(edge_type)
        if not 0.0 <= weight <= 1.0:
            raise ValueError("weight must be between 0.0 and 1.0")
        if source_id == target_id:
            return None

        graph = self.storage.get_graph()
        if target_id in graph["adj"].get(source_id, {}).get(edge_type.value, []):
            return self.strengthen(source_id, target_id, edge_type)

        # One record per (source, target): a new relation type replaces the old one
        existing = self.get(source_id, target_id)
        if existing is not None:
            self.delete(source_id, target_id, existing.type)

        targets = graph["adj"].setdefault(source_id, {}).setdefault(edge_type.value, [])
        edge = Edge(
            id=hashing.edge_id(source_id, target_id),
            source=source_id,
            target=target_id,
            type=edge_type,
            created=self.clock(),
            props=EdgeProps(weight=weight, direction=EdgeDirection(direction), reason=reason),
        )

        targets.append(target_id)
        graph["radj"].setdefault(target_id, {}).setdefault(edge_type.value, []).append(source_id)
        graph["edges"][edge.id] = edge.to_dict()
        self.storage.save_graph(graph)

        meta = self.storage.get_meta()
        self.storage.update_meta(edge_count=meta.edge_count + 1)

        self.pending.append(DeltaChange(
            op=DeltaOp.ADD,
            path=f"graph.edges.{edge.id}",
            after=hashing.compute_table(edge.to_dict()),
        ).to_dict())
        return edge

    def get(self, source_id: str, target_id: str,
            edge_type: Optional[Union[EdgeType, str]] = None) -> Optional[Edge]:
        """Edge from source to target, optionally of a given type."""
        data = self.storage.get_graph()["edges"].get(hashing.edge_id(source_id, target_id))
        if not data:
            return None
        edge = Edge.from_dict(data)
        if edge.source != source_id or edge.target != target_id:
            return None
        if edge_type is not None and edge.type != EdgeType.parse(edge_type):
            return None
        return edge

    def _types(self, edge_types: Optional[Iterable[Union[EdgeType, str]]]) -> List[str]:
        if not edge_types:
            return [t.value for t in EdgeType]
        return [EdgeType.parse(t).value for t in edge_types]

    def get_edges(self, node_id: str,
                  edge_types: Optional[Iterable[Union[EdgeType, str]]] = None,
                  direction: str = "out") -> List[Edge]:
        """
        Edges touching a node.

        Args:
            node_id: Node ID
            edge_types: Types to include (all if None)
            direction: "out", "in" or "both"
        """
        if direction not in DIRECTIONS:
            raise ValueError(f"direction must be one of {DIRECTIONS}")
        graph = self.storage.get_graph()
        types = self._types(edge_types)
        results: List[Edge] = []

        def collect(edge_id: str, edge_type: str) -> None:
            data = graph["edges"].get(edge_id)
            if data and data.get("type") == edge_type:
                results.append(Edge.from_dict(data))

        if direction in ("out", "both"):
            adj = graph["adj"].get(node_id, {})
            for edge_type in types:
                for target_id in adj.get(edge_type, []):
                    collect(hashing.edge_id(node_id, target_id), edge_type)

        if direction in ("in", "both"):
            radj = graph["radj"].get(node_id, {})
            for edge_type in types:
                for source_id in radj.get(edge_type, []):
                    collect(hashing.edge_id(source_id, node_id), edge_type)

        return results

    def get_neighbors(self, node_id: str,
                      edge_types: Optional[Iterable[Union[EdgeType, str]]] = None,
                      direction: str = "out") -> List[str]:
        """Neighbour node IDs in first-seen order, without duplicates."""
        if direction not in DIRECTIONS:
            raise ValueError(f"direction must be one of {DIRECTIONS}")
        graph = self.storage.get_graph()
        types = self._types(edge_types)
        neighbors: List[str] = []

        maps = []
        if direction in ("out", "both"):
            maps.append(graph["adj"].get(node_id, {}))
        if direction in ("in", "both"):
            maps.append(graph["radj"].get(node_id, {}))

        for adjacency in maps:
            for edge_type in types:
                for other in adjacency.get(edge_type, []):
                    if other not in neighbors:
                        neighbors.append(other)
        return neighbors

    def delete(self, source_id: str, target_id: str,
               edge_type: Optional[Union[EdgeType, str]] = None) -> bool:
        """Remove an edge. Returns False if no matching edge exists."""
        edge = self.get(source_id, target_id, edge_type)
        if edge is None:
            return False

        graph = self.storage.get_graph()
        before_hash = hashing.compute_table(graph["edges"][edge.id])

        out = graph["adj"].get(source_id, {})
        if target_id in out.get(edge.type.value, []):
            out[edge.type.value].remove(target_id)
        incoming = graph["radj"].get(target_id, {})
        if source_id in incoming.get(edge.type.value, []):
            incoming[edge.type.value].remove(source_id)
        del graph["edges"][edge.id]
        self.storage.save_graph(graph)

        meta = self.storage.get_meta()
        self.storage.update_meta(edge_count=max(0, meta.edge_count - 1))

        self.pending.append(DeltaChange(
            op=DeltaOp.DELETE,
            path=f"graph.edges.{edge.id}",
            before=before_hash,
        ).to_dict())
        return True

    def delete_all(self, node_id: str) -> int:
        """Remove every edge touching a node. Returns the number removed."""
        count = 0
        for edge in self.get_edges(node_id, direction="both"):
            if self.delete(edge.source, edge.target, edge.type):
                count += 1
        return count

    def strengthen(self, source_id: str, target_id: str,
                   edge_type: Union[EdgeType, str]) -> Optional[Edge]:
        """Raise an edge's weight with diminishing returns: w += (1 - w) * 0.1."""
        edge = self.get(source_id, target_id, edge_type)
        if edge is None:
            return None

        edge.props.weight = min(1.0, edge.props.weight + (1.0 - edge.props.weight) * 0.1)
        edge.created = self.clock()

        graph = self.storage.get_graph()
        graph["edges"][edge.id] = edge.to_dict()
        self.storage.save_graph(graph)
        return edge

    def are_connected(self, node_id_1: str, node_id_2: str,
                      edge_type: Optional[Union[EdgeType, str]] = None) -> bool:
        return (self.get(node_id_1, node_id_2, edge_type) is not None
                or self.get(node_id_2, node_id_1, edge_type) is not None)

    def find_path(self, from_id: str, to_id: str, max_depth: int = 5,
                  exists: Optional[Callable[[str], bool]] = None) -> Dict[str, Any]:
        """
        Breadth-first path search over edges in both directions.

        Args:
            from_id: Start node
            to_id: Goal node
            max_depth: Maximum number of hops
            exists: Optional predicate; nodes failing it are not traversed

        Returns:
            {"nodes": [ids], "edges": [Edge], "found": bool}
        """
        queue = deque([(from_id, [from_id], [])])
        visited = {from_id}

        while queue:
            current, path, edges = queue.popleft()
            if current == to_id:
                return {"nodes": path, "edges": edges, "found": True}
            if len(edges) >= max_depth:
                continue

            for edge in self.get_edges(current, direction="both"):
                neighbor = edge.other(current)
                if neighbor in visited:
                    continue
                if exists is not None and not exists(neighbor):
                    continue
                visited.add(neighbor)
                queue.append((neighbor, path + [neighbor], edges + [edge]))

        return {"nodes": [], "edges": [], "found": False}

    def count(self) -> int:
        return len(self.storage.get_graph()["edges"])

    def get_and_clear_pending(self) -> List[Dict[str, Any]]:
        changes = self.pending
        self.pending = []
        return changes
