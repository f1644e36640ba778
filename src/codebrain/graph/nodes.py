"""
Node Store - CRUD over knowledge nodes.

Nodes are partitioned by type: every pattern lives in the ``nodes.patterns``
document, every correction in ``nodes.corrections`` and so on. A node's type
is recoverable from its ID, so ``get`` touches exactly one partition.

Every create/update/delete appends an entry to ``pending``; the delta manager
drains it on commit. Usage recording is deliberately left out of the pending
buffer: it is high-frequency feedback, not an edit.
"""

import logging
import time
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Union

from .. import hashing
from ..delta import diff
from ..models import DEFAULT_WEIGHT, DeltaChange, Node, NodeContent, NodeContext, NodeMeta, NodeScores, NodeTimestamps, clamp
from ..storage import BrainStorage
from ..types import DeltaOp, NodeType, Source
from .indices import IndexMaintainer
from .ranking import rank

logger = logging.getLogger(__name__)

# Uses beyond this count earn a small permanent weight bonus
USAGE_BONUS_THRESHOLD = 5
USAGE_BONUS = 0.01

_MUTABLE_SECTIONS = ("content", "context", "scores")


def node_path(node: Node) -> str:
    return f"nodes.{node.type.partition}.{node.id}"


def type_from_id(node_id: str) -> Optional[NodeType]:
    """Resolve the node type embedded in an ID, or None for malformed IDs."""
    if not isinstance(node_id, str):
        return None
    parts = node_id.split("_")
    if len(parts) < 4 or parts[0] != "n":
        return None
    try:
        return NodeType.from_code(parts[1])
    except ValueError:
        return None


class NodeStore:
    """
    Typed CRUD over the node partitions.

    Keeps the project node counter and the secondary indices consistent with
    every create and delete before the call returns.
    """

    def __init__(self, storage: BrainStorage, indices: IndexMaintainer,
                 clock: Callable[[], float] = time.time):
        """
        Args:
            storage: Project storage
            indices: Index maintainer updated alongside node CRUD
            clock: Wall clock returning unix seconds
        """
        self.storage = storage
        self.indices = indices
        self.clock = clock
        self.pending: List[Dict[str, Any]] = []
        # Observers notified after a node is stored or removed
        self.on_created: Optional[Callable[[Node], None]] = None
        self.on_deleted: Optional[Callable[[Node], None]] = None

    def create(self,
               node_type: Union[NodeType, str],
               content: Union[NodeContent, Dict[str, Any]],
               context: Optional[Union[NodeContext, Dict[str, Any]]] = None,
               weight: Optional[float] = None,
               source: Union[Source, str] = Source.AUTO) -> Node:
        """
        Create and store a node.

        Args:
            node_type: Node type (enum, value or partition name)
            content: Summary/detail/code/lang
            context: Optional file/function/lines/symbols
            weight: Initial weight, 0.0-1.0 (default 0.5)
            source: Provenance (auto | user | llm)

        Returns:
            The created node
        """
        node_type = NodeType.parse(node_type)
        if weight is not None and not 0.0 <= weight <= 1.0:
            raise ValueError("weight must be between 0.0 and 1.0")

        if isinstance(content, dict):
            content = NodeContent.from_dict(content)
        if context is None:
            context = NodeContext()
        elif isinstance(context, dict):
            context = NodeContext.from_dict(context)

        now = self.clock()
        node = Node(
            id=hashing.node_id(node_type.code, content.summary + content.detail, timestamp=now),
            type=node_type,
            content=content,
            context=context,
            scores=NodeScores(weight=DEFAULT_WEIGHT if weight is None else weight),
            timestamps=NodeTimestamps(created=now, updated=now, last_used=now),
            meta=NodeMeta(source=Source(source), version=1),
        )

        nodes = self.storage.get_nodes(node_type.partition)
        nodes[node.id] = node.to_dict()
        self.storage.save_nodes(node_type.partition, nodes)

        meta = self.storage.get_meta()
        self.storage.update_meta(node_count=meta.node_count + 1)

        self.indices.add(node)
        self.pending.append(DeltaChange(op=DeltaOp.ADD, path=node_path(node), after=node.content_hash).to_dict())

        logger.debug(f"Created node {node.id}")
        if self.on_created is not None:
            self.on_created(node)
        return node

    def get(self, node_id: str) -> Optional[Node]:
        """Retrieve a node by ID. Unknown or malformed IDs return None."""
        node_type = type_from_id(node_id)
        if node_type is None:
            return None
        data = self.storage.get_nodes(node_type.partition).get(node_id)
        if not data:
            return None
        try:
            return Node.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Skipping malformed node {node_id}: {e}")
            return None

    def exists(self, node_id: str) -> bool:
        node_type = type_from_id(node_id)
        return node_type is not None and node_id in self.storage.get_nodes(node_type.partition)

    def update(self, node_id: str, partial: Dict[str, Any]) -> Optional[Node]:
        """
        Merge partial fields into a node.

        Args:
            node_id: Node to update
            partial: Any of ``content``, ``context``, ``scores`` (dicts merged
                key by key) and ``meta`` (only ``source`` is honoured). Other
                keys, including ``type``, are ignored.

        Returns:
            The updated node, or None if it does not exist
        """
        before = self.get(node_id)
        if before is None:
            return None

        merged = before.to_dict()
        for section in _MUTABLE_SECTIONS:
            if partial.get(section):
                merged[section] = {**merged[section], **partial[section]}
        if partial.get("meta") and "source" in partial["meta"]:
            merged["meta"]["source"] = Source(partial["meta"]["source"]).value

        content = NodeContent.from_dict(merged["content"])
        context = NodeContext.from_dict(merged["context"])
        scores = NodeScores.from_dict(merged["scores"])

        after = Node(
            id=before.id,
            type=before.type,
            content=content,
            context=context,
            scores=scores,
            timestamps=NodeTimestamps(
                created=before.timestamps.created,
                updated=self.clock(),
                last_used=before.timestamps.last_used,
            ),
            meta=NodeMeta(source=Source(merged["meta"]["source"]), version=before.meta.version + 1),
        )

        nodes = self.storage.get_nodes(after.type.partition)
        nodes[after.id] = after.to_dict()
        self.storage.save_nodes(after.type.partition, nodes)

        if before.context != after.context:
            self.indices.refresh(before, after)

        fields = diff.changed_paths(
            {s: before.to_dict()[s] for s in _MUTABLE_SECTIONS + ("meta",)},
            {s: after.to_dict()[s] for s in _MUTABLE_SECTIONS + ("meta",)},
        )
        fields = [f for f in fields if f != "meta.version"]
        self.pending.append(DeltaChange(
            op=DeltaOp.MODIFY,
            path=node_path(after),
            before=before.content_hash,
            after=after.content_hash,
            fields=fields,
        ).to_dict())
        return after

    def delete(self, node_id: str) -> bool:
        """
        Remove a node.

        Returns:
            True if a node was removed, False if it did not exist
        """
        node = self.get(node_id)
        if node is None:
            return False

        nodes = self.storage.get_nodes(node.type.partition)
        nodes.pop(node_id, None)
        self.storage.save_nodes(node.type.partition, nodes)

        meta = self.storage.get_meta()
        self.storage.update_meta(node_count=max(0, meta.node_count - 1))

        self.indices.remove(node)
        self.pending.append(DeltaChange(op=DeltaOp.DELETE, path=node_path(node), before=node.content_hash).to_dict())

        logger.debug(f"Deleted node {node_id}")
        if self.on_deleted is not None:
            self.on_deleted(node)
        return True

    def all_nodes(self, types: Optional[Iterable[Union[NodeType, str]]] = None) -> Iterator[Node]:
        """Iterate over stored nodes, partition by partition."""
        node_types = [NodeType.parse(t) for t in types] if types else list(NodeType)
        for node_type in node_types:
            for node_id, data in list(self.storage.get_nodes(node_type.partition).items()):
                try:
                    yield Node.from_dict(data)
                except (KeyError, TypeError, ValueError) as e:
                    logger.warning(f"Skipping malformed node {node_id}: {e}")

    def count(self) -> int:
        return sum(len(self.storage.get_nodes(t.partition)) for t in NodeType)

    def find(self,
             types: Optional[Iterable[Union[NodeType, str]]] = None,
             file: Optional[str] = None,
             min_weight: Optional[float] = None,
             since: Optional[float] = None,
             query: Optional[str] = None,
             limit: Optional[int] = None) -> List[Node]:
        """
        Find nodes matching every given criterion, best ranked first.

        Args:
            types: Restrict to these node types
            file: Exact context file match
            min_weight: Minimum weight (inclusive)
            since: Minimum creation timestamp (inclusive)
            query: Case-insensitive substring of summary or detail
            limit: Max results

        Returns:
            Matching nodes ordered by recency-decayed weight
        """
        matched = [
            node for node in self.all_nodes(types)
            if matches_criteria(node, file=file, min_weight=min_weight, since=since, query=query)
        ]
        ranked = [node for node, _ in rank(matched, self.clock())]
        if limit is not None:
            ranked = ranked[:limit]
        return ranked

    def record_usage(self, node_id: str, success: Optional[bool] = True) -> Optional[Node]:
        """
        Record that a node was used.

        Updates usage count, last-used time and the running success rate
        ``(rate * (n - 1) + outcome) / n``. Past USAGE_BONUS_THRESHOLD uses each
        further use adds USAGE_BONUS to the weight (capped at 1.0). Passing
        ``success=None`` records the use without an outcome.

        Not tracked as a delta change.
        """
        node = self.get(node_id)
        if node is None:
            return None

        scores = node.scores
        scores.usage += 1
        n = scores.usage
        if success is not None:
            outcome = 1.0 if success else 0.0
            scores.success_rate = clamp((scores.success_rate * (n - 1) + outcome) / n)
        if n > USAGE_BONUS_THRESHOLD:
            scores.weight = clamp(scores.weight + USAGE_BONUS)
        node.timestamps.last_used = self.clock()

        nodes = self.storage.get_nodes(node.type.partition)
        nodes[node.id] = node.to_dict()
        self.storage.save_nodes(node.type.partition, nodes)
        return node

    def merge(self, keep_id: str, drop_id: str) -> Optional[Node]:
        """
        Merge two similar nodes into ``keep_id`` and delete ``drop_id``.

        The longer detail text wins, weights are averaged and usage counts
        summed.
        """
        if keep_id == drop_id:
            return None
        keep = self.get(keep_id)
        drop = self.get(drop_id)
        if keep is None or drop is None:
            return None

        detail = keep.content.detail
        if len(drop.content.detail or "") > len(detail or ""):
            detail = drop.content.detail

        merged = self.update(keep_id, {
            "content": {"detail": detail},
            "scores": {
                "weight": (keep.scores.weight + drop.scores.weight) / 2,
                "usage": keep.scores.usage + drop.scores.usage,
            },
        })
        self.delete(drop_id)
        return merged

    def get_and_clear_pending(self) -> List[Dict[str, Any]]:
        changes = self.pending
        self.pending = []
        return changes


def matches_criteria(node: Node,
                     file: Optional[str] = None,
                     min_weight: Optional[float] = None,
                     since: Optional[float] = None,
                     query: Optional[str] = None) -> bool:
    """AND of all provided filters."""
    if file is not None and node.context.file != file:
        return False
    if min_weight is not None and node.scores.weight < min_weight:
        return False
    if since is not None and node.timestamps.created < since:
        return False
    if query:
        needle = query.lower()
        if needle not in (node.content.summary or "").lower() and needle not in (node.content.detail or "").lower():
            return False
    return True
