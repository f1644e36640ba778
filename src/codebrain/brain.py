"""
Brain - the per-project knowledge store.

Owns one storage cache, knowledge graph, delta manager, learner coordinator
and event bus for a project root. Every public operation on a brain that is
not initialized (or is disabled in config) returns a neutral result: None,
False, an empty list, an empty QueryResult, "" or {}. Callers treat that as
"unavailable", not "nothing matched".

Usage:
    brain = Brain.open("/path/to/project")
    brain.learn({"type": "code_accepted", "file": "app.py",
                 "data": {"code": "def retry(fn): ...", "description": "retry wrapper"}})
    print(brain.get_context_for_llm(query="retry"))
    brain.shutdown()
"""

import copy
import logging
import re
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from .config import CONFIG_FILENAME, BrainConfig, load_config
from .delta import DeltaManager
from .event_bus import EventBus, WebhookDispatcher
from .events import (
    DeltaCommittedEvent,
    DeltaRolledBackEvent,
    NodeCreatedEvent,
    NodeDeletedEvent,
    NodesPrunedEvent,
)
from .graph import KnowledgeGraph, QueryOptions, QueryResult
from .learners import LearnEvent, LearnerCoordinator
from .models import Delta, Edge, GraphMeta, Node
from .output import render, system_context
from .storage import BrainStorage
from .storage.cache import DEFAULT_BRAIN_DIR
from .types import INDEX_NAMES, SCHEMA_VERSION, NodeType, Source

logger = logging.getLogger(__name__)

# Query defaults for LLM context, wider than plain queries
CONTEXT_LIMIT = 30
CONTEXT_DEPTH = 2

_DELTA_HASH = re.compile(r"^[0-9a-f]{8}$")


class Brain:
    """
    Knowledge store for one project root.

    Args:
        root: Project root; state lives under ``<root>/<config.brain_dir>``
        config: Settings (defaults if None)
        clock: Wall clock returning unix seconds
    """

    def __init__(self, root: Union[str, Path], config: Optional[BrainConfig] = None,
                 clock: Callable[[], float] = time.time):
        self.root = Path(root)
        self.config = config or BrainConfig()
        self.clock = clock

        self.storage = BrainStorage(self.root, brain_dir=self.config.brain_dir,
                                    debounce_ms=self.config.debounce_ms)
        self.graph = KnowledgeGraph(self.storage, clock)
        self.deltas = DeltaManager(self.storage, self.graph, clock)
        self.learners = LearnerCoordinator(self.graph, clock=clock)
        self.events = EventBus()

        self.graph.nodes.on_created = self._node_created
        self.graph.nodes.on_deleted = self._node_deleted

        self._initialized = False
        self._webhook: Optional[WebhookDispatcher] = None
        # Nodes learned since the last commit; drives auto-commit
        self._learned = 0

    @classmethod
    def open(cls, root: Union[str, Path], clock: Callable[[], float] = time.time) -> "Brain":
        """Load ``<root>/.codebrain/config.yaml`` (if any) and set the brain up."""
        config = load_config(Path(root) / DEFAULT_BRAIN_DIR / CONFIG_FILENAME)
        brain = cls(root, config=config, clock=clock)
        brain.setup()
        return brain

    # Lifecycle

    def setup(self) -> bool:
        """
        Prepare the brain directory and metadata.

        Returns:
            False when the brain is disabled in config
        """
        if not self.config.enabled:
            logger.info("Brain disabled in config")
            return False

        if not self.storage.ensure_dirs():
            logger.warning("Brain directory unavailable, running in memory only")
        self.storage.get_meta()
        self.storage.flush("meta")

        if self.config.events.webhook_url and self._webhook is None:
            self._webhook = WebhookDispatcher(self.events, self.config.events.webhook_url,
                                              event_types=self.config.events.types,
                                              project=self.root.resolve().name)
            self._webhook.start()

        self._initialized = True
        logger.debug(f"Brain ready at {self.storage.brain_dir}")
        return True

    def is_initialized(self) -> bool:
        return self._initialized and self.config.enabled

    def flush(self) -> bool:
        """Write every dirty document to disk now."""
        return self.storage.flush_all()

    def shutdown(self) -> None:
        """Commit pending changes, flush and stop timers. Nothing is pruned."""
        if not self.is_initialized():
            return

        if self.deltas.has_pending():
            changes = self._learned or self.deltas.pending_count()
            self.commit(f"Session end: {changes} changes", trigger=Source.AUTO)

        if self._webhook is not None:
            self._webhook.stop()
            self._webhook = None

        self.storage.close()
        self._initialized = False

    # Learning

    def learn(self, event: Union[LearnEvent, Dict[str, Any]]) -> Optional[str]:
        """
        Feed a developer-activity event to the learners.

        Evicts the lowest-ranked nodes when the node cap is exceeded, and
        auto-commits once ``commit_threshold`` nodes have been learned since
        the last commit. Edges and evictions ride along in that commit but do
        not count toward the threshold.

        Args:
            event: LearnEvent or dict ``{type, data, file, timestamp}``

        Returns:
            ID of the created node, or None
        """
        if not self.is_initialized() or not self.config.auto_learn:
            return None

        node_id = self.learners.process(event)
        if not node_id:
            return None

        if self.storage.get_meta().node_count > self.config.max_nodes:
            evicted = self.graph.pruner.evict(self.config.max_nodes)
            if evicted:
                self.events.publish(NodesPrunedEvent(count=evicted, reason="evict"))

        self._learned += 1
        if self.config.auto_commit and self._learned >= self.config.commit_threshold:
            self.commit(f"Auto-commit: {self._learned} changes", trigger=Source.AUTO)

        return node_id

    def record_usage(self, node_id: str, success: Optional[bool] = True) -> Optional[Node]:
        """Mark a node as used by the caller (e.g. included in a prompt)."""
        if not self.is_initialized():
            return None
        return self.graph.nodes.record_usage(node_id, success)

    def get_node(self, node_id: str) -> Optional[Node]:
        if not self.is_initialized():
            return None
        return self.graph.nodes.get(node_id)

    # Reading

    def query(self, options: Optional[Union[QueryOptions, Dict[str, Any]]] = None, **kwargs: Any) -> QueryResult:
        """
        Ranked query over the graph.

        Args:
            options: QueryOptions or dict; keyword arguments build one when omitted

        Returns:
            QueryResult (empty when not initialized)
        """
        if not self.is_initialized():
            return QueryResult()
        if options is None:
            options = QueryOptions(**kwargs)
        elif isinstance(options, dict):
            options = QueryOptions.from_dict(options)
        return self.graph.query.execute(options)

    def get_context_for_llm(self,
                            query: Optional[str] = None,
                            file: Optional[str] = None,
                            types: Optional[List[Union[NodeType, str]]] = None,
                            since: Optional[float] = None,
                            limit: int = CONTEXT_LIMIT,
                            depth: int = CONTEXT_DEPTH,
                            fmt: Optional[str] = None,
                            max_tokens: Optional[int] = None,
                            system: bool = False) -> str:
        """
        Render relevant knowledge for an LLM prompt.

        Args:
            query: Substring filter
            file: Restrict to one file
            types: Restrict to node types
            since: Minimum creation time
            limit: Max learnings
            depth: Edge expansion hops
            fmt: compact | natural | json (config default)
            max_tokens: Token budget (config default)
            system: Wrap the block in system-prompt framing

        Returns:
            The rendered context, or "" when nothing is relevant
        """
        if not self.is_initialized():
            return ""

        result = self.query(QueryOptions(query=query, file=file, types=types, since=since,
                                         limit=limit, depth=depth))
        if not result.nodes:
            return ""

        context = render(result, fmt or self.config.output.format, query=query,
                         max_tokens=max_tokens or self.config.output.max_tokens)
        return system_context(context) if system else context

    def related(self, node_id: str) -> List[Node]:
        if not self.is_initialized():
            return []
        return self.graph.query.related(node_id)

    # History

    def commit(self, message: str, trigger: Union[Source, str] = Source.USER,
               session_id: Optional[str] = None) -> Optional[str]:
        """
        Commit pending changes as a delta.

        Returns:
            The new head hash, or None when nothing was pending
        """
        if not self.is_initialized():
            return None

        delta_hash = self.deltas.commit(message, trigger=trigger, session_id=session_id)
        if delta_hash:
            self._learned = 0
            if self.storage.get_meta().delta_count > self.config.max_deltas:
                self.deltas.prune_history(self.config.max_deltas)
            delta = self.deltas.get(delta_hash)
            self.events.publish(DeltaCommittedEvent(
                delta_hash=delta_hash,
                parent=delta.parent if delta else None,
                message=message,
                change_count=len(delta.changes) if delta else 0,
                trigger=Source(trigger).value,
            ))
        return delta_hash

    def rollback(self, delta_hash: str) -> bool:
        """Move head to an earlier delta. Graph state is not rewound."""
        if not self.is_initialized():
            return False

        previous = self.storage.get_head()
        if not self.deltas.rollback(delta_hash):
            return False
        self.events.publish(DeltaRolledBackEvent(previous_head=previous, new_head=delta_hash))
        return True

    def get_history(self, limit: Optional[int] = 50) -> List[Delta]:
        if not self.is_initialized():
            return []
        return self.deltas.get_history(limit)

    def get_delta(self, delta_hash: str) -> Optional[Delta]:
        if not self.is_initialized():
            return None
        return self.deltas.get(delta_hash)

    def status(self) -> Dict[str, Any]:
        """Head plus uncommitted adds/modifies/deletes (``{}`` when not initialized)."""
        if not self.is_initialized():
            return {}
        return self.deltas.status()

    def log(self, limit: int = 20) -> List[str]:
        if not self.is_initialized():
            return []
        return self.deltas.log(limit)

    # Maintenance

    def prune(self, threshold: Optional[float] = None, unused_days: Optional[float] = None) -> int:
        """
        Remove nodes that are both weak and stale.

        Args:
            threshold: Weight threshold (config default)
            unused_days: Staleness in days (config default)

        Returns:
            Number of nodes removed; always 0 when ``prune.enabled`` is off
        """
        if not self.is_initialized() or not self.config.prune.enabled:
            return 0

        threshold = self.config.prune.threshold if threshold is None else threshold
        unused_days = self.config.prune.unused_days if unused_days is None else unused_days
        removed = self.graph.pruner.prune(threshold, unused_days)
        if removed:
            self.events.publish(NodesPrunedEvent(count=removed, reason="prune"))
        return removed

    def rebuild_indices(self) -> Dict[str, int]:
        """Re-derive every secondary index from the node partitions."""
        if not self.is_initialized():
            return {}
        return self.graph.rebuild_indices()

    def stats(self) -> Dict[str, Any]:
        if not self.is_initialized():
            return {}

        meta = self.storage.get_meta()
        return {
            "initialized": True,
            "node_count": meta.node_count,
            "edge_count": meta.edge_count,
            "delta_count": meta.delta_count,
            "head": meta.head,
            "pending_changes": self._learned,
        }

    def reset(self) -> bool:
        """Discard every node, edge and index entry and clear head. Irreversible."""
        if not self.is_initialized():
            return False
        self.deltas.reset()
        self._learned = 0
        return True

    # Transfer

    def export(self, include_history: bool = False) -> Optional[Dict[str, Any]]:
        """
        Snapshot the full brain state.

        Args:
            include_history: Also include the deltas reachable from head

        Returns:
            A deep copy of the state, or None when not initialized
        """
        if not self.is_initialized():
            return None

        data: Dict[str, Any] = {
            "schema": SCHEMA_VERSION,
            "meta": self.storage.get_meta().to_dict(),
            "graph": self.storage.get_graph(),
            "nodes": {t.partition: self.storage.get_nodes(t.partition) for t in NodeType},
            "indices": {name: self.storage.get_index(name) for name in INDEX_NAMES},
        }
        if include_history:
            data["deltas"] = [d.to_dict() for d in self.deltas.get_history(limit=None)]
        return copy.deepcopy(data)

    def import_data(self, data: Any) -> bool:
        """
        Replace the brain state with an exported snapshot.

        The whole snapshot is validated before anything is written; a schema
        mismatch or any malformed record rejects the import. Counters are
        recomputed from the imported records, head is cleared when its delta
        is not in this store, indices are rebuilt when the snapshot has none,
        and pending changes are discarded.

        Returns:
            True if the snapshot was imported
        """
        if not self.is_initialized():
            return False

        try:
            snapshot = _validate_snapshot(data)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"Rejected import: {e}")
            return False

        for node_type in NodeType:
            self.storage.save_nodes(node_type.partition, snapshot["nodes"].get(node_type.partition, {}))
        self.storage.save_graph(snapshot["graph"])
        for delta in snapshot["deltas"]:
            self.storage.save_delta(delta)

        if snapshot["indices"]:
            for name in INDEX_NAMES:
                self.storage.save_index(name, snapshot["indices"].get(name, {}))
        else:
            self.graph.rebuild_indices()

        # A snapshot exported without history names a head this store may not have
        head = snapshot["meta"].head
        if head and self.storage.get_delta(head) is None:
            logger.info(f"Snapshot head {head} not present, importing without history")
            head = None
        self.storage.update_meta(immediate=True, head=head)

        self.storage.update_meta(
            immediate=True,
            node_count=sum(len(nodes) for nodes in snapshot["nodes"].values()),
            edge_count=len(snapshot["graph"]["edges"]),
            delta_count=max(len(snapshot["deltas"]), len(self.deltas.get_history(limit=None))),
        )

        self.graph.drain_pending()
        self._learned = 0
        self.storage.flush_all()
        logger.info(f"Imported {self.storage.get_meta().node_count} nodes")
        return True

    # Event plumbing

    def _node_created(self, node: Node) -> None:
        self.events.publish(NodeCreatedEvent(
            node_id=node.id,
            node_type=node.type.value,
            summary=node.content.summary,
            file=node.context.file,
        ))

    def _node_deleted(self, node: Node) -> None:
        self.events.publish(NodeDeletedEvent(node_id=node.id))


def _validate_snapshot(data: Any) -> Dict[str, Any]:
    """
    Check an exported snapshot and return a normalized deep copy.

    Raises:
        ValueError: On schema mismatch or malformed records
    """
    if not isinstance(data, dict):
        raise ValueError("snapshot must be a mapping")
    if data.get("schema") != SCHEMA_VERSION:
        raise ValueError(f"schema {data.get('schema')!r} does not match {SCHEMA_VERSION}")

    data = copy.deepcopy(data)

    nodes = data.get("nodes") or {}
    if not isinstance(nodes, dict):
        raise ValueError("'nodes' must be a mapping of partitions")
    normalized_nodes: Dict[str, Dict[str, Any]] = {}
    for partition, records in nodes.items():
        node_type = NodeType.parse(partition)
        if not isinstance(records, dict):
            raise ValueError(f"partition {partition} must be a mapping")
        for node_id, record in records.items():
            node = Node.from_dict(record)
            if node.id != node_id or node.type != node_type:
                raise ValueError(f"node {node_id} does not belong in partition {partition}")
        normalized_nodes[node_type.partition] = records

    graph = data.get("graph") or {}
    if not isinstance(graph, dict):
        raise ValueError("'graph' must be a mapping")
    graph = {
        "adj": graph.get("adj") or {},
        "radj": graph.get("radj") or {},
        "edges": graph.get("edges") or {},
    }
    for section in graph.values():
        if not isinstance(section, dict):
            raise ValueError("graph sections must be mappings")
    for edge_id, record in graph["edges"].items():
        if Edge.from_dict(record).id != edge_id:
            raise ValueError(f"edge {edge_id} is keyed under the wrong id")

    indices = data.get("indices") or {}
    if not isinstance(indices, dict):
        raise ValueError("'indices' must be a mapping")
    for name, index in indices.items():
        if name not in INDEX_NAMES or not isinstance(index, dict):
            raise ValueError(f"unknown or malformed index {name}")
        if not all(isinstance(ids, list) for ids in index.values()):
            raise ValueError(f"index {name} must map keys to id lists")

    deltas = data.get("deltas") or []
    if not isinstance(deltas, list):
        raise ValueError("'deltas' must be a list")
    deltas = [Delta.from_dict(d).to_dict() for d in deltas]
    for delta in deltas:
        if not _DELTA_HASH.match(delta["hash"]):
            raise ValueError(f"malformed delta hash {delta['hash']!r}")

    return {
        "nodes": normalized_nodes,
        "graph": graph,
        "indices": indices,
        "deltas": deltas,
        "meta": GraphMeta.from_dict(data.get("meta") or {}),
    }
