"""
Delta Manager - git-like history for the knowledge graph.

Pending change entries accumulated by node and edge operations are batched
into a delta on commit. Each delta is addressed by a hash of its parent,
timestamp and change descriptors, is written to disk before commit returns,
and is never modified afterwards.

Rollback semantics: rollback moves ``head`` to an existing delta and nothing
else. Newer deltas stay on disk and remain reachable by hash; the next commit
takes the rolled-back head as its parent, so history branches at that point.
Node and edge state are not rewound, because deltas carry content hashes, not
content.
"""

import logging
import re
import time
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Union

from .. import hashing
from ..models import Delta, DeltaChange
from ..storage import BrainStorage
from ..types import INDEX_NAMES, DeltaOp, NodeType, Source

logger = logging.getLogger(__name__)

_HASH_PATTERN = re.compile(r"^[0-9a-f]{8}$")


class DeltaManager:
    """
    Commit, rollback and history traversal.

    Args:
        storage: Project storage holding delta objects and the head pointer
        source: Object providing ``drain_pending()``, ``pending_count()`` and
            ``pending_changes()`` (the knowledge graph)
        clock: Wall clock returning unix seconds
    """

    def __init__(self, storage: BrainStorage, source: Any, clock: Callable[[], float] = time.time):
        self.storage = storage
        self.source = source
        self.clock = clock

    def pending_count(self) -> int:
        return self.source.pending_count()

    def create(self,
               changes: List[Dict[str, Any]],
               message: str,
               trigger: Union[Source, str] = Source.USER,
               session_id: Optional[str] = None) -> Optional[Delta]:
        """
        Write a delta for an explicit change list and advance head.

        Returns:
            The delta, or None when ``changes`` is empty
        """
        if not changes:
            return None

        parent = self.storage.get_head()
        timestamp = self.clock()
        delta_hash = hashing.delta_hash(changes, parent, timestamp)
        # Same parent, same second, same changes: nudge until the address is free
        while self.storage.get_delta(delta_hash) is not None:
            timestamp += 1e-6
            delta_hash = hashing.delta_hash(changes, parent, timestamp)

        delta = Delta(
            hash=delta_hash,
            parent=parent,
            timestamp=timestamp,
            changes=[DeltaChange.from_dict(c) for c in changes],
            message=message,
            trigger=Source(trigger),
            session_id=session_id,
        )

        self.storage.save_delta(delta.to_dict())
        meta = self.storage.get_meta()
        self.storage.update_meta(immediate=True, head=delta.hash, delta_count=meta.delta_count + 1)

        logger.debug(f"Committed delta {delta.hash} ({len(changes)} changes): {message}")
        return delta

    def commit(self,
               message: str,
               trigger: Union[Source, str] = Source.USER,
               session_id: Optional[str] = None) -> Optional[str]:
        """
        Commit all pending changes.

        Returns:
            The new head hash, or None when nothing was pending (head and
            delta count are left untouched)
        """
        if self.pending_count() == 0:
            return None
        delta = self.create(self.source.drain_pending(), message, trigger, session_id)
        return delta.hash if delta else None

    def get(self, delta_hash: str) -> Optional[Delta]:
        """Load a delta by hash; unknown or malformed hashes return None."""
        if not isinstance(delta_hash, str) or not _HASH_PATTERN.match(delta_hash):
            return None
        data = self.storage.get_delta(delta_hash)
        if not data:
            return None
        try:
            return Delta.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Malformed delta object {delta_hash}: {e}")
            return None

    def rollback(self, delta_hash: str) -> bool:
        """
        Point head at an earlier delta.

        Returns:
            False if the delta does not exist
        """
        if self.get(delta_hash) is None:
            return False
        self.storage.set_head(delta_hash)
        logger.info(f"Rolled back head to {delta_hash}")
        return True

    def get_history(self, limit: Optional[int] = 50) -> List[Delta]:
        """Walk parent links from head, newest first. ``limit=None`` walks to the root."""
        history: List[Delta] = []
        current = self.storage.get_head()
        seen = set()
        while current and (limit is None or len(history) < limit) and current not in seen:
            seen.add(current)
            delta = self.get(current)
            if delta is None:
                # Parent pruned by prune_history, or never written
                logger.debug(f"History ends at missing delta {current}")
                break
            history.append(delta)
            current = delta.parent
        return history

    @staticmethod
    def summarize(delta: Delta) -> Dict[str, Any]:
        """
        Count operations and list the top-level path categories of a delta.

        Returns:
            {"hash", "message", "stats": {"adds", "modifies", "deletes",
            "total"}, "categories": [...]}
        """
        stats = {"adds": 0, "modifies": 0, "deletes": 0, "total": len(delta.changes)}
        categories: List[str] = []
        for change in delta.changes:
            if change.op == DeltaOp.ADD:
                stats["adds"] += 1
            elif change.op == DeltaOp.MODIFY:
                stats["modifies"] += 1
            elif change.op == DeltaOp.DELETE:
                stats["deletes"] += 1
            category = change.path.split(".", 1)[0]
            if category not in categories:
                categories.append(category)
        return {"hash": delta.hash, "message": delta.message, "stats": stats, "categories": categories}

    def has_pending(self) -> bool:
        return self.pending_count() > 0

    def status(self) -> Dict[str, Any]:
        """
        Uncommitted work, like ``git status``.

        Returns:
            {"head", "pending": {"adds", "modifies", "deletes", "total"}, "clean"}
        """
        counts = {"adds": 0, "modifies": 0, "deletes": 0}
        for change in self.source.pending_changes():
            op = DeltaOp(change["op"])
            if op == DeltaOp.ADD:
                counts["adds"] += 1
            elif op == DeltaOp.MODIFY:
                counts["modifies"] += 1
            else:
                counts["deletes"] += 1
        counts["total"] = sum(counts.values())
        return {"head": self.storage.get_head(), "pending": counts, "clean": counts["total"] == 0}

    def prune_history(self, keep: int = 100) -> int:
        """
        Delete delta objects older than the newest ``keep`` on the head chain.

        The oldest kept delta still names its pruned parent; history walks
        stop there. Deltas on abandoned branches are left alone.

        Returns:
            Number of delta objects removed
        """
        if keep < 1:
            raise ValueError(f"keep must be at least 1, got {keep}")

        history = self.get_history(limit=None)
        dropped = history[keep:]
        for delta in dropped:
            self.storage.delete(f"deltas.objects.{delta.hash}", immediate=True)

        if dropped:
            meta = self.storage.get_meta()
            self.storage.update_meta(immediate=True, delta_count=max(0, meta.delta_count - len(dropped)))
            logger.info(f"Pruned {len(dropped)} deltas older than {history[keep - 1].hash}")
        return len(dropped)

    def reset(self) -> None:
        """
        Empty the graph: nodes, edges, indices, head and counters.

        Pending changes are discarded. Delta objects already on disk are not
        deleted, but nothing references them afterwards.
        """
        for node_type in NodeType:
            self.storage.save_nodes(node_type.partition, {})
        self.storage.save_graph({"adj": {}, "radj": {}, "edges": {}})
        for name in INDEX_NAMES:
            self.storage.save_index(name, {})
        self.storage.update_meta(head=None, node_count=0, edge_count=0, delta_count=0)
        self.source.drain_pending()
        self.storage.flush_all()
        logger.warning(f"Reset brain at {self.storage.brain_dir}")

    @staticmethod
    def format(delta: Delta) -> List[str]:
        """Render one delta the way ``git log`` renders a commit."""
        stats = DeltaManager.summarize(delta)["stats"]
        return [
            f"commit {delta.hash}",
            f"Date:   {datetime.fromtimestamp(delta.timestamp).strftime('%Y-%m-%d %H:%M:%S')}",
            f"Parent: {delta.parent or '(none)'}",
            "",
            f"    {delta.message or 'No message'}",
            "",
            f" {stats['adds']} additions, {stats['modifies']} modifications, {stats['deletes']} deletions",
        ]

    def log(self, limit: int = 20) -> List[str]:
        """History from head as log lines, one blank line after each delta."""
        lines: List[str] = []
        for delta in self.get_history(limit):
            lines.extend(self.format(delta))
            lines.append("")
        return lines
