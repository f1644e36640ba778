"""
Pruning Engine - removes low-value nodes.

A node is pruned only when it is BOTH weak (weight below the threshold) AND
stale (unused for longer than ``unused_days``). Eviction enforces a hard node
cap by dropping the lowest-ranked nodes first. Every removal goes through
NodeStore.delete, so indices, counters and pending changes stay consistent.
"""

import logging
from typing import List

from .nodes import NodeStore
from .ranking import SECONDS_PER_DAY, rank

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 0.1
DEFAULT_UNUSED_DAYS = 90


class Pruner:
    """Prune and evict nodes from a NodeStore."""

    def __init__(self, nodes: NodeStore):
        self.nodes = nodes

    def candidates(self, threshold: float = DEFAULT_THRESHOLD,
                   unused_days: float = DEFAULT_UNUSED_DAYS) -> List[str]:
        """IDs of nodes that a prune with these settings would remove."""
        now = self.nodes.clock()
        cutoff = unused_days * SECONDS_PER_DAY
        return [
            node.id for node in self.nodes.all_nodes()
            if node.scores.weight < threshold and (now - node.timestamps.last_used) > cutoff
        ]

    def prune(self, threshold: float = DEFAULT_THRESHOLD,
              unused_days: float = DEFAULT_UNUSED_DAYS) -> int:
        """
        Remove weak, stale nodes.

        Args:
            threshold: Nodes with weight below this are weak
            unused_days: Nodes unused for longer than this are stale

        Returns:
            Number of nodes removed
        """
        removed = sum(1 for node_id in self.candidates(threshold, unused_days) if self.nodes.delete(node_id))
        if removed:
            logger.info(f"Pruned {removed} nodes (threshold={threshold}, unused_days={unused_days})")
        return removed

    def evict(self, max_nodes: int) -> int:
        """
        Delete the lowest-ranked nodes until at most ``max_nodes`` remain.

        Returns:
            Number of nodes removed
        """
        nodes = list(self.nodes.all_nodes())
        excess = len(nodes) - max_nodes
        if excess <= 0:
            return 0

        ranked = rank(nodes, self.nodes.clock())
        victims = [node.id for node, _ in reversed(ranked)][:excess]
        removed = sum(1 for node_id in victims if self.nodes.delete(node_id))
        logger.info(f"Evicted {removed} nodes to stay within max_nodes={max_nodes}")
        return removed
