"""
Secondary indices over the node store.

    by_file    file path       -> node IDs
    by_symbol  symbol name     -> node IDs (a node may sit under several symbols)
    by_time    UTC day bucket  -> node IDs (creation day)

Each value is an ordered, duplicate-free list. Indices are a derived cache:
``rebuild`` reconstructs all three from a full node scan.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from ..models import Node
from ..storage import BrainStorage
from ..types import INDEX_NAMES

logger = logging.getLogger(__name__)


def day_bucket(timestamp: float) -> str:
    """UTC day string (YYYY-MM-DD) for a unix timestamp."""
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).strftime("%Y-%m-%d")


def parse_day_bucket(day: str) -> Optional[float]:
    """Unix timestamp of UTC midnight for a day bucket, or None if malformed."""
    try:
        return datetime.strptime(day, "%Y-%m-%d").replace(tzinfo=timezone.utc).timestamp()
    except ValueError:
        return None


def _add_to(index: Dict[str, List[str]], key: str, node_id: str) -> bool:
    ids = index.setdefault(key, [])
    if node_id in ids:
        return False
    ids.append(node_id)
    return True


def _remove_from(index: Dict[str, List[str]], key: str, node_id: str) -> bool:
    ids = index.get(key)
    if not ids or node_id not in ids:
        return False
    ids.remove(node_id)
    if not ids:
        del index[key]
    return True


class IndexMaintainer:
    """Keeps by-file, by-symbol and by-time indices in step with node CRUD."""

    def __init__(self, storage: BrainStorage):
        self.storage = storage

    def lookup(self, name: str, key: str) -> List[str]:
        """Node IDs stored under ``key`` in index ``name`` (a copy)."""
        return list(self.storage.get_index(name).get(key, []))

    def add(self, node: Node) -> None:
        """Index a newly created node."""
        if node.context.file:
            self._mutate("by_file", lambda idx: _add_to(idx, node.context.file, node.id))
        for symbol in node.context.symbols:
            self._mutate("by_symbol", lambda idx, s=symbol: _add_to(idx, s, node.id))
        bucket = day_bucket(node.timestamps.created)
        self._mutate("by_time", lambda idx: _add_to(idx, bucket, node.id))

    def remove(self, node: Node) -> None:
        """Drop a deleted node from every index."""
        if node.context.file:
            self._mutate("by_file", lambda idx: _remove_from(idx, node.context.file, node.id))
        for symbol in node.context.symbols:
            self._mutate("by_symbol", lambda idx, s=symbol: _remove_from(idx, s, node.id))
        bucket = day_bucket(node.timestamps.created)
        self._mutate("by_time", lambda idx: _remove_from(idx, bucket, node.id))

    def refresh(self, before: Node, after: Node) -> None:
        """
        Re-index a node whose context changed.

        Only file and symbol entries move; the time bucket is keyed by creation
        day and stays put until the node is deleted.
        """
        if before.context.file != after.context.file:
            if before.context.file:
                self._mutate("by_file", lambda idx: _remove_from(idx, before.context.file, before.id))
            if after.context.file:
                self._mutate("by_file", lambda idx: _add_to(idx, after.context.file, after.id))

        old_symbols = set(before.context.symbols)
        new_symbols = set(after.context.symbols)
        for symbol in old_symbols - new_symbols:
            self._mutate("by_symbol", lambda idx, s=symbol: _remove_from(idx, s, before.id))
        for symbol in after.context.symbols:
            if symbol not in old_symbols:
                self._mutate("by_symbol", lambda idx, s=symbol: _add_to(idx, s, after.id))

    def rebuild(self, nodes: Iterable[Node]) -> Dict[str, int]:
        """
        Reconstruct all indices from scratch.

        Returns:
            Number of keys per index
        """
        fresh: Dict[str, Dict[str, List[str]]] = {name: {} for name in INDEX_NAMES}
        for node in nodes:
            if node.context.file:
                _add_to(fresh["by_file"], node.context.file, node.id)
            for symbol in node.context.symbols:
                _add_to(fresh["by_symbol"], symbol, node.id)
            _add_to(fresh["by_time"], day_bucket(node.timestamps.created), node.id)

        for name, data in fresh.items():
            self.storage.save_index(name, data)
        counts = {name: len(data) for name, data in fresh.items()}
        logger.debug(f"Rebuilt indices: {counts}")
        return counts

    def _mutate(self, name: str, fn) -> None:
        index = self.storage.get_index(name)
        if fn(index):
            self.storage.save_index(name, index)
