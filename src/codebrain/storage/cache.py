"""
Brain Storage - cached JSON documents backed by per-key files.

Every piece of graph state lives in a JSON document addressed by a dotted
storage key:

    meta                     -> <brain>/meta.json
    graph                    -> <brain>/graph.json
    nodes.patterns           -> <brain>/nodes/patterns.json
    indices.by_file          -> <brain>/indices/by_file.json
    deltas.objects.<hash>    -> <brain>/deltas/objects/<hash>.json

Reads are served from an in-memory cache. Writes update the cache at once and
reach disk after a debounce window, or synchronously for keys saved with
``immediate=True`` (delta objects, and the meta document on commit).

Callers mutate the documents ``load`` returns and hand them back to ``save``.
``save`` records a deep copy of what it was given; flushes write that copy,
never the live document.
"""

import copy
import json
import logging
import threading
from pathlib import Path
from typing import Any, Dict, Optional, Set

from ..models import GraphMeta
from .debounce import Debouncer

logger = logging.getLogger(__name__)

DEFAULT_BRAIN_DIR = ".codebrain"
DEBOUNCE_MS = 500
# Debounced flushes that fail are retried this many times before waiting for
# the next save or an explicit flush
FLUSH_RETRIES = 3

_SUBDIRS = ("nodes", "indices", "deltas", "deltas/objects")


class BrainStorage:
    """
    Storage/cache layer for one project root.

    Pattern: write-back cache with per-key dirty tracking
    Lifetime: one instance per project root, owned by the Brain

    Features:
    - Lazy loading with negative caching (a missing or malformed file is
      cached as an empty document and never re-read)
    - Debounced flush per key (a new write reschedules the pending flush)
    - Immediate flush for critical keys
    - Saving ``None`` deletes the backing file on flush
    """

    def __init__(self, root: Path, brain_dir: str = DEFAULT_BRAIN_DIR, debounce_ms: int = DEBOUNCE_MS):
        """
        Initialize storage for a project.

        Args:
            root: Project root directory
            brain_dir: Brain directory, relative to the root
            debounce_ms: Quiet period before a dirty key is written
        """
        self.root = Path(root)
        self.brain_dir = self.root / brain_dir
        self._cache: Dict[str, Any] = {}
        self._dirty: Set[str] = set()
        # Deep copies taken at save time; what flush writes
        self._snapshots: Dict[str, Any] = {}
        self._lock = threading.RLock()
        self._debouncer = Debouncer(debounce_ms)

    def ensure_dirs(self) -> bool:
        """Create the brain directory tree. Returns False if it cannot be created."""
        try:
            self.brain_dir.mkdir(parents=True, exist_ok=True)
            for sub in _SUBDIRS:
                (self.brain_dir / sub).mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.warning(f"Could not create brain directory {self.brain_dir}: {e}")
            return False
        return True

    def exists(self) -> bool:
        return self.brain_dir.is_dir()

    def get_path(self, key: str) -> Path:
        """Map a storage key to its backing file."""
        parts = key.split(".")
        return self.brain_dir.joinpath(*parts[:-1], parts[-1] + ".json")

    def _read_json(self, path: Path) -> Optional[Any]:
        try:
            content = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning(f"Failed to read {path}: {e}")
            return None

        if not content.strip():
            return None
        try:
            return json.loads(content)
        except json.JSONDecodeError as e:
            logger.warning(f"Malformed JSON in {path}, treating as empty: {e}")
            return None

    def _write_json(self, path: Path, data: Any) -> bool:
        try:
            encoded = json.dumps(data, indent=2, sort_keys=True)
        except (TypeError, ValueError) as e:
            logger.warning(f"Could not encode document for {path}: {e}")
            return False

        tmp_path = path.with_suffix(".json.tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(encoded, encoding="utf-8")
            tmp_path.replace(path)
        except OSError as e:
            logger.warning(f"Failed to write {path}: {e}")
            return False
        return True

    def load(self, key: str) -> Any:
        """
        Load a document, from cache when possible.

        Args:
            key: Storage key

        Returns:
            The cached document; ``{}`` when the backing file is missing or
            malformed
        """
        with self._lock:
            if key in self._cache:
                cached = self._cache[key]
                # None marks a delete that has not reached disk yet
                return {} if cached is None else cached

            data = self._read_json(self.get_path(key))
            if data is None:
                data = {}
            self._cache[key] = data
            return data

    def save(self, key: str, data: Any, immediate: bool = False) -> None:
        """
        Save a document to cache and schedule its disk write.

        Args:
            key: Storage key
            data: JSON-serializable document, or None to delete the file
            immediate: Write synchronously instead of debouncing
        """
        snapshot = copy.deepcopy(data)
        with self._lock:
            self._cache[key] = data
            self._snapshots[key] = snapshot
            self._dirty.add(key)

        if immediate:
            self._debouncer.cancel(key)
            self.flush(key)
            return

        self._schedule_flush(key)

    def _schedule_flush(self, key: str, attempt: int = 0) -> None:
        self._debouncer.schedule(key, lambda: self._scheduled_flush(key, attempt))

    def _scheduled_flush(self, key: str, attempt: int) -> None:
        if self.flush(key) or attempt >= FLUSH_RETRIES:
            return
        logger.debug(f"Retrying flush of {key} (attempt {attempt + 1}/{FLUSH_RETRIES})")
        self._schedule_flush(key, attempt + 1)

    def delete(self, key: str, immediate: bool = False) -> None:
        """Drop a document; its backing file is removed on flush."""
        self.save(key, None, immediate=immediate)

    def is_dirty(self, key: str) -> bool:
        with self._lock:
            return key in self._dirty

    def flush(self, key: str) -> bool:
        """
        Write one key to disk now.

        Returns:
            True if the key is clean afterwards
        """
        with self._lock:
            if key not in self._dirty:
                return True

            path = self.get_path(key)
            data = self._snapshots.get(key)

            if data is None:
                try:
                    path.unlink()
                except FileNotFoundError:
                    pass
                except OSError as e:
                    logger.warning(f"Failed to delete {path}: {e}")
                    return False
                self._dirty.discard(key)
                self._snapshots.pop(key, None)
                self._cache.pop(key, None)
                return True

            if not self._write_json(path, data):
                return False

            self._dirty.discard(key)
            self._snapshots.pop(key, None)
            logger.debug(f"Flushed {key} to {path}")
            return True

    def flush_all(self) -> bool:
        """Flush every dirty key. Returns True if all writes succeeded."""
        with self._lock:
            keys = sorted(self._dirty)
        ok = True
        for key in keys:
            self._debouncer.cancel(key)
            ok = self.flush(key) and ok
        return ok

    def clear_cache(self) -> None:
        """Forget cached documents and pending writes without flushing."""
        self._debouncer.cancel_all()
        with self._lock:
            self._cache.clear()
            self._snapshots.clear()
            self._dirty.clear()

    def close(self) -> None:
        """Flush everything and stop pending timers."""
        self.flush_all()
        self._debouncer.cancel_all()

    # Typed accessors

    def get_meta(self) -> GraphMeta:
        """Read the project metadata, initializing it on first use."""
        data = self.load("meta")
        if not data or "schema" not in data:
            meta = GraphMeta()
            self.save("meta", meta.to_dict())
            return meta
        return GraphMeta.from_dict(data)

    def update_meta(self, immediate: bool = False, **updates: Any) -> GraphMeta:
        """Apply partial updates to the metadata document."""
        with self._lock:
            data = self.get_meta().to_dict()
            for k, v in updates.items():
                if k not in data:
                    raise ValueError(f"Unknown meta field: {k}")
                data[k] = v
            self.save("meta", data, immediate=immediate)
        return GraphMeta.from_dict(data)

    def get_head(self) -> Optional[str]:
        return self.get_meta().head

    def set_head(self, delta_hash: Optional[str]) -> None:
        self.update_meta(immediate=True, head=delta_hash)

    def get_nodes(self, partition: str) -> Dict[str, Dict[str, Any]]:
        return self.load(f"nodes.{partition}")

    def save_nodes(self, partition: str, nodes: Dict[str, Dict[str, Any]]) -> None:
        self.save(f"nodes.{partition}", nodes)

    def get_graph(self) -> Dict[str, Dict[str, Any]]:
        graph = self.load("graph")
        if "adj" not in graph or "radj" not in graph:
            graph = {"adj": {}, "radj": {}, "edges": {}}
            self.save("graph", graph)
        graph.setdefault("edges", {})
        return graph

    def save_graph(self, graph: Dict[str, Dict[str, Any]]) -> None:
        self.save("graph", graph)

    def get_index(self, name: str) -> Dict[str, list]:
        return self.load(f"indices.{name}")

    def save_index(self, name: str, data: Dict[str, list]) -> None:
        self.save(f"indices.{name}", data)

    def get_delta(self, delta_hash: str) -> Optional[Dict[str, Any]]:
        data = self.load(f"deltas.objects.{delta_hash}")
        return data or None

    def save_delta(self, delta: Dict[str, Any]) -> None:
        """Persist a delta object synchronously; deltas are never debounced."""
        self.save(f"deltas.objects.{delta['hash']}", delta, immediate=True)
