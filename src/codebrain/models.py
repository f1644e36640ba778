"""
Data models for the knowledge graph.

This module contains the dataclasses for nodes, edges, deltas and the project
metadata document. Every record round-trips through ``to_dict``/``from_dict``
so that storage only ever holds plain JSON documents.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from . import hashing
from .types import DeltaOp, EdgeDirection, EdgeType, NodeType, SCHEMA_VERSION, Source

MAX_SUMMARY_LENGTH = 200
DEFAULT_WEIGHT = 0.5


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


@dataclass
class NodeContent:
    """What a node says."""
    summary: str = ""
    detail: str = ""
    code: Optional[str] = None
    lang: Optional[str] = None

    def __post_init__(self):
        if self.summary and len(self.summary) > MAX_SUMMARY_LENGTH:
            self.summary = self.summary[:MAX_SUMMARY_LENGTH]

    def compute_hash(self) -> str:
        return hashing.compute((self.summary or "") + (self.detail or ""))

    def to_dict(self) -> Dict[str, Any]:
        return {"summary": self.summary, "detail": self.detail, "code": self.code, "lang": self.lang}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "NodeContent":
        data = data or {}
        return cls(
            summary=data.get("summary") or "",
            detail=data.get("detail") or "",
            code=data.get("code"),
            lang=data.get("lang"),
        )


@dataclass
class NodeContext:
    """Where a node applies."""
    file: Optional[str] = None
    function: Optional[str] = None
    lines: Optional[List[int]] = None  # [start, end]
    symbols: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "file": self.file,
            "function": self.function,
            "lines": list(self.lines) if self.lines else None,
            "symbols": list(self.symbols),
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "NodeContext":
        data = data or {}
        return cls(
            file=data.get("file"),
            function=data.get("function"),
            lines=data.get("lines"),
            symbols=list(data.get("symbols") or []),
        )


@dataclass
class NodeScores:
    weight: float = DEFAULT_WEIGHT
    usage: int = 0
    success_rate: float = 0.0

    def __post_init__(self):
        self.weight = clamp(float(self.weight))
        self.success_rate = clamp(float(self.success_rate))
        self.usage = max(0, int(self.usage))

    def to_dict(self) -> Dict[str, Any]:
        return {"weight": self.weight, "usage": self.usage, "success_rate": self.success_rate}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "NodeScores":
        data = data or {}
        return cls(
            weight=data.get("weight", DEFAULT_WEIGHT),
            usage=data.get("usage", 0),
            success_rate=data.get("success_rate", 0.0),
        )


@dataclass
class NodeTimestamps:
    created: float
    updated: float
    last_used: float

    def to_dict(self) -> Dict[str, Any]:
        return {"created": self.created, "updated": self.updated, "last_used": self.last_used}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NodeTimestamps":
        created = float(data["created"])
        updated = float(data.get("updated", created))
        return cls(created=created, updated=updated, last_used=float(data.get("last_used", updated)))


@dataclass
class NodeMeta:
    source: Source = Source.AUTO
    version: int = 1

    def to_dict(self) -> Dict[str, Any]:
        return {"source": self.source.value, "version": self.version}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "NodeMeta":
        data = data or {}
        return cls(source=Source(data.get("source", Source.AUTO.value)), version=int(data.get("version", 1)))


@dataclass
class Node:
    """A unit of learned knowledge."""
    id: str
    type: NodeType
    content: NodeContent
    timestamps: NodeTimestamps
    context: NodeContext = field(default_factory=NodeContext)
    scores: NodeScores = field(default_factory=NodeScores)
    meta: NodeMeta = field(default_factory=NodeMeta)
    content_hash: Optional[str] = None

    def __post_init__(self):
        if self.content_hash is None:
            self.content_hash = self.content.compute_hash()

    @property
    def summary(self) -> str:
        return self.content.summary

    @property
    def weight(self) -> float:
        return self.scores.weight

    @property
    def file(self) -> Optional[str]:
        return self.context.file

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "type": self.type.value,
            "content_hash": self.content_hash,
            "content": self.content.to_dict(),
            "context": self.context.to_dict(),
            "scores": self.scores.to_dict(),
            "timestamps": self.timestamps.to_dict(),
            "meta": self.meta.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Node":
        """
        Create a Node from its stored dictionary.

        Raises:
            KeyError, ValueError, TypeError: If the document is malformed
        """
        return cls(
            id=data["id"],
            type=NodeType.parse(data["type"]),
            content=NodeContent.from_dict(data.get("content")),
            timestamps=NodeTimestamps.from_dict(data["timestamps"]),
            context=NodeContext.from_dict(data.get("context")),
            scores=NodeScores.from_dict(data.get("scores")),
            meta=NodeMeta.from_dict(data.get("meta")),
            content_hash=data.get("content_hash"),
        )


@dataclass
class EdgeProps:
    weight: float = DEFAULT_WEIGHT
    direction: EdgeDirection = EdgeDirection.BIDIRECTIONAL
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"weight": self.weight, "direction": self.direction.value, "reason": self.reason}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "EdgeProps":
        data = data or {}
        return cls(
            weight=clamp(float(data.get("weight", DEFAULT_WEIGHT))),
            direction=EdgeDirection(data.get("direction", EdgeDirection.BIDIRECTIONAL.value)),
            reason=data.get("reason"),
        )


@dataclass
class Edge:
    """A typed relation between two nodes."""
    id: str
    source: str
    target: str
    type: EdgeType
    created: float
    props: EdgeProps = field(default_factory=EdgeProps)

    @property
    def weight(self) -> float:
        return self.props.weight

    def other(self, node_id: str) -> str:
        """The endpoint opposite ``node_id``."""
        return self.target if self.source == node_id else self.source

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "source": self.source,
            "target": self.target,
            "type": self.type.value,
            "props": self.props.to_dict(),
            "created": self.created,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Edge":
        return cls(
            id=data["id"],
            source=data["source"],
            target=data["target"],
            type=EdgeType.parse(data["type"]),
            created=float(data.get("created", 0)),
            props=EdgeProps.from_dict(data.get("props")),
        )


@dataclass
class DeltaChange:
    """One entry of a delta's change list."""
    op: DeltaOp
    path: str
    before: Optional[str] = None
    after: Optional[str] = None
    fields: Optional[List[str]] = None  # changed node fields, modify only

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"op": self.op.value, "path": self.path, "before": self.before, "after": self.after}
        if self.fields:
            data["fields"] = list(self.fields)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DeltaChange":
        return cls(
            op=DeltaOp(data["op"]),
            path=data["path"],
            before=data.get("before"),
            after=data.get("after"),
            fields=data.get("fields"),
        )


@dataclass
class Delta:
    """An immutable, content-addressed changeset."""
    hash: str
    parent: Optional[str]
    timestamp: float
    changes: List[DeltaChange]
    message: str = ""
    trigger: Source = Source.USER
    session_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hash": self.hash,
            "parent": self.parent,
            "timestamp": self.timestamp,
            "changes": [c.to_dict() for c in self.changes],
            "metadata": {
                "message": self.message,
                "trigger": self.trigger.value,
                "session_id": self.session_id,
            },
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Delta":
        metadata = data.get("metadata") or {}
        return cls(
            hash=data["hash"],
            parent=data.get("parent"),
            timestamp=float(data["timestamp"]),
            changes=[DeltaChange.from_dict(c) for c in data.get("changes", [])],
            message=metadata.get("message", ""),
            trigger=Source(metadata.get("trigger", Source.USER.value)),
            session_id=metadata.get("session_id"),
        )


@dataclass
class GraphMeta:
    """Project metadata: schema version, head pointer and aggregate counters."""
    schema: int = SCHEMA_VERSION
    head: Optional[str] = None
    node_count: int = 0
    edge_count: int = 0
    delta_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "schema": self.schema,
            "head": self.head,
            "node_count": self.node_count,
            "edge_count": self.edge_count,
            "delta_count": self.delta_count,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GraphMeta":
        return cls(
            schema=int(data.get("schema", SCHEMA_VERSION)),
            head=data.get("head"),
            node_count=int(data.get("node_count", 0)),
            edge_count=int(data.get("edge_count", 0)),
            delta_count=int(data.get("delta_count", 0)),
        )
