"""
Event type definitions for brain notifications.

Events published on ``Brain.events``:
- NodeCreatedEvent: A learning produced a new node
- NodeDeletedEvent: A node was removed
- DeltaCommittedEvent: Pending changes were committed
- DeltaRolledBackEvent: Head was moved back to an earlier delta
- NodesPrunedEvent: Pruning or eviction removed nodes
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional


@dataclass
class NodeCreatedEvent:
    """Event emitted when a node is created."""
    node_id: str
    node_type: str
    summary: str
    file: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.now)
    event_type: str = "node.created"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_type": self.event_type,
            "node_id": self.node_id,
            "node_type": self.node_type,
            "summary": self.summary,
            "file": self.file,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class NodeDeletedEvent:
    """Event emitted when a node is deleted."""
    node_id: str
    timestamp: datetime = field(default_factory=datetime.now)
    event_type: str = "node.deleted"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_type": self.event_type,
            "node_id": self.node_id,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class DeltaCommittedEvent:
    """Event emitted when a delta is committed."""
    delta_hash: str
    parent: Optional[str]
    message: str
    change_count: int
    trigger: str = "user"
    timestamp: datetime = field(default_factory=datetime.now)
    event_type: str = "delta.committed"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_type": self.event_type,
            "delta_hash": self.delta_hash,
            "parent": self.parent,
            "message": self.message,
            "change_count": self.change_count,
            "trigger": self.trigger,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class DeltaRolledBackEvent:
    """Event emitted when head is rolled back."""
    previous_head: Optional[str]
    new_head: str
    timestamp: datetime = field(default_factory=datetime.now)
    event_type: str = "delta.rolled_back"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_type": self.event_type,
            "previous_head": self.previous_head,
            "new_head": self.new_head,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class NodesPrunedEvent:
    """Event emitted when nodes are pruned or evicted."""
    count: int
    reason: str  # prune | evict
    timestamp: datetime = field(default_factory=datetime.now)
    event_type: str = "nodes.pruned"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_type": self.event_type,
            "count": self.count,
            "reason": self.reason,
            "timestamp": self.timestamp.isoformat(),
        }
