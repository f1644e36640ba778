"""
Learner coordinator - routes learning events to learners.

Routing order:
1. The first registered learner whose ``detect`` accepts the event
2. ``user_feedback`` events: adjust the referenced node and record feedback
3. ``session_start`` / ``session_end`` events: session summary nodes

Anything else is ignored.
"""

import logging
import time
from typing import Any, Callable, Dict, List, Optional, Union

from ..graph import KnowledgeGraph
from ..graph.query import QueryOptions
from ..models import Node, clamp
from ..types import NodeType
from .base import LearnEvent, Learner
from .convention import ConventionLearner
from .correction import CorrectionLearner
from .pattern import PatternLearner

logger = logging.getLogger(__name__)

FEEDBACK_WEIGHT_STEP = 0.1
SESSION_WINDOW_SECONDS = 3600
SESSION_LINK_LIMIT = 20


def default_learners() -> List[Learner]:
    return [PatternLearner(), CorrectionLearner(), ConventionLearner()]


class LearnerCoordinator:
    """
    Turns LearnEvents into nodes and edges.

    Args:
        graph: Knowledge graph to write to
        learners: Learners consulted in order (pattern, correction, convention
            by default)
        clock: Wall clock returning unix seconds
    """

    def __init__(self,
                 graph: KnowledgeGraph,
                 learners: Optional[List[Learner]] = None,
                 clock: Callable[[], float] = time.time):
        self.graph = graph
        self.learners = learners if learners is not None else default_learners()
        self.clock = clock

    def names(self) -> List[str]:
        return [learner.name for learner in self.learners]

    def register(self, learner: Learner) -> None:
        """Add a learner, consulted after the existing ones."""
        if learner.name in self.names():
            raise ValueError(f"Learner already registered: {learner.name}")
        self.learners.append(learner)

    def process(self, event: Union[LearnEvent, Dict[str, Any]]) -> Optional[str]:
        """
        Learn from one event.

        Args:
            event: LearnEvent or dict with ``type``, ``data``, ``file``,
                ``timestamp``

        Returns:
            ID of the (first) node created, or None
        """
        if isinstance(event, dict):
            if not event.get("type"):
                return None
            event = LearnEvent.from_dict(event)
        if not event or not event.type:
            return None

        if event.timestamp is None:
            event.timestamp = self.clock()

        for learner in self.learners:
            if learner.detect(event):
                return self.learn_with(learner, event)

        if event.type == "user_feedback":
            return self.process_feedback(event)
        if event.type in ("session_start", "session_end"):
            return self.process_session(event)

        logger.debug(f"No learner for event type {event.type}")
        return None

    def learn_with(self, learner: Learner, event: LearnEvent) -> Optional[str]:
        """Run one learner over an event. Multi-item extractions create one node each."""
        extracted = learner.extract(event)
        if not extracted:
            return None

        if isinstance(extracted, list):
            node_ids = [i for i in (self.create_learning(learner, data) for data in extracted) if i]
            return node_ids[0] if node_ids else None

        return self.create_learning(learner, extracted)

    def create_learning(self, learner: Learner, data: Dict[str, Any]) -> Optional[str]:
        """Create a node from extracted data, linked to what the learner finds related."""
        if not learner.should_learn(data):
            return None

        params = learner.create_node_params(data)
        related_ids = learner.find_related(data, self._query_nodes)
        node = self.graph.add_learning(
            params.node_type,
            params.content,
            params.context,
            related_ids=related_ids,
            weight=params.weight,
            source=params.source,
        )
        return node.id

    def process_feedback(self, event: LearnEvent) -> Optional[str]:
        """
        Record user feedback.

        When the feedback names an existing node, that node's weight moves by
        0.1 (up for "accepted", down otherwise), its usage is recorded, and
        the feedback node is linked to it.
        """
        data = event.data
        feedback = data.get("feedback")
        content = {
            "summary": f"Feedback: {feedback or 'unknown'}",
            "detail": data.get("description") or f"User {feedback or 'gave feedback'}",
        }
        context = {"file": event.file}

        related: List[str] = []
        target = self.graph.nodes.get(data["node_id"]) if data.get("node_id") else None
        if target is not None:
            accepted = feedback == "accepted"
            step = FEEDBACK_WEIGHT_STEP if accepted else -FEEDBACK_WEIGHT_STEP
            self.graph.nodes.update(target.id, {"scores": {"weight": clamp(target.scores.weight + step)}})
            self.graph.nodes.record_usage(target.id, accepted)
            related.append(target.id)

        node = self.graph.add_learning(NodeType.FEEDBACK, content, context, related_ids=related)
        return node.id

    def process_session(self, event: LearnEvent) -> Optional[str]:
        """Create a session node; on session end, chain the last hour's nodes in time order."""
        data = event.data
        ended = event.type == "session_end"
        detail = data.get("description") or event.type

        stats = data.get("stats")
        if ended and stats:
            detail += (
                "\n\nStats:"
                f"\n- Completions: {stats.get('completions', 0)}"
                f"\n- Corrections: {stats.get('corrections', 0)}"
                f"\n- Files: {stats.get('files', 0)}"
            )

        content = {"summary": "Session ended" if ended else "Session started", "detail": detail}
        node = self.graph.add_learning(NodeType.SESSION, content, {})

        if ended:
            now = self.clock()
            recent = self.graph.query.by_time_range(now - SESSION_WINDOW_SECONDS, now, SESSION_LINK_LIMIT)
            session_nodes = [n.id for n in recent if n.id != node.id]
            if session_nodes:
                self.graph.link_temporal(session_nodes)

        return node.id

    def batch_process(self, events: List[Union[LearnEvent, Dict[str, Any]]]) -> List[str]:
        """Process events in order. Returns the IDs of created nodes."""
        return [i for i in (self.process(event) for event in events) if i]

    def _query_nodes(self, options: QueryOptions) -> List[Node]:
        return self.graph.query.execute(options).nodes
