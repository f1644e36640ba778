"""
Correction learner - what the developer fixed, rejected or rewrote.

Corrections start heavier than other learnings: an explicit fix is the
strongest signal the brain gets about what not to do again.
"""

from typing import Any, Dict, List, Optional

from ..graph.query import QueryOptions
from ..types import NodeType, Source
from .base import LearnEvent, Learner, NodeParams, QueryFn, collect_ids

CORRECTION_WEIGHT = 0.7
REJECTION_WEIGHT = 0.6


class CorrectionLearner(Learner):
    """Learns from corrections and rejections."""

    name = "correction"
    event_types = ("user_correction", "code_rejected", "code_modified")

    def extract(self, event: LearnEvent) -> Optional[Dict[str, Any]]:
        data = event.data

        if event.type == "user_correction":
            original = data.get("original")
            corrected = data.get("corrected")
            if original is None or corrected is None or original == corrected:
                return None
            reason = data.get("reason")
            return {
                "summary": f"Correction: {reason or 'code corrected'}",
                "detail": f"{reason or 'Corrected generated code'}\n\nBefore:\n{original}",
                "code": corrected,
                "lang": data.get("language"),
                "file": event.file,
                "function": data.get("function"),
                "lines": data.get("lines"),
                "weight": CORRECTION_WEIGHT,
            }

        if event.type == "code_rejected":
            reason = data.get("reason")
            return {
                "summary": f"Rejected: {reason or 'suggestion rejected'}",
                "detail": reason or "User rejected the suggestion",
                "code": data.get("code"),
                "lang": data.get("language"),
                "file": event.file,
                "function": data.get("function"),
                "weight": REJECTION_WEIGHT,
            }

        if event.type == "code_modified":
            before = data.get("before")
            after = data.get("after")
            if before == after:
                return None
            description = data.get("description")
            return {
                "summary": f"Modified: {description or 'accepted code edited'}",
                "detail": f"{description or 'Accepted code was edited afterwards'}\n\nBefore:\n{before or ''}",
                "code": after,
                "lang": data.get("language"),
                "file": event.file,
                "function": data.get("function"),
                "lines": data.get("lines"),
                "weight": None,
            }

        return None

    def should_learn(self, data: Dict[str, Any]) -> bool:
        return bool(data.get("summary")) and bool(data.get("detail"))

    def create_node_params(self, data: Dict[str, Any]) -> NodeParams:
        return NodeParams(
            node_type=NodeType.CORRECTION,
            content={
                "summary": data["summary"],
                "detail": data["detail"],
                "code": data.get("code"),
                "lang": data.get("lang"),
            },
            context={
                "file": data.get("file"),
                "function": data.get("function"),
                "lines": data.get("lines"),
            },
            weight=data.get("weight"),
            source=Source.USER,
        )

    def find_related(self, data: Dict[str, Any], query_fn: QueryFn) -> List[str]:
        """Patterns in the same function that the correction likely supersedes."""
        if not data.get("function"):
            return []
        patterns = query_fn(QueryOptions(query=data["function"], file=data.get("file"),
                                         types=[NodeType.PATTERN], limit=3))
        earlier = query_fn(QueryOptions(query=data["function"], file=data.get("file"),
                                        types=[NodeType.CORRECTION], limit=2))
        return collect_ids(patterns, earlier)
