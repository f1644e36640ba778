"""
Pattern learner - reusable code the developer accepted or wrote.

Sources:
- code_accepted / code_completion: a suggestion that ended up in the buffer
- pattern_detected: a pattern recognised by an external analyser
- file_indexed: a file's functions, one learning per function
"""

from typing import Any, Dict, List, Optional, Union

from ..graph.query import QueryOptions
from ..types import NodeType, Source
from .base import LearnEvent, Learner, NodeParams, QueryFn, collect_ids, first_line

# Snippets shorter than this are too trivial to remember
MIN_CODE_LENGTH = 10
ACCEPTED_WEIGHT = 0.6


class PatternLearner(Learner):
    """Learns code patterns."""

    name = "pattern"
    event_types = ("code_accepted", "code_completion", "pattern_detected", "file_indexed")

    def extract(self, event: LearnEvent) -> Optional[Union[Dict[str, Any], List[Dict[str, Any]]]]:
        data = event.data

        if event.type in ("code_accepted", "code_completion"):
            code = data.get("code")
            if not code:
                return None
            description = data.get("description")
            return {
                "summary": f"Pattern: {description or first_line(code)}",
                "detail": description or f"Accepted code in {data.get('function') or event.file or 'buffer'}",
                "code": code,
                "lang": data.get("language"),
                "file": event.file,
                "function": data.get("function"),
                "lines": data.get("lines"),
                "accepted": event.type == "code_accepted",
            }

        if event.type == "pattern_detected":
            name = data.get("name")
            if not name:
                return None
            return {
                "summary": f"Pattern: {name}",
                "detail": data.get("description") or name,
                "code": "\n\n".join(data.get("examples") or []) or None,
                "lang": data.get("language"),
                "file": event.file,
                "symbols": data.get("symbols") or [],
            }

        if event.type == "file_indexed":
            extracted = []
            for fn in data.get("functions") or []:
                if not fn.get("name"):
                    continue
                extracted.append({
                    "summary": f"Function: {fn['name']}",
                    "detail": fn.get("description") or f"{fn['name']} defined in {event.file}",
                    "code": fn.get("code"),
                    "lang": data.get("language"),
                    "file": event.file,
                    "function": fn["name"],
                    "lines": fn.get("lines"),
                    "symbols": [fn["name"]],
                })
            return extracted or None

        return None

    def should_learn(self, data: Dict[str, Any]) -> bool:
        if not data.get("summary"):
            return False
        code = data.get("code")
        if code is not None and len(code.strip()) < MIN_CODE_LENGTH:
            return False
        return bool(code or data.get("detail"))

    def create_node_params(self, data: Dict[str, Any]) -> NodeParams:
        return NodeParams(
            node_type=NodeType.PATTERN,
            content={
                "summary": data["summary"],
                "detail": data.get("detail") or "",
                "code": data.get("code"),
                "lang": data.get("lang"),
            },
            context={
                "file": data.get("file"),
                "function": data.get("function"),
                "lines": data.get("lines"),
                "symbols": data.get("symbols") or [],
            },
            weight=ACCEPTED_WEIGHT if data.get("accepted") else None,
            source=Source.AUTO,
        )

    def find_related(self, data: Dict[str, Any], query_fn: QueryFn) -> List[str]:
        # Same function elsewhere, and conventions that may govern it
        same_function = []
        if data.get("function"):
            same_function = query_fn(QueryOptions(query=data["function"], types=[NodeType.PATTERN], limit=3))
        conventions = []
        if data.get("lang"):
            conventions = query_fn(QueryOptions(query=data["lang"], types=[NodeType.CONVENTION], limit=2))
        return collect_ids(same_function, conventions)
