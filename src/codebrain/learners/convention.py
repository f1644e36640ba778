"""
Convention learner - project conventions and coding standards.

Handles naming, style, structure and configuration conventions, and can
infer the dominant naming style from a sample of symbol names.
"""

import re
from typing import Any, Dict, List, Optional

from ..graph.query import QueryOptions
from ..types import NodeType, Source
from .base import LearnEvent, Learner, NodeParams, QueryFn, collect_ids

MIN_DETAIL_LENGTH = 5
NAMING_MIN_SAMPLE = 3
NAMING_MIN_SHARE = 0.6

# Checked in order; the first match classifies a symbol
NAMING_STYLES = (
    ("snake_case", re.compile(r"^[a-z][a-z0-9_]*$")),
    ("camelCase", re.compile(r"^[a-z][a-zA-Z0-9]*$")),
    ("PascalCase", re.compile(r"^[A-Z][a-zA-Z0-9]*$")),
    ("SCREAMING_SNAKE", re.compile(r"^[A-Z][A-Z0-9_]*$")),
    ("kebab-case", re.compile(r"^[a-z][a-z0-9-]*$")),
)


class ConventionLearner(Learner):
    """Learns project conventions."""

    name = "convention"
    event_types = (
        "convention_detected",
        "naming_pattern",
        "style_pattern",
        "project_structure",
        "config_change",
    )

    def extract(self, event: LearnEvent) -> Optional[Dict[str, Any]]:
        data = event.data

        if event.type == "convention_detected":
            return {
                "summary": f"Convention: {data.get('name') or 'unnamed'}",
                "detail": data.get("description") or data.get("name"),
                "rule": data.get("rule"),
                "examples": data.get("examples"),
                "category": data.get("category") or "general",
                "file": event.file,
            }

        if event.type == "naming_pattern":
            pattern = data.get("pattern_name") or data.get("pattern")
            if not pattern:
                return None
            return {
                "summary": f"Naming: {pattern}",
                "detail": f"Naming convention: {data.get('description') or data.get('pattern') or pattern}",
                "rule": data.get("pattern"),
                "examples": data.get("examples"),
                "category": "naming",
                "scope": data.get("scope"),  # function, variable, class, file
            }

        if event.type == "style_pattern":
            return {
                "summary": f"Style: {data.get('name') or 'unnamed'}",
                "detail": data.get("description") or "Code style pattern",
                "rule": data.get("rule"),
                "examples": data.get("examples"),
                "category": "style",
                "lang": data.get("language"),
            }

        if event.type == "project_structure":
            return {
                "summary": f"Structure: {data.get('pattern') or 'project layout'}",
                "detail": data.get("description") or "Project structure convention",
                "rule": data.get("rule"),
                "category": "structure",
                "paths": data.get("paths"),
            }

        if event.type == "config_change":
            setting = data.get("setting")
            return {
                "summary": f"Config: {setting or 'setting change'}",
                "detail": f"Configuration: {data.get('description') or setting or 'changed'}",
                "before": data.get("before"),
                "after": data.get("after"),
                "category": "config",
                "file": event.file,
            }

        return None

    def should_learn(self, data: Dict[str, Any]) -> bool:
        if not data.get("summary"):
            return False
        # Very vague conventions are noise
        detail = data.get("detail")
        return bool(detail) and len(detail) >= MIN_DETAIL_LENGTH

    def create_node_params(self, data: Dict[str, Any]) -> NodeParams:
        detail = data.get("detail") or ""
        if data.get("examples"):
            detail += "\n\nExamples:" + "".join(f"\n- {ex}" for ex in data["examples"])
        if data.get("rule"):
            detail += f"\n\nRule: {data['rule']}"

        return NodeParams(
            node_type=NodeType.CONVENTION,
            content={"summary": data["summary"], "detail": detail, "lang": data.get("lang")},
            context={
                "file": data.get("file"),
                "symbols": [data["scope"]] if data.get("scope") else [],
            },
            weight=0.6,
            source=Source.AUTO,
        )

    def find_related(self, data: Dict[str, Any], query_fn: QueryFn) -> List[str]:
        same_category = []
        if data.get("category"):
            same_category = query_fn(QueryOptions(query=data["category"], types=[NodeType.CONVENTION], limit=5))
        # Patterns that follow the rule
        following = []
        if data.get("rule"):
            following = query_fn(QueryOptions(query=str(data["rule"]), types=[NodeType.PATTERN], limit=3))
        return collect_ids(same_category, following)

    @staticmethod
    def detect_naming(symbols: List[str]) -> Optional[Dict[str, Any]]:
        """
        Infer the dominant naming style of a set of symbols.

        Args:
            symbols: Symbol names; at least 3 are needed

        Returns:
            {"pattern", "confidence", "sample_size"} when one style covers at
            least 60% of the sample, else None

        Examples:
            >>> ConventionLearner.detect_naming(["get_user", "set_name", "load"])["pattern"]
            'snake_case'
        """
        if not symbols or len(symbols) < NAMING_MIN_SAMPLE:
            return None

        counts = {style: 0 for style, _ in NAMING_STYLES}
        for symbol in symbols:
            for style, pattern in NAMING_STYLES:
                if pattern.match(symbol):
                    counts[style] += 1
                    break

        dominant = max(counts, key=lambda style: counts[style])
        if counts[dominant] == 0 or counts[dominant] < len(symbols) * NAMING_MIN_SHARE:
            return None
        return {
            "pattern": dominant,
            "confidence": counts[dominant] / len(symbols),
            "sample_size": len(symbols),
        }
