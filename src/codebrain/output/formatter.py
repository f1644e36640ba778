"""
Output formatter - renders query results for LLM prompts.

Formats:
- compact: one line per learning, terse scores, for system prompts
- natural: prose grouped by node type
- json: minified JSON with short keys

Every renderer stays within a token budget estimated at ~4 characters per
token, keeping a reserve for the surrounding prompt.
"""

import json
import math
from typing import Any, Dict, List, Optional

from ..graph.query import QueryResult
from ..models import Node
from ..types import NodeType

DEFAULT_MAX_TOKENS = 4000
# Budget kept free for whatever follows the context block
RESERVE_TOKENS = 100

SECTION_TITLES = {
    NodeType.PATTERN: "Code Patterns",
    NodeType.CORRECTION: "Previous Corrections",
    NodeType.CONVENTION: "Project Conventions",
    NodeType.DECISION: "Architectural Decisions",
    NodeType.FEEDBACK: "User Preferences",
    NodeType.SESSION: "Session Context",
}

SYSTEM_PREAMBLE = "The following context contains learned patterns and conventions from this project:"
SYSTEM_EPILOGUE = "Use this context to inform your responses, following established patterns and conventions."


def estimate_tokens(text: Optional[str]) -> int:
    """
    Rough token count: one token per four characters.

    Examples:
        >>> estimate_tokens("abcdefgh")
        2
        >>> estimate_tokens("")
        0
    """
    if not text:
        return 0
    return math.ceil(len(text) / 4)


def _short(node_id: str) -> str:
    return node_id[-8:]


def _context_line(node: Node) -> Optional[str]:
    ctx = node.context
    if not ctx.file:
        return None
    line = f"   @ {ctx.file}"
    if ctx.function:
        line += f":{ctx.function}"
    if ctx.lines:
        line += f" L{ctx.lines[0]}"
    return line


def to_compact(result: QueryResult, query: Optional[str] = None,
               max_tokens: int = DEFAULT_MAX_TOKENS) -> str:
    """
    Render a result as a compact context block.

    Example output:

        ---BRAIN_CONTEXT---
        Q: auth

        Learnings:
        [1] PATTERN | w:0.85 u:5 | Validate tokens before refresh
           @ src/auth.py:refresh L42

        Connections:
          3f2a91bc --semantic(0.50)--> 77d0e1aa
        ---END_CONTEXT---
    """
    lines = ["---BRAIN_CONTEXT---"]
    if query:
        lines.append(f"Q: {query}")
    lines.append("")
    lines.append("Learnings:")
    used = 0

    for i, node in enumerate(result.nodes, 1):
        line = f"[{i}] {node.type.value.upper()} | w:{node.scores.weight:.2f} u:{node.scores.usage} | {node.content.summary[:100]}"
        cost = estimate_tokens(line)
        if used + cost > max_tokens - RESERVE_TOKENS:
            lines.append("... (truncated)")
            break
        lines.append(line)
        used += cost

        ctx_line = _context_line(node)
        if ctx_line:
            lines.append(ctx_line)
            used += estimate_tokens(ctx_line)

    if result.edges and used < max_tokens - 2 * RESERVE_TOKENS:
        lines.append("")
        lines.append("Connections:")
        for edge in result.edges:
            if used >= max_tokens - RESERVE_TOKENS // 2:
                break
            line = f"  {_short(edge.source)} --{edge.type.value}({edge.props.weight:.2f})--> {_short(edge.target)}"
            lines.append(line)
            used += estimate_tokens(line)

    lines.append("---END_CONTEXT---")
    return "\n".join(lines)


def to_natural(result: QueryResult, max_tokens: int = DEFAULT_MAX_TOKENS) -> str:
    """Render a result as prose grouped by node type, heaviest detail for strong nodes."""
    if not result.nodes:
        return "No relevant learnings found."

    groups: Dict[NodeType, List[Node]] = {}
    for node in result.nodes:
        groups.setdefault(node.type, []).append(node)

    lines = ["Based on previous learnings:", ""]
    used = 0
    for node_type, nodes in groups.items():
        lines.append(f"**{SECTION_TITLES.get(node_type, node_type.value)}**")
        for node in nodes:
            if used >= max_tokens - RESERVE_TOKENS:
                lines.append("...")
                return "\n".join(lines)

            bullet = f"- {node.content.summary or '?'} (confidence: {node.scores.weight * 100:.0f}%)"
            lines.append(bullet)
            used += estimate_tokens(bullet)

            detail = node.content.detail or ""
            if node.scores.weight > 0.7 and len(detail) > len(node.content.summary or ""):
                text = "  " + detail[:150] + ("..." if len(detail) > 150 else "")
                lines.append(text)
                used += estimate_tokens(text)
        lines.append("")

    return "\n".join(lines)


def to_json(result: QueryResult, query: Optional[str] = None,
            max_tokens: int = DEFAULT_MAX_TOKENS) -> str:
    """Render a result as minified JSON (``l`` learnings, ``c`` connections)."""
    output: Dict[str, Any] = {"_s": "brain-v1", "q": query, "l": [], "c": []}
    used = 50  # envelope

    for node in result.nodes:
        entry: Dict[str, Any] = {
            "t": node.type.value,
            "s": node.content.summary[:150],
            "w": node.scores.weight,
            "u": node.scores.usage,
        }
        if node.context.file:
            entry["f"] = node.context.file
        cost = estimate_tokens(json.dumps(entry, separators=(",", ":")))
        if used + cost > max_tokens - RESERVE_TOKENS:
            break
        output["l"].append(entry)
        used += cost

    if used < max_tokens - 2 * RESERVE_TOKENS:
        for edge in result.edges:
            if used >= max_tokens - RESERVE_TOKENS // 2:
                break
            output["c"].append({
                "s": _short(edge.source),
                "t": _short(edge.target),
                "r": edge.type.value,
                "w": edge.props.weight,
            })
            used += 30

    return json.dumps(output, separators=(",", ":"))


def render(result: QueryResult, fmt: str = "compact", query: Optional[str] = None,
           max_tokens: int = DEFAULT_MAX_TOKENS) -> str:
    """
    Render a result in the named format.

    Raises:
        ValueError: If ``fmt`` is not compact, natural or json
    """
    if fmt == "compact":
        return to_compact(result, query=query, max_tokens=max_tokens)
    if fmt == "natural":
        return to_natural(result, max_tokens=max_tokens)
    if fmt == "json":
        return to_json(result, query=query, max_tokens=max_tokens)
    raise ValueError(f"Unknown output format: {fmt}")


def system_context(context: str) -> str:
    """Wrap a rendered context block for use in a system prompt."""
    if not context:
        return ""
    return f"{SYSTEM_PREAMBLE}\n\n{context}\n\n{SYSTEM_EPILOGUE}\n"


def compress(text: str, max_tokens: int) -> str:
    """Truncate text to fit a token budget, keeping a 10% margin."""
    current = estimate_tokens(text)
    if current <= max_tokens:
        return text
    target_chars = math.floor(len(text) * (max_tokens / current) * 0.9)
    return text[:target_chars] + "\n...(truncated)"


def minimal(nodes: List[Node]) -> str:
    """One-line listing: ``type:summary | type:summary``."""
    return " | ".join(f"{node.type.value}:{node.content.summary[:40]}" for node in nodes)
