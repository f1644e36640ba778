"""Rendering of query results for LLM prompts."""

from .formatter import (
    DEFAULT_MAX_TOKENS,
    compress,
    estimate_tokens,
    minimal,
    render,
    system_context,
    to_compact,
    to_json,
    to_natural,
)

__all__ = [
    "DEFAULT_MAX_TOKENS",
    "compress",
    "estimate_tokens",
    "minimal",
    "render",
    "system_context",
    "to_compact",
    "to_json",
    "to_natural",
]
