"""Knowledge commands for codebrain CLI: learn, query, context, prune."""
import json
from typing import Optional, Tuple

import click

from ..graph import QueryOptions
from .common import (
    NODE_TYPE_CHOICES,
    TYPE_COLORS,
    VERBOSITY_NORMAL,
    echo_normal,
    echo_quiet,
    echo_verbose,
    fail,
    open_brain,
)


@click.group()
def knowledge_group():
    """Knowledge commands."""
    pass


@knowledge_group.command("learn")
@click.argument("event_type")
@click.option("--data", "data_json", default="{}", help="Event data as a JSON object")
@click.option("--file", "file_path", default=None, help="File the event concerns")
@click.pass_context
def learn(ctx, event_type: str, data_json: str, file_path: Optional[str]) -> None:
    """Feed a learning event to the brain.

    Args:
        event_type: Event type (e.g. code_accepted, user_correction, convention_detected)
        --data: Event payload as JSON
        --file: Related file

    Examples:
        codebrain learn convention_detected --data '{"name": "snake_case", "description": "Use snake_case names"}'
        codebrain learn user_feedback --data '{"feedback": "accepted"}'
    """
    verbosity = ctx.obj.get("verbosity", VERBOSITY_NORMAL)
    try:
        data = json.loads(data_json)
    except json.JSONDecodeError as e:
        fail(f"--data is not valid JSON: {e}", verbosity)
    if not isinstance(data, dict):
        fail("--data must be a JSON object", verbosity)

    brain = open_brain(ctx)
    try:
        node_id = brain.learn({"type": event_type, "data": data, "file": file_path})
        if node_id is None:
            echo_normal(click.style("Nothing learned from this event", fg="yellow"), verbosity)
            return
        echo_normal(click.style("✓ Learned", fg="green", bold=True), verbosity)
        echo_quiet(f"  ID: {click.style(node_id, fg='cyan')}", verbosity)
    finally:
        brain.shutdown()


@knowledge_group.command("query")
@click.argument("text", required=False)
@click.option("--file", "file_path", default=None, help="Only nodes attached to this file")
@click.option("--type", "node_types", multiple=True, type=click.Choice(NODE_TYPE_CHOICES),
              help="Restrict to node type (repeatable)")
@click.option("--min-weight", type=float, default=None, help="Minimum weight (0.0-1.0)")
@click.option("--limit", "-l", default=20, help="Maximum number of results")
@click.option("--depth", default=0, help="Include edges within this many hops")
@click.option("--json-output", is_flag=True, help="Output as JSON")
@click.pass_context
def query(ctx, text: Optional[str], file_path: Optional[str], node_types: Tuple[str, ...],
          min_weight: Optional[float], limit: int, depth: int, json_output: bool) -> None:
    """Search learnings, best ranked first.

    Examples:
        codebrain query retry
        codebrain query --file src/app.py --type pattern
        codebrain query auth --json-output
    """
    verbosity = ctx.obj.get("verbosity", VERBOSITY_NORMAL)
    brain = open_brain(ctx)
    try:
        result = brain.query(QueryOptions(
            query=text,
            file=file_path,
            types=list(node_types) or None,
            min_weight=min_weight,
            limit=limit,
            depth=depth,
        ))

        if json_output:
            echo_quiet(json.dumps(result.to_dict(), indent=2, default=str), verbosity)
            return

        echo_normal(click.style(f"Results ({len(result.nodes)} of {result.stats.get('matched', 0)} matched)",
                                fg="cyan", bold=True), verbosity)
        echo_normal("=" * 60, verbosity)
        for i, node in enumerate(result.nodes, 1):
            color = TYPE_COLORS.get(node.type.value, "white")
            score = result.scores.get(node.id, 0.0)
            echo_quiet(f"\n{i}. [{click.style(node.type.value.upper(), fg=color)}] {node.content.summary}", verbosity)
            echo_normal(f"   w:{node.scores.weight:.2f} u:{node.scores.usage} score:{score:.3f}", verbosity)
            if node.context.file:
                echo_normal(f"   @ {node.context.file}", verbosity)
            echo_verbose(f"   ID: {node.id}", verbosity)
        if result.truncated:
            echo_normal(click.style("\n(more results available, raise --limit)", fg="yellow"), verbosity)
    finally:
        brain.shutdown()


@knowledge_group.command("context")
@click.argument("text", required=False)
@click.option("--file", "file_path", default=None, help="Only nodes attached to this file")
@click.option("--format", "fmt", type=click.Choice(["compact", "natural", "json"]), default=None,
              help="Output format (default from config)")
@click.option("--max-tokens", type=int, default=None, help="Token budget (default from config)")
@click.option("--limit", "-l", default=30, help="Maximum number of learnings")
@click.option("--system", is_flag=True, help="Wrap for use as a system prompt")
@click.pass_context
def context(ctx, text: Optional[str], file_path: Optional[str], fmt: Optional[str],
            max_tokens: Optional[int], limit: int, system: bool) -> None:
    """Print the LLM context block for a query or file."""
    verbosity = ctx.obj.get("verbosity", VERBOSITY_NORMAL)
    brain = open_brain(ctx)
    try:
        output = brain.get_context_for_llm(query=text, file=file_path, limit=limit,
                                           fmt=fmt, max_tokens=max_tokens, system=system)
        if not output:
            echo_normal(click.style("No relevant learnings found.", fg="yellow"), verbosity)
            return
        echo_quiet(output, verbosity)
    finally:
        brain.shutdown()


@knowledge_group.command("prune")
@click.option("--threshold", type=float, default=None, help="Weight below which nodes are weak")
@click.option("--unused-days", type=float, default=None, help="Days unused after which nodes are stale")
@click.pass_context
def prune(ctx, threshold: Optional[float], unused_days: Optional[float]) -> None:
    """Remove nodes that are both weak and stale."""
    verbosity = ctx.obj.get("verbosity", VERBOSITY_NORMAL)
    brain = open_brain(ctx)
    try:
        if not brain.config.prune.enabled:
            echo_normal(click.style("Pruning is disabled in config", fg="yellow"), verbosity)
        removed = brain.prune(threshold=threshold, unused_days=unused_days)
        echo_quiet(click.style(f"✓ Pruned {removed} nodes", fg="green"), verbosity)
    finally:
        brain.shutdown()
