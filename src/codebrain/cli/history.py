"""History commands for codebrain CLI: commit, rollback, history, status, reset."""
import json
from datetime import datetime

import click

from ..delta import DeltaManager
from .common import VERBOSITY_NORMAL, echo_normal, echo_quiet, echo_verbose, fail, open_brain


@click.group()
def history_group():
    """History commands."""
    pass


@history_group.command("commit")
@click.argument("message")
@click.pass_context
def commit(ctx, message: str) -> None:
    """Commit pending changes with a message."""
    verbosity = ctx.obj.get("verbosity", VERBOSITY_NORMAL)
    brain = open_brain(ctx)
    try:
        delta_hash = brain.commit(message)
        if delta_hash is None:
            echo_normal(click.style("Nothing to commit", fg="yellow"), verbosity)
            return
        echo_quiet(click.style(f"✓ Committed {delta_hash}", fg="green"), verbosity)
    finally:
        brain.shutdown()


@history_group.command("rollback")
@click.argument("delta_hash")
@click.pass_context
def rollback(ctx, delta_hash: str) -> None:
    """Move head back to an earlier delta.

    Newer deltas are kept and the next commit branches from DELTA_HASH.
    Node and edge state is not rewound.
    """
    verbosity = ctx.obj.get("verbosity", VERBOSITY_NORMAL)
    brain = open_brain(ctx)
    try:
        if not brain.rollback(delta_hash):
            fail(f"Unknown delta: {delta_hash}", verbosity)
        echo_quiet(click.style(f"✓ Head is now {delta_hash}", fg="green"), verbosity)
    finally:
        brain.shutdown()


@history_group.command("history")
@click.option("--limit", "-l", default=20, help="Maximum number of deltas")
@click.option("--json-output", is_flag=True, help="Output as JSON")
@click.pass_context
def history(ctx, limit: int, json_output: bool) -> None:
    """Show deltas from head back, newest first."""
    verbosity = ctx.obj.get("verbosity", VERBOSITY_NORMAL)
    brain = open_brain(ctx)
    try:
        deltas = brain.get_history(limit)
        if json_output:
            echo_quiet(json.dumps([d.to_dict() for d in deltas], indent=2), verbosity)
            return

        if not deltas:
            echo_normal(click.style("No history yet", fg="yellow"), verbosity)
            return

        for delta in deltas:
            summary = DeltaManager.summarize(delta)
            when = datetime.fromtimestamp(delta.timestamp).strftime("%Y-%m-%d %H:%M:%S")
            counts = summary["stats"]
            echo_quiet(f"{click.style(delta.hash, fg='yellow')} {delta.message}", verbosity)
            echo_normal(f"    {when}  +{counts['adds']} ~{counts['modifies']} -{counts['deletes']}"
                        f"  [{delta.trigger.value}]", verbosity)
            echo_verbose(f"    categories: {', '.join(summary['categories'])}", verbosity)
    finally:
        brain.shutdown()


@history_group.command("status")
@click.option("--json-output", is_flag=True, help="Output as JSON")
@click.pass_context
def status(ctx, json_output: bool) -> None:
    """Show head and uncommitted changes."""
    verbosity = ctx.obj.get("verbosity", VERBOSITY_NORMAL)
    brain = open_brain(ctx)
    try:
        info = brain.status()
        if json_output:
            echo_quiet(json.dumps(info, indent=2), verbosity)
            return

        echo_quiet(f"Head: {info['head'] or '(none)'}", verbosity)
        if info["clean"]:
            echo_normal(click.style("Nothing to commit", fg="green"), verbosity)
            return
        pending = info["pending"]
        echo_quiet(f"Pending: +{pending['adds']} ~{pending['modifies']} -{pending['deletes']}", verbosity)
    finally:
        brain.shutdown()


@history_group.command("reset")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt")
@click.pass_context
def reset(ctx, yes: bool) -> None:
    """Delete every node, edge and index entry and clear head."""
    verbosity = ctx.obj.get("verbosity", VERBOSITY_NORMAL)
    if not yes and not click.confirm(click.style("Erase all learned knowledge?", fg="yellow")):
        echo_normal("Aborted", verbosity)
        return

    brain = open_brain(ctx)
    try:
        brain.reset()
        echo_quiet(click.style("✓ Brain reset", fg="green"), verbosity)
    finally:
        brain.shutdown()
