"""Project setup and status commands for codebrain CLI."""
import json

import click

from ..brain import Brain
from ..config import BrainConfig, load_config, save_config
from .common import (
    VERBOSITY_NORMAL,
    config_path,
    echo_normal,
    echo_quiet,
    echo_verbose,
    fail,
    get_root,
    open_brain,
)


@click.group()
def project_group():
    """Project commands."""
    pass


@project_group.command("init")
@click.pass_context
def init(ctx) -> None:
    """Initialize a brain for the project.

    Creates the following:
    - .codebrain/ directory with node, index and delta storage
    - .codebrain/config.yaml with default settings
    """
    root = get_root(ctx.obj.get("root"))
    verbosity = ctx.obj.get("verbosity", VERBOSITY_NORMAL)
    path = config_path(root)

    try:
        config = load_config(path)
    except ValueError as e:
        fail(f"Invalid configuration: {e}", verbosity)

    brain = Brain(root, config=config)
    if not brain.setup():
        fail("Brain is disabled in config.yaml", verbosity)

    try:
        if not path.exists():
            save_config(BrainConfig(), path)
            echo_verbose(f" ✓ Wrote {path}", verbosity)
        echo_normal(click.style("✓ Brain initialized", fg="green", bold=True), verbosity)
        echo_normal(f"  Location: {click.style(str(brain.storage.brain_dir), fg='cyan')}", verbosity)
    except OSError as e:
        fail(f"Could not write config: {e}", verbosity)
    finally:
        brain.shutdown()


@project_group.command("stats")
@click.option("--json-output", is_flag=True, help="Output as JSON")
@click.pass_context
def stats(ctx, json_output: bool) -> None:
    """Show node, edge and delta counts."""
    verbosity = ctx.obj.get("verbosity", VERBOSITY_NORMAL)
    brain = open_brain(ctx)
    try:
        data = brain.stats()
        if json_output:
            echo_quiet(json.dumps(data, indent=2), verbosity)
            return

        echo_normal(click.style("Brain Statistics", fg="cyan", bold=True), verbosity)
        echo_normal("=" * 40, verbosity)
        echo_quiet(f"  Nodes:   {click.style(str(data['node_count']), fg='cyan')}", verbosity)
        echo_quiet(f"  Edges:   {click.style(str(data['edge_count']), fg='cyan')}", verbosity)
        echo_quiet(f"  Deltas:  {click.style(str(data['delta_count']), fg='cyan')}", verbosity)
        echo_quiet(f"  Head:    {data['head'] or '(none)'}", verbosity)
        echo_verbose(f"  Pending: {data['pending_changes']}", verbosity)
    finally:
        brain.shutdown()
