"""Export/import commands for codebrain CLI."""
from pathlib import Path

import click

from ..export_import import BrainExporter, BrainImporter
from .common import VERBOSITY_NORMAL, echo_quiet, fail, open_brain


@click.group()
def transfer_group():
    """Export/import commands."""
    pass


@transfer_group.command("export")
@click.argument("output", type=click.Path(dir_okay=False))
@click.option("--history", "include_history", is_flag=True, help="Include delta history")
@click.pass_context
def export(ctx, output: str, include_history: bool) -> None:
    """Write a snapshot of the brain to OUTPUT (.json, .yaml or .yml).

    Examples:
        codebrain export brain.json
        codebrain export backup.yaml --history
    """
    verbosity = ctx.obj.get("verbosity", VERBOSITY_NORMAL)
    brain = open_brain(ctx)
    try:
        count = BrainExporter(brain).export_to_file(Path(output), include_history=include_history)
        echo_quiet(click.style(f"✓ Exported {count} nodes to {output}", fg="green"), verbosity)
    except OSError as e:
        fail(f"Export failed: {e}", verbosity)
    finally:
        brain.shutdown()


@transfer_group.command("import")
@click.argument("input_file", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def import_cmd(ctx, input_file: str) -> None:
    """Replace the brain's state with a snapshot from INPUT_FILE."""
    verbosity = ctx.obj.get("verbosity", VERBOSITY_NORMAL)
    brain = open_brain(ctx)
    try:
        if not BrainImporter(brain).import_from_file(Path(input_file)):
            fail("Snapshot rejected (schema mismatch or malformed data)", verbosity)
        stats = brain.stats()
        echo_quiet(click.style(f"✓ Imported {stats['node_count']} nodes, {stats['edge_count']} edges",
                               fg="green"), verbosity)
    except ValueError as e:
        fail(str(e), verbosity)
    finally:
        brain.shutdown()
