"""codebrain CLI - command line interface to a project's knowledge brain.

Command groups are organized into separate modules:
- project.py: init, stats
- knowledge.py: learn, query, context, prune
- history.py: commit, rollback, history, status, reset
- transfer.py: export, import
- common.py: shared utilities
"""
import logging
from pathlib import Path

import click

from .. import __version__
from .common import VERBOSITY_NORMAL, VERBOSITY_QUIET, VERBOSITY_VERBOSE, get_root
from .history import history_group
from .knowledge import knowledge_group
from .project import project_group
from .transfer import transfer_group


@click.group()
@click.version_option(version=__version__, prog_name="codebrain")
@click.option("--root", type=click.Path(file_okay=False), default=None, envvar="CODEBRAIN_ROOT",
              help="Project root (default: current directory)")
@click.option("--verbose", "-v", is_flag=True, default=False, help="Enable verbose output")
@click.option("--quiet", "-q", is_flag=True, default=False, help="Suppress non-essential output")
@click.pass_context
def cli(ctx, root, verbose, quiet):
    """codebrain - project knowledge for LLM prompts

    \b
    Key Commands:
        init        Initialize a brain in the project
        learn       Feed a learning event
        query       Search learnings
        context     Print the LLM context block
        history     Show committed deltas
        status      Show head and uncommitted changes
        export      Snapshot the brain to a file

    \b
    Examples:
        codebrain init
        codebrain learn convention_detected --data '{"name": "snake_case", "description": "Use snake_case"}'
        codebrain query snake
        codebrain context --format natural
    """
    ctx.ensure_object(dict)

    if verbose and quiet:
        raise click.UsageError("--verbose and --quiet are mutually exclusive")

    if quiet:
        ctx.obj["verbosity"] = VERBOSITY_QUIET
    elif verbose:
        ctx.obj["verbosity"] = VERBOSITY_VERBOSE
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    else:
        ctx.obj["verbosity"] = VERBOSITY_NORMAL

    ctx.obj["root"] = Path(root) if root else None


cli.add_command(project_group.commands["init"])
cli.add_command(project_group.commands["stats"])

cli.add_command(knowledge_group.commands["learn"])
cli.add_command(knowledge_group.commands["query"])
cli.add_command(knowledge_group.commands["context"])
cli.add_command(knowledge_group.commands["prune"])

cli.add_command(history_group.commands["commit"])
cli.add_command(history_group.commands["rollback"])
cli.add_command(history_group.commands["history"])
cli.add_command(history_group.commands["status"])
cli.add_command(history_group.commands["reset"])

cli.add_command(transfer_group.commands["export"])
cli.add_command(transfer_group.commands["import"])


def main():
    """Entry point for the CLI."""
    cli()


__all__ = [
    "cli",
    "main",
    "get_root",
]
