"""Shared utilities for codebrain CLI commands."""
import os
import sys
from pathlib import Path
from typing import Optional

import click

from ..brain import Brain
from ..config import CONFIG_FILENAME, load_config
from ..storage.cache import DEFAULT_BRAIN_DIR

# Verbosity levels
VERBOSITY_QUIET = 0
VERBOSITY_NORMAL = 1
VERBOSITY_VERBOSE = 2

NODE_TYPE_CHOICES = ["pattern", "correction", "decision", "convention", "feedback", "session"]

TYPE_COLORS = {
    "pattern": "blue",
    "correction": "red",
    "decision": "magenta",
    "convention": "green",
    "feedback": "yellow",
    "session": "white",
}


def get_root(ctx_root: Optional[Path] = None) -> Path:
    """Get the project root.

    Priority: --root flag > CODEBRAIN_ROOT env var > current directory.

    Args:
        ctx_root: Value from --root CLI option, if provided.
    """
    if ctx_root:
        return Path(ctx_root)
    env_root = os.getenv("CODEBRAIN_ROOT")
    if env_root:
        return Path(env_root)
    return Path.cwd()


def config_path(root: Path) -> Path:
    return root / DEFAULT_BRAIN_DIR / CONFIG_FILENAME


def should_print(verbosity: int, message_level: int) -> bool:
    """Determine if a message should be printed based on verbosity settings.

    Args:
        verbosity: Current verbosity level (0=quiet, 1=normal, 2=verbose).
        message_level: Minimum verbosity level required for this message.
    """
    return verbosity >= message_level


def echo_verbose(message: str, verbosity: int) -> None:
    """Print a message only in verbose mode."""
    if should_print(verbosity, VERBOSITY_VERBOSE):
        click.echo(message)


def echo_normal(message: str, verbosity: int) -> None:
    """Print a message in normal and verbose modes."""
    if should_print(verbosity, VERBOSITY_NORMAL):
        click.echo(message)


def echo_quiet(message: str, verbosity: int) -> None:
    """Print a message that is shown even in quiet mode (results, errors)."""
    click.echo(message)


def fail(message: str, verbosity: int) -> None:
    """Print an error and exit with status 1."""
    echo_quiet(click.style(f"Error: {message}", fg="red"), verbosity)
    sys.exit(1)


def open_brain(ctx: click.Context) -> Brain:
    """Open the brain of the selected project, exiting if it is not initialized."""
    root = get_root(ctx.obj.get("root"))
    verbosity = ctx.obj.get("verbosity", VERBOSITY_NORMAL)

    try:
        config = load_config(config_path(root))
    except ValueError as e:
        fail(f"Invalid configuration: {e}", verbosity)

    brain = Brain(root, config=config)
    if not brain.storage.exists():
        fail("Brain not initialized. Run 'codebrain init' first.", verbosity)
    if not brain.setup():
        fail("Brain is disabled in config.yaml", verbosity)
    echo_verbose(f"Brain: {brain.storage.brain_dir}", verbosity)
    return brain
