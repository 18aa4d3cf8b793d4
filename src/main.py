"""
Plan Engine — CLI entrypoint.

Usage:
    python -m src.main --help
    python -m src.main instance init my-app
    python -m src.main plan run --fake
    python -m src.main plan status
"""

from __future__ import annotations

import os
from pathlib import Path

import click

from src.core.observability.logging_config import (
    ENV_FILE,
    ENV_FILE_LEVEL,
    resolve_level,
    setup_logging,
)
from src.core.persistence.state_file import default_state_path

from src import __version__


@click.group()
@click.version_option(version=__version__, prog_name="planengine")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--package",
    "-P",
    "package_dir",
    type=click.Path(file_okay=False),
    default=None,
    help="Operator package directory (default: auto-detect operator.yaml).",
)
@click.option(
    "--state",
    "-s",
    "state_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Instance state file (default: .state/instance.json).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    package_dir: str | None,
    state_path: str | None,
) -> None:
    """Plan Engine — drive declarative plans against a cluster."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["package_dir"] = Path(package_dir) if package_dir else None
    ctx.obj["state_path"] = Path(state_path) if state_path else default_state_path(Path.cwd())

    setup_logging(
        level=resolve_level(debug=debug, verbose=verbose, quiet=quiet),
        log_file=os.environ.get(ENV_FILE),
        log_file_level=os.environ.get(ENV_FILE_LEVEL),
        quiet_third_party=not debug,
    )


# ── Register sub-command groups from src/ui/cli/ ──────────────────

from src.ui.cli.instance import instance
from src.ui.cli.plan import plan

cli.add_command(instance)
cli.add_command(plan)


if __name__ == "__main__":
    cli()
