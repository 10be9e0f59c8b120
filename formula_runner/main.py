"""
formula-runner — CLI entrypoint.

Usage:
    python -m formula_runner.main --help
    formula-runner check aws-sso-cli.yml --set VERSION=1.2.3
    formula-runner install aws-sso-cli.yml --prefix /opt/pkgs --source x.tar
"""

from __future__ import annotations

import os
from pathlib import Path

import click

from formula_runner import __version__
from formula_runner.core.observability.logging_config import (
    ENV_LOG_FILE,
    ENV_LOG_FILE_LEVEL,
    resolve_level,
    setup_logging,
)


@click.group()
@click.version_option(version=__version__, prog_name="formula-runner")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (includes build output).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to formula-runner.yml (default: auto-detect).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """formula-runner — build, install and smoke-test one package formula."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    # ── Logging setup (once, at process start) ──────────────────
    setup_logging(
        level=resolve_level(debug=debug, verbose=verbose, quiet=quiet),
        log_file=os.environ.get(ENV_LOG_FILE),
        log_file_level=os.environ.get(ENV_LOG_FILE_LEVEL),
    )


# ── Sub-commands ─────────────────────────────────────────────────

from formula_runner.ui.cli.formula import check, history, install, plan, render  # noqa: E402

cli.add_command(check)
cli.add_command(render)
cli.add_command(plan)
cli.add_command(install)
cli.add_command(history)


if __name__ == "__main__":
    cli()
