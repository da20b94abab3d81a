"""
docgate - Command Line Interface

Operator tooling for the security gateway, built with Typer and Rich.

Usage:
    $ docgate --help
    $ docgate review list --status pending
    $ docgate review approve review-1718000000000-ab12cd34 --by alice
    $ docgate scan notes.md
    $ docgate config show --format tree

Sub-command Groups:
    review - Manual review queue (list, show, approve, reject, stats, cleanup)
    config - Gateway configuration (show, validate)

For detailed help on any command:
    $ docgate <command> --help
    $ docgate <group> <command> --help
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from docgate import __version__
from docgate.config import ConfigError, GatewayConfig, config_from_settings, settings

console = Console()
err_console = Console(stderr=True)

app = typer.Typer(
    name="docgate",
    help="docgate - security-hardened document synchronization and transformation gateway",
    no_args_is_help=True,
    rich_markup_mode="rich",
    pretty_exceptions_show_locals=False,
)

review_app = typer.Typer(
    name="review",
    help="Manual review queue commands",
    no_args_is_help=True,
)

config_app = typer.Typer(
    name="config",
    help="Gateway configuration commands",
    no_args_is_help=True,
)

app.add_typer(review_app, name="review")
app.add_typer(config_app, name="config")

# Set by the root callback; read by subcommands.
state: dict[str, Optional[Path]] = {"config_path": None}


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"docgate version {__version__}")
        raise typer.Exit()


def verbose_callback(value: bool) -> None:
    """Enable DEBUG logging."""
    if value:
        logging.basicConfig(level=logging.DEBUG)


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        callback=verbose_callback,
        help="Enable verbose output.",
    ),
    config_file: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to the gateway configuration JSON.",
        envvar="GATEWAY_CONFIG_PATH",
    ),
) -> None:
    """
    docgate - security-hardened synchronization and transformation gateway

    Sanitizes untrusted documents, scans for secrets, validates generated
    output and manages the manual review queue.
    """
    if not verbose:
        logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL))
    state["config_path"] = config_file


def load_cli_config() -> GatewayConfig:
    """Effective configuration for a command; exits with code 1 when unusable."""
    from docgate.cli.output import print_error

    try:
        return config_from_settings(settings, state["config_path"])
    except FileNotFoundError as exc:
        print_error(str(exc), hint="Pass --config or set GATEWAY_CONFIG_PATH")
        raise typer.Exit(1)
    except ConfigError as exc:
        print_error("Invalid gateway configuration", details=str(exc))
        raise typer.Exit(1)


# Subcommand modules register themselves on the apps above.
from docgate.cli import config, review, scan  # noqa: E402,F401

__all__ = [
    "app",
    "review_app",
    "config_app",
    "console",
    "err_console",
    "load_cli_config",
    "state",
    "__version__",
]


def cli() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    cli()
