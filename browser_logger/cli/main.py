#!/usr/bin/env python3
"""Main CLI entry point for Browser Logger using Typer.

This module provides the command-line interface: ``start`` launches a browser
and records its console and network activity until Ctrl+C or the browser is
closed, ``validate-config`` checks a configuration file.
"""

from pathlib import Path
from typing import Any, Dict, Optional

import typer
from typing_extensions import Annotated

from .. import __version__
from .config import (
    load_config_file,
    load_configuration,
    print_configuration,
    validate_configuration,
)
from .runner import ExitCode, build_session_config, configure_logging, run_session


# Create the main Typer app
app = typer.Typer(
    name="browser-logger",
    help="Browser Logger - capture console and network activity from a live browser",
    add_completion=False,
    rich_markup_mode="rich"
)


@app.callback()
def main():
    """
    Browser Logger - capture console and network activity from a live browser.

    Launches a Chromium-family browser and writes everything its tabs log to
    the console and send over the network into timestamped log files.
    """


@app.command(name="version")
def show_version():
    """Show version information."""
    typer.echo(f"Browser Logger v{__version__}")


@app.command()
def start(
    name: Annotated[
        Optional[str],
        typer.Argument(help="Session name (log directory becomes browser-<name>)")
    ] = None,

    preview: Annotated[
        Optional[bool],
        typer.Option("--preview/--no-preview", help="Echo log lines to the terminal")
    ] = None,

    silent: Annotated[
        Optional[bool],
        typer.Option("--silent/--no-silent", help="Suppress all terminal output")
    ] = None,

    output_format: Annotated[
        Optional[str],
        typer.Option("--format", help="Log format: default or json")
    ] = None,

    browser: Annotated[
        Optional[Path],
        typer.Option("--browser", help="Path to the browser executable")
    ] = None,

    out: Annotated[
        Optional[Path],
        typer.Option("--out", "-o", help="Root directory for session logs")
    ] = None,

    config: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="Path to configuration file")
    ] = None,

    print_config: Annotated[
        bool,
        typer.Option("--print-config", help="Print effective configuration and exit")
    ] = False,

    verbose: Annotated[
        Optional[bool],
        typer.Option("--verbose/--no-verbose", "-v", help="Verbose diagnostic logging")
    ] = None,
):
    """
    Start a browser and log its console and network activity.

    Examples:

        # Timestamped session under ./logs or ~/logs
        browser-logger start

        # Named session with live preview
        browser-logger start checkout-bug --preview

        # JSON lines with an explicit browser
        browser-logger start --format json --browser /usr/bin/chromium
    """
    cli_overrides: Dict[str, Any] = {}

    output_config: Dict[str, Any] = {}
    if name is not None:
        output_config["session_name"] = name
    if out is not None:
        output_config["log_root"] = out
    if output_format is not None:
        output_config["format"] = output_format
    if preview is not None:
        output_config["preview"] = preview
    if silent is not None:
        output_config["silent"] = silent
    if output_config:
        cli_overrides["output"] = output_config

    if browser is not None:
        cli_overrides["browser"] = {"executable_path": browser}

    if verbose is not None:
        cli_overrides["logging"] = {"verbose": verbose}

    validation_errors = []
    try:
        full_config = load_configuration(
            config_file=config,
            cli_overrides=cli_overrides,
            search_paths=[Path.cwd()]
        )
        if not print_config:
            validation_errors = validate_configuration(full_config)

    except Exception as e:
        typer.echo(f"❌ Configuration error: {e}", err=True)
        raise typer.Exit(code=ExitCode.CONFIG_ERROR.value)

    if validation_errors:
        for error in validation_errors:
            typer.echo(f"❌ Configuration error: {error}", err=True)
        raise typer.Exit(code=ExitCode.CONFIG_ERROR.value)

    if print_config:
        typer.echo("# Effective Configuration")
        typer.echo("# Loaded from: " + " -> ".join(full_config.loaded_from))
        typer.echo(print_configuration(full_config, "yaml"))
        raise typer.Exit()

    configure_logging(full_config.logging.verbose)

    exit_code = run_session(
        build_session_config(full_config),
        silent=full_config.output.silent,
        verbose=full_config.logging.verbose,
    )
    raise typer.Exit(code=exit_code.value)


@app.command(name="validate-config")
def validate_config(
    config_file: Annotated[
        Path,
        typer.Argument(help="Configuration file to validate")
    ],

    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Print the parsed configuration")
    ] = False,
):
    """
    Validate a configuration file for syntax and completeness.
    """
    try:
        parsed = load_config_file(config_file)
    except Exception as e:
        typer.echo(f"❌ Configuration validation failed: {e}", err=True)
        raise typer.Exit(code=ExitCode.CONFIG_ERROR.value)

    errors = validate_configuration(parsed)
    if errors:
        for error in errors:
            typer.echo(f"❌ Configuration error: {error}", err=True)
        raise typer.Exit(code=ExitCode.CONFIG_ERROR.value)

    typer.echo(f"✅ Configuration file {config_file} is valid")

    if verbose:
        typer.echo(print_configuration(parsed, "yaml"))


def cli_main():
    """Entry point for console script."""
    app()


if __name__ == "__main__":
    cli_main()
