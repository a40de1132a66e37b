# src/faultline/chaos/cli.py
"""CLI for inspecting faultline stage configurations.

Usage:
    faultline describe --config=my_chaos.yaml     # Print canonical description
    faultline describe --preset=flaky_gateway
    faultline presets                             # List presets
    faultline show-config --preset=slow_start --format=json
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated, Any

import typer
import yaml

from faultline.chaos.config import encode_stage
from faultline.chaos.config_loader import list_presets, load_stage
from faultline.chaos.errors import ConfigurationError
from faultline.chaos.stages import Stage
from faultline.core.logging import configure_logging

app = typer.Typer(
    name="faultline",
    help="faultline: Composable chaos stages for HTTP pipelines.",
    no_args_is_help=True,
)

PresetOption = Annotated[
    str | None,
    typer.Option("--preset", "-p", help="Preset to load. Use 'faultline presets' to list available."),
]
ConfigOption = Annotated[
    Path | None,
    typer.Option(
        "--config",
        "-c",
        help="Path to a YAML or JSON stage file.",
        exists=True,
        file_okay=True,
        dir_okay=False,
        resolve_path=True,
    ),
]


def _version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        from faultline import __version__

        typer.echo(f"faultline {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    log_level: Annotated[
        str,
        typer.Option("--log-level", help="Log level (DEBUG, INFO, WARNING, ERROR)."),
    ] = "WARNING",
    json_logs: Annotated[
        bool,
        typer.Option("--json-logs", help="Emit logs as JSON."),
    ] = False,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-v",
            callback=_version_callback,
            is_eager=True,
            help="Show version.",
        ),
    ] = False,
) -> None:
    """Configure logging for every command."""
    configure_logging(json_output=json_logs, level=log_level)


def _load(preset: str | None, config_file: Path | None) -> Stage:
    """Load a stage or exit with a red error message."""
    try:
        return load_stage(preset=preset, config_file=config_file)
    except FileNotFoundError as e:
        typer.secho(f"Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1) from e
    except ConfigurationError as e:
        typer.secho(f"Configuration error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1) from e


@app.command()
def describe(preset: PresetOption = None, config_file: ConfigOption = None) -> None:
    """Print the canonical description of a stage configuration.

    Configuration precedence (highest to lowest):
    1. Config file (--config)
    2. Preset (--preset)
    """
    typer.echo(str(_load(preset, config_file)))


@app.command()
def presets() -> None:
    """List available preset configurations."""
    available = list_presets()
    if not available:
        typer.echo("No presets found.")
        return

    typer.secho("Available presets:", fg=typer.colors.GREEN)
    for name in available:
        typer.echo(f"  - {name}")

    typer.echo()
    typer.echo("Use with: faultline describe --preset=<name>")


@app.command()
def show_config(
    preset: PresetOption = None,
    config_file: ConfigOption = None,
    output_format: Annotated[
        str,
        typer.Option("--format", "-f", help="Output format: json or yaml."),
    ] = "yaml",
) -> None:
    """Show the effective stage configuration after decoding."""
    stage = _load(preset, config_file)
    try:
        encoded: dict[str, Any] = encode_stage(stage)
    except ConfigurationError as e:
        typer.secho(f"Configuration error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1) from e

    if output_format == "json":
        typer.echo(json.dumps(encoded, indent=2))
    else:
        typer.echo(yaml.safe_dump(encoded, default_flow_style=False, sort_keys=False))


def main() -> None:
    """Entry point for faultline CLI."""
    app()


if __name__ == "__main__":
    main()
