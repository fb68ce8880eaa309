"""CLI application for Seedlink Relay.

Provides commands for:
- run: Start the relay
- validate: Validate configuration
- channels: Show the configured channels
- generate-example: Write an example configuration
- schema: Print the configuration JSON Schema
"""

from __future__ import annotations

import asyncio
import json
import os
from pathlib import Path
from typing import TYPE_CHECKING, Annotated

import typer
from rich.console import Console
from rich.table import Table

from seedlink_relay import __version__
from seedlink_relay.adapters.upstream.base import registered_source_types
from seedlink_relay.config.loader import (
    ConfigurationError,
    generate_example_config,
    load_config,
)
from seedlink_relay.config.schema import RelayConfig
from seedlink_relay.domain.model.channels import Selector
from seedlink_relay.main import run_relay
from seedlink_relay.observability.logging import LOG_FORMAT_ENV, LOG_LEVEL_ENV

if TYPE_CHECKING:
    from seedlink_relay.config.schema import ChannelConfig


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"seedlink-relay {__version__}")
        raise typer.Exit()


app = typer.Typer(
    name="seedlink-relay",
    help="Seedlink Relay - Broadcasting unpacked Seedlink data over WebSockets",
    add_completion=False,
)


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-V",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit",
        ),
    ] = False,
) -> None:
    """Seedlink Relay CLI."""
    pass


console = Console()


@app.command()
def run(
    config: Annotated[
        Path,
        typer.Argument(
            help="Path to configuration YAML file",
            exists=True,
            file_okay=True,
            dir_okay=False,
            readable=True,
        ),
    ],
    override: Annotated[
        Path | None,
        typer.Option(
            "--override",
            "-o",
            help="Path to override configuration file",
            exists=True,
        ),
    ] = None,
    log_level: Annotated[
        str,
        typer.Option(
            "--log-level",
            "-l",
            help="Log level (DEBUG, INFO, WARNING, ERROR)",
        ),
    ] = "INFO",
    log_format: Annotated[
        str,
        typer.Option(
            "--log-format",
            help="Log format (console, json)",
        ),
    ] = "console",
) -> None:
    """Start the relay.

    Loads configuration, creates the channels and serves WebSocket clients
    until SIGINT or SIGTERM.
    """
    os.environ[LOG_LEVEL_ENV] = log_level
    os.environ[LOG_FORMAT_ENV] = log_format

    console.print("[bold green]Starting Seedlink Relay[/bold green]")
    console.print(f"Configuration: {config}")

    try:
        asyncio.run(run_relay(config, override_path=override))
    except KeyboardInterrupt:
        console.print("\n[yellow]Shutdown requested[/yellow]")
    except Exception as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(code=1) from e


@app.command()
def validate(
    config: Annotated[
        Path,
        typer.Argument(
            help="Path to configuration YAML file",
            exists=True,
            file_okay=True,
            dir_okay=False,
            readable=True,
        ),
    ],
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            "-v",
            help="Show detailed validation information",
        ),
    ] = False,
) -> None:
    """Validate a configuration file.

    Checks the configuration for errors without starting the relay.
    """
    console.print(f"[bold]Validating:[/bold] {config}")

    try:
        relay_config = load_config(config)
        _check_source_types(relay_config)

        console.print("[bold green]Configuration valid![/bold green]")

        if verbose:
            _print_config_summary(relay_config)

    except ConfigurationError as e:
        console.print("[bold red]Validation failed:[/bold red]")
        console.print(str(e))
        raise typer.Exit(code=1) from e


@app.command()
def channels(
    config: Annotated[
        Path,
        typer.Argument(
            help="Path to configuration YAML file",
            exists=True,
        ),
    ],
) -> None:
    """Show the configured channels with their selectors and sources."""
    try:
        relay_config = load_config(config)
    except ConfigurationError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(code=1) from e

    table = Table(title="Configured Channels")
    table.add_column("Channel", style="cyan")
    table.add_column("Source", style="magenta")
    table.add_column("Upstream")
    table.add_column("Selectors", style="green")

    for channel in sorted(relay_config.channels, key=lambda c: c.name):
        table.add_row(
            channel.name,
            channel.source.type,
            _upstream_address(channel),
            " ".join(str(Selector.from_config(s)) for s in channel.selectors),
        )

    console.print(table)


@app.command("generate-example")
def generate_example(
    output: Annotated[
        Path,
        typer.Option(
            "--output",
            "-o",
            help="Output file path",
        ),
    ] = Path("relay-config.yaml"),
) -> None:
    """Generate an example configuration file.

    Creates a sample configuration that can be customized for your setup.
    """
    example_yaml = generate_example_config()
    output.write_text(example_yaml)

    console.print(f"[bold green]Example configuration written:[/bold green] {output}")
    console.print("\nEdit this file to match your setup, then run:")
    console.print(f"  [cyan]seedlink-relay validate {output}[/cyan]")
    console.print(f"  [cyan]seedlink-relay run {output}[/cyan]")


@app.command()
def schema(
    output: Annotated[
        Path | None,
        typer.Option(
            "--output",
            "-o",
            help="Output file path (prints to stdout if not specified)",
        ),
    ] = None,
) -> None:
    """Export the configuration JSON Schema."""
    schema_str = json.dumps(RelayConfig.model_json_schema(), indent=2)

    if output:
        output.write_text(schema_str)
        console.print(f"[bold green]Schema exported:[/bold green] {output}")
    else:
        typer.echo(schema_str)


@app.command()
def version() -> None:
    """Show version information."""
    console.print(f"Seedlink Relay version [bold]{__version__}[/bold]")


def _check_source_types(config: RelayConfig) -> None:
    """Fail validation for channels whose source type is not registered."""
    available = set(registered_source_types())
    for channel in config.channels:
        if channel.source.type not in available:
            raise ConfigurationError(
                f"Channel '{channel.name}' uses unknown source type '{channel.source.type}'. "
                f"Available: {', '.join(sorted(available))}"
            )


def _upstream_address(channel: ChannelConfig) -> str:
    if channel.source.host is None:
        return "-"
    if channel.source.port is None:
        return channel.source.host
    return f"{channel.source.host}:{channel.source.port}"


def _print_config_summary(config: RelayConfig) -> None:
    """Print a summary of the configuration."""

    table = Table(title="Configuration Summary")
    table.add_column("Component", style="cyan")
    table.add_column("Count", style="green")
    table.add_column("Details")

    table.add_row(
        "Server",
        "1",
        f"{config.server.name} on {config.server.host}:{config.server.port}",
    )
    table.add_row(
        "Channels",
        str(len(config.channels)),
        ", ".join(sorted(c.name for c in config.channels)),
    )
    table.add_row(
        "Selectors",
        str(sum(len(c.selectors) for c in config.channels)),
        "",
    )

    console.print(table)

    console.print("\n[bold]Heartbeat:[/bold]")
    console.print(f"  Interval: {config.server.heartbeat_interval_ms} ms")
    console.print(f"  Debug error detail: {'on' if config.server.debug else 'off'}")


if __name__ == "__main__":
    app()
