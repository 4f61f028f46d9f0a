"""Command-line interface for nodescope.

This module provides:
- Typer-based CLI application
- Config file loading with CLI overrides
- Logging and Sentry setup
- One-shot and streaming scrapes rendered to stdout

Usage:
    nodescope scrape                       # One scrape, Prometheus text
    nodescope scrape --format json         # One scrape, JSON
    nodescope scrape --stream --interval 5 # Scrape every 5 seconds
    nodescope scrape --disable gpu         # Skip a collector
    nodescope collectors                   # List registered collectors

Metrics go to stdout; logs and errors go to stderr.
"""

from enum import Enum
import logging
from pathlib import Path
import socket
import time
from typing import Annotated, Any

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table
import typer

from nodescope import __version__
from nodescope.collectors import CollectorError, CollectorRegistry, build_registry
from nodescope.config import Config, ConfigError, load_config
from nodescope.formatters import get_formatter
from nodescope.sentry import init_sentry, report_collector_failure

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="nodescope",
    help="Pluggable host network, GPU and container metrics collector",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)

# Metrics are written to stdout; everything else goes to stderr
console = Console(stderr=True)


class OutputFormat(str, Enum):
    """Output format options."""

    PROMETHEUS = "prometheus"
    JSON = "json"


def version_callback(value: bool) -> None:
    """Display version and exit."""
    if value:
        console.print(f"nodescope version {__version__}")
        raise typer.Exit()


def configure_logging(level: str, log_file: str | None = None) -> None:
    """Configure the root logger from the logging config section."""
    handler: logging.Handler
    if log_file:
        handler = logging.FileHandler(log_file)
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
    else:
        handler = RichHandler(console=console, show_path=False)
    logging.basicConfig(level=level, handlers=[handler], force=True)


def build_cli_overrides(
    enable: list[str] | None = None,
    disable: list[str] | None = None,
    interval: float | None = None,
) -> dict[str, Any]:
    """Build a config override dict from CLI arguments.

    A name given to both --enable and --disable ends up disabled.
    """
    overrides: dict[str, Any] = {}
    toggles: dict[str, dict[str, bool]] = {}
    for name in enable or []:
        toggles[name] = {"enabled": True}
    for name in disable or []:
        toggles[name] = {"enabled": False}
    if toggles:
        overrides["collectors"] = toggles
    if interval is not None:
        overrides["interval"] = interval
    return overrides


def _load(config_path: Path | None, overrides: dict[str, Any]) -> Config:
    try:
        return load_config(
            config_path=str(config_path) if config_path else None, cli_overrides=overrides
        )
    except FileNotFoundError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e
    except ConfigError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1) from e


def _build(cfg: Config) -> CollectorRegistry:
    try:
        return build_registry(cfg)
    except CollectorError as e:
        console.print(f"[red]Collector registration failed:[/red] {e}")
        raise typer.Exit(1) from e


ConfigOption = Annotated[
    Path | None,
    typer.Option("--config", "-c", help="Path to config file", exists=False, dir_okay=False),
]


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """nodescope - host network, GPU and container metrics."""


@app.command("scrape")
def scrape_command(
    config: ConfigOption = None,
    output_format: Annotated[
        OutputFormat, typer.Option("--format", "-f", help="Output format")
    ] = OutputFormat.PROMETHEUS,
    enable: Annotated[
        list[str] | None, typer.Option("--enable", help="Enable a collector (repeatable)")
    ] = None,
    disable: Annotated[
        list[str] | None, typer.Option("--disable", help="Disable a collector (repeatable)")
    ] = None,
    stream: Annotated[
        bool, typer.Option("--stream", help="Scrape repeatedly every --interval seconds")
    ] = False,
    interval: Annotated[
        float | None, typer.Option("--interval", "-i", help="Seconds between scrapes", min=0.1)
    ] = None,
    count: Annotated[
        int | None, typer.Option("--count", "-n", help="Stop after this many scrapes", min=1)
    ] = None,
) -> None:
    """Run the enabled collectors and print their metrics.

    Exits with status 1 when every enabled collector failed.
    """
    cfg = _load(config, build_cli_overrides(enable, disable, interval))
    configure_logging(cfg.logging.level, cfg.logging.file)

    registry = _build(cfg)
    if init_sentry(
        dsn=cfg.sentry.dsn,
        environment=cfg.sentry.environment,
        traces_sample_rate=cfg.sentry.traces_sample_rate,
    ):
        registry.add_error_hook(report_collector_failure)

    try:
        enabled = registry.enabled_names(cfg.overrides())
    except CollectorError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    formatter = get_formatter(output_format.value)
    hostname = socket.gethostname()
    remaining = count if count is not None else (None if stream else 1)
    exit_code = 0

    try:
        while True:
            result = registry.run(enabled)
            typer.echo(formatter.format(result, hostname), nl=False)
            for name, error in result.errors.items():
                console.print(f"[yellow]Collector {name} failed:[/yellow] {error}")
            exit_code = 1 if result.all_failed else 0

            if remaining is not None:
                remaining -= 1
                if remaining <= 0:
                    break
            time.sleep(cfg.interval)
    except KeyboardInterrupt:
        logger.debug("Interrupted, stopping")
    finally:
        registry.shutdown_all()

    if exit_code:
        raise typer.Exit(exit_code)


@app.command("collectors")
def collectors_command(
    config: ConfigOption = None,
) -> None:
    """List registered collectors and whether they will run."""
    cfg = _load(config, {})
    configure_logging(cfg.logging.level, cfg.logging.file)
    registry = _build(cfg)

    overrides = cfg.overrides()
    table = Table(title="Collectors")
    table.add_column("Name", style="cyan")
    table.add_column("Default")
    table.add_column("Enabled")
    for registration in registry.registrations():
        enabled = overrides.get(registration.name, registration.enabled_by_default)
        table.add_row(
            registration.name,
            "on" if registration.enabled_by_default else "off",
            "[green]yes[/green]" if enabled else "[red]no[/red]",
        )
    Console().print(table)


def cli_main() -> None:
    """Entry point for the CLI application."""
    app()
