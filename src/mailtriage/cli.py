"""Command-line interface for the mail triage service.

Provides commands for configuration validation, triage and the server.

Usage:
    python -m mailtriage validate-config
    python -m mailtriage triage --once
    python -m mailtriage triage
    python -m mailtriage serve
"""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import TYPE_CHECKING

import click
from rich.console import Console
from rich.table import Table

from mailtriage.config import validate_config_file
from mailtriage.core.logging import configure_logging

if TYPE_CHECKING:
    from mailtriage.engine.triage import TriageCycleResult, TriageEngine

console = Console()


def _build_engine() -> TriageEngine:
    """Load config and wire gateway, classifier, store and engine.

    Prints actionable error messages and calls sys.exit(1) on failure.
    """
    import anthropic

    from mailtriage.classifier.intent import IntentClassifier
    from mailtriage.config import get_config
    from mailtriage.core.errors import ConfigLoadError, ConfigValidationError, MailboxError
    from mailtriage.engine.state import ThreadStateStore
    from mailtriage.engine.triage import TriageEngine
    from mailtriage.mailbox.gmail import create_gmail_gateway

    try:
        config = get_config()
    except (ConfigLoadError, ConfigValidationError) as e:
        console.print(
            f"[red]Config error:[/red] {e}\n\n"
            "Create config/config.yaml with at least a [cyan]mailbox.address[/cyan].\n"
            "See config/config.yaml.example."
        )
        sys.exit(1)

    try:
        gateway = create_gmail_gateway(config)
    except (ConfigLoadError, MailboxError) as e:
        console.print(f"[red]Mailbox error:[/red] {e}")
        sys.exit(1)

    try:
        anthropic_client = anthropic.AsyncAnthropic(max_retries=3)
    except anthropic.AnthropicError as e:
        console.print(
            f"[red]Classifier error:[/red] {e}\n\n"
            "Check your ANTHROPIC_API_KEY environment variable."
        )
        sys.exit(1)

    return TriageEngine(
        gateway=gateway,
        classifier=IntentClassifier(anthropic_client, config),
        store=ThreadStateStore(),
        config=config,
    )


# Counters shown by `triage --once`, in pipeline order
_SUMMARY_ROWS = (
    ("Listed", "listed"),
    ("Fetched", "fetched"),
    ("Fetch failed", "fetch_failed"),
    ("Not admitted", "ignored"),
    ("Skipped (no prefix)", "skipped"),
    ("Already in flight", "in_flight"),
    ("Clarifications sent", "clarifications"),
    ("Instructions accepted", "instructions"),
    ("Failed", "failed"),
)


def _print_summary(result: TriageCycleResult) -> None:
    table = Table(title=f"Triage cycle {result.cycle_id[:8]} ({result.duration_ms}ms)")
    table.add_column("Outcome")
    table.add_column("Emails", justify="right")
    for label, field_name in _SUMMARY_ROWS:
        table.add_row(label, str(getattr(result, field_name)))

    console.print(table)
    if result.aborted:
        console.print("[red]Cycle aborted: listing unread mail failed (see log)[/red]")


@click.group()
@click.option("--debug/--no-debug", default=False, help="Enable debug logging")
def cli(debug: bool) -> None:
    """Mail Triage - LLM triage of analysis requests sent by email."""
    configure_logging(log_level="DEBUG" if debug else "INFO", json_output=False)


@cli.command("validate-config")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(path_type=Path),
    default=None,
    help="Config file to check (default: $MAILTRIAGE_CONFIG_PATH or config/config.yaml)",
)
def validate_config(config_path: Path | None) -> None:
    """Check a config file against the schema and summarize it."""
    is_valid, message = validate_config_file(config_path)
    marker = "[green]✓[/green]" if is_valid else "[red]✗[/red]"
    console.print(f"{marker} {message}")
    sys.exit(0 if is_valid else 1)


@cli.command("serve")
@click.option(
    "--host",
    default=None,
    help="Host to bind to (default: server.host from config, else 127.0.0.1)",
)
@click.option(
    "--port",
    default=None,
    type=int,
    help="Port to bind to (default: server.port from config, else 5000)",
)
def serve(host: str | None, port: int | None) -> None:
    """Start the poll scheduler and the HTTP liveness server."""
    import uvicorn

    from mailtriage.config import get_config
    from mailtriage.config_schema import ServerConfig
    from mailtriage.core.errors import ConfigLoadError, ConfigValidationError
    from mailtriage.web.app import create_app

    try:
        server = get_config().server
    except (ConfigLoadError, ConfigValidationError) as e:
        console.print(f"[yellow]Warning:[/yellow] {e}\nUsing default server settings.")
        server = ServerConfig()

    host = host or server.host
    port = port or server.port

    configure_logging(log_level="INFO", json_output=True)

    app = create_app()
    console.print(f"Starting server on [cyan]http://{host}:{port}[/cyan]")
    uvicorn.run(app, host=host, port=port, log_level="info")


@cli.command("triage")
@click.option(
    "--once",
    is_flag=True,
    help="Run a single triage cycle and exit",
)
def triage(once: bool) -> None:
    """Run the triage engine.

    Without --once, polls on the configured interval until interrupted.
    Thread state lives in memory, so it only carries over between cycles
    of the same run.
    """
    runner = _run_triage_once if once else _run_triage_continuous
    try:
        asyncio.run(runner())
    except KeyboardInterrupt:
        console.print("\n[yellow]Stopped.[/yellow]")
        sys.exit(130 if once else 0)
    except SystemExit:
        raise
    except Exception as e:
        console.print(f"\n[red]Error:[/red] {e}")
        sys.exit(1)


async def _run_triage_once() -> None:
    """Run a single triage cycle and print results."""
    engine = _build_engine()
    result = await engine.run_cycle()
    _print_summary(result)


async def _run_triage_continuous() -> None:
    """Run the poll scheduler until SIGINT/SIGTERM."""
    import signal

    from mailtriage.config import get_config
    from mailtriage.engine.scheduler import PollScheduler

    engine = _build_engine()
    config = get_config()

    scheduler = PollScheduler(
        engine,
        interval_seconds=config.triage.interval_seconds,
        max_instances=config.triage.max_overlapping_cycles,
    )
    scheduler.start()

    console.print(
        f"Triage engine polling {config.mailbox.address} every "
        f"{config.triage.interval_seconds} seconds. Press Ctrl+C to stop."
    )

    # Wait until interrupted
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    loop.add_signal_handler(signal.SIGINT, stop_event.set)
    loop.add_signal_handler(signal.SIGTERM, stop_event.set)
    await stop_event.wait()

    scheduler.shutdown()


def main() -> None:
    """Entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
