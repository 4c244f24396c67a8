"""Command-line interface for Tandem."""

import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .config import TandemConfig, create_sample_config, load_config
from .coordination.markers import Marker
from .coordination.store import CoordinationStore
from .core.daemon import TandemDaemon
from .error_handling import (
    ConfigurationError,
    CoordinationError,
    TandemError,
    check_stage_runners,
    graceful_exit,
    handle_error,
)
from .process_lock import ProcessLock
from .services.ntfy import NotificationService

console = Console()

WORK_DIR = click.argument(
    "work_dir",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
)


def setup_logging(
    *,
    verbose: bool = False,
    config: TandemConfig | None = None,
) -> None:
    """Set up logging configuration."""
    level = logging.DEBUG if verbose else logging.INFO

    # Clean up existing handlers first to prevent resource leaks
    cleanup_logging()

    # Configure RichHandler to show path only at DEBUG level
    show_path = level == logging.DEBUG
    handlers: list[logging.Handler] = [
        RichHandler(console=console, rich_tracebacks=True, show_path=show_path),
    ]

    if config and config.log_dir:
        config.ensure_directories()
        log_file = config.log_dir / "tandem.log"
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            ),
        )
        handlers.append(file_handler)

    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=handlers,
        force=True,  # Force reconfiguration of root logger
    )


def cleanup_logging() -> None:
    """Clean up logging handlers to prevent ResourceWarnings."""
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        if isinstance(handler, logging.FileHandler):
            handler.close()
            root_logger.removeHandler(handler)


def _store(config: TandemConfig, work_dir: Path) -> CoordinationStore:
    return CoordinationStore(config.coordination_dir(work_dir.resolve()))


@click.group()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, path_type=Path),
    help="Configuration file path",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.pass_context
def cli(ctx: click.Context, config: Path | None, verbose: bool) -> None:
    """Tandem - file-triggered development and review workflow orchestrator."""
    try:
        ctx.ensure_object(dict)
        loaded_config = load_config(config)
        ctx.obj["config"] = loaded_config
        ctx.obj["verbose"] = verbose

        setup_logging(verbose=verbose, config=loaded_config)
    except (OSError, ValueError, RuntimeError) as e:
        config_error = ConfigurationError(
            f"Failed to load configuration: {e}",
            config_path=config,
        )
        console.print(f"[red]Configuration Error:[/red] {config_error}")
        sys.exit(1)


@cli.command()
@WORK_DIR
@click.option("--demo", is_flag=True, help="Touch the three markers to run one full cycle")
@click.option("--detach", is_flag=True, help="Run as a background daemon")
@click.pass_context
def start(ctx: click.Context, work_dir: Path, demo: bool, detach: bool) -> None:
    """Watch WORK_DIR and run the dev and review stages on trigger."""
    config: TandemConfig = ctx.obj["config"]
    work_dir = work_dir.resolve()

    for problem in check_stage_runners(config, work_dir):
        console.print(f"[yellow]⚠ {problem.message}[/yellow]")

    daemon = TandemDaemon(config, work_dir)
    try:
        exit_code = daemon.start_detached(demo=demo) if detach else daemon.run(demo=demo)
    except TandemError as e:
        handle_error(e)
        notification_service = NotificationService(config)
        notification_service.notify_error(e.message, context=str(work_dir))
        notification_service.close()
        graceful_exit(1)
    except OSError as e:
        # Log file or daemon context setup outside the Tandem error types
        handle_error(e)
        graceful_exit(1)

    graceful_exit(exit_code)


@cli.command()
@WORK_DIR
@click.argument(
    "marker",
    type=click.Choice([marker.short_name for marker in Marker]),
)
@click.pass_context
def trigger(ctx: click.Context, work_dir: Path, marker: str) -> None:
    """Write MARKER in WORK_DIR's coordination directory."""
    config: TandemConfig = ctx.obj["config"]
    store = _store(config, work_dir)

    if not store.directory.is_dir():
        console.print(f"[red]No coordination directory at {store.directory}[/red]")
        console.print("Start the orchestrator first with 'tandem start'")
        sys.exit(1)

    try:
        path = store.touch(Marker.from_short_name(marker))
    except CoordinationError as e:
        e.display_to_user()
        sys.exit(1)

    console.print(f"[green]Triggered {path.name}[/green]")


@cli.command()
@WORK_DIR
@click.pass_context
def status(ctx: click.Context, work_dir: Path) -> None:
    """Show orchestrator and marker status for WORK_DIR."""
    config: TandemConfig = ctx.obj["config"]
    store = _store(config, work_dir)

    console.print("[bold]Orchestrator[/bold]")
    owner = ProcessLock(store.directory).read_owner()
    if owner:
        console.print(f"🟢 Running (PID {owner})")
    else:
        console.print("🔴 [red]Not running[/red]")

    for problem in check_stage_runners(config, work_dir.resolve()):
        console.print(f"[yellow]⚠ {problem.message}[/yellow]")

    console.print("\n[bold]Markers[/bold]")
    table = Table()
    table.add_column("Marker")
    table.add_column("Last written")
    table.add_column("Content")

    for marker, info in store.snapshot().items():
        if not info["exists"]:
            table.add_row(marker.short_name, "[dim]missing[/dim]", "")
            continue
        table.add_row(
            marker.short_name,
            info["modified"].strftime("%Y-%m-%d %H:%M:%S"),
            info["content"] or "[dim]empty[/dim]",
        )

    console.print(table)


@cli.command()
@WORK_DIR
@click.pass_context
def stop(ctx: click.Context, work_dir: Path) -> None:
    """Stop the orchestrator watching WORK_DIR."""
    config: TandemConfig = ctx.obj["config"]
    store = _store(config, work_dir)

    pid = ProcessLock(store.directory).read_owner()
    if not pid:
        console.print("[yellow]Tandem is not running[/yellow]")
        return

    console.print(f"[blue]Stopping Tandem (PID {pid})...[/blue]")
    if ProcessLock.stop_process(pid):
        console.print("[green]Tandem stopped[/green]")
    else:
        console.print(f"[red]Failed to stop Tandem process {pid}[/red]")
        sys.exit(1)


@cli.group("config")
@click.pass_context
def config_cmd(ctx: click.Context) -> None:
    """Configuration management commands."""


@config_cmd.command("show")
@click.pass_context
def config_show(ctx: click.Context) -> None:
    """Show current configuration."""
    config: TandemConfig = ctx.obj["config"]

    table = Table()
    table.add_column("Setting")
    table.add_column("Value")

    table.add_row("Coordination Directory", config.coordination_dir_name)
    table.add_row("Dev Runner", config.dev_runner)
    table.add_row("Review Runner", config.review_runner)
    table.add_row("Log Directory", str(config.log_dir) if config.log_dir else "Not configured")
    table.add_row("Ntfy Topic", config.ntfy_topic or "Not configured")
    table.add_row(
        "Demo Delays",
        f"{config.demo_initial_delay:g}s, then {config.demo_step_delay:g}s",
    )

    console.print(table)


@config_cmd.command("init")
@click.option(
    "--path",
    "-p",
    type=click.Path(path_type=Path),
    default=Path.home() / ".config" / "tandem" / "config.toml",
    help="Path for the configuration file",
)
def config_init(path: Path) -> None:
    """Create a sample configuration file."""
    try:
        create_sample_config(path)
        console.print(f"[green]Created sample configuration at {path}[/green]")
    except OSError as e:
        console.print(f"[red]Error creating configuration: {e}[/red]")
        sys.exit(1)


@cli.command("test-notify")
@click.pass_context
def test_notify(ctx: click.Context) -> None:
    """Send a test notification."""
    config: TandemConfig = ctx.obj["config"]
    notification_service = NotificationService(config)

    try:
        if notification_service.test_notifications():
            console.print("[green]Test notification sent successfully[/green]")
        else:
            console.print("[red]Failed to send test notification[/red]")
    finally:
        notification_service.close()


def main() -> None:
    """Entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
