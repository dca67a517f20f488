"""LogiSync CLI: batch order import and tracking reconciliation.

Usage:
    logisync import orders.xlsx          Import a sheet and sync tracking
    logisync import orders.csv --no-sync Import without waiting for sync
    logisync resync                      Re-sync every undelivered order
    logisync serve                       Start the API server
    logisync config show                 Show resolved configuration
"""

import asyncio
import logging
import os
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from src.cli.config import LogiSyncConfig, load_config
from src.cli.output import format_import_result, format_resync_result
from src.services.row_source import FIRST_DATA_ROW, RowSourceError, read_rows

app = typer.Typer(
    name="logisync",
    help="Batch order import and tracking reconciliation",
    no_args_is_help=True,
)
config_app = typer.Typer(help="Configuration management")
app.add_typer(config_app, name="config")

console = Console()

# --- Global state ---
_config_path: str | None = None


@app.callback()
def main(
    config: Optional[str] = typer.Option(
        None, "--config", help="Path to logisync.yaml config file"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """LogiSync CLI: batch order import and tracking reconciliation."""
    global _config_path
    _config_path = config
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s:%(name)s:%(message)s",
    )


def _load(config: str | None) -> LogiSyncConfig:
    path = config or _config_path
    try:
        return load_config(config_path=path)
    except FileNotFoundError as e:
        console.print(f"[red]Config file not found:[/red] {e}")
        raise typer.Exit(1)
    except (ValueError, TypeError) as e:
        console.print(f"[red]Config validation failed:[/red] {e}")
        raise typer.Exit(1)


# --- Version ---


@app.command()
def version():
    """Show LogiSync version."""
    from importlib.metadata import version as pkg_version

    try:
        v = pkg_version("logisync")
    except Exception:
        v = "unknown"
    console.print(f"[bold]LogiSync[/bold] v{v}")


# --- Import ---


@app.command("import")
def import_file(
    file: Path = typer.Argument(help="Path to CSV or Excel (.xlsx) file"),
    no_sync: bool = typer.Option(
        False, "--no-sync", help="Store orders without tracking reconciliation"
    ),
    config: Optional[str] = typer.Option(None, "--config", help="Config file path"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Import a sheet of orders and reconcile them with the tracking provider."""
    from src.db.connection import SessionLocal, configure_database, init_db
    from src.orchestrator.batch import RunInProgressError
    from src.services.engine_provider import build_engine
    from src.services.row_validator import RowValidator

    if not file.exists():
        console.print(f"[red]File not found: {file}[/red]")
        raise typer.Exit(1)

    cfg = _load(config)
    if cfg.database.url:
        configure_database(cfg.database.url)
    init_db()

    try:
        rows = read_rows(
            file, require_department=cfg.importer.default_department is None
        )
    except RowSourceError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    engine = build_engine(cfg, session_factory=SessionLocal)
    validator = RowValidator(
        start_row=FIRST_DATA_ROW,
        default_department=cfg.importer.default_department,
    )

    async def _run():
        try:
            if no_sync:
                return await engine.coordinator.import_batch(
                    rows, validator=validator, sync=False
                )
            return await engine.coordinator.import_batch(
                rows, wait_for_sync=True, validator=validator
            )
        finally:
            await engine.aclose()

    try:
        result = asyncio.run(_run())
    except RunInProgressError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    console.print(format_import_result(result, as_json=json_output))
    if not result.success:
        raise typer.Exit(1)


# --- Resync ---


@app.command()
def resync(
    config: Optional[str] = typer.Option(None, "--config", help="Config file path"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Re-sync tracking for every stored order not yet delivered or returned.

    Archived orders are skipped. Run it from cron for a daily refresh.
    """
    from src.db.connection import SessionLocal, configure_database, init_db
    from src.orchestrator.batch import RunInProgressError
    from src.services.engine_provider import build_engine

    cfg = _load(config)
    if cfg.database.url:
        configure_database(cfg.database.url)
    init_db()

    engine = build_engine(cfg, session_factory=SessionLocal)

    async def _run():
        try:
            return await engine.coordinator.resync(wait_for_sync=True)
        finally:
            await engine.aclose()

    try:
        handle = asyncio.run(_run())
    except RunInProgressError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    console.print(format_resync_result(handle, as_json=json_output))
    report = handle.report
    if report is not None and report.failed and not report.succeeded:
        raise typer.Exit(1)


# --- Server ---


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address"),
    port: Optional[int] = typer.Option(None, "--port", help="Bind port"),
    config: Optional[str] = typer.Option(None, "--config", help="Config file path"),
):
    """Start the LogiSync API server."""
    import uvicorn

    path = config or _config_path
    cfg = _load(path)
    final_host = host or cfg.server.host
    final_port = port or cfg.server.port

    # Propagate config path to API startup so the engine loads the same config
    if path:
        os.environ["LOGISYNC_CONFIG_PATH"] = str(Path(path).resolve())

    console.print(f"[bold]Starting LogiSync API on {final_host}:{final_port}[/bold]")
    uvicorn.run(
        "src.api.main:app",
        host=final_host,
        port=final_port,
        log_level=cfg.server.log_level,
    )


# --- Config commands ---


@config_app.command("show")
def config_show(
    config: Optional[str] = typer.Option(None, "--config", help="Config file path"),
):
    """Display resolved configuration (provider ids masked)."""
    cfg = _load(config)

    console.print("[bold]Server:[/bold]")
    console.print(f"  host: {cfg.server.host}")
    console.print(f"  port: {cfg.server.port}")
    console.print(f"  log_level: {cfg.server.log_level}")

    console.print("\n[bold]Database:[/bold]")
    console.print(f"  url: {cfg.database.url or '(DATABASE_URL or local SQLite)'}")

    t = cfg.tracking
    console.print("\n[bold]Tracking:[/bold]")
    console.print(f"  base_url: {t.base_url}")
    console.print(f"  appid: {'***' + t.appid[-2:] if len(t.appid) > 2 else '***'}")
    console.print(f"  outerid: {'***' + t.outerid[-4:] if len(t.outerid) > 4 else '***'}")
    console.print(f"  call_timeout: {t.call_timeout}s")
    console.print(f"  max_retries: {t.max_retries}")
    console.print(f"  max_concurrency: {t.max_concurrency}")

    console.print("\n[bold]Importer:[/bold]")
    console.print(f"  default_department: {cfg.importer.default_department or '-'}")
    console.print(f"  store_timeout: {cfg.importer.store_timeout}s")


@config_app.command("validate")
def config_validate(
    config: Optional[str] = typer.Option(None, "--config", help="Config file path"),
):
    """Validate a config file without importing anything."""
    cfg = _load(config)
    console.print("[green]Config is valid.[/green]")
    console.print(f"  Concurrency: {cfg.tracking.max_concurrency}")
    console.print(f"  Retries: {cfg.tracking.max_retries}")


if __name__ == "__main__":
    app()
