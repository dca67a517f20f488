"""CLI output formatters for Rich tables and JSON.

Provides human-readable Rich output (default) and machine-parseable
JSON output (--json flag) for import results and sync reports.
"""

import json

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from src.orchestrator.batch.models import ImportResult, RunHandle, SyncReport

console = Console()

# Outcome color map
OUTCOME_COLORS = {
    "ok": "green",
    "failed": "red",
}


def import_result_to_dict(result: ImportResult) -> dict:
    """Serialize an ImportResult for --json output."""
    return {
        "success": result.success,
        "message": result.message,
        "records_imported": len(result.records_imported),
        "order_numbers": [r.order_number for r in result.records_imported],
        "run_id": result.run_id,
        "sync_report": result.sync_report.to_dict() if result.sync_report else None,
    }


def format_sync_report(report: SyncReport) -> str:
    """Format a sync report as a Rich table, one row per order.

    Args:
        report: Report of a finished reconciliation run.

    Returns:
        Rendered table.
    """
    if not report.outcomes:
        return "No orders reconciled."

    title = "Tracking Sync (cancelled)" if report.cancelled else "Tracking Sync"
    table = Table(title=title, show_lines=False)
    table.add_column("#", justify="right", style="dim")
    table.add_column("Order", style="cyan", no_wrap=True)
    table.add_column("Result")
    table.add_column("Code", style="dim")
    table.add_column("Error")

    for index, outcome in enumerate(report.outcomes, start=1):
        key = "ok" if outcome.succeeded else "failed"
        color = OUTCOME_COLORS[key]
        table.add_row(
            str(index),
            outcome.order_number,
            f"[{color}]{key}[/{color}]",
            outcome.error_code or "-",
            outcome.error_message or "",
        )

    with console.capture() as capture:
        console.print(table)
    return capture.get()


def format_import_result(result: ImportResult, as_json: bool = False) -> str:
    """Format an import result as a Rich panel (plus report table) or JSON.

    Args:
        result: Import result to display.
        as_json: If True, return JSON string instead of Rich output.

    Returns:
        Formatted string output.
    """
    if as_json:
        return json.dumps(import_result_to_dict(result), indent=2, ensure_ascii=False)

    border = "green" if result.success else "red"
    lines = [result.message]
    if result.run_id:
        lines.append("")
        lines.append(f"[bold]Run:[/bold] {result.run_id}")

    with console.capture() as capture:
        console.print(Panel("\n".join(lines), title="Import", border_style=border))
    output = capture.get()

    if result.sync_report is not None:
        output += format_sync_report(result.sync_report)
    return output


def format_resync_result(handle: RunHandle, as_json: bool = False) -> str:
    """Format a finished re-sync run as a summary line plus report table."""
    report = handle.report or SyncReport()
    if as_json:
        return json.dumps(
            {"run_id": handle.run_id, "total": handle.total, "sync_report": report.to_dict()},
            indent=2,
            ensure_ascii=False,
        )

    if handle.total == 0:
        return "No unsettled orders to re-sync."
    output = f"Re-synced {handle.total} orders: {report.summary()}\n"
    return output + format_sync_report(report)
