"""Data models for import and reconciliation runs.

Defines dataclasses for per-order sync outcomes, the batch-level sync
report, the import result returned to callers, and the run handle used
to follow and cancel a run.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Optional

from src.services.order_records import OrderRecord


@dataclass(frozen=True)
class SyncOutcome:
    """Result of one order's reconciliation attempt."""

    order_number: str
    """Order the attempt was made for."""

    succeeded: bool
    """Whether the query-and-sync call returned without error."""

    error_message: Optional[str] = None
    """Captured failure message, None on success."""

    error_code: Optional[str] = None
    """Error code from the registry, None on success."""


@dataclass(frozen=True)
class SyncReport:
    """Ordered per-order outcomes of a reconciliation run.

    Outcomes are in input order. When the run was cancelled, orders that
    were never attempted have no outcome.
    """

    outcomes: tuple[SyncOutcome, ...] = ()
    """One outcome per attempted order, in input order."""

    cancelled: bool = False
    """Whether the run stopped early on cancellation."""

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.succeeded)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if not o.succeeded)

    @property
    def failures(self) -> list[SyncOutcome]:
        return [o for o in self.outcomes if not o.succeeded]

    def __len__(self) -> int:
        return len(self.outcomes)

    def summary(self, include_failures: bool = False) -> str:
        """Human-readable summary, e.g. '3 succeeded, 1 failed'.

        Args:
            include_failures: Append one 'order: message' line per failure.
        """
        text = f"{self.succeeded} succeeded, {self.failed} failed"
        if self.cancelled:
            text += " (cancelled)"
        if include_failures and self.failures:
            lines = [f"{o.order_number}: {o.error_message}" for o in self.failures]
            text += "\n" + "\n".join(lines)
        return text

    def to_dict(self) -> dict[str, Any]:
        return {
            "succeeded": self.succeeded,
            "failed": self.failed,
            "cancelled": self.cancelled,
            "summary": self.summary(),
            "outcomes": [
                {
                    "order_number": o.order_number,
                    "succeeded": o.succeeded,
                    "error_message": o.error_message,
                    "error_code": o.error_code,
                }
                for o in self.outcomes
            ],
        }


@dataclass
class ImportResult:
    """Result of an import request."""

    success: bool
    """Whether the batch was validated and stored."""

    message: str
    """Localized, possibly multi-line message for direct display."""

    records_imported: list[OrderRecord] = field(default_factory=list)
    """Records written to the store (empty on failure)."""

    run_id: Optional[str] = None
    """Progress run id, for following reconciliation."""

    sync_report: Optional[SyncReport] = None
    """Reconciliation report when the caller waited for it."""


@dataclass
class RunHandle:
    """Handle to an import and reconciliation run.

    Cancellation is cooperative: the reconciler checks the flag before
    every provider call, and calls already issued run to completion.
    """

    run_id: str
    """Progress run id issued by the tracker."""

    total: int = 0
    """Number of orders handed to reconciliation."""

    report: Optional[SyncReport] = None
    """Final report, set when reconciliation finishes."""

    task: Optional[asyncio.Task] = None
    """Background reconciliation task, when not awaited by the caller."""

    _cancelled: bool = False

    def cancel(self) -> None:
        """Request cancellation. No new provider calls are issued after this."""
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def finished(self) -> bool:
        return self.report is not None
