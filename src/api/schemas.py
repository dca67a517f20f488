"""Pydantic schemas for API request/response validation.

This module defines the data contracts for the LogiSync REST API:
imports, progress and reconciliation runs.
"""

from typing import Any

from pydantic import BaseModel, Field


# Import schemas


class ImportRequest(BaseModel):
    """Request schema for importing rows as JSON."""

    rows: list[dict[str, Any]] = Field(..., description="Raw rows, header -> cell value")
    wait_for_sync: bool = False
    start_row: int | None = Field(
        None, ge=0, description="Row number of the first row (default from config)"
    )
    username: str | None = Field(None, max_length=50)


class ImportedOrderResponse(BaseModel):
    """An order accepted by an import."""

    order_number: str
    customer_name: str
    department_key: str
    status: str
    tracking_number: str
    carrier: str


class SyncOutcomeResponse(BaseModel):
    """Per-order reconciliation outcome."""

    order_number: str
    succeeded: bool
    error_message: str | None = None
    error_code: str | None = None


class SyncReportResponse(BaseModel):
    """Batch reconciliation report."""

    succeeded: int
    failed: int
    cancelled: bool
    summary: str
    outcomes: list[SyncOutcomeResponse]


class ImportResponse(BaseModel):
    """Response schema for an import request."""

    success: bool
    message: str
    records_imported: int
    orders: list[ImportedOrderResponse] = []
    run_id: str | None = None
    sync_report: SyncReportResponse | None = None


# Progress schemas


class ProgressResponse(BaseModel):
    """Current progress snapshot."""

    state: str
    progress: int = Field(..., ge=0, le=100)
    run_id: str | None = None
    total: int = 0
    completed: int = 0
    message: str = ""
    updated_at: str = ""


class AcknowledgeRequest(BaseModel):
    """Request schema for acknowledging a finished run."""

    run_id: str | None = None


class ResyncRequest(BaseModel):
    """Request schema for re-syncing stored orders."""

    wait_for_sync: bool = False


class RunResponse(BaseModel):
    """Status of a known run."""

    run_id: str
    total: int
    cancel_requested: bool
    finished: bool
    report: SyncReportResponse | None = None
