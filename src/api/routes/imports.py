"""FastAPI routes for order imports and reconciliation runs.

Imports accept raw rows as JSON or an uploaded CSV/XLSX file. By
default an import returns once the batch is stored and reconciliation
continues in the background; clients follow it through the progress
endpoints or GET /runs/{run_id}. POST /runs/resync reconciles stored
orders that have not reached a final status again.
"""

import logging

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile

from src.api.schemas import (
    ImportedOrderResponse,
    ImportRequest,
    ImportResponse,
    ResyncRequest,
    RunResponse,
    SyncReportResponse,
)
from src.errors import NotFoundError
from src.orchestrator.batch.models import ImportResult, RunHandle
from src.orchestrator.batch.progress import RunInProgressError
from src.services.engine_provider import ImportEngine, get_engine
from src.services.row_source import RowSourceError, read_upload
from src.services.row_validator import RowValidator

logger = logging.getLogger(__name__)

router = APIRouter(tags=["imports"])


def _to_response(result: ImportResult) -> ImportResponse:
    return ImportResponse(
        success=result.success,
        message=result.message,
        records_imported=len(result.records_imported),
        orders=[
            ImportedOrderResponse(
                order_number=r.order_number,
                customer_name=r.customer_name,
                department_key=r.department_key,
                status=r.status.value,
                tracking_number=r.details.tracking_number,
                carrier=r.details.carrier,
            )
            for r in result.records_imported
        ],
        run_id=result.run_id,
        sync_report=(
            SyncReportResponse(**result.sync_report.to_dict())
            if result.sync_report is not None
            else None
        ),
    )


def _run_response(handle: RunHandle) -> RunResponse:
    return RunResponse(
        run_id=handle.run_id,
        total=handle.total,
        cancel_requested=handle.cancelled,
        finished=handle.finished,
        report=(
            SyncReportResponse(**handle.report.to_dict())
            if handle.report is not None
            else None
        ),
    )


@router.post("/imports", response_model=ImportResponse)
async def import_rows(
    payload: ImportRequest,
    engine: ImportEngine = Depends(get_engine),
) -> ImportResponse:
    """Validate, store and reconcile rows submitted as JSON.

    Rows use canonical keys or template headers. ``start_row`` defaults
    to 1 for JSON rows (no header row).

    Raises:
        HTTPException: 409 if another run is active.
    """
    importer = engine.config.importer
    validator = RowValidator(
        start_row=payload.start_row if payload.start_row is not None else 1,
        default_department=importer.default_department,
    )
    try:
        result = await engine.coordinator.import_batch(
            payload.rows,
            wait_for_sync=payload.wait_for_sync,
            username=payload.username,
            validator=validator,
        )
    except RunInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _to_response(result)


@router.post("/imports/upload", response_model=ImportResponse)
async def import_file(
    file: UploadFile = File(...),
    wait_for_sync: bool = Form(False),
    engine: ImportEngine = Depends(get_engine),
) -> ImportResponse:
    """Import an uploaded .csv or .xlsx file.

    Raises:
        HTTPException: 400 if the file cannot be read, 409 if another run
            is active.
    """
    content = await file.read()
    try:
        rows = read_upload(
            file.filename or "",
            content,
            require_department=engine.config.importer.default_department is None,
        )
    except RowSourceError as e:
        raise HTTPException(status_code=400, detail=str(e))

    try:
        result = await engine.coordinator.import_batch(rows, wait_for_sync=wait_for_sync)
    except RunInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e))
    logger.info("Upload %s: %s", file.filename, "accepted" if result.success else "rejected")
    return _to_response(result)


@router.get("/runs/{run_id}", response_model=RunResponse)
def get_run(
    run_id: str,
    engine: ImportEngine = Depends(get_engine),
) -> RunResponse:
    """Get the status and report of a run.

    Raises:
        HTTPException: 404 if the run is unknown.
    """
    try:
        handle = engine.coordinator.get_run(run_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return _run_response(handle)


@router.post("/runs/{run_id}/cancel", response_model=RunResponse)
def cancel_run(
    run_id: str,
    engine: ImportEngine = Depends(get_engine),
) -> RunResponse:
    """Request cancellation of a run. Calls already issued still complete.

    Raises:
        HTTPException: 404 if the run is unknown.
    """
    try:
        handle = engine.coordinator.cancel_run(run_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return _run_response(handle)


@router.post("/runs/resync", response_model=RunResponse)
async def resync_orders(
    payload: ResyncRequest | None = None,
    engine: ImportEngine = Depends(get_engine),
) -> RunResponse:
    """Re-sync every stored order that is not delivered, returned or archived.

    Raises:
        HTTPException: 409 if another run is active.
    """
    wait_for_sync = payload.wait_for_sync if payload is not None else False
    try:
        handle = await engine.coordinator.resync(wait_for_sync=wait_for_sync)
    except RunInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _run_response(handle)
