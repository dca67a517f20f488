"""Import coordination: validation, storage and reconciliation hand-off.

The ImportCoordinator is the caller-facing entry point of an import.
A batch is all-or-nothing at the import boundary: any row error, or an
empty batch, rejects it before the store is touched, and a store
failure rejects it as a whole. Only a stored batch is handed to the
reconciler.

Example:
    coordinator = ImportCoordinator(store, reconciler, tracker)
    result = await coordinator.import_batch(rows)
    print(result.message)
"""

import asyncio
import logging
import time
from collections.abc import Sequence
from typing import Any

from src.errors import NotFoundError, format_message
from src.orchestrator.batch.models import ImportResult, RunHandle
from src.orchestrator.batch.progress import ProgressState, ProgressTracker
from src.orchestrator.batch.reconciler import Reconciler
from src.services.operation_log_service import OperationLogService
from src.services.order_records import OrderRecord, RowValidationError
from src.services.order_store import OrderStore, StoreResult
from src.services.row_validator import RowValidator

logger = logging.getLogger(__name__)

DEFAULT_STORE_TIMEOUT = 30.0

# Finished runs kept for GET /runs/{run_id}
MAX_TRACKED_RUNS = 100


def format_validation_failure(errors: Sequence[RowValidationError]) -> str:
    """Build the failure message listing one '{row}行: {message}' per error."""
    lines = [e.format_line() for e in errors]
    return f"导入失败，发现 {len(errors)} 个错误:\n" + "\n".join(lines)


class ImportCoordinator:
    """Runs imports end to end.

    Attributes:
        _store: Order store the batch is submitted to.
        _reconciler: Reconciler the stored records are handed to.
        _tracker: Progress tracker for the run.
        _operation_log: Sink for the IMPORT entry (optional).
        _validator: Row validator.
        _store_timeout: Seconds the store has to commit (None: no deadline).
        _runs: Known runs by id.
    """

    def __init__(
        self,
        store: OrderStore,
        reconciler: Reconciler,
        tracker: ProgressTracker,
        operation_log: OperationLogService | None = None,
        validator: RowValidator | None = None,
        store_timeout: float | None = DEFAULT_STORE_TIMEOUT,
    ) -> None:
        self._store = store
        self._reconciler = reconciler
        self._tracker = tracker
        self._operation_log = operation_log
        self._validator = validator or RowValidator()
        self._store_timeout = store_timeout
        self._runs: dict[str, RunHandle] = {}

    @property
    def tracker(self) -> ProgressTracker:
        return self._tracker

    async def import_batch(
        self,
        rows: Sequence[Any],
        wait_for_sync: bool = True,
        username: str | None = None,
        validator: RowValidator | None = None,
        sync: bool = True,
    ) -> ImportResult:
        """Validate, store and reconcile a batch of raw rows.

        Args:
            rows: Raw rows, each a mapping of column header to cell value.
            wait_for_sync: Await reconciliation and include its report. When
                False, reconciliation runs as a background task and the caller
                follows it through the progress tracker.
            username: Operator recorded in the operation log.
            validator: Validator for this batch (default: the configured one).
            sync: Hand the stored batch to the reconciler. When False the run
                finishes as done right after storage.

        Returns:
            ImportResult. ``success`` is False for any rejected batch.

        Raises:
            RunInProgressError: If another run is still active.
        """
        run_id = await self._tracker.begin_run(message="正在导入")
        handle = RunHandle(run_id=run_id)
        self._remember(handle)

        try:
            records, errors = (validator or self._validator).validate(rows)
            if errors:
                return await self._reject(run_id, format_validation_failure(errors))
            if not records:
                return await self._reject(run_id, format_message("E-1002"))

            store_result = await self._submit(records)
            if not store_result.success:
                logger.error("Order store rejected batch: %s", store_result.message)
                return await self._reject(run_id, store_result.message)

            await self._log_import(records, username)
            await self._tracker.transition(run_id, ProgressState.saving)
        except Exception as e:
            logger.exception("Unexpected error importing batch (run %s)", run_id)
            return await self._reject(
                run_id, format_message("E-1006", details=str(e) or type(e).__name__)
            )

        message = f"成功导入 {len(records)} 个订单"
        logger.info("Imported %d orders (run %s)", len(records), run_id)

        if not sync:
            await self._tracker.transition(run_id, ProgressState.done, message)
            return ImportResult(
                success=True,
                message=message,
                records_imported=list(records),
                run_id=run_id,
            )

        if not wait_for_sync:
            handle.total = len(records)
            handle.task = asyncio.create_task(self._reconcile_in_background(records, handle))
            return ImportResult(
                success=True,
                message=message,
                records_imported=list(records),
                run_id=run_id,
            )

        report = await self._reconciler.reconcile(records, run=handle)
        return ImportResult(
            success=True,
            message=f"{message}\n物流同步: {report.summary(include_failures=True)}",
            records_imported=list(records),
            run_id=run_id,
            sync_report=report,
        )

    async def resync(self, wait_for_sync: bool = True) -> RunHandle:
        """Reconcile every stored order whose status is not final again.

        Archived, delivered and returned orders are skipped. The run is
        reported through the progress tracker like an import's
        reconciliation.

        Args:
            wait_for_sync: Await reconciliation. When False it runs as a
                background task and the returned handle has no report yet.

        Returns:
            Handle of the run; ``report`` is set once reconciliation ends.

        Raises:
            RunInProgressError: If another run is still active.
        """
        run_id = await self._tracker.begin_run(message="正在重新同步")
        handle = RunHandle(run_id=run_id)
        self._remember(handle)

        try:
            records = await asyncio.to_thread(self._store.list_unsettled_records)
        except Exception as e:
            logger.exception("Could not load orders to re-sync (run %s)", run_id)
            await self._tracker.fail(
                run_id, format_message("E-4001", details=str(e) or type(e).__name__)
            )
            raise

        handle.total = len(records)
        logger.info("Re-syncing %d unsettled orders (run %s)", len(records), run_id)

        if wait_for_sync:
            await self._reconciler.reconcile(records, run=handle)
        else:
            handle.task = asyncio.create_task(self._reconcile_in_background(records, handle))
        return handle

    def get_run(self, run_id: str) -> RunHandle:
        """Look up a run.

        Raises:
            NotFoundError: If the run is unknown.
        """
        handle = self._runs.get(run_id)
        if handle is None:
            raise NotFoundError("Run", run_id)
        return handle

    def cancel_run(self, run_id: str) -> RunHandle:
        """Request cancellation of a run.

        Raises:
            NotFoundError: If the run is unknown.
        """
        handle = self.get_run(run_id)
        handle.cancel()
        logger.info("Cancellation requested for run %s", run_id)
        return handle

    async def _submit(self, records: list[OrderRecord]) -> StoreResult:
        """Submit to the store in a worker thread.

        The store enforces store_timeout itself and rolls back when it
        passes, so the result always reflects what was committed.
        """
        deadline = None
        if self._store_timeout is not None:
            deadline = time.monotonic() + self._store_timeout
        try:
            return await asyncio.to_thread(
                self._store.submit_batch, records, deadline=deadline
            )
        except Exception as e:
            return StoreResult(
                success=False,
                message=format_message("E-4002", details=str(e) or type(e).__name__),
            )

    async def _log_import(self, records: list[OrderRecord], username: str | None) -> None:
        if self._operation_log is None:
            return
        try:
            await asyncio.to_thread(
                self._operation_log.log_import,
                [r.order_number for r in records],
                username,
            )
        except Exception as e:
            logger.warning("Failed to write IMPORT operation log: %s", e)

    async def _reject(self, run_id: str, message: str) -> ImportResult:
        await self._tracker.fail(run_id, message)
        return ImportResult(success=False, message=message, run_id=run_id)

    async def _reconcile_in_background(
        self, records: list[OrderRecord], handle: RunHandle
    ) -> None:
        try:
            await self._reconciler.reconcile(records, run=handle)
        except Exception:
            logger.exception("Background reconciliation failed (run %s)", handle.run_id)

    def _remember(self, handle: RunHandle) -> None:
        self._runs[handle.run_id] = handle
        if len(self._runs) <= MAX_TRACKED_RUNS:
            return
        for run_id, known in list(self._runs.items()):
            if len(self._runs) <= MAX_TRACKED_RUNS:
                break
            if known.finished or known.task is None:
                if run_id != handle.run_id:
                    del self._runs[run_id]
