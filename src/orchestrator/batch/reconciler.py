"""Reconciliation of imported orders against the tracking provider.

The Reconciler folds over a batch of OrderRecords, issuing one
query-and-sync call per order and converting every failure mode
(provider error, timeout, unexpected exception) into a failed
SyncOutcome. A failing order never stops the remaining orders.

Example:
    reconciler = Reconciler(sync_service, tracker)
    report = await reconciler.reconcile(records)
    print(report.summary())
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

from src.errors import format_message
from src.orchestrator.batch.events import ReconciliationEventEmitter
from src.orchestrator.batch.models import RunHandle, SyncOutcome, SyncReport
from src.orchestrator.batch.progress import ProgressState, ProgressTracker
from src.services.carrier_codes import resolve_carrier_code
from src.services.errors import TrackingServiceError
from src.services.operation_log_service import OperationLogService
from src.services.order_records import OrderRecord, SyncRequest

logger = logging.getLogger(__name__)

SyncCallable = Callable[[SyncRequest], Awaitable[Any]]

# Provider rejects customer names shorter than this
MIN_CUSTOMER_NAME_LENGTH = 2
UNKNOWN_CUSTOMER_NAME = "未知"

DEFAULT_CALL_TIMEOUT = 60.0


def build_sync_request(record: OrderRecord) -> SyncRequest:
    """Build the provider request for one record."""
    customer_name = record.customer_name
    if len(customer_name) < MIN_CUSTOMER_NAME_LENGTH:
        customer_name = UNKNOWN_CUSTOMER_NAME
    return SyncRequest(
        order_number=record.order_number,
        tracking_number=record.details.tracking_number,
        customer_name=customer_name,
        department_key=record.department_key,
        phone=record.details.phone,
        carrier_code=resolve_carrier_code(record.details.carrier),
    )


def translate_error(error: BaseException) -> tuple[str, str]:
    """Translate an exception from a sync call to (error_code, message)."""
    if isinstance(error, TrackingServiceError):
        return error.code, error.message

    error_str = str(error) or type(error).__name__
    lowered = error_str.lower()
    if "rate limit" in lowered or "429" in lowered:
        return "E-3002", format_message("E-3002", details=error_str)
    if "timeout" in lowered or "timed out" in lowered:
        return "E-3004", format_message("E-3004", details=error_str)
    if "connection" in lowered or "503" in lowered or "502" in lowered:
        return "E-3001", format_message("E-3001", details=error_str)
    if "database" in lowered or "sql" in lowered:
        return "E-4001", format_message("E-4001", details=error_str)
    return "E-3005", format_message("E-3005", details=error_str)


class Reconciler:
    """Drives query-and-sync calls for a batch of orders.

    Attributes:
        _sync: Async callable performing one query-and-sync.
        _tracker: Progress tracker the run is reported through.
        _emitter: Event emitter for per-order events.
        _operation_log: Optional sink for the SYNC summary entry.
        _call_timeout: Per-call timeout in seconds (None disables it).
        _max_concurrency: Calls in flight at once (1 = sequential).
    """

    def __init__(
        self,
        sync: SyncCallable,
        tracker: ProgressTracker,
        operation_log: OperationLogService | None = None,
        call_timeout: float | None = DEFAULT_CALL_TIMEOUT,
        max_concurrency: int = 1,
        emitter: ReconciliationEventEmitter | None = None,
    ) -> None:
        """Initialize the reconciler.

        Args:
            sync: Query-and-sync callable; raising means the order failed.
            tracker: Progress tracker.
            operation_log: Where the SYNC entry is written (optional).
            call_timeout: Seconds before a call counts as timed out. The call
                is cancelled, which does not undo writes it already started.
            max_concurrency: Upper bound on concurrent calls.
            emitter: Event emitter, defaults to the tracker's emitter.
        """
        self._sync = sync
        self._tracker = tracker
        self._operation_log = operation_log
        self._call_timeout = call_timeout
        self._max_concurrency = max(1, max_concurrency)
        self._emitter = emitter or tracker.emitter

    async def reconcile(
        self,
        records: Sequence[OrderRecord],
        run: RunHandle | None = None,
    ) -> SyncReport:
        """Reconcile every record and report per-order outcomes.

        Without a run handle the reconciler begins its own progress run.

        Args:
            records: Imported order records, in input order.
            run: Handle of the run already begun by the caller.

        Returns:
            SyncReport with one outcome per attempted record, input order.
        """
        if run is None:
            run = RunHandle(run_id=await self._tracker.begin_run(total=len(records)))
        run.total = len(records)
        run_id = run.run_id

        try:
            report = await self._run(records, run)
        except BaseException as e:
            if self._tracker.snapshot.run_id == run_id and self._tracker.is_active:
                await self._tracker.fail(run_id, str(e) or type(e).__name__)
            raise

        run.report = report
        return report

    async def _run(self, records: Sequence[OrderRecord], run: RunHandle) -> SyncReport:
        run_id = run.run_id
        total = len(records)

        await self._tracker.set_total(run_id, total)
        await self._tracker.transition(run_id, ProgressState.polling)
        await self._emitter.emit_run_started(run_id, total)
        logger.info("Reconciling %d orders (run %s)", total, run_id)

        outcomes: list[SyncOutcome | None] = [None] * total
        completed = 0

        async def attempt(index: int, record: OrderRecord) -> None:
            nonlocal completed
            if run.cancelled:
                return
            outcomes[index] = await self._sync_one(run_id, index, record)
            completed += 1
            await self._tracker.update_progress(run_id, completed)

        if self._max_concurrency == 1:
            for index, record in enumerate(records):
                if run.cancelled:
                    break
                await attempt(index, record)
        else:
            semaphore = asyncio.Semaphore(self._max_concurrency)

            async def bounded(index: int, record: OrderRecord) -> None:
                async with semaphore:
                    await attempt(index, record)

            await asyncio.gather(*(bounded(i, r) for i, r in enumerate(records)))

        attempted = tuple(o for o in outcomes if o is not None)
        cancelled = run.cancelled and len(attempted) < total
        report = SyncReport(outcomes=attempted, cancelled=cancelled)

        await self._tracker.transition(run_id, ProgressState.saving)
        await self._write_sync_entry(run_id, report)

        if cancelled:
            logger.info("Run %s cancelled after %d/%d orders", run_id, len(attempted), total)
            await self._tracker.fail(run_id, format_message("E-4003"))
        elif report.succeeded > 0 or total == 0:
            await self._tracker.transition(run_id, ProgressState.done, report.summary())
        else:
            logger.warning("All %d reconciliations failed (run %s)", total, run_id)
            await self._tracker.fail(run_id, report.summary())

        await self._emitter.emit_run_completed(
            run_id, report.succeeded, report.failed, report.cancelled
        )
        logger.info("Run %s finished: %s", run_id, report.summary())
        return report

    async def _sync_one(self, run_id: str, index: int, record: OrderRecord) -> SyncOutcome:
        """Issue one call and convert any failure into an outcome."""
        request = build_sync_request(record)
        try:
            if self._call_timeout is not None:
                await asyncio.wait_for(self._sync(request), timeout=self._call_timeout)
            else:
                await self._sync(request)
        except (asyncio.TimeoutError, TimeoutError) as e:
            error_code = "E-3004"
            error_message = format_message(
                "E-3004", details=str(e) or f"{self._call_timeout}秒"
            )
        except Exception as e:
            error_code, error_message = translate_error(e)
        else:
            await self._emitter.emit_order_synced(run_id, index, record.order_number)
            return SyncOutcome(order_number=record.order_number, succeeded=True)

        logger.warning(
            "Reconciliation failed for order %s: [%s] %s",
            record.order_number, error_code, error_message,
        )
        await self._emitter.emit_order_failed(
            run_id, index, record.order_number, error_code, error_message
        )
        return SyncOutcome(
            order_number=record.order_number,
            succeeded=False,
            error_message=error_message,
            error_code=error_code,
        )

    async def _write_sync_entry(self, run_id: str, report: SyncReport) -> None:
        if self._operation_log is None:
            return
        try:
            await asyncio.to_thread(
                self._operation_log.log_sync,
                run_id,
                report.succeeded,
                report.failed,
                report.cancelled,
                [o.order_number for o in report.failures],
            )
        except Exception as e:
            logger.warning("Failed to write SYNC operation log for run %s: %s", run_id, e)
