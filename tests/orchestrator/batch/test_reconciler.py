"""Tests for the Reconciler.

The query-and-sync callable is an AsyncMock throughout, so these tests
exercise failure isolation, ordering, progress and cancellation without
any provider traffic.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.orchestrator.batch.models import RunHandle
from src.orchestrator.batch.progress import ProgressState, ProgressTracker
from src.orchestrator.batch.reconciler import (
    UNKNOWN_CUSTOMER_NAME,
    Reconciler,
    build_sync_request,
    translate_error,
)
from src.services.errors import TrackingServiceError
from src.services.operation_log_service import OperationLogService
from tests.helpers import make_record


def records(count: int) -> list:
    return [make_record(order_number=f"SO-{i}") for i in range(1, count + 1)]


class TestBuildSyncRequest:
    def test_fields(self) -> None:
        request = build_sync_request(make_record(carrier="中通快递"))

        assert request.order_number == "SO-1001"
        assert request.tracking_number == "SF1234567890"
        assert request.department_key == "EAST"
        assert request.phone == "13800138000"
        assert request.carrier_code == "zhongtong"

    def test_short_customer_name_replaced(self) -> None:
        assert build_sync_request(make_record(customer_name="甲")).customer_name == (
            UNKNOWN_CUSTOMER_NAME
        )
        assert build_sync_request(make_record(customer_name="甲乙")).customer_name == "甲乙"

    def test_unknown_carrier_gives_empty_code(self) -> None:
        assert build_sync_request(make_record(carrier="无名快递")).carrier_code == ""


class TestTranslateError:
    @pytest.mark.parametrize(
        ("message", "expected_code"),
        [
            ("429 Too Many Requests", "E-3002"),
            ("read timed out", "E-3004"),
            ("connection refused", "E-3001"),
            ("database is locked", "E-4001"),
            ("something odd", "E-3005"),
        ],
    )
    def test_generic_exceptions(self, message: str, expected_code: str) -> None:
        code, text = translate_error(RuntimeError(message))
        assert code == expected_code
        assert message in text

    def test_tracking_error_passthrough(self) -> None:
        error = TrackingServiceError(code="E-3007", message="未找到物流信息")
        assert translate_error(error) == ("E-3007", "未找到物流信息")

    def test_empty_message_uses_type_name(self) -> None:
        _, text = translate_error(ValueError())
        assert "ValueError" in text


class TestReconcile:
    async def test_all_succeed(self) -> None:
        tracker = ProgressTracker()
        sync = AsyncMock(return_value=None)

        report = await Reconciler(sync, tracker).reconcile(records(3))

        assert report.succeeded == 3
        assert report.failed == 0
        assert [o.order_number for o in report.outcomes] == ["SO-1", "SO-2", "SO-3"]
        assert tracker.snapshot.state == ProgressState.done
        assert tracker.snapshot.message == "3 succeeded, 0 failed"

    async def test_failure_isolated(self) -> None:
        """A failing call never stops the remaining orders."""

        async def sync(request):
            if request.order_number == "SO-2":
                raise RuntimeError("connection reset")

        tracker = ProgressTracker()
        report = await Reconciler(AsyncMock(side_effect=sync), tracker).reconcile(records(3))

        assert [o.succeeded for o in report.outcomes] == [True, False, True]
        assert report.outcomes[1].error_code == "E-3001"
        assert "connection reset" in report.outcomes[1].error_message
        assert tracker.snapshot.state == ProgressState.done

    async def test_all_failed_ends_in_error(self) -> None:
        tracker = ProgressTracker()
        sync = AsyncMock(side_effect=TrackingServiceError(code="E-3006", message="单号格式无效"))

        report = await Reconciler(sync, tracker).reconcile(records(2))

        assert report.failed == 2
        assert tracker.snapshot.state == ProgressState.error
        assert tracker.snapshot.message == "0 succeeded, 2 failed"

    async def test_empty_batch_is_done(self) -> None:
        tracker = ProgressTracker()
        report = await Reconciler(AsyncMock(), tracker).reconcile([])
        assert len(report) == 0
        assert tracker.snapshot.state == ProgressState.done

    async def test_timeout_per_call(self) -> None:
        async def slow(request):
            await asyncio.sleep(1)

        tracker = ProgressTracker()
        report = await Reconciler(
            AsyncMock(side_effect=slow), tracker, call_timeout=0.01
        ).reconcile(records(1))

        assert report.outcomes[0].error_code == "E-3004"
        assert report.outcomes[0].error_message.startswith("物流查询超时")

    async def test_progress_reaches_100_and_is_monotone(self) -> None:
        tracker = ProgressTracker()
        seen: list[int] = []
        observer = MagicMock()
        observer.on_progress_changed = AsyncMock(
            side_effect=lambda snapshot: seen.append(snapshot.progress)
        )
        tracker.emitter.add_observer(observer)

        await Reconciler(AsyncMock(), tracker).reconcile(records(4))

        assert seen == sorted(seen)
        assert 25 in seen and 50 in seen and 75 in seen
        assert tracker.snapshot.progress == 100

    async def test_concurrent_keeps_input_order(self) -> None:
        """Later orders finish first, outcomes still follow input order."""

        async def sync(request):
            delay = {"SO-1": 0.05, "SO-2": 0.02, "SO-3": 0.0}[request.order_number]
            await asyncio.sleep(delay)

        in_flight = 0
        peak = 0

        async def tracked(request):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            try:
                await sync(request)
            finally:
                in_flight -= 1

        report = await Reconciler(
            AsyncMock(side_effect=tracked), ProgressTracker(), max_concurrency=2
        ).reconcile(records(3))

        assert [o.order_number for o in report.outcomes] == ["SO-1", "SO-2", "SO-3"]
        assert peak == 2

    async def test_unexpected_exception_after_begin_marks_error(self) -> None:
        """A crash outside a sync call fails the run and propagates."""
        tracker = ProgressTracker()
        emitter = MagicMock()
        emitter.emit_run_started = AsyncMock(side_effect=RuntimeError("event bus down"))
        reconciler = Reconciler(AsyncMock(), tracker, emitter=emitter)

        with pytest.raises(RuntimeError):
            await reconciler.reconcile(records(1))

        assert tracker.snapshot.state == ProgressState.error


class TestCancellation:
    async def test_cancel_before_start(self) -> None:
        tracker = ProgressTracker()
        sync = AsyncMock()
        run = RunHandle(run_id=await tracker.begin_run())
        run.cancel()

        report = await Reconciler(sync, tracker).reconcile(records(3), run=run)

        sync.assert_not_called()
        assert report.cancelled
        assert len(report) == 0
        assert tracker.snapshot.state == ProgressState.error
        assert tracker.snapshot.message == "已取消"

    async def test_cancel_mid_run(self) -> None:
        tracker = ProgressTracker()
        run = RunHandle(run_id=await tracker.begin_run())

        async def sync(request):
            if request.order_number == "SO-2":
                run.cancel()

        report = await Reconciler(AsyncMock(side_effect=sync), tracker).reconcile(
            records(4), run=run
        )

        assert [o.order_number for o in report.outcomes] == ["SO-1", "SO-2"]
        assert report.cancelled
        assert run.report is report

    async def test_cancel_after_last_call_is_not_cancelled(self) -> None:
        tracker = ProgressTracker()
        run = RunHandle(run_id=await tracker.begin_run())

        async def sync(request):
            if request.order_number == "SO-2":
                run.cancel()

        report = await Reconciler(AsyncMock(side_effect=sync), tracker).reconcile(
            records(2), run=run
        )

        assert not report.cancelled
        assert tracker.snapshot.state == ProgressState.done


class TestSyncEntry:
    async def test_sync_entry_written(self, operation_log: OperationLogService) -> None:
        async def sync(request):
            if request.order_number == "SO-2":
                raise TrackingServiceError(code="E-3007", message="未找到物流信息")

        await Reconciler(
            AsyncMock(side_effect=sync), ProgressTracker(), operation_log=operation_log
        ).reconcile(records(2))

        entry = operation_log.list_entries()[0]
        details = OperationLogService.decode_details(entry)
        assert entry.operation_type == "sync"
        assert details["succeeded"] == 1
        assert details["failed"] == 1
        assert details["failed_orders"] == ["SO-2"]

    async def test_log_failure_does_not_fail_run(self) -> None:
        broken_log = MagicMock(spec=OperationLogService)
        broken_log.log_sync.side_effect = RuntimeError("db locked")
        tracker = ProgressTracker()

        report = await Reconciler(AsyncMock(), tracker, operation_log=broken_log).reconcile(
            records(1)
        )

        assert report.succeeded == 1
        assert tracker.snapshot.state == ProgressState.done
