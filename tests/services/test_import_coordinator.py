"""Tests for the import coordinator.

Covers the import boundary (all-or-nothing validation and storage) and
the hand-off to reconciliation, with the order store and the sync call
replaced by mocks.
"""

import asyncio
import time
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.db.models import OrderStatus
from src.errors import NotFoundError
from src.orchestrator.batch.progress import ProgressState, ProgressTracker, RunInProgressError
from src.orchestrator.batch.reconciler import Reconciler
from src.services.errors import TrackingServiceError
from src.services.import_coordinator import ImportCoordinator, format_validation_failure
from src.services.operation_log_service import OperationLogService
from src.services.order_records import RowValidationError
from src.services.order_store import OrderStore, StoreResult
from tests.helpers import make_record, make_row


def mock_store(success: bool = True, message: str = "ok") -> MagicMock:
    store = MagicMock(spec=OrderStore)
    store.submit_batch.return_value = StoreResult(success=success, message=message)
    return store


def build(
    store: MagicMock | OrderStore | None = None,
    sync: AsyncMock | None = None,
    call_timeout: float | None = 5.0,
    operation_log: OperationLogService | None = None,
) -> tuple[ImportCoordinator, ProgressTracker, AsyncMock, MagicMock | OrderStore]:
    tracker = ProgressTracker()
    sync = sync or AsyncMock(return_value=None)
    store = store if store is not None else mock_store()
    reconciler = Reconciler(sync, tracker, call_timeout=call_timeout)
    coordinator = ImportCoordinator(
        store, reconciler, tracker, operation_log=operation_log
    )
    return coordinator, tracker, sync, store


class TestFormatValidationFailure:
    def test_lists_one_line_per_error(self) -> None:
        message = format_validation_failure(
            [
                RowValidationError(row=2, message="订单号不能为空"),
                RowValidationError(row=5, message="快递公司不能为空"),
            ]
        )
        assert message == "导入失败，发现 2 个错误:\n2行: 订单号不能为空\n5行: 快递公司不能为空"


class TestRejectedBatches:
    """Any invalid row rejects the batch before the store is touched."""

    async def test_invalid_row_rejects_batch_without_store_call(self) -> None:
        """3 rows, row 2 missing its order number: nothing is stored."""
        coordinator, tracker, sync, store = build()
        rows = [
            make_row(order_number="SO-1"),
            make_row(order_number=""),
            make_row(order_number="SO-3"),
        ]

        result = await coordinator.import_batch(rows)

        assert result.success is False
        assert "2行" in result.message
        assert result.records_imported == []
        store.submit_batch.assert_not_called()
        sync.assert_not_called()
        assert tracker.snapshot.state == ProgressState.error

    async def test_every_error_is_listed(self) -> None:
        coordinator, _, _, store = build()
        rows = [make_row(order_number=""), make_row(order_number="SO-2", carrier="")]

        result = await coordinator.import_batch(rows)

        assert result.message.startswith("导入失败，发现 2 个错误:")
        assert "1行: 订单号不能为空" in result.message
        assert "2行: 快递公司不能为空" in result.message
        store.submit_batch.assert_not_called()

    async def test_empty_batch(self) -> None:
        coordinator, tracker, _, store = build()

        result = await coordinator.import_batch([])

        assert result.success is False
        assert result.message == "没有可导入的有效数据"
        store.submit_batch.assert_not_called()
        assert tracker.snapshot.state == ProgressState.error

    async def test_store_rejection(self) -> None:
        coordinator, tracker, sync, store = build(
            store=mock_store(success=False, message="订单保存失败: 订单号已存在: SO-1")
        )

        result = await coordinator.import_batch([make_row(order_number="SO-1")])

        assert result.success is False
        assert result.message == "订单保存失败: 订单号已存在: SO-1"
        sync.assert_not_called()
        assert tracker.snapshot.state == ProgressState.error
        assert tracker.snapshot.message == result.message

    async def test_store_exception_becomes_failure(self) -> None:
        store = mock_store()
        store.submit_batch.side_effect = RuntimeError("disk full")
        coordinator, _, sync, _ = build(store=store)

        result = await coordinator.import_batch([make_row()])

        assert result.success is False
        assert "disk full" in result.message
        sync.assert_not_called()

    async def test_store_timeout_rolls_back(self, session_factory) -> None:
        """A store that misses its deadline commits nothing."""

        class SlowStore(OrderStore):
            def submit_batch(self, records, deadline=None):
                time.sleep(0.3)
                return super().submit_batch(records, deadline=deadline)

        store = SlowStore(session_factory)
        tracker = ProgressTracker()
        sync = AsyncMock()
        coordinator = ImportCoordinator(
            store,
            Reconciler(sync, tracker),
            tracker,
            store_timeout=0.05,
        )

        result = await coordinator.import_batch([make_row(order_number="SO-1")])

        assert result.success is False
        assert "订单保存超时" in result.message
        assert tracker.snapshot.state == ProgressState.error
        assert store.list_orders() == []
        sync.assert_not_called()

        # The same batch imports cleanly once the store keeps up
        retry = ImportCoordinator(OrderStore(session_factory), Reconciler(sync, tracker), tracker)
        assert (await retry.import_batch([make_row(order_number="SO-1")])).success is True


class TestAcceptedBatches:
    """Valid batches are stored once and reconciled."""

    async def test_store_called_once_with_every_record(self) -> None:
        coordinator, _, _, store = build()
        rows = [make_row(order_number=f"SO-{i}") for i in range(4)]

        result = await coordinator.import_batch(rows)

        assert result.success is True
        store.submit_batch.assert_called_once()
        (records,), _ = store.submit_batch.call_args
        assert len(records) == len(rows)
        assert [r.order_number for r in result.records_imported] == [
            f"SO-{i}" for i in range(4)
        ]

    async def test_carrier_codes_sent_in_order(self) -> None:
        """A known and an unknown carrier: 2 calls, 'shunfeng' then ''."""
        coordinator, _, sync, _ = build()
        rows = [
            make_row(order_number="SO-1", carrier="顺丰速运"),
            make_row(order_number="SO-2", carrier="不存在的公司"),
        ]

        result = await coordinator.import_batch(rows)

        assert result.success is True
        assert sync.await_count == 2
        first, second = (call.args[0] for call in sync.await_args_list)
        assert first.carrier_code == "shunfeng"
        assert second.carrier_code == ""

    async def test_timeout_yields_failed_report_and_error_state(self) -> None:
        """One row whose sync call times out: '0 succeeded, 1 failed', error."""

        async def slow(request):
            await asyncio.sleep(1)

        coordinator, tracker, _, _ = build(sync=AsyncMock(side_effect=slow), call_timeout=0.01)

        result = await coordinator.import_batch([make_row()])

        assert result.success is True
        report = result.sync_report
        assert len(report) == 1
        assert report.outcomes[0].succeeded is False
        assert report.outcomes[0].error_code == "E-3004"
        assert report.summary().startswith("0 succeeded, 1 failed")
        assert "0 succeeded, 1 failed" in result.message
        assert tracker.snapshot.state == ProgressState.error

    async def test_success_message_and_done_state(self) -> None:
        coordinator, tracker, _, _ = build()

        result = await coordinator.import_batch(
            [make_row(order_number="SO-1"), make_row(order_number="SO-2")]
        )

        assert result.message == "成功导入 2 个订单\n物流同步: 2 succeeded, 0 failed"
        assert result.sync_report.succeeded == 2
        assert tracker.snapshot.state == ProgressState.done
        assert tracker.snapshot.progress == 100

    async def test_partial_failure_ends_done(self) -> None:
        async def flaky(request):
            if request.order_number == "SO-2":
                raise TrackingServiceError(code="E-3007", message="未找到物流信息")

        coordinator, tracker, _, _ = build(sync=AsyncMock(side_effect=flaky))

        result = await coordinator.import_batch(
            [make_row(order_number=f"SO-{i}") for i in range(1, 4)]
        )

        assert [o.succeeded for o in result.sync_report.outcomes] == [True, False, True]
        assert "SO-2: 未找到物流信息" in result.message
        assert tracker.snapshot.state == ProgressState.done

    async def test_customer_name_sentinel(self) -> None:
        coordinator, _, sync, _ = build()

        await coordinator.import_batch(
            [
                make_row(order_number="SO-1", customer_name="甲"),
                make_row(order_number="SO-2", customer_name="甲乙"),
            ]
        )

        names = [call.args[0].customer_name for call in sync.await_args_list]
        assert names == ["未知", "甲乙"]

    async def test_import_entry_is_logged(self, operation_log: OperationLogService) -> None:
        coordinator, _, _, _ = build(operation_log=operation_log)

        await coordinator.import_batch([make_row()], username="bob")

        entries = operation_log.list_entries()
        assert entries[0].operation_type == "import"
        assert entries[0].username == "bob"

    async def test_operation_log_failure_does_not_fail_import(self) -> None:
        broken_log = MagicMock(spec=OperationLogService)
        broken_log.log_import.side_effect = RuntimeError("db locked")
        coordinator, _, _, _ = build(operation_log=broken_log)

        result = await coordinator.import_batch([make_row()])

        assert result.success is True

    async def test_end_to_end_with_real_store(self, store: OrderStore) -> None:
        coordinator, _, _, _ = build(store=store)

        result = await coordinator.import_batch([make_row(order_number="SO-77")])

        assert result.success is True
        assert store.get_order("SO-77").customer_name == "华东项目部"


class TestRuns:
    """Background runs, run lookup, cancellation and sync=False."""

    async def test_background_reconciliation(self) -> None:
        coordinator, tracker, sync, _ = build()

        result = await coordinator.import_batch([make_row()], wait_for_sync=False)

        assert result.success is True
        assert result.message == "成功导入 1 个订单"
        assert result.sync_report is None
        handle = coordinator.get_run(result.run_id)
        await handle.task
        assert handle.finished
        assert handle.report.succeeded == 1
        assert tracker.snapshot.state == ProgressState.done

    async def test_second_import_rejected_while_active(self) -> None:
        gate = asyncio.Event()

        async def blocked(request):
            await gate.wait()

        coordinator, _, _, _ = build(sync=AsyncMock(side_effect=blocked))
        first = await coordinator.import_batch([make_row()], wait_for_sync=False)

        with pytest.raises(RunInProgressError):
            await coordinator.import_batch([make_row(order_number="SO-2")])

        gate.set()
        await coordinator.get_run(first.run_id).task

    async def test_new_import_after_finished_run(self) -> None:
        coordinator, _, _, _ = build()
        await coordinator.import_batch([make_row(order_number="SO-1")])

        result = await coordinator.import_batch([make_row(order_number="SO-2")])

        assert result.success is True

    async def test_cancel_run(self) -> None:
        gate = asyncio.Event()
        calls: list[str] = []

        async def gated(request):
            calls.append(request.order_number)
            await gate.wait()

        coordinator, tracker, _, _ = build(sync=AsyncMock(side_effect=gated))
        result = await coordinator.import_batch(
            [make_row(order_number=f"SO-{i}") for i in range(3)], wait_for_sync=False
        )
        await asyncio.sleep(0)
        while not calls:
            await asyncio.sleep(0.01)

        handle = coordinator.cancel_run(result.run_id)
        gate.set()
        await handle.task

        assert handle.cancelled
        assert handle.report.cancelled is True
        assert len(handle.report) == 1
        assert tracker.snapshot.state == ProgressState.error
        assert tracker.snapshot.message == "已取消"

    async def test_unknown_run(self) -> None:
        coordinator, _, _, _ = build()
        with pytest.raises(NotFoundError):
            coordinator.get_run("nope")
        with pytest.raises(NotFoundError):
            coordinator.cancel_run("nope")

    async def test_import_without_sync(self) -> None:
        coordinator, tracker, sync, store = build()

        result = await coordinator.import_batch([make_row()], sync=False)

        assert result.success is True
        assert result.message == "成功导入 1 个订单"
        store.submit_batch.assert_called_once()
        sync.assert_not_called()
        assert tracker.snapshot.state == ProgressState.done


class TestResync:
    """Re-syncing stored orders that have not reached a final status."""

    async def test_resyncs_only_unsettled_orders(self, store: OrderStore) -> None:
        store.submit_batch(
            [
                make_record(order_number="SO-1"),
                make_record(order_number="SO-2", status=OrderStatus.delivered),
                make_record(order_number="SO-3", status=OrderStatus.returned),
                make_record(order_number="SO-4", status=OrderStatus.in_transit),
                make_record(order_number="SO-5"),
            ]
        )
        store.archive_order("SO-5")
        coordinator, tracker, sync, _ = build(store=store)

        handle = await coordinator.resync()

        assert handle.total == 2
        assert [call.args[0].order_number for call in sync.await_args_list] == [
            "SO-1",
            "SO-4",
        ]
        assert handle.report.succeeded == 2
        assert coordinator.get_run(handle.run_id) is handle
        assert tracker.snapshot.state == ProgressState.done

    async def test_requests_rebuilt_from_stored_orders(self, store: OrderStore) -> None:
        store.submit_batch([make_record(customer_name="王", carrier="中通快递")])
        coordinator, _, sync, _ = build(store=store)

        await coordinator.resync()

        request = sync.await_args.args[0]
        assert request.customer_name == "未知"
        assert request.carrier_code == "zhongtong"
        assert request.phone == "13800138000"

    async def test_background_resync(self, store: OrderStore) -> None:
        store.submit_batch([make_record()])
        coordinator, _, _, _ = build(store=store)

        handle = await coordinator.resync(wait_for_sync=False)
        await handle.task

        assert handle.report.succeeded == 1

    async def test_rejected_while_run_active(self, store: OrderStore) -> None:
        coordinator, tracker, _, _ = build(store=store)
        await tracker.begin_run()

        with pytest.raises(RunInProgressError):
            await coordinator.resync()

    async def test_store_failure_fails_run(self) -> None:
        store = mock_store()
        store.list_unsettled_records.side_effect = RuntimeError("database is locked")
        coordinator, tracker, sync, _ = build(store=store)

        with pytest.raises(RuntimeError):
            await coordinator.resync()

        sync.assert_not_called()
        assert tracker.snapshot.state == ProgressState.error
        assert "database is locked" in tracker.snapshot.message
