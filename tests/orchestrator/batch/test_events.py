"""Unit tests for the reconciliation event observer pattern.

Tests cover:
- Observer registration
- Event emission to multiple observers
- Exception handling in observers
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from src.orchestrator.batch.events import ReconciliationEventEmitter
from src.orchestrator.batch.progress import ProgressSnapshot, ProgressState


class MockObserver:
    """Mock observer recording every event it receives."""

    def __init__(self) -> None:
        self.progress_calls: list[ProgressSnapshot] = []
        self.run_started_calls: list[tuple[str, int]] = []
        self.order_synced_calls: list[tuple[str, int, str]] = []
        self.order_failed_calls: list[tuple[str, int, str, str, str]] = []
        self.run_completed_calls: list[tuple[str, int, int, bool]] = []

    async def on_progress_changed(self, snapshot: ProgressSnapshot) -> None:
        self.progress_calls.append(snapshot)

    async def on_run_started(self, run_id: str, total: int) -> None:
        self.run_started_calls.append((run_id, total))

    async def on_order_synced(self, run_id: str, index: int, order_number: str) -> None:
        self.order_synced_calls.append((run_id, index, order_number))

    async def on_order_failed(
        self,
        run_id: str,
        index: int,
        order_number: str,
        error_code: str,
        error_message: str,
    ) -> None:
        self.order_failed_calls.append(
            (run_id, index, order_number, error_code, error_message)
        )

    async def on_run_completed(
        self,
        run_id: str,
        succeeded: int,
        failed: int,
        cancelled: bool,
    ) -> None:
        self.run_completed_calls.append((run_id, succeeded, failed, cancelled))


class TestReconciliationEventEmitter:
    """Tests for ReconciliationEventEmitter class."""

    def test_add_and_remove_observer(self) -> None:
        emitter = ReconciliationEventEmitter()
        observer = MockObserver()

        emitter.add_observer(observer)
        assert observer in emitter._observers

        emitter.remove_observer(observer)
        assert observer not in emitter._observers

    def test_remove_observer_not_present_raises(self) -> None:
        emitter = ReconciliationEventEmitter()
        with pytest.raises(ValueError):
            emitter.remove_observer(MockObserver())

    async def test_emit_progress_changed(self) -> None:
        emitter = ReconciliationEventEmitter()
        observer1, observer2 = MockObserver(), MockObserver()
        emitter.add_observer(observer1)
        emitter.add_observer(observer2)
        snapshot = ProgressSnapshot(state=ProgressState.polling, run_id="run-1")

        await emitter.emit_progress_changed(snapshot)

        assert observer1.progress_calls == [snapshot]
        assert observer2.progress_calls == [snapshot]

    async def test_emit_order_events(self) -> None:
        emitter = ReconciliationEventEmitter()
        observer = MockObserver()
        emitter.add_observer(observer)

        await emitter.emit_run_started("run-1", 2)
        await emitter.emit_order_synced("run-1", 0, "SO-1")
        await emitter.emit_order_failed("run-1", 1, "SO-2", "E-3007", "未找到物流信息")
        await emitter.emit_run_completed("run-1", 1, 1, False)

        assert observer.run_started_calls == [("run-1", 2)]
        assert observer.order_synced_calls == [("run-1", 0, "SO-1")]
        assert observer.order_failed_calls == [
            ("run-1", 1, "SO-2", "E-3007", "未找到物流信息")
        ]
        assert observer.run_completed_calls == [("run-1", 1, 1, False)]

    async def test_observer_exception_doesnt_stop_others(self) -> None:
        """A failing observer is logged and skipped."""
        emitter = ReconciliationEventEmitter()
        failing_observer = MagicMock()
        failing_observer.on_order_synced = AsyncMock(side_effect=RuntimeError("boom"))
        healthy_observer = MockObserver()
        emitter.add_observer(failing_observer)
        emitter.add_observer(healthy_observer)

        await emitter.emit_order_synced("run-1", 0, "SO-1")

        failing_observer.on_order_synced.assert_awaited_once()
        assert healthy_observer.order_synced_calls == [("run-1", 0, "SO-1")]

    async def test_no_observers(self) -> None:
        emitter = ReconciliationEventEmitter()
        await emitter.emit_run_completed("run-1", 0, 0, True)
