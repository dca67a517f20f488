"""Observer pattern for reconciliation run events.

Provides the ReconciliationEventObserver protocol and the
ReconciliationEventEmitter class for notifying observers of progress
state changes and per-order reconciliation results.
"""

import logging
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from src.orchestrator.batch.progress import ProgressSnapshot

logger = logging.getLogger(__name__)


class ReconciliationEventObserver(Protocol):
    """Observer protocol for run lifecycle events.

    Implementations subscribe via ReconciliationEventEmitter to stream
    progress to clients, update UI, or log activity.
    """

    async def on_progress_changed(self, snapshot: "ProgressSnapshot") -> None:
        """Called after every progress state or percentage change.

        Args:
            snapshot: The tracker's snapshot after the change.
        """
        ...

    async def on_run_started(self, run_id: str, total: int) -> None:
        """Called when reconciliation begins issuing provider calls.

        Args:
            run_id: Progress run id.
            total: Number of orders to reconcile.
        """
        ...

    async def on_order_synced(self, run_id: str, index: int, order_number: str) -> None:
        """Called when an order's query-and-sync call succeeds.

        Args:
            run_id: Progress run id.
            index: 0-based position of the order in the batch.
            order_number: The order that was synced.
        """
        ...

    async def on_order_failed(
        self,
        run_id: str,
        index: int,
        order_number: str,
        error_code: str,
        error_message: str,
    ) -> None:
        """Called when an order's query-and-sync call fails.

        Args:
            run_id: Progress run id.
            index: 0-based position of the order in the batch.
            order_number: The order that failed.
            error_code: Error code from the error registry.
            error_message: Human-readable error description.
        """
        ...

    async def on_run_completed(
        self,
        run_id: str,
        succeeded: int,
        failed: int,
        cancelled: bool,
    ) -> None:
        """Called when reconciliation finishes, fails or is cancelled.

        Args:
            run_id: Progress run id.
            succeeded: Number of orders synced.
            failed: Number of orders that failed.
            cancelled: Whether the run stopped early.
        """
        ...


class ReconciliationEventEmitter:
    """Emits run events to registered observers.

    Exceptions from individual observers are caught and logged to prevent
    one broken observer from stopping event delivery to others.
    """

    def __init__(self) -> None:
        """Initialize emitter with empty observer list."""
        self._observers: list[ReconciliationEventObserver] = []

    def add_observer(self, observer: ReconciliationEventObserver) -> None:
        """Register an observer to receive run events."""
        self._observers.append(observer)

    def remove_observer(self, observer: ReconciliationEventObserver) -> None:
        """Unregister an observer."""
        self._observers.remove(observer)

    async def emit_progress_changed(self, snapshot: "ProgressSnapshot") -> None:
        """Emit progress changed event to all observers."""
        for observer in self._observers:
            try:
                await observer.on_progress_changed(snapshot)
            except Exception as e:
                logger.error(
                    "Observer %s failed on_progress_changed: %s",
                    type(observer).__name__,
                    e,
                )

    async def emit_run_started(self, run_id: str, total: int) -> None:
        """Emit run started event to all observers."""
        for observer in self._observers:
            try:
                await observer.on_run_started(run_id, total)
            except Exception as e:
                logger.error(
                    "Observer %s failed on_run_started: %s",
                    type(observer).__name__,
                    e,
                )

    async def emit_order_synced(self, run_id: str, index: int, order_number: str) -> None:
        """Emit order synced event to all observers."""
        for observer in self._observers:
            try:
                await observer.on_order_synced(run_id, index, order_number)
            except Exception as e:
                logger.error(
                    "Observer %s failed on_order_synced: %s",
                    type(observer).__name__,
                    e,
                )

    async def emit_order_failed(
        self,
        run_id: str,
        index: int,
        order_number: str,
        error_code: str,
        error_message: str,
    ) -> None:
        """Emit order failed event to all observers."""
        for observer in self._observers:
            try:
                await observer.on_order_failed(
                    run_id, index, order_number, error_code, error_message
                )
            except Exception as e:
                logger.error(
                    "Observer %s failed on_order_failed: %s",
                    type(observer).__name__,
                    e,
                )

    async def emit_run_completed(
        self,
        run_id: str,
        succeeded: int,
        failed: int,
        cancelled: bool,
    ) -> None:
        """Emit run completed event to all observers."""
        for observer in self._observers:
            try:
                await observer.on_run_completed(run_id, succeeded, failed, cancelled)
            except Exception as e:
                logger.error(
                    "Observer %s failed on_run_completed: %s",
                    type(observer).__name__,
                    e,
                )
