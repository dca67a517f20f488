"""SSE Progress Observer for real-time run event streaming.

Provides a ReconciliationEventObserver implementation that bridges run
events to Server-Sent Events (SSE) connections for web clients.
"""

import asyncio
import logging
from typing import Any

from src.orchestrator.batch.progress import ProgressSnapshot

logger = logging.getLogger(__name__)

# Subscription key that receives the events of every run
ALL_RUNS = "*"


class SSEProgressObserver:
    """Observer that bridges run events to SSE connections.

    Each SSE connection gets its own asyncio.Queue, registered under a
    run id or under ALL_RUNS for clients following whatever run is
    current. Every event is fanned out to all matching queues.
    """

    def __init__(self) -> None:
        """Initialize observer with empty subscription map."""
        self._queues: dict[str, list[asyncio.Queue[dict[str, Any]]]] = {}

    def subscribe(self, run_id: str = ALL_RUNS) -> asyncio.Queue[dict[str, Any]]:
        """Create a new queue for one SSE connection.

        Args:
            run_id: Progress run id, or ALL_RUNS.

        Returns:
            asyncio.Queue for receiving SSE events.
        """
        queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
        self._queues.setdefault(run_id, []).append(queue)
        logger.debug(
            "Added SSE subscription for run %s (%d open)",
            run_id, len(self._queues[run_id]),
        )
        return queue

    def unsubscribe(
        self, run_id: str, queue: asyncio.Queue[dict[str, Any]]
    ) -> None:
        """Remove one connection's queue. No-op if not subscribed."""
        queues = self._queues.get(run_id)
        if not queues or queue not in queues:
            return
        queues.remove(queue)
        if not queues:
            del self._queues[run_id]
        logger.debug("Removed SSE subscription for run %s", run_id)

    def has_subscribers(self, run_id: str = ALL_RUNS) -> bool:
        return bool(self._queues.get(run_id))

    async def _emit(self, run_id: str | None, event: str, data: dict[str, Any]) -> None:
        """Put an event on every queue of the run and of ALL_RUNS."""
        message = {"event": event, "data": data}
        targets = list(self._queues.get(ALL_RUNS, ()))
        if run_id is not None and run_id != ALL_RUNS:
            targets.extend(self._queues.get(run_id, ()))
        for queue in targets:
            await queue.put(message)

    # ReconciliationEventObserver protocol implementation

    async def on_progress_changed(self, snapshot: ProgressSnapshot) -> None:
        await self._emit(snapshot.run_id, "progress", snapshot.to_dict())

    async def on_run_started(self, run_id: str, total: int) -> None:
        await self._emit(run_id, "run_started", {"run_id": run_id, "total": total})

    async def on_order_synced(self, run_id: str, index: int, order_number: str) -> None:
        await self._emit(
            run_id,
            "order_synced",
            {"run_id": run_id, "index": index, "order_number": order_number},
        )

    async def on_order_failed(
        self,
        run_id: str,
        index: int,
        order_number: str,
        error_code: str,
        error_message: str,
    ) -> None:
        await self._emit(
            run_id,
            "order_failed",
            {
                "run_id": run_id,
                "index": index,
                "order_number": order_number,
                "error_code": error_code,
                "error_message": error_message,
            },
        )

    async def on_run_completed(
        self,
        run_id: str,
        succeeded: int,
        failed: int,
        cancelled: bool,
    ) -> None:
        await self._emit(
            run_id,
            "run_completed",
            {
                "run_id": run_id,
                "succeeded": succeeded,
                "failed": failed,
                "cancelled": cancelled,
            },
        )
