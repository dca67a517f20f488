"""Reconciliation engine for LogiSync.

Provides per-order tracking reconciliation with failure isolation,
an owned progress state machine, and event-driven progress streaming.
"""

from src.orchestrator.batch.events import (
    ReconciliationEventEmitter,
    ReconciliationEventObserver,
)
from src.orchestrator.batch.models import (
    ImportResult,
    RunHandle,
    SyncOutcome,
    SyncReport,
)
from src.orchestrator.batch.progress import (
    InvalidProgressTransition,
    ProgressSnapshot,
    ProgressState,
    ProgressTracker,
    RunInProgressError,
    RunOwnershipError,
)
from src.orchestrator.batch.reconciler import Reconciler, build_sync_request
from src.orchestrator.batch.sse_observer import ALL_RUNS, SSEProgressObserver

__all__ = [
    "ReconciliationEventObserver",
    "ReconciliationEventEmitter",
    "ImportResult",
    "RunHandle",
    "SyncOutcome",
    "SyncReport",
    "ProgressState",
    "ProgressSnapshot",
    "ProgressTracker",
    "InvalidProgressTransition",
    "RunInProgressError",
    "RunOwnershipError",
    "Reconciler",
    "build_sync_request",
    "SSEProgressObserver",
    "ALL_RUNS",
]
