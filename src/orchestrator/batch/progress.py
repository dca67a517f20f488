"""Progress state machine for import and reconciliation runs.

The ProgressTracker owns the single progress snapshot of the process.
Only the holder of the current run id may move it, and only along
VALID_TRANSITIONS. Every change is broadcast to observers through the
ReconciliationEventEmitter.

Lifecycle:
    idle -> creating -> [saving ->] polling -> saving -> done | error
    done | error -> idle (acknowledge, or implicitly on the next run)
"""

import logging
from dataclasses import asdict, dataclass, replace
from enum import Enum
from typing import Any
from uuid import uuid4

from src.db.models import utc_now_iso
from src.errors import ConflictError
from src.orchestrator.batch.events import ReconciliationEventEmitter

logger = logging.getLogger(__name__)


class ProgressState(str, Enum):
    """Coarse-grained state of the current run."""

    idle = "idle"
    creating = "creating"
    polling = "polling"
    saving = "saving"
    error = "error"
    done = "done"


ACTIVE_STATES = frozenset(
    {ProgressState.creating, ProgressState.polling, ProgressState.saving}
)

# Valid state transitions for the run lifecycle
VALID_TRANSITIONS: dict[ProgressState, list[ProgressState]] = {
    ProgressState.idle: [ProgressState.creating],
    ProgressState.creating: [
        ProgressState.saving,
        ProgressState.polling,
        ProgressState.error,
    ],
    ProgressState.saving: [
        ProgressState.polling,
        ProgressState.done,
        ProgressState.error,
    ],
    ProgressState.polling: [
        ProgressState.saving,
        ProgressState.done,
        ProgressState.error,
    ],
    ProgressState.error: [ProgressState.idle],
    ProgressState.done: [ProgressState.idle],
}


class InvalidProgressTransition(Exception):
    """Raised when attempting a transition not in VALID_TRANSITIONS.

    Attributes:
        current_state: The tracker's current state.
        attempted_state: The state that was attempted.
        allowed_transitions: Valid targets from the current state.
    """

    def __init__(
        self,
        current_state: ProgressState,
        attempted_state: ProgressState,
        allowed_transitions: list[ProgressState],
    ) -> None:
        self.current_state = current_state
        self.attempted_state = attempted_state
        self.allowed_transitions = allowed_transitions
        allowed_str = ", ".join(s.value for s in allowed_transitions) or "none"
        super().__init__(
            f"Cannot transition from '{current_state.value}' to "
            f"'{attempted_state.value}'. Allowed transitions: {allowed_str}"
        )


class RunInProgressError(ConflictError):
    """Raised when a run is started while another is still active."""

    def __init__(self, active_run_id: str) -> None:
        super().__init__(f"已有导入任务正在进行: {active_run_id}")
        self.active_run_id = active_run_id


class RunOwnershipError(Exception):
    """Raised when a caller moves the tracker with a stale or foreign run id."""

    def __init__(self, run_id: str | None, current_run_id: str | None) -> None:
        super().__init__(
            f"Run '{run_id}' does not own the progress tracker "
            f"(current run: '{current_run_id}')"
        )
        self.run_id = run_id
        self.current_run_id = current_run_id


@dataclass(frozen=True)
class ProgressSnapshot:
    """Immutable view of the tracker at one point in time."""

    state: ProgressState = ProgressState.idle
    progress: int = 0
    run_id: str | None = None
    total: int = 0
    completed: int = 0
    message: str = ""
    updated_at: str = ""

    @property
    def is_active(self) -> bool:
        return self.state in ACTIVE_STATES

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["state"] = self.state.value
        return data


class ProgressTracker:
    """Owns the progress state of the current run.

    Attributes:
        _snapshot: Current snapshot; replaced, never mutated.
        _emitter: Emitter notified after every change.
    """

    def __init__(self, emitter: ReconciliationEventEmitter | None = None) -> None:
        self._snapshot = ProgressSnapshot(updated_at=utc_now_iso())
        self._emitter = emitter or ReconciliationEventEmitter()

    @property
    def emitter(self) -> ReconciliationEventEmitter:
        return self._emitter

    @property
    def snapshot(self) -> ProgressSnapshot:
        return self._snapshot

    @property
    def is_active(self) -> bool:
        return self._snapshot.is_active

    def can_transition(self, current: ProgressState, target: ProgressState) -> bool:
        return target in VALID_TRANSITIONS.get(current, [])

    async def begin_run(self, total: int = 0, message: str = "") -> str:
        """Start a new run (idle -> creating).

        A finished run (done or error) is reset implicitly.

        Returns:
            The new run id.

        Raises:
            RunInProgressError: If another run is still active.
        """
        current = self._snapshot
        if current.is_active:
            raise RunInProgressError(current.run_id or "")

        run_id = str(uuid4())
        self._snapshot = ProgressSnapshot(
            state=ProgressState.creating,
            progress=0,
            run_id=run_id,
            total=total,
            completed=0,
            message=message,
            updated_at=utc_now_iso(),
        )
        logger.info("Progress run %s started (%d orders)", run_id, total)
        await self._emitter.emit_progress_changed(self._snapshot)
        return run_id

    async def transition(
        self,
        run_id: str,
        target: ProgressState,
        message: str | None = None,
    ) -> ProgressSnapshot:
        """Move the current run to a new state.

        Progress is forced to 100 on done and 0 on error.

        Raises:
            RunOwnershipError: If run_id is not the current run.
            InvalidProgressTransition: If the transition is not allowed.
        """
        self._check_owner(run_id)
        current = self._snapshot
        if not self.can_transition(current.state, target):
            raise InvalidProgressTransition(
                current.state, target, VALID_TRANSITIONS.get(current.state, [])
            )

        progress = current.progress
        if target == ProgressState.done:
            progress = 100
        elif target in (ProgressState.error, ProgressState.idle):
            progress = 0

        self._snapshot = replace(
            current,
            state=target,
            progress=progress,
            message=current.message if message is None else message,
            updated_at=utc_now_iso(),
        )
        logger.debug(
            "Progress run %s: %s -> %s", run_id, current.state.value, target.value
        )
        await self._emitter.emit_progress_changed(self._snapshot)
        return self._snapshot

    async def set_total(self, run_id: str, total: int) -> None:
        """Set the number of orders the run will reconcile."""
        self._check_owner(run_id)
        self._snapshot = replace(self._snapshot, total=total, updated_at=utc_now_iso())
        await self._emitter.emit_progress_changed(self._snapshot)

    async def update_progress(self, run_id: str, completed: int) -> ProgressSnapshot:
        """Recompute progress as floor(100 * completed / total).

        Progress never decreases within a run.

        Raises:
            RunOwnershipError: If run_id is not the current run.
            InvalidProgressTransition: If the run is not active.
        """
        self._check_owner(run_id)
        current = self._snapshot
        if not current.is_active:
            raise InvalidProgressTransition(current.state, current.state, [])

        computed = (100 * completed) // current.total if current.total else 0
        self._snapshot = replace(
            current,
            completed=max(current.completed, completed),
            progress=min(100, max(current.progress, computed)),
            updated_at=utc_now_iso(),
        )
        await self._emitter.emit_progress_changed(self._snapshot)
        return self._snapshot

    async def fail(self, run_id: str, message: str) -> ProgressSnapshot:
        """Move the current run to error with a message."""
        return await self.transition(run_id, ProgressState.error, message)

    async def acknowledge(self, run_id: str | None = None) -> ProgressSnapshot:
        """Reset a finished run to idle.

        No-op when already idle. A run id, when given, must match the
        finished run.

        Raises:
            RunOwnershipError: If run_id does not match the finished run.
            InvalidProgressTransition: If the run is still active.
        """
        current = self._snapshot
        if current.state == ProgressState.idle:
            return current
        if run_id is not None:
            self._check_owner(run_id)
        if current.is_active:
            raise InvalidProgressTransition(
                current.state, ProgressState.idle, VALID_TRANSITIONS[current.state]
            )

        self._snapshot = ProgressSnapshot(updated_at=utc_now_iso())
        await self._emitter.emit_progress_changed(self._snapshot)
        return self._snapshot

    def _check_owner(self, run_id: str) -> None:
        if run_id != self._snapshot.run_id:
            raise RunOwnershipError(run_id, self._snapshot.run_id)
