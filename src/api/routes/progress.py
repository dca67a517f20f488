"""FastAPI routes for progress polling and SSE streaming.

Provides the current progress snapshot, a Server-Sent Events (SSE)
stream of run events for web clients, and acknowledgement of a
finished run.
"""

import asyncio
import json
from typing import AsyncGenerator

from fastapi import APIRouter, Depends, HTTPException, Request
from sse_starlette.sse import EventSourceResponse

from src.api.schemas import AcknowledgeRequest, ProgressResponse
from src.orchestrator.batch import (
    ALL_RUNS,
    InvalidProgressTransition,
    ProgressSnapshot,
    RunOwnershipError,
    SSEProgressObserver,
)
from src.services.engine_provider import ImportEngine, get_engine

router = APIRouter(tags=["progress"])

# Module-level SSE observer instance, registered with the engine's
# event emitter at application startup
sse_observer = SSEProgressObserver()

PING_INTERVAL_SECONDS = 15.0


def _to_response(snapshot: ProgressSnapshot) -> ProgressResponse:
    return ProgressResponse(**snapshot.to_dict())


async def _event_generator(
    request: Request,
    run_id: str,
    queue: asyncio.Queue,
) -> AsyncGenerator[dict, None]:
    """Generate SSE events from the subscription queue.

    Yields events with a 15-second timeout to send ping events and
    prevent connection timeouts from load balancers.

    Args:
        request: FastAPI request object for disconnect detection.
        run_id: Run id of the subscription, or ALL_RUNS.
        queue: Async queue receiving run events.

    Yields:
        Event dictionaries with a JSON 'data' payload.
    """
    try:
        while True:
            if await request.is_disconnected():
                break

            try:
                event = await asyncio.wait_for(queue.get(), timeout=PING_INTERVAL_SECONDS)
                # Unnamed SSE event with the event type embedded in the data
                yield {
                    "data": json.dumps(
                        {
                            "event": event["event"],
                            "data": event["data"],
                        },
                        ensure_ascii=False,
                    ),
                }
            except asyncio.TimeoutError:
                yield {
                    "data": json.dumps({"event": "ping"}),
                }
    finally:
        sse_observer.unsubscribe(run_id, queue)


@router.get("/progress", response_model=ProgressResponse)
def get_progress(engine: ImportEngine = Depends(get_engine)) -> ProgressResponse:
    """Get the current progress snapshot (fallback for non-SSE clients)."""
    return _to_response(engine.tracker.snapshot)


@router.get("/progress/stream")
async def stream_progress(
    request: Request,
    run_id: str | None = None,
) -> EventSourceResponse:
    """Stream run events via Server-Sent Events.

    Without ``run_id`` the stream follows every run. Sends ping events
    every 15 seconds; the subscription is removed when the client
    disconnects.
    """
    key = run_id or ALL_RUNS
    queue = sse_observer.subscribe(key)

    return EventSourceResponse(
        _event_generator(request, key, queue),
        media_type="text/event-stream",
    )


@router.post("/progress/acknowledge", response_model=ProgressResponse)
async def acknowledge_progress(
    payload: AcknowledgeRequest | None = None,
    engine: ImportEngine = Depends(get_engine),
) -> ProgressResponse:
    """Reset a finished run (done or error) to idle.

    Raises:
        HTTPException: 409 if the run is still active or is not the
            current run.
    """
    run_id = payload.run_id if payload is not None else None
    try:
        snapshot = await engine.tracker.acknowledge(run_id)
    except (InvalidProgressTransition, RunOwnershipError) as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _to_response(snapshot)
