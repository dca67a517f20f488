"""Import engine provider: single owner of the process-global engine.

API routes and the CLI obtain the import coordinator, progress tracker
and tracking client from HERE. The engine is wired from LogiSyncConfig;
the API builds it once per process, the CLI builds one per command.
"""

import logging
import os
from collections.abc import Callable
from dataclasses import dataclass

import httpx
from sqlalchemy.orm import Session

from src.cli.config import LogiSyncConfig, load_config
from src.db.connection import SessionLocal, configure_database
from src.orchestrator.batch.events import ReconciliationEventEmitter
from src.orchestrator.batch.progress import ProgressTracker
from src.orchestrator.batch.reconciler import Reconciler
from src.services.import_coordinator import ImportCoordinator
from src.services.operation_log_service import OperationLogService
from src.services.order_store import OrderStore
from src.services.row_validator import RowValidator
from src.services.tracking_client import TrackingClient
from src.services.tracking_sync_service import TrackingSyncService

logger = logging.getLogger(__name__)


@dataclass
class ImportEngine:
    """Wired collaborators of one engine instance."""

    config: LogiSyncConfig
    coordinator: ImportCoordinator
    tracker: ProgressTracker
    store: OrderStore
    operation_log: OperationLogService
    client: TrackingClient

    async def aclose(self) -> None:
        await self.client.aclose()


def build_engine(
    config: LogiSyncConfig,
    session_factory: Callable[[], Session] = SessionLocal,
    emitter: ReconciliationEventEmitter | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ImportEngine:
    """Wire an engine from configuration.

    Args:
        config: Loaded configuration.
        session_factory: Session factory for the store and operation log.
        emitter: Event emitter shared with observers (e.g. SSE).
        transport: Optional httpx transport for the tracking client.

    Returns:
        A ready ImportEngine.
    """
    tracking = config.tracking
    client = TrackingClient(
        base_url=tracking.base_url,
        appid=tracking.appid,
        outerid=tracking.outerid,
        timeout=tracking.request_timeout,
        max_retries=tracking.max_retries,
        base_delay=tracking.retry_base_delay,
        poll_interval=tracking.poll_interval,
        poll_attempts=tracking.poll_attempts,
        transport=transport,
    )
    store = OrderStore(session_factory)
    operation_log = OperationLogService(session_factory)
    tracker = ProgressTracker(emitter)
    reconciler = Reconciler(
        TrackingSyncService(client, store, query_timeout=tracking.call_timeout),
        tracker,
        operation_log=operation_log,
        # Bounded inside the sync service, around the provider query only
        call_timeout=None,
        max_concurrency=tracking.max_concurrency,
    )
    coordinator = ImportCoordinator(
        store,
        reconciler,
        tracker,
        operation_log=operation_log,
        validator=RowValidator(
            start_row=config.importer.start_row,
            default_department=config.importer.default_department,
        ),
        store_timeout=config.importer.store_timeout,
    )
    return ImportEngine(
        config=config,
        coordinator=coordinator,
        tracker=tracker,
        store=store,
        operation_log=operation_log,
        client=client,
    )


# -- Process-global engine ---------------------------------------------------
_engine: ImportEngine | None = None


def get_engine() -> ImportEngine:
    """Get or create the process-global engine.

    Configuration is loaded from LOGISYNC_CONFIG_PATH when set, otherwise
    from the standard locations.
    """
    global _engine
    if _engine is None:
        config = load_config(os.environ.get("LOGISYNC_CONFIG_PATH"))
        if config.database.url:
            configure_database(config.database.url)
        _engine = build_engine(config)
        logger.info(
            "Import engine initialized (max_concurrency=%d, max_retries=%d)",
            config.tracking.max_concurrency,
            config.tracking.max_retries,
        )
    return _engine


def set_engine(engine: ImportEngine | None) -> None:
    """Replace the process-global engine (tests, embedding)."""
    global _engine
    _engine = engine


async def shutdown_engine() -> None:
    """Close the process-global engine's connections."""
    global _engine
    if _engine is not None:
        await _engine.aclose()
        _engine = None
        logger.info("Import engine shut down")
