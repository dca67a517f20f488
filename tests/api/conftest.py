"""Pytest fixtures for API tests.

Provides a TestClient backed by a real import engine: an in-memory
database and the tracking client wired to a ProviderStub transport.
"""

from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient

from src.api.main import app
from src.cli.config import LogiSyncConfig, TrackingConfig
from src.services.engine_provider import ImportEngine, build_engine, set_engine
from tests.helpers import ProviderStub


@pytest.fixture
def provider() -> ProviderStub:
    return ProviderStub()


@pytest.fixture
def import_engine(session_factory, provider: ProviderStub) -> Generator[ImportEngine, None, None]:
    """Install an engine as the process-global engine for the app."""
    config = LogiSyncConfig(
        tracking=TrackingConfig(
            base_url="http://provider.test/mini/",
            poll_interval=0,
            retry_base_delay=0,
        )
    )
    engine = build_engine(
        config, session_factory=session_factory, transport=provider.transport()
    )
    set_engine(engine)
    yield engine
    set_engine(None)


@pytest.fixture
def client(import_engine: ImportEngine) -> Generator[TestClient, None, None]:
    """TestClient running the app lifespan against the test engine."""
    with TestClient(app) as test_client:
        yield test_client
