"""Tests for web routes and API endpoints.

Tests the FastAPI application routes using httpx AsyncClient, covering
the health endpoint and the manual triage trigger.
"""

from contextlib import asynccontextmanager
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from mailtriage.config_schema import AppConfig
from mailtriage.engine.state import ThreadStateStore
from mailtriage.engine.triage import TriageCycleResult
from mailtriage.web.app import create_app
from mailtriage.web.routes import APP_VERSION

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> ThreadStateStore:
    """Return a store with one thread awaiting clarification."""
    s = ThreadStateStore()
    s.upsert("thread-001", "msg-001")
    return s


@pytest.fixture
def mock_engine() -> MagicMock:
    """Return a mock TriageEngine that has not run yet."""
    engine = MagicMock()
    engine.last_cycle = None
    engine.last_cycle_at = None
    engine.run_cycle = AsyncMock(
        return_value=TriageCycleResult(cycle_id="cycle-abc", listed=2, clarifications=1, ignored=1)
    )
    return engine


@pytest.fixture
def app(store: ThreadStateStore, sample_config: AppConfig, mock_engine: MagicMock) -> FastAPI:
    """Create a FastAPI app with test dependencies."""
    test_app = create_app()

    # Override app state with test dependencies
    test_app.state.store = store
    test_app.state.config = sample_config
    test_app.state.triage_engine = mock_engine
    test_app.state.scheduler = None

    return test_app


@pytest.fixture
async def client(app: FastAPI) -> AsyncClient:
    """Return an httpx AsyncClient for the test app."""
    # Override lifespan to avoid real initialization
    app.router.lifespan_context = _noop_lifespan
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@asynccontextmanager
async def _noop_lifespan(app: FastAPI):
    """No-op lifespan that preserves existing app.state."""
    yield


# ---------------------------------------------------------------------------
# Tests: Health
# ---------------------------------------------------------------------------


async def test_health_before_first_cycle(client: AsyncClient):
    """Health reports tracked threads and no cycle yet."""
    response = await client.get("/api/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["tracked_threads"] == 1
    assert data["scheduler_running"] is False
    assert data["last_triage_cycle"] is None
    assert data["last_cycle"] is None
    assert data["version"] == APP_VERSION


async def test_health_reports_last_cycle(client: AsyncClient, mock_engine: MagicMock):
    """Health includes the last cycle's ID, time and counters."""
    mock_engine.last_cycle = TriageCycleResult(cycle_id="cycle-xyz", instructions=3)
    mock_engine.last_cycle_at = datetime(2025, 1, 6, 10, 0, tzinfo=UTC)

    response = await client.get("/api/health")

    data = response.json()
    assert data["last_triage_cycle_id"] == "cycle-xyz"
    assert data["last_triage_cycle"] == "2025-01-06T10:00:00+00:00"
    assert data["last_cycle"]["instructions"] == 3


async def test_health_reports_scheduler(app: FastAPI, client: AsyncClient):
    scheduler = MagicMock()
    scheduler.running = True
    app.state.scheduler = scheduler

    response = await client.get("/api/health")

    assert response.json()["scheduler_running"] is True


async def test_health_degraded_without_engine(app: FastAPI, client: AsyncClient):
    """Startup failures leave the service up but degraded."""
    app.state.triage_engine = None
    app.state.store = None

    response = await client.get("/api/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "degraded"
    assert data["tracked_threads"] == 0


# ---------------------------------------------------------------------------
# Tests: Manual trigger
# ---------------------------------------------------------------------------


async def test_run_triage_returns_cycle_result(client: AsyncClient, mock_engine: MagicMock):
    response = await client.post("/api/triage/run")

    assert response.status_code == 200
    data = response.json()
    assert data["cycle_id"] == "cycle-abc"
    assert data["clarifications"] == 1
    assert data["ignored"] == 1
    assert data["aborted"] is False
    mock_engine.run_cycle.assert_awaited_once()


async def test_run_triage_without_engine_returns_503(app: FastAPI, client: AsyncClient):
    app.state.triage_engine = None

    response = await client.post("/api/triage/run")

    assert response.status_code == 503
    assert "not initialized" in response.json()["detail"]
