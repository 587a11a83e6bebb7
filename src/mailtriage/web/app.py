"""FastAPI application hosting the triage scheduler.

Creates the FastAPI app with:
- Lifespan context manager for dependency initialization and scheduler
- API router (health, manual trigger)

The poll scheduler runs on uvicorn's event loop, so triage cycles and
request handlers share one thread and one ThreadStateStore.

Usage:
    from mailtriage.web.app import create_app

    app = create_app()
    # Run with: uvicorn.run(app, host="127.0.0.1", port=5000)
"""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

from mailtriage.core.logging import get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize dependencies on startup, clean up on shutdown.

    On startup:
    1. Load config
    2. Create the thread state store
    3. Initialize Gmail gateway, classifier and triage engine
    4. Start the poll scheduler

    On shutdown:
    - Stop the poll scheduler
    """
    import anthropic

    from mailtriage.classifier.intent import IntentClassifier
    from mailtriage.config import get_config
    from mailtriage.core.errors import ConfigLoadError, ConfigValidationError, MailboxError
    from mailtriage.engine.scheduler import PollScheduler
    from mailtriage.engine.state import ThreadStateStore
    from mailtriage.engine.triage import TriageEngine
    from mailtriage.mailbox.gmail import create_gmail_gateway

    app.state.store = None
    app.state.triage_engine = None
    app.state.scheduler = None

    # 1. Load config
    try:
        config = get_config()
    except (ConfigLoadError, ConfigValidationError) as e:
        logger.error("config_load_failed", error=str(e))
        app.state.config = None
        yield
        return

    app.state.config = config

    # 2. State store, owned by the process for its whole lifetime
    store = ThreadStateStore()
    app.state.store = store

    # 3. Gateway, classifier and engine
    triage_engine = None
    try:
        gateway = create_gmail_gateway(config)
        classifier = IntentClassifier(anthropic.AsyncAnthropic(max_retries=3), config)
        triage_engine = TriageEngine(
            gateway=gateway,
            classifier=classifier,
            store=store,
            config=config,
        )
    except (ConfigLoadError, MailboxError, anthropic.AnthropicError) as e:
        logger.error("triage_engine_init_failed", error=str(e), error_type=type(e).__name__)

    app.state.triage_engine = triage_engine

    # 4. Poll scheduler
    scheduler = None
    if triage_engine:
        scheduler = PollScheduler(
            triage_engine,
            interval_seconds=config.triage.interval_seconds,
            max_instances=config.triage.max_overlapping_cycles,
        )
        scheduler.start()

    app.state.scheduler = scheduler

    yield

    # Shutdown
    if scheduler:
        scheduler.shutdown()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI instance
    """
    from mailtriage.web.routes import APP_VERSION, api_router

    app = FastAPI(
        title="Mail Triage",
        description="Polls the triage mailbox and loops clarifications with senders",
        version=APP_VERSION,
        lifespan=lifespan,
    )

    app.include_router(api_router)

    return app
