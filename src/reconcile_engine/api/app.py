"""FastAPI application factory with lifespan management."""

from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI

from reconcile_engine.api.middleware import RequestTimingMiddleware
from reconcile_engine.api.routes_health import router as health_router
from reconcile_engine.api.routes_runs import router as runs_router
from reconcile_engine.cancellation import CancellationRegistry
from reconcile_engine.config.settings import Settings
from reconcile_engine.discovery.fixture_provider import InMemoryEvidenceProvider, load_fixture
from reconcile_engine.generation.gemini_provider import GeminiProvider
from reconcile_engine.observability.logger import get_logger, setup_logging
from reconcile_engine.pipeline.orchestrator import ReconciliationPipeline
from reconcile_engine.storage.sqlite_run_store import SQLiteRunStore

logger = get_logger("app")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # create_app may pre-seed collaborators on app.state
    settings = getattr(app.state, "settings", None) or Settings()
    setup_logging(settings.log_level, settings.log_json)

    Path(settings.sqlite_run_db_path).parent.mkdir(parents=True, exist_ok=True)

    # Storage
    store = SQLiteRunStore(settings.sqlite_run_db_path)
    await store.initialize()

    # Evidence content
    provider = getattr(app.state, "provider", None)
    if provider is None:
        if settings.evidence_fixture_path:
            provider = load_fixture(settings.evidence_fixture_path)
        else:
            logger.warning("no_evidence_source_configured")
            provider = InMemoryEvidenceProvider([])

    # LLM
    llm = getattr(app.state, "llm", None) or GeminiProvider(
        api_key=settings.google_api_key,
        model=settings.gemini_model,
        max_tokens=settings.gemini_max_tokens,
    )

    cancellation = CancellationRegistry()
    pipeline = ReconciliationPipeline(
        provider=provider,
        llm=llm,
        settings=settings,
        dispositions=store,
        store=store,
        cancellation=cancellation,
    )

    # Attach to app state
    app.state.settings = settings
    app.state.run_store = store
    app.state.pipeline = pipeline
    app.state.active_runs = set()

    logger.info("startup_complete", db_path=settings.sqlite_run_db_path)

    yield

    for run_id in list(app.state.active_runs):
        pipeline.cancel(run_id)
    logger.info("shutdown_complete", cancelled_runs=len(app.state.active_runs))


def create_app(
    settings: Settings | None = None,
    llm=None,
    provider=None,
) -> FastAPI:
    app = FastAPI(
        title="Reconciliation Engine",
        version="1.0.0",
        description="Infers intent atoms and molecules from repository evidence",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.llm = llm
    app.state.provider = provider
    app.add_middleware(RequestTimingMiddleware)
    app.include_router(health_router, tags=["health"])
    app.include_router(runs_router, tags=["runs"])
    return app
