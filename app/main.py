"""FastAPI application factory.

Provides create_app() function to create and configure FastAPI application instance.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

from core.errors import ControlError
from crawler.orchestrator import IndexingOrchestrator
from knowledge.index_writer import IndexWriter
from mongo import MongoClient
from morphology.lemmatizer import Lemmatizer
from observability.logging import configure_logging
from observability.metrics import MetricsMiddleware, metrics_app
from retrieval.search import SearchEngine
from settings import Settings, get_settings

logger = structlog.get_logger(__name__)


def _parse_cors_origins(raw: str | list[str] | tuple[str, ...]) -> list[str]:
    """Return a list of CORS origins from a raw env value."""

    if isinstance(raw, (list, tuple)):
        values = [str(item).strip() for item in raw if str(item).strip()]
    else:
        values = [item.strip() for item in str(raw or "").split(",") if item.strip()]
    return values or ["*"]


async def control_error_handler(request: Request, exc: ControlError) -> ORJSONResponse:
    logger.info("control_error", path=request.url.path, error=exc.message)
    return ORJSONResponse({"result": False, "error": exc.message}, status_code=400)


def create_app(
    settings: Settings | None = None,
    *,
    store: MongoClient | None = None,
    lemmatizer: Lemmatizer | None = None,
    orchestrator_kwargs: dict | None = None,
) -> FastAPI:
    """Create and configure FastAPI application instance.

    Parameters
    ----------
    settings
        Application settings. Defaults to :func:`settings.get_settings`.
    store
        Prebuilt storage client; one is built from ``settings.mongo`` when
        omitted and closed on shutdown.
    lemmatizer
        Prebuilt lemmatizer; defaults to the Russian/English pipeline.
    orchestrator_kwargs
        Extra keyword arguments for :class:`IndexingOrchestrator`.

    Returns
    -------
    FastAPI
        Configured FastAPI application instance.
    """

    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        configure_logging()
        owns_store = store is None
        mongo_client = store or MongoClient.from_settings(settings.mongo)
        await mongo_client.ensure_indexes()
        lemma_pipeline = lemmatizer or Lemmatizer(min_word_length=settings.search.min_word_length)
        writer = IndexWriter(mongo_client, lemma_pipeline)

        app.state.settings = settings
        app.state.store = mongo_client
        app.state.lemmatizer = lemma_pipeline
        app.state.writer = writer
        app.state.orchestrator = IndexingOrchestrator(
            settings, mongo_client, writer, **(orchestrator_kwargs or {})
        )
        app.state.search = SearchEngine(mongo_client, lemma_pipeline, settings.search)
        logger.info("app_started", sites=[site.url for site in settings.sites])
        try:
            yield
        finally:
            orchestrator: IndexingOrchestrator = app.state.orchestrator
            if orchestrator.is_indexing_in_progress():
                await orchestrator.stop_indexing()
            if owns_store:
                await mongo_client.close()
            logger.info("app_stopped")

    app = FastAPI(lifespan=lifespan, debug=settings.debug, title="Site search engine")

    cors_origins = _parse_cors_origins(settings.cors_origins)
    allow_all_origins = "*" in cors_origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if allow_all_origins else cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.middleware("http")(MetricsMiddleware())
    app.add_exception_handler(ControlError, control_error_handler)

    app.mount("/metrics", metrics_app)

    from app.routers import indexing, search, stats

    app.include_router(stats.router)
    app.include_router(indexing.router)
    app.include_router(search.router)
    return app
