# =============================================================================
# Application Entry Point
# =============================================================================
#
# create_app() builds the FastAPI application. The queue service is
# composed inside the lifespan so that the worker pool runs on the same
# event loop as the server:
#
#   store     → JsonTaskStore(DATABASE_PATH)
#   extractor → DoclingExtractor (imported here only, so the rest of the
#               package and the test suite work without Docling loaded)
#   engine    → QueueEngine(store, extractor)
#   service   → PdfQueueService(store, engine)
#
# On startup the engine recovers tasks left "processing" by a previous run.
# On shutdown it waits up to SHUTDOWN_DRAIN_SECONDS for in-flight workers.
#
# Run with:
#   uvicorn pdf_ingest.main:app --port 5000
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from pdf_ingest.api import database, queue, tasks, upload
from pdf_ingest.api.middleware import RequestLoggingMiddleware
from pdf_ingest.config import Settings, get_settings
from pdf_ingest.errors import QueueError
from pdf_ingest.models.responses import RootResponse
from pdf_ingest.services.queue_engine import QueueEngine
from pdf_ingest.services.queue_service import PdfQueueService
from pdf_ingest.services.task_store import JsonTaskStore

logger = logging.getLogger(__name__)


def build_queue_service(settings: Settings) -> PdfQueueService:
    """Wire the default store, Docling extractor, engine and facade."""
    from pdf_ingest.services.docling_extractor import DoclingExtractor

    store = JsonTaskStore(
        settings.database_path,
        default_concurrency=settings.default_concurrency,
    )
    extractor = DoclingExtractor(
        do_ocr=settings.docling_do_ocr,
        do_table_structure=settings.docling_do_table_structure,
    )
    engine = QueueEngine(
        store,
        extractor,
        extraction_timeout=settings.extraction_timeout_seconds,
        extracted_text_dir=settings.extracted_text_dir or None,
    )
    return PdfQueueService(
        store,
        engine,
        clear_failed_tasks=settings.clear_failed_tasks,
        backup_dir=settings.backup_dir,
    )


async def queue_error_handler(request: Request, exc: QueueError) -> JSONResponse:
    """Map domain errors to their HTTP status with an {"error": ...} body."""
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc)})


def create_app(
    service: PdfQueueService | None = None,
    settings: Settings | None = None,
) -> FastAPI:
    """
    Build the application.

    Args:
        service: a prebuilt, not yet started queue service. Tests pass one
            backed by a temporary store and a fake extractor. When omitted,
            build_queue_service() creates the Docling-backed default.
        settings: overrides get_settings() for this app, including the
            upload limits and directories the routers read.
    """
    app_settings = settings or get_settings()

    logging.basicConfig(
        level=app_settings.log_level.upper(),
        format="%(asctime)s %(levelname)-8s [%(name)s] %(message)s",
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        queue_service = service or build_queue_service(app_settings)
        await queue_service.start()
        app.state.queue_service = queue_service
        logger.info(
            "%s %s started (concurrency=%d)",
            app_settings.app_name, app_settings.app_version,
            queue_service.get_concurrency(),
        )
        try:
            yield
        finally:
            await queue_service.shutdown(app_settings.shutdown_drain_seconds)
            app.state.queue_service = None
            logger.info("Queue service stopped")

    app = FastAPI(
        title=app_settings.app_name,
        description="Upload PDFs, extract their text in a bounded worker queue, poll for results.",
        version=app_settings.app_version,
        debug=app_settings.debug,
        lifespan=lifespan,
    )
    app.dependency_overrides[get_settings] = lambda: app_settings

    app.add_middleware(RequestLoggingMiddleware)
    app.add_exception_handler(QueueError, queue_error_handler)

    app.include_router(upload.router)
    app.include_router(tasks.router)
    app.include_router(queue.router)
    app.include_router(database.router)

    @app.get("/", response_model=RootResponse, tags=["Service"])
    async def root() -> RootResponse:
        return RootResponse(
            message=f"Welcome to the {app_settings.app_name} API",
            version=app_settings.app_version,
            endpoints={
                "upload": "POST /upload",
                "status": "GET /status/{task_id}",
                "allTasks": "GET /status",
                "queueStats": "GET /queue/stats",
                "files": "GET /files",
                "database": "GET /database/info",
                "health": "GET /health",
            },
        )

    return app


app = create_app()
