# =============================================================================
# API Dependencies
# =============================================================================
#
# The queue service is built once in the application lifespan and stored
# on `app.state`; handlers receive it through Depends(get_queue_service).
# Tests either pass a prebuilt service to create_app() or override this
# dependency.
# =============================================================================

from __future__ import annotations

from fastapi import HTTPException, Request

from pdf_ingest.services.queue_service import PdfQueueService


def get_queue_service(request: Request) -> PdfQueueService:
    """FastAPI dependency returning the running queue service."""
    service: PdfQueueService | None = getattr(request.app.state, "queue_service", None)
    if service is None:
        raise HTTPException(
            status_code=503,
            detail="Queue service is not initialized.",
        )
    return service
