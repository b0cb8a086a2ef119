# =============================================================================
# Queue API — Queue Control, Stats and Health
# =============================================================================
#
# ENDPOINTS:
#   GET  /queue/stats        — Queue counters, task counters and status
#   POST /queue/pause        — Stop starting new tasks (in-flight ones finish)
#   POST /queue/resume       — Start pending tasks again
#   POST /queue/concurrency  — Change the worker pool size (1-10)
#   GET  /health             — Liveness of the store and the worker pool
#
# Pause state and concurrency are persisted, so they survive a restart.
# =============================================================================

from __future__ import annotations

import logging
from datetime import UTC, datetime

from fastapi import APIRouter, Depends

from pdf_ingest.api.deps import get_queue_service
from pdf_ingest.models.requests import ConcurrencyRequest
from pdf_ingest.models.responses import (
    ConcurrencyResponse,
    HealthResponse,
    MessageResponse,
    QueueCountersResponse,
    QueueStatsResponse,
    QueueStatusResponse,
    TaskCountersResponse,
)
from pdf_ingest.services.queue_service import PdfQueueService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Queue"])


@router.get(
    "/queue/stats",
    response_model=QueueStatsResponse,
    summary="Queue statistics",
)
async def get_queue_stats(
    service: PdfQueueService = Depends(get_queue_service),
) -> QueueStatsResponse:
    stats = service.get_queue_stats()
    return QueueStatsResponse(
        queue=QueueCountersResponse.model_validate(stats.queue),
        tasks=TaskCountersResponse.model_validate(stats.tasks),
        status=QueueStatusResponse.model_validate(service.get_queue_status()),
    )


@router.post(
    "/queue/pause",
    response_model=MessageResponse,
    summary="Pause the queue",
)
async def pause_queue(
    service: PdfQueueService = Depends(get_queue_service),
) -> MessageResponse:
    await service.pause_queue()
    return MessageResponse(message="Queue paused")


@router.post(
    "/queue/resume",
    response_model=MessageResponse,
    summary="Resume the queue",
)
async def resume_queue(
    service: PdfQueueService = Depends(get_queue_service),
) -> MessageResponse:
    await service.resume_queue()
    return MessageResponse(message="Queue resumed")


@router.post(
    "/queue/concurrency",
    response_model=ConcurrencyResponse,
    summary="Set the number of concurrent workers",
    description=(
        "Raising the limit starts waiting tasks immediately. Lowering it "
        "lets in-flight tasks finish; no new task starts until the number "
        "of running workers is below the new limit."
    ),
)
async def set_concurrency(
    request: ConcurrencyRequest,
    service: PdfQueueService = Depends(get_queue_service),
) -> ConcurrencyResponse:
    await service.set_concurrency(request.concurrency)
    return ConcurrencyResponse(
        message=f"Concurrency set to {request.concurrency}",
        concurrency=service.get_concurrency(),
    )


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
)
async def health(
    service: PdfQueueService = Depends(get_queue_service),
) -> HealthResponse:
    healthy = service.is_healthy()
    return HealthResponse(
        status="healthy" if healthy else "unhealthy",
        queue=QueueStatusResponse.model_validate(service.get_queue_status()),
        timestamp=datetime.now(UTC),
    )
