# =============================================================================
# Database API — Task Store Maintenance
# =============================================================================
#
# ENDPOINTS:
#   GET  /database/info        — File location, task counts, last backup
#   GET  /database/statistics  — Lifetime processed/failed counters
#   POST /database/backup      — Copy the store file into BACKUP_DIR
#   POST /database/reset       — Drop all tasks and restore default settings
#
# Reset is refused (409) while any task is being processed. Uploaded files
# are not touched by reset; use DELETE /files for that.
# =============================================================================

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from pdf_ingest.api.deps import get_queue_service
from pdf_ingest.models.responses import (
    BackupResponse,
    DatabaseInfoResponse,
    MessageResponse,
    StatisticsResponse,
)
from pdf_ingest.services.queue_service import PdfQueueService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/database", tags=["Database"])


@router.get("/info", response_model=DatabaseInfoResponse, summary="Task store info")
async def get_database_info(
    service: PdfQueueService = Depends(get_queue_service),
) -> DatabaseInfoResponse:
    return DatabaseInfoResponse(**service.get_database_info())


@router.get(
    "/statistics",
    response_model=StatisticsResponse,
    summary="Processing statistics",
)
async def get_statistics(
    service: PdfQueueService = Depends(get_queue_service),
) -> StatisticsResponse:
    return StatisticsResponse.model_validate(service.get_statistics())


@router.post("/backup", response_model=BackupResponse, summary="Back up the task store")
async def backup_database(
    service: PdfQueueService = Depends(get_queue_service),
) -> BackupResponse:
    path = await service.backup_database()
    logger.info("Task store backed up to %s", path)
    return BackupResponse(message="Backup created", backup_path=str(path))


@router.post("/reset", response_model=MessageResponse, summary="Reset the task store")
async def reset_database(
    service: PdfQueueService = Depends(get_queue_service),
) -> MessageResponse:
    await service.reset_database()
    logger.warning("Task store reset via API")
    return MessageResponse(message="Database reset")
