# =============================================================================
# Tasks API — Status Polling and Task Management
# =============================================================================
#
# ENDPOINTS:
#   GET    /status/{task_id}       — One task, with its extraction result
#   GET    /status                 — All tasks in display order, plus stats
#   POST   /tasks/reorder          — Change the processing order of pending tasks
#   POST   /tasks/{task_id}/retry  — Re-run a completed or failed task
#   DELETE /tasks/completed        — Drop finished tasks
#   DELETE /tasks/{task_id}        — Drop one task that is not being processed
#
# Domain errors (unknown id, task in flight, bad reorder list) propagate as
# QueueError subclasses and are turned into 400/404/409 by the handler
# registered in main.py.
# =============================================================================

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from pdf_ingest.api.deps import get_queue_service
from pdf_ingest.errors import NotFoundError
from pdf_ingest.models.requests import ReorderRequest
from pdf_ingest.models.responses import (
    ClearedResponse,
    MessageResponse,
    QueueCountersResponse,
    TaskCountersResponse,
    TaskListResponse,
    TaskResponse,
    TaskSummary,
)
from pdf_ingest.services.queue_service import PdfQueueService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Tasks"])


# ---------------------------------------------------------------------------
# GET /status — Polling
# ---------------------------------------------------------------------------


@router.get(
    "/status/{task_id}",
    response_model=TaskResponse,
    summary="Get the status of one task",
    description=(
        "Returns the task record. Once status is 'completed' the response "
        "carries the extracted text; once 'failed' it carries the error."
    ),
)
async def get_task_status(
    task_id: str,
    service: PdfQueueService = Depends(get_queue_service),
) -> TaskResponse:
    task = service.get_task(task_id)
    if task is None:
        raise NotFoundError(f"Task {task_id} not found")

    stats = service.get_queue_stats()
    return TaskResponse(
        **task.model_dump(exclude={"path"}),
        queue_length=stats.queue.length,
        queue_working=stats.queue.working,
    )


@router.get(
    "/status",
    response_model=TaskListResponse,
    summary="List all tasks",
)
async def list_tasks(
    service: PdfQueueService = Depends(get_queue_service),
) -> TaskListResponse:
    """All tasks sorted by display order, without their extracted text."""
    stats = service.get_queue_stats()
    summaries = [
        TaskSummary(
            **task.model_dump(exclude={"path", "result"}),
            has_result=task.result is not None,
        )
        for task in service.get_all_tasks()
    ]
    return TaskListResponse(
        tasks=summaries,
        queue_stats=QueueCountersResponse.model_validate(stats.queue),
        task_stats=TaskCountersResponse.model_validate(stats.tasks),
    )


# ---------------------------------------------------------------------------
# /tasks — Management
# ---------------------------------------------------------------------------


@router.post(
    "/tasks/reorder",
    response_model=MessageResponse,
    summary="Reorder pending tasks",
    description=(
        "Body lists every pending task id exactly once, in the new order. "
        "Tasks already being processed cannot be reordered."
    ),
)
async def reorder_tasks(
    request: ReorderRequest,
    service: PdfQueueService = Depends(get_queue_service),
) -> MessageResponse:
    await service.reorder_tasks(request.task_ids)
    return MessageResponse(message=f"Reordered {len(request.task_ids)} task(s)")


@router.post(
    "/tasks/{task_id}/retry",
    response_model=MessageResponse,
    summary="Retry a finished task",
)
async def retry_task(
    task_id: str,
    service: PdfQueueService = Depends(get_queue_service),
) -> MessageResponse:
    await service.retry_task(task_id)
    return MessageResponse(message=f"Task {task_id} re-queued")


# Registered before /tasks/{task_id} so "completed" is not read as an id.
@router.delete(
    "/tasks/completed",
    response_model=ClearedResponse,
    summary="Clear finished tasks",
)
async def clear_completed_tasks(
    service: PdfQueueService = Depends(get_queue_service),
) -> ClearedResponse:
    cleared = await service.clear_completed_tasks()
    return ClearedResponse(
        message=f"Cleared {cleared} finished task(s)",
        cleared_count=cleared,
    )


@router.delete(
    "/tasks/{task_id}",
    response_model=MessageResponse,
    summary="Remove a task",
)
async def remove_task(
    task_id: str,
    service: PdfQueueService = Depends(get_queue_service),
) -> MessageResponse:
    if not await service.remove_task(task_id):
        raise NotFoundError(f"Task {task_id} not found")
    return MessageResponse(message=f"Task {task_id} removed")
