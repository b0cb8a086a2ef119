# =============================================================================
# API Response Models — Pydantic V2 Schemas
# =============================================================================
#
# Shapes of data coming OUT of the API. Task detail responses embed the
# full extraction result; list responses only say whether one exists, since
# extracted text can be large.
# =============================================================================

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from pdf_ingest.models.task import TaskResult, TaskStatus


class MessageResponse(BaseModel):
    """Generic acknowledgement."""

    message: str


class RootResponse(BaseModel):
    """Response for GET /: service banner."""

    message: str
    version: str
    endpoints: dict[str, str]


class UploadedTask(BaseModel):
    task_id: str
    filename: str


class UploadResponse(BaseModel):
    """
    Response for POST /upload.

    The files are queued, not processed. Poll GET /status/{task_id}.
    """

    message: str
    tasks: list[UploadedTask]
    queue_length: int = Field(description="Pending tasks after this upload")
    status: TaskStatus = TaskStatus.PENDING


class TaskResponse(BaseModel):
    """Full task record, returned by GET /status/{task_id}."""

    id: str
    filename: str
    status: TaskStatus
    created_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None
    error: str | None = None
    result: TaskResult | None = None
    display_order: int | None = None
    queue_length: int = Field(description="Pending tasks in the queue right now")
    queue_working: int = Field(description="Tasks being processed right now")

    model_config = ConfigDict(from_attributes=True)


class TaskSummary(BaseModel):
    """Task record without the extraction result, for list views."""

    id: str
    filename: str
    status: TaskStatus
    created_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None
    error: str | None = None
    display_order: int | None = None
    has_result: bool

    model_config = ConfigDict(from_attributes=True)


class QueueCountersResponse(BaseModel):
    length: int
    working: int
    concurrency: int
    paused: bool

    model_config = ConfigDict(from_attributes=True)


class TaskCountersResponse(BaseModel):
    total: int
    pending: int
    processing: int
    completed: int
    failed: int

    model_config = ConfigDict(from_attributes=True)


class QueueStatusResponse(BaseModel):
    is_running: bool
    is_paused: bool
    is_idle: bool
    length: int
    working: int

    model_config = ConfigDict(from_attributes=True)


class TaskListResponse(BaseModel):
    """Response for GET /status: every task in display order."""

    tasks: list[TaskSummary]
    queue_stats: QueueCountersResponse
    task_stats: TaskCountersResponse


class QueueStatsResponse(BaseModel):
    """Response for GET /queue/stats."""

    queue: QueueCountersResponse
    tasks: TaskCountersResponse
    status: QueueStatusResponse


class ConcurrencyResponse(BaseModel):
    message: str
    concurrency: int


class ClearedResponse(BaseModel):
    message: str
    cleared_count: int


class HealthResponse(BaseModel):
    """Response for GET /health."""

    status: str = Field(description="'healthy' or 'unhealthy'")
    queue: QueueStatusResponse
    timestamp: datetime


class FileInfo(BaseModel):
    filename: str
    size: int
    uploaded_at: datetime
    modified_at: datetime


class FileListResponse(BaseModel):
    files: list[FileInfo]
    total: int


class DatabaseInfoResponse(BaseModel):
    path: str
    task_count: int
    pending_count: int
    processing_count: int
    completed_count: int
    failed_count: int
    last_backup: datetime | None = None
    version: str


class StatisticsResponse(BaseModel):
    total_processed: int
    total_failed: int
    last_processed_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class BackupResponse(BaseModel):
    message: str
    backup_path: str


class ErrorResponse(BaseModel):
    """Body of every error produced from a QueueError."""

    error: str
