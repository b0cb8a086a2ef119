# =============================================================================
# Task Records — Persisted Queue State
# =============================================================================
#
# These models are what the JSON task store reads and writes. The file
# layout is a single document:
#
#   {
#     "tasks":      [Task, ...],
#     "settings":   QueueSettings,
#     "statistics": ProcessingStatistics
#   }
#
# Task invariants are enforced by a model validator, so a merge that would
# leave a record inconsistent (e.g. completed without a result) fails
# validation instead of reaching disk.
# =============================================================================

from __future__ import annotations

import enum
import secrets
import string
import time
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field, model_validator

from pdf_ingest.config import MIN_CONCURRENCY

STORE_VERSION = "1.0.0"

_ID_ALPHABET = string.ascii_lowercase + string.digits


def utcnow() -> datetime:
    return datetime.now(UTC)


def generate_task_id() -> str:
    """Return a new id of the form ``pdf_<epoch-ms>_<9 random chars>``."""
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"pdf_{int(time.time() * 1000)}_{suffix}"


class TaskStatus(str, enum.Enum):
    """
    Processing state of a queued PDF.

    State machine:
        PENDING → PROCESSING → COMPLETED
                             → FAILED
        PROCESSING → PENDING            (restart recovery)
        COMPLETED / FAILED → PENDING    (explicit retry)
    """

    PENDING = "pending"          # Admitted, waiting for a free worker slot
    PROCESSING = "processing"    # A worker is running the extractor
    COMPLETED = "completed"      # Result attached
    FAILED = "failed"            # Error attached

    @property
    def is_finished(self) -> bool:
        return self in (TaskStatus.COMPLETED, TaskStatus.FAILED)


ALLOWED_TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.PENDING: frozenset({TaskStatus.PROCESSING}),
    TaskStatus.PROCESSING: frozenset(
        {TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.PENDING}
    ),
    TaskStatus.COMPLETED: frozenset({TaskStatus.PENDING}),
    TaskStatus.FAILED: frozenset({TaskStatus.PENDING}),
}


def can_transition(current: TaskStatus, target: TaskStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


class TaskResult(BaseModel):
    """Extraction output attached to a completed task."""

    filename: str
    processed_at: datetime
    extracted_text: str
    page_count: int = Field(ge=1)
    file_size: int = Field(ge=0)
    metadata: dict[str, Any] = Field(default_factory=dict)


class Task(BaseModel):
    """One unit of queued PDF processing work."""

    id: str
    filename: str
    path: str
    status: TaskStatus = TaskStatus.PENDING
    created_at: datetime = Field(default_factory=utcnow)
    started_at: datetime | None = None
    completed_at: datetime | None = None
    error: str | None = None
    result: TaskResult | None = None
    # Legacy records written before ordering existed have no value here;
    # the store sorts them by created_at.
    display_order: int | None = None

    @model_validator(mode="after")
    def _check_invariants(self) -> Task:
        status = self.status

        if status is TaskStatus.COMPLETED:
            if self.result is None or self.error is not None:
                raise ValueError("completed task must carry a result and no error")
        elif status is TaskStatus.FAILED:
            if self.error is None or self.result is not None:
                raise ValueError("failed task must carry an error and no result")
        elif self.result is not None or self.error is not None:
            raise ValueError(f"{status.value} task cannot carry a result or error")

        if status is TaskStatus.PENDING and self.started_at is not None:
            raise ValueError("pending task cannot have started_at")
        if status is not TaskStatus.PENDING and self.started_at is None:
            raise ValueError(f"{status.value} task must have started_at")
        if status.is_finished != (self.completed_at is not None):
            raise ValueError("completed_at is set exactly when the task is finished")

        if self.started_at is not None and self.started_at < self.created_at:
            raise ValueError("started_at precedes created_at")
        if (
            self.completed_at is not None
            and self.started_at is not None
            and self.completed_at < self.started_at
        ):
            raise ValueError("completed_at precedes started_at")
        return self

    def sort_key(self) -> tuple[int, int, datetime]:
        # Records without an order sort after ordered ones, oldest first.
        if self.display_order is None:
            return (1, 0, self.created_at)
        return (0, self.display_order, self.created_at)


class QueueSettings(BaseModel):
    """Process-wide queue settings, persisted alongside the tasks."""

    concurrency: int = MIN_CONCURRENCY
    paused: bool = False
    last_backup: datetime | None = None
    version: str = STORE_VERSION


class ProcessingStatistics(BaseModel):
    """Lifetime counters, updated once per finished task."""

    total_processed: int = 0
    total_failed: int = 0
    last_processed_at: datetime | None = None


class StoreState(BaseModel):
    """The full JSON document held by the task store."""

    tasks: list[Task] = Field(default_factory=list)
    settings: QueueSettings = Field(default_factory=QueueSettings)
    statistics: ProcessingStatistics = Field(default_factory=ProcessingStatistics)
