# =============================================================================
# PDF Queue Service — Public Facade
# =============================================================================
#
# The single entry point the API layer talks to. Validates input, delegates
# to the queue engine and the task store, and assembles aggregate views
# (stats, status, health). It holds no queue state of its own.
#
# Composition happens in the application lifespan (see main.py):
#
#   store     = JsonTaskStore(settings.database_path, ...)
#   extractor = DoclingExtractor(...)
#   engine    = QueueEngine(store, extractor, ...)
#   service   = PdfQueueService(store, engine, ...)
#   await service.start()
# =============================================================================

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from pdf_ingest.config import MAX_CONCURRENCY, MIN_CONCURRENCY
from pdf_ingest.errors import InvalidArgumentError, NotFoundError
from pdf_ingest.models.task import ProcessingStatistics, Task, TaskStatus
from pdf_ingest.services.extraction import validate_pdf
from pdf_ingest.services.queue_engine import QueueEngine
from pdf_ingest.services.task_store import JsonTaskStore

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Aggregate Views
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class QueueCounters:
    length: int
    working: int
    concurrency: int
    paused: bool


@dataclass(frozen=True)
class TaskCounters:
    total: int
    pending: int
    processing: int
    completed: int
    failed: int


@dataclass(frozen=True)
class QueueStats:
    queue: QueueCounters
    tasks: TaskCounters


@dataclass(frozen=True)
class QueueStatus:
    is_running: bool
    is_paused: bool
    is_idle: bool
    length: int
    working: int


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class PdfQueueService:
    """Queue operations with validation, plus stats and health."""

    def __init__(
        self,
        store: JsonTaskStore,
        engine: QueueEngine,
        *,
        clear_failed_tasks: bool = True,
        backup_dir: str | Path = "data/backups",
    ) -> None:
        self._store = store
        self._engine = engine
        self._clear_failed = clear_failed_tasks
        self._backup_dir = Path(backup_dir)

    async def start(self) -> None:
        await self._engine.start()

    async def shutdown(self, drain_timeout: float = 10.0) -> None:
        await self._engine.stop(drain_timeout)

    async def wait_until_idle(self) -> None:
        await self._engine.join()

    # ---- tasks ----

    async def add_task(self, filename: str, path: str | Path) -> str:
        """
        Queue a PDF for extraction and return its task id.

        Raises:
            NotFoundError: `path` does not reference an existing file.
            InvalidArgumentError: the file is not a PDF.
        """
        file_path = Path(path)
        if not file_path.is_file():
            raise NotFoundError(f"File not found: {path}")
        if not validate_pdf(file_path):
            raise InvalidArgumentError(f"Invalid PDF file: {filename}")
        task = await self._engine.admit(filename, file_path)
        return task.id

    def get_task(self, task_id: str) -> Task | None:
        return self._store.get_task(task_id)

    def get_all_tasks(self) -> list[Task]:
        return self._store.get_all_tasks()

    def get_tasks_by_status(self, status: TaskStatus) -> list[Task]:
        return self._store.get_tasks_by_status(status)

    async def remove_task(self, task_id: str) -> bool:
        return await self._engine.remove(task_id)

    async def remove_tasks_for_file(self, stored_name: str) -> int:
        """
        Remove every task whose source is the given upload.

        `stored_name` is the name of the file in the upload directory, not
        the client's original file name. Raises InvalidStateError if one of
        those tasks is being processed; tasks checked before it are already
        removed by then.
        """
        removed = 0
        for task in self._store.get_all_tasks():
            if Path(task.path).name == stored_name and await self._engine.remove(task.id):
                removed += 1
        return removed

    async def clear_completed_tasks(self) -> int:
        statuses = [TaskStatus.COMPLETED]
        if self._clear_failed:
            statuses.append(TaskStatus.FAILED)
        return await self._engine.clear_finished(statuses)

    async def reorder_tasks(self, task_ids: Sequence[str]) -> bool:
        await self._engine.reorder(task_ids)
        return True

    async def retry_task(self, task_id: str) -> bool:
        await self._engine.retry(task_id)
        return True

    # ---- queue control ----

    async def set_concurrency(self, concurrency: int) -> None:
        await self._engine.set_concurrency(concurrency)

    def get_concurrency(self) -> int:
        return self._engine.concurrency

    async def pause_queue(self) -> None:
        await self._engine.pause()

    async def resume_queue(self) -> None:
        await self._engine.resume()

    # ---- views ----

    def get_queue_stats(self) -> QueueStats:
        counts = self._store.count_by_status()
        return QueueStats(
            queue=QueueCounters(
                length=self._engine.queue_length,
                working=self._engine.working,
                concurrency=self._engine.concurrency,
                paused=self._engine.paused,
            ),
            tasks=TaskCounters(
                total=sum(counts.values()),
                pending=counts[TaskStatus.PENDING],
                processing=counts[TaskStatus.PROCESSING],
                completed=counts[TaskStatus.COMPLETED],
                failed=counts[TaskStatus.FAILED],
            ),
        )

    def get_queue_status(self) -> QueueStatus:
        return QueueStatus(
            is_running=self._engine.working > 0,
            is_paused=self._engine.paused,
            is_idle=self._engine.is_idle(),
            length=self._engine.queue_length,
            working=self._engine.working,
        )

    def is_healthy(self) -> bool:
        if not self._store.is_reachable():
            logger.warning("Health check: task store %s is unreachable", self._store.path)
            return False
        if not self._engine.started:
            return False
        if not MIN_CONCURRENCY <= self._engine.concurrency <= MAX_CONCURRENCY:
            return False
        if self._engine.is_overcommitted() or self._engine.is_stalled():
            logger.warning(
                "Health check: worker pool stalled (working=%d, pending=%d, concurrency=%d)",
                self._engine.working, self._engine.queue_length, self._engine.concurrency,
            )
            return False
        return True

    # ---- database maintenance ----

    def get_database_info(self) -> dict[str, Any]:
        return self._store.get_info()

    def get_statistics(self) -> ProcessingStatistics:
        return self._store.get_statistics()

    async def backup_database(self) -> Path:
        return await asyncio.to_thread(self._store.backup, self._backup_dir)

    async def reset_database(self) -> None:
        await self._engine.reset()
