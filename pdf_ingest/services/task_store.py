# =============================================================================
# Task Store — JSON File Persistence
# =============================================================================
#
# Durable mapping from task id to Task record, plus the queue settings and
# processing statistics, kept in one JSON document on disk.
#
# The file is read once at construction into an in-memory index keyed by
# id. Every mutating call:
#   1. builds the next state from the current one,
#   2. writes the whole document to a temp file in the same directory,
#      fsyncs it and os.replace()s it over the database file,
#   3. only then swaps the in-memory index.
# A crash mid-write therefore leaves either the old or the new document,
# never a half-written one, and a failed write leaves memory unchanged.
#
# All access goes through a per-store RLock, so two writers can never
# interleave a read and a write of the same record.
# =============================================================================

from __future__ import annotations

import json
import logging
import os
import shutil
import tempfile
import threading
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from pdf_ingest.errors import (
    DuplicateIdError,
    InvalidStateError,
    NotFoundError,
    StoreIOError,
)
from pdf_ingest.models.task import (
    STORE_VERSION,
    ProcessingStatistics,
    QueueSettings,
    StoreState,
    Task,
    TaskStatus,
    utcnow,
)

logger = logging.getLogger(__name__)

_FINISHED = (TaskStatus.COMPLETED, TaskStatus.FAILED)


class JsonTaskStore:
    """
    JSON-file task store.

    Reads return copies of the stored records; callers change state only
    through the mutating methods.
    """

    def __init__(
        self,
        db_path: str | Path = "data/database.json",
        *,
        default_concurrency: int = 1,
    ) -> None:
        self._path = Path(db_path)
        self._default_concurrency = default_concurrency
        self._lock = threading.RLock()

        self._tasks: dict[str, Task] = {}
        self._settings = QueueSettings(concurrency=default_concurrency)
        self._statistics = ProcessingStatistics()
        self._load()

        logger.info(
            "Task store ready: path=%s tasks=%d concurrency=%d paused=%s",
            self._path, len(self._tasks),
            self._settings.concurrency, self._settings.paused,
        )

    @property
    def path(self) -> Path:
        return self._path

    # ---------------------------------------------------------------------
    # Low-level I/O
    # ---------------------------------------------------------------------

    def _default_state(self) -> StoreState:
        return StoreState(
            settings=QueueSettings(concurrency=self._default_concurrency),
        )

    def _load(self) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            if not self._path.exists():
                state = self._default_state()
                self._write(state)
                logger.info("Initialized new task database at %s", self._path)
            else:
                raw = self._path.read_text(encoding="utf-8")
                state = StoreState.model_validate_json(raw) if raw.strip() else self._default_state()
        except OSError as exc:
            raise StoreIOError(f"Cannot open task database {self._path}: {exc}") from exc
        except ValidationError as exc:
            raise StoreIOError(f"Task database {self._path} is corrupt: {exc}") from exc

        self._apply(state)

    def _write(self, state: StoreState) -> None:
        payload = json.dumps(state.model_dump(mode="json"), indent=2, ensure_ascii=False)
        tmp_name: str | None = None
        try:
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=self._path.parent,
                prefix=f".{self._path.name}.",
                suffix=".tmp",
                delete=False,
            ) as tmp:
                tmp_name = tmp.name
                tmp.write(payload)
                tmp.flush()
                os.fsync(tmp.fileno())
            os.replace(tmp_name, self._path)
        except OSError as exc:
            if tmp_name is not None:
                Path(tmp_name).unlink(missing_ok=True)
            raise StoreIOError(f"Failed to write task database {self._path}: {exc}") from exc

    def _snapshot(self) -> StoreState:
        return StoreState(
            tasks=list(self._tasks.values()),
            settings=self._settings,
            statistics=self._statistics,
        )

    def _apply(self, state: StoreState) -> None:
        self._tasks = {task.id: task for task in state.tasks}
        self._settings = state.settings
        self._statistics = state.statistics

    def _commit(
        self,
        *,
        tasks: Iterable[Task] | None = None,
        settings: QueueSettings | None = None,
        statistics: ProcessingStatistics | None = None,
    ) -> None:
        """Persist the next state, then make it the in-memory state."""
        state = StoreState(
            tasks=list(self._tasks.values()) if tasks is None else list(tasks),
            settings=self._settings if settings is None else settings,
            statistics=self._statistics if statistics is None else statistics,
        )
        self._write(state)
        self._apply(state)

    @staticmethod
    def _merge(task: Task, fields: Mapping[str, Any]) -> Task:
        if "id" in fields and fields["id"] != task.id:
            raise InvalidStateError(f"Task id is immutable ({task.id})")
        data = task.model_dump()
        data.update(fields)
        try:
            return Task.model_validate(data)
        except ValidationError as exc:
            raise InvalidStateError(f"Invalid update for task {task.id}: {exc}") from exc

    # ---------------------------------------------------------------------
    # Tasks
    # ---------------------------------------------------------------------

    def add_task(self, task: Task) -> None:
        with self._lock:
            if task.id in self._tasks:
                raise DuplicateIdError(f"Task {task.id} already exists")
            self._commit(tasks=[*self._tasks.values(), task])
        logger.debug("Stored task %s (%s)", task.id, task.filename)

    def update_task(self, task_id: str, **fields: Any) -> bool:
        """Merge `fields` into a task. Returns False if the id is unknown."""
        with self._lock:
            current = self._tasks.get(task_id)
            if current is None:
                return False
            updated = self._merge(current, fields)
            self._commit(
                tasks=[updated if t.id == task_id else t for t in self._tasks.values()],
            )
            return True

    def update_tasks(self, updates: Mapping[str, Mapping[str, Any]]) -> None:
        """Apply several merges in a single write. Every id must exist."""
        with self._lock:
            missing = [task_id for task_id in updates if task_id not in self._tasks]
            if missing:
                raise NotFoundError(f"Unknown task ids: {', '.join(missing)}")
            merged = {
                task_id: self._merge(self._tasks[task_id], fields)
                for task_id, fields in updates.items()
            }
            self._commit(tasks=[merged.get(t.id, t) for t in self._tasks.values()])

    def get_task(self, task_id: str) -> Task | None:
        with self._lock:
            task = self._tasks.get(task_id)
            return task.model_copy(deep=True) if task is not None else None

    def get_all_tasks(self) -> list[Task]:
        """All tasks ordered by display_order, ties broken by created_at."""
        with self._lock:
            tasks = [t.model_copy(deep=True) for t in self._tasks.values()]
        return sorted(tasks, key=Task.sort_key)

    def get_tasks_by_status(self, status: TaskStatus) -> list[Task]:
        return [t for t in self.get_all_tasks() if t.status is status]

    def count_by_status(self) -> dict[TaskStatus, int]:
        with self._lock:
            counts = {status: 0 for status in TaskStatus}
            for task in self._tasks.values():
                counts[task.status] += 1
            return counts

    def remove_task(self, task_id: str) -> bool:
        with self._lock:
            if task_id not in self._tasks:
                return False
            self._commit(tasks=[t for t in self._tasks.values() if t.id != task_id])
        logger.debug("Removed task %s", task_id)
        return True

    def clear_completed_tasks(
        self, statuses: Iterable[TaskStatus] = _FINISHED,
    ) -> int:
        """Remove every task whose status is in `statuses`; return the count."""
        targets = set(statuses)
        with self._lock:
            kept = [t for t in self._tasks.values() if t.status not in targets]
            removed = len(self._tasks) - len(kept)
            if removed:
                self._commit(tasks=kept)
        return removed

    def next_display_order(self) -> int:
        with self._lock:
            orders = [t.display_order for t in self._tasks.values() if t.display_order is not None]
            return max(orders) + 1 if orders else 0

    # ---------------------------------------------------------------------
    # Settings & statistics
    # ---------------------------------------------------------------------

    def get_settings(self) -> QueueSettings:
        with self._lock:
            return self._settings.model_copy()

    def save_settings(
        self,
        *,
        concurrency: int | None = None,
        paused: bool | None = None,
    ) -> QueueSettings:
        with self._lock:
            changes: dict[str, Any] = {}
            if concurrency is not None:
                changes["concurrency"] = concurrency
            if paused is not None:
                changes["paused"] = paused
            if changes:
                self._commit(settings=self._settings.model_copy(update=changes))
            return self._settings.model_copy()

    def record_outcome(self, succeeded: bool) -> None:
        with self._lock:
            stats = self._statistics
            if succeeded:
                updated = stats.model_copy(update={
                    "total_processed": stats.total_processed + 1,
                    "last_processed_at": utcnow(),
                })
            else:
                updated = stats.model_copy(update={"total_failed": stats.total_failed + 1})
            self._commit(statistics=updated)

    def get_statistics(self) -> ProcessingStatistics:
        with self._lock:
            return self._statistics.model_copy()

    # ---------------------------------------------------------------------
    # Maintenance
    # ---------------------------------------------------------------------

    def get_info(self) -> dict[str, Any]:
        counts = self.count_by_status()
        with self._lock:
            return {
                "path": str(self._path),
                "task_count": len(self._tasks),
                "pending_count": counts[TaskStatus.PENDING],
                "processing_count": counts[TaskStatus.PROCESSING],
                "completed_count": counts[TaskStatus.COMPLETED],
                "failed_count": counts[TaskStatus.FAILED],
                "last_backup": self._settings.last_backup,
                "version": self._settings.version,
            }

    def backup(self, backup_dir: str | Path) -> Path:
        """Copy the current database to a timestamped file and return its path."""
        target_dir = Path(backup_dir)
        with self._lock:
            now = utcnow()
            target = target_dir / f"backup-{int(now.timestamp() * 1000)}.json"
            try:
                target_dir.mkdir(parents=True, exist_ok=True)
                shutil.copyfile(self._path, target)
            except OSError as exc:
                raise StoreIOError(f"Backup to {target} failed: {exc}") from exc
            self._commit(settings=self._settings.model_copy(update={"last_backup": now}))
        logger.info("Task database backed up to %s", target)
        return target

    def reset(self) -> None:
        """Drop every task and restore default settings and statistics."""
        with self._lock:
            state = self._default_state()
            self._commit(
                tasks=state.tasks,
                settings=state.settings,
                statistics=state.statistics,
            )
        logger.warning("Task database reset (%s, version %s)", self._path, STORE_VERSION)

    def is_reachable(self) -> bool:
        directory = self._path.parent
        return self._path.is_file() and os.access(directory, os.W_OK)
