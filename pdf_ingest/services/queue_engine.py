# =============================================================================
# Queue Engine — Admission, Scheduling & Worker Execution
# =============================================================================
#
# Owns the in-memory pending list and the pool of in-flight workers. All
# durable state lives in the task store; the engine only keeps what can be
# rebuilt from it on start.
#
# SCHEDULING:
#   _schedule() runs on the event loop after every event that may free or
#   unblock a slot (admission, worker exit, resume, concurrency increase,
#   retry). While the queue is not paused and fewer than `concurrency`
#   workers are in flight, it pops the head of the pending list and starts
#   an asyncio task for it. _schedule() itself never awaits.
#
# WORKER:
#   pending → processing (started_at, persisted)
#   extractor.extract(path) in a thread, bounded by extraction_timeout
#   → completed (result, completed_at) or failed (error, completed_at)
#   → optional markdown export, written only after a successful extraction
#   Extraction errors and timeouts are recorded on the task; they never
#   escape the worker or stop the queue.
#
# STORE I/O:
#   Every store write (the fsync'd JSON rewrite) runs in a thread via
#   asyncio.to_thread, so a slow disk never stalls the event loop. Control
#   operations hold `_control` across their write, which keeps them from
#   interleaving with each other.
#
# RECOVERY:
#   start() resets every task still marked "processing" (the previous
#   process died mid-work) to pending and puts it at the front of the
#   pending list, ahead of tasks that were already waiting. A task can
#   therefore be extracted more than once across a crash.
# =============================================================================

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Sequence
from pathlib import Path

from pdf_ingest.config import MAX_CONCURRENCY, MIN_CONCURRENCY
from pdf_ingest.errors import (
    ExtractionError,
    InvalidArgumentError,
    InvalidStateError,
    NotFoundError,
    QueueError,
)
from pdf_ingest.models.task import (
    Task,
    TaskResult,
    TaskStatus,
    can_transition,
    generate_task_id,
    utcnow,
)
from pdf_ingest.services.extraction import PdfExtractor, extracted_text_filename
from pdf_ingest.services.task_store import JsonTaskStore

logger = logging.getLogger(__name__)

# Fields cleared when a task goes back to pending (recovery or retry).
_RESET_FIELDS = {
    "status": TaskStatus.PENDING,
    "started_at": None,
    "completed_at": None,
    "result": None,
    "error": None,
}


def _check_transition(task: Task, target: TaskStatus) -> None:
    if not can_transition(task.status, target):
        raise InvalidStateError(
            f"Task {task.id} cannot move from {task.status.value} to {target.value}"
        )


class QueueEngine:
    """
    Bounded-concurrency PDF extraction queue.

    Must be started with `await engine.start()` on the event loop that will
    run the workers. Tasks admitted before start are picked up by start().
    """

    def __init__(
        self,
        store: JsonTaskStore,
        extractor: PdfExtractor,
        *,
        extraction_timeout: float = 300.0,
        extracted_text_dir: str | Path | None = None,
    ) -> None:
        self._store = store
        self._extractor = extractor
        self._timeout = extraction_timeout
        self._extracted_dir = Path(extracted_text_dir) if extracted_text_dir else None

        queue_settings = store.get_settings()
        self._concurrency = queue_settings.concurrency
        self._paused = queue_settings.paused

        self._pending: list[str] = []
        self._in_flight: dict[str, asyncio.Task[None]] = {}
        # Workers above the limit that a concurrency decrease left running.
        self._excess_allowed = 0

        self._loop: asyncio.AbstractEventLoop | None = None
        self._idle: asyncio.Event | None = None
        self._stopping = False
        # Serializes control operations that await store writes.
        self._control = asyncio.Lock()

    # ---------------------------------------------------------------------
    # Introspection
    # ---------------------------------------------------------------------

    @property
    def concurrency(self) -> int:
        return self._concurrency

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def started(self) -> bool:
        return self._loop is not None and not self._stopping

    @property
    def pending_ids(self) -> list[str]:
        return list(self._pending)

    @property
    def in_flight_ids(self) -> list[str]:
        return list(self._in_flight)

    @property
    def queue_length(self) -> int:
        return len(self._pending)

    @property
    def working(self) -> int:
        return len(self._in_flight)

    def is_in_flight(self, task_id: str) -> bool:
        return task_id in self._in_flight

    def is_idle(self) -> bool:
        return not self._in_flight and (not self._pending or self._paused)

    def is_stalled(self) -> bool:
        """Runnable work is waiting although a slot is free."""
        return (
            self.started
            and not self._paused
            and bool(self._pending)
            and len(self._in_flight) < self._concurrency
        )

    def is_overcommitted(self) -> bool:
        return len(self._in_flight) > self._concurrency + self._excess_allowed

    # ---------------------------------------------------------------------
    # Lifecycle
    # ---------------------------------------------------------------------

    async def start(self) -> None:
        """Rebuild the pending list from the store and begin scheduling."""
        if self.started:
            raise InvalidStateError("Queue engine is already running")

        self._loop = asyncio.get_running_loop()
        self._idle = asyncio.Event()
        self._stopping = False

        queue_settings = self._store.get_settings()
        self._concurrency = queue_settings.concurrency
        self._paused = queue_settings.paused

        async with self._control:
            tasks = self._store.get_all_tasks()
            orphaned = [t for t in tasks if t.status is TaskStatus.PROCESSING]
            waiting = [t.id for t in tasks if t.status is TaskStatus.PENDING]

            if orphaned:
                for task in orphaned:
                    _check_transition(task, TaskStatus.PENDING)
                await self._persist(
                    self._store.update_tasks, {t.id: _RESET_FIELDS for t in orphaned},
                )
                logger.warning(
                    "Recovered %d task(s) interrupted mid-processing: %s",
                    len(orphaned), ", ".join(t.id for t in orphaned),
                )

            self._pending = [t.id for t in orphaned] + waiting
        logger.info(
            "Queue engine started: pending=%d concurrency=%d paused=%s",
            len(self._pending), self._concurrency, self._paused,
        )
        self._schedule()

    async def stop(self, drain_timeout: float = 10.0) -> None:
        """
        Stop starting workers, wait up to `drain_timeout` for the running
        ones, then cancel the rest. Cancelled tasks stay "processing" in
        the store and are recovered by the next start().
        """
        if self._loop is None:
            return
        self._stopping = True

        workers = list(self._in_flight.values())
        if workers:
            logger.info("Waiting up to %.1fs for %d worker(s)", drain_timeout, len(workers))
            _, still_running = await asyncio.wait(workers, timeout=drain_timeout)
            for worker in still_running:
                worker.cancel()
            if still_running:
                await asyncio.gather(*still_running, return_exceptions=True)
                logger.warning(
                    "Cancelled %d in-flight worker(s); they will be recovered on next start",
                    len(still_running),
                )

        self._in_flight.clear()
        self._pending.clear()
        self._loop = None
        logger.info("Queue engine stopped")

    async def join(self) -> None:
        """Wait until nothing is in flight and nothing runnable is pending."""
        if self._idle is None or self._loop is None:
            return
        self._update_idle()
        await self._idle.wait()

    # ---------------------------------------------------------------------
    # Admission
    # ---------------------------------------------------------------------

    async def admit(self, filename: str, path: str | Path) -> Task:
        """Create and persist a pending task, then append it to the queue."""
        async with self._control:
            task = Task(
                id=generate_task_id(),
                filename=filename,
                path=str(path),
                display_order=self._store.next_display_order(),
            )
            await self._persist(self._store.add_task, task)
            self._pending.append(task.id)
        logger.info(
            "Queued task %s (%s); queue length %d",
            task.id, filename, len(self._pending),
        )
        self._schedule()
        return task

    async def retry(self, task_id: str) -> None:
        """
        Send a completed or failed task through extraction again.

        The task keeps its display order, so listings show it where it was,
        but it joins the back of the pending list and runs after every task
        already waiting.
        """
        async with self._control:
            task = self._store.get_task(task_id)
            if task is None:
                raise NotFoundError(f"Task {task_id} not found")
            if task_id in self._in_flight or not task.status.is_finished:
                raise InvalidStateError(
                    f"Only completed or failed tasks can be retried (task {task_id} "
                    f"is {task.status.value})"
                )
            _check_transition(task, TaskStatus.PENDING)
            await self._persist(self._store.update_task, task_id, **_RESET_FIELDS)
            self._pending.append(task_id)
        logger.info("Re-queued task %s (%s)", task_id, task.filename)
        self._schedule()

    async def remove(self, task_id: str) -> bool:
        """Delete a task that is not being processed. False if unknown."""
        async with self._control:
            if task_id in self._in_flight:
                raise InvalidStateError(
                    f"Task {task_id} is being processed; wait for it to finish before removing it"
                )
            task = self._store.get_task(task_id)
            if task is None:
                return False
            if task.status is TaskStatus.PROCESSING:
                raise InvalidStateError(f"Task {task_id} is marked processing")

            # Taken off the pending list first so no worker picks it up
            # while the delete is being written.
            position = self._pending.index(task_id) if task_id in self._pending else None
            if position is not None:
                del self._pending[position]
            try:
                removed = await self._persist(self._store.remove_task, task_id)
            except QueueError:
                if position is not None:
                    self._pending.insert(position, task_id)
                raise
            finally:
                self._schedule()
        if removed:
            logger.info("Removed task %s (%s)", task_id, task.filename)
        return removed

    async def clear_finished(self, statuses: Iterable[TaskStatus]) -> int:
        targets = [s for s in statuses if s.is_finished]
        async with self._control:
            cleared = await self._persist(self._store.clear_completed_tasks, targets)
        logger.info("Cleared %d finished task(s)", cleared)
        return cleared

    async def reset(self) -> None:
        """Drop every task and restore default settings."""
        async with self._control:
            if self._in_flight:
                raise InvalidStateError(
                    f"{len(self._in_flight)} task(s) are being processed; "
                    "wait for them to finish before resetting"
                )
            held, self._pending = self._pending, []
            try:
                await self._persist(self._store.reset)
            except QueueError:
                self._pending = held
                self._schedule()
                raise
            queue_settings = self._store.get_settings()
            self._concurrency = queue_settings.concurrency
            self._paused = queue_settings.paused
            self._excess_allowed = 0
        self._update_idle()

    # ---------------------------------------------------------------------
    # Queue control
    # ---------------------------------------------------------------------

    async def pause(self) -> None:
        async with self._control:
            await self._persist(self._store.save_settings, paused=True)
            self._paused = True
        logger.info("Queue paused (%d in flight will finish)", len(self._in_flight))
        self._update_idle()

    async def resume(self) -> None:
        async with self._control:
            await self._persist(self._store.save_settings, paused=False)
            self._paused = False
        logger.info("Queue resumed (%d pending)", len(self._pending))
        self._schedule()

    async def set_concurrency(self, concurrency: int) -> None:
        if (
            isinstance(concurrency, bool)
            or not isinstance(concurrency, int)
            or not MIN_CONCURRENCY <= concurrency <= MAX_CONCURRENCY
        ):
            raise InvalidArgumentError(
                f"Concurrency must be between {MIN_CONCURRENCY} and {MAX_CONCURRENCY}"
            )
        async with self._control:
            await self._persist(self._store.save_settings, concurrency=concurrency)
            previous = self._concurrency
            self._concurrency = concurrency
            self._excess_allowed = max(0, len(self._in_flight) - concurrency)
        logger.info("Queue concurrency %d -> %d", previous, concurrency)
        if concurrency > previous:
            self._schedule()

    async def reorder(self, task_ids: Sequence[str]) -> None:
        """
        Reorder the pending tasks.

        `task_ids` must list every pending task exactly once. The display
        order slots those tasks already hold are handed out again in the
        requested order, so tasks outside the pending set keep their
        positions.
        """
        ids = list(task_ids)
        if len(set(ids)) != len(ids):
            raise InvalidArgumentError("Reorder list contains duplicate task ids")

        async with self._control:
            tasks = {t.id: t for t in self._store.get_all_tasks()}
            unknown = [task_id for task_id in ids if task_id not in tasks]
            if unknown:
                raise InvalidArgumentError(f"Unknown task ids: {', '.join(unknown)}")

            reorderable = {
                t.id for t in tasks.values()
                if t.status is TaskStatus.PENDING and t.id not in self._in_flight
            }
            if set(ids) != reorderable:
                not_pending = sorted(set(ids) - reorderable)
                missing = sorted(reorderable - set(ids))
                raise InvalidArgumentError(
                    "Reorder must list exactly the pending tasks"
                    + (f"; not pending: {', '.join(not_pending)}" if not_pending else "")
                    + (f"; missing: {', '.join(missing)}" if missing else "")
                )
            if not ids:
                return

            held = sorted({tasks[i].display_order for i in ids} - {None})
            if len(held) == len(ids):
                slots = held
            else:
                base = self._store.next_display_order()
                slots = list(range(base, base + len(ids)))

            new_order = dict(zip(ids, slots))
            await self._persist(
                self._store.update_tasks,
                {i: {"display_order": o} for i, o in new_order.items()},
            )
            self._pending.sort(key=lambda i: new_order.get(i, slots[-1] + 1))
        logger.info("Reordered %d pending task(s)", len(ids))

    # ---------------------------------------------------------------------
    # Scheduling
    # ---------------------------------------------------------------------

    @staticmethod
    async def _persist(write, *args, **kwargs):
        """Run a blocking store call off the event loop."""
        return await asyncio.to_thread(write, *args, **kwargs)

    def _update_idle(self) -> None:
        if self._idle is None:
            return
        if self.is_idle():
            self._idle.set()
        else:
            self._idle.clear()

    def _schedule(self) -> None:
        if self._loop is None or self._stopping:
            self._update_idle()
            return

        while (
            not self._paused
            and self._pending
            and len(self._in_flight) < self._concurrency
        ):
            task_id = self._pending.pop(0)
            self._in_flight[task_id] = self._loop.create_task(
                self._run_worker(task_id), name=f"pdf-worker-{task_id}",
            )
            logger.debug(
                "Started worker for %s (%d/%d in flight)",
                task_id, len(self._in_flight), self._concurrency,
            )
        self._update_idle()

    async def _run_worker(self, task_id: str) -> None:
        try:
            await self._process(task_id)
        except QueueError:
            logger.exception(
                "Task %s could not be updated; it stays as last persisted until recovery",
                task_id,
            )
        finally:
            self._in_flight.pop(task_id, None)
            self._excess_allowed = min(
                self._excess_allowed,
                max(0, len(self._in_flight) - self._concurrency),
            )
            self._schedule()

    async def _process(self, task_id: str) -> None:
        task = self._store.get_task(task_id)
        if task is None:
            logger.warning("Task %s was removed before it started", task_id)
            return

        _check_transition(task, TaskStatus.PROCESSING)
        started = await self._persist(
            self._store.update_task, task_id,
            status=TaskStatus.PROCESSING, started_at=utcnow(),
        )
        if not started:
            logger.warning("Task %s was removed before it started", task_id)
            return
        logger.info("[%s] Processing '%s'", task_id, task.filename)

        try:
            result = await asyncio.wait_for(
                asyncio.to_thread(self._extract, task), timeout=self._timeout,
            )
            # Written only once extraction has finished in time, so a thread
            # left behind by a timeout never produces an export.
            if self._extracted_dir is not None:
                await asyncio.to_thread(
                    self._write_extracted_text, Path(task.path), result.extracted_text,
                )
        except TimeoutError:
            await self._finish_failed(task_id, f"Extraction timed out after {self._timeout:g}s")
            return
        except Exception as exc:
            logger.exception("[%s] Extraction failed for '%s'", task_id, task.filename)
            await self._finish_failed(task_id, str(exc) or exc.__class__.__name__)
            return

        await self._persist(
            self._store.update_task, task_id,
            status=TaskStatus.COMPLETED, result=result, completed_at=utcnow(),
        )
        await self._persist(self._store.record_outcome, succeeded=True)
        logger.info(
            "[%s] Completed '%s' (%d pages, %d chars)",
            task_id, task.filename, result.page_count, len(result.extracted_text),
        )

    async def _finish_failed(self, task_id: str, message: str) -> None:
        await self._persist(
            self._store.update_task, task_id,
            status=TaskStatus.FAILED, error=message, completed_at=utcnow(),
        )
        await self._persist(self._store.record_outcome, succeeded=False)
        logger.warning("[%s] Failed: %s", task_id, message)

    def _extract(self, task: Task) -> TaskResult:
        """Runs in a worker thread."""
        path = Path(task.path)
        output = self._extractor.extract(str(path))
        if output.page_count < 1:
            raise ExtractionError(f"No pages found in '{task.filename}'")

        return TaskResult(
            filename=task.filename,
            processed_at=utcnow(),
            extracted_text=output.text,
            page_count=output.page_count,
            file_size=path.stat().st_size,
            metadata=dict(output.metadata),
        )

    def _write_extracted_text(self, pdf_path: Path, text: str) -> Path:
        self._extracted_dir.mkdir(parents=True, exist_ok=True)
        target = self._extracted_dir / extracted_text_filename(pdf_path)
        target.write_text(text, encoding="utf-8")
        return target
