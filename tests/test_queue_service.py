# =============================================================================
# Unit Tests — PDF Queue Service Facade
# =============================================================================
#
# Input validation, aggregate views and health, with a fake extractor.
# =============================================================================

import asyncio

import pytest
from conftest import BlockingExtractor, FakeExtractor

from pdf_ingest.errors import InvalidArgumentError, NotFoundError
from pdf_ingest.models.task import TaskStatus
from pdf_ingest.services.queue_engine import QueueEngine
from pdf_ingest.services.queue_service import PdfQueueService


def _run(coro):
    """Helper to run async code in sync tests."""
    return asyncio.run(coro)


def _service(store, extractor=None, **kwargs) -> PdfQueueService:
    engine = QueueEngine(store, extractor or FakeExtractor())
    return PdfQueueService(store, engine, **kwargs)


class TestAddTask:
    """Tests for add_task() validation."""

    def test_missing_file_raises_not_found(self, store, tmp_path):
        service = _service(store)
        with pytest.raises(NotFoundError):
            _run(service.add_task("a.pdf", tmp_path / "nope.pdf"))
        assert service.get_all_tasks() == []

    def test_non_pdf_raises_invalid_argument(self, store, make_pdf):
        service = _service(store)
        path = make_pdf("fake.pdf", content=b"GIF89a not a pdf")
        with pytest.raises(InvalidArgumentError, match="Invalid PDF file"):
            _run(service.add_task("fake.pdf", path))
        assert service.get_all_tasks() == []

    def test_add_task_end_to_end(self, store, make_pdf):
        service = _service(store, FakeExtractor(page_count=4))

        async def scenario():
            await service.start()
            task_id = await service.add_task("a.pdf", make_pdf("a.pdf"))
            assert task_id.startswith("pdf_")
            assert service.get_task(task_id).status is TaskStatus.PENDING
            await service.wait_until_idle()
            await service.shutdown()
            return task_id

        task = service.get_task(_run(scenario()))
        assert task.status is TaskStatus.COMPLETED
        assert task.result.page_count == 4


class TestQueueViews:
    """Tests for stats, status and health."""

    def test_queue_stats_counts(self, store, make_pdf):
        service = _service(store, FakeExtractor(fail_on={"bad.pdf"}))

        async def scenario():
            await service.start()
            await service.add_task("ok.pdf", make_pdf("ok.pdf"))
            await service.add_task("bad.pdf", make_pdf("bad.pdf"))
            await service.wait_until_idle()
            await service.pause_queue()
            await service.add_task("later.pdf", make_pdf("later.pdf"))
            stats = service.get_queue_stats()
            status = service.get_queue_status()
            await service.shutdown()
            return stats, status

        stats, status = _run(scenario())
        assert stats.queue.length == 1
        assert stats.queue.working == 0
        assert stats.queue.paused is True
        assert stats.tasks.total == 3
        assert (stats.tasks.pending, stats.tasks.completed, stats.tasks.failed) == (1, 1, 1)
        assert status.is_paused is True
        assert status.is_idle is True
        assert status.is_running is False

    def test_get_tasks_by_status(self, store, make_pdf):
        service = _service(store)

        async def scenario():
            await service.start()
            await service.pause_queue()
            task_id = await service.add_task("a.pdf", make_pdf("a.pdf"))
            await service.shutdown()
            return task_id

        task_id = _run(scenario())
        assert [t.id for t in service.get_tasks_by_status(TaskStatus.PENDING)] == [task_id]
        assert service.get_tasks_by_status(TaskStatus.COMPLETED) == []

    def test_health_requires_started_engine(self, store):
        service = _service(store)
        assert service.is_healthy() is False

        async def scenario():
            await service.start()
            healthy = service.is_healthy()
            await service.shutdown()
            return healthy

        assert _run(scenario()) is True

    def test_health_fails_when_store_file_disappears(self, store, db_path):
        service = _service(store)

        async def scenario():
            await service.start()
            db_path.unlink()
            healthy = service.is_healthy()
            await service.shutdown()
            return healthy

        assert _run(scenario()) is False

    def test_health_during_busy_processing(self, store, make_pdf):
        extractor = BlockingExtractor()
        service = _service(store, extractor)

        async def scenario():
            await service.start()
            await service.set_concurrency(2)
            for name in ("a.pdf", "b.pdf", "c.pdf"):
                await service.add_task(name, make_pdf(name))
            try:
                while extractor.active < 2:
                    await asyncio.sleep(0.01)
                healthy = service.is_healthy()
            finally:
                extractor.release.set()
            await service.wait_until_idle()
            await service.shutdown()
            return healthy

        assert _run(scenario()) is True


class TestTaskManagement:
    """Tests for clearing, removing by file and concurrency."""

    def test_clear_keeps_failed_when_configured(self, store, make_pdf):
        service = _service(store, FakeExtractor(fail_on={"bad.pdf"}), clear_failed_tasks=False)

        async def scenario():
            await service.start()
            await service.add_task("ok.pdf", make_pdf("ok.pdf"))
            await service.add_task("bad.pdf", make_pdf("bad.pdf"))
            await service.wait_until_idle()
            cleared = await service.clear_completed_tasks()
            await service.shutdown()
            return cleared

        assert _run(scenario()) == 1
        assert [t.status for t in service.get_all_tasks()] == [TaskStatus.FAILED]

    def test_remove_tasks_for_file(self, store, make_pdf):
        service = _service(store)

        async def scenario():
            await service.start()
            await service.pause_queue()
            path = make_pdf("1700000000000-report.pdf")
            await service.add_task("report.pdf", path)
            await service.add_task("report.pdf", path)
            await service.add_task("other.pdf", make_pdf("other.pdf"))
            removed = await service.remove_tasks_for_file(path.name)
            await service.shutdown()
            return removed

        assert _run(scenario()) == 2
        assert [t.filename for t in service.get_all_tasks()] == ["other.pdf"]

    def test_concurrency_round_trip(self, store):
        service = _service(store)
        _run(service.set_concurrency(7))
        assert service.get_concurrency() == 7
        with pytest.raises(InvalidArgumentError):
            _run(service.set_concurrency(0))
        assert service.get_concurrency() == 7

    def test_reorder_and_retry_return_true(self, store, make_pdf):
        service = _service(store, FakeExtractor(fail_on={"a.pdf"}))

        async def scenario():
            await service.start()
            a = await service.add_task("a.pdf", make_pdf("a.pdf"))
            await service.wait_until_idle()
            await service.pause_queue()
            b = await service.add_task("b.pdf", make_pdf("b.pdf"))
            c = await service.add_task("c.pdf", make_pdf("c.pdf"))
            reordered = await service.reorder_tasks([c, b])
            retried = await service.retry_task(a)
            await service.shutdown()
            return reordered, retried

        assert _run(scenario()) == (True, True)


class TestDatabaseMaintenance:
    """Tests for info, statistics, backup and reset via the facade."""

    def test_backup_goes_to_configured_directory(self, store, tmp_path):
        service = _service(store, backup_dir=tmp_path / "backups")
        path = _run(service.backup_database())
        assert path.parent == tmp_path / "backups"
        assert path.is_file()
        assert service.get_database_info()["last_backup"] is not None

    def test_reset_database(self, store, make_pdf):
        service = _service(store)

        async def scenario():
            await service.start()
            await service.add_task("a.pdf", make_pdf("a.pdf"))
            await service.wait_until_idle()
            await service.reset_database()
            await service.shutdown()

        _run(scenario())
        assert service.get_all_tasks() == []
        assert service.get_database_info()["task_count"] == 0
        assert service.get_statistics().total_processed == 0
