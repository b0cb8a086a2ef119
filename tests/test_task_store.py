# =============================================================================
# Unit Tests — JSON Task Store
# =============================================================================
#
# Persistence, ordering and validation of the file-backed store. Each test
# gets its own database file under tmp_path.
# =============================================================================

import json
from datetime import timedelta
from unittest.mock import patch

import pytest

from pdf_ingest.errors import (
    DuplicateIdError,
    InvalidStateError,
    NotFoundError,
    StoreIOError,
)
from pdf_ingest.models.task import Task, TaskResult, TaskStatus, utcnow
from pdf_ingest.services.task_store import JsonTaskStore


def _task(task_id: str, order: int | None = 0, **fields) -> Task:
    return Task(
        id=task_id,
        filename=f"{task_id}.pdf",
        path=f"/tmp/{task_id}.pdf",
        display_order=order,
        **fields,
    )


def _result(filename: str = "a.pdf") -> TaskResult:
    return TaskResult(
        filename=filename,
        processed_at=utcnow(),
        extracted_text="hello",
        page_count=1,
        file_size=10,
    )


def _finished(task_id: str, status: TaskStatus, order: int = 0) -> Task:
    started = utcnow()
    extra = {"result": _result()} if status is TaskStatus.COMPLETED else {"error": "boom"}
    return _task(
        task_id,
        order,
        status=status,
        created_at=started,
        started_at=started,
        completed_at=started + timedelta(seconds=1),
        **extra,
    )


# ---------------------------------------------------------------------------
# File lifecycle
# ---------------------------------------------------------------------------


class TestStoreFile:
    """Tests for creating, loading and writing the database file."""

    def test_creates_default_database(self, db_path):
        JsonTaskStore(db_path, default_concurrency=3)
        data = json.loads(db_path.read_text())
        assert data["tasks"] == []
        assert data["settings"]["concurrency"] == 3
        assert data["settings"]["paused"] is False
        assert data["statistics"]["total_processed"] == 0

    def test_tasks_survive_reopen(self, db_path):
        store = JsonTaskStore(db_path)
        store.add_task(_task("a"))
        reopened = JsonTaskStore(db_path)
        task = reopened.get_task("a")
        assert task is not None
        assert task.status is TaskStatus.PENDING

    def test_persisted_settings_win_over_default(self, db_path):
        JsonTaskStore(db_path).save_settings(concurrency=4, paused=True)
        reopened = JsonTaskStore(db_path, default_concurrency=1)
        assert reopened.get_settings().concurrency == 4
        assert reopened.get_settings().paused is True

    def test_corrupt_file_raises_store_io_error(self, db_path):
        db_path.parent.mkdir(parents=True)
        db_path.write_text('{"tasks": [{"id": 1}]}')
        with pytest.raises(StoreIOError):
            JsonTaskStore(db_path)

    def test_empty_file_is_treated_as_new(self, db_path):
        db_path.parent.mkdir(parents=True)
        db_path.write_text("")
        store = JsonTaskStore(db_path)
        assert store.get_all_tasks() == []

    def test_write_leaves_no_temp_files(self, db_path):
        store = JsonTaskStore(db_path)
        store.add_task(_task("a"))
        store.update_task("a", display_order=5)
        assert [p.name for p in db_path.parent.iterdir()] == ["database.json"]

    def test_is_reachable(self, store, db_path):
        assert store.is_reachable() is True
        db_path.unlink()
        assert store.is_reachable() is False

    def test_failed_write_raises_and_keeps_previous_state(self, store, db_path):
        store.add_task(_task("a"))
        with patch(
            "pdf_ingest.services.task_store.os.replace",
            side_effect=OSError("No space left on device"),
        ):
            with pytest.raises(StoreIOError, match="No space left"):
                store.add_task(_task("b", order=1))
            with pytest.raises(StoreIOError):
                store.update_task("a", display_order=9)

        assert [t.id for t in store.get_all_tasks()] == ["a"]
        assert store.get_task("a").display_order == 0
        assert [t.id for t in JsonTaskStore(db_path).get_all_tasks()] == ["a"]
        assert [p.name for p in db_path.parent.iterdir()] == ["database.json"]


# ---------------------------------------------------------------------------
# Task CRUD
# ---------------------------------------------------------------------------


class TestTaskCrud:
    """Tests for add/update/get/remove."""

    def test_duplicate_id_rejected(self, store):
        store.add_task(_task("a"))
        with pytest.raises(DuplicateIdError):
            store.add_task(_task("a"))
        assert len(store.get_all_tasks()) == 1

    def test_update_unknown_returns_false(self, store):
        assert store.update_task("missing", display_order=1) is False

    def test_update_that_breaks_invariants_is_rejected(self, store, db_path):
        store.add_task(_task("a"))
        before = db_path.read_text()
        # completed without a result
        with pytest.raises(InvalidStateError):
            store.update_task(
                "a",
                status=TaskStatus.COMPLETED,
                started_at=utcnow(),
                completed_at=utcnow(),
            )
        assert db_path.read_text() == before
        assert store.get_task("a").status is TaskStatus.PENDING

    def test_id_is_immutable(self, store):
        store.add_task(_task("a"))
        with pytest.raises(InvalidStateError):
            store.update_task("a", id="b")

    def test_update_tasks_is_all_or_nothing(self, store):
        store.add_task(_task("a", 0))
        with pytest.raises(NotFoundError):
            store.update_tasks({"a": {"display_order": 9}, "zzz": {"display_order": 1}})
        assert store.get_task("a").display_order == 0

    def test_get_task_returns_a_copy(self, store):
        store.add_task(_task("a", 0))
        copy = store.get_task("a")
        copy.display_order = 42
        assert store.get_task("a").display_order == 0

    def test_remove_task(self, store):
        store.add_task(_task("a"))
        assert store.remove_task("a") is True
        assert store.remove_task("a") is False
        assert store.get_task("a") is None


# ---------------------------------------------------------------------------
# Ordering and queries
# ---------------------------------------------------------------------------


class TestOrdering:
    """Tests for display order sorting and counts."""

    def test_get_all_tasks_sorted_by_display_order(self, store):
        store.add_task(_task("c", 2))
        store.add_task(_task("a", 0))
        store.add_task(_task("b", 1))
        assert [t.id for t in store.get_all_tasks()] == ["a", "b", "c"]

    def test_unordered_tasks_sort_last_by_creation(self, store):
        now = utcnow()
        store.add_task(_task("late", None, created_at=now + timedelta(seconds=2)))
        store.add_task(_task("early", None, created_at=now))
        store.add_task(_task("ordered", 7))
        assert [t.id for t in store.get_all_tasks()] == ["ordered", "early", "late"]

    def test_next_display_order(self, store):
        assert store.next_display_order() == 0
        store.add_task(_task("a", 4))
        assert store.next_display_order() == 5

    def test_count_and_filter_by_status(self, store):
        store.add_task(_task("p", 0))
        store.add_task(_finished("c", TaskStatus.COMPLETED, 1))
        store.add_task(_finished("f", TaskStatus.FAILED, 2))
        counts = store.count_by_status()
        assert counts[TaskStatus.PENDING] == 1
        assert counts[TaskStatus.COMPLETED] == 1
        assert counts[TaskStatus.FAILED] == 1
        assert counts[TaskStatus.PROCESSING] == 0
        assert [t.id for t in store.get_tasks_by_status(TaskStatus.FAILED)] == ["f"]

    def test_clear_completed_tasks(self, store):
        store.add_task(_task("p", 0))
        store.add_task(_finished("c", TaskStatus.COMPLETED, 1))
        store.add_task(_finished("f", TaskStatus.FAILED, 2))
        assert store.clear_completed_tasks() == 2
        assert [t.id for t in store.get_all_tasks()] == ["p"]
        assert store.clear_completed_tasks() == 0


# ---------------------------------------------------------------------------
# Settings, statistics and maintenance
# ---------------------------------------------------------------------------


class TestMaintenance:
    """Tests for statistics, backup, reset and info."""

    def test_record_outcome(self, store):
        store.record_outcome(succeeded=True)
        store.record_outcome(succeeded=True)
        store.record_outcome(succeeded=False)
        stats = store.get_statistics()
        assert stats.total_processed == 2
        assert stats.total_failed == 1
        assert stats.last_processed_at is not None

    def test_backup_copies_file_and_records_time(self, store, tmp_path):
        store.add_task(_task("a"))
        target = store.backup(tmp_path / "backups")
        assert target.is_file()
        assert target.name.startswith("backup-")
        assert [t["id"] for t in json.loads(target.read_text())["tasks"]] == ["a"]
        assert store.get_settings().last_backup is not None

    def test_reset_restores_defaults(self, db_path):
        store = JsonTaskStore(db_path, default_concurrency=2)
        store.add_task(_task("a"))
        store.save_settings(concurrency=7, paused=True)
        store.record_outcome(succeeded=True)
        store.reset()
        assert store.get_all_tasks() == []
        assert store.get_settings().concurrency == 2
        assert store.get_settings().paused is False
        assert store.get_statistics().total_processed == 0

    def test_get_info(self, store, db_path):
        store.add_task(_task("p", 0))
        store.add_task(_finished("c", TaskStatus.COMPLETED, 1))
        info = store.get_info()
        assert info["path"] == str(db_path)
        assert info["task_count"] == 2
        assert info["pending_count"] == 1
        assert info["completed_count"] == 1
        assert info["version"] == "1.0.0"
