# tests/test_task_store.py

from __future__ import annotations

import sqlite3
import time
from pathlib import Path

import pytest

from todoist_autolabel.tasks.task_models import ErrorType, StoreStats, TaskStatus
from todoist_autolabel.tasks.task_store import TaskStore

from .fakes import ids


def test_upsert_creates_pending_record(store: TaskStore) -> None:
    assert store.get_task("t1") is None

    store.upsert_task("t1", "Buy milk")
    rec = store.get_task("t1")

    assert rec is not None
    assert rec.content == "Buy milk"
    assert rec.status == TaskStatus.PENDING
    assert rec.attempts == 0
    assert rec.labels is None
    assert rec.last_attempt_at is None
    assert rec.classified_at is None


def test_upsert_is_idempotent_and_keeps_progress(store: TaskStore) -> None:
    store.upsert_task("t1", "Buy milk")
    assert store.mark_task_attempted("t1") == 1
    store.mark_task_classified("t1", ["errand"])
    created_at = store.get_task("t1").created_at

    store.upsert_task("t1", "Buy oat milk")
    store.upsert_task("t1", "Buy oat milk")

    rec = store.get_task("t1")
    assert rec.content == "Buy oat milk"
    assert rec.status == TaskStatus.CLASSIFIED
    assert rec.attempts == 1
    assert rec.labels == ["errand"]
    assert rec.created_at == created_at
    assert store.get_stats().total == 1


def test_mark_attempted_counts_up(store: TaskStore) -> None:
    store.upsert_task("t1", "x")

    assert store.mark_task_attempted("t1") == 1
    assert store.mark_task_attempted("t1") == 2

    rec = store.get_task("t1")
    assert rec.attempts == 2
    assert rec.last_attempt_at is not None
    assert rec.status == TaskStatus.PENDING


def test_mark_attempted_on_unknown_task_changes_nothing(store: TaskStore) -> None:
    assert store.mark_task_attempted("missing") == 0
    assert store.get_task("missing") is None


def test_classified_sets_labels_and_timestamp(store: TaskStore) -> None:
    store.upsert_task("t1", "Pay rent")
    store.mark_task_attempted("t1")
    store.mark_task_classified("t1", ["finance", "home"])

    rec = store.get_task("t1")
    assert rec.status == TaskStatus.CLASSIFIED
    assert rec.labels == ["finance", "home"]
    assert rec.classified_at is not None


def test_failed_and_skipped_hide_labels(store: TaskStore) -> None:
    store.upsert_task("t1", "a")
    store.upsert_task("t2", "b")

    store.mark_task_failed("t1")
    store.mark_task_skipped("t2")

    assert store.get_task("t1").status == TaskStatus.FAILED
    assert store.get_task("t1").labels is None
    assert store.get_task("t2").status == TaskStatus.SKIPPED
    assert store.get_task("t2").labels is None


def test_pending_retryable_excludes_exhausted_and_terminal(tmp_path: Path) -> None:
    store = TaskStore(tmp_path / "tasks.sqlite3", max_attempts=2)
    for tid in ("a", "b", "c", "d"):
        store.upsert_task(tid, tid)

    store.mark_task_attempted("b")
    store.mark_task_attempted("c")
    store.mark_task_attempted("c")  # exhausted
    store.mark_task_classified("d", ["work"])

    assert ids(store.get_pending_retryable_tasks()) == ["a", "b"]
    assert store.task_needs_classification("a") is True
    assert store.task_needs_classification("c") is False
    assert store.task_needs_classification("d") is False
    assert store.task_needs_classification("never-seen") is True


def test_pending_retryable_is_oldest_first(store: TaskStore) -> None:
    store.upsert_task("old", "1")
    time.sleep(0.01)
    store.upsert_task("mid", "2")
    time.sleep(0.01)
    store.upsert_task("new", "3")

    # A content refresh does not move a record in the queue.
    store.upsert_task("old", "1 edited")

    assert ids(store.get_pending_retryable_tasks()) == ["old", "mid", "new"]


def test_get_tasks_by_status(store: TaskStore) -> None:
    store.upsert_task("a", "a")
    store.upsert_task("b", "b")
    store.mark_task_skipped("b")

    assert ids(store.get_tasks_by_status(TaskStatus.PENDING)) == ["a"]
    assert ids(store.get_tasks_by_status(TaskStatus.SKIPPED)) == ["b"]
    assert store.get_tasks_by_status(TaskStatus.FAILED) == []


def test_error_log_is_capped_fifo(store: TaskStore) -> None:
    assert store.max_error_logs == 5

    row_ids = [store.log_error(ErrorType.CLASSIFICATION_ERROR, f"err {i}", "t1") for i in range(8)]
    assert row_ids == sorted(row_ids)

    assert store.count_errors() == 5
    recent = store.get_recent_errors()
    assert [e.error_message for e in recent] == ["err 7", "err 6", "err 5", "err 4", "err 3"]

    # The cap holds after every later insert as well.
    store.log_error(ErrorType.SYNC_ERROR, "boom")
    assert store.count_errors() == 5
    assert store.get_recent_errors(1)[0].error_type == "SYNC_ERROR"
    assert store.get_recent_errors(1)[0].task_id is None


def test_task_errors_filter_by_task(store: TaskStore) -> None:
    store.log_error(ErrorType.CLASSIFICATION_ERROR, "first", "t1", "Traceback ...")
    store.log_error(ErrorType.CLASSIFICATION_ERROR, "other", "t2")
    store.log_error(ErrorType.CLASSIFICATION_EMPTY, "second", "t1")

    errs = store.get_task_errors("t1")
    assert [e.error_message for e in errs] == ["second", "first"]
    assert errs[1].stack_trace == "Traceback ..."
    assert errs[0].stack_trace is None


def test_max_error_logs_must_be_positive(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        TaskStore(tmp_path / "x.sqlite3", max_error_logs=0)


def test_stats_empty_store_is_all_zero(store: TaskStore) -> None:
    assert store.get_stats() == StoreStats(total=0, classified=0, failed=0, pending=0, skipped=0)


def test_stats_count_each_status(store: TaskStore) -> None:
    for tid in ("a", "b", "c", "d", "e"):
        store.upsert_task(tid, tid)
    store.mark_task_classified("a", ["work"])
    store.mark_task_classified("b", ["home"])
    store.mark_task_failed("c")
    store.mark_task_skipped("d")

    stats = store.get_stats()
    assert stats == StoreStats(total=5, classified=2, failed=1, pending=1, skipped=1)
    assert stats.total == stats.classified + stats.failed + stats.pending + stats.skipped


def test_sync_state_defaults_to_none(store: TaskStore) -> None:
    state = store.get_sync_state()
    assert state.sync_token is None
    assert state.last_sync_at is None
    assert state.inbox_project_id is None


def test_sync_state_roundtrip(store: TaskStore) -> None:
    store.save_sync_token("tok-1")
    store.save_last_sync_at(1700000000.5)
    store.save_inbox_project_id("inbox-42")

    state = store.get_sync_state()
    assert state.sync_token == "tok-1"
    assert state.last_sync_at == 1700000000.5
    assert state.inbox_project_id == "inbox-42"

    store.save_sync_token("tok-2")
    store.save_last_sync_at()
    state = store.get_sync_state()
    assert state.sync_token == "tok-2"
    assert state.last_sync_at is not None and state.last_sync_at > 1700000000.5


def test_state_survives_reopen(tmp_path: Path) -> None:
    db = tmp_path / "tasks.sqlite3"
    store = TaskStore(db)
    store.upsert_task("t1", "persist me")
    store.mark_task_attempted("t1")
    store.mark_task_classified("t1", ["work"])
    store.log_error(ErrorType.SYNC_ERROR, "offline")
    store.save_inbox_project_id("inbox")
    store.close()

    reopened = TaskStore(db)
    rec = reopened.get_task("t1")
    assert rec.status == TaskStatus.CLASSIFIED
    assert rec.attempts == 1
    assert rec.labels == ["work"]
    assert reopened.count_errors() == 1
    assert reopened.get_sync_state().inbox_project_id == "inbox"


def test_schema_migration_adds_missing_columns(tmp_path: Path) -> None:
    db = tmp_path / "legacy.sqlite3"
    conn = sqlite3.connect(db)
    conn.execute(
        """
        CREATE TABLE tasks (
            task_id TEXT PRIMARY KEY,
            content TEXT NOT NULL DEFAULT '',
            status TEXT NOT NULL DEFAULT 'pending',
            created_at REAL NOT NULL,
            updated_at REAL NOT NULL
        )
        """
    )
    conn.execute("INSERT INTO tasks VALUES ('old', 'legacy row', 'pending', 1.0, 1.0)")
    conn.commit()
    conn.close()

    store = TaskStore(db)
    rec = store.get_task("old")
    assert rec.attempts == 0
    assert store.mark_task_attempted("old") == 1


def test_unknown_status_reads_as_pending(store: TaskStore) -> None:
    store.upsert_task("t1", "x")
    conn = sqlite3.connect(store.db_path)
    conn.execute("UPDATE tasks SET status = 'weird' WHERE task_id = 't1'")
    conn.commit()
    conn.close()

    assert store.get_task("t1").status == TaskStatus.PENDING
