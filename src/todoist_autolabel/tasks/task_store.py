# src/todoist_autolabel/tasks/task_store.py

from __future__ import annotations

import contextlib
import json
import logging
import sqlite3
import time
from pathlib import Path
from typing import Any

from .task_models import (
    MAX_ATTEMPTS,
    ErrorLogEntry,
    StoreStats,
    SyncState,
    TaskRecord,
    TaskStatus,
)

logger = logging.getLogger(__name__)

_SYNC_TOKEN_KEY = "sync_token"
_LAST_SYNC_AT_KEY = "last_sync_at"
_INBOX_PROJECT_ID_KEY = "inbox_project_id"


class TaskStore:
    """
    SQLite store for classification progress.

    Tables:
    - tasks:      one row per Todoist task ever observed (status, attempts, labels)
    - error_logs: capped diagnostic log, pruned FIFO after every insert
    - sync_state: key/value cursor state (sync token, last sync, inbox project)

    The schema is migration-safe:
    - create table if missing
    - use PRAGMA table_info to detect missing columns
    - add columns with ALTER TABLE only when needed

    Each method opens its own SQLite connection. sqlite3 errors are never
    swallowed: the attempt counters are only trustworthy if writes land.
    """

    def __init__(
        self,
        db_path: str | Path = "autolabel.sqlite3",
        *,
        max_error_logs: int = 1000,
        max_attempts: int = MAX_ATTEMPTS,
    ) -> None:
        if int(max_error_logs) < 1:
            raise ValueError("max_error_logs must be >= 1")
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._max_error_logs = int(max_error_logs)
        self._max_attempts = int(max_attempts)
        self._ensure_schema()
        logger.info(
            "TaskStore ready db=%s tasks=%s errors=%s",
            self._db_path,
            self.get_stats().total,
            self.count_errors(),
        )

    @property
    def db_path(self) -> Path:
        return self._db_path

    @property
    def max_error_logs(self) -> int:
        return self._max_error_logs

    def close(self) -> None:
        """Shutdown hook (no persistent connections to close)."""
        logger.debug("TaskStore closed db=%s", self._db_path)

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        self._configure_conn(conn)
        return conn

    @staticmethod
    def _configure_conn(conn: sqlite3.Connection) -> None:
        # journal_mode can be refused on some filesystems; the store still works without WAL.
        with contextlib.suppress(sqlite3.OperationalError):
            conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA busy_timeout=5000")
        conn.execute("PRAGMA synchronous=NORMAL")

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()

            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS tasks (
                    task_id TEXT PRIMARY KEY,
                    content TEXT NOT NULL DEFAULT '',
                    status TEXT NOT NULL DEFAULT 'pending',
                    labels TEXT,
                    attempts INTEGER NOT NULL DEFAULT 0,
                    last_attempt_at REAL,
                    classified_at REAL,
                    created_at REAL NOT NULL,
                    updated_at REAL NOT NULL
                )
                """
            )

            cur.execute("PRAGMA table_info(tasks)")
            cols = {row["name"] for row in cur.fetchall()}

            def add_col(name: str, decl: str) -> None:
                if name in cols:
                    return
                cur.execute(f"ALTER TABLE tasks ADD COLUMN {name} {decl}")
                logger.info("TaskStore migration: added column tasks.%s", name)

            add_col("labels", "TEXT")
            add_col("attempts", "INTEGER NOT NULL DEFAULT 0")
            add_col("last_attempt_at", "REAL")
            add_col("classified_at", "REAL")

            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS error_logs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    task_id TEXT,
                    error_type TEXT NOT NULL,
                    error_message TEXT NOT NULL,
                    stack_trace TEXT,
                    created_at REAL NOT NULL
                )
                """
            )

            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS sync_state (
                    key TEXT PRIMARY KEY,
                    value TEXT,
                    updated_at REAL NOT NULL
                )
                """
            )

            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_status ON tasks(status, created_at)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_error_logs_task_id ON error_logs(task_id)")
            cur.execute(
                "CREATE INDEX IF NOT EXISTS idx_error_logs_created_at ON error_logs(created_at)"
            )

            conn.commit()
        finally:
            conn.close()

    @staticmethod
    def _labels_to_str(labels: list[str]) -> str:
        return json.dumps(list(labels), ensure_ascii=False)

    @staticmethod
    def _str_to_labels(s: str | None) -> list[str] | None:
        if s is None:
            return None
        try:
            val = json.loads(s)
        except ValueError:
            logger.warning("Corrupt labels column %r; treating as empty.", s)
            return []
        return [str(x) for x in val] if isinstance(val, list) else []

    def _row_to_task(self, row: sqlite3.Row) -> TaskRecord:
        status = TaskStatus.from_db(row["status"])
        return TaskRecord(
            task_id=str(row["task_id"]),
            content=str(row["content"] or ""),
            status=status,
            labels=self._str_to_labels(row["labels"]) if status == TaskStatus.CLASSIFIED else None,
            attempts=int(row["attempts"] or 0),
            last_attempt_at=float(row["last_attempt_at"]) if row["last_attempt_at"] is not None else None,
            classified_at=float(row["classified_at"]) if row["classified_at"] is not None else None,
            created_at=float(row["created_at"] or 0.0),
            updated_at=float(row["updated_at"] or 0.0),
        )

    @staticmethod
    def _row_to_error(row: sqlite3.Row) -> ErrorLogEntry:
        return ErrorLogEntry(
            id=int(row["id"]),
            task_id=row["task_id"],
            error_type=str(row["error_type"]),
            error_message=str(row["error_message"]),
            stack_trace=row["stack_trace"],
            created_at=float(row["created_at"] or 0.0),
        )

    def _set_status(self, task_id: str, status: TaskStatus) -> None:
        now = time.time()
        conn = self._get_conn()
        try:
            conn.execute(
                "UPDATE tasks SET status = ?, updated_at = ? WHERE task_id = ?",
                (status.value, now, str(task_id)),
            )
            conn.commit()
        finally:
            conn.close()

    def _put_sync_value(self, key: str, value: str | None) -> None:
        now = time.time()
        conn = self._get_conn()
        try:
            conn.execute(
                """
                INSERT INTO sync_state(key, value, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = excluded.updated_at
                """,
                (key, value, now),
            )
            conn.commit()
        finally:
            conn.close()

    # ---- tasks ----

    def get_task(self, task_id: str) -> TaskRecord | None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute("SELECT * FROM tasks WHERE task_id = ?", (str(task_id),))
            row = cur.fetchone()
            return self._row_to_task(row) if row else None
        finally:
            conn.close()

    def upsert_task(self, task_id: str, content: str) -> None:
        """
        Insert a new pending record, or refresh content of an existing one.

        Status and attempts of an existing record are never touched, so
        re-observing a task on every tick is always safe.
        """
        now = time.time()
        conn = self._get_conn()
        try:
            conn.execute(
                """
                INSERT INTO tasks(task_id, content, status, attempts, created_at, updated_at)
                VALUES (?, ?, 'pending', 0, ?, ?)
                ON CONFLICT(task_id) DO UPDATE SET
                    content = excluded.content,
                    updated_at = excluded.updated_at
                """,
                (str(task_id), content or "", now, now),
            )
            conn.commit()
        finally:
            conn.close()

    def mark_task_attempted(self, task_id: str) -> int:
        """
        Count one classification attempt and return the new total.

        Called before the outcome is known so an interrupted attempt still counts.
        """
        now = time.time()
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                UPDATE tasks
                SET attempts = attempts + 1,
                    last_attempt_at = ?,
                    updated_at = ?
                WHERE task_id = ?
                """,
                (now, now, str(task_id)),
            )
            cur.execute("SELECT attempts FROM tasks WHERE task_id = ?", (str(task_id),))
            row = cur.fetchone()
            conn.commit()
            return int(row["attempts"]) if row else 0
        finally:
            conn.close()

    def mark_task_classified(self, task_id: str, labels: list[str]) -> None:
        now = time.time()
        conn = self._get_conn()
        try:
            conn.execute(
                """
                UPDATE tasks
                SET status = 'classified',
                    labels = ?,
                    classified_at = ?,
                    updated_at = ?
                WHERE task_id = ?
                """,
                (self._labels_to_str(labels), now, now, str(task_id)),
            )
            conn.commit()
        finally:
            conn.close()

    def mark_task_failed(self, task_id: str) -> None:
        self._set_status(task_id, TaskStatus.FAILED)

    def mark_task_skipped(self, task_id: str) -> None:
        self._set_status(task_id, TaskStatus.SKIPPED)

    def get_tasks_by_status(self, status: TaskStatus) -> list[TaskRecord]:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                "SELECT * FROM tasks WHERE status = ? ORDER BY created_at ASC, rowid ASC",
                (status.value,),
            )
            return [self._row_to_task(r) for r in cur.fetchall()]
        finally:
            conn.close()

    def get_pending_retryable_tasks(self) -> list[TaskRecord]:
        """Pending records with attempts left, oldest first."""
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                SELECT *
                FROM tasks
                WHERE status = 'pending'
                  AND attempts < ?
                ORDER BY created_at ASC, rowid ASC
                """,
                (self._max_attempts,),
            )
            return [self._row_to_task(r) for r in cur.fetchall()]
        finally:
            conn.close()

    def task_needs_classification(self, task_id: str) -> bool:
        record = self.get_task(task_id)
        if record is None:
            return True
        return record.status == TaskStatus.PENDING and record.attempts < self._max_attempts

    # ---- error log ----

    def log_error(
        self,
        error_type: str,
        message: str,
        task_id: str | None = None,
        stack_trace: str | None = None,
    ) -> int:
        """
        Append an error row and prune the table down to max_error_logs.

        Insert and prune share one transaction. Returns the new row id.
        """
        now = time.time()
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                INSERT INTO error_logs(task_id, error_type, error_message, stack_trace, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (task_id, str(error_type), message or "", stack_trace, now),
            )
            rowid = cur.lastrowid
            if rowid is None:
                raise RuntimeError("SQLite did not return lastrowid for error_logs insert")

            cur.execute("SELECT COUNT(*) FROM error_logs")
            (count,) = cur.fetchone()
            excess = int(count) - self._max_error_logs
            if excess > 0:
                cur.execute(
                    """
                    DELETE FROM error_logs
                    WHERE id IN (
                        SELECT id FROM error_logs
                        ORDER BY id ASC
                        LIMIT ?
                    )
                    """,
                    (excess,),
                )
                logger.debug("Pruned %d old error log rows", excess)

            conn.commit()
            return int(rowid)
        finally:
            conn.close()

    def count_errors(self) -> int:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute("SELECT COUNT(*) FROM error_logs")
            (n,) = cur.fetchone()
            return int(n)
        finally:
            conn.close()

    def get_recent_errors(self, limit: int = 100) -> list[ErrorLogEntry]:
        """Newest first."""
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                "SELECT * FROM error_logs ORDER BY id DESC LIMIT ?",
                (max(0, int(limit)),),
            )
            return [self._row_to_error(r) for r in cur.fetchall()]
        finally:
            conn.close()

    def get_task_errors(self, task_id: str) -> list[ErrorLogEntry]:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                "SELECT * FROM error_logs WHERE task_id = ? ORDER BY id DESC",
                (str(task_id),),
            )
            return [self._row_to_error(r) for r in cur.fetchall()]
        finally:
            conn.close()

    # ---- stats ----

    def get_stats(self) -> StoreStats:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                SELECT
                    COUNT(*) AS total,
                    SUM(CASE WHEN status = 'classified' THEN 1 ELSE 0 END) AS classified,
                    SUM(CASE WHEN status = 'failed' THEN 1 ELSE 0 END) AS failed,
                    SUM(CASE WHEN status = 'pending' THEN 1 ELSE 0 END) AS pending,
                    SUM(CASE WHEN status = 'skipped' THEN 1 ELSE 0 END) AS skipped
                FROM tasks
                """
            )
            row = cur.fetchone()
            # SUM() over an empty table is NULL.
            return StoreStats(
                total=int(row["total"] or 0),
                classified=int(row["classified"] or 0),
                failed=int(row["failed"] or 0),
                pending=int(row["pending"] or 0),
                skipped=int(row["skipped"] or 0),
            )
        finally:
            conn.close()

    # ---- sync state ----

    def get_sync_state(self) -> SyncState:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute("SELECT key, value FROM sync_state")
            values: dict[str, Any] = {r["key"]: r["value"] for r in cur.fetchall()}
        finally:
            conn.close()

        last_sync_raw = values.get(_LAST_SYNC_AT_KEY)
        try:
            last_sync_at = float(last_sync_raw) if last_sync_raw is not None else None
        except ValueError:
            last_sync_at = None

        return SyncState(
            sync_token=values.get(_SYNC_TOKEN_KEY),
            last_sync_at=last_sync_at,
            inbox_project_id=values.get(_INBOX_PROJECT_ID_KEY),
        )

    def save_sync_token(self, token: str | None) -> None:
        """
        Reserved for incremental sync. The REST provider lists the full inbox
        every tick, so the orchestrator neither writes nor reads this value.
        """
        self._put_sync_value(_SYNC_TOKEN_KEY, token)

    def save_last_sync_at(self, ts: float | None = None) -> None:
        self._put_sync_value(_LAST_SYNC_AT_KEY, repr(float(ts if ts is not None else time.time())))

    def save_inbox_project_id(self, project_id: str | None) -> None:
        self._put_sync_value(_INBOX_PROJECT_ID_KEY, project_id)
