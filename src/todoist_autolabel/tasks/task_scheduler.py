# src/todoist_autolabel/tasks/task_scheduler.py

from __future__ import annotations

"""
Sync / classification orchestration.

One tick:
- lists the inbox tasks from the provider,
- filters out completed, externally labeled and already settled tasks,
- classifies each eligible task and writes the labels back,
- records attempts, outcomes and errors in the store,
- stamps the sync time.

A separate retry pass re-fetches pending tasks one by one and runs them through
the same per-task sequence. Both passes share a busy flag so they never overlap.
"""

import asyncio
import logging
import time
import traceback
from typing import assert_never

from ..core.ports import LabelClassifier, TaskProvider, TaskRepo
from .task_models import (
    MAX_ATTEMPTS,
    ClassificationRequest,
    ErrorType,
    ProviderTask,
    TaskRecord,
    TaskStatus,
    TickStats,
)

logger = logging.getLogger(__name__)


def _format_stack(exc: BaseException) -> str:
    return "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))


def _error_message(exc: BaseException) -> str:
    return str(exc) or exc.__class__.__name__


class SyncOrchestrator:
    """
    Drives tasks through pending -> classified | failed | skipped.

    The orchestrator keeps no records between ticks; everything durable lives
    in the store and eligibility is re-evaluated on every tick.
    """

    def __init__(
        self,
        store: TaskRepo,
        provider: TaskProvider,
        classifier: LabelClassifier,
        vocabulary: list[str],
        *,
        max_attempts: int = MAX_ATTEMPTS,
    ) -> None:
        self._store = store
        self._provider = provider
        self._classifier = classifier
        self._vocabulary = list(vocabulary)
        self._max_attempts = int(max_attempts)
        self._busy = False

    @property
    def is_busy(self) -> bool:
        return self._busy

    @property
    def vocabulary(self) -> list[str]:
        return list(self._vocabulary)

    # ---- eligibility ----

    def _is_eligible(self, record: TaskRecord | None) -> bool:
        if record is None:
            return True

        match record.status:
            case TaskStatus.CLASSIFIED | TaskStatus.SKIPPED:
                return False
            case TaskStatus.FAILED:
                # Permanent until reset from outside.
                return False
            case TaskStatus.PENDING:
                if record.attempts < self._max_attempts:
                    return True
                # Final attempt was interrupted before its outcome was recorded.
                logger.warning(
                    "Task %s is pending with %d/%d attempts used; marking failed",
                    record.task_id,
                    record.attempts,
                    self._max_attempts,
                )
                self._store.mark_task_failed(record.task_id)
                return False
            case _:
                assert_never(record.status)

    # ---- per-task sequence ----

    def _record_failure(
        self,
        task_id: str,
        attempts: int,
        exc: Exception,
        *,
        stage: str,
    ) -> None:
        msg = _error_message(exc)
        self._store.log_error(ErrorType.CLASSIFICATION_ERROR, msg, task_id, _format_stack(exc))

        if attempts >= self._max_attempts:
            self._store.mark_task_failed(task_id)
            logger.error(
                "Task %s permanently failed after %d attempts (%s): %s",
                task_id,
                attempts,
                stage,
                msg,
            )
        else:
            logger.warning(
                "Task %s %s failed, will retry (attempt %d/%d): %s",
                task_id,
                stage,
                attempts,
                self._max_attempts,
                msg,
            )

    async def _process_task(self, task: ProviderTask) -> bool:
        """
        Run one classification attempt for an eligible task.

        Returns True when labels were classified and written back.
        Store errors propagate; collaborator errors become a counted attempt.
        """
        self._store.upsert_task(task.id, task.content)
        attempts = self._store.mark_task_attempted(task.id)

        request = ClassificationRequest(
            task_id=task.id,
            content=task.content or "",
            description=task.description or "",
            vocabulary=list(self._vocabulary),
        )

        try:
            result = await self._classifier.classify(request)
        except Exception as exc:
            self._record_failure(task.id, attempts, exc, stage="classification")
            return False

        labels = list(result.labels)
        if not labels:
            if attempts >= self._max_attempts:
                self._store.log_error(
                    ErrorType.CLASSIFICATION_EMPTY,
                    "No labels could be assigned after max attempts",
                    task.id,
                )
                self._store.mark_task_failed(task.id)
                logger.error(
                    "Task %s permanently failed: no labels after %d attempts",
                    task.id,
                    attempts,
                )
            else:
                logger.warning(
                    "No labels assigned to task %s, will retry (attempt %d/%d)",
                    task.id,
                    attempts,
                    self._max_attempts,
                )
            return False

        try:
            await self._provider.apply_labels(task.id, labels)
        except Exception as exc:
            self._record_failure(task.id, attempts, exc, stage="label update")
            return False

        self._store.mark_task_classified(task.id, labels)
        logger.info("Task %s classified labels=%s", task.id, labels)
        return True

    @staticmethod
    def _retry_skip_reason(task: ProviderTask | None, inbox_project_id: str | None) -> str | None:
        if task is None:
            return "gone"
        if task.is_completed:
            return "completed"
        if task.labels:
            return "labeled"
        if inbox_project_id and task.project_id and task.project_id != inbox_project_id:
            return f"moved to project {task.project_id}"
        return None

    def _count(self, stats: TickStats, ok: bool) -> None:
        stats.processed += 1
        if ok:
            stats.classified += 1
        else:
            stats.failed += 1

    # ---- passes ----

    async def run_tick(self) -> TickStats:
        """
        One full sync-and-classify cycle.

        A call made while another pass is running returns zero stats at once.
        A failure to list tasks is logged as SYNC_ERROR and re-raised.
        """
        if self._busy:
            logger.debug("Sync already in progress, skipping")
            return TickStats()

        self._busy = True
        try:
            stats = TickStats()
            cached_project_id = self._store.get_sync_state().inbox_project_id

            try:
                project_id = cached_project_id or await self._provider.resolve_inbox_project_id()
                tasks = await self._provider.list_tasks(project_id)
            except Exception as exc:
                self._store.log_error(ErrorType.SYNC_ERROR, _error_message(exc), None, _format_stack(exc))
                logger.error("Sync cycle failed: %s", _error_message(exc))
                raise

            if not cached_project_id:
                self._store.save_inbox_project_id(project_id)
                logger.info("Resolved inbox project id=%s", project_id)

            logger.info("Found %d tasks in inbox", len(tasks))

            eligible: list[ProviderTask] = []
            for task in tasks:
                if task.is_completed:
                    continue

                record = self._store.get_task(task.id)

                if task.labels:
                    # Never overwrite labels applied outside this service.
                    if record is None:
                        self._store.upsert_task(task.id, task.content)
                        self._store.mark_task_skipped(task.id)
                        stats.skipped += 1
                        logger.info("Task %s already labeled %s; skipped", task.id, task.labels)
                    continue

                if self._is_eligible(record):
                    eligible.append(task)

            logger.info("%d tasks need classification", len(eligible))

            for task in eligible:
                ok = await self._process_task(task)
                self._count(stats, ok)

            self._store.save_last_sync_at()
            logger.info("Sync cycle completed %s", stats.as_dict())
            return stats
        finally:
            self._busy = False

    async def retry_pending_tasks(self) -> TickStats:
        """
        Recovery pass over pending records with attempts left, oldest first.

        Each task is re-fetched individually. Tasks that are gone, completed,
        externally labeled or moved out of the inbox are marked skipped instead
        of classified. A failed fetch is logged as SYNC_ERROR for that task and
        the record stays pending.
        """
        if self._busy:
            logger.debug("Sync already in progress, skipping retry pass")
            return TickStats()

        self._busy = True
        try:
            stats = TickStats()
            pending = self._store.get_pending_retryable_tasks()
            inbox_project_id = self._store.get_sync_state().inbox_project_id
            logger.info("Found %d tasks to retry", len(pending))

            for record in pending:
                try:
                    task = await self._provider.get_task(record.task_id)
                except Exception as exc:
                    msg = _error_message(exc)
                    self._store.log_error(ErrorType.SYNC_ERROR, msg, record.task_id, _format_stack(exc))
                    logger.error("Error retrying task %s: %s", record.task_id, msg)
                    continue

                reason = self._retry_skip_reason(task, inbox_project_id)
                if reason is not None:
                    self._store.mark_task_skipped(record.task_id)
                    stats.skipped += 1
                    logger.info("Task %s no longer needs classification (%s); skipped", record.task_id, reason)
                    continue

                ok = await self._process_task(task)
                self._count(stats, ok)

            logger.info("Retry pass completed %s", stats.as_dict())
            return stats
        finally:
            self._busy = False


async def run_sync_scheduler(
        orchestrator: SyncOrchestrator,
        *,
        interval_seconds: float = 15.0,
        retry_interval_seconds: float = 60.0,
        stop_event: asyncio.Event | None = None,
) -> None:
    """
    Polling loop.

    - runs a tick immediately, then every interval_seconds
    - runs the retry pass every retry_interval_seconds (first one after one interval)
    - a failing tick is logged and the loop keeps going
    - setting stop_event stops new ticks; an in-flight tick finishes first

    Without a stop_event, cancel the coroutine to stop it.
    """
    sleep_s = max(0.01, float(interval_seconds))
    retry_s = max(sleep_s, float(retry_interval_seconds))
    stop = stop_event or asyncio.Event()
    next_retry_at = time.monotonic() + retry_s

    while not stop.is_set():
        try:
            await orchestrator.run_tick()
        except Exception:
            logger.exception("Sync tick failed")

        if not stop.is_set() and time.monotonic() >= next_retry_at:
            next_retry_at = time.monotonic() + retry_s
            try:
                await orchestrator.retry_pending_tasks()
            except Exception:
                logger.exception("Retry pass failed")

        try:
            await asyncio.wait_for(stop.wait(), timeout=sleep_s)
        except asyncio.TimeoutError:
            pass

    logger.info("Sync scheduler stopped")
