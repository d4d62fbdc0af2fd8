# src/todoist_autolabel/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the orchestrator.

The orchestrator depends on Protocols instead of concrete implementations.
This keeps the task provider, the classifier and storage swappable and makes
the tick logic testable with fakes.
"""

from typing import Protocol

from ..tasks.task_models import (
    ClassificationRequest,
    ClassificationResult,
    ProviderTask,
    SyncState,
    TaskRecord,
)


class TaskProvider(Protocol):
    """
    Remote task service (Todoist).

    Implementations own their rate limiting: consecutive apply_labels calls
    are spaced by a small fixed delay.
    """

    async def resolve_inbox_project_id(self) -> str: ...

    async def list_tasks(self, project_id: str) -> list[ProviderTask]: ...

    async def get_task(self, task_id: str) -> ProviderTask | None:
        """Return None when the task no longer exists."""
        ...

    async def apply_labels(self, task_id: str, labels: list[str]) -> None: ...


class LabelClassifier(Protocol):
    """
    Picks labels for a task.

    Returned labels are a subset of request.vocabulary, already capped to the
    configured maximum. Raises on API/network failure.
    """

    async def classify(self, request: ClassificationRequest) -> ClassificationResult: ...


class TaskRepo(Protocol):
    def get_task(self, task_id: str) -> TaskRecord | None: ...
    def upsert_task(self, task_id: str, content: str) -> None: ...
    def mark_task_attempted(self, task_id: str) -> int: ...
    def mark_task_classified(self, task_id: str, labels: list[str]) -> None: ...
    def mark_task_failed(self, task_id: str) -> None: ...
    def mark_task_skipped(self, task_id: str) -> None: ...
    def get_pending_retryable_tasks(self) -> list[TaskRecord]: ...

    def log_error(
            self,
            error_type: str,
            message: str,
            task_id: str | None = None,
            stack_trace: str | None = None,
    ) -> int: ...

    def get_sync_state(self) -> SyncState: ...
    def save_last_sync_at(self, ts: float | None = None) -> None: ...
    def save_inbox_project_id(self, project_id: str | None) -> None: ...
