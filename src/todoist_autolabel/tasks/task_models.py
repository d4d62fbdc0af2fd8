# src/todoist_autolabel/tasks/task_models.py

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum

# Hard policy: a task gets at most this many classification attempts.
MAX_ATTEMPTS = 3


class TaskStatus(StrEnum):
    """
    Lifecycle status of a tracked Todoist task.

    pending    -> classified | failed | skipped
    classified, failed and skipped are terminal for the normal sync path.
    """

    PENDING = "pending"
    CLASSIFIED = "classified"
    FAILED = "failed"
    SKIPPED = "skipped"

    @classmethod
    def from_db(cls, raw: str | None) -> TaskStatus:
        if not raw:
            return cls.PENDING
        try:
            return cls(raw)
        except ValueError:
            return cls.PENDING


class ErrorType(StrEnum):
    CLASSIFICATION_ERROR = "CLASSIFICATION_ERROR"
    CLASSIFICATION_EMPTY = "CLASSIFICATION_EMPTY"
    SYNC_ERROR = "SYNC_ERROR"


@dataclass(slots=True)
class TaskRecord:
    task_id: str
    content: str
    status: TaskStatus
    labels: list[str] | None
    attempts: int
    last_attempt_at: float | None
    classified_at: float | None
    created_at: float
    updated_at: float


@dataclass(frozen=True, slots=True)
class ErrorLogEntry:
    id: int
    task_id: str | None
    error_type: str
    error_message: str
    stack_trace: str | None
    created_at: float


@dataclass(frozen=True, slots=True)
class SyncState:
    """Cursor state. sync_token is reserved for incremental sync and unused by full listing."""

    sync_token: str | None = None
    last_sync_at: float | None = None
    inbox_project_id: str | None = None


@dataclass(frozen=True, slots=True)
class StoreStats:
    total: int = 0
    classified: int = 0
    failed: int = 0
    pending: int = 0
    skipped: int = 0


@dataclass(slots=True)
class TickStats:
    """
    Outcome counters for one pass.

    `failed` counts every unsuccessful attempt, including the ones that stay
    pending for a later retry.
    """

    processed: int = 0
    classified: int = 0
    failed: int = 0
    skipped: int = 0

    def as_dict(self) -> dict[str, int]:
        return {
            "processed": self.processed,
            "classified": self.classified,
            "failed": self.failed,
            "skipped": self.skipped,
        }


@dataclass(frozen=True, slots=True)
class ProviderTask:
    """A task as currently seen by the task provider."""

    id: str
    content: str
    description: str = ""
    labels: list[str] = field(default_factory=list)
    is_completed: bool = False
    project_id: str | None = None


@dataclass(frozen=True, slots=True)
class ClassificationRequest:
    task_id: str
    content: str
    description: str
    vocabulary: list[str]


@dataclass(frozen=True, slots=True)
class ClassificationResult:
    task_id: str
    labels: list[str]
    raw_response: str | None = None
