# tests/fakes.py

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from dataclasses import dataclass, field
from types import SimpleNamespace
from typing import Any

from todoist_autolabel.tasks.task_models import (
    ClassificationRequest,
    ClassificationResult,
    ProviderTask,
)


def make_task(
    task_id: str,
    content: str = "",
    *,
    description: str = "",
    labels: list[str] | None = None,
    is_completed: bool = False,
    project_id: str | None = "inbox",
) -> ProviderTask:
    return ProviderTask(
        id=task_id,
        content=content or f"task {task_id}",
        description=description,
        labels=list(labels or []),
        is_completed=is_completed,
        project_id=project_id,
    )


@dataclass
class FakeTaskProvider:
    """
    In-memory TaskProvider.

    - `tasks` is the current inbox listing (mutate it between ticks)
    - `apply_errors` / `get_errors` make single calls fail
    - captures every label update for assertions
    """

    tasks: list[ProviderTask] = field(default_factory=list)
    inbox_project_id: str = "inbox"
    list_error: Exception | None = None
    apply_errors: dict[str, Exception] = field(default_factory=dict)
    get_errors: dict[str, Exception] = field(default_factory=dict)
    list_delay: float = 0.0

    resolve_calls: int = 0
    list_calls: int = 0
    get_calls: list[str] = field(default_factory=list)
    applied: list[tuple[str, list[str]]] = field(default_factory=list)

    async def resolve_inbox_project_id(self) -> str:
        self.resolve_calls += 1
        return self.inbox_project_id

    async def list_tasks(self, project_id: str) -> list[ProviderTask]:
        self.list_calls += 1
        if self.list_delay:
            await asyncio.sleep(self.list_delay)
        if self.list_error is not None:
            raise self.list_error
        return [t for t in self.tasks if t.project_id in (None, project_id)]

    async def get_task(self, task_id: str) -> ProviderTask | None:
        self.get_calls.append(task_id)
        if task_id in self.get_errors:
            raise self.get_errors[task_id]
        for t in self.tasks:
            if t.id == task_id:
                return t
        return None

    async def apply_labels(self, task_id: str, labels: list[str]) -> None:
        if task_id in self.apply_errors:
            raise self.apply_errors[task_id]
        self.applied.append((task_id, list(labels)))

    async def aclose(self) -> None:
        return None


class FakeClassifier:
    """
    Scripted LabelClassifier.

    Outcomes are consumed per task id in order; each one is either a label list
    or an exception to raise. When a task's script runs out, `default` is used.
    """

    def __init__(
        self,
        script: dict[str, list[list[str] | Exception]] | None = None,
        *,
        default: list[str] | None = None,
    ) -> None:
        self.script = {k: list(v) for k, v in (script or {}).items()}
        self.default = list(default) if default is not None else ["work"]
        self.calls: list[ClassificationRequest] = []

    def calls_for(self, task_id: str) -> int:
        return sum(1 for c in self.calls if c.task_id == task_id)

    async def classify(self, request: ClassificationRequest) -> ClassificationResult:
        self.calls.append(request)
        queue = self.script.get(request.task_id)
        outcome: list[str] | Exception = queue.pop(0) if queue else self.default
        if isinstance(outcome, Exception):
            raise outcome
        return ClassificationResult(task_id=request.task_id, labels=list(outcome))


class _FakeCompletions:
    def __init__(self, owner: FakeOpenAIClient) -> None:
        self._owner = owner

    async def create(self, **kwargs: Any) -> Any:
        self._owner.calls.append(kwargs)
        outcome = self._owner.outcomes.get(kwargs["model"], self._owner.default)
        if isinstance(outcome, Exception):
            raise outcome
        message = SimpleNamespace(content=outcome, refusal=None)
        if isinstance(outcome, SimpleNamespace):
            message = outcome
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


class FakeOpenAIClient:
    """
    Stand-in for AsyncOpenAI exposing only chat.completions.create.

    `outcomes` maps a model name to the response text, a message namespace
    (for refusals) or an exception to raise.
    """

    def __init__(self, outcomes: dict[str, Any] | None = None, *, default: Any = '{"labels": []}') -> None:
        self.outcomes = dict(outcomes or {})
        self.default = default
        self.calls: list[dict[str, Any]] = []
        self.closed = False
        self.chat = SimpleNamespace(completions=_FakeCompletions(self))

    def models_called(self) -> list[str]:
        return [c["model"] for c in self.calls]

    async def close(self) -> None:
        self.closed = True


def ids(tasks: Iterable[Any]) -> list[str]:
    return [getattr(t, "task_id", None) or t.id for t in tasks]
