# src/todoist_autolabel/core/state.py

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from ..tasks.task_scheduler import SyncOrchestrator
from ..tasks.task_store import TaskStore
from .ports import LabelClassifier, TaskProvider


@dataclass
class AppState:
    """Objects built once at process start and handed to whatever drives ticks."""

    # Settings object (config.Settings in production, SimpleNamespace in tests).
    settings: Any

    store: TaskStore
    provider: TaskProvider
    classifier: LabelClassifier
    orchestrator: SyncOrchestrator

    vocabulary: list[str] = field(default_factory=list)
    offline: bool = False
