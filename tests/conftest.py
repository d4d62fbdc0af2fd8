# tests/conftest.py

from __future__ import annotations

import json
from pathlib import Path
from types import SimpleNamespace

import pytest

from todoist_autolabel.tasks.task_store import TaskStore

VOCABULARY = ["work", "personal", "errand", "finance", "health"]


@pytest.fixture()
def labels_file(tmp_path: Path) -> Path:
    path = tmp_path / "labels.json"
    path.write_text(
        json.dumps({"labels": [{"name": n, "color": "blue"} for n in VOCABULARY]}),
        encoding="utf-8",
    )
    return path


@pytest.fixture()
def settings(tmp_path: Path, labels_file: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with the composition root and core modules.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated from the process environment.
    """
    data_dir = tmp_path / "data"
    return SimpleNamespace(
        app_name="todoist-autolabel-test",
        log_level="DEBUG",
        # Todoist
        todoist_api_token="test-token",
        todoist_base_url="https://todoist.test/api/v1",
        # LLM (no key; tests that need the LLM client inject a fake)
        llm_api_key=None,
        llm_base_url="https://llm.test/v1",
        llm_models=["model-a", "model-b"],
        extra_headers={"X-Title": "test"},
        max_labels_per_task=3,
        offline=False,
        # Service
        poll_interval_ms=10,
        retry_interval_ms=20,
        max_error_logs=50,
        # Paths (tmp per test run)
        data_dir=data_dir,
        db_path=data_dir / "autolabel.sqlite3",
        labels_path=labels_file,
        log_dir=data_dir,
    )


@pytest.fixture()
def store(tmp_path: Path) -> TaskStore:
    """Real SQLite store: its durability rules are part of what we test."""
    return TaskStore(tmp_path / "tasks.sqlite3", max_error_logs=5)


@pytest.fixture()
def vocabulary() -> list[str]:
    return list(VOCABULARY)
