# src/todoist_autolabel/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- loads the label vocabulary,
- wires concrete implementations into AppState (store/provider/classifier/orchestrator),
- closes them again on shutdown.
"""

from __future__ import annotations

import logging

from ..config import get_settings
from ..core.ports import LabelClassifier
from ..core.state import AppState
from ..llm.client import OpenAILabelClassifier, load_labels
from ..llm.offline import OfflineLabelClassifier
from ..tasks.task_scheduler import SyncOrchestrator
from ..tasks.task_store import TaskStore
from ..todoist.client import TodoistTaskProvider

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.db_path.parent.mkdir(parents=True, exist_ok=True)
    settings.log_dir.mkdir(parents=True, exist_ok=True)


def create_store(settings) -> TaskStore:
    return TaskStore(settings.db_path, max_error_logs=settings.max_error_logs)


def create_initial_state(*, settings=None) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    Raises if the labels file is unusable or no LLM key is set outside offline mode.
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    vocabulary = load_labels(settings.labels_path)
    if not vocabulary:
        raise ValueError(f"Labels file {settings.labels_path} defines no labels")

    # Without a key OpenAILabelClassifier raises; the keyword matcher is opt-in only.
    classifier: LabelClassifier
    offline = bool(getattr(settings, "offline", False))
    if offline:
        logger.warning("Offline mode: labels come from the keyword classifier, not the LLM.")
        classifier = OfflineLabelClassifier(max_labels=settings.max_labels_per_task)
    else:
        classifier = OpenAILabelClassifier(settings)

    store = create_store(settings)
    provider = TodoistTaskProvider(settings.todoist_api_token or "", base_url=settings.todoist_base_url)
    orchestrator = SyncOrchestrator(store, provider, classifier, vocabulary)

    logger.info(
        "State ready: %d labels, classifier=%s, db=%s",
        len(vocabulary),
        classifier.__class__.__name__,
        settings.db_path,
    )

    return AppState(
        settings=settings,
        store=store,
        provider=provider,
        classifier=classifier,
        orchestrator=orchestrator,
        vocabulary=vocabulary,
        offline=offline,
    )


async def shutdown_state(state: AppState) -> None:
    """Close network clients first, storage last."""
    try:
        await state.provider.aclose()  # type: ignore[attr-defined]
    except Exception:
        logger.debug("Task provider close failed.", exc_info=True)

    close = getattr(state.classifier, "aclose", None)
    if callable(close):
        try:
            await close()
        except Exception:
            logger.debug("Classifier close failed.", exc_info=True)

    state.store.close()
