# src/todoist_autolabel/llm/offline.py

from __future__ import annotations

import re

from ..tasks.task_models import ClassificationRequest, ClassificationResult
from .client import finalize_labels


class OfflineLabelClassifier:
    """
    Offline deterministic classifier used for demos when no LLM API is configured.

    Picks every vocabulary label whose name appears as a word in the task title
    or description (case-insensitive, '-' and '_' match spaces).
    """

    def __init__(self, max_labels: int = 5) -> None:
        self._max_labels = int(max_labels)

    @staticmethod
    def _pattern(label: str) -> re.Pattern[str]:
        words = [re.escape(w) for w in re.split(r"[\s_\-]+", label.strip()) if w]
        return re.compile(r"\b" + r"[\s_\-]+".join(words) + r"\b", re.IGNORECASE)

    async def classify(self, request: ClassificationRequest) -> ClassificationResult:
        text = f"{request.content}\n{request.description}"
        hits = [label for label in request.vocabulary if label.strip() and self._pattern(label).search(text)]
        labels = finalize_labels(hits, request.vocabulary, self._max_labels)
        return ClassificationResult(task_id=request.task_id, labels=labels, raw_response="offline")
