# src/todoist_autolabel/llm/client.py

from __future__ import annotations

import json
import logging
import os
import time
from pathlib import Path
from typing import Any

import httpx
import openai
from openai import AsyncOpenAI

from ..tasks.task_models import ClassificationRequest, ClassificationResult

logger = logging.getLogger(__name__)

_BAD_MODEL_TTL_SECONDS = 3600.0

SYSTEM_PROMPT_TEMPLATE = """You are a task classification assistant. Your job is to analyze tasks and assign the most appropriate labels from a predefined taxonomy.

Guidelines:
- Choose {label_range} that best categorize the task, best match first
- Prefer more specific labels over general ones when applicable
- Consider both the task title and description when classifying
- If unsure, choose broader category labels
- Answer with JSON only: {{"labels": [...]}}"""


def build_system_prompt(max_labels: int) -> str:
    n = max(1, int(max_labels))
    label_range = "1 label" if n == 1 else f"1-{n} labels"
    return SYSTEM_PROMPT_TEMPLATE.format(label_range=label_range)


def load_labels(labels_path: str | Path) -> list[str]:
    """
    Read label names from a labels.json file:
        {"labels": [{"name": "work", "color": "blue"}, ...]}
    """
    path = Path(labels_path)
    data = json.loads(path.read_text("utf-8"))

    labels = data.get("labels") if isinstance(data, dict) else None
    if not isinstance(labels, list):
        raise ValueError(f'Invalid labels file {path}: missing "labels" array')

    names: list[str] = []
    for item in labels:
        name = item.get("name") if isinstance(item, dict) else item
        if not isinstance(name, str) or not name.strip():
            raise ValueError(f"Invalid labels file {path}: label without a name: {item!r}")
        if name.strip() not in names:
            names.append(name.strip())

    logger.debug("Loaded %d labels from %s", len(names), path)
    return names


def finalize_labels(raw: list[Any], vocabulary: list[str], max_labels: int) -> list[str]:
    """Keep vocabulary members only, drop duplicates, preserve order, cap the length."""
    allowed = set(vocabulary)
    out: list[str] = []
    for item in raw:
        if isinstance(item, str) and item in allowed and item not in out:
            out.append(item)
    return out[: max(0, int(max_labels))]


def build_user_prompt(content: str, description: str, vocabulary: list[str]) -> str:
    prompt = f"Classify this task and assign appropriate labels.\n\nTask: {content}"
    if description:
        prompt += f"\nDescription: {description}"
    prompt += f"\n\nAvailable labels: {', '.join(vocabulary)}"
    return prompt


def build_output_schema(vocabulary: list[str]) -> dict[str, Any]:
    return {
        "type": "object",
        "properties": {
            "labels": {
                "type": "array",
                "items": {"type": "string", "enum": list(vocabulary)},
                "description": "Array of label names that best categorize this task",
            },
        },
        "required": ["labels"],
        "additionalProperties": False,
    }


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    s = raw.strip()
    if not s:
        return default
    try:
        return float(s)
    except ValueError:
        return default


def _timeout_from_env() -> httpx.Timeout:
    connect_timeout = _env_float("AUTOLABEL_LLM_CONNECT_TIMEOUT_SECONDS", 5.0)
    read_timeout = _env_float("AUTOLABEL_LLM_READ_TIMEOUT_SECONDS", 30.0)
    return httpx.Timeout(connect=connect_timeout, read=read_timeout, write=10.0, pool=connect_timeout)


def _is_auth_error(exc: Exception) -> bool:
    if isinstance(exc, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return True
    return exc.__class__.__name__ in {"AuthenticationError", "PermissionDeniedError", "UnauthorizedError"}


def _is_rate_limit_error(exc: Exception) -> bool:
    if isinstance(exc, openai.RateLimitError):
        return True
    return exc.__class__.__name__ in {"RateLimitError", "TooManyRequestsError"}


def _is_connection_error(exc: Exception) -> bool:
    if isinstance(exc, openai.APIConnectionError):
        return True
    return exc.__class__.__name__ in {
        "APIConnectionError",
        "APITimeoutError",
        "ConnectTimeout",
        "ReadTimeout",
        "WriteTimeout",
    }


def _is_not_found_error(exc: Exception) -> bool:
    if isinstance(exc, openai.NotFoundError):
        return True
    return exc.__class__.__name__ == "NotFoundError"


def _parse_labels_json(text: str) -> list[Any]:
    s = (text or "").strip()
    if s.startswith("```"):
        s = s.strip("`")
        if s.lower().startswith("json"):
            s = s[4:]
    data = json.loads(s)
    if isinstance(data, dict):
        labels = data.get("labels", [])
    else:
        labels = data
    if not isinstance(labels, list):
        raise ValueError(f"Unexpected classification payload: {text!r}")
    return labels


class OpenAILabelClassifier:
    """
    LabelClassifier over an OpenAI-compatible chat completions API.

    Behavior:
    - Tries models in the configured order.
    - 404 (model not available) -> model is skipped for an hour, try next.
    - Rate limit / network issues / unparsable output -> try next.
    - Auth issues -> fail fast (no retries across models).
    - The JSON schema restricts labels to the vocabulary; the result is filtered
      and capped again here so callers can trust it.
    """

    def __init__(self, settings: Any, *, client: Any = None) -> None:
        self._models: list[str] = [m.strip() for m in (getattr(settings, "llm_models", None) or []) if m.strip()]
        self._headers: dict[str, str] = dict(getattr(settings, "extra_headers", {}) or {})
        self._max_labels = int(getattr(settings, "max_labels_per_task", 5))
        self._system_prompt = build_system_prompt(self._max_labels)
        self._bad_models: dict[str, float] = {}  # model -> retry_at (monotonic)

        if not self._models:
            raise RuntimeError("LLM model list is empty. Set AUTOLABEL_LLM_MODELS in your .env.")

        if client is not None:
            self._client = client
            return

        api_key = getattr(settings, "llm_api_key", None)
        base_url = getattr(settings, "llm_base_url", "") or ""
        if not api_key or not str(api_key).strip():
            raise RuntimeError("LLM API key is not set. Set AUTOLABEL_LLM_API_KEY in your .env.")

        # Retries are disabled so a failing model falls through to the next one quickly.
        self._client = AsyncOpenAI(
            base_url=str(base_url) or None,
            api_key=str(api_key),
            timeout=_timeout_from_env(),
            max_retries=0,
        )

    @property
    def max_labels(self) -> int:
        return self._max_labels

    async def aclose(self) -> None:
        close = getattr(self._client, "close", None)
        if callable(close):
            await close()

    async def _classify_with_model(self, model: str, request: ClassificationRequest) -> ClassificationResult:
        response = await self._client.chat.completions.create(
            model=model,
            max_tokens=256,
            temperature=0,
            extra_headers=self._headers or None,
            messages=[
                {"role": "system", "content": self._system_prompt},
                {
                    "role": "user",
                    "content": build_user_prompt(request.content, request.description, request.vocabulary),
                },
            ],
            response_format={
                "type": "json_schema",
                "json_schema": {
                    "name": "task_labels",
                    "strict": True,
                    "schema": build_output_schema(request.vocabulary),
                },
            },
        )

        message = response.choices[0].message
        refusal = getattr(message, "refusal", None)
        if refusal:
            logger.warning("Classification refused by model=%s task=%s", model, request.task_id)
            return ClassificationResult(task_id=request.task_id, labels=[], raw_response=str(refusal))

        text = message.content or ""
        labels = finalize_labels(_parse_labels_json(text), request.vocabulary, self._max_labels)
        return ClassificationResult(task_id=request.task_id, labels=labels, raw_response=text)

    async def classify(self, request: ClassificationRequest) -> ClassificationResult:
        if not request.vocabulary:
            raise ValueError("Classification vocabulary is empty")

        last_error: Exception | None = None
        now = time.monotonic()

        for model in self._models:
            retry_at = self._bad_models.get(model)
            if retry_at is not None and retry_at > now:
                continue

            t0 = time.monotonic()
            try:
                result = await self._classify_with_model(model, request)
            except Exception as e:
                last_error = e

                if _is_auth_error(e):
                    raise RuntimeError(
                        "LLM authentication failed. Check your API key (AUTOLABEL_LLM_API_KEY)."
                    ) from e

                if _is_not_found_error(e):
                    self._bad_models[model] = time.monotonic() + _BAD_MODEL_TTL_SECONDS
                    logger.info("LLM: model not available (404): %s", model)
                elif _is_rate_limit_error(e):
                    logger.info("LLM: rate-limited on model=%s, trying next", model)
                elif _is_connection_error(e):
                    logger.info("LLM: network/timeout error on model=%s, trying next", model)
                else:
                    logger.info("LLM: error on model=%s (%s), trying next", model, e.__class__.__name__)
                continue

            logger.debug(
                "LLM: task=%s model=%s labels=%s (%.2fs)",
                request.task_id,
                model,
                result.labels,
                time.monotonic() - t0,
            )
            return result

        if last_error is not None:
            if _is_rate_limit_error(last_error):
                raise RuntimeError("LLM is rate-limited. Try again later.") from last_error
            if _is_connection_error(last_error):
                raise RuntimeError("LLM network/timeout error. Try again later or change models.") from last_error
            raise RuntimeError(f"All LLM models failed: {last_error}") from last_error

        raise RuntimeError("All LLM models failed (every model is temporarily disabled).")
