# src/todoist_autolabel/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app (normal "settings layer").
- No secrets required at import time; `validate()` reports what is missing.
- Accepts the unprefixed variable names of older deployments as fallbacks.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "AUTOLABEL"

_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "WARN", "ERROR", "CRITICAL"}


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _first_env(*names: str, default: str | None = None) -> str | None:
    for n in names:
        v = os.getenv(n)
        if v is not None and v.strip() != "":
            return v
    return default


def _env_int(*names: str, default: int) -> int:
    raw = _first_env(*names)
    if raw is None:
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


def _env_list(*names: str, default: list[str]) -> list[str]:
    raw = _first_env(*names)
    if raw is None:
        return list(default)
    return [p.strip() for p in raw.replace(",", " ").split() if p.strip()]


def _env_bool(*names: str, default: bool) -> bool:
    raw = _first_env(*names)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_path(*names: str, default: Path) -> Path:
    raw = _first_env(*names)
    if raw is None:
        return default
    return Path(raw.strip()).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- Todoist ----
    todoist_api_token: str | None
    todoist_base_url: str

    # ---- LLM (OpenAI-compatible, OpenRouter by default) ----
    llm_api_key: str | None
    llm_base_url: str
    llm_models: list[str]
    extra_headers: dict[str, str]
    max_labels_per_task: int
    # Keyword matcher instead of the LLM (explicit opt-in, for demos).
    offline: bool

    # ---- Service ----
    poll_interval_ms: int
    retry_interval_ms: int
    max_error_logs: int

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    db_path: Path
    labels_path: Path
    log_dir: Path

    @staticmethod
    def from_env() -> "Settings":
        app_name = _first_env(_k("APP_NAME"), default="todoist-autolabel") or "todoist-autolabel"
        log_level = (_first_env(_k("LOG_LEVEL"), "LOG_LEVEL", default="INFO") or "INFO").strip().upper()

        todoist_api_token = _first_env(_k("TODOIST_API_TOKEN"), "TODOIST_API_TOKEN")
        todoist_base_url = _first_env(
            _k("TODOIST_BASE_URL"), default="https://api.todoist.com/api/v1"
        ) or "https://api.todoist.com/api/v1"

        llm_api_key = _first_env(_k("LLM_API_KEY"), "OPENROUTER_API_KEY", "OPENAI_API_KEY")
        llm_base_url = _first_env(
            _k("LLM_BASE_URL"), default="https://openrouter.ai/api/v1"
        ) or "https://openrouter.ai/api/v1"
        llm_models = _env_list(
            _k("LLM_MODELS"),
            default=[
                "openai/gpt-4o-mini",
                "google/gemini-2.0-flash-001",
            ],
        )

        http_referer = _first_env(_k("HTTP_REFERER"), default="https://example.com") or ""
        extra_headers = {
            "HTTP-Referer": http_referer,
            "X-Title": app_name,
        }

        max_labels_per_task = _env_int(_k("MAX_LABELS_PER_TASK"), "MAX_LABELS_PER_TASK", default=5)
        offline = _env_bool(_k("OFFLINE"), default=False)

        poll_interval_ms = _env_int(_k("POLL_INTERVAL_MS"), "POLL_INTERVAL_MS", default=15000)
        retry_interval_ms = _env_int(_k("RETRY_INTERVAL_MS"), "RETRY_INTERVAL_MS", default=60000)
        max_error_logs = _env_int(_k("MAX_ERROR_LOGS"), "MAX_ERROR_LOGS", default=1000)

        data_dir = _env_path(_k("DATA_DIR"), default=Path(".local/autolabel"))
        db_path = _env_path(_k("DB_PATH"), "DB_PATH", default=data_dir / "autolabel.sqlite3")
        labels_path = _env_path(_k("LABELS_PATH"), "LABELS_PATH", default=Path("labels.json"))
        log_dir = _env_path(_k("LOG_DIR"), default=data_dir)

        return Settings(
            app_name=app_name,
            log_level=log_level,
            todoist_api_token=todoist_api_token,
            todoist_base_url=todoist_base_url,
            llm_api_key=llm_api_key,
            llm_base_url=llm_base_url,
            llm_models=llm_models,
            extra_headers=extra_headers,
            max_labels_per_task=max_labels_per_task,
            offline=offline,
            poll_interval_ms=poll_interval_ms,
            retry_interval_ms=retry_interval_ms,
            max_error_logs=max_error_logs,
            data_dir=data_dir,
            db_path=db_path,
            labels_path=labels_path,
            log_dir=log_dir,
        )

    @property
    def log_level_value(self) -> int:
        name = "WARNING" if self.log_level == "WARN" else self.log_level
        return getattr(logging, name, logging.INFO)

    def validate(self) -> list[str]:
        """Return human-readable configuration problems (empty list => ok)."""
        problems: list[str] = []
        if not (self.todoist_api_token or "").strip():
            problems.append(f"{_k('TODOIST_API_TOKEN')} (or TODOIST_API_TOKEN) is not set")
        if not self.offline and not (self.llm_api_key or "").strip():
            problems.append(
                f"{_k('LLM_API_KEY')} (or OPENROUTER_API_KEY) is not set "
                f"(set {_k('OFFLINE')}=1 to use the keyword classifier instead)"
            )
        if not self.llm_models:
            problems.append(f"{_k('LLM_MODELS')} is empty")
        if self.log_level not in _LOG_LEVELS:
            problems.append(f"Invalid log level: {self.log_level}")
        if self.poll_interval_ms <= 0:
            problems.append("Poll interval must be > 0 ms")
        if self.retry_interval_ms <= 0:
            problems.append("Retry interval must be > 0 ms")
        if self.max_error_logs <= 0:
            problems.append("Max error logs must be > 0")
        if self.max_labels_per_task <= 0:
            problems.append("Max labels per task must be > 0")
        if not self.labels_path.is_file():
            problems.append(f"Labels file not found: {self.labels_path}")
        return problems


_SETTINGS: Settings | None = None


def get_settings() -> Settings:
    """Load .env once and return the process-wide Settings."""
    global _SETTINGS
    if _SETTINGS is None:
        load_dotenv(override=False)
        _SETTINGS = Settings.from_env()
    return _SETTINGS
