# config.example.py

"""
Documentation-only module (safe to commit).

The real configuration is loaded from environment variables (optionally via a local .env file).
Do NOT commit real secrets. Put them in .env (local, gitignored).

Unprefixed names in parentheses are accepted as fallbacks.
Run `todoist-autolabel validate` to check a configuration.
"""

ENV_VARS = {
    # App / logging
    "AUTOLABEL_APP_NAME": "App display name (default: todoist-autolabel).",
    "AUTOLABEL_LOG_LEVEL": "Logging level: DEBUG/INFO/WARNING/ERROR (LOG_LEVEL; default: INFO).",
    # Todoist
    "AUTOLABEL_TODOIST_API_TOKEN": "Todoist API token (TODOIST_API_TOKEN; required).",
    "AUTOLABEL_TODOIST_BASE_URL": "Todoist API base URL (default: https://api.todoist.com/api/v1).",
    # LLM (OpenAI-compatible)
    "AUTOLABEL_LLM_API_KEY": (
        "LLM API key (OPENROUTER_API_KEY, OPENAI_API_KEY). "
        "Required: run and once refuse to start without it unless AUTOLABEL_OFFLINE=1."
    ),
    "AUTOLABEL_LLM_BASE_URL": "LLM base URL (default: https://openrouter.ai/api/v1).",
    "AUTOLABEL_LLM_MODELS": "Comma/space separated list of models to try in order.",
    "AUTOLABEL_HTTP_REFERER": "Optional OpenRouter metadata header.",
    "AUTOLABEL_LLM_CONNECT_TIMEOUT_SECONDS": "LLM connect timeout (default: 5).",
    "AUTOLABEL_LLM_READ_TIMEOUT_SECONDS": "LLM read timeout (default: 30).",
    "AUTOLABEL_MAX_LABELS_PER_TASK": "Max labels applied per task (MAX_LABELS_PER_TASK; default: 5).",
    "AUTOLABEL_OFFLINE": "1 = label with the keyword matcher instead of the LLM (demos only; default: 0).",
    # Service
    "AUTOLABEL_POLL_INTERVAL_MS": "Sync tick interval (POLL_INTERVAL_MS; default: 15000).",
    "AUTOLABEL_RETRY_INTERVAL_MS": "Retry pass interval (RETRY_INTERVAL_MS; default: 60000).",
    "AUTOLABEL_MAX_ERROR_LOGS": "Error log rows kept in the DB (MAX_ERROR_LOGS; default: 1000).",
    # Paths (gitignored)
    "AUTOLABEL_DATA_DIR": "Local data directory (default: .local/autolabel).",
    "AUTOLABEL_DB_PATH": "SQLite path (DB_PATH; default: <data_dir>/autolabel.sqlite3).",
    "AUTOLABEL_LABELS_PATH": "Label taxonomy JSON (LABELS_PATH; default: labels.json).",
    "AUTOLABEL_LOG_DIR": "Directory for autolabel.log (default: <data_dir>).",
}
