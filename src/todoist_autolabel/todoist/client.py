# src/todoist_autolabel/todoist/client.py

"""Todoist API v1 client implementing the TaskProvider port.

Thin async wrapper around httpx. Non-2xx responses raise TodoistAPIError;
a 404 on a single-task fetch means the task is gone and yields None.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from ..tasks.task_models import ProviderTask

logger = logging.getLogger(__name__)

# Delay before each label update to stay under the Todoist rate limit.
API_DELAY_SECONDS = 0.2

DEFAULT_BASE_URL = "https://api.todoist.com/api/v1"


class TodoistAPIError(RuntimeError):
    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def _task_from_json(data: dict[str, Any]) -> ProviderTask:
    completed = data.get("checked")
    if completed is None:
        completed = data.get("is_completed", False)
    return ProviderTask(
        id=str(data["id"]),
        content=str(data.get("content") or ""),
        description=str(data.get("description") or ""),
        labels=[str(x) for x in (data.get("labels") or [])],
        is_completed=bool(completed),
        project_id=str(data["project_id"]) if data.get("project_id") is not None else None,
    )


class TodoistTaskProvider:
    """
    TaskProvider backed by the Todoist REST endpoints.

    The resolved inbox project id is cached on the instance.
    """

    def __init__(
        self,
        api_token: str,
        *,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 30.0,
        api_delay_seconds: float = API_DELAY_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not api_token or not api_token.strip():
            raise ValueError("Todoist API token is required")
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            headers={"Authorization": f"Bearer {api_token.strip()}"},
            transport=transport,
        )
        self._api_delay_seconds = max(0.0, float(api_delay_seconds))
        self._inbox_project_id: str | None = None

    async def __aenter__(self) -> TodoistTaskProvider:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    # ---- low-level helpers ----

    @staticmethod
    def _raise_for_status(resp: httpx.Response, what: str) -> None:
        if resp.status_code < 400:
            return
        try:
            body = resp.json()
        except ValueError:
            body = None
        detail = body.get("error") if isinstance(body, dict) and body.get("error") else resp.text
        raise TodoistAPIError(
            f"{what} failed: HTTP {resp.status_code} {detail}".strip(),
            status_code=resp.status_code,
        )

    async def _request(self, method: str, path: str, what: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise TodoistAPIError(f"{what} failed: {e.__class__.__name__}: {e}") from e

    async def _get_paginated(self, path: str, what: str, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        """Follow next_cursor until exhausted. Plain list responses are accepted too."""
        out: list[dict[str, Any]] = []
        query: dict[str, Any] = dict(params or {})
        while True:
            resp = await self._request("GET", path, what, params=query)
            self._raise_for_status(resp, what)
            body = resp.json()
            if isinstance(body, list):
                out.extend(body)
                return out
            out.extend(body.get("results") or [])
            cursor = body.get("next_cursor")
            if not cursor:
                return out
            query["cursor"] = cursor

    # ---- TaskProvider ----

    async def resolve_inbox_project_id(self) -> str:
        if self._inbox_project_id:
            return self._inbox_project_id

        projects = await self._get_paginated("/projects", "List projects")
        for project in projects:
            if project.get("inbox_project") or project.get("is_inbox_project"):
                self._inbox_project_id = str(project["id"])
                logger.info("Todoist inbox project id=%s", self._inbox_project_id)
                return self._inbox_project_id

        raise TodoistAPIError("Could not find Todoist Inbox project")

    async def list_tasks(self, project_id: str) -> list[ProviderTask]:
        items = await self._get_paginated("/tasks", "List tasks", {"project_id": project_id})
        tasks = [_task_from_json(item) for item in items]
        logger.debug("Fetched %d tasks from project %s", len(tasks), project_id)
        return tasks

    async def get_task(self, task_id: str) -> ProviderTask | None:
        what = f"Get task {task_id}"
        resp = await self._request("GET", f"/tasks/{task_id}", what)
        if resp.status_code == 404:
            logger.info("Task %s not found (deleted?)", task_id)
            return None
        self._raise_for_status(resp, what)
        return _task_from_json(resp.json())

    async def apply_labels(self, task_id: str, labels: list[str]) -> None:
        await asyncio.sleep(self._api_delay_seconds)
        what = f"Update labels of task {task_id}"
        resp = await self._request("POST", f"/tasks/{task_id}", what, json={"labels": list(labels)})
        self._raise_for_status(resp, what)
        logger.debug("Updated task %s labels=%s", task_id, labels)

    # ---- extras ----

    async def get_labels(self) -> list[str]:
        """Names of the personal labels defined in the Todoist account."""
        items = await self._get_paginated("/labels", "List labels")
        return [str(item.get("name")) for item in items if item.get("name")]

    async def validate_labels(self, names: list[str]) -> tuple[list[str], list[str]]:
        """Split names into (defined in Todoist, unknown to Todoist)."""
        known = set(await self.get_labels())
        valid = [n for n in names if n in known]
        invalid = [n for n in names if n not in known]
        return valid, invalid
