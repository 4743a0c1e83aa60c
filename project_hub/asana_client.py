from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Mapping, Optional
from urllib.parse import urlencode

import requests

from .models import ApiResponse

LOGGER = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://app.asana.com/api/1.0/"
_MAX_DETAILS_LENGTH = 500


def clean_project_id(value: Any) -> str:
    """Strip whitespace and literal quote characters from a stored project id."""

    if value is None:
        return ""
    return str(value).strip().strip("'\"").strip()


def build_task_url(project_id: str, task_gid: str) -> str:
    return f"https://app.asana.com/0/{project_id}/{task_gid}"


class AsanaClient:
    """Single-request wrapper around the Asana REST API.

    Every call returns an :class:`ApiResponse`; HTTP failures are never raised,
    retried or paginated.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        timeout: int | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self._base_url = base_url if base_url.endswith("/") else base_url + "/"
        self._timeout = timeout
        self._session = session or requests.Session()

    def build_url(self, endpoint: str, query_params: Optional[Mapping[str, Any]] = None) -> str:
        url = self._base_url + endpoint.lstrip("/")
        if query_params:
            url += "?" + urlencode({key: value for key, value in query_params.items() if value is not None})
        return url

    def call(
        self,
        method: str,
        endpoint: str,
        token: str,
        payload: Optional[Dict[str, Any]] = None,
        query_params: Optional[Mapping[str, Any]] = None,
    ) -> ApiResponse:
        url = self.build_url(endpoint, query_params)
        headers = {"Authorization": f"Bearer {token}"}
        body: str | None = None
        if payload is not None:
            headers["Content-Type"] = "application/json"
            envelope = payload if set(payload) == {"data"} else {"data": payload}
            body = json.dumps(envelope)

        LOGGER.debug("Asana %s %s", method.upper(), url)
        try:
            response = self._session.request(
                method.upper(), url, headers=headers, data=body, timeout=self._timeout
            )
        except requests.RequestException as exc:
            LOGGER.warning("Asana %s %s failed: %s", method.upper(), endpoint, exc)
            return ApiResponse(success=False, error=f"Asana API request failed: {exc}")

        code = response.status_code
        if 200 <= code < 300:
            try:
                body = response.json() if response.text else None
            except ValueError:
                body = None
            data = body.get("data") if isinstance(body, dict) else None
            return ApiResponse(success=True, data=data, response_code=code)

        details = (response.text or "")[:_MAX_DETAILS_LENGTH]
        LOGGER.warning("Asana %s %s returned HTTP %s: %s", method.upper(), endpoint, code, details)
        return ApiResponse(
            success=False,
            error=f"Asana API request failed (HTTP {code})",
            details=details,
            response_code=code,
        )

    # Thin callers ------------------------------------------------------------
    def fetch_tasks_for_project(
        self, project_id: str, token: str, query_params: Optional[Mapping[str, Any]] = None
    ) -> ApiResponse:
        return self.call("GET", f"projects/{clean_project_id(project_id)}/tasks", token, query_params=query_params)

    def fetch_sections_for_project(self, project_id: str, token: str) -> ApiResponse:
        return self.call("GET", f"projects/{clean_project_id(project_id)}/sections", token)

    def get_project(self, project_id: str, token: str) -> ApiResponse:
        return self.call("GET", f"projects/{clean_project_id(project_id)}", token)

    def create_task(self, token: str, fields: Dict[str, Any]) -> ApiResponse:
        return self.call("POST", "tasks", token, payload={"data": fields})

    def add_task_to_section(self, section_gid: str, task_gid: str, token: str) -> ApiResponse:
        return self.call("POST", f"sections/{section_gid}/addTask", token, payload={"data": {"task": task_gid}})

    def set_task_assignee(self, task_gid: str, user_gid: str, token: str) -> ApiResponse:
        return self.call("PUT", f"tasks/{task_gid}", token, payload={"data": {"assignee": user_gid}})

    def find_user_by_email(self, email: str, token: str) -> ApiResponse:
        """Look up a workspace user; ``data`` is the user dict or ``None``."""

        response = self.call("GET", "users", token, query_params={"opt_fields": "email"})
        if not response.success:
            return response
        users: List[Dict[str, Any]] = response.data or []
        wanted = email.strip().lower()
        match = next((user for user in users if str(user.get("email", "")).lower() == wanted), None)
        return ApiResponse(success=True, data=match, response_code=response.response_code)
