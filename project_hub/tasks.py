"""Task views assembled from the remote task tracker."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .asana_client import AsanaClient, build_task_url, clean_project_id
from .models import DEFAULT_PROJECT_COLOR, GanttTask, Project, Task

LOGGER = logging.getLogger(__name__)

UNCATEGORIZED = "Uncategorized"
OPEN_TASK_FIELDS = "name,completed,due_on,notes,assignee.name,memberships.section.name"
GANTT_TASK_FIELDS = "gid,name,completed,start_on,due_on,memberships.section.name,permalink_url"

_MISSING_TOKEN = "Asana token not configured. Please set up your Asana integration in the Settings."


def section_name_of(task: Mapping[str, Any]) -> str:
    """Return the first membership section name or ``Uncategorized``."""

    for membership in task.get("memberships") or []:
        section = (membership or {}).get("section") or {}
        if section.get("name"):
            return section["name"]
    return UNCATEGORIZED


def get_tasks_for_project(client: AsanaClient, token: Optional[str], project_id: Optional[str]) -> Dict[str, Any]:
    """Open tasks of one project grouped by section, in the API's section order."""

    project_id = clean_project_id(project_id)
    if not token or not project_id:
        return {
            "success": False,
            "error": "Asana credentials not configured. Please set up your Asana integration in the Settings.",
        }

    try:
        response = client.fetch_tasks_for_project(
            project_id,
            token,
            {"opt_fields": OPEN_TASK_FIELDS, "completed": "false"},
        )
        if not response.success:
            return {"success": False, "error": response.error, "details": response.details}

        section_order: List[str] = []
        sections = client.fetch_sections_for_project(project_id, token)
        if sections.success:
            section_order = [section.get("name", "") for section in sections.data or []]
        else:
            LOGGER.warning("Could not fetch sections for project %s: %s", project_id, sections.error)

        grouped: Dict[str, List[Dict[str, Any]]] = {}
        for raw in response.data or []:
            if raw.get("completed"):
                continue
            section = section_name_of(raw)
            assignee = raw.get("assignee") or {}
            task = Task(
                id=raw.get("gid", ""),
                name=raw.get("name", ""),
                section_name=section,
                completed=False,
                due_date=raw.get("due_on"),
                notes=raw.get("notes"),
                assignee=assignee.get("name"),
                url=build_task_url(project_id, raw.get("gid", "")),
            )
            grouped.setdefault(section, []).append(task.to_dict())

        for section, tasks in grouped.items():
            LOGGER.debug("Section %s: %s tasks", section, len(tasks))
        return {"success": True, "tasks": grouped, "sectionOrder": section_order}
    except Exception as exc:
        LOGGER.exception("Failed to fetch tasks for project %s", project_id)
        return {"success": False, "error": f"Error fetching Asana tasks: {exc}"}


def get_tasks_for_gantt(client: AsanaClient, token: Optional[str], projects: Iterable[Project]) -> Dict[str, Any]:
    """Dated tasks of every linked project, flattened into one list.

    A project whose fetch fails is logged and skipped; the others still count.
    """

    if not token:
        return {"success": False, "error": _MISSING_TOKEN}

    linked = [project for project in projects if clean_project_id(project.asana_project_id)]
    if not linked:
        return {"success": False, "error": "No projects with Asana Project IDs found in your Google Sheet."}

    result: List[Dict[str, Any]] = []
    for project in linked:
        project_id = clean_project_id(project.asana_project_id)
        try:
            response = client.fetch_tasks_for_project(project_id, token, {"opt_fields": GANTT_TASK_FIELDS})
            if not response.success:
                LOGGER.warning(
                    "Failed to fetch tasks for project %s (HTTP %s)", project.name, response.response_code
                )
                continue

            raw_tasks = response.data or []
            dated = [raw for raw in raw_tasks if raw.get("start_on") and raw.get("due_on")]
            LOGGER.info(
                "Project %s: retrieved %s tasks, %s have start/due dates",
                project.name,
                len(raw_tasks),
                len(dated),
            )
            for raw in dated:
                gid = raw.get("gid", "")
                result.append(
                    GanttTask(
                        id=gid,
                        name=f"[{project.name}] {raw.get('name', '')}",
                        project=project.name,
                        project_id=project_id,
                        project_color=project.project_color or DEFAULT_PROJECT_COLOR,
                        section=section_name_of(raw),
                        start_on=raw["start_on"],
                        due_on=raw["due_on"],
                        completed=bool(raw.get("completed")),
                        url=raw.get("permalink_url") or build_task_url(project_id, gid),
                    ).to_dict()
                )
        except Exception:
            LOGGER.exception("Error fetching project %s", project.name)

    return {"success": True, "tasks": result}


def create_project_task(
    client: AsanaClient, token: Optional[str], project_id: Optional[str], task: Mapping[str, Any]
) -> Dict[str, Any]:
    """Create a task, then place it in a section and assign it when asked."""

    project_id = clean_project_id(project_id)
    if not token or not project_id:
        return {"success": False, "error": "Asana credentials not configured"}
    name = str(task.get("name") or "").strip()
    if not name:
        return {"success": False, "error": "Task name is required"}

    fields: Dict[str, Any] = {"name": name, "projects": [project_id]}
    if task.get("notes"):
        fields["notes"] = task["notes"]
    if task.get("dueDate"):
        fields["due_on"] = task["dueDate"]

    try:
        response = client.create_task(token, fields)
        if not response.success:
            return {"success": False, "error": f"Failed to create task (HTTP {response.response_code})"}
        created = response.data or {}
        gid = created.get("gid", "")

        if task.get("section") and gid:
            _assign_to_section(client, token, project_id, gid, str(task["section"]))
        if task.get("assignee") and gid:
            _assign_to_user(client, token, gid, str(task["assignee"]))

        return {
            "success": True,
            "task": {"id": gid, "name": created.get("name", name), "url": build_task_url(project_id, gid)},
        }
    except Exception as exc:
        LOGGER.exception("Failed to create task in project %s", project_id)
        return {"success": False, "error": f"Error creating Asana task: {exc}"}


def _assign_to_section(client: AsanaClient, token: str, project_id: str, task_gid: str, section_name: str) -> None:
    sections = client.fetch_sections_for_project(project_id, token)
    if not sections.success:
        LOGGER.warning("Failed to fetch sections for task assignment")
        return
    target = next((section for section in sections.data or [] if section.get("name") == section_name), None)
    if target is None:
        LOGGER.warning("Section %s not found", section_name)
        return
    placed = client.add_task_to_section(target["gid"], task_gid, token)
    if not placed.success:
        LOGGER.warning("Could not move task %s to section %s: %s", task_gid, section_name, placed.error)


def _assign_to_user(client: AsanaClient, token: str, task_gid: str, email: str) -> None:
    user = client.find_user_by_email(email, token)
    if not user.success:
        LOGGER.warning("Failed to fetch users for task assignment")
        return
    if not user.data:
        LOGGER.warning("User with email %s not found", email)
        return
    assigned = client.set_task_assignee(task_gid, user.data["gid"], token)
    if not assigned.success:
        LOGGER.warning("Could not assign task %s to %s: %s", task_gid, email, assigned.error)


def validate_credentials(client: AsanaClient, token: Optional[str], project_id: Optional[str]) -> Dict[str, Any]:
    project_id = clean_project_id(project_id)
    if not token or not project_id:
        return {"valid": False, "error": "Asana token and project ID are required"}

    try:
        response = client.get_project(project_id, token)
    except Exception as exc:
        LOGGER.exception("Failed to validate Asana credentials")
        return {"valid": False, "error": f"Error validating Asana credentials: {exc}"}

    if response.success:
        data = response.data or {}
        return {"valid": True, "projectName": data.get("name", "Unknown Project")}
    if response.response_code == 401:
        return {"valid": False, "error": "Invalid Asana token. Please check your Personal Access Token."}
    if response.response_code == 404:
        return {"valid": False, "error": "Asana project not found. Please check your Project ID."}
    return {"valid": False, "error": f"Error validating Asana credentials (HTTP {response.response_code})"}
