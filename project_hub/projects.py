"""The Projects directory sheet: one row per project, addressed by header."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from .asana_client import clean_project_id
from .errors import ConfigurationError
from .models import DEFAULT_PROJECT_COLOR, DEFAULT_PROJECT_STATUS, Project
from .tables import (
    ColumnSpec,
    Row,
    TableStore,
    build_header_map,
    cell,
    ensure_sheet,
    optional_column_index,
    resolve_columns,
)

LOGGER = logging.getLogger(__name__)

PROJECTS_SHEET = "Projects"

PROJECT_COLUMNS: Tuple[ColumnSpec, ...] = (
    ColumnSpec("name", "Project_name", required=True),
    ColumnSpec("client", "Client_name"),
    ColumnSpec("client_email", "Client_email"),
    ColumnSpec("client_address", "Client_address"),
    ColumnSpec("status", "Status", default=DEFAULT_PROJECT_STATUS),
    ColumnSpec("asana_project_id", "AsanaProjectID"),
    ColumnSpec("sheet_id", "SheetID"),
    ColumnSpec("folder_id", "FolderID"),
    ColumnSpec("project_color", "ProjectColor", default=DEFAULT_PROJECT_COLOR, standard=True),
    ColumnSpec("architect", "Architect", standard=True),
    ColumnSpec("architect_email", "Architect_email", standard=True),
    ColumnSpec("contractor", "Contractor", standard=True),
    ColumnSpec("contractor_email", "Contractor_email", standard=True),
)

PROJECT_HEADERS = [spec.header for spec in PROJECT_COLUMNS]

# Dashboard payload key for each field.
_INPUT_KEYS = {
    "name": "name",
    "client": "client",
    "client_email": "clientEmail",
    "client_address": "clientAddress",
    "status": "status",
    "asana_project_id": "asanaProjectId",
    "sheet_id": "sheetId",
    "folder_id": "folderId",
    "project_color": "projectColor",
    "architect": "architect",
    "architect_email": "architectEmail",
    "contractor": "contractor",
    "contractor_email": "contractorEmail",
}

_MISSING_SHEET_ID = "Google Sheet ID not configured. Please set up your Sheet ID in the Settings."


def project_from_input(data: Mapping[str, Any], project_id: int = 0) -> Project:
    """Build a :class:`Project` from a dashboard payload, applying defaults."""

    values: Dict[str, Any] = {}
    for spec in PROJECT_COLUMNS:
        raw = data.get(_INPUT_KEYS[spec.field])
        text = str(raw).strip() if raw is not None else ""
        values[spec.field] = text or spec.default
    values["asana_project_id"] = clean_project_id(values["asana_project_id"])
    return Project(id=project_id, **values)


def _cell_value(project: Project, field: str) -> Any:
    value = getattr(project, field)
    if field == "asana_project_id":
        # Stored quoted so the sheet keeps long numeric ids as text.
        return f'"{value}"' if value else ""
    return value


class ProjectDirectory:
    """Read and write the Projects sheet of the directory workbook."""

    def __init__(self, store: Optional[TableStore], sheet_name: str = PROJECTS_SHEET) -> None:
        self._store = store
        self._sheet_name = sheet_name

    def _require_store(self) -> TableStore:
        if self._store is None:
            raise ConfigurationError(_MISSING_SHEET_ID)
        return self._store

    def _require_sheet(self) -> TableStore:
        store = self._require_store()
        if not store.has_sheet(self._sheet_name):
            raise ConfigurationError(
                f"Projects sheet not found. Please create a sheet named '{self._sheet_name}' in your Google Sheet."
            )
        return store

    def load_projects(self) -> List[Project]:
        store = self._require_sheet()
        values = store.read_values(self._sheet_name)
        if not values:
            return []
        columns = resolve_columns(values[0], PROJECT_COLUMNS, self._sheet_name)
        projects = []
        for offset, row in enumerate(values[1:]):
            fields = {}
            for spec in PROJECT_COLUMNS:
                raw = cell(row, columns[spec.field], "")
                text = str(raw).strip()
                fields[spec.field] = text or spec.default
            fields["asana_project_id"] = clean_project_id(fields["asana_project_id"])
            projects.append(Project(id=offset + 1, **fields))
        return projects

    def get_projects(self) -> Dict[str, Any]:
        try:
            projects = self.load_projects()
        except ConfigurationError as exc:
            return {"success": False, "error": str(exc)}
        except Exception as exc:
            LOGGER.exception("Failed to read projects")
            return {"success": False, "error": f"Error fetching projects: {exc}"}
        return {"success": True, "projects": [project.to_dict() for project in projects]}

    def get_project_by_id(self, project_id: Any) -> Dict[str, Any]:
        result = self.get_projects()
        if not result["success"]:
            return result
        try:
            wanted = int(project_id)
        except (TypeError, ValueError):
            return {"success": False, "error": f"Project with ID {project_id} not found."}
        for project in result["projects"]:
            if project["id"] == wanted:
                return {"success": True, "project": project}
        return {"success": False, "error": f"Project with ID {project_id} not found."}

    def _ensure_standard_columns(self, header_row: Row) -> Row:
        """Append missing standard headers (bold) at the right edge."""

        store = self._require_store()
        headers = list(header_row)
        header_map = build_header_map(headers)
        for spec in PROJECT_COLUMNS:
            if not spec.standard or optional_column_index(header_map, spec.header) is not None:
                continue
            col = len(headers) + 1
            store.write_values(self._sheet_name, 1, col, [[spec.header]])
            store.bold_range(self._sheet_name, 1, col, 1)
            headers.append(spec.header)
            header_map = build_header_map(headers)
            LOGGER.info("Added missing column %s to %s", spec.header, self._sheet_name)
        return headers

    def add_project(self, data: Mapping[str, Any]) -> Dict[str, Any]:
        if not str(data.get("name") or "").strip():
            return {"success": False, "error": "Project name is required"}
        try:
            store = self._require_store()
            ensure_sheet(store, self._sheet_name, PROJECT_HEADERS)
            values = store.read_values(self._sheet_name)
            headers = self._ensure_standard_columns(values[0] if values else [])
            columns = resolve_columns(headers, PROJECT_COLUMNS, self._sheet_name)

            project = project_from_input(data)
            new_row: Row = [""] * len(headers)
            for spec in PROJECT_COLUMNS:
                idx = columns[spec.field]
                if idx is not None:
                    new_row[idx] = _cell_value(project, spec.field)
            store.append_rows(self._sheet_name, [new_row])
            # values includes the header row, so its length is the new last row - 1.
            project.id = max(len(values), 1)
        except ConfigurationError as exc:
            return {"success": False, "error": str(exc)}
        except Exception as exc:
            LOGGER.exception("Failed to add project")
            return {"success": False, "error": f"Error adding project: {exc}"}
        LOGGER.info("Added project %s with id %s", project.name, project.id)
        return {"success": True, "project": project.to_dict()}

    def update_project(self, project_id: Any, data: Mapping[str, Any]) -> Dict[str, Any]:
        try:
            row_number = int(project_id) + 1
        except (TypeError, ValueError):
            return {"success": False, "error": f"Project with ID {project_id} not found."}
        try:
            store = self._require_sheet()
            existing = self.load_projects()
            if row_number <= 1 or row_number - 1 > len(existing):
                return {"success": False, "error": f"Project with ID {project_id} not found."}

            # Fields absent from the payload keep their stored values.
            merged = existing[row_number - 2].to_dict()
            merged.update({key: value for key, value in data.items() if key in _INPUT_KEYS.values()})
            values = store.read_values(self._sheet_name)
            headers = self._ensure_standard_columns(values[0])
            header_map = build_header_map(headers)
            project = project_from_input(merged, row_number - 1)
            for spec in PROJECT_COLUMNS:
                idx = optional_column_index(header_map, spec.header)
                if idx is None:
                    continue
                store.write_values(self._sheet_name, row_number, idx + 1, [[_cell_value(project, spec.field)]])
        except ConfigurationError as exc:
            return {"success": False, "error": str(exc)}
        except Exception as exc:
            LOGGER.exception("Failed to update project %s", project_id)
            return {"success": False, "error": f"Error updating project: {exc}"}
        return {"success": True, "project": project.to_dict()}


def open_project_sheet(store_factory: Callable[[str], Any], sheet_id: Optional[str]) -> Dict[str, Any]:
    """Resolve a linked project workbook to its URL and title."""

    sheet_id = (sheet_id or "").strip()
    if not sheet_id:
        return {"success": False, "error": "No sheet ID provided for this project"}
    try:
        client = store_factory(sheet_id)
        return {"success": True, "url": client.build_spreadsheet_url(), "name": client.title()}
    except Exception as exc:
        LOGGER.exception("Failed to open project sheet %s", sheet_id)
        return {"success": False, "error": f"Error opening project sheet: {exc}"}
