"""Key-value settings store and the configuration object built from it."""

from __future__ import annotations

import logging
import sqlite3
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from .config import AppConfig
from .models import DEFAULT_PROJECT_COLOR

LOGGER = logging.getLogger(__name__)

ASANA_TOKEN = "ASANA_TOKEN"
SHEET_ID = "SHEET_ID"
PROJECT_COLOR = "PROJECT_COLOR"
PROJECT_NAME = "PROJECT_NAME"
DATA_SHEET_ID = "DATA_SHEET_ID"
PROJECT_INITIALIZED = "PROJECT_INITIALIZED"
IS_MASTER_TEMPLATE = "IS_MASTER_TEMPLATE"
MASTER_TEMPLATE_ACTUAL_ID = "MASTER_TEMPLATE_ACTUAL_ID"

KNOWN_KEYS = (
    ASANA_TOKEN,
    SHEET_ID,
    PROJECT_COLOR,
    PROJECT_NAME,
    DATA_SHEET_ID,
    PROJECT_INITIALIZED,
    IS_MASTER_TEMPLATE,
    MASTER_TEMPLATE_ACTUAL_ID,
)


class SettingsStore:
    """Small string properties persisted in SQLite."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._lock = threading.Lock()
        if not path.parent.exists():
            path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._ensure_schema()

    def _ensure_schema(self) -> None:
        with self._conn:
            self._conn.execute(
                """
                CREATE TABLE IF NOT EXISTS properties (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
                """
            )

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            row = self._conn.execute(
                "SELECT value FROM properties WHERE key = ?", (key,)
            ).fetchone()
        return row["value"] if row else None

    def set(self, key: str, value: str) -> None:
        with self._lock:
            with self._conn:
                self._conn.execute(
                    """
                    INSERT INTO properties (key, value) VALUES (?, ?)
                    ON CONFLICT(key) DO UPDATE SET value = excluded.value
                    """,
                    (key, str(value)),
                )

    def delete(self, key: str) -> None:
        with self._lock:
            with self._conn:
                self._conn.execute("DELETE FROM properties WHERE key = ?", (key,))

    def all(self) -> Dict[str, str]:
        with self._lock:
            rows = self._conn.execute("SELECT key, value FROM properties ORDER BY key").fetchall()
        return {row["key"]: row["value"] for row in rows}


@dataclass(slots=True)
class Settings:
    """Resolved options passed into each component."""

    api_token: Optional[str] = None
    sheet_id: Optional[str] = None
    data_sheet_id: Optional[str] = None
    project_color: str = DEFAULT_PROJECT_COLOR
    project_name: str = ""
    project_initialized: bool = False


def resolve_settings(config: AppConfig, store: SettingsStore | None) -> Settings:
    """Merge the settings store over the config file and environment."""

    def _stored(key: str) -> Optional[str]:
        if store is None:
            return None
        value = store.get(key)
        return value if value else None

    return Settings(
        api_token=_stored(ASANA_TOKEN) or config.asana.resolve_token(),
        sheet_id=_stored(SHEET_ID) or config.sheets.directory_spreadsheet_id,
        data_sheet_id=_stored(DATA_SHEET_ID) or config.sheets.data_spreadsheet_id,
        project_color=_stored(PROJECT_COLOR) or DEFAULT_PROJECT_COLOR,
        project_name=_stored(PROJECT_NAME) or "",
        project_initialized=_stored(PROJECT_INITIALIZED) == "true",
    )


def get_settings(store: SettingsStore) -> Dict[str, Any]:
    return {
        "asanaToken": store.get(ASANA_TOKEN) or "",
        "sheetId": store.get(SHEET_ID) or "",
        "projectColor": store.get(PROJECT_COLOR) or DEFAULT_PROJECT_COLOR,
    }


def save_settings(store: SettingsStore, token: str, sheet_id: str, color: str | None = None) -> Dict[str, Any]:
    try:
        store.set(ASANA_TOKEN, token.strip())
        store.set(SHEET_ID, sheet_id.strip())
        store.set(PROJECT_COLOR, (color or DEFAULT_PROJECT_COLOR).strip())
    except sqlite3.Error as exc:
        LOGGER.exception("Failed to save settings")
        return {"success": False, "error": f"Error saving settings: {exc}"}
    return {"success": True}


def is_master_template(store: SettingsStore, spreadsheet_id: str) -> bool:
    return (
        store.get(IS_MASTER_TEMPLATE) == "true"
        and store.get(MASTER_TEMPLATE_ACTUAL_ID) == spreadsheet_id
    )


def initialize_project(
    store: SettingsStore,
    spreadsheet_id: str,
    name: str,
    color: str | None = None,
) -> Dict[str, Any]:
    """Mark the workbook as a project; the master template is never initialized."""

    if is_master_template(store, spreadsheet_id):
        return {
            "success": False,
            "error": "This is the master template. Make a copy before initializing a project.",
        }
    name = (name or "").strip()
    if not name:
        return {"success": False, "error": "Project name is required"}

    project_color = (color or "").strip() or DEFAULT_PROJECT_COLOR
    store.set(PROJECT_NAME, name)
    store.set(PROJECT_COLOR, project_color)
    store.set(PROJECT_INITIALIZED, "true")
    LOGGER.info("Initialized workbook %s as project %s", spreadsheet_id, name)
    return {"success": True, "projectName": name, "projectColor": project_color}
