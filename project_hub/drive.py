"""Project folder listing for the dashboard files panel."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

from google.oauth2.service_account import Credentials
from googleapiclient.discovery import Resource, build
from googleapiclient.errors import HttpError

LOGGER = logging.getLogger(__name__)

DRIVE_SCOPES = ["https://www.googleapis.com/auth/drive.readonly"]
FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"

FILE_ICONS = {
    "application/vnd.google-apps.document": "description",
    "application/vnd.google-apps.spreadsheet": "table_chart",
    "application/vnd.google-apps.presentation": "slideshow",
    "application/pdf": "picture_as_pdf",
    FOLDER_MIME_TYPE: "folder",
    "image/jpeg": "image",
    "image/png": "image",
    "image/gif": "gif",
    "application/zip": "archive",
    "application/vnd.google-apps.form": "assignment",
    "application/vnd.google-apps.drawing": "brush",
    "text/plain": "text_snippet",
    "text/html": "code",
    "text/css": "code",
    "text/javascript": "code",
}
DEFAULT_ICON = "insert_drive_file"


def get_file_icon(mime_type: Optional[str]) -> str:
    return FILE_ICONS.get(mime_type or "", DEFAULT_ICON)


class FolderBrowser(Protocol):
    def list_children(self, folder_id: str, folders: bool) -> List[Dict[str, Any]]: ...


class DriveClient:
    """Read-only Drive v3 access; each child is ``{id, name, mimeType, webViewLink}``."""

    def __init__(self, credentials_file: Path) -> None:
        self._credentials_file = credentials_file
        self._service: Resource | None = None

    def _service_client(self) -> Resource:
        if self._service is None:
            creds = Credentials.from_service_account_file(
                str(self._credentials_file), scopes=DRIVE_SCOPES
            )
            self._service = build("drive", "v3", credentials=creds)
        return self._service

    def list_children(self, folder_id: str, folders: bool) -> List[Dict[str, Any]]:
        operator = "=" if folders else "!="
        query = f"'{folder_id}' in parents and mimeType {operator} '{FOLDER_MIME_TYPE}' and trashed = false"
        response = (
            self._service_client()
            .files()
            .list(
                q=query,
                fields="files(id,name,mimeType,webViewLink)",
                orderBy="name",
                supportsAllDrives=True,
                includeItemsFromAllDrives=True,
            )
            .execute()
        )
        return response.get("files", [])


def _folder_error_message(exc: HttpError) -> str:
    status = getattr(exc.resp, "status", None)
    if status == 403:
        return (
            "Permission denied. The service account doesn't have access to the folder you specified. "
            "Please check that the folder ID is correct and that the folder is shared with it."
        )
    if status == 404:
        return "Folder not found. Please check that the folder ID is correct."
    return f"Error accessing folder: {exc}"


def get_dashboard_files(
    browser: FolderBrowser, folder_id: Optional[str], project_name: Optional[str]
) -> Dict[str, Any]:
    """List files grouped by subfolder name; empty subfolders are left out."""

    if not folder_id:
        return {"projectName": project_name, "files": None, "error": None}

    try:
        grouped: Dict[str, List[Dict[str, str]]] = {}
        for folder in browser.list_children(folder_id, folders=True):
            files = [
                {
                    "name": child.get("name", ""),
                    "url": child.get("webViewLink", ""),
                    "icon": get_file_icon(child.get("mimeType")),
                }
                for child in browser.list_children(folder["id"], folders=False)
            ]
            if files:
                grouped[folder.get("name", "")] = files
    except HttpError as exc:
        LOGGER.exception("Failed to list folder %s", folder_id)
        return {"projectName": project_name, "files": None, "error": _folder_error_message(exc)}
    except Exception as exc:
        LOGGER.exception("Failed to list folder %s", folder_id)
        return {"projectName": project_name, "files": None, "error": f"Error loading dashboard data: {exc}"}

    return {"projectName": project_name, "files": grouped or None, "error": None}
