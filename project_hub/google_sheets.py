from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Dict, List, Sequence

import logging
import ssl
import time

from google.oauth2.service_account import Credentials
from googleapiclient.discovery import Resource
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from googleapiclient.http import HttpRequest
from httplib2 import HttpLib2Error

from .errors import ConfigurationError
from .tables import Format, Row, column_letter

SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]

LOGGER = logging.getLogger(__name__)

_RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}
_MAX_RETRY_ATTEMPTS = 4
_INITIAL_BACKOFF_SECONDS = 1.0
_MAX_BACKOFF_SECONDS = 8.0
_RETRYABLE_EXCEPTIONS = (ssl.SSLEOFError, HttpLib2Error)


def _quote_sheet(name: str) -> str:
    return "'" + name.replace("'", "''") + "'"


def _a1(name: str, cell_range: str | None = None) -> str:
    if cell_range:
        return f"{_quote_sheet(name)}!{cell_range}"
    return _quote_sheet(name)


def _to_cell_value(value: Any) -> Any:
    # The values API leaves a cell untouched when it receives null.
    return "" if value is None else value


class GoogleSheetsClient:
    """Table store backed by one Google Sheets workbook."""

    def __init__(self, credentials_file: Path, spreadsheet_id: str) -> None:
        if not spreadsheet_id:
            raise ConfigurationError("Spreadsheet ID is not configured")
        self._credentials_file = credentials_file
        self._spreadsheet_id = spreadsheet_id
        self._service: Resource | None = None
        self._properties: Dict[str, Any] | None = None

    @property
    def spreadsheet_id(self) -> str:
        return self._spreadsheet_id

    def _service_client(self) -> Resource:
        if self._service is None:
            creds = Credentials.from_service_account_file(
                str(self._credentials_file), scopes=SCOPES
            )
            self._service = build("sheets", "v4", credentials=creds)
        return self._service

    # Metadata ----------------------------------------------------------------
    def _spreadsheet_properties(self) -> Dict[str, Any]:
        if self._properties is None:

            def _build_request() -> HttpRequest:
                return self._service_client().spreadsheets().get(
                    spreadsheetId=self._spreadsheet_id,
                    fields="properties.title,sheets.properties",
                )

            self._properties = self._execute_with_retry(
                _build_request, operation="fetch spreadsheet metadata"
            )
        return self._properties

    def _invalidate_properties(self) -> None:
        self._properties = None

    def _sheet_id(self, name: str) -> int:
        for sheet in self._spreadsheet_properties().get("sheets", []):
            props = sheet.get("properties", {})
            if props.get("title") == name:
                return props["sheetId"]
        raise ConfigurationError(f"Sheet '{name}' not found")

    def title(self) -> str:
        return self._spreadsheet_properties().get("properties", {}).get("title", "")

    def sheet_names(self) -> List[str]:
        return [
            sheet.get("properties", {}).get("title", "")
            for sheet in self._spreadsheet_properties().get("sheets", [])
        ]

    def has_sheet(self, name: str) -> bool:
        return name in self.sheet_names()

    def build_spreadsheet_url(self) -> str:
        return f"https://docs.google.com/spreadsheets/d/{self._spreadsheet_id}/edit"

    # Reading -----------------------------------------------------------------
    def read_values(self, name: str) -> List[Row]:
        """Load all values from ``name`` (header row included)."""

        return self._get_values(name, "UNFORMATTED_VALUE", operation=f"read {name}")

    def read_formulas(self, name: str) -> List[Row]:
        return self._get_values(name, "FORMULA", operation=f"read formulas of {name}")

    def _get_values(self, name: str, render_option: str, *, operation: str) -> List[Row]:
        def _build_request() -> HttpRequest:
            return (
                self._service_client()
                .spreadsheets()
                .values()
                .get(
                    spreadsheetId=self._spreadsheet_id,
                    range=_a1(name),
                    valueRenderOption=render_option,
                )
            )

        result = self._execute_with_retry(_build_request, operation=operation)
        return result.get("values", [])

    def read_formats(self, name: str, start_row: int, num_rows: int, num_cols: int) -> List[List[Format]]:
        """Return ``userEnteredFormat`` dicts for a block, one list per row."""

        if num_rows <= 0 or num_cols <= 0:
            return []
        end_col = column_letter(num_cols - 1)
        cell_range = f"A{start_row}:{end_col}{start_row + num_rows - 1}"

        def _build_request() -> HttpRequest:
            return self._service_client().spreadsheets().get(
                spreadsheetId=self._spreadsheet_id,
                ranges=[_a1(name, cell_range)],
                includeGridData=True,
                fields="sheets.data.rowData.values.userEnteredFormat",
            )

        result = self._execute_with_retry(_build_request, operation=f"read formats of {name}")
        row_data: List[Dict[str, Any]] = []
        for sheet in result.get("sheets", []):
            for block in sheet.get("data", []):
                row_data.extend(block.get("rowData", []))

        formats: List[List[Format]] = []
        for row_idx in range(num_rows):
            values = row_data[row_idx].get("values", []) if row_idx < len(row_data) else []
            formats.append(
                [
                    values[col].get("userEnteredFormat") if col < len(values) else None
                    for col in range(num_cols)
                ]
            )
        return formats

    # Writing -----------------------------------------------------------------
    def write_values(self, name: str, start_row: int, start_col: int, rows: Sequence[Sequence[Any]]) -> None:
        """Write a rectangular block in one request."""

        if not rows:
            return
        if start_row < 1 or start_col < 1:
            msg = f"Rows and columns must be 1-based; received {start_row}, {start_col}"
            raise ValueError(msg)
        payload = {"values": [[_to_cell_value(value) for value in row] for row in rows]}
        target_range = _a1(name, f"{column_letter(start_col - 1)}{start_row}")

        def _update_request() -> HttpRequest:
            return (
                self._service_client()
                .spreadsheets()
                .values()
                .update(
                    spreadsheetId=self._spreadsheet_id,
                    range=target_range,
                    valueInputOption="USER_ENTERED",
                    body=payload,
                )
            )

        self._execute_with_retry(_update_request, operation=f"write {name}")

    def append_rows(self, name: str, rows: Sequence[Sequence[Any]]) -> None:
        """Append rows below the last non-empty row of ``name``."""

        if not rows:
            return
        payload = {"values": [[_to_cell_value(value) for value in row] for row in rows]}

        def _append_request() -> HttpRequest:
            return (
                self._service_client()
                .spreadsheets()
                .values()
                .append(
                    spreadsheetId=self._spreadsheet_id,
                    range=_a1(name, "A1"),
                    valueInputOption="USER_ENTERED",
                    insertDataOption="INSERT_ROWS",
                    body=payload,
                )
            )

        self._execute_with_retry(_append_request, operation=f"append rows to {name}")

    def clear(self, name: str) -> None:
        """Remove values and formatting from the whole sheet."""

        self._batch_update(
            [{"updateCells": {"range": {"sheetId": self._sheet_id(name)}, "fields": "*"}}],
            operation=f"clear {name}",
        )

    def clear_range(self, name: str, start_row: int, start_col: int, num_rows: int, num_cols: int) -> None:
        if num_rows <= 0 or num_cols <= 0:
            return
        cell_range = (
            f"{column_letter(start_col - 1)}{start_row}:"
            f"{column_letter(start_col + num_cols - 2)}{start_row + num_rows - 1}"
        )

        def _clear_request() -> HttpRequest:
            return (
                self._service_client()
                .spreadsheets()
                .values()
                .clear(spreadsheetId=self._spreadsheet_id, range=_a1(name, cell_range))
            )

        self._execute_with_retry(_clear_request, operation=f"clear range of {name}")

    def add_sheet(self, name: str, hidden: bool = False) -> None:
        self._batch_update(
            [{"addSheet": {"properties": {"title": name, "hidden": hidden}}}],
            operation=f"add sheet {name}",
        )
        self._invalidate_properties()

    def duplicate_sheet(self, source: str, new_name: str, hidden: bool = True) -> None:
        response = self._batch_update(
            [
                {
                    "duplicateSheet": {
                        "sourceSheetId": self._sheet_id(source),
                        "newSheetName": new_name,
                    }
                }
            ],
            operation=f"duplicate {source}",
        )
        self._invalidate_properties()
        if not hidden:
            return
        replies = response.get("replies", [])
        new_sheet_id = (
            replies[0].get("duplicateSheet", {}).get("properties", {}).get("sheetId")
            if replies
            else None
        )
        if new_sheet_id is None:
            new_sheet_id = self._sheet_id(new_name)
        self._batch_update(
            [
                {
                    "updateSheetProperties": {
                        "properties": {"sheetId": new_sheet_id, "hidden": True},
                        "fields": "hidden",
                    }
                }
            ],
            operation=f"hide {new_name}",
        )

    def delete_sheet(self, name: str) -> None:
        self._batch_update(
            [{"deleteSheet": {"sheetId": self._sheet_id(name)}}],
            operation=f"delete sheet {name}",
        )
        self._invalidate_properties()

    def bold_range(self, name: str, row: int, start_col: int, num_cols: int) -> None:
        self._batch_update(
            [
                {
                    "repeatCell": {
                        "range": self._grid_range(name, row, start_col, 1, num_cols),
                        "cell": {"userEnteredFormat": {"textFormat": {"bold": True}}},
                        "fields": "userEnteredFormat.textFormat.bold",
                    }
                }
            ],
            operation=f"bold header of {name}",
        )

    def set_list_validation(
        self, name: str, start_row: int, col: int, num_rows: int, allowed: Sequence[str]
    ) -> None:
        """Restrict a column block to ``allowed`` values; blank cells stay valid."""

        if num_rows <= 0:
            return
        values = [{"userEnteredValue": value} for value in allowed if value]
        self._batch_update(
            [
                {
                    "setDataValidation": {
                        "range": self._grid_range(name, start_row, col, num_rows, 1),
                        "rule": {
                            "condition": {"type": "ONE_OF_LIST", "values": values},
                            "strict": True,
                            "showCustomUi": True,
                        },
                    }
                }
            ],
            operation=f"set validation on {name}",
        )

    def write_formats(self, name: str, start_row: int, formats: Sequence[Sequence[Format]]) -> None:
        if not formats:
            return
        rows = [
            {"values": [{"userEnteredFormat": fmt} if fmt else {} for fmt in row]}
            for row in formats
        ]
        self._batch_update(
            [
                {
                    "updateCells": {
                        "rows": rows,
                        "start": {
                            "sheetId": self._sheet_id(name),
                            "rowIndex": start_row - 1,
                            "columnIndex": 0,
                        },
                        "fields": "userEnteredFormat",
                    }
                }
            ],
            operation=f"write formats of {name}",
        )

    # Internal ----------------------------------------------------------------
    def _grid_range(self, name: str, start_row: int, start_col: int, num_rows: int, num_cols: int) -> Dict[str, int]:
        return {
            "sheetId": self._sheet_id(name),
            "startRowIndex": start_row - 1,
            "endRowIndex": start_row - 1 + num_rows,
            "startColumnIndex": start_col - 1,
            "endColumnIndex": start_col - 1 + num_cols,
        }

    def _batch_update(self, requests: List[Dict[str, Any]], *, operation: str) -> dict:
        def _build_request() -> HttpRequest:
            return self._service_client().spreadsheets().batchUpdate(
                spreadsheetId=self._spreadsheet_id,
                body={"requests": requests},
            )

        return self._execute_with_retry(_build_request, operation=operation)

    def _reset_service(self) -> None:
        self._service = None

    def _execute_with_retry(
        self,
        request_builder: Callable[[], HttpRequest],
        *,
        operation: str,
    ) -> dict:
        """Execute a Sheets API request with retries for transient failures."""

        backoff = _INITIAL_BACKOFF_SECONDS
        last_exc: Exception | None = None

        for attempt in range(1, _MAX_RETRY_ATTEMPTS + 1):
            try:
                return request_builder().execute()
            except _RETRYABLE_EXCEPTIONS as exc:
                last_exc = exc
            except HttpError as exc:
                status = getattr(exc.resp, "status", None)
                if status not in _RETRYABLE_STATUS_CODES:
                    raise
                last_exc = exc

            if attempt == _MAX_RETRY_ATTEMPTS:
                raise last_exc

            wait_time = min(backoff, _MAX_BACKOFF_SECONDS)
            LOGGER.warning(
                "Sheets API %s failed on attempt %s/%s (%s); retrying in %.1f seconds",
                operation,
                attempt,
                _MAX_RETRY_ATTEMPTS,
                last_exc,
                wait_time,
            )
            self._reset_service()
            time.sleep(wait_time)
            backoff *= 2

        if last_exc is not None:  # pragma: no cover - loop always returns or raises
            raise last_exc
        raise RuntimeError("Sheets API request failed without capturing an exception")
