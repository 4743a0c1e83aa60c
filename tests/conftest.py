from __future__ import annotations

import copy
import json
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple
from urllib.parse import parse_qs, urlsplit

import pytest

from project_hub.asana_client import AsanaClient


class FakeTableStore:
    """In-memory workbook implementing the ``TableStore`` protocol.

    Formula cells keep their formula text in ``formulas``; ``read_values``
    returns whatever value was stored for the cell, which is the formula
    text itself for cells written as ``=...``.
    """

    def __init__(self, sheets: Optional[Dict[str, List[List[Any]]]] = None, title: str = "Test Project") -> None:
        self._title = title
        self.sheets: Dict[str, List[List[Any]]] = {}
        self.formulas: Dict[str, Dict[Tuple[int, int], str]] = {}
        self.formats: Dict[str, Dict[Tuple[int, int], Any]] = {}
        self.bold: Dict[str, Set[Tuple[int, int]]] = {}
        self.validations: Dict[str, Tuple[int, int, int, List[str]]] = {}
        self.hidden: Set[str] = set()
        self.failures: Dict[str, Exception] = {}
        self.calls: List[Tuple[str, str]] = []
        for name, rows in (sheets or {}).items():
            self._create(name)
            self.sheets[name] = [list(row) for row in rows]

    # Helpers -----------------------------------------------------------------
    def _create(self, name: str) -> None:
        self.sheets[name] = []
        self.formulas[name] = {}
        self.formats[name] = {}
        self.bold[name] = set()

    def _check(self, operation: str, name: str = "") -> None:
        self.calls.append((operation, name))
        if operation in self.failures:
            raise self.failures[operation]
        if name and operation not in ("has_sheet", "add_sheet") and name not in self.sheets:
            raise KeyError(f"Unknown sheet {name}")

    def _set(self, name: str, row: int, col: int, value: Any) -> None:
        grid = self.sheets[name]
        while len(grid) < row:
            grid.append([])
        line = grid[row - 1]
        while len(line) < col:
            line.append("")
        value = "" if value is None else value
        line[col - 1] = value
        if isinstance(value, str) and value.startswith("="):
            self.formulas[name][(row, col)] = value
        else:
            self.formulas[name].pop((row, col), None)

    def set_formula(self, name: str, row: int, col: int, formula: str, value: Any) -> None:
        """Store a formula together with its computed value."""

        self._set(name, row, col, value)
        self.formulas[name][(row, col)] = formula

    def set_format(self, name: str, row: int, col: int, fmt: Any) -> None:
        self.formats[name][(row, col)] = fmt

    def rows(self, name: str) -> List[List[Any]]:
        return self.read_values(name)

    def value(self, name: str, row: int, col: int) -> Any:
        grid = self.sheets[name]
        if row > len(grid) or col > len(grid[row - 1]):
            return ""
        return grid[row - 1][col - 1]

    # TableStore --------------------------------------------------------------
    def title(self) -> str:
        return self._title

    def build_spreadsheet_url(self) -> str:
        return "https://docs.google.com/spreadsheets/d/fake/edit"

    def sheet_names(self) -> List[str]:
        return list(self.sheets)

    def has_sheet(self, name: str) -> bool:
        self._check("has_sheet", name)
        return name in self.sheets

    def read_values(self, name: str) -> List[List[Any]]:
        self._check("read_values", name)
        grid = copy.deepcopy(self.sheets[name])
        while grid and all(v in ("", None) for v in grid[-1]):
            grid.pop()
        return grid

    def read_formulas(self, name: str) -> List[List[Any]]:
        self._check("read_formulas", name)
        grid = copy.deepcopy(self.sheets[name])
        for (row, col), formula in self.formulas[name].items():
            if row <= len(grid) and col <= len(grid[row - 1]):
                grid[row - 1][col - 1] = formula
        while grid and all(v in ("", None) for v in grid[-1]):
            grid.pop()
        return grid

    def write_values(self, name: str, start_row: int, start_col: int, rows: Sequence[Sequence[Any]]) -> None:
        self._check("write_values", name)
        for r_offset, row in enumerate(rows):
            for c_offset, value in enumerate(row):
                self._set(name, start_row + r_offset, start_col + c_offset, value)

    def append_rows(self, name: str, rows: Sequence[Sequence[Any]]) -> None:
        self._check("append_rows", name)
        start = len(self.read_values(name)) + 1
        self.write_values(name, start, 1, rows)

    def clear(self, name: str) -> None:
        self._check("clear", name)
        self.sheets[name] = []
        self.formulas[name] = {}
        self.formats[name] = {}
        self.bold[name] = set()

    def clear_range(self, name: str, start_row: int, start_col: int, num_rows: int, num_cols: int) -> None:
        self._check("clear_range", name)
        grid = self.sheets[name]
        for row in range(start_row, start_row + num_rows):
            for col in range(start_col, start_col + num_cols):
                if row <= len(grid) and col <= len(grid[row - 1]):
                    self._set(name, row, col, "")

    def add_sheet(self, name: str, hidden: bool = False) -> None:
        self._check("add_sheet", name)
        if name in self.sheets:
            raise ValueError(f"Sheet {name} already exists")
        self._create(name)
        if hidden:
            self.hidden.add(name)

    def duplicate_sheet(self, source: str, new_name: str, hidden: bool = True) -> None:
        self._check("duplicate_sheet", source)
        self._create(new_name)
        self.sheets[new_name] = copy.deepcopy(self.sheets[source])
        self.formulas[new_name] = dict(self.formulas[source])
        self.formats[new_name] = dict(self.formats[source])
        if hidden:
            self.hidden.add(new_name)

    def delete_sheet(self, name: str) -> None:
        self._check("delete_sheet", name)
        for table in (self.sheets, self.formulas, self.formats, self.bold):
            table.pop(name, None)
        self.hidden.discard(name)

    def bold_range(self, name: str, row: int, start_col: int, num_cols: int) -> None:
        self._check("bold_range", name)
        for col in range(start_col, start_col + num_cols):
            self.bold[name].add((row, col))

    def set_list_validation(
        self, name: str, start_row: int, col: int, num_rows: int, allowed: Sequence[str]
    ) -> None:
        self._check("set_list_validation", name)
        self.validations[name] = (start_row, col, num_rows, list(allowed))

    def read_formats(self, name: str, start_row: int, num_rows: int, num_cols: int) -> List[List[Any]]:
        self._check("read_formats", name)
        return [
            [self.formats[name].get((row, col)) for col in range(1, num_cols + 1)]
            for row in range(start_row, start_row + num_rows)
        ]

    def write_formats(self, name: str, start_row: int, formats: Sequence[Sequence[Any]]) -> None:
        self._check("write_formats", name)
        for r_offset, row in enumerate(formats):
            for c_offset, fmt in enumerate(row):
                if fmt is not None:
                    self.formats[name][(start_row + r_offset, c_offset + 1)] = fmt


class FakeResponse:
    def __init__(self, status_code: int = 200, payload: Any = None, text: Optional[str] = None) -> None:
        self.status_code = status_code
        if text is None:
            text = "" if payload is None else json.dumps(payload)
        self.text = text

    def json(self) -> Any:
        return json.loads(self.text)


class FakeSession:
    """Stands in for ``requests.Session``; routes match on method and API path."""

    def __init__(self) -> None:
        self.routes: Dict[Tuple[str, str], Any] = {}
        self.calls: List[Dict[str, Any]] = []

    def add(self, method: str, path: str, response: Any) -> None:
        self.routes[(method.upper(), path)] = response

    def request(self, method: str, url: str, headers=None, data=None, timeout=None):
        parts = urlsplit(url)
        path = parts.path.split("/api/1.0/", 1)[-1]
        self.calls.append(
            {
                "method": method,
                "url": url,
                "path": path,
                "query": {key: values[0] for key, values in parse_qs(parts.query).items()},
                "headers": dict(headers or {}),
                "json": json.loads(data) if data else None,
                "timeout": timeout,
            }
        )
        response = self.routes.get((method.upper(), path))
        if response is None:
            return FakeResponse(404, {"errors": [{"message": f"No route for {method} {path}"}]})
        if isinstance(response, Exception):
            raise response
        return response


class RecordingMailer:
    def __init__(self, draft_id: str = "r-123", error: Optional[Exception] = None) -> None:
        self.sent: List[Dict[str, Any]] = []
        self.drafts: List[Dict[str, Any]] = []
        self._draft_id = draft_id
        self._error = error

    def _record(self, target: List[Dict[str, Any]], recipient, subject, plain_body, html_body, sender_name) -> None:
        if self._error is not None:
            raise self._error
        target.append(
            {
                "recipient": recipient,
                "subject": subject,
                "plain": plain_body,
                "html": html_body,
                "senderName": sender_name,
            }
        )

    def send(self, recipient, subject, plain_body, html_body, sender_name) -> None:
        self._record(self.sent, recipient, subject, plain_body, html_body, sender_name)

    def create_draft(self, recipient, subject, plain_body, html_body, sender_name) -> str:
        self._record(self.drafts, recipient, subject, plain_body, html_body, sender_name)
        return self._draft_id


MASTER_HEADER = [
    "ROOM",
    "TYPE",
    "ITEM",
    "QUANTITY",
    "LOW BUDGET",
    "HIGH BUDGET",
    "LOW BUDGET TOTAL",
    "HIGH BUDGET TOTAL",
    "SPEC/FFE",
]


@pytest.fixture
def fake_store_factory():
    return FakeTableStore


@pytest.fixture
def master_store() -> FakeTableStore:
    return FakeTableStore(
        {
            "Master Item List": [
                MASTER_HEADER,
                ["KITCHEN", "LIGHTING", "PENDANT", 2, 100, 200, 200, 400, "SPEC"],
                ["KITCHEN", "SEATING", "BAR STOOL", 4, 150, 300, 600, 1200, "FFE"],
                ["LIVING ROOM", "SEATING", "SOFA", 1, 2000, 4000, 2000, 4000, "FFE"],
                ["LIVING ROOM", "LIGHTING", "FLOOR LAMP", 1, 300, 500, 300, 500, ""],
            ]
        }
    )


@pytest.fixture
def session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def asana(session: FakeSession) -> AsanaClient:
    return AsanaClient("https://app.asana.com/api/1.0/", timeout=30, session=session)


@pytest.fixture
def mailer() -> RecordingMailer:
    return RecordingMailer()


@pytest.fixture
def fake_response():
    return FakeResponse


@pytest.fixture
def mailer_factory():
    return RecordingMailer
