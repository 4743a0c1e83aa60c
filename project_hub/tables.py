"""Header-driven access to spreadsheet tables.

Every table read starts by mapping the header row (row 1) to column indices.
Downstream code only addresses columns through that map so that reordered or
extended sheets keep working.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Protocol, Sequence

from .errors import MissingColumnError

Row = List[Any]
Format = Optional[Dict[str, Any]]


def normalize_header(header: Any) -> str:
    return str(header if header is not None else "").strip().lower()


def build_header_map(header_row: Sequence[Any]) -> Dict[str, int]:
    header_map: Dict[str, int] = {}
    for idx, name in enumerate(header_row):
        key = normalize_header(name)
        if key and key not in header_map:
            header_map[key] = idx
    return header_map


def column_index(
    header_map: Dict[str, int], column_name: str, sheet_name: str | None = None
) -> int:
    key = normalize_header(column_name)
    if key not in header_map:
        raise MissingColumnError(column_name, sheet_name, sorted(header_map))
    return header_map[key]


def optional_column_index(header_map: Dict[str, int], column_name: str) -> int | None:
    return header_map.get(normalize_header(column_name))


def column_letter(index: int) -> str:
    """Convert a 0-based column index to A1 letters (0 -> A, 26 -> AA)."""

    if index < 0:
        raise ValueError(f"Column index must be non-negative; received {index}")
    letters = ""
    while index >= 0:
        letters = chr(index % 26 + 65) + letters
        index = index // 26 - 1
    return letters


def cell(row: Sequence[Any], idx: int | None, default: Any = "") -> Any:
    if idx is None or idx >= len(row):
        return default
    value = row[idx]
    return default if value is None else value


def cell_text(row: Sequence[Any], idx: int | None) -> str:
    return str(cell(row, idx, "")).strip()


def is_blank(value: Any) -> bool:
    return value is None or str(value).strip() == ""


def to_number(value: Any) -> float | None:
    """Parse a cell as a float; blank or non-numeric cells give ``None``."""

    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip().replace(",", "")
    if not text:
        return None
    try:
        number = float(text)
    except ValueError:
        return None
    if number != number or number in (float("inf"), float("-inf")):
        return None
    return number


def pad_row(row: Sequence[Any], width: int, fill: Any = "") -> Row:
    padded = list(row)
    if len(padded) < width:
        padded.extend([fill] * (width - len(padded)))
    return padded


@dataclass(frozen=True, slots=True)
class ColumnSpec:
    """Maps a logical field to the header text that stores it."""

    field: str
    header: str
    default: Any = ""
    required: bool = False
    standard: bool = False


def resolve_columns(
    header_row: Sequence[Any],
    specs: Iterable[ColumnSpec],
    sheet_name: str | None = None,
) -> Dict[str, int | None]:
    """Resolve column specs against a header row.

    Required fields raise ``MissingColumnError`` immediately; optional ones
    resolve to ``None`` so callers can fall back to the column default.
    """

    header_map = build_header_map(header_row)
    resolved: Dict[str, int | None] = {}
    for spec in specs:
        if spec.required:
            resolved[spec.field] = column_index(header_map, spec.header, sheet_name)
        else:
            resolved[spec.field] = optional_column_index(header_map, spec.header)
    return resolved


class TableStore(Protocol):
    """Capability interface over one spreadsheet workbook.

    Rows and columns are 1-based. ``read_values`` returns the whole used range
    of a sheet, header row first.
    """

    def title(self) -> str: ...

    def sheet_names(self) -> List[str]: ...

    def has_sheet(self, name: str) -> bool: ...

    def read_values(self, name: str) -> List[Row]: ...

    def read_formulas(self, name: str) -> List[Row]: ...

    def write_values(self, name: str, start_row: int, start_col: int, rows: Sequence[Sequence[Any]]) -> None: ...

    def append_rows(self, name: str, rows: Sequence[Sequence[Any]]) -> None: ...

    def clear(self, name: str) -> None: ...

    def clear_range(self, name: str, start_row: int, start_col: int, num_rows: int, num_cols: int) -> None: ...

    def add_sheet(self, name: str, hidden: bool = False) -> None: ...

    def duplicate_sheet(self, source: str, new_name: str, hidden: bool = True) -> None: ...

    def delete_sheet(self, name: str) -> None: ...

    def bold_range(self, name: str, row: int, start_col: int, num_cols: int) -> None: ...

    def set_list_validation(
        self, name: str, start_row: int, col: int, num_rows: int, allowed: Sequence[str]
    ) -> None: ...

    def read_formats(self, name: str, start_row: int, num_rows: int, num_cols: int) -> List[List[Format]]: ...

    def write_formats(self, name: str, start_row: int, formats: Sequence[Sequence[Format]]) -> None: ...


def ensure_sheet(store: TableStore, name: str, header: Sequence[str] | None = None, hidden: bool = False) -> bool:
    """Create ``name`` when missing; return True if it was created."""

    if store.has_sheet(name):
        return False
    store.add_sheet(name, hidden=hidden)
    if header:
        store.write_values(name, 1, 1, [list(header)])
        store.bold_range(name, 1, 1, len(header))
    return True
