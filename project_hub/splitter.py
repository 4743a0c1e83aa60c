"""Split the Master Item List into per-flag sheets.

Each run clears and rebuilds the SPEC and FFE sheets from scratch, so edits
made by hand in those sheets are lost. Values, formulas and formats of the
master are read once up front; the target sheets are then written in a few
bulk calls.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .config import ItemsConfig
from .errors import ConfigurationError
from .tables import (
    Format,
    Row,
    TableStore,
    build_header_map,
    cell,
    cell_text,
    column_index,
    column_letter,
    is_blank,
    optional_column_index,
)

LOGGER = logging.getLogger(__name__)

FLAG_HEADER = "SPEC/FFE"
BOLD_FORMAT: Dict[str, Any] = {"textFormat": {"bold": True}}

# Total columns rebuilt as "unit * quantity" formulas in the target sheets.
FFE_FORMULA_COLUMNS = {
    "LOW BUDGET TOTAL": ("LOW BUDGET", "QUANTITY"),
    "HIGH BUDGET TOTAL": ("HIGH BUDGET", "QUANTITY"),
}

PRICING_SOURCE_HEADERS = ("ROOM", "TYPE", "ITEM", "QUANTITY", "LOW BUDGET TOTAL", "HIGH BUDGET TOTAL")
PRICING_HEADERS = ("Room", "Item Type", "Item Name", "Quantity", "Budget Low", "Budget High")


@dataclass(frozen=True, slots=True)
class ColumnMapping:
    """One target column: a master column to copy, or blank when ``source`` is None."""

    target: str
    source: Optional[str] = None
    formula: Optional[Tuple[str, str]] = None  # (unit target header, quantity target header)


SPEC_MAPPING: Tuple[ColumnMapping, ...] = (
    ColumnMapping("CATEGORIES"),
    ColumnMapping("TYPE", "TYPE"),
    ColumnMapping("ITEM", "ITEM"),
    ColumnMapping("ACTUAL PRICE"),
    ColumnMapping("QUANTITY", "QUANTITY"),
    ColumnMapping("LOW", "LOW BUDGET"),
    ColumnMapping("TOTAL LOW", "LOW BUDGET TOTAL", formula=("LOW", "QUANTITY")),
    ColumnMapping("HIGH", "HIGH BUDGET"),
    ColumnMapping("TOTAL HIGH", "HIGH BUDGET TOTAL", formula=("HIGH", "QUANTITY")),
    ColumnMapping("NOTES"),
)


def ffe_mapping(master_headers: Sequence[Any], flag_idx: int) -> Tuple[ColumnMapping, ...]:
    """Every master column except the flag, totals rebuilt as formulas."""

    mappings = []
    for idx, header in enumerate(master_headers):
        text = str(header if header is not None else "").strip()
        if idx == flag_idx:
            continue
        formula = FFE_FORMULA_COLUMNS.get(text.upper())
        mappings.append(ColumnMapping(text, text, formula=formula))
    return tuple(mappings)


def _is_formula(value: Any) -> bool:
    return isinstance(value, str) and value.startswith("=")


@dataclass(slots=True)
class _ResolvedColumn:
    mapping: ColumnMapping
    source_idx: Optional[int]
    format_idx: Optional[int]
    formula_letters: Optional[Tuple[str, str]]


class _MasterSnapshot:
    """Values, formulas and formats of the master sheet, read once."""

    def __init__(self, store: TableStore, sheet: str) -> None:
        self.values = store.read_values(sheet)
        if not self.values:
            raise ConfigurationError(f'Sheet "{sheet}" is empty.')
        self.formulas = store.read_formulas(sheet)
        self.headers = list(self.values[0])
        self.header_map = build_header_map(self.headers)
        self.width = len(self.headers)
        self.formats = store.read_formats(sheet, 1, len(self.values), self.width) if self.width else []

    def data_rows(self) -> List[Tuple[int, Row]]:
        return [(offset + 1, row) for offset, row in enumerate(self.values[1:])]

    def formula(self, row_idx: int, col_idx: int) -> Any:
        if row_idx < len(self.formulas):
            return cell(self.formulas[row_idx], col_idx, "")
        return ""

    def format(self, row_idx: int, col_idx: Optional[int]) -> Format:
        if col_idx is None or row_idx >= len(self.formats):
            return None
        row = self.formats[row_idx]
        return row[col_idx] if col_idx < len(row) else None


def _resolve(
    snapshot: _MasterSnapshot, mappings: Sequence[ColumnMapping], target_sheet: str
) -> List[_ResolvedColumn]:
    target_map = build_header_map([mapping.target for mapping in mappings])
    first_col = 0 if snapshot.width else None
    resolved = []
    for mapping in mappings:
        if mapping.source is None:
            source_idx = None
            format_idx = optional_column_index(snapshot.header_map, mapping.target)
            if format_idx is None:
                format_idx = first_col
        else:
            try:
                source_idx = column_index(snapshot.header_map, mapping.source)
            except ConfigurationError as exc:
                raise ConfigurationError(
                    f"Configuration error for {target_sheet}: master column \"{mapping.source}\" not found."
                ) from exc
            format_idx = source_idx

        letters = None
        if mapping.formula is not None:
            unit_idx = optional_column_index(target_map, mapping.formula[0])
            qty_idx = optional_column_index(target_map, mapping.formula[1])
            if unit_idx is not None and qty_idx is not None:
                letters = (column_letter(unit_idx), column_letter(qty_idx))
        resolved.append(_ResolvedColumn(mapping, source_idx, format_idx, letters))
    return resolved


def _build_target(
    snapshot: _MasterSnapshot, columns: Sequence[_ResolvedColumn], flag_idx: int, flag: str
) -> Tuple[List[Row], List[List[Format]], List[Row]]:
    rows: List[Row] = []
    formats: List[List[Format]] = []
    source_rows: List[Row] = []
    for row_idx, master_row in snapshot.data_rows():
        if cell_text(master_row, flag_idx).upper() != flag:
            continue
        target_row_number = len(rows) + 2
        out_row: Row = []
        out_formats: List[Format] = []
        for column in columns:
            if column.source_idx is None:
                value: Any = ""
            elif column.formula_letters and _is_formula(snapshot.formula(row_idx, column.source_idx)):
                unit, qty = column.formula_letters
                value = f"={unit}{target_row_number}*{qty}{target_row_number}"
            else:
                value = cell(master_row, column.source_idx, "")
            out_row.append(value)
            out_formats.append(snapshot.format(row_idx, column.format_idx))
        rows.append(out_row)
        formats.append(out_formats)
        source_rows.append(master_row)
    return rows, formats, source_rows


def _write_target(
    store: TableStore,
    sheet: str,
    snapshot: _MasterSnapshot,
    columns: Sequence[_ResolvedColumn],
    rows: Sequence[Row],
    formats: Sequence[Sequence[Format]],
) -> None:
    if store.has_sheet(sheet):
        store.clear(sheet)
    else:
        store.add_sheet(sheet)

    headers = [column.mapping.target for column in columns]
    header_formats = [snapshot.format(0, column.format_idx) or BOLD_FORMAT for column in columns]
    store.write_values(sheet, 1, 1, [headers])
    store.write_formats(sheet, 1, [header_formats])
    if rows:
        store.write_values(sheet, 2, 1, rows)
        store.write_formats(sheet, 2, formats)


def copy_rows_to_pricing(
    store: TableStore,
    pricing_sheet: str,
    master_header_map: Dict[str, int],
    source_rows: Sequence[Row],
) -> Dict[str, Any]:
    """Copy FFE rows into the pricing sheet; never overwrite existing data."""

    if not source_rows:
        return {"success": False, "error": f'No FFE rows to copy to "{pricing_sheet}".'}
    source_idx = [column_index(master_header_map, header) for header in PRICING_SOURCE_HEADERS]
    data = [[cell(row, idx, "") for idx in source_idx] for row in source_rows]

    if not store.has_sheet(pricing_sheet):
        store.add_sheet(pricing_sheet)
        store.write_values(pricing_sheet, 1, 1, [list(PRICING_HEADERS)])
        store.bold_range(pricing_sheet, 1, 1, len(PRICING_HEADERS))
        store.write_values(pricing_sheet, 2, 1, data)
        return {"success": True, "rows": len(data)}

    values = store.read_values(pricing_sheet)
    header_map = build_header_map(values[0] if values else [])
    missing = [header for header in PRICING_HEADERS if optional_column_index(header_map, header) is None]
    if missing:
        return {
            "success": False,
            "error": f'The "{pricing_sheet}" sheet is missing the following required columns: "{", ".join(missing)}".',
        }
    target_cols = [optional_column_index(header_map, header) for header in PRICING_HEADERS]
    for row in values[1:]:
        if any(not is_blank(cell(row, idx, "")) for idx in target_cols):
            return {
                "success": False,
                "error": (
                    f'The "{pricing_sheet}" sheet already contains data in one or more target columns '
                    f"({'/'.join(PRICING_HEADERS)}) starting from row 2. "
                    "Please clear this data manually if you wish to proceed."
                ),
            }
    for position, idx in enumerate(target_cols):
        store.write_values(pricing_sheet, 2, idx + 1, [[row[position]] for row in data])
    return {"success": True, "rows": len(data)}


def split_items_by_flag(store: TableStore, config: Optional[ItemsConfig] = None) -> Dict[str, Any]:
    """Rebuild the FFE and SPEC sheets from the master list and fill Pricing."""

    config = config or ItemsConfig()
    master = config.master_sheet_name
    try:
        if not store.has_sheet(master):
            return {"success": False, "error": f'Sheet "{master}" not found.'}
        snapshot = _MasterSnapshot(store, master)
        flag_idx = column_index(snapshot.header_map, FLAG_HEADER, master)

        plans = [
            ("FFE", config.ffe_sheet_name, _resolve(snapshot, ffe_mapping(snapshot.headers, flag_idx), config.ffe_sheet_name)),
            ("SPEC", config.spec_sheet_name, _resolve(snapshot, SPEC_MAPPING, config.spec_sheet_name)),
        ]

        targets: Dict[str, Dict[str, Any]] = {}
        pricing: Dict[str, Any] = {}
        for flag, sheet, columns in plans:
            rows, formats, source_rows = _build_target(snapshot, columns, flag_idx, flag)
            _write_target(store, sheet, snapshot, columns, rows, formats)
            if rows:
                message = f'"{flag}" items processed and copied to sheet "{sheet}" successfully.'
            else:
                message = f'No data rows with "{flag}" in column "{FLAG_HEADER}" found for sheet "{sheet}".'
            LOGGER.info(message)
            targets[flag] = {"sheet": sheet, "rows": len(rows), "message": message}

            if flag == "FFE":
                pricing = copy_rows_to_pricing(store, config.pricing_sheet_name, snapshot.header_map, source_rows)
                if not pricing["success"]:
                    LOGGER.warning("Pricing copy skipped: %s", pricing["error"])
    except ConfigurationError as exc:
        return {"success": False, "error": str(exc)}
    except Exception as exc:
        LOGGER.exception("Failed to split %s", master)
        return {"success": False, "error": f"Error splitting items: {exc}"}

    return {"success": True, "targets": targets, "pricing": pricing}
