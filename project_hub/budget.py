"""Per-room and project-wide budget roll-ups."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence

from .errors import ConfigurationError
from .models import Item, RoomBudget
from .tables import (
    Row,
    TableStore,
    build_header_map,
    cell,
    cell_text,
    column_index,
    ensure_sheet,
    optional_column_index,
    to_number,
)

LOGGER = logging.getLogger(__name__)

MASTER_SHEET = "Master Item List"
FALLBACK_SHEET = "Items"
BUDGET_SHEET = "Budget"

BUDGET_REQUIRED_COLUMNS = (
    "ROOM",
    "TYPE",
    "ITEM",
    "QUANTITY",
    "LOW BUDGET",
    "LOW BUDGET TOTAL",
    "HIGH BUDGET",
    "HIGH BUDGET TOTAL",
)
FALLBACK_REQUIRED_COLUMNS = ("ROOM", "ITEM", "LOW BUDGET", "HIGH BUDGET")
BUDGET_HEADERS = ["CATEGORIES", "TYPE", "SET ALLOWANCE", "LOW", "TOTAL LOW", "HIGH", "TOTAL HIGH", "NOTES"]


def _quantity(value: Any) -> int:
    number = to_number(value)
    if number is None or int(number) < 1:
        return 1
    return int(number)


def _row_total(row: Row, total_idx: Optional[int], unit: float, quantity: int) -> float:
    """Trust the stored total only when it is present and numeric."""

    stored = to_number(cell(row, total_idx, None)) if total_idx is not None else None
    if stored is not None:
        return stored
    return unit * quantity


def _aggregate_rows(rows: Sequence[Row], header_map: Dict[str, int]) -> Dict[str, Any]:
    room_idx = column_index(header_map, "ROOM")
    item_idx = column_index(header_map, "ITEM")
    type_idx = optional_column_index(header_map, "TYPE")
    qty_idx = optional_column_index(header_map, "QUANTITY")
    low_idx = column_index(header_map, "LOW BUDGET")
    high_idx = column_index(header_map, "HIGH BUDGET")
    low_total_idx = optional_column_index(header_map, "LOW BUDGET TOTAL")
    high_total_idx = optional_column_index(header_map, "HIGH BUDGET TOTAL")

    rooms: Dict[str, RoomBudget] = {}
    total_low = 0.0
    total_high = 0.0
    for row in rows:
        room_name = cell_text(row, room_idx)
        item_name = cell_text(row, item_idx)
        if not room_name or not item_name:
            continue
        quantity = _quantity(cell(row, qty_idx, None)) if qty_idx is not None else 1
        low = to_number(cell(row, low_idx, None)) or 0.0
        high = to_number(cell(row, high_idx, None)) or 0.0
        low_total = _row_total(row, low_total_idx, low, quantity)
        high_total = _row_total(row, high_total_idx, high, quantity)

        room = rooms.setdefault(room_name, RoomBudget(name=room_name))
        room.items.append(
            {
                "item": item_name,
                "type": cell_text(row, type_idx),
                "quantity": quantity,
                "low": low,
                "lowTotal": low_total,
                "high": high,
                "highTotal": high_total,
            }
        )
        room.low_budget += low_total
        room.high_budget += high_total
        total_low += low_total
        total_high += high_total

    ordered = sorted(rooms.values(), key=lambda room: room.high_budget, reverse=True)
    return {
        "success": True,
        "summary": {"totalLowBudget": total_low, "totalHighBudget": total_high},
        "rooms": [room.to_dict() for room in ordered],
    }


def process_items_sheet_for_budget(values: Sequence[Row]) -> Dict[str, Any]:
    """Roll up a loosely structured items table.

    Only ROOM, ITEM, LOW BUDGET and HIGH BUDGET are required; quantity
    defaults to 1 and totals are derived from unit price when the total column
    is missing, blank or non-numeric.
    """

    if not values or len(values) < 2:
        raise ConfigurationError("Items sheet is empty or has insufficient data")
    header_map = build_header_map(values[0])
    for name in FALLBACK_REQUIRED_COLUMNS:
        column_index(header_map, name, FALLBACK_SHEET)
    return _aggregate_rows(values[1:], header_map)


def get_budget_data(
    store: TableStore,
    primary: str = MASTER_SHEET,
    fallback: str = FALLBACK_SHEET,
) -> Dict[str, Any]:
    try:
        if store.has_sheet(primary):
            values = store.read_values(primary)
            if not values:
                raise ConfigurationError(f"Sheet '{primary}' is empty")
            header_map = build_header_map(values[0])
            for name in BUDGET_REQUIRED_COLUMNS:
                column_index(header_map, name, primary)
            return _aggregate_rows(values[1:], header_map)
        if store.has_sheet(fallback):
            LOGGER.info("Sheet %s not found; using %s for budget data", primary, fallback)
            return process_items_sheet_for_budget(store.read_values(fallback))
        raise ConfigurationError(f"Neither '{primary}' nor '{fallback}' sheet found")
    except ConfigurationError as exc:
        return {"success": False, "error": f"Failed to process budget data: {exc}"}
    except Exception as exc:
        LOGGER.exception("Failed to process budget data")
        return {"success": False, "error": f"Failed to process budget data: {exc}"}


def calculate_room_totals(items: Iterable[Item]) -> Dict[str, float]:
    low_total = 0.0
    high_total = 0.0
    for item in items:
        if item.low_budget_total is not None:
            low_total += item.low_budget_total
        if item.high_budget_total is not None:
            high_total += item.high_budget_total
    return {"lowTotal": low_total, "highTotal": high_total}


def calculate_project_totals(items: Iterable[Item]) -> Dict[str, Any]:
    by_room: Dict[str, List[Item]] = {}
    for item in items:
        by_room.setdefault(item.room, []).append(item)

    room_totals = {room: calculate_room_totals(room_items) for room, room_items in by_room.items()}
    return {
        "success": True,
        "projectTotals": {
            "lowTotal": sum(totals["lowTotal"] for totals in room_totals.values()),
            "highTotal": sum(totals["highTotal"] for totals in room_totals.values()),
        },
        "roomTotals": room_totals,
    }


def get_project_summary(
    store: TableStore, selected_rooms: Sequence[str], items_sheet: str = MASTER_SHEET
) -> Dict[str, Any]:
    try:
        summary: Dict[str, Any] = {
            "success": True,
            "projectName": store.title(),
            "totalLowBudget": 0.0,
            "totalHighBudget": 0.0,
            "roomCount": len(selected_rooms),
            "itemCount": 0,
        }
        if not store.has_sheet(items_sheet):
            return summary
        values = store.read_values(items_sheet)
        if len(values) < 2:
            return summary

        header_map = build_header_map(values[0])
        low_idx = optional_column_index(header_map, "LOW BUDGET TOTAL")
        high_idx = optional_column_index(header_map, "HIGH BUDGET TOTAL")
        summary["itemCount"] = len(values) - 1
        for row in values[1:]:
            summary["totalLowBudget"] += to_number(cell(row, low_idx, None)) or 0.0
            summary["totalHighBudget"] += to_number(cell(row, high_idx, None)) or 0.0
        return summary
    except Exception as exc:
        LOGGER.exception("Failed to build project summary")
        return {"success": False, "error": f"Error getting project summary: {exc}"}


def _spec_totals_by_type(values: Sequence[Row], sheet_name: str) -> Dict[str, Dict[str, float]]:
    header_map = build_header_map(values[0])
    flag_idx = column_index(header_map, "SPEC/FFE", sheet_name)
    type_idx = column_index(header_map, "TYPE", sheet_name)
    low_idx = column_index(header_map, "LOW BUDGET TOTAL", sheet_name)
    high_idx = column_index(header_map, "HIGH BUDGET TOTAL", sheet_name)

    totals: Dict[str, Dict[str, float]] = {}
    for row in values[1:]:
        if cell_text(row, flag_idx).upper() != "SPEC":
            continue
        type_name = cell_text(row, type_idx)
        if not type_name:
            continue
        entry = totals.setdefault(type_name, {"low": 0.0, "high": 0.0})
        entry["low"] += to_number(cell(row, low_idx, None)) or 0.0
        entry["high"] += to_number(cell(row, high_idx, None)) or 0.0
    return totals


def update_budget_from_spec_items(
    store: TableStore, master_sheet: str = MASTER_SHEET, budget_sheet: str = BUDGET_SHEET
) -> Dict[str, Any]:
    """Upsert SPEC totals per TYPE into the Budget sheet.

    Existing rows keep every column except TOTAL LOW and TOTAL HIGH.
    """

    try:
        if not store.has_sheet(master_sheet):
            return {"success": False, "error": f"Sheet \"{master_sheet}\" not found."}
        master_values = store.read_values(master_sheet)
        if len(master_values) <= 1:
            return {"success": False, "error": f"Sheet \"{master_sheet}\" has no data to process."}

        spec_totals = _spec_totals_by_type(master_values, master_sheet)
        if not spec_totals:
            return {
                "success": False,
                "error": f"No \"SPEC\" items found in \"{master_sheet}\" to update the Budget with.",
            }

        ensure_sheet(store, budget_sheet, BUDGET_HEADERS)
        budget_values = store.read_values(budget_sheet)
        if not budget_values:
            store.write_values(budget_sheet, 1, 1, [BUDGET_HEADERS])
            store.bold_range(budget_sheet, 1, 1, len(BUDGET_HEADERS))
            budget_values = [list(BUDGET_HEADERS)]

        headers = budget_values[0]
        header_map = build_header_map(headers)
        type_idx = column_index(header_map, "TYPE", budget_sheet)
        low_idx = column_index(header_map, "TOTAL LOW", budget_sheet)
        high_idx = column_index(header_map, "TOTAL HIGH", budget_sheet)

        type_rows: Dict[str, int] = {}
        for offset, row in enumerate(budget_values[1:]):
            name = cell_text(row, type_idx)
            if name:
                type_rows[name] = offset + 2

        rows_to_add: List[Row] = []
        updated = 0
        for type_name, data in spec_totals.items():
            low_text = f"{data['low']:.2f}"
            high_text = f"{data['high']:.2f}"
            if type_name in type_rows:
                row_number = type_rows[type_name]
                store.write_values(budget_sheet, row_number, low_idx + 1, [[low_text]])
                store.write_values(budget_sheet, row_number, high_idx + 1, [[high_text]])
                updated += 1
            else:
                new_row: Row = [""] * len(headers)
                new_row[type_idx] = type_name
                new_row[low_idx] = low_text
                new_row[high_idx] = high_text
                rows_to_add.append(new_row)

        if rows_to_add:
            store.write_values(budget_sheet, len(budget_values) + 1, 1, rows_to_add)
    except ConfigurationError as exc:
        return {"success": False, "error": str(exc)}
    except Exception as exc:
        LOGGER.exception("Failed to update budget from SPEC items")
        return {"success": False, "error": f"Error updating budget: {exc}"}

    added = len(rows_to_add)
    message = f"Budget sheet updated: {updated} item(s) updated, {added} item(s) added."
    LOGGER.info(message)
    return {"success": True, "updated": updated, "added": added, "message": message}
