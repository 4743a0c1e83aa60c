"""Room catalog, item catalog and the Master Item List.

``save_items_to_master_list`` reconciles a batch of client edits against the
sheet. The physical row number is the only identity an existing item has:
edits carrying a row number that still exists are rewritten in place, every
other edit (including a stale row number) is appended after the last row.
Nothing guards against a concurrent writer between the read and the two bulk
writes; the hidden backup sheet is the only recovery path.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from .budget import calculate_room_totals
from .cache import AVAILABLE_ITEMS_KEY, CacheStore
from .config import ItemsConfig
from .errors import ConfigurationError, ValidationError
from .models import Item
from .tables import (
    Row,
    TableStore,
    build_header_map,
    cell,
    cell_text,
    column_index,
    normalize_header,
    pad_row,
    to_number,
)

LOGGER = logging.getLogger(__name__)

ROOMS_MARKER = "Rooms"
ITEM_TYPE_HEADER = "Item-Type"
ITEM_NAME_HEADER = "Item-Name"
TYPE_HEADER = "Type"
UNCATEGORIZED_TYPE = "UNCATEGORIZED"
TEMPORARY_ID_PREFIX = "new_"

MASTER_HEADERS: Tuple[str, ...] = (
    "ROOM",
    "TYPE",
    "ITEM",
    "QUANTITY",
    "LOW BUDGET",
    "HIGH BUDGET",
    "LOW BUDGET TOTAL",
    "HIGH BUDGET TOTAL",
    "SPEC/FFE",
)
# Headers the read path needs; totals are recomputed from unit price.
READ_HEADERS: Tuple[str, ...] = ("ROOM", "TYPE", "ITEM", "QUANTITY", "LOW BUDGET", "HIGH BUDGET", "SPEC/FFE")


def parse_quantity(value: Any) -> int:
    """Whole quantity of at least 1; blank or non-numeric input gives 1."""

    number = to_number(value)
    if number is None:
        return 1
    return max(1, int(number))


def parse_budget(value: Any) -> Optional[float]:
    return to_number(value)


def _multiply(unit: Optional[float], quantity: int) -> Optional[float]:
    return None if unit is None else unit * quantity


def _valid_row_number(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int) and value > 0:
        return value
    if isinstance(value, float) and value.is_integer() and value > 0:
        return int(value)
    return None


def normalize_item(raw: Mapping[str, Any]) -> Item:
    """Validate and normalize one client-submitted item.

    Text fields are upper-cased, quantity is clamped to at least 1 and the
    totals are always recomputed from unit budget and quantity; a client
    supplied total is ignored.
    """

    if not isinstance(raw, Mapping):
        raise ValidationError("Item is not an object")
    room = str(raw.get("room") or "").strip()
    name = str(raw.get("item") or "").strip()
    if not room or not name:
        raise ValidationError("Missing room or item name")

    quantity = parse_quantity(raw.get("quantity"))
    low = parse_budget(raw.get("lowBudget"))
    high = parse_budget(raw.get("highBudget"))
    raw_id = raw.get("id")
    temporary_id = str(raw_id) if raw_id and str(raw_id).startswith(TEMPORARY_ID_PREFIX) else None

    return Item(
        room=room.upper(),
        type=str(raw.get("type") or "").strip().upper(),
        item=name.upper(),
        quantity=quantity,
        low_budget=low,
        high_budget=high,
        low_budget_total=_multiply(low, quantity),
        high_budget_total=_multiply(high, quantity),
        spec_ffe=str(raw.get("specFfe") or "").strip().upper(),
        row_number=_valid_row_number(raw.get("rowNumber")),
        original_temporary_id=temporary_id,
    )


def _blank_if_none(value: Any) -> Any:
    return "" if value is None else value


def _master_values(item: Item) -> Dict[str, Any]:
    return {
        "ROOM": item.room,
        "TYPE": item.type,
        "ITEM": item.item,
        "QUANTITY": item.quantity,
        "LOW BUDGET": _blank_if_none(item.low_budget),
        "HIGH BUDGET": _blank_if_none(item.high_budget),
        "LOW BUDGET TOTAL": _blank_if_none(item.low_budget_total),
        "HIGH BUDGET TOTAL": _blank_if_none(item.high_budget_total),
        "SPEC/FFE": item.spec_ffe,
    }


def generate_combined_items(available_items: Sequence[Mapping[str, Any]]) -> List[str]:
    """``"<type> : <item>"`` strings for autocomplete, first occurrence kept."""

    combined: List[str] = []
    seen = set()
    for entry in available_items or []:
        if not isinstance(entry, Mapping):
            continue
        name = str(entry.get("item") or "").strip()
        if not name:
            continue
        item_type = str(entry.get("type") or "").strip()
        label = f"{item_type} : {name}" if item_type else name
        if label not in seen:
            seen.add(label)
            combined.append(label)
    return combined


class ItemManager:
    """Catalog lookups on the data workbook and item edits on the project workbook."""

    def __init__(
        self,
        store: TableStore,
        data_store: Optional[TableStore] = None,
        cache: Optional[CacheStore] = None,
        config: Optional[ItemsConfig] = None,
        now: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._store = store
        self._data_store = data_store or store
        self._cache = cache
        self._config = config or ItemsConfig()
        self._now = now

    @property
    def master_sheet(self) -> str:
        return self._config.master_sheet_name

    # Room catalog ------------------------------------------------------------
    def _data_values(self) -> List[Row]:
        name = self._config.data_sheet_name
        if not self._data_store.has_sheet(name):
            raise ConfigurationError(f"{name} sheet not found in the spreadsheet")
        return self._data_store.read_values(name)

    def get_master_room_data(self) -> Dict[str, Any]:
        """Rooms listed in column A below the ``Rooms`` marker, up to the first blank."""

        try:
            values = self._data_values()
        except ConfigurationError as exc:
            return {"success": False, "rooms": [], "headerRowIndex": -1, "error": str(exc)}
        except Exception as exc:
            LOGGER.exception("Failed to read room catalog")
            return {
                "success": False,
                "rooms": [],
                "headerRowIndex": -1,
                "error": f"Error retrieving master room data: {exc}",
            }

        marker = normalize_header(ROOMS_MARKER)
        header_row_index = next(
            (idx for idx, row in enumerate(values) if normalize_header(cell(row, 0)) == marker),
            -1,
        )
        if header_row_index == -1:
            return {
                "success": False,
                "rooms": [],
                "headerRowIndex": -1,
                "error": f"{ROOMS_MARKER} header not found in column A of {self._config.data_sheet_name} sheet",
            }

        rooms: List[str] = []
        for row in values[header_row_index + 1:]:
            name = cell_text(row, 0)
            if not name:
                break
            rooms.append(name)
        return {"success": True, "rooms": rooms, "headerRowIndex": header_row_index}

    def add_room(self, room_name: str) -> Dict[str, Any]:
        name = (room_name or "").strip().upper()
        if not name:
            return {"success": False, "error": "Room name cannot be empty"}

        rooms = self.get_master_room_data()
        if not rooms["success"]:
            return rooms
        if any(existing.upper() == name for existing in rooms["rooms"]):
            return {"success": False, "error": f'Room "{name}" already exists'}

        # headerRowIndex is 0-based; the new room goes directly below the last one.
        target_row = rooms["headerRowIndex"] + len(rooms["rooms"]) + 2
        try:
            self._data_store.write_values(self._config.data_sheet_name, target_row, 1, [[name]])
        except Exception as exc:
            LOGGER.exception("Failed to add room %s", name)
            return {"success": False, "error": f"Error adding room: {exc}"}
        LOGGER.info("Added room %s at row %s", name, target_row)
        return {"success": True, "roomName": name}

    # Item catalog ------------------------------------------------------------
    def get_available_items(self) -> Dict[str, Any]:
        if self._cache is not None:
            cached = self._cache.get(AVAILABLE_ITEMS_KEY)
            if cached is not None:
                return {"success": True, "availableItems": cached}

        try:
            values = self._data_values()
            if not values:
                return {"success": True, "availableItems": []}
            header_map = build_header_map(values[0])
            type_idx = column_index(header_map, ITEM_TYPE_HEADER, self._config.data_sheet_name)
            name_idx = column_index(header_map, ITEM_NAME_HEADER, self._config.data_sheet_name)
        except ConfigurationError as exc:
            return {"success": False, "error": str(exc)}
        except Exception as exc:
            LOGGER.exception("Failed to read item catalog")
            return {"success": False, "error": f"Error getting available items: {exc}"}

        available = [
            {"type": cell_text(row, type_idx), "item": cell_text(row, name_idx)}
            for row in values[1:]
            if cell_text(row, name_idx)
        ]
        if self._cache is not None:
            self._cache.put(AVAILABLE_ITEMS_KEY, available)
        return {"success": True, "availableItems": available}

    def get_combined_items(self) -> Dict[str, Any]:
        result = self.get_available_items()
        if not result["success"]:
            return {"success": False, "error": result["error"], "items": []}
        combined = generate_combined_items(result["availableItems"])
        return {"success": True, "message": f"Retrieved {len(combined)} combined items", "items": combined}

    def get_types(self) -> Dict[str, Any]:
        """Unique category names from the ``Type`` column, sorted case-insensitively."""

        try:
            values = self._data_values()
            if not values:
                return {"success": True, "types": []}
            header_map = build_header_map(values[0])
            type_idx = column_index(header_map, TYPE_HEADER, self._config.data_sheet_name)
        except ConfigurationError as exc:
            return {"success": False, "error": str(exc)}
        except Exception as exc:
            LOGGER.exception("Failed to read category list")
            return {"success": False, "error": f"Error retrieving types: {exc}"}

        types = {cell_text(row, type_idx) for row in values[1:]}
        types.discard("")
        return {"success": True, "types": sorted(types, key=str.lower)}

    def get_item_selection_data(
        self, selected_rooms: Sequence[str], room_types: Mapping[str, Sequence[str]]
    ) -> Dict[str, Any]:
        """Catalog items offered to each room through its assigned categories."""

        if not selected_rooms:
            return {"success": False, "error": "No rooms selected. Please select rooms first."}
        try:
            values = self._data_values()
            header_map = build_header_map(values[0] if values else [])
            name_idx = column_index(header_map, ITEM_NAME_HEADER, self._config.data_sheet_name)
            type_idx = column_index(header_map, ITEM_TYPE_HEADER, self._config.data_sheet_name)
        except ConfigurationError as exc:
            return {"success": False, "error": str(exc)}
        except Exception as exc:
            LOGGER.exception("Failed to build item selection data")
            return {"success": False, "error": f"Error retrieving item selection data: {exc}"}

        catalog: List[Dict[str, str]] = []
        for row in values[1:]:
            name = cell_text(row, name_idx)
            if not name:
                break
            catalog.append({"type": cell_text(row, type_idx), "item": name})

        by_type: Dict[str, List[Dict[str, str]]] = {}
        for entry in catalog:
            by_type.setdefault(entry["type"].upper() or UNCATEGORIZED_TYPE, []).append(entry)

        items: List[Dict[str, Any]] = []
        items_by_room: Dict[str, List[Dict[str, Any]]] = {}
        combined: List[str] = []
        for room in selected_rooms:
            items_by_room[room] = []
            for category in room_types.get(room, []):
                offered = sorted(by_type.get(category.upper(), []), key=lambda entry: entry["item"].lower())
                for entry in offered:
                    selection = {
                        "room": room,
                        "type": entry["type"].upper(),
                        "item": entry["item"].upper(),
                        "quantity": 1,
                        "isSelected": False,
                    }
                    items_by_room[room].append(selection)
                    items.append(selection)
                    label = f"{entry['type']} : {entry['item']}"
                    if label not in combined:
                        combined.append(label)

        return {
            "success": True,
            "items": items,
            "itemsByRoom": items_by_room,
            "selectedRooms": list(selected_rooms),
            "combinedItems": combined,
            "availableItems": catalog,
        }

    # Master Item List --------------------------------------------------------
    def load_items(self, selected_rooms: Optional[Sequence[str]] = None) -> List[Item]:
        sheet = self.master_sheet
        if not self._store.has_sheet(sheet):
            raise ConfigurationError(f"Sheet '{sheet}' not found.")
        values = self._store.read_values(sheet)
        if len(values) < 2:
            return []

        header_map = build_header_map(values[0])
        idx = {header: column_index(header_map, header, sheet) for header in READ_HEADERS}
        wanted = set(selected_rooms or [])
        items: List[Item] = []
        for offset, row in enumerate(values[1:]):
            room = cell_text(row, idx["ROOM"]) or "Unassigned"
            if wanted and room not in wanted:
                continue
            quantity = parse_quantity(cell(row, idx["QUANTITY"], None))
            low = parse_budget(cell(row, idx["LOW BUDGET"], None))
            high = parse_budget(cell(row, idx["HIGH BUDGET"], None))
            items.append(
                Item(
                    room=room,
                    type=cell_text(row, idx["TYPE"]),
                    item=cell_text(row, idx["ITEM"]),
                    quantity=quantity,
                    low_budget=low,
                    high_budget=high,
                    low_budget_total=_multiply(low, quantity),
                    high_budget_total=_multiply(high, quantity),
                    spec_ffe=cell_text(row, idx["SPEC/FFE"]),
                    row_number=offset + 2,
                )
            )
        return items

    def get_items_data(self, selected_rooms: Optional[Sequence[str]] = None) -> Dict[str, Any]:
        try:
            items = self.load_items(selected_rooms)
        except ConfigurationError as exc:
            return {"success": False, "error": str(exc)}
        except Exception as exc:
            LOGGER.exception("Failed to read %s", self.master_sheet)
            return {"success": False, "error": f"An error occurred while fetching item data: {exc}"}

        items_by_room: Dict[str, List[Dict[str, Any]]] = {}
        for item in items:
            items_by_room.setdefault(item.room, []).append(item.to_dict())
        return {
            "success": True,
            "items": [item.to_dict() for item in items],
            "itemsByRoom": items_by_room,
            "selectedRooms": list(selected_rooms) if selected_rooms else list(items_by_room),
        }

    def prepare_items_for_ui(self, selected_rooms: Optional[Sequence[str]] = None) -> Dict[str, Any]:
        try:
            items = self.load_items(selected_rooms)
        except ConfigurationError as exc:
            return {"success": False, "error": str(exc)}
        except Exception as exc:
            LOGGER.exception("Failed to prepare item data")
            return {"success": False, "error": f"Error preparing item data: {exc}"}

        by_room: Dict[str, List[Item]] = {}
        for item in items:
            by_room.setdefault(item.room, []).append(item)
        available = self.get_available_items()
        available_items = available["availableItems"] if available["success"] else []
        return {
            "success": True,
            "selectedRooms": list(selected_rooms) if selected_rooms else list(by_room),
            "items": [item.to_dict() for item in items],
            "itemsByRoom": {room: [item.to_dict() for item in group] for room, group in by_room.items()},
            "availableItems": available_items,
            "combinedItems": generate_combined_items(available_items),
            "roomTotals": {room: calculate_room_totals(group) for room, group in by_room.items()},
        }

    def _backup_master(self) -> Optional[str]:
        name = f"{self.master_sheet}{self._config.backup_infix}{self._now():%Y%m%d_%H%M%S}"
        try:
            if self._store.has_sheet(name):
                self._store.delete_sheet(name)
            self._store.duplicate_sheet(self.master_sheet, name, hidden=True)
        except Exception:
            LOGGER.warning("Could not create backup sheet %s; continuing without it", name, exc_info=True)
            return None
        LOGGER.info("Backed up %s to %s", self.master_sheet, name)
        return name

    def save_items_to_master_list(self, raw_items: Optional[Sequence[Mapping[str, Any]]]) -> Dict[str, Any]:
        sheet = self.master_sheet
        backup_name: Optional[str] = None
        try:
            if not self._store.has_sheet(sheet):
                return {"success": False, "error": f'Sheet "{sheet}" not found.'}

            backup_name = self._backup_master()

            invalid: List[Dict[str, Any]] = []
            to_update: List[Item] = []
            to_append: List[Item] = []
            for index, raw in enumerate(raw_items or []):
                try:
                    item = normalize_item(raw)
                except ValidationError as exc:
                    invalid.append({"index": index, "item": raw, "reason": str(exc)})
                    continue
                (to_update if item.row_number else to_append).append(item)
            if invalid:
                return {
                    "success": False,
                    "error": f"{len(invalid)} invalid items received. Save aborted.",
                    "invalidItems": invalid,
                    "backupSheetName": backup_name,
                }

            values = self._store.read_formulas(sheet)
            header_row = values[0] if values else []
            header_map = build_header_map(header_row)
            missing = [header for header in MASTER_HEADERS if normalize_header(header) not in header_map]
            if missing:
                return {
                    "success": False,
                    "error": f"{sheet} is missing critical header: '{missing[0]}'. Cannot proceed.",
                    "backupSheetName": backup_name,
                }
            columns = {header: header_map[normalize_header(header)] for header in MASTER_HEADERS}
            width = max(len(header_row), max(columns.values()) + 1)

            data_rows = [pad_row(row, width) for row in values[1:]]
            processed: List[Item] = []
            updated_in_place = 0
            for item in to_update:
                offset = item.row_number - 2
                if 0 <= offset < len(data_rows):
                    for header, value in _master_values(item).items():
                        data_rows[offset][columns[header]] = value
                    processed.append(item)
                    updated_in_place += 1
                else:
                    LOGGER.warning(
                        "Row %s is beyond the last data row (%s); appending %s instead",
                        item.row_number,
                        len(data_rows) + 1,
                        item.item,
                    )
                    item.row_number = None
                    to_append.append(item)

            if updated_in_place:
                self._store.write_values(sheet, 2, 1, data_rows)

            if to_append:
                append_start = len(values) + 1
                new_rows: List[Row] = []
                for position, item in enumerate(to_append):
                    row: Row = [""] * width
                    for header, value in _master_values(item).items():
                        row[columns[header]] = value
                    new_rows.append(row)
                    item.row_number = append_start + position
                    processed.append(item)
                self._store.write_values(sheet, append_start, 1, new_rows)

            total_data_rows = len(data_rows) + len(to_append)
            if total_data_rows > 0:
                self._store.set_list_validation(
                    sheet, 2, columns["SPEC/FFE"] + 1, total_data_rows, self._config.spec_ffe_values
                )
        except ConfigurationError as exc:
            return {"success": False, "error": str(exc), "backupSheetName": backup_name}
        except Exception as exc:
            LOGGER.exception("Failed to save items to %s", sheet)
            return {
                "success": False,
                "error": f"Error saving items: {exc}",
                "backupSheetName": backup_name,
            }

        processed.sort(key=lambda item: item.row_number or 0)
        LOGGER.info(
            "Saved %s items to %s (%s updated, %s appended)",
            len(processed),
            sheet,
            updated_in_place,
            len(to_append),
        )
        return {
            "success": True,
            "items": [item.to_dict() for item in processed],
            "backupSheetName": backup_name,
        }
