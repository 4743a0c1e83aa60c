"""Hidden scratch sheets that stage the room -> category -> item workflow.

Every mutation rewrites the whole scratch table from a snapshot read at the
start of the call. Two sessions editing at once resolve as last writer wins.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from .config import ItemsConfig
from .tables import TableStore, cell_text, ensure_sheet

LOGGER = logging.getLogger(__name__)

SELECTED_ROOMS_HEADER = ["Room"]
ROOM_TYPES_HEADER = ["Room", "Type"]
ITEM_DATA_HEADER = ["Timestamp", "ItemDataJSON"]
ROOM_ITEMS_MARKER = "ROOM_ITEMS_JSON"

RoomTypes = Dict[str, List[str]]


class SelectionStore:
    """Scratch state kept in hidden sheets of the project workbook.

    Every mutation rewrites its sheet from a snapshot read at the start of the
    call; concurrent writers are not merged and the last write wins.
    """

    def __init__(
        self,
        store: TableStore,
        config: Optional[ItemsConfig] = None,
        now: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._store = store
        self._config = config or ItemsConfig()
        self._now = now

    def _rewrite(self, name: str, header: Sequence[str], rows: Sequence[Sequence[Any]]) -> None:
        if not ensure_sheet(self._store, name, header, hidden=True):
            self._store.clear(name)
            self._store.write_values(name, 1, 1, [list(header)])
        if rows:
            self._store.write_values(name, 2, 1, rows)

    # Selected rooms ----------------------------------------------------------
    def get_selected_rooms(self) -> List[str]:
        name = self._config.selected_rooms_sheet
        if not self._store.has_sheet(name):
            return []
        return [room for room in (cell_text(row, 0) for row in self._store.read_values(name)[1:]) if room]

    def save_selected_rooms(self, rooms: Sequence[str]) -> Dict[str, Any]:
        cleaned: List[str] = []
        for room in rooms or []:
            text = str(room).strip()
            if text and text not in cleaned:
                cleaned.append(text)
        try:
            self._rewrite(self._config.selected_rooms_sheet, SELECTED_ROOMS_HEADER, [[room] for room in cleaned])
        except Exception as exc:
            LOGGER.exception("Failed to save selected rooms")
            return {"success": False, "error": f"Error saving selected rooms: {exc}"}
        return {"success": True, "selectedRooms": cleaned}

    # Room -> category map ----------------------------------------------------
    def _read_room_types(self) -> RoomTypes:
        name = self._config.room_types_sheet
        room_types: RoomTypes = {}
        if not self._store.has_sheet(name):
            return room_types
        for row in self._store.read_values(name)[1:]:
            room, category = cell_text(row, 0), cell_text(row, 1)
            if room and category and category not in room_types.setdefault(room, []):
                room_types[room].append(category)
        return room_types

    @staticmethod
    def _flatten(room_types: Mapping[str, Sequence[str]]) -> List[List[str]]:
        rows: List[List[str]] = []
        for room, categories in room_types.items():
            for category in categories or []:
                text = str(category).strip()
                if text:
                    rows.append([room, text])
        return rows

    def get_room_type_selections(self) -> Dict[str, Any]:
        try:
            return {"success": True, "roomTypes": self._read_room_types()}
        except Exception as exc:
            LOGGER.exception("Failed to read room-type selections")
            return {"success": False, "error": f"Error retrieving room-type selections: {exc}"}

    def save_room_type_selections(self, room_types: Mapping[str, Sequence[str]]) -> Dict[str, Any]:
        if not isinstance(room_types, Mapping):
            return {"success": False, "error": "Invalid room-type data: Input was null or not an object."}
        rows = self._flatten(room_types)
        try:
            self._rewrite(self._config.room_types_sheet, ROOM_TYPES_HEADER, rows)
        except Exception as exc:
            LOGGER.exception("Failed to save room-type selections")
            return {"success": False, "error": f"Error saving room-type selections: {exc}"}
        if not rows:
            return {"success": True, "message": "No room-type selections to save.", "count": 0}
        return {"success": True, "count": len(rows)}

    def update_room_category_assignment(self, room: str, category: str, selected: bool) -> Dict[str, Any]:
        """Toggle one (room, category) pair and rewrite the whole table."""

        try:
            room_types = self._read_room_types()
            categories = room_types.setdefault(room, [])
            if selected and category not in categories:
                categories.append(category)
            elif not selected and category in categories:
                categories.remove(category)
            if not categories:
                del room_types[room]
            self._rewrite(self._config.room_types_sheet, ROOM_TYPES_HEADER, self._flatten(room_types))
        except Exception as exc:
            LOGGER.exception("Failed to update category %s for room %s", category, room)
            return {"success": False, "error": f"Error updating room category assignment: {exc}"}
        return {"success": True, "roomTypes": room_types}

    def get_room_categories_data(self, available_types: Sequence[str]) -> Dict[str, Any]:
        try:
            return {
                "success": True,
                "selectedRooms": self.get_selected_rooms(),
                "availableTypes": list(available_types),
                "roomTypes": self._read_room_types(),
            }
        except Exception as exc:
            LOGGER.exception("Failed to read room categories")
            return {"success": False, "error": f"Error getting room categories data: {exc}"}

    # Item selection drafts ---------------------------------------------------
    def save_item_selections(self, room_items: Mapping[str, Any]) -> Dict[str, Any]:
        if not isinstance(room_items, Mapping):
            return {"success": False, "error": "Invalid room items data"}
        name = self._config.item_selections_sheet
        try:
            if not ensure_sheet(self._store, name, hidden=True):
                self._store.clear(name)
            payload = json.dumps(room_items, ensure_ascii=False)
            self._store.write_values(name, 1, 1, [[ROOM_ITEMS_MARKER, payload]])
        except Exception as exc:
            LOGGER.exception("Failed to save item selections")
            return {"success": False, "error": f"Error saving item selections: {exc}"}
        return {"success": True}

    def get_saved_item_selections(self) -> Dict[str, Any]:
        name = self._config.item_selections_sheet
        if not self._store.has_sheet(name):
            return {}
        values = self._store.read_values(name)
        raw = cell_text(values[0], 1) if values else ""
        if not raw:
            return {}
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            LOGGER.warning("Saved item selections in %s are not valid JSON; ignoring", name)
            return {}

    def get_selection_state(self) -> Dict[str, Any]:
        try:
            return {
                "success": True,
                "selectedRooms": self.get_selected_rooms(),
                "roomCategories": self._read_room_types(),
                "savedSelections": self.get_saved_item_selections(),
            }
        except Exception as exc:
            LOGGER.exception("Failed to read selection state")
            return {"success": False, "error": f"Error retrieving selected rooms: {exc}"}

    # Temporary item data -----------------------------------------------------
    def _item_data_sheet(self) -> str:
        name = self._config.item_data_sheet
        ensure_sheet(self._store, name, ITEM_DATA_HEADER, hidden=True)
        return name

    def save_temporary_item_data(self, data: Mapping[str, Any]) -> Dict[str, Any]:
        if not data:
            return {"success": True, "message": "No data to save."}
        try:
            name = self._item_data_sheet()
            self._store.clear_range(name, 2, 1, 1, len(ITEM_DATA_HEADER))
            timestamp = self._now().isoformat(timespec="seconds")
            self._store.write_values(name, 2, 1, [[timestamp, json.dumps(data, ensure_ascii=False)]])
        except Exception as exc:
            LOGGER.exception("Failed to save temporary item data")
            return {"success": False, "error": str(exc)}
        return {"success": True}

    def load_temporary_item_data(self) -> Dict[str, Any]:
        try:
            name = self._item_data_sheet()
            values = self._store.read_values(name)
            raw = cell_text(values[1], 1) if len(values) > 1 else ""
            if not raw:
                return {"success": True, "data": None, "message": "No temporary item data found."}
            return {"success": True, "data": json.loads(raw)}
        except Exception as exc:
            LOGGER.exception("Failed to load temporary item data")
            return {"success": False, "data": None, "error": str(exc)}

    def clear_temporary_item_data(self) -> Dict[str, Any]:
        try:
            name = self._item_data_sheet()
            self._store.clear_range(name, 2, 1, 1, len(ITEM_DATA_HEADER))
        except Exception as exc:
            LOGGER.exception("Failed to clear temporary item data")
            return {"success": False, "error": str(exc)}
        return {"success": True}
