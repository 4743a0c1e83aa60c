from __future__ import annotations

from datetime import datetime

import pytest

from project_hub.selections import ROOM_ITEMS_MARKER, SelectionStore


@pytest.fixture
def store(fake_store_factory):
    return fake_store_factory()


@pytest.fixture
def selections(store):
    return SelectionStore(store, now=lambda: datetime(2024, 5, 1, 12, 0, 0))


def test_selected_rooms_roundtrip_in_hidden_sheet(store, selections):
    result = selections.save_selected_rooms(["KITCHEN", " DEN ", "KITCHEN", ""])

    assert result == {"success": True, "selectedRooms": ["KITCHEN", "DEN"]}
    assert selections.get_selected_rooms() == ["KITCHEN", "DEN"]
    assert "_TempSelectedRooms" in store.hidden
    assert store.rows("_TempSelectedRooms")[0] == ["Room"]


def test_saving_fewer_rooms_clears_old_rows(selections):
    selections.save_selected_rooms(["KITCHEN", "DEN", "BATH"])
    selections.save_selected_rooms(["BATH"])

    assert selections.get_selected_rooms() == ["BATH"]


def test_no_rooms_before_first_save(selections):
    assert selections.get_selected_rooms() == []
    assert selections.get_room_type_selections() == {"success": True, "roomTypes": {}}


def test_room_category_toggle_rewrites_table(store, selections):
    selections.save_room_type_selections({"KITCHEN": ["Lighting", "Seating"], "DEN": ["Rugs"]})

    selections.update_room_category_assignment("KITCHEN", "Seating", False)
    result = selections.update_room_category_assignment("BATH", "Tile", True)

    assert result["roomTypes"] == {"KITCHEN": ["Lighting"], "DEN": ["Rugs"], "BATH": ["Tile"]}
    assert store.rows("_TempRoomTypes") == [
        ["Room", "Type"],
        ["KITCHEN", "Lighting"],
        ["DEN", "Rugs"],
        ["BATH", "Tile"],
    ]


def test_removing_last_category_drops_room(selections):
    selections.update_room_category_assignment("DEN", "Rugs", True)
    result = selections.update_room_category_assignment("DEN", "Rugs", False)

    assert result["roomTypes"] == {}
    assert selections.get_room_type_selections()["roomTypes"] == {}


def test_save_room_types_rejects_non_mapping(selections):
    assert selections.save_room_type_selections(None)["success"] is False
    assert selections.save_room_type_selections({})["count"] == 0


def test_room_categories_data(selections):
    selections.save_selected_rooms(["KITCHEN"])
    selections.update_room_category_assignment("KITCHEN", "Lighting", True)

    result = selections.get_room_categories_data(["Lighting", "Seating"])

    assert result == {
        "success": True,
        "selectedRooms": ["KITCHEN"],
        "availableTypes": ["Lighting", "Seating"],
        "roomTypes": {"KITCHEN": ["Lighting"]},
    }


def test_item_selections_stored_as_json_in_b1(store, selections):
    picks = {"KITCHEN": [{"item": "PENDANT", "quantity": 2}]}

    assert selections.save_item_selections(picks) == {"success": True}

    assert store.value("_TempItemSelections", 1, 1) == ROOM_ITEMS_MARKER
    assert selections.get_saved_item_selections() == picks
    assert selections.get_selection_state()["savedSelections"] == picks


def test_corrupt_item_selections_are_ignored(store, selections):
    store.add_sheet("_TempItemSelections")
    store.write_values("_TempItemSelections", 1, 1, [[ROOM_ITEMS_MARKER, "{not json"]])

    assert selections.get_saved_item_selections() == {}


def test_temporary_item_data_lifecycle(store, selections):
    assert selections.save_temporary_item_data({}) == {"success": True, "message": "No data to save."}

    selections.save_temporary_item_data({"items": [{"room": "DEN"}]})

    assert store.value("_TempItemData", 2, 1) == "2024-05-01T12:00:00"
    assert selections.load_temporary_item_data() == {"success": True, "data": {"items": [{"room": "DEN"}]}}

    assert selections.clear_temporary_item_data() == {"success": True}
    loaded = selections.load_temporary_item_data()
    assert loaded["data"] is None
    assert store.rows("_TempItemData") == [["Timestamp", "ItemDataJSON"]]
