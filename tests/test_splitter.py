from __future__ import annotations

from project_hub.splitter import BOLD_FORMAT, PRICING_HEADERS, split_items_by_flag

MASTER = "Master Item List"
HEADER_FORMAT = {"textFormat": {"bold": True, "fontSize": 11}}
CURRENCY = {"numberFormat": {"type": "CURRENCY", "pattern": "$#,##0.00"}}


def _with_formulas(store):
    store.set_formula(MASTER, 2, 7, "=E2*D2", 200)
    store.set_formula(MASTER, 3, 7, "=E3*D3", 600)
    store.set_format(MASTER, 1, 1, HEADER_FORMAT)
    store.set_format(MASTER, 3, 5, CURRENCY)
    return store


def test_ffe_sheet_keeps_master_columns_and_rebuilds_formulas(master_store):
    store = _with_formulas(master_store)

    result = split_items_by_flag(store)

    assert result["success"] is True
    assert result["targets"]["FFE"]["rows"] == 2
    assert store.rows("FFE") == [
        ["ROOM", "TYPE", "ITEM", "QUANTITY", "LOW BUDGET", "HIGH BUDGET", "LOW BUDGET TOTAL", "HIGH BUDGET TOTAL"],
        ["KITCHEN", "SEATING", "BAR STOOL", 4, 150, 300, "=E2*D2", 1200],
        ["LIVING ROOM", "SEATING", "SOFA", 1, 2000, 4000, 2000, 4000],
    ]


def test_spec_sheet_uses_declared_mapping(master_store):
    store = _with_formulas(master_store)

    split_items_by_flag(store)

    assert store.rows("SPEC") == [
        ["CATEGORIES", "TYPE", "ITEM", "ACTUAL PRICE", "QUANTITY", "LOW", "TOTAL LOW", "HIGH", "TOTAL HIGH", "NOTES"],
        ["", "LIGHTING", "PENDANT", "", 2, 100, "=F2*E2", 200, 400, ""],
    ]


def test_formats_copied_from_cached_master_grid(master_store):
    store = _with_formulas(master_store)

    split_items_by_flag(store)

    assert store.formats["FFE"][(1, 1)] == HEADER_FORMAT
    assert store.formats["FFE"][(1, 2)] == BOLD_FORMAT
    assert store.formats["FFE"][(2, 5)] == CURRENCY
    assert (3, 5) not in store.formats["FFE"]
    assert store.formats["SPEC"][(1, 1)] == HEADER_FORMAT
    assert [call for call in store.calls if call[0] == "read_formats"] == [("read_formats", MASTER)]


def test_rebuild_replaces_previous_contents(master_store):
    master_store.add_sheet("FFE")
    master_store.write_values("FFE", 1, 1, [["OLD"], ["a"], ["b"], ["c"], ["d"], ["e"]])

    split_items_by_flag(master_store)

    rows = master_store.rows("FFE")
    assert len(rows) == 3
    assert rows[0][0] == "ROOM"


def test_flag_without_rows_leaves_header_only(fake_store_factory):
    store = fake_store_factory(
        {
            MASTER: [
                ["ROOM", "TYPE", "ITEM", "QUANTITY", "LOW BUDGET", "HIGH BUDGET", "LOW BUDGET TOTAL", "HIGH BUDGET TOTAL", "SPEC/FFE"],
                ["DEN", "RUGS", "RUG", 1, 10, 20, 10, 20, "SPEC"],
            ]
        }
    )

    result = split_items_by_flag(store)

    assert result["success"] is True
    assert result["targets"]["FFE"]["rows"] == 0
    assert "No data rows" in result["targets"]["FFE"]["message"]
    assert len(store.rows("FFE")) == 1
    assert result["pricing"]["success"] is False
    assert not store.has_sheet("Pricing")


def test_pricing_sheet_created_from_ffe_rows(master_store):
    result = split_items_by_flag(_with_formulas(master_store))

    assert result["pricing"] == {"success": True, "rows": 2}
    assert master_store.rows("Pricing") == [
        list(PRICING_HEADERS),
        ["KITCHEN", "SEATING", "BAR STOOL", 4, 600, 1200],
        ["LIVING ROOM", "SEATING", "SOFA", 1, 2000, 4000],
    ]


def test_pricing_fills_existing_columns_by_header(master_store):
    master_store.add_sheet("Pricing")
    master_store.write_values("Pricing", 1, 1, [["Budget High", "Vendor", "Room", "Item Type", "Item Name", "Quantity", "Budget Low"]])

    result = split_items_by_flag(master_store)

    assert result["pricing"]["success"] is True
    assert master_store.rows("Pricing")[1] == [1200, "", "KITCHEN", "SEATING", "BAR STOOL", 4, 600]


def test_pricing_refuses_to_overwrite(master_store):
    master_store.add_sheet("Pricing")
    master_store.write_values("Pricing", 1, 1, [list(PRICING_HEADERS), ["DEN", "", "", "", "", ""]])

    result = split_items_by_flag(master_store)

    assert result["success"] is True
    assert result["pricing"]["success"] is False
    assert "already contains data" in result["pricing"]["error"]
    assert master_store.rows("Pricing")[1][0] == "DEN"
    assert len(master_store.rows("Pricing")) == 2


def test_missing_flag_column(fake_store_factory):
    store = fake_store_factory({MASTER: [["ROOM", "ITEM"], ["DEN", "RUG"]]})

    result = split_items_by_flag(store)

    assert result["success"] is False
    assert "SPEC/FFE" in result["error"]


def test_missing_spec_source_column_writes_nothing(fake_store_factory):
    store = fake_store_factory(
        {
            MASTER: [
                ["ROOM", "TYPE", "ITEM", "QUANTITY", "LOW BUDGET", "LOW BUDGET TOTAL", "HIGH BUDGET TOTAL", "SPEC/FFE"],
                ["DEN", "RUGS", "RUG", 1, 10, 10, 20, "FFE"],
            ]
        }
    )

    result = split_items_by_flag(store)

    assert result["success"] is False
    assert "HIGH BUDGET" in result["error"]
    assert not store.has_sheet("FFE")
    assert not store.has_sheet("SPEC")
