from __future__ import annotations

import pytest

from project_hub.errors import ConfigurationError, MissingColumnError
from project_hub.tables import (
    ColumnSpec,
    build_header_map,
    column_index,
    column_letter,
    ensure_sheet,
    resolve_columns,
    to_number,
)


def test_header_map_is_case_insensitive_and_first_wins():
    header_map = build_header_map([" Room ", "ITEM", "room", "", None])

    assert header_map == {"room": 0, "item": 1}


def test_missing_column_lists_available_headers():
    with pytest.raises(MissingColumnError) as excinfo:
        column_index(build_header_map(["ROOM", "ITEM"]), "QUANTITY", "Master Item List")

    assert isinstance(excinfo.value, ConfigurationError)
    assert isinstance(excinfo.value, ValueError)
    assert "Master Item List" in str(excinfo.value)
    assert excinfo.value.available == ["item", "room"]


@pytest.mark.parametrize("index, letters", [(0, "A"), (6, "G"), (25, "Z"), (26, "AA"), (51, "AZ"), (702, "AAA")])
def test_column_letter(index, letters):
    assert column_letter(index) == letters


@pytest.mark.parametrize(
    "value, expected",
    [(12, 12.0), ("1,250.5", 1250.5), (" 3 ", 3.0), ("", None), ("abc", None), (None, None), (True, None), ("nan", None)],
)
def test_to_number(value, expected):
    assert to_number(value) == expected


def test_resolve_columns_required_and_optional():
    specs = [ColumnSpec("name", "Project_name", required=True), ColumnSpec("client", "Client_name")]

    assert resolve_columns(["Other", "project_name"], specs) == {"name": 1, "client": None}
    with pytest.raises(MissingColumnError):
        resolve_columns(["Client_name"], specs, "Projects")


def test_ensure_sheet_creates_bold_header_once(fake_store_factory):
    store = fake_store_factory()

    assert ensure_sheet(store, "Budget", ["TYPE", "TOTAL LOW"], hidden=True) is True
    assert ensure_sheet(store, "Budget", ["TYPE", "TOTAL LOW"]) is False
    assert store.rows("Budget") == [["TYPE", "TOTAL LOW"]]
    assert store.bold["Budget"] == {(1, 1), (1, 2)}
    assert "Budget" in store.hidden
