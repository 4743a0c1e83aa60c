from __future__ import annotations

import pytest

from project_hub.config import load_config


def _write(tmp_path, text):
    path = tmp_path / "config.yaml"
    path.write_text(text, encoding="utf-8")
    return path


def test_minimal_config_gets_defaults(tmp_path):
    path = _write(
        tmp_path,
        "sheets:\n  credentials_file: creds.json\n  project_spreadsheet_id: ' abc '\nasana:\n  base_url: https://example.test/api\n",
    )

    config = load_config(path)

    assert config.sheets.project_spreadsheet_id == "abc"
    assert config.sheets.credentials_file.is_absolute()
    assert config.asana.base_url == "https://example.test/api/"
    assert config.items.master_sheet_name == "Master Item List"
    assert config.items.spec_ffe_values == ["SPEC", "FFE", ""]
    assert config.email.max_items_per_email == 50
    assert config.email.columns.part_number == "SKU"
    assert config.cache.ttl_seconds == 600


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "nope.yaml")


@pytest.mark.parametrize(
    "text",
    [
        "",
        "sheets: [unclosed",
        "sheets:\n  credentials_file: c.json\n",
        "sheets:\n  credentials_file: c.json\n  project_spreadsheet_id: '  '\n",
        "sheets:\n  credentials_file: c.json\n  project_spreadsheet_id: x\nitems:\n  spec_sheet_name: SAME\n  ffe_sheet_name: SAME\n",
        "sheets:\n  credentials_file: c.json\n  project_spreadsheet_id: x\nemail:\n  max_items_per_email: 0\n",
    ],
)
def test_invalid_configs_raise_value_error(tmp_path, text):
    with pytest.raises(ValueError):
        load_config(_write(tmp_path, text))
