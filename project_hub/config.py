from __future__ import annotations

import os
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator


class SheetsConfig(BaseModel):
    credentials_file: Path = Field(
        ..., description="Path to the Google service account JSON credentials"
    )
    project_spreadsheet_id: str = Field(
        ..., description="ID of the project workbook holding the Master Item List"
    )
    directory_spreadsheet_id: Optional[str] = Field(
        None,
        description="Optional ID of the workbook with the Projects directory sheet",
    )
    data_spreadsheet_id: Optional[str] = Field(
        None,
        description="Optional ID of the catalog workbook with the Data sheet",
    )
    projects_sheet_name: str = Field("Projects", description="Tab name of the project directory")

    @field_validator("credentials_file")
    @classmethod
    def _expand_credentials_path(cls, value: Path) -> Path:
        return value.expanduser().resolve()

    @field_validator("project_spreadsheet_id")
    @classmethod
    def _require_spreadsheet_id(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("project_spreadsheet_id must not be empty")
        return value.strip()


class AsanaConfig(BaseModel):
    base_url: str = Field(
        "https://app.asana.com/api/1.0/",
        description="Base URL of the task tracking REST API",
    )
    token: str | None = Field(
        None,
        description="Explicit API token; if omitted the token is read from token_env",
    )
    token_env: str = Field(
        "ASANA_TOKEN",
        description="Environment variable with the API token",
    )
    request_timeout: int | None = Field(
        None,
        gt=0,
        description="Optional timeout in seconds for API requests",
    )

    @field_validator("base_url")
    @classmethod
    def _ensure_trailing_slash(cls, value: str) -> str:
        return value if value.endswith("/") else value + "/"

    def resolve_token(self) -> str | None:
        if self.token:
            return self.token
        return os.getenv(self.token_env) or None


class ItemsConfig(BaseModel):
    master_sheet_name: str = Field("Master Item List", description="Tab with all budget line items")
    fallback_sheet_name: str = Field(
        "Items", description="Tab read by the budget view when the master list is absent"
    )
    data_sheet_name: str = Field("Data", description="Catalog tab with rooms and item types")
    budget_sheet_name: str = Field("Budget", description="Tab receiving SPEC totals per type")
    pricing_sheet_name: str = Field("Pricing", description="Tab receiving FFE rows for pricing")
    spec_sheet_name: str = Field("SPEC", description="Tab rebuilt with SPEC rows by the splitter")
    ffe_sheet_name: str = Field("FFE", description="Tab rebuilt with FFE rows by the splitter")
    selected_rooms_sheet: str = Field("_TempSelectedRooms")
    room_types_sheet: str = Field("_TempRoomTypes")
    item_selections_sheet: str = Field("_TempItemSelections")
    item_data_sheet: str = Field("_TempItemData")
    spec_ffe_values: List[str] = Field(
        default_factory=lambda: ["SPEC", "FFE", ""],
        description="Values accepted by the SPEC/FFE dropdown",
    )
    backup_infix: str = Field("_Backup_", description="Text between master name and timestamp")


class EmailColumnsConfig(BaseModel):
    vendor: str = "Vendor"
    property: str = "Property"
    room: str = "Room"
    description: str = "Description"
    type: str = "Type"
    quantity: str = "Quantity"
    manufacturer: str = "Manufacturer"
    part_number: str = "SKU"
    dimensions: str = "Dimensions"
    status: str = Field("Status", description="Column stamped after a send or draft")
    request: str = Field("Request", description="Checkbox column cleared after a send or draft")


class EmailConfig(BaseModel):
    company_name: str = Field("Norton Interiors", description="Signature and subject company name")
    sender: str | None = Field(
        None,
        description="Mailbox the service account impersonates when sending",
    )
    subject_prefix: str = Field("Price Request")
    vendor_sheet_name: str = Field("Sourcing", description="Tab with vendor line items")
    max_items_per_email: int = Field(50, gt=0)
    columns: EmailColumnsConfig = Field(default_factory=EmailColumnsConfig)


class CacheConfig(BaseModel):
    path: Path | None = Field(
        None,
        description="Optional path to SQLite cache file for catalog lookups",
    )
    ttl_seconds: int = Field(600, gt=0, description="Lifetime of cached catalog entries")

    @field_validator("path")
    @classmethod
    def _expand_cache_path(cls, value: Path | None) -> Path | None:
        if value is None:
            return None
        return value.expanduser().resolve()


class AppConfig(BaseModel):
    sheets: SheetsConfig
    asana: AsanaConfig = Field(default_factory=AsanaConfig)
    items: ItemsConfig = Field(default_factory=ItemsConfig)
    email: EmailConfig = Field(default_factory=EmailConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    settings_path: Path | None = Field(
        None,
        description="Optional path to SQLite file used as the key-value settings store",
    )

    @field_validator("settings_path")
    @classmethod
    def _expand_settings_path(cls, value: Path | None) -> Path | None:
        if value is None:
            return None
        return value.expanduser().resolve()

    @model_validator(mode="after")
    def _validate_sheet_names(self) -> "AppConfig":
        if self.items.spec_sheet_name == self.items.ffe_sheet_name:
            raise ValueError("spec_sheet_name and ffe_sheet_name must differ")
        if self.items.master_sheet_name in {self.items.spec_sheet_name, self.items.ffe_sheet_name}:
            raise ValueError("Split target sheets must differ from the master sheet")
        return self


def load_config(path: str | Path) -> AppConfig:
    """Load configuration from a YAML file and return a validated object."""

    config_path = Path(path).expanduser().resolve()
    if not config_path.exists():
        msg = f"Configuration file not found: {config_path}"
        raise FileNotFoundError(msg)

    with config_path.open("r", encoding="utf-8") as fh:
        try:
            data = yaml.safe_load(fh)
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid configuration: {exc}") from exc

    if data is None:
        msg = f"Configuration file is empty: {config_path}"
        raise ValueError(msg)

    try:
        return AppConfig.model_validate(data)
    except ValidationError as exc:
        raise ValueError(f"Invalid configuration: {exc}") from exc
