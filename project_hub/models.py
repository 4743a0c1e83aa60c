from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

DEFAULT_PROJECT_COLOR = "#26717D"
DEFAULT_PROJECT_STATUS = "Not Started"


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


def camel_dict(data: Dict[str, Any]) -> Dict[str, Any]:
    """Rename snake_case keys to the camelCase keys the dashboard reads."""

    return {_camel(key): value for key, value in data.items()}


@dataclass(slots=True)
class Project:
    """One row of the Projects directory sheet."""

    id: int  # data row ordinal; physical row is id + 1
    name: str
    client: str = ""
    client_email: str = ""
    client_address: str = ""
    status: str = DEFAULT_PROJECT_STATUS
    asana_project_id: str = ""
    sheet_id: str = ""
    folder_id: str = ""
    project_color: str = DEFAULT_PROJECT_COLOR
    architect: str = ""
    architect_email: str = ""
    contractor: str = ""
    contractor_email: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return camel_dict(asdict(self))


@dataclass(slots=True)
class Task:
    """Open task grouped under a section for the project view."""

    id: str
    name: str
    section_name: str
    completed: bool
    due_date: Optional[str]
    notes: Optional[str]
    assignee: Optional[str]
    url: str

    def to_dict(self) -> Dict[str, Any]:
        return camel_dict(asdict(self))


@dataclass(slots=True)
class GanttTask:
    """Task with both a start and due date, flattened across projects."""

    id: str
    name: str
    project: str
    project_id: str
    project_color: str
    section: str
    start_on: str
    due_on: str
    completed: bool
    url: str

    def to_dict(self) -> Dict[str, Any]:
        # Timeline rendering reads the remote API's start_on/due_on names.
        return {
            "id": self.id,
            "name": self.name,
            "project": self.project,
            "projectId": self.project_id,
            "projectColor": self.project_color,
            "section": self.section,
            "start_on": self.start_on,
            "due_on": self.due_on,
            "completed": self.completed,
            "url": self.url,
        }


@dataclass(slots=True)
class Item:
    """Normalized line item of the Master Item List."""

    room: str
    type: str
    item: str
    quantity: int
    low_budget: Optional[float]
    high_budget: Optional[float]
    low_budget_total: Optional[float]
    high_budget_total: Optional[float]
    spec_ffe: str
    row_number: Optional[int] = None
    original_temporary_id: Optional[str] = None

    @property
    def id(self) -> Optional[str]:
        return f"row_{self.row_number}" if self.row_number else self.original_temporary_id

    def to_dict(self) -> Dict[str, Any]:
        data = camel_dict(asdict(self))
        data["id"] = self.id
        return data


@dataclass(slots=True)
class RoomBudget:
    name: str
    low_budget: float = 0.0
    high_budget: float = 0.0
    items: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return camel_dict(asdict(self))


@dataclass(slots=True)
class VendorItem:
    row_number: int
    property: str
    room: str
    description: str
    type: str
    quantity: Any
    manufacturer: str
    part_number: str
    dimensions: str
    requested: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return camel_dict(asdict(self))


@dataclass(slots=True)
class Vendor:
    name: str
    items: List[VendorItem] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "items": [item.to_dict() for item in self.items]}


@dataclass(slots=True)
class ApiResponse:
    """Uniform envelope returned by every remote task API call."""

    success: bool
    data: Any = None
    error: Optional[str] = None
    details: Optional[str] = None
    response_code: Optional[int] = None
