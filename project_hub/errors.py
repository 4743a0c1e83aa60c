from __future__ import annotations


class ProjectHubError(Exception):
    """Base class for errors raised by project_hub components."""


class ConfigurationError(ProjectHubError):
    """A required setting, sheet or column is not available."""


class MissingColumnError(ConfigurationError, ValueError):
    """A required header was not found in row 1 of a sheet."""

    def __init__(self, column: str, sheet_name: str | None = None, available: list[str] | None = None):
        self.column = column
        self.sheet_name = sheet_name
        self.available = available or []
        location = f" in sheet '{sheet_name}'" if sheet_name else ""
        msg = f"Column '{column}' not found{location}"
        if self.available:
            msg += f". Available columns: {', '.join(self.available)}"
        super().__init__(msg)


class ValidationError(ProjectHubError):
    """Client supplied data failed validation."""
