from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Callable, Dict, Sequence

from dotenv import load_dotenv

from .asana_client import AsanaClient
from .budget import get_budget_data, get_project_summary, update_budget_from_spec_items
from .cache import CacheStore
from .config import AppConfig, load_config
from .drive import DriveClient, get_dashboard_files
from .email_composer import GmailMailer, get_email_vendors, send_vendor_email
from .errors import ConfigurationError
from .google_sheets import GoogleSheetsClient
from .items import ItemManager
from .projects import ProjectDirectory, open_project_sheet, project_from_input
from .selections import SelectionStore
from .settings import (
    SettingsStore,
    get_settings,
    initialize_project,
    resolve_settings,
    save_settings,
)
from .splitter import split_items_by_flag
from .tasks import create_project_task, get_tasks_for_gantt, get_tasks_for_project, validate_credentials

LOGGER = logging.getLogger("project_hub")

Result = Dict[str, Any]


def _load_env_files(config_path: Path) -> None:
    """Load environment variables from .env files."""

    # Load default .env in current working directory if present
    load_dotenv(override=False)

    # Load .env placed next to the config file if it exists
    config_env = config_path.parent / ".env"
    if config_env.exists():
        load_dotenv(dotenv_path=config_env, override=False)


def _read_json(path: str) -> Any:
    """Read a JSON document from ``path``; ``-`` reads stdin."""

    if path == "-":
        return json.load(sys.stdin)
    with Path(path).expanduser().open("r", encoding="utf-8") as fh:
        return json.load(fh)


class Context:
    """Lazily built clients shared by one CLI invocation."""

    def __init__(self, config: AppConfig, config_path: Path) -> None:
        self.config = config
        settings_path = config.settings_path or (config_path.parent / "project_hub_settings.sqlite")
        cache_path = config.cache.path or (config_path.parent / "project_hub_cache.sqlite")
        self.settings_store = SettingsStore(settings_path)
        self.settings = resolve_settings(config, self.settings_store)
        self._cache_path = cache_path
        self._cache: CacheStore | None = None
        self._project_store: GoogleSheetsClient | None = None

    def close(self) -> None:
        self.settings_store.close()
        if self._cache is not None:
            self._cache.close()

    def sheets_client(self, spreadsheet_id: str) -> GoogleSheetsClient:
        return GoogleSheetsClient(self.config.sheets.credentials_file, spreadsheet_id)

    @property
    def project_store(self) -> GoogleSheetsClient:
        if self._project_store is None:
            self._project_store = self.sheets_client(self.config.sheets.project_spreadsheet_id)
        return self._project_store

    @property
    def cache(self) -> CacheStore:
        if self._cache is None:
            self._cache = CacheStore(self._cache_path, ttl_seconds=self.config.cache.ttl_seconds)
        return self._cache

    def directory(self) -> ProjectDirectory:
        sheet_id = self.settings.sheet_id
        store = self.sheets_client(sheet_id) if sheet_id else None
        return ProjectDirectory(store, self.config.sheets.projects_sheet_name)

    def items(self) -> ItemManager:
        data_id = self.settings.data_sheet_id
        data_store = self.sheets_client(data_id) if data_id else None
        return ItemManager(self.project_store, data_store, self.cache, self.config.items)

    def selections(self) -> SelectionStore:
        return SelectionStore(self.project_store, self.config.items)

    def asana(self) -> AsanaClient:
        return AsanaClient(self.config.asana.base_url, self.config.asana.request_timeout)

    def project(self, project_id: int) -> Dict[str, Any]:
        result = self.directory().get_project_by_id(project_id)
        if not result["success"]:
            raise ConfigurationError(result["error"])
        return result["project"]


# Settings --------------------------------------------------------------------
def _settings_show(ctx: Context, args: argparse.Namespace) -> Result:
    return {"success": True, **get_settings(ctx.settings_store)}


def _settings_set(ctx: Context, args: argparse.Namespace) -> Result:
    current = get_settings(ctx.settings_store)
    return save_settings(
        ctx.settings_store,
        args.token if args.token is not None else current["asanaToken"],
        args.sheet_id if args.sheet_id is not None else current["sheetId"],
        args.color if args.color is not None else current["projectColor"],
    )


def _settings_init(ctx: Context, args: argparse.Namespace) -> Result:
    return initialize_project(
        ctx.settings_store, ctx.config.sheets.project_spreadsheet_id, args.name, args.color
    )


# Projects --------------------------------------------------------------------
def _projects_list(ctx: Context, args: argparse.Namespace) -> Result:
    return ctx.directory().get_projects()


def _projects_show(ctx: Context, args: argparse.Namespace) -> Result:
    return ctx.directory().get_project_by_id(args.project_id)


def _projects_add(ctx: Context, args: argparse.Namespace) -> Result:
    return ctx.directory().add_project(_read_json(args.payload))


def _projects_update(ctx: Context, args: argparse.Namespace) -> Result:
    return ctx.directory().update_project(args.project_id, _read_json(args.payload))


def _open_sheet(ctx: Context, args: argparse.Namespace) -> Result:
    project = ctx.project(args.project_id)
    return open_project_sheet(ctx.sheets_client, project.get("sheetId"))


def _files(ctx: Context, args: argparse.Namespace) -> Result:
    project = ctx.project(args.project_id)
    browser = DriveClient(ctx.config.sheets.credentials_file)
    return get_dashboard_files(browser, project.get("folderId"), project.get("name"))


# Tasks -----------------------------------------------------------------------
def _tasks(ctx: Context, args: argparse.Namespace) -> Result:
    project = ctx.project(args.project_id)
    return get_tasks_for_project(ctx.asana(), ctx.settings.api_token, project.get("asanaProjectId"))


def _gantt(ctx: Context, args: argparse.Namespace) -> Result:
    listing = ctx.directory().get_projects()
    if not listing["success"]:
        return listing
    projects = [project_from_input(data, data["id"]) for data in listing["projects"]]
    return get_tasks_for_gantt(ctx.asana(), ctx.settings.api_token, projects)


def _create_task(ctx: Context, args: argparse.Namespace) -> Result:
    project = ctx.project(args.project_id)
    task = {
        "name": args.name,
        "notes": args.notes,
        "dueDate": args.due_date,
        "section": args.section,
        "assignee": args.assignee,
    }
    return create_project_task(ctx.asana(), ctx.settings.api_token, project.get("asanaProjectId"), task)


def _validate_asana(ctx: Context, args: argparse.Namespace) -> Result:
    token = args.token or ctx.settings.api_token
    return validate_credentials(ctx.asana(), token, args.asana_project_id)


# Budget ----------------------------------------------------------------------
def _budget(ctx: Context, args: argparse.Namespace) -> Result:
    items = ctx.config.items
    return get_budget_data(ctx.project_store, items.master_sheet_name, items.fallback_sheet_name)


def _project_summary(ctx: Context, args: argparse.Namespace) -> Result:
    rooms = ctx.selections().get_selected_rooms()
    return get_project_summary(ctx.project_store, rooms, ctx.config.items.master_sheet_name)


def _update_budget(ctx: Context, args: argparse.Namespace) -> Result:
    items = ctx.config.items
    return update_budget_from_spec_items(ctx.project_store, items.master_sheet_name, items.budget_sheet_name)


def _split(ctx: Context, args: argparse.Namespace) -> Result:
    return split_items_by_flag(ctx.project_store, ctx.config.items)


# Rooms and categories --------------------------------------------------------
def _rooms_list(ctx: Context, args: argparse.Namespace) -> Result:
    return ctx.items().get_master_room_data()


def _rooms_add(ctx: Context, args: argparse.Namespace) -> Result:
    return ctx.items().add_room(args.name)


def _rooms_select(ctx: Context, args: argparse.Namespace) -> Result:
    return ctx.selections().save_selected_rooms(args.rooms)


def _rooms_selected(ctx: Context, args: argparse.Namespace) -> Result:
    return ctx.selections().get_selection_state()


def _categories_list(ctx: Context, args: argparse.Namespace) -> Result:
    types = ctx.items().get_types()
    if not types["success"]:
        return types
    return ctx.selections().get_room_categories_data(types["types"])


def _categories_assign(ctx: Context, args: argparse.Namespace) -> Result:
    return ctx.selections().update_room_category_assignment(args.room, args.category, True)


def _categories_unassign(ctx: Context, args: argparse.Namespace) -> Result:
    return ctx.selections().update_room_category_assignment(args.room, args.category, False)


# Items -----------------------------------------------------------------------
def _items_list(ctx: Context, args: argparse.Namespace) -> Result:
    rooms = args.rooms or ctx.selections().get_selected_rooms()
    return ctx.items().prepare_items_for_ui(rooms or None)


def _items_save(ctx: Context, args: argparse.Namespace) -> Result:
    result = ctx.items().save_items_to_master_list(_read_json(args.payload))
    if result["success"]:
        ctx.selections().clear_temporary_item_data()
    return result


def _items_selection(ctx: Context, args: argparse.Namespace) -> Result:
    selections = ctx.selections()
    room_types = selections.get_room_type_selections()
    if not room_types["success"]:
        return room_types
    return ctx.items().get_item_selection_data(selections.get_selected_rooms(), room_types["roomTypes"])


def _items_pick(ctx: Context, args: argparse.Namespace) -> Result:
    return ctx.selections().save_item_selections(_read_json(args.payload))


def _items_draft(ctx: Context, args: argparse.Namespace) -> Result:
    selections = ctx.selections()
    if args.draft_action == "save":
        return selections.save_temporary_item_data(_read_json(args.payload))
    if args.draft_action == "clear":
        return selections.clear_temporary_item_data()
    return selections.load_temporary_item_data()


def _catalog(ctx: Context, args: argparse.Namespace) -> Result:
    if args.combined:
        return ctx.items().get_combined_items()
    return ctx.items().get_available_items()


# Vendor email ----------------------------------------------------------------
def _vendors(ctx: Context, args: argparse.Namespace) -> Result:
    return get_email_vendors(ctx.project_store, ctx.config.email)


def _email(ctx: Context, args: argparse.Namespace) -> Result:
    mailer = GmailMailer(ctx.config.sheets.credentials_file, ctx.config.email.sender or "")
    return send_vendor_email(
        ctx.project_store,
        mailer,
        args.vendor,
        args.to,
        custom_message=args.message or "",
        mode=args.mode,
        requested_only=args.requested_only,
        config=ctx.config.email,
    )


def _add_command(
    subparsers: Any, name: str, handler: Callable[[Context, argparse.Namespace], Result], help_text: str
) -> argparse.ArgumentParser:
    parser = subparsers.add_parser(name, help=help_text)
    parser.set_defaults(handler=handler)
    return parser


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Manage interior design projects stored in Google Sheets")
    parser.add_argument("--config", required=True, help="Path to the YAML configuration file")
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    settings = commands.add_parser("settings", help="Show or change stored settings")
    settings_cmds = settings.add_subparsers(dest="action", required=True)
    _add_command(settings_cmds, "show", _settings_show, "Print the stored settings")
    settings_set = _add_command(settings_cmds, "set", _settings_set, "Store the API token, sheet ID or color")
    settings_set.add_argument("--token", default=None)
    settings_set.add_argument("--sheet-id", default=None)
    settings_set.add_argument("--color", default=None)
    settings_init = _add_command(settings_cmds, "init", _settings_init, "Initialize this workbook as a project")
    settings_init.add_argument("--name", required=True)
    settings_init.add_argument("--color", default=None)

    projects = commands.add_parser("projects", help="Project directory")
    project_cmds = projects.add_subparsers(dest="action", required=True)
    _add_command(project_cmds, "list", _projects_list, "List all projects")
    show = _add_command(project_cmds, "show", _projects_show, "Show one project")
    show.add_argument("project_id", type=int)
    add = _add_command(project_cmds, "add", _projects_add, "Add a project from a JSON file")
    add.add_argument("payload", help="JSON file with the project fields, or - for stdin")
    update = _add_command(project_cmds, "update", _projects_update, "Update a project from a JSON file")
    update.add_argument("project_id", type=int)
    update.add_argument("payload", help="JSON file with the fields to change, or - for stdin")

    tasks = _add_command(commands, "tasks", _tasks, "Open tasks of a project grouped by section")
    tasks.add_argument("--project-id", type=int, required=True)
    _add_command(commands, "gantt", _gantt, "Dated tasks of every project")
    create = _add_command(commands, "create-task", _create_task, "Create a task in a project")
    create.add_argument("--project-id", type=int, required=True)
    create.add_argument("--name", required=True)
    create.add_argument("--notes", default="")
    create.add_argument("--due-date", default=None, help="YYYY-MM-DD")
    create.add_argument("--section", default=None, help="Section name to place the task in")
    create.add_argument("--assignee", default=None, help="Assignee email address")
    validate = _add_command(commands, "validate-asana", _validate_asana, "Check an API token against a project")
    validate.add_argument("--asana-project-id", required=True)
    validate.add_argument("--token", default=None, help="Token to check; defaults to the stored token")

    _add_command(commands, "budget", _budget, "Budget totals per room")
    _add_command(commands, "project-summary", _project_summary, "Totals and counts for the project workbook")

    rooms = commands.add_parser("rooms", help="Room catalog and room selection")
    room_cmds = rooms.add_subparsers(dest="action", required=True)
    _add_command(room_cmds, "list", _rooms_list, "List catalog rooms")
    room_add = _add_command(room_cmds, "add", _rooms_add, "Add a room to the catalog")
    room_add.add_argument("name")
    room_select = _add_command(room_cmds, "select", _rooms_select, "Replace the selected rooms")
    room_select.add_argument("rooms", nargs="*")
    _add_command(room_cmds, "selected", _rooms_selected, "Show selected rooms, categories and picks")

    categories = commands.add_parser("categories", help="Categories assigned to rooms")
    category_cmds = categories.add_subparsers(dest="action", required=True)
    _add_command(category_cmds, "list", _categories_list, "List categories and room assignments")
    for name, handler in (("assign", _categories_assign), ("unassign", _categories_unassign)):
        cmd = _add_command(category_cmds, name, handler, f"{name.capitalize()} a category for a room")
        cmd.add_argument("room")
        cmd.add_argument("category")

    items = commands.add_parser("items", help="Master item list")
    item_cmds = items.add_subparsers(dest="action", required=True)
    item_list = _add_command(item_cmds, "list", _items_list, "Items with totals, per room")
    item_list.add_argument("--rooms", nargs="*", default=None)
    item_save = _add_command(item_cmds, "save", _items_save, "Save edited items from a JSON file")
    item_save.add_argument("payload", help="JSON array of items, or - for stdin")
    _add_command(item_cmds, "selection", _items_selection, "Catalog items offered to the selected rooms")
    item_pick = _add_command(item_cmds, "pick", _items_pick, "Store the per-room item picks")
    item_pick.add_argument("payload", help="JSON object of room -> items, or - for stdin")
    item_draft = _add_command(item_cmds, "draft", _items_draft, "Save, load or clear unsaved item edits")
    item_draft.add_argument("draft_action", metavar="action", choices=("save", "load", "clear"))
    item_draft.add_argument("payload", nargs="?", default="-")

    catalog = _add_command(commands, "catalog", _catalog, "Item catalog from the Data sheet")
    catalog.add_argument("--combined", action="store_true", help="Print 'TYPE : ITEM' strings")
    _add_command(commands, "split", _split, "Rebuild the SPEC and FFE sheets")
    _add_command(commands, "update-budget", _update_budget, "Write SPEC totals per type into Budget")

    _add_command(commands, "vendors", _vendors, "Sourcing rows grouped by vendor")
    email = _add_command(commands, "email", _email, "Send or draft a vendor price request")
    email.add_argument("mode", choices=("send", "draft"))
    email.add_argument("--vendor", required=True)
    email.add_argument("--to", required=True)
    email.add_argument("--message", default="")
    email.add_argument("--requested-only", action="store_true", help="Only rows with the Request box checked")

    files = _add_command(commands, "files", _files, "Files in the project's Drive folder")
    files.add_argument("--project-id", type=int, required=True)
    sheet = _add_command(commands, "open-sheet", _open_sheet, "URL of the project's linked workbook")
    sheet.add_argument("--project-id", type=int, required=True)

    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    config_path = Path(args.config).expanduser().resolve()
    _load_env_files(config_path)
    config = load_config(config_path)
    ctx = Context(config, config_path)
    try:
        try:
            result = args.handler(ctx, args)
        except ConfigurationError as exc:
            result = {"success": False, "error": str(exc)}
        except (ValueError, OSError) as exc:
            LOGGER.error("Invalid input for %s: %s", args.command, exc)
            result = {"success": False, "error": f"Invalid input: {exc}"}
        except Exception as exc:
            LOGGER.exception("Command %s failed", args.command)
            result = {"success": False, "error": f"Command {args.command} failed: {exc}"}
        print(json.dumps(result, ensure_ascii=False, indent=2, default=str))
        return 0 if result.get("success", not result.get("error")) else 1
    finally:
        ctx.close()


def run() -> None:
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("Interrupted", file=sys.stderr)
        sys.exit(130)


if __name__ == "__main__":
    run()
