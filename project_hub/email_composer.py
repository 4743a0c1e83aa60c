"""Price request emails to vendors, built from the sourcing sheet."""

from __future__ import annotations

import base64
import html
import logging
import re
from datetime import datetime
from email.message import EmailMessage
from email.utils import formataddr
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, Tuple

from google.oauth2.service_account import Credentials
from googleapiclient.discovery import Resource, build

from .config import EmailConfig
from .errors import ConfigurationError
from .models import Vendor, VendorItem
from .tables import TableStore, build_header_map, cell, cell_text, column_index, optional_column_index

LOGGER = logging.getLogger(__name__)

GMAIL_SCOPES = [
    "https://www.googleapis.com/auth/gmail.send",
    "https://www.googleapis.com/auth/gmail.compose",
]
DRAFT_URL_TEMPLATE = "https://mail.google.com/mail/u/0/#drafts/{draft_id}"
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M"

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_CHECKED_VALUES = {"TRUE", "YES", "Y", "X", "1"}

DEFAULT_INTRO = (
    "Dear Vendor,\n\n"
    "We would like to request price quotes and current availability for the following items:\n\n"
)
DEFAULT_HTML_INTRO = (
    "<p>Dear Vendor,</p>\n"
    "<p>We would like to request price quotes and current availability for the following items:</p>\n"
)
CLOSING_REQUEST = "Please provide the unit price and expected lead time for each item listed above."


def is_valid_email(address: Any) -> bool:
    return isinstance(address, str) and bool(_EMAIL_RE.match(address.strip()))


def _is_checked(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value if value is not None else "").strip().upper() in _CHECKED_VALUES


class Mailer(Protocol):
    def send(self, recipient: str, subject: str, plain_body: str, html_body: str, sender_name: str) -> None: ...

    def create_draft(
        self, recipient: str, subject: str, plain_body: str, html_body: str, sender_name: str
    ) -> str: ...


class GmailMailer:
    """Mailer backed by the Gmail API, impersonating ``sender`` through domain-wide delegation."""

    def __init__(self, credentials_file: Path, sender: str) -> None:
        if not sender:
            raise ConfigurationError("email.sender is not configured")
        self._credentials_file = credentials_file
        self._sender = sender
        self._service: Resource | None = None

    def _service_client(self) -> Resource:
        if self._service is None:
            creds = Credentials.from_service_account_file(
                str(self._credentials_file), scopes=GMAIL_SCOPES, subject=self._sender
            )
            self._service = build("gmail", "v1", credentials=creds)
        return self._service

    def _raw_message(
        self, recipient: str, subject: str, plain_body: str, html_body: str, sender_name: str
    ) -> Dict[str, str]:
        message = EmailMessage()
        message["To"] = recipient
        message["From"] = formataddr((sender_name, self._sender))
        message["Subject"] = subject
        message.set_content(plain_body)
        message.add_alternative(html_body, subtype="html")
        return {"raw": base64.urlsafe_b64encode(message.as_bytes()).decode("ascii")}

    def send(self, recipient: str, subject: str, plain_body: str, html_body: str, sender_name: str) -> None:
        body = self._raw_message(recipient, subject, plain_body, html_body, sender_name)
        self._service_client().users().messages().send(userId="me", body=body).execute()

    def create_draft(
        self, recipient: str, subject: str, plain_body: str, html_body: str, sender_name: str
    ) -> str:
        body = {"message": self._raw_message(recipient, subject, plain_body, html_body, sender_name)}
        draft = self._service_client().users().drafts().create(userId="me", body=body).execute()
        return draft["id"]


def read_vendors(store: TableStore, config: EmailConfig) -> List[Vendor]:
    """Group sourcing rows by vendor, first-seen order."""

    sheet = config.vendor_sheet_name
    if not store.has_sheet(sheet):
        raise ConfigurationError(f"Sheet {sheet} not found")
    values = store.read_values(sheet)
    if not values:
        return []

    columns = config.columns
    header_map = build_header_map(values[0])
    vendor_idx = column_index(header_map, columns.vendor, sheet)
    idx = {
        name: optional_column_index(header_map, getattr(columns, name))
        for name in (
            "property",
            "room",
            "description",
            "type",
            "quantity",
            "manufacturer",
            "part_number",
            "dimensions",
            "request",
        )
    }

    vendors: Dict[str, Vendor] = {}
    for offset, row in enumerate(values[1:]):
        vendor_name = cell_text(row, vendor_idx)
        if not vendor_name:
            continue
        vendor = vendors.setdefault(vendor_name, Vendor(name=vendor_name))
        vendor.items.append(
            VendorItem(
                row_number=offset + 2,
                property=cell_text(row, idx["property"]),
                room=cell_text(row, idx["room"]),
                description=cell_text(row, idx["description"]),
                type=cell_text(row, idx["type"]),
                quantity=cell(row, idx["quantity"], ""),
                manufacturer=cell_text(row, idx["manufacturer"]),
                part_number=cell_text(row, idx["part_number"]),
                dimensions=cell_text(row, idx["dimensions"]),
                requested=_is_checked(cell(row, idx["request"], False)),
            )
        )
    return list(vendors.values())


def get_email_vendors(store: TableStore, config: Optional[EmailConfig] = None) -> Dict[str, Any]:
    config = config or EmailConfig()
    try:
        vendors = read_vendors(store, config)
    except ConfigurationError as exc:
        return {"success": False, "error": f"Failed to get vendors: {exc}"}
    except Exception as exc:
        LOGGER.exception("Failed to read vendors")
        return {"success": False, "error": f"Failed to get vendors: {exc}"}
    return {"success": True, "vendors": [vendor.to_dict() for vendor in vendors]}


def _describe(item: VendorItem) -> str:
    text = html.escape(item.description)
    if item.type:
        text += " - " + html.escape(item.type)
    if not _blank(item.quantity):
        text += f" (Qty: {html.escape(str(item.quantity))})"
    return text


def _blank(value: Any) -> bool:
    return value is None or str(value).strip() == ""


def generate_email_bodies(
    items: Sequence[VendorItem], custom_message: str = "", company_name: str = "Norton Interiors"
) -> Tuple[str, str]:
    """Render ``(html_body, plain_body)``; items without a description are left out."""

    message = (custom_message or "").strip()
    if message:
        plain = message + "\n\n"
        html_body = "<p>" + html.escape(message).replace("\n", "</p><p>") + "</p>\n"
    else:
        plain = DEFAULT_INTRO
        html_body = DEFAULT_HTML_INTRO

    html_body += (
        '<table border="1" style="border-collapse: collapse; width: 100%; font-size: 10pt; margin-bottom: 15px;">\n'
        '<thead style="background-color: #f2f2f2;"><tr>'
        '<th style="padding: 5px; text-align: left;">Description</th>'
        '<th style="padding: 5px; text-align: left;">SKU</th>'
        '<th style="padding: 5px; text-align: left;">Manufacturer</th>'
        "</tr></thead>\n<tbody>\n"
    )
    for item in items:
        if not item.description:
            continue
        description = _describe(item)
        dimensions = html.escape(item.dimensions)
        plain += f"- {description}"
        if dimensions:
            plain += f"\nDimensions: {dimensions}"
        plain += "\n\n"

        html_body += f'<tr><td style="padding: 5px;">{description}'
        if dimensions:
            html_body += f"<br>Dimensions: {dimensions}"
        html_body += (
            f'</td><td style="padding: 5px;">{html.escape(item.part_number)}</td>'
            f'<td style="padding: 5px;">{html.escape(item.manufacturer)}</td></tr>\n'
        )

    company = html.escape(company_name)
    plain += f"\n{CLOSING_REQUEST}\n\nThank you,\n{company}"
    html_body += f"</tbody>\n</table>\n<p>{CLOSING_REQUEST}</p>\n<p>Thank you,<br>{company}</p>\n"
    return html_body, plain


def _stamp_rows(
    store: TableStore, config: EmailConfig, row_numbers: Sequence[int], status_text: str
) -> List[int]:
    sheet = config.vendor_sheet_name
    values = store.read_values(sheet)
    header_map = build_header_map(values[0] if values else [])
    status_idx = optional_column_index(header_map, config.columns.status)
    request_idx = optional_column_index(header_map, config.columns.request)
    if status_idx is None:
        LOGGER.warning("Column %s not found in %s; rows will not be stamped", config.columns.status, sheet)

    stamped: List[int] = []
    for row_number in row_numbers:
        try:
            if status_idx is not None:
                store.write_values(sheet, row_number, status_idx + 1, [[status_text]])
            if request_idx is not None:
                store.write_values(sheet, row_number, request_idx + 1, [[False]])
        except Exception:
            LOGGER.warning("Error updating row %s in %s", row_number, sheet, exc_info=True)
            continue
        stamped.append(row_number)
    return stamped


def send_vendor_email(
    store: TableStore,
    mailer: Mailer,
    vendor_name: str,
    recipient: str,
    custom_message: str = "",
    mode: str = "send",
    requested_only: bool = False,
    config: Optional[EmailConfig] = None,
    now: Callable[[], datetime] = datetime.now,
) -> Dict[str, Any]:
    """Send (or draft) a price request to one vendor and stamp the rows it covers."""

    config = config or EmailConfig()
    if mode not in ("send", "draft"):
        return {"success": False, "error": f"Unsupported mode: {mode}"}
    if not is_valid_email(recipient):
        return {"success": False, "error": "Invalid recipient email address format"}
    recipient = recipient.strip()

    try:
        vendor = next((v for v in read_vendors(store, config) if v.name == vendor_name), None)
        if vendor is None:
            return {"success": False, "error": f"Vendor {vendor_name} not found"}

        items = [item for item in vendor.items if item.requested or not requested_only]
        items = [item for item in items if item.description]
        if not items:
            return {"success": False, "error": f"No items to request for vendor {vendor_name}"}
        if len(items) > config.max_items_per_email:
            return {
                "success": False,
                "error": (
                    f"Vendor {vendor_name} has {len(items)} items; at most "
                    f"{config.max_items_per_email} can be requested in one email"
                ),
            }

        html_body, plain_body = generate_email_bodies(items, custom_message, config.company_name)
        subject = f"{config.subject_prefix} - {store.title()} - {config.company_name}"

        draft_id: str | None = None
        if mode == "send":
            mailer.send(recipient, subject, plain_body, html_body, config.company_name)
            status_text = f"Emailed {now().strftime(TIMESTAMP_FORMAT)}"
        else:
            draft_id = mailer.create_draft(recipient, subject, plain_body, html_body, config.company_name)
            status_text = f"Draft created {now().strftime(TIMESTAMP_FORMAT)}"
        LOGGER.info("%s for vendor %s (%s items)", status_text, vendor_name, len(items))

        stamped = _stamp_rows(store, config, [item.row_number for item in items], status_text)
    except ConfigurationError as exc:
        return {"success": False, "error": str(exc)}
    except Exception as exc:
        LOGGER.exception("Failed to email vendor %s", vendor_name)
        action = "send email" if mode == "send" else "create draft email"
        return {"success": False, "error": f"Failed to {action}: {exc}"}

    result: Dict[str, Any] = {
        "success": True,
        "subject": subject,
        "itemCount": len(items),
        "updatedRows": stamped,
    }
    if draft_id is not None:
        result["url"] = DRAFT_URL_TEMPLATE.format(draft_id=draft_id)
        result["message"] = "Draft created successfully"
    else:
        result["message"] = "Email sent successfully!"
    return result
