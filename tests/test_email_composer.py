from __future__ import annotations

from datetime import datetime

import pytest

from project_hub.config import EmailConfig
from project_hub.email_composer import (
    CLOSING_REQUEST,
    DEFAULT_INTRO,
    generate_email_bodies,
    get_email_vendors,
    is_valid_email,
    send_vendor_email,
)
from project_hub.models import VendorItem

SOURCING_HEADER = [
    "Vendor",
    "Property",
    "Room",
    "Description",
    "Type",
    "Quantity",
    "Manufacturer",
    "SKU",
    "Dimensions",
    "Request",
    "Status",
]


def _now():
    return datetime(2024, 5, 1, 9, 30)


@pytest.fixture
def sourcing(fake_store_factory):
    return fake_store_factory(
        {
            "Sourcing": [
                SOURCING_HEADER,
                ["Acme", "Loft", "KITCHEN", "Pendant", "Lighting", 2, "Acme Co", "P-1", "10x10", "TRUE", ""],
                ["Acme", "Loft", "DEN", "", "Rug", 1, "Acme Co", "R-2", "", "", ""],
                ["Bolt", "Loft", "DEN", "Sofa <b>", "Seating", 1, "Bolt", "S-9", "", "FALSE", ""],
                ["Acme", "Loft", "BATH", "Mirror", "Decor", "", "Acme Co", "M-3", "", False, ""],
            ]
        }
    )


def _item(description, **kwargs):
    values = dict(
        row_number=2,
        property="",
        room="",
        description=description,
        type="",
        quantity="",
        manufacturer="",
        part_number="",
        dimensions="",
    )
    values.update(kwargs)
    return VendorItem(**values)


@pytest.mark.parametrize(
    "address, expected",
    [("ava@example.com", True), (" ava@example.com ", True), ("ava@example", False), ("a b@example.com", False), (None, False)],
)
def test_is_valid_email(address, expected):
    assert is_valid_email(address) is expected


def test_vendors_grouped_in_first_seen_order(sourcing):
    result = get_email_vendors(sourcing)

    assert result["success"] is True
    assert [vendor["name"] for vendor in result["vendors"]] == ["Acme", "Bolt"]
    acme = result["vendors"][0]
    assert [item["rowNumber"] for item in acme["items"]] == [2, 3, 5]
    assert [item["requested"] for item in acme["items"]] == [True, False, False]
    assert acme["items"][0]["partNumber"] == "P-1"


def test_vendors_require_vendor_column(fake_store_factory):
    store = fake_store_factory({"Sourcing": [["Description"], ["Lamp"]]})

    result = get_email_vendors(store)

    assert result["success"] is False
    assert result["error"].startswith("Failed to get vendors:")


def test_bodies_escape_and_skip_items_without_description():
    items = [
        _item("Pendant", type="Lighting", quantity=2, dimensions="10x10", part_number="P-1", manufacturer="Acme"),
        _item(""),
        _item("Sofa <b>"),
    ]

    html_body, plain = generate_email_bodies(items)

    assert plain.startswith(DEFAULT_INTRO)
    assert "- Pendant - Lighting (Qty: 2)\nDimensions: 10x10\n\n" in plain
    assert "- Sofa &lt;b&gt;\n\n" in plain
    assert plain.endswith(f"{CLOSING_REQUEST}\n\nThank you,\nNorton Interiors")
    assert html_body.count("<tr><td") == 2
    assert "Sofa &lt;b&gt;" in html_body
    assert "<td style=\"padding: 5px;\">P-1</td>" in html_body


def test_custom_message_replaces_intro():
    html_body, plain = generate_email_bodies([_item("Lamp")], "Hi team,\nQuick one.", company_name="Studio & Co")

    assert plain.startswith("Hi team,\nQuick one.\n\n")
    assert html_body.startswith("<p>Hi team,</p><p>Quick one.</p>")
    assert plain.endswith("Thank you,\nStudio &amp; Co")


def test_send_stamps_rendered_rows(sourcing, mailer):
    result = send_vendor_email(sourcing, mailer, "Acme", "buyer@acme.test", now=_now)

    assert result == {
        "success": True,
        "subject": "Price Request - Test Project - Norton Interiors",
        "itemCount": 2,
        "updatedRows": [2, 5],
        "message": "Email sent successfully!",
    }
    assert len(mailer.sent) == 1
    assert mailer.sent[0]["recipient"] == "buyer@acme.test"
    assert mailer.sent[0]["senderName"] == "Norton Interiors"
    assert sourcing.value("Sourcing", 2, 11) == "Emailed 2024-05-01 09:30"
    assert sourcing.value("Sourcing", 5, 11) == "Emailed 2024-05-01 09:30"
    assert sourcing.value("Sourcing", 3, 11) == ""
    assert sourcing.value("Sourcing", 2, 10) is False


def test_requested_only_filters_items(sourcing, mailer):
    result = send_vendor_email(sourcing, mailer, "Acme", "buyer@acme.test", requested_only=True, now=_now)

    assert result["itemCount"] == 1
    assert result["updatedRows"] == [2]
    assert "Mirror" not in mailer.sent[0]["plain"]


def test_draft_returns_url(sourcing, mailer):
    result = send_vendor_email(sourcing, mailer, "Bolt", "sales@bolt.test", mode="draft", now=_now)

    assert result["success"] is True
    assert result["url"] == "https://mail.google.com/mail/u/0/#drafts/r-123"
    assert result["message"] == "Draft created successfully"
    assert mailer.sent == []
    assert sourcing.value("Sourcing", 4, 11) == "Draft created 2024-05-01 09:30"


@pytest.mark.parametrize(
    "kwargs, error",
    [
        ({"vendor_name": "Acme", "recipient": "nope"}, "Invalid recipient email address format"),
        ({"vendor_name": "Zed", "recipient": "a@b.co"}, "Vendor Zed not found"),
        ({"vendor_name": "Acme", "recipient": "a@b.co", "mode": "fax"}, "Unsupported mode: fax"),
    ],
)
def test_rejected_requests_send_nothing(sourcing, mailer, kwargs, error):
    result = send_vendor_email(sourcing, mailer, **kwargs)

    assert result == {"success": False, "error": error}
    assert mailer.sent == [] and mailer.drafts == []


def test_requested_only_without_checked_rows(sourcing, mailer):
    result = send_vendor_email(sourcing, mailer, "Bolt", "a@b.co", requested_only=True)

    assert result["success"] is False
    assert "No items" in result["error"]


def test_item_cap_is_enforced(sourcing, mailer):
    result = send_vendor_email(sourcing, mailer, "Acme", "a@b.co", config=EmailConfig(max_items_per_email=1))

    assert result["success"] is False
    assert result["error"] == "Vendor Acme has 2 items; at most 1 can be requested in one email"
    assert mailer.sent == []


def test_mailer_failure_leaves_rows_untouched(sourcing, mailer_factory):
    mailer = mailer_factory(error=RuntimeError("quota exceeded"))

    result = send_vendor_email(sourcing, mailer, "Acme", "a@b.co", now=_now)

    assert result == {"success": False, "error": "Failed to send email: quota exceeded"}
    assert sourcing.value("Sourcing", 2, 11) == ""

    draft = send_vendor_email(sourcing, mailer, "Acme", "a@b.co", mode="draft", now=_now)
    assert draft["error"] == "Failed to create draft email: quota exceeded"


def test_missing_status_column_still_clears_request(fake_store_factory, mailer):
    store = fake_store_factory(
        {"Sourcing": [["Vendor", "Description", "Request"], ["Acme", "Lamp", "TRUE"]]}
    )

    result = send_vendor_email(store, mailer, "Acme", "a@b.co", now=_now)

    assert result["updatedRows"] == [2]
    assert store.rows("Sourcing")[1] == ["Acme", "Lamp", False]


def test_stamp_failures_do_not_fail_the_send(sourcing, mailer):
    sourcing.failures["write_values"] = RuntimeError("protected range")

    result = send_vendor_email(sourcing, mailer, "Acme", "a@b.co", now=_now)

    assert result["success"] is True
    assert result["updatedRows"] == []
    assert len(mailer.sent) == 1
