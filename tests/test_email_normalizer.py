import os
import sys
from datetime import datetime, timezone
from email.message import EmailMessage
from email.parser import BytesParser
from email.policy import default as default_policy

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from services.email_normalizer import from_message, from_webhook
from utils.email_address import extract_sender_address

NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def _multipart_message():
    msg = EmailMessage()
    msg["From"] = "Vendor One <V1@X.com>"
    msg["To"] = "procurement@example.com"
    msg["Subject"] = "Re: Request for Proposal - Laptops [REQ-R1]"
    msg["Date"] = "Fri, 01 Mar 2024 10:30:00 +0000"
    msg["Message-ID"] = "<reply-1@x.com>"
    msg.set_content("Laptop 1000 USD x1, total 1000")
    msg.add_alternative("<p>Laptop 1000 USD x1</p>", subtype="html")
    msg.add_attachment(b"%PDF-1.4", maintype="application", subtype="pdf", filename="quote.pdf")
    return BytesParser(policy=default_policy).parsebytes(msg.as_bytes())


def test_from_message_prefers_plain_text():
    email = from_message(_multipart_message(), now=NOW)

    assert email.subject == "Re: Request for Proposal - Laptops [REQ-R1]"
    assert email.body.strip() == "Laptop 1000 USD x1, total 1000"
    assert "<p>" in email.html
    assert email.sender_name == "Vendor One"
    assert email.message_id == "<reply-1@x.com>"
    assert email.attachments == ["quote.pdf"]
    assert email.received_at == datetime(2024, 3, 1, 10, 30, tzinfo=timezone.utc)
    assert extract_sender_address(email.sender) == "V1@X.com"


def test_from_message_falls_back_to_html_body():
    msg = EmailMessage()
    msg["From"] = "v1@x.com"
    msg["Subject"] = "Quote"
    msg.set_content("<p>Our price is 900</p>", subtype="html")

    email = from_message(BytesParser(policy=default_policy).parsebytes(msg.as_bytes()), now=NOW)

    assert "Our price is 900" in email.body
    assert email.received_at == NOW
    assert email.attachments == []


def test_raw_content_uses_extracted_address():
    email = from_message(_multipart_message(), now=NOW)

    raw = email.raw_content("V1@X.com")

    assert raw.sender == "V1@X.com"
    assert raw.subject == email.subject
    assert raw.attachments == ["quote.pdf"]


def test_from_webhook_field_aliases():
    email = from_webhook(
        {
            "sender": "Vendor Two <v2@x.com>",
            "from_name": "Vendor Two",
            "subject": "[REQ-R2] quote",
            "body": "Total 2000",
            "date": "2024-03-01T08:00:00Z",
            "messageId": "<m-2@x.com>",
            "attachments": [{"filename": "terms.docx"}, "specs.xlsx"],
        },
        now=NOW,
    )

    assert email.body == "Total 2000"
    assert email.sender_name == "Vendor Two"
    assert email.message_id == "<m-2@x.com>"
    assert email.attachments == ["terms.docx", "specs.xlsx"]
    assert email.received_at == datetime(2024, 3, 1, 8, 0, tzinfo=timezone.utc)
    assert extract_sender_address(email.sender) == "v2@x.com"


def test_from_webhook_html_only_and_structured_sender():
    email = from_webhook(
        {"from": {"value": [{"address": "v3@x.com", "name": "V3"}]}, "html": "<b>900</b>"},
        now=NOW,
    )

    assert email.body == "<b>900</b>"
    assert email.subject == ""
    assert email.received_at == NOW
    assert extract_sender_address(email.sender) == "v3@x.com"
