import os
import sys
from datetime import datetime, timezone

import pytest

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from conftest import ScriptedClient, SleepRecorder, structured_terms_payload
from models.rfp import RfpStatus, Vendor
from repositories import rfp_repo, vendor_repo
from services.dispatch_tracker import DispatchTracker
from services.errors import NotFoundError, RfpValidationError
from services.extraction_oracle import ExtractionOracle, MalformedOutputError
from services.rfp_mailer import EmailSendResult, RfpMailer, format_rfp_email, rfp_subject
from services.rfp_service import RfpService


def _service(client):
    return RfpService(ExtractionOracle(client, max_retries=0, base_delay=0, sleep_fn=SleepRecorder()))


class RecordingTransport:
    def __init__(self, fail_for=()):
        self.sent = []
        self.fail_for = set(fail_for)

    def __call__(self, to_address, subject, body):
        self.sent.append((to_address, subject, body))
        if to_address in self.fail_for:
            raise ConnectionError("mailbox unavailable")
        return EmailSendResult(success=True, message_id=f"<{len(self.sent)}@mail>")


def test_structure_request_rejects_empty_text(sqlite_db):
    client = ScriptedClient()

    with pytest.raises(RfpValidationError):
        _service(client).structure_request("   ")
    assert client.calls == []


def test_structure_request_rejects_incomplete_output(sqlite_db):
    payload = structured_terms_payload()
    del payload["items"][0]["description"]

    with pytest.raises(MalformedOutputError):
        _service(ScriptedClient([payload])).structure_request("20 laptops")


def test_create_rfp_stores_draft(sqlite_db):
    client = ScriptedClient([structured_terms_payload()])
    deadline = datetime(2024, 6, 30, tzinfo=timezone.utc)

    rfp = _service(client).create_rfp("We need 20 laptops with 16GB RAM", deadline=deadline)

    stored = rfp_repo.get_rfp(rfp.id)
    assert stored.status == RfpStatus.DRAFT
    assert stored.title == "Office laptops"
    assert stored.budget == 50000
    assert stored.deadline == deadline
    assert stored.structured_terms.items[0].name == "Laptop"
    assert "20 laptops" in client.calls[0][1]


def test_explicit_budget_overrides_structured_budget(sqlite_db):
    rfp = _service(ScriptedClient([structured_terms_payload()])).create_rfp("laptops", budget=42000)

    assert rfp_repo.get_rfp(rfp.id).budget == 42000


def test_close_and_missing_rfp(sqlite_db):
    service = _service(ScriptedClient([structured_terms_payload()]))
    rfp = service.create_rfp("laptops")

    assert service.close_rfp(rfp.id).status == RfpStatus.CLOSED
    assert service.close_rfp(rfp.id).status == RfpStatus.CLOSED
    with pytest.raises(NotFoundError):
        service.close_rfp("missing")


def test_rfp_email_rendering(sqlite_db):
    rfp = _service(ScriptedClient([structured_terms_payload()])).create_rfp(
        "laptops", deadline=datetime(2024, 6, 30, tzinfo=timezone.utc)
    )

    body = format_rfp_email(rfp, team_name="Buying Desk")

    assert rfp_subject(rfp) == f"Request for Proposal - Office laptops [REQ-{rfp.id}]"
    assert "1. Laptop" in body
    assert "   Quantity: 20" in body
    assert "     - ram: 16GB" in body
    assert "BUDGET: $50,000" in body
    assert "WARRANTY REQUIREMENTS: 1 year minimum" in body
    assert "RESPONSE DEADLINE: June 30, 2024" in body
    assert "Please keep the RFP reference number in the subject line when replying." in body
    assert body.endswith("Best regards,\nBuying Desk")


def test_send_to_vendors_tolerates_partial_failure(sqlite_db):
    rfp = _service(ScriptedClient([structured_terms_payload()])).create_rfp("laptops")
    good = vendor_repo.create_vendor(name="Good", email="good@x.com")
    bad = vendor_repo.create_vendor(name="Bad", email="bad@x.com")
    invalid = Vendor(id="v-invalid", name="Invalid", email="not-an-email")
    transport = RecordingTransport(fail_for={"bad@x.com"})
    mailer = RfpMailer(transport, DispatchTracker())

    report = mailer.send_rfp_to_vendors(rfp, [good, bad, invalid])

    assert report.total == 3
    assert report.successful_vendor_ids == [good.id]
    assert {entry["vendor_id"] for entry in report.failed} == {bad.id, "v-invalid"}
    assert [to for to, _, _ in transport.sent] == ["good@x.com", "bad@x.com"]
    assert f"[REQ-{rfp.id}]" in transport.sent[0][1]
    stored = rfp_repo.get_rfp(rfp.id)
    assert stored.status == RfpStatus.DISPATCHED
    assert [d.vendor_id for d in stored.dispatches] == [good.id]


def test_send_with_every_vendor_failing_keeps_draft(sqlite_db):
    rfp = _service(ScriptedClient([structured_terms_payload()])).create_rfp("laptops")
    vendor = vendor_repo.create_vendor(name="Bad", email="bad@x.com")

    report = RfpMailer(RecordingTransport(fail_for={"bad@x.com"}), DispatchTracker()).send_rfp_to_vendors(
        rfp, [vendor]
    )

    assert report.successful == []
    assert report.errors[0]["error"] == "mailbox unavailable"
    assert rfp_repo.get_rfp(rfp.id).status == RfpStatus.DRAFT


def test_vendor_directory_is_case_insensitive(sqlite_db):
    vendor = vendor_repo.create_vendor(name="Acme", email="Sales@Acme.com")

    assert vendor.email == "sales@acme.com"
    assert vendor_repo.find_by_email("SALES@acme.COM").id == vendor.id
    with pytest.raises(RfpValidationError):
        vendor_repo.create_vendor(name="Broken", email="broken@")
