import os
import sys

import pytest

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from fastapi import FastAPI
from fastapi.testclient import TestClient

from api.routers import proposals, rfps
from conftest import ScriptedClient, SleepRecorder, parsed_proposal_payload, structured_terms_payload
from repositories import vendor_repo
from services.llm_client import LLMClientError
from services.rfp_desk import build_desk
from services.rfp_mailer import EmailSendResult


class OutboxTransport:
    def __init__(self):
        self.sent = []

    def __call__(self, to_address, subject, body):
        self.sent.append((to_address, subject, body))
        return EmailSendResult(success=True, message_id=f"<out-{len(self.sent)}@desk>")


def create_app(client, transport=None):
    app = FastAPI()
    app.include_router(rfps.router)
    app.include_router(proposals.router)
    app.state.desk = build_desk(client=client, transport=transport, sleep_fn=SleepRecorder())
    return app


@pytest.fixture
def llm():
    return ScriptedClient([structured_terms_payload()])


@pytest.fixture
def outbox():
    return OutboxTransport()


@pytest.fixture
def api(sqlite_db, llm, outbox):
    return TestClient(create_app(llm, outbox))


def _create_rfp(api):
    response = api.post("/rfps", json={"description": "20 laptops with 16GB RAM", "deadline": "2024-06-30T00:00:00Z"})
    assert response.status_code == 201
    return response.json()


def test_create_and_fetch_rfp(api):
    created = _create_rfp(api)

    fetched = api.get(f"/rfps/{created['id']}")

    assert fetched.status_code == 200
    body = fetched.json()
    assert body["status"] == "draft"
    assert body["title"] == "Office laptops"
    assert body["budget"] == 50000


def test_create_rfp_rejects_blank_description(api):
    assert api.post("/rfps", json={"description": "   "}).status_code == 422
    assert api.post("/rfps", json={"description": "x", "budget": -5}).status_code == 422


def test_unknown_rfp_is_404(api):
    assert api.get("/rfps/missing").status_code == 404
    assert api.post("/rfps/missing/close").status_code == 404
    assert api.get("/rfps/missing/comparison").status_code == 404


def test_send_then_reply_then_compare(api, llm, outbox):
    rfp = _create_rfp(api)
    vendor = vendor_repo.create_vendor(name="Vendor One", email="v1@x.com")

    sent = api.post(f"/rfps/{rfp['id']}/send", json={"vendor_ids": [vendor.id]})

    assert sent.status_code == 200
    assert sent.json()["rfp"]["status"] == "dispatched"
    assert outbox.sent[0][0] == "v1@x.com"
    assert f"[REQ-{rfp['id']}]" in outbox.sent[0][1]

    llm.queue(parsed_proposal_payload())
    inbound = {
        "from": "Vendor One <V1@X.com>",
        "subject": f"Re: Request for Proposal - Office laptops [REQ-{rfp['id']}]",
        "text": "Laptop 1000 USD x1, Monitor 250 USD x2, total 1500",
    }
    created = api.post("/proposals/inbound", json=inbound)
    assert created.status_code == 201
    assert created.json()["correlation"]["vendor_id"] == vendor.id

    duplicate = api.post("/proposals/inbound", json=inbound)
    assert duplicate.status_code == 409

    listing = api.get(f"/rfps/{rfp['id']}/proposals").json()
    assert listing["count"] == 1
    assert api.get(f"/rfps/{rfp['id']}").json()["status"] == "collecting_responses"

    llm.queue(*[LLMClientError("unavailable", status_code=503)] * 4)
    comparison = api.get(f"/rfps/{rfp['id']}/comparison")
    assert comparison.status_code == 200
    assert comparison.json()["analysis"] is None
    assert comparison.json()["proposal_count"] == 1


def test_send_to_unknown_vendor_is_404(api):
    rfp = _create_rfp(api)

    assert api.post(f"/rfps/{rfp['id']}/send", json={"vendor_ids": ["nope"]}).status_code == 404


def test_send_without_transport_is_503(sqlite_db, llm):
    api = TestClient(create_app(llm))
    rfp = _create_rfp(api)

    assert api.post(f"/rfps/{rfp['id']}/send", json={"vendor_ids": ["v"]}).status_code == 503


def test_uncorrelated_inbound_answers_200(api):
    response = api.post("/proposals/inbound", json={"from": "nobody", "subject": "hi", "text": "?"})

    assert response.status_code == 200
    body = response.json()
    assert body["reason"] == "correlation_failed"
    assert body["correlation"]["rfp_id"] is None
    assert body["correlation"]["vendor_id"] is None


def test_record_dispatch_and_close(api):
    rfp = _create_rfp(api)

    recorded = api.post(f"/rfps/{rfp['id']}/dispatches", json={"vendor_ids": ["V9"]})
    assert recorded.status_code == 200
    assert recorded.json()["status"] == "dispatched"

    closed = api.post(f"/rfps/{rfp['id']}/close")
    assert closed.json()["status"] == "closed"


def test_comparison_without_proposals(api):
    rfp = _create_rfp(api)

    body = api.get(f"/rfps/{rfp['id']}/comparison").json()

    assert body["proposal_count"] == 0
    assert body["proposals"] == []


def test_poll_without_mailbox_is_503(api):
    assert api.post("/proposals/poll").status_code == 503


def test_review_and_reparse(api, llm):
    rfp = _create_rfp(api)
    vendor = vendor_repo.create_vendor(name="Vendor One", email="v1@x.com")
    api.post(f"/rfps/{rfp['id']}/dispatches", json={"vendor_ids": [vendor.id]})
    llm.queue("not json")
    created = api.post(
        "/proposals/inbound",
        json={"from": "v1@x.com", "subject": f"[REQ-{rfp['id']}]", "text": "total 1500"},
    ).json()

    llm.queue(parsed_proposal_payload())
    reparsed = api.post("/proposals/reparse").json()
    assert reparsed["total"] == 1
    assert reparsed["parsed"] == 1

    reviewed = api.post(f"/proposals/{created['proposal_id']}/review")
    assert reviewed.status_code == 200
    assert reviewed.json()["status"] == "reviewed"
    assert api.post("/proposals/missing/review").status_code == 404


def test_list_rfps_newest_first(api, llm):
    assert api.get("/rfps").json() == {"count": 0, "rfps": []}
    first = _create_rfp(api)
    llm.queue(structured_terms_payload(title="Monitors"))
    second = api.post("/rfps", json={"description": "10 monitors"}).json()
    api.post(f"/rfps/{first['id']}/dispatches", json={"vendor_ids": ["V1"]})

    listing = api.get("/rfps")

    assert listing.status_code == 200
    body = listing.json()
    assert body["count"] == 2
    assert [rfp["id"] for rfp in body["rfps"]] == [second["id"], first["id"]]
    assert body["rfps"][1]["status"] == "dispatched"
    assert [d["vendor_id"] for d in body["rfps"][1]["dispatches"]] == ["V1"]
