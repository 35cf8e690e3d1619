import os
import sys

import pytest

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from conftest import ScriptedClient, SleepRecorder, parsed_proposal_payload, structured_terms_payload
from models.rfp import RawEmailContent, StructuredTerms
from repositories import proposal_repo, rfp_repo, vendor_repo
from services.comparison import (
    COMPARISON_UNAVAILABLE_SUMMARY,
    NO_PROPOSALS_SUMMARY,
    NO_RESPONSES,
    ComparisonEngine,
    build_comparison_report,
)
from services.errors import ComparisonError, NotFoundError
from services.extraction_oracle import ExtractionOracle
from services.llm_client import LLMClientError


def _engine(client):
    oracle = ExtractionOracle(client, max_retries=0, base_delay=0, sleep_fn=SleepRecorder())
    return ComparisonEngine(oracle, default_confidence=0.8)


def _comparison_reply(**overrides):
    reply = {
        "proposal_analysis": [
            {
                "vendor_id": "V1",
                "vendor_name": "Vendor One",
                "strengths": ["Lowest price"],
                "weaknesses": ["Slow delivery"],
                "scores": {"price": 9, "delivery": 5, "terms": 7, "completeness": 8},
                "total_score": 7.25,
                "red_flags": [],
            }
        ],
        "recommendation": {"vendor_id": "V1", "vendor_name": "Vendor One", "reasoning": "Cheapest"},
        "summary": "Vendor One offers the best value.",
    }
    reply.update(overrides)
    return reply


@pytest.fixture
def rfp_with_proposal(sqlite_db):
    terms = StructuredTerms.from_dict(structured_terms_payload())
    rfp_repo.create_rfp(
        title=terms.title, description="laptops", structured_terms=terms, budget=50000, rfp_id="R1"
    )
    vendor_repo.create_vendor(
        name="Vendor One", email="v1@x.com", vendor_id="V1", specialization="IT hardware"
    )
    _, proposal_id = proposal_repo.insert_if_absent(
        "R1", "V1", RawEmailContent(sender="v1@x.com", subject="Re: [REQ-R1]", body="quote")
    )
    proposal_repo.mark_parsed(proposal_id, parsed_proposal_payload(), 0.9, False)
    return "R1"


def test_zero_proposals_returns_no_responses_marker(sqlite_db):
    rfp_repo.create_rfp(title="Empty", description="x", structured_terms=None, rfp_id="R0")
    client = ScriptedClient()

    assert _engine(client).get_comparison("R0") is NO_RESPONSES
    assert client.calls == []


def test_unknown_rfp_raises_not_found(sqlite_db):
    with pytest.raises(NotFoundError):
        _engine(ScriptedClient()).get_comparison("nope")


def test_comparison_result_is_validated_and_repaired(rfp_with_proposal):
    client = ScriptedClient([_comparison_reply()])

    result = _engine(client).get_comparison("R1")

    assert result.recommendation.vendor_id == "V1"
    assert result.recommendation.confidence == 0.8
    assert result.proposal_analysis[0].scores.price == 9
    system, prompt = client.calls[0]
    assert "Vendor One" in prompt
    assert "IT hardware" in prompt
    assert "Parsing Confidence: 0.9" in prompt
    assert "50000" in prompt


def test_missing_summary_raises_comparison_error(rfp_with_proposal):
    reply = _comparison_reply()
    del reply["summary"]

    with pytest.raises(ComparisonError) as excinfo:
        _engine(ScriptedClient([reply])).get_comparison("R1")

    assert any("summary" in error for error in excinfo.value.errors)


def test_report_falls_back_to_raw_proposals_without_analysis(rfp_with_proposal):
    reply = _comparison_reply()
    del reply["summary"]

    report = build_comparison_report(_engine(ScriptedClient([reply])), "R1")

    assert report["analysis"] is None
    assert report["recommendation"] is None
    assert report["summary"] == COMPARISON_UNAVAILABLE_SUMMARY
    assert report["error"] == "AI service error"
    assert report["proposal_count"] == 1
    assert report["proposals"][0]["vendor"]["name"] == "Vendor One"
    assert report["proposals"][0]["raw_email"]["body"] == "quote"


def test_report_survives_unavailable_service(rfp_with_proposal):
    client = ScriptedClient([LLMClientError("down", status_code=503)])

    report = build_comparison_report(_engine(client), "R1")

    assert report["analysis"] is None
    assert report["summary"] == COMPARISON_UNAVAILABLE_SUMMARY


def test_report_with_analysis(rfp_with_proposal):
    report = build_comparison_report(_engine(ScriptedClient([_comparison_reply()])), "R1")

    assert report["analysis"][0]["vendor_id"] == "V1"
    assert report["recommendation"]["reasoning"] == "Cheapest"
    assert report["summary"] == "Vendor One offers the best value."
    assert "error" not in report


def test_report_for_rfp_without_proposals(sqlite_db):
    rfp_repo.create_rfp(title="Empty", description="x", structured_terms=None, rfp_id="R0")

    report = build_comparison_report(_engine(ScriptedClient()), "R0")

    assert report["proposal_count"] == 0
    assert report["proposals"] == []
    assert report["summary"] == NO_PROPOSALS_SUMMARY
