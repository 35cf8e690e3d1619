"""Rank the proposals received for an rfp.

The extraction service does the scoring; this module only builds the prompt
and validates the answer.  ``build_comparison_report`` wraps the engine and
always returns something the caller can render.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from config.settings import Settings, settings as default_settings
from models.rfp import Proposal, Rfp, Vendor
from models.schemas import ComparisonResult, validate_comparison
from repositories import proposal_repo, rfp_repo, vendor_repo
from services.errors import ComparisonError, NotFoundError
from services.extraction_oracle import ExtractionOracle, MalformedOutputError, OracleError
from services.prompts import COMPARE_PROPOSALS_SYSTEM, compare_proposals_prompt

logger = logging.getLogger(__name__)


class ComparisonMarker(str, Enum):
    NO_RESPONSES = "no_responses"


NO_RESPONSES = ComparisonMarker.NO_RESPONSES

NO_PROPOSALS_SUMMARY = "No proposals have been received yet for this RFP."
COMPARISON_UNAVAILABLE_SUMMARY = (
    "AI comparison is temporarily unavailable. Please review proposals manually."
)


def proposal_view(proposal: Proposal, vendor: Optional[Vendor]) -> Dict[str, Any]:
    """Serialisable view of a proposal joined with its vendor's contact details."""

    return {
        "id": proposal.id,
        "rfp_id": proposal.rfp_id,
        "vendor_id": proposal.vendor_id,
        "vendor": (
            {
                "id": vendor.id,
                "name": vendor.name,
                "email": vendor.email,
                "contact_person": vendor.contact_person,
                "specialization": vendor.specialization,
            }
            if vendor
            else None
        ),
        "raw_email": proposal.raw_email.to_dict(),
        "status": proposal.status.value,
        "parsed_data": proposal.parsed_data,
        "parsing_confidence": proposal.parsing_confidence,
        "requires_review": proposal.requires_review,
        "received_at": proposal.received_at.isoformat() if proposal.received_at else None,
        "parsed_at": proposal.parsed_at.isoformat() if proposal.parsed_at else None,
    }


class ComparisonEngine:
    def __init__(
        self,
        oracle: ExtractionOracle,
        *,
        rfp_repository=rfp_repo,
        proposal_repository=proposal_repo,
        vendor_repository=vendor_repo,
        default_confidence: Optional[float] = None,
        config: Optional[Settings] = None,
    ) -> None:
        config = config or default_settings
        self._oracle = oracle
        self._rfps = rfp_repository
        self._proposals = proposal_repository
        self._vendors = vendor_repository
        self.default_confidence = (
            config.default_recommendation_confidence
            if default_confidence is None
            else default_confidence
        )

    def load(self, rfp_id: str):
        rfp = self._rfps.get_rfp(rfp_id)
        if rfp is None:
            raise NotFoundError("rfp", rfp_id)
        proposals = self._proposals.list_for_rfp(rfp_id)
        vendors = {
            vendor.id: vendor
            for vendor in self._vendors.list_by_ids(p.vendor_id for p in proposals)
        }
        return rfp, proposals, vendors

    def compare(
        self, rfp: Rfp, proposals: List[Proposal], vendors: Dict[str, Vendor]
    ) -> Union[ComparisonResult, ComparisonMarker]:
        if not proposals:
            return NO_RESPONSES
        try:
            payload = self._oracle.extract(
                COMPARE_PROPOSALS_SYSTEM, compare_proposals_prompt(rfp, proposals, vendors)
            )
        except (OracleError, MalformedOutputError) as exc:
            raise ComparisonError(str(exc)) from None
        result = validate_comparison(payload, default_confidence=self.default_confidence)
        if not result.ok:
            logger.warning("Comparison output for rfp %s rejected: %s", rfp.id, result.errors)
            raise ComparisonError("Comparison output failed validation", errors=result.errors)
        return result.value

    def get_comparison(self, rfp_id: str) -> Union[ComparisonResult, ComparisonMarker]:
        """Fresh comparison for ``rfp_id``, or ``NO_RESPONSES`` when nothing arrived yet.

        Raises ``NotFoundError`` for an unknown rfp and ``ComparisonError``
        when the service fails or its answer is structurally unusable.
        """

        rfp, proposals, vendors = self.load(rfp_id)
        return self.compare(rfp, proposals, vendors)


def build_comparison_report(engine: ComparisonEngine, rfp_id: str) -> Dict[str, Any]:
    """Comparison payload that is renderable whatever the service did.

    Only ``NotFoundError`` for an unknown rfp propagates.
    """

    rfp, proposals, vendors = engine.load(rfp_id)
    report: Dict[str, Any] = {
        "rfp_id": rfp.id,
        "rfp_title": rfp.title,
        "proposal_count": len(proposals),
        "proposals": [proposal_view(p, vendors.get(p.vendor_id)) for p in proposals],
        "analysis": None,
        "recommendation": None,
        "summary": NO_PROPOSALS_SUMMARY,
    }
    if not proposals:
        return report
    try:
        result = engine.compare(rfp, proposals, vendors)
    except ComparisonError as exc:
        logger.warning("Comparison for rfp %s unavailable: %s", rfp_id, exc)
        report["summary"] = COMPARISON_UNAVAILABLE_SUMMARY
        report["error"] = "AI service error"
        return report
    except Exception:
        logger.exception("Unexpected error comparing proposals for rfp %s", rfp_id)
        report["summary"] = COMPARISON_UNAVAILABLE_SUMMARY
        report["error"] = "AI service error"
        return report
    report["analysis"] = [entry.model_dump() for entry in result.proposal_analysis]
    report["recommendation"] = result.recommendation.model_dump()
    report["summary"] = result.summary
    return report


__all__ = [
    "COMPARISON_UNAVAILABLE_SUMMARY",
    "ComparisonEngine",
    "ComparisonMarker",
    "NO_PROPOSALS_SUMMARY",
    "NO_RESPONSES",
    "build_comparison_report",
    "proposal_view",
]
