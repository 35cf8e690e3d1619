"""Request-side workflow: structuring, creation, lookup and closing of rfps."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from models.rfp import Rfp, RfpStatus, StructuredTerms, Vendor
from models.schemas import validate_structured_terms
from repositories import proposal_repo, rfp_repo, vendor_repo
from services.comparison import proposal_view
from services.errors import NotFoundError, RfpValidationError
from services.extraction_oracle import ExtractionOracle, MalformedOutputError
from services.prompts import STRUCTURE_RFP_SYSTEM, structure_rfp_prompt

logger = logging.getLogger(__name__)


def rfp_view(rfp: Rfp) -> Dict[str, Any]:
    return {
        "id": rfp.id,
        "title": rfp.title,
        "description": rfp.description,
        "structured_terms": rfp.structured_terms.to_dict() if rfp.structured_terms else None,
        "budget": rfp.budget,
        "deadline": rfp.deadline.isoformat() if rfp.deadline else None,
        "status": rfp.status.value,
        "dispatches": [
            {"vendor_id": entry.vendor_id, "sent_at": entry.sent_at.isoformat()}
            for entry in rfp.dispatches
        ],
        "created_at": rfp.created_at.isoformat() if rfp.created_at else None,
        "updated_at": rfp.updated_at.isoformat() if rfp.updated_at else None,
    }


class RfpService:
    def __init__(
        self,
        oracle: ExtractionOracle,
        *,
        rfp_repository=rfp_repo,
        proposal_repository=proposal_repo,
        vendor_repository=vendor_repo,
    ) -> None:
        self._oracle = oracle
        self._rfps = rfp_repository
        self._proposals = proposal_repository
        self._vendors = vendor_repository

    def structure_request(self, text: str) -> StructuredTerms:
        """Turn a free-text request into structured terms.

        Raises ``RfpValidationError`` for empty text and ``MalformedOutputError``
        when the service answer lacks a title or a complete item list.
        ``OracleError`` propagates unchanged.
        """

        if not text or not text.strip():
            raise RfpValidationError("RFP description cannot be empty")
        payload = self._oracle.extract(STRUCTURE_RFP_SYSTEM, structure_rfp_prompt(text))
        result = validate_structured_terms(payload)
        if not result.ok:
            logger.warning("Structured request rejected: %s", result.errors)
            raise MalformedOutputError(
                "Extraction output is missing required request fields", errors=result.errors
            )
        return result.value

    def create_rfp(
        self,
        text: str,
        *,
        budget: Optional[float] = None,
        deadline: Optional[datetime] = None,
    ) -> Rfp:
        if budget is not None and budget < 0:
            raise RfpValidationError("budget must not be negative")
        terms = self.structure_request(text)
        return self._rfps.create_rfp(
            title=terms.title,
            description=text.strip(),
            structured_terms=terms,
            budget=budget if budget is not None else terms.budget,
            deadline=deadline,
        )

    def get_rfp(self, rfp_id: str) -> Rfp:
        rfp = self._rfps.get_rfp(rfp_id)
        if rfp is None:
            raise NotFoundError("rfp", rfp_id)
        return rfp

    def list_rfps(self) -> List[Rfp]:
        return self._rfps.list_rfps()

    def close_rfp(self, rfp_id: str) -> Rfp:
        rfp = self.get_rfp(rfp_id)
        if rfp.status != RfpStatus.CLOSED:
            self._rfps.advance_status(rfp_id, RfpStatus.CLOSED)
        return self.get_rfp(rfp_id)

    def vendors_by_ids(self, vendor_ids: List[str]) -> List[Vendor]:
        return self._vendors.list_by_ids(vendor_ids)

    def list_proposals(self, rfp_id: str) -> List[Dict[str, Any]]:
        """Every proposal for ``rfp_id``, newest first, with vendor details."""

        self.get_rfp(rfp_id)
        proposals = self._proposals.list_for_rfp(rfp_id)
        vendors = {
            vendor.id: vendor
            for vendor in self._vendors.list_by_ids(p.vendor_id for p in proposals)
        }
        return [proposal_view(p, vendors.get(p.vendor_id)) for p in proposals]


__all__ = ["RfpService", "rfp_view"]
