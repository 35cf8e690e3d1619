"""State machine for vendor proposals: ``received`` -> ``parsed`` -> ``reviewed``.

A proposal is created as soon as an email is correlated so the raw content is
kept even when extraction fails.  Failed extraction leaves the proposal in
``received`` with ``requires_review`` set; it can be re-parsed later.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from config.settings import Settings, settings as default_settings
from models.rfp import Proposal, ProposalStatus, RawEmailContent, RfpStatus
from models.schemas import validate_parsed_proposal
from repositories import proposal_repo, rfp_repo
from services.errors import NotFoundError
from services.extraction_oracle import (
    ExtractionOracle,
    MalformedOutputError,
    OracleError,
)
from services.prompts import PARSE_PROPOSAL_SYSTEM, parse_proposal_prompt

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ParseOutcome:
    proposal_id: str
    success: bool
    confidence: Optional[float] = None
    requires_review: bool = True
    error: Optional[str] = None
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "proposal_id": self.proposal_id,
            "success": self.success,
            "confidence": self.confidence,
            "requires_review": self.requires_review,
            "error": self.error,
            "errors": list(self.errors),
        }


class ProposalLifecycle:
    def __init__(
        self,
        oracle: ExtractionOracle,
        *,
        proposal_repository=proposal_repo,
        rfp_repository=rfp_repo,
        review_threshold: Optional[float] = None,
        clock: Callable[[], datetime] = _utcnow,
        config: Optional[Settings] = None,
    ) -> None:
        config = config or default_settings
        self._oracle = oracle
        self._proposals = proposal_repository
        self._rfps = rfp_repository
        self.review_threshold = (
            config.review_confidence_threshold if review_threshold is None else review_threshold
        )
        self._clock = clock

    def requires_review(self, confidence: float) -> bool:
        return confidence < self.review_threshold

    def create_if_absent(
        self, rfp_id: str, vendor_id: str, raw_email: RawEmailContent
    ) -> Tuple[bool, str]:
        """Insert a ``received`` proposal for the pair unless one already exists.

        On creation the parent rfp moves from ``dispatched`` to
        ``collecting_responses``; the move is a no-op for any other status.
        """

        created, proposal_id = self._proposals.insert_if_absent(
            rfp_id, vendor_id, raw_email, received_at=self._clock()
        )
        if not created:
            logger.warning(
                "Duplicate response from vendor %s for rfp %s (existing proposal %s)",
                vendor_id,
                rfp_id,
                proposal_id,
            )
            return False, proposal_id
        logger.info("Created proposal %s for rfp %s vendor %s", proposal_id, rfp_id, vendor_id)
        self._rfps.advance_status(
            rfp_id, RfpStatus.COLLECTING_RESPONSES, from_statuses=(RfpStatus.DISPATCHED,)
        )
        return True, proposal_id

    def attempt_parse(self, proposal: Proposal) -> ParseOutcome:
        """Extract structured terms for ``proposal``.  Never raises."""

        try:
            payload = self._oracle.extract(
                PARSE_PROPOSAL_SYSTEM, parse_proposal_prompt(proposal.raw_email)
            )
            result = validate_parsed_proposal(payload)
            if not result.ok:
                raise MalformedOutputError(
                    "Extraction output failed proposal validation", errors=result.errors
                )
        except (OracleError, MalformedOutputError) as exc:
            return self._record_failure(proposal.id, str(exc), getattr(exc, "errors", []))
        except Exception:
            logger.exception("Unexpected error while parsing proposal %s", proposal.id)
            return self._record_failure(proposal.id, "Unexpected error while parsing proposal", [])

        parsed = result.value
        requires_review = self.requires_review(parsed.confidence)
        stored = self._proposals.mark_parsed(
            proposal.id,
            parsed.to_dict(),
            parsed.confidence,
            requires_review,
            parsed_at=self._clock(),
        )
        if not stored:
            logger.warning(
                "Parsed data for proposal %s discarded: proposal missing or already reviewed",
                proposal.id,
            )
            return ParseOutcome(
                proposal_id=proposal.id,
                success=False,
                confidence=parsed.confidence,
                requires_review=requires_review,
                error="Proposal is no longer open for parsing",
            )
        logger.info(
            "Parsed proposal %s (confidence %.2f, review=%s)",
            proposal.id,
            parsed.confidence,
            requires_review,
        )
        return ParseOutcome(
            proposal_id=proposal.id,
            success=True,
            confidence=parsed.confidence,
            requires_review=requires_review,
        )

    def _record_failure(self, proposal_id: str, message: str, errors: List[str]) -> ParseOutcome:
        logger.warning("Parsing proposal %s failed: %s %s", proposal_id, message, errors or "")
        try:
            self._proposals.mark_parse_failed(proposal_id)
        except Exception:
            logger.exception("Could not flag proposal %s for review", proposal_id)
        return ParseOutcome(
            proposal_id=proposal_id,
            success=False,
            requires_review=True,
            error=message,
            errors=list(errors),
        )

    def get_proposal(self, proposal_id: str) -> Proposal:
        proposal = self._proposals.get_proposal(proposal_id)
        if proposal is None:
            raise NotFoundError("proposal", proposal_id)
        return proposal

    def parse_by_id(self, proposal_id: str) -> ParseOutcome:
        return self.attempt_parse(self.get_proposal(proposal_id))

    def mark_reviewed(self, proposal_id: str) -> Proposal:
        if not self._proposals.mark_reviewed(proposal_id):
            raise NotFoundError("proposal", proposal_id)
        logger.info("Proposal %s marked as reviewed", proposal_id)
        return self._proposals.get_proposal(proposal_id)

    def reparse_pending(self) -> List[ParseOutcome]:
        """Re-run extraction for every proposal that was never parsed."""

        outcomes: List[ParseOutcome] = []
        pending = self._proposals.list_pending_reparse()
        logger.info("Re-parsing %d pending proposal(s)", len(pending))
        for proposal in pending:
            if proposal.status != ProposalStatus.RECEIVED or not proposal.raw_email.body:
                continue
            outcomes.append(self.attempt_parse(proposal))
        return outcomes


__all__ = ["ParseOutcome", "ProposalLifecycle"]
