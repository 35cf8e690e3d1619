"""Entry point for inbound vendor email.

Each email is processed start to finish: correlate, create the proposal if it
is new, then attempt extraction.  Every outcome comes back as an
:class:`InboundResult`; nothing raised inside the pipeline escapes it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from services.correlation import CorrelationEngine, CorrelationResult
from services.email_normalizer import InboundEmail
from services.proposal_lifecycle import ParseOutcome, ProposalLifecycle

logger = logging.getLogger(__name__)

CORRELATION_FAILED = "correlation_failed"
DUPLICATE_RESPONSE = "duplicate_response"
PROCESSING_ERROR = "processing_error"


@dataclass
class InboundResult:
    success: bool
    proposal_id: Optional[str] = None
    reason: Optional[str] = None
    correlation: Optional[CorrelationResult] = None
    parse: Optional[ParseOutcome] = None
    message_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "proposal_id": self.proposal_id,
            "reason": self.reason,
            "correlation": self.correlation.to_dict() if self.correlation else None,
            "parse": self.parse.to_dict() if self.parse else None,
            "message_id": self.message_id,
        }


class InboundPipeline:
    def __init__(self, correlation: CorrelationEngine, lifecycle: ProposalLifecycle) -> None:
        self._correlation = correlation
        self._lifecycle = lifecycle

    def process_inbound_email(self, email: InboundEmail) -> InboundResult:
        message_id = email.message_id or None
        try:
            correlation = self._correlation.correlate(email.sender, email.subject)
            if not correlation.success:
                return InboundResult(
                    success=False,
                    reason=CORRELATION_FAILED,
                    correlation=correlation,
                    message_id=message_id,
                )
            raw = email.raw_content(correlation.sender_address)
            created, proposal_id = self._lifecycle.create_if_absent(
                correlation.rfp_id, correlation.vendor_id, raw
            )
            if not created:
                return InboundResult(
                    success=False,
                    proposal_id=proposal_id or None,
                    reason=DUPLICATE_RESPONSE,
                    correlation=correlation,
                    message_id=message_id,
                )
            proposal = self._lifecycle.get_proposal(proposal_id)
            outcome = self._lifecycle.attempt_parse(proposal)
        except Exception:
            logger.exception("Processing inbound email %s failed", message_id or email.subject)
            return InboundResult(success=False, reason=PROCESSING_ERROR, message_id=message_id)
        return InboundResult(
            success=True,
            proposal_id=proposal_id,
            correlation=correlation,
            parse=outcome,
            message_id=message_id,
        )

    def process_batch(self, emails: Iterable[InboundEmail]) -> List[InboundResult]:
        results = [self.process_inbound_email(email) for email in emails]
        if results:
            logger.info(
                "Processed %d inbound email(s): %d new proposal(s)",
                len(results),
                sum(1 for result in results if result.success),
            )
        return results


__all__ = [
    "CORRELATION_FAILED",
    "DUPLICATE_RESPONSE",
    "InboundPipeline",
    "InboundResult",
    "PROCESSING_ERROR",
]
