"""Resolve an inbound email to the rfp and vendor it answers.

Both halves are resolved independently: the rfp from a ``[REQ-<id>]`` tag in
the subject, the vendor from the sender address.  Only when the subject
carries no tag and the vendor is known does the engine fall back to the
vendor's most recently dispatched outstanding rfp.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from repositories import rfp_repo, vendor_repo
from utils.email_address import extract_request_tag, extract_sender_address

logger = logging.getLogger(__name__)

NO_ADDRESS_EXTRACTED = "no_address_extracted"
UNKNOWN_SENDER = "unknown_sender"
UNKNOWN_REQUEST_TAG = "unknown_request_tag"
NO_OUTSTANDING_REQUEST = "no_outstanding_request"

REQUEST_FROM_TAG = "subject_tag"
REQUEST_FROM_HISTORY = "dispatch_history"


@dataclass(frozen=True)
class CorrelationResult:
    """Outcome of correlating one email.

    ``failure`` is ``None`` on success.  Otherwise it names the first half that
    could not be resolved, while ``request_failure`` and ``vendor_failure``
    keep the detail for each half.
    """

    rfp_id: Optional[str]
    vendor_id: Optional[str]
    sender_address: Optional[str]
    request_source: Optional[str] = None
    request_failure: Optional[str] = None
    vendor_failure: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.rfp_id is not None and self.vendor_id is not None

    @property
    def failure(self) -> Optional[str]:
        if self.success:
            return None
        return self.vendor_failure or self.request_failure

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "rfp_id": self.rfp_id,
            "vendor_id": self.vendor_id,
            "sender_address": self.sender_address,
            "request_source": self.request_source,
            "failure": self.failure,
            "request_failure": self.request_failure,
            "vendor_failure": self.vendor_failure,
        }


class CorrelationEngine:
    def __init__(self, *, rfp_repository=rfp_repo, vendor_repository=vendor_repo) -> None:
        self._rfps = rfp_repository
        self._vendors = vendor_repository

    def correlate(self, sender: Any, subject: Optional[str]) -> CorrelationResult:
        """Correlate a sender header (any supported shape) and subject line."""

        sender_address = extract_sender_address(sender)

        rfp_id: Optional[str] = None
        request_source: Optional[str] = None
        request_failure: Optional[str] = None
        tag = extract_request_tag(subject)
        if tag:
            rfp_id = self._rfps.resolve_rfp_id(tag)
            if rfp_id:
                request_source = REQUEST_FROM_TAG
            else:
                request_failure = UNKNOWN_REQUEST_TAG

        vendor_id: Optional[str] = None
        vendor_failure: Optional[str] = None
        if sender_address is None:
            vendor_failure = NO_ADDRESS_EXTRACTED
        else:
            vendor = self._vendors.find_by_email(sender_address)
            if vendor is None:
                vendor_failure = UNKNOWN_SENDER
            else:
                vendor_id = vendor.id

        if tag is None:
            if vendor_id is not None:
                rfp_id = self._rfps.latest_outstanding_rfp_for_vendor(vendor_id)
            if rfp_id:
                request_source = REQUEST_FROM_HISTORY
            else:
                request_failure = NO_OUTSTANDING_REQUEST

        result = CorrelationResult(
            rfp_id=rfp_id,
            vendor_id=vendor_id,
            sender_address=sender_address,
            request_source=request_source,
            request_failure=request_failure,
            vendor_failure=vendor_failure,
        )
        if not result.success:
            logger.warning(
                "Correlation failed for sender %r subject %r: rfp=%s (%s) vendor=%s (%s)",
                sender_address,
                subject,
                rfp_id,
                request_failure,
                vendor_id,
                vendor_failure,
            )
        return result


__all__ = [
    "CorrelationEngine",
    "CorrelationResult",
    "NO_ADDRESS_EXTRACTED",
    "NO_OUTSTANDING_REQUEST",
    "REQUEST_FROM_HISTORY",
    "REQUEST_FROM_TAG",
    "UNKNOWN_REQUEST_TAG",
    "UNKNOWN_SENDER",
]
