"""Render rfps as plain-text emails and fan them out to vendors.

The actual transport is injected as a callable ``(to, subject, body)`` that
returns an :class:`EmailSendResult`.  Vendors that were reached are handed to
the dispatch tracker; failures for one vendor never stop the others.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

from config.settings import Settings, settings as default_settings
from models.rfp import Rfp, Vendor
from services.dispatch_tracker import DispatchTracker
from utils.email_address import format_request_tag, is_valid_email

logger = logging.getLogger(__name__)

_RULE = "=" * 50


@dataclass
class EmailSendResult:
    """Outcome of one transport send attempt."""

    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


MailTransport = Callable[[str, str, str], EmailSendResult]


@dataclass
class DispatchReport:
    total: int
    successful: List[Dict[str, Any]] = field(default_factory=list)
    failed: List[Dict[str, Any]] = field(default_factory=list)
    errors: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def successful_vendor_ids(self) -> List[str]:
        return [entry["vendor_id"] for entry in self.successful]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "successful": list(self.successful),
            "failed": list(self.failed),
            "errors": list(self.errors),
        }


def rfp_subject(rfp: Rfp) -> str:
    return f"Request for Proposal - {rfp.title} {format_request_tag(rfp.id)}"


def _format_amount(value: float) -> str:
    if float(value).is_integer():
        return f"${value:,.0f}"
    return f"${value:,.2f}"


def format_rfp_email(rfp: Rfp, *, team_name: str = "Procurement Team") -> str:
    terms = rfp.structured_terms
    lines: List[str] = [
        "Dear Vendor,",
        "",
        "We are seeking proposals for the following procurement requirement:",
        "",
        "=== RFP DETAILS ===",
        "",
        f"Title: {rfp.title}",
        "",
    ]
    if rfp.description:
        lines += ["Description:", rfp.description, ""]

    if terms and terms.items:
        lines += ["ITEMS REQUESTED:", _RULE, ""]
        for index, item in enumerate(terms.items, start=1):
            lines.append(f"{index}. {item.name}")
            if item.description:
                lines.append(f"   Description: {item.description}")
            if item.quantity:
                quantity = int(item.quantity) if float(item.quantity).is_integer() else item.quantity
                lines.append(f"   Quantity: {quantity}")
            if item.specifications:
                lines.append("   Specifications:")
                for key, value in item.specifications.items():
                    lines.append(f"     - {key}: {value}")
            lines.append("")

    budget = rfp.budget if rfp.budget is not None else (terms.budget if terms else None)
    if budget:
        lines += [f"BUDGET: {_format_amount(budget)}", ""]
    if terms and terms.delivery_timeline:
        lines += [f"DELIVERY TIMELINE: {terms.delivery_timeline}", ""]
    if terms and terms.payment_terms:
        lines += [f"PAYMENT TERMS: {terms.payment_terms}", ""]
    if terms and terms.warranty_requirements:
        lines += [f"WARRANTY REQUIREMENTS: {terms.warranty_requirements}", ""]
    if terms and terms.special_conditions:
        lines.append("SPECIAL CONDITIONS:")
        lines += [
            f"{index}. {condition}"
            for index, condition in enumerate(terms.special_conditions, start=1)
        ]
        lines.append("")
    if rfp.deadline:
        lines += [f"RESPONSE DEADLINE: {rfp.deadline.strftime('%B %d, %Y')}", ""]

    lines += [
        _RULE,
        "",
        "RESPONSE INSTRUCTIONS:",
        "Please reply to this email with your proposal including:",
        "- Detailed pricing for each item",
        "- Delivery timeline",
        "- Payment terms",
        "- Warranty information",
        "- Any special conditions or notes",
        "",
        "Please keep the RFP reference number in the subject line when replying.",
        "",
        "Thank you for your consideration.",
        "",
        "Best regards,",
        team_name,
    ]
    return "\n".join(lines)


class RfpMailer:
    def __init__(
        self,
        transport: MailTransport,
        tracker: DispatchTracker,
        *,
        config: Optional[Settings] = None,
    ) -> None:
        config = config or default_settings
        self._transport = transport
        self._tracker = tracker
        self.team_name = config.procurement_team_name

    def _send_one(self, vendor: Vendor, subject: str, body: str) -> EmailSendResult:
        if not is_valid_email(vendor.email):
            return EmailSendResult(success=False, error=f"Invalid email address: {vendor.email}")
        try:
            return self._transport(vendor.email, subject, body)
        except Exception as exc:
            logger.warning("Sending rfp to vendor %s <%s> failed: %s", vendor.id, vendor.email, exc)
            return EmailSendResult(success=False, error=str(exc))

    def send_rfp_to_vendors(self, rfp: Rfp, vendors: Sequence[Vendor]) -> DispatchReport:
        subject = rfp_subject(rfp)
        body = format_rfp_email(rfp, team_name=self.team_name)
        report = DispatchReport(total=len(vendors))
        for vendor in vendors:
            result = self._send_one(vendor, subject, body)
            if result.success:
                report.successful.append(
                    {
                        "vendor_id": vendor.id,
                        "vendor_name": vendor.name,
                        "email": vendor.email,
                        "message_id": result.message_id,
                    }
                )
            else:
                report.failed.append(
                    {"vendor_id": vendor.id, "vendor_name": vendor.name, "email": vendor.email}
                )
                report.errors.append(
                    {
                        "vendor": vendor.name,
                        "email": vendor.email,
                        "error": result.error or "send failed",
                    }
                )
        logger.info(
            "Rfp %s sent: %d successful, %d failed",
            rfp.id,
            len(report.successful),
            len(report.failed),
        )
        if report.successful:
            self._tracker.record_dispatch(rfp.id, report.successful_vendor_ids)
        return report


__all__ = [
    "DispatchReport",
    "EmailSendResult",
    "MailTransport",
    "RfpMailer",
    "format_rfp_email",
    "rfp_subject",
]
