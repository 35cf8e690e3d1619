"""Domain records for requests for proposal, vendors and their proposals.

Records reference each other by identifier only.  Anything that needs the
related object (for example the vendor behind a proposal) resolves it with an
explicit repository lookup at read time.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class RfpStatus(str, Enum):
    """Lifecycle of a request for proposal.  Values only ever move forward."""

    DRAFT = "draft"
    DISPATCHED = "dispatched"
    COLLECTING_RESPONSES = "collecting_responses"
    CLOSED = "closed"

    @classmethod
    def ordered(cls) -> List["RfpStatus"]:
        return [cls.DRAFT, cls.DISPATCHED, cls.COLLECTING_RESPONSES, cls.CLOSED]

    def predecessors(self) -> List["RfpStatus"]:
        order = self.ordered()
        return order[: order.index(self)]


class ProposalStatus(str, Enum):
    RECEIVED = "received"
    PARSED = "parsed"
    REVIEWED = "reviewed"


@dataclass
class RequestedItem:
    name: str
    description: str
    quantity: float
    specifications: Dict[str, Any] = field(default_factory=dict)


@dataclass
class StructuredTerms:
    """Structured form of a natural-language procurement request."""

    title: str
    items: List[RequestedItem]
    budget: Optional[float] = None
    delivery_timeline: Optional[str] = None
    payment_terms: Optional[str] = None
    warranty_requirements: Optional[str] = None
    special_conditions: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "items": [
                {
                    "name": item.name,
                    "description": item.description,
                    "quantity": item.quantity,
                    "specifications": dict(item.specifications),
                }
                for item in self.items
            ],
            "budget": self.budget,
            "delivery_timeline": self.delivery_timeline,
            "payment_terms": self.payment_terms,
            "warranty_requirements": self.warranty_requirements,
            "special_conditions": list(self.special_conditions),
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "StructuredTerms":
        return cls(
            title=payload.get("title") or "",
            items=[
                RequestedItem(
                    name=item.get("name") or "",
                    description=item.get("description") or "",
                    quantity=item.get("quantity") or 0,
                    specifications=dict(item.get("specifications") or {}),
                )
                for item in payload.get("items") or []
            ],
            budget=payload.get("budget"),
            delivery_timeline=payload.get("delivery_timeline"),
            payment_terms=payload.get("payment_terms"),
            warranty_requirements=payload.get("warranty_requirements"),
            special_conditions=list(payload.get("special_conditions") or []),
        )


@dataclass
class DispatchEntry:
    vendor_id: str
    sent_at: datetime


@dataclass
class Rfp:
    id: str
    title: str
    description: str
    structured_terms: Optional[StructuredTerms]
    budget: Optional[float] = None
    deadline: Optional[datetime] = None
    status: RfpStatus = RfpStatus.DRAFT
    dispatches: List[DispatchEntry] = field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class Vendor:
    id: str
    name: str
    email: str
    contact_person: Optional[str] = None
    phone: Optional[str] = None
    specialization: Optional[str] = None
    notes: Optional[str] = None


@dataclass
class RawEmailContent:
    """Inbound content preserved verbatim for audit and re-parsing."""

    sender: Optional[str]
    subject: str
    body: str
    attachments: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "from": self.sender,
            "subject": self.subject,
            "body": self.body,
            "attachments": list(self.attachments),
        }

    @classmethod
    def from_dict(cls, payload: Optional[Dict[str, Any]]) -> "RawEmailContent":
        payload = payload or {}
        return cls(
            sender=payload.get("from"),
            subject=payload.get("subject") or "",
            body=payload.get("body") or "",
            attachments=list(payload.get("attachments") or []),
        )


@dataclass
class QuotedLineItem:
    item_name: str
    unit_price: float
    quantity: float
    total_price: float


@dataclass
class ParsedProposal:
    """Commercial terms extracted from a vendor reply."""

    line_items: List[QuotedLineItem]
    total_price: float
    confidence: float
    delivery_timeline: Optional[str] = None
    payment_terms: Optional[str] = None
    warranty_terms: Optional[str] = None
    special_conditions: List[str] = field(default_factory=list)
    notes: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "line_items": [
                {
                    "item_name": item.item_name,
                    "unit_price": item.unit_price,
                    "quantity": item.quantity,
                    "total_price": item.total_price,
                }
                for item in self.line_items
            ],
            "total_price": self.total_price,
            "delivery_timeline": self.delivery_timeline,
            "payment_terms": self.payment_terms,
            "warranty_terms": self.warranty_terms,
            "special_conditions": list(self.special_conditions),
            "notes": self.notes,
            "confidence": self.confidence,
        }


@dataclass
class Proposal:
    id: str
    rfp_id: str
    vendor_id: str
    raw_email: RawEmailContent
    status: ProposalStatus = ProposalStatus.RECEIVED
    parsed_data: Optional[Dict[str, Any]] = None
    parsing_confidence: Optional[float] = None
    requires_review: bool = False
    received_at: Optional[datetime] = None
    parsed_at: Optional[datetime] = None
