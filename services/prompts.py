"""Prompt templates sent to the extraction service."""

from __future__ import annotations

import json
from typing import Any, Dict, Optional, Sequence

from models.rfp import Proposal, RawEmailContent, Rfp, Vendor

STRUCTURE_RFP_SYSTEM = (
    "You are a procurement assistant that turns free-text purchasing requests "
    "into structured JSON. Answer with a single JSON object that follows the "
    "requested schema exactly."
)

STRUCTURE_RFP_TEMPLATE = """Structure the following procurement request as JSON.

Request:
{description}

Fields:
- title: short title for the request (required)
- items: list of requested items, each with name, description, quantity (number) and a specifications object (required, at least one)
- budget: overall budget as a number, or null when not mentioned
- delivery_timeline: required delivery date or window, or null
- payment_terms: payment conditions, or null
- warranty_requirements: expected warranty, or null
- special_conditions: list of any other conditions (empty list when none)

Respond with JSON only, shaped as:
{{
  "title": "string",
  "items": [{{"name": "string", "description": "string", "quantity": 1, "specifications": {{}}}}],
  "budget": null,
  "delivery_timeline": null,
  "payment_terms": null,
  "warranty_requirements": null,
  "special_conditions": []
}}

Use null for missing single values and an empty list for missing lists.
Put technical details of an item into its specifications object."""

PARSE_PROPOSAL_SYSTEM = (
    "You extract commercial terms from vendor replies to requests for proposal. "
    "Answer with a single JSON object that follows the requested schema exactly "
    "and report how confident you are in the extraction."
)

PARSE_PROPOSAL_TEMPLATE = """Extract the pricing and terms offered in this vendor email.

From: {sender}
Subject: {subject}

Body:
{body}
{attachments}
Fields:
- line_items: list of quoted items, each with item_name, unit_price, quantity and total_price as numbers (required)
- total_price: overall quoted total as a number (required)
- delivery_timeline: offered delivery schedule, or null
- payment_terms: offered payment conditions, or null
- warranty_terms: offered warranty, or null
- special_conditions: list of exceptions or notes (empty list when none)
- confidence: number between 0 and 1 describing how reliable the extraction is (required)

Respond with JSON only, shaped as:
{{
  "line_items": [{{"item_name": "string", "unit_price": 0, "quantity": 0, "total_price": 0}}],
  "total_price": 0,
  "delivery_timeline": null,
  "payment_terms": null,
  "warranty_terms": null,
  "special_conditions": [],
  "confidence": 0.9
}}

Lower the confidence when prices are incomplete or ambiguous.
Derive total_price from the line items when the email does not state it.
Do not invent numbers that are not in the email."""

COMPARE_PROPOSALS_SYSTEM = (
    "You are a procurement analyst comparing vendor proposals against a request "
    "for proposal. Judge requirement fit, price, terms and completeness, and "
    "answer with a single JSON object that follows the requested schema exactly."
)

COMPARE_PROPOSALS_TEMPLATE = """Compare the vendor proposals below against the request and recommend one vendor.

Request terms:
{terms}

Budget: {budget}
Deadline: {deadline}

Proposals:
{proposals}

For every proposal give strengths, weaknesses, red flags and scores from 0 to 10
for price, delivery, terms and completeness, plus a total_score (average of the four).
Then recommend exactly one vendor with reasoning and a confidence between 0 and 1.

Respond with JSON only, shaped as:
{{
  "proposal_analysis": [
    {{
      "vendor_id": "string",
      "vendor_name": "string",
      "strengths": [],
      "weaknesses": [],
      "scores": {{"price": 0, "delivery": 0, "terms": 0, "completeness": 0}},
      "total_score": 0,
      "red_flags": []
    }}
  ],
  "recommendation": {{"vendor_id": "string", "vendor_name": "string", "reasoning": "string", "confidence": 0.8}},
  "summary": "string"
}}"""

_PROPOSAL_BLOCK = """Proposal {index}:
Vendor: {vendor_name} (ID: {vendor_id})
Email: {vendor_email}
Specialization: {specialization}

{content_label}:
{content}

Parsing Confidence: {confidence}
Requires Review: {requires_review}
Received At: {received_at}"""


def structure_rfp_prompt(description: str) -> str:
    return STRUCTURE_RFP_TEMPLATE.format(description=description.strip())


def parse_proposal_prompt(raw_email: RawEmailContent) -> str:
    attachments = ""
    if raw_email.attachments:
        attachments = f"\nAttachments: {', '.join(raw_email.attachments)}\n"
    return PARSE_PROPOSAL_TEMPLATE.format(
        sender=raw_email.sender or "Unknown",
        subject=raw_email.subject or "No subject",
        body=raw_email.body,
        attachments=attachments,
    )


def _dump(value: Any) -> str:
    return json.dumps(value, indent=2, ensure_ascii=False, default=str)


def compare_proposals_prompt(
    rfp: Rfp,
    proposals: Sequence[Proposal],
    vendors: Dict[str, Vendor],
) -> str:
    blocks = []
    for index, proposal in enumerate(proposals, start=1):
        vendor: Optional[Vendor] = vendors.get(proposal.vendor_id)
        if proposal.parsed_data is not None:
            label, content = "Parsed Data", _dump(proposal.parsed_data)
        else:
            label, content = "Raw Email (not parsed)", proposal.raw_email.body
        blocks.append(
            _PROPOSAL_BLOCK.format(
                index=index,
                vendor_name=vendor.name if vendor else "Unknown Vendor",
                vendor_id=proposal.vendor_id,
                vendor_email=vendor.email if vendor else "N/A",
                specialization=(vendor.specialization if vendor else None) or "N/A",
                content_label=label,
                content=content,
                confidence=(
                    "N/A" if proposal.parsing_confidence is None else proposal.parsing_confidence
                ),
                requires_review="Yes" if proposal.requires_review else "No",
                received_at=proposal.received_at.isoformat() if proposal.received_at else "N/A",
            )
        )
    terms = rfp.structured_terms.to_dict() if rfp.structured_terms else {"description": rfp.description}
    return COMPARE_PROPOSALS_TEMPLATE.format(
        terms=_dump(terms),
        budget=rfp.budget if rfp.budget is not None else "Not specified",
        deadline=rfp.deadline.isoformat() if rfp.deadline else "Not specified",
        proposals="\n---\n".join(blocks),
    )
