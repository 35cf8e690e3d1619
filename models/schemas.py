"""Schemas for structured output returned by the extraction service.

Each ``validate_*`` helper returns a :class:`SchemaResult` instead of raising so
callers decide how a failed validation is surfaced.  Validation is strict about
the fields a caller depends on (numbers stay numbers, required lists must be
present) and lenient only where a field is documented as optional.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Generic, List, Optional, Tuple, TypeVar

from pydantic import BaseModel, Field, ValidationError, ValidationInfo, field_validator

from models.rfp import ParsedProposal, QuotedLineItem, RequestedItem, StructuredTerms

T = TypeVar("T")


@dataclass(frozen=True)
class SchemaResult(Generic[T]):
    """Either a validated value or the list of reasons it was rejected."""

    value: Optional[T] = None
    errors: Tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return self.value is not None and not self.errors

    @classmethod
    def success(cls, value: T) -> "SchemaResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, *errors: str) -> "SchemaResult[T]":
        return cls(errors=tuple(errors) or ("invalid payload",))


def _format_errors(exc: ValidationError) -> Tuple[str, ...]:
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()))
        messages.append(f"{location or '<root>'}: {error.get('msg')}")
    return tuple(messages)


def _optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _text_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value if item is not None]


# ---------------------------------------------------------------------------
# Request structuring
# ---------------------------------------------------------------------------
class _RequestedItemSchema(BaseModel):
    name: str = Field(min_length=1)
    description: str = Field(min_length=1)
    quantity: float = Field(strict=True)
    specifications: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("specifications", mode="before")
    @classmethod
    def _coerce_specifications(cls, value: Any) -> Dict[str, Any]:
        return value if isinstance(value, dict) else {}


class _StructuredTermsSchema(BaseModel):
    title: str = Field(min_length=1)
    items: List[_RequestedItemSchema] = Field(min_length=1)
    budget: Optional[float] = None
    delivery_timeline: Optional[str] = None
    payment_terms: Optional[str] = None
    warranty_requirements: Optional[str] = None
    special_conditions: List[str] = Field(default_factory=list)

    @field_validator("budget", mode="before")
    @classmethod
    def _coerce_budget(cls, value: Any) -> Optional[float]:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None
        return float(value)

    @field_validator(
        "delivery_timeline", "payment_terms", "warranty_requirements", mode="before"
    )
    @classmethod
    def _coerce_text(cls, value: Any) -> Optional[str]:
        return _optional_text(value)

    @field_validator("special_conditions", mode="before")
    @classmethod
    def _coerce_conditions(cls, value: Any) -> List[str]:
        return _text_list(value)


def validate_structured_terms(payload: Any) -> SchemaResult[StructuredTerms]:
    if not isinstance(payload, dict):
        return SchemaResult.failure("expected a JSON object")
    try:
        parsed = _StructuredTermsSchema.model_validate(payload)
    except ValidationError as exc:
        return SchemaResult.failure(*_format_errors(exc))
    return SchemaResult.success(
        StructuredTerms(
            title=parsed.title,
            items=[
                RequestedItem(
                    name=item.name,
                    description=item.description,
                    quantity=item.quantity,
                    specifications=dict(item.specifications),
                )
                for item in parsed.items
            ],
            budget=parsed.budget,
            delivery_timeline=parsed.delivery_timeline,
            payment_terms=parsed.payment_terms,
            warranty_requirements=parsed.warranty_requirements,
            special_conditions=list(parsed.special_conditions),
        )
    )


# ---------------------------------------------------------------------------
# Proposal parsing
# ---------------------------------------------------------------------------
class _QuotedLineItemSchema(BaseModel):
    item_name: str = Field(min_length=1)
    unit_price: float = Field(strict=True, ge=0)
    quantity: float = Field(strict=True, ge=0)
    total_price: float = Field(strict=True, ge=0)


class _ParsedProposalSchema(BaseModel):
    line_items: List[_QuotedLineItemSchema] = Field(min_length=1)
    total_price: float = Field(strict=True, ge=0)
    # Absent confidence is allowed and later treated as 0.0.
    confidence: Optional[float] = Field(default=None, strict=True, ge=0, le=1)
    delivery_timeline: Optional[str] = None
    payment_terms: Optional[str] = None
    warranty_terms: Optional[str] = None
    special_conditions: List[str] = Field(default_factory=list)
    notes: Optional[str] = None

    @field_validator(
        "delivery_timeline", "payment_terms", "warranty_terms", "notes", mode="before"
    )
    @classmethod
    def _coerce_text(cls, value: Any) -> Optional[str]:
        return _optional_text(value)

    @field_validator("special_conditions", mode="before")
    @classmethod
    def _coerce_conditions(cls, value: Any) -> List[str]:
        return _text_list(value)


def validate_parsed_proposal(payload: Any) -> SchemaResult[ParsedProposal]:
    if not isinstance(payload, dict):
        return SchemaResult.failure("expected a JSON object")
    try:
        parsed = _ParsedProposalSchema.model_validate(payload)
    except ValidationError as exc:
        return SchemaResult.failure(*_format_errors(exc))
    return SchemaResult.success(
        ParsedProposal(
            line_items=[
                QuotedLineItem(
                    item_name=item.item_name,
                    unit_price=item.unit_price,
                    quantity=item.quantity,
                    total_price=item.total_price,
                )
                for item in parsed.line_items
            ],
            total_price=parsed.total_price,
            confidence=parsed.confidence if parsed.confidence is not None else 0.0,
            delivery_timeline=parsed.delivery_timeline,
            payment_terms=parsed.payment_terms,
            warranty_terms=parsed.warranty_terms,
            special_conditions=list(parsed.special_conditions),
            notes=parsed.notes,
        )
    )


# ---------------------------------------------------------------------------
# Proposal comparison
# ---------------------------------------------------------------------------
class CategoryScores(BaseModel):
    price: float
    delivery: float
    terms: float
    completeness: float


class VendorAnalysis(BaseModel):
    vendor_id: str = Field(min_length=1)
    vendor_name: str = Field(min_length=1)
    strengths: List[str] = Field(default_factory=list)
    weaknesses: List[str] = Field(default_factory=list)
    scores: CategoryScores
    total_score: Optional[float] = None
    red_flags: List[str] = Field(default_factory=list)

    @field_validator("vendor_id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> Any:
        return str(value) if isinstance(value, int) and not isinstance(value, bool) else value

    @field_validator("strengths", "weaknesses", "red_flags", mode="before")
    @classmethod
    def _coerce_lists(cls, value: Any) -> List[str]:
        return _text_list(value)

    @field_validator("total_score", mode="before")
    @classmethod
    def _coerce_total(cls, value: Any) -> Optional[float]:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None
        return float(value)


class Recommendation(BaseModel):
    vendor_id: str = Field(min_length=1)
    vendor_name: Optional[str] = None
    reasoning: str = ""
    confidence: float = Field(default=None, validate_default=True)

    @field_validator("vendor_id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> Any:
        return str(value) if isinstance(value, int) and not isinstance(value, bool) else value

    @field_validator("vendor_name", "reasoning", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> Any:
        return "" if value is None else str(value)

    @field_validator("confidence", mode="before")
    @classmethod
    def _default_confidence(cls, value: Any, info: ValidationInfo) -> float:
        default = (info.context or {}).get("default_confidence", 0.8)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return default
        if not 0.0 <= float(value) <= 1.0:
            return default
        return float(value)


class ComparisonResult(BaseModel):
    """Ranked recommendation across every proposal received for an RFP."""

    proposal_analysis: List[VendorAnalysis]
    recommendation: Recommendation
    summary: str = Field(min_length=1)


def validate_comparison(
    payload: Any, *, default_confidence: float = 0.8
) -> SchemaResult[ComparisonResult]:
    if not isinstance(payload, dict):
        return SchemaResult.failure("expected a JSON object")
    try:
        parsed = ComparisonResult.model_validate(
            payload, context={"default_confidence": default_confidence}
        )
    except ValidationError as exc:
        return SchemaResult.failure(*_format_errors(exc))
    return SchemaResult.success(parsed)
