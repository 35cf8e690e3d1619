"""Exception types shared by the RFP workflow services."""

from __future__ import annotations

from typing import Optional, Sequence


class RfpValidationError(ValueError):
    """Caller supplied input that cannot be processed."""

    def __init__(self, message: str, errors: Optional[Sequence[str]] = None) -> None:
        super().__init__(message)
        self.errors = list(errors or [])


class NotFoundError(LookupError):
    """A referenced record does not exist."""

    def __init__(self, entity: str, identifier: object) -> None:
        super().__init__(f"{entity} {identifier} not found")
        self.entity = entity
        self.identifier = identifier


class DuplicateProposalError(RuntimeError):
    """A proposal for the same rfp and vendor is already recorded."""

    def __init__(self, rfp_id: str, vendor_id: str, proposal_id: Optional[str] = None) -> None:
        super().__init__(f"proposal already recorded for rfp {rfp_id} and vendor {vendor_id}")
        self.rfp_id = rfp_id
        self.vendor_id = vendor_id
        self.proposal_id = proposal_id


class ComparisonError(RuntimeError):
    """The comparison service returned output that cannot be shown."""

    def __init__(self, message: str, errors: Optional[Sequence[str]] = None) -> None:
        super().__init__(message)
        self.errors = list(errors or [])


__all__ = [
    "ComparisonError",
    "DuplicateProposalError",
    "NotFoundError",
    "RfpValidationError",
]
