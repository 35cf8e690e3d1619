"""Repository modules for the RFP desk persistence layer."""

__all__ = [
    "rfp_repo",
    "vendor_repo",
    "proposal_repo",
]
