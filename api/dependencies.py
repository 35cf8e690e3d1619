"""Shared helpers for the HTTP routers."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import HTTPException, Request, status

from services.errors import DuplicateProposalError, NotFoundError, RfpValidationError
from services.extraction_oracle import MalformedOutputError, OracleError

logger = logging.getLogger(__name__)


def get_desk(request: Request) -> Any:
    desk = getattr(request.app.state, "desk", None)
    if desk is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="RFP desk is not available",
        )
    return desk


def to_http_exception(exc: Exception) -> HTTPException:
    """Translate a service error into the matching HTTP error."""

    if isinstance(exc, RfpValidationError):
        return HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": str(exc), "errors": exc.errors},
        )
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, DuplicateProposalError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, OracleError):
        return HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={"message": str(exc), "kind": exc.kind.value},
        )
    if isinstance(exc, MalformedOutputError):
        return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc))
    logger.exception("Unhandled error in request handler", exc_info=exc)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Internal server error"
    )


SERVICE_ERRORS = (
    RfpValidationError,
    NotFoundError,
    DuplicateProposalError,
    OracleError,
    MalformedOutputError,
)
