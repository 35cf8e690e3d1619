"""Proposal routes: inbound delivery, mailbox polling, review and re-parsing."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Union

from fastapi import APIRouter, HTTPException, Request, Response, status
from pydantic import BaseModel, ConfigDict, Field
from starlette.concurrency import run_in_threadpool

from api.dependencies import SERVICE_ERRORS, get_desk, to_http_exception
from services.comparison import proposal_view
from services.email_normalizer import from_webhook
from services.errors import DuplicateProposalError
from services.imap_poller import MailboxNotConfigured
from services.inbound_pipeline import DUPLICATE_RESPONSE

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/proposals", tags=["Proposals"])


class InboundEmailPayload(BaseModel):
    """Push-delivered email as posted by an inbound mail webhook."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    sender_field: Optional[Union[str, Dict[str, Any]]] = Field(default=None, alias="from")
    sender: Optional[Union[str, Dict[str, Any]]] = None
    from_name: Optional[str] = None
    subject: Optional[str] = None
    text: Optional[str] = None
    body: Optional[str] = None
    plain: Optional[str] = None
    html: Optional[str] = None
    date: Optional[str] = None
    message_id: Optional[str] = None
    attachments: List[Any] = Field(default_factory=list)


@router.post("/inbound")
async def receive_inbound(
    payload: InboundEmailPayload, request: Request, response: Response
) -> Dict[str, Any]:
    """Correlate and record one pushed email.

    A new proposal answers ``201``; a redelivery of an already recorded reply
    answers ``409``; correlation and processing failures answer ``200`` with the
    failure reason so the sender does not retry.
    """

    desk = get_desk(request)
    email = from_webhook(payload.model_dump(by_alias=True))
    result = await run_in_threadpool(desk.pipeline.process_inbound_email, email)
    if result.reason == DUPLICATE_RESPONSE:
        correlation = result.correlation
        raise to_http_exception(
            DuplicateProposalError(correlation.rfp_id, correlation.vendor_id, result.proposal_id)
        )
    if result.success:
        response.status_code = status.HTTP_201_CREATED
    return result.to_dict()


@router.post("/poll")
async def poll_mailbox(request: Request) -> Dict[str, Any]:
    desk = get_desk(request)
    try:
        results = await run_in_threadpool(desk.poller.poll_once)
    except MailboxNotConfigured as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
    return {
        "processed": len(results),
        "created": sum(1 for result in results if result.success),
        "results": [result.to_dict() for result in results],
    }


@router.post("/reparse")
async def reparse_pending(request: Request) -> Dict[str, Any]:
    desk = get_desk(request)
    outcomes = await run_in_threadpool(desk.lifecycle.reparse_pending)
    return {
        "total": len(outcomes),
        "parsed": sum(1 for outcome in outcomes if outcome.success),
        "failed": sum(1 for outcome in outcomes if not outcome.success),
        "results": [outcome.to_dict() for outcome in outcomes],
    }


@router.post("/{proposal_id}/review")
async def mark_reviewed(proposal_id: str, request: Request) -> Dict[str, Any]:
    desk = get_desk(request)
    try:
        proposal = await run_in_threadpool(desk.lifecycle.mark_reviewed, proposal_id)
    except SERVICE_ERRORS as exc:
        raise to_http_exception(exc)
    return proposal_view(proposal, None)
