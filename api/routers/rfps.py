"""RFP routes: creation, dispatch, closing and comparison."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException, Request, status
from pydantic import BaseModel, Field, field_validator
from starlette.concurrency import run_in_threadpool

from api.dependencies import SERVICE_ERRORS, get_desk, to_http_exception
from services.comparison import build_comparison_report
from services.errors import NotFoundError
from services.rfp_service import rfp_view

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/rfps", tags=["RFPs"])


class RfpCreateRequest(BaseModel):
    """Natural-language procurement request."""

    description: str = Field(..., description="Free-text description of what to procure.")
    budget: Optional[float] = Field(default=None, ge=0)
    deadline: Optional[datetime] = None

    @field_validator("description", mode="before")
    @classmethod
    def _strip(cls, value: Any) -> str:
        if value is None:
            raise ValueError("description is required")
        text = str(value).strip()
        if not text:
            raise ValueError("description must not be empty")
        return text


class VendorSelection(BaseModel):
    vendor_ids: List[str] = Field(..., min_length=1)


class DispatchRecordRequest(BaseModel):
    vendor_ids: List[str] = Field(default_factory=list)
    sent_at: Optional[datetime] = None


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_rfp(req: RfpCreateRequest, request: Request) -> Dict[str, Any]:
    desk = get_desk(request)
    try:
        rfp = await run_in_threadpool(
            desk.rfps.create_rfp, req.description, budget=req.budget, deadline=req.deadline
        )
    except SERVICE_ERRORS as exc:
        raise to_http_exception(exc)
    return rfp_view(rfp)


@router.get("")
async def list_rfps(request: Request) -> Dict[str, Any]:
    desk = get_desk(request)
    rfps = await run_in_threadpool(desk.rfps.list_rfps)
    return {"count": len(rfps), "rfps": [rfp_view(rfp) for rfp in rfps]}


@router.get("/{rfp_id}")
async def get_rfp(rfp_id: str, request: Request) -> Dict[str, Any]:
    desk = get_desk(request)
    try:
        rfp = await run_in_threadpool(desk.rfps.get_rfp, rfp_id)
    except NotFoundError as exc:
        raise to_http_exception(exc)
    return rfp_view(rfp)


@router.post("/{rfp_id}/send")
async def send_rfp(rfp_id: str, req: VendorSelection, request: Request) -> Dict[str, Any]:
    desk = get_desk(request)
    if desk.mailer is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="No mail transport is configured",
        )

    def _send() -> Dict[str, Any]:
        rfp = desk.rfps.get_rfp(rfp_id)
        vendors = desk.rfps.vendors_by_ids(req.vendor_ids)
        missing = sorted(set(req.vendor_ids) - {vendor.id for vendor in vendors})
        if missing:
            raise NotFoundError("vendor", ", ".join(missing))
        report = desk.mailer.send_rfp_to_vendors(rfp, vendors)
        return {"results": report.to_dict(), "rfp": rfp_view(desk.rfps.get_rfp(rfp_id))}

    try:
        return await run_in_threadpool(_send)
    except SERVICE_ERRORS as exc:
        raise to_http_exception(exc)


@router.post("/{rfp_id}/dispatches")
async def record_dispatches(
    rfp_id: str, req: DispatchRecordRequest, request: Request
) -> Dict[str, Any]:
    desk = get_desk(request)
    try:
        await run_in_threadpool(
            desk.tracker.record_dispatch, rfp_id, req.vendor_ids, sent_at=req.sent_at
        )
        rfp = await run_in_threadpool(desk.rfps.get_rfp, rfp_id)
    except SERVICE_ERRORS as exc:
        raise to_http_exception(exc)
    return rfp_view(rfp)


@router.post("/{rfp_id}/close")
async def close_rfp(rfp_id: str, request: Request) -> Dict[str, Any]:
    desk = get_desk(request)
    try:
        rfp = await run_in_threadpool(desk.rfps.close_rfp, rfp_id)
    except SERVICE_ERRORS as exc:
        raise to_http_exception(exc)
    return rfp_view(rfp)


@router.get("/{rfp_id}/proposals")
async def list_proposals(rfp_id: str, request: Request) -> Dict[str, Any]:
    desk = get_desk(request)
    try:
        proposals = await run_in_threadpool(desk.rfps.list_proposals, rfp_id)
    except SERVICE_ERRORS as exc:
        raise to_http_exception(exc)
    return {"rfp_id": rfp_id, "count": len(proposals), "proposals": proposals}


@router.get("/{rfp_id}/comparison")
async def compare_proposals(rfp_id: str, request: Request) -> Dict[str, Any]:
    """Always renderable; falls back to raw proposals when analysis fails."""

    desk = get_desk(request)
    try:
        return await run_in_threadpool(build_comparison_report, desk.comparison, rfp_id)
    except NotFoundError as exc:
        raise to_http_exception(exc)
