"""Record which vendors an rfp was sent to."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Iterable, List, Optional

from models.rfp import RfpStatus
from repositories import rfp_repo
from services.errors import NotFoundError

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DispatchTracker:
    def __init__(
        self,
        *,
        rfp_repository=rfp_repo,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._rfps = rfp_repository
        self._clock = clock

    def record_dispatch(
        self,
        rfp_id: str,
        vendor_ids: Iterable[str],
        *,
        sent_at: Optional[datetime] = None,
    ) -> List[str]:
        """Upsert ``(vendor_id, sent_at)`` for each vendor that was notified.

        A vendor already in the list only has its timestamp refreshed.  A
        ``draft`` rfp becomes ``dispatched`` once at least one vendor is
        recorded.  Returns the de-duplicated vendor ids that were recorded.
        """

        if self._rfps.get_rfp(rfp_id) is None:
            raise NotFoundError("rfp", rfp_id)
        recorded = [vendor_id for vendor_id in dict.fromkeys(vendor_ids) if vendor_id]
        if not recorded:
            return []
        self._rfps.upsert_dispatches(rfp_id, recorded, sent_at or self._clock())
        logger.info("Recorded dispatch of rfp %s to %d vendor(s)", rfp_id, len(recorded))
        self._rfps.advance_status(rfp_id, RfpStatus.DISPATCHED)
        return recorded


__all__ = ["DispatchTracker"]
