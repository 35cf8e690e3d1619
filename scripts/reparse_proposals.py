"""Re-run extraction for proposals still waiting in ``received``.

Useful after an outage of the extraction service: every proposal whose parse
failed keeps its raw email, so it can simply be parsed again in place.
"""
from __future__ import annotations

import logging
import os
import sys

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from services.rfp_desk import build_desk, init_schemas

logging.basicConfig(level=os.environ.get("RFP_DESK_LOG_LEVEL", "INFO"))
logger = logging.getLogger("reparse_proposals")


def run() -> int:
    init_schemas()
    desk = build_desk()
    outcomes = desk.lifecycle.reparse_pending()
    parsed = sum(1 for outcome in outcomes if outcome.success)
    for outcome in outcomes:
        if outcome.success:
            logger.info(
                "Proposal %s parsed (confidence %.2f, review=%s)",
                outcome.proposal_id,
                outcome.confidence,
                outcome.requires_review,
            )
        else:
            logger.warning("Proposal %s still unparsed: %s", outcome.proposal_id, outcome.error)
    print(f"Re-parse complete: {parsed} parsed, {len(outcomes) - parsed} failed, {len(outcomes)} total")
    return 0 if parsed == len(outcomes) else 1


if __name__ == "__main__":
    sys.exit(run())
