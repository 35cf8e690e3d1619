"""Persistence for vendor proposals.

``insert_if_absent`` is the only writer that creates rows and relies on the
``(rfp_id, vendor_id)`` unique constraint, so concurrent deliveries of the same
reply can never produce two proposals.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from models.rfp import Proposal, ProposalStatus, RawEmailContent
from services.db import (
    execute,
    fetch_dicts,
    fetch_one_dict,
    from_db_json,
    from_db_timestamp,
    get_conn,
    run_ddl,
    to_db_json,
    to_db_timestamp,
)

logger = logging.getLogger(__name__)

DDL_PG = """
CREATE TABLE IF NOT EXISTS proposals (
    id TEXT PRIMARY KEY,
    rfp_id TEXT NOT NULL,
    vendor_id TEXT NOT NULL,
    raw_email JSONB NOT NULL,
    status TEXT NOT NULL DEFAULT 'received',
    parsed_data JSONB,
    parsing_confidence NUMERIC(4, 3),
    requires_review BOOLEAN NOT NULL DEFAULT FALSE,
    received_at TIMESTAMPTZ NOT NULL,
    parsed_at TIMESTAMPTZ,
    CONSTRAINT proposals_rfp_vendor_unique UNIQUE (rfp_id, vendor_id)
);

CREATE INDEX IF NOT EXISTS idx_proposals_status
ON proposals (status);
"""

DDL_SQLITE = """
CREATE TABLE IF NOT EXISTS proposals (
    id TEXT PRIMARY KEY,
    rfp_id TEXT NOT NULL,
    vendor_id TEXT NOT NULL,
    raw_email TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'received',
    parsed_data TEXT,
    parsing_confidence REAL,
    requires_review INTEGER NOT NULL DEFAULT 0,
    received_at TEXT NOT NULL,
    parsed_at TEXT,
    UNIQUE (rfp_id, vendor_id)
);

CREATE INDEX IF NOT EXISTS idx_proposals_status
ON proposals (status);
"""

_COLUMNS = (
    "id, rfp_id, vendor_id, raw_email, status, parsed_data, parsing_confidence, "
    "requires_review, received_at, parsed_at"
)


def init_schema() -> None:
    run_ddl(DDL_PG, DDL_SQLITE)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _row_to_proposal(row: Dict[str, Any]) -> Proposal:
    confidence = row.get("parsing_confidence")
    return Proposal(
        id=row["id"],
        rfp_id=row["rfp_id"],
        vendor_id=row["vendor_id"],
        raw_email=RawEmailContent.from_dict(from_db_json(row.get("raw_email"))),
        status=ProposalStatus(row["status"]),
        parsed_data=from_db_json(row.get("parsed_data")),
        parsing_confidence=None if confidence is None else float(confidence),
        requires_review=bool(row.get("requires_review")),
        received_at=from_db_timestamp(row.get("received_at")),
        parsed_at=from_db_timestamp(row.get("parsed_at")),
    )


def insert_if_absent(
    rfp_id: str,
    vendor_id: str,
    raw_email: RawEmailContent,
    *,
    received_at: Optional[datetime] = None,
) -> Tuple[bool, str]:
    """Insert a ``received`` proposal unless one exists for the pair.

    Returns ``(created, proposal_id)``; on a duplicate the id is that of the
    existing row, which is left untouched.
    """

    proposal_id = uuid.uuid4().hex
    with get_conn() as conn:
        cur = execute(
            conn,
            f"""
            INSERT INTO proposals ({_COLUMNS})
            VALUES (?, ?, ?, ?, ?, NULL, NULL, ?, ?, NULL)
            ON CONFLICT (rfp_id, vendor_id) DO NOTHING
            """,
            (
                proposal_id,
                rfp_id,
                vendor_id,
                to_db_json(raw_email.to_dict()),
                ProposalStatus.RECEIVED.value,
                False,
                to_db_timestamp(conn, received_at or _now()),
            ),
        )
        created = cur.rowcount == 1
        cur.close()
        if created:
            return True, proposal_id
        existing = fetch_one_dict(
            execute(
                conn,
                "SELECT id FROM proposals WHERE rfp_id=? AND vendor_id=?",
                (rfp_id, vendor_id),
            )
        )
    return False, existing["id"] if existing else ""


def get_proposal(proposal_id: str) -> Optional[Proposal]:
    if not proposal_id:
        return None
    with get_conn() as conn:
        row = fetch_one_dict(
            execute(conn, f"SELECT {_COLUMNS} FROM proposals WHERE id=?", (proposal_id,))
        )
    return _row_to_proposal(row) if row else None


def list_for_rfp(rfp_id: str) -> List[Proposal]:
    with get_conn() as conn:
        rows = fetch_dicts(
            execute(
                conn,
                f"SELECT {_COLUMNS} FROM proposals WHERE rfp_id=? ORDER BY received_at DESC",
                (rfp_id,),
            )
        )
    return [_row_to_proposal(row) for row in rows]


def mark_parsed(
    proposal_id: str,
    parsed_data: Dict[str, Any],
    confidence: float,
    requires_review: bool,
    *,
    parsed_at: Optional[datetime] = None,
) -> bool:
    with get_conn() as conn:
        cur = execute(
            conn,
            """
            UPDATE proposals
            SET parsed_data=?, parsing_confidence=?, requires_review=?, status=?, parsed_at=?
            WHERE id=? AND status IN (?, ?)
            """,
            (
                to_db_json(parsed_data),
                confidence,
                requires_review,
                ProposalStatus.PARSED.value,
                to_db_timestamp(conn, parsed_at or _now()),
                proposal_id,
                ProposalStatus.RECEIVED.value,
                ProposalStatus.PARSED.value,
            ),
        )
        changed = cur.rowcount > 0
        cur.close()
    return changed


def mark_parse_failed(proposal_id: str) -> bool:
    """Flag a proposal whose extraction failed; status stays ``received``."""

    with get_conn() as conn:
        cur = execute(
            conn,
            "UPDATE proposals SET requires_review=? WHERE id=? AND status=?",
            (True, proposal_id, ProposalStatus.RECEIVED.value),
        )
        changed = cur.rowcount > 0
        cur.close()
    return changed


def mark_reviewed(proposal_id: str) -> bool:
    with get_conn() as conn:
        cur = execute(
            conn,
            "UPDATE proposals SET status=? WHERE id=?",
            (ProposalStatus.REVIEWED.value, proposal_id),
        )
        changed = cur.rowcount > 0
        cur.close()
    return changed


def list_pending_reparse() -> List[Proposal]:
    with get_conn() as conn:
        rows = fetch_dicts(
            execute(
                conn,
                f"""
                SELECT {_COLUMNS} FROM proposals
                WHERE status=? OR parsed_data IS NULL
                ORDER BY received_at
                """,
                (ProposalStatus.RECEIVED.value,),
            )
        )
    return [_row_to_proposal(row) for row in rows if row["status"] != ProposalStatus.REVIEWED.value]
