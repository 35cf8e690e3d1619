"""Persistence for requests for proposal and their dispatch lists."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from models.rfp import DispatchEntry, Rfp, RfpStatus, StructuredTerms
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
CREATE TABLE IF NOT EXISTS rfps (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    description TEXT NOT NULL,
    structured_terms JSONB,
    budget NUMERIC(18, 2),
    deadline TIMESTAMPTZ,
    status TEXT NOT NULL DEFAULT 'draft',
    created_at TIMESTAMPTZ DEFAULT NOW(),
    updated_at TIMESTAMPTZ DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS rfp_dispatches (
    rfp_id TEXT NOT NULL REFERENCES rfps (id),
    vendor_id TEXT NOT NULL,
    sent_at TIMESTAMPTZ NOT NULL,
    PRIMARY KEY (rfp_id, vendor_id)
);

CREATE INDEX IF NOT EXISTS idx_rfp_dispatches_vendor
ON rfp_dispatches (vendor_id, sent_at DESC);
"""

DDL_SQLITE = """
CREATE TABLE IF NOT EXISTS rfps (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    description TEXT NOT NULL,
    structured_terms TEXT,
    budget REAL,
    deadline TEXT,
    status TEXT NOT NULL DEFAULT 'draft',
    created_at TEXT,
    updated_at TEXT
);

CREATE TABLE IF NOT EXISTS rfp_dispatches (
    rfp_id TEXT NOT NULL REFERENCES rfps (id),
    vendor_id TEXT NOT NULL,
    sent_at TEXT NOT NULL,
    PRIMARY KEY (rfp_id, vendor_id)
);

CREATE INDEX IF NOT EXISTS idx_rfp_dispatches_vendor
ON rfp_dispatches (vendor_id, sent_at);
"""

_OUTSTANDING_STATUSES = (RfpStatus.DISPATCHED.value, RfpStatus.COLLECTING_RESPONSES.value)


def init_schema() -> None:
    run_ddl(DDL_PG, DDL_SQLITE)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _float_or_none(value: Any) -> Optional[float]:
    return None if value is None else float(value)


def _row_to_rfp(row: Dict[str, Any], dispatches: List[DispatchEntry]) -> Rfp:
    terms = from_db_json(row.get("structured_terms"))
    return Rfp(
        id=row["id"],
        title=row["title"],
        description=row["description"],
        structured_terms=StructuredTerms.from_dict(terms) if terms else None,
        budget=_float_or_none(row.get("budget")),
        deadline=from_db_timestamp(row.get("deadline")),
        status=RfpStatus(row["status"]),
        dispatches=dispatches,
        created_at=from_db_timestamp(row.get("created_at")),
        updated_at=from_db_timestamp(row.get("updated_at")),
    )


def create_rfp(
    *,
    title: str,
    description: str,
    structured_terms: Optional[StructuredTerms],
    budget: Optional[float] = None,
    deadline: Optional[datetime] = None,
    rfp_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Rfp:
    rfp_id = rfp_id or uuid.uuid4().hex
    created = now or _now()
    with get_conn() as conn:
        execute(
            conn,
            """
            INSERT INTO rfps (id, title, description, structured_terms, budget,
                              deadline, status, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                rfp_id,
                title,
                description,
                to_db_json(structured_terms.to_dict() if structured_terms else None),
                budget,
                to_db_timestamp(conn, deadline),
                RfpStatus.DRAFT.value,
                to_db_timestamp(conn, created),
                to_db_timestamp(conn, created),
            ),
        ).close()
    logger.info("Created rfp %s (%s)", rfp_id, title)
    return Rfp(
        id=rfp_id,
        title=title,
        description=description,
        structured_terms=structured_terms,
        budget=budget,
        deadline=deadline,
        status=RfpStatus.DRAFT,
        created_at=created,
        updated_at=created,
    )


def list_dispatches(rfp_id: str) -> List[DispatchEntry]:
    with get_conn() as conn:
        rows = fetch_dicts(
            execute(
                conn,
                "SELECT vendor_id, sent_at FROM rfp_dispatches WHERE rfp_id=? ORDER BY sent_at, vendor_id",
                (rfp_id,),
            )
        )
    return [
        DispatchEntry(vendor_id=row["vendor_id"], sent_at=from_db_timestamp(row["sent_at"]))
        for row in rows
    ]


def get_rfp(rfp_id: str) -> Optional[Rfp]:
    if not rfp_id:
        return None
    with get_conn() as conn:
        row = fetch_one_dict(execute(conn, "SELECT * FROM rfps WHERE id=?", (rfp_id,)))
    if row is None:
        return None
    return _row_to_rfp(row, list_dispatches(rfp_id))


def list_rfps() -> List[Rfp]:
    """Every rfp, newest first, with its dispatch list."""

    with get_conn() as conn:
        rows = fetch_dicts(execute(conn, "SELECT * FROM rfps ORDER BY created_at DESC, id"))
        dispatch_rows = fetch_dicts(
            execute(
                conn,
                "SELECT rfp_id, vendor_id, sent_at FROM rfp_dispatches ORDER BY sent_at, vendor_id",
            )
        )
    dispatches: Dict[str, List[DispatchEntry]] = {}
    for row in dispatch_rows:
        dispatches.setdefault(row["rfp_id"], []).append(
            DispatchEntry(vendor_id=row["vendor_id"], sent_at=from_db_timestamp(row["sent_at"]))
        )
    return [_row_to_rfp(row, dispatches.get(row["id"], [])) for row in rows]


def resolve_rfp_id(candidate: str) -> Optional[str]:
    """Return the stored id matching ``candidate`` ignoring case."""

    if not candidate:
        return None
    with get_conn() as conn:
        row = fetch_one_dict(
            execute(conn, "SELECT id FROM rfps WHERE id=?", (candidate,))
        )
        if row is None:
            row = fetch_one_dict(
                execute(
                    conn,
                    "SELECT id FROM rfps WHERE LOWER(id)=LOWER(?) ORDER BY created_at LIMIT 1",
                    (candidate,),
                )
            )
    return row["id"] if row else None


def advance_status(
    rfp_id: str,
    target: RfpStatus,
    *,
    from_statuses: Optional[Iterable[RfpStatus]] = None,
    now: Optional[datetime] = None,
) -> bool:
    """Move ``rfp_id`` to ``target`` when it currently sits at an earlier status.

    ``from_statuses`` narrows the statuses the move may start from; only
    those earlier than ``target`` are honoured.  A single conditional UPDATE
    keeps the transition atomic; ``False`` means the record was missing or not
    at an allowed status.
    """

    allowed = target.predecessors()
    if from_statuses is not None:
        narrowed = set(from_statuses)
        allowed = [status for status in allowed if status in narrowed]
    predecessors = [status.value for status in allowed]
    if not predecessors:
        return False
    placeholders = ", ".join("?" for _ in predecessors)
    with get_conn() as conn:
        cur = execute(
            conn,
            f"UPDATE rfps SET status=?, updated_at=? WHERE id=? AND status IN ({placeholders})",
            (target.value, to_db_timestamp(conn, now or _now()), rfp_id, *predecessors),
        )
        changed = cur.rowcount > 0
        cur.close()
    if changed:
        logger.info("Rfp %s advanced to %s", rfp_id, target.value)
    return changed


def upsert_dispatches(rfp_id: str, vendor_ids: Iterable[str], sent_at: datetime) -> int:
    count = 0
    with get_conn() as conn:
        stamp = to_db_timestamp(conn, sent_at)
        for vendor_id in vendor_ids:
            execute(
                conn,
                """
                INSERT INTO rfp_dispatches (rfp_id, vendor_id, sent_at)
                VALUES (?, ?, ?)
                ON CONFLICT (rfp_id, vendor_id) DO UPDATE SET sent_at = excluded.sent_at
                """,
                (rfp_id, vendor_id, stamp),
            ).close()
            count += 1
    return count


def latest_outstanding_rfp_for_vendor(vendor_id: str) -> Optional[str]:
    """Most recently dispatched rfp still awaiting responses from ``vendor_id``."""

    with get_conn() as conn:
        row = fetch_one_dict(
            execute(
                conn,
                """
                SELECT r.id
                FROM rfps r
                JOIN rfp_dispatches d ON d.rfp_id = r.id
                WHERE d.vendor_id = ? AND r.status IN (?, ?)
                ORDER BY d.sent_at DESC
                LIMIT 1
                """,
                (vendor_id, *_OUTSTANDING_STATUSES),
            )
        )
    return row["id"] if row else None
