"""Read access to the vendor directory.

Vendor maintenance belongs to a separate tool; ``create_vendor`` exists so the
directory can be seeded and is the only writer here.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, Iterable, List, Optional

from models.rfp import Vendor
from services.errors import RfpValidationError
from services.db import execute, fetch_dicts, fetch_one_dict, get_conn, run_ddl
from utils.email_address import is_valid_email, normalise_email

logger = logging.getLogger(__name__)

DDL_PG = """
CREATE TABLE IF NOT EXISTS vendors (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    email TEXT NOT NULL UNIQUE,
    contact_person TEXT,
    phone TEXT,
    specialization TEXT,
    notes TEXT,
    created_at TIMESTAMPTZ DEFAULT NOW()
);
"""

DDL_SQLITE = """
CREATE TABLE IF NOT EXISTS vendors (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    email TEXT NOT NULL UNIQUE,
    contact_person TEXT,
    phone TEXT,
    specialization TEXT,
    notes TEXT,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP
);
"""

_COLUMNS = "id, name, email, contact_person, phone, specialization, notes"


def init_schema() -> None:
    run_ddl(DDL_PG, DDL_SQLITE)


def _row_to_vendor(row: Dict[str, Any]) -> Vendor:
    return Vendor(
        id=row["id"],
        name=row["name"],
        email=row["email"],
        contact_person=row.get("contact_person"),
        phone=row.get("phone"),
        specialization=row.get("specialization"),
        notes=row.get("notes"),
    )


def create_vendor(
    *,
    name: str,
    email: str,
    contact_person: Optional[str] = None,
    phone: Optional[str] = None,
    specialization: Optional[str] = None,
    notes: Optional[str] = None,
    vendor_id: Optional[str] = None,
) -> Vendor:
    if not name or not name.strip():
        raise RfpValidationError("vendor name is required")
    if not is_valid_email(email):
        raise RfpValidationError(f"invalid vendor email: {email!r}")
    vendor = Vendor(
        id=vendor_id or uuid.uuid4().hex,
        name=name.strip(),
        email=normalise_email(email),
        contact_person=contact_person,
        phone=phone,
        specialization=specialization,
        notes=notes,
    )
    with get_conn() as conn:
        execute(
            conn,
            f"INSERT INTO vendors ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
            (
                vendor.id,
                vendor.name,
                vendor.email,
                vendor.contact_person,
                vendor.phone,
                vendor.specialization,
                vendor.notes,
            ),
        ).close()
    logger.info("Registered vendor %s <%s>", vendor.id, vendor.email)
    return vendor


def find_by_email(address: Optional[str]) -> Optional[Vendor]:
    if not address or not address.strip():
        return None
    with get_conn() as conn:
        row = fetch_one_dict(
            execute(
                conn,
                f"SELECT {_COLUMNS} FROM vendors WHERE LOWER(email)=?",
                (normalise_email(address),),
            )
        )
    return _row_to_vendor(row) if row else None


def find_by_id(vendor_id: Optional[str]) -> Optional[Vendor]:
    if not vendor_id:
        return None
    with get_conn() as conn:
        row = fetch_one_dict(
            execute(conn, f"SELECT {_COLUMNS} FROM vendors WHERE id=?", (vendor_id,))
        )
    return _row_to_vendor(row) if row else None


def list_by_ids(vendor_ids: Iterable[str]) -> List[Vendor]:
    ids = [vendor_id for vendor_id in dict.fromkeys(vendor_ids) if vendor_id]
    if not ids:
        return []
    placeholders = ", ".join("?" for _ in ids)
    with get_conn() as conn:
        rows = fetch_dicts(
            execute(
                conn,
                f"SELECT {_COLUMNS} FROM vendors WHERE id IN ({placeholders}) ORDER BY name",
                tuple(ids),
            )
        )
    return [_row_to_vendor(row) for row in rows]
