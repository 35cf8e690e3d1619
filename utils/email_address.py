"""Helpers for sender addresses and the request tag carried in subjects.

Sender headers reach us in several shapes: parsed address objects from a mail
library, ``"Name <addr>"`` text, or a bare address.  Extraction is an ordered
chain of small strategies; the first one that yields an address wins.
"""

from __future__ import annotations

import re
from email.headerregistry import Address
from typing import Any, Callable, Mapping, Optional, Sequence, Tuple

REQUEST_TAG_RE = re.compile(r"\[REQ-([A-Za-z0-9_-]+)\]", re.IGNORECASE)

_EMAIL_FORMAT_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_BRACKETED_RE = re.compile(r"<(.+?)>")
_BARE_ADDRESS_RE = re.compile(r"([^\s@<>\"',;]+@[^\s@<>\"',;]+)")


def _clean(candidate: Any) -> Optional[str]:
    if not isinstance(candidate, str):
        return None
    text = candidate.strip().strip("<>").strip().rstrip(".):;")
    if "@" not in text:
        return None
    return text


def _address_from_item(item: Any) -> Optional[str]:
    if isinstance(item, Address):
        return _clean(item.addr_spec)
    if isinstance(item, Mapping):
        return _clean(item.get("address"))
    if isinstance(item, (tuple, list)) and len(item) == 2:
        return _clean(item[1])
    return _clean(getattr(item, "address", None))


def from_structured_address(raw: Any) -> Optional[str]:
    """Address objects such as ``{"value": [{"address": ...}]}`` or header objects."""

    if isinstance(raw, str) or raw is None:
        return None
    if isinstance(raw, Mapping):
        items = raw.get("value")
    else:
        items = getattr(raw, "addresses", None) or getattr(raw, "value", None)
    if isinstance(items, (Address, Mapping)):
        items = [items]
    if not isinstance(items, Sequence) or isinstance(items, str):
        return _address_from_item(raw)
    for item in items:
        address = _address_from_item(item)
        if address:
            return address
    return None


def _header_text(raw: Any) -> Optional[str]:
    if isinstance(raw, str):
        return raw
    if isinstance(raw, Mapping):
        text = raw.get("text")
        return text if isinstance(text, str) else None
    return None


def from_bracketed_text(raw: Any) -> Optional[str]:
    """``Jane Doe <jane@vendor.com>``"""

    text = _header_text(raw)
    if not text:
        return None
    match = _BRACKETED_RE.search(text)
    return _clean(match.group(1)) if match else None


def from_bare_text(raw: Any) -> Optional[str]:
    text = _header_text(raw)
    if not text:
        return None
    match = _BARE_ADDRESS_RE.search(text)
    return _clean(match.group(1)) if match else None


SenderExtractor = Callable[[Any], Optional[str]]

SENDER_EXTRACTORS: Tuple[SenderExtractor, ...] = (
    from_structured_address,
    from_bracketed_text,
    from_bare_text,
)


def extract_sender_address(
    raw: Any, extractors: Sequence[SenderExtractor] = SENDER_EXTRACTORS
) -> Optional[str]:
    """Return the first address any extractor finds in ``raw``, or ``None``."""

    if raw in (None, ""):
        return None
    for extractor in extractors:
        address = extractor(raw)
        if address:
            return address
    return None


def is_valid_email(value: Optional[str]) -> bool:
    if not isinstance(value, str):
        return False
    return bool(_EMAIL_FORMAT_RE.match(value.strip()))


def normalise_email(value: str) -> str:
    return value.strip().lower()


def extract_request_tag(subject: Optional[str]) -> Optional[str]:
    """Return the id inside the first ``[REQ-<id>]`` tag of ``subject``."""

    if not subject:
        return None
    match = REQUEST_TAG_RE.search(subject)
    return match.group(1) if match else None


def format_request_tag(rfp_id: str) -> str:
    return f"[REQ-{rfp_id}]"


__all__ = [
    "REQUEST_TAG_RE",
    "SENDER_EXTRACTORS",
    "extract_request_tag",
    "extract_sender_address",
    "format_request_tag",
    "from_bare_text",
    "from_bracketed_text",
    "from_structured_address",
    "is_valid_email",
    "normalise_email",
]
