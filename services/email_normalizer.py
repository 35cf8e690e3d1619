"""Normalise inbound email from any delivery channel into :class:`InboundEmail`.

Mailbox polling yields RFC 822 messages and push delivery yields webhook
payloads; both reach the pipeline in the same shape.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.header import decode_header, make_header
from email.message import Message
from email.utils import parsedate_to_datetime
from typing import Any, Dict, List, Mapping, Optional

from models.rfp import RawEmailContent

logger = logging.getLogger(__name__)


@dataclass
class InboundEmail:
    """An inbound email reduced to what correlation and parsing need.

    ``sender`` keeps the header in whatever shape it arrived (plain text,
    a parsed header object, or a mapping with ``value``/``text``); address
    extraction happens during correlation.
    """

    sender: Any
    subject: str = ""
    body: str = ""
    sender_name: str = ""
    html: str = ""
    received_at: Optional[datetime] = None
    message_id: str = ""
    attachments: List[str] = field(default_factory=list)

    def raw_content(self, sender_address: Optional[str] = None) -> RawEmailContent:
        sender = sender_address
        if sender is None and self.sender not in (None, ""):
            sender = self.sender if isinstance(self.sender, str) else str(self.sender)
        return RawEmailContent(
            sender=sender,
            subject=self.subject,
            body=self.body,
            attachments=list(self.attachments),
        )


def _decode_header(value: Optional[str]) -> str:
    if not value:
        return ""
    try:
        return str(make_header(decode_header(str(value))))
    except Exception:  # pragma: no cover
        return str(value)


def _parse_date(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if not value:
        return None
    text = str(value).strip()
    try:
        parsed = parsedate_to_datetime(text)
    except (TypeError, ValueError):
        parsed = None
    if parsed is None:
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _decode_part(part: Message) -> str:
    try:
        payload = part.get_payload(decode=True) or b""
        return payload.decode(part.get_content_charset() or "utf-8", errors="ignore")
    except Exception:  # pragma: no cover - fallback to str
        return str(part.get_payload())


def _message_bodies(msg: Message) -> Dict[str, str]:
    plain: List[str] = []
    html: List[str] = []
    if msg.is_multipart():
        for part in msg.walk():
            if part.is_multipart() or part.get_filename():
                continue
            content_type = part.get_content_type()
            if content_type == "text/plain":
                plain.append(_decode_part(part))
            elif content_type == "text/html":
                html.append(_decode_part(part))
    elif msg.get_content_type() == "text/html":
        html.append(_decode_part(msg))
    else:
        plain.append(_decode_part(msg))
    return {"plain": "\n".join(plain), "html": "\n".join(html)}


def _message_attachments(msg: Message) -> List[str]:
    names: List[str] = []
    for part in msg.walk():
        filename = part.get_filename()
        if filename:
            names.append(_decode_header(filename))
    return names


def from_message(msg: Message, *, now: Optional[datetime] = None) -> InboundEmail:
    """Normalise a parsed RFC 822 message."""

    bodies = _message_bodies(msg)
    sender_header = msg.get("From")
    sender_text = _decode_header(sender_header) if sender_header is not None else ""
    sender_name = ""
    addresses = getattr(sender_header, "addresses", None)
    if addresses:
        sender_name = addresses[0].display_name or ""
    return InboundEmail(
        sender=sender_header if addresses else sender_text,
        sender_name=sender_name,
        subject=_decode_header(msg.get("Subject")),
        body=bodies["plain"] or bodies["html"],
        html=bodies["html"],
        received_at=_parse_date(msg.get("Date")) or now or datetime.now(timezone.utc),
        message_id=str(msg.get("Message-ID") or "").strip(),
        attachments=_message_attachments(msg),
    )


def _attachment_names(raw: Any) -> List[str]:
    if not isinstance(raw, list):
        return []
    names: List[str] = []
    for item in raw:
        if isinstance(item, Mapping):
            name = item.get("filename") or item.get("name")
        else:
            name = item
        if name:
            names.append(str(name))
    return names


def from_webhook(payload: Mapping[str, Any], *, now: Optional[datetime] = None) -> InboundEmail:
    """Normalise a push-delivery payload (SendGrid/Mailgun style field names)."""

    body = payload.get("text") or payload.get("body") or payload.get("plain") or ""
    html = payload.get("html") or ""
    return InboundEmail(
        sender=payload.get("from") or payload.get("sender"),
        sender_name=str(payload.get("from_name") or ""),
        subject=str(payload.get("subject") or ""),
        body=str(body or html),
        html=str(html),
        received_at=_parse_date(payload.get("date")) or now or datetime.now(timezone.utc),
        message_id=str(payload.get("message_id") or payload.get("messageId") or ""),
        attachments=_attachment_names(payload.get("attachments")),
    )


__all__ = ["InboundEmail", "from_message", "from_webhook"]
