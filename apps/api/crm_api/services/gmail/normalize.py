"""Flatten Gmail API message payloads into the fields the CRM stores."""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass
from datetime import UTC, datetime
from email.utils import getaddresses, parsedate_to_datetime


@dataclass(frozen=True)
class NormalizedMessage:
    id: str
    thread_id: str
    snippet: str | None
    from_address: str
    to: str
    subject: str
    date: str
    body: str
    # Epoch milliseconds as reported by Gmail.
    internal_date: int | None


def _headers(payload: dict) -> dict[str, str]:
    out: dict[str, str] = {}
    for h in payload.get("headers") or []:
        name = h.get("name")
        if not name:
            continue
        out[name.lower()] = h.get("value") or ""
    return out


def _body_data(payload: dict) -> str | None:
    # Only the top-level body or the first part; later multipart alternatives are ignored.
    data = (payload.get("body") or {}).get("data")
    if data:
        return data
    parts = payload.get("parts") or []
    if parts:
        return ((parts[0] or {}).get("body") or {}).get("data") or None
    return None


def decode_body(data: str) -> str:
    normalized = data.strip().replace("+", "-").replace("/", "_").rstrip("=")
    padded = normalized + ("=" * ((4 - len(normalized) % 4) % 4))
    try:
        raw = base64.urlsafe_b64decode(padded.encode("ascii"))
    except (binascii.Error, UnicodeEncodeError, ValueError):
        return ""
    return raw.decode("utf-8", errors="replace")


def _parse_internal_date(v: object) -> int | None:
    if v is None or v == "":
        return None
    try:
        return int(str(v))
    except ValueError:
        return None


def normalize_message(message: dict) -> NormalizedMessage:
    payload = message.get("payload") or {}
    headers = _headers(payload)
    data = _body_data(payload)

    return NormalizedMessage(
        id=message["id"],
        thread_id=message.get("threadId") or "",
        snippet=message.get("snippet"),
        from_address=headers.get("from", ""),
        to=headers.get("to", ""),
        subject=headers.get("subject", ""),
        date=headers.get("date", ""),
        body=decode_body(data) if data else "",
        internal_date=_parse_internal_date(message.get("internalDate")),
    )


def split_addresses(value: str) -> list[str]:
    return [part.strip() for part in (value or "").split(",") if part.strip()]


def sender_email(from_header: str) -> str | None:
    """Bare lowercased address from a From header such as ``Ann <ann@x.com>``."""
    if not from_header:
        return None
    parsed = getaddresses([from_header])
    if not parsed:
        return None
    _name, addr = parsed[0]
    addr = (addr or "").strip().lower()
    return addr or None


def _parse_date_header(value: str) -> datetime | None:
    if not value:
        return None
    try:
        dt = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def message_timestamp(message: NormalizedMessage, *, now: datetime | None = None) -> datetime:
    if message.internal_date is not None:
        return datetime.fromtimestamp(message.internal_date / 1000, tz=UTC)
    parsed = _parse_date_header(message.date)
    if parsed is not None:
        return parsed
    return now or datetime.now(UTC)
