from __future__ import annotations

import csv
import io
import math
from collections.abc import Iterable

from crm_api.models.crm import Contact
from crm_api.services.contacts.ids import normalize_email

# Shared by import and export so an exported file re-imports cleanly.
EXPORT_COLUMNS = [
    "Email",
    "FirstName",
    "LastName",
    "Summary",
    "Notes",
    "Tags",
    "Segment",
    "LeadSource",
    "EngagementScore",
    "NextTouchpointDate",
    "NextTouchpointMessage",
]

# Bounds of a 32-bit INTEGER column.
SCORE_MIN = -(2**31)
SCORE_MAX = 2**31 - 1

_TEXT_COLUMNS = {
    "FirstName": "first_name",
    "LastName": "last_name",
    "Summary": "summary",
    "Notes": "notes",
    "Segment": "segment",
    "LeadSource": "lead_source",
    "NextTouchpointDate": "next_touchpoint_date",
    "NextTouchpointMessage": "next_touchpoint_message",
}


def parse_contacts_csv(text: str) -> list[dict[str, str]]:
    reader = csv.DictReader(io.StringIO(text.lstrip("\ufeff")))
    if reader.fieldnames is None:
        return []
    reader.fieldnames = [(name or "").strip() for name in reader.fieldnames]

    rows: list[dict[str, str]] = []
    for raw in reader:
        row = {k: (v or "").strip() for k, v in raw.items() if k}
        if not any(row.values()):
            continue
        rows.append(row)
    return rows


def split_tags(value: str | None) -> list[str]:
    return [t.strip() for t in (value or "").split(",") if t.strip()]


def parse_engagement_score(value: str | None) -> int | None:
    """Whole-number score, or None when blank, non-numeric or outside an INTEGER column."""
    value = (value or "").strip()
    if not value:
        return None
    try:
        score = float(value)
    except ValueError:
        return None
    if not math.isfinite(score) or not SCORE_MIN <= score <= SCORE_MAX:
        return None
    return int(score)


def csv_row_to_contact(row: dict[str, str], contact_id: str) -> dict[str, object]:
    """Column values for a contact row; only columns present in the CSV are mapped."""
    values: dict[str, object] = {
        "contact_id": contact_id,
        "primary_email": normalize_email(row.get("Email", "")),
    }
    for column, field in _TEXT_COLUMNS.items():
        if column in row:
            values[field] = (row.get(column) or "").strip() or None
    if "Tags" in row:
        values["tags"] = split_tags(row.get("Tags"))
    if "EngagementScore" in row:
        values["engagement_score"] = parse_engagement_score(row.get("EngagementScore"))
    return values


def merge_contact_rows(rows: list[dict[str, str]]) -> tuple[list[dict[str, str]], int]:
    """Fold rows that share an email.

    Tags are unioned in first-seen order, the highest engagement score wins and
    later non-empty values win for every other column. Returns the folded rows
    and how many input rows were merged away.
    """
    merged: dict[str, dict[str, str]] = {}
    out: list[dict[str, str]] = []
    folded = 0

    for row in rows:
        email = normalize_email(row.get("Email", ""))
        if not email:
            out.append(row)
            continue

        existing = merged.get(email)
        if existing is None:
            copy = dict(row)
            merged[email] = copy
            out.append(copy)
            continue

        folded += 1
        for key, value in row.items():
            if key == "Tags":
                tags = split_tags(existing.get("Tags"))
                for tag in split_tags(value):
                    if tag not in tags:
                        tags.append(tag)
                existing["Tags"] = ", ".join(tags)
            elif key == "EngagementScore":
                current = parse_engagement_score(existing.get(key))
                candidate = parse_engagement_score(value)
                if candidate is not None and (current is None or candidate > current):
                    existing[key] = value
            elif key == "Email":
                continue
            elif (value or "").strip():
                existing[key] = value

    return out, folded


def _format_date(value: str | None) -> str:
    if not value:
        return ""
    return value.split("T", 1)[0]


def contact_to_csv_row(contact: Contact) -> dict[str, str]:
    return {
        "Email": contact.primary_email,
        "FirstName": contact.first_name or "",
        "LastName": contact.last_name or "",
        "Summary": contact.summary or "",
        "Notes": contact.notes or "",
        "Tags": ", ".join(contact.tags or []),
        "Segment": contact.segment or "",
        "LeadSource": contact.lead_source or "",
        "EngagementScore": "" if contact.engagement_score is None else str(contact.engagement_score),
        "NextTouchpointDate": _format_date(contact.next_touchpoint_date),
        "NextTouchpointMessage": contact.next_touchpoint_message or "",
    }


def contacts_to_csv(contacts: Iterable[Contact]) -> str:
    buf = io.StringIO()
    writer = csv.DictWriter(buf, fieldnames=EXPORT_COLUMNS, lineterminator="\n")
    writer.writeheader()
    for contact in contacts:
        writer.writerow(contact_to_csv_row(contact))
    return buf.getvalue()
