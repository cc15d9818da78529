from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime

from fastapi import HTTPException, status
from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.orm import Session

from crm_api.models.crm import ActionItem, Contact
from crm_api.models.enums import TouchpointStatus
from crm_api.services.contacts.ids import normalize_contact_id, normalize_email

EDITABLE_FIELDS = {
    "first_name",
    "last_name",
    "tags",
    "notes",
    "lead_source",
    "segment",
    "engagement_score",
    "next_touchpoint_date",
    "next_touchpoint_message",
    "summary",
    "action_items",
    "sentiment",
    "relationship_insights",
    "pain_points",
    "coaching_themes",
    "outreach_draft",
    "archived",
}


@dataclass
class BulkArchiveResult:
    success: int = 0
    errors: int = 0
    error_details: list[str] = field(default_factory=list)


def list_contacts(
    *,
    session: Session,
    user_id: str,
    archived: bool | None = None,
    segment: str | None = None,
    q: str | None = None,
) -> list[Contact]:
    stmt = select(Contact).where(Contact.user_id == user_id)
    if archived is not None:
        stmt = stmt.where(Contact.archived.is_(archived))
    if segment:
        stmt = stmt.where(Contact.segment == segment)
    if q and q.strip():
        needle = f"%{q.strip().lower()}%"
        stmt = stmt.where(
            or_(
                Contact.primary_email.like(needle),
                func.lower(func.coalesce(Contact.first_name, "")).like(needle),
                func.lower(func.coalesce(Contact.last_name, "")).like(needle),
            )
        )
    stmt = stmt.order_by(Contact.updated_at.desc(), Contact.contact_id.asc())
    return list(session.execute(stmt).scalars().all())


def get_contact(*, session: Session, user_id: str, contact_id: str) -> Contact:
    contact = session.get(Contact, (user_id, contact_id))
    if contact is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Contact not found")
    return contact


def create_contact(*, session: Session, user_id: str, email: str, fields: dict) -> Contact:
    email_norm = normalize_email(email)
    if not email_norm or "@" not in email_norm:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail="Invalid email")

    contact_id = normalize_contact_id(email_norm)
    if session.get(Contact, (user_id, contact_id)) is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Contact already exists")

    now = datetime.now(UTC)
    contact = Contact(
        user_id=user_id,
        contact_id=contact_id,
        primary_email=email_norm,
        created_at=now,
        updated_at=now,
    )
    _apply_fields(contact, fields)
    if contact.tags is None:
        contact.tags = []
    if contact.archived is None:
        contact.archived = False
    session.add(contact)
    session.flush()
    return contact


def update_contact(*, session: Session, user_id: str, contact_id: str, fields: dict) -> Contact:
    contact = get_contact(session=session, user_id=user_id, contact_id=contact_id)
    _apply_fields(contact, fields)
    contact.updated_at = datetime.now(UTC)
    session.add(contact)
    session.flush()
    return contact


def delete_contact(*, session: Session, user_id: str, contact_id: str) -> None:
    contact = get_contact(session=session, user_id=user_id, contact_id=contact_id)
    # SQLite does not enforce the cascade.
    session.execute(
        delete(ActionItem).where(ActionItem.user_id == user_id, ActionItem.contact_id == contact_id)
    )
    session.delete(contact)
    session.flush()


def _apply_fields(contact: Contact, fields: dict) -> None:
    for key, value in fields.items():
        if key not in EDITABLE_FIELDS:
            continue
        if key == "tags" and value is None:
            value = []
        if key == "archived" and value is None:
            continue
        setattr(contact, key, value)


def bulk_archive_contacts(
    *,
    session: Session,
    user_id: str,
    contact_ids: list[str],
    archived: bool,
) -> BulkArchiveResult:
    result = BulkArchiveResult()
    now = datetime.now(UTC)
    for contact_id in contact_ids:
        res = session.execute(
            update(Contact)
            .where(Contact.user_id == user_id, Contact.contact_id == contact_id)
            .values(archived=archived, updated_at=now)
        )
        if res.rowcount:
            result.success += 1
        else:
            result.errors += 1
            result.error_details.append(f"{contact_id}: Contact not found")
    session.flush()
    return result


def update_touchpoint_status(
    *,
    session: Session,
    user_id: str,
    contact_id: str,
    touchpoint_status: TouchpointStatus | None,
    reason: str | None = None,
    reason_provided: bool = False,
) -> Contact:
    contact = get_contact(session=session, user_id=user_id, contact_id=contact_id)
    now = datetime.now(UTC)

    if touchpoint_status is None:
        contact.touchpoint_status = None
        contact.touchpoint_status_updated_at = None
        contact.touchpoint_status_reason = None
    else:
        contact.touchpoint_status = touchpoint_status
        contact.touchpoint_status_updated_at = now
        if reason_provided:
            contact.touchpoint_status_reason = reason or None

    contact.updated_at = now
    session.add(contact)
    session.flush()
    return contact
