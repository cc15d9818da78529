from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from crm_api.models.crm import Contact


def find_contact_id_by_email(session: Session, *, user_id: str, email: str | None) -> str | None:
    # Exact match; stored emails are already normalized, so callers normalize too.
    if not email:
        return None
    return (
        session.execute(
            select(Contact.contact_id)
            .where(Contact.user_id == user_id, Contact.primary_email == email)
            .limit(1)
        )
        .scalars()
        .first()
    )
