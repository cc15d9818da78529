from __future__ import annotations

from datetime import UTC, date, datetime, timedelta
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from crm_api.models.crm import ActionItem
from crm_api.models.enums import ActionItemStatus
from crm_api.services.contacts.records import get_contact

MAX_ITEMS_PER_IMPORT = 200


def split_action_item_lines(text: str | None) -> list[str]:
    """One item per non-blank line, stripped."""
    return [line.strip() for line in (text or "").splitlines() if line.strip()]


def list_action_items(*, session: Session, user_id: str, contact_id: str) -> list[ActionItem]:
    get_contact(session=session, user_id=user_id, contact_id=contact_id)
    stmt = (
        select(ActionItem)
        .where(ActionItem.user_id == user_id, ActionItem.contact_id == contact_id)
        .order_by(ActionItem.created_at.desc(), ActionItem.id.asc())
    )
    return list(session.execute(stmt).scalars().all())


def list_all_action_items(
    *,
    session: Session,
    user_id: str,
    item_status: ActionItemStatus | None = None,
) -> list[ActionItem]:
    stmt = select(ActionItem).where(ActionItem.user_id == user_id)
    if item_status is not None:
        stmt = stmt.where(ActionItem.status == item_status)
    stmt = stmt.order_by(ActionItem.created_at.desc(), ActionItem.id.asc())
    return list(session.execute(stmt).scalars().all())


def get_action_item(*, session: Session, user_id: str, contact_id: str, item_id: UUID) -> ActionItem:
    item = session.get(ActionItem, item_id)
    if item is None or item.user_id != user_id or item.contact_id != contact_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Action item not found")
    return item


def create_action_item(
    *,
    session: Session,
    user_id: str,
    contact_id: str,
    text: str,
    due_date: date | None = None,
) -> ActionItem:
    get_contact(session=session, user_id=user_id, contact_id=contact_id)
    text = text.strip()
    if not text:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail="Text is required")

    now = datetime.now(UTC)
    item = ActionItem(
        user_id=user_id,
        contact_id=contact_id,
        text=text,
        status=ActionItemStatus.pending,
        due_date=due_date,
        created_at=now,
        updated_at=now,
    )
    session.add(item)
    session.flush()
    return item


def update_action_item(
    *,
    session: Session,
    user_id: str,
    contact_id: str,
    item_id: UUID,
    fields: dict,
) -> ActionItem:
    """Apply text, status and due date edits present in ``fields``.

    Completing an item stamps ``completed_at``; reopening it clears the stamp.
    An explicit ``None`` due date clears it, while ``None`` text or status is ignored.
    """
    item = get_action_item(session=session, user_id=user_id, contact_id=contact_id, item_id=item_id)
    now = datetime.now(UTC)

    text = fields.get("text")
    if text is not None:
        if not text.strip():
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail="Text is required")
        item.text = text.strip()

    new_status = fields.get("status")
    if new_status is not None and new_status != item.status:
        item.status = ActionItemStatus(new_status)
        item.completed_at = now if item.status == ActionItemStatus.completed else None

    if "due_date" in fields:
        item.due_date = fields["due_date"]

    item.updated_at = now
    session.add(item)
    session.flush()
    return item


def delete_action_item(*, session: Session, user_id: str, contact_id: str, item_id: UUID) -> None:
    item = get_action_item(session=session, user_id=user_id, contact_id=contact_id, item_id=item_id)
    session.delete(item)
    session.flush()


def import_action_items_from_text(
    *,
    session: Session,
    user_id: str,
    contact_id: str,
    text: str,
) -> list[ActionItem]:
    """Create one pending item per non-blank line of ``text``, in line order."""
    get_contact(session=session, user_id=user_id, contact_id=contact_id)
    lines = split_action_item_lines(text)
    if len(lines) > MAX_ITEMS_PER_IMPORT:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_CONTENT,
            detail=f"At most {MAX_ITEMS_PER_IMPORT} action items per import",
        )

    # Later lines get later timestamps so newest-first listings keep a stable order.
    base = datetime.now(UTC)
    items: list[ActionItem] = []
    for offset, line in enumerate(lines):
        created = base + timedelta(microseconds=offset)
        item = ActionItem(
            user_id=user_id,
            contact_id=contact_id,
            text=line,
            status=ActionItemStatus.pending,
            created_at=created,
            updated_at=created,
        )
        session.add(item)
        items.append(item)
    session.flush()
    return items
