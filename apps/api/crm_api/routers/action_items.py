from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from crm_api.core.deps import require_csrf_header, require_user
from crm_api.db.session import get_session
from crm_api.models.enums import ActionItemStatus
from crm_api.models.identity import User
from crm_api.schemas.action_items import (
    ActionItemCreateRequest,
    ActionItemOut,
    ActionItemTextImportRequest,
    ActionItemTextImportResponse,
    ActionItemUpdateRequest,
)
from crm_api.services.contacts.action_items import (
    create_action_item,
    delete_action_item,
    import_action_items_from_text,
    list_action_items,
    list_all_action_items,
    update_action_item,
)

router = APIRouter(tags=["action-items"], dependencies=[Depends(require_csrf_header)])


@router.get("/action-items", response_model=list[ActionItemOut])
def action_items_list_all(
    item_status: ActionItemStatus | None = Query(default=None, alias="status"),
    user: User = Depends(require_user),
    session: Session = Depends(get_session),
) -> list[ActionItemOut]:
    rows = list_all_action_items(session=session, user_id=user.id, item_status=item_status)
    return [ActionItemOut.model_validate(item) for item in rows]


@router.get("/contacts/{contact_id}/action-items", response_model=list[ActionItemOut])
def action_items_list(
    contact_id: str,
    user: User = Depends(require_user),
    session: Session = Depends(get_session),
) -> list[ActionItemOut]:
    rows = list_action_items(session=session, user_id=user.id, contact_id=contact_id)
    return [ActionItemOut.model_validate(item) for item in rows]


@router.post(
    "/contacts/{contact_id}/action-items",
    response_model=ActionItemOut,
    status_code=status.HTTP_201_CREATED,
)
def action_items_create(
    contact_id: str,
    payload: ActionItemCreateRequest,
    user: User = Depends(require_user),
    session: Session = Depends(get_session),
) -> ActionItemOut:
    item = create_action_item(
        session=session,
        user_id=user.id,
        contact_id=contact_id,
        text=payload.text,
        due_date=payload.due_date,
    )
    session.commit()
    return ActionItemOut.model_validate(item)


@router.post(
    "/contacts/{contact_id}/action-items/import-from-text",
    response_model=ActionItemTextImportResponse,
)
def action_items_import_from_text(
    contact_id: str,
    payload: ActionItemTextImportRequest,
    user: User = Depends(require_user),
    session: Session = Depends(get_session),
) -> ActionItemTextImportResponse:
    items = import_action_items_from_text(
        session=session,
        user_id=user.id,
        contact_id=contact_id,
        text=payload.text,
    )
    session.commit()
    return ActionItemTextImportResponse(
        created_count=len(items),
        action_items=[ActionItemOut.model_validate(item) for item in items],
    )


@router.patch("/contacts/{contact_id}/action-items/{item_id}", response_model=ActionItemOut)
def action_items_update(
    contact_id: str,
    item_id: UUID,
    payload: ActionItemUpdateRequest,
    user: User = Depends(require_user),
    session: Session = Depends(get_session),
) -> ActionItemOut:
    item = update_action_item(
        session=session,
        user_id=user.id,
        contact_id=contact_id,
        item_id=item_id,
        fields=payload.model_dump(exclude_unset=True),
    )
    session.commit()
    return ActionItemOut.model_validate(item)


@router.delete("/contacts/{contact_id}/action-items/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
def action_items_delete(
    contact_id: str,
    item_id: UUID,
    user: User = Depends(require_user),
    session: Session = Depends(get_session),
) -> Response:
    delete_action_item(session=session, user_id=user.id, contact_id=contact_id, item_id=item_id)
    session.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
