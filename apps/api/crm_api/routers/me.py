from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from crm_api.core.deps import require_user
from crm_api.db.session import get_session
from crm_api.models.identity import User
from crm_api.schemas.auth import MeResponse, UserOut
from crm_api.services.google.tokens import is_account_linked

router = APIRouter(tags=["me"])


@router.get("/me", response_model=MeResponse)
def me(user: User = Depends(require_user), session: Session = Depends(get_session)) -> MeResponse:
    return MeResponse(
        user=UserOut.model_validate(user),
        gmail_linked=is_account_linked(session, user.id),
    )
