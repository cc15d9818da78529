from __future__ import annotations

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from crm_api.core.deps import SessionUser, require_csrf_header, require_session
from crm_api.core.security import clear_auth_cookies, issue_auth_cookies, new_random_token, set_csrf_cookie
from crm_api.db.session import get_session
from crm_api.schemas.auth import CsrfTokenResponse, DevLoginRequest, LoginResponse, SessionInfo, UserOut
from crm_api.services.auth.sessions import end_session, open_dev_session

router = APIRouter(prefix="/auth", tags=["auth"], dependencies=[Depends(require_csrf_header)])


def _no_store(response: Response) -> None:
    response.headers["Cache-Control"] = "no-store"


@router.get("/csrf", response_model=CsrfTokenResponse)
def issue_csrf(response: Response) -> CsrfTokenResponse:
    csrf_token = new_random_token()
    set_csrf_cookie(response, csrf_token)
    _no_store(response)
    return CsrfTokenResponse(csrf_token=csrf_token)


@router.post("/dev/login", response_model=LoginResponse)
def dev_login(payload: DevLoginRequest, response: Response, session: Session = Depends(get_session)) -> LoginResponse:
    issued = open_dev_session(session=session, email=payload.email, display_name=payload.display_name)
    session.commit()

    issue_auth_cookies(response, session_token=issued.token, csrf_token=issued.csrf_token)
    _no_store(response)
    return LoginResponse(
        user=UserOut.model_validate(issued.user),
        session=SessionInfo.model_validate(issued.record),
        csrf_token=issued.csrf_token,
    )


@router.post("/logout")
def logout(
    response: Response,
    found: SessionUser = Depends(require_session),
    session: Session = Depends(get_session),
) -> dict[str, str]:
    record, _user = found
    end_session(record, reason="logout")
    session.commit()

    clear_auth_cookies(response)
    _no_store(response)
    return {"status": "ok"}
