from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from crm_api.core.deps import require_user
from crm_api.db.session import get_session
from crm_api.models.identity import User
from crm_api.schemas.dashboard import (
    DashboardStatsOut,
    DashboardStatsResponse,
    UpcomingTouchpointOut,
    UpcomingTouchpointsResponse,
)
from crm_api.services.dashboard import (
    UPCOMING_TOUCHPOINT_DAYS,
    compute_dashboard_stats,
    list_upcoming_touchpoints,
)

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


@router.get("/stats", response_model=DashboardStatsResponse)
def dashboard_stats(
    user: User = Depends(require_user),
    session: Session = Depends(get_session),
) -> DashboardStatsResponse:
    view = compute_dashboard_stats(session=session, user_id=user.id)
    return DashboardStatsResponse(stats=DashboardStatsOut.model_validate(view))


@router.get("/touchpoints/upcoming", response_model=UpcomingTouchpointsResponse)
def dashboard_upcoming_touchpoints(
    days_ahead: int = Query(default=UPCOMING_TOUCHPOINT_DAYS, alias="daysAhead", ge=0, le=365),
    user: User = Depends(require_user),
    session: Session = Depends(get_session),
) -> UpcomingTouchpointsResponse:
    views = list_upcoming_touchpoints(session=session, user_id=user.id, days_ahead=days_ahead)
    return UpcomingTouchpointsResponse(
        days_ahead=days_ahead,
        touchpoints=[UpcomingTouchpointOut.model_validate(view) for view in views],
    )
