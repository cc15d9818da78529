from __future__ import annotations

from datetime import date

from crm_api.schemas.common import CamelModel


class EngagementLevelsOut(CamelModel):
    high: int
    medium: int
    low: int
    none: int


class DashboardStatsOut(CamelModel):
    total_contacts: int
    contacts_with_email: int
    contacts_with_threads: int
    average_engagement_score: float
    segment_distribution: dict[str, int]
    lead_source_distribution: dict[str, int]
    tag_distribution: dict[str, int]
    sentiment_distribution: dict[str, int]
    engagement_levels: EngagementLevelsOut
    upcoming_touchpoints: int


class DashboardStatsResponse(CamelModel):
    stats: DashboardStatsOut


class UpcomingTouchpointOut(CamelModel):
    contact_id: str
    contact_name: str
    touchpoint_date: date
    message: str | None
    days_until: int


class UpcomingTouchpointsResponse(CamelModel):
    days_ahead: int
    touchpoints: list[UpcomingTouchpointOut]
