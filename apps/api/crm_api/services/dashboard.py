from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta

from sqlalchemy import select
from sqlalchemy.orm import Session

from crm_api.models.crm import Contact, Thread

UPCOMING_TOUCHPOINT_DAYS = 60


@dataclass(frozen=True)
class EngagementLevels:
    high: int
    medium: int
    low: int
    none: int


@dataclass(frozen=True)
class DashboardStatsView:
    total_contacts: int
    contacts_with_email: int
    contacts_with_threads: int
    average_engagement_score: float
    segment_distribution: dict[str, int]
    lead_source_distribution: dict[str, int]
    tag_distribution: dict[str, int]
    sentiment_distribution: dict[str, int]
    engagement_levels: EngagementLevels
    upcoming_touchpoints: int


def engagement_level(score: int | None) -> str:
    if score is None or score <= 0:
        return "none"
    if score >= 70:
        return "high"
    if score >= 40:
        return "medium"
    return "low"


def parse_touchpoint_date(value: str | None) -> date | None:
    if not value:
        return None
    try:
        return date.fromisoformat(value.split("T", 1)[0])
    except ValueError:
        return None


@dataclass(frozen=True)
class UpcomingTouchpointView:
    contact_id: str
    contact_name: str
    touchpoint_date: date
    message: str | None
    days_until: int


def compute_dashboard_stats(
    *,
    session: Session,
    user_id: str,
    now: datetime | None = None,
) -> DashboardStatsView:
    now = now or datetime.now(UTC)
    contacts = (
        session.execute(
            select(Contact).where(Contact.user_id == user_id, Contact.archived.is_(False))
        )
        .scalars()
        .all()
    )
    threaded_ids = set(
        session.execute(
            select(Thread.contact_id)
            .where(Thread.user_id == user_id, Thread.contact_id.is_not(None))
            .distinct()
        )
        .scalars()
        .all()
    )

    segments: Counter[str] = Counter()
    lead_sources: Counter[str] = Counter()
    tags: Counter[str] = Counter()
    sentiments: Counter[str] = Counter()
    levels: Counter[str] = Counter()
    scores: list[int] = []
    upcoming = 0
    today = now.date()
    horizon = today + timedelta(days=UPCOMING_TOUCHPOINT_DAYS)

    for contact in contacts:
        segments[contact.segment or "Unknown"] += 1
        lead_sources[contact.lead_source or "Unknown"] += 1
        sentiments[contact.sentiment or "Neutral"] += 1
        for tag in contact.tags or []:
            tags[tag] += 1

        levels[engagement_level(contact.engagement_score)] += 1
        if contact.engagement_score is not None:
            scores.append(contact.engagement_score)

        touchpoint = parse_touchpoint_date(contact.next_touchpoint_date)
        if touchpoint is not None and today <= touchpoint <= horizon:
            upcoming += 1

    average = round(sum(scores) / len(scores), 1) if scores else 0.0

    return DashboardStatsView(
        total_contacts=len(contacts),
        contacts_with_email=sum(1 for c in contacts if c.primary_email),
        contacts_with_threads=sum(1 for c in contacts if c.contact_id in threaded_ids),
        average_engagement_score=average,
        segment_distribution=dict(segments),
        lead_source_distribution=dict(lead_sources),
        tag_distribution=dict(tags),
        sentiment_distribution=dict(sentiments),
        engagement_levels=EngagementLevels(
            high=levels["high"],
            medium=levels["medium"],
            low=levels["low"],
            none=levels["none"],
        ),
        upcoming_touchpoints=upcoming,
    )


def list_upcoming_touchpoints(
    *,
    session: Session,
    user_id: str,
    days_ahead: int = UPCOMING_TOUCHPOINT_DAYS,
    now: datetime | None = None,
) -> list[UpcomingTouchpointView]:
    """Active contacts whose next touchpoint falls between today and ``days_ahead`` days out, soonest first."""
    today = (now or datetime.now(UTC)).date()
    horizon = today + timedelta(days=days_ahead)
    contacts = (
        session.execute(
            select(Contact).where(
                Contact.user_id == user_id,
                Contact.archived.is_(False),
                Contact.next_touchpoint_date.is_not(None),
            )
        )
        .scalars()
        .all()
    )

    upcoming: list[UpcomingTouchpointView] = []
    for contact in contacts:
        touchpoint = parse_touchpoint_date(contact.next_touchpoint_date)
        if touchpoint is None or not today <= touchpoint <= horizon:
            continue
        name = " ".join(part for part in (contact.first_name, contact.last_name) if part)
        upcoming.append(
            UpcomingTouchpointView(
                contact_id=contact.contact_id,
                contact_name=name or contact.primary_email,
                touchpoint_date=touchpoint,
                message=contact.next_touchpoint_message or None,
                days_until=(touchpoint - today).days,
            )
        )
    upcoming.sort(key=lambda view: (view.touchpoint_date, view.contact_id))
    return upcoming
