"""Fold per-thread AI summaries into the contact record.

Thread summaries are written out of band by the summarizer as JSON objects
with camelCase keys (``summary``, ``actionItems``, ``painPoints``, ...).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from crm_api.models.crm import Contact, Thread


@dataclass(frozen=True)
class AggregatedContactData:
    summary: str
    action_items: list[str]
    sentiment: str
    relationship_insights: str
    pain_points: list[str]
    coaching_themes: list[str]
    outreach_draft: str
    next_touchpoint_message: str
    next_touchpoint_date: str
    updated_at: datetime


def _text(summary: dict, key: str) -> str:
    value = summary.get(key)
    return value if isinstance(value, str) else ""


def _items(summary: dict, key: str) -> list[str]:
    value = summary.get(key)
    if not isinstance(value, list):
        return []
    return [str(v) for v in value]


def load_thread_summaries(session: Session, *, user_id: str, contact_id: str) -> list[dict]:
    # Ordered oldest thread first, so the last element is the most recently created thread.
    rows = session.execute(
        select(Thread.summary)
        .where(
            Thread.user_id == user_id,
            Thread.contact_id == contact_id,
            Thread.summary.is_not(None),
        )
        .order_by(Thread.created_at.asc(), Thread.thread_id.asc())
    ).scalars()
    return [s for s in rows if isinstance(s, dict) and s]


def aggregate_contact_summaries(
    session: Session,
    *,
    user_id: str,
    contact_id: str,
    now: datetime | None = None,
) -> AggregatedContactData | None:
    summaries = load_thread_summaries(session, user_id=user_id, contact_id=contact_id)
    if not summaries:
        return None

    last = summaries[-1]
    return AggregatedContactData(
        summary="\n\n".join(_text(s, "summary") for s in summaries),
        action_items=[item for s in summaries for item in _items(s, "actionItems")],
        # Per-thread sentiment is not reconciled yet.
        sentiment="mixed",
        relationship_insights="\n\n".join(_text(s, "relationshipInsights") for s in summaries),
        pain_points=[item for s in summaries for item in _items(s, "painPoints")],
        coaching_themes=[item for s in summaries for item in _items(s, "coachingThemes")],
        outreach_draft=_text(last, "outreachDraft"),
        next_touchpoint_message=_text(last, "nextTouchpointMessage"),
        next_touchpoint_date=_text(last, "nextTouchpointDate"),
        updated_at=now or datetime.now(UTC),
    )


def aggregate_all_contacts(session: Session, *, user_id: str) -> int:
    contact_ids = (
        session.execute(
            select(Contact.contact_id).where(Contact.user_id == user_id).order_by(Contact.contact_id.asc())
        )
        .scalars()
        .all()
    )

    updated = 0
    for contact_id in contact_ids:
        aggregated = aggregate_contact_summaries(session, user_id=user_id, contact_id=contact_id)
        if aggregated is None:
            continue

        session.execute(
            update(Contact)
            .where(Contact.user_id == user_id, Contact.contact_id == contact_id)
            .values(
                summary=aggregated.summary,
                action_items=aggregated.action_items,
                sentiment=aggregated.sentiment,
                relationship_insights=aggregated.relationship_insights,
                pain_points="\n".join(aggregated.pain_points),
                coaching_themes="\n".join(aggregated.coaching_themes),
                outreach_draft=aggregated.outreach_draft,
                next_touchpoint_message=aggregated.next_touchpoint_message or None,
                next_touchpoint_date=aggregated.next_touchpoint_date or None,
                summary_updated_at=aggregated.updated_at,
                updated_at=aggregated.updated_at,
            )
        )
        updated += 1

    session.flush()
    return updated
