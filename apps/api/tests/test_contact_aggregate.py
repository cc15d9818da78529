from __future__ import annotations

from datetime import UTC, datetime, timedelta

from sqlalchemy.orm import Session

from crm_api.models.crm import Contact, Thread
from crm_api.services.contacts.aggregate import aggregate_all_contacts, aggregate_contact_summaries


def _add_thread(db_session: Session, *, user_id: str, thread_id: str, contact_id: str, summary, created_at) -> None:
    db_session.add(
        Thread(
            user_id=user_id,
            thread_id=thread_id,
            contact_id=contact_id,
            summary=summary,
            created_at=created_at,
            updated_at=created_at,
        )
    )
    db_session.commit()


def test_contact_without_summaries_aggregates_to_none(db_session: Session, make_user, make_contact) -> None:
    user = make_user()
    contact = make_contact(user.id, "quiet@example.com")
    _add_thread(
        db_session,
        user_id=user.id,
        thread_id="t-none",
        contact_id=contact.contact_id,
        summary=None,
        created_at=datetime.now(UTC),
    )

    assert aggregate_contact_summaries(db_session, user_id=user.id, contact_id=contact.contact_id) is None


def test_summaries_are_concatenated_oldest_first(db_session: Session, make_user, make_contact) -> None:
    user = make_user()
    contact = make_contact(user.id, "ann@example.com")
    base = datetime(2026, 1, 1, tzinfo=UTC)
    _add_thread(
        db_session,
        user_id=user.id,
        thread_id="t-new",
        contact_id=contact.contact_id,
        summary={
            "summary": "Second",
            "actionItems": ["send deck"],
            "painPoints": ["pricing"],
            "coachingThemes": ["follow-up cadence"],
            "relationshipInsights": "warming",
            "outreachDraft": "Hi Ann, following up",
            "nextTouchpointMessage": "Check on deck",
            "nextTouchpointDate": "2026-02-01",
        },
        created_at=base + timedelta(days=2),
    )
    _add_thread(
        db_session,
        user_id=user.id,
        thread_id="t-old",
        contact_id=contact.contact_id,
        summary={
            "summary": "First",
            "actionItems": ["book call", "share notes"],
            "painPoints": ["onboarding"],
            "relationshipInsights": "new lead",
            "outreachDraft": "stale draft",
        },
        created_at=base,
    )

    now = datetime(2026, 3, 1, tzinfo=UTC)
    data = aggregate_contact_summaries(db_session, user_id=user.id, contact_id=contact.contact_id, now=now)

    assert data is not None
    assert data.summary == "First\n\nSecond"
    assert data.action_items == ["book call", "share notes", "send deck"]
    assert len(data.action_items) == 3
    assert data.sentiment == "mixed"
    assert data.relationship_insights == "new lead\n\nwarming"
    assert data.pain_points == ["onboarding", "pricing"]
    assert data.coaching_themes == ["follow-up cadence"]
    # Forward-looking fields come from the most recently created thread.
    assert data.outreach_draft == "Hi Ann, following up"
    assert data.next_touchpoint_message == "Check on deck"
    assert data.next_touchpoint_date == "2026-02-01"
    assert data.updated_at == now


def test_aggregate_all_contacts_writes_back(db_session: Session, make_user, make_contact) -> None:
    user = make_user()
    ann = make_contact(user.id, "ann@example.com")
    make_contact(user.id, "nobody@example.com")
    _add_thread(
        db_session,
        user_id=user.id,
        thread_id="t1",
        contact_id=ann.contact_id,
        summary={"summary": "Talked pricing", "painPoints": ["budget", "timing"], "actionItems": ["quote"]},
        created_at=datetime.now(UTC),
    )

    updated = aggregate_all_contacts(db_session, user_id=user.id)
    db_session.commit()

    assert updated == 1
    contact = db_session.get(Contact, (user.id, ann.contact_id))
    db_session.refresh(contact)
    assert contact.summary == "Talked pricing"
    assert contact.pain_points == "budget\ntiming"
    assert contact.action_items == ["quote"]
    assert contact.sentiment == "mixed"
    assert contact.next_touchpoint_date is None
    assert contact.summary_updated_at is not None
