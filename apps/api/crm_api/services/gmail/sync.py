from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

import httpx
from sqlalchemy import update
from sqlalchemy.orm import Session

from crm_api.core.config import get_settings
from crm_api.core.logs import log_json, sync_logger
from crm_api.db.upsert import merge_upsert
from crm_api.models.crm import Contact, Thread, ThreadMessage
from crm_api.models.sync import SyncSettings
from crm_api.services.contacts.resolver import find_contact_id_by_email
from crm_api.services.errors import SyncItemError, item_error
from crm_api.services.gmail.normalize import (
    NormalizedMessage,
    message_timestamp,
    normalize_message,
    sender_email,
    split_addresses,
)
from crm_api.services.google.gmail import (
    get_message,
    get_thread,
    history_id_is_newer,
    list_history,
    list_threads,
)


@dataclass
class SyncResult:
    processed_threads: int = 0
    processed_messages: int = 0
    new_history_id: str | None = None
    errors: list[SyncItemError] = field(default_factory=list)

    def error_strings(self) -> list[str]:
        return [str(e) for e in self.errors]


@dataclass(frozen=True)
class UserSyncSettings:
    last_sync_history_id: str | None = None
    last_sync_timestamp: datetime | None = None


def get_user_sync_settings(session: Session, *, user_id: str) -> UserSyncSettings:
    row = session.get(SyncSettings, user_id)
    if row is None:
        return UserSyncSettings()
    return UserSyncSettings(
        last_sync_history_id=row.last_sync_history_id or None,
        last_sync_timestamp=row.last_sync_timestamp,
    )


def update_user_sync_settings(
    session: Session,
    *,
    user_id: str,
    history_id: str | None,
    timestamp: datetime,
) -> None:
    now = datetime.now(UTC)
    merge_upsert(
        session,
        SyncSettings,
        key={"user_id": user_id},
        values={
            "last_sync_history_id": history_id,
            "last_sync_timestamp": timestamp,
            "updated_at": now,
        },
    )


def should_do_incremental_sync(
    last_sync_timestamp: datetime | None,
    *,
    now: datetime | None = None,
    max_age_days: int | None = None,
) -> bool:
    if last_sync_timestamp is None:
        return False
    if max_age_days is None:
        max_age_days = get_settings().INCREMENTAL_SYNC_MAX_AGE_DAYS
    now = now or datetime.now(UTC)
    return now - last_sync_timestamp <= timedelta(days=max_age_days)


def _upsert_message(
    session: Session,
    *,
    user_id: str,
    thread_id: str,
    message: NormalizedMessage,
    sent_at: datetime,
    now: datetime,
) -> None:
    merge_upsert(
        session,
        ThreadMessage,
        key={"user_id": user_id, "thread_id": thread_id, "message_id": message.id},
        values={
            "from_address": message.from_address,
            "to_addresses": split_addresses(message.to),
            "subject": message.subject or None,
            "sent_at": sent_at,
            "body_plain": message.body or None,
            "updated_at": now,
        },
        insert_only={"created_at": now},
    )


def _upsert_thread(session: Session, *, user_id: str, thread_id: str, values: dict, now: datetime) -> None:
    merge_upsert(
        session,
        Thread,
        key={"user_id": user_id, "thread_id": thread_id},
        values={**values, "updated_at": now},
        insert_only={"created_at": now},
    )


def _touch_contact(session: Session, *, user_id: str, contact_id: str, email_date: datetime, now: datetime) -> None:
    # The contact was just resolved from this table, so this is a field merge on an existing row.
    session.execute(
        update(Contact)
        .where(Contact.user_id == user_id, Contact.contact_id == contact_id)
        .values(last_email_date=email_date, updated_at=now)
    )


def _resolve_sender(session: Session, *, user_id: str, message: NormalizedMessage) -> str | None:
    return find_contact_id_by_email(session, user_id=user_id, email=sender_email(message.from_address))


def perform_incremental_sync(
    *,
    session: Session,
    http_client: httpx.Client,
    user_id: str,
    access_token: str,
    last_history_id: str,
) -> SyncResult:
    result = SyncResult()
    touched_threads: set[str] = set()
    page_token: str | None = None
    new_history_id: str | None = None

    try:
        while True:
            page = list_history(
                http_client,
                access_token=access_token,
                start_history_id=last_history_id,
                page_token=page_token,
            )
            if page.history_id is not None:
                new_history_id = page.history_id

            for record in page.records:
                for ref in record.messages_added:
                    if ref.thread_id:
                        touched_threads.add(ref.thread_id)
                    try:
                        with session.begin_nested():
                            raw = get_message(http_client, access_token=access_token, message_id=ref.id)
                            normalized = normalize_message(raw)
                            result.processed_messages += 1
                            thread_id = ref.thread_id or normalized.thread_id
                            touched_threads.add(thread_id)
                            _ingest_incremental_message(
                                session,
                                user_id=user_id,
                                thread_id=thread_id,
                                message=normalized,
                                history_id=raw.get("historyId"),
                            )
                    except Exception as e:  # noqa: BLE001
                        result.errors.append(
                            item_error(e, item_id=ref.id, label="Error processing message")
                        )

            page_token = page.next_page_token
            if not page_token:
                break
    except Exception as e:
        result.errors.append(item_error(e, item_id="", label="Incremental sync error"))
        _log_pass_failed(user_id=user_id, mode="incremental", result=result)
        raise

    result.processed_threads = len(touched_threads)
    result.new_history_id = new_history_id or last_history_id
    return result


def _ingest_incremental_message(
    session: Session,
    *,
    user_id: str,
    thread_id: str,
    message: NormalizedMessage,
    history_id: object,
) -> None:
    now = datetime.now(UTC)
    sent_at = message_timestamp(message, now=now)
    _upsert_message(session, user_id=user_id, thread_id=thread_id, message=message, sent_at=sent_at, now=now)

    contact_id = _resolve_sender(session, user_id=user_id, message=message)

    # contact_id is only written when resolved; otherwise the stored link survives.
    thread_values: dict[str, object] = {"last_message_at": sent_at}
    if history_id:
        thread_values["history_id"] = str(history_id)
    if contact_id:
        thread_values["contact_id"] = contact_id
    _upsert_thread(session, user_id=user_id, thread_id=thread_id, values=thread_values, now=now)

    if contact_id:
        _touch_contact(session, user_id=user_id, contact_id=contact_id, email_date=sent_at, now=now)


def perform_full_sync(
    *,
    session: Session,
    http_client: httpx.Client,
    user_id: str,
    access_token: str,
    max_results: int | None = None,
) -> SyncResult:
    if max_results is None:
        max_results = get_settings().GMAIL_FULL_SYNC_MAX_THREADS
    result = SyncResult()
    latest_history_id: str | None = None

    try:
        threads = list_threads(http_client, access_token=access_token, max_results=max_results)
    except Exception as e:
        result.errors.append(item_error(e, item_id="", label="Full sync error"))
        _log_pass_failed(user_id=user_id, mode="full", result=result)
        raise

    for listed in threads:
        try:
            with session.begin_nested():
                detail = get_thread(http_client, access_token=access_token, thread_id=listed.id)
                history_id = detail.get("historyId")
                history_id = str(history_id) if history_id else None
                written = _ingest_full_thread(
                    session,
                    user_id=user_id,
                    thread_id=listed.id,
                    detail=detail,
                    history_id=history_id,
                )
        except Exception as e:  # noqa: BLE001
            result.errors.append(item_error(e, item_id=listed.id, label="Error processing thread"))
            continue

        if history_id_is_newer(history_id, latest_history_id):
            latest_history_id = history_id
        result.processed_messages += written
        result.processed_threads += 1

    result.new_history_id = latest_history_id
    return result


def _ingest_full_thread(
    session: Session,
    *,
    user_id: str,
    thread_id: str,
    detail: dict,
    history_id: str | None,
) -> int:
    now = datetime.now(UTC)
    messages = [normalize_message(m) for m in detail.get("messages") or []]
    sent_ats = [message_timestamp(m, now=now) for m in messages]

    thread_values: dict[str, object] = {
        "history_id": history_id,
        "snippet": detail.get("snippet") or "",
        "synced_at": now,
        "needs_summary": True,
    }
    if sent_ats:
        thread_values["last_message_at"] = max(sent_ats)
    _upsert_thread(session, user_id=user_id, thread_id=thread_id, values=thread_values, now=now)

    for message, sent_at in zip(messages, sent_ats, strict=True):
        _upsert_message(session, user_id=user_id, thread_id=thread_id, message=message, sent_at=sent_at, now=now)

        contact_id = _resolve_sender(session, user_id=user_id, message=message)
        if contact_id:
            _upsert_thread(session, user_id=user_id, thread_id=thread_id, values={"contact_id": contact_id}, now=now)
            _touch_contact(session, user_id=user_id, contact_id=contact_id, email_date=sent_at, now=now)

    return len(messages)


def _log_pass_failed(*, user_id: str, mode: str, result: SyncResult) -> None:
    log_json(
        sync_logger,
        "sync.pass.failed",
        level=logging.WARNING,
        user_id=user_id,
        mode=mode,
        processed_messages=result.processed_messages,
        errors=result.error_strings(),
    )
