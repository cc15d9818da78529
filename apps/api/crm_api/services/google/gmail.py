from __future__ import annotations

from dataclasses import dataclass

import httpx

GMAIL_API_BASE = "https://gmail.googleapis.com/gmail/v1/users/me"
GMAIL_THREADS_URL = f"{GMAIL_API_BASE}/threads"
GMAIL_MESSAGES_URL = f"{GMAIL_API_BASE}/messages"
GMAIL_HISTORY_URL = f"{GMAIL_API_BASE}/history"


@dataclass(frozen=True)
class GmailMessageRef:
    id: str
    thread_id: str | None


@dataclass(frozen=True)
class GmailHistoryRecord:
    history_id: str | None
    messages_added: list[GmailMessageRef]


@dataclass(frozen=True)
class GmailHistoryPage:
    records: list[GmailHistoryRecord]
    next_page_token: str | None
    history_id: str | None


@dataclass(frozen=True)
class GmailThreadListItem:
    id: str
    history_id: str | None
    snippet: str | None


class GmailApiError(RuntimeError):
    def __init__(self, *, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code


class GmailHistoryExpiredError(GmailApiError):
    pass


def _auth_headers(access_token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {access_token}"}


def list_history(
    client: httpx.Client,
    *,
    access_token: str,
    start_history_id: str,
    page_token: str | None = None,
    max_results: int = 100,
) -> GmailHistoryPage:
    params: dict[str, object] = {
        "startHistoryId": str(start_history_id),
        "historyTypes": "messageAdded",
        "maxResults": max(1, min(500, max_results)),
    }
    if page_token:
        params["pageToken"] = page_token

    res = client.get(GMAIL_HISTORY_URL, params=params, headers=_auth_headers(access_token))
    if res.status_code == 404:
        raise GmailHistoryExpiredError(
            status_code=res.status_code,
            message="Gmail historyId is invalid or expired",
        )
    _raise_for_gmail_error(res, default_message="History API error")

    payload = res.json()
    records: list[GmailHistoryRecord] = []
    for item in payload.get("history") or []:
        added: list[GmailMessageRef] = []
        for entry in item.get("messagesAdded") or []:
            msg = entry.get("message") or {}
            msg_id = msg.get("id")
            if msg_id:
                added.append(GmailMessageRef(id=msg_id, thread_id=msg.get("threadId")))
        records.append(
            GmailHistoryRecord(history_id=_parse_history_id(item.get("id")), messages_added=added)
        )

    return GmailHistoryPage(
        records=records,
        next_page_token=payload.get("nextPageToken"),
        history_id=_parse_history_id(payload.get("historyId")),
    )


def list_threads(
    client: httpx.Client,
    *,
    access_token: str,
    max_results: int = 100,
) -> list[GmailThreadListItem]:
    res = client.get(
        GMAIL_THREADS_URL,
        params={"maxResults": max(1, min(500, max_results))},
        headers=_auth_headers(access_token),
    )
    _raise_for_gmail_error(res, default_message="Failed to fetch threads")

    payload = res.json()
    threads: list[GmailThreadListItem] = []
    for item in payload.get("threads") or []:
        thread_id = item.get("id")
        if not thread_id:
            continue
        threads.append(
            GmailThreadListItem(
                id=thread_id,
                history_id=_parse_history_id(item.get("historyId")),
                snippet=item.get("snippet"),
            )
        )
    return threads


def get_thread(client: httpx.Client, *, access_token: str, thread_id: str) -> dict:
    res = client.get(
        f"{GMAIL_THREADS_URL}/{thread_id}",
        params={"format": "full"},
        headers=_auth_headers(access_token),
    )
    _raise_for_gmail_error(res, default_message="Gmail thread fetch failed")
    return res.json()


def get_message(client: httpx.Client, *, access_token: str, message_id: str) -> dict:
    res = client.get(
        f"{GMAIL_MESSAGES_URL}/{message_id}",
        params={"format": "full"},
        headers=_auth_headers(access_token),
    )
    _raise_for_gmail_error(res, default_message="Gmail message fetch failed")
    return res.json()


def _raise_for_gmail_error(res: httpx.Response, *, default_message: str) -> None:
    if res.status_code < 400:
        return

    message = default_message
    try:
        payload = res.json()
        detail = payload.get("error", {}).get("message")
        if detail:
            message = f"{default_message}: {detail}"
    except Exception:  # noqa: BLE001
        message = default_message

    raise GmailApiError(status_code=res.status_code, message=message)


def _parse_history_id(v: object) -> str | None:
    if v is None or v == "":
        return None
    return str(v)


def history_id_is_newer(candidate: str | None, current: str | None) -> bool:
    """Gmail history ids are decimal strings that only grow."""
    if candidate is None:
        return False
    if current is None:
        return True
    try:
        return int(candidate) > int(current)
    except ValueError:
        return candidate > current
