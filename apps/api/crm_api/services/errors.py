from __future__ import annotations

from dataclasses import dataclass

from crm_api.db.errors import is_resource_exhausted
from crm_api.models.enums import ErrorKind
from crm_api.services.google.gmail import GmailApiError
from crm_api.services.google.tokens import ReauthorizationRequiredError


@dataclass(frozen=True)
class SyncItemError:
    """One failed message, thread or row inside a batch that kept going."""

    item_id: str
    kind: ErrorKind
    detail: str
    # Rendered prefix, e.g. "Error processing message" or "Full sync error".
    label: str = "Error processing item"

    @property
    def retryable(self) -> bool:
        return self.kind in {ErrorKind.transient, ErrorKind.quota_exceeded}

    def __str__(self) -> str:
        if self.item_id:
            return f"{self.label} {self.item_id}: {self.detail}"
        return f"{self.label}: {self.detail}"


def classify_error(exc: BaseException) -> ErrorKind:
    if isinstance(exc, ReauthorizationRequiredError):
        return ErrorKind.reauth_required
    if is_resource_exhausted(exc):
        return ErrorKind.quota_exceeded
    if isinstance(exc, GmailApiError):
        if exc.status_code in {401, 403}:
            return ErrorKind.reauth_required
        if exc.status_code == 404:
            return ErrorKind.not_found
        if exc.status_code == 429:
            return ErrorKind.quota_exceeded
        if 400 <= exc.status_code < 500:
            return ErrorKind.invalid_input
        return ErrorKind.transient
    if isinstance(exc, (KeyError, ValueError, TypeError)):
        return ErrorKind.invalid_input
    return ErrorKind.transient


def error_detail(exc: BaseException) -> str:
    return str(exc) or "Unknown error"


def item_error(exc: BaseException, *, item_id: str, label: str) -> SyncItemError:
    return SyncItemError(item_id=item_id, kind=classify_error(exc), detail=error_detail(exc), label=label)
