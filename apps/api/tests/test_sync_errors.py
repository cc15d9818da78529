from __future__ import annotations

from sqlalchemy.exc import OperationalError

from crm_api.db.errors import StoreQuotaExceededError
from crm_api.models.enums import ErrorKind
from crm_api.services.errors import SyncItemError, classify_error, item_error
from crm_api.services.google.gmail import GmailApiError
from crm_api.services.google.tokens import ReauthorizationRequiredError


def test_classify_gmail_status_codes() -> None:
    assert classify_error(GmailApiError(status_code=401, message="x")) == ErrorKind.reauth_required
    assert classify_error(GmailApiError(status_code=404, message="x")) == ErrorKind.not_found
    assert classify_error(GmailApiError(status_code=429, message="x")) == ErrorKind.quota_exceeded
    assert classify_error(GmailApiError(status_code=400, message="x")) == ErrorKind.invalid_input
    assert classify_error(GmailApiError(status_code=503, message="x")) == ErrorKind.transient


def test_classify_other_failures() -> None:
    assert classify_error(ReauthorizationRequiredError("gone", code="invalid_grant")) == ErrorKind.reauth_required
    assert classify_error(StoreQuotaExceededError("full")) == ErrorKind.quota_exceeded
    assert classify_error(KeyError("id")) == ErrorKind.invalid_input
    assert classify_error(OperationalError("SELECT", {}, Exception("locked"))) == ErrorKind.transient


def test_item_error_renders_label_and_id() -> None:
    err = item_error(RuntimeError("boom"), item_id="m1", label="Error processing message")
    assert str(err) == "Error processing message m1: boom"
    assert err.retryable is True

    whole_pass = SyncItemError(item_id="", kind=ErrorKind.invalid_input, detail="bad", label="Full sync error")
    assert str(whole_pass) == "Full sync error: bad"
    assert whole_pass.retryable is False
