from __future__ import annotations

import pytest

from crm_api.core.crypto import SealedValueError, open_sealed, seal
from crm_api.core.middleware import ClientThrottle
from crm_api.core.security import constant_time_equals


def test_sealed_token_is_bound_to_its_account() -> None:
    blob = seal("ya29.secret", context="google_accounts:alice")
    assert b"ya29.secret" not in blob
    assert open_sealed(blob, context="google_accounts:alice") == "ya29.secret"

    with pytest.raises(SealedValueError):
        open_sealed(blob, context="google_accounts:mallory")


def test_unknown_sealed_format_is_rejected() -> None:
    with pytest.raises(SealedValueError):
        open_sealed(b"\x02" + b"\x00" * 40, context="google_accounts:alice")


def test_throttle_resets_each_minute() -> None:
    throttle = ClientThrottle(per_minute=2)
    assert throttle.admit("10.0.0.1", at=120.0)
    assert throttle.admit("10.0.0.1", at=130.0)
    assert not throttle.admit("10.0.0.1", at=179.0)
    assert throttle.admit("10.0.0.2", at=179.0)
    assert throttle.admit("10.0.0.1", at=180.0)


def test_unset_cron_secret_never_matches() -> None:
    assert not constant_time_equals("anything", "")
    assert not constant_time_equals(None, "secret")
    assert constant_time_equals("secret", "secret")
