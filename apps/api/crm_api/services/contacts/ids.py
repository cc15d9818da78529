from __future__ import annotations

import re

_UNSAFE = re.compile(r"[^a-z0-9_-]")


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def normalize_contact_id(email: str) -> str:
    """Deterministic, URL-safe contact id for an email address.

    ``Ann.Lee@Example.com `` and ``ann.lee@example.com`` map to the same id.
    """
    value = normalize_email(email)
    if not value:
        raise ValueError("Email is required")
    value = value.replace("@", "_at_").replace(".", "_")
    return _UNSAFE.sub("-", value)
