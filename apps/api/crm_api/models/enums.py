from __future__ import annotations

import enum


class SyncJobType(enum.StrEnum):
    initial = "initial"
    incremental = "incremental"
    auto = "auto"


class SyncJobStatus(enum.StrEnum):
    pending = "pending"
    running = "running"
    complete = "complete"
    error = "error"


class TouchpointStatus(enum.StrEnum):
    pending = "pending"
    completed = "completed"
    cancelled = "cancelled"


class ActionItemStatus(enum.StrEnum):
    pending = "pending"
    completed = "completed"


class OverwriteMode(enum.StrEnum):
    overwrite = "overwrite"
    skip = "skip"


class ErrorKind(enum.StrEnum):
    transient = "transient"
    reauth_required = "reauth_required"
    quota_exceeded = "quota_exceeded"
    invalid_input = "invalid_input"
    not_found = "not_found"
