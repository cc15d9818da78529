from __future__ import annotations

from crm_api.models.auth import AuthSession, OAuthState  # noqa: F401
from crm_api.models.base import Base as Base  # noqa: F401
from crm_api.models.crm import ActionItem, Contact, Thread, ThreadMessage  # noqa: F401
from crm_api.models.enums import (  # noqa: F401
    ActionItemStatus,
    ErrorKind,
    OverwriteMode,
    SyncJobStatus,
    SyncJobType,
    TouchpointStatus,
)
from crm_api.models.google import GoogleAccount  # noqa: F401
from crm_api.models.identity import User  # noqa: F401
from crm_api.models.sync import SyncJob, SyncSettings  # noqa: F401
