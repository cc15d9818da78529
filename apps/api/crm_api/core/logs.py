from __future__ import annotations

import json
import logging
from contextvars import ContextVar

request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)

api_logger = logging.getLogger("crm.api")
sync_logger = logging.getLogger("crm.sync")
import_logger = logging.getLogger("crm.import")


def log_json(logger: logging.Logger, event: str, *, level: int = logging.INFO, **fields: object) -> None:
    payload: dict[str, object] = {"event": event, **fields}
    request_id = request_id_ctx.get()
    if request_id is not None:
        payload.setdefault("request_id", request_id)
    logger.log(level, json.dumps(payload, separators=(",", ":"), sort_keys=True, default=str))
