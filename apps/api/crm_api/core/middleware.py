"""Per-request plumbing: request ids, client throttling, security headers, access log and metrics."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.responses import Response

from crm_api.core.config import Settings
from crm_api.core.logs import api_logger, log_json, request_id_ctx
from crm_api.core.metrics import observe_http_request
from crm_api.core.security import new_random_token

MAX_REQUEST_ID_LENGTH = 128


@dataclass
class ClientThrottle:
    """Fixed one-minute window counter per client address."""

    per_minute: int
    _guard: threading.Lock = field(default_factory=threading.Lock)
    _windows: dict[str, tuple[int, int]] = field(default_factory=dict)

    def admit(self, client: str, *, at: float) -> bool:
        window = int(at // 60)
        with self._guard:
            started, used = self._windows.get(client, (window, 0))
            if started != window:
                # Drop stale windows so idle clients do not accumulate.
                self._windows = {k: v for k, v in self._windows.items() if v[0] == window}
                used = 0
            if used >= self.per_minute:
                return False
            self._windows[client] = (window, used + 1)
            return True


def client_address(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for", "")
    first_hop = forwarded.split(",", 1)[0].strip()
    if first_hop:
        return first_hop
    return request.client.host if request.client else "unknown"


def route_template(request: Request) -> str:
    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


def _request_id(request: Request, header: str) -> str:
    supplied = request.headers.get(header, "").strip()
    return supplied[:MAX_REQUEST_ID_LENGTH] if supplied else new_random_token(nbytes=18)


def _harden(response: Response, settings: Settings) -> None:
    for name, value in (
        ("X-Content-Type-Options", "nosniff"),
        ("X-Frame-Options", "DENY"),
        ("Referrer-Policy", "same-origin"),
        ("Content-Security-Policy", settings.CONTENT_SECURITY_POLICY),
    ):
        response.headers.setdefault(name, value)


def install_request_middleware(app: FastAPI, *, settings: Settings) -> None:
    throttle = (
        ClientThrottle(per_minute=settings.RATE_LIMIT_REQUESTS_PER_MINUTE)
        if settings.RATE_LIMIT_REQUESTS_PER_MINUTE > 0
        else None
    )

    @app.middleware("http")
    async def request_context(request: Request, call_next):  # type: ignore[no-untyped-def]
        request_id = _request_id(request, settings.REQUEST_ID_HEADER)
        ctx_token = request_id_ctx.set(request_id)
        started = time.perf_counter()
        throttled = throttle is not None and not throttle.admit(client_address(request), at=time.time())
        status_code = 500
        try:
            if throttled:
                response = JSONResponse(status_code=429, content={"detail": "Rate limit exceeded"})
            else:
                response = await call_next(request)
            status_code = response.status_code
            response.headers[settings.REQUEST_ID_HEADER] = request_id
            _harden(response, settings)
            return response
        finally:
            elapsed_ms = int((time.perf_counter() - started) * 1000)
            path = route_template(request)
            log_json(
                api_logger,
                "http.request.completed",
                method=request.method,
                path=path,
                status_code=status_code,
                duration_ms=elapsed_ms,
                rate_limited=throttled,
            )
            if settings.ENABLE_PROMETHEUS_METRICS:
                observe_http_request(
                    method=request.method,
                    path=path,
                    status_code=status_code,
                    duration_ms=elapsed_ms,
                    rate_limited=throttled,
                )
            request_id_ctx.reset(ctx_token)
