from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from sqlalchemy.exc import DBAPIError
from starlette.responses import Response

from crm_api.core.config import Settings, get_settings
from crm_api.core.logs import api_logger, log_json
from crm_api.core.middleware import install_request_middleware
from crm_api.db.errors import StoreQuotaExceededError, is_resource_exhausted
from crm_api.routers import action_items, auth, contacts, dashboard, gmail, health, me, sync_jobs

QUOTA_EXCEEDED_DETAIL = "Database quota exceeded. Please wait a few minutes and try again."


def _quota_exceeded(request: Request) -> JSONResponse:
    log_json(api_logger, "store.quota_exceeded", level=logging.WARNING, method=request.method, path=request.url.path)
    return JSONResponse(status_code=429, content={"detail": QUOTA_EXCEEDED_DETAIL, "quotaExceeded": True})


def _register_store_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(StoreQuotaExceededError)
    async def on_quota_exceeded(request: Request, exc: StoreQuotaExceededError) -> JSONResponse:
        return _quota_exceeded(request)

    @app.exception_handler(DBAPIError)
    async def on_database_error(request: Request, exc: DBAPIError) -> JSONResponse:
        if is_resource_exhausted(exc):
            return _quota_exceeded(request)
        cause = exc.orig if exc.orig is not None else exc
        log_json(
            api_logger,
            "store.error",
            level=logging.ERROR,
            method=request.method,
            path=request.url.path,
            error_type=type(cause).__name__,
        )
        return JSONResponse(status_code=500, content={"detail": "Internal Server Error"})


def _mount_metrics(app: FastAPI, settings: Settings) -> None:
    @app.get(settings.PROMETHEUS_METRICS_PATH, include_in_schema=False)
    def metrics() -> Response:
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title="CRM API", version=settings.VERSION)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    install_request_middleware(app, settings=settings)
    _register_store_error_handlers(app)
    if settings.ENABLE_PROMETHEUS_METRICS:
        _mount_metrics(app, settings)

    for module in (health, auth, me, contacts, action_items, gmail, sync_jobs, dashboard):
        app.include_router(module.router)
    return app


app = create_app()
