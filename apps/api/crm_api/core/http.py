from __future__ import annotations

from collections.abc import Generator

import httpx

from crm_api.core.config import get_settings


def build_http_client() -> httpx.Client:
    settings = get_settings()
    return httpx.Client(
        timeout=httpx.Timeout(10.0, connect=5.0),
        headers={"User-Agent": f"crm-api/{settings.VERSION}"},
    )


def get_http_client() -> Generator[httpx.Client, None, None]:
    # Overridden in tests with an httpx.MockTransport-backed client.
    with build_http_client() as client:
        yield client
