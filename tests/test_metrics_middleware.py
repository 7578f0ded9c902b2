"""Tests for request metrics and the ``/metrics`` endpoint."""

import httpx
import pytest
from fastapi import FastAPI

from observability.metrics import MetricsMiddleware, metrics_app, request_count


def _app() -> FastAPI:
    app = FastAPI()
    app.middleware("http")(MetricsMiddleware())
    app.mount("/metrics", metrics_app)

    @app.get("/ping")
    async def ping():
        return {"ok": True}

    return app


@pytest.mark.asyncio
async def test_requests_are_counted():
    before = request_count.labels("GET", "/ping")._value.get()
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=_app()), base_url="http://test") as client:
        response = await client.get("/ping")
        exposed = await client.get("/metrics/")
    assert response.json() == {"ok": True}
    assert request_count.labels("GET", "/ping")._value.get() == before + 1
    assert "crawler_pages_stored_total" in exposed.text
