"""Tests for GET /api/health."""
import pytest
from httpx import AsyncClient

from medinews.main import app
from medinews.routers.health import get_text_generator
from tests.fakes import FakeTextGenerator


class _DownTextGenerator(FakeTextGenerator):
    async def ping(self) -> bool:
        return False


@pytest.mark.asyncio
async def test_health_returns_200(client: AsyncClient):
    app.dependency_overrides[get_text_generator] = lambda: FakeTextGenerator()
    resp = await client.get("/api/health/")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "healthy"
    assert data["database"] == "ok"
    assert data["content_store"] == "ok"
    assert data["text_generation"] == "ok"
    # No OPENAI_API_KEY in the test environment
    assert data["image_generation"] == "disabled"


@pytest.mark.asyncio
async def test_health_degraded_when_text_service_down(client: AsyncClient):
    app.dependency_overrides[get_text_generator] = lambda: _DownTextGenerator()
    resp = await client.get("/api/health/")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "degraded"
    assert data["text_generation"] == "error"


@pytest.mark.asyncio
async def test_root_endpoint(client: AsyncClient):
    resp = await client.get("/")
    assert resp.status_code == 200
    data = resp.json()
    assert data["name"] == "medinews API"
    assert "X-Process-Time" in resp.headers
