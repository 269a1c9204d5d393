"""Tests for the /api/generate and /api/articles endpoints."""
import pytest
import pytest_asyncio
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from medinews.main import app
from medinews.routers.articles import get_article_store
from medinews.services.article_store import ArticleStore
from medinews.services.errors import GenerationServiceError
from medinews.services.synthesizer import Synthesizer
from tests.fakes import LONG_TEXT, FakeTextGenerator, article_json


@pytest.mark.asyncio
async def test_generate_single(client: AsyncClient, seed_chunks):
    await seed_chunks({1: LONG_TEXT})
    resp = await client.post("/api/generate/single")
    assert resp.status_code == 200
    data = resp.json()
    assert data["success"] is True
    assert data["failure_reason"] is None
    assert data["article"]["category"] == "health"
    assert data["article"]["source_chunk_id"] == 1
    assert data["details"]["chunk_id"] == 1
    assert data["details"]["stage"] == "done"
    assert data["details"]["image_generated"] is False


@pytest.mark.asyncio
async def test_generate_single_empty_pool(client: AsyncClient):
    resp = await client.post("/api/generate/single")
    assert resp.status_code == 200
    data = resp.json()
    assert data["success"] is False
    assert data["failure_reason"] == "NoContentAvailable"
    assert data["article"] is None


@pytest.mark.asyncio
async def test_generate_batch(client: AsyncClient, seed_chunks, pipeline):
    await seed_chunks({k: f"{LONG_TEXT} {k}" for k in range(1, 4)})
    pipeline.synthesizer = Synthesizer(
        FakeTextGenerator([article_json(), GenerationServiceError("down"), article_json()])
    )

    resp = await client.post("/api/generate/batch", params={"count": 3})
    assert resp.status_code == 200
    data = resp.json()
    assert data["success"] is True
    assert data["summary"] == {
        "total": 3,
        "succeeded": 2,
        "failed": 1,
        "failure_reasons": ["GenerationServiceError"],
    }
    assert len(data["results"]) == 3
    assert data["message"] == "Generated 2/3 articles successfully"


@pytest.mark.asyncio
@pytest.mark.parametrize("count", [0, 11])
async def test_generate_batch_rejects_bad_count(client: AsyncClient, count):
    resp = await client.post("/api/generate/batch", params={"count": count})
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_generate_test_does_not_save(client: AsyncClient, seed_chunks):
    await seed_chunks({1: LONG_TEXT})
    resp = await client.post("/api/generate/test")
    assert resp.status_code == 200
    data = resp.json()
    assert data["success"] is True
    assert data["article"]["id"] == "preview"

    listing = await client.get("/api/articles/")
    assert listing.json() == []


@pytest.mark.asyncio
async def test_stats_and_cycle_reset(client: AsyncClient, seed_chunks):
    await seed_chunks({1: LONG_TEXT, 2: LONG_TEXT})
    await client.post("/api/generate/single")

    stats = (await client.get("/api/generate/stats")).json()
    assert stats["chunk_stats"]["used_chunks"] == 1
    assert stats["news_stats"]["total_generated"] == 1
    assert stats["news_stats"]["cycle_count"] == 0

    resp = await client.delete("/api/generate/cycle")
    assert resp.status_code == 200
    assert resp.json()["success"] is True

    stats = (await client.get("/api/generate/stats")).json()
    assert stats["chunk_stats"]["used_chunks"] == 0
    assert stats["news_stats"]["cycle_count"] == 1


@pytest.mark.asyncio
async def test_article_crud(client: AsyncClient, seed_chunks):
    await seed_chunks({1: LONG_TEXT})
    created = (await client.post("/api/generate/single")).json()["article"]

    listing = await client.get("/api/articles/", params={"category": "health"})
    assert [a["id"] for a in listing.json()] == [created["id"]]

    resp = await client.get(f"/api/articles/{created['id']}")
    assert resp.status_code == 200
    assert resp.json()["title"] == created["title"]

    resp = await client.delete(f"/api/articles/{created['id']}")
    assert resp.status_code == 204

    assert (await client.get(f"/api/articles/{created['id']}")).status_code == 404
    assert (await client.delete(f"/api/articles/{created['id']}")).status_code == 404

    stats = (await client.get("/api/generate/stats")).json()
    assert stats["news_stats"]["total_generated"] == 0


@pytest.mark.asyncio
async def test_unknown_article_404(client: AsyncClient):
    resp = await client.get("/api/articles/does-not-exist")
    assert resp.status_code == 404
    assert "not found" in resp.json()["detail"]


@pytest_asyncio.fixture
async def broken_sessions():
    engine = create_async_engine("sqlite+aiosqlite:////nonexistent-dir/medinews.db")
    yield async_sessionmaker(engine)
    await engine.dispose()


@pytest.mark.asyncio
async def test_stats_returns_503_when_article_count_fails(
    client: AsyncClient, pipeline, store, broken_sessions
):
    class CountFailsStore(ArticleStore):
        async def get_stats(self):
            return await store.get_stats()

    pipeline.store = CountFailsStore(broken_sessions)

    resp = await client.get("/api/generate/stats")
    assert resp.status_code == 503
    assert "unavailable" in resp.json()["detail"]


@pytest.mark.asyncio
async def test_article_endpoints_return_503_when_store_down(
    client: AsyncClient, images, broken_sessions
):
    broken = ArticleStore(broken_sessions, images=images)
    app.dependency_overrides[get_article_store] = lambda: broken

    assert (await client.get("/api/articles/")).status_code == 503
    assert (await client.get("/api/articles/abc")).status_code == 503
    assert (await client.delete("/api/articles/abc")).status_code == 503
