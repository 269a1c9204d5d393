"""
Shared fixtures for medinews backend tests.

By default every test runs against a throwaway SQLite database (aiosqlite) in
a temporary directory.  Point ``TEST_DATABASE_URL`` at a PostgreSQL database
with pgvector to run the same suite against the production dialect.
Data is cleaned between tests by deleting from all tables.
"""
from __future__ import annotations

import os
import random
import tempfile
from typing import AsyncGenerator, Awaitable, Callable, Dict, List, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

_TMP_DIR = tempfile.mkdtemp(prefix="medinews-tests-")

# Override settings *before* any medinews module is imported, so that
# settings.DATABASE_URL and the global engine point at the test DB.
TEST_DATABASE_URL = os.environ.get(
    "TEST_DATABASE_URL",
    f"sqlite+aiosqlite:///{os.path.join(_TMP_DIR, 'medinews_test.db')}",
)
os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ["IMAGES_DIR"] = os.path.join(_TMP_DIR, "images")
os.environ["OPENAI_API_KEY"] = ""
os.environ["BATCH_DELAY_SECONDS"] = "0"

from medinews.database import Base, get_db  # noqa: E402
from medinews.main import app  # noqa: E402
from medinews.models.database_models import Chunk  # noqa: E402
from medinews.routers.articles import get_article_store  # noqa: E402
from medinews.routers.generation import get_pipeline  # noqa: E402
from medinews.routers.health import get_fragment_store  # noqa: E402
from medinews.services.article_store import ArticleStore  # noqa: E402
from medinews.services.cycle_selector import CycleSelector  # noqa: E402
from medinews.services.fragment_store import FragmentStore  # noqa: E402
from medinews.services.illustrator import Illustrator  # noqa: E402
from medinews.services.image_storage import ImageStorage  # noqa: E402
from medinews.services.pipeline import NewsPipeline  # noqa: E402
from medinews.services.publisher import Publisher  # noqa: E402
from medinews.services.synthesizer import Synthesizer  # noqa: E402

from tests.fakes import FakeTextGenerator  # noqa: E402

# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """
    Session factory bound to the test database.  After the test every table
    is emptied so each test starts with a clean slate.
    """
    engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=NullPool)

    async with engine.begin() as conn:
        if conn.dialect.name == "postgresql":
            await conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            await conn.execute(table.delete())

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


@pytest_asyncio.fixture
async def seed_chunks(
    session_factory: async_sessionmaker[AsyncSession],
) -> Callable[..., Awaitable[List[int]]]:
    """Return a coroutine that inserts chunks and returns their ids."""

    async def _seed(texts: Dict[int, str], metadata: Optional[dict] = None) -> List[int]:
        async with session_factory() as session:
            for key, content in texts.items():
                session.add(Chunk(id=key, content=content, metadata_json=metadata))
            await session.commit()
        return sorted(texts)

    return _seed


# ---------------------------------------------------------------------------
# Service fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def images(tmp_path) -> ImageStorage:
    return ImageStorage(images_dir=str(tmp_path / "images"), public_prefix="/images/articles")


@pytest.fixture
def store(session_factory, images) -> ArticleStore:
    return ArticleStore(session_factory, images=images)


@pytest.fixture
def fragments(session_factory) -> FragmentStore:
    return FragmentStore(session_factory)


@pytest.fixture
def build_pipeline(fragments, store):
    """
    Return a factory for NewsPipeline instances wired to the test database
    and to in-memory fakes for the AI services.
    """

    def _build(
        text_generator=None,
        image_generator=None,
        persister=None,
        seed: int = 0,
        sleep=None,
    ) -> NewsPipeline:
        kwargs = {}
        if sleep is not None:
            kwargs["sleep"] = sleep
        return NewsPipeline(
            selector=CycleSelector(fragments, store, rng=random.Random(seed)),
            synthesizer=Synthesizer(text_generator or FakeTextGenerator()),
            illustrator=Illustrator(image_generator, persister),
            publisher=Publisher(store),
            store=store,
            batch_delay=0.5,
            **kwargs,
        )

    return _build


# ---------------------------------------------------------------------------
# HTTP client
# ---------------------------------------------------------------------------

@pytest.fixture
def pipeline(build_pipeline) -> NewsPipeline:
    """Pipeline served by the HTTP client; tests may swap its collaborators."""

    async def _no_sleep(_seconds: float) -> None:
        return None

    return build_pipeline(sleep=_no_sleep)


@pytest_asyncio.fixture
async def client(
    db_session: AsyncSession,
    store: ArticleStore,
    fragments: FragmentStore,
    pipeline: NewsPipeline,
) -> AsyncGenerator[AsyncClient, None]:
    """
    httpx AsyncClient wired to the FastAPI app with the DB, store and
    pipeline dependencies overridden to use the test database.
    """

    async def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_article_store] = lambda: store
    app.dependency_overrides[get_pipeline] = lambda: pipeline
    app.dependency_overrides[get_fragment_store] = lambda: fragments

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
