"""
Durable store for articles, the consumed-chunk set and generation counters.

Public API
----------
ArticleStore.transaction()            -> async context manager yielding PublishTransaction
ArticleStore.list_consumed_keys()     -> Set[int]
ArticleStore.reset_cycle_if(expected) -> bool   (compare-and-swap on cycle_count)
ArticleStore.clear_consumed_keys()    -> None   (unconditional manual reset)
ArticleStore.get_stats()              -> StatsSnapshot
ArticleStore.list_articles(...)       -> List[Article]
ArticleStore.get_article(id)          -> Optional[Article]
ArticleStore.delete_article(id)       -> bool

Counter changes are issued as ``col = col + 1`` UPDATE statements so that
concurrent runs never lose increments.  The consumed set relies on the unique
constraint on ``used_chunks.chunk_id``.
"""
from __future__ import annotations

import dataclasses
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, List, Optional, Set

from sqlalchemy import case, delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from medinews.config import settings
from medinews.database import AsyncSessionLocal
from medinews.models.database_models import (
    Article,
    ArticleCategory,
    GenerationStats,
    UsedChunk,
)
from medinews.services.errors import (
    FragmentAlreadyConsumed,
    PublishFailure,
    StoreUnavailable,
)
from medinews.services.image_storage import ImageStorage

logger = logging.getLogger(__name__)

STATS_ROW_ID = 1

# Bulk UPDATE/DELETE statements never touch objects loaded in the session
_BULK = {"synchronize_session": False}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Value objects
# ---------------------------------------------------------------------------

@dataclasses.dataclass
class ArticleDraft:
    """Everything needed to insert an article row."""

    title: str
    content: str
    summary: str
    tags: List[str]
    category: ArticleCategory
    source_chunk_id: Optional[int]
    image_url: Optional[str] = None


@dataclasses.dataclass(frozen=True)
class StatsSnapshot:
    total_generated: int
    last_generated: Optional[datetime]
    cycle_count: int
    max_articles: int
    auto_reset_cycle: bool


# ---------------------------------------------------------------------------
# Publish transaction
# ---------------------------------------------------------------------------

class PublishTransaction:
    """
    Write operations that make up one publish, bound to a single session.

    The caller decides the order; the surrounding ``ArticleStore.transaction``
    commits everything or nothing.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        # Image URLs of pruned articles, removed from disk after commit
        self.pruned_image_urls: List[str] = []

    async def create_article(self, draft: ArticleDraft) -> Article:
        article = Article(
            title=draft.title,
            content=draft.content,
            summary=draft.summary,
            tags=list(draft.tags),
            category=draft.category,
            image_url=draft.image_url,
            source_chunk_id=draft.source_chunk_id,
            created_at=_utcnow(),
        )
        self._session.add(article)
        try:
            await self._session.flush()
        except SQLAlchemyError as exc:
            raise PublishFailure(f"Failed to save article: {exc}") from exc
        return article

    async def increment_stats(self) -> None:
        try:
            await self._session.execute(
                update(GenerationStats)
                .where(GenerationStats.id == STATS_ROW_ID)
                .values(
                    total_generated=GenerationStats.total_generated + 1,
                    last_generated=_utcnow(),
                ),
                execution_options=_BULK,
            )
        except SQLAlchemyError as exc:
            raise PublishFailure(f"Failed to update generation stats: {exc}") from exc

    async def add_consumed_key(self, chunk_id: int) -> None:
        self._session.add(UsedChunk(chunk_id=chunk_id, created_at=_utcnow()))
        try:
            await self._session.flush()
        except IntegrityError as exc:
            raise FragmentAlreadyConsumed(
                f"Chunk {chunk_id} was already consumed in this cycle"
            ) from exc
        except SQLAlchemyError as exc:
            raise PublishFailure(f"Failed to mark chunk {chunk_id} as used: {exc}") from exc

    async def prune_articles(self, max_articles: int) -> int:
        """Delete the oldest articles beyond *max_articles*.  Returns count deleted."""
        if max_articles <= 0:
            return 0
        try:
            total = (
                await self._session.execute(select(func.count(Article.id)))
            ).scalar() or 0
            excess = total - max_articles
            if excess <= 0:
                return 0
            rows = (
                await self._session.execute(
                    select(Article.id, Article.image_url)
                    .order_by(Article.created_at.asc())
                    .limit(excess)
                )
            ).all()
            old_ids = [row.id for row in rows]
            await self._session.execute(
                delete(Article).where(Article.id.in_(old_ids)), execution_options=_BULK
            )
        except SQLAlchemyError as exc:
            raise PublishFailure(f"Failed to prune old articles: {exc}") from exc
        self.pruned_image_urls.extend(row.image_url for row in rows if row.image_url)
        logger.info("Pruned %d old article(s) beyond max_articles=%d", len(old_ids), max_articles)
        return len(old_ids)


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

class ArticleStore:
    """SQLAlchemy-backed durable store.  Opens a short-lived session per call."""

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        images: Optional[ImageStorage] = None,
    ) -> None:
        self._session_factory = session_factory or AsyncSessionLocal
        self._images = images

    # ------------------------------------------------------------------
    # Publishing
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[PublishTransaction]:
        """Yield a PublishTransaction; commit on success, roll back on any error."""
        await self.ensure_stats()
        async with self._session_factory() as session:
            tx = PublishTransaction(session)
            try:
                yield tx
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise PublishFailure(f"Publish transaction rejected: {exc}") from exc
            except SQLAlchemyError as exc:
                await session.rollback()
                raise PublishFailure(f"Publish transaction failed: {exc}") from exc
            except BaseException:
                await session.rollback()
                raise

        if self._images is not None:
            for url in tx.pruned_image_urls:
                self._images.delete(url)

    # ------------------------------------------------------------------
    # Consumed set / cycle
    # ------------------------------------------------------------------

    async def list_consumed_keys(self) -> Set[int]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(select(UsedChunk.chunk_id))
                return {int(key) for key in result.scalars().all()}
        except (SQLAlchemyError, OSError) as exc:
            logger.error("list_consumed_keys failed: %s", exc)
            raise StoreUnavailable(f"Article store unavailable: {exc}") from exc

    async def reset_cycle_if(self, expected_cycle: int) -> bool:
        """
        Start a new cycle only if ``cycle_count`` still equals *expected_cycle*.

        Returns True if this caller performed the reset, False if another
        caller got there first.
        """
        await self.ensure_stats()
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    result = await session.execute(
                        update(GenerationStats)
                        .where(
                            GenerationStats.id == STATS_ROW_ID,
                            GenerationStats.cycle_count == expected_cycle,
                        )
                        .values(cycle_count=GenerationStats.cycle_count + 1),
                        execution_options=_BULK,
                    )
                    if result.rowcount != 1:
                        return False
                    await session.execute(delete(UsedChunk), execution_options=_BULK)
        except (SQLAlchemyError, OSError) as exc:
            logger.error("reset_cycle_if(%d) failed: %s", expected_cycle, exc)
            raise StoreUnavailable(f"Article store unavailable: {exc}") from exc
        return True

    async def clear_consumed_keys(self) -> None:
        """Manual reset: clear the consumed set and bump cycle_count unconditionally."""
        await self.ensure_stats()
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    await session.execute(delete(UsedChunk), execution_options=_BULK)
                    await session.execute(
                        update(GenerationStats)
                        .where(GenerationStats.id == STATS_ROW_ID)
                        .values(cycle_count=GenerationStats.cycle_count + 1),
                        execution_options=_BULK,
                    )
        except (SQLAlchemyError, OSError) as exc:
            logger.error("clear_consumed_keys failed: %s", exc)
            raise StoreUnavailable(f"Article store unavailable: {exc}") from exc

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    async def ensure_stats(self) -> None:
        """Create the single stats row if it does not exist yet."""
        try:
            async with self._session_factory() as session:
                existing = await session.get(GenerationStats, STATS_ROW_ID)
                if existing is not None:
                    return
                session.add(
                    GenerationStats(
                        id=STATS_ROW_ID,
                        total_generated=0,
                        cycle_count=0,
                        max_articles=settings.DEFAULT_MAX_ARTICLES,
                        auto_reset_cycle=True,
                    )
                )
                try:
                    await session.commit()
                    logger.info("Initialised generation_stats row")
                except IntegrityError:
                    # Created concurrently by another run
                    await session.rollback()
        except (SQLAlchemyError, OSError) as exc:
            logger.error("ensure_stats failed: %s", exc)
            raise StoreUnavailable(f"Article store unavailable: {exc}") from exc

    async def get_stats(self) -> StatsSnapshot:
        await self.ensure_stats()
        try:
            async with self._session_factory() as session:
                row = await session.get(GenerationStats, STATS_ROW_ID)
        except (SQLAlchemyError, OSError) as exc:
            logger.error("get_stats failed: %s", exc)
            raise StoreUnavailable(f"Article store unavailable: {exc}") from exc
        return StatsSnapshot(
            total_generated=row.total_generated,
            last_generated=row.last_generated,
            cycle_count=row.cycle_count,
            max_articles=row.max_articles,
            auto_reset_cycle=row.auto_reset_cycle,
        )

    async def count_articles(self) -> int:
        try:
            async with self._session_factory() as session:
                result = await session.execute(select(func.count(Article.id)))
                return int(result.scalar() or 0)
        except (SQLAlchemyError, OSError) as exc:
            logger.error("count_articles failed: %s", exc)
            raise StoreUnavailable(f"Article store unavailable: {exc}") from exc

    # ------------------------------------------------------------------
    # Article reads / admin delete
    # ------------------------------------------------------------------

    async def list_articles(
        self,
        limit: Optional[int] = None,
        category: Optional[ArticleCategory] = None,
        query: Optional[str] = None,
    ) -> List[Article]:
        """Newest first, optionally filtered by category and a text query."""
        stmt = select(Article).order_by(Article.created_at.desc())
        if category is not None:
            stmt = stmt.where(Article.category == category)
        if query:
            pattern = f"%{query}%"
            stmt = stmt.where(
                or_(
                    Article.title.ilike(pattern),
                    Article.summary.ilike(pattern),
                    Article.content.ilike(pattern),
                )
            )
        if limit:
            stmt = stmt.limit(limit)
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return list(result.scalars().all())
        except (SQLAlchemyError, OSError) as exc:
            logger.error("list_articles failed: %s", exc)
            raise StoreUnavailable(f"Article store unavailable: {exc}") from exc

    async def get_article(self, article_id: str) -> Optional[Article]:
        try:
            async with self._session_factory() as session:
                return await session.get(Article, article_id)
        except (SQLAlchemyError, OSError) as exc:
            logger.error("get_article(%s) failed: %s", article_id, exc)
            raise StoreUnavailable(f"Article store unavailable: {exc}") from exc

    async def delete_article(self, article_id: str) -> bool:
        """
        Delete an article, decrement ``total_generated`` (floored at zero) and
        remove its locally stored image.  Returns False if it did not exist.
        """
        await self.ensure_stats()
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    article = await session.get(Article, article_id)
                    if article is None:
                        return False
                    image_url = article.image_url
                    await session.delete(article)
                    await session.execute(
                        update(GenerationStats)
                        .where(GenerationStats.id == STATS_ROW_ID)
                        .values(
                            total_generated=case(
                                (GenerationStats.total_generated > 0, GenerationStats.total_generated - 1),
                                else_=0,
                            )
                        ),
                        execution_options=_BULK,
                    )
        except (SQLAlchemyError, OSError) as exc:
            logger.error("delete_article(%s) failed: %s", article_id, exc)
            raise StoreUnavailable(f"Article store unavailable: {exc}") from exc

        if image_url and self._images is not None:
            self._images.delete(image_url)
        logger.info("Deleted article %s", article_id)
        return True
