"""
Pipeline orchestrator: select -> synthesize -> illustrate -> publish.

Usage
-----
    pipeline = NewsPipeline.from_settings()
    result = await pipeline.generate_one()
    batch = await pipeline.generate_batch(5)

``generate_one`` never raises: every failure is turned into a
``GenerationResult`` with ``success=False`` and a ``failure_reason`` code.
"""
from __future__ import annotations

import asyncio
import dataclasses
import enum
import logging
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from medinews.config import settings
from medinews.models.database_models import Article
from medinews.services.article_store import ArticleStore, StatsSnapshot
from medinews.services.cycle_selector import CycleSelector
from medinews.services.errors import PipelineError
from medinews.services.fragment_store import FragmentStore
from medinews.services.illustrator import Illustrator, build_image_generator
from medinews.services.image_storage import ImageStorage
from medinews.services.publisher import Publisher
from medinews.services.synthesizer import Synthesizer, build_text_generator

logger = logging.getLogger(__name__)

UNEXPECTED_ERROR = "UnexpectedError"


# ---------------------------------------------------------------------------
# Stage enum
# ---------------------------------------------------------------------------

class PipelineStage(str, enum.Enum):
    SELECT = "select"
    SYNTHESIZE = "synthesize"
    ILLUSTRATE = "illustrate"
    PUBLISH = "publish"
    DONE = "done"


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclasses.dataclass
class GenerationResult:
    success: bool = False
    article: Optional[Article] = None
    failure_reason: Optional[str] = None
    message: str = ""
    cycle_was_reset: bool = False
    stage: PipelineStage = PipelineStage.SELECT
    chunk_id: Optional[int] = None
    selection_attempts: int = 0
    image_generated: bool = False
    image_persisted: bool = False
    image_url: Optional[str] = None
    warnings: List[str] = dataclasses.field(default_factory=list)
    started_at: float = dataclasses.field(default_factory=time.monotonic)
    completed_at: Optional[float] = None

    @property
    def elapsed_seconds(self) -> float:
        end = self.completed_at if self.completed_at else time.monotonic()
        return round(end - self.started_at, 2)

    def details(self) -> Dict[str, Any]:
        return {
            "stage": self.stage.value,
            "chunk_id": self.chunk_id,
            "selection_attempts": self.selection_attempts,
            "image_generated": self.image_generated,
            "image_persisted": self.image_persisted,
            "image_url": self.image_url,
            "warnings": list(self.warnings),
            "elapsed_seconds": self.elapsed_seconds,
        }


@dataclasses.dataclass
class BatchResult:
    results: List[GenerationResult] = dataclasses.field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return self.total - self.succeeded

    @property
    def failure_reasons(self) -> List[str]:
        return [r.failure_reason or "" for r in self.results if not r.success]


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

class NewsPipeline:
    """Composes the pipeline stages; all collaborators are injected."""

    def __init__(
        self,
        selector: CycleSelector,
        synthesizer: Synthesizer,
        illustrator: Illustrator,
        publisher: Publisher,
        store: ArticleStore,
        batch_delay: Optional[float] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.selector = selector
        self.synthesizer = synthesizer
        self.illustrator = illustrator
        self.publisher = publisher
        self.store = store
        self.batch_delay = settings.BATCH_DELAY_SECONDS if batch_delay is None else batch_delay
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    ) -> "NewsPipeline":
        """Wire the production collaborators from ``settings``."""
        images = ImageStorage()
        store = ArticleStore(session_factory, images=images)
        fragments = FragmentStore(session_factory)
        return cls(
            selector=CycleSelector(fragments, store),
            synthesizer=Synthesizer(build_text_generator()),
            illustrator=Illustrator(build_image_generator(), images),
            publisher=Publisher(store),
            store=store,
        )

    # ------------------------------------------------------------------
    # Single run
    # ------------------------------------------------------------------

    async def generate_one(self, dry_run: bool = False) -> GenerationResult:
        """
        Run one article through the pipeline.

        With *dry_run* only selection and synthesis run: no image is
        requested and nothing is written (a cycle reset may still happen).
        """
        result = GenerationResult()
        try:
            await self._run(result, dry_run)
        except PipelineError as exc:
            result.failure_reason = exc.reason
            result.message = exc.message
            logger.error("✗ Generation failed at %s: [%s] %s", result.stage.value, exc.reason, exc.message)
        except Exception as exc:
            result.failure_reason = UNEXPECTED_ERROR
            result.message = f"Unexpected error: {str(exc)[:200]}"
            logger.error("✗ Generation crashed at %s: %s", result.stage.value, exc, exc_info=True)
        finally:
            result.completed_at = time.monotonic()

        if not result.success:
            result.article = None
        return result

    async def _run(self, result: GenerationResult, dry_run: bool) -> None:
        result.stage = PipelineStage.SELECT
        selection = await self.selector.select()
        fragment = selection.fragment
        result.chunk_id = fragment.key
        result.cycle_was_reset = selection.cycle_reset
        result.selection_attempts = selection.attempts

        result.stage = PipelineStage.SYNTHESIZE
        synthesis = await self.synthesizer.synthesize(fragment.text)

        if dry_run:
            result.article = Article(
                id="preview",
                title=synthesis.title,
                content=synthesis.content,
                summary=synthesis.summary,
                tags=list(synthesis.tags),
                category=synthesis.category,
                source_chunk_id=fragment.key,
            )
            result.stage = PipelineStage.DONE
            result.success = True
            result.message = "Preview generated (not saved)"
            logger.info("✓ Preview generated from chunk %d", fragment.key)
            return

        result.stage = PipelineStage.ILLUSTRATE
        illustration = await self.illustrator.illustrate(
            synthesis.title, synthesis.category.value, synthesis.summary
        )
        result.image_generated = illustration.image_generated
        result.image_persisted = illustration.image_persisted
        result.image_url = illustration.image_url
        result.warnings.extend(illustration.warnings)

        result.stage = PipelineStage.PUBLISH
        article = await self.publisher.publish(synthesis, illustration.image_url, fragment.key)

        result.article = article
        result.stage = PipelineStage.DONE
        result.success = True
        result.message = "News generated successfully"
        if result.cycle_was_reset:
            result.message += " (new cycle started)"
        logger.info(
            "✓ Generated article %s in %.2fs (image=%s)",
            article.id,
            result.elapsed_seconds,
            "persisted" if illustration.image_persisted else ("temporary" if illustration.image_url else "none"),
        )

    # ------------------------------------------------------------------
    # Batch
    # ------------------------------------------------------------------

    async def generate_batch(self, count: int) -> BatchResult:
        """Run *count* generations sequentially with a fixed delay in between."""
        batch = BatchResult()
        for index in range(count):
            logger.info("Batch generation %d/%d", index + 1, count)
            batch.results.append(await self.generate_one())
            if index < count - 1 and self.batch_delay > 0:
                await self._sleep(self.batch_delay)
        logger.info(
            "Batch finished: %d/%d succeeded, %d failed",
            batch.succeeded,
            batch.total,
            batch.failed,
        )
        return batch

    # ------------------------------------------------------------------
    # Manual cycle control / stats
    # ------------------------------------------------------------------

    async def reset_cycle(self) -> bool:
        """Clear the consumed set unconditionally and start a new cycle."""
        await self.store.clear_consumed_keys()
        logger.info("🔄 Cycle reset manually")
        return True

    async def stats(self) -> Dict[str, Any]:
        chunk_stats = await self.selector.selection_stats()
        snapshot: StatsSnapshot = await self.store.get_stats()
        return {
            "chunk_stats": chunk_stats,
            "news_stats": {
                "total_articles": await self.store.count_articles(),
                "total_generated": snapshot.total_generated,
                "last_generated": snapshot.last_generated,
                "cycle_count": snapshot.cycle_count,
                "max_articles": snapshot.max_articles,
                "auto_reset_cycle": snapshot.auto_reset_cycle,
            },
        }
