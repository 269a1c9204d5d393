"""
Durable publish of a finished article.

One transaction, in order:

1. insert the article (flushed)
2. increment ``total_generated`` / set ``last_generated``
3. insert the consumed key (unique on ``used_chunks.chunk_id``)
4. prune articles beyond ``max_articles``

Any failure rolls back all four steps, so a fragment is never marked consumed
without its article, and a fragment already consumed by a concurrent run
leaves no duplicate article behind.
"""
from __future__ import annotations

import logging
from typing import Optional

from medinews.models.database_models import Article
from medinews.services.article_store import ArticleDraft, ArticleStore
from medinews.services.synthesizer import SynthesisResult

logger = logging.getLogger(__name__)


class Publisher:
    def __init__(self, store: ArticleStore, max_articles: Optional[int] = None) -> None:
        self._store = store
        self._max_articles = max_articles

    async def publish(
        self,
        synthesis: SynthesisResult,
        image_url: Optional[str],
        fragment_key: int,
    ) -> Article:
        """
        Persist the article and mark *fragment_key* consumed.

        Raises:
            PublishFailure: the transaction failed; nothing was written.
            FragmentAlreadyConsumed: another run published this fragment first.
        """
        draft = ArticleDraft(
            title=synthesis.title,
            content=synthesis.content,
            summary=synthesis.summary,
            tags=list(synthesis.tags),
            category=synthesis.category,
            source_chunk_id=fragment_key,
            image_url=image_url,
        )

        max_articles = self._max_articles
        if max_articles is None:
            max_articles = (await self._store.get_stats()).max_articles

        async with self._store.transaction() as tx:
            article = await tx.create_article(draft)
            await tx.increment_stats()
            await tx.add_consumed_key(fragment_key)
            await tx.prune_articles(max_articles)

        logger.info("✓ Published article %s from chunk %d", article.id, fragment_key)
        return article
