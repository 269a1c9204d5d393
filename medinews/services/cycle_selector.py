"""
No-repeat random fragment selection with automatic cycle reset.

Every fragment is picked at most once per cycle.  When the pool is exhausted
the consumed set is cleared (compare-and-swap on ``cycle_count``) and
selection continues from the full pool.
"""
from __future__ import annotations

import dataclasses
import logging
import random
from typing import Optional, Set

from medinews.config import settings
from medinews.services.article_store import ArticleStore, StatsSnapshot
from medinews.services.errors import LowQualityFragment, NoContentAvailable
from medinews.services.fragment_store import Fragment, FragmentStore
from medinews.utils.helpers import safe_divide

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class Selection:
    fragment: Fragment
    cycle_reset: bool
    attempts: int


class CycleSelector:
    """Picks one unconsumed fragment uniformly at random."""

    def __init__(
        self,
        fragments: FragmentStore,
        store: ArticleStore,
        rng: Optional[random.Random] = None,
        min_chars: Optional[int] = None,
        max_attempts: Optional[int] = None,
    ) -> None:
        self._fragments = fragments
        self._store = store
        self._rng = rng or random.Random()
        self.min_chars = settings.MIN_FRAGMENT_CHARS if min_chars is None else min_chars
        self.max_attempts = max_attempts or settings.MAX_SELECTION_ATTEMPTS

    async def select(self) -> Selection:
        """
        Return a fragment that has not been consumed in the current cycle.

        Raises:
            NoContentAvailable: the pool is empty, or exhausted while
                automatic cycle reset is disabled.
            LowQualityFragment: no acceptable fragment within max_attempts.
            StoreUnavailable: either store could not be reached.
        """
        all_keys = await self._fragments.list_all_keys()
        if not all_keys:
            raise NoContentAvailable("No chunks found in the content store")

        # Snapshot cycle_count before the consumed set
        stats = await self._store.get_stats()
        consumed = await self._store.list_consumed_keys()
        # Stale consumed keys (chunks since deleted) drop out of the difference
        unconsumed = all_keys - consumed
        logger.info(
            "Chunk pool: %d total, %d used, %d available",
            len(all_keys),
            len(all_keys & consumed),
            len(unconsumed),
        )

        cycle_reset = False
        if not unconsumed:
            cycle_reset = await self._start_new_cycle(stats)
            # Re-read: a concurrent run may have reset and published already
            unconsumed = all_keys - await self._store.list_consumed_keys()
            if not unconsumed:
                unconsumed = set(all_keys)

        rejected: Set[int] = set()
        for attempt in range(1, self.max_attempts + 1):
            candidates = sorted(unconsumed - rejected)
            if not candidates:
                break

            key = self._rng.choice(candidates)
            fragment = await self._fragments.fetch_by_key(key)

            if fragment is None:
                logger.warning("Chunk %d vanished between listing and fetch, retrying", key)
                rejected.add(key)
                continue

            if len(fragment.text.strip()) < self.min_chars:
                logger.warning(
                    "⚠ Chunk %d too short (%d chars < %d), retrying (attempt %d/%d)",
                    key,
                    len(fragment.text.strip()),
                    self.min_chars,
                    attempt,
                    self.max_attempts,
                )
                rejected.add(key)
                continue

            logger.info("Selected chunk %d (attempt %d, cycle_reset=%s)", key, attempt, cycle_reset)
            return Selection(fragment=fragment, cycle_reset=cycle_reset, attempts=attempt)

        raise LowQualityFragment(
            f"No usable chunk found after {len(rejected)} rejected pick(s)"
        )

    async def _start_new_cycle(self, stats: StatsSnapshot) -> bool:
        """
        Clear the consumed set if *stats* still describes the current cycle.
        Returns True if this call performed the reset.
        """
        if not stats.auto_reset_cycle:
            raise NoContentAvailable(
                "All chunks have been used and automatic cycle reset is disabled"
            )

        logger.info("🔄 All chunks used, resetting cycle %d", stats.cycle_count)
        won = await self._store.reset_cycle_if(stats.cycle_count)
        if won:
            logger.info("✓ Started cycle %d", stats.cycle_count + 1)
        else:
            logger.info("Cycle %d was already reset by a concurrent run", stats.cycle_count)
        return won

    async def selection_stats(self) -> dict:
        """Pool usage within the current cycle."""
        all_keys = await self._fragments.list_all_keys()
        used = len(all_keys & await self._store.list_consumed_keys())
        total = len(all_keys)
        return {
            "total_chunks": total,
            "used_chunks": used,
            "available_chunks": total - used,
            "usage_percentage": round(safe_divide(used * 100.0, total), 1),
        }
