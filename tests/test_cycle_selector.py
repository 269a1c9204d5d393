"""Tests for CycleSelector and FragmentStore."""
import random

import pytest

from medinews.services.cycle_selector import CycleSelector
from medinews.services.errors import LowQualityFragment, NoContentAvailable, StoreUnavailable
from medinews.services.fragment_store import FragmentMetadata
from tests.fakes import LONG_TEXT


async def _consume(store, key: int) -> None:
    async with store.transaction() as tx:
        await tx.add_consumed_key(key)


@pytest.mark.asyncio
async def test_fragment_store_reads_chunks(seed_chunks, fragments):
    await seed_chunks(
        {1: LONG_TEXT, 2: LONG_TEXT},
        metadata={"source": "WHO", "riskLevel": "high", "lang": "vi"},
    )
    assert await fragments.list_all_keys() == {1, 2}
    assert await fragments.pool_size() == 2
    assert await fragments.ping() is True

    fragment = await fragments.fetch_by_key(1)
    assert fragment.key == 1
    assert fragment.text == LONG_TEXT
    assert fragment.metadata.source == "WHO"
    assert fragment.metadata.risk_level == "high"
    assert fragment.metadata.topic is None
    assert fragment.metadata.extra == {"lang": "vi"}

    assert await fragments.fetch_by_key(999) is None


def test_metadata_from_empty_payload():
    assert FragmentMetadata.from_payload(None) == FragmentMetadata()


@pytest.mark.asyncio
async def test_no_repeat_within_cycle(seed_chunks, fragments, store):
    keys = await seed_chunks({k: f"{LONG_TEXT} #{k}" for k in range(1, 9)})
    selector = CycleSelector(fragments, store, rng=random.Random(42))

    picked = []
    for _ in keys:
        selection = await selector.select()
        assert selection.cycle_reset is False
        picked.append(selection.fragment.key)
        await _consume(store, selection.fragment.key)

    assert sorted(picked) == keys


@pytest.mark.asyncio
async def test_exhausted_pool_starts_new_cycle(seed_chunks, fragments, store):
    await seed_chunks({1: LONG_TEXT, 2: LONG_TEXT})
    await _consume(store, 1)
    await _consume(store, 2)
    before = (await store.get_stats()).cycle_count

    selector = CycleSelector(fragments, store, rng=random.Random(0))
    selection = await selector.select()

    assert selection.cycle_reset is True
    assert selection.fragment.key in (1, 2)
    assert (await store.get_stats()).cycle_count == before + 1
    assert await store.list_consumed_keys() == set()


@pytest.mark.asyncio
async def test_exhausted_pool_without_auto_reset(seed_chunks, fragments, store, session_factory):
    from medinews.models.database_models import GenerationStats
    from medinews.services.article_store import STATS_ROW_ID

    await seed_chunks({1: LONG_TEXT})
    await _consume(store, 1)
    async with session_factory() as session:
        row = await session.get(GenerationStats, STATS_ROW_ID)
        row.auto_reset_cycle = False
        await session.commit()

    selector = CycleSelector(fragments, store)
    with pytest.raises(NoContentAvailable):
        await selector.select()
    assert await store.list_consumed_keys() == {1}


@pytest.mark.asyncio
async def test_empty_pool_raises_without_reset(fragments, store):
    selector = CycleSelector(fragments, store)
    with pytest.raises(NoContentAvailable):
        await selector.select()
    assert (await store.get_stats()).cycle_count == 0


@pytest.mark.asyncio
async def test_short_fragments_are_skipped(seed_chunks, fragments, store):
    await seed_chunks({1: "too short", 2: "   tiny   ", 3: LONG_TEXT})
    selector = CycleSelector(fragments, store, rng=random.Random(7), max_attempts=5)

    selection = await selector.select()
    assert selection.fragment.key == 3
    assert 1 <= selection.attempts <= 3


@pytest.mark.asyncio
async def test_low_quality_pool_exhausts_attempts(seed_chunks, fragments, store):
    await seed_chunks({k: "short" for k in range(1, 11)})
    selector = CycleSelector(fragments, store, rng=random.Random(1), max_attempts=4)
    with pytest.raises(LowQualityFragment):
        await selector.select()


@pytest.mark.asyncio
async def test_stale_consumed_keys_are_ignored(seed_chunks, fragments, store):
    await seed_chunks({1: LONG_TEXT, 2: LONG_TEXT})
    # 99 was consumed earlier and has since been removed from the pool
    await _consume(store, 99)
    await _consume(store, 1)

    selector = CycleSelector(fragments, store)
    selection = await selector.select()
    assert selection.fragment.key == 2
    assert selection.cycle_reset is False

    stats = await selector.selection_stats()
    assert stats == {
        "total_chunks": 2,
        "used_chunks": 1,
        "available_chunks": 1,
        "usage_percentage": 50.0,
    }


@pytest.mark.asyncio
async def test_store_unavailable_is_surfaced():
    from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

    from medinews.services.fragment_store import FragmentStore

    engine = create_async_engine("sqlite+aiosqlite:////nonexistent-dir/medinews.db")
    broken = FragmentStore(async_sessionmaker(engine))
    try:
        with pytest.raises(StoreUnavailable):
            await broken.list_all_keys()
        assert await broken.ping() is False
    finally:
        await engine.dispose()
