"""
Article generation endpoints.

Route summary
-------------
POST   /single        generate and publish one article
POST   /batch?count=N generate N articles sequentially (1 <= N <= MAX_BATCH_SIZE)
POST   /test          select + synthesize only, nothing is saved
DELETE /cycle         clear the used-chunk set and start a new cycle
GET    /stats         chunk pool usage and generation counters

Pipeline failures are reported in the body (``success=false`` plus
``failure_reason``), not as HTTP errors.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Query, status

from medinews.config import settings
from medinews.models.schemas import (
    ArticleResponse,
    BatchGenerationResponse,
    BatchSummary,
    CycleResetResponse,
    GenerationDetails,
    GenerationResponse,
    GenerationStatsResponse,
)
from medinews.services.errors import PipelineError
from medinews.services.pipeline import GenerationResult, NewsPipeline

logger = logging.getLogger(__name__)

router = APIRouter()


def get_pipeline() -> NewsPipeline:
    """Dependency: a pipeline wired from settings.  Overridden in tests."""
    return NewsPipeline.from_settings()


def _to_response(result: GenerationResult) -> GenerationResponse:
    return GenerationResponse(
        success=result.success,
        message=result.message,
        failure_reason=result.failure_reason,
        cycle_was_reset=result.cycle_was_reset,
        article=ArticleResponse.model_validate(result.article) if result.article else None,
        details=GenerationDetails(**result.details()),
    )


@router.post("/single", response_model=GenerationResponse, summary="Generate one article")
async def generate_single(pipeline: NewsPipeline = Depends(get_pipeline)) -> GenerationResponse:
    logger.info("🚀 Generate single article")
    return _to_response(await pipeline.generate_one())


@router.post("/batch", response_model=BatchGenerationResponse, summary="Generate several articles")
async def generate_batch(
    count: int = Query(3, ge=1, le=settings.MAX_BATCH_SIZE),
    pipeline: NewsPipeline = Depends(get_pipeline),
) -> BatchGenerationResponse:
    """
    Run *count* generations one after another.  A failed run never aborts
    the remaining ones.
    """
    logger.info("🚀 Generate batch of %d", count)
    batch = await pipeline.generate_batch(count)
    return BatchGenerationResponse(
        success=batch.succeeded > 0,
        message=f"Generated {batch.succeeded}/{batch.total} articles successfully",
        summary=BatchSummary(
            total=batch.total,
            succeeded=batch.succeeded,
            failed=batch.failed,
            failure_reasons=batch.failure_reasons,
        ),
        results=[_to_response(r) for r in batch.results],
    )


@router.post("/test", response_model=GenerationResponse, summary="Preview generation without saving")
async def generate_test(pipeline: NewsPipeline = Depends(get_pipeline)) -> GenerationResponse:
    return _to_response(await pipeline.generate_one(dry_run=True))


@router.delete("/cycle", response_model=CycleResetResponse, summary="Reset the chunk cycle")
async def reset_cycle(pipeline: NewsPipeline = Depends(get_pipeline)) -> CycleResetResponse:
    try:
        await pipeline.reset_cycle()
    except PipelineError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Failed to reset chunk cycle: {exc.message}",
        )
    return CycleResetResponse(
        success=True,
        message="Chunk cycle reset successfully",
        timestamp=datetime.now(timezone.utc),
    )


@router.get("/stats", response_model=GenerationStatsResponse, summary="Generation statistics")
async def generation_stats(pipeline: NewsPipeline = Depends(get_pipeline)) -> GenerationStatsResponse:
    try:
        stats = await pipeline.stats()
    except PipelineError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=exc.message,
        )
    return GenerationStatsResponse(**stats, timestamp=datetime.now(timezone.utc))
