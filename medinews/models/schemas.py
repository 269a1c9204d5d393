"""
Pydantic schemas for request/response validation.
"""
from pydantic import BaseModel, ConfigDict
from typing import Optional, List
from datetime import datetime

from medinews.models.database_models import ArticleCategory


# Article Schemas
class ArticleResponse(BaseModel):
    """Schema for article details."""

    id: str
    title: str
    content: str
    summary: str
    image_url: Optional[str] = None
    tags: List[str] = []
    category: ArticleCategory
    source_chunk_id: Optional[int] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


# ---------------------------------------------------------------------------
# Generation Schemas
# ---------------------------------------------------------------------------

class GenerationDetails(BaseModel):
    """Per-run bookkeeping attached to every generation response."""

    stage: str
    chunk_id: Optional[int] = None
    selection_attempts: int = 0
    image_generated: bool = False
    image_persisted: bool = False
    image_url: Optional[str] = None
    warnings: List[str] = []
    elapsed_seconds: float = 0.0


class GenerationResponse(BaseModel):
    """Response for POST /api/generate/single and /api/generate/test."""

    success: bool
    message: str
    failure_reason: Optional[str] = None
    cycle_was_reset: bool = False
    article: Optional[ArticleResponse] = None
    details: GenerationDetails


class BatchSummary(BaseModel):
    total: int
    succeeded: int
    failed: int
    failure_reasons: List[str] = []


class BatchGenerationResponse(BaseModel):
    """Response for POST /api/generate/batch."""

    success: bool
    message: str
    summary: BatchSummary
    results: List[GenerationResponse]


class CycleResetResponse(BaseModel):
    success: bool
    message: str
    timestamp: datetime


class SelectionStatsResponse(BaseModel):
    """Fragment pool usage within the current cycle."""

    total_chunks: int
    used_chunks: int
    available_chunks: int
    usage_percentage: float


class NewsStatsResponse(BaseModel):
    total_articles: int
    total_generated: int
    last_generated: Optional[datetime] = None
    cycle_count: int
    max_articles: int
    auto_reset_cycle: bool


class GenerationStatsResponse(BaseModel):
    """Response for GET /api/generate/stats."""

    chunk_stats: SelectionStatsResponse
    news_stats: NewsStatsResponse
    timestamp: datetime


# Health Check Schema
class HealthCheckResponse(BaseModel):
    """Schema for health check endpoint."""

    status: str
    database: str
    content_store: str
    text_generation: str
    image_generation: str
    timestamp: datetime
    version: str = "0.1.0"
