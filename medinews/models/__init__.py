"""Database and schema models for medinews."""
from medinews.models.database_models import (
    ArticleCategory,
    Chunk,
    Article,
    UsedChunk,
    GenerationStats,
)
from medinews.models.schemas import (
    ArticleResponse,
    GenerationResponse,
    BatchGenerationResponse,
    GenerationStatsResponse,
    HealthCheckResponse,
)

__all__ = [
    # Database models
    "ArticleCategory",
    "Chunk",
    "Article",
    "UsedChunk",
    "GenerationStats",
    # Pydantic schemas
    "ArticleResponse",
    "GenerationResponse",
    "BatchGenerationResponse",
    "GenerationStatsResponse",
    "HealthCheckResponse",
]
