"""
Health check endpoint.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import text
from datetime import datetime, timezone
import logging

from medinews.config import settings
from medinews.database import get_db
from medinews.models.schemas import HealthCheckResponse
from medinews.services.fragment_store import FragmentStore
from medinews.services.synthesizer import build_text_generator

logger = logging.getLogger(__name__)

router = APIRouter()


def get_text_generator():
    """Dependency: the configured text-generation backend.  Overridden in tests."""
    return build_text_generator()


def get_fragment_store() -> FragmentStore:
    return FragmentStore()


@router.get("/", response_model=HealthCheckResponse)
async def health_check(
    db: AsyncSession = Depends(get_db),
    fragments: FragmentStore = Depends(get_fragment_store),
    text_generator=Depends(get_text_generator),
):
    """
    Health check endpoint to verify system status.

    Returns:
        HealthCheckResponse with status of the database, the content store,
        the text-generation service and the image credential
    """
    # Check database connection
    db_status = "ok"
    try:
        await db.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        db_status = "error"

    content_status = "ok" if await fragments.ping() else "error"

    # Check text-generation service
    text_status = "ok"
    try:
        if not await text_generator.ping():
            text_status = "error"
    except Exception as e:
        logger.error(f"Text generation health check failed: {e}")
        text_status = "error"

    image_status = "configured" if settings.image_generation_enabled else "disabled"

    # Image generation is optional and never degrades overall status
    healthy = db_status == "ok" and content_status == "ok" and text_status == "ok"

    return HealthCheckResponse(
        status="healthy" if healthy else "degraded",
        database=db_status,
        content_store=content_status,
        text_generation=text_status,
        image_generation=image_status,
        timestamp=datetime.now(timezone.utc),
    )
