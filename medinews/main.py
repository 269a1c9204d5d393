"""
Main FastAPI application for the medinews backend.
Handles CORS, request logging middleware, lifespan events, static images and
router registration.
"""
import logging
import os
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from medinews.config import settings
from medinews.database import close_db, init_db
from medinews.routers import articles, generation, health
from medinews.services.synthesizer import build_text_generator

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

VERSION = "0.1.0"


# ---------------------------------------------------------------------------
# Startup / shutdown helpers
# ---------------------------------------------------------------------------

async def _check_database() -> bool:
    """Initialise DB tables and verify the connection.  Returns True on success."""
    try:
        await init_db()
        logger.info("✓ Database connection OK")
        return True
    except Exception as exc:
        logger.error("✗ Database connection failed: %s", exc)
        raise


async def _check_text_generation() -> bool:
    """Verify the text-generation backend is reachable.  Never raises."""
    generator = build_text_generator()
    try:
        ok = await generator.ping()
    except Exception as exc:
        logger.error("✗ Text generation check failed (%s)", exc)
        return False
    if ok:
        logger.info("✓ Text generation (%s) ready", settings.TEXT_PROVIDER)
    else:
        logger.warning(
            "⚠ Text generation (%s) not ready, article generation will fail until it is",
            settings.TEXT_PROVIDER,
        )
    return ok


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown event handler."""
    logger.info("=" * 60)
    logger.info("  Starting medinews backend …")
    logger.info("=" * 60)

    # 1. Database (required; raises on failure)
    await _check_database()

    # 2. Text generation (optional; logs warnings but continues)
    await _check_text_generation()

    # 3. Image generation credential (optional)
    if settings.image_generation_enabled:
        logger.info("✓ Image generation enabled (%s)", settings.OPENAI_IMAGE_MODEL)
    else:
        logger.warning("⚠ OPENAI_API_KEY not set, articles will be published without images")

    # 4. Images directory
    os.makedirs(settings.IMAGES_DIR, exist_ok=True)
    logger.info("✓ Images directory: %s", os.path.abspath(settings.IMAGES_DIR))

    logger.info("=" * 60)
    logger.info("  medinews backend ready on http://%s:%d", settings.HOST, settings.PORT)
    logger.info("  Swagger UI : http://%s:%d/docs", settings.HOST, settings.PORT)
    logger.info("  Health     : http://%s:%d/api/health", settings.HOST, settings.PORT)
    logger.info("=" * 60)

    yield

    logger.info("Shutting down medinews backend …")
    await close_db()
    logger.info("✓ Shutdown complete.")


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------

app = FastAPI(
    title="medinews API",
    description=(
        "Automatic medical news generation from a pre-embedded content pool.\n\n"
        "Key endpoints:\n"
        "- `POST /api/generate/single`: generate and publish one article\n"
        "- `POST /api/generate/batch?count=N`: generate several articles\n"
        "- `POST /api/generate/test`: preview without saving\n"
        "- `DELETE /api/generate/cycle`: start a new chunk cycle\n"
        "- `GET  /api/generate/stats`: pool usage and counters\n"
        "- `GET  /api/articles`: published articles\n"
    ),
    version=VERSION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)


# ---------------------------------------------------------------------------
# CORS
# ---------------------------------------------------------------------------

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_allowed_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Request / response logging middleware
# ---------------------------------------------------------------------------

@app.middleware("http")
async def log_requests(request: Request, call_next):
    """
    Log every request with method, path, status code, and elapsed time.
    Attaches an ``X-Process-Time`` header (milliseconds) to every response.
    """
    t0 = time.monotonic()
    response = await call_next(request)
    elapsed_ms = round((time.monotonic() - t0) * 1000, 2)

    # Skip health-check polling and static images
    path = request.url.path
    if path not in ("/api/health", "/api/health/", "/") and not path.startswith(
        settings.IMAGES_PUBLIC_PREFIX
    ):
        logger.info(
            "%s %s → %d  (%.2f ms)",
            request.method,
            path,
            response.status_code,
            elapsed_ms,
        )

    response.headers["X-Process-Time"] = f"{elapsed_ms}ms"
    return response


# ---------------------------------------------------------------------------
# Global exception handler
# ---------------------------------------------------------------------------

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Return a structured JSON error for any unhandled exception."""
    logger.error(
        "Unhandled exception on %s %s: %s",
        request.method,
        request.url.path,
        exc,
        exc_info=True,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "detail": "Internal server error",
            "error": str(exc),
            "path": str(request.url.path),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    )


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------

app.include_router(health.router,     prefix="/api/health",   tags=["Health"])
app.include_router(generation.router, prefix="/api/generate", tags=["Generation"])
app.include_router(articles.router,   prefix="/api/articles", tags=["Articles"])

app.mount(
    settings.IMAGES_PUBLIC_PREFIX,
    StaticFiles(directory=settings.IMAGES_DIR, check_dir=False),
    name="images",
)


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------

@app.get("/", tags=["Root"], include_in_schema=False)
async def root():
    """API root: basic service info."""
    return {
        "name": "medinews API",
        "version": VERSION,
        "description": "Medical News Generation Backend",
        "docs": "/docs",
        "health": "/api/health",
        "endpoints": {
            "generate": "/api/generate",
            "articles": "/api/articles",
            "images": settings.IMAGES_PUBLIC_PREFIX,
        },
    }


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "medinews.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=True,
        log_level="info",
    )
