"""
Published article endpoints.
"""
from typing import List, Optional
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status

from medinews.models.database_models import ArticleCategory
from medinews.models.schemas import ArticleResponse
from medinews.services.article_store import ArticleStore
from medinews.services.errors import StoreUnavailable
from medinews.services.image_storage import ImageStorage

logger = logging.getLogger(__name__)

router = APIRouter()


def get_article_store() -> ArticleStore:
    """Dependency: the article store.  Overridden in tests."""
    return ArticleStore(images=ImageStorage())


def _unavailable(exc: StoreUnavailable) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=exc.message,
    )


@router.get("/", response_model=List[ArticleResponse])
async def list_articles(
    limit: Optional[int] = Query(None, ge=1, le=500),
    category: Optional[ArticleCategory] = None,
    q: Optional[str] = Query(None, min_length=1, max_length=200),
    store: ArticleStore = Depends(get_article_store),
):
    """List articles, newest first."""
    try:
        return await store.list_articles(limit=limit, category=category, query=q)
    except StoreUnavailable as exc:
        raise _unavailable(exc)


@router.get("/{article_id}", response_model=ArticleResponse)
async def get_article(article_id: str, store: ArticleStore = Depends(get_article_store)):
    try:
        article = await store.get_article(article_id)
    except StoreUnavailable as exc:
        raise _unavailable(exc)
    if article is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Article {article_id} not found.",
        )
    return article


@router.delete("/{article_id}", status_code=status.HTTP_204_NO_CONTENT, response_model=None)
async def delete_article(article_id: str, store: ArticleStore = Depends(get_article_store)):
    """Delete an article and its stored image; decrements total_generated."""
    try:
        deleted = await store.delete_article(article_id)
    except StoreUnavailable as exc:
        raise _unavailable(exc)
    if not deleted:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Article {article_id} not found.",
        )
