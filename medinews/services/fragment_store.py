"""
Read-only adapter over the content store (the pgvector ``chunks`` table).

Public API
----------
FragmentStore.list_all_keys()    -> Set[int]
FragmentStore.fetch_by_key(key)  -> Optional[Fragment]
FragmentStore.pool_size()        -> int
FragmentStore.ping()             -> bool

Database errors are wrapped in ``StoreUnavailable`` and surfaced unchanged;
retry policy belongs to the caller.
"""
from __future__ import annotations

import dataclasses
import logging
from typing import Any, Dict, Optional, Set

from sqlalchemy import func, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from medinews.database import AsyncSessionLocal
from medinews.models.database_models import Chunk
from medinews.services.errors import StoreUnavailable

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class FragmentMetadata:
    """Known payload fields plus a passthrough bag for everything else."""

    source: Optional[str] = None
    topic: Optional[str] = None
    risk_level: Optional[str] = None
    extra: Dict[str, Any] = dataclasses.field(default_factory=dict)

    _ALIASES = {
        "source": "source",
        "topic": "topic",
        "risk_level": "risk_level",
        "riskLevel": "risk_level",
    }

    @classmethod
    def from_payload(cls, payload: Optional[Dict[str, Any]]) -> "FragmentMetadata":
        if not payload:
            return cls()
        known: Dict[str, Optional[str]] = {}
        extra: Dict[str, Any] = {}
        for key, value in payload.items():
            field = cls._ALIASES.get(key)
            if field is None:
                extra[key] = value
            elif value is not None:
                known[field] = str(value)
        return cls(extra=extra, **known)


@dataclasses.dataclass(frozen=True)
class Fragment:
    key: int
    text: str
    metadata: FragmentMetadata = dataclasses.field(default_factory=FragmentMetadata)


class FragmentStore:
    """Thin read interface over the ``chunks`` table."""

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    ) -> None:
        self._session_factory = session_factory or AsyncSessionLocal

    async def list_all_keys(self) -> Set[int]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(select(Chunk.id))
                return {int(key) for key in result.scalars().all()}
        except (SQLAlchemyError, OSError) as exc:
            logger.error("list_all_keys: content store unreachable: %s", exc)
            raise StoreUnavailable(f"Content store unavailable: {exc}") from exc

    async def fetch_by_key(self, key: int) -> Optional[Fragment]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(Chunk.id, Chunk.content, Chunk.metadata_json).where(Chunk.id == key)
                )
                row = result.first()
        except (SQLAlchemyError, OSError) as exc:
            logger.error("fetch_by_key(%s): content store unreachable: %s", key, exc)
            raise StoreUnavailable(f"Content store unavailable: {exc}") from exc

        if row is None:
            return None
        return Fragment(
            key=int(row.id),
            text=row.content or "",
            metadata=FragmentMetadata.from_payload(row.metadata_json),
        )

    async def pool_size(self) -> int:
        try:
            async with self._session_factory() as session:
                result = await session.execute(select(func.count(Chunk.id)))
                return int(result.scalar() or 0)
        except (SQLAlchemyError, OSError) as exc:
            logger.error("pool_size: content store unreachable: %s", exc)
            raise StoreUnavailable(f"Content store unavailable: {exc}") from exc

    async def ping(self) -> bool:
        """Return True when the content store answers a trivial query."""
        try:
            async with self._session_factory() as session:
                await session.execute(text("SELECT 1"))
            return True
        except (SQLAlchemyError, OSError) as exc:
            logger.error("Content store health check failed: %s", exc)
            return False
