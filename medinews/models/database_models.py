"""
SQLAlchemy ORM models for the medinews database.

``chunks`` is the content store (fragments with pgvector embeddings, written
by the ingestion side and only read here).  ``articles``, ``used_chunks`` and
``generation_stats`` are owned by the generation pipeline.
"""
from sqlalchemy import (
    Column,
    Integer,
    BigInteger,
    String,
    Text,
    DateTime,
    Boolean,
    Enum as SQLEnum,
    JSON,
)
from sqlalchemy.sql import func
from pgvector.sqlalchemy import Vector
import enum
import uuid

from medinews.database import Base
from medinews.config import settings


# Enums
class ArticleCategory(str, enum.Enum):
    """Closed set of article categories."""

    MEDICAL = "medical"
    HEALTH = "health"
    RESEARCH = "research"
    NEWS = "news"


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


def _new_article_id() -> str:
    return uuid.uuid4().hex


# Models
class Chunk(Base):
    """Pre-embedded text fragment eligible for article generation."""

    __tablename__ = "chunks"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True)
    content = Column(Text, nullable=False)
    embedding = Column(Vector(settings.VECTOR_DIMENSION), nullable=True)
    metadata_json = Column(JSON, nullable=True)  # source, topic, risk_level, ...
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class Article(Base):
    """Generated news article."""

    __tablename__ = "articles"

    id = Column(String(32), primary_key=True, default=_new_article_id)
    title = Column(String(500), nullable=False)
    content = Column(Text, nullable=False)
    summary = Column(Text, nullable=False)
    image_url = Column(String(1024), nullable=True)
    tags = Column(JSON, nullable=False, default=list)
    category = Column(
        SQLEnum(ArticleCategory, name="articlecategory", values_callable=_enum_values),
        nullable=False,
        default=ArticleCategory.MEDICAL,
        index=True,
    )
    # Back-reference only: chunks may be deleted from the content store later
    source_chunk_id = Column(BigInteger, nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )


class UsedChunk(Base):
    """A chunk consumed in the current cycle."""

    __tablename__ = "used_chunks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    # Unique: at most one article per chunk per cycle
    chunk_id = Column(BigInteger, nullable=False, unique=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class GenerationStats(Base):
    """Single-row generation counters and settings."""

    __tablename__ = "generation_stats"

    id = Column(Integer, primary_key=True)
    total_generated = Column(Integer, nullable=False, default=0)
    last_generated = Column(DateTime(timezone=True), nullable=True)
    cycle_count = Column(Integer, nullable=False, default=0)
    max_articles = Column(Integer, nullable=False, default=50)
    auto_reset_cycle = Column(Boolean, nullable=False, default=True)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )
