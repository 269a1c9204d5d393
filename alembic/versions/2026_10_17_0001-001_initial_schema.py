"""initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-17

Tables as defined in medinews/models/database_models.py:
chunks, articles, used_chunks, generation_stats.
"""
from alembic import op
import sqlalchemy as sa
from pgvector.sqlalchemy import Vector
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "001"
down_revision = None
branch_labels = None
depends_on = None

VECTOR_DIM = 3072


def upgrade() -> None:
    # pgvector extension
    op.execute("CREATE EXTENSION IF NOT EXISTS vector")

    article_category = sa.Enum("medical", "health", "research", "news", name="articlecategory")
    article_category.create(op.get_bind(), checkfirst=True)

    # ── chunks (content store, written by ingestion) ──────────────────────
    op.create_table(
        "chunks",
        sa.Column("id", sa.BigInteger, primary_key=True),
        sa.Column("content", sa.Text, nullable=False),
        sa.Column("embedding", Vector(VECTOR_DIM), nullable=True),
        sa.Column("metadata_json", sa.JSON, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # ── articles ──────────────────────────────────────────────────────────
    op.create_table(
        "articles",
        sa.Column("id", sa.String(32), primary_key=True),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("content", sa.Text, nullable=False),
        sa.Column("summary", sa.Text, nullable=False),
        sa.Column("image_url", sa.String(1024), nullable=True),
        sa.Column("tags", sa.JSON, nullable=False),
        sa.Column(
            "category",
            postgresql.ENUM("medical", "health", "research", "news", name="articlecategory", create_type=False),
            nullable=False,
        ),
        sa.Column("source_chunk_id", sa.BigInteger, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_articles_category", "articles", ["category"])
    op.create_index("ix_articles_source_chunk_id", "articles", ["source_chunk_id"])
    op.create_index("ix_articles_created_at", "articles", ["created_at"])

    # ── used_chunks ───────────────────────────────────────────────────────
    op.create_table(
        "used_chunks",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("chunk_id", sa.BigInteger, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_used_chunks_chunk_id", "used_chunks", ["chunk_id"], unique=True)

    # ── generation_stats (single row) ─────────────────────────────────────
    op.create_table(
        "generation_stats",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("total_generated", sa.Integer, nullable=False, server_default="0"),
        sa.Column("last_generated", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cycle_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("max_articles", sa.Integer, nullable=False, server_default="50"),
        sa.Column("auto_reset_cycle", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("generation_stats")
    op.drop_index("ix_used_chunks_chunk_id", table_name="used_chunks")
    op.drop_table("used_chunks")
    op.drop_index("ix_articles_created_at", table_name="articles")
    op.drop_index("ix_articles_source_chunk_id", table_name="articles")
    op.drop_index("ix_articles_category", table_name="articles")
    op.drop_table("articles")
    op.drop_table("chunks")
    op.execute("DROP TYPE IF EXISTS articlecategory")
