"""Knowledge base schema

Revision ID: 3b8f1c2d9e47
Revises:
Create Date: 2026-10-19 09:12:44.512093

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '3b8f1c2d9e47'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


SEARCH_FUNCTION = """
CREATE OR REPLACE FUNCTION search_knowledge_base(
    query_embedding vector(1536),
    match_threshold float DEFAULT 0.75,
    match_count int DEFAULT 5,
    filter_tags text[] DEFAULT NULL,
    filter_age_relevance text[] DEFAULT NULL,
    exclude_document_id uuid DEFAULT NULL
)
RETURNS TABLE (
    id uuid,
    chunk_text text,
    source_document_name text,
    source_url text,
    topic_tags text[],
    age_relevance text[],
    content_type text,
    confidence_score float,
    similarity float
)
LANGUAGE sql STABLE
AS $$
    SELECT
        kb.id,
        kb.chunk_text,
        kb.source_document_name,
        kb.source_url,
        kb.topic_tags,
        kb.age_relevance,
        kb.content_type,
        kb.confidence_score,
        1 - (kb.embedding <=> query_embedding) AS similarity
    FROM knowledge_base kb
    WHERE kb.quality_status = 'approved'
      AND kb.embedding IS NOT NULL
      AND 1 - (kb.embedding <=> query_embedding) > match_threshold
      AND (filter_tags IS NULL OR kb.topic_tags && filter_tags)
      AND (filter_age_relevance IS NULL OR kb.age_relevance && filter_age_relevance)
      AND (exclude_document_id IS NULL OR kb.source_document_id <> exclude_document_id)
    ORDER BY kb.embedding <=> query_embedding
    LIMIT match_count;
$$;
"""


def upgrade() -> None:
    """Upgrade schema."""
    op.execute("CREATE EXTENSION IF NOT EXISTS vector")
    op.execute("CREATE EXTENSION IF NOT EXISTS pgcrypto")

    # Uploaded files, web pages and videos
    op.create_table('source_documents',
        sa.Column('id', postgresql.UUID(), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('author', sa.Text(), nullable=True),
        sa.Column('file_name', sa.Text(), nullable=False),
        sa.Column('file_type', sa.Text(), nullable=False),
        sa.Column('file_size_bytes', sa.BigInteger(), nullable=True),
        sa.Column('file_url', sa.Text(), nullable=False),
        sa.Column('sha256', sa.Text(), nullable=True),
        sa.Column('processing_status', sa.Text(), server_default='pending', nullable=False),
        sa.Column('processing_error', sa.Text(), nullable=True),
        sa.Column('chunks_generated', sa.Integer(), server_default='0', nullable=False),
        sa.Column('quality_check_status', sa.Text(), nullable=True),
        sa.Column('quality_check_summary', postgresql.JSONB(), nullable=True),
        sa.Column('contradictions_detected', postgresql.JSONB(), nullable=True),
        sa.Column('uploaded_by', sa.Text(), nullable=False),
        sa.Column('uploaded_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('last_processed_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.CheckConstraint("file_type IN ('pdf', 'md', 'txt', 'url', 'youtube')", name='ck_source_documents_file_type'),
        sa.CheckConstraint(
            "processing_status IN ('pending', 'processing', 'completed', 'failed')",
            name='ck_source_documents_processing_status'
        ),
        sa.PrimaryKeyConstraint('id')
    )

    # Chunks; embedding stays NULL until a chunk is approved
    op.create_table('knowledge_base',
        sa.Column('id', postgresql.UUID(), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('chunk_text', sa.Text(), nullable=False),
        sa.Column('source_document_id', postgresql.UUID(), nullable=False),
        sa.Column('source_document_name', sa.Text(), nullable=True),
        sa.Column('source_url', sa.Text(), nullable=True),
        sa.Column('chunk_index', sa.Integer(), nullable=False),
        sa.Column('metadata', postgresql.JSONB(), server_default=sa.text("'{}'::jsonb"), nullable=False),
        sa.Column('topic_tags', postgresql.ARRAY(sa.Text()), server_default='{}', nullable=False),
        sa.Column('age_relevance', postgresql.ARRAY(sa.Text()), server_default='{}', nullable=False),
        sa.Column('diagnosis_relevance', postgresql.ARRAY(sa.Text()), server_default='{}', nullable=False),
        sa.Column('content_type', sa.Text(), nullable=True),
        sa.Column('confidence_score', sa.Float(), nullable=True),
        sa.Column('quality_status', sa.Text(), nullable=False),
        sa.Column('review_notes', sa.Text(), nullable=True),
        sa.Column('reviewed_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint(
            "quality_status IN ('approved', 'flagged', 'rejected')",
            name='ck_knowledge_base_quality_status'
        ),
        sa.ForeignKeyConstraint(['source_document_id'], ['source_documents.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.execute("ALTER TABLE knowledge_base ADD COLUMN embedding vector(1536)")

    # Create indexes
    op.create_index('idx_source_documents_status', 'source_documents', ['processing_status'])
    op.create_index('idx_knowledge_base_document_id', 'knowledge_base', ['source_document_id'])
    op.create_index('idx_knowledge_base_quality_status', 'knowledge_base', ['quality_status'])
    op.create_index('idx_knowledge_base_topic_tags', 'knowledge_base', ['topic_tags'], postgresql_using='gin')
    op.create_index('idx_knowledge_base_age_relevance', 'knowledge_base', ['age_relevance'], postgresql_using='gin')
    op.execute(
        "CREATE INDEX idx_knowledge_base_embedding ON knowledge_base "
        "USING hnsw (embedding vector_cosine_ops)"
    )

    op.execute(SEARCH_FUNCTION)


def downgrade() -> None:
    """Downgrade schema."""
    op.execute(
        "DROP FUNCTION IF EXISTS search_knowledge_base(vector, float, int, text[], text[], uuid)"
    )

    # Drop indexes
    op.execute("DROP INDEX IF EXISTS idx_knowledge_base_embedding")
    op.drop_index('idx_knowledge_base_age_relevance', table_name='knowledge_base')
    op.drop_index('idx_knowledge_base_topic_tags', table_name='knowledge_base')
    op.drop_index('idx_knowledge_base_quality_status', table_name='knowledge_base')
    op.drop_index('idx_knowledge_base_document_id', table_name='knowledge_base')
    op.drop_index('idx_source_documents_status', table_name='source_documents')

    # Drop tables
    op.drop_table('knowledge_base')
    op.drop_table('source_documents')
