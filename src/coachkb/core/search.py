"""Semantic search over approved knowledge base chunks."""

import time
import logging
from typing import List, Dict, Any, Optional

from pydantic import BaseModel, Field

from . import store
from .embed import generate_embedding, to_pgvector
from .logging_config import get_audit_logger, log_search_event

logger = logging.getLogger(__name__)

DEFAULT_SEARCH_LIMIT = 5
DEFAULT_SEARCH_THRESHOLD = 0.75

TOPIC_KEYWORDS: Dict[str, List[str]] = {
    "eating": ["eat", "food", "meal", "breakfast", "lunch", "dinner", "snack"],
    "sleep": ["sleep", "bedtime", "tired", "nap", "wake", "insomnia"],
    "school": ["school", "teacher", "homework", "class", "grade"],
    "medication": ["medication", "meds", "pill", "dose", "prescription"],
    "behavior": ["behavior", "tantrum", "meltdown", "aggression", "defiance"],
    "social": ["friend", "social", "peer", "play", "relationship"],
}


class SearchFilters(BaseModel):
    topic_tags: Optional[List[str]] = None
    age_relevance: Optional[List[str]] = None
    diagnosis_relevance: Optional[List[str]] = None
    content_type: Optional[str] = None


class SearchOptions(BaseModel):
    limit: int = DEFAULT_SEARCH_LIMIT
    threshold: float = DEFAULT_SEARCH_THRESHOLD
    filters: SearchFilters = Field(default_factory=SearchFilters)


class KnowledgeChunk(BaseModel):
    """A search hit."""
    id: str
    chunk_text: str
    source_document_name: Optional[str] = None
    source_url: Optional[str] = None
    topic_tags: List[str] = Field(default_factory=list)
    age_relevance: List[str] = Field(default_factory=list)
    content_type: Optional[str] = None
    confidence_score: Optional[float] = None
    similarity: float


def search_knowledge_base(
    query: str,
    options: Optional[SearchOptions] = None,
    db_url: Optional[str] = None
) -> List[KnowledgeChunk]:
    """
    Search the knowledge base by semantic similarity.

    Only ``topic_tags`` and ``age_relevance`` filters reach the database
    function. Any embedding or database failure is logged and yields an
    empty result.

    Args:
        query: Free-text question
        options: Limit, similarity threshold and filters
        db_url: Database URL (defaults to DATABASE_URL)

    Returns:
        Matching chunks, most similar first
    """
    if not query or not query.strip():
        raise ValueError("Query is required")

    options = options or SearchOptions()
    db_url = db_url or store.get_database_url()
    audit_logger = get_audit_logger("search")
    start_time = time.time()

    try:
        query_embedding = generate_embedding(query)

        rows = store.search(
            db_url,
            to_pgvector(query_embedding),
            options.threshold,
            options.limit,
            filter_tags=options.filters.topic_tags,
            filter_age_relevance=options.filters.age_relevance
        )
        results = [_chunk_from_row(row) for row in rows]
    except Exception as e:
        logger.error(f"Knowledge base search failed: {e}")
        return []

    log_search_event(
        audit_logger,
        query=query,
        result_count=len(results),
        threshold=options.threshold,
        limit=options.limit,
        execution_time_ms=(time.time() - start_time) * 1000,
        filters_applied=options.filters.model_dump(exclude_none=True)
    )
    return results


def _chunk_from_row(row: Dict[str, Any]) -> KnowledgeChunk:
    return KnowledgeChunk(
        id=str(row["id"]),
        chunk_text=row["chunk_text"],
        source_document_name=row.get("source_document_name"),
        source_url=row.get("source_url"),
        topic_tags=row.get("topic_tags") or [],
        age_relevance=row.get("age_relevance") or [],
        content_type=row.get("content_type"),
        confidence_score=row.get("confidence_score"),
        similarity=float(row["similarity"])
    )


def extract_topics(message: str) -> List[str]:
    """Detect coaching topics mentioned in a message, for search filtering."""
    lower_message = message.lower()
    return [
        topic
        for topic, keywords in TOPIC_KEYWORDS.items()
        if any(keyword in lower_message for keyword in keywords)
    ]
