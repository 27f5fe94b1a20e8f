"""Contradiction detection between new chunks and existing knowledge base content."""

import logging
from typing import List, Dict, Any, Optional, Literal, Sequence

import openai
from pydantic import BaseModel, Field

from . import store
from .embed import to_pgvector
from .llm import complete_json

logger = logging.getLogger(__name__)

# Lower than the search default of 0.75
CONTRADICTION_MATCH_THRESHOLD = 0.7
CONTRADICTION_MATCH_COUNT = 10


class Contradiction(BaseModel):
    """One piece of conflicting advice."""
    topic: str
    new_chunk_advice: str
    existing_chunk_advice: str
    severity: Literal["minor", "moderate", "major"]
    explanation: str
    recommendation: str


class ContradictionResult(BaseModel):
    has_contradiction: bool
    contradictions: List[Contradiction] = Field(default_factory=list)


class ExistingChunk(BaseModel):
    """An approved chunk that is semantically close to new content."""
    id: str
    text: str
    source: str
    similarity: float


CONTRADICTION_SYSTEM_PROMPT = """You are a clinical expert reviewing ADHD guidance for contradictions.

# Task
Compare new content against existing knowledge base chunks to identify conflicting advice.

# Analysis Instructions
Look for contradictions in:
- Treatment approaches
- Strategy recommendations
- Clinical guidance
- Safety considerations

Severity levels:
- minor: Different approaches that are both valid
- moderate: Conflicting advice that could confuse parents
- major: Contradictory guidance on safety or clinical issues

For each contradiction, recommend one of:
- Keep new (if it's more current/accurate)
- Keep existing (if new is outdated/incorrect)
- Flag for expert review (if both have merit)
- Synthesize both perspectives

Identify any contradictions and explain them clearly."""


def build_contradiction_prompt(new_chunk_text: str, existing: Sequence[ExistingChunk]) -> str:
    """Lay out the new chunk and the numbered existing chunks."""
    existing_text = "\n\n".join(
        f"[Chunk {i}] Source: {chunk.source}\n{chunk.text}"
        for i, chunk in enumerate(existing, 1)
    )
    return f"# New Content\n{new_chunk_text}\n\n# Existing Knowledge Base\n{existing_text}"


def detect_contradictions(
    new_chunk_text: str,
    similar_existing_chunks: Sequence[ExistingChunk],
    client: Optional[openai.OpenAI] = None
) -> ContradictionResult:
    """Ask the model whether new content conflicts with similar existing chunks."""
    if not similar_existing_chunks:
        return ContradictionResult(has_contradiction=False, contradictions=[])

    return complete_json(
        ContradictionResult,
        CONTRADICTION_SYSTEM_PROMPT,
        build_contradiction_prompt(new_chunk_text, similar_existing_chunks),
        client=client
    )


def find_potential_contradictions(
    db_url: str,
    new_chunk_embedding: List[float],
    topic_tags: List[str],
    match_threshold: float = CONTRADICTION_MATCH_THRESHOLD,
    match_count: int = CONTRADICTION_MATCH_COUNT,
    exclude_document_id: Optional[str] = None
) -> List[ExistingChunk]:
    """
    Find approved chunks on the same topics that might contradict new content.

    Chunks of ``exclude_document_id`` are left out. Search failures are
    logged and treated as "nothing similar".
    """
    try:
        rows = store.search(
            db_url,
            to_pgvector(new_chunk_embedding),
            match_threshold,
            match_count,
            filter_tags=topic_tags,
            exclude_document_id=exclude_document_id
        )
    except Exception as e:
        logger.error(f"Error searching for contradictions: {e}")
        return []

    return [_existing_chunk_from_row(row) for row in rows]


def _existing_chunk_from_row(row: Dict[str, Any]) -> ExistingChunk:
    return ExistingChunk(
        id=str(row["id"]),
        text=row["chunk_text"],
        source=row.get("source_document_name") or "unknown",
        similarity=float(row["similarity"])
    )
