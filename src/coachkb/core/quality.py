"""AI quality gate: score each chunk before it may enter the knowledge base."""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Literal, Sequence

import openai
from pydantic import BaseModel, Field

from .chunker import Chunk
from .llm import complete_json, get_openai_client

logger = logging.getLogger(__name__)

APPROVED = "approved"
FLAGGED = "flagged"
REJECTED = "rejected"

DEFAULT_APPROVE_THRESHOLD = 0.7
DEFAULT_REJECT_THRESHOLD = 0.3
QUALITY_BATCH_SIZE = 10

AgeBand = Literal["toddler", "primary", "secondary", "teen", "all"]
Diagnosis = Literal["ADHD", "ASD", "both", "general"]
ContentType = Literal["research", "clinical_guidance", "practical_tips", "case_study", "general"]


class FlaggedConflict(BaseModel):
    """A topic where the chunk disagrees with accepted guidance."""
    topic: str
    conflicts_with: str


class QualityCheckResult(BaseModel):
    """Structured verdict on one chunk."""
    should_include: bool
    confidence_score: float = Field(ge=0.0, le=1.0)
    reasoning: str
    quality_issues: List[str] = Field(default_factory=list)
    valuable_insights: List[str] = Field(default_factory=list)
    contradictions: List[FlaggedConflict] = Field(default_factory=list)
    recommended_tags: List[str] = Field(default_factory=list)
    age_relevance: List[AgeBand] = Field(default_factory=list)
    diagnosis_relevance: List[Diagnosis] = Field(default_factory=list)
    content_type: ContentType = "general"


class ChunkQualityResult(QualityCheckResult):
    """Quality verdict tied back to the chunk it was produced for."""
    chunk_index: int


QUALITY_SYSTEM_PROMPT = """You are a clinical expert evaluating content for an ADHD parent coaching system.

# Your Mission
Determine if this content should be included in a knowledge base used to guide parents of children with ADHD.

# Evaluation Criteria

## INCLUDE content that:
- Provides specific, actionable strategies
- Is backed by research or expert clinical experience
- Addresses real ADHD-specific challenges (not generic parenting)
- Offers empowering, strength-based perspectives
- Acknowledges ADHD as a neurological difference (not a character flaw)
- Provides practical implementation steps
- Considers different ages and developmental stages

## EXCLUDE content that:
- Gives generic "try harder" or "just be consistent" advice without ADHD-specific adaptations
- Contradicts established ADHD research
- Promotes harmful practices (withholding food, excessive punishment, etc.)
- Blames parents or children for ADHD behaviors
- Is vague or unhelpful ("communicate better", "be patient")
- Would dilute high-quality guidance
- Lacks specificity or actionable steps

# Confidence Scoring
- 0.9-1.0: Excellent research-backed, specific guidance
- 0.7-0.89: Good practical advice, some ADHD specificity
- 0.5-0.69: Acceptable but generic, flag for review
- 0.3-0.49: Questionable quality, likely exclude
- 0.0-0.29: Poor quality, definitely exclude

Provide a structured assessment with reasoning."""


def build_quality_prompt(text: str, source_context: Optional[str] = None) -> str:
    """Build the user prompt for a single chunk."""
    source_line = f"Source: {source_context}\n\n" if source_context else ""
    return f"# Content to Evaluate\n{source_line}{text}"


def evaluate_content_quality(
    text: str,
    source_context: Optional[str] = None,
    client: Optional[openai.OpenAI] = None
) -> QualityCheckResult:
    """Ask the model whether a chunk belongs in the knowledge base."""
    return complete_json(
        QualityCheckResult,
        QUALITY_SYSTEM_PROMPT,
        build_quality_prompt(text, source_context),
        client=client
    )


def batch_evaluate_quality(
    chunks: Sequence[Chunk],
    source_context: Optional[str] = None,
    batch_size: int = QUALITY_BATCH_SIZE,
    client: Optional[openai.OpenAI] = None
) -> List[ChunkQualityResult]:
    """
    Evaluate many chunks, a batch at a time.

    Calls inside a batch run concurrently; the next batch starts once the
    previous one has finished. Results follow the order of ``chunks``.
    """
    if not chunks:
        return []

    client = client or get_openai_client()
    results: List[ChunkQualityResult] = []

    def evaluate(chunk: Chunk) -> ChunkQualityResult:
        verdict = evaluate_content_quality(chunk.text, source_context, client=client)
        return ChunkQualityResult(**verdict.model_dump(), chunk_index=chunk.index)

    with ThreadPoolExecutor(max_workers=batch_size) as executor:
        for i in range(0, len(chunks), batch_size):
            batch = chunks[i:i + batch_size]
            logger.info(f"Evaluating quality batch {i // batch_size + 1}: {len(batch)} chunks")
            results.extend(executor.map(evaluate, batch))

    return results


def route_chunk(
    result: QualityCheckResult,
    approve_threshold: float = DEFAULT_APPROVE_THRESHOLD,
    reject_threshold: float = DEFAULT_REJECT_THRESHOLD
) -> str:
    """Map a quality verdict to approved, flagged or rejected."""
    if not result.should_include or result.confidence_score < reject_threshold:
        return REJECTED
    if result.confidence_score >= approve_threshold:
        return APPROVED
    return FLAGGED
