"""Document pipeline: register -> extract -> chunk -> quality gate -> embed -> contradictions -> persist."""

import os
import time
import shutil
import hashlib
import logging
from pathlib import Path
from typing import List, Dict, Any, Optional, Tuple
from urllib.parse import urlparse

from dotenv import load_dotenv
from pydantic import BaseModel

from . import store
from .chunker import Chunk, chunk_document
from .contradictions import detect_contradictions, find_potential_contradictions
from .embed import generate_batch_embeddings, generate_embedding, to_pgvector
from .exceptions import UnsupportedFileTypeError
from .extract import (
    detect_file_type,
    detect_url_type,
    extract_content,
    load_file_bytes,
)
from .logging_config import (
    get_audit_logger,
    log_contradiction_event,
    log_ingestion_event,
    log_quality_decision,
    log_review_decision,
)
from .quality import (
    APPROVED,
    FLAGGED,
    DEFAULT_APPROVE_THRESHOLD,
    DEFAULT_REJECT_THRESHOLD,
    ChunkQualityResult,
    batch_evaluate_quality,
    route_chunk,
)

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_OBJECT_STORE_DIR = "./object_store"


class ProcessingSummary(BaseModel):
    """Outcome of processing one source document."""
    document_id: str
    total_chunks: int
    auto_approved: int
    flagged_for_review: int
    auto_rejected: int
    contradictions_found: int
    avg_confidence_score: float


def get_object_store_dir() -> Path:
    return Path(os.getenv("OBJECT_STORE_DIR", DEFAULT_OBJECT_STORE_DIR))


def get_thresholds() -> Tuple[float, float]:
    """Approve and reject thresholds from the environment."""
    return (
        float(os.getenv("APPROVE_THRESHOLD", str(DEFAULT_APPROVE_THRESHOLD))),
        float(os.getenv("REJECT_THRESHOLD", str(DEFAULT_REJECT_THRESHOLD))),
    )


def calculate_sha256(file_path: Path) -> str:
    """Calculate SHA256 hash of a file."""
    sha256_hash = hashlib.sha256()
    with open(file_path, "rb") as f:
        for block in iter(lambda: f.read(4096), b""):
            sha256_hash.update(block)
    return sha256_hash.hexdigest()


def save_to_object_store(file_path: Path, sha256: str, object_store_dir: Path) -> Path:
    """Copy an upload into the object store, named by its content hash."""
    object_store_dir.mkdir(parents=True, exist_ok=True)

    dest_path = object_store_dir / f"{sha256}{file_path.suffix.lower()}"

    if not dest_path.exists():
        shutil.copy2(file_path, dest_path)
        logger.info(f"Saved file to object store: {dest_path}")
    else:
        logger.info(f"File already exists in object store: {dest_path}")

    return dest_path


def register_file(
    file_path: Path,
    uploaded_by: str,
    db_url: Optional[str] = None,
    object_store_dir: Optional[Path] = None
) -> Dict[str, Any]:
    """
    Store an uploaded file and create its pending source document.

    Args:
        file_path: Local PDF, Markdown or text file
        uploaded_by: Identifier of the admin uploading it
        db_url: Database URL (defaults to DATABASE_URL)
        object_store_dir: Upload directory (defaults to OBJECT_STORE_DIR)

    Returns:
        The new source_documents row
    """
    file_type = detect_file_type(file_path.name)
    if file_type == "unknown":
        raise UnsupportedFileTypeError(f"Unsupported file type: {file_path.name}")

    db_url = db_url or store.get_database_url()
    object_store_dir = object_store_dir or get_object_store_dir()

    sha256 = calculate_sha256(file_path)
    stored_path = save_to_object_store(file_path, sha256, object_store_dir)

    return store.create_document(
        db_url,
        title=file_path.name,
        file_name=file_path.name,
        file_type=file_type,
        file_url=str(stored_path.resolve()),
        uploaded_by=uploaded_by,
        file_size_bytes=file_path.stat().st_size,
        sha256=sha256
    )


def register_url(url: str, uploaded_by: str, db_url: Optional[str] = None) -> Dict[str, Any]:
    """Create a pending source document for a web page or YouTube video."""
    db_url = db_url or store.get_database_url()
    file_type = detect_url_type(url)

    parsed = urlparse(url)
    location = f"{parsed.netloc}{parsed.path}"
    title = f"YouTube: {location}" if file_type == "youtube" else location

    return store.create_document(
        db_url,
        title=title,
        file_name=url,
        file_type=file_type,
        file_url=url,
        uploaded_by=uploaded_by
    )


def source_context(document: Dict[str, Any]) -> str:
    """Title, plus author when known, for the quality prompt."""
    if document.get("author"):
        return f"{document['title']} by {document['author']}"
    return document["title"]


def _load_text(document: Dict[str, Any]) -> str:
    file_type = document["file_type"]
    if file_type in ("url", "youtube"):
        return extract_content(document["file_url"], file_type).text
    return extract_content(load_file_bytes(document["file_url"]), file_type).text


def _chunk_row(
    document: Dict[str, Any],
    chunk: Chunk,
    result: ChunkQualityResult,
    status: str,
    embedding: Optional[List[float]] = None
) -> Dict[str, Any]:
    if status == APPROVED:
        metadata = {
            "tokenCount": chunk.token_count,
            "startChar": chunk.start_char,
            "endChar": chunk.end_char,
        }
    else:
        metadata = {
            "tokenCount": chunk.token_count,
            "reasoning": result.reasoning,
            "qualityIssues": result.quality_issues,
            "valuableInsights": result.valuable_insights,
        }

    return {
        "chunk_text": chunk.text,
        "embedding": to_pgvector(embedding) if embedding is not None else None,
        "source_document_id": document["id"],
        "source_document_name": document["title"],
        "source_url": document["file_url"],
        "chunk_index": chunk.index,
        "metadata": metadata,
        "topic_tags": result.recommended_tags,
        "age_relevance": [age for age in result.age_relevance if age != "all"],
        "diagnosis_relevance": result.diagnosis_relevance,
        "content_type": result.content_type,
        "confidence_score": result.confidence_score,
        "quality_status": status,
    }


def process_document(document_id: str, db_url: Optional[str] = None) -> ProcessingSummary:
    """
    Run a registered document through the full ingestion pipeline.

    Approved chunks are embedded and checked for contradictions against the
    existing knowledge base; flagged chunks are stored without an embedding
    until a reviewer approves them; rejected chunks are dropped. Any failure
    after the document is loaded marks it failed and re-raises.

    Args:
        document_id: ID of a source_documents row
        db_url: Database URL (defaults to DATABASE_URL)

    Returns:
        Per-document processing summary
    """
    db_url = db_url or store.get_database_url()
    audit_logger = get_audit_logger("ingestion")
    start_time = time.time()

    document = store.get_document(db_url, document_id)
    document_id = str(document["id"])
    store.mark_processing(db_url, document_id)
    logger.info(f"Processing document {document_id}: {document['title']}")

    try:
        text = _load_text(document)
        chunks = chunk_document(text)
        logger.info(f"Split {document['title']} into {len(chunks)} chunks")

        quality_results = batch_evaluate_quality(chunks, source_context(document))

        approve_threshold, reject_threshold = get_thresholds()
        approved: List[Tuple[Chunk, ChunkQualityResult]] = []
        flagged: List[Tuple[Chunk, ChunkQualityResult]] = []
        rejected_count = 0

        for result in quality_results:
            chunk = chunks[result.chunk_index]
            decision = route_chunk(result, approve_threshold, reject_threshold)
            log_quality_decision(
                audit_logger,
                document_id=document_id,
                chunk_index=chunk.index,
                decision=decision,
                confidence_score=result.confidence_score,
                content_type=result.content_type
            )

            if decision == APPROVED:
                approved.append((chunk, result))
            elif decision == FLAGGED:
                flagged.append((chunk, result))
            else:
                rejected_count += 1

        embeddings = generate_batch_embeddings([chunk.text for chunk, _ in approved])

        contradictions: List[Dict[str, Any]] = []
        for (chunk, result), embedding in zip(approved, embeddings):
            similar = find_potential_contradictions(
                db_url,
                embedding,
                result.recommended_tags,
                exclude_document_id=document_id
            )
            if not similar:
                continue

            check = detect_contradictions(chunk.text, similar)
            if check.has_contradiction:
                log_contradiction_event(
                    audit_logger,
                    document_id=document_id,
                    chunk_index=chunk.index,
                    compared_against=len(similar),
                    severities=[c.severity for c in check.contradictions]
                )
                contradictions.extend(
                    {**c.model_dump(), "chunk_index": chunk.index}
                    for c in check.contradictions
                )

        rows = [
            _chunk_row(document, chunk, result, APPROVED, embedding)
            for (chunk, result), embedding in zip(approved, embeddings)
        ]
        rows.extend(_chunk_row(document, chunk, result, FLAGGED) for chunk, result in flagged)
        # Earlier chunks of the document go in the same transaction
        store.replace_document_chunks(db_url, document_id, rows)

        avg_confidence = (
            round(sum(r.confidence_score for r in quality_results) / len(quality_results), 2)
            if quality_results else 0
        )
        summary = ProcessingSummary(
            document_id=document_id,
            total_chunks=len(chunks),
            auto_approved=len(approved),
            flagged_for_review=len(flagged),
            auto_rejected=rejected_count,
            contradictions_found=len(contradictions),
            avg_confidence_score=avg_confidence
        )

        store.mark_completed(
            db_url,
            document_id,
            chunks_generated=len(chunks),
            quality_check_status="needs_review" if contradictions else "passed",
            quality_check_summary=summary.model_dump(
                include={"total_chunks", "auto_approved", "flagged_for_review",
                         "auto_rejected", "avg_confidence_score"}
            ),
            contradictions=contradictions
        )

    except Exception as e:
        logger.error(f"Processing failed for document {document_id}: {e}")
        store.mark_failed(db_url, document_id, str(e))
        raise

    log_ingestion_event(
        audit_logger,
        document_id=document_id,
        title=document["title"],
        file_type=document["file_type"],
        total_chunks=summary.total_chunks,
        approved=summary.auto_approved,
        flagged=summary.flagged_for_review,
        rejected=summary.auto_rejected,
        contradictions=summary.contradictions_found,
        processing_time_ms=(time.time() - start_time) * 1000
    )
    return summary


def approve_chunk(chunk_id: str, db_url: Optional[str] = None) -> None:
    """Approve a flagged chunk, embedding it first if it has no embedding yet."""
    db_url = db_url or store.get_database_url()
    chunk = store.get_chunk(db_url, chunk_id)

    embedding = None
    if not chunk["has_embedding"]:
        embedding = to_pgvector(generate_embedding(chunk["chunk_text"]))

    store.approve_chunk(db_url, chunk_id, embedding)
    log_review_decision(
        get_audit_logger("review"),
        chunk_id=chunk_id,
        decision=APPROVED,
        embedded=embedding is not None
    )


def reject_chunk(chunk_id: str, reason: Optional[str] = None, db_url: Optional[str] = None) -> None:
    db_url = db_url or store.get_database_url()
    store.reject_chunk(db_url, chunk_id, reason)
    log_review_decision(get_audit_logger("review"), chunk_id=chunk_id, decision="rejected", reason=reason)
