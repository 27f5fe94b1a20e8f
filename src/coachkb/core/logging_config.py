"""Structured logging configuration for coachkb."""

import logging
from typing import Dict, Any, List, Optional

import structlog
from structlog.stdlib import LoggerFactory


def configure_logging(log_level: str = "INFO", json_logs: bool = True) -> None:
    """Configure structured logging with audit capabilities."""

    numeric_level = getattr(logging, log_level.upper(), logging.INFO)
    logging.basicConfig(level=numeric_level)

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
    ]

    if json_logs:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        logger_factory=LoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        cache_logger_on_first_use=True,
    )


def get_audit_logger(component: str) -> structlog.BoundLogger:
    """Get a logger with audit context for a specific component."""
    logger = structlog.get_logger(component)
    return logger.bind(component=component, audit=True)


def log_ingestion_event(
    logger: structlog.BoundLogger,
    document_id: str,
    title: str,
    file_type: str,
    total_chunks: int,
    approved: int,
    flagged: int,
    rejected: int,
    contradictions: int,
    processing_time_ms: float
) -> None:
    """Log a completed document processing run for the audit trail."""
    logger.info(
        "document_processed",
        document_id=document_id,
        title=title,
        file_type=file_type,
        total_chunks=total_chunks,
        approved=approved,
        flagged=flagged,
        rejected=rejected,
        contradictions=contradictions,
        processing_time_ms=processing_time_ms,
        event_type="document_processing"
    )


def log_quality_decision(
    logger: structlog.BoundLogger,
    document_id: str,
    chunk_index: int,
    decision: str,
    confidence_score: float,
    content_type: str
) -> None:
    """Log the accept/flag/reject routing of a single chunk."""
    logger.info(
        "chunk_quality_decision",
        document_id=document_id,
        chunk_index=chunk_index,
        decision=decision,
        confidence_score=confidence_score,
        content_type=content_type,
        event_type="quality_decision"
    )


def log_contradiction_event(
    logger: structlog.BoundLogger,
    document_id: str,
    chunk_index: int,
    compared_against: int,
    severities: List[str]
) -> None:
    """Log contradictions found between a new chunk and existing content."""
    logger.warning(
        "contradiction_detected",
        document_id=document_id,
        chunk_index=chunk_index,
        compared_against=compared_against,
        severities=severities,
        event_type="contradiction"
    )


def log_search_event(
    logger: structlog.BoundLogger,
    query: str,
    result_count: int,
    threshold: float,
    limit: int,
    execution_time_ms: float,
    filters_applied: Optional[Dict[str, Any]] = None
) -> None:
    """Log knowledge base search with full audit trail."""
    logger.info(
        "knowledge_base_search_completed",
        query=query,
        result_count=result_count,
        threshold=threshold,
        limit=limit,
        execution_time_ms=execution_time_ms,
        filters_applied=filters_applied or {},
        event_type="knowledge_base_search"
    )


def log_review_decision(
    logger: structlog.BoundLogger,
    chunk_id: str,
    decision: str,
    reason: Optional[str] = None,
    embedded: bool = False
) -> None:
    """Log a manual approve/reject decision on a flagged chunk."""
    logger.info(
        "chunk_review_decision",
        chunk_id=chunk_id,
        decision=decision,
        reason=reason,
        embedded=embedded,
        event_type="manual_review"
    )
