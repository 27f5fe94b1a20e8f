"""Tests for knowledge base search."""

from unittest.mock import patch

import pytest

from coachkb.core.search import (
    SearchFilters,
    SearchOptions,
    extract_topics,
    search_knowledge_base,
)

DB_URL = "postgresql://test/test"


@pytest.fixture
def search_rows():
    return [{
        "id": "0f7c",
        "chunk_text": "Keep bedtime at the same time every night.",
        "source_document_name": "Sleep Guide",
        "source_url": "https://example.org/sleep",
        "topic_tags": ["sleep"],
        "age_relevance": None,
        "content_type": "practical_tips",
        "confidence_score": 0.9,
        "similarity": 0.88
    }]


def test_blank_query_is_rejected():
    with pytest.raises(ValueError):
        search_knowledge_base("   ", db_url=DB_URL)


def test_search_returns_chunks(search_rows):
    with patch("coachkb.core.search.generate_embedding", return_value=[0.25, 0.5]), \
         patch("coachkb.core.search.store.search", return_value=search_rows) as search:
        results = search_knowledge_base("bedtime battles", db_url=DB_URL)

    assert len(results) == 1
    assert results[0].id == "0f7c"
    assert results[0].similarity == 0.88
    assert results[0].age_relevance == []
    search.assert_called_once_with(
        DB_URL,
        "[0.25,0.5]",
        0.75,
        5,
        filter_tags=None,
        filter_age_relevance=None
    )


def test_search_passes_filters(search_rows):
    options = SearchOptions(
        limit=3,
        threshold=0.6,
        filters=SearchFilters(topic_tags=["sleep"], age_relevance=["teen"], content_type="research")
    )

    with patch("coachkb.core.search.generate_embedding", return_value=[1.0]), \
         patch("coachkb.core.search.store.search", return_value=search_rows) as search:
        search_knowledge_base("sleep", options, db_url=DB_URL)

    search.assert_called_once_with(
        DB_URL,
        "[1.0]",
        0.6,
        3,
        filter_tags=["sleep"],
        filter_age_relevance=["teen"]
    )


def test_embedding_failure_yields_no_results():
    with patch("coachkb.core.search.generate_embedding", side_effect=RuntimeError("rate limited")), \
         patch("coachkb.core.search.store.search") as search:
        assert search_knowledge_base("homework fights", db_url=DB_URL) == []

    search.assert_not_called()


def test_database_failure_yields_no_results():
    with patch("coachkb.core.search.generate_embedding", return_value=[1.0]), \
         patch("coachkb.core.search.store.search", side_effect=RuntimeError("connection refused")):
        assert search_knowledge_base("homework fights", db_url=DB_URL) == []


@pytest.mark.parametrize("message, topics", [
    ("My son won't eat breakfast and can't sleep", ["eating", "sleep"]),
    ("Should we adjust the dose?", ["medication"]),
    ("Another meltdown after school today", ["school", "behavior"]),
    ("Hello there", []),
])
def test_extract_topics(message, topics):
    assert extract_topics(message) == topics
