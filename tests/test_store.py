"""Tests for Postgres access with a mocked connection."""

from unittest.mock import patch

import pytest

from coachkb.core import store
from coachkb.core.exceptions import ChunkNotFoundError, DocumentNotFoundError

DB_URL = "postgresql://test/test"


@pytest.fixture
def connection():
    with patch("coachkb.core.store.psycopg.connect") as connect:
        yield connect.return_value.__enter__.return_value


def _cursor(conn):
    return conn.cursor.return_value.__enter__.return_value


def test_get_database_url_default(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    assert store.get_database_url() == store.DEFAULT_DATABASE_URL


@pytest.mark.parametrize("db_url, shown", [
    ("postgresql://coachkb:s3cret@db:5432/coachkb", "postgresql://coachkb:***@db:5432/coachkb"),
    ("postgresql://db/coachkb", "postgresql://db/coachkb"),
])
def test_mask_database_url(db_url, shown):
    assert store.mask_database_url(db_url) == shown


def test_get_document_not_found(connection):
    _cursor(connection).fetchone.return_value = None

    with pytest.raises(DocumentNotFoundError):
        store.get_document(DB_URL, "missing")


def test_replace_with_no_rows_only_deletes(connection):
    cur = _cursor(connection)
    cur.rowcount = 3

    assert store.replace_document_chunks(DB_URL, "doc-1", []) == 0

    assert cur.execute.call_args.args[1] == ("doc-1",)
    cur.executemany.assert_not_called()
    connection.commit.assert_called_once()


def test_replace_document_chunks_in_one_transaction(connection):
    rows = [{
        "chunk_text": "Use timers.",
        "embedding": "[0.1,0.2]",
        "source_document_id": "doc-1",
        "source_document_name": "Guide",
        "source_url": "/srv/guide.md",
        "chunk_index": 0,
        "metadata": {"tokenCount": 3},
        "topic_tags": ["school"],
        "age_relevance": ["teen"],
        "diagnosis_relevance": ["ADHD"],
        "content_type": "practical_tips",
        "confidence_score": 0.9,
        "quality_status": "approved"
    }]

    cur = _cursor(connection)
    cur.rowcount = 0

    assert store.replace_document_chunks(DB_URL, "doc-1", rows) == 1

    assert "DELETE FROM knowledge_base" in cur.execute.call_args.args[0]
    sql, params = cur.executemany.call_args.args
    assert "%s::vector" in sql
    assert params[0][0] == "Use timers."
    assert params[0][1] == "[0.1,0.2]"
    assert params[0][-1] == "approved"
    connection.commit.assert_called_once()


def test_approve_unknown_chunk(connection):
    connection.execute.return_value.rowcount = 0

    with pytest.raises(ChunkNotFoundError):
        store.approve_chunk(DB_URL, "missing", "[1.0]")

    connection.commit.assert_not_called()


def test_reject_chunk_records_reason(connection):
    connection.execute.return_value.rowcount = 1

    store.reject_chunk(DB_URL, "kb-1", "Too generic")

    assert connection.execute.call_args.args[1] == ("Too generic", "kb-1")
    connection.commit.assert_called_once()


def test_search_passes_null_filters(connection):
    _cursor(connection).fetchall.return_value = []

    assert store.search(DB_URL, "[1.0]", 0.75, 5, filter_tags=[]) == []

    assert _cursor(connection).execute.call_args.args[1] == ("[1.0]", 0.75, 5, None, None, None)


def test_get_stats(connection):
    cur = connection.cursor.return_value.__enter__.return_value
    cur.fetchall.side_effect = [
        [("approved", 6), ("flagged", 2)],
        [("completed", 3)],
    ]
    cur.fetchone.return_value = (6,)

    stats = store.get_stats(DB_URL)

    assert stats["total_chunks"] == 8
    assert stats["embedded_chunks"] == 6
    assert stats["embedding_rate"] == 0.75
    assert stats["total_documents"] == 3
    assert stats["chunks_by_status"] == {"approved": 6, "flagged": 2}


def test_search_excludes_document(connection):
    _cursor(connection).fetchall.return_value = []

    store.search(DB_URL, "[1.0]", 0.7, 10, filter_tags=["sleep"], exclude_document_id="doc-1")

    sql, params = _cursor(connection).execute.call_args.args
    assert "%s::uuid" in sql
    assert params == ("[1.0]", 0.7, 10, ["sleep"], None, "doc-1")
