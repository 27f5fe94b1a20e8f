"""Tests for the coachkb command line."""

from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from coachkb.cli.main import app
from coachkb.core.exceptions import ChunkNotFoundError
from coachkb.core.pipeline import ProcessingSummary
from coachkb.core.search import KnowledgeChunk

runner = CliRunner()


@pytest.fixture(autouse=True)
def cli_environment(tmp_path, monkeypatch):
    monkeypatch.setenv("COACHKB_CONFIG_DIR", str(tmp_path / "config"))
    monkeypatch.setenv("OBJECT_STORE_DIR", str(tmp_path / "object_store"))
    monkeypatch.setenv("DATABASE_URL", "postgresql://test/test")
    monkeypatch.setenv("JSON_LOGS", "true")


@pytest.fixture
def summary():
    return ProcessingSummary(
        document_id="doc-1",
        total_chunks=4,
        auto_approved=2,
        flagged_for_review=1,
        auto_rejected=1,
        contradictions_found=0,
        avg_confidence_score=0.71
    )


def test_search_prints_results():
    hit = KnowledgeChunk(
        id="kb-1",
        chunk_text="Keep bedtime consistent.",
        source_document_name="Sleep Guide",
        topic_tags=["sleep"],
        similarity=0.91
    )

    with patch("coachkb.cli.main.search_knowledge_base", return_value=[hit]) as search:
        result = runner.invoke(app, ["search", "bedtime fights", "--auto-topics", "--limit", "3"])

    assert result.exit_code == 0, result.output
    assert "Sleep Guide" in result.output
    assert "0.910" in result.output
    options = search.call_args.args[1]
    assert options.limit == 3
    assert options.filters.topic_tags == ["sleep"]


def test_search_without_results():
    with patch("coachkb.cli.main.search_knowledge_base", return_value=[]):
        result = runner.invoke(app, ["search", "anything"])

    assert result.exit_code == 0
    assert "No results found." in result.output


def test_approve():
    with patch("coachkb.cli.main.pipeline.approve_chunk") as approve:
        result = runner.invoke(app, ["approve", "kb-1"])

    assert result.exit_code == 0, result.output
    approve.assert_called_once_with("kb-1")


def test_approve_unknown_chunk_exits_with_error():
    with patch("coachkb.cli.main.pipeline.approve_chunk", side_effect=ChunkNotFoundError("Chunk not found: kb-x")):
        result = runner.invoke(app, ["approve", "kb-x"])

    assert result.exit_code == 1
    assert "Chunk not found" in result.output


def test_reject_with_reason():
    with patch("coachkb.cli.main.pipeline.reject_chunk") as reject:
        result = runner.invoke(app, ["reject", "kb-2", "--reason", "Too generic"])

    assert result.exit_code == 0, result.output
    reject.assert_called_once_with("kb-2", "Too generic")


def test_ingest_missing_path():
    result = runner.invoke(app, ["ingest", "/no/such/dir"])

    assert result.exit_code == 1
    assert "does not exist" in result.output


def test_ingest_directory_without_processing(tmp_path):
    (tmp_path / "tips.md").write_text("# Tips")
    (tmp_path / "notes.txt").write_text("Notes")
    (tmp_path / "image.png").write_bytes(b"png")

    with patch("coachkb.cli.main.pipeline.register_file", return_value={"id": "doc-1"}) as register, \
         patch("coachkb.cli.main.pipeline.process_document") as process:
        result = runner.invoke(app, ["ingest", str(tmp_path), "--no-process"])

    assert result.exit_code == 0, result.output
    assert [c.args[0].name for c in register.call_args_list] == ["notes.txt", "tips.md"]
    process.assert_not_called()


def test_add_url_processes_document(summary):
    document = {"id": "doc-1", "file_type": "youtube", "title": "YouTube: youtu.be/abc"}

    with patch("coachkb.cli.main.pipeline.register_url", return_value=document), \
         patch("coachkb.cli.main.pipeline.process_document", return_value=summary) as process:
        result = runner.invoke(app, ["add-url", "https://youtu.be/abc"])

    assert result.exit_code == 0, result.output
    process.assert_called_once_with("doc-1", db_url="postgresql://test/test")
    assert "Auto-approved" in result.output


def test_add_url_requires_http():
    result = runner.invoke(app, ["add-url", "chadd.org"])
    assert result.exit_code == 1


def test_process_failure_exits_with_error():
    with patch("coachkb.cli.main.pipeline.process_document", side_effect=RuntimeError("boom")):
        result = runner.invoke(app, ["process", "doc-1"])

    assert result.exit_code == 1
    assert "boom" in result.output


def test_documents_table():
    rows = [{
        "id": "doc-1",
        "title": "Guide",
        "file_type": "pdf",
        "processing_status": "completed",
        "chunks_generated": 12,
        "quality_check_status": "passed"
    }]

    with patch("coachkb.cli.main.store.list_documents", return_value=rows):
        result = runner.invoke(app, ["documents"])

    assert result.exit_code == 0, result.output
    assert "Guide" in result.output
    assert "completed" in result.output


def test_flagged_lists_reasoning():
    rows = [{
        "id": "kb-3",
        "chunk_index": 2,
        "source_document_name": "Guide",
        "quality_status": "flagged",
        "confidence_score": 0.55,
        "topic_tags": ["school"],
        "metadata": {"reasoning": "Generic"},
        "chunk_text": "Be consistent."
    }]

    with patch("coachkb.cli.main.store.list_flagged", return_value=rows):
        result = runner.invoke(app, ["flagged"])

    assert result.exit_code == 0, result.output
    assert "kb-3" in result.output
    assert "Generic" in result.output


def test_preview(tmp_path):
    doc = tmp_path / "guide.txt"
    doc.write_text("Some text")
    preview = {"total_chunks": 1, "avg_tokens_per_chunk": 2, "chunks": [{"preview": "Some text", "tokens": 2}]}

    with patch("coachkb.cli.main.preview_chunks", return_value=preview) as chunker:
        result = runner.invoke(app, ["preview", str(doc)])

    assert result.exit_code == 0, result.output
    chunker.assert_called_once_with("Some text", max_chunk_size=750)
    assert "Total chunks:" in result.output


def test_status():
    stats = {
        "total_documents": 2,
        "documents_by_status": {"completed": 2},
        "total_chunks": 10,
        "chunks_by_status": {"approved": 8, "flagged": 2},
        "embedded_chunks": 8,
        "embedding_rate": 0.8
    }

    with patch("coachkb.cli.main.store.get_stats", return_value=stats):
        result = runner.invoke(app, ["status"])

    assert result.exit_code == 0, result.output
    assert "Total chunks: 10" in result.output
    assert "80.0%" in result.output


def test_status_hides_database_password(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "postgresql://coachkb:s3cret@db:5432/coachkb")
    stats = {
        "total_documents": 0,
        "documents_by_status": {},
        "total_chunks": 0,
        "chunks_by_status": {},
        "embedded_chunks": 0,
        "embedding_rate": 0
    }

    with patch("coachkb.cli.main.store.get_stats", return_value=stats):
        result = runner.invoke(app, ["status"])

    assert result.exit_code == 0, result.output
    assert "s3cret" not in result.output
    assert "coachkb:***@db" in result.output


def test_config_set_and_show(tmp_path):
    result = runner.invoke(app, ["config", "set", "openai_api_key", "sk-secret"])
    assert result.exit_code == 0, result.output
    assert "sk-secret" not in result.output
    result = runner.invoke(app, ["config", "set", "database_url", "postgresql://coachkb:s3cret@db/coachkb"])
    assert result.exit_code == 0, result.output

    result = runner.invoke(app, ["config", "show"])
    assert result.exit_code == 0, result.output
    assert "sk-secret" not in result.output
    assert "***" in result.output
    assert "s3cret" not in result.output


def test_config_unknown_action():
    result = runner.invoke(app, ["config", "explode"])
    assert result.exit_code == 1
