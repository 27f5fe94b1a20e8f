import os
from pathlib import Path
from typing import List, Optional
import typer
from rich.console import Console
from rich.table import Table
import psycopg
from coachkb.core import pipeline, store
from coachkb.core.chunker import preview_chunks
from coachkb.core.extract import detect_file_type, extract_content
from coachkb.core.logging_config import configure_logging
from coachkb.core.search import SearchFilters, SearchOptions, extract_topics, search_knowledge_base
from coachkb.cli.config_manager import get_config_manager

app = typer.Typer(help="coachkb CLI: knowledge base for the ADHD parent coach")
console = Console()


@app.callback()
def main():
    """Load saved settings and initialize structured logging."""
    get_config_manager().apply_to_environment()
    configure_logging(
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        json_logs=os.getenv("JSON_LOGS", "false").lower() == "true"
    )


def _collect_files(input_path: Path) -> List[Path]:
    if input_path.is_file():
        return [input_path]
    return sorted(
        p for p in input_path.iterdir()
        if p.is_file() and detect_file_type(p.name) != "unknown"
    )


def _print_summary(summary: pipeline.ProcessingSummary):
    console.print(f"  [blue]Total chunks:[/] {summary.total_chunks}")
    console.print(f"  [green]Auto-approved:[/] {summary.auto_approved}")
    console.print(f"  [yellow]Flagged for review:[/] {summary.flagged_for_review}")
    console.print(f"  [red]Auto-rejected:[/] {summary.auto_rejected}")
    console.print(f"  [blue]Avg confidence:[/] {summary.avg_confidence_score:.2f}")
    if summary.contradictions_found:
        console.print(f"  [yellow]⚠️  Contradictions found:[/] {summary.contradictions_found}")


@app.command()
def ingest(
    path: str,
    uploaded_by: str = typer.Option("admin", "--uploaded-by", help="Admin recorded as the uploader"),
    process: bool = typer.Option(True, "--process/--no-process", help="Process documents right after upload"),
):
    """Upload PDF, Markdown or text files (a file or a directory) into the knowledge base."""
    input_path = Path(path)
    if not input_path.exists():
        console.print(f"[red]Error:[/] Path {path} does not exist")
        raise typer.Exit(1)

    files = _collect_files(input_path)
    if not files:
        console.print(f"[yellow]No supported files found in {path}[/]")
        return

    db_url = store.get_database_url()

    try:
        for file_path in files:
            document = pipeline.register_file(file_path, uploaded_by, db_url=db_url)
            console.print(f"[green]✅ Uploaded[/] {file_path.name} [dim]({document['id']})[/]")

            if process:
                with console.status(f"[bold green]Processing {file_path.name}..."):
                    summary = pipeline.process_document(str(document["id"]), db_url=db_url)
                _print_summary(summary)

    except Exception as e:
        console.print(f"[red]Error during ingestion:[/] {e}")
        raise typer.Exit(1)


@app.command("add-url")
def add_url(
    url: str,
    uploaded_by: str = typer.Option("admin", "--uploaded-by", help="Admin recorded as the uploader"),
    process: bool = typer.Option(True, "--process/--no-process", help="Process the page right after adding it"),
):
    """Add a web page or YouTube video to the knowledge base."""
    if not url.startswith(("http://", "https://")):
        console.print(f"[red]Error:[/] Not a URL: {url}")
        raise typer.Exit(1)

    db_url = store.get_database_url()

    try:
        document = pipeline.register_url(url, uploaded_by, db_url=db_url)
        console.print(f"[green]✅ Added {document['file_type']}:[/] {document['title']} [dim]({document['id']})[/]")

        if process:
            with console.status("[bold green]Processing..."):
                summary = pipeline.process_document(str(document["id"]), db_url=db_url)
            _print_summary(summary)

    except Exception as e:
        console.print(f"[red]Error adding URL:[/] {e}")
        raise typer.Exit(1)


@app.command()
def process(document_id: str):
    """(Re)process a registered document."""
    try:
        with console.status("[bold green]Processing document..."):
            summary = pipeline.process_document(document_id)
        console.print(f"[green]✅ Processing complete:[/] {document_id}")
        _print_summary(summary)
    except Exception as e:
        console.print(f"[red]Error processing document:[/] {e}")
        raise typer.Exit(1)


@app.command()
def documents():
    """List uploaded source documents."""
    try:
        rows = store.list_documents(store.get_database_url())
    except Exception as e:
        console.print(f"[red]Error listing documents:[/] {e}")
        raise typer.Exit(1)

    if not rows:
        console.print("[yellow]No documents uploaded yet.[/]")
        return

    table = Table(title="Source Documents")
    table.add_column("ID", style="dim")
    table.add_column("Title")
    table.add_column("Type")
    table.add_column("Status")
    table.add_column("Chunks", justify="right")
    table.add_column("Quality")

    for row in rows:
        table.add_row(
            str(row["id"]),
            row["title"],
            row["file_type"],
            row["processing_status"],
            str(row.get("chunks_generated") or 0),
            row.get("quality_check_status") or "-"
        )

    console.print(table)


def _print_chunks(rows):
    for row in rows:
        score = row.get("confidence_score")
        console.print(f"[bold]{row['id']}[/] [dim]#{row['chunk_index']} of {row['source_document_name']}[/]")
        console.print(f"   [blue]Status:[/] {row['quality_status']}   [blue]Confidence:[/] {score if score is not None else '-'}")
        if row.get("topic_tags"):
            console.print(f"   [blue]Tags:[/] {', '.join(row['topic_tags'])}")
        reasoning = (row.get("metadata") or {}).get("reasoning")
        if reasoning:
            console.print(f"   [yellow]Reasoning:[/] {reasoning}")
        console.print(f"   [green]Text:[/] {row['chunk_text'][:300]}")
        console.print()


@app.command()
def chunks(
    status: str = typer.Option("approved", help="Quality status: approved, flagged or rejected"),
    limit: int = typer.Option(100, help="Maximum number of chunks"),
):
    """List knowledge base chunks by quality status."""
    try:
        rows = store.list_chunks(store.get_database_url(), status=status, limit=limit)
    except Exception as e:
        console.print(f"[red]Error listing chunks:[/] {e}")
        raise typer.Exit(1)

    if not rows:
        console.print(f"[yellow]No {status} chunks.[/]")
        return

    console.print(f"[green]{len(rows)} {status} chunks:[/]\n")
    _print_chunks(rows)


@app.command()
def flagged():
    """Show chunks waiting for manual review."""
    try:
        rows = store.list_flagged(store.get_database_url())
    except Exception as e:
        console.print(f"[red]Error listing flagged chunks:[/] {e}")
        raise typer.Exit(1)

    if not rows:
        console.print("[green]No chunks waiting for review.[/]")
        return

    console.print(f"[yellow]{len(rows)} chunks flagged for review:[/]\n")
    _print_chunks(rows)


@app.command()
def approve(chunk_id: str):
    """Approve a flagged chunk (embeds it if needed)."""
    try:
        pipeline.approve_chunk(chunk_id)
        console.print(f"[green]✅ Approved chunk {chunk_id}[/]")
    except Exception as e:
        console.print(f"[red]Error approving chunk:[/] {e}")
        raise typer.Exit(1)


@app.command()
def reject(
    chunk_id: str,
    reason: Optional[str] = typer.Option(None, "--reason", help="Review note stored with the chunk"),
):
    """Reject a flagged chunk."""
    try:
        pipeline.reject_chunk(chunk_id, reason)
        console.print(f"[green]✅ Rejected chunk {chunk_id}[/]")
    except Exception as e:
        console.print(f"[red]Error rejecting chunk:[/] {e}")
        raise typer.Exit(1)


@app.command()
def search(
    query: str,
    limit: int = typer.Option(5, help="Maximum number of results"),
    threshold: float = typer.Option(0.75, help="Minimum cosine similarity"),
    tag: Optional[List[str]] = typer.Option(None, "--tag", help="Only chunks with this topic tag"),
    age: Optional[List[str]] = typer.Option(None, "--age", help="Only chunks relevant to this age band"),
    auto_topics: bool = typer.Option(False, "--auto-topics", help="Filter by topics detected in the query"),
):
    """Semantic search over approved knowledge base chunks."""
    topic_tags = list(tag or [])
    if auto_topics:
        topic_tags.extend(t for t in extract_topics(query) if t not in topic_tags)

    options = SearchOptions(
        limit=limit,
        threshold=threshold,
        filters=SearchFilters(topic_tags=topic_tags or None, age_relevance=list(age or []) or None)
    )

    console.print(f"[bold]Searching for:[/] '{query}'")
    if topic_tags:
        console.print(f"[bold]Topics:[/] {', '.join(topic_tags)}")
    console.print()

    try:
        with console.status("[bold green]Searching..."):
            results = search_knowledge_base(query, options)
    except ValueError as e:
        console.print(f"[red]Error:[/] {e}")
        raise typer.Exit(1)

    if not results:
        console.print("[yellow]No results found.[/]")
        return

    console.print(f"[green]Found {len(results)} results:[/]")
    console.print()

    for i, chunk in enumerate(results, 1):
        console.print(f"[bold]{i}. {chunk.source_document_name or 'Unknown source'}[/]")
        console.print(f"   [blue]Similarity:[/] {chunk.similarity:.3f}")
        if chunk.content_type:
            console.print(f"   [blue]Type:[/] {chunk.content_type}")
        if chunk.topic_tags:
            console.print(f"   [blue]Tags:[/] {', '.join(chunk.topic_tags)}")
        console.print(f"   [green]Snippet:[/] {chunk.chunk_text[:300]}")
        console.print()


@app.command()
def preview(
    path: str,
    max_tokens: int = typer.Option(750, "--max-tokens", help="Maximum tokens per chunk"),
):
    """Preview how a file would be chunked, without uploading it."""
    file_path = Path(path)
    if not file_path.is_file():
        console.print(f"[red]Error:[/] File {path} does not exist")
        raise typer.Exit(1)

    try:
        extraction = extract_content(file_path.read_bytes(), detect_file_type(file_path.name))
        result = preview_chunks(extraction.text, max_chunk_size=max_tokens)
    except Exception as e:
        console.print(f"[red]Error previewing file:[/] {e}")
        raise typer.Exit(1)

    console.print(f"[bold]Total chunks:[/] {result['total_chunks']}")
    console.print(f"[bold]Avg tokens per chunk:[/] {result['avg_tokens_per_chunk']}")
    console.print()
    for i, chunk in enumerate(result["chunks"], 1):
        console.print(f"[bold]{i}.[/] [dim]({chunk['tokens']} tokens)[/] {chunk['preview']}")


@app.command()
def status():
    """Show knowledge base status and statistics."""
    db_url = store.get_database_url()

    try:
        stats = store.get_stats(db_url)
    except Exception as e:
        console.print(f"[red]Error getting status:[/] {e}")
        raise typer.Exit(1)

    console.print("[bold]📚 Knowledge Base Status[/]")
    console.print()
    console.print("[bold]📄 Documents:[/]")
    console.print(f"  Total documents: {stats['total_documents']}")
    for doc_status, count in sorted(stats["documents_by_status"].items()):
        console.print(f"  {doc_status}: {count}")

    console.print()
    console.print("[bold]🧩 Chunks:[/]")
    console.print(f"  Total chunks: {stats['total_chunks']}")
    for chunk_status, count in sorted(stats["chunks_by_status"].items()):
        console.print(f"  {chunk_status}: {count}")
    console.print(f"  Embedded chunks: {stats['embedded_chunks']}")
    console.print(f"  Embedding rate: {stats['embedding_rate']:.1%}")

    object_store_dir = pipeline.get_object_store_dir()
    if object_store_dir.exists():
        stored = [p for p in object_store_dir.iterdir() if p.is_file()]
        console.print()
        console.print(f"[bold]📁 Object Store:[/] {len(stored)} files")

    console.print()
    console.print(f"[bold]🗄️  Database:[/] {store.mask_database_url(db_url)}")


@app.command()
def config(
    action: str = typer.Argument(..., help="Action: show, set, reset, validate"),
    key: Optional[str] = typer.Argument(None, help="Configuration key"),
    value: Optional[str] = typer.Argument(None, help="Configuration value")
):
    """Manage coachkb configuration settings."""
    console.print(f"[bold]🔧 Configuration Management[/]")

    config_manager = get_config_manager()

    if action == "show":
        _show_configuration(config_manager)
    elif action == "set":
        if not key or value is None:
            console.print("[red]Error:[/] Both key and value required for 'set' action")
            raise typer.Exit(1)
        try:
            config_manager.set(key, value)
        except ValueError as e:
            console.print(f"[red]Error:[/] Invalid value for {key}: {e}")
            raise typer.Exit(1)
        console.print(f"[green]✅ Set {key} = {_display_value(key, config_manager.get(key))}[/]")
    elif action == "reset":
        if not key:
            console.print("[red]Error:[/] Key required for 'reset' action")
            raise typer.Exit(1)
        if config_manager.reset(key):
            console.print(f"[green]✅ Reset {key} to default[/]")
        else:
            console.print(f"[yellow]Note:[/] No default value for {key}")
    elif action == "validate":
        _validate_configuration(config_manager)
    else:
        console.print(f"[red]Error:[/] Unknown action: {action}")
        console.print("Available actions: show, set, reset, validate")
        raise typer.Exit(1)


def _display_value(key: str, value):
    if key == "openai_api_key":
        return "***" if value else "Not set"
    if key == "database_url" and value:
        return store.mask_database_url(value)
    return value


def _show_configuration(config_manager):
    """Display current configuration."""
    console.print("\n[bold]Current Configuration:[/]")
    for key, value in config_manager.get_all().items():
        console.print(f"  [blue]{key}:[/] {_display_value(key, value)}")


def _validate_configuration(config_manager):
    """Validate current configuration."""
    console.print("[bold]Validating configuration...[/]")

    validation = config_manager.validate()
    issues = list(validation["issues"])

    try:
        with psycopg.connect(config_manager.get("database_url"), connect_timeout=5) as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1")
        console.print("[green]✅ Database connection: OK[/]")
    except Exception as e:
        issues.append(f"Database connection failed: {e}")

    for warning in validation["warnings"]:
        console.print(f"[yellow]⚠️  {warning}[/]")

    if issues:
        console.print(f"\n[red]❌ Configuration issues found:[/]")
        for issue in issues:
            console.print(f"  • {issue}")
        raise typer.Exit(1)
    else:
        console.print(f"\n[green]✅ Configuration validation passed![/]")


if __name__ == "__main__":
    app()
