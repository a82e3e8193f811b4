"""
Command-line interface for docrag.

Commands:
    chunk   - Split a document into passages and show them
    ask     - Ingest documents and answer one question about them
    version - Print the package version
"""

import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

app = typer.Typer(
    name="docrag",
    help="Question answering over your own documents",
    add_completion=False,
)
console = Console()


def configure_logging(level: str) -> None:
    """Route library logging through rich."""
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
        force=True,
    )


@app.callback()
def main(
    log_level: str = typer.Option(None, "--log-level", help="Override LOG_LEVEL"),
) -> None:
    """Question answering over your own documents."""
    from docrag.config import settings

    configure_logging((log_level or settings.log_level).upper())


@app.command()
def chunk(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="PDF, text or markdown file"),
    chunk_size: int = typer.Option(None, "--chunk-size", help="Characters per passage"),
    overlap: int = typer.Option(None, "--overlap", help="Overlap between passages"),
    pages: int = typer.Option(None, "--pages", min=1, help="Override the page count used for position estimates"),
) -> None:
    """Split a document into passages and show their positions."""
    from docrag.config import settings
    from docrag.ingestion import load_document
    from docrag.retrieval.chunker import chunk_text

    try:
        source = load_document(file)
        chunks = chunk_text(
            source.text,
            chunk_size or settings.chunk_size_chars,
            overlap or settings.overlap_chars,
            page_count=pages or source.page_count,
        )
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    table = Table(title=f"{file.name}: {len(chunks)} passages")
    table.add_column("#", style="cyan", justify="right")
    table.add_column("Page", style="green", justify="right")
    table.add_column("Start", justify="right")
    table.add_column("Preview")

    for c in chunks:
        preview = c.content[:60] + ("..." if len(c.content) > 60 else "")
        table.add_row(str(c.chunk_index), str(c.page), str(c.start), preview)

    console.print(table)


@app.command()
def ask(
    question: str = typer.Argument(..., help="Question to ask"),
    files: list[Path] = typer.Argument(..., exists=True, dir_okay=False, help="Documents to search"),
    scope: str = typer.Option("cli", "--scope", help="Retrieval scope name"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show sources and scope state"),
) -> None:
    """Ingest documents into one scope and answer a question about them."""
    from docrag.ingestion import IngestionPipeline, load_document
    from docrag.llm import create_chat_client
    from docrag.retrieval.resources import get_orchestrator

    try:
        sources = [load_document(f) for f in files]
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    orchestrator = get_orchestrator()
    document_ids = [s.document_id for s in sources]
    orchestrator.open_scope(scope, document_ids)

    pipeline = IngestionPipeline(orchestrator, create_chat_client())
    with console.status("[bold green]Ingesting..."):
        reports = pipeline.ingest_many(sources, scope)

    for report in reports:
        if report.success:
            console.print(f"[green]  ✓ {report.title}: {report.passages} passages[/green]")
        else:
            console.print(f"[red]  ✗ {report.document_id}: {report.error}[/red]")

    console.print(f"\n[blue]Question:[/blue] {question}\n")
    with console.status("[bold green]Answering..."):
        answer = orchestrator.query(scope, document_ids, question)

    console.print("[green]Answer:[/green]")
    console.print(answer.text)
    console.print()

    if verbose:
        if answer.passages:
            console.print("[blue]Sources:[/blue]")
            for p in answer.passages:
                console.print(f"  • {p.title} (page {p.page})")
            console.print()

        status = orchestrator.scope_status(scope)
        table = Table(title="Scope")
        table.add_column("Field", style="cyan")
        table.add_column("Value", style="green")
        table.add_row("Mode", answer.mode)
        table.add_row("Status", status.status.value)
        table.add_row("Backend", status.backend)
        table.add_row("Indexed passages", str(status.indexed_passages))
        table.add_row("Degraded", status.degraded_reason or str(status.degraded))
        console.print(table)


@app.command()
def version() -> None:
    """Print the package version."""
    from docrag import __version__

    console.print(f"docrag {__version__}")


if __name__ == "__main__":
    app()
