"""IdeaGraph CLI - Main entry point.

Provides the `ideagraph` command-line interface.

Usage:
    ideagraph add-pdf paper-42 ~/papers/smith2021.pdf
    ideagraph extract paper-42 --title "A robust effect" --thesis-title "It generalises"
    ideagraph show paper-42 --format markdown
"""

import asyncio
from enum import Enum
from pathlib import Path
from typing import Optional

import typer

from ideagraph_common import (
    Settings,
    configure_logging,
    get_settings,
)
from ideagraph_contracts import (
    ExtractionProgress,
    ExtractionResult,
    PaperMetadata,
    ThesisContext,
)
from ideagraph_contracts.formatters import format_graph_json, format_graph_markdown
from ideagraph_extraction import ExtractionSessionManager, get_llm_client_from_settings
from ideagraph_pdf import PDFStore, SourceTextProvider
from ideagraph_storage import create_graph_store
from ideagraph_usage import CreditGate


class OutputFormat(str, Enum):
    """Output format options."""

    markdown = "markdown"
    json = "json"


# Create the Typer app
app = typer.Typer(
    name="ideagraph",
    help="Extract, review and inspect findings graphs of research papers.",
    add_completion=False,
)


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show pipeline logs"),
):
    """Configure logging before any command runs."""
    configure_logging(level="INFO" if verbose else "WARNING")


def print_progress(progress: ExtractionProgress) -> None:
    typer.echo(
        f"[{progress.overall_progress:3d}%] stage {progress.current_stage}: "
        f"{progress.stage_description}"
    )


async def run_extraction(
    settings: Settings,
    paper: PaperMetadata,
    text: Optional[str],
    thesis: Optional[ThesisContext],
) -> ExtractionResult:
    """Run one extraction session against the configured backends.

    Args:
        settings: Backend configuration
        paper: Paper to extract
        text: Source text; the stored PDF is used when None
        thesis: Optional thesis for relevance scoring

    Returns:
        The session's terminal result
    """
    store = create_graph_store(settings)
    text_provider = SourceTextProvider(PDFStore(settings.pdf_storage_dir))
    gate = CreditGate.from_settings(settings)
    llm = get_llm_client_from_settings(settings)
    manager = ExtractionSessionManager.from_settings(
        settings, llm, gate, store, text_provider=text_provider
    )
    try:
        return await manager.extract(paper, text=text, thesis=thesis, on_progress=print_progress)
    finally:
        await manager.shutdown()
        await gate.close()
        await llm.close()
        await store.close()


@app.command(name="add-pdf")
def add_pdf(
    paper_id: str = typer.Argument(..., help="Paper identifier"),
    path: Path = typer.Argument(..., help="PDF file to attach", exists=True, dir_okay=False),
):
    """Attach (or replace) the PDF a paper's findings are extracted from.

    Examples:

        ideagraph add-pdf paper-42 ~/papers/smith2021.pdf
    """
    settings = get_settings()
    try:
        meta = PDFStore(settings.pdf_storage_dir).put(
            paper_id, path.read_bytes(), filename=path.name
        )
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    typer.echo(f"Stored {meta.filename} for {paper_id} ({meta.file_size} bytes)")


@app.command()
def extract(
    paper_id: str = typer.Argument(..., help="Paper identifier"),
    title: str = typer.Option(..., "--title", "-t", help="Paper title"),
    authors: Optional[list[str]] = typer.Option(
        None, "--author", "-a", help="Author name (repeatable)"
    ),
    year: Optional[int] = typer.Option(None, "--year", help="Publication year"),
    journal: Optional[str] = typer.Option(None, "--journal", help="Journal name"),
    abstract: Optional[str] = typer.Option(None, "--abstract", help="Paper abstract"),
    text_file: Optional[Path] = typer.Option(
        None,
        "--text-file",
        help="Plain-text source instead of the stored PDF",
        exists=True,
        dir_okay=False,
    ),
    thesis_title: Optional[str] = typer.Option(
        None, "--thesis-title", help="Thesis to score findings against"
    ),
    thesis_description: str = typer.Option(
        "", "--thesis-description", help="Longer thesis statement"
    ),
):
    """Run the three-stage extraction and replace the paper's findings graph.

    On failure or Ctrl-C the previously stored graph is left untouched.

    Examples:

        ideagraph extract paper-42 --title "A robust effect"

        ideagraph extract paper-42 -t "A robust effect" --thesis-title "It generalises"
    """
    settings = get_settings()
    paper = PaperMetadata(
        id=paper_id,
        title=title,
        authors=authors or [],
        year=year,
        journal=journal,
        abstract=abstract,
    )
    thesis = (
        ThesisContext(title=thesis_title, description=thesis_description)
        if thesis_title
        else None
    )
    text = text_file.read_text(encoding="utf-8") if text_file else None

    try:
        result = asyncio.run(run_extraction(settings, paper, text, thesis))
    except KeyboardInterrupt:
        typer.echo("Extraction cancelled.", err=True)
        raise typer.Exit(130)
    except Exception as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    if not result.succeeded:
        kind = result.error_kind.value if result.error_kind else result.state.value
        typer.echo(f"Extraction {result.state.value} ({kind}): {result.message}", err=True)
        if result.credits_debited:
            typer.echo(f"Credits debited: {result.credits_debited:g}", err=True)
        raise typer.Exit(1)

    graph = result.graph
    typer.echo(
        f"\nExtracted {len(graph.findings)} findings and "
        f"{len(graph.intra_paper_connections)} connections "
        f"({graph.classification.paper_type.value}, {result.credits_debited:g} credits)"
    )


@app.command()
def show(
    paper_id: str = typer.Argument(..., help="Paper identifier"),
    format: OutputFormat = typer.Option(
        OutputFormat.markdown,
        "--format",
        "-f",
        help="Output format",
    ),
    no_quotes: bool = typer.Option(
        False,
        "--no-quotes",
        help="Hide direct quotes in markdown output",
    ),
):
    """Show a paper's findings graph."""

    async def load():
        store = create_graph_store(get_settings())
        try:
            return await store.get(paper_id)
        finally:
            await store.close()

    try:
        graph = asyncio.run(load())
    except Exception as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    if graph is None:
        typer.echo(f"No findings graph for {paper_id}. Run: ideagraph extract {paper_id}", err=True)
        raise typer.Exit(1)

    if format == OutputFormat.json:
        typer.echo(format_graph_json(graph))
    else:
        typer.echo(format_graph_markdown(graph, show_quotes=not no_quotes))


@app.command()
def verify(
    paper_id: str = typer.Argument(..., help="Paper identifier"),
    finding_id: str = typer.Argument(..., help="Finding identifier"),
    verified: bool = typer.Option(
        True,
        "--verified/--unverified",
        help="Mark the finding as verified (default) or clear the mark",
    ),
):
    """Mark a finding as verified by the user (or clear the mark)."""

    async def apply():
        store = create_graph_store(get_settings())
        try:
            return await store.verify_finding(paper_id, finding_id, verified)
        finally:
            await store.close()

    try:
        graph = asyncio.run(apply())
    except Exception as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    state = "verified" if verified else "unverified"
    typer.echo(
        f"Finding {finding_id} {state}. Review status: {graph.review_status.value} "
        f"({graph.verified_count}/{len(graph.findings)})"
    )


@app.command()
def usage(
    history: int = typer.Option(0, "--history", "-n", help="Also list the N latest records"),
):
    """Show the remaining credits of the active pool."""
    gate = CreditGate.from_settings(get_settings())
    snapshot = gate.snapshot()

    pool = "guest session" if snapshot.is_guest else f"user {gate.user_id}"
    typer.echo(f"Credits ({pool}):")
    typer.echo(
        f"  {snapshot.credits_remaining:g} of {snapshot.total_credits:g} remaining "
        f"({snapshot.percentage_remaining}%)"
    )
    if snapshot.is_exhausted:
        typer.echo("  Credits exhausted.")
    elif snapshot.is_critical:
        typer.echo("  Credits critically low.")
    elif snapshot.is_low:
        typer.echo("  Credits running low.")

    for record in gate.history[:history]:
        status = "ok" if record.success else "failed"
        paper = f" {record.paper_id}" if record.paper_id else ""
        typer.echo(
            f"  {record.timestamp:%Y-%m-%d %H:%M}  {record.action:32}{paper}  "
            f"-{record.cost:g}  [{status}]"
        )


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
