"""
CRM Context RAG - CLI Entry Point
----------------------------------
Exposes Typer commands for ingestion, retrieval and structured CRM queries.

Usage:
    python -m crm_rag.main ingest notes/money.txt --team t1
    python -m crm_rag.main context "what's in money.xlsx" --team t1
    python -m crm_rag.main ask "summarise all invoices" --team t1
    python -m crm_rag.main records "show contacts at Acme" --team t1
    python -m crm_rag.main stats --team t1
"""
from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import typer
from dotenv import load_dotenv
from loguru import logger
from rich import box
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table

from crm_rag.config import AppConfig, load_config
from crm_rag.errors import CRMRagError
from crm_rag.storage.stores import InMemoryRecordStore, JsonDocumentStore
from crm_rag.utils.logger import setup_logger

app = typer.Typer(
    name="crm-rag",
    help="CRM document-context retrieval and structured query CLI",
    add_completion=False,
)
console = Console()

_CONFIG_OPTION = typer.Option(None, "--config", "-c", help="Path to config YAML")
_TEAM_OPTION = typer.Option(..., "--team", "-t", help="Team id that owns the data")


# --- Helpers ------------------------------------------------------------------

def _bootstrap(config_path: Optional[str]) -> AppConfig:
    load_dotenv()
    try:
        cfg = load_config(config_path)
    except CRMRagError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1)
    setup_logger(log_level=cfg.logging.level, log_file=cfg.logging.file, json_file=cfg.logging.json_file)
    return cfg


def _assistant(cfg: AppConfig, **overrides):
    from crm_rag.serving.pipeline import CRMAssistant  # lazy: pulls in openai

    return CRMAssistant(cfg, **overrides)


def _print_context(result) -> None:
    if not result.has_context:
        console.print("[yellow]No relevant documents found.[/yellow]")
        return

    table = Table(
        "No.", "File", "Type", "Chunk", "Similarity",
        box=box.SIMPLE,
        show_header=True,
        header_style="bold dim",
    )
    for i, doc in enumerate(result.documents, start=1):
        table.add_row(
            str(i),
            doc.file_name,
            doc.file_type,
            str(doc.chunk_index),
            f"{doc.similarity:.3f}",
        )
    console.print(table)
    console.print(
        Panel(
            result.context_text,
            title=f"[bold cyan]Context[/bold cyan] ({result.mode.value if result.mode else 'n/a'})",
            border_style="cyan",
            expand=True,
        )
    )
    if result.truncated:
        console.print("[yellow]Context was truncated to fit the token budget.[/yellow]")


# --- Commands -----------------------------------------------------------------

@app.command()
def ingest(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Text file to ingest"),
    team: str = _TEAM_OPTION,
    document_id: Optional[str] = typer.Option(
        None, "--document-id", help="Document id (defaults to the file name)"
    ),
    name: Optional[str] = typer.Option(
        None, "--name", help="File name to record (defaults to the file's own name)"
    ),
    config: Optional[str] = _CONFIG_OPTION,
) -> None:
    """
    Chunk, embed and store a document for a team.

    \b
    Re-ingesting the same document id replaces its previous chunks.
    """
    cfg = _bootstrap(config)
    assistant = _assistant(cfg)

    file_name = name or file.name
    content = file.read_text(encoding="utf-8", errors="replace")
    try:
        with console.status(f"[cyan]Embedding {file_name}...[/cyan]"):
            document = assistant.ingestor.ingest(
                team_id=team,
                document_id=document_id or file_name,
                file_name=file_name,
                file_type=file.suffix.lstrip(".") or "txt",
                content=content,
                folder_path=str(file.parent),
            )
    except (CRMRagError, ValueError) as exc:
        console.print(f"[red]Ingestion failed:[/red] {exc}")
        raise typer.Exit(1)

    console.print(
        f"[green][OK][/green] {document.file_name} | "
        f"{document.chunk_count} chunks | {document.embedding_count} embeddings"
    )
    usage = assistant.embedder.usage_summary()
    console.print(f"[dim]tokens={usage['total_tokens_used']}  cost=${usage['estimated_cost_usd']:.6f}[/dim]")


@app.command()
def context(
    query: str = typer.Argument(..., help="Question to build document context for"),
    team: str = _TEAM_OPTION,
    max_results: Optional[int] = typer.Option(None, "--max-results", "-k", help="Documents to include"),
    json_out: bool = typer.Option(False, "--json", help="Print the result as JSON"),
    config: Optional[str] = _CONFIG_OPTION,
) -> None:
    """Show the context block an answer would be grounded in."""
    cfg = _bootstrap(config)
    result = _assistant(cfg).create_context(query, team, max_results)
    if json_out:
        console.print_json(json.dumps(result.to_dict()))
        return
    _print_context(result)


@app.command()
def ask(
    query: str = typer.Argument(..., help="Question to answer"),
    team: str = _TEAM_OPTION,
    session: Optional[str] = typer.Option(None, "--session", help="Session id for history"),
    json_out: bool = typer.Option(False, "--json", help="Print the result as JSON"),
    config: Optional[str] = _CONFIG_OPTION,
) -> None:
    """Answer a question grounded in the team's documents."""
    cfg = _bootstrap(config)
    assistant = _assistant(cfg)

    with console.status("[cyan]Thinking...[/cyan]"):
        result = assistant.ask(query, team, session_id=session)

    if json_out:
        console.print_json(json.dumps(result.to_dict()))
        return

    console.print()
    console.print(
        Panel(
            Markdown(result.answer.answer),
            title="[bold green]Answer[/bold green]",
            border_style="green",
            expand=True,
        )
    )
    source = (
        f"{result.context.document_count} document(s)"
        if result.answer.used_documents
        else "general knowledge"
    )
    console.print(
        f"[dim]"
        f"source={source}  "
        f"retrieve={result.retrieval_ms:.0f}ms  "
        f"generate={result.generation_ms:.0f}ms  |  "
        f"tokens={result.answer.prompt_tokens}+{result.answer.completion_tokens}  "
        f"cost=${result.answer.estimated_cost_usd:.5f}"
        f"[/dim]\n"
    )


@app.command()
def records(
    message: str = typer.Argument(..., help='Request such as "show contacts at Acme"'),
    team: str = _TEAM_OPTION,
    records_file: Optional[Path] = typer.Option(
        None, "--records-file", exists=True, dir_okay=False,
        help="JSON file of CRM records (defaults to storage.records_file)",
    ),
    json_out: bool = typer.Option(False, "--json", help="Print the response as JSON"),
    config: Optional[str] = _CONFIG_OPTION,
) -> None:
    """Run a structured query against CRM records."""
    cfg = _bootstrap(config)
    from crm_rag.query.service import CRMQueryService

    path = records_file or Path(cfg.storage.records_file)
    if not path.exists():
        console.print(f"[red]Records file not found: {path}[/red]")
        raise typer.Exit(1)

    try:
        store = InMemoryRecordStore.from_json(path)
    except CRMRagError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1)
    response = CRMQueryService.from_config(store, cfg.query).handle_database_query(message, team)

    if json_out:
        console.print_json(json.dumps(response.to_dict()))
        return

    style = "yellow" if response.needs_clarification or response.error else "green"
    console.print(f"[{style}]{response.message}[/{style}]")
    if not response.records:
        return

    rows = [r.model_dump(exclude_none=True) for r in response.records]
    columns = [c for c in rows[0] if c != "id"]
    table = Table(*columns, box=box.SIMPLE, show_header=True, header_style="bold dim")
    for row in rows:
        table.add_row(*(str(row.get(c, "")) for c in columns))
    console.print(table)


@app.command()
def stats(
    team: str = _TEAM_OPTION,
    config: Optional[str] = _CONFIG_OPTION,
) -> None:
    """Show document, chunk and embedding counts for a team."""
    cfg = _bootstrap(config)

    store = JsonDocumentStore(cfg.storage.documents_file)
    documents = store.get_team_documents(team)
    chunks = store.get_team_chunks(team)
    logger.debug(f"[CLI] stats for team {team}")

    console.print()
    console.print(f"[bold]Team {team}[/bold]")
    console.print(f"  Documents  : [green]{len(documents)}[/green]")
    console.print(f"  Chunks     : {len(chunks)}")
    console.print(f"  Embeddings : {sum(1 for c in chunks if c.embedding)}")
    for doc in documents:
        console.print(f"    [dim]{doc.last_modified:%Y-%m-%d}[/dim]  {doc.file_name}  ({doc.chunk_count} chunks)")


# --- Entry Point --------------------------------------------------------------

if __name__ == "__main__":
    app()
