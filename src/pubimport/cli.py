"""Command-line interface for pubimport."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, Optional

import httpx
import structlog
import typer
from rich.console import Console
from rich.table import Table
from rich.tree import Tree

from pubimport import exporters
from pubimport.errors import PubImportError
from pubimport.logs import configure_logging
from pubimport.models import Publication, SearchCriteria
from pubimport.services import (
    FolderTree,
    ImportOrchestrator,
    ImportSummary,
    ImportWorkspace,
    Notice,
    PreviewManager,
    PubMedSource,
    RemoteSummarizer,
    RestLibraryBackend,
    RestPublicationStore,
    SearchSession,
)
from pubimport.settings import Settings, get_settings

console = Console()
app = typer.Typer(help="pubimport – PubMed search and library import")
library_app = typer.Typer(help="Library folders and filing")
app.add_typer(library_app, name="library")
logger = structlog.get_logger(__name__)

NOTICE_STYLES = {"success": "green", "info": "cyan", "warning": "yellow", "error": "red"}


@dataclass
class Clients:
    settings: Settings
    pubmed: PubMedSource
    store: RestPublicationStore
    library: RestLibraryBackend
    summarizer: Optional[RemoteSummarizer]


@asynccontextmanager
async def _clients() -> AsyncIterator[Clients]:
    settings = get_settings()
    async with httpx.AsyncClient(timeout=settings.request_timeout) as client:
        yield Clients(
            settings=settings,
            pubmed=PubMedSource(client=client, settings=settings),
            store=RestPublicationStore(client, settings),
            library=RestLibraryBackend(client, settings),
            summarizer=RemoteSummarizer(client, settings) if settings.summarize_url else None,
        )


def _run(coro) -> None:
    try:
        asyncio.run(coro)
    except PubImportError as exc:
        logger.debug("cli.command_failed", error=str(exc), error_type=type(exc).__name__)
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1) from exc


def _print_notice(notice: Notice) -> None:
    style = NOTICE_STYLES.get(notice.level, "white")
    console.print(f"[{style}]{notice.message}[/{style}]")


def _criteria(
    keywords: Optional[str],
    author: Optional[str],
    year: Optional[str],
    journal: Optional[str],
    title: Optional[str],
) -> SearchCriteria:
    return SearchCriteria(
        keywords=keywords or "",
        author=author or "",
        year=year or "",
        journal=journal or "",
        title=title or "",
    )


def _parse_selection(value: str, limit: int) -> list[int]:
    """`"1,3-5"` → zero-based row indexes."""
    indexes: list[int] = []
    for chunk in value.split(","):
        chunk = chunk.strip()
        if not chunk:
            continue
        start, _, end = chunk.partition("-")
        try:
            first = int(start)
            last = int(end) if end else first
        except ValueError as exc:
            raise typer.BadParameter(f"Invalid selection: {chunk}") from exc
        for number in range(first, last + 1):
            if not 1 <= number <= limit:
                raise typer.BadParameter(f"Row {number} is out of range (1-{limit})")
            indexes.append(number - 1)
    return indexes


def _print_results(items: list[Publication], total: int) -> None:
    table = Table(title=f"PubMed results ({len(items)} of {total})")
    table.add_column("#", justify="right")
    table.add_column("PMID")
    table.add_column("Title", overflow="fold")
    table.add_column("Authors", overflow="fold")
    table.add_column("Year")
    table.add_column("Journal", overflow="fold")
    for index, pub in enumerate(items, start=1):
        table.add_row(str(index), pub.pubmed_id, pub.title, pub.author_line, str(pub.year), pub.journal)
    console.print(table)


def _print_publication(pub: Publication) -> None:
    table = Table(title="Publication Preview")
    table.add_column("Field")
    table.add_column("Value", overflow="fold")
    table.add_row("PMID", pub.pubmed_id or "—")
    table.add_row("Title", pub.title)
    table.add_row("Authors", ", ".join(pub.authors))
    table.add_row("Year", str(pub.year))
    table.add_row("Journal", pub.journal)
    table.add_row("DOI", pub.doi or "—")
    table.add_row("URL", pub.url or "—")
    console.print(table)


@app.callback()
def main() -> None:
    """Configure logging before any command runs."""
    configure_logging(Settings.load().log_level)


@app.command()
def config(
    json_output: bool = typer.Option(False, "--json", help="Output settings as JSON"),
) -> None:
    """Display the resolved settings."""
    settings = get_settings()
    if json_output:
        typer.echo(settings.model_dump_json(indent=2))
        return
    table = Table(title="pubimport Settings")
    table.add_column("Key")
    table.add_column("Value", overflow="fold")
    for key, value in settings.model_dump().items():
        table.add_row(key, str(value))
    console.print(table)


@app.command()
def search(
    keywords: Optional[str] = typer.Option(None, "--keywords", "-k", help="Free-text keywords"),
    author: Optional[str] = typer.Option(None, help="Author name"),
    year: Optional[str] = typer.Option(None, help="Publication year"),
    journal: Optional[str] = typer.Option(None, help="Journal name"),
    title: Optional[str] = typer.Option(None, help="Words in the title"),
    pages: int = typer.Option(1, min=1, help="How many result pages to load"),
) -> None:
    """Search PubMed with structured criteria."""
    criteria = _criteria(keywords, author, year, journal, title)
    if criteria.is_empty():
        raise typer.BadParameter("Please enter at least one search field")

    async def runner() -> None:
        async with _clients() as clients:
            session = SearchSession(clients.pubmed, page_size=clients.settings.page_size)
            await session.start_search(criteria)
            if session.notice:
                _print_notice(session.notice)
            for _ in range(pages - 1):
                if not await session.load_more():
                    break
            if session.notice and pages > 1:
                _print_notice(session.notice)
            if session.results:
                _print_results(session.results, session.total_count)

    _run(runner())


@app.command()
def lookup(value: str = typer.Argument(..., help="PMID or free-text query")) -> None:
    """Fetch one record by PMID, or run a plain search."""

    async def runner() -> None:
        async with _clients() as clients:
            result = await clients.pubmed.lookup(value)
            if result.kind == "single":
                _print_publication(result.publications[0])
            else:
                _print_results(result.publications, result.total_count)

    _run(runner())


@app.command()
def preview(pmid: str = typer.Argument(..., help="PubMed ID")) -> None:
    """Show a single record with its AI summary when one is available."""

    async def runner() -> None:
        async with _clients() as clients:
            publication = await clients.pubmed.fetch_by_id(pmid)
            result = await PreviewManager(clients.summarizer).preview_one(publication)
            _print_publication(publication)
            if result.summary and result.summary.summary:
                console.print(f"[bold]AI summary:[/bold] {result.summary.summary}")
            elif result.summary_notice:
                console.print(f"[yellow]{result.summary_notice}[/yellow]")
            if result.keywords:
                console.print(f"Keywords: {', '.join(result.keywords)}")
            if publication.abstract:
                console.print(publication.abstract)

    _run(runner())


@app.command("import")
def import_(
    keywords: Optional[str] = typer.Option(None, "--keywords", "-k", help="Free-text keywords"),
    author: Optional[str] = typer.Option(None, help="Author name"),
    year: Optional[str] = typer.Option(None, help="Publication year"),
    journal: Optional[str] = typer.Option(None, help="Journal name"),
    title: Optional[str] = typer.Option(None, help="Words in the title"),
    select: Optional[str] = typer.Option(None, "--select", "-s", help="Rows to import, e.g. 1,3-5"),
    import_all: bool = typer.Option(False, "--all", help="Import every loaded result"),
    folder: Optional[str] = typer.Option(None, help="Library folder id to file imports into"),
    dedupe: bool = typer.Option(False, help="Skip records already imported in this run"),
) -> None:
    """Search PubMed and import the chosen rows into the library."""
    criteria = _criteria(keywords, author, year, journal, title)
    if criteria.is_empty():
        raise typer.BadParameter("Please enter at least one search field")
    if not select and not import_all:
        raise typer.BadParameter("Pass --select or --all")

    async def runner() -> None:
        async with _clients() as clients:
            page_size = clients.settings.page_size
            workspace = ImportWorkspace(
                SearchSession(clients.pubmed, page_size=page_size),
                PreviewManager(clients.summarizer),
                ImportOrchestrator(clients.store, clients.library, dedupe=dedupe),
                rows_per_page=page_size,
            )
            await workspace.search(criteria)
            for notice in workspace.notices:
                _print_notice(notice)
            workspace.notices.clear()
            rows = workspace.view.visible
            if not rows:
                return
            if import_all:
                workspace.view.select_all()
            else:
                for index in _parse_selection(select or "", len(rows)):
                    workspace.view.toggle(rows[index].id)

            target = None
            if folder:
                tree = FolderTree(clients.library)
                await tree.load()
                target = tree.get(folder)
            workspace.preview_selected()
            workspace.bind_folder(target)
            with console.status(f"Importing {len(workspace.view.selected)} publication(s)..."):
                summary = await workspace.import_preview()
            for notice in workspace.notices:
                _print_notice(notice)
            for outcome in summary.outcomes if isinstance(summary, ImportSummary) else [summary]:
                if outcome.error is not None:
                    console.print(f"[red]✗[/red] {outcome.publication.title}: {outcome.error}")

    _run(runner())


@library_app.command("tree")
def library_tree() -> None:
    """Print the folder tree with filing counts."""

    async def runner() -> None:
        async with _clients() as clients:
            tree = FolderTree(clients.library)
            await tree.load()
            root = Tree("[bold]Library[/bold]")
            nodes = {}
            for _, node in tree.walk():
                parent = nodes.get(node.parent, root)
                count = len(tree.publications_in(node.id))
                nodes[node.id] = parent.add(f"{node.name} [dim]({count}) {node.id}[/dim]")
            console.print(root)

    _run(runner())


@library_app.command("mkdir")
def library_mkdir(
    name: str = typer.Argument(..., help="Folder name"),
    parent: Optional[str] = typer.Option(None, help="Parent folder id"),
) -> None:
    """Create a folder at the root or under a parent."""

    async def runner() -> None:
        async with _clients() as clients:
            tree = FolderTree(clients.library)
            await tree.load()
            created = await tree.create_folder(name, parent)
            await tree.flush()
            console.print(f"[green]Created[/green] {tree.path(created.id)} ({created.id})")

    _run(runner())


@library_app.command("rename")
def library_rename(
    folder_id: str = typer.Argument(..., help="Folder id"),
    name: str = typer.Argument(..., help="New name"),
) -> None:
    """Rename a folder."""

    async def runner() -> None:
        async with _clients() as clients:
            tree = FolderTree(clients.library)
            await tree.load()
            renamed = await tree.rename(folder_id, name)
            console.print(f"[green]Renamed[/green] to {renamed.name}")

    _run(runner())


@library_app.command("mv")
def library_mv(
    folder_id: str = typer.Argument(..., help="Folder id"),
    parent: Optional[str] = typer.Option(None, help="New parent folder id; omit for root"),
) -> None:
    """Move a folder under another folder or back to the root."""

    async def runner() -> None:
        async with _clients() as clients:
            tree = FolderTree(clients.library)
            await tree.load()
            await tree.move(folder_id, parent)
            console.print(f"[green]Moved[/green] {tree.path(folder_id)}")

    _run(runner())


@library_app.command("rm")
def library_rm(
    folder_id: str = typer.Argument(..., help="Folder id"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt"),
) -> None:
    """Delete a folder, its subfolders and their filings."""

    async def runner() -> None:
        async with _clients() as clients:
            tree = FolderTree(clients.library)
            await tree.load()
            doomed = {folder_id} | tree.descendants(folder_id)
            if not yes:
                typer.confirm(
                    f"Delete {tree.path(folder_id)} and {len(doomed) - 1} subfolder(s)?",
                    abort=True,
                )
            removed = await tree.delete(folder_id)
            console.print(f"[green]Deleted[/green] {len(removed)} folder(s)")

    _run(runner())


@library_app.command("file")
def library_file(
    folder_id: str = typer.Argument(..., help="Folder id"),
    publication_id: str = typer.Argument(..., help="Stored publication id"),
) -> None:
    """File a stored publication into a folder."""

    async def runner() -> None:
        async with _clients() as clients:
            tree = FolderTree(clients.library)
            await tree.load()
            await tree.add_publication(folder_id, publication_id)
            console.print(f"[green]Filed[/green] into {tree.path(folder_id)}")

    _run(runner())


@library_app.command("unfile")
def library_unfile(
    folder_id: str = typer.Argument(..., help="Folder id"),
    publication_id: str = typer.Argument(..., help="Stored publication id"),
) -> None:
    """Remove a publication from a folder."""

    async def runner() -> None:
        async with _clients() as clients:
            tree = FolderTree(clients.library)
            await tree.load()
            await tree.remove_publication(folder_id, publication_id)
            console.print(f"[green]Removed[/green] from {tree.path(folder_id)}")

    _run(runner())


@library_app.command("move-pub")
def library_move_pub(
    publication_id: str = typer.Argument(..., help="Stored publication id"),
    source: str = typer.Argument(..., help="Folder it is filed in"),
    target: str = typer.Argument(..., help="Folder to move it to"),
) -> None:
    """Move a publication from one folder to another."""

    async def runner() -> None:
        async with _clients() as clients:
            tree = FolderTree(clients.library)
            await tree.load()
            await tree.move_publication(publication_id, source, target)
            console.print(f"[green]Moved[/green] to {tree.path(target)}")

    _run(runner())


@library_app.command("export")
def library_export(
    folder_id: str = typer.Argument(..., help="Folder id"),
    fmt: str = typer.Option("bibtex", "--format", "-f", help="bibtex or csl-json"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write to file instead of stdout"),
) -> None:
    """Export the publications filed in a folder."""
    if fmt not in {"bibtex", "csl-json"}:
        raise typer.BadParameter("Format must be bibtex or csl-json")

    async def runner() -> None:
        async with _clients() as clients:
            tree = FolderTree(clients.library)
            await tree.load()
            ids = sorted(tree.publications_in(folder_id))
            publications = [await clients.store.get(pub_id) for pub_id in ids]
            text = exporters.export_bibtex(publications) if fmt == "bibtex" else exporters.export_csl_json(publications)
            if output:
                output.write_text(text, encoding="utf-8")
                console.print(f"[green]Exported[/green] {len(publications)} publication(s) to {output}")
            else:
                typer.echo(text)

    _run(runner())


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", help="Host interface"),
    port: int = typer.Option(8000, help="Port to bind"),
    reload: bool = typer.Option(False, help="Enable auto-reload"),
) -> None:
    """Launch the publications/library JSON API."""
    import uvicorn

    uvicorn.run(
        "pubimport.web.app:create_app",
        host=host,
        port=port,
        reload=reload,
        factory=True,
    )
