from contextlib import contextmanager
from typing import Annotated, Iterator, NoReturn

from rich.console import Console
from rich.table import Table
from typer import Argument, Exit, Option, Typer

from .catalog import CatalogService
from .config import CatalogSettings, load_env
from .embeddings import EmbeddingProvider
from .errors import CatalogError
from .github import GitHubClient
from .logging_config import setup_logging
from .repository import ItemRepository
from .search import SimilaritySearchEngine, list_items_by_url
from .storage import open_store

app = Typer(help="Manage and search the GitHub repository catalogue.")
console = Console()


def load_settings() -> CatalogSettings:
    load_env()
    settings = CatalogSettings.from_env()
    setup_logging(settings.log_level, settings.log_json)
    return settings


@contextmanager
def open_repository(settings: CatalogSettings) -> Iterator[ItemRepository]:
    store = open_store(settings)
    try:
        yield ItemRepository(store, scan_count=settings.scan_count)
    finally:
        store.close()


def _fail(exc: CatalogError) -> NoReturn:
    console.print(f"[bold red]Error ({exc.status_code}):[/] {exc.message}")
    raise Exit(code=1)


@app.command()
def serve(
    host: Annotated[str, Option("--host", help="Interface to bind.")] = "127.0.0.1",
    port: Annotated[int, Option("--port", "-p", help="Port to listen on.")] = 8000,
) -> None:
    """Run the HTTP API."""
    from .server import run_server

    run_server(host=host, port=port)


@app.command()
def add(
    github_url: Annotated[str, Argument(help="GitHub repository URL.")],
    url: Annotated[str, Option("--url", "-u", help="Tenant domain to register under.")],
    category: Annotated[
        str | None, Option("--category", "-c", help="Category tag.")
    ] = None,
) -> None:
    """Register a GitHub repository."""
    settings = load_settings()
    try:
        with open_repository(settings) as repository:
            github = GitHubClient(
                api_url=settings.github_api_url,
                token=settings.github_token,
                timeout=settings.http_timeout,
            )
            try:
                service = CatalogService(
                    repository,
                    EmbeddingProvider(),
                    github,
                    default_category=settings.search_category,
                )
                item = service.add_item(github_url, url, category=category)
            finally:
                github.close()
    except CatalogError as exc:
        _fail(exc)
    console.print(f"[bold green]Added[/] {item.github_repository_name} as [cyan]{item.id}[/]")


@app.command()
def search(
    query: Annotated[str, Argument(help="Free-text search query.")],
    limit: Annotated[int, Option("--limit", "-n", help="Maximum results.")] = 5,
    search_type: Annotated[
        str,
        Option("--type", "-t", help="description, repository, or combined."),
    ] = "combined",
) -> None:
    """Search the catalogue by semantic similarity."""
    settings = load_settings()
    try:
        with open_repository(settings) as repository:
            engine = SimilaritySearchEngine(
                repository,
                EmbeddingProvider(),
                eligible_category=settings.search_category,
            )
            results = engine.search(query, limit=limit, search_type=search_type)
    except CatalogError as exc:
        _fail(exc)

    # Non-positive scores are not meaningful matches for display.
    relevant = [result for result in results if result.score > 0]
    if not relevant:
        console.print("[yellow]No matching repositories.[/]")
        return

    table = Table(title=f"Search results for '{query}'")
    table.add_column("Score", justify="right")
    table.add_column("Repository", style="bold")
    table.add_column("Description")
    table.add_column("ID", style="dim")
    for result in relevant:
        table.add_row(
            f"{result.score:.3f}",
            result.item.github_repository_name,
            result.item.github_description,
            result.item.id,
        )
    console.print(table)


@app.command("list")
def list_items(
    url: Annotated[str, Argument(help="Tenant domain.")],
    limit: Annotated[int, Option("--limit", "-n", help="Maximum items.")] = 50,
) -> None:
    """List repositories registered under a tenant domain, newest first."""
    settings = load_settings()
    try:
        with open_repository(settings) as repository:
            items = list_items_by_url(repository, url, limit=limit)
    except CatalogError as exc:
        _fail(exc)

    table = Table(title=f"Repositories for {url} ({len(items)})")
    table.add_column("Created")
    table.add_column("Repository", style="bold")
    table.add_column("Homepage")
    table.add_column("ID", style="dim")
    for item in items:
        table.add_row(item.created_at, item.github_repository_name, item.homepage_url, item.id)
    console.print(table)


@app.command()
def delete(item_id: Annotated[str, Argument(help="Item id to delete.")]) -> None:
    """Delete a repository from the catalogue."""
    settings = load_settings()
    try:
        with open_repository(settings) as repository:
            deleted = repository.delete(item_id)
    except CatalogError as exc:
        _fail(exc)
    console.print(f"[bold green]Deleted[/] {deleted.github_repository_name} ({deleted.id})")


@app.command("init-index")
def init_index() -> None:
    """Backfill the auxiliary search index sets."""
    settings = load_settings()
    try:
        with open_repository(settings) as repository:
            already_present, indexed = repository.ensure_indexes()
    except CatalogError as exc:
        _fail(exc)
    if already_present:
        console.print(f"Search index already up to date ({indexed} items).")
    else:
        console.print(f"[bold green]Search index created[/] for {indexed} items.")
