#!/usr/bin/env python3
"""
vaultsearch CLI - Command Line Interface
Index and search a folder of markdown notes
"""

import asyncio
import os
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.progress import (
    Progress,
    SpinnerColumn,
    TextColumn,
    BarColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from vaultsearch import __version__
from vaultsearch.core.cancellation import CancellationToken
from vaultsearch.core.logging import logger
from vaultsearch.core.ollama import OllamaClient
from vaultsearch.core.secure_config import Settings
from vaultsearch.core.utils import epoch_ms_to_datetime, format_iso
from vaultsearch.embeddings.ollama import OllamaEmbeddings
from vaultsearch.models.indexing import IndexingResult, IndexingStatus
from vaultsearch.models.search import SearchOptions, SemanticMode
from vaultsearch.rag.retrieval.hybrid_search import HybridSearch
from vaultsearch.services.index_persistence import IndexPersistence
from vaultsearch.services.semantic_index import SemanticIndexManager
from vaultsearch.store.filesystem import FilesystemDocumentStore

console = Console()


class VaultContext:
    """Components wired for one vault directory"""

    def __init__(self, vault: Path):
        self.vault = vault.resolve()
        if not self.vault.is_dir():
            raise click.ClickException(f"Vault directory not found: {self.vault}")

        self.settings = Settings(self.vault / Settings.CONFIG_FILENAME)
        self.store = FilesystemDocumentStore(self.vault)
        self.embeddings = OllamaEmbeddings(
            base_url=self.settings.get("ollama.base_url"),
            model=self.settings.get("embeddings.model"),
            request_timeout=self.settings.get("ollama.request_timeout"),
        )
        self.chat: Optional[OllamaClient] = None

        index_path = Path(self.settings.get("indexing.index_path"))
        if not index_path.is_absolute():
            index_path = self.vault / index_path
        self.index = SemanticIndexManager(
            self.store,
            self.embeddings,
            persistence=IndexPersistence(index_path),
            settings=self.settings,
        )

    def chat_model(self) -> OllamaClient:
        if self.chat is None:
            self.chat = OllamaClient(
                base_url=self.settings.get("ollama.base_url"),
                model=self.settings.get("ollama.chat_model"),
                request_timeout=self.settings.get("ollama.request_timeout"),
            )
        return self.chat

    async def close(self) -> None:
        await self.index.close()
        await self.embeddings.close()
        if self.chat is not None:
            await self.chat.close()


class ProgressHooks:
    """Bridges indexing progress into a rich progress bar"""

    def __init__(self, progress: Progress, task_id):
        self.progress = progress
        self.task_id = task_id

    def on_progress(self, completed: int, total: int) -> None:
        self.progress.update(self.task_id, completed=completed, total=max(total, 1))

    def on_pause_requested(self) -> bool:
        return False

    def on_cancel_requested(self) -> bool:
        return False


def _print_result(result: IndexingResult) -> None:
    colors = {
        IndexingStatus.SUCCESS.value: "green",
        IndexingStatus.UNCHANGED.value: "green",
        IndexingStatus.PARTIAL.value: "yellow",
        IndexingStatus.CANCELLED.value: "yellow",
        IndexingStatus.FAILED.value: "red",
    }
    color = colors.get(result.status, "white")
    console.print(f"[bold {color}]Indexing {result.status}[/bold {color}]")
    console.print(f"Documents embedded: {result.documents}")
    console.print(f"Chunks in index: {result.chunks}")
    console.print(f"Embedding requests: {result.embed_calls}")
    console.print(f"[dim]Took {result.duration_ms / 1000:.1f}s[/dim]")
    for error in result.errors[:10]:
        console.print(f"[red]  - {error}[/red]")
    if len(result.errors) > 10:
        console.print(f"[red]  ... and {len(result.errors) - 10} more[/red]")


async def _index(vault: Path, full: bool) -> IndexingResult:
    context = VaultContext(vault)
    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TextColumn("{task.completed}/{task.total} chunks"),
            TimeElapsedColumn(),
            console=console,
        ) as progress:
            task_id = progress.add_task("Embedding notes", total=None)
            token = CancellationToken(hooks=ProgressHooks(progress, task_id))
            if full:
                return await context.index.index_vault(token)
            return await context.index.index_vault_incremental(token)
    finally:
        await context.close()


async def _reindex(vault: Path, note: str) -> IndexingResult:
    context = VaultContext(vault)
    try:
        return await context.index.reindex_document(note)
    finally:
        await context.close()


async def _search(vault: Path, query: str, options: SearchOptions, use_llm: bool):
    context = VaultContext(vault)
    try:
        search = HybridSearch(
            context.store,
            semantic_index=context.index if options.enable_semantic else None,
            chat_model=context.chat_model() if use_llm else None,
            settings=context.settings,
        )
        return await search.retrieve(query, options)
    finally:
        await context.close()


async def _stats(vault: Path):
    context = VaultContext(vault)
    try:
        await context.index.ensure_loaded()
        indexed = context.index.get_indexed_paths()
        mtimes = [
            record.mtime for path in indexed for record in context.index.get_document_embeddings(path)
        ]
        return {
            "documents": len(context.store.list_documents()),
            "indexed_documents": len(indexed),
            "chunks": context.index.chunk_count,
            "state": context.index.state.value,
            "index_path": str(context.index.persistence.index_path),
            "newest_indexed_note": format_iso(epoch_ms_to_datetime(max(mtimes))) if mtimes else "-",
        }
    finally:
        await context.close()


async def _clear(vault: Path) -> None:
    context = VaultContext(vault)
    try:
        await context.index.clear_index()
    finally:
        await context.close()


@click.group()
@click.version_option(version=__version__, prog_name="vaultsearch")
def cli():
    """
    vaultsearch - hybrid search for markdown vaults

    Keyword and embedding search over your notes, fused into one ranking.
    """
    pass


@cli.command()
@click.option('--path', default=".", help='Vault path')
@click.option('--full', is_flag=True, help='Re-embed every note instead of only changed ones')
def index(path: str, full: bool):
    """Build or update the semantic index"""
    console.print("[bold cyan]Indexing vault...[/bold cyan]")
    result = asyncio.run(_index(Path(path), full))
    _print_result(result)
    if result.status == IndexingStatus.FAILED.value:
        sys.exit(1)


@cli.command()
@click.argument('note')
@click.option('--path', default=".", help='Vault path')
def reindex(note: str, path: str):
    """Re-embed a single note (path relative to the vault)"""
    result = asyncio.run(_reindex(Path(path), note))
    _print_result(result)
    if result.status == IndexingStatus.FAILED.value:
        sys.exit(1)


@cli.command()
@click.argument('query')
@click.option('--path', default=".", help='Vault path')
@click.option('--semantic', is_flag=True, help='Fuse keyword results with the embedding index')
@click.option('--weight', type=float, default=None, help='Semantic share of the fusion, 0 to 1')
@click.option(
    '--mode',
    type=click.Choice([m.value for m in SemanticMode]),
    default=SemanticMode.SCOPED.value,
    help='Restrict semantic hits to keyword candidates (scoped) or search the whole index',
)
@click.option('--limit', type=int, default=10, help='Number of results')
@click.option('--llm/--no-llm', default=False, help='Expand the query with the local chat model')
def search(
    query: str,
    path: str,
    semantic: bool,
    weight: Optional[float],
    mode: str,
    limit: int,
    llm: bool,
):
    """Search the vault"""
    settings = Settings(Path(path).resolve() / Settings.CONFIG_FILENAME)
    options = SearchOptions(
        max_results=limit,
        semantic_weight=weight if weight is not None else settings.get("search.semantic_weight", 0.6),
        candidate_limit=settings.get("search.candidate_limit", 500),
        rrf_k=settings.get("search.rrf_k", 60),
        enable_semantic=semantic,
        semantic_mode=mode,
    )
    result = asyncio.run(_search(Path(path), query, options, llm))

    if not result.results:
        console.print("[yellow]No results[/yellow]")
        return

    table = Table(title=f"Results for '{query}'")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Score", justify="right")
    table.add_column("Engine")
    table.add_column("Chunk", style="cyan")
    for rank, item in enumerate(result.results, start=1):
        table.add_row(str(rank), f"{item.score:.3f}", str(item.engine), item.id)
    console.print(table)

    expansion = result.query_expansion
    if expansion.salient_terms:
        console.print(f"[dim]Salient terms: {', '.join(expansion.salient_terms)}[/dim]")


@cli.command()
@click.option('--path', default=".", help='Vault path')
def stats(path: str):
    """Show index statistics"""
    info = asyncio.run(_stats(Path(path)))
    table = Table(title="vaultsearch index")
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    for key, value in info.items():
        table.add_row(key.replace("_", " "), str(value))
    console.print(table)


@cli.command()
@click.option('--path', default=".", help='Vault path')
@click.option('--force', is_flag=True, help='Clear without confirmation')
def clear(path: str, force: bool):
    """Delete the semantic index"""
    if not force and not click.confirm("Delete the semantic index?"):
        click.echo("Aborted.")
        return
    asyncio.run(_clear(Path(path)))
    console.print("[bold green]Index cleared[/bold green]")


def main():
    """Main entry point"""
    try:
        cli()
    except KeyboardInterrupt:
        click.echo("\nOperation cancelled by user.")
        sys.exit(0)
    except Exception as e:
        logger.error("CLI command failed", error=str(e))
        click.echo(click.style(f"Error: {e}", fg="red"))
        if os.environ.get('VAULTSEARCH_DEBUG'):
            import traceback

            traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()
