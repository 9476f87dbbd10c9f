"""Command line interface for graphfill."""

import asyncio
import sys
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table

from graphfill.cancellation import CancellationToken
from graphfill.config import Config
from graphfill.constants import LANGUAGE_MAP
from graphfill.engine.client import EngineClient
from graphfill.engine.git import infer_git_repository
from graphfill.engine.indexing import IndexingSupervisor
from graphfill.graph import CompletionPipeline
from graphfill.llm import LLM
from graphfill.models import DocumentContext, file_uri
from graphfill.orchestrator import GenerateOptions
from graphfill.provider import create_provider
from graphfill.retriever import GraphContextRetriever
from graphfill.utils.logging import SessionLogger, setup_logging

app = typer.Typer(help="graphfill - graph-context code completion")
console = Console()


class Session:
    """Wires the engine, indexing and completion pipeline for one project."""

    def __init__(self, project_root: Path, config: Config, with_model: bool = True):
        """Initialize session.

        Args:
            project_root: Workspace folder
            config: Configuration object
            with_model: Create the model backend (needs an API key)
        """
        self.project_root = project_root
        self.config = config
        self.client = EngineClient.for_engine(
            config.engine_path,
            cwd=project_root,
            verbose=config.engine_verbose,
        )
        self.supervisor = IndexingSupervisor(
            self.client,
            infer_parent_repositories=config.infer_parent_git_repositories,
        )
        self.retriever = GraphContextRetriever(
            self.client,
            self.supervisor,
            await_indexing=config.await_indexing,
            max_snippets=config.max_snippets,
            max_depth=config.max_depth,
        )
        self.pipeline: Optional[CompletionPipeline] = None

        if with_model:
            descriptor = LLM.parse_model_string(config.default_model)
            backend = LLM(descriptor, config.anthropic_api_key)
            provider = create_provider(
                config.default_model,
                backend,
                prompt_chars=config.prompt_chars,
                workspace_root=project_root,
            )
            self.logger = SessionLogger(project_root)
            self.pipeline = CompletionPipeline(self.retriever, provider, self.logger)

    async def start(self) -> asyncio.Future:
        """Start initial indexing of the project folder."""
        folder = file_uri(str(self.project_root))
        repository = await infer_git_repository(folder)
        return self.supervisor.start([folder], [repository] if repository else [])

    async def close(self) -> None:
        await self.client.shutdown()


def _load_config(project_root: Path, verbose: bool) -> Config:
    setup_logging(verbose)
    try:
        return Config.load(project_root)
    except Exception as e:
        console.print(f"[red]Error loading configuration: {e}[/red]")
        sys.exit(1)


def _read_document(path: Path, line: int, character: int) -> DocumentContext:
    if not path.is_file():
        console.print(f"[red]Error: Not a file: {path}[/red]")
        sys.exit(1)

    text = path.read_text(encoding="utf-8", errors="replace")
    language_id = LANGUAGE_MAP.get(path.suffix.lower(), "plaintext")
    return DocumentContext.from_text(file_uri(str(path)), language_id, text, line, character)


@app.command()
def complete(
    file: Path = typer.Argument(..., help="File to complete"),
    line: int = typer.Option(..., "--line", "-l", help="Cursor line (0-based)"),
    character: int = typer.Option(0, "--character", "-c", help="Cursor column (0-based)"),
    n: Optional[int] = typer.Option(None, "--n", "-n", help="Number of completions to request"),
    single_line: bool = typer.Option(False, "--single-line", help="Stop at the first line"),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Model to use"),
    project: Optional[Path] = typer.Option(None, "--project", "-p", help="Workspace folder"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Generate completions at a cursor position."""
    file = file.resolve()
    project_root = (project or file.parent).resolve()
    config = _load_config(project_root, verbose)

    if model:
        config.default_model = model
    if n:
        config.completions = n

    errors = config.validate()
    if errors:
        console.print("[red]Configuration errors:[/red]")
        for error in errors:
            console.print(f"  - {error}")
        sys.exit(1)

    document = _read_document(file, line, character)
    options = GenerateOptions(n=config.completions, timeout_ms=config.timeout_ms, multiline=not single_line)

    async def run() -> tuple[dict[int, str], str]:
        session = Session(project_root, config)
        finals: dict[int, str] = {}
        try:
            await session.start()
            async for results in session.pipeline.complete(document, options, CancellationToken()):
                for result in results:
                    if result.error:
                        console.print(f"[red]Completion {result.branch + 1} failed: {result.error}[/red]")
                    finals[result.branch] = result.text
        finally:
            await session.close()
        return finals, session.logger.get_log_path()

    finals, log_path = asyncio.run(run())
    console.print(f"[dim]Session logs: {log_path}[/dim]")
    if not finals:
        console.print("[yellow]No completions.[/yellow]")
        return

    for branch, text in sorted(finals.items()):
        console.print(Panel(
            Syntax(text or " ", document.language_id, theme="ansi_dark"),
            title=f"Completion {branch + 1}",
            border_style="cyan",
        ))


@app.command()
def context(
    file: Path = typer.Argument(..., help="File to retrieve context for"),
    line: int = typer.Option(..., "--line", "-l", help="Cursor line (0-based)"),
    character: int = typer.Option(0, "--character", "-c", help="Cursor column (0-based)"),
    project: Optional[Path] = typer.Option(None, "--project", "-p", help="Workspace folder"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Show the identifiers and snippets retrieved for a cursor position."""
    file = file.resolve()
    project_root = (project or file.parent).resolve()
    config = _load_config(project_root, verbose)
    document = _read_document(file, line, character)

    async def run():
        session = Session(project_root, config, with_model=False)
        try:
            await session.start()
            query = session.retriever.build_query(document)
            snippets = await session.retriever.lookup(document, query)
            return query, snippets, session.client.state
        finally:
            await session.close()

    query, snippets, state = asyncio.run(run())

    console.print(f"[dim]Engine: {state.value}[/dim]")
    console.print(f"[bold]Identifiers:[/bold] {', '.join(query.identifiers) or '(none)'}")

    if not snippets:
        console.print("[yellow]No context.[/yellow]")
        return

    table = Table(title=f"{len(snippets)} snippets")
    table.add_column("Kind")
    table.add_column("Name")
    table.add_column("Source")
    for snippet in snippets:
        table.add_row(snippet.kind, snippet.symbol_name or "", snippet.source_uri)
    console.print(table)


@app.command()
def index(
    path: Optional[Path] = typer.Argument(None, help="Workspace folder (default: current directory)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Submit a workspace folder to the engine for indexing."""
    project_root = path.resolve() if path else Path.cwd()

    if not project_root.is_dir():
        console.print(f"[red]Error: Path is not a directory: {project_root}[/red]")
        sys.exit(1)

    config = _load_config(project_root, verbose)

    async def run():
        session = Session(project_root, config, with_model=False)
        try:
            await session.start()
            await session.supervisor.wait_for_indexing()
            return session.supervisor.revisions.revisions(), session.client.state, session.client.error
        finally:
            await session.close()

    revisions, state, error = asyncio.run(run())

    if error is not None:
        console.print(f"[red]Engine failed to start: {error}[/red]")
        sys.exit(1)

    console.print(f"[dim]Engine: {state.value}[/dim]")
    for revision in revisions:
        console.print(f"Indexed {revision.repository_uri} @ {revision.commit[:12]}")
    if not revisions:
        console.print(f"Indexed workspace {file_uri(str(project_root))}")


@app.command()
def models() -> None:
    """List supported models."""
    for model in LLM.list_models():
        console.print(f"  - {model}")


@app.command("config")
def show_config(
    path: Optional[Path] = typer.Argument(None, help="Project path (default: current directory)"),
) -> None:
    """Show the effective configuration."""
    project_root = path.resolve() if path else Path.cwd()
    config = _load_config(project_root, verbose=False)
    console.print(Panel(
        "\n".join(f"{k}: {v}" for k, v in config.to_dict().items()),
        title="Configuration",
        border_style="blue",
    ))


if __name__ == "__main__":
    app()
