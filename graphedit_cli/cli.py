"""Typer-based CLI for GraphEdit: index a project, then edit it with AI."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, NoReturn, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from . import __version__, config, config_manager
from .errors import GraphEditError, PartialApplyError
from .filesystem import LocalFileSystem
from .graph import build_import_graph, related_files
from .llm import LocalLLM
from .models import FileEditProposal, PlanFallback
from .orchestrator import EditOrchestrator
from .search import search_project
from .storage import GraphStore, ProjectManager
from .vcs import GitCommitter

app = typer.Typer(
    help="GraphEdit CLI: import-graph aware multi-file AI edits.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

console = Console(highlight=False)


def version_callback(value: bool):
    if value:
        typer.echo(f"GraphEdit CLI v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None, "--version", "-V", help="Show version and exit.",
        callback=version_callback, is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
):
    """GraphEdit CLI: index relative imports, then plan and apply multi-file edits."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _project_name_from_path(project_path: Path) -> str:
    return project_path.resolve().name.replace(" ", "_")


def _resolve_root(root: Optional[Path]) -> Path:
    if root is not None:
        return root.resolve()
    current = ProjectManager().current_root()
    if current is None:
        raise typer.BadParameter("No project loaded. Use 'ge index <path>' or pass --root.")
    return current


def _resolve_entry(file: Path, project_root: Path) -> Path:
    """Relative entries are project paths first, then paths from the CWD."""
    if file.is_absolute():
        return file
    in_project = project_root / file
    if not in_project.exists() and file.exists():
        return file.resolve()
    return in_project


def _fail(message: str) -> NoReturn:
    console.print(f"[bold red]✗[/bold red] {message}")
    raise typer.Exit(code=1)


# ===================================================================
# Indexing
# ===================================================================

@app.command("index")
def index_project(
    project_path: Path = typer.Argument(..., exists=True, file_okay=False, help="Path to source project."),
    project_name: Optional[str] = typer.Option(None, "--name", "-n", help="Explicit name for the project."),
):
    """Build the import graph for a project and make it the active project."""
    root = project_path.resolve()
    name = project_name or _project_name_from_path(root)

    files = LocalFileSystem().list(root)
    graph = build_import_graph(root, files)
    GraphStore(root).save(graph)

    pm = ProjectManager()
    pm.register_project(name, root)
    pm.set_current_project(name)

    typer.echo(f"Indexed '{root}' as project '{name}'.")
    typer.echo(f"Files: {len(graph.files)} | Edges: {graph.edge_count}")


@app.command("related")
def related(
    file: str = typer.Argument(..., help="File path relative to the project root."),
    hops: int = typer.Option(config.RELATED_HOPS, min=0, max=6, help="Traversal depth."),
    limit: int = typer.Option(12, min=1, max=100, help="Maximum number of files."),
    root: Optional[Path] = typer.Option(None, "--root", "-r", help="Project root (defaults to active project)."),
):
    """List files related to FILE through imports in either direction."""
    project_root = _resolve_root(root)
    try:
        graph = GraphStore(project_root).load()
    except GraphEditError as exc:
        _fail(f"{exc}. Run 'ge index {project_root}' first.")

    found = related_files(graph, Path(file).as_posix(), hops=hops, limit=limit)
    if not found:
        typer.echo("No related files found.")
        raise typer.Exit(code=0)
    for path in found:
        typer.echo(path)


@app.command("graph-stats")
def graph_stats(
    root: Optional[Path] = typer.Option(None, "--root", "-r", help="Project root (defaults to active project)."),
    top: int = typer.Option(10, min=1, max=50, help="Number of most-imported files to show."),
):
    """Summarize the persisted import graph."""
    project_root = _resolve_root(root)
    try:
        graph = GraphStore(project_root).load()
    except GraphEditError as exc:
        _fail(str(exc))

    fan_in: dict = {}
    for node in graph.files.values():
        for target in node.imports:
            fan_in[target] = fan_in.get(target, 0) + 1

    console.print(f"[bold]Root[/bold]       {graph.root_dir}")
    console.print(f"[bold]Generated[/bold]  {graph.generated_at}")
    console.print(f"[bold]Files[/bold]      {len(graph.files)}")
    console.print(f"[bold]Edges[/bold]      {graph.edge_count}")

    if fan_in:
        table = Table(title="Most imported", title_style="bold cyan")
        table.add_column("File")
        table.add_column("Importers", justify="right")
        for path, count in sorted(fan_in.items(), key=lambda kv: (-kv[1], kv[0]))[:top]:
            table.add_row(path, str(count))
        console.print(table)


# ===================================================================
# Editing
# ===================================================================

def _render_proposal(proposal: FileEditProposal) -> None:
    title = f"{proposal.path}" + ("" if proposal.changed else "  (no changes)")
    console.print(Panel(title, style="bold cyan", expand=False))
    if not proposal.changed:
        return
    for segment in proposal.patches:
        if segment.kind == "added":
            prefix, style = "+ ", "green"
        elif segment.kind == "removed":
            prefix, style = "- ", "red"
        else:
            prefix, style = "  ", "dim"
        for line in segment.value.splitlines():
            console.print(Text(prefix + line, style=style))


@app.command("edit")
def edit(
    file: Path = typer.Argument(..., help="Entry file to edit."),
    instruction: List[str] = typer.Argument(..., help="What to change."),
    root: Optional[Path] = typer.Option(None, "--root", "-r", help="Project root (defaults to active project)."),
    max_files: int = typer.Option(
        config.EDIT_MAX_FILES, "--max-files", "-m", min=1, max=config.MAX_FILES_CEILING,
        help="Maximum files to edit in one request.",
    ),
    context_file: Optional[Path] = typer.Option(
        None, "--context", "-c", exists=True, dir_okay=False,
        help="Extra retrieval context to share with every generation request.",
    ),
    auto_apply: bool = typer.Option(False, "--yes", "-y", help="Apply without confirmation."),
    preview_only: bool = typer.Option(False, "--preview", "-p", help="Show the diff and exit."),
    unified: bool = typer.Option(
        False, "--unified", "-u", help="Show a plain unified diff instead of the coloured view.",
    ),
    commit: bool = typer.Option(True, "--commit/--no-commit", help="Commit applied changes with git."),
    llm_provider: str = typer.Option(config.LLM_PROVIDER, help="LLM provider."),
    llm_model: str = typer.Option(config.LLM_MODEL, help="LLM model."),
    llm_api_key: Optional[str] = typer.Option(config.LLM_API_KEY or None, help="API key for cloud providers."),
):
    """Plan and generate a multi-file edit starting from FILE."""
    project_root = _resolve_root(root)
    text = " ".join(instruction).strip()
    extra = context_file.read_text(encoding="utf-8") if context_file else ""

    try:
        llm = LocalLLM(model=llm_model, provider=llm_provider, api_key=llm_api_key)
        orchestrator = EditOrchestrator(
            project_root,
            llm,
            committer=GitCommitter() if commit else None,
            max_files=max_files,
        )
        entry = _resolve_entry(file, project_root)
        session = orchestrator.select_candidates(text, entry)
        console.print(f"[dim]Candidates:[/dim] {len(session.candidates)} file(s)")

        with console.status("Planning..."):
            files = orchestrator.plan(session)
        if isinstance(session.plan_result, PlanFallback):
            console.print(f"[yellow]Plan unavailable, editing entry file only:[/yellow] {session.plan_result.reason}")
        console.print(f"[dim]Plan:[/dim] {', '.join(files)}")

        with console.status(f"Generating {len(files)} file(s)..."):
            proposals = orchestrator.generate(session, extra_context=extra)
    except GraphEditError as exc:
        _fail(str(exc))

    if unified:
        typer.echo(orchestrator.diff_engine.preview(proposals))
    else:
        for proposal in proposals:
            _render_proposal(proposal)

    if not any(p.changed for p in proposals):
        orchestrator.discard(session)
        typer.echo("No changes.")
        raise typer.Exit(code=0)

    if preview_only or not (auto_apply or typer.confirm("Apply these changes?", default=False)):
        orchestrator.discard(session)
        typer.echo("Discarded.")
        raise typer.Exit(code=0)

    try:
        result = orchestrator.apply(session)
    except PartialApplyError as exc:
        console.print(f"[bold red]✗[/bold red] {exc}")
        for path in exc.written:
            console.print(f"  [yellow]written[/yellow] {path}")
        raise typer.Exit(code=1)

    console.print(f"[bold green]✓[/bold green] {result}")
    if commit and not result.committed:
        typer.echo("Nothing to commit.")


@app.command("search")
def search(
    query: str = typer.Argument(..., help="Text to look for."),
    limit: int = typer.Option(50, min=1, max=500, help="Maximum number of matches."),
    root: Optional[Path] = typer.Option(None, "--root", "-r", help="Project root (defaults to active project)."),
):
    """Case-insensitive text search across project files."""
    project_root = _resolve_root(root)
    hits = search_project(project_root, query, limit=limit)
    if not hits:
        typer.echo(f"No matches for '{query}'.")
        raise typer.Exit(code=0)
    for hit in hits:
        typer.echo(f"{hit.file}:{hit.line}  {hit.text}")


@app.command("git-init")
def git_init(
    root: Optional[Path] = typer.Option(None, "--root", "-r", help="Project root (defaults to active project)."),
):
    """Initialise a git repository with an initial commit if there is none."""
    project_root = _resolve_root(root)
    try:
        created = GitCommitter().init_if_needed(project_root)
    except GraphEditError as exc:
        _fail(str(exc))
    typer.echo("Initialised repository." if created else "Repository already exists.")


# ===================================================================
# Projects
# ===================================================================

@app.command("list-projects")
def list_projects():
    """List indexed projects."""
    pm = ProjectManager()
    projects = pm.list_projects()
    current = pm.get_current_project()

    if not projects:
        typer.echo("No projects indexed yet.")
        raise typer.Exit(code=0)

    for name in projects:
        marker = "*" if name == current else " "
        typer.echo(f"{marker} {name}  {pm.project_root(name)}")


@app.command("load-project")
def load_project(project_name: str = typer.Argument(..., help="Name of project to activate.")):
    """Switch the active project."""
    pm = ProjectManager()
    if project_name not in pm.list_projects():
        raise typer.BadParameter(f"Project '{project_name}' not found.")
    pm.set_current_project(project_name)
    typer.echo(f"Loaded project '{project_name}'.")


@app.command("forget-project")
def forget_project(project_name: str = typer.Argument(..., help="Project to remove from the registry.")):
    """Remove a project from the registry. Its index directory is left alone."""
    if not ProjectManager().forget_project(project_name):
        raise typer.BadParameter(f"Project '{project_name}' not found.")
    typer.echo(f"Forgot project '{project_name}'.")


@app.command("current-project")
def current_project():
    """Print the active project name."""
    typer.echo(ProjectManager().get_current_project() or "No project loaded")


# ===================================================================
# LLM configuration
# ===================================================================

@app.command("set-llm")
def set_llm(
    provider: str = typer.Argument(..., help=f"LLM provider: {', '.join(config_manager.ALL_PROVIDERS)}"),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Model name (uses provider default if not set)."),
    api_key: Optional[str] = typer.Option(None, "--api-key", "-k", help="API key for cloud providers."),
    endpoint: Optional[str] = typer.Option(None, "--endpoint", "-e", help="Custom endpoint URL."),
):
    """Switch the LLM provider used for planning and generation."""
    provider = provider.lower().strip()
    if provider not in config_manager.ALL_PROVIDERS:
        _fail(f"Unknown provider '{provider}'. Choose from: {', '.join(config_manager.ALL_PROVIDERS)}")

    defaults = config_manager.get_provider_config(provider)
    resolved_model = model or defaults.get("model", "")
    resolved_endpoint = endpoint or defaults.get("endpoint", "")

    if not config_manager.save_config(provider, resolved_model, api_key or "", resolved_endpoint):
        _fail("Failed to save configuration!")

    console.print(f"[bold green]✓[/bold green] LLM provider set to: {provider}")
    typer.echo(f"  Model:    {resolved_model}")
    if resolved_endpoint:
        typer.echo(f"  Endpoint: {resolved_endpoint}")


@app.command("show-llm")
def show_llm():
    """Show the current LLM provider configuration."""
    cfg = config_manager.load_config()
    api_key = cfg.get("api_key", "")

    table = Table(show_header=False, box=None, padding=(0, 2), title="LLM Configuration", title_style="bold cyan")
    table.add_column(style="dim")
    table.add_column()
    table.add_row("Provider", cfg.get("provider", "ollama"))
    table.add_row("Model", cfg.get("model", "qwen2.5-coder:7b"))
    if cfg.get("endpoint"):
        table.add_row("Endpoint", cfg["endpoint"])
    table.add_row("API Key", api_key[:8] + "•" * min(max(len(api_key) - 8, 0), 16) if api_key else "(not set)")
    table.add_row("Config", str(config_manager.CONFIG_FILE))
    console.print(table)


@app.command("reset-llm")
def reset_llm(
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation."),
):
    """Remove the saved LLM settings (API key included) and go back to Ollama defaults."""
    if "llm" not in config_manager.load_full_config():
        typer.echo("No LLM configuration found. Nothing to reset.")
        raise typer.Exit(code=0)
    if not yes and not typer.confirm("Reset LLM configuration?", default=False):
        typer.echo("Cancelled.")
        raise typer.Exit(code=0)
    if not config_manager.clear_config():
        _fail("Failed to reset configuration!")
    console.print("[bold green]✓[/bold green] Configuration reset to Ollama defaults.")


if __name__ == "__main__":
    app()
