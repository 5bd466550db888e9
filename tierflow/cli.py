"""
TIERFLOW CLI: the command-line interface

Pipelines:
  1. tierflow start <level> <id>     (plan by default; --execute to apply)
  2. tierflow end <level> <id>       (execute by default; --plan to preview)
  3. tierflow reopen <level> <id>    (bring a completed unit back)

Plus utilities:
  - tierflow scope show|set|clear   (the persisted active scope)
  - tierflow status                 (config, branch, scope)
  - tierflow init [path]            (bootstrap .tierflow/ and .project-manager/)
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

import typer
from dotenv import load_dotenv
from loguru import logger
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table

from tierflow.config_loader import ConfigError, config_sources, load_config
from tierflow.dispatcher import DispatchResult, run_end, run_reopen, run_start
from tierflow.identity import BANNER, __codename__, __tagline__, __version__
from tierflow.levels import LEVEL_ORDER, Level
from tierflow.scope import ScopeEntry, ScopeStore, format_scope_display
from tierflow.workspace import GitRepo, WorkspaceError

# Load .env from current directory or home
load_dotenv()
load_dotenv(Path.home() / ".tierflow" / ".env")

app = typer.Typer(
    name="tierflow",
    help=f"{__codename__}: {__tagline__}\nTiered feature / phase / session / task workflows.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
scope_app = typer.Typer(help="Show or change the active scope.", no_args_is_help=True)
app.add_typer(scope_app, name="scope")

console = Console()


def version_callback(value: bool):
    if value:
        console.print(f"{__codename__} v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        callback=version_callback,
        is_eager=True,
        help="Show the version and exit.",
    ),
):
    pass


# ---------------------------------------------------------------------------
# Banner / output
# ---------------------------------------------------------------------------


def _print_banner():
    console.print(f"[bright_green]{BANNER}[/]")
    console.print(f"  [dim]v{__version__} - {__tagline__}[/]\n")


def _repo(repo: Optional[Path]) -> Path:
    path = (repo or Path.cwd()).resolve()
    if not path.exists():
        console.print(f"[red]Repository not found: {path}[/]")
        raise typer.Exit(1)
    return path


def _show(dispatched: DispatchResult, as_json: bool) -> None:
    if as_json:
        typer.echo(dispatched.model_dump_json(indent=2))
    else:
        console.print(Markdown(dispatched.output))
        outcome = dispatched.result.outcome
        decision = dispatched.decision
        color = "green" if dispatched.success else "red"
        lines = [
            f"[bold]Status:[/] {outcome.status.value}",
            f"[bold]Reason:[/] {outcome.reason_code}",
            f"[bold]Next:[/] {outcome.next_action or '-'}",
        ]
        if decision.question_key:
            lines.append(f"[bold]Question:[/] {decision.question_key.value}")
        if outcome.cascade:
            lines.append(f"[bold]Cascade:[/] {outcome.cascade.command}")
        console.print(Panel("\n".join(lines), title="Control Plane", border_style=color))
    if not dispatched.success:
        raise typer.Exit(1)


# ---------------------------------------------------------------------------
# Pipelines
# ---------------------------------------------------------------------------

@app.command()
def start(
    level: Level = typer.Argument(..., help="feature | phase | session | task"),
    identifier: str = typer.Argument(..., help="Feature name or dotted id (2.2.1)"),
    execute: bool = typer.Option(False, "--execute", "-x", help="Apply changes instead of previewing"),
    context_complete: bool = typer.Option(False, "--context-complete", help="Open questions have been answered"),
    description: Optional[str] = typer.Option(None, "--description", "-d"),
    feature: Optional[str] = typer.Option(None, "--feature", help="Feature, when not in scope"),
    repo: Optional[Path] = typer.Option(None, "--repo", "-r", help="Path to the repository"),
    as_json: bool = typer.Option(False, "--json", help="Print the dispatch result as JSON"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Start a unit of work (plan mode unless --execute)."""
    _configure_logging(verbose)
    options = {
        "mode": "execute" if execute else "plan",
        "contextGatheringComplete": context_complete,
        "description": description,
        "feature": feature,
    }
    _show(run_start(level, identifier, options, repo_path=_repo(repo)), as_json)


@app.command()
def end(
    level: Level = typer.Argument(..., help="feature | phase | session | task"),
    identifier: str = typer.Argument(..., help="Feature name or dotted id (2.2.1.3)"),
    plan: bool = typer.Option(False, "--plan", help="Preview without changing anything"),
    run_tests: Optional[bool] = typer.Option(None, "--run-tests/--no-run-tests", help="Run the test suite"),
    target: Optional[str] = typer.Option(None, "--target", help="Test target passed to the test command"),
    modified: Optional[List[str]] = typer.Option(None, "--modified", "-m", help="Modified file (repeatable)"),
    message: Optional[str] = typer.Option(None, "--message", help="Commit message"),
    skip_git: bool = typer.Option(False, "--skip-git", help="Skip commit/merge"),
    push: bool = typer.Option(False, "--push", help="Push after merging"),
    continue_past_verification: bool = typer.Option(False, "--continue-past-verification"),
    override_reason: Optional[str] = typer.Option(None, "--override-reason", help="Accept a failing governance gate"),
    follow_up: Optional[str] = typer.Option(None, "--follow-up", help="Follow-up for the override"),
    feature: Optional[str] = typer.Option(None, "--feature", help="Feature, when not in scope"),
    repo: Optional[Path] = typer.Option(None, "--repo", "-r", help="Path to the repository"),
    as_json: bool = typer.Option(False, "--json", help="Print the dispatch result as JSON"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """End a unit of work (execute mode unless --plan)."""
    _configure_logging(verbose)
    params = {
        "identifier": identifier,
        "mode": "plan" if plan else "execute",
        "runTests": run_tests,
        "testTarget": target,
        "modifiedFiles": modified or [],
        "commitMessage": message,
        "skipGit": skip_git,
        "push": push,
        "continuePastVerification": continue_past_verification,
        "overrideReason": override_reason,
        "followUp": follow_up,
        "feature": feature,
    }
    _show(run_end(level, params, repo_path=_repo(repo)), as_json)


@app.command()
def reopen(
    level: Level = typer.Argument(..., help="feature | phase | session | task"),
    identifier: str = typer.Argument(...),
    reason: str = typer.Option(..., "--reason", help="Why the unit is being reopened"),
    feature: Optional[str] = typer.Option(None, "--feature", help="Feature, when not in scope"),
    repo: Optional[Path] = typer.Option(None, "--repo", "-r", help="Path to the repository"),
    as_json: bool = typer.Option(False, "--json", help="Print the dispatch result as JSON"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Reopen a completed unit."""
    _configure_logging(verbose)
    options = {"feature": feature} if feature else {}
    _show(run_reopen(level, identifier, reason, options, repo_path=_repo(repo)), as_json)


# ---------------------------------------------------------------------------
# Scope
# ---------------------------------------------------------------------------

def _scope_store(repo: Path) -> ScopeStore:
    try:
        config = load_config(repo)
    except ConfigError as e:
        console.print(f"[red]{e}[/]")
        raise typer.Exit(1)
    return ScopeStore(repo, config.docs.scope_file, config.docs.legacy_scope_file)


@scope_app.command("show")
def scope_show(repo: Optional[Path] = typer.Option(None, "--repo", "-r")):
    """Print the active scope."""
    console.print(Markdown(format_scope_display(_scope_store(_repo(repo)).read())))


@scope_app.command("set")
def scope_set(
    level: Level = typer.Argument(...),
    identifier: str = typer.Argument(...),
    name: Optional[str] = typer.Option(None, "--name", help="Display name"),
    repo: Optional[Path] = typer.Option(None, "--repo", "-r"),
):
    """Make a unit active (clears every finer level)."""
    update = _scope_store(_repo(repo)).update(level, ScopeEntry(id=identifier, name=name))
    for msg in update.messages:
        console.print(f"[dim]{msg}[/]")
    console.print(Markdown(format_scope_display(update.current)))


@scope_app.command("clear")
def scope_clear(
    level: Optional[Level] = typer.Argument(None, help="Level to clear; everything when omitted"),
    repo: Optional[Path] = typer.Option(None, "--repo", "-r"),
):
    """Clear one level (and everything below it) or the whole scope."""
    store = _scope_store(_repo(repo))
    if level is None:
        store.clear()
        console.print("[green]Scope cleared.[/]")
        return
    update = store.update(level, None)
    console.print(Markdown(format_scope_display(update.current)))


# ---------------------------------------------------------------------------
# Utilities
# ---------------------------------------------------------------------------

@app.command()
def status(
    repo: Optional[Path] = typer.Option(None, "--repo", "-r"),
):
    """Check TIERFLOW configuration, branch and active scope."""
    _print_banner()
    repo = _repo(repo)

    sources = Table(title="Config Sources", border_style="cyan")
    sources.add_column("Layer")
    sources.add_column("Status")
    for name, present in config_sources(repo).items():
        sources.add_row(name, "[green]✓ Loaded[/]" if present else "[dim]✗ Not set[/]")
    console.print(sources)

    try:
        config = load_config(repo)
    except ConfigError as e:
        console.print(f"[red]{e}[/]")
        raise typer.Exit(1)

    console.print(f"\n[bold]Docs root:[/]     {config.docs.root}")
    console.print(f"[bold]Test command:[/]  {config.testing.command}")
    console.print(f"[bold]Root branches:[/] {', '.join(config.git.root_branches)}")
    try:
        branch = GitRepo(repo, config.git.ignore_dirty_paths, config.git.remote).current_branch()
        console.print(f"[bold]Git branch:[/]    {branch}")
    except WorkspaceError:
        console.print("[bold]Git branch:[/]    [dim]not a git repository[/]")

    scope = ScopeStore(repo, config.docs.scope_file, config.docs.legacy_scope_file).read()
    scope_table = Table(title="Active Scope", border_style="magenta")
    scope_table.add_column("Level")
    scope_table.add_column("Id")
    scope_table.add_column("Name")
    for lvl in LEVEL_ORDER:
        entry = scope.get(lvl)
        scope_table.add_row(lvl.title, entry.id if entry else "-", (entry.name or "") if entry else "")
    console.print(scope_table)


@app.command()
def init(
    repo: Optional[Path] = typer.Argument(None, help="Path to repository"),
):
    """Initialize .tierflow and .project-manager in a repository."""
    _print_banner()

    repo = (repo or Path.cwd()).resolve()
    tf_dir = repo / ".tierflow"
    tf_dir.mkdir(exist_ok=True)
    (tf_dir / "logs").mkdir(exist_ok=True)

    config_path = tf_dir / "config.yaml"
    if not config_path.exists():
        config_path.write_text("""# TIERFLOW repo-level config overrides
# These merge with the built-in defaults.

# Test command used by the end pipelines:
# testing:
#   command: "python -m pytest -q"
#   require_explicit: [session]

# Lint / typecheck run before a session, phase or feature ends:
# verify:
#   commands:
#     - "ruff check ."

# Wait for the app before execute-mode runs:
# preflight:
#   on_start: true
#   port: 3000
""")

    docs_root = repo / ".project-manager" / "features"
    docs_root.mkdir(parents=True, exist_ok=True)

    gitignore = repo / ".gitignore"
    ignore_entries = [".tierflow/logs/", ".tierflow/audit-reports/"]
    if gitignore.exists():
        content = gitignore.read_text()
        additions = [e for e in ignore_entries if e not in content]
        if additions:
            with open(gitignore, "a") as f:
                f.write("\n# TIERFLOW\n")
                for e in additions:
                    f.write(f"{e}\n")
    else:
        gitignore.write_text("# TIERFLOW\n" + "\n".join(ignore_entries) + "\n")

    console.print(f"[green]✅ Initialized TIERFLOW in {tf_dir}[/]")
    console.print(f"  Config:    {config_path}")
    console.print(f"  Documents: {docs_root}")


def _configure_logging(verbose: bool) -> None:
    logger.remove()
    if verbose:
        logger.add(
            lambda msg: console.print(str(msg).rstrip(), style="dim", highlight=False, markup=False),
            level="DEBUG",
            format="{time:HH:mm:ss} | {level:<7} | {message}",
        )
    else:
        logger.add(
            lambda msg: console.print(str(msg).rstrip(), style="dim", highlight=False, markup=False),
            level="WARNING",
            format="{message}",
        )


# ---------------------------------------------------------------------------
# Entry
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    app()
