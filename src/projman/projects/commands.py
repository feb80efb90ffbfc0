from __future__ import annotations

import shlex
import subprocess
from datetime import datetime
from pathlib import Path
from typing import NoReturn

import typer
from rich.console import Console
from rich.table import Table

from projman.config.config import RuntimeSettings, load_runtime_settings
from projman.core.errors import (
    DuplicateProjectError,
    PathInvalidError,
    ProjmanError,
    StoreError,
)
from projman.core.git import current_branch, last_commit_time, remote_url, working_tree_status
from projman.core.language import detect_project_language
from projman.projects.models import Project, now_utc
from projman.projects.query import query_projects
from projman.projects.refresh import RefreshCoordinator
from projman.projects.registry import Registry, new_project
from projman.projects.store import init_store, load_registry, update_registry
from projman.projects.suggest import suggest_similar_projects

project_app = typer.Typer(help="Manage projects (add, list, switch, remove).")
console = Console()


def _settings(ctx: typer.Context) -> RuntimeSettings:
    settings = ctx.find_object(RuntimeSettings)
    if settings is None:
        settings = load_runtime_settings()
        ctx.obj = settings
    return settings


def _fail(message: str) -> NoReturn:
    console.print(f"[bold red]Error[/]: {message}")
    raise typer.Exit(code=1)


def _open_registry(settings: RuntimeSettings) -> Registry:
    try:
        init_store(settings)
        return load_registry(settings)
    except StoreError as e:
        _fail(str(e))


def _require_by_name(reg: Registry, name: str) -> Project:
    proj = reg.find_project_by_name(name)
    if proj:
        return proj

    console.print(f"[bold red]Error[/]: Project '{name}' not found.")
    suggestions = suggest_similar_projects(reg.project_names(), name)
    if suggestions:
        console.print("[dim]Did you mean:[/]")
        for s in suggestions:
            console.print(f"  • [bold]{s}[/]")
    else:
        console.print("[dim]Use[/] [bold]pm project list[/] [dim]to see all projects.[/]")
    raise typer.Exit(code=1)


def _ago(value: datetime | None) -> str:
    if value is None:
        return "-"
    seconds = int((now_utc() - value).total_seconds())
    if seconds < 60:
        return "just now"
    for unit, size in (("d", 86400), ("h", 3600), ("m", 60)):
        if seconds >= size:
            return f"{seconds // size}{unit} ago"
    return "-"


def _launch_editor(editor: str, path: str) -> None:
    cmd = shlex.split(editor) + [path]
    try:
        p = subprocess.run(cmd, cwd=path)
    except OSError as e:
        console.print(f"[yellow]Could not start editor[/] {cmd[0]}: {e}")
        return
    if p.returncode != 0:
        console.print(f"[yellow]Editor exited with status {p.returncode}[/]")


@project_app.command("add")
def add_project(
    ctx: typer.Context,
    path: str = typer.Argument(".", help="Path to the project folder (bare names resolve under projects_root_dir)"),
    name: str | None = typer.Option(None, "--name", "-n", help="Project name (defaults to folder name)"),
    tag: list[str] | None = typer.Option(None, "--tag", "-t", help="Tag (repeatable)"),
    description: str | None = typer.Option(None, "--description", "-d", help="Short description"),
) -> None:
    """
    Register a folder as a project. Fails if the name or path is already tracked.
    """
    settings = _settings(ctx)
    reg = _open_registry(settings)

    try:
        proj = new_project(
            path,
            name=name,
            tags=tag or [],
            description=description,
            probe=lambda p: last_commit_time(p, timeout=settings.git_timeout),
            root=reg.settings.projects_root_dir or None,
        )
        update_registry(settings, lambda r: r.register_project(proj))
    except PathInvalidError as e:
        _fail(str(e))
    except DuplicateProjectError as e:
        console.print(f"[bold red]Error[/]: {e}")
        console.print("[dim]Pick another name with[/] [bold]--name <new-name>[/]")
        raise typer.Exit(code=1)
    except StoreError as e:
        _fail(str(e))

    console.print(f"[bold dark_orange]Added[/] {proj.name} → path=[dim]{proj.path}[/]")
    if proj.tags:
        console.print(f"[dim]tags:[/] {', '.join(proj.tags)}")
    if proj.description:
        console.print(f"[dim]description:[/] {proj.description}")
    if not proj.is_git_repository:
        console.print("[dim]Not a git repository.[/]")


@project_app.command("list")
def list_projects(
    ctx: typer.Context,
    tags: list[str] | None = typer.Option(None, "--tags", "-t", help="Only projects with ALL of these tags"),
    tags_any: list[str] | None = typer.Option(None, "--tags-any", "-a", help="Only projects with ANY of these tags"),
    recent: str | None = typer.Option(None, "--recent", "-r", help="Only projects active within e.g. 7d, 2w, 1mo"),
    limit: int | None = typer.Option(None, "--limit", "-l", help="Show at most N projects"),
    detailed: bool = typer.Option(False, "--detailed", "-d", help="Show more columns"),
) -> None:
    settings = _settings(ctx)
    reg = _open_registry(settings)

    if not len(reg):
        console.print("[dim]No projects yet.[/]")
        console.print("[dim]Add one with:[/] [bold]pm project add .[/]")
        return

    # Results land in the store for the next run; this command does not wait.
    RefreshCoordinator(settings).dispatch(list(reg.projects))

    if limit is None and recent and reg.settings.recent_projects_limit > 0:
        limit = reg.settings.recent_projects_limit

    entries = query_projects(reg, tags=tags or [], tags_any=tags_any or [], recent=recent, limit=limit)
    if not entries:
        console.print("[dim]No projects match the given filters.[/]")
        return

    table = Table(title=f"Projects ({len(entries)})", show_header=True, header_style="bold bright_white")
    table.add_column("Name", style="dark_orange", no_wrap=True)
    table.add_column("Tags", style="white")
    table.add_column("Activity", style="white", no_wrap=True)
    table.add_column("Accessed", style="dim", no_wrap=True)
    if detailed:
        table.add_column("Count", style="white", justify="right")
        table.add_column("Path", style="dim")
        table.add_column("Description", style="white")

    for e in entries:
        p = e.project
        row = [p.name, ", ".join(p.tags), _ago(p.last_activity), _ago(e.last_accessed)]
        if detailed:
            row += [str(e.access_count), p.path, p.description or ""]
        table.add_row(*row)

    console.print(table)


@project_app.command("switch")
def switch_project(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Project name"),
    no_editor: bool = typer.Option(False, "--no-editor", help="Do not open $VISUAL/$EDITOR in the project"),
) -> None:
    """
    Record an access, print the project path and open the editor there.
    In scripts: cd "$(pm project switch api --no-editor | tail -1)".
    """
    settings = _settings(ctx)
    reg = _open_registry(settings)
    proj = _require_by_name(reg, name)

    if not Path(proj.path).exists():
        console.print(f"[bold red]Error[/]: Path no longer exists: {proj.path}")
        console.print(f"[dim]Remove it with:[/] [bold]pm project remove {proj.name}[/]")
        raise typer.Exit(code=1)

    try:
        rec = update_registry(settings, lambda r: r.record_project_access(proj.id))
    except ProjmanError as e:
        _fail(str(e))

    console.print(f"[bold dark_orange]Switched[/] {proj.name} [dim](accessed {rec.access_count} times)[/]")
    typer.echo(proj.path)

    if not no_editor:
        _launch_editor(settings.editor, proj.path)


@project_app.command("show")
def show_project(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Project name"),
) -> None:
    settings = _settings(ctx)
    reg = _open_registry(settings)
    proj = _require_by_name(reg, name)

    last_accessed, count = reg.get_project_access_info(proj.id)

    console.print(f"[bold dark_orange]{proj.name}[/]  id=[bold]{proj.id}[/]")
    console.print(f"[dim]path:[/] {proj.path}")
    console.print(f"[dim]tags:[/] {', '.join(proj.tags) if proj.tags else '-'}")
    if proj.description:
        console.print(f"[dim]description:[/] {proj.description}")
    console.print(f"[dim]language:[/] {detect_project_language(proj.path) or '-'}")
    console.print(f"[dim]created:[/] {proj.created_at:%Y-%m-%d %H:%M}")
    console.print(f"[dim]updated:[/] {proj.updated_at:%Y-%m-%d %H:%M}")
    console.print(f"[dim]last commit:[/] {_ago(proj.git_updated_at)}")
    console.print(f"[dim]last accessed:[/] {_ago(last_accessed)}")
    console.print(f"[dim]accesses:[/] {count} here, {reg.get_total_access_count(proj.id)} total")

    if reg.settings.show_git_status and proj.is_git_repository:
        try:
            console.print(f"[dim]branch:[/] {current_branch(proj.path, settings.git_timeout) or '-'}")
            console.print(f"[dim]status:[/] {working_tree_status(proj.path, settings.git_timeout) or '-'}")
            console.print(f"[dim]remote:[/] {remote_url(proj.path, settings.git_timeout) or '-'}")
        except ProjmanError as e:
            console.print(f"[yellow]git status unavailable[/]: {e}")


@project_app.command("rename")
def rename_project(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Current project name"),
    new_name: str = typer.Option(..., "--name", "-n", help="New project name"),
) -> None:
    """
    Rename a project (registry only).
    """
    settings = _settings(ctx)
    reg = _open_registry(settings)
    proj = _require_by_name(reg, name)

    try:
        update_registry(settings, lambda r: r.rename_project(proj.id, new_name))
    except ProjmanError as e:
        _fail(str(e))

    console.print(f"[bold dark_orange]Renamed[/] {name} → {new_name}")


@project_app.command("remove")
def remove_project(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Project name"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """
    Remove a project and its access history (does NOT delete any files).
    """
    settings = _settings(ctx)
    reg = _open_registry(settings)
    proj = _require_by_name(reg, name)

    if not yes:
        confirm = typer.confirm(f"Remove '{proj.name}' from the registry? (Files will NOT be deleted)")
        if not confirm:
            console.print("[dim]Cancelled.[/]")
            raise typer.Exit(code=0)

    try:
        update_registry(settings, lambda r: r.remove_project(proj.id))
    except ProjmanError as e:
        _fail(str(e))

    console.print(f"[bold dark_orange]Removed[/] {proj.name}")


@project_app.command("refresh")
def refresh_projects(
    ctx: typer.Context,
    names: list[str] | None = typer.Argument(None, help="Project names (defaults to all)"),
    timeout: float = typer.Option(60.0, "--timeout", help="Seconds to wait for git probes"),
) -> None:
    """
    Refresh cached last-commit times for stale projects and wait for the result.
    """
    settings = _settings(ctx)
    reg = _open_registry(settings)

    if names:
        ids = [_require_by_name(reg, n).id for n in names]
    else:
        ids = list(reg.projects)

    batch = RefreshCoordinator(settings).dispatch(ids)
    if not batch.wait(timeout):
        console.print("[yellow]Some git probes are still running; results will land later.[/]")
    console.print(f"[bold dark_orange]Refreshed[/] {len(batch)} project(s)")
