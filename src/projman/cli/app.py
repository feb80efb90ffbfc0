from __future__ import annotations

import logging

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from projman.config.config import SETTING_TYPES, coerce_setting, load_runtime_settings
from projman.core.errors import StoreError
from projman.core.version import __version__
from projman.projects.commands import _settings, project_app
from projman.projects.store import init_store, load_registry, update_registry

app = typer.Typer(add_completion=False, no_args_is_help=False)
app.add_typer(project_app, name="project")

config_app = typer.Typer(help="Show or change registry settings.", no_args_is_help=True)
app.add_typer(config_app, name="config")

console = Console()

ACCENT = "dark_orange"


def _setup_logging(verbose: bool) -> None:
    logger = logging.getLogger("projman")
    for h in list(logger.handlers):
        if isinstance(h, RichHandler):
            logger.removeHandler(h)
    handler = RichHandler(console=Console(stderr=True), show_time=False, show_path=False)
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: bool = typer.Option(False, "--version", "-v", help="Show version and exit"),
    verbose: bool = typer.Option(False, "--verbose", help="Show debug logs"),
) -> None:
    if version:
        console.print(f"[bold {ACCENT}]pm[/] v{__version__}")
        raise typer.Exit()

    _setup_logging(verbose)
    try:
        ctx.obj = load_runtime_settings()
    except ValueError as e:
        console.print(f"[bold red]Error[/]: {e}")
        raise typer.Exit(code=1)

    if ctx.invoked_subcommand is None:
        table = Table(title="Commands", show_header=True, header_style="bold bright_white")
        table.add_column("Command", style=ACCENT, no_wrap=True)
        table.add_column("What it does", style="white")

        def section(title: str) -> None:
            table.add_row(f"[bold]{title}[/]", "", style="dim")

        section("Getting started")
        table.add_row("pm init", "Create an empty registry")
        table.add_row("pm project add <path>", "Track a project folder (--name, --tag, --description)")

        section("Projects")
        table.add_row("pm project list", "List projects (filters: --tags/--tags-any/--recent/--limit)")
        table.add_row("pm project switch <name>", "Record an access, print the path, open the editor (--no-editor)")
        table.add_row("pm project show <name>", "Show project details and access stats")
        table.add_row("pm project rename <name> --name <new>", "Rename a project")
        table.add_row("pm project remove <name>", "Stop tracking a project (files are kept)")
        table.add_row("pm project refresh \\[names]", "Refresh cached last-commit times")

        section("Settings")
        table.add_row("pm config show", "Show settings and runtime paths")
        table.add_row("pm config set <key> <value>", "Change a setting")

        console.print(table)
        console.print("\n[dim]Tip:[/] track the current folder with [bold]pm project add .[/]\n")


@app.command()
def init(ctx: typer.Context) -> None:
    """Create the registry file if it does not exist yet."""
    settings = _settings(ctx)
    try:
        created = init_store(settings)
    except StoreError as e:
        console.print(f"[bold red]Error[/]: {e}")
        raise typer.Exit(code=1)

    if created:
        console.print(f"[green]Registry created[/] at [dim]{settings.registry_path}[/]")
    else:
        console.print(f"[dim]Registry already exists at[/] {settings.registry_path}")


@config_app.command("show")
def config_show(ctx: typer.Context) -> None:
    settings = _settings(ctx)
    try:
        init_store(settings)
        reg = load_registry(settings)
    except StoreError as e:
        console.print(f"[bold red]Error[/]: {e}")
        raise typer.Exit(code=1)

    table = Table(title="Settings", show_header=True, header_style="bold bright_white")
    table.add_column("Key", style=ACCENT, no_wrap=True)
    table.add_column("Value", style="white")
    for key, value in reg.settings.to_dict().items():
        table.add_row(key, str(value))
    table.add_row("[dim]registry[/]", str(settings.registry_path))
    table.add_row("[dim]machine_id[/]", settings.machine_id)
    table.add_row("[dim]git_update_interval[/]", str(settings.git_update_interval))
    console.print(table)


@config_app.command("set")
def config_set(
    ctx: typer.Context,
    key: str = typer.Argument(..., help=f"One of: {', '.join(SETTING_TYPES)}"),
    value: str = typer.Argument(..., help="New value"),
) -> None:
    settings = _settings(ctx)
    try:
        coerced = coerce_setting(key, value)
    except (KeyError, ValueError) as e:
        console.print(f"[bold red]Error[/]: {e.args[0]}")
        raise typer.Exit(code=1)

    try:
        init_store(settings)
        update_registry(settings, lambda reg: setattr(reg.settings, key, coerced))
    except StoreError as e:
        console.print(f"[bold red]Error[/]: {e}")
        raise typer.Exit(code=1)

    console.print(f"[green]Setting updated[/] {key} -> {coerced}")
