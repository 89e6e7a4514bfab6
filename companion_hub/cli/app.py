"""
Defines the command-line interface for the application using Typer.
"""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler

from companion_hub import __version__
from companion_hub.acquisition import close_connection_pool
from companion_hub.core.downloadable import AppDownloadable
from companion_hub.core.runtime import AppRuntime
from companion_hub.exceptions import CompanionHubError, SpawnError
from companion_hub.models.settings import HubSettings
from companion_hub.storage.catalog import CATALOG_FILE_NAME, AppCatalog
from companion_hub.storage.config_manager import ConfigManager
from companion_hub.utils.path import get_config_dir
from companion_hub.utils.structured_logger import create_structured_logger

from .formatters import (
    print_app_table,
    print_config,
    print_monitor,
    print_validation_table,
)
from .progress_manager import ProgressManager

console = Console()

logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[
        RichHandler(
            console=console,
            rich_tracebacks=True,
            show_path=False,
            show_level=False,
            markup=True,
        )
    ],
)
log = logging.getLogger("companion_hub")

app = typer.Typer(
    name="companion-hub",
    help=(
        "Download, configure, launch and supervise companion apps. Use"
        " 'companion-hub <command> --help' for more info."
    ),
    rich_markup_mode="rich",
    pretty_exceptions_show_locals=False,
    add_completion=False,
)

SETTINGS_FILE_NAME = "settings.ini"


@dataclass
class HubContext:
    config_dir: Path

    @property
    def settings_file(self) -> Path:
        return self.config_dir / SETTINGS_FILE_NAME

    @property
    def catalog_file(self) -> Path:
        return self.config_dir / CATALOG_FILE_NAME

    def load(self) -> tuple[HubSettings, AppCatalog, dict[str, AppRuntime]]:
        settings = ConfigManager(self.settings_file).load_config()
        catalog = AppCatalog(self.catalog_file, settings)
        return settings, catalog, catalog.load()


def _hub(ctx: typer.Context) -> HubContext:
    return ctx.obj


def _select(apps: dict[str, AppRuntime], name: str) -> AppRuntime:
    if name not in apps:
        console.print(
            f"[red]✗ Unknown app '{name}'.[/red] Known apps: "
            f"[cyan]{', '.join(apps) or '-'}[/cyan]"
        )
        raise typer.Exit(code=1)
    return apps[name]


def _parse_assignments(assignments: list[str] | None) -> dict[str, str]:
    values = {}
    for assignment in assignments or []:
        name, separator, value = assignment.partition("=")
        if not separator or not name:
            console.print(f"[red]✗ Expected name=value, got '{assignment}'.[/red]")
            raise typer.Exit(code=1)
        values[name.strip()] = value
    return values


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase logging verbosity (-vv for debug and app output).",
    ),
    version: bool = typer.Option(
        False, "--version", help="Show version and exit.", is_eager=True
    ),
    config_dir: Path | None = typer.Option(
        None,
        "--config-dir",
        help="Directory holding settings.ini and apps.json.",
        envvar="COMPANION_HUB_CONFIG_DIR",
    ),
    show_config: bool = typer.Option(
        False, "--show-config", help="Display the current settings."
    ),
):
    """Companion Hub CLI"""
    if version:
        console.print(
            f"[bold]companion-hub[/bold] version [cyan]{__version__}[/cyan]"
        )
        raise typer.Exit()

    log_level = "INFO"
    if verbose >= 2:
        log_level = "DEBUG"
    logging.getLogger("companion_hub").setLevel(log_level)

    hub = HubContext(config_dir=(config_dir or get_config_dir()).expanduser())
    ctx.obj = hub

    if show_config:
        try:
            settings = ConfigManager(hub.settings_file).load_config()
        except CompanionHubError as e:
            console.print(f"[red]✗ {e}[/red]")
            raise typer.Exit(code=1) from e
        print_config(hub.settings_file, settings.model_dump(exclude={"config_path"}))
        raise typer.Exit()

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


@app.command()
def init(
    ctx: typer.Context,
    force: bool = typer.Option(
        False, "--force", "-f", help="Overwrite existing settings without asking."
    ),
):
    """Create the settings file and an empty app catalog."""
    hub = _hub(ctx)
    if (
        hub.settings_file.exists()
        and not force
        and not typer.confirm("Settings file already exists. Overwrite it?")
    ):
        raise typer.Abort()

    try:
        ConfigManager(hub.settings_file).save_new_config()
        console.print(f"[green]✓ Settings saved to '{hub.settings_file}'[/green]")
        if not hub.catalog_file.exists():
            AppCatalog.write_empty(hub.catalog_file)
            console.print(f"[green]✓ App catalog created at '{hub.catalog_file}'[/green]")
    except CompanionHubError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(code=1) from e
    console.print("Add your apps to the catalog, then try: [cyan]companion-hub list[/cyan]")


@app.command(name="list")
def list_apps(ctx: typer.Context):
    """Show every app of the catalog."""
    _, _, apps = _hub(ctx).load()
    print_app_table(apps)


@app.command()
def validate(
    ctx: typer.Context,
    name: str | None = typer.Argument(None, help="Only validate this app."),
):
    """Compose the command line of each app and report invalid arguments."""
    _, _, apps = _hub(ctx).load()
    selected = {name: _select(apps, name)} if name else apps
    results = {
        app_name: runtime.compose_arguments() for app_name, runtime in selected.items()
    }
    print_validation_table(results, selected)
    if any(composed is None for composed in results.values()):
        raise typer.Exit(code=1)


@app.command(name="set")
def set_values(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="The app to configure."),
    assignments: list[str] = typer.Argument(  # noqa: B008
        ..., help="Argument values as name=value; an empty value clears it."
    ),
):
    """Store argument values for an app in the catalog."""
    _, catalog, apps = _hub(ctx).load()
    runtime = _select(apps, name)
    if runtime.configuration is None:
        console.print(f"[red]✗ '{name}' has no configurable arguments.[/red]")
        raise typer.Exit(code=1)

    values = _parse_assignments(assignments)
    ignored = runtime.configuration.update_values(
        {key: value or None for key, value in values.items()}
    )
    if ignored:
        console.print(
            f"[red]✗ Unknown or runtime-only argument(s): {', '.join(ignored)}[/red]"
        )
        raise typer.Exit(code=1)

    if runtime.compose_arguments() is None:
        argument = runtime.argument_required
        console.print(
            f"[yellow]⚠ '{argument.name_human if argument else name}' is still"
            " invalid; values saved anyway.[/yellow]"
        )
    for argument in runtime.configuration.changed_arguments():
        console.print(f"[cyan]•[/cyan] {argument.name} = {argument.value!r}")
    if catalog.save_values(apps):
        console.print(f"[green]✓ Saved to '{catalog.catalog_file_path}'[/green]")
    else:
        console.print("[dim]Nothing changed.[/dim]")


@app.command()
def install(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="The app to download or update."),
):
    """Download (and install) an app if the cached copy is outdated."""
    settings, _, apps = _hub(ctx).load()
    runtime = _select(apps, name)
    if not isinstance(runtime, AppDownloadable):
        console.print(f"[yellow]'{name}' is a {runtime.kind.value} app; nothing to install.[/yellow]")
        raise typer.Exit()

    async def _install_async() -> bool:
        structured, lifecycle = _structured_logging(settings)
        lifecycle.attach(runtime)
        try:
            async with ProgressManager(console=console) as progress_manager:
                progress_manager.attach(runtime)
                if not await runtime.install():
                    console.print(f"[green]✓ '{name}' is up to date.[/green]")
                    return True
                await runtime.wait_for_acquisition()
                return not progress_manager.failures
        finally:
            lifecycle.detach_all()
            structured.close()
            await close_connection_pool()

    if not asyncio.run(_install_async()):
        raise typer.Exit(code=1)


@app.command()
def run(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="The app to launch."),
    runtime_arguments: list[str] | None = typer.Option(  # noqa: B008
        None,
        "--arg",
        "-a",
        help="Per-run argument override as name=value (repeatable, not saved).",
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q", help="Do not echo the app's output."
    ),
):
    """Launch an app (installing it first if needed) and supervise it until it exits."""
    settings, _, apps = _hub(ctx).load()
    runtime = _select(apps, name)
    overrides = _parse_assignments(runtime_arguments) or None

    async def _run_async() -> bool:
        structured, lifecycle = _structured_logging(settings)
        lifecycle.attach(runtime)
        try:
            async with ProgressManager(
                console=console, show_output=not quiet
            ) as progress_manager:
                progress_manager.attach(runtime)
                try:
                    started = await runtime.run(overrides)
                    if not started and isinstance(runtime, AppDownloadable):
                        await runtime.wait_for_acquisition()
                    await runtime.wait_for_exit()
                except SpawnError as e:
                    console.print(f"[bold red]Error: {e}[/bold red]")
                    return False
                except asyncio.CancelledError:
                    await runtime.close()
                    raise
                return not progress_manager.failures
        finally:
            lifecycle.detach_all()
            structured.close()
            await close_connection_pool()

    try:
        ok = asyncio.run(_run_async())
    except KeyboardInterrupt:
        console.print(f"\n[yellow]Stopped '{runtime.display_name}'.[/yellow]")
        raise typer.Exit() from None
    if quiet and ok:
        print_monitor(runtime)
    if not ok:
        raise typer.Exit(code=1)


@app.command()
def close(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="The app to stop."),
):
    """Stop every process started from an app's executable."""
    _, _, apps = _hub(ctx).load()
    runtime = _select(apps, name)
    asyncio.run(runtime.close())
    console.print(f"[green]✓ Closed '{runtime.display_name}'.[/green]")


def _structured_logging(settings: HubSettings):
    log_dir = Path(settings.config_path) / "logs" if settings.config_path else None
    structured, lifecycle = create_structured_logger(
        log_dir=log_dir, enable_json=settings.log_json
    )
    structured.set_session_context(version=__version__)
    return structured, lifecycle
