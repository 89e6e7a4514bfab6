"""
Functions for formatting and displaying data in the console using Rich.
"""

from pathlib import Path
from typing import Any

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from companion_hub.core.runtime import AppRuntime


def format_error_with_suggestions(
    error: Exception, context: dict | None = None
) -> Panel:
    """Formats an error with actionable suggestions into a Rich Panel."""
    error_type = type(error).__name__
    error_msg = str(error)

    suggestions_map = {
        "ConfigurationError": [
            "• Run `companion-hub init` to create the settings and the app catalog.",
            "• Check the file named in the message for typos or invalid values.",
        ],
        "ArgumentError": [
            "• Fix the argument value in the app catalog or pass it with `-a`.",
            "• Run `companion-hub validate` to check every app at once.",
        ],
        "SpawnError": [
            "• Check that the executable exists and is executable.",
            "• Set `chmod` for the app if it was downloaded without permissions.",
        ],
        "ClientResponseError": [
            "• The download server rejected the request.",
            "• Verify the download_url of the app.",
        ],
        "TimeoutError": [
            "• The download server did not answer in time.",
            "• Increase `probe_timeout` in settings.ini.",
        ],
    }

    suggestions = suggestions_map.get(
        error_type, ["• Run the command with -vv for detailed logs."]
    )

    error_text = Text()
    error_text.append(f"{error_type}: ", style="bold red")
    error_text.append(error_msg)

    suggestion_text = Text("\n".join(suggestions))

    content = Table.grid(padding=(1, 0))
    content.add_row(error_text)
    content.add_row()
    content.add_row(Text("Suggestions", style="bold yellow"))
    content.add_row(suggestion_text)

    if context:
        content.add_row()
        content.add_row(Text(f"Context: {context}", style="dim"))

    return Panel(
        content,
        title="[bold red]An Error Occurred[/bold red]",
        border_style="red",
        expand=False,
    )


def print_config(config_path: Path, config_data: dict[str, Any]):
    """Displays the current settings."""
    console = Console()
    content = "\n".join(
        f"{key} = {getattr(value, 'value', value)}"
        for key, value in sorted(config_data.items())
    )
    console.print(
        Panel(
            content,
            title=f"Settings ([dim]{config_path}[/dim])",
            border_style="cyan",
        )
    )


def print_app_table(apps: dict[str, AppRuntime]):
    """Displays every app of the catalog with its current state."""
    console = Console()
    if not apps:
        console.print("[dim]The app catalog is empty.[/dim]")
        return

    table = Table(title="Apps", box=box.ROUNDED)
    table.add_column("Name", style="bold cyan", no_wrap=True)
    table.add_column("Kind", style="magenta")
    table.add_column("Installed", justify="center")
    table.add_column("Configurable", justify="center")
    table.add_column("Description", style="dim")

    for app in apps.values():
        name = app.name
        if app.custom_name:
            name = f"{app.name} [dim]({escape(app.custom_name)})[/dim]"
        table.add_row(
            name,
            app.kind.value,
            _mark(app.is_installed()),
            _mark(app.is_configurable()),
            escape(app.description_short or ""),
        )
    console.print(table)


def print_validation_table(results: dict[str, str | None], apps: dict[str, AppRuntime]):
    """
    Displays the composed command line of each app, or the argument that
    blocks it.
    """
    console = Console()
    table = Table(box=box.SIMPLE, padding=(0, 2))
    table.add_column("App", style="bold cyan", no_wrap=True)
    table.add_column("Status", justify="center")
    table.add_column("Command line / problem")

    for name, composed in results.items():
        app = apps[name]
        if composed is None:
            argument = app.argument_required
            problem = argument.name_human if argument else "unknown argument"
            table.add_row(name, "[red]✗[/red]", f"[yellow]{escape(problem)}[/yellow]")
        else:
            shown = app.configuration.redact(composed) if app.configuration else composed
            table.add_row(name, "[green]✓[/green]", f"[dim]{escape(shown.strip())}[/dim]")

    failed = sum(1 for composed in results.values() if composed is None)
    border = "red" if failed else "green"
    title = (
        f"[bold red]✗ {failed} app(s) need configuration[/bold red]"
        if failed
        else "[bold green]✓ All apps validated[/bold green]"
    )
    console.print(Panel(table, title=title, border_style=border))


def print_monitor(app: AppRuntime):
    """Displays the captured output of an app."""
    console = Console()
    if not app.monitor.available:
        console.print(f"[dim]No output captured for {app.display_name}.[/dim]")
        return
    console.print(
        Panel(
            Text(app.monitor_text.rstrip()),
            title=f"[bold]Output of {escape(app.display_name)}[/bold]",
            border_style="blue",
        )
    )


def _mark(value: bool) -> str:
    return "[green]✓[/green]" if value else "[red]✗[/red]"
