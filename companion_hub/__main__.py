"""
Console entry point: runs the CLI and turns escaped errors into readable panels.
"""

import asyncio
import logging
import os
import sys

import typer
from rich.console import Console

from companion_hub.cli.app import app
from companion_hub.cli.formatters import format_error_with_suggestions
from companion_hub.exceptions import CompanionHubError, ConfigurationError

EXIT_INTERRUPTED = 130


def _error_context(error: CompanionHubError) -> dict | None:
    if isinstance(error, ConfigurationError) and error.file:
        return {"file": error.file}
    argument = getattr(error, "argument", None)
    if argument is not None:
        return {"argument": argument.name}
    return None


def main() -> None:
    """Runs the companion-hub CLI."""
    if os.name == "nt":
        # Child output is decoded as UTF-8; keep the console in step.
        try:
            sys.stdout.reconfigure(encoding="utf-8")
            sys.stderr.reconfigure(encoding="utf-8")
        except (TypeError, AttributeError):
            pass

    console = Console(stderr=True)
    try:
        app()
    except (typer.Exit, typer.Abort):
        pass
    except (KeyboardInterrupt, asyncio.CancelledError):
        console.print("\n[yellow]Interrupted; running apps were asked to close.[/yellow]")
        sys.exit(EXIT_INTERRUPTED)
    except CompanionHubError as e:
        console.print(format_error_with_suggestions(e, _error_context(e)))
        sys.exit(1)
    except Exception as e:
        console.print(format_error_with_suggestions(e, {"type": "Unexpected"}))
        logging.getLogger("companion_hub").debug("Full traceback:", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
