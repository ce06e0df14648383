"""
Main entry point for the epdl application.
This module handles top-level setup, exception handling, and CLI invocation.
"""

import asyncio
import logging
import os
import sys

import click
import typer
from rich.console import Console
from rich.markup import escape

from epdl.cli.app import app
from epdl.cli.formatters import format_error_with_suggestions
from epdl.exceptions import EpdlError, UserInputError


def main() -> None:
    """Main entry point function."""
    if os.name == "nt":
        try:
            sys.stdout.reconfigure(encoding="utf-8")
            sys.stderr.reconfigure(encoding="utf-8")
        except (TypeError, AttributeError):
            pass

    log = logging.getLogger("epdl")
    console = Console()

    try:
        # Without standalone mode, typer.Exit codes are returned instead of raised
        exit_code = app(standalone_mode=False)
    except (KeyboardInterrupt, asyncio.CancelledError, typer.Abort):
        console.print("\n[yellow]⚠️  Operation cancelled by user.[/yellow]")
        sys.exit(130)
    except click.ClickException as e:
        e.show()
        sys.exit(e.exit_code)
    except UserInputError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        sys.exit(1)
    except EpdlError as e:
        console.print()
        console.print(format_error_with_suggestions(e))
        log.debug("Full traceback:", exc_info=True)
        sys.exit(1)
    except Exception as e:
        console.print()
        console.print(format_error_with_suggestions(e, {"type": "Unexpected"}))
        log.debug("Full traceback:", exc_info=True)
        sys.exit(1)
    sys.exit(exit_code or 0)


if __name__ == "__main__":
    main()
