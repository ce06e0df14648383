"""
Functions for formatting and displaying data in the console using Rich.
"""

from pathlib import Path

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from epdl.core.session import SessionResult
from epdl.exceptions import MuxError
from epdl.models.config import SessionConfig
from epdl.providers.base import SubtitleHandle
from epdl.utils.formatting import format_duration, format_size


def format_error_with_suggestions(
    error: Exception, context: dict | None = None
) -> Panel:
    """Formats an error with actionable suggestions into a Rich Panel."""
    error_type = type(error).__name__
    error_msg = str(error)

    suggestions_map = {
        "NetworkError": [
            "• A network connection issue occurred.",
            "• The stream URL may have expired. Fetch a fresh one.",
            "• Increase `--retry` if the server is flaky.",
        ],
        "ManifestParseError": [
            "• The URL does not point at a media playlist.",
            "• For master playlists, pick one of the variant URLs.",
            "• Use --keep-remote-names only if segment names are unique.",
        ],
        "MuxError": [
            "• Check the ffmpeg output shown above.",
            "• Make sure a recent ffmpeg is installed.",
        ],
        "FilesystemError": [
            "• Check free disk space and write permissions.",
            "• Use --work-dir to place temporary files elsewhere.",
        ],
        "ConfigurationError": [
            "• Review the options and the configuration file.",
            "• Run `epdl init --force` to write a fresh configuration.",
        ],
    }

    suggestions = suggestions_map.get(
        error_type, ["• Run the command with -vv for detailed logs."]
    )

    error_text = Text()
    error_text.append(f"{error_type}: ", style="bold red")
    error_text.append(error_msg)

    content = Table.grid(padding=(1, 0))
    content.add_row(error_text)
    content.add_row()
    content.add_row(Text("Suggestions", style="bold yellow"))
    content.add_row(Text("\n".join(suggestions)))

    if context:
        content.add_row()
        content.add_row(Text(f"Context: {context}", style="dim"))

    return Panel(
        content,
        title="[bold red]An Error Occurred[/bold red]",
        border_style="red",
        expand=False,
    )


def print_mux_diagnostics(console: Console, error: MuxError, limit: int = 40) -> None:
    """Prints the tail of the muxer's captured output."""
    lines = error.diagnostics[-limit:]
    if not lines:
        return
    console.print(
        Panel(
            escape("\n".join(lines)),
            title="[bold]ffmpeg output[/bold]",
            border_style="dim",
        )
    )


def print_config(config_path: Path, config: SessionConfig):
    """Displays the effective configuration."""
    console = Console()
    content = ""
    for key, value in config.model_dump(exclude={"config_path"}).items():
        if isinstance(value, list):
            value = ", ".join(str(v) for v in value)
        content += f"{key} = {value}\n"

    console.print(
        Panel(
            escape(content.strip()),
            title=f"Configuration ([dim]{config_path}[/dim])",
            border_style="cyan",
        )
    )


def print_subtitle_table(subtitles: list[SubtitleHandle], default: str):
    """Lists the subtitle tracks of an episode, marking the one that would be default."""
    console = Console()
    if not subtitles:
        console.print("[yellow]No subtitles available.[/yellow]")
        return
    table = Table(title="Available Subtitles", border_style="cyan")
    table.add_column("Title", style="white")
    table.add_column("Language", style="cyan")
    table.add_column("ISO", style="dim")
    table.add_column("Default", justify="center")
    for sub in subtitles:
        table.add_row(
            escape(sub.title),
            sub.language,
            sub.iso_code,
            "[green]✓[/green]" if sub.language == default else "",
        )
    console.print(table)


def print_summary_panel(result: SessionResult, duration_s: float):
    """Displays a final summary of the episode download."""
    console = Console()
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold cyan", justify="right", width=16)
    table.add_column(style="white", justify="left")

    if result.skipped:
        table.add_row("○ Skipped:", "[yellow]output already exists[/yellow]")
    for path in result.output_paths:
        table.add_row("✓ Saved:", f"[dim]{escape(str(path))}[/dim]")
    if result.resolution:
        table.add_row("Resolution:", f"{result.resolution}p")
    if result.segment_count:
        table.add_row("Segments:", str(result.segment_count))
    if result.downloaded_bytes:
        table.add_row("Downloaded:", format_size(result.downloaded_bytes))
    table.add_row("Duration:", format_duration(duration_s))

    console.print(
        Panel(table, title="[bold green]Session Summary[/bold green]", border_style="green")
    )
