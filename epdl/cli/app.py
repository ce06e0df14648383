"""
Defines the command-line interface for the application using Typer.
"""

import asyncio
import logging
import os
import time
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler

from epdl import __version__
from epdl.api.client import HttpClient
from epdl.core.selection import plan_subtitles
from epdl.core.session import EpisodeSession
from epdl.exceptions import EpdlError, MuxError
from epdl.media.muxer import verify_ffmpeg
from epdl.providers.direct import DirectStreamEpisode, LocalSubtitle
from epdl.storage.config_manager import ConfigManager
from epdl.utils.path import default_output_name

from .formatters import (
    print_config,
    print_mux_diagnostics,
    print_subtitle_table,
    print_summary_panel,
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
log = logging.getLogger("epdl")

app = typer.Typer(
    name="epdl",
    help=(
        "Download segmented episode streams and mux them with subtitles and fonts."
        " Use 'epdl <command> --help' for more info."
    ),
    rich_markup_mode="rich",
    pretty_exceptions_show_locals=False,
    add_completion=False,
)


def get_config_dir() -> Path:
    if os.name == "nt":
        base_dir = Path(os.getenv("APPDATA", "~\\AppData\\Roaming"))
    else:
        base_dir = Path(os.getenv("XDG_CONFIG_HOME", "~/.config"))
    return base_dir.expanduser() / "epdl"


CONFIG_DIR = get_config_dir()
CONFIG_FILE = CONFIG_DIR / "config.ini"


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase logging verbosity (-vv for debug).",
    ),
    version: bool = typer.Option(
        False, "--version", help="Show version and exit.", is_eager=True
    ),
    show_config: bool = typer.Option(
        False, "--show-config", help="Display the effective configuration."
    ),
):
    """Segmented stream downloader"""
    if version:
        console.print(f"[bold]epdl[/bold] version [cyan]{__version__}[/cyan]")
        raise typer.Exit()

    log_level = "INFO"
    if verbose >= 2:
        log_level = "DEBUG"
    logging.getLogger("epdl").setLevel(log_level)

    if show_config:
        config = ConfigManager(CONFIG_FILE).load_config()
        print_config(CONFIG_FILE, config)
        raise typer.Exit()

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


@app.command()
def init(
    force: bool = typer.Option(
        False, "--force", "-f", help="Overwrite an existing configuration file."
    ),
):
    """Write a configuration file with all default settings."""
    if CONFIG_FILE.exists() and not force and not typer.confirm(
        "Configuration file already exists. Overwrite it?"
    ):
        raise typer.Abort()
    ConfigManager(CONFIG_FILE).save_new_config()
    console.print(f"[bold green]✓ Configuration saved to '{CONFIG_FILE}'[/bold green]")


@app.command(name="download")
def download_command(
    url: str = typer.Argument(..., help="URL of the media playlist (.m3u8)."),
    output: Path | None = typer.Option(
        None, "-o", "--output", help="Output file. Defaults to the playlist name + .mkv."
    ),
    subtitles: list[str] | None = typer.Option(  # noqa: B008
        None,
        "--sub",
        help="Subtitle file to include as FILE:LANG[:TITLE]. Repeatable.",
    ),
    sub_lang: str | None = typer.Option(
        None,
        "--sub-lang",
        help="Comma-separated subtitle languages to include (e.g. deDE,enUS), or 'none'.",
    ),
    default_sub: str | None = typer.Option(
        None, "--default-sub", help="Subtitle language to flag as default."
    ),
    fonts: list[Path] | None = typer.Option(  # noqa: B008
        None, "--font", help="Font file to attach. Repeatable."
    ),
    attach_fonts: bool | None = typer.Option(
        None,
        "--attach-fonts/--no-attach-fonts",
        help="Download and attach the fonts used by the subtitles.",
    ),
    font_base_url: str | None = typer.Option(
        None, "--font-base-url", help="URL the subtitle fonts are downloaded from."
    ),
    hardsub: bool | None = typer.Option(
        None,
        "--hardsub/--softsub",
        help="The stream has the default subtitle burned in; no subtitle tracks are muxed.",
    ),
    list_subs: bool = typer.Option(
        False, "--list-subs", help="List the available subtitles and exit."
    ),
    resolution: str | None = typer.Option(
        None, "-f", "--format", help="Nominal video resolution, e.g. 1080p."
    ),
    connections: int | None = typer.Option(
        None, "-c", "--connections", help="Number of simultaneous connections."
    ),
    retry: int | None = typer.Option(
        None, "--retry", help="Max number of download attempts per file before aborting."
    ),
    subs_only: bool = typer.Option(
        False, "--subs-only", help="Only place the subtitle files. No video."
    ),
    keep_remote_names: bool | None = typer.Option(
        None,
        "--keep-remote-names/--ordinal-names",
        help="Name local segment files after their remote names.",
    ),
    progress_bar: bool | None = typer.Option(
        None, "--progress-bar/--no-progress-bar", help="Show progress bars."
    ),
    work_dir: Path | None = typer.Option(
        None, "--work-dir", help="Directory for temporary files."
    ),
    proxy: str | None = typer.Option(None, "--proxy", help="HTTP(S) proxy URL."),
):
    """Download a playlist and mux it into one file."""
    cli_options = {
        key: value
        for key, value in {
            "resolution": resolution,
            "connections": connections,
            "retry": retry,
            "sub_lang": sub_lang.replace(" ", ",").split(",") if sub_lang else None,
            "default_sub": default_sub,
            "fonts": fonts,
            "attach_fonts": attach_fonts,
            "font_base_url": font_base_url,
            "hardsub": hardsub,
            "subs_only": subs_only,
            "keep_remote_names": keep_remote_names,
            "progress_bar": progress_bar,
            "work_dir": work_dir,
            "proxy": proxy,
        }.items()
        if value is not None
    }

    async def _download_async():
        config = ConfigManager(CONFIG_FILE).load_config(cli_options)

        episode = DirectStreamEpisode(
            stream_url=url,
            height=config.resolution_height,
            subtitles=[LocalSubtitle.from_option(value) for value in subtitles or []],
        )
        plan = plan_subtitles(config, episode.subtitles, await episode.get_default_language())
        if list_subs:
            default = plan.hardsub_language or plan.default
            print_subtitle_table(await episode.get_subtitles(), default)
            return
        episode.hardsub_language = plan.hardsub_language

        if not config.subs_only and not await verify_ffmpeg(config.ffmpeg_path):
            console.print(f"[red]✗ '{config.ffmpeg_path}' could not be started. ffmpeg needs to be installed.[/red]")
            raise typer.Exit(code=1)

        output_path = output or default_output_name(url)

        start_time = time.monotonic()
        async with HttpClient(
            max_connections=config.connections,
            proxy=config.proxy,
            user_agent=config.user_agent,
            timeout=config.request_timeout,
        ) as http:
            session = EpisodeSession(config, http)
            with ProgressManager(console, show_bars=config.progress_bar) as progress_manager:
                progress_manager.attach(session)
                try:
                    result = await session.run(episode, output_path)
                except MuxError as e:
                    print_mux_diagnostics(console, e)
                    raise

        print_summary_panel(result, time.monotonic() - start_time)

    asyncio.run(_download_async())


@app.command()
def diagnose():
    """Check the configuration and the muxing tool."""
    console.print("\n[bold cyan]Running diagnostics...[/bold cyan]\n")
    issues_found = False
    if CONFIG_FILE.is_file():
        console.print(f"[green]✓[/] Config file exists at: [dim]{CONFIG_FILE}[/dim]")
    else:
        console.print(
            "[yellow]○ No config file found.[/] Defaults are used. "
            "Run [cyan]epdl init[/cyan] to create one."
        )

    try:
        config = ConfigManager(CONFIG_FILE).load_config()
        console.print("[green]✓[/] Configuration is valid.")
    except EpdlError as e:
        console.print(f"[red]✗ Configuration validation failed: {e}[/red]")
        raise typer.Exit(code=1) from e

    if asyncio.run(verify_ffmpeg(config.ffmpeg_path)):
        console.print(f"[green]✓[/] '{config.ffmpeg_path}' can be started.")
    else:
        console.print(f"[red]✗ '{config.ffmpeg_path}' was not found.[/red]")
        issues_found = True

    console.print()
    if not issues_found:
        console.print("[bold green]✓ All checks passed! Your setup looks good.[/bold green]\n")
    else:
        console.print(
            "[bold red]✗ Some issues were found. "
            "Please review the messages above.[/bold red]\n"
        )
        raise typer.Exit(code=1)
