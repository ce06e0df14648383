"""
Renders download and mux progress events with Rich.
"""

import logging
import time

from rich.console import Console
from rich.markup import escape
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeRemainingColumn,
)

from epdl.media.muxer import is_noise
from epdl.models.media import MuxProgress
from epdl.models.stats import ProgressSnapshot
from epdl.utils.formatting import format_duration, format_size, format_speed, format_timestamp

log = logging.getLogger("epdl")


class ProgressManager:
    """
    Subscribes to an episode session and shows its progress.

    With `show_bars` a Rich progress display is used; otherwise a one-line status
    is logged at most once per second.
    """

    def __init__(self, console: Console, show_bars: bool = True):
        self.console = console
        self.show_bars = show_bars
        self.progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}", justify="left"),
            BarColumn(bar_width=30),
            "[progress.percentage]{task.percentage:>3.0f}%",
            "•",
            TextColumn("{task.fields[detail]}"),
            "•",
            TextColumn("{task.fields[rate]}"),
            "•",
            TimeRemainingColumn(),
            console=console,
            transient=False,
        )
        self._download_task: TaskID | None = None
        self._mux_task: TaskID | None = None
        self._last_print = 0.0

    def __enter__(self):
        if self.show_bars:
            self.progress.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.show_bars:
            self.progress.stop()

    def attach(self, session) -> None:
        """Registers this manager's listeners on an EpisodeSession."""
        session.on_download_progress(self.update_download)
        session.on_mux_progress(self.update_mux)
        session.on_mux_info(self.mux_info)

    def _throttled(self) -> bool:
        now = time.monotonic()
        if now - self._last_print < 1.0:
            return True
        self._last_print = now
        return False

    def update_download(self, snapshot: ProgressSnapshot) -> None:
        speed = format_speed(snapshot.speed)
        detail = (
            f"{format_size(snapshot.downloaded_bytes)}/"
            f"{format_size(snapshot.estimated_total_bytes)}"
        )
        if not self.show_bars:
            if self._throttled() and not snapshot.finished:
                return
            log.info(
                f"downloading {snapshot.percentage:.0f}% | {detail} | Speed: {speed}"
                f" | ETA: {format_duration(snapshot.eta_seconds)}"
            )
            return

        if self._download_task is None:
            self._download_task = self.progress.add_task(
                "downloading", total=max(1, snapshot.estimated_total_bytes), detail="", rate=""
            )
        self.progress.update(
            self._download_task,
            total=max(1, snapshot.estimated_total_bytes),
            completed=snapshot.downloaded_bytes,
            detail=detail,
            rate=speed,
        )

    def update_mux(self, state: MuxProgress) -> None:
        total = state.total_text or format_timestamp(state.total_duration_ms or 0)
        detail = f"{state.elapsed_text or format_timestamp(state.elapsed_ms)}/{total}"
        rate = f"{state.rate:g} fps"
        if not self.show_bars:
            if self._throttled():
                return
            log.info(f"muxing {state.percentage:.0f}% | {detail} | Speed: {rate}")
            return

        if self._mux_task is None:
            self._mux_task = self.progress.add_task(
                "muxing", total=max(1, state.total_duration_ms or 1), detail="", rate=""
            )
        self.progress.update(
            self._mux_task,
            total=max(1, state.total_duration_ms or 1),
            completed=state.elapsed_ms,
            detail=detail,
            rate=rate,
        )

    def mux_info(self, line: str) -> None:
        if self.show_bars or is_noise(line):
            return
        self.console.print(f"[dim]{escape(line)}[/dim]")
