"""
Handles the download of a single episode, from stream selection to the final,
atomically placed output file.
"""

import asyncio
import logging
import os
import shutil
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

import aiofiles
from rich.markup import escape

from epdl.exceptions import DownloadCancelledError, FilesystemError, UserInputError
from epdl.media.downloader import RetryPolicy, SegmentDownloader
from epdl.media.fonts import download_fonts
from epdl.media.keys import resolve_keys
from epdl.media.manifest import ManifestProcessor, ordinal_segment_name, remote_segment_name
from epdl.media.muxer import VideoMuxer
from epdl.models.config import SessionConfig
from epdl.models.media import MuxProgress, MuxSpec, SubtitleTrack
from epdl.models.stats import ProgressSnapshot
from epdl.providers.base import Episode
from epdl.utils.path import (
    create_dir,
    create_workspace,
    remove_workspace,
    subtitle_output_path,
    temp_output_path,
)

from .selection import pick_resolution, plan_subtitles, write_subtitles

log = logging.getLogger(__name__)

VIDEO_DIR = "VodVid"
SUBTITLE_DIR = "SubData"
FONT_DIR = "Fonts"


class SessionState(Enum):
    """Stages an episode download moves through."""

    IDLE = "idle"
    RESOLVING_STREAM = "resolving_stream"
    DOWNLOADING_MANIFEST = "downloading_manifest"
    DOWNLOADING_KEY = "downloading_key"
    DOWNLOADING_SEGMENTS = "downloading_segments"
    MUXING = "muxing"
    DONE = "done"
    FAILED = "failed"


@dataclass
class SessionResult:
    """What an episode download produced."""

    output_paths: list[Path] = field(default_factory=list)
    skipped: bool = False
    resolution: Optional[int] = None
    segment_count: int = 0
    downloaded_bytes: int = 0


class EpisodeSession:
    """
    Orchestrates the download of one episode inside a private workspace.

    The workspace is removed on every exit path. Listeners for state changes,
    download progress and mux progress must be registered before `run`.
    """

    def __init__(
        self,
        config: SessionConfig,
        http,
        mux_command: Optional[Sequence[str]] = None,
    ):
        self.config = config
        self.http = http
        self.mux_command = list(mux_command or [config.ffmpeg_path])
        self.retry_policy = RetryPolicy(
            max_attempts=config.retry,
            base_delay=config.retry_delay,
            max_delay=config.max_retry_delay,
        )

        self.state = SessionState.IDLE
        self.workspace: Optional[Path] = None
        self._temp_output: Optional[Path] = None
        self._downloader: Optional[SegmentDownloader] = None
        self._aborted = False

        self._state_listeners: list[Callable[[SessionState], None]] = []
        self._download_listeners: list[Callable[[ProgressSnapshot], None]] = []
        self._mux_progress_listeners: list[Callable[[MuxProgress], None]] = []
        self._mux_info_listeners: list[Callable[[str], None]] = []

    def on_state(self, listener: Callable[[SessionState], None]) -> None:
        self._state_listeners.append(listener)

    def on_download_progress(self, listener: Callable[[ProgressSnapshot], None]) -> None:
        self._download_listeners.append(listener)

    def on_mux_progress(self, listener: Callable[[MuxProgress], None]) -> None:
        self._mux_progress_listeners.append(listener)

    def on_mux_info(self, listener: Callable[[str], None]) -> None:
        self._mux_info_listeners.append(listener)

    def abort(self) -> None:
        """Stops scheduling new segment downloads; the session then fails and cleans up."""
        self._aborted = True
        if self._downloader:
            self._downloader.abort()

    def _set_state(self, state: SessionState) -> None:
        log.debug(f"Session state: {self.state.value} -> {state.value}")
        self.state = state
        for listener in self._state_listeners:
            listener(state)

    async def run(self, episode: Episode, output_path: Path) -> SessionResult:
        """
        Downloads `episode` to `output_path`.

        In subtitles-only mode the subtitle files are placed next to `output_path`
        as `<stem>.<lang>.ass` and nothing else is downloaded.

        Raises:
            UserInputError: For blocked episodes or unavailable selections.
            NetworkError: If the playlist, a key, or a segment cannot be fetched.
            ManifestParseError: If the playlist is malformed.
            MuxError: If the muxer fails; carries its diagnostics.
            FilesystemError: If the workspace or output cannot be written.
        """
        output_path = Path(output_path)
        self.workspace = create_workspace(self.config.work_dir)
        log.debug(f"Created workspace {self.workspace}")
        try:
            result = await self._run(episode, output_path)
        except (Exception, asyncio.CancelledError):
            self._set_state(SessionState.FAILED)
            raise
        finally:
            self._cleanup()
        self._set_state(SessionState.DONE)
        return result

    def _cleanup(self) -> None:
        if self._temp_output is not None and self._temp_output.exists():
            try:
                self._temp_output.unlink()
            except OSError as e:
                log.warning(f"[yellow]Could not remove '{self._temp_output}': {e}[/yellow]")
        self._temp_output = None
        if self.workspace is not None:
            remove_workspace(self.workspace)

    async def _run(self, episode: Episode, output_path: Path) -> SessionResult:
        config = self.config
        self._set_state(SessionState.RESOLVING_STREAM)
        metadata = await episode.get_metadata()
        if metadata.episode_title:
            title = " - ".join(
                part
                for part in (metadata.series_title, metadata.episode_number, metadata.episode_title)
                if part
            )
            log.info(f"Episode: [bold]{escape(title)}[/bold]")

        if await episode.is_premium_blocked():
            raise UserInputError("Episode requires a premium account.")
        if await episode.is_region_blocked():
            raise UserInputError(
                "Episode seems to be blocked in your region. In some cases it's "
                "still watchable with a premium account."
            )

        if not config.subs_only and output_path.exists():
            log.info(f"[yellow]○ Skipping:[/] [dim]{escape(str(output_path))}[/dim] (already exists)")
            return SessionResult(output_paths=[output_path], skipped=True)

        subtitles = await episode.get_subtitles()
        plan = plan_subtitles(config, subtitles, await episode.get_default_language())
        tracks = await write_subtitles(
            subtitles, self.workspace / SUBTITLE_DIR, plan.languages, plan.default
        )
        if tracks:
            included = ", ".join(
                f"{t.lang_code}{' (default)' if t.default else ''}" for t in tracks
            )
            log.info(f"Subtitles to include: [cyan]{included}[/cyan]")
        else:
            log.info("No subtitles will be included.")

        if config.subs_only:
            return self._relocate_subtitles(tracks, output_path)

        fonts: list[Path] = list(config.fonts)
        if config.attach_fonts and tracks:
            fonts += await download_fonts(
                self.http,
                config.retry,
                tracks,
                self.workspace / FONT_DIR,
                config.font_base_url,
                self.retry_policy,
            )

        available = await episode.get_available_resolutions(plan.hardsub_language)
        if not available and plan.hardsub_language:
            raise UserInputError(f"No stream with {plan.hardsub_language} hardsub available.")
        resolution = pick_resolution(available, config.resolution)
        streams = await episode.get_streams(resolution, plan.hardsub_language)
        if not streams:
            raise UserInputError(f"No stream available for {resolution}p.")
        # Multiple streams may be served by different hosts; any of them will do
        stream = streams[0]
        create_dir(output_path.parent)
        log.info(f"Downloading to [dim]{escape(str(output_path))}[/dim]...")

        self._set_state(SessionState.DOWNLOADING_MANIFEST)
        manifest = ManifestProcessor(
            remote_segment_name if config.keep_remote_names else ordinal_segment_name
        )
        await manifest.load(stream.url, self.workspace, VIDEO_DIR, self.http)
        manifest_path = self.workspace / f"{VIDEO_DIR}.m3u8"
        try:
            async with aiofiles.open(manifest_path, "w", encoding="utf-8") as f:
                await f.write(manifest.get_modified_manifest())
        except OSError as e:
            raise FilesystemError(f"Could not write '{manifest_path}': {e}") from e

        self._set_state(SessionState.DOWNLOADING_KEY)
        await resolve_keys(
            manifest.get_key_files(), self.http, config.key_retry, self.retry_policy
        )

        self._set_state(SessionState.DOWNLOADING_SEGMENTS)
        downloader = SegmentDownloader(
            manifest.get_video_files(),
            config.retry,
            config.connections,
            self.http,
            self.retry_policy,
        )
        for listener in self._download_listeners:
            downloader.subscribe(listener)
        self._downloader = downloader
        if self._aborted:
            raise DownloadCancelledError("Download was aborted.")
        progress = await downloader.start_download()

        self._set_state(SessionState.MUXING)
        self._temp_output = temp_output_path(output_path)
        muxer = VideoMuxer(
            MuxSpec(input=manifest_path, output=self._temp_output, subtitles=tracks, fonts=fonts),
            command=self.mux_command,
        )
        for listener in self._mux_progress_listeners:
            muxer.on_progress(listener)
        for listener in self._mux_info_listeners:
            muxer.on_info(listener)
        await muxer.run()

        try:
            os.replace(self._temp_output, output_path)
        except OSError as e:
            raise FilesystemError(f"Could not move output into place: {e}") from e
        self._temp_output = None
        log.info(f"[green]✓ Saved[/green] [dim]{escape(str(output_path))}[/dim]")

        return SessionResult(
            output_paths=[output_path],
            resolution=resolution,
            segment_count=len(manifest.get_video_files()),
            downloaded_bytes=progress.downloaded_bytes,
        )

    def _relocate_subtitles(
        self, tracks: list[SubtitleTrack], output_path: Path
    ) -> SessionResult:
        create_dir(output_path.parent)
        placed: list[Path] = []
        for track in tracks:
            target = subtitle_output_path(output_path, track.lang_code)
            try:
                shutil.move(track.path, target)
            except OSError as e:
                raise FilesystemError(f"Could not move subtitle to '{target}': {e}") from e
            placed.append(target)
        log.info(f"[green]✓ Saved {len(placed)} subtitle file(s)[/green]")
        return SessionResult(output_paths=placed)
