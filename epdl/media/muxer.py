"""
Runs the external muxer that combines the downloaded stream, subtitles and fonts
into one container, and turns its diagnostic output into progress events.
"""

import asyncio
import codecs
import dataclasses
import logging
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol, Union

from epdl.exceptions import MuxError
from epdl.models.media import MuxProgress, MuxSpec

log = logging.getLogger(__name__)

FONT_MIMETYPES = {
    ".ttf": "application/x-truetype-font",
    ".ttc": "application/x-truetype-font",
    ".otf": "application/vnd.ms-opentype",
    ".woff": "font/woff",
    ".woff2": "font/woff2",
}

_NOISE_PATTERNS = (
    re.compile(r"Opening .* for reading"),
    re.compile(r"^\s*frame="),
    re.compile(r"^\s*size=.*time="),
)
_DURATION_RE = re.compile(r"Duration:\s*(\d+):(\d{2}):(\d{2}(?:\.\d+)?)")
_TIME_RE = re.compile(r"time=\s*(\d+):(\d{2}):(\d{2}(?:\.\d+)?)")
_FPS_RE = re.compile(r"fps=\s*([\d.]+)")
_SPEED_RE = re.compile(r"speed=\s*([\d.]+)x")


def is_noise(line: str) -> bool:
    """True for status and input-opening lines that are useless in an error report."""
    return any(pattern.search(line) for pattern in _NOISE_PATTERNS)


def _to_milliseconds(hours: str, minutes: str, seconds: str) -> int:
    return int(round((int(hours) * 3600 + int(minutes) * 60 + float(seconds)) * 1000))


@dataclass(frozen=True)
class DurationParsed:
    milliseconds: int
    text: str


@dataclass(frozen=True)
class ProgressParsed:
    milliseconds: int
    text: str
    rate: float


MuxEvent = Union[DurationParsed, ProgressParsed]


class MuxAdapter(Protocol):
    """Knows one muxing tool's command line and diagnostic format."""

    def build_args(self, spec: MuxSpec) -> list[str]: ...

    def parse_line(self, line: str) -> Optional[MuxEvent]: ...


class FfmpegAdapter:
    """Builds ffmpeg arguments and parses its stderr."""

    def build_args(self, spec: MuxSpec) -> list[str]:
        args = [
            "-hide_banner",
            "-nostdin",
            "-y",
            "-allowed_extensions", "ALL",
            "-protocol_whitelist", "file,crypto,data",
            "-i", str(spec.input),
        ]
        for sub in spec.subtitles:
            args += ["-i", str(sub.path)]

        args += ["-map", "0:v", "-map", "0:a?"]
        for input_index in range(1, len(spec.subtitles) + 1):
            args += ["-map", f"{input_index}:s"]
        args += ["-c", "copy"]

        for i, sub in enumerate(spec.subtitles):
            args += [
                f"-metadata:s:s:{i}", f"language={sub.language}",
                f"-metadata:s:s:{i}", f"title={sub.title}",
                f"-disposition:s:{i}", "default" if sub.default else "0",
            ]

        for i, font in enumerate(spec.fonts):
            font = Path(font)
            mimetype = FONT_MIMETYPES.get(font.suffix.lower(), "application/octet-stream")
            args += [
                "-attach", str(font),
                f"-metadata:s:t:{i}", f"mimetype={mimetype}",
                f"-metadata:s:t:{i}", f"filename={font.name}",
            ]

        args.append(str(spec.output))
        return args

    def parse_line(self, line: str) -> Optional[MuxEvent]:
        if match := _DURATION_RE.search(line):
            text = line[match.start(1):match.end(3)]
            return DurationParsed(_to_milliseconds(*match.groups()), text)
        if match := _TIME_RE.search(line):
            text = line[match.start(1):match.end(3)]
            rate = 0.0
            if fps := _FPS_RE.search(line):
                rate = float(fps.group(1))
            elif speed := _SPEED_RE.search(line):
                rate = float(speed.group(1))
            return ProgressParsed(_to_milliseconds(*match.groups()), text, rate)
        return None


class VideoMuxer:
    """
    Drives a single mux process for a MuxSpec.

    Register listeners with `on_progress` and `on_info` before calling `run`.
    The first progress event carries the total duration; later events carry the
    elapsed position and encode rate. The output is written to `spec.output`;
    moving it to its final name is left to the caller.
    """

    def __init__(
        self,
        spec: MuxSpec,
        adapter: Optional[MuxAdapter] = None,
        command: Sequence[str] = ("ffmpeg",),
    ):
        self.spec = spec
        self.adapter = adapter or FfmpegAdapter()
        self.command = list(command)
        self.diagnostics: list[str] = []
        self.state = MuxProgress()
        self._progress_listeners: list[Callable[[MuxProgress], None]] = []
        self._info_listeners: list[Callable[[str], None]] = []

    def on_progress(self, listener: Callable[[MuxProgress], None]) -> None:
        self._progress_listeners.append(listener)

    def on_info(self, listener: Callable[[str], None]) -> None:
        self._info_listeners.append(listener)

    def _handle_line(self, line: str) -> None:
        if not is_noise(line):
            self.diagnostics.append(line)
        for listener in self._info_listeners:
            listener(line)

        event = self.adapter.parse_line(line)
        if isinstance(event, DurationParsed):
            if self.state.total_duration_ms is not None:
                return  # later inputs (subtitles) report their own durations
            self.state = dataclasses.replace(
                self.state, total_duration_ms=event.milliseconds, total_text=event.text
            )
        elif isinstance(event, ProgressParsed):
            self.state = dataclasses.replace(
                self.state,
                elapsed_ms=event.milliseconds,
                elapsed_text=event.text,
                rate=event.rate,
            )
        else:
            return
        for listener in self._progress_listeners:
            listener(self.state)

    async def run(self) -> Path:
        """
        Runs the mux process to completion.

        Returns:
            The path of the written (temporary) output.

        Raises:
            MuxError: If the tool cannot be started or exits with a non-zero code.
                The captured diagnostics are attached.
        """
        args = self.command + self.adapter.build_args(self.spec)
        log.debug(f"Running muxer: {' '.join(args)}")
        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise MuxError(f"Could not start '{self.command[0]}': {e}") from e

        try:
            await self._consume(process.stderr)
            returncode = await process.wait()
        except asyncio.CancelledError:
            if process.returncode is None:
                process.kill()
                await process.wait()
            raise

        if returncode != 0:
            raise MuxError(
                f"{Path(self.command[-1]).name} exited with code {returncode}.",
                diagnostics=list(self.diagnostics),
            )
        return Path(self.spec.output)

    async def _consume(self, stream: asyncio.StreamReader) -> None:
        # Progress lines end in \r, everything else in \n
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        buffer = ""
        while chunk := await stream.read(4096):
            buffer += decoder.decode(chunk)
            *lines, buffer = re.split(r"[\r\n]", buffer)
            for line in lines:
                if line.strip():
                    self._handle_line(line.rstrip())
        buffer += decoder.decode(b"", final=True)
        if buffer.strip():
            self._handle_line(buffer.rstrip())


async def verify_ffmpeg(binary: str = "ffmpeg") -> bool:
    """Checks that the muxing tool can be launched."""
    try:
        process = await asyncio.create_subprocess_exec(
            binary,
            "-version",
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.DEVNULL,
        )
    except OSError:
        return False
    await process.wait()
    return True
