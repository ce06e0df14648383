"""
Data structures describing manifest entries and mux inputs.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


class SegmentStatus(Enum):
    """Lifecycle of a single segment fetch."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    DONE = "done"
    FAILED = "failed"


@dataclass
class Segment:
    """One remote media chunk and where it is stored locally."""

    url: str
    destination: Path
    local_name: str
    index: int
    size: int | None = None
    retries: int = 0
    status: SegmentStatus = SegmentStatus.PENDING
    is_init: bool = False


@dataclass
class EncryptionKey:
    """A decryption key referenced by one or more key directives."""

    url: str
    destination: Path
    local_name: str
    method: str = "AES-128"
    iv: str | None = None


@dataclass
class SubtitleTrack:
    """A subtitle file ready to be muxed or relocated."""

    path: Path
    title: str
    language: str  # ISO 639-2/T code written into the container
    lang_code: str  # provider language code, e.g. enUS
    default: bool = False


@dataclass
class MuxSpec:
    """Everything the mux step needs to produce one output file."""

    input: Path
    output: Path
    subtitles: list[SubtitleTrack] = field(default_factory=list)
    fonts: list[Path] = field(default_factory=list)

    def __post_init__(self):
        if sum(1 for sub in self.subtitles if sub.default) > 1:
            raise ValueError("At most one subtitle track can be flagged default.")


@dataclass
class MuxProgress:
    """Progress reported by the mux process."""

    total_duration_ms: int | None = None
    elapsed_ms: int = 0
    rate: float = 0.0
    total_text: str = ""
    elapsed_text: str = ""

    @property
    def percentage(self) -> float:
        if not self.total_duration_ms:
            return 0.0
        return min(100.0, self.elapsed_ms / self.total_duration_ms * 100)
