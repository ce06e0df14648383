"""
An episode made of a known playlist URL and subtitle files on disk.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import aiofiles

from epdl.exceptions import UserInputError

from .base import EpisodeMetadata, StreamInfo

# Provider language code -> ISO 639-2/T
ISO_LANGUAGES = {
    "enUS": "eng",
    "enGB": "eng",
    "deDE": "deu",
    "frFR": "fra",
    "esES": "spa",
    "esLA": "spa",
    "es419": "spa",
    "itIT": "ita",
    "ptBR": "por",
    "ptPT": "por",
    "ruRU": "rus",
    "arME": "ara",
    "arSA": "ara",
    "jaJP": "jpn",
    "zhCN": "zho",
    "zhTW": "zho",
    "koKR": "kor",
    "trTR": "tur",
    "plPL": "pol",
    "hiIN": "hin",
}


def iso_language(code: str) -> str:
    """Maps a provider code such as `deDE` to `deu`; three-letter codes pass through."""
    if code in ISO_LANGUAGES:
        return ISO_LANGUAGES[code]
    if len(code) == 3 and code.isalpha():
        return code.lower()
    return "und"


@dataclass
class LocalSubtitle:
    """A subtitle file supplied by the user."""

    path: Path
    language: str
    title: str = ""
    is_default: bool = False

    def __post_init__(self):
        self.path = Path(self.path)
        if not self.title:
            self.title = self.language

    @property
    def iso_code(self) -> str:
        return iso_language(self.language)

    @classmethod
    def from_option(cls, value: str) -> "LocalSubtitle":
        """Parses a `FILE:LANG[:TITLE]` command line value."""
        parts = value.split(":")
        if len(parts) > 1 and len(parts[0]) == 1 and parts[0].isalpha():
            parts = [f"{parts[0]}:{parts[1]}"] + parts[2:]  # Windows drive letter
        if len(parts) < 2 or not parts[0] or not parts[1]:
            raise UserInputError(f"Invalid subtitle '{value}'. Use FILE:LANG[:TITLE].")
        return cls(Path(parts[0]), parts[1], ":".join(parts[2:]))

    async def get_data(self) -> bytes:
        if not self.path.is_file():
            raise UserInputError(f"Subtitle file '{self.path}' does not exist.")
        async with aiofiles.open(self.path, "rb") as f:
            return await f.read()


@dataclass
class DirectStreamEpisode:
    """
    An episode whose media playlist URL is already known.

    `hardsub_language` names the subtitle language burned into the stream, if
    any. The stream is only offered for that hardsub selection.
    """

    stream_url: str
    height: int = 1080
    subtitles: list[LocalSubtitle] = field(default_factory=list)
    metadata: EpisodeMetadata = field(default_factory=EpisodeMetadata)
    hardsub_language: Optional[str] = None

    async def get_available_resolutions(self, hardsub_lang: Optional[str]) -> list[int]:
        return [self.height] if hardsub_lang == self.hardsub_language else []

    async def get_streams(self, resolution: int, hardsub_lang: Optional[str]) -> list[StreamInfo]:
        if hardsub_lang != self.hardsub_language:
            return []
        return [StreamInfo(self.stream_url, self.height)]

    async def get_subtitles(self) -> list[LocalSubtitle]:
        return list(self.subtitles)

    async def get_default_language(self) -> Optional[str]:
        for sub in self.subtitles:
            if sub.is_default:
                return sub.language
        return self.subtitles[0].language if self.subtitles else None

    async def is_premium_blocked(self) -> bool:
        return False

    async def is_region_blocked(self) -> bool:
        return False

    async def get_metadata(self) -> EpisodeMetadata:
        return self.metadata
