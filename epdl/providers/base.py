"""Episode collaborator protocol definitions.

A provider knows how to find the streams and subtitles of one episode. The
download session only talks to these protocols, never to a site directly.
"""

from dataclasses import dataclass
from typing import Optional, Protocol, runtime_checkable


@dataclass(frozen=True)
class StreamInfo:
    """One candidate stream of an episode."""

    url: str
    height: int


@dataclass(frozen=True)
class EpisodeMetadata:
    series_title: str = ""
    season_title: str = ""
    episode_title: str = ""
    episode_number: str = ""


@runtime_checkable
class SubtitleHandle(Protocol):
    """A subtitle track offered by a provider."""

    language: str  # provider code, e.g. enUS
    title: str
    is_default: bool
    iso_code: str  # ISO 639-2/T, e.g. eng

    async def get_data(self) -> bytes:
        """Returns the raw ASS subtitle data."""
        ...


@runtime_checkable
class Episode(Protocol):
    """Protocol for episode providers."""

    async def get_available_resolutions(self, hardsub_lang: Optional[str]) -> list[int]:
        """Lists the stream heights available for a hardsub language (None for softsub)."""
        ...

    async def get_streams(self, resolution: int, hardsub_lang: Optional[str]) -> list[StreamInfo]:
        """Lists candidate streams for a resolution; the first one is preferred."""
        ...

    async def get_subtitles(self) -> list[SubtitleHandle]: ...

    async def get_default_language(self) -> Optional[str]: ...

    async def is_premium_blocked(self) -> bool: ...

    async def is_region_blocked(self) -> bool: ...

    async def get_metadata(self) -> EpisodeMetadata: ...
