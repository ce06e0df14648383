"""
Episode Providers.

This package defines the contract between the download session and whatever
knows where an episode's streams and subtitles live.
"""

from .base import Episode, EpisodeMetadata, StreamInfo, SubtitleHandle
from .direct import DirectStreamEpisode, LocalSubtitle

__all__ = [
    "DirectStreamEpisode",
    "Episode",
    "EpisodeMetadata",
    "LocalSubtitle",
    "StreamInfo",
    "SubtitleHandle",
]
