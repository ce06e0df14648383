"""
Media Processing Layer.

This package is responsible for all media operations: playlist parsing,
segment and key downloads, font collection, and muxing.
"""

from .downloader import RetryPolicy, SegmentDownloader, safe_download
from .keys import resolve_keys
from .manifest import ManifestProcessor
from .muxer import FfmpegAdapter, VideoMuxer

__all__ = [
    "FfmpegAdapter",
    "ManifestProcessor",
    "RetryPolicy",
    "SegmentDownloader",
    "VideoMuxer",
    "resolve_keys",
    "safe_download",
]
