"""
Data Models Layer.

This package contains the configuration model and the data structures that
flow between the manifest, download, and mux stages.
"""

from .config import SessionConfig
from .media import EncryptionKey, MuxProgress, MuxSpec, Segment, SegmentStatus, SubtitleTrack
from .stats import ProgressAggregator, ProgressSnapshot

__all__ = [
    "EncryptionKey",
    "MuxProgress",
    "MuxSpec",
    "ProgressAggregator",
    "ProgressSnapshot",
    "Segment",
    "SegmentStatus",
    "SessionConfig",
    "SubtitleTrack",
]
