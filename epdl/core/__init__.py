"""
Core application engine for orchestrating the download process.

This package contains the primary logic. The `EpisodeSession` acts as the
per-episode coordinator, delegating stream and subtitle choices to the
selection helpers and the heavy lifting to the media layer.
"""
