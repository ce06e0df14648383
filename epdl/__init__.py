"""
epdl: a concurrent downloader that rebuilds segmented episode streams into a
single Matroska file with subtitles and fonts.
"""

__version__ = "0.3.0"
