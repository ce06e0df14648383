"""
Utilities for handling the session workspace and output file paths.
"""

import logging
import posixpath
import shutil
import tempfile
from pathlib import Path
from typing import Optional
from urllib.parse import unquote, urlparse

from pathvalidate import sanitize_filename

from epdl.exceptions import FilesystemError

log = logging.getLogger(__name__)

WORKSPACE_PREFIX = "epdl_"


def create_dir(directory_path: Path) -> None:
    """Creates a directory if it does not already exist."""
    try:
        directory_path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise FilesystemError(f"Could not create directory '{directory_path}': {e}") from e


def create_workspace(parent: Optional[Path] = None) -> Path:
    """Creates a uniquely named temporary directory for one episode."""
    try:
        if parent is not None:
            Path(parent).mkdir(parents=True, exist_ok=True)
        return Path(tempfile.mkdtemp(prefix=WORKSPACE_PREFIX, dir=parent))
    except OSError as e:
        raise FilesystemError(f"Could not create workspace: {e}") from e


def remove_workspace(workspace: Path) -> bool:
    """
    Recursively deletes a workspace. Failures are logged, never raised.

    Returns:
        True if the directory no longer exists.
    """
    try:
        shutil.rmtree(workspace)
    except FileNotFoundError:
        pass
    except OSError as e:
        log.warning(f"[yellow]Could not clean up workspace '{workspace}': {e}[/yellow]")
    return not workspace.exists()


def temp_output_path(output_path: Path) -> Path:
    """`show/ep.mkv` -> `show/ep.tmp.mkv`; the extension stays last for the muxer."""
    return output_path.with_name(f"{output_path.stem}.tmp{output_path.suffix}")


def subtitle_output_path(output_path: Path, lang_code: str) -> Path:
    """`show/ep.mkv` + `enUS` -> `show/ep.enUS.ass`."""
    return output_path.with_name(f"{output_path.stem}.{lang_code}.ass")


def default_output_name(stream_url: str) -> Path:
    """Derives an output file name from the playlist URL."""
    stem = posixpath.splitext(unquote(posixpath.basename(urlparse(stream_url).path)))[0]
    return Path(sanitize_filename(stem or "video") + ".mkv")
