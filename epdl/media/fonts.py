"""
Finds the fonts used by ASS subtitles and downloads the matching font files so
they can be attached to the output container.
"""

import logging
import re
from pathlib import Path
from typing import Optional

import aiofiles

from epdl.models.media import SubtitleTrack

from .downloader import RetryPolicy, safe_download

log = logging.getLogger(__name__)

# Font family (lower-case) -> file name on the font server
FONT_FILES = {
    "andale mono": "andalemo.ttf",
    "arial": "arial.ttf",
    "arial bold": "arialbd.ttf",
    "arial bold italic": "arialbi.ttf",
    "arial italic": "ariali.ttf",
    "arial black": "ariblk.ttf",
    "comic sans ms": "comic.ttf",
    "comic sans ms bold": "comicbd.ttf",
    "courier new": "cour.ttf",
    "courier new bold": "courbd.ttf",
    "courier new bold italic": "courbi.ttf",
    "courier new italic": "couri.ttf",
    "georgia": "georgia.ttf",
    "georgia bold": "georgiab.ttf",
    "georgia bold italic": "georgiaz.ttf",
    "georgia italic": "georgiai.ttf",
    "impact": "impact.ttf",
    "times new roman": "times.ttf",
    "times new roman bold": "timesbd.ttf",
    "times new roman bold italic": "timesbi.ttf",
    "times new roman italic": "timesi.ttf",
    "trebuchet ms": "trebuc.ttf",
    "trebuchet ms bold": "trebucbd.ttf",
    "trebuchet ms bold italic": "trebucbi.ttf",
    "trebuchet ms italic": "trebucit.ttf",
    "verdana": "verdana.ttf",
    "verdana bold": "verdanab.ttf",
    "verdana bold italic": "verdanaz.ttf",
    "verdana italic": "verdanai.ttf",
    "webdings": "webdings.ttf",
}

_OVERRIDE_FONT_RE = re.compile(r"\\fn([^\\}]+)")


def collect_font_names(ass_text: str) -> list[str]:
    """
    Lists the font families referenced by an ASS script.

    Fonts come from the `Fontname` column of style lines and from inline `\\fn`
    override tags. Names are returned once each, in order of first appearance.
    """
    found: dict[str, str] = {}
    fontname_index = 1

    def add(name: str) -> None:
        name = name.strip().lstrip("@")
        if name:
            found.setdefault(name.casefold(), name)

    for line in ass_text.splitlines():
        stripped = line.strip()
        if stripped.startswith("Format:") and "Fontname" in stripped:
            columns = [c.strip() for c in stripped[len("Format:"):].split(",")]
            fontname_index = columns.index("Fontname")
        elif stripped.startswith("Style:"):
            columns = stripped[len("Style:"):].split(",")
            if len(columns) > fontname_index:
                add(columns[fontname_index])
        for match in _OVERRIDE_FONT_RE.finditer(line):
            add(match.group(1))
    return list(found.values())


async def download_fonts(
    http,
    max_retries: int,
    subtitles: list[SubtitleTrack],
    destination: Path,
    base_url: str,
    policy: Optional[RetryPolicy] = None,
) -> list[Path]:
    """
    Downloads the font files needed by `subtitles` into `destination`.

    Fonts without a known file are skipped with a warning.

    Returns:
        Local paths of the downloaded fonts.
    """
    if not base_url:
        log.warning("[yellow]No font server configured. Fonts will not be attached.[/yellow]")
        return []

    names: dict[str, str] = {}
    for sub in subtitles:
        async with aiofiles.open(sub.path, "r", encoding="utf-8-sig", errors="replace") as f:
            text = await f.read()
        for name in collect_font_names(text):
            names.setdefault(name.casefold(), name)

    font_paths: list[Path] = []
    for key, name in names.items():
        file_name = FONT_FILES.get(key)
        if not file_name:
            log.warning(f"[yellow]⚠ No font file known for '{name}'. Skipping.[/yellow]")
            continue
        path = Path(destination) / file_name
        if path in font_paths:
            continue
        await safe_download(f"{base_url.rstrip('/')}/{file_name}", path, max_retries, http, policy)
        font_paths.append(path)

    log.debug(f"Downloaded {len(font_paths)} font(s)")
    return font_paths
