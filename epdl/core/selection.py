"""
Chooses which stream resolution and which subtitle tracks an episode download uses.
"""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import aiofiles

from epdl.exceptions import FilesystemError, UserInputError
from epdl.models.config import NO_SUBTITLES, SessionConfig
from epdl.models.media import SubtitleTrack
from epdl.providers.base import SubtitleHandle

log = logging.getLogger(__name__)


@dataclass
class SubtitlePlan:
    """Which subtitle languages to include and which one is the default."""

    languages: list[str] = field(default_factory=list)
    default: str = NO_SUBTITLES
    hardsub_language: Optional[str] = None


def parse_resolution(value) -> int:
    """Turns `1080p`, `"720"` or `480` into a pixel height."""
    match = re.fullmatch(r"\s*(\d+)\s*[pP]?\s*", str(value))
    if not match or int(match.group(1)) <= 0:
        raise UserInputError(f"Invalid resolution '{value}'.")
    return int(match.group(1))


def pick_resolution(available: list[int], wanted) -> int:
    """
    Picks `wanted` if available, otherwise the highest resolution below it.

    Raises:
        UserInputError: If nothing at or below the wanted resolution exists.
    """
    wanted_height = parse_resolution(wanted)
    if wanted_height in available:
        return wanted_height
    for height in sorted(available, reverse=True):
        if height <= wanted_height:
            log.info(
                f"[yellow]Resolution {wanted_height}p not available. "
                f"Using {height}p instead.[/yellow]"
            )
            return height
    raise UserInputError(
        f"No resolution at or below {wanted_height}p found. "
        f"Available: {', '.join(f'{h}p' for h in sorted(available)) or 'none'}."
    )


def plan_subtitles(
    config: SessionConfig,
    subtitles: list[SubtitleHandle],
    provider_default: Optional[str],
) -> SubtitlePlan:
    """Applies the subtitle options to the tracks an episode offers."""
    default = config.default_sub
    if not default:
        if config.sub_lang:
            default = config.sub_lang[0]
        elif not subtitles:
            default = NO_SUBTITLES
        else:
            default = provider_default or NO_SUBTITLES

    if config.sub_lang is not None:
        languages = list(config.sub_lang)
    elif config.hardsub:
        languages = [default]
    else:
        languages = [sub.language for sub in subtitles]

    if config.hardsub and default != NO_SUBTITLES:
        if len([lang for lang in languages if lang != NO_SUBTITLES]) > 1:
            raise UserInputError("Cannot embed multiple subtitles with --hardsub.")
        log.info(f"Selected [cyan]{default}[/cyan] as hardsub language.")
        return SubtitlePlan(languages=[], default=NO_SUBTITLES, hardsub_language=default)

    return SubtitlePlan(languages=languages, default=default)


async def write_subtitles(
    subtitles: list[SubtitleHandle],
    destination: Path,
    languages: list[str],
    default: str,
) -> list[SubtitleTrack]:
    """
    Stores the requested subtitle tracks as `<lang>.ass` files in `destination`.

    Exactly the track matching `default` is flagged default, unless `default` is
    'none'. Languages the episode doesn't offer are skipped.

    Raises:
        UserInputError: If the default language is not among the written tracks.
    """
    by_language = {}
    for sub in subtitles:
        by_language.setdefault(sub.language, sub)

    tracks: list[SubtitleTrack] = []
    try:
        destination.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise FilesystemError(f"Could not create '{destination}': {e}") from e

    for lang in dict.fromkeys(languages):
        if lang == NO_SUBTITLES:
            continue
        sub = by_language.get(lang)
        if sub is None:
            log.warning(f"[yellow]Subtitles for {lang} not available. Skipping...[/yellow]")
            continue
        path = destination / f"{sub.language}.ass"
        data = await sub.get_data()
        try:
            async with aiofiles.open(path, "wb") as f:
                await f.write(data)
        except OSError as e:
            raise FilesystemError(f"Could not write '{path}': {e}") from e
        tracks.append(
            SubtitleTrack(
                path=path,
                title=sub.title,
                language=sub.iso_code,
                lang_code=sub.language,
            )
        )

    if default != NO_SUBTITLES:
        for track in tracks:
            track.default = track.lang_code == default
        if not any(track.default for track in tracks):
            raise UserInputError(
                f"Couldn't set {default} as default subtitle: subtitle not available."
            )
    return tracks
