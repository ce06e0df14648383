"""
Parses segmented (HLS) media playlists and rewrites them to point at local files.
"""

import logging
import posixpath
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional
from urllib.parse import unquote, urlparse

import m3u8
from pathvalidate import sanitize_filename

from epdl.exceptions import ManifestParseError
from epdl.media.downloader import PART_SUFFIX
from epdl.models.media import EncryptionKey, Segment

log = logging.getLogger(__name__)

HEADER_TAG = "#EXTM3U"
KEY_TAG = "#EXT-X-KEY:"
MAP_TAG = "#EXT-X-MAP:"

_URI_ATTRIBUTE_RE = re.compile(r'URI=("[^"]*"|[^,]*)')


class EntryKind(Enum):
    """Classification of a single playlist line."""

    SEGMENT = "segment"
    KEY = "key"
    MAP = "map"
    OTHER = "other"


@dataclass
class ManifestEntry:
    """One playlist line, kept verbatim alongside what was parsed from it."""

    kind: EntryKind
    raw: str
    uri: Optional[str] = None
    attributes: dict[str, str] = field(default_factory=dict)


@dataclass
class ParsedManifest:
    entries: list[ManifestEntry]

    @property
    def segment_uris(self) -> list[str]:
        """URIs of the init section and media segments, in playlist order."""
        return [
            e.uri
            for e in self.entries
            if e.kind in (EntryKind.SEGMENT, EntryKind.MAP) and e.uri
        ]

    @property
    def key_uris(self) -> list[str]:
        """Distinct key URIs in order of first reference."""
        return list(
            dict.fromkeys(e.uri for e in self.entries if e.kind == EntryKind.KEY and e.uri)
        )


def replace_uri_attribute(line: str, new_uri: str) -> str:
    """Swaps the URI attribute of a directive line, keeping everything else intact."""
    return _URI_ATTRIBUTE_RE.sub(lambda _: f'URI="{new_uri}"', line, count=1)


def _absolute(item, base_url: str) -> str:
    # m3u8 cannot resolve relative URIs without a base
    return item.absolute_uri if base_url else item.uri


def _load_playlist(text: str, base_url: str) -> m3u8.M3U8:
    try:
        return m3u8.loads(text, uri=base_url or None)
    except (ValueError, TypeError, KeyError) as e:
        raise ManifestParseError(f"Malformed playlist: {e}") from e


def _check_playlist(playlist: m3u8.M3U8) -> None:
    if playlist.is_variant:
        raise ManifestParseError("This is a master playlist. Select a variant stream first.")
    if not playlist.segments:
        raise ManifestParseError("Playlist contains no media segments.")

    for index, segment in enumerate(playlist.segments):
        key = segment.key
        if key is not None:
            if not key.method:
                raise ManifestParseError(f"Key directive without METHOD before segment {index}.")
            if key.method != "NONE" and not key.uri:
                raise ManifestParseError(
                    f"Key directive with METHOD={key.method} has no URI (segment {index})."
                )
        init = segment.init_section
        if init is not None and not init.uri:
            raise ManifestParseError(f"Map directive without URI before segment {index}.")
        # Sub-range segments would need HTTP range requests and a range-aware rewrite
        if segment.byterange or (init is not None and init.byterange):
            raise ManifestParseError(
                "Byte-range playlists (#EXT-X-BYTERANGE) are not supported."
            )


def parse_manifest(text: str, base_url: str = "") -> ParsedManifest:
    """
    Classifies every line of a media playlist.

    The playlist is parsed with `m3u8`; relative URIs are resolved against
    `base_url`, the URL the playlist was fetched from. Unknown directives,
    comments and blank lines are kept as OTHER entries in their original
    position.

    Raises:
        ManifestParseError: If the text is not a downloadable media playlist.
    """
    text = text.lstrip("\ufeff")
    lines = text.splitlines()
    if not lines or lines[0].strip() != HEADER_TAG:
        raise ManifestParseError("Playlist does not start with #EXTM3U.")

    playlist = _load_playlist(text, base_url)
    _check_playlist(playlist)
    segments = playlist.segments

    entries: list[ManifestEntry] = []
    position = 0
    for raw in lines:
        line = raw.strip()
        upcoming = segments[position] if position < len(segments) else None

        if line.startswith(KEY_TAG) and upcoming is not None and upcoming.key is not None:
            key = upcoming.key
            uri = _absolute(key, base_url) if key.method != "NONE" else None
            attributes = {"METHOD": key.method}
            if key.iv:
                attributes["IV"] = key.iv
            entries.append(ManifestEntry(EntryKind.KEY, raw, uri, attributes))
        elif line.startswith(MAP_TAG) and upcoming is not None and upcoming.init_section:
            uri = _absolute(upcoming.init_section, base_url)
            entries.append(ManifestEntry(EntryKind.MAP, raw, uri))
        elif line and not line.startswith("#"):
            if upcoming is None or line != upcoming.uri:
                raise ManifestParseError(f"Segment URI without #EXTINF: {line}")
            entries.append(ManifestEntry(EntryKind.SEGMENT, raw, _absolute(upcoming, base_url)))
            position += 1
        else:
            entries.append(ManifestEntry(EntryKind.OTHER, raw))

    return ParsedManifest(entries)


def _remote_extension(url: str, default: str = ".ts") -> str:
    ext = posixpath.splitext(urlparse(url).path)[1]
    if not ext or len(ext) > 6 or not ext[1:].isalnum():
        return default
    return ext.lower()


def ordinal_segment_name(index: int, url: str) -> str:
    """Names a segment by its playlist position, e.g. `00042.ts`."""
    return f"{index:05d}{_remote_extension(url)}"


def remote_segment_name(index: int, url: str) -> str:
    """Names a segment after the last path component of its remote URI."""
    name = sanitize_filename(unquote(posixpath.basename(urlparse(url).path)))
    return name or ordinal_segment_name(index, url)


class ManifestProcessor:
    """
    Loads a remote media playlist, assigns local file names to its segments and
    keys, and produces a rewritten playlist that references those local files.
    """

    def __init__(self, name_segment: Callable[[int, str], str] = ordinal_segment_name):
        self._name_segment = name_segment
        self._segments: list[Segment] = []
        self._keys: list[EncryptionKey] = []
        self._modified: str = ""
        self.final_url: str = ""

    async def load(self, remote_url: str, workspace_dir: Path, base_name: str, http) -> None:
        """
        Fetches and processes the playlist at `remote_url`.

        Args:
            remote_url: URL of the media playlist.
            workspace_dir: Directory the rewritten playlist will be written to.
                Local paths are relative to it.
            base_name: Name of the sub-directory that holds segments and keys.
            http: The HTTP capability.

        Raises:
            NetworkError: If the playlist cannot be fetched.
            ManifestParseError: If the playlist is malformed or two entries map
                to the same local file.
        """
        response = await http.get(remote_url)
        try:
            text = response.body.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise ManifestParseError(f"Playlist is not valid UTF-8: {e}") from e
        self.final_url = response.final_url or remote_url
        if self.final_url != remote_url:
            log.debug(f"Playlist redirected to {self.final_url}")
        self.process(text, self.final_url, Path(workspace_dir), base_name)

    def process(self, text: str, base_url: str, workspace_dir: Path, base_name: str) -> None:
        """Builds segments, keys and the rewritten playlist from playlist text."""
        parsed = parse_manifest(text, base_url)
        self._segments = []
        self._keys = []
        keys_by_url: dict[str, EncryptionKey] = {}
        claimed: dict[str, str] = {}
        rewritten: list[str] = []

        for entry in parsed.entries:
            if entry.kind in (EntryKind.SEGMENT, EntryKind.MAP):
                index = len(self._segments)
                local_name = f"{base_name}/{self._name_segment(index, entry.uri)}"
                self._claim(local_name, entry.uri, claimed)
                self._segments.append(
                    Segment(
                        url=entry.uri,
                        destination=workspace_dir / local_name,
                        local_name=local_name,
                        index=index,
                        is_init=entry.kind == EntryKind.MAP,
                    )
                )
                if entry.kind == EntryKind.MAP:
                    rewritten.append(replace_uri_attribute(entry.raw, local_name))
                else:
                    rewritten.append(local_name)
            elif entry.kind == EntryKind.KEY and entry.uri:
                key = keys_by_url.get(entry.uri)
                if key is None:
                    local_name = f"{base_name}/key{len(self._keys)}.key"
                    self._claim(local_name, entry.uri, claimed)
                    key = EncryptionKey(
                        url=entry.uri,
                        destination=workspace_dir / local_name,
                        local_name=local_name,
                        method=entry.attributes.get("METHOD", "AES-128"),
                        iv=entry.attributes.get("IV"),
                    )
                    keys_by_url[entry.uri] = key
                    self._keys.append(key)
                rewritten.append(replace_uri_attribute(entry.raw, key.local_name))
            else:
                rewritten.append(entry.raw)

        self._modified = "\n".join(rewritten) + "\n"
        log.debug(
            f"Parsed playlist with {len(self._segments)} segments and "
            f"{len(self._keys)} key(s)"
        )

    @staticmethod
    def _claim(local_name: str, url: str, claimed: dict[str, str]) -> None:
        # Case-insensitive filesystems would merge names that differ only in case.
        # The download's temporary file is reserved along with the final name.
        for name in (local_name, local_name + PART_SUFFIX):
            folded = name.casefold()
            if folded in claimed:
                raise ManifestParseError(
                    f"Local file name collision: '{url}' and '{claimed[folded]}' "
                    f"both map to '{name}'."
                )
        for name in (local_name, local_name + PART_SUFFIX):
            claimed[name.casefold()] = url

    def get_key_file(self) -> Optional[EncryptionKey]:
        return self._keys[0] if self._keys else None

    def get_key_files(self) -> list[EncryptionKey]:
        return list(self._keys)

    def get_video_files(self) -> list[Segment]:
        return list(self._segments)

    def get_modified_manifest(self) -> str:
        return self._modified
