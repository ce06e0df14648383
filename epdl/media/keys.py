"""
Fetches the decryption key(s) referenced by a playlist.
"""

import logging
from typing import Optional

from epdl.models.media import EncryptionKey

from .downloader import RetryPolicy, safe_download

log = logging.getLogger(__name__)


async def resolve_keys(
    keys: list[EncryptionKey],
    http,
    max_retries: int,
    policy: Optional[RetryPolicy] = None,
) -> list[EncryptionKey]:
    """
    Downloads every distinct key once, no matter how many segments reference it.

    The rewritten playlist already points at each key's local path.
    """
    fetched: set[str] = set()
    for key in keys:
        if key.url in fetched:
            continue
        log.debug(f"Fetching {key.method} key from {key.url}")
        await safe_download(key.url, key.destination, max_retries, http, policy)
        fetched.add(key.url)
    return keys
