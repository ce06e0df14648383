"""
Downloads the segments of a playlist with a bounded pool of concurrent workers,
per-file retry logic, and aggregated progress reporting.
"""

import asyncio
import dataclasses
import logging
import os
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import aiofiles

from epdl.exceptions import DownloadCancelledError, FilesystemError, NetworkError
from epdl.models.media import Segment, SegmentStatus
from epdl.models.stats import ProgressAggregator, ProgressSnapshot

log = logging.getLogger(__name__)

ProgressListener = Callable[[ProgressSnapshot], None]

PART_SUFFIX = ".part"


@dataclass(frozen=True)
class RetryPolicy:
    """How often and how patiently a single file is re-requested."""

    max_attempts: int = 5
    base_delay: float = 1.5
    max_delay: float = 30.0

    def delay_for(self, attempt: int) -> float:
        """Backoff before the attempt following `attempt` (1-based)."""
        return min(self.max_delay, self.base_delay * (2 ** (attempt - 1)))

    def should_retry(self, error: Exception, attempt: int) -> bool:
        if attempt >= self.max_attempts:
            return False
        return isinstance(error, NetworkError) and error.retryable


async def _write_bytes(destination: Path, data: bytes) -> None:
    """Writes `data` to a sibling `.part` file, then moves it into place."""
    part_path = destination.with_name(destination.name + PART_SUFFIX)
    try:
        await asyncio.to_thread(destination.parent.mkdir, parents=True, exist_ok=True)
        async with aiofiles.open(part_path, "wb") as f:
            await f.write(data)
        await asyncio.to_thread(os.replace, part_path, destination)
    except OSError as e:
        raise FilesystemError(f"Could not write '{destination}': {e}") from e


async def _download_with_retry(
    url: str, destination: Path, http, policy: RetryPolicy
) -> tuple[int, int]:
    """
    Fetches `url` into `destination`, retrying transient network failures.

    Returns:
        A tuple of (bytes written, attempts used).
    """
    attempt = 1
    while True:
        try:
            response = await http.get(url)
            await _write_bytes(destination, response.body)
            return len(response.body), attempt
        except NetworkError as e:
            if not policy.should_retry(e, attempt):
                log.debug(
                    f"Giving up on '{destination.name}' after attempt "
                    f"{attempt}/{policy.max_attempts}: {e}"
                )
                raise
            delay = policy.delay_for(attempt)
            log.debug(
                f"Download attempt {attempt}/{policy.max_attempts} for "
                f"'{destination.name}' failed: {e}. Retrying in {delay:.1f}s..."
            )
            attempt += 1
            if delay > 0:
                await asyncio.sleep(delay)


async def safe_download(
    url: str,
    destination: Path,
    max_retries: int,
    http,
    policy: Optional[RetryPolicy] = None,
) -> int:
    """
    Downloads one ancillary file (a key, a font) with the same retry policy as segments.

    Args:
        url: Remote location of the file.
        destination: Local path to write to.
        max_retries: Maximum number of attempts.
        http: The HTTP capability.
        policy: Optional backoff settings; its attempt limit is replaced by `max_retries`.

    Returns:
        The number of bytes written.
    """
    policy = dataclasses.replace(policy or RetryPolicy(), max_attempts=max_retries)
    size, _ = await _download_with_retry(url, Path(destination), http, policy)
    return size


class SegmentDownloader:
    """
    Downloads an ordered list of segments with a fixed number of workers.

    Listeners registered with `subscribe` receive a ProgressSnapshot after every
    completed segment. The first segment that exhausts its retries stops the
    scheduling of new work; fetches already running are allowed to finish, then
    the originating error is raised from `start_download`.
    """

    def __init__(
        self,
        segments: list[Segment],
        max_attempts: int,
        max_workers: int,
        http,
        policy: Optional[RetryPolicy] = None,
    ):
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1.")
        self.segments = segments
        self.max_workers = max_workers
        self.http = http
        self.policy = dataclasses.replace(policy or RetryPolicy(), max_attempts=max_attempts)

        self._listeners: list[ProgressListener] = []
        self._aggregator = ProgressAggregator(total_segments=len(segments))
        self._aborted = False
        self._failure: Optional[Exception] = None

        self.in_flight = 0
        self.peak_in_flight = 0

    def subscribe(self, listener: ProgressListener) -> None:
        """Registers a progress listener. Must be called before `start_download`."""
        self._listeners.append(listener)

    def abort(self) -> None:
        """Stops scheduling new segments. Running fetches are allowed to complete."""
        if not self._aborted:
            log.info("[yellow]Aborting download after in-flight segments finish...[/yellow]")
        self._aborted = True

    @property
    def progress(self) -> ProgressSnapshot:
        return self._aggregator.snapshot()

    def _should_stop(self) -> bool:
        return self._aborted or self._failure is not None

    async def start_download(self) -> ProgressSnapshot:
        """
        Runs the worker pool until every segment is downloaded.

        Returns:
            The final progress snapshot.

        Raises:
            NetworkError: If a segment exhausted its retries.
            FilesystemError: If a segment could not be written.
            DownloadCancelledError: If `abort` was called.
        """
        if not self.segments:
            return self._aggregator.snapshot()

        pending = iter(self.segments)
        worker_count = min(self.max_workers, len(self.segments))
        log.debug(f"Starting {worker_count} workers for {len(self.segments)} segments")
        await asyncio.gather(*(self._worker(pending) for _ in range(worker_count)))

        if self._failure is not None:
            raise self._failure
        if self._aborted:
            raise DownloadCancelledError("Download was aborted.")

        unfinished = [s for s in self.segments if s.status != SegmentStatus.DONE]
        if unfinished:
            raise DownloadCancelledError(f"{len(unfinished)} segments were not downloaded.")
        return self._aggregator.snapshot()

    async def _worker(self, pending: Iterator[Segment]) -> None:
        while not self._should_stop():
            segment = next(pending, None)
            if segment is None:
                return

            segment.status = SegmentStatus.IN_PROGRESS
            self.in_flight += 1
            self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
            try:
                size, attempts = await _download_with_retry(
                    segment.url, segment.destination, self.http, self.policy
                )
                segment.retries = attempts - 1
                segment.size = size
                segment.status = SegmentStatus.DONE
                snapshot = await self._aggregator.record(size)
                for listener in self._listeners:
                    listener(snapshot)
            except Exception as e:
                segment.status = SegmentStatus.FAILED
                if self._failure is None:
                    self._failure = e
                    log.error(
                        f"[red]✗ Segment {segment.index} failed permanently:[/red] {e}"
                    )
                return
            finally:
                self.in_flight -= 1
