"""Shared fixtures: an in-memory HTTP capability and a fake mux binary."""

import asyncio
import sys
import textwrap
from collections import Counter

import pytest

from epdl.api.client import HttpResponse
from epdl.exceptions import NetworkError

BASE_URL = "https://cdn.example.com/show/ep1/"


class FakeHttp:
    """Serves canned bodies by URL and records every request."""

    def __init__(self, responses=None, final_urls=None, delay=0.0):
        self.responses = dict(responses or {})
        self.final_urls = dict(final_urls or {})
        self.delay = delay
        self.calls = Counter()
        self.in_flight = 0
        self.peak_in_flight = 0
        self._failures: dict[str, list] = {}

    def fail(self, url, times=1, status=None):
        """Makes the next `times` requests for `url` fail."""
        self._failures[url] = [status] * times

    async def get(self, url):
        self.calls[url] += 1
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            failures = self._failures.get(url)
            if failures:
                status = failures.pop(0)
                raise NetworkError(f"GET {url} failed", url=url, status=status)
            if url not in self.responses:
                raise NetworkError(f"GET {url} failed with HTTP 404", url=url, status=404)
            return HttpResponse(self.responses[url], self.final_urls.get(url, url))
        finally:
            self.in_flight -= 1

    @property
    def total_calls(self):
        return sum(self.calls.values())


FAKE_FFMPEG = textwrap.dedent(
    """
    import os
    import sys

    args = sys.argv[1:]
    output = args[-1]
    manifest = args[args.index("-i") + 1]
    base = os.path.dirname(manifest)

    sys.stderr.write("Opening 'crypto+file:x' for reading\\n")
    sys.stderr.write("  Duration: 00:00:10.00, start: 0.000000, bitrate: 1 kb/s\\n")
    sys.stderr.write("frame=  125 fps= 25 q=-1.0 size=  1kB time=00:00:05.00 speed=1x\\r")

    data = b""
    with open(manifest, encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            path = os.path.join(base, line)
            if not os.path.exists(path):
                sys.stderr.write(f"{line}: No such file or directory\\n")
                sys.exit(1)
            with open(path, "rb") as seg:
                data += seg.read()

    if os.environ.get("FAKE_FFMPEG_FAIL"):
        sys.stderr.write("Invalid data found when processing input\\n")
        sys.exit(1)

    with open(output, "wb") as out:
        out.write(data)
    sys.stderr.write("frame=  250 fps= 50 q=-1.0 size=  2kB time=00:00:10.00 speed=2x\\n")
    """
)


@pytest.fixture
def fake_ffmpeg(tmp_path):
    """Command prefix that runs a Python stand-in for ffmpeg."""
    script = tmp_path / "fake_ffmpeg.py"
    script.write_text(FAKE_FFMPEG, encoding="utf-8")
    return [sys.executable, str(script)]


def media_playlist(*lines: str) -> bytes:
    body = ["#EXTM3U", "#EXT-X-VERSION:3", "#EXT-X-TARGETDURATION:10", *lines, "#EXT-X-ENDLIST"]
    return ("\n".join(body) + "\n").encode("utf-8")
