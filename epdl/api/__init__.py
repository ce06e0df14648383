"""
HTTP Layer.

This package provides the HTTP capability used for manifests, segments, keys,
and fonts.
"""

from .client import HttpClient, HttpResponse

__all__ = ["HttpClient", "HttpResponse"]
