"""
Defines custom exceptions for the application to allow for more specific error handling.
"""


class EpdlError(Exception):
    """Base exception for all application-specific errors."""


class UserInputError(EpdlError):
    """Raised for invalid selections or arguments. The message is shown as-is."""


class ConfigurationError(UserInputError):
    """Raised for issues related to configuration loading or validation."""


class NetworkError(EpdlError):
    """Raised when an HTTP request fails at the transport level or with a bad status."""

    # Client errors that may succeed when repeated
    RETRYABLE_CLIENT_STATUSES = frozenset({408, 425, 429})

    def __init__(self, message: str, url: str = "", status: int | None = None):
        super().__init__(message)
        self.url = url
        self.status = status

    @property
    def retryable(self) -> bool:
        """False for permanent client errors such as 403 or 404."""
        if self.status is None or self.status >= 500:
            return True
        if 400 <= self.status < 500:
            return self.status in self.RETRYABLE_CLIENT_STATUSES
        return True


class ManifestParseError(EpdlError):
    """Raised when a playlist is malformed or cannot be mapped to local files."""


class MuxError(EpdlError):
    """Raised when the external muxing process fails."""

    def __init__(self, message: str, diagnostics: list[str] | None = None):
        super().__init__(message)
        self.diagnostics = diagnostics or []

    @property
    def diagnostic_text(self) -> str:
        return "\n".join(self.diagnostics)


class FilesystemError(EpdlError):
    """Raised when the workspace or an output file cannot be created or written."""


class DownloadCancelledError(EpdlError):
    """Raised when a running download is aborted by the caller."""
