"""
Pydantic model for session configuration.
Provides robust validation for all settings.
"""

import re
from pathlib import Path

from pydantic import BaseModel, Field, field_validator, model_validator

NO_SUBTITLES = "none"

_RESOLUTION_RE = re.compile(r"^\s*(\d+)\s*[pP]?\s*$")
_LANGUAGE_RE = re.compile(r"^[A-Za-z]{2,3}([-_]?[A-Za-z0-9]{2,4})?$")


class SessionConfig(BaseModel):
    """A validated configuration model for one download run."""

    # Download Settings
    resolution: str = "1080p"
    connections: int = 5
    retry: int = 5
    key_retry: int = 5
    retry_delay: float = 1.5
    max_retry_delay: float = 30.0
    keep_remote_names: bool = False

    # Subtitle and Font Options
    sub_lang: list[str] | None = None
    default_sub: str | None = None
    hardsub: bool = False
    attach_fonts: bool = False
    subs_only: bool = False
    font_base_url: str = ""
    fonts: list[Path] = Field(default_factory=list)

    # Network Options
    proxy: str | None = None
    user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:121.0) Gecko/20100101 Firefox/121.0"
    )
    request_timeout: float = 90.0

    # Tooling
    ffmpeg_path: str = "ffmpeg"
    work_dir: Path | None = None
    progress_bar: bool = True

    # Internal fields not loaded from INI file
    config_path: str = Field("", repr=False)

    class Config:
        """Pydantic model configuration."""

        validate_assignment = True
        str_strip_whitespace = True

    @field_validator("resolution")
    @classmethod
    def validate_resolution(cls, v: str) -> str:
        """Accepts '1080p' or '1080' and normalizes to '1080p'."""
        match = _RESOLUTION_RE.match(v)
        if not match or int(match.group(1)) <= 0:
            raise ValueError(f"Invalid resolution '{v}'. Use a value such as 720p.")
        return f"{int(match.group(1))}p"

    @field_validator("connections")
    @classmethod
    def validate_connections(cls, v: int) -> int:
        """Ensures a reasonable number of simultaneous connections."""
        if v < 1 or v > 32:
            raise ValueError("Connections must be between 1 and 32.")
        return v

    @field_validator("retry", "key_retry")
    @classmethod
    def validate_retry(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Retry attempts must be at least 1.")
        return v

    @field_validator("retry_delay", "max_retry_delay", "request_timeout")
    @classmethod
    def validate_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("Delays and timeouts cannot be negative.")
        return v

    @field_validator("sub_lang")
    @classmethod
    def validate_sub_lang(cls, v: list[str] | None) -> list[str] | None:
        """Checks every entry is a language code or 'none'."""
        if v is None:
            return v
        cleaned = [lang.strip() for lang in v if lang.strip()]
        for lang in cleaned:
            if lang != NO_SUBTITLES and not _LANGUAGE_RE.match(lang):
                raise ValueError(f"Unknown subtitle language '{lang}'.")
        return cleaned

    @field_validator("default_sub")
    @classmethod
    def validate_default_sub(cls, v: str | None) -> str | None:
        if v and v != NO_SUBTITLES and not _LANGUAGE_RE.match(v):
            raise ValueError(f"Unknown default subtitle language '{v}'.")
        return v or None

    @model_validator(mode="after")
    def validate_option_conflicts(self) -> "SessionConfig":
        """Checks for conflicting download options."""
        if self.hardsub and self.sub_lang and len(self.sub_lang) > 1:
            raise ValueError("Cannot embed multiple subtitles with --hardsub.")
        if self.hardsub and self.subs_only:
            raise ValueError("Cannot use --hardsub and --subs-only simultaneously.")
        if self.max_retry_delay < self.retry_delay:
            raise ValueError("max_retry_delay must not be smaller than retry_delay.")
        if self.attach_fonts and not self.font_base_url:
            raise ValueError("--attach-fonts needs font_base_url to know where fonts are served from.")
        return self

    @property
    def resolution_height(self) -> int:
        return int(self.resolution[:-1])

    @classmethod
    def get_ini_keys(cls) -> set[str]:
        """Returns a set of all keys that are expected in the INI file."""
        internal_fields = {"config_path", "sub_lang", "default_sub", "subs_only", "fonts"}
        return {key for key in cls.model_fields if key not in internal_fields}
