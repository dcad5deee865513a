"""Run configuration from environment variables.

Credentials, cache location, probe concurrency and the matching thresholds.
All fields have defaults, so no .env file is required; a run that needs a
credential which is still empty fails with an InputError before probing.
"""

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from tvmatcher.matcher.validation import MatchPolicy


def _default_home() -> Path:
    return Path.home() / ".tvmatcher"


class Settings(BaseSettings):
    """Matcher settings. Loaded from TVMATCHER_* environment variables; optionally from .env."""

    model_config = SettingsConfigDict(
        env_prefix="TVMATCHER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Metadata / subtitle services
    tmdb_access_token: str = ""
    opensubtitles_api_key: str = ""
    opensubtitles_username: str = ""
    opensubtitles_password: str = ""
    subtitle_language: str = "en"

    # Storage
    cache_dir: Path = _default_home() / "subtitles"
    log_file: Path = _default_home() / "tvmatcher.log"

    # Tools
    ffprobe_path: str = ""  # Empty = resolve on PATH
    ffmpeg_path: str = ""
    max_concurrent_probes: int = 4

    # Matching thresholds
    match_margin: float = Field(default=0.05, ge=0.0, le=1.0)
    match_threshold: float = Field(default=0.55, ge=0.0, le=1.0)
    max_duration_delta: float = Field(default=0.10, ge=0.0)

    debug: bool = False

    @field_validator("max_concurrent_probes")
    @classmethod
    def _at_least_one(cls, value: int) -> int:
        return max(1, value)

    @property
    def opensubtitles_configured(self) -> bool:
        return bool(
            self.opensubtitles_api_key and self.opensubtitles_username and self.opensubtitles_password
        )

    def match_policy(self) -> MatchPolicy:
        """Validation thresholds for one run."""
        return MatchPolicy(
            margin=self.match_margin,
            threshold=self.match_threshold,
            max_duration_delta=self.max_duration_delta,
        )
