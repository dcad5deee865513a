import uuid
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field


class MediaFile(BaseModel):
    """An input video file."""

    model_config = ConfigDict(frozen=True)

    id: str
    path: Path
    size: int = 0

    @property
    def name(self) -> str:
        return self.path.name

    @classmethod
    def from_path(cls, path: Path) -> "MediaFile":
        """Build a MediaFile whose id is derived from the resolved path."""
        resolved = Path(path).resolve()
        try:
            size = resolved.stat().st_size
        except OSError:
            size = 0
        return cls(id=str(uuid.uuid5(uuid.NAMESPACE_URL, resolved.as_uri())), path=resolved, size=size)


class CandidateEpisode(BaseModel):
    """An episode of the season under consideration."""

    model_config = ConfigDict(frozen=True)

    season: int
    number: int
    title: str
    runtime_minutes: int | None = None
    air_date: str | None = None

    @property
    def s_e_format(self) -> str:
        return f"S{self.season:02d}E{self.number:02d}"


class RankedCandidate(BaseModel):
    """One entry of the per-file similarity ranking kept for diagnostics."""

    episode: CandidateEpisode
    score: float


class RejectionReason(str, Enum):
    NO_SAMPLE = "no_sample"
    SUBTITLES_DISABLED = "subtitles_disabled"
    PADDING = "padding"
    NO_REFERENCE = "no_reference"
    LOW_MARGIN = "low_margin"
    LOW_SIMILARITY = "low_similarity"
    DURATION_MISMATCH = "duration_mismatch"


class MatchStatus(BaseModel):
    """Which checks ran for a file during one run."""

    duration_checked: bool = False
    duration_used: bool = False
    subtitles_attempted: bool = False
    subtitles_matched: bool = False
    last_error: str | None = None


class MatchDecision(BaseModel):
    """Outcome for one input file: an accepted episode or a recorded rejection."""

    file: MediaFile
    episode: CandidateEpisode | None = None
    score: float = 0.0
    reasons: list[str] = Field(default_factory=list)
    status: MatchStatus = Field(default_factory=MatchStatus)
    top_matches: list[RankedCandidate] = Field(default_factory=list)
    proposed_name: str | None = None
    rejection: RejectionReason | None = None

    @property
    def matched(self) -> bool:
        return self.episode is not None

    @property
    def confidence_label(self) -> str:
        if self.score >= 0.75:
            return "High"
        if self.score >= 0.66:
            return "Medium"
        if self.score >= 0.55:
            return "Low"
        return "Very Low"


class TMDBShow(BaseModel):
    id: int
    name: str
    original_name: str | None = None
    first_air_date: str | None = None


class TMDBEpisode(BaseModel):
    id: int | None = None
    name: str = ""
    season_number: int
    episode_number: int
    air_date: str | None = None
    runtime: int | None = None

    def to_candidate(self) -> CandidateEpisode:
        return CandidateEpisode(
            season=self.season_number,
            number=self.episode_number,
            title=self.name,
            runtime_minutes=self.runtime,
            air_date=self.air_date or None,
        )


class TMDBSeason(BaseModel):
    id: int | None = None
    name: str = ""
    season_number: int
    episodes: list[TMDBEpisode] = Field(default_factory=list)


class SubtitleCandidate(BaseModel):
    """A subtitle search hit, flattened from the OpenSubtitles payload."""

    subtitle_id: str
    file_id: int | None = None
    file_name: str | None = None
    language: str | None = None
    download_count: int | None = None
    release: str | None = None


class MatchOutcome(BaseModel):
    """Result of one matching run."""

    show: TMDBShow
    season: int
    decisions: list[MatchDecision] = Field(default_factory=list)
    durations: dict[str, float] = Field(default_factory=dict)
    expected_range_count: int = 0
    matched_count: int = 0
    missing_episodes: list[int] = Field(default_factory=list)
    status_message: str = ""

    @property
    def all_range_matched(self) -> bool:
        return self.expected_range_count > 0 and self.matched_count >= self.expected_range_count
