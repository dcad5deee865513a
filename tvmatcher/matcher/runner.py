"""One subtitle matching run, from user input to per-file decisions."""

import asyncio
import re
from collections.abc import Sequence
from dataclasses import dataclass

from loguru import logger

from tvmatcher.config import Settings
from tvmatcher.core.errors import InputError
from tvmatcher.matcher.assignment import hungarian
from tvmatcher.matcher.cost_matrix import build_for_run
from tvmatcher.matcher.media_tools import MediaTools
from tvmatcher.matcher.models import (
    CandidateEpisode,
    MatchDecision,
    MatchOutcome,
    MatchStatus,
    MediaFile,
    RejectionReason,
)
from tvmatcher.matcher.opensubtitles_client import OpenSubtitlesClient
from tvmatcher.matcher.orchestrator import ProbeOrchestrator, fetch_episode_samples
from tvmatcher.matcher.subtitle_cache import FileSubtitleCache, SubtitleCache
from tvmatcher.matcher.tmdb_client import TMDBClient
from tvmatcher.matcher.validation import ValidationPipeline

_RANGE = re.compile(r"^(\d+)(?:-(\d+))?$")


def parse_episode_range(text: str) -> tuple[int, int]:
    """Parse ``"13-24"`` or ``"5"`` into an inclusive range.

    Raises:
        InputError: If the text is not a range of positive numbers with start <= end.
    """
    cleaned = re.sub(r"\s+", "", text or "")
    match = _RANGE.match(cleaned)
    if not match:
        raise InputError(f"Invalid episode range '{text}' (expected e.g. 13-24)")
    start = int(match.group(1))
    end = int(match.group(2)) if match.group(2) else start
    if start < 1 or end < start:
        raise InputError(f"Invalid episode range '{text}' (start must be >= 1 and <= end)")
    return start, end


def parse_season(value: str | int) -> int:
    try:
        season = int(str(value).strip())
    except ValueError as e:
        raise InputError(f"Invalid season '{value}'") from e
    if season < 0:
        raise InputError(f"Invalid season '{value}'")
    return season


@dataclass
class MatchRequest:
    """User input for one run."""

    show_name: str
    season: str | int
    episode_range: str


def _unmatched(
    media_file: MediaFile,
    reason: RejectionReason,
    message: str,
    attempted: bool,
    duration_known: bool,
) -> MatchDecision:
    return MatchDecision(
        file=media_file,
        reasons=[message],
        status=MatchStatus(
            subtitles_attempted=attempted,
            duration_checked=duration_known,
            last_error=message,
        ),
        rejection=reason,
    )


class SubtitleMatchRunner:
    """Drives a run: lookup, probing, reference download, assignment, validation.

    Collaborators default to the real services built from ``settings``;
    tests inject fakes.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        tmdb: TMDBClient | None = None,
        subtitles: OpenSubtitlesClient | None = None,
        cache: SubtitleCache | None = None,
        orchestrator: ProbeOrchestrator | None = None,
    ):
        self.settings = settings
        self.tmdb = tmdb
        self.subtitles = subtitles
        self.cache = cache or FileSubtitleCache(settings.cache_dir)
        if orchestrator is None:
            tools = MediaTools(settings.ffprobe_path, settings.ffmpeg_path)
            orchestrator = ProbeOrchestrator(
                tools.probe_duration, tools.extract_sample, settings.max_concurrent_probes
            )
        self.orchestrator = orchestrator
        self.pipeline = ValidationPipeline(settings.match_policy())

    def _tmdb_client(self) -> TMDBClient:
        if self.tmdb is None:
            self.tmdb = TMDBClient(self.settings.tmdb_access_token)
        return self.tmdb

    def _subtitle_client(self) -> OpenSubtitlesClient | None:
        if self.subtitles is None and self.settings.opensubtitles_configured:
            self.subtitles = OpenSubtitlesClient(
                self.settings.opensubtitles_api_key,
                self.settings.opensubtitles_username,
                self.settings.opensubtitles_password,
            )
        return self.subtitles

    async def run(self, request: MatchRequest, files: Sequence[MediaFile]) -> MatchOutcome:
        """Match files against the requested episode range.

        Raises:
            InputError: For invalid input, before any file is probed.
            UpstreamError: If a remote service fails.
        """
        show_name = request.show_name.strip()
        if not show_name:
            raise InputError("Show name is required")
        season = parse_season(request.season)
        start, end = parse_episode_range(request.episode_range)
        if not files:
            raise InputError("No .mkv files to match")

        tmdb = self._tmdb_client()
        show = await asyncio.to_thread(tmdb.search_show, show_name)
        if show is None:
            raise InputError(f"No show found for '{show_name}'")
        season_info = await asyncio.to_thread(tmdb.fetch_season, show.id, season)
        if season_info is None:
            raise InputError(f"Season {season} not found for '{show.name}'")

        episodes = [
            ep.to_candidate()
            for ep in sorted(season_info.episodes, key=lambda e: e.episode_number)
            if start <= ep.episode_number <= end
        ]
        if not episodes:
            raise InputError(f"No episodes {start}-{end} in season {season} of '{show.name}'")

        present = {ep.number for ep in episodes}
        missing = [n for n in range(start, end + 1) if n not in present]
        if missing:
            logger.warning(f"Episodes missing from metadata: {missing}")

        logger.info(
            f"Matching {len(files)} file(s) against {show.name} S{season:02d} "
            f"E{start:02d}-E{end:02d} ({len(episodes)} episodes)"
        )

        durations = await self.orchestrator.load_durations(files)
        decisions = await self._match_subtitles(show.id, season, files, episodes, durations)
        decisions.sort(key=lambda d: (d.file.name.casefold(), d.file.name, str(d.file.path)))

        matched_numbers = {d.episode.number for d in decisions if d.episode is not None}
        expected = end - start + 1
        if matched_numbers:
            status_message = f"Matched {len(matched_numbers)} of {expected} episode(s) by subtitles."
        else:
            status_message = "No subtitle matches found."
        logger.info(status_message)

        return MatchOutcome(
            show=show,
            season=season,
            decisions=decisions,
            durations=durations,
            expected_range_count=expected,
            matched_count=len(matched_numbers),
            missing_episodes=missing,
            status_message=status_message,
        )

    async def _match_subtitles(
        self,
        show_id: int,
        season: int,
        files: Sequence[MediaFile],
        episodes: list[CandidateEpisode],
        durations: dict[str, float],
    ) -> list[MatchDecision]:
        client = self._subtitle_client()
        if client is None:
            logger.warning("OpenSubtitles credentials not configured; subtitle matching disabled")
            return [
                _unmatched(
                    f,
                    RejectionReason.SUBTITLES_DISABLED,
                    "OpenSubtitles credentials not configured",
                    attempted=False,
                    duration_known=f.id in durations,
                )
                for f in files
            ]

        extraction = await self.orchestrator.extract_samples(files)
        file_samples = {fid: r.sample for fid, r in extraction.items() if r.sample}
        no_sample = [
            _unmatched(
                f,
                RejectionReason.NO_SAMPLE,
                extraction[f.id].error or "No subtitle sample",
                attempted=True,
                duration_known=f.id in durations,
            )
            for f in files
            if f.id not in file_samples
        ]
        if not file_samples:
            logger.warning("No subtitle samples extracted from any file")
            return no_sample

        episode_samples = await asyncio.to_thread(
            fetch_episode_samples,
            client,
            self.cache,
            show_id,
            season,
            episodes,
            self.settings.subtitle_language,
        )
        if not episode_samples:
            logger.warning("No reference subtitles downloaded for any episode")
            return no_sample + [
                _unmatched(
                    f,
                    RejectionReason.NO_REFERENCE,
                    "No reference subtitles downloaded",
                    attempted=True,
                    duration_known=f.id in durations,
                )
                for f in files
                if f.id in file_samples
            ]

        rows, matrix = build_for_run(files, file_samples, episodes, episode_samples, self.pipeline.scorer)
        assignment = hungarian(matrix)
        matched = self.pipeline.evaluate(
            rows, file_samples, episodes, episode_samples, assignment, durations
        )
        return no_sample + matched
