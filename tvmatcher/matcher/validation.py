"""Acceptance gates applied to each optimal assignment.

The solver always pairs every row with some column, so an assignment on its
own says nothing about whether the pair is right. Each row passes, in order:

1. assignment lookup (padding columns and episodes without a reference are rejected)
2. ranking of every referenced episode, top 3 kept for diagnostics
3. margin between the best and second-best score
4. tie-break among episodes that share the assigned title
5. absolute similarity threshold
6. runtime cross-check when both durations are known
"""

from collections import defaultdict
from collections.abc import Callable, Mapping, Sequence

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from tvmatcher.core.organizer import canonical_filename
from tvmatcher.matcher.models import (
    CandidateEpisode,
    MatchDecision,
    MatchStatus,
    MediaFile,
    RankedCandidate,
    RejectionReason,
)
from tvmatcher.matcher.similarity import similarity

TOP_MATCHES = 3


class MatchPolicy(BaseModel):
    """Thresholds for accepting an assignment."""

    model_config = ConfigDict(frozen=True)

    margin: float = Field(default=0.05, ge=0.0, le=1.0)
    threshold: float = Field(default=0.55, ge=0.0, le=1.0)
    max_duration_delta: float = Field(default=0.10, ge=0.0)


def duration_delta(file_seconds: float, runtime_minutes: int) -> float:
    """Relative difference between a file's duration and an episode runtime."""
    expected = runtime_minutes * 60
    return abs(file_seconds - expected) / expected


class ValidationPipeline:
    """Turns an assignment over the cost matrix rows into one decision per row."""

    def __init__(
        self,
        policy: MatchPolicy | None = None,
        scorer: Callable[[str, str], float] = similarity,
    ):
        self.policy = policy or MatchPolicy()
        self.scorer = scorer

    def rank(
        self,
        sample: str,
        episodes: Sequence[CandidateEpisode],
        episode_samples: Mapping[int, str],
    ) -> list[RankedCandidate]:
        """Score a file sample against every episode that has a reference sample.

        Sorted by descending score; ties keep candidate order.
        """
        scored = [
            RankedCandidate(episode=ep, score=self.scorer(sample, episode_samples[ep.number]))
            for ep in episodes
            if episode_samples.get(ep.number)
        ]
        return sorted(scored, key=lambda c: -c.score)

    def evaluate(
        self,
        rows: Sequence[MediaFile],
        file_samples: Mapping[str, str],
        episodes: Sequence[CandidateEpisode],
        episode_samples: Mapping[int, str],
        assignment: Sequence[int],
        durations: Mapping[str, float],
    ) -> list[MatchDecision]:
        """Validate the assignment of every matrix row.

        Args:
            rows: Files in cost matrix row order.
            file_samples: Normalized sample text by file id.
            episodes: Candidate episodes in cost matrix column order.
            episode_samples: Reference sample text by episode number.
            assignment: Column per row, as returned by the solver.
            durations: Known file durations in seconds by file id.
        """
        title_groups: dict[str, list[CandidateEpisode]] = defaultdict(list)
        for ep in episodes:
            if ep.title:
                title_groups[ep.title].append(ep)

        decisions = []
        for row, media_file in enumerate(rows):
            column = assignment[row] if row < len(assignment) else -1
            decisions.append(
                self._evaluate_row(
                    media_file,
                    file_samples[media_file.id],
                    column,
                    episodes,
                    episode_samples,
                    title_groups,
                    durations.get(media_file.id),
                )
            )
        return decisions

    def _evaluate_row(
        self,
        media_file: MediaFile,
        sample: str,
        column: int,
        episodes: Sequence[CandidateEpisode],
        episode_samples: Mapping[int, str],
        title_groups: Mapping[str, list[CandidateEpisode]],
        file_seconds: float | None,
    ) -> MatchDecision:
        status = MatchStatus(subtitles_attempted=True, duration_checked=file_seconds is not None)

        if column < 0 or column >= len(episodes):
            logger.info(f"No episode assigned file='{media_file.name}'")
            return self._reject(
                media_file, status, RejectionReason.PADDING, "No episode left to assign"
            )

        episode = episodes[column]
        if not episode_samples.get(episode.number):
            return self._reject(
                media_file,
                status,
                RejectionReason.NO_REFERENCE,
                f"No reference subtitles for {episode.s_e_format}",
            )

        ranking = self.rank(sample, episodes, episode_samples)
        top = ranking[:TOP_MATCHES]
        scores = {c.episode.number: c.score for c in ranking}
        score = scores[episode.number]

        logger.info(
            f"Subtitle ranking file='{media_file.name}' assigned={episode.s_e_format} score={score:.3f}"
        )
        for i, candidate in enumerate(top, 1):
            logger.info(
                f"  {i}. {candidate.episode.s_e_format} '{candidate.episode.title}': score={candidate.score:.3f}"
            )

        if len(ranking) >= 2:
            best, second = ranking[0].score, ranking[1].score
            if best - second < self.policy.margin:
                logger.info(
                    f"Margin gate rejected file='{media_file.name}' best={best:.3f} "
                    f"second={second:.3f} margin={self.policy.margin:.2f}"
                )
                return self._reject(
                    media_file,
                    status,
                    RejectionReason.LOW_MARGIN,
                    f"Ambiguous match: best {best:.2f} vs next {second:.2f}",
                    score=score,
                    top=top,
                )

        group = title_groups.get(episode.title, [])
        if len(group) > 1:
            referenced = [ep for ep in group if ep.number in scores]
            local_best = max(referenced, key=lambda ep: scores[ep.number])
            if local_best.number != episode.number:
                logger.info(
                    f"Duplicate title tie-break file='{media_file.name}' title='{episode.title}' "
                    f"{episode.s_e_format}->{local_best.s_e_format}"
                )
            episode = local_best
            score = scores[local_best.number]

        if score < self.policy.threshold:
            logger.info(
                f"Threshold gate rejected file='{media_file.name}' episode={episode.s_e_format} "
                f"score={score:.3f} threshold={self.policy.threshold:.2f}"
            )
            return self._reject(
                media_file,
                status,
                RejectionReason.LOW_SIMILARITY,
                f"Subtitle similarity {score:.2f} below {self.policy.threshold:.2f}",
                score=score,
                top=top,
            )

        runtime = episode.runtime_minutes
        if file_seconds is None or runtime is None:
            logger.debug(
                f"Duration gate skipped file='{media_file.name}' episode={episode.s_e_format} "
                f"file_seconds={file_seconds} runtime_minutes={runtime} reason=unknown"
            )
        elif runtime <= 0:
            logger.debug(
                f"Duration gate skipped file='{media_file.name}' episode={episode.s_e_format} "
                f"runtime_minutes={runtime} reason=zero_runtime"
            )
        else:
            delta = duration_delta(file_seconds, runtime)
            if delta > self.policy.max_duration_delta:
                logger.info(
                    f"Duration gate rejected file='{media_file.name}' episode={episode.s_e_format} "
                    f"file_seconds={file_seconds:.0f} runtime_minutes={runtime} delta={delta:.3f}"
                )
                return self._reject(
                    media_file,
                    status,
                    RejectionReason.DURATION_MISMATCH,
                    f"Duration differs from runtime by {delta:.0%}",
                    score=score,
                    top=top,
                )
            status.duration_used = True

        status.subtitles_matched = True
        status.last_error = f"Subtitle similarity {score:.2f}"
        reasons = ["Subtitles"]
        if status.duration_used:
            reasons.append("Duration")

        logger.info(
            f"Accepted file='{media_file.name}' episode={episode.s_e_format} score={score:.3f}"
        )
        return MatchDecision(
            file=media_file,
            episode=episode,
            score=score,
            reasons=reasons,
            status=status,
            top_matches=top,
            proposed_name=canonical_filename(episode),
        )

    @staticmethod
    def _reject(
        media_file: MediaFile,
        status: MatchStatus,
        reason: RejectionReason,
        message: str,
        score: float = 0.0,
        top: list[RankedCandidate] | None = None,
    ) -> MatchDecision:
        status.last_error = message
        return MatchDecision(
            file=media_file,
            score=score,
            reasons=[message],
            status=status,
            top_matches=top or [],
            rejection=reason,
        )
