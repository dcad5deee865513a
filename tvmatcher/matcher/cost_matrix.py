"""Square dissimilarity matrix between file samples and episode reference samples."""

from collections.abc import Callable, Mapping, Sequence

from tvmatcher.matcher.models import CandidateEpisode, MediaFile
from tvmatcher.matcher.similarity import similarity

# Cost of a padding cell; a padded row or column never beats a real pair
PADDING_COST = 1.0


def order_rows(files: Sequence[MediaFile], samples: Mapping[str, str]) -> list[MediaFile]:
    """Files with a usable sample, ordered by display name (case-insensitive)."""
    with_samples = [f for f in files if samples.get(f.id)]
    return sorted(with_samples, key=lambda f: (f.name.casefold(), f.name, str(f.path)))


def build_cost_matrix(
    file_samples: Sequence[str],
    episode_samples: Sequence[str | None],
    scorer: Callable[[str, str], float] = similarity,
) -> list[list[float]]:
    """Build ``cost[i][j] = 1 - scorer(file_i, episode_j)`` padded to a square.

    Episodes without a reference sample score against an empty string (cost 1.0).
    The result has ``max(rows, cols)`` rows and columns; added cells hold
    ``PADDING_COST``.
    """
    rows = len(file_samples)
    cols = len(episode_samples)
    size = max(rows, cols)
    if size == 0:
        return []

    matrix = [[PADDING_COST] * size for _ in range(size)]
    for i, file_sample in enumerate(file_samples):
        for j, episode_sample in enumerate(episode_samples):
            matrix[i][j] = 1.0 - scorer(file_sample, episode_sample or "")
    return matrix


def build_for_run(
    files: Sequence[MediaFile],
    file_samples: Mapping[str, str],
    episodes: Sequence[CandidateEpisode],
    episode_samples: Mapping[int, str],
    scorer: Callable[[str, str], float] = similarity,
) -> tuple[list[MediaFile], list[list[float]]]:
    """Order the rows for a run and build the matching cost matrix.

    Returns the matrix row order alongside the matrix.
    """
    rows = order_rows(files, file_samples)
    matrix = build_cost_matrix(
        [file_samples[f.id] for f in rows],
        [episode_samples.get(ep.number) for ep in episodes],
        scorer=scorer,
    )
    return rows, matrix
