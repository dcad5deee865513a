"""Unit tests for cost matrix construction."""

from pathlib import Path

import pytest

from tests.fixtures.subtitle_samples import dialogue
from tvmatcher.matcher.cost_matrix import PADDING_COST, build_cost_matrix, build_for_run, order_rows
from tvmatcher.matcher.models import CandidateEpisode, MediaFile


def media(name: str) -> MediaFile:
    return MediaFile(id=name, path=Path("/rips") / name)


def fixed_scorer(table):
    """Scorer that looks similarity up by (file sample, episode sample)."""
    return lambda a, b: table.get((a, b), 0.0)


@pytest.mark.unit
class TestBuildCostMatrix:
    def test_three_files_five_episodes_is_padded_square(self):
        files = [dialogue(n) for n in (1, 2, 3)]
        episodes = [dialogue(n) for n in (1, 2, 3, 4, 5)]
        matrix = build_cost_matrix(files, episodes)

        assert len(matrix) == 5
        assert all(len(row) == 5 for row in matrix)
        assert matrix[3] == [PADDING_COST] * 5
        assert matrix[4] == [PADDING_COST] * 5
        for i in range(3):
            assert matrix[i][i] == pytest.approx(0.0)

    def test_cost_is_one_minus_similarity(self):
        scorer = fixed_scorer({("a", "x"): 0.8, ("a", "y"): 0.3, ("b", "y"): 0.6})
        matrix = build_cost_matrix(["a", "b"], ["x", "y"], scorer=scorer)
        assert matrix == [
            [pytest.approx(0.2), pytest.approx(0.7)],
            [pytest.approx(1.0), pytest.approx(0.4)],
        ]

    def test_more_files_than_episodes_pads_columns(self):
        scorer = fixed_scorer({("a", "x"): 0.9})
        matrix = build_cost_matrix(["a", "b", "c"], ["x"], scorer=scorer)
        assert len(matrix) == 3
        assert [row[1:] for row in matrix] == [[PADDING_COST] * 2] * 3

    def test_missing_episode_sample_costs_one(self):
        matrix = build_cost_matrix([dialogue(1)], [None, dialogue(1)])
        assert matrix[0][0] == pytest.approx(1.0)
        assert matrix[0][1] == pytest.approx(0.0)

    def test_all_costs_in_unit_interval(self):
        matrix = build_cost_matrix([dialogue(1), dialogue(2)], [dialogue(2), dialogue(3), None])
        assert all(0.0 <= cell <= 1.0 for row in matrix for cell in row)

    def test_empty(self):
        assert build_cost_matrix([], []) == []


@pytest.mark.unit
class TestRowOrder:
    def test_case_insensitive_name_order(self):
        files = [media("b.mkv"), media("A.mkv"), media("c.mkv")]
        samples = {f.id: "text" for f in files}
        assert [f.name for f in order_rows(files, samples)] == ["A.mkv", "b.mkv", "c.mkv"]

    def test_files_without_sample_are_excluded(self):
        files = [media("a.mkv"), media("b.mkv")]
        assert [f.name for f in order_rows(files, {"b.mkv": "text", "a.mkv": ""})] == ["b.mkv"]

    def test_build_for_run_is_independent_of_input_order(self):
        files = [media("t02.mkv"), media("t00.mkv"), media("t01.mkv")]
        samples = {f.id: dialogue(int(f.name[1:3])) for f in files}
        episodes = [CandidateEpisode(season=1, number=n, title=f"E{n}") for n in (0, 1, 2)]
        episode_samples = {n: dialogue(n) for n in (0, 1, 2)}

        rows_a, matrix_a = build_for_run(files, samples, episodes, episode_samples)
        rows_b, matrix_b = build_for_run(list(reversed(files)), samples, episodes, episode_samples)

        assert [f.name for f in rows_a] == ["t00.mkv", "t01.mkv", "t02.mkv"]
        assert rows_a == rows_b
        assert matrix_a == matrix_b
