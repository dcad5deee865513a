"""Fixtures for end-to-end matching runs with fake collaborators.

The rip folder holds disc_t00..t02; their embedded subtitles are episodes
3, 1 and 2 of the TMDB_SEASON_S01_3EP fixture, in that order.
"""

from unittest.mock import Mock

import pytest

from tests.fixtures.subtitle_samples import dialogue
from tests.fixtures.tmdb_responses import TMDB_SEARCH_BREAKING_BAD, TMDB_SEASON_S01_3EP
from tvmatcher.matcher.media_tools import DurationInfo, SubtitleExtractionResult
from tvmatcher.matcher.models import TMDBSeason, TMDBShow
from tvmatcher.matcher.orchestrator import ProbeOrchestrator
from tvmatcher.matcher.similarity import normalize

EPISODE_BY_FILE = {"disc_t00.mkv": 3, "disc_t01.mkv": 1, "disc_t02.mkv": 2}

# Seconds; episode 3 has no TMDB runtime so its duration check is skipped
DURATION_BY_FILE = {"disc_t00.mkv": 2820.0, "disc_t01.mkv": 3510.0, "disc_t02.mkv": 2880.0}


def fake_probe(path):
    if path.name not in DURATION_BY_FILE:
        return DurationInfo(duration=None, error="exit 1: Invalid data found")
    return DurationInfo(duration=DURATION_BY_FILE[path.name])


def fake_extract(path):
    episode = EPISODE_BY_FILE.get(path.name)
    if episode is None:
        return SubtitleExtractionResult(sample=None, error="ffprobe found 0 subtitle streams")
    return SubtitleExtractionResult(sample=normalize(dialogue(episode)), codec="subrip")


@pytest.fixture
def fake_tmdb():
    tmdb = Mock()
    tmdb.search_show.return_value = TMDBShow.model_validate(TMDB_SEARCH_BREAKING_BAD["results"][0])
    tmdb.fetch_season.return_value = TMDBSeason.model_validate(TMDB_SEASON_S01_3EP)
    return tmdb


@pytest.fixture
def probe_calls():
    return []


@pytest.fixture
def orchestrator(probe_calls):
    def probe(path):
        probe_calls.append(path.name)
        return fake_probe(path)

    return ProbeOrchestrator(probe, fake_extract, max_concurrency=2)
