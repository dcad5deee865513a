"""Core pytest fixtures for subtitle matching tests."""

from pathlib import Path
from unittest.mock import Mock

import pytest

from tests.fixtures.subtitle_samples import srt_bytes
from tvmatcher.config import Settings
from tvmatcher.matcher.models import SubtitleCandidate


@pytest.fixture
def temp_cache_dir(tmp_path):
    """Isolated cache directory for each test."""
    cache_dir = tmp_path / "cache"
    cache_dir.mkdir()
    return cache_dir


@pytest.fixture
def settings(tmp_path, temp_cache_dir):
    """Settings with fake credentials and paths inside tmp_path."""
    return Settings(
        _env_file=None,
        tmdb_access_token="tmdb-test-key",
        opensubtitles_api_key="os-key",
        opensubtitles_username="user",
        opensubtitles_password="secret",
        cache_dir=temp_cache_dir,
        log_file=tmp_path / "logs" / "tvmatcher.log",
    )


@pytest.fixture
def rip_folder(tmp_path) -> Path:
    """Folder of three empty MKV files named like MakeMKV output."""
    folder = tmp_path / "rips"
    folder.mkdir()
    for name in ("disc_t00.mkv", "disc_t01.mkv", "disc_t02.mkv"):
        (folder / name).write_bytes(b"\x1a\x45\xdf\xa3")
    return folder


@pytest.fixture
def fake_subtitle_client():
    """OpenSubtitles client double serving synthetic SRTs.

    Episode ``n`` is served as file id ``1000 + n`` (gzip-compressed).
    """
    client = Mock()

    def search(show_id, season, episode, language="en"):
        return [SubtitleCandidate(subtitle_id=str(episode), file_id=1000 + episode, language=language)]

    client.search_subtitles.side_effect = search
    client.download.side_effect = lambda file_id: srt_bytes(file_id - 1000, compressed=True)
    return client
