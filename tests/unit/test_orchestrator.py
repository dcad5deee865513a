"""Unit tests for concurrent probing and reference subtitle retrieval."""

import threading
import time
from pathlib import Path
from unittest.mock import Mock

import pytest

from tests.fixtures.subtitle_samples import dialogue, srt_bytes
from tvmatcher.core.errors import CacheError, UpstreamError
from tvmatcher.matcher.media_tools import DurationInfo, SubtitleExtractionResult
from tvmatcher.matcher.models import CandidateEpisode, MediaFile, SubtitleCandidate
from tvmatcher.matcher.orchestrator import (
    ProbeOrchestrator,
    fetch_episode_sample,
    fetch_episode_samples,
)
from tvmatcher.matcher.similarity import normalize
from tvmatcher.matcher.subtitle_cache import CacheKey, FileSubtitleCache


def media(name: str) -> MediaFile:
    return MediaFile(id=name, path=Path("/rips") / name)


def no_extraction(path):
    return SubtitleExtractionResult(sample=None, error="unused")


@pytest.mark.unit
class TestLoadDurations:
    async def test_collects_known_durations(self):
        durations = {"a.mkv": 1400.0, "b.mkv": 1500.0}

        def probe(path):
            return DurationInfo(duration=durations.get(path.name), error=None if path.name in durations else "exit 1")

        orchestrator = ProbeOrchestrator(probe, no_extraction)
        result = await orchestrator.load_durations([media("a.mkv"), media("b.mkv"), media("c.mkv")])
        assert result == {"a.mkv": 1400.0, "b.mkv": 1500.0}

    async def test_probe_exception_is_isolated(self):
        def probe(path):
            if path.name == "bad.mkv":
                raise RuntimeError("ffprobe exploded")
            return DurationInfo(duration=100.0)

        orchestrator = ProbeOrchestrator(probe, no_extraction)
        result = await orchestrator.load_durations([media("bad.mkv"), media("good.mkv")])
        assert result == {"good.mkv": 100.0}

    async def test_concurrency_is_bounded(self):
        lock = threading.Lock()
        running = 0
        peak = 0

        def probe(path):
            nonlocal running, peak
            with lock:
                running += 1
                peak = max(peak, running)
            time.sleep(0.02)
            with lock:
                running -= 1
            return DurationInfo(duration=1.0)

        orchestrator = ProbeOrchestrator(probe, no_extraction, max_concurrency=2)
        files = [media(f"t{i:02d}.mkv") for i in range(6)]
        result = await orchestrator.load_durations(files)

        assert len(result) == 6
        assert peak <= 2

    async def test_empty(self):
        orchestrator = ProbeOrchestrator(Mock(), no_extraction)
        assert await orchestrator.load_durations([]) == {}

    async def test_runs_in_worker_threads(self):
        loop_thread = threading.get_ident()
        seen = []

        def probe(path):
            seen.append(threading.get_ident())
            return DurationInfo(duration=1.0)

        await ProbeOrchestrator(probe, no_extraction).load_durations([media("a.mkv")])
        assert seen and seen[0] != loop_thread


@pytest.mark.unit
class TestExtractSamples:
    async def test_every_file_has_a_result(self):
        def extract(path):
            if path.name == "pgs.mkv":
                return SubtitleExtractionResult(sample=None, codec="hdmv_pgs_subtitle", error="OCR")
            if path.name == "crash.mkv":
                raise OSError("disk gone")
            return SubtitleExtractionResult(sample="some words", codec="subrip")

        orchestrator = ProbeOrchestrator(Mock(), extract)
        results = await orchestrator.extract_samples([media("ok.mkv"), media("pgs.mkv"), media("crash.mkv")])

        assert set(results) == {"ok.mkv", "pgs.mkv", "crash.mkv"}
        assert results["ok.mkv"].sample == "some words"
        assert results["pgs.mkv"].error == "OCR"
        assert results["crash.mkv"].sample is None
        assert results["crash.mkv"].error


@pytest.mark.unit
class TestFetchEpisodeSamples:
    def test_downloads_and_caches(self, fake_subtitle_client, temp_cache_dir):
        cache = FileSubtitleCache(temp_cache_dir)
        episodes = [CandidateEpisode(season=1, number=n, title=f"E{n}") for n in (1, 2)]

        samples = fetch_episode_samples(fake_subtitle_client, cache, 1396, 1, episodes)

        assert samples == {1: normalize(dialogue(1)), 2: normalize(dialogue(2))}
        assert fake_subtitle_client.download.call_count == 2
        assert cache.get(CacheKey(1396, 1, 1, 1001)) == srt_bytes(1, compressed=True)
        searched = [c.args[2] for c in fake_subtitle_client.search_subtitles.call_args_list]
        assert searched == [1, 2]

    def test_warm_cache_skips_download(self, fake_subtitle_client, temp_cache_dir):
        cache = FileSubtitleCache(temp_cache_dir)
        cache.put(CacheKey(1396, 1, 5, 1005), srt_bytes(5))

        sample = fetch_episode_sample(fake_subtitle_client, cache, 1396, 1, 5)

        assert sample == normalize(dialogue(5))
        fake_subtitle_client.download.assert_not_called()

    def test_unreadable_cache_falls_back_to_download(self, fake_subtitle_client):
        cache = Mock()
        cache.get.side_effect = CacheError("corrupt")
        sample = fetch_episode_sample(fake_subtitle_client, cache, 1396, 1, 2)

        assert sample == normalize(dialogue(2))
        fake_subtitle_client.download.assert_called_once_with(1002)
        cache.put.assert_called_once()

    def test_empty_download_is_not_cached(self, fake_subtitle_client, temp_cache_dir):
        cache = FileSubtitleCache(temp_cache_dir)
        fake_subtitle_client.download.side_effect = [b"", srt_bytes(1)]

        assert fetch_episode_sample(fake_subtitle_client, cache, 1396, 1, 1) is None
        assert cache.get(CacheKey(1396, 1, 1, 1001)) is None

        assert fetch_episode_sample(fake_subtitle_client, cache, 1396, 1, 1) == normalize(dialogue(1))
        assert fake_subtitle_client.download.call_count == 2
        assert cache.get(CacheKey(1396, 1, 1, 1001)) == srt_bytes(1)

    def test_textless_download_is_not_cached(self, fake_subtitle_client, temp_cache_dir):
        cache = FileSubtitleCache(temp_cache_dir)
        fake_subtitle_client.download.side_effect = [b"1\n00:00:01,000 --> 00:00:02,000\n\n"]

        assert fetch_episode_sample(fake_subtitle_client, cache, 1396, 1, 1) is None
        assert not cache.path_for(CacheKey(1396, 1, 1, 1001)).exists()

    def test_unusable_cache_entry_is_downloaded_again(self, fake_subtitle_client, temp_cache_dir):
        cache = FileSubtitleCache(temp_cache_dir)
        key = CacheKey(1396, 1, 4, 1004)
        cache.put(key, b"")

        assert fetch_episode_sample(fake_subtitle_client, cache, 1396, 1, 4) == normalize(dialogue(4))
        fake_subtitle_client.download.assert_called_once_with(1004)
        assert cache.get(key) == srt_bytes(4, compressed=True)

    def test_no_results_or_no_file(self, temp_cache_dir):
        client = Mock()
        client.search_subtitles.side_effect = [[], [SubtitleCandidate(subtitle_id="1", file_id=None)]]
        cache = FileSubtitleCache(temp_cache_dir)
        episodes = [CandidateEpisode(season=1, number=n, title="") for n in (1, 2)]

        assert fetch_episode_samples(client, cache, 1, 1, episodes) == {}
        client.download.assert_not_called()

    def test_upstream_error_propagates(self, temp_cache_dir):
        client = Mock()
        client.search_subtitles.side_effect = UpstreamError("HTTP 500")
        episodes = [CandidateEpisode(season=1, number=1, title="")]
        with pytest.raises(UpstreamError):
            fetch_episode_samples(client, FileSubtitleCache(temp_cache_dir), 1, 1, episodes)
