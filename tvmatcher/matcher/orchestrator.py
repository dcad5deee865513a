"""Concurrent per-file probing and sequential reference subtitle retrieval."""

import asyncio
from collections.abc import Callable, Sequence
from pathlib import Path

from loguru import logger

from tvmatcher.core.errors import CacheError
from tvmatcher.matcher.media_tools import DurationInfo, SubtitleExtractionResult
from tvmatcher.matcher.models import CandidateEpisode, MediaFile
from tvmatcher.matcher.opensubtitles_client import OpenSubtitlesClient
from tvmatcher.matcher.similarity import full_text_from_bytes
from tvmatcher.matcher.subtitle_cache import CacheKey, SubtitleCache

DurationProbe = Callable[[Path], DurationInfo]
SampleExtractor = Callable[[Path], SubtitleExtractionResult]


class ProbeOrchestrator:
    """Fans out blocking per-file probes and fans the results back in.

    Each probe runs in a worker thread; a semaphore bounds how many run at
    once. Result mappings are assembled only after every task has finished,
    so no task writes to shared state.
    """

    def __init__(
        self,
        duration_probe: DurationProbe,
        sample_extractor: SampleExtractor,
        max_concurrency: int = 4,
    ):
        self.duration_probe = duration_probe
        self.sample_extractor = sample_extractor
        self.max_concurrency = max(1, max_concurrency)

    async def _gather(self, files: Sequence[MediaFile], work: Callable, label: str) -> list:
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def run_one(media_file: MediaFile):
            async with semaphore:
                try:
                    return await asyncio.to_thread(work, media_file.path)
                except Exception as e:
                    logger.warning(f"{label} failed file='{media_file.name}': {e}")
                    return None

        return await asyncio.gather(*(run_one(f) for f in files))

    async def load_durations(self, files: Sequence[MediaFile]) -> dict[str, float]:
        """Duration in seconds by file id; files whose probe failed are absent."""
        results = await self._gather(files, self.duration_probe, "Duration probe")

        durations = {}
        for media_file, info in zip(files, results):
            if info is None:
                continue
            if info.duration is None:
                logger.warning(f"Duration unknown file='{media_file.name}' error='{info.error}'")
                continue
            logger.debug(f"Duration file='{media_file.name}' seconds={info.duration:.1f}")
            durations[media_file.id] = info.duration
        return durations

    async def extract_samples(self, files: Sequence[MediaFile]) -> dict[str, SubtitleExtractionResult]:
        """Extraction result for every file id, successful or not."""
        results = await self._gather(files, self.sample_extractor, "Subtitle extraction")

        samples = {}
        for media_file, result in zip(files, results):
            if result is None:
                result = SubtitleExtractionResult(sample=None, error="Subtitle extraction crashed")
            if result.sample:
                logger.info(
                    f"Extracted subtitles file='{media_file.name}' codec={result.codec} "
                    f"chars={len(result.sample)}"
                )
            else:
                logger.warning(f"No subtitle sample file='{media_file.name}' error='{result.error}'")
            samples[media_file.id] = result
        return samples


def _cached_payload(cache: SubtitleCache, key: CacheKey) -> bytes | None:
    try:
        return cache.get(key)
    except CacheError as e:
        logger.warning(f"Ignoring unreadable cache entry, downloading again: {e}")
        return None


def fetch_episode_sample(
    client: OpenSubtitlesClient,
    cache: SubtitleCache,
    show_id: int,
    season: int,
    episode: int,
    language: str = "en",
) -> str | None:
    """Reference sample for one episode: search, then cache or download."""
    candidates = client.search_subtitles(show_id, season, episode, language)
    if not candidates:
        logger.warning(f"No reference subtitles found episode=S{season:02d}E{episode:02d}")
        return None

    file_id = candidates[0].file_id
    if file_id is None:
        logger.warning(f"Top subtitle result has no file episode=S{season:02d}E{episode:02d}")
        return None

    key = CacheKey(show_id=show_id, season=season, episode=episode, file_id=file_id)
    data = _cached_payload(cache, key)
    if data:
        text = full_text_from_bytes(data)
        if text is not None:
            return text
        logger.warning(f"Cached subtitles have no usable text, downloading again file_id={file_id}")

    data = client.download(file_id)
    text = full_text_from_bytes(data) if data else None
    if text is None:
        logger.warning(
            f"Downloaded subtitles have no usable text episode=S{season:02d}E{episode:02d} file_id={file_id}"
        )
        return None

    # Only payloads that produced text are cached
    cache.put(key, data)
    return text


def fetch_episode_samples(
    client: OpenSubtitlesClient,
    cache: SubtitleCache,
    show_id: int,
    season: int,
    episodes: Sequence[CandidateEpisode],
    language: str = "en",
) -> dict[int, str]:
    """Reference samples by episode number, fetched one episode at a time.

    Episodes without a usable reference are absent from the result;
    UpstreamError from the service propagates and aborts the run.
    """
    samples = {}
    for episode in episodes:
        sample = fetch_episode_sample(client, cache, show_id, season, episode.number, language)
        if sample:
            samples[episode.number] = sample
            logger.info(f"Reference subtitles ready episode={episode.s_e_format} chars={len(sample)}")
    return samples
