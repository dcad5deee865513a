"""ffprobe / ffmpeg wrappers: container duration and embedded subtitle text."""

import json
import os
import shutil
import subprocess
import tempfile
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from loguru import logger

from tvmatcher.core.errors import ToolError
from tvmatcher.matcher.similarity import full_text_from_bytes

TEXT_SUBTITLE_CODECS = frozenset({"subrip", "ass", "ssa", "mov_text", "webvtt", "srt"})
PREFERRED_LANGUAGES = ("eng", "en")

PROBE_TIMEOUT = 30
EXTRACT_TIMEOUT = 300


@dataclass
class DurationInfo:
    """Result of probing one file's duration."""

    duration: float | None
    source: str = "ffprobe"
    error: str | None = None


@dataclass
class SubtitleExtractionResult:
    """Result of extracting one file's subtitle sample."""

    sample: str | None
    codec: str | None = None
    error: str | None = None


@dataclass
class SubtitleStream:
    index: int
    codec: str | None
    language: str


@lru_cache(maxsize=4)
def find_executable(name: str, configured: str = "") -> str:
    """Resolve a tool from an explicit path or PATH, with caching."""
    if configured:
        if os.path.isfile(configured) and os.access(configured, os.X_OK):
            return configured
        raise ToolError(f"{name} not found at configured path '{configured}'")
    path = shutil.which(name)
    if not path:
        raise ToolError(
            f"{name} not found in PATH. Please ensure FFmpeg is installed and accessible."
        )
    return path


def _run(cmd: list[str], timeout: int) -> subprocess.CompletedProcess:
    logger.debug(f"Running command: {' '.join(cmd)}")
    try:
        return subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
    except subprocess.TimeoutExpired as e:
        raise ToolError(f"{Path(cmd[0]).name} timed out after {timeout}s") from e
    except OSError as e:
        raise ToolError(f"{Path(cmd[0]).name} launch failed: {e}") from e


def select_subtitle_stream(streams: list[dict], languages=PREFERRED_LANGUAGES) -> SubtitleStream | None:
    """Pick the first stream tagged with a preferred language, else the first stream."""
    parsed = []
    for stream in streams:
        index = stream.get("index")
        if not isinstance(index, int):
            continue
        language = str((stream.get("tags") or {}).get("language", "")).lower()
        codec = stream.get("codec_name")
        parsed.append(SubtitleStream(index=index, codec=codec.lower() if codec else None, language=language))

    for stream in parsed:
        if stream.language in languages:
            return stream
    return parsed[0] if parsed else None


class MediaTools:
    """Runs ffprobe and ffmpeg for one matching run.

    Both public methods are blocking and report failures in their result
    instead of raising, so one bad file never affects the others.
    """

    def __init__(self, ffprobe_path: str = "", ffmpeg_path: str = "", languages=PREFERRED_LANGUAGES):
        self.ffprobe_path = ffprobe_path
        self.ffmpeg_path = ffmpeg_path
        self.languages = languages

    def probe_duration(self, path: Path) -> DurationInfo:
        """Container duration in seconds."""
        try:
            ffprobe = find_executable("ffprobe", self.ffprobe_path)
            result = _run(
                [
                    ffprobe,
                    "-v",
                    "error",
                    "-show_entries",
                    "format=duration",
                    "-of",
                    "default=noprint_wrappers=1:nokey=1",
                    os.fspath(path),
                ],
                PROBE_TIMEOUT,
            )
        except ToolError as e:
            return DurationInfo(duration=None, error=str(e))

        if result.returncode != 0:
            return DurationInfo(duration=None, error=f"exit {result.returncode}: {result.stderr.strip()}")

        output = result.stdout.strip()
        try:
            return DurationInfo(duration=float(output))
        except ValueError:
            return DurationInfo(duration=None, error=f"invalid output: {output}")

    def list_subtitle_streams(self, path: Path) -> list[dict]:
        ffprobe = find_executable("ffprobe", self.ffprobe_path)
        result = _run(
            [
                ffprobe,
                "-v",
                "error",
                "-select_streams",
                "s",
                "-show_entries",
                "stream=index,codec_name:stream_tags=language",
                "-of",
                "json",
                os.fspath(path),
            ],
            PROBE_TIMEOUT,
        )
        if result.returncode != 0:
            raise ToolError(f"ffprobe exit {result.returncode}: {result.stderr.strip()}")
        try:
            return json.loads(result.stdout or "{}").get("streams", [])
        except ValueError as e:
            raise ToolError(f"ffprobe returned invalid JSON: {e}") from e

    def extract_sample(self, path: Path) -> SubtitleExtractionResult:
        """Normalized text of the preferred text subtitle track."""
        try:
            ffmpeg = find_executable("ffmpeg", self.ffmpeg_path)
            streams = self.list_subtitle_streams(path)
        except ToolError as e:
            return SubtitleExtractionResult(sample=None, error=str(e))

        if not streams:
            return SubtitleExtractionResult(sample=None, error="ffprobe found 0 subtitle streams")

        stream = select_subtitle_stream(streams, self.languages)
        if stream is None:
            return SubtitleExtractionResult(sample=None, error="ffprobe found subtitle streams but none usable")

        if stream.codec and stream.codec not in TEXT_SUBTITLE_CODECS:
            if stream.codec == "hdmv_pgs_subtitle":
                error = "PGS subtitles require OCR, which is not supported"
            else:
                error = f"Unsupported subtitle codec {stream.codec}"
            return SubtitleExtractionResult(sample=None, codec=stream.codec, error=error)

        with tempfile.TemporaryDirectory(prefix="tvmatcher_") as tmp_dir:
            output = Path(tmp_dir) / "track.srt"
            try:
                result = _run(
                    [
                        ffmpeg,
                        "-y",
                        "-i",
                        os.fspath(path),
                        "-map",
                        f"0:{stream.index}",
                        "-c:s",
                        "srt",
                        os.fspath(output),
                    ],
                    EXTRACT_TIMEOUT,
                )
            except ToolError as e:
                return SubtitleExtractionResult(sample=None, codec=stream.codec, error=str(e))

            if result.returncode != 0:
                return SubtitleExtractionResult(
                    sample=None, codec=stream.codec, error=f"ffmpeg exit {result.returncode}"
                )
            try:
                data = output.read_bytes()
            except OSError as e:
                return SubtitleExtractionResult(
                    sample=None, codec=stream.codec, error=f"Failed to read extracted subtitles: {e}"
                )

        sample = full_text_from_bytes(data)
        if sample is None:
            return SubtitleExtractionResult(sample=None, codec=stream.codec, error="Subtitle text decode failed")
        return SubtitleExtractionResult(sample=sample, codec=stream.codec)
