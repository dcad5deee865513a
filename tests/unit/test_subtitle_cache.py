"""Unit tests for the on-disk subtitle cache."""

from unittest.mock import patch

import pytest

from tvmatcher.core.errors import CacheError
from tvmatcher.matcher.subtitle_cache import CacheKey, FileSubtitleCache

KEY = CacheKey(show_id=1396, season=1, episode=3, file_id=987654)


@pytest.mark.unit
class TestFileSubtitleCache:
    def test_filename_layout(self):
        assert KEY.filename == "tmdb_1396_s1_e3_file_987654.bin"

    def test_miss_returns_none(self, temp_cache_dir):
        assert FileSubtitleCache(temp_cache_dir).get(KEY) is None

    def test_put_then_get(self, temp_cache_dir):
        cache = FileSubtitleCache(temp_cache_dir)
        assert cache.put(KEY, b"\x1f\x8bpayload")
        assert cache.get(KEY) == b"\x1f\x8bpayload"
        assert (temp_cache_dir / KEY.filename).exists()

    def test_put_creates_directory(self, tmp_path):
        cache = FileSubtitleCache(tmp_path / "nested" / "cache")
        assert cache.put(KEY, b"data")
        assert cache.get(KEY) == b"data"

    def test_put_leaves_no_temporary_files(self, temp_cache_dir):
        cache = FileSubtitleCache(temp_cache_dir)
        cache.put(KEY, b"one")
        cache.put(KEY, b"two")
        assert [p.name for p in temp_cache_dir.iterdir()] == [KEY.filename]
        assert cache.get(KEY) == b"two"

    def test_failed_replace_keeps_previous_entry(self, temp_cache_dir):
        cache = FileSubtitleCache(temp_cache_dir)
        cache.put(KEY, b"complete")

        with patch("tvmatcher.matcher.subtitle_cache.os.replace", side_effect=OSError("disk full")):
            assert cache.put(KEY, b"partial") is False

        assert cache.get(KEY) == b"complete"
        assert [p.name for p in temp_cache_dir.iterdir()] == [KEY.filename]

    def test_unreadable_entry_raises_cache_error(self, temp_cache_dir):
        cache = FileSubtitleCache(temp_cache_dir)
        cache.put(KEY, b"data")
        with patch("pathlib.Path.read_bytes", side_effect=PermissionError("denied")):
            with pytest.raises(CacheError):
                cache.get(KEY)
