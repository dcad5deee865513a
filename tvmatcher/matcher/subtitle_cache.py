"""On-disk cache of downloaded reference subtitle payloads."""

import os
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from tvmatcher.core.errors import CacheError, error_context


@dataclass(frozen=True)
class CacheKey:
    """Identifies one downloaded subtitle file of one episode."""

    show_id: int
    season: int
    episode: int
    file_id: int

    @property
    def filename(self) -> str:
        return f"tmdb_{self.show_id}_s{self.season}_e{self.episode}_file_{self.file_id}.bin"


class SubtitleCache(ABC):
    """Storage for raw subtitle payloads keyed by show, season, episode and file."""

    @abstractmethod
    def get(self, key: CacheKey) -> bytes | None:
        """Return the cached payload, or None on a miss.

        Raises:
            CacheError: If an entry exists but cannot be read.
        """

    @abstractmethod
    def put(self, key: CacheKey, data: bytes) -> bool:
        """Store a complete payload. Returns False when the write failed."""


class FileSubtitleCache(SubtitleCache):
    """One file per entry inside a cache directory.

    Entries are written to a temporary file in the same directory and moved
    into place with ``os.replace``, so a reader never sees a partial entry.
    """

    def __init__(self, root: Path):
        self.root = Path(root).expanduser()

    def path_for(self, key: CacheKey) -> Path:
        return self.root / key.filename

    def get(self, key: CacheKey) -> bytes | None:
        path = self.path_for(key)
        if not path.exists():
            return None
        with error_context(
            error_types=(OSError,),
            default_message=f"Failed to read cache entry {path.name}",
            log_level="warning",
            wrap_as=CacheError,
        ):
            data = path.read_bytes()
        logger.debug(f"Cache hit {path.name} bytes={len(data)}")
        return data

    def put(self, key: CacheKey, data: bytes) -> bool:
        path = self.path_for(key)
        tmp_name = None
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                dir=self.root, prefix=f".{path.stem}.", suffix=".tmp", delete=False
            ) as tmp:
                tmp_name = tmp.name
                tmp.write(data)
            os.replace(tmp_name, path)
        except OSError as e:
            logger.warning(f"Failed to write cache entry {path.name}: {e}")
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            return False

        logger.debug(f"Cached {path.name} bytes={len(data)}")
        return True
