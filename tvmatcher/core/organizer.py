"""Organizer - file discovery, canonical episode names and renaming.

Matched files are renamed in place:
- Show Title_S01E05.mkv (title sanitized, spaces as underscores)
"""

import logging
import re
import shutil
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from tvmatcher.matcher.models import CandidateEpisode, MatchDecision

logger = logging.getLogger(__name__)

INVALID_FILENAME_CHARS = '/\\?%*|"<>:'


def sanitize_filename(name: str) -> str:
    """Replace characters not allowed in filenames and use underscores for spaces."""
    for char in INVALID_FILENAME_CHARS:
        name = name.replace(char, "-")
    name = re.sub(r"\s+", " ", name).strip()
    return name.replace(" ", "_")


def canonical_filename(episode: CandidateEpisode) -> str:
    """Proposed filename for an accepted episode, e.g. ``Pilot_S01E01.mkv``."""
    return f"{sanitize_filename(episode.title)}_S{episode.season:02d}E{episode.number:02d}.mkv"


def find_mkv_files(folder: Path) -> list[Path]:
    """Find .mkv files below a folder, skipping hidden files and directories."""
    folder = Path(folder)
    found = []
    for path in folder.rglob("*"):
        relative = path.relative_to(folder)
        if any(part.startswith(".") for part in relative.parts):
            continue
        if path.suffix.lower() == ".mkv" and path.is_file():
            found.append(path)
    return sorted(found, key=lambda p: (p.name.casefold(), str(p)))


def unique_destination(destination: Path) -> Path:
    """Return the destination, or the first free ``name_N.mkv`` variant of it."""
    if not destination.exists():
        return destination
    counter = 1
    while True:
        candidate = destination.with_stem(f"{destination.stem}_{counter}")
        if not candidate.exists():
            return candidate
        counter += 1


@dataclass
class RenameResult:
    """Outcome of renaming one matched file."""

    source: Path
    destination: Path | None = None
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.error is None


def rename_matched_files(decisions: Iterable[MatchDecision]) -> list[RenameResult]:
    """Rename every accepted file to its proposed name in the same folder.

    Failures are reported per file; remaining files are still renamed.
    """
    results = []
    for decision in decisions:
        if not decision.matched or not decision.proposed_name:
            continue

        source = decision.file.path
        target = source.with_name(decision.proposed_name)
        if target == source:
            results.append(RenameResult(source=source, destination=source))
            continue

        destination = unique_destination(target)
        if destination != target:
            logger.info(f"Renaming to avoid conflict: {destination.name}")

        try:
            shutil.move(str(source), str(destination))
        except OSError as e:
            logger.error(f"Failed to rename {source.name}: {e}")
            results.append(RenameResult(source=source, error=str(e)))
            continue

        logger.info(f"Renamed {source.name} -> {destination.name}")
        results.append(RenameResult(source=source, destination=destination))
    return results
