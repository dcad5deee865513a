"""
tvmatcher command line

Identifies the episodes in a folder of MKV files by their subtitles and
optionally renames them.

Usage:
    tvmatcher /media/rips --show "Steins;Gate" --season 1 --episodes 13-24
    tvmatcher /media/rips --show Andor --season 1 --episodes 1-12 --rename
    tvmatcher /media/rips --show Andor --season 1 --episodes 5 --debug
"""

import argparse
import asyncio
import sys
from pathlib import Path

from loguru import logger
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from tvmatcher.config import Settings
from tvmatcher.core.errors import InputError, TVMatcherError
from tvmatcher.core.logging import setup_logging
from tvmatcher.core.organizer import find_mkv_files, rename_matched_files
from tvmatcher.matcher.models import MatchOutcome, MediaFile
from tvmatcher.matcher.runner import MatchRequest, SubtitleMatchRunner

console = Console()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tvmatcher",
        description="Match MKV files to TV episodes by comparing subtitles",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("folder", type=Path, help="Folder containing .mkv files")
    parser.add_argument("--show", required=True, help="Show name to look up on TMDB")
    parser.add_argument("--season", required=True, help="Season number")
    parser.add_argument(
        "--episodes",
        required=True,
        help="Episode range on the disc, e.g. 13-24 or 5",
    )
    parser.add_argument(
        "--rename",
        action="store_true",
        help="Rename matched files to their proposed names",
    )
    parser.add_argument("--cache-dir", type=Path, help="Subtitle cache directory")
    parser.add_argument("--concurrency", type=int, help="Maximum parallel ffprobe/ffmpeg runs")
    parser.add_argument("--threshold", type=float, help="Minimum subtitle similarity to accept")
    parser.add_argument("--debug", action="store_true", help="Verbose console logging")
    return parser


def apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    """Copy of the settings with command line flags applied and validated.

    Raises:
        InputError: If a flag is out of range.
    """
    updates = {}
    if args.cache_dir is not None:
        updates["cache_dir"] = args.cache_dir
    if args.concurrency is not None:
        updates["max_concurrent_probes"] = max(1, args.concurrency)
    if args.threshold is not None:
        updates["match_threshold"] = args.threshold
    if args.debug:
        updates["debug"] = True
    try:
        return Settings.model_validate({**settings.model_dump(), **updates})
    except ValidationError as e:
        raise InputError(f"Invalid option: {describe_validation_error(e)}") from e


def describe_validation_error(error: ValidationError) -> str:
    """One line per invalid setting, e.g. ``match_threshold: Input should be ...``."""
    return "; ".join(
        f"{'.'.join(str(part) for part in detail['loc'])}: {detail['msg']}" for detail in error.errors()
    )


def load_settings(args: argparse.Namespace) -> Settings:
    """Settings from the environment with command line flags applied.

    Raises:
        InputError: If an environment value or a flag is invalid.
    """
    try:
        settings = Settings()
    except ValidationError as e:
        raise InputError(f"Invalid configuration: {describe_validation_error(e)}") from e
    return apply_overrides(settings, args)


def print_outcome(outcome: MatchOutcome) -> None:
    table = Table(
        title=f"{outcome.show.name} - Season {outcome.season}",
        show_header=True,
        header_style="bold magenta",
    )
    table.add_column("File", style="cyan")
    table.add_column("Episode")
    table.add_column("Score", justify="right")
    table.add_column("Confidence")
    table.add_column("Result")

    for decision in outcome.decisions:
        if decision.matched:
            episode = f"{decision.episode.s_e_format} {decision.episode.title}"
            result = f"[green]{decision.proposed_name}"
        else:
            episode = "-"
            result = f"[yellow]{decision.status.last_error or 'Unmatched'}"
        table.add_row(
            decision.file.name,
            episode,
            f"{decision.score:.2f}",
            decision.confidence_label,
            result,
        )

    console.print(table)
    console.print(f"[bold]{outcome.status_message}")
    if outcome.missing_episodes:
        missing = ", ".join(str(n) for n in outcome.missing_episodes)
        console.print(f"[yellow]Episodes missing from TMDB: {missing}")


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        settings = load_settings(args)
    except InputError as e:
        console.print(f"[red]{e}")
        return 1
    setup_logging(settings)

    if not args.folder.is_dir():
        console.print(f"[red]Not a folder: {args.folder}")
        return 1

    files = [MediaFile.from_path(p) for p in find_mkv_files(args.folder)]
    logger.info(f"Found {len(files)} .mkv file(s) in {args.folder}")

    request = MatchRequest(show_name=args.show, season=args.season, episode_range=args.episodes)
    try:
        runner = SubtitleMatchRunner(settings)
        outcome = asyncio.run(runner.run(request, files))
    except TVMatcherError as e:
        console.print(f"[red]{e}")
        return 1

    print_outcome(outcome)

    if args.rename:
        results = rename_matched_files(outcome.decisions)
        renamed = sum(1 for r in results if r.success)
        console.print(f"[green]Renamed {renamed} file(s)")
        for failed in (r for r in results if not r.success):
            console.print(f"[red]Failed to rename {failed.source.name}: {failed.error}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
