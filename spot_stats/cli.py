"""
Command line interface for spot-stats.

Usage:
    spot-stats --data ~/Downloads/my_spotify_data          # first run
    spot-stats                                             # later runs use the snapshot
    spot-stats --format sorted --top 25
    spot-stats --artist "Daft Punk" --format json --output daft.json
    python -m spot_stats --rebuild --data ./export
"""

import argparse
import json
import sys
from pathlib import Path
from typing import Iterator, List, Optional, Sequence, Tuple

from loguru import logger
from tabulate import tabulate

from .aggregator import AggregatedIndex, summary_as_dict
from .config import Settings, check_log_level
from .errors import SpotStatsError
from .models import GroupKey, Summary, TAG_TO_KIND
from .pipeline import load_or_build


# ---------------------------------------------------------------------------
# Filtering and rendering
# ---------------------------------------------------------------------------

def _matching(index: AggregatedIndex, args: argparse.Namespace) -> Iterator[Tuple[GroupKey, Summary]]:
    """Groups where any given label filter matches; everything without filters."""
    wanted_kind = TAG_TO_KIND[args.kind] if args.kind else None
    no_filters = args.artist is None and args.album is None and args.track is None
    for key, summary in index.items():
        if wanted_kind is not None and key.kind != wanted_kind:
            continue
        if no_filters or (
            key.level1 == args.artist
            or key.level2 == args.album
            or key.level3 == args.track
        ):
            yield key, summary


def render_table(rows: List[Tuple[GroupKey, Summary]]) -> str:
    return tabulate(
        [
            [k.level1, k.level2, k.level3, s.play_count, s.total_ms_played]
            for k, s in rows
        ],
        headers=["Artist", "Album / Show", "Track / Episode", "Plays", "Duration (ms)"],
        tablefmt="github",
    )


def render_sorted(rows: List[Tuple[GroupKey, Summary]], top: int = 0) -> str:
    ranked = sorted(rows, key=lambda row: row[1].total_ms_played, reverse=True)
    if top > 0:
        ranked = ranked[:top]
    return tabulate(
        [
            [rank, k.level1, k.level2, k.level3, s.play_count, s.total_ms_played]
            for rank, (k, s) in enumerate(ranked, start=1)
        ],
        headers=["Rank", "Artist", "Album / Show", "Track / Episode", "Plays", "Duration (ms)"],
        tablefmt="github",
    )


def render_json(rows: List[Tuple[GroupKey, Summary]]) -> str:
    return json.dumps([summary_as_dict(k, s) for k, s in rows], indent=2, ensure_ascii=False)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="spot-stats",
        description="Summarise your Spotify extended streaming history.",
    )
    parser.add_argument("-d", "--data", type=Path, metavar="DIR",
                        help="Export directory to build from (required on first run)")
    parser.add_argument("--snapshot", type=Path, metavar="PATH",
                        help="Snapshot file (default: $SPOT_STATS_SNAPSHOT_PATH or .data/spot_stats.snapshot)")
    parser.add_argument("--no-compress", action="store_true",
                        help="Write the snapshot without DEFLATE compression")
    parser.add_argument("--rebuild", action="store_true",
                        help="Ignore the existing snapshot and rebuild from --data")
    parser.add_argument("--artist", help="Only show groups with this artist")
    parser.add_argument("--album", help="Only show groups with this album or show")
    parser.add_argument("--track", help="Only show groups with this track or episode")
    parser.add_argument("--kind", choices=sorted(TAG_TO_KIND),
                        help="Only show one kind of content")
    parser.add_argument("--format", choices=["table", "sorted", "json"], default="table",
                        help="Output format (default: table)")
    parser.add_argument("--top", type=int, default=0, metavar="N",
                        help="With --format sorted, show only the top N (default: all)")
    parser.add_argument("-o", "--output", type=Path, metavar="FILE",
                        help="Write output to FILE instead of stdout")
    parser.add_argument("--log-level", help="Log level for stderr (default: WARNING)")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = Settings.from_env()
        log_level = check_log_level(args.log_level) if args.log_level else settings.log_level
    except ValueError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    logger.remove()
    logger.add(sys.stderr, level=log_level)

    source_dir = args.data or settings.data_dir
    snapshot_path = args.snapshot or settings.snapshot_path
    compress = settings.compress and not args.no_compress

    try:
        index = load_or_build(
            source_dir, snapshot_path, compress=compress, rebuild=args.rebuild,
        )
    except SpotStatsError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        if source_dir is None:
            print("Pass --data <DIR> on the first run to build the snapshot.", file=sys.stderr)
        return 1
    except ValueError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    rows = list(_matching(index, args))
    if args.format == "json":
        text = render_json(rows)
    elif args.format == "sorted":
        text = render_sorted(rows, args.top)
    else:
        text = render_table(rows)

    if args.output:
        try:
            args.output.write_text(text + "\n", encoding="utf-8")
        except OSError as e:
            print(f"ERROR: cannot write {args.output}: {e}", file=sys.stderr)
            return 1
        logger.info(f"Wrote {len(rows)} groups to {args.output}")
    else:
        print(text)
    return 0


def _cli_main() -> None:
    sys.exit(main())
