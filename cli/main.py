"""
Command-line entry point: compute stop frequencies and save the map.

Usage:
  python -m cli.main 06:00:00 21:00:00 2023-10-13 "/data/bus"
  python -m cli.main                     # prompts for each value

Arguments:
  start   Count visits departing at or after this time (HH:MM:SS).
  end     Count visits departing before this time (HH:MM:SS).  For late-night
          trips belonging to the previous service day use a time past
          23:59:59, e.g. 27:00:00.
  date    Service date (YYYY-MM-DD).
  source  Directory of GTFS .txt files, or a .zip.

Exit codes: 0 success, 1 missing feed data, 2 invalid input.
"""

import argparse
import logging
import sys
from concurrent.futures import ProcessPoolExecutor
from typing import Sequence

from cli.params import FrequencyParams, params_from_args, params_from_prompt
from config import COUNT_PARTITIONS, COUNT_WORKERS, MAP_OUTPUT_PATH
from frequency.pipeline import compute_feed_frequencies
from ingestion.gtfs_static import load_feed
from rendering.stop_map import build_stop_map, save_stop_map
from schedule.errors import InvalidInputError, MissingRequiredDataError

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="stop-frequency-map",
        description="Map the transit service frequency each stop receives.",
    )
    parser.add_argument("values", nargs="*", metavar="START END DATE SOURCE",
                        help="Time window, service date and GTFS source. Prompts if omitted.")
    parser.add_argument("--output", default=str(MAP_OUTPUT_PATH),
                        help="Where to save the HTML map (default: %(default)s)")
    parser.add_argument("--workers", type=int, default=COUNT_WORKERS,
                        help="Processes used to count stop visits (default: %(default)s)")
    parser.add_argument("--partitions", type=int, default=COUNT_PARTITIONS,
                        help="Partitions of stop_times to count (default: workers)")
    return parser


def run(params: FrequencyParams, output: str, workers: int = 1, partitions: int = 1) -> str:
    """Load the feed, compute frequencies, render and save the map."""
    feed = load_feed(params.source)
    partitions = max(partitions, workers)
    if workers > 1:
        with ProcessPoolExecutor(max_workers=workers) as pool:
            results = compute_feed_frequencies(
                feed, params.service_date, params.window_start, params.window_end,
                partitions=partitions, map_fn=pool.map,
            )
    else:
        results = compute_feed_frequencies(
            feed, params.service_date, params.window_start, params.window_end,
            partitions=partitions,
        )

    logger.info("Creating the map. This may take a while.")
    path = save_stop_map(build_stop_map(feed.stops, results), output)
    return str(path)


def main(argv: Sequence[str] | None = None) -> int:
    logging.basicConfig(level=logging.INFO)
    args = build_parser().parse_args(argv)

    try:
        if len(args.values) == 4:
            params = params_from_args(args.values)
        else:
            if args.values:
                logger.warning("Expected 4 arguments, got %d; asking interactively.", len(args.values))
            params = params_from_prompt()
        path = run(params, args.output, workers=args.workers, partitions=args.partitions)
    except InvalidInputError as exc:
        logger.error("Code execution stopped because the arguments were invalid: %s", exc)
        return 2
    except MissingRequiredDataError as exc:
        logger.error("Code execution stopped because feed data is missing: %s", exc)
        return 1

    print(f"Map saved to {path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
