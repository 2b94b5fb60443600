"""
Command-line interface for the tsume generator.
"""

import argparse
import multiprocessing
import sys

# Fix for macOS: use 'fork' start method for multiprocessing
# macOS switched to 'spawn' in Python 3.8 which causes issues with ProcessPoolExecutor
if sys.platform == 'darwin':
    try:
        multiprocessing.set_start_method('fork')
    except RuntimeError:
        pass  # Already set

from tsume.config import load_config
from tsume.constants import DEFAULT_OUTPUT, DEFAULT_COUNT, DEFAULT_WORKERS
from tsume.generator import run_generator
from tsume.parallel import run_parallel


def build_parser(default_workers: int = 1) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Generate mate-in-1 (tsume) puzzles by simulating engine games",
        epilog="The engine must be on PATH; the variant file defaults to ./variants.ini"
    )
    parser.add_argument("output", nargs="?", default=DEFAULT_OUTPUT,
                        help=f"Output file, one SFEN per line (default: {DEFAULT_OUTPUT})")
    parser.add_argument("count", nargs="?", type=int, default=DEFAULT_COUNT,
                        help=f"Number of puzzles to generate (default: {DEFAULT_COUNT})")
    parser.add_argument("--workers", "-w", type=int, default=default_workers,
                        help=f"Number of worker processes (default: {default_workers})")
    parser.add_argument("--engine", type=str, default=None,
                        help="Engine command (default: fairy-stockfish, or $TSUME_ENGINE)")
    parser.add_argument("--variants", type=str, default=None,
                        help="Variant definition file loaded by the engine")
    parser.add_argument("--time-ms", type=int, default=None,
                        help="Search time per move in milliseconds")
    parser.add_argument("--max-attempts", type=int, default=None,
                        help="Games tried per puzzle before giving up on it")
    parser.add_argument("--max-moves", type=int, default=None,
                        help="Plies per game before it is abandoned")
    parser.add_argument("--verify", action="store_true", default=None,
                        help="Re-check every puzzle with the engine before accepting it")
    parser.add_argument("--debug", action="store_true", default=None,
                        help="Echo engine protocol traffic to stderr")
    return parser


def main(argv=None, default_workers: int = 1):
    """Main entry point for the CLI."""
    # Required for Windows multiprocessing support
    multiprocessing.freeze_support()

    parser = build_parser(default_workers)
    args = parser.parse_args(argv)

    if args.count < 0:
        print("Error: count must not be negative")
        sys.exit(1)
    if args.workers < 1:
        print("Error: --workers must be at least 1")
        sys.exit(1)

    config = load_config(
        engine_command=args.engine,
        variants_path=args.variants,
        search_time_ms=args.time_ms,
        max_attempts=args.max_attempts,
        max_moves=args.max_moves,
        verify=args.verify,
        debug=args.debug,
    )

    if args.workers > 1:
        batch = run_parallel(args.output, args.count, args.workers, config)
        if batch.unique == 0 and batch.failed_workers:
            sys.exit(1)
        return

    result = run_generator(args.output, args.count, config, progress=True)
    print(f"Done: {result.produced} -> {args.output}", flush=True)
    if result.produced == 0 and result.error:
        sys.exit(1)


def parallel_main(argv=None):
    """Parallel wrapper: same arguments, DEFAULT_WORKERS processes."""
    main(argv, default_workers=DEFAULT_WORKERS)


if __name__ == "__main__":
    main()
