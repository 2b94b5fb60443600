"""
Mate-in-1 puzzle (tsume) generator for Wild Cat Shogi.

Usage:
    python -m tsume --help
    python -m tsume results.sfen 100
    tsume-parallel results.sfen 1000
"""

from tsume.constants import (
    STARTING_SFEN,
    MAX_MOVES,
    MULTIPV_K,
    SEARCH_TIME_MS,
    MAX_ATTEMPTS,
    REPETITION_LIMIT,
)

__all__ = [
    # Constants
    'STARTING_SFEN',
    'MAX_MOVES',
    'MULTIPV_K',
    'SEARCH_TIME_MS',
    'MAX_ATTEMPTS',
    'REPETITION_LIMIT',
    # Generation functions (import from tsume.generator / tsume.parallel when needed)
    # - run_generator, generate_puzzle, run_parallel, merge_outputs
]
