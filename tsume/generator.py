"""
Puzzle generation for a single worker.

A worker owns one engine session and fills puzzle slots one at a time. Each
slot gets up to max_attempts simulated games; an engine failure ends the
worker, keeping whatever it already wrote.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from tsume.config import GeneratorConfig
from tsume.engine import EngineSession
from tsume.errors import EngineFailure, PuzzleRejected
from tsume.extract import PuzzleRecord, extract_puzzle, verify_puzzle
from tsume.position import Board
from tsume.simulation import OutcomeKind, simulate_game


@dataclass
class WorkerResult:
    """Summary of one worker run, returned across the process boundary."""
    worker_id: int
    output_path: str
    requested: int
    produced: int = 0
    given_up: int = 0
    games: int = 0
    error: Optional[str] = None


def generate_puzzle(session: EngineSession, config: GeneratorConfig) -> tuple[Optional[PuzzleRecord], int]:
    """
    Fill one puzzle slot.

    Returns (record, games_played); record is None when all attempts were
    rejected. Raises EngineFailure if the session broke during a game.
    """
    for attempt in range(1, config.max_attempts + 1):
        outcome = simulate_game(session, config, Board(config.start_sfen))
        if outcome.kind is OutcomeKind.ENGINE_FAILURE:
            raise outcome.error
        try:
            record = extract_puzzle(outcome)
        except PuzzleRejected:
            continue
        if config.verify and not verify_puzzle(session, record, config):
            continue
        return record, attempt
    return None, config.max_attempts


def run_generator(output_path: Path | str, count: int, config: GeneratorConfig,
                  worker_id: int = 0, progress: bool = False) -> WorkerResult:
    """
    Generate up to `count` puzzles into output_path, one SFEN per line.

    The file is flushed after every puzzle so a later failure never loses
    accepted records.
    """
    result = WorkerResult(worker_id=worker_id, output_path=str(output_path), requested=count)

    with open(output_path, "w") as f:
        if count == 0:
            return result
        try:
            with EngineSession(config) as session:
                for slot in range(count):
                    record, games = generate_puzzle(session, config)
                    result.games += games
                    if record is None:
                        result.given_up += 1
                        if progress:
                            print(f"Slot {slot + 1:4d}/{count}: gave up after {games} games", flush=True)
                        continue
                    f.write(f"{record.sfen}\n")
                    f.flush()
                    result.produced += 1
                    if progress:
                        flip = " (flipped)" if record.flipped else ""
                        print(f"Slot {slot + 1:4d}/{count}: {record.sfen}{flip} "
                              f"[{games} games, {record.plies} plies]", flush=True)
        except EngineFailure as e:
            result.error = f"{type(e).__name__}: {e}"
            if progress:
                print(f"Error: {result.error}", flush=True)

    return result
