"""
Turning finished games into puzzle records.
"""

from dataclasses import dataclass

from tsume.config import GeneratorConfig
from tsume.engine import EngineSession
from tsume.errors import PuzzleRejected
from tsume.position import Position, Side
from tsume.simulation import ATTACKER, GameOutcome, OutcomeKind, search_for_side


@dataclass(frozen=True)
class PuzzleRecord:
    """A mate-in-1 position with the attacker (Black) to move."""
    sfen: str
    flipped: bool = False
    plies: int = 0

    def __str__(self) -> str:
        return self.sfen


def normalize(position: Position, attacker: Side = ATTACKER) -> Position:
    """
    Mirror the position if needed so `attacker` is to move.

    An attacker-to-move position is returned as is; a mirrored one restarts
    at move number 1.
    """
    if position.side is attacker:
        return position.copy()
    position = position.mirrored()
    position.move_number = 1
    return position


def extract_puzzle(outcome: GameOutcome, attacker: Side = ATTACKER) -> PuzzleRecord:
    """
    Build a PuzzleRecord from a checkmate outcome.

    When the defender happened to deliver the mate, the position is mirrored
    so every record has the same side to move.

    Raises:
        PuzzleRejected: the game did not end in checkmate
    """
    if outcome.kind is not OutcomeKind.CHECKMATE:
        raise PuzzleRejected(f"Game ended in {outcome.kind.value} after {outcome.plies} plies")
    before = outcome.position_before_mate
    if before is None:
        raise PuzzleRejected("Checkmate outcome without the preceding position")
    if before.side is not outcome.winner:
        raise PuzzleRejected(
            f"Position before mate has {before.side.name} to move but {outcome.winner.name} won")

    flipped = outcome.winner is not attacker
    return PuzzleRecord(sfen=normalize(before, attacker).to_sfen(), flipped=flipped,
                        plies=outcome.plies)


def verify_puzzle(session: EngineSession, record: PuzzleRecord, config: GeneratorConfig) -> bool:
    """
    Re-query the engine: the best move must be a mate in 1 and leave the
    defender without a legal reply.
    """
    session.set_position(record.sfen)
    result = session.search(config.search_time_ms, 1)
    if not result.candidates or result.candidates[0].mate != 1:
        return False
    mating_move = result.candidates[0].move

    session.set_position(record.sfen, [mating_move])
    reply = search_for_side(session, ATTACKER.opponent, config)
    return reply.is_empty
