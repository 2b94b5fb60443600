"""
Adversarial game simulation.

Black plays the engine's best move, White plays the worst of the engine's
top-K moves. The asymmetry walks White into short forced mates far more
often than random play would, which is what makes the final positions
usable as casual mate-in-1 puzzles.
"""

from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from tsume.config import GeneratorConfig
from tsume.constants import RESIGN_RETRY_FACTOR
from tsume.engine import EngineSession, SearchResult
from tsume.errors import EngineFailure
from tsume.position import Board, Position, Side

ATTACKER = Side.BLACK


class OutcomeKind(Enum):
    CHECKMATE = "checkmate"
    DRAW_BY_REPETITION = "repetition"
    DRAW_OTHER = "draw"
    MOVE_LIMIT_EXCEEDED = "move_limit"
    ENGINE_FAILURE = "engine_failure"


@dataclass
class GameOutcome:
    """Terminal result of one simulated game."""
    kind: OutcomeKind
    plies: int
    winner: Optional[Side] = None
    # Position immediately before the mating move (checkmate only)
    position_before_mate: Optional[Position] = None
    final_sfen: Optional[str] = None
    moves: tuple[str, ...] = ()
    error: Optional[EngineFailure] = None
    detail: str = ""


def best_move(result: SearchResult) -> Optional[str]:
    """Attacker policy: the top-ranked candidate."""
    if result.candidates:
        return result.candidates[0].move
    return result.bestmove if result.bestmove_is_move else None


def worst_move(result: SearchResult) -> Optional[str]:
    """Defender policy: the lowest-ranked of the returned candidates."""
    if result.candidates:
        return result.candidates[-1].move
    return result.bestmove if result.bestmove_is_move else None


def search_for_side(session: EngineSession, side: Side, config: GeneratorConfig) -> SearchResult:
    """Search with the width used by `side`, retrying an unexplained resign once."""
    width = 1 if side is ATTACKER else config.multipv_k
    result = session.search(config.search_time_ms, width)
    if result.bestmove == "resign" and not result.candidates:
        result = session.search(config.search_time_ms * RESIGN_RETRY_FACTOR, width)
    return result


def choose_move(result: SearchResult, side: Side) -> Optional[str]:
    return best_move(result) if side is ATTACKER else worst_move(result)


def simulate_game(session: EngineSession, config: GeneratorConfig,
                  board: Optional[Board] = None) -> GameOutcome:
    """
    Play one game from the start position until it reaches a terminal outcome.

    Engine failures end the game with an ENGINE_FAILURE outcome carrying the
    exception; the caller decides whether that is fatal.
    """
    if board is None:
        board = Board(config.start_sfen)
    seen = Counter([board.signature()])

    def finish(kind: OutcomeKind, **kwargs) -> GameOutcome:
        return GameOutcome(kind=kind, plies=board.ply_count(), final_sfen=board.to_wire_form(),
                           moves=tuple(board.moves), **kwargs)

    try:
        while True:
            side = board.side_to_move
            session.set_position(board.root_sfen, board.moves)
            result = search_for_side(session, side, config)

            if result.is_win_declaration:
                return finish(OutcomeKind.DRAW_OTHER, detail=f"{side.name} declared a win")

            move = choose_move(result, side)
            if move is None:
                # No legal moves: a loss for the side to move (no stalemate in this variant)
                if board.previous is None:
                    return finish(OutcomeKind.DRAW_OTHER, detail="no legal moves at the start")
                return finish(OutcomeKind.CHECKMATE, winner=side.opponent,
                              position_before_mate=board.previous)

            board.apply(move)

            if board.ply_count() >= config.max_moves:
                return finish(OutcomeKind.MOVE_LIMIT_EXCEEDED)

            signature = board.signature()
            seen[signature] += 1
            if seen[signature] >= config.repetition_limit:
                return finish(OutcomeKind.DRAW_BY_REPETITION)
    except EngineFailure as e:
        return finish(OutcomeKind.ENGINE_FAILURE, error=e, detail=str(e))
