"""Tests for tsume.simulation module."""

from dataclasses import replace

import pytest

from tsume.constants import STARTING_SFEN
from tsume.engine import SearchResult
from tsume.errors import IllegalMoveError, SearchTimeoutError
from tsume.position import Side
from tsume.simulation import (
    OutcomeKind,
    best_move,
    simulate_game,
    worst_move,
)

# Kings stepping forward and back: returns to the start every four plies
SHUFFLE = ["2e2d", "2a2b", "2d2e", "2b2a"]


def shuffle_script(result_factory):
    def script(moves, width):
        return result_factory(SHUFFLE[len(moves) % 4])
    return script


class TestPolicies:
    """Tests for the attacker and defender move choice."""

    def test_best_move_is_first_candidate(self, result_factory):
        assert best_move(result_factory("1d1c", "3d3c", "2e2d")) == "1d1c"

    def test_worst_move_is_last_candidate(self, result_factory):
        for moves in [("1d1c",), ("1d1c", "3d3c"), ("1d1c", "3d3c", "2e2d", "1e2d", "3e2d")]:
            assert worst_move(result_factory(*moves)) == moves[-1]

    def test_worst_move_ignores_bestmove_token(self, result_factory):
        result = result_factory("1d1c", "3d3c", bestmove="1d1c")
        assert worst_move(result) == "3d3c"

    def test_fallback_to_bestmove(self):
        result = SearchResult(candidates=[], bestmove="2e2d")
        assert best_move(result) == "2e2d"
        assert worst_move(result) == "2e2d"

    def test_no_move_when_resigning(self):
        result = SearchResult(candidates=[], bestmove="resign")
        assert best_move(result) is None
        assert worst_move(result) is None


class TestSimulateGame:
    """Tests for simulate_game."""

    def test_attacker_mates(self, scripted_session, result_factory, config):
        def script(moves, width):
            return result_factory("1d1c") if not moves else result_factory()

        outcome = simulate_game(scripted_session(script), config)
        assert outcome.kind is OutcomeKind.CHECKMATE
        assert outcome.winner is Side.BLACK
        assert outcome.position_before_mate.to_sfen() == STARTING_SFEN
        assert outcome.plies == 1
        assert outcome.moves == ("1d1c",)

    def test_defender_plays_worst_and_can_still_mate(self, scripted_session, result_factory, config):
        def script(moves, width):
            if len(moves) == 0:
                return result_factory("1d1c")
            if len(moves) == 1:
                return result_factory("1b1c", "3b3c", "2a2b")
            return result_factory()

        outcome = simulate_game(scripted_session(script), config)
        assert outcome.moves == ("1d1c", "2a2b")
        assert outcome.kind is OutcomeKind.CHECKMATE
        assert outcome.winner is Side.WHITE
        assert outcome.position_before_mate.side is Side.WHITE
        assert outcome.position_before_mate.to_sfen() == "bkr/p1p/2P/P2/RKB w - 2"

    def test_search_widths_by_side(self, scripted_session, result_factory, config):
        def script(moves, width):
            if len(moves) < 2:
                return result_factory(*["2e2d", "1b1c", "2a2b"][:width])
            return result_factory()

        session = scripted_session(script)
        simulate_game(session, replace(config, multipv_k=3))
        widths = [width for _, _, width in session.calls]
        assert widths[:2] == [1, 3]

    def test_position_includes_history(self, scripted_session, result_factory, config):
        def script(moves, width):
            return result_factory(SHUFFLE[len(moves)]) if len(moves) < 2 else result_factory()

        session = scripted_session(script)
        simulate_game(session, config)
        assert session.positions[0] == (STARTING_SFEN, ())
        assert session.positions[2] == (STARTING_SFEN, ("2e2d", "2a2b"))

    def test_move_limit(self, scripted_session, result_factory, config):
        session = scripted_session(shuffle_script(result_factory))
        outcome = simulate_game(session, replace(config, max_moves=6, repetition_limit=100))
        assert outcome.kind is OutcomeKind.MOVE_LIMIT_EXCEEDED
        assert outcome.plies == 6
        assert len(session.calls) == 6

    def test_never_exceeds_move_limit(self, scripted_session, result_factory, config):
        for max_moves in (1, 2, 5, 13):
            session = scripted_session(shuffle_script(result_factory))
            outcome = simulate_game(session, replace(config, max_moves=max_moves, repetition_limit=100))
            assert outcome.plies <= max_moves

    def test_repetition(self, scripted_session, result_factory, config):
        """Start position is seen for the fourth time after twelve plies."""
        outcome = simulate_game(scripted_session(shuffle_script(result_factory)), config)
        assert outcome.kind is OutcomeKind.DRAW_BY_REPETITION
        assert outcome.plies == 12

    def test_win_declaration_is_not_checkmate(self, scripted_session, result_factory, config):
        def script(moves, width):
            return result_factory("1d1c") if not moves else SearchResult([], "win")

        outcome = simulate_game(scripted_session(script), config)
        assert outcome.kind is OutcomeKind.DRAW_OTHER

    def test_no_moves_at_start(self, scripted_session, result_factory, config):
        outcome = simulate_game(scripted_session(lambda moves, width: result_factory()), config)
        assert outcome.kind is OutcomeKind.DRAW_OTHER
        assert outcome.plies == 0

    def test_resign_is_retried_with_longer_budget(self, scripted_session, result_factory, config):
        attempts = []

        def script(moves, width):
            if not moves:
                attempts.append(width)
                return result_factory() if len(attempts) == 1 else result_factory("1d1c")
            return result_factory()

        session = scripted_session(script)
        outcome = simulate_game(session, replace(config, search_time_ms=10))
        assert outcome.kind is OutcomeKind.CHECKMATE
        budgets = [ms for _, ms, _ in session.calls]
        assert budgets[:2] == [10, 50]

    def test_engine_failure_ends_game(self, scripted_session, result_factory, config):
        def script(moves, width):
            if moves:
                raise SearchTimeoutError("no bestmove")
            return result_factory("1d1c")

        outcome = simulate_game(scripted_session(script), config)
        assert outcome.kind is OutcomeKind.ENGINE_FAILURE
        assert isinstance(outcome.error, SearchTimeoutError)
        assert outcome.plies == 1

    def test_illegal_engine_move_is_engine_failure(self, scripted_session, result_factory, config):
        outcome = simulate_game(scripted_session(lambda moves, width: result_factory("2c2b")), config)
        assert outcome.kind is OutcomeKind.ENGINE_FAILURE
        assert isinstance(outcome.error, IllegalMoveError)
