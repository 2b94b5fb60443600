"""Shared fixtures: a scripted in-process session and a fake engine subprocess."""

import sys
from pathlib import Path

import pytest

from tsume.config import GeneratorConfig
from tsume.engine import Candidate, SearchResult

FAKE_ENGINE = Path(__file__).parent / "fake_engine.py"


def make_result(*moves: str, bestmove: str = None, mate_first: int = None) -> SearchResult:
    """Build a SearchResult with candidates ranked in the given order."""
    candidates = [
        Candidate(multipv=i + 1, move=move, score=100 - 50 * i, pv=[move])
        for i, move in enumerate(moves)
    ]
    if candidates and mate_first is not None:
        candidates[0].mate = mate_first
    if bestmove is None:
        bestmove = moves[0] if moves else "resign"
    return SearchResult(candidates=candidates, bestmove=bestmove)


class ScriptedSession:
    """Session stand-in whose search results come from script(moves, width)."""

    def __init__(self, script):
        self.script = script
        self.sfen = None
        self.moves = ()
        self.positions = []
        self.calls = []

    def set_position(self, sfen, moves=()):
        self.sfen = sfen
        self.moves = tuple(moves)
        self.positions.append((sfen, self.moves))

    def search(self, time_budget_ms, multipv_width):
        self.calls.append((self.moves, time_budget_ms, multipv_width))
        return self.script(self.moves, multipv_width)


@pytest.fixture
def result_factory():
    return make_result


@pytest.fixture
def scripted_session():
    return ScriptedSession


@pytest.fixture
def config():
    """Config with no engine involved, for in-process tests."""
    return GeneratorConfig(variants_path=None)


@pytest.fixture
def fake_engine_config():
    """Factory for a config that runs tests/fake_engine.py in the given mode."""
    def factory(mode: str = "mate", **kwargs) -> GeneratorConfig:
        values = dict(
            engine_command=(sys.executable, str(FAKE_ENGINE), mode),
            variants_path=None,
            engine_options={"UCI_Variant": "wildcatshogi", "MultiPV": 5},
            grace_ms=500,
            startup_timeout_s=2.0,
        )
        values.update(kwargs)
        return GeneratorConfig(**values)
    return factory
