"""
USI engine session.

Owns one engine subprocess for its whole lifetime and talks to it strictly
request-by-request. Engine output is pumped into a queue by a reader thread
so every wait (handshake, search) can be bounded by a deadline.

Usage:
    with EngineSession(config) as session:
        session.set_position(sfen, moves)
        result = session.search(10, 5)
"""

import queue
import shutil
import subprocess
import sys
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

from tsume.config import GeneratorConfig
from tsume.constants import MATE_SCORE, SHUTDOWN_TIMEOUT_S
from tsume.errors import (
    EngineFailure,
    EngineStartupError,
    EngineTerminatedError,
    ProtocolParseError,
    SearchTimeoutError,
    SessionStateError,
)
from tsume.position import is_move_token

# bestmove tokens that are not moves
SPECIAL_BESTMOVES = ("resign", "win", "(none)", "0000")

# info keys followed by exactly one value we don't use
_SKIPPED_INFO_KEYS = ("depth", "seldepth", "nodes", "nps", "time", "hashfull",
                      "tbhits", "currmove", "currmovenumber", "cpuload")


class SessionState(Enum):
    CLOSED = "closed"
    AWAITING_READINESS = "awaiting_readiness"
    IDLE = "idle"
    AWAITING_SEARCH_RESULT = "awaiting_search_result"
    FAILED = "failed"


@dataclass
class Candidate:
    """One MultiPV line: first move, score from the side to move's view, full PV."""
    multipv: int
    move: str
    score: int
    pv: list[str] = field(default_factory=list)
    mate: Optional[int] = None  # plies to mate, negative when being mated


@dataclass
class SearchResult:
    """Ranked candidates (best first) and the raw bestmove token."""
    candidates: list[Candidate]
    bestmove: Optional[str]

    @property
    def bestmove_is_move(self) -> bool:
        return self.bestmove is not None and self.bestmove not in SPECIAL_BESTMOVES

    @property
    def is_empty(self) -> bool:
        """No legal move for the side to move."""
        return not self.candidates and not self.bestmove_is_move and self.bestmove != "win"

    @property
    def is_win_declaration(self) -> bool:
        return not self.candidates and self.bestmove == "win"


def _format_option(value) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _parse_int(tokens: list[str], index: int, line: str) -> int:
    try:
        return int(tokens[index])
    except (IndexError, ValueError):
        raise ProtocolParseError(f"Expected integer at position {index} in: {line!r}")


def parse_info_line(line: str) -> Optional[Candidate]:
    """
    Parse an 'info' line into a Candidate.

    Returns None for lines that carry no PV (depth-only updates, info string).
    Raises ProtocolParseError for malformed numeric fields or PV moves.
    """
    tokens = line.split()
    if not tokens or tokens[0] != "info":
        raise ProtocolParseError(f"Not an info line: {line!r}")

    multipv = 1
    score = 0
    mate = None
    pv: list[str] = []
    i = 1
    while i < len(tokens):
        key = tokens[i]
        if key == "string":
            return None
        if key == "multipv":
            multipv = _parse_int(tokens, i + 1, line)
            i += 2
        elif key == "score":
            if i + 2 >= len(tokens):
                raise ProtocolParseError(f"Truncated score in: {line!r}")
            kind, value = tokens[i + 1], tokens[i + 2]
            if kind == "cp":
                score = _parse_int(tokens, i + 2, line)
            elif kind == "mate":
                if value in ("+", "-"):
                    mate = None
                    score = MATE_SCORE if value == "+" else -MATE_SCORE
                else:
                    mate = _parse_int(tokens, i + 2, line)
                    # mate 0 / -0 means the side to move is already mated
                    score = MATE_SCORE if mate > 0 else -MATE_SCORE
            else:
                raise ProtocolParseError(f"Unknown score kind {kind!r} in: {line!r}")
            i += 3
            if i < len(tokens) and tokens[i] in ("lowerbound", "upperbound"):
                i += 1
        elif key == "pv":
            pv = tokens[i + 1:]
            break
        elif key in _SKIPPED_INFO_KEYS:
            i += 2
        else:
            i += 1

    if not pv:
        return None
    for move in pv:
        if not is_move_token(move):
            raise ProtocolParseError(f"Invalid move {move!r} in PV: {line!r}")
    return Candidate(multipv=multipv, move=pv[0], score=score, pv=pv, mate=mate)


def parse_bestmove_line(line: str) -> str:
    """Return the bestmove token (a move or one of SPECIAL_BESTMOVES)."""
    tokens = line.split()
    if len(tokens) < 2 or tokens[0] != "bestmove":
        raise ProtocolParseError(f"Malformed bestmove line: {line!r}")
    token = tokens[1]
    if token not in SPECIAL_BESTMOVES and not is_move_token(token):
        raise ProtocolParseError(f"Invalid bestmove {token!r}")
    return token


class EngineSession:
    """A single long-lived USI conversation with the search engine."""

    def __init__(self, config: GeneratorConfig):
        self.config = config
        self.state = SessionState.CLOSED
        self.searches = 0
        self._process: Optional[subprocess.Popen] = None
        self._reader: Optional[threading.Thread] = None
        self._lines: queue.Queue = queue.Queue()
        self._multipv: Optional[int] = None

    def __enter__(self) -> "EngineSession":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.shutdown()

    def _require(self, expected: SessionState, call: str):
        if self.state is not expected:
            raise SessionStateError(
                f"{call}() not allowed while session is {self.state.value} "
                f"(expected {expected.value})")

    # ---- lifecycle -------------------------------------------------------

    def start(self, options: Optional[dict] = None):
        """Spawn the engine, run the USI handshake and apply engine options."""
        self._require(SessionState.CLOSED, "start")
        if options is None:
            options = self.config.engine_options

        argv = self.config.engine_argv()
        if shutil.which(argv[0]) is None:
            raise EngineStartupError(f"Engine executable not found on PATH: {argv[0]}")
        if self.config.variants_path and not Path(self.config.variants_path).exists():
            raise EngineStartupError(f"Variant definition not found: {self.config.variants_path}")

        try:
            self._process = subprocess.Popen(
                argv,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.DEVNULL,
                text=True,
                bufsize=1,
            )
        except OSError as e:
            raise EngineStartupError(f"Failed to spawn {argv[0]}: {e}") from e

        self._lines = queue.Queue()
        self._reader = threading.Thread(target=self._read_output, args=(self._process.stdout,),
                                        daemon=True)
        self._reader.start()
        self.state = SessionState.AWAITING_READINESS

        deadline = time.monotonic() + self.config.startup_timeout_s
        try:
            # Fairy-Stockfish defaults to UCI; switch before the handshake
            self._send("setoption name Protocol value usi")
            self._send("usi")
            self._await_token("usiok", deadline)
            for name, value in options.items():
                self._send(f"setoption name {name} value {_format_option(value)}")
            self._send("isready")
            self._await_token("readyok", deadline)
            self._send("usinewgame")
            self._multipv = int(options.get("MultiPV", 1))
        except EngineFailure as e:
            self.shutdown()
            if isinstance(e, EngineStartupError):
                raise
            raise EngineStartupError(f"Handshake failed: {e}") from e
        except BaseException:
            # __exit__ never runs when __enter__ raises, so reap the engine here
            self.shutdown()
            raise

        self.state = SessionState.IDLE

    def shutdown(self):
        """Stop the engine and reap the process. Safe to call more than once."""
        process, self._process = self._process, None
        self.state = SessionState.CLOSED
        if process is None:
            return
        try:
            if process.poll() is None:
                try:
                    process.stdin.write("quit\n")
                    process.stdin.flush()
                except (OSError, ValueError):
                    pass  # Pipe already gone
                try:
                    process.wait(timeout=SHUTDOWN_TIMEOUT_S)
                except subprocess.TimeoutExpired:
                    process.terminate()
                    try:
                        process.wait(timeout=SHUTDOWN_TIMEOUT_S)
                    except subprocess.TimeoutExpired:
                        process.kill()
                        process.wait()
        finally:
            for pipe in (process.stdin, process.stdout):
                try:
                    pipe.close()
                except (OSError, ValueError):
                    pass
            if self._reader is not None:
                self._reader.join(timeout=SHUTDOWN_TIMEOUT_S)
                self._reader = None

    # ---- commands --------------------------------------------------------

    def set_position(self, sfen: str, moves: tuple[str, ...] | list[str] = ()):
        """Send the position; the move list gives the engine the game history."""
        self._require(SessionState.IDLE, "set_position")
        command = f"position sfen {sfen}"
        if moves:
            command += " moves " + " ".join(moves)
        self._guarded(self._send, command)

    def search(self, time_budget_ms: int, multipv_width: int) -> SearchResult:
        """
        Run a time-limited search and return up to multipv_width ranked candidates.

        Raises:
            SearchTimeoutError: no bestmove within time_budget_ms + grace
            ProtocolParseError: malformed engine output
        """
        self._require(SessionState.IDLE, "search")
        if multipv_width != self._multipv:
            self._guarded(self._send, f"setoption name MultiPV value {multipv_width}")
            self._multipv = multipv_width

        self.state = SessionState.AWAITING_SEARCH_RESULT
        result = self._guarded(self._collect_search, time_budget_ms, multipv_width)
        self.state = SessionState.IDLE
        self.searches += 1
        return result

    # ---- internals -------------------------------------------------------

    def _guarded(self, func, *args):
        """Run a protocol step; any engine failure leaves the session FAILED."""
        try:
            return func(*args)
        except EngineFailure:
            self.state = SessionState.FAILED
            raise

    def _collect_search(self, time_budget_ms: int, multipv_width: int) -> SearchResult:
        self._send(f"go byoyomi {time_budget_ms}")
        deadline = time.monotonic() + (time_budget_ms + self.config.grace_ms) / 1000
        lines: dict[int, Candidate] = {}
        while True:
            line = self._read_line(deadline)
            if line is None:
                raise SearchTimeoutError(
                    f"No bestmove within {time_budget_ms}ms + {self.config.grace_ms}ms grace")
            if not line.strip():
                continue
            keyword = line.split()[0]
            if keyword == "info":
                candidate = parse_info_line(line)
                if candidate is not None:
                    # Deeper iterations replace shallower ones for the same rank
                    lines[candidate.multipv] = candidate
            elif keyword == "bestmove":
                bestmove = parse_bestmove_line(line)
                ranked = sorted(lines.values(), key=lambda c: c.multipv)
                return SearchResult(candidates=ranked[:multipv_width], bestmove=bestmove)
            else:
                raise ProtocolParseError(f"Unexpected line during search: {line!r}")

    def _await_token(self, token: str, deadline: float):
        for _ in range(self.config.startup_max_lines):
            line = self._read_line(deadline)
            if line is None:
                raise EngineStartupError(f"Timed out waiting for {token}")
            if line.strip() == token:
                return
        raise EngineStartupError(
            f"No {token} within {self.config.startup_max_lines} lines of engine output")

    def _read_output(self, stdout):
        """Reader thread: forward engine lines to the queue, None marks EOF."""
        try:
            for line in stdout:
                self._lines.put(line.rstrip("\r\n"))
        except (OSError, ValueError):
            pass  # Pipe closed during shutdown
        finally:
            self._lines.put(None)

    def _read_line(self, deadline: float) -> Optional[str]:
        """Next engine line, or None once the deadline has passed."""
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            return None
        try:
            line = self._lines.get(timeout=remaining)
        except queue.Empty:
            return None
        if line is None:
            self._lines.put(None)  # keep EOF visible to later reads
            raise EngineTerminatedError("Engine process closed its output")
        if self.config.debug:
            print(f"<< {line}", file=sys.stderr, flush=True)
        return line

    def _send(self, command: str):
        if self._process is None or self._process.stdin is None:
            raise EngineTerminatedError("Engine process is not running")
        if self.config.debug:
            print(f">> {command}", file=sys.stderr, flush=True)
        try:
            self._process.stdin.write(command + "\n")
            self._process.stdin.flush()
        except (OSError, ValueError) as e:
            raise EngineTerminatedError(f"Failed to send {command.split()[0]!r}: {e}") from e
