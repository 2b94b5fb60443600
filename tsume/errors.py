"""
Exception hierarchy for the tsume generator.

Only EngineFailure (and subclasses) crosses a worker boundary. PuzzleRejected
is absorbed by the attempt controller and never surfaces to callers.
"""


class TsumeError(Exception):
    """Base class for all generator errors."""


class EngineFailure(TsumeError):
    """The engine session can no longer be trusted; fatal to the worker."""


class EngineStartupError(EngineFailure):
    """The engine could not be spawned or did not complete the handshake."""


class ProtocolParseError(EngineFailure):
    """The engine emitted a line that does not match the USI grammar."""


class SearchTimeoutError(EngineFailure):
    """No bestmove line arrived within the search budget plus grace margin."""


class EngineTerminatedError(EngineFailure):
    """The engine process exited or closed its pipes mid-conversation."""


class SessionStateError(EngineFailure):
    """A session call was issued in a state that does not allow it."""


class IllegalMoveError(EngineFailure):
    """A move returned by the engine does not fit the board ledger."""


class PuzzleRejected(TsumeError):
    """A simulated game did not yield a usable puzzle."""
