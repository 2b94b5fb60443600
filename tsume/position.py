"""
Board state for a single simulated game.

The board is a passive ledger: it applies moves handed to it by the engine
and renders positions in SFEN, but never decides legality or game end. The
only checks it makes are the ones needed to keep its own bookkeeping
consistent (a piece must exist to be moved, a drop needs a piece in hand).

Coordinates follow USI: files are numbered from the right (file 1 is the
rightmost column), ranks are lettered from the top ('a' is the first rank
in the SFEN string).
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from tsume.constants import STARTING_SFEN
from tsume.errors import IllegalMoveError

# Hand pieces are rendered in this order, then anything else alphabetically
HAND_ORDER = "RBGSNLP"

BOARD_MOVE_RE = re.compile(r"^([1-9])([a-z])([1-9])([a-z])(\+?)$")
DROP_MOVE_RE = re.compile(r"^([A-Z])\*([1-9])([a-z])$")


class Side(Enum):
    """Side to move. Black (sente) is always the attacker in emitted puzzles."""
    BLACK = "b"
    WHITE = "w"

    @property
    def opponent(self) -> "Side":
        return Side.WHITE if self is Side.BLACK else Side.BLACK


def piece_owner(piece: str) -> Side:
    """Uppercase letters belong to Black, lowercase to White."""
    return Side.BLACK if piece[-1].isupper() else Side.WHITE


def unpromoted(piece: str) -> str:
    return piece[1:] if piece.startswith("+") else piece


def is_move_token(token: str) -> bool:
    """True for a USI board move (3a1c, 3a1c+) or drop (P*2c)."""
    return bool(BOARD_MOVE_RE.match(token) or DROP_MOVE_RE.match(token))


@dataclass(frozen=True)
class Move:
    """A board transfer (source set) or a drop (drop_piece set)."""
    dest: str
    source: Optional[str] = None
    promote: bool = False
    drop_piece: Optional[str] = None

    @classmethod
    def parse(cls, token: str) -> "Move":
        match = BOARD_MOVE_RE.match(token)
        if match:
            return cls(
                source=match.group(1) + match.group(2),
                dest=match.group(3) + match.group(4),
                promote=bool(match.group(5)),
            )
        match = DROP_MOVE_RE.match(token)
        if match:
            return cls(dest=match.group(2) + match.group(3), drop_piece=match.group(1))
        raise ValueError(f"Not a USI move: {token!r}")

    @property
    def is_drop(self) -> bool:
        return self.drop_piece is not None

    def to_usi(self) -> str:
        if self.is_drop:
            return f"{self.drop_piece}*{self.dest}"
        return f"{self.source}{self.dest}{'+' if self.promote else ''}"

    def __str__(self) -> str:
        return self.to_usi()


def _parse_hand(text: str) -> dict[Side, dict[str, int]]:
    hands = {Side.BLACK: {}, Side.WHITE: {}}
    if text == "-":
        return hands
    for count, letter in re.findall(r"(\d*)([A-Za-z])", text):
        side = piece_owner(letter)
        upper = letter.upper()
        hands[side][upper] = hands[side].get(upper, 0) + (int(count) if count else 1)
    if "".join(c + l for c, l in re.findall(r"(\d*)([A-Za-z])", text)) != text:
        raise ValueError(f"Malformed hand: {text!r}")
    return hands


def _hand_sort_key(letter: str):
    if letter in HAND_ORDER:
        return (0, HAND_ORDER.index(letter))
    return (1, letter)


def _render_hand(hands: dict[Side, dict[str, int]]) -> str:
    parts = []
    for side in (Side.BLACK, Side.WHITE):
        for letter in sorted(hands[side], key=_hand_sort_key):
            count = hands[side][letter]
            if count <= 0:
                continue
            token = letter if side is Side.BLACK else letter.lower()
            parts.append(f"{count if count > 1 else ''}{token}")
    return "".join(parts) or "-"


@dataclass
class Position:
    """
    One position: board cells (rank-major, top rank first, leftmost file
    first), side to move, pieces in hand per side and the SFEN move number.
    """
    cells: list[list[Optional[str]]]
    side: Side
    hands: dict[Side, dict[str, int]] = field(
        default_factory=lambda: {Side.BLACK: {}, Side.WHITE: {}})
    move_number: int = 1

    @classmethod
    def from_sfen(cls, sfen: str) -> "Position":
        """Parse an SFEN string. A trailing 'moves ...' section is ignored."""
        fields = sfen.split()
        if "moves" in fields:
            fields = fields[:fields.index("moves")]
        if len(fields) < 3:
            raise ValueError(f"SFEN needs board, side and hand fields: {sfen!r}")

        cells = []
        for rank_text in fields[0].split("/"):
            row = []
            promoted = False
            for ch in rank_text:
                if ch.isdigit():
                    if promoted:
                        raise ValueError(f"Dangling '+' in SFEN rank {rank_text!r}")
                    row.extend([None] * int(ch))
                elif ch == "+":
                    promoted = True
                elif ch.isalpha():
                    row.append(f"+{ch}" if promoted else ch)
                    promoted = False
                else:
                    raise ValueError(f"Unexpected character {ch!r} in SFEN board")
            cells.append(row)
        widths = {len(row) for row in cells}
        if len(widths) != 1 or 0 in widths:
            raise ValueError(f"SFEN ranks have inconsistent widths: {fields[0]!r}")

        if fields[1] not in ("b", "w"):
            raise ValueError(f"Unknown side to move: {fields[1]!r}")
        move_number = int(fields[3]) if len(fields) > 3 else 1

        position = cls(cells=cells, side=Side(fields[1]), hands=_parse_hand(fields[2]),
                       move_number=move_number)
        kings = [p for row in cells for p in row if p and p.upper() == "K"]
        if sorted(kings) != ["K", "k"]:
            raise ValueError(f"Position must have exactly one king per side: {sfen!r}")
        return position

    @property
    def num_ranks(self) -> int:
        return len(self.cells)

    @property
    def num_files(self) -> int:
        return len(self.cells[0])

    def _index(self, square: str) -> tuple[int, int]:
        """USI square ('2c') -> (row, column) into cells."""
        file_no = int(square[0])
        row = ord(square[1]) - ord("a")
        col = self.num_files - file_no
        if not (0 <= row < self.num_ranks and 0 <= col < self.num_files and file_no >= 1):
            raise IllegalMoveError(f"Square {square} is off the {self.num_files}x{self.num_ranks} board")
        return row, col

    def piece_at(self, square: str) -> Optional[str]:
        row, col = self._index(square)
        return self.cells[row][col]

    def copy(self) -> "Position":
        return Position(
            cells=[row[:] for row in self.cells],
            side=self.side,
            hands={side: dict(hand) for side, hand in self.hands.items()},
            move_number=self.move_number,
        )

    def after(self, move: Move) -> "Position":
        """Return the position after `move` by the side to move."""
        new = self.copy()
        mover = self.side
        row, col = new._index(move.dest)
        target = new.cells[row][col]

        if move.is_drop:
            letter = move.drop_piece.upper()
            if new.hands[mover].get(letter, 0) <= 0:
                raise IllegalMoveError(f"Drop {move} without {letter} in hand")
            if target is not None:
                raise IllegalMoveError(f"Drop {move} onto occupied square")
            new.hands[mover][letter] -= 1
            if new.hands[mover][letter] == 0:
                del new.hands[mover][letter]
            new.cells[row][col] = letter if mover is Side.BLACK else letter.lower()
        else:
            src_row, src_col = new._index(move.source)
            piece = new.cells[src_row][src_col]
            if piece is None:
                raise IllegalMoveError(f"Move {move} from an empty square")
            if piece_owner(piece) is not mover:
                raise IllegalMoveError(f"Move {move} moves an opponent piece")
            if target is not None:
                if piece_owner(target) is mover:
                    raise IllegalMoveError(f"Move {move} captures own piece")
                captured = unpromoted(target).upper()
                if captured == "K":
                    raise IllegalMoveError(f"Move {move} captures a king")
                new.hands[mover][captured] = new.hands[mover].get(captured, 0) + 1
            if move.promote:
                if piece.startswith("+"):
                    raise IllegalMoveError(f"Move {move} promotes a promoted piece")
                piece = "+" + piece
            new.cells[src_row][src_col] = None
            new.cells[row][col] = piece

        new.side = mover.opponent
        new.move_number = self.move_number + 1
        return new

    def mirrored(self) -> "Position":
        """Rotate the board 180 degrees and swap the owner of every piece and hand."""
        cells = [
            [piece.swapcase() if piece else None for piece in reversed(row)]
            for row in reversed(self.cells)
        ]
        hands = {
            Side.BLACK: dict(self.hands[Side.WHITE]),
            Side.WHITE: dict(self.hands[Side.BLACK]),
        }
        return Position(cells=cells, side=self.side.opponent, hands=hands,
                        move_number=self.move_number)

    def board_sfen(self) -> str:
        ranks = []
        for row in self.cells:
            text = ""
            empty = 0
            for piece in row:
                if piece is None:
                    empty += 1
                    continue
                if empty:
                    text += str(empty)
                    empty = 0
                text += piece
            if empty:
                text += str(empty)
            ranks.append(text)
        return "/".join(ranks)

    def signature(self) -> str:
        """Board, side and hands; the move number is left out for repetition counting."""
        return f"{self.board_sfen()} {self.side.value} {_render_hand(self.hands)}"

    def to_sfen(self) -> str:
        return f"{self.signature()} {self.move_number}"

    def __str__(self) -> str:
        return self.to_sfen()


class Board:
    """Move ledger for one game: current and previous position plus move history."""

    def __init__(self, start_sfen: str = STARTING_SFEN):
        self.root_sfen = start_sfen
        self.position = Position.from_sfen(start_sfen)
        self.previous: Optional[Position] = None
        self.moves: list[str] = []

    @property
    def side_to_move(self) -> Side:
        return self.position.side

    def apply(self, move: Move | str) -> Position:
        """Apply a move and return the new current position."""
        if isinstance(move, str):
            try:
                move = Move.parse(move)
            except ValueError as e:
                raise IllegalMoveError(str(e)) from e
        new_position = self.position.after(move)
        self.previous = self.position
        self.position = new_position
        self.moves.append(move.to_usi())
        return new_position

    def to_wire_form(self) -> str:
        return self.position.to_sfen()

    def ply_count(self) -> int:
        return len(self.moves)

    def signature(self) -> str:
        return self.position.signature()
