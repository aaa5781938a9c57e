from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple


BOARD_SIZE = 8

Square = Tuple[int, int]


@dataclass(frozen=True)
class Move:
    """A single step or a single jump of one piece.

    A multi-jump is a sequence of Moves made by the same piece without the
    turn passing.

    Attributes:
        from_sq (Square): Origin square as ``(row, col)``.
        to_sq (Square): Destination square as ``(row, col)``.
    """

    from_sq: Square
    to_sq: Square

    def to_wire(self) -> str:
        """Serialize the move into the compact ``r1,c1:r2,c2`` form.

        Returns:
            str: Move encoded like ``"5,6:4,7"``.
        """
        (r1, c1), (r2, c2) = self.from_sq, self.to_sq
        return f"{r1},{c1}:{r2},{c2}"

    @property
    def is_jump(self) -> bool:
        return distance(self.from_sq, self.to_sq) == 2


def parse_move(text: str) -> Move:
    """Parse a move in ``r1,c1:r2,c2`` form.

    Args:
        text (str): Encoded move, e.g. ``"2,3:4,5"``.

    Returns:
        Move: Parsed move.

    Raises:
        ValueError: If the text is not two ``row,col`` pairs separated by a
            colon, or a coordinate is off the board.
    """
    parts = text.strip().split(":")
    if len(parts) != 2:
        raise ValueError(f"invalid move: {text!r}")
    return Move(parse_square(parts[0]), parse_square(parts[1]))


def parse_square(text: str) -> Square:
    """Parse ``row,col`` into a square.

    Raises:
        ValueError: If the text is malformed or outside the board.
    """
    parts = text.split(",")
    if len(parts) != 2:
        raise ValueError(f"invalid square: {text!r}")
    try:
        row, col = int(parts[0]), int(parts[1])
    except ValueError as e:
        raise ValueError(f"invalid square: {text!r}") from e
    if not on_board((row, col)):
        raise ValueError(f"square off the board: {text!r}")
    return (row, col)


def on_board(sq: Square) -> bool:
    row, col = sq
    return 0 <= row < BOARD_SIZE and 0 <= col < BOARD_SIZE


def distance(a: Square, b: Square) -> int:
    """Euclidean distance between two squares, truncated to an int.

    Diagonal neighbours are 1 apart, diagonal jumps 2.
    """
    d_row = abs(b[0] - a[0])
    d_col = abs(b[1] - a[1])
    return int((d_row * d_row + d_col * d_col) ** 0.5)


def midpoint(a: Square, b: Square) -> Square:
    """Square between the two endpoints of a jump."""
    return ((a[0] + b[0]) // 2, (a[1] + b[1]) // 2)
