from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple

from .move import BOARD_SIZE, Square, on_board


WHITE = "w"
BLACK = "b"
DRAW = "draw"
SIDES = (WHITE, BLACK)

# Start layout: black pawns on rows 0-2, white pawns on rows 5-7, dark squares only
STARTPOS_LAYOUT = (
    ".b.b.b.b/b.b.b.b./.b.b.b.b/......../......../w.w.w.w./.w.w.w.w/w.w.w.w. w"
)

PIECE_TO_CHAR = {
    (WHITE, False): "w",
    (WHITE, True): "W",
    (BLACK, False): "b",
    (BLACK, True): "B",
}
CHAR_TO_PIECE = {v: k for k, v in PIECE_TO_CHAR.items()}


def opponent(side: str) -> str:
    return BLACK if side == WHITE else WHITE


def side_name(side: str) -> str:
    if side == DRAW:
        return "Draw"
    return "White" if side == WHITE else "Black"


def promotion_row(side: str) -> int:
    """Farthest row for ``side``: row 0 for White, the last row for Black."""
    return 0 if side == WHITE else BOARD_SIZE - 1


@dataclass
class Piece:
    """A pawn or king belonging to one side."""

    side: str  # 'w' or 'b'
    king: bool = False

    def promote(self) -> None:
        # One-way: a king never becomes a pawn again
        self.king = True

    def to_char(self) -> str:
        return PIECE_TO_CHAR[(self.side, self.king)]


@dataclass
class Board:
    """Replica of one game: the 8x8 grid plus turn and session flags.

    Notes:
    - ``grid[row][col]`` holds the Piece standing there, or None.
    - Row 0 is White's promotion row; White moves first.
    - Only the turn controller mutates a Board during play.
    """

    grid: List[List[Optional[Piece]]]
    side_to_move: str = WHITE
    # True when the side to move has at least one capture available
    forced: bool = False
    ended: bool = False
    # Winner side, DRAW, or None while the game is running
    result: Optional[str] = None
    draw_requests: Dict[str, bool] = field(
        default_factory=lambda: {WHITE: False, BLACK: False}
    )

    @classmethod
    def startpos(cls) -> "Board":
        """Create a board with twelve pawns per side in the starting layout."""
        return cls.from_layout(STARTPOS_LAYOUT)

    @classmethod
    def empty(cls, side_to_move: str = WHITE) -> "Board":
        return cls(
            grid=[[None] * BOARD_SIZE for _ in range(BOARD_SIZE)],
            side_to_move=side_to_move,
        )

    @classmethod
    def from_layout(cls, layout: str) -> "Board":
        """Create a board from a layout string.

        Args:
            layout (str): Eight rows of eight characters joined by ``/``, top
                row first, followed by a space and the side to move. ``.``
                marks an empty square, ``w``/``W`` a white pawn/king and
                ``b``/``B`` a black pawn/king.

        Returns:
            Board: Board with the pieces placed and the force flag computed
            for the side to move.

        Raises:
            ValueError: If the string has the wrong shape, an unknown piece
                character, a piece on a light square, or a bad side to move.
        """
        if not layout or not isinstance(layout, str):
            raise ValueError("layout must be a non-empty string")
        parts = layout.strip().split()
        if len(parts) != 2:
            raise ValueError("layout must have 2 fields")
        placement, stm = parts
        if stm not in SIDES:
            raise ValueError("side to move must be 'w' or 'b'")

        rows = placement.split("/")
        if len(rows) != BOARD_SIZE:
            raise ValueError(f"layout must have {BOARD_SIZE} rows")
        board = cls.empty(side_to_move=stm)
        for row, text in enumerate(rows):
            if len(text) != BOARD_SIZE:
                raise ValueError(f"row {row} must have {BOARD_SIZE} squares")
            for col, ch in enumerate(text):
                if ch == ".":
                    continue
                if ch not in CHAR_TO_PIECE:
                    raise ValueError(f"invalid piece in layout: {ch!r}")
                if (row + col) % 2 == 0:
                    raise ValueError(f"piece on light square {(row, col)}")
                side, king = CHAR_TO_PIECE[ch]
                board.grid[row][col] = Piece(side, king)

        # Local import: the move engine depends on this module
        from .movegen import side_has_capture

        board.forced = side_has_capture(board, stm)
        return board

    def to_layout(self) -> str:
        rows = []
        for row in range(BOARD_SIZE):
            rows.append(
                "".join(
                    p.to_char() if p is not None else "."
                    for p in self.grid[row]
                )
            )
        return "/".join(rows) + " " + self.side_to_move

    # --- Queries ---
    def piece_at(self, sq: Square) -> Optional[Piece]:
        """Piece on ``sq``; off-board squares hold nothing."""
        if not on_board(sq):
            return None
        return self.grid[sq[0]][sq[1]]

    def is_empty(self, sq: Square) -> bool:
        return on_board(sq) and self.grid[sq[0]][sq[1]] is None

    def pieces(self, side: Optional[str] = None) -> Iterator[Tuple[Square, Piece]]:
        """Yield ``(square, piece)`` in row-major order, optionally for one side."""
        for row in range(BOARD_SIZE):
            for col in range(BOARD_SIZE):
                p = self.grid[row][col]
                if p is None:
                    continue
                if side is not None and p.side != side:
                    continue
                yield (row, col), p

    def count(self, side: str) -> int:
        return sum(1 for _ in self.pieces(side))

    # --- Mutation primitives (used by the turn controller) ---
    def relocate(self, from_sq: Square, to_sq: Square) -> Piece:
        """Transfer the piece on ``from_sq`` to ``to_sq`` and return it."""
        p = self.grid[from_sq[0]][from_sq[1]]
        if p is None:
            raise ValueError(f"no piece on {from_sq}")
        self.grid[to_sq[0]][to_sq[1]] = p
        self.grid[from_sq[0]][from_sq[1]] = None
        return p

    def remove(self, sq: Square) -> Optional[Piece]:
        p = self.grid[sq[0]][sq[1]]
        self.grid[sq[0]][sq[1]] = None
        return p

    def clear_draw_requests(self) -> bool:
        """Expire pending draw requests; True if any was pending."""
        pending = any(self.draw_requests.values())
        for side in SIDES:
            self.draw_requests[side] = False
        return pending
