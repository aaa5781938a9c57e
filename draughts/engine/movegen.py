"""Move legality for draughts.

Pure functions over a Board: nothing here mutates state. Pawns move and jump
forward only (White toward row 0, Black toward the last row); kings use all
four diagonals. Jumps are short: over one adjacent opposing piece onto the
empty square directly behind it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

from .board import WHITE, BLACK, Board, Piece
from .move import Move, Square, on_board


Direction = Tuple[int, int]

SEARCH_DIRECTIONS: Tuple[Direction, ...] = (
    (-1, -1),  # up-left
    (-1, 1),  # up-right
    (1, -1),  # down-left
    (1, 1),  # down-right
)
FORWARD = {
    WHITE: SEARCH_DIRECTIONS[:2],
    BLACK: SEARCH_DIRECTIONS[2:],
}


@dataclass(frozen=True)
class DirectionScan:
    """What lies in one direction from the origin.

    ``adjacent`` and ``jump_target`` are None where the scan ran off the board.
    """

    adjacent: Optional[Square]
    jump_target: Optional[Square]
    step_legal: bool = False
    capture_legal: bool = False


@dataclass(frozen=True)
class MoveScan:
    origin: Square
    directions: Dict[Direction, DirectionScan] = field(default_factory=dict)
    # True when the origin's side has a capture anywhere on the board
    forced: bool = False

    @property
    def captures(self) -> Set[Square]:
        return {
            d.jump_target
            for d in self.directions.values()
            if d.capture_legal and d.jump_target is not None
        }

    @property
    def steps(self) -> Set[Square]:
        return {
            d.adjacent
            for d in self.directions.values()
            if d.step_legal and d.adjacent is not None
        }

    @property
    def destinations(self) -> Set[Square]:
        return self.steps | self.captures

    def __bool__(self) -> bool:
        return bool(self.destinations)


def directions_for(piece: Piece) -> Tuple[Direction, ...]:
    if piece.king:
        return SEARCH_DIRECTIONS
    return FORWARD[piece.side]


def _scan(board: Board, origin: Square, piece: Piece) -> Dict[Direction, DirectionScan]:
    """Per-direction scan ignoring the board-wide mandatory capture rule."""
    result: Dict[Direction, DirectionScan] = {}
    for dr, dc in directions_for(piece):
        first = (origin[0] + dr, origin[1] + dc)
        second = (origin[0] + 2 * dr, origin[1] + 2 * dc)
        adjacent = first if on_board(first) else None
        jump_target = second if on_board(second) else None
        if adjacent is None:
            result[(dr, dc)] = DirectionScan(None, None)
            continue
        occupant = board.piece_at(adjacent)
        step = occupant is None
        capture = (
            occupant is not None
            and occupant.side != piece.side
            and jump_target is not None
            and board.is_empty(jump_target)
        )
        result[(dr, dc)] = DirectionScan(adjacent, jump_target, step, capture)
    return result


def captures_from(board: Board, origin: Square) -> Set[Square]:
    """Landing squares of the jumps available to the piece on ``origin``."""
    piece = board.piece_at(origin)
    if piece is None:
        return set()
    return {
        d.jump_target
        for d in _scan(board, origin, piece).values()
        if d.capture_legal and d.jump_target is not None
    }


def forcing_squares(board: Board, side: str) -> List[Square]:
    """Squares of ``side``'s pieces that have at least one capture."""
    return [sq for sq, _ in board.pieces(side) if captures_from(board, sq)]


def side_has_capture(board: Board, side: str) -> bool:
    return any(captures_from(board, sq) for sq, _ in board.pieces(side))


def legal_destinations(board: Board, origin: Square) -> MoveScan:
    """Compute the legal destinations of the piece standing on ``origin``.

    Args:
        board (Board): Position to inspect.
        origin (Square): Square of the piece to move.

    Returns:
        MoveScan: Per-direction results for up to four diagonals. Simple
        steps are suppressed whenever the piece's side has any capture on the
        board (mandatory capture). An empty or off-board origin yields an
        empty scan.
    """
    if not on_board(origin):
        return MoveScan(origin)
    piece = board.piece_at(origin)
    if piece is None:
        return MoveScan(origin)

    raw = _scan(board, origin, piece)
    own_capture = any(d.capture_legal for d in raw.values())
    forced = own_capture or side_has_capture(board, piece.side)
    if not forced:
        return MoveScan(origin, raw, False)

    directions = {
        k: DirectionScan(d.adjacent, d.jump_target, False, d.capture_legal)
        for k, d in raw.items()
    }
    return MoveScan(origin, directions, True)


def side_has_moves(board: Board, side: str) -> bool:
    """True if any piece of ``side`` has a step or a capture."""
    for sq, piece in board.pieces(side):
        for d in _scan(board, sq, piece).values():
            if d.step_legal or d.capture_legal:
                return True
    return False


def generate_moves(board: Board, side: Optional[str] = None) -> List[Move]:
    """All legal single steps or jumps for ``side`` (default: side to move).

    Captures alone are returned when any exists.
    """
    if side is None:
        side = board.side_to_move
    captures: List[Move] = []
    steps: List[Move] = []
    for sq, piece in board.pieces(side):
        for d in _scan(board, sq, piece).values():
            if d.capture_legal and d.jump_target is not None:
                captures.append(Move(sq, d.jump_target))
            elif d.step_legal and d.adjacent is not None:
                steps.append(Move(sq, d.adjacent))
    return captures if captures else steps
