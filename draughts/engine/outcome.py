from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .board import BLACK, DRAW, WHITE, Board
from .movegen import side_has_moves


@dataclass(frozen=True)
class EndCheck:
    """Result of one end-of-game evaluation pass."""

    result: Optional[str]  # 'w', 'b', 'draw' or None
    draws_expired: bool = False
    reason: Optional[str] = None  # 'elimination' | 'no_moves'


def evaluate(board: Board) -> EndCheck:
    """Decide whether the position is terminal, without touching the board.

    Elimination is checked first: a side with no pieces left loses (both
    sides empty does not count). Then mobility: if neither side can move the
    game is drawn, if exactly one side can move that side wins.
    """
    white_left = board.count(WHITE)
    black_left = board.count(BLACK)
    if (white_left == 0) != (black_left == 0):
        winner = WHITE if black_left == 0 else BLACK
        return EndCheck(winner, reason="elimination")

    white_moves = side_has_moves(board, WHITE)
    black_moves = side_has_moves(board, BLACK)
    if not white_moves and not black_moves:
        return EndCheck(DRAW, reason="no_moves")
    if not white_moves or not black_moves:
        return EndCheck(WHITE if white_moves else BLACK, reason="no_moves")
    return EndCheck(None)


def run_end_check(board: Board) -> EndCheck:
    """Evaluate after a completed ply and record a terminal result.

    Pending draw requests expire on every pass. A board that has already
    ended is left untouched.
    """
    if board.ended:
        return EndCheck(board.result)
    expired = board.clear_draw_requests()
    check = evaluate(board)
    if check.result is not None:
        board.ended = True
        board.result = check.result
        board.forced = False
    return EndCheck(check.result, expired, check.reason)
