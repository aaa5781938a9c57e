from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Set

from .board import DRAW, Board, opponent, promotion_row
from .errors import IllegalMoveError
from .move import Move, Square, midpoint
from .movegen import captures_from, forcing_squares, generate_moves, legal_destinations, side_has_capture
from .outcome import EndCheck, run_end_check


class Phase(Enum):
    AWAITING_SELECTION = "awaiting_selection"
    PIECE_SELECTED = "piece_selected"
    CONTINUATION_REQUIRED = "continuation_required"
    GAME_ENDED = "game_ended"


class PlyOutcome(Enum):
    REJECTED = "rejected"
    SELECTED = "selected"
    CONTINUATION_REQUIRED = "continuation_required"
    TURN_COMPLETE = "turn_complete"
    GAME_ENDED = "game_ended"


class DrawResult(Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    ALREADY_PENDING = "already_pending"
    GAME_OVER = "game_over"


@dataclass(frozen=True)
class StepResult:
    """Outcome of one turn-controller transition.

    ``move`` is set whenever a piece actually moved, which is exactly when the
    step has to be sent to the peer.
    """

    outcome: PlyOutcome
    move: Optional[Move] = None
    captured: Optional[Square] = None
    promoted: bool = False
    end: Optional[EndCheck] = None

    @property
    def moved(self) -> bool:
        return self.move is not None


REJECTED = StepResult(PlyOutcome.REJECTED)


@dataclass
class Game:
    """Turn controller around a board replica.

    Responsibility: drive one ply at a time (select, move, capture, promote,
    continue or pass the turn, check for the end of the game) and run the
    draw and forfeit sub-protocols. This is the only writer of the board.
    """

    board: Board
    selected: Optional[Square] = None
    destinations: Set[Square] = field(default_factory=set)
    # Piece in the middle of a multi-jump; nothing else may move
    locked: Optional[Square] = None
    move_stack: List[Move] = field(default_factory=list)

    @classmethod
    def new(cls) -> "Game":
        return cls(board=Board.startpos())

    @classmethod
    def from_layout(cls, layout: str) -> "Game":
        return cls(board=Board.from_layout(layout))

    def to_layout(self) -> str:
        return self.board.to_layout()

    # --- State for callers ---
    @property
    def phase(self) -> Phase:
        if self.board.ended:
            return Phase.GAME_ENDED
        if self.locked is not None:
            return Phase.CONTINUATION_REQUIRED
        if self.selected is not None:
            return Phase.PIECE_SELECTED
        return Phase.AWAITING_SELECTION

    @property
    def side_to_move(self) -> str:
        return self.board.side_to_move

    @property
    def result(self) -> Optional[str]:
        return self.board.result

    @property
    def last_move(self) -> Optional[Move]:
        return self.move_stack[-1] if self.move_stack else None

    def legal_moves(self) -> List[Move]:
        if self.board.ended:
            return []
        if self.locked is not None:
            return [Move(self.locked, to) for to in sorted(captures_from(self.board, self.locked))]
        return generate_moves(self.board)

    def forcing_squares(self) -> List[Square]:
        """Pieces the side to move may pick while a capture is mandatory."""
        if self.board.ended or not self.board.forced:
            return []
        if self.locked is not None:
            return [self.locked]
        return forcing_squares(self.board, self.board.side_to_move)

    # --- Ply state machine ---
    def select(self, sq: Square) -> StepResult:
        """Pick the piece to move.

        Rejected without any state change when the game is over, the square is
        empty or holds an opposing piece, another piece is mid multi-jump, or
        a capture is mandatory and this piece has none.
        """
        if self.board.ended:
            return REJECTED
        piece = self.board.piece_at(sq)
        if piece is None or piece.side != self.board.side_to_move:
            return REJECTED
        if self.locked is not None and sq != self.locked:
            return REJECTED

        scan = legal_destinations(self.board, sq)
        if scan.forced:
            dests = scan.captures
            if not dests:
                return REJECTED
        else:
            dests = scan.destinations
        self.selected = sq
        self.destinations = set(dests)
        return StepResult(PlyOutcome.SELECTED)

    def select_destination(self, sq: Square) -> StepResult:
        """Move the selected piece to ``sq`` if it is one of its destinations.

        Choosing another piece of the side to move switches the selection
        instead, unless a multi-jump is in progress.
        """
        if self.board.ended or self.selected is None:
            return REJECTED
        if sq not in self.destinations:
            piece = self.board.piece_at(sq)
            if piece is not None and piece.side == self.board.side_to_move and self.locked is None:
                return self.select(sq)
            return REJECTED
        return self._apply(Move(self.selected, sq))

    def apply_move(self, move: Move, remote: bool = False, verify: bool = True) -> StepResult:
        """Apply a whole step in one call (used for moves received from the peer).

        Args:
            move (Move): Step or jump to play for the side to move.
            remote (bool): Whether the move came from the peer; only affects
                error messages.
            verify (bool): Re-check legality against this replica. When False
                the move is trusted and applied as-is.

        Returns:
            StepResult: Same outcome tags as local play.

        Raises:
            IllegalMoveError: If the move cannot be played on this replica.
        """
        origin = "remote" if remote else "local"
        if self.board.ended:
            raise IllegalMoveError(f"{origin} move after game end: {move.to_wire()}", move)
        if not verify:
            if self.board.piece_at(move.from_sq) is None:
                raise IllegalMoveError(f"{origin} move from empty square: {move.to_wire()}", move)
            return self._apply(move)

        prev_selected, prev_dests = self.selected, set(self.destinations)
        res = self.select(move.from_sq)
        if res.outcome is not PlyOutcome.SELECTED or move.to_sq not in self.destinations:
            self.selected, self.destinations = prev_selected, prev_dests
            raise IllegalMoveError(f"illegal {origin} move: {move.to_wire()}", move)
        return self._apply(move)

    def _apply(self, move: Move) -> StepResult:
        piece = self.board.relocate(move.from_sq, move.to_sq)
        captured: Optional[Square] = None
        if move.is_jump:
            captured = midpoint(move.from_sq, move.to_sq)
            self.board.remove(captured)
        self.move_stack.append(move)
        self._clear_selection()

        # Reaching the far row ends the ply even if another jump would be
        # available; this holds for a king landing there too
        if move.to_sq[0] == promotion_row(piece.side):
            promoted = not piece.king
            piece.promote()
            return self._finish_turn(move, captured, promoted=promoted)

        if captured is not None:
            more = captures_from(self.board, move.to_sq)
            if more:
                self.locked = move.to_sq
                self.selected = move.to_sq
                self.destinations = set(more)
                self.board.forced = True
                return StepResult(PlyOutcome.CONTINUATION_REQUIRED, move, captured)

        return self._finish_turn(move, captured)

    def _finish_turn(self, move: Move, captured: Optional[Square], promoted: bool = False) -> StepResult:
        self.locked = None
        board = self.board
        board.side_to_move = opponent(board.side_to_move)
        board.forced = side_has_capture(board, board.side_to_move)
        end = run_end_check(board)
        outcome = PlyOutcome.GAME_ENDED if board.ended else PlyOutcome.TURN_COMPLETE
        return StepResult(outcome, move, captured, promoted, end)

    def check_end(self) -> EndCheck:
        """Run the end-of-game evaluation outside of a ply (idempotent once ended)."""
        return run_end_check(self.board)

    def _clear_selection(self) -> None:
        self.selected = None
        self.destinations = set()

    # --- Draw / forfeit / reset ---
    def request_draw(self, side: str) -> DrawResult:
        """Register a draw request from ``side``.

        The game ends as a draw when the other side already has a request
        pending. Requests expire at the next end-of-game check.
        """
        board = self.board
        if board.ended:
            return DrawResult.GAME_OVER
        if board.draw_requests[opponent(side)]:
            board.clear_draw_requests()
            board.ended = True
            board.result = DRAW
            board.forced = False
            self.locked = None
            self._clear_selection()
            return DrawResult.ACCEPTED
        if board.draw_requests[side]:
            return DrawResult.ALREADY_PENDING
        board.draw_requests[side] = True
        return DrawResult.PENDING

    def forfeit(self, side: str) -> str:
        """``side`` gives up; returns the winner. The board starts over."""
        winner = opponent(side)
        self.reset()
        return winner

    def reset(self) -> None:
        self.board = Board.startpos()
        self.locked = None
        self.move_stack = []
        self._clear_selection()
