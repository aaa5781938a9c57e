from __future__ import annotations

from typing import Dict, Tuple

from draughts.engine.board import BLACK, WHITE, Board
from draughts.engine.move import Move
from draughts.engine.movegen import (
    DirectionScan,
    captures_from,
    forcing_squares,
    generate_moves,
    legal_destinations,
    side_has_capture,
    side_has_moves,
)


def _board(pieces: Dict[Tuple[int, int], str], side: str = "w") -> Board:
    rows = [["."] * 8 for _ in range(8)]
    for (r, c), ch in pieces.items():
        rows[r][c] = ch
    return Board.from_layout("/".join("".join(r) for r in rows) + " " + side)


def test_white_pawn_moves_toward_row_zero() -> None:
    b = _board({(5, 2): "w", (0, 1): "b"})
    assert legal_destinations(b, (5, 2)).destinations == {(4, 1), (4, 3)}


def test_black_pawn_moves_toward_last_row() -> None:
    b = _board({(2, 3): "b", (7, 0): "w"}, side="b")
    assert legal_destinations(b, (2, 3)).destinations == {(3, 2), (3, 4)}


def test_pawn_direction_follows_piece_not_turn() -> None:
    # Black to move, but the white pawn still only looks forward
    b = _board({(5, 2): "w", (0, 1): "b"}, side="b")
    assert legal_destinations(b, (5, 2)).destinations == {(4, 1), (4, 3)}


def test_king_uses_all_four_directions() -> None:
    b = _board({(4, 3): "W", (0, 1): "b"})
    scan = legal_destinations(b, (4, 3))
    assert len(scan.directions) == 4
    assert scan.destinations == {(3, 2), (3, 4), (5, 2), (5, 4)}


def test_capture_destination_and_per_direction_result() -> None:
    b = _board({(5, 4): "w", (4, 3): "b"})
    scan = legal_destinations(b, (5, 4))
    assert scan.forced is True
    assert scan.captures == {(3, 2)}
    # The empty square up-right is suppressed by the capture
    assert scan.steps == set()
    assert scan.directions[(-1, -1)] == DirectionScan((4, 3), (3, 2), False, True)
    assert scan.directions[(-1, 1)] == DirectionScan((4, 5), (3, 6), False, False)


def test_capture_suppresses_simple_moves_of_every_piece_of_that_side() -> None:
    b = _board({(5, 4): "w", (5, 0): "w", (4, 3): "b"})
    other = legal_destinations(b, (5, 0))
    assert other.forced is True
    assert other.destinations == set()
    assert forcing_squares(b, WHITE) == [(5, 4)]


def test_no_capture_when_landing_square_is_off_board_or_occupied() -> None:
    edge = _board({(2, 1): "w", (1, 0): "b", (0, 7): "b"})
    assert captures_from(edge, (2, 1)) == set()
    assert legal_destinations(edge, (2, 1)).destinations == {(1, 2)}

    blocked = _board({(5, 4): "w", (4, 3): "b", (3, 2): "b"})
    assert captures_from(blocked, (5, 4)) == set()
    assert legal_destinations(blocked, (5, 4)).destinations == {(4, 5)}


def test_cannot_jump_own_piece() -> None:
    b = _board({(5, 2): "w", (4, 1): "w", (0, 1): "b"})
    assert legal_destinations(b, (5, 2)).destinations == {(4, 3)}
    assert side_has_capture(b, WHITE) is False


def test_pawn_cannot_capture_backward_but_king_can() -> None:
    pawn = _board({(3, 2): "w", (4, 3): "b"})
    assert captures_from(pawn, (3, 2)) == set()
    king = _board({(3, 2): "W", (4, 3): "b"})
    assert captures_from(king, (3, 2)) == {(5, 4)}


def test_empty_or_off_board_origin_yields_empty_scan() -> None:
    b = Board.startpos()
    assert legal_destinations(b, (4, 3)).destinations == set()
    assert not legal_destinations(b, (4, 3))
    assert legal_destinations(b, (9, 9)).directions == {}
    assert captures_from(b, (-1, 0)) == set()


def test_startpos_has_seven_white_moves() -> None:
    b = Board.startpos()
    moves = generate_moves(b)
    assert len(moves) == 7
    assert Move((5, 6), (4, 7)) in moves
    assert all(not m.is_jump for m in moves)


def test_generate_moves_returns_only_captures_when_one_exists() -> None:
    b = _board({(5, 4): "w", (5, 0): "w", (4, 3): "b"})
    assert generate_moves(b, WHITE) == [Move((5, 4), (3, 2))]


def test_side_has_moves() -> None:
    # White pawn on (1,0) is boxed in by the black pawn on (0,1)
    b = _board({(1, 0): "w", (0, 1): "b"})
    assert side_has_moves(b, WHITE) is False
    assert side_has_moves(b, BLACK) is True
