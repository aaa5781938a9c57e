from __future__ import annotations

import pytest

from draughts.engine.board import BLACK, STARTPOS_LAYOUT, WHITE, Board, Piece


def test_startpos_has_twelve_pawns_per_side_on_dark_squares() -> None:
    b = Board.startpos()
    assert b.count(WHITE) == 12
    assert b.count(BLACK) == 12
    for (row, col), piece in b.pieces():
        assert (row + col) % 2 == 1
        assert not piece.king
        if piece.side == BLACK:
            assert row <= 2
        else:
            assert row >= 5
    assert b.side_to_move == WHITE
    assert b.forced is False
    assert b.ended is False
    assert b.draw_requests == {WHITE: False, BLACK: False}


def test_layout_roundtrip_startpos() -> None:
    assert Board.startpos().to_layout() == STARTPOS_LAYOUT


def test_layout_kings_and_side_to_move() -> None:
    layout = "...B..../......../......../......../......../......../......../W....... b"
    b = Board.from_layout(layout)
    assert b.piece_at((0, 3)) == Piece(BLACK, king=True)
    assert b.piece_at((7, 0)) == Piece(WHITE, king=True)
    assert b.side_to_move == BLACK
    assert b.to_layout() == layout


@pytest.mark.parametrize(
    "layout",
    [
        "",
        STARTPOS_LAYOUT.split()[0],
        STARTPOS_LAYOUT.replace(" w", " x"),
        "/".join(["........"] * 7) + " w",
        "/".join(["......."] * 8) + " w",
        "x......./" + "/".join(["........"] * 7) + " w",
        # light square
        "w......./" + "/".join(["........"] * 7) + " w",
    ],
)
def test_invalid_layouts_raise(layout: str) -> None:
    with pytest.raises(ValueError):
        Board.from_layout(layout)


def test_from_layout_computes_force_flag() -> None:
    # White pawn on (5,4) can jump the black pawn on (4,3); the black pawn's
    # own jump is blocked by the white pawn on (6,5)
    rows = [["."] * 8 for _ in range(8)]
    rows[5][4] = "w"
    rows[6][5] = "w"
    rows[4][3] = "b"
    layout = "/".join("".join(r) for r in rows) + " w"
    assert Board.from_layout(layout).forced is True
    assert Board.from_layout(layout.replace(" w", " b")).forced is False


def test_relocate_moves_the_same_piece_object() -> None:
    b = Board.startpos()
    piece = b.piece_at((5, 0))
    assert piece is not None
    moved = b.relocate((5, 0), (4, 1))
    assert moved is piece
    assert b.piece_at((4, 1)) is piece
    assert b.piece_at((5, 0)) is None
    with pytest.raises(ValueError):
        b.relocate((5, 0), (4, 1))


def test_promotion_is_one_way() -> None:
    p = Piece(WHITE)
    p.promote()
    p.promote()
    assert p.king is True


def test_piece_at_off_board_is_none() -> None:
    b = Board.startpos()
    assert b.piece_at((-1, 0)) is None
    assert b.piece_at((8, 8)) is None
    assert b.is_empty((8, 8)) is False
