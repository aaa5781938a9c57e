from __future__ import annotations

import socket
import threading
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest

from draughts.engine.board import BLACK, DRAW, STARTPOS_LAYOUT, WHITE
from draughts.engine.game import DrawResult, Game, PlyOutcome
from draughts.protocol.peer.session import PeerOptions, PeerSession, SessionClosedError
from draughts.protocol.peer.transport import LineChannel, channel_pair, host_session, join_session
from draughts.protocol.wire import ProtocolDesyncError, ProtocolError


class _FixedRng:
    """Stand-in for random.Random with a predetermined side draw."""

    def __init__(self, value: int) -> None:
        self.value = value

    def randint(self, a: int, b: int) -> int:
        return self.value


class _Recorder:
    def __init__(self) -> None:
        self.events: List[Tuple[str, Dict[str, Any]]] = []

    def __call__(self, event: str, payload: Dict[str, Any]) -> None:
        self.events.append((event, payload))

    def names(self) -> List[str]:
        return [e for e, _ in self.events]

    def first(self, name: str) -> Optional[Dict[str, Any]]:
        for e, payload in self.events:
            if e == name:
                return payload
        return None


def _wait_until(predicate: Callable[[], bool], timeout_ms: int = 2000) -> None:
    deadline = time.time() + (timeout_ms / 1000)
    while time.time() < deadline:
        if predicate():
            return
        time.sleep(0.01)


def _pair(host_white: bool = True, layout: Optional[str] = None):
    a, b = channel_pair()
    host_events, join_events = _Recorder(), _Recorder()
    host = PeerSession(a, hosting=True, listener=host_events, rng=_FixedRng(1 if host_white else 0))
    joiner = PeerSession(b, hosting=False, listener=join_events)
    if layout is not None:
        host.game = Game.from_layout(layout)
        joiner.game = Game.from_layout(layout)
    joiner.start()
    host.start()
    assert joiner.wait_ready(2.0)
    return host, joiner, host_events, join_events


def _layout(pieces: Dict[Tuple[int, int], str], side: str = "w") -> str:
    rows = [["."] * 8 for _ in range(8)]
    for (r, c), ch in pieces.items():
        rows[r][c] = ch
    return "/".join("".join(r) for r in rows) + " " + side


def test_host_assigns_opposite_sides() -> None:
    host, joiner, host_events, join_events = _pair(host_white=True)
    try:
        assert host.local_side == WHITE
        assert joiner.local_side == BLACK
        assert host.role == "host" and joiner.role == "joiner"
        assert join_events.first("side_assigned") == {"side": BLACK}
        assert host_events.first("side_assigned") == {"side": WHITE}
    finally:
        host.close()
        joiner.close()


def test_joiner_can_be_white() -> None:
    host, joiner, _, _ = _pair(host_white=False)
    try:
        assert host.local_side == BLACK
        assert joiner.local_side == WHITE
    finally:
        host.close()
        joiner.close()


def test_move_is_mirrored_on_the_peer() -> None:
    host, joiner, _, join_events = _pair()
    try:
        assert host.select((5, 6)).outcome is PlyOutcome.SELECTED
        res = host.select_destination((4, 7))
        assert res.outcome is PlyOutcome.TURN_COMPLETE

        _wait_until(lambda: "board_changed" in join_events.names())
        assert joiner.game.to_layout() == host.game.to_layout()
        changed = join_events.first("board_changed")
        assert changed is not None
        assert changed["move"] == "5,6:4,7"
        assert changed["local"] is False

        assert joiner.select((2, 1)).outcome is PlyOutcome.SELECTED
        joiner.select_destination((3, 0))
        _wait_until(lambda: host.game.side_to_move == WHITE)
        assert host.game.to_layout() == joiner.game.to_layout()
    finally:
        host.close()
        joiner.close()


def test_actions_out_of_turn_are_rejected() -> None:
    host, joiner, _, _ = _pair()
    try:
        assert joiner.select((2, 1)).outcome is PlyOutcome.REJECTED
        assert joiner.select_destination((3, 0)).outcome is PlyOutcome.REJECTED
        assert joiner.game.to_layout() == STARTPOS_LAYOUT
    finally:
        host.close()
        joiner.close()


def test_multi_jump_crosses_the_wire_step_by_step() -> None:
    layout = _layout({(6, 1): "w", (7, 0): "w", (5, 2): "b", (3, 4): "b", (0, 1): "b"})
    host, joiner, _, _ = _pair(layout=layout)
    try:
        host.select((6, 1))
        assert host.select_destination((4, 3)).outcome is PlyOutcome.CONTINUATION_REQUIRED
        _wait_until(lambda: joiner.game.locked == (4, 3))
        assert joiner.game.side_to_move == WHITE
        assert joiner.game.locked == (4, 3)

        assert host.select_destination((2, 5)).outcome is PlyOutcome.TURN_COMPLETE
        _wait_until(lambda: joiner.game.side_to_move == BLACK)
        assert joiner.game.to_layout() == host.game.to_layout()
        assert not joiner.ended
    finally:
        host.close()
        joiner.close()


def test_draw_needs_both_players() -> None:
    host, joiner, host_events, join_events = _pair()
    try:
        assert host.request_draw() is DrawResult.PENDING
        _wait_until(lambda: "draw_received" in join_events.names())
        assert joiner.game.board.draw_requests[WHITE] is True

        assert joiner.request_draw() is DrawResult.ACCEPTED
        _wait_until(lambda: "draw_accepted" in host_events.names())
        assert host.game.result == DRAW
        assert joiner.game.result == DRAW
        assert "draw_accepted" in host_events.names()

        assert host.request_draw() is DrawResult.GAME_OVER
        assert host_events.first("draw_rejected") == {"reason": "game_over"}
    finally:
        host.close()
        joiner.close()


def test_forfeit_resets_both_replicas() -> None:
    host, joiner, host_events, _ = _pair()
    try:
        host.select((5, 6))
        host.select_destination((4, 7))
        _wait_until(lambda: joiner.game.side_to_move == BLACK)

        assert joiner.forfeit() == WHITE
        assert joiner.game.to_layout() == STARTPOS_LAYOUT
        _wait_until(lambda: "reset" in host_events.names())
        assert host.game.to_layout() == STARTPOS_LAYOUT
        assert host_events.first("forfeit") == {"by": BLACK, "winner": WHITE, "local": False}
        assert not host.ended and not joiner.ended
    finally:
        host.close()
        joiner.close()


def test_win_is_announced_and_board_can_be_reset() -> None:
    layout = _layout({(5, 4): "w", (4, 3): "b"})
    host, joiner, _, join_events = _pair(layout=layout)
    try:
        host.select((5, 4))
        res = host.select_destination((3, 2))
        assert res.outcome is PlyOutcome.GAME_ENDED
        _wait_until(lambda: "game_over" in join_events.names())
        assert joiner.game.result == WHITE
        assert join_events.first("game_over") == {"result": WHITE, "reason": "elimination"}

        # The win notice must not be mistaken for a divergence
        time.sleep(0.1)
        assert not joiner.ended

        joiner.reset()
        _wait_until(lambda: not host.game.board.ended)
        assert host.game.to_layout() == STARTPOS_LAYOUT
        assert host.ready and joiner.ready
    finally:
        host.close()
        joiner.close()


def test_disconnect_ends_the_session() -> None:
    host, joiner, _, join_events = _pair()
    host.close()
    assert joiner.wait_closed(2.0)
    assert joiner.end_reason == "peer closed the connection"
    ended = join_events.first("session_ended")
    assert ended is not None and ended["desync"] is False
    with pytest.raises(SessionClosedError):
        joiner.forfeit()
    with pytest.raises(SessionClosedError):
        host.select((5, 6))


def _raw_host():
    raw, b = channel_pair()
    events = _Recorder()
    joiner = PeerSession(b, hosting=False, listener=events)
    joiner.start()
    return raw, joiner, events


def test_illegal_remote_move_is_a_desync() -> None:
    raw, joiner, events = _raw_host()
    try:
        raw.write_line("I1")
        assert joiner.wait_ready(2.0)
        assert joiner.local_side == BLACK
        # White pawn sliding two squares without jumping
        raw.write_line("M5,6:3,4")
        assert joiner.wait_closed(2.0)
        assert joiner.end_reason == "desync"
        assert isinstance(joiner.error, ProtocolDesyncError)
        assert events.first("session_ended")["desync"] is True
        assert joiner.game.to_layout() == STARTPOS_LAYOUT
        assert raw.read_line() is None
    finally:
        raw.close()


def test_move_out_of_turn_is_a_desync() -> None:
    raw, joiner, _ = _raw_host()
    try:
        # The joiner is White, so the raw peer (Black) may not open
        raw.write_line("I0")
        raw.write_line("M2,1:3,0")
        assert joiner.wait_closed(2.0)
        assert isinstance(joiner.error, ProtocolDesyncError)
    finally:
        raw.close()


def test_unknown_tag_is_a_protocol_error() -> None:
    raw, joiner, _ = _raw_host()
    try:
        raw.write_line("I1")
        raw.write_line("Z")
        assert joiner.wait_closed(2.0)
        assert joiner.end_reason == "protocol error"
        assert isinstance(joiner.error, ProtocolError)
        assert not isinstance(joiner.error, ProtocolDesyncError)
    finally:
        raw.close()


def test_message_before_side_assignment_is_rejected() -> None:
    raw, joiner, _ = _raw_host()
    try:
        raw.write_line("D")
        assert joiner.wait_ready(2.0) is False
        assert joiner.end_reason == "protocol error"
        with pytest.raises(SessionClosedError):
            joiner.request_draw()
    finally:
        raw.close()


def test_wrong_win_notice_is_a_desync() -> None:
    raw, joiner, _ = _raw_host()
    try:
        raw.write_line("I1")
        raw.write_line("W1")
        assert joiner.wait_closed(2.0)
        assert isinstance(joiner.error, ProtocolDesyncError)
    finally:
        raw.close()


def test_trusted_peer_moves_are_not_rechecked() -> None:
    raw, b = channel_pair()
    joiner = PeerSession(b, hosting=False, options=PeerOptions(verify_remote_moves=False))
    joiner.start()
    try:
        raw.write_line("I1")
        raw.write_line("M5,6:3,4")
        _wait_until(lambda: joiner.game.side_to_move == BLACK)
        assert joiner.game.board.piece_at((3, 4)) is not None
        assert not joiner.ended
    finally:
        joiner.close()
        raw.close()


def test_connect_over_tcp() -> None:
    pending_host = host_session("127.0.0.1", 0)
    port = pending_host.address[1]
    options = PeerOptions(port=port, handshake_timeout_s=5.0)
    sessions: List[PeerSession] = []

    def accept() -> None:
        sessions.append(PeerSession.connect(pending_host, options, rng=_FixedRng(0)))

    t = threading.Thread(target=accept, daemon=True)
    t.start()
    joiner = PeerSession.connect(join_session("127.0.0.1", port), options)
    t.join(timeout=5.0)
    assert len(sessions) == 1
    host = sessions[0]
    try:
        assert host.local_side == BLACK
        assert joiner.local_side == WHITE
        snap = joiner.snapshot()
        assert snap["role"] == "joiner"
        assert snap["connected"] is True
        assert snap["layout"] == STARTPOS_LAYOUT
    finally:
        host.close()
        joiner.close()


def test_undecodable_line_is_a_protocol_error() -> None:
    raw, b = socket.socketpair()
    events = _Recorder()
    joiner = PeerSession(LineChannel(b), hosting=False, listener=events)
    joiner.start()
    try:
        raw.sendall(b"I1\n")
        assert joiner.wait_ready(2.0)
        raw.sendall(b"M\xff\xfe\n")
        assert joiner.wait_closed(2.0)
        assert joiner.end_reason == "protocol error"
        assert isinstance(joiner.error, ProtocolError)
        ended = events.first("session_ended")
        assert ended is not None and ended["desync"] is False
    finally:
        raw.close()


def test_move_crossing_a_local_forfeit_is_dropped() -> None:
    raw, joiner, events = _raw_host()
    try:
        raw.write_line("I0")
        assert joiner.wait_ready(2.0)
        joiner.select((5, 6))
        joiner.select_destination((4, 7))
        joiner.forfeit()

        # Black's reply to the move above, sent before the forfeit arrived
        raw.write_line("M2,1:3,0")
        raw.write_line("D")
        _wait_until(lambda: "draw_received" in events.names())
        assert not joiner.ended
        assert joiner.game.to_layout() == STARTPOS_LAYOUT

        joiner.select((5, 6))
        joiner.select_destination((4, 7))
        raw.write_line("M2,1:3,0")
        _wait_until(lambda: joiner.game.side_to_move == WHITE)
        assert joiner.game.board.piece_at((3, 0)) is not None

        # Once the peer has caught up, a bad move is fatal again
        raw.write_line("M2,3:3,2")
        assert joiner.wait_closed(2.0)
        assert isinstance(joiner.error, ProtocolDesyncError)
    finally:
        raw.close()
