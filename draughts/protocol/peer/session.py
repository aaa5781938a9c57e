from __future__ import annotations

import logging
import queue
import random
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from ...engine.board import BLACK, DRAW, WHITE, opponent, side_name
from ...engine.errors import IllegalMoveError
from ...engine.game import DrawResult, Game, PlyOutcome, StepResult
from ...engine.move import Square
from ..wire import (
    DrawRequest,
    Forfeit,
    MoveCommand,
    ProtocolDesyncError,
    ProtocolError,
    RemoteCommand,
    Reset,
    SideAssignment,
    WinNotice,
    decode,
    encode,
)
from .transport import DEFAULT_PORT, LineChannel, PendingConnection


logger = logging.getLogger(__name__)

Listener = Callable[[str, Dict[str, Any]], None]


class SessionClosedError(RuntimeError):
    """A local action was attempted on a session that is not (or no longer) live."""


@dataclass
class PeerOptions:
    port: int = DEFAULT_PORT
    # Re-check every inbound move against our replica; a mismatch is fatal
    verify_remote_moves: bool = True
    handshake_timeout_s: Optional[float] = None


class PeerSession:
    """One peer of a two-player game.

    Responsibilities:
    - Own the local replica (a Game) and serialize every mutation of it
    - Run the inbound loop (read line, decode, apply) and the outbound loop
      (drain the queue, write line) on two daemon threads
    - Translate local actions into protocol messages for the peer
    - Tell the presentation layer what happened through listener events

    Events: ``side_assigned``, ``board_changed``, ``game_over``,
    ``draw_pending``, ``draw_received``, ``draw_accepted``, ``draw_rejected``,
    ``draw_expired``, ``forfeit``, ``reset``, ``session_ended``.

    Notes:
    - The protocol has no sequence numbers, so a move the peer played just
      before it received our forfeit or reset can arrive after our board was
      reset. Such a move is dropped if it does not fit the fresh board, until
      the peer's first move that does (or its own forfeit or reset). A stale
      move that happens to be legal on the fresh board cannot be told apart
      and is applied.
    """

    def __init__(
        self,
        channel: LineChannel,
        hosting: bool,
        options: Optional[PeerOptions] = None,
        listener: Optional[Listener] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.channel = channel
        self.hosting = hosting
        self.options = options or PeerOptions()
        self.game = Game.new()
        self.local_side: Optional[str] = None
        self.end_reason: Optional[str] = None
        self.error: Optional[BaseException] = None
        self._rng = rng or random.Random()
        self._lock = threading.RLock()
        self._end_lock = threading.Lock()
        self._outbox: "queue.Queue[Optional[str]]" = queue.Queue()
        self._listeners: List[Listener] = [listener] if listener else []
        self._identity = threading.Event()
        self._ended = threading.Event()
        # Set once _end starts; _ended follows after listeners are told
        self._closing = False
        # Local forfeit/reset sent; moves the peer made before seeing it may still arrive
        self._reset_in_flight = False
        self._inbound: Optional[threading.Thread] = None
        self._outbound: Optional[threading.Thread] = None

    @classmethod
    def connect(
        cls,
        pending: PendingConnection,
        options: Optional[PeerOptions] = None,
        listener: Optional[Listener] = None,
        rng: Optional[random.Random] = None,
    ) -> "PeerSession":
        """Second half of the handshake: open the channel and agree on sides."""
        options = options or PeerOptions()
        channel = pending.open(timeout=options.handshake_timeout_s)
        session = cls(channel, pending.hosting, options, listener, rng)
        session.start()
        if not session.wait_ready(options.handshake_timeout_s):
            session.close()
            raise ConnectionError("no side assignment received from the host")
        return session

    # ---- Lifecycle ----
    @property
    def role(self) -> str:
        return "host" if self.hosting else "joiner"

    @property
    def ready(self) -> bool:
        return self._identity.is_set() and not self._ended.is_set()

    @property
    def ended(self) -> bool:
        return self._ended.is_set()

    def start(self) -> None:
        self._outbound = threading.Thread(target=self._outbound_loop, name="peer-outbound", daemon=True)
        self._inbound = threading.Thread(target=self._inbound_loop, name="peer-inbound", daemon=True)
        self._outbound.start()
        self._inbound.start()
        if self.hosting:
            # The host draws sides and tells the joiner which one it got
            with self._lock:
                local_white = self._rng.randint(0, 1) == 1
                self.local_side = WHITE if local_white else BLACK
                self._send(SideAssignment(receiver_is_white=not local_white))
            self._identity.set()
            self._emit("side_assigned", side=self.local_side)

    def wait_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until our side is known. False if the session ended first."""
        self._identity.wait(timeout)
        return self.ready

    def close(self) -> None:
        """Flush queued messages, then end the session."""
        self._outbox.put(None)
        if self._outbound is not None and self._outbound is not threading.current_thread():
            self._outbound.join(timeout=1.0)
        self._end("closed locally")

    def wait_closed(self, timeout: Optional[float] = None) -> bool:
        return self._ended.wait(timeout)

    # ---- Local actions (presentation layer) ----
    def select(self, sq: Square) -> StepResult:
        with self._lock:
            self._require_live()
            if not self._is_local_turn():
                return StepResult(PlyOutcome.REJECTED)
            return self.game.select(sq)

    def select_destination(self, sq: Square) -> StepResult:
        with self._lock:
            self._require_live()
            if not self._is_local_turn():
                return StepResult(PlyOutcome.REJECTED)
            res = self.game.select_destination(sq)
            if res.moved:
                assert res.move is not None
                self._send(MoveCommand(res.move))
                self._after_step(res, local=True)
            return res

    def request_draw(self) -> DrawResult:
        with self._lock:
            self._require_live()
            assert self.local_side is not None
            res = self.game.request_draw(self.local_side)
            if res is DrawResult.PENDING:
                self._send(DrawRequest())
                self._emit("draw_pending", side=self.local_side)
            elif res is DrawResult.ACCEPTED:
                self._send(DrawRequest())
                self._emit("draw_accepted", result=DRAW)
            else:
                self._emit("draw_rejected", reason=res.value)
            return res

    def forfeit(self) -> str:
        """Give up the current game; both replicas start over."""
        with self._lock:
            self._require_live()
            assert self.local_side is not None
            winner = self.game.forfeit(self.local_side)
            self._reset_in_flight = True
            self._send(Forfeit())
            self._send(Reset())
            self._emit("forfeit", by=self.local_side, winner=winner, local=True)
            self._emit("board_changed", layout=self.game.to_layout())
            return winner

    def reset(self) -> None:
        with self._lock:
            self._require_live()
            self.game.reset()
            self._reset_in_flight = True
            self._send(Reset())
            self._emit("reset", local=True)
            self._emit("board_changed", layout=self.game.to_layout())

    def snapshot(self) -> Dict[str, Any]:
        """Consistent view of the replica for rendering."""
        with self._lock:
            game = self.game
            board = game.board
            last = game.last_move
            return {
                "role": self.role,
                "connected": self.ready,
                "local_side": self.local_side,
                "layout": game.to_layout(),
                "side_to_move": board.side_to_move,
                "phase": game.phase.value,
                "selected": game.selected,
                "destinations": sorted(game.destinations),
                "forced": board.forced,
                "forcing": game.forcing_squares(),
                "ended": board.ended,
                "result": board.result,
                "draw_requests": dict(board.draw_requests),
                "last_move": last.to_wire() if last else None,
            }

    # ---- Inbound path ----
    def handle_line(self, line: str) -> Optional[RemoteCommand]:
        """Decode one inbound line and apply it to the replica.

        Raises:
            ProtocolError: For malformed or out-of-place messages.
            ProtocolDesyncError: If the message contradicts our replica.
        """
        cmd = decode(line)
        if cmd is None:
            return None
        with self._lock:
            self._apply_remote(cmd)
        return cmd

    def _apply_remote(self, cmd: RemoteCommand) -> None:
        if isinstance(cmd, SideAssignment):
            if self.hosting or self.local_side is not None:
                raise ProtocolError("side assignment received twice or by the host")
            self.local_side = WHITE if cmd.receiver_is_white else BLACK
            self._identity.set()
            logger.info("side assigned", extra={"role": self.role, "side": self.local_side})
            self._emit("side_assigned", side=self.local_side)
            return

        if self.local_side is None:
            raise ProtocolError("message received before side assignment")
        remote_side = opponent(self.local_side)

        if isinstance(cmd, MoveCommand):
            try:
                res = self._apply_remote_move(cmd, remote_side)
            except ProtocolDesyncError:
                if not self._reset_in_flight:
                    raise
                logger.warning(
                    "dropped move sent before our reset",
                    extra={"role": self.role, "move": cmd.move.to_wire()},
                )
                return
            self._reset_in_flight = False
            self._after_step(res, local=False)
        elif isinstance(cmd, WinNotice):
            host_side = self.local_side if self.hosting else remote_side
            claimed = host_side if cmd.host_won else opponent(host_side)
            check = self.game.check_end()
            if check.result != claimed:
                raise ProtocolDesyncError(
                    f"peer reports {side_name(claimed)} won, replica says {check.result!r}"
                )
        elif isinstance(cmd, DrawRequest):
            res = self.game.request_draw(remote_side)
            if res is DrawResult.PENDING:
                self._emit("draw_received", side=remote_side)
            elif res is DrawResult.ACCEPTED:
                self._emit("draw_accepted", result=DRAW)
            else:
                logger.debug("draw request ignored", extra={"role": self.role, "reason": res.value})
        elif isinstance(cmd, Forfeit):
            self._reset_in_flight = False
            winner = self.game.forfeit(remote_side)
            self._emit("forfeit", by=remote_side, winner=winner, local=False)
            self._emit("board_changed", layout=self.game.to_layout())
        elif isinstance(cmd, Reset):
            self._reset_in_flight = False
            self.game.reset()
            self._emit("reset", local=False)
            self._emit("board_changed", layout=self.game.to_layout())

    def _apply_remote_move(self, cmd: MoveCommand, remote_side: str) -> StepResult:
        if self.game.board.ended or self.game.side_to_move != remote_side:
            raise ProtocolDesyncError(f"peer moved out of turn: {cmd.move.to_wire()}")
        try:
            return self.game.apply_move(cmd.move, remote=True, verify=self.options.verify_remote_moves)
        except IllegalMoveError as e:
            raise ProtocolDesyncError(str(e)) from e

    def _after_step(self, res: StepResult, local: bool) -> None:
        assert res.move is not None
        self._emit(
            "board_changed",
            layout=self.game.to_layout(),
            move=res.move.to_wire(),
            outcome=res.outcome.value,
            captured=res.captured,
            promoted=res.promoted,
            local=local,
        )
        if res.end is not None and res.end.draws_expired:
            self._emit("draw_expired")
        if res.outcome is PlyOutcome.GAME_ENDED:
            result = self.game.result
            reason = res.end.reason if res.end is not None else None
            logger.info("game over", extra={"role": self.role, "result": result, "reason": reason})
            self._emit("game_over", result=result, reason=reason)
            if local and result in (WHITE, BLACK):
                assert self.local_side is not None
                host_side = self.local_side if self.hosting else opponent(self.local_side)
                self._send(WinNotice(host_won=result == host_side))

    # ---- Loops ----
    def _inbound_loop(self) -> None:
        try:
            while not self._closing:
                line = self.channel.read_line()
                if line is None:
                    self._end("peer closed the connection")
                    return
                logger.info("inbound", extra={"role": self.role, "line": line})
                self.handle_line(line)
        except ProtocolDesyncError as e:
            logger.error("replicas diverged: %s", e, extra={"role": self.role})
            self._end("desync", e)
        except ProtocolError as e:
            logger.error("protocol error: %s", e, extra={"role": self.role})
            self._end("protocol error", e)
        except OSError as e:
            if not self._closing:
                logger.warning("read failed: %s", e, extra={"role": self.role})
            self._end("transport failure", e)

    def _outbound_loop(self) -> None:
        while True:
            line = self._outbox.get()
            if line is None:
                return
            try:
                self.channel.write_line(line)
            except OSError as e:
                if not self._closing:
                    logger.warning("write failed: %s", e, extra={"role": self.role})
                self._end("transport failure", e)
                return
            logger.info("outbound", extra={"role": self.role, "line": line})

    def _send(self, cmd: RemoteCommand) -> None:
        if self._closing:
            return
        self._outbox.put(encode(cmd))

    def _end(self, reason: str, error: Optional[BaseException] = None) -> None:
        with self._end_lock:
            if self._closing:
                return
            self._closing = True
            self.end_reason = reason
            self.error = error
        self._outbox.put(None)
        self.channel.close()
        logger.info("session ended", extra={"role": self.role, "reason": reason})
        self._emit(
            "session_ended",
            reason=reason,
            error=str(error) if error else None,
            desync=isinstance(error, ProtocolDesyncError),
        )
        # Listeners have been told before waiters wake up
        self._ended.set()
        self._identity.set()

    # ---- Helpers ----
    def _require_live(self) -> None:
        if self._closing:
            raise SessionClosedError(f"session ended: {self.end_reason}")
        if self.local_side is None:
            raise SessionClosedError("sides not assigned yet")

    def _is_local_turn(self) -> bool:
        return self.game.side_to_move == self.local_side

    def _emit(self, event: str, **payload: Any) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, payload)
            except Exception:
                logger.exception("listener failed", extra={"role": self.role, "event": event})
