from __future__ import annotations

import argparse
import logging
import threading
from typing import Any, Dict, List, Optional

import uvicorn

from ..engine.board import DRAW, side_name
from ..protocol.http.app import create_app
from ..protocol.http.session import PeerSessionSlot
from ..protocol.peer.session import PeerOptions, PeerSession
from ..protocol.peer.transport import DEFAULT_PORT, host_session, join_session


logger = logging.getLogger("draughts")


def describe_event(event: str, payload: Dict[str, Any]) -> Optional[str]:
    """Human-readable line for a session event, or None if not worth showing."""
    if event == "side_assigned":
        return f"You will be playing as: {side_name(payload['side'])}"
    if event == "draw_pending":
        return "Your draw request is now pending."
    if event == "draw_received":
        return "A draw request has been received. Request a draw at any time to accept."
    if event == "draw_accepted":
        return "Both players have agreed to draw. The game is a tie!"
    if event == "draw_rejected":
        if payload.get("reason") == "game_over":
            return "The game has already ended!"
        return "A draw request was made, but it's already been dealt with!"
    if event == "draw_expired":
        return "The draw request has expired. Issue a new one if you still want to draw."
    if event == "forfeit":
        if payload.get("local"):
            return "You have forfeit! Opponent wins the game!"
        return "Opponent has forfeit! You win the game!"
    if event == "game_over":
        if payload.get("result") == DRAW:
            return "Both players are out of moves! The game is a draw!"
        return f"{side_name(payload['result'])} has won the game!"
    if event == "session_ended":
        if payload.get("desync"):
            return "The boards are out of sync. The game will close."
        return f"Network communication lost ({payload.get('reason')}). The game will close."
    return None


def _announce(event: str, payload: Dict[str, Any]) -> None:
    text = describe_event(event, payload)
    if text:
        logger.info(text)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="draughts", description="Two-player networked draughts peer")
    sub = parser.add_subparsers(dest="mode", required=True)

    host = sub.add_parser("host", help="wait for the other player to connect")
    host.add_argument("--bind", type=str, default="0.0.0.0", help="address to listen on")

    join = sub.add_parser("join", help="connect to a hosting player")
    join.add_argument("address", type=str, help="host's IP address or name")

    for p in (host, join):
        p.add_argument("--port", type=int, default=DEFAULT_PORT, help=f"peer port (default: {DEFAULT_PORT})")
        p.add_argument("--http-host", type=str, default="127.0.0.1", help="control API bind address")
        p.add_argument("--http-port", type=int, default=8000, help="control API port (default: 8000)")
        p.add_argument("--timeout", type=float, default=None, help="handshake timeout in seconds")
        p.add_argument(
            "--trust-peer",
            action="store_true",
            help="apply the peer's moves without re-checking them",
        )
        p.add_argument("--log-level", type=str, default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level))

    options = PeerOptions(
        port=args.port,
        verify_remote_moves=not args.trust_peer,
        handshake_timeout_s=args.timeout,
    )
    if args.mode == "host":
        pending = host_session(args.bind, options.port)
    else:
        pending = join_session(args.address, options.port)

    slot = PeerSessionSlot()

    def establish() -> None:
        try:
            session = PeerSession.connect(pending, options, listener=_announce)
        except OSError as e:
            # Includes the handshake timing out or the host never assigning sides
            logger.error("could not connect: %s", e)
            return
        slot.attach(session)

    worker = threading.Thread(target=establish, name="peer-handshake", daemon=True)
    worker.start()
    try:
        uvicorn.run(create_app(slot), host=args.http_host, port=args.http_port)
    finally:
        pending.close()
        session = slot.detach()
        if session is not None:
            session.close()


if __name__ == "__main__":
    main()
