"""Line codec for the peer protocol.

Every message is one line: a tag character followed by a compact payload.

    I<0|1>          side of the receiver, 0 = White (host to joiner, once)
    M<r1,c1:r2,c2>  one step or one jump
    W<0|1>          game won, 1 = the hosting peer's side won
    D               draw request from the sender
    F               forfeit from the sender
    A               reset the board
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

from ..engine.move import Move, parse_move


TAG_IDENTITY = "I"
TAG_MOVE = "M"
TAG_WIN = "W"
TAG_DRAW = "D"
TAG_FORFEIT = "F"
TAG_RESET = "A"


class ProtocolError(ValueError):
    """A line that cannot be decoded, or a message that makes no sense now."""


class ProtocolDesyncError(ProtocolError):
    """The peer's replica and ours have diverged."""


@dataclass(frozen=True)
class SideAssignment:
    receiver_is_white: bool


@dataclass(frozen=True)
class MoveCommand:
    move: Move


@dataclass(frozen=True)
class WinNotice:
    host_won: bool


@dataclass(frozen=True)
class DrawRequest:
    pass


@dataclass(frozen=True)
class Forfeit:
    pass


@dataclass(frozen=True)
class Reset:
    pass


RemoteCommand = Union[SideAssignment, MoveCommand, WinNotice, DrawRequest, Forfeit, Reset]


def encode(cmd: RemoteCommand) -> str:
    """Render a command as a protocol line (without the trailing newline)."""
    if isinstance(cmd, SideAssignment):
        return TAG_IDENTITY + ("0" if cmd.receiver_is_white else "1")
    if isinstance(cmd, MoveCommand):
        return TAG_MOVE + cmd.move.to_wire()
    if isinstance(cmd, WinNotice):
        return TAG_WIN + ("1" if cmd.host_won else "0")
    if isinstance(cmd, DrawRequest):
        return TAG_DRAW
    if isinstance(cmd, Forfeit):
        return TAG_FORFEIT
    if isinstance(cmd, Reset):
        return TAG_RESET
    raise TypeError(f"not a protocol command: {cmd!r}")


def decode(line: str) -> Optional[RemoteCommand]:
    """Parse one protocol line.

    Args:
        line (str): Line as read from the channel, with or without the line
            terminator.

    Returns:
        Optional[RemoteCommand]: The decoded command, or None for a blank
        line.

    Raises:
        ProtocolError: If the tag is unknown or the payload is malformed.
    """
    line = line.strip()
    if not line:
        return None
    tag, payload = line[0], line[1:]

    if tag == TAG_MOVE:
        try:
            return MoveCommand(parse_move(payload))
        except ValueError as e:
            raise ProtocolError(f"malformed move message: {line!r}") from e
    if tag == TAG_IDENTITY:
        return SideAssignment(receiver_is_white=_flag(line, payload) == "0")
    if tag == TAG_WIN:
        return WinNotice(host_won=_flag(line, payload) == "1")
    if tag in (TAG_DRAW, TAG_FORFEIT, TAG_RESET):
        if payload:
            raise ProtocolError(f"unexpected payload: {line!r}")
        if tag == TAG_DRAW:
            return DrawRequest()
        if tag == TAG_FORFEIT:
            return Forfeit()
        return Reset()
    raise ProtocolError(f"unknown message tag: {line!r}")


def _flag(line: str, payload: str) -> str:
    if payload not in ("0", "1"):
        raise ProtocolError(f"expected 0 or 1: {line!r}")
    return payload
