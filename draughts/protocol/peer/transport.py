from __future__ import annotations

import logging
import socket
import threading
from typing import Optional, Tuple

from ..wire import ProtocolError


logger = logging.getLogger(__name__)

DEFAULT_PORT = 727


class LineChannel:
    """Ordered, line-oriented text stream over a connected socket.

    Notes:
    - ``read_line`` returns None once the peer has closed the stream, and
      raises ProtocolError for bytes that are not UTF-8.
    - Writes are serialized so concurrent writers never interleave lines.
    - ``close`` is idempotent and unblocks a pending ``read_line``.
    """

    def __init__(self, sock: socket.socket) -> None:
        self._sock = sock
        self._reader = sock.makefile("r", encoding="utf-8", newline="\n")
        self._write_lock = threading.Lock()
        self._closed = threading.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def read_line(self) -> Optional[str]:
        if self._closed.is_set():
            return None
        try:
            line = self._reader.readline()
        except UnicodeDecodeError as e:
            raise ProtocolError("undecodable line from peer") from e
        except ValueError:
            # Reader closed underneath us by close()
            if self._closed.is_set():
                return None
            raise
        if not line:
            return None
        return line.rstrip("\r\n")

    def write_line(self, text: str) -> None:
        if "\n" in text:
            raise ValueError("protocol lines must not contain newlines")
        data = (text + "\n").encode("utf-8")
        with self._write_lock:
            self._sock.sendall(data)

    def close(self) -> None:
        if self._closed.is_set():
            return
        self._closed.set()
        try:
            self._sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            # Already disconnected by the peer
            pass
        self._reader.close()
        self._sock.close()


class PendingConnection:
    """First half of the handshake: an endpoint not yet connected to a peer."""

    hosting: bool = False

    def open(self, timeout: Optional[float] = None) -> LineChannel:
        raise NotImplementedError

    def close(self) -> None:
        pass


class _PendingHost(PendingConnection):
    hosting = True

    def __init__(self, host: str, port: int) -> None:
        self._server = socket.create_server((host, port))
        self.address: Tuple[str, int] = self._server.getsockname()[:2]
        logger.info("listening", extra={"host": self.address[0], "port": self.address[1]})

    def open(self, timeout: Optional[float] = None) -> LineChannel:
        self._server.settimeout(timeout)
        try:
            conn, peer = self._server.accept()
        finally:
            self._server.close()
        conn.settimeout(None)
        logger.info("accepted", extra={"peer": f"{peer[0]}:{peer[1]}"})
        return LineChannel(conn)

    def close(self) -> None:
        self._server.close()


class _PendingJoin(PendingConnection):
    hosting = False

    def __init__(self, address: str, port: int) -> None:
        self.address = (address, port)

    def open(self, timeout: Optional[float] = None) -> LineChannel:
        conn = socket.create_connection(self.address, timeout=timeout)
        conn.settimeout(None)
        logger.info("connected", extra={"peer": f"{self.address[0]}:{self.address[1]}"})
        return LineChannel(conn)


def host_session(host: str = "0.0.0.0", port: int = DEFAULT_PORT) -> PendingConnection:
    """Start listening; ``open()`` on the result waits for the joining peer."""
    return _PendingHost(host, port)


def join_session(address: str, port: int = DEFAULT_PORT) -> PendingConnection:
    """Prepare to dial the hosting peer; ``open()`` connects."""
    return _PendingJoin(address, port)


def channel_pair() -> Tuple[LineChannel, LineChannel]:
    """Two in-process channels connected to each other."""
    a, b = socket.socketpair()
    return LineChannel(a), LineChannel(b)
