from __future__ import annotations

import threading
from typing import Optional

from ..peer.session import PeerSession, SessionClosedError


class PeerSessionSlot:
    """Thread-safe holder for the peer session the control API drives.

    The HTTP server may come up before the handshake has finished, so the
    session is attached later from the thread that completes it.
    """

    def __init__(self, session: Optional[PeerSession] = None) -> None:
        self._lock = threading.RLock()
        self._session = session

    def attach(self, session: PeerSession) -> None:
        with self._lock:
            self._session = session

    def detach(self) -> Optional[PeerSession]:
        with self._lock:
            session, self._session = self._session, None
            return session

    def get(self) -> Optional[PeerSession]:
        with self._lock:
            return self._session

    def require(self) -> PeerSession:
        """The attached session, if it is live.

        Raises:
            SessionClosedError: If no session is attached or it has ended.
        """
        session = self.get()
        if session is None:
            raise SessionClosedError("waiting for the peer to connect")
        if session.ended:
            raise SessionClosedError(f"session ended: {session.end_reason}")
        return session
