from __future__ import annotations

import logging
from typing import Dict, List, Optional, Tuple

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from pydantic import BaseModel, Field

from .error import (
    exception_handler,
    http_exception_handler,
    request_validation_exception_handler,
    session_closed_handler,
)
from .logging_middleware import RequestIDLoggingMiddleware
from .session import PeerSessionSlot
from ..peer.session import PeerSession, SessionClosedError
from ...engine.game import PlyOutcome, StepResult


logger = logging.getLogger(__name__)


class SquareRequest(BaseModel):
    row: int = Field(..., ge=0, le=7)
    col: int = Field(..., ge=0, le=7)


class GameState(BaseModel):
    role: str
    connected: bool
    local_side: Optional[str]
    layout: str
    side_to_move: str
    phase: str
    selected: Optional[Tuple[int, int]]
    destinations: List[Tuple[int, int]]
    forced: bool
    forcing: List[Tuple[int, int]]
    ended: bool
    result: Optional[str]
    draw_requests: Dict[str, bool]
    last_move: Optional[str]


class StepResponse(BaseModel):
    outcome: str
    move: Optional[str]
    captured: Optional[Tuple[int, int]]
    promoted: bool
    state: GameState


class DrawResponse(BaseModel):
    result: str
    state: GameState


class ForfeitResponse(BaseModel):
    winner: str
    state: GameState


def create_app(slot: Optional[PeerSessionSlot] = None) -> FastAPI:
    """Local control API for a presentation process driving one peer."""
    app = FastAPI(title="Draughts Peer API", version="0.1.0")

    # Middleware & error handling
    app.add_middleware(RequestIDLoggingMiddleware)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
    app.add_exception_handler(SessionClosedError, session_closed_handler)
    app.add_exception_handler(Exception, exception_handler)

    slot = slot if slot is not None else PeerSessionSlot()
    app.state.slot = slot

    @app.get("/healthz")
    async def healthz() -> Dict[str, str]:
        session = slot.get()
        if session is None:
            peer = "waiting"
        elif session.ended:
            peer = "ended"
        else:
            peer = "connected"
        return {"status": "ok", "peer": peer}

    @app.get("/api/state", response_model=GameState)
    def get_state() -> GameState:
        session = slot.get()
        if session is None:
            raise SessionClosedError("waiting for the peer to connect")
        return _state(session)

    @app.post("/api/select", response_model=StepResponse)
    def select(req: SquareRequest) -> StepResponse:
        session = slot.require()
        res = session.select((req.row, req.col))
        return _step_response(session, res, "selection rejected")

    @app.post("/api/destination", response_model=StepResponse)
    def destination(req: SquareRequest) -> StepResponse:
        session = slot.require()
        res = session.select_destination((req.row, req.col))
        return _step_response(session, res, "destination rejected")

    @app.post("/api/draw", response_model=DrawResponse)
    def draw() -> DrawResponse:
        session = slot.require()
        res = session.request_draw()
        return DrawResponse(result=res.value, state=_state(session))

    @app.post("/api/forfeit", response_model=ForfeitResponse)
    def forfeit() -> ForfeitResponse:
        session = slot.require()
        winner = session.forfeit()
        return ForfeitResponse(winner=winner, state=_state(session))

    @app.post("/api/reset", response_model=GameState)
    def reset() -> GameState:
        session = slot.require()
        session.reset()
        return _state(session)

    return app


def _state(session: PeerSession) -> GameState:
    return GameState(**session.snapshot())


def _step_response(session: PeerSession, res: StepResult, rejected_detail: str) -> StepResponse:
    if res.outcome is PlyOutcome.REJECTED:
        raise HTTPException(status_code=409, detail=rejected_detail)
    return StepResponse(
        outcome=res.outcome.value,
        move=res.move.to_wire() if res.move else None,
        captured=res.captured,
        promoted=res.promoted,
        state=_state(session),
    )
