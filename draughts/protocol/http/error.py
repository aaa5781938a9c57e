from __future__ import annotations

import logging
from typing import Any, Dict, Optional, cast

from fastapi import Request
from fastapi import HTTPException as FastAPIHTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette import status

from ..peer.session import SessionClosedError


logger = logging.getLogger(__name__)

_CODES = {
    status.HTTP_400_BAD_REQUEST: "bad_request",
    status.HTTP_404_NOT_FOUND: "not_found",
    status.HTTP_409_CONFLICT: "conflict",
    status.HTTP_422_UNPROCESSABLE_ENTITY: "unprocessable_entity",
    status.HTTP_503_SERVICE_UNAVAILABLE: "session_unavailable",
}


def error_envelope(
    *,
    code: str,
    message: str,
    err_type: str,
    request_id: str,
    field_errors: Optional[list[dict[str, str]]] = None,
) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "error": {
            "code": code,
            "message": message,
            "type": err_type,
            "request_id": request_id,
        }
    }
    if field_errors:
        payload["error"]["field_errors"] = field_errors
    return payload


def _respond(
    request: Request,
    status_code: int,
    message: str,
    field_errors: Optional[list[dict[str, str]]] = None,
) -> JSONResponse:
    request_id = getattr(request.state, "request_id", "")
    if status_code in _CODES:
        code = _CODES[status_code]
    elif status_code >= 500:
        code = "internal_error"
    else:
        code = "error"
    payload = error_envelope(
        code=code,
        message=message,
        err_type="client_error" if status_code < 500 else "server_error",
        request_id=request_id,
        field_errors=field_errors,
    )
    return JSONResponse(status_code=status_code, content=payload)


async def http_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    if not isinstance(exc, FastAPIHTTPException):
        return await exception_handler(request, exc)
    detail = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    return _respond(request, exc.status_code, detail)


async def session_closed_handler(request: Request, exc: Exception) -> JSONResponse:
    # No peer yet, or the peer connection is gone
    return _respond(request, status.HTTP_503_SERVICE_UNAVAILABLE, str(exc) or "session not connected")


async def request_validation_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    errors = []
    for e in cast(RequestValidationError, exc).errors():
        loc = ".".join(str(p) for p in e.get("loc", []) if p is not None)
        errors.append(
            {
                "field": loc,
                "code": e.get("type", "value_error"),
                "message": e.get("msg", "invalid value"),
            }
        )
    return _respond(
        request,
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "Validation error",
        field_errors=errors or None,
    )


async def exception_handler(request: Request, exc: Exception) -> JSONResponse:
    if isinstance(exc, SessionClosedError):
        return await session_closed_handler(request, exc)
    logger.exception(
        "Unhandled exception",
        extra={"request_id": getattr(request.state, "request_id", "")},
    )
    return _respond(request, status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal Server Error")
