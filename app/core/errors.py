"""
Error envelope for authorization outcomes.

Denials are routine: logged at info, rendered as
{"error": {"code", "message", "status"}} and never retried.
"""

from __future__ import annotations

import structlog
from fastapi import FastAPI, Request
from starlette.responses import JSONResponse

from tracker_shared.authz.errors import AuthorizationError

log = structlog.get_logger()


async def authorization_error_handler(request: Request, exc: AuthorizationError) -> JSONResponse:
    log.info(
        "authz.denied",
        code=exc.code,
        status=exc.status,
        method=request.method,
        path=request.url.path,
    )
    return JSONResponse(status_code=exc.status, content=exc.to_body())


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AuthorizationError, authorization_error_handler)
