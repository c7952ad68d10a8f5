from __future__ import annotations

import logging
import time

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.types import ASGIApp

from .errors import EngineError


class RequestTimingLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware that measures request processing time and logs concise request/response info.

    Adds an 'X-Process-Time-Ms' header on responses to aid in quick diagnostics.
    """

    def __init__(self, app: ASGIApp) -> None:
        super().__init__(app)
        self.logger = logging.getLogger("request")

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint):
        start = time.perf_counter()
        response = await call_next(request)
        duration_ms = int((time.perf_counter() - start) * 1000)
        response.headers["X-Process-Time-Ms"] = str(duration_ms)

        client_ip = request.client.host if request.client else "?"
        self.logger.info(
            "method=%s path=%s status=%s duration_ms=%s ip=%s",
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
            client_ip,
        )
        return response


def _error_payload(status: int, code: str, message: str, path: str) -> dict:
    return {
        "ok": False,
        "error": {
            "status": status,
            "code": code,
            "message": message,
            "path": path,
        },
    }


def add_exception_handlers(app: FastAPI) -> None:
    """Register consistent error payload shapes for engine, HTTP and generic exceptions."""

    @app.exception_handler(EngineError)
    async def engine_error_handler(request: Request, exc: EngineError):
        logging.getLogger("request").info(
            "refused path=%s code=%s message=%s", request.url.path, exc.code, exc.message
        )
        payload = _error_payload(exc.status_code, exc.code, exc.message, request.url.path)
        return JSONResponse(status_code=exc.status_code, content=payload)

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        message = exc.detail if isinstance(exc.detail, str) else ""
        payload = _error_payload(exc.status_code, "http_error", message, request.url.path)
        return JSONResponse(status_code=exc.status_code, content=payload)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        # Do not leak internals; keep it simple.
        logging.getLogger("error").exception("Unhandled exception: %s", exc)
        payload = _error_payload(500, "internal_error", "Internal server error", request.url.path)
        return JSONResponse(status_code=500, content=payload)
