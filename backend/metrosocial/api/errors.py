"""Global error handlers ensuring request_id is included in JSON responses."""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from metrosocial.domain.errors import CoreError, RateLimitExceeded
from metrosocial.obs import logging as obs_logging


def get_request_id(request: Request, default: str = "unknown") -> str:
    rid = getattr(request.state, "request_id", None) or obs_logging.current_request_id()
    return rid or default


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(CoreError)
    async def core_exc_handler(request: Request, exc: CoreError):  # type: ignore[override]
        rid = get_request_id(request)
        payload = {"detail": exc.reason, "request_id": rid}
        headers = {"Retry-After": "60"} if isinstance(exc, RateLimitExceeded) else None
        return JSONResponse(status_code=exc.status_code, content=payload, headers=headers)

    @app.exception_handler(StarletteHTTPException)
    async def http_exc_handler(request: Request, exc: StarletteHTTPException):  # type: ignore[override]
        rid = get_request_id(request)
        payload = {"detail": exc.detail, "request_id": rid}
        return JSONResponse(status_code=exc.status_code, content=payload)

    @app.exception_handler(RequestValidationError)
    async def validation_exc_handler(request: Request, exc: RequestValidationError):  # type: ignore[override]
        rid = get_request_id(request)
        payload = {"detail": "validation_error", "errors": jsonable_encoder(exc.errors()), "request_id": rid}
        return JSONResponse(status_code=422, content=payload)
