"""
Error taxonomy and the handlers that turn every failure into the JSON envelope.

  ValidationError      400  missing/malformed input, bad state transition
  DuplicateError       400  unique key already taken (reference number, name)
  ReferenceInUseError  400  entity still referenced, delete refused
  NotFoundError        404
  AuthError            401 / 403
  PersistenceError     500  database failure, rolled back, detail hidden
"""
from __future__ import annotations

from typing import Any, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger


class AppError(Exception):
    status_code: int = 400

    def __init__(self, message: str, *, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(AppError):
    status_code = 400


class DuplicateError(ValidationError):
    pass


class ReferenceInUseError(AppError):
    status_code = 400


class NotFoundError(AppError):
    status_code = 404


class AuthError(AppError):
    status_code = 401


class PersistenceError(AppError):
    status_code = 500

    def __init__(self, message: str = "Database error, no changes were saved"):
        super().__init__(message)


def error_body(message: str) -> dict[str, Any]:
    return {"success": False, "error": message, "message": message}


def _format_validation(exc: RequestValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "; ".join(parts) or "Invalid request"


def install_error_handlers(app: FastAPI) -> None:
    """Register handlers so no exception leaves the API outside the envelope."""

    @app.exception_handler(AppError)
    async def _app_error(request: Request, exc: AppError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path}: {exc.message}")
        else:
            logger.info(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=error_body(exc.message))

    @app.exception_handler(RequestValidationError)
    async def _request_validation(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content=error_body(_format_validation(exc)))

    @app.exception_handler(HTTPException)
    async def _http_error(request: Request, exc: HTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(str(exc.detail)),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
        return JSONResponse(status_code=500, content=error_body("Internal server error"))
