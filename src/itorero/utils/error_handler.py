# src/itorero/utils/error_handler.py
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.itorero.utils import audit
from src.itorero.utils.database import AsyncSessionLocal
from src.itorero.utils.exceptions import AppError, DuplicateKeyError

logger = logging.getLogger("fastapi")


def _safe_args(exc: Exception) -> str:
    a = getattr(exc, "args", None)
    return str(a) if a else "No additional details"


def _json_error(
    status_code: int,
    message: str,
    exc: Exception,
    errors: Optional[List[Any]] = None,
) -> JSONResponse:
    """Unified `{success: false, ...}` error body."""
    payload: Dict[str, Any] = {
        "success": False,
        "message": message,
        "error_type": exc.__class__.__name__,
        "status_code": status_code,
    }
    if errors:
        payload["errors"] = errors
    return JSONResponse(status_code=status_code, content=payload)


def _log_http(request: Request, status_code: int, detail: str, exc: Exception) -> None:
    """
    Log levels:
    - 404 -> INFO (normal noise)
    - 401/403 -> WARNING (auth/permission)
    - other 4xx -> ERROR (client error worth checking)
    - 5xx -> EXCEPTION (stack trace)
    """
    url = str(request.url)
    method = request.method

    if status_code == 404:
        logger.info("404 Not Found: %s %s | detail=%s", method, url, detail)
        return

    if status_code in (401, 403):
        logger.warning("%s: %s %s | detail=%s", status_code, method, url, detail)
        return

    if 400 <= status_code < 500:
        logger.error(
            "%s: %s %s | detail=%s | args=%s",
            status_code,
            method,
            url,
            detail,
            _safe_args(exc),
        )
        return

    logger.exception("%s: %s %s | detail=%s", status_code, method, url, detail, exc_info=exc)


async def custom_exception_handler(request: Request, exc: Exception):
    # -----------------------------
    # 1) Application errors
    # -----------------------------
    if isinstance(exc, AppError):
        _log_http(request, exc.status_code, exc.message, exc)
        return _json_error(exc.status_code, exc.message, exc, errors=exc.errors)

    # -----------------------------
    # 2) Starlette/FastAPI HTTPException
    # -----------------------------
    if isinstance(exc, StarletteHTTPException):
        status = int(exc.status_code)
        detail = str(exc.detail)
        _log_http(request, status, detail, exc)
        if status == 404 and detail == "Not Found":
            detail = "Route not found"
        return _json_error(status, detail, exc)

    # -----------------------------
    # 3) Validation error
    # -----------------------------
    if isinstance(exc, RequestValidationError):
        errors = [
            f"{'.'.join(str(p) for p in e.get('loc', ()) if p != 'body')}: {e.get('msg')}"
            for e in exc.errors()
        ]
        logger.warning("422 Validation error: %s %s | %s", request.method, str(request.url), errors)
        return _json_error(422, "Validation error occurred", exc, errors=errors)

    # -----------------------------
    # 4) Unique constraint that escaped a route
    # -----------------------------
    if isinstance(exc, IntegrityError):
        dup = DuplicateKeyError()
        _log_http(request, dup.status_code, str(exc.orig), exc)
        return _json_error(dup.status_code, dup.message, dup)

    # -----------------------------
    # 5) Any other unexpected exception
    # -----------------------------
    logger.exception(
        "500 Unhandled exception: %s %s | %s", request.method, str(request.url), str(exc), exc_info=exc
    )
    session_factory = getattr(request.app.state, "session_factory", None) or AsyncSessionLocal
    await audit.record_error_best_effort(session_factory, request, exc)
    return _json_error(500, "Internal Server Error. Please try again later.", exc)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, custom_exception_handler)
    app.add_exception_handler(StarletteHTTPException, custom_exception_handler)
    app.add_exception_handler(RequestValidationError, custom_exception_handler)
    app.add_exception_handler(IntegrityError, custom_exception_handler)
    app.add_exception_handler(Exception, custom_exception_handler)
