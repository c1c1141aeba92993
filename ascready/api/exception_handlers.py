# FILE: ascready/api/exception_handlers.py
from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException

from ascready.api.response import err, readiness_err
from ascready.services.errors import ReadinessError

logger = logging.getLogger(__name__)


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ReadinessError)
    async def readiness_exception_handler(request: Request, exc: ReadinessError) -> JSONResponse:
        return readiness_err(exc)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        # exc.detail can be str/dict/list
        msg = exc.detail if isinstance(exc.detail, str) else "Request failed"
        return err(msg=msg, status_code=exc.status_code, code=f"HTTP_{exc.status_code}")

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return err(msg="Validation error", status_code=422, code="VALIDATION_ERROR",
                   details=exc.errors())

    @app.exception_handler(IntegrityError)
    async def integrity_exception_handler(request: Request, exc: IntegrityError) -> JSONResponse:
        logger.warning("Integrity error on %s %s: %s", request.method, request.url.path, exc.orig)
        return err(msg="Database constraint error (duplicate/invalid reference).",
                   status_code=409, code="CONSTRAINT_VIOLATION")

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return err(msg="Internal server error", status_code=500, code="INTERNAL_ERROR")


def safe_err(e: Exception) -> JSONResponse:
    """Route-level catch-all: map a caught exception onto the error envelope."""
    if isinstance(e, ReadinessError):
        return readiness_err(e)
    if isinstance(e, StarletteHTTPException):
        msg = e.detail if isinstance(e.detail, str) else "Request failed"
        return err(msg=msg, status_code=e.status_code, code=f"HTTP_{e.status_code}")
    if isinstance(e, IntegrityError):
        # Make SQL errors readable instead of full trace
        return err("Database constraint error (duplicate/invalid reference).",
                   status_code=409, code="CONSTRAINT_VIOLATION")
    logger.exception("Request failed")
    return err("Internal server error", status_code=500, code="INTERNAL_ERROR")
