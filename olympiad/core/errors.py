"""
Error taxonomy shared by every router
Services raise these; the handlers in register_exception_handlers()
turn them into {"status": "error", "message": ...} responses
"""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class OlympiadError(Exception):
    status_code = 500

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationFailed(OlympiadError):
    """Missing or malformed input"""
    status_code = 400


class AuthorizationError(OlympiadError):
    """Invalid/expired token (401) or role mismatch (403)"""
    status_code = 401


class Forbidden(AuthorizationError):
    status_code = 403


class NotFound(OlympiadError):
    status_code = 404


class Conflict(OlympiadError):
    status_code = 409


class UpstreamError(OlympiadError):
    """Email, payment or bank lookup dependency failed"""
    status_code = 502


def error_body(message: str) -> dict:
    return {"status": "error", "message": message}


def register_exception_handlers(app: FastAPI) -> None:

    @app.exception_handler(OlympiadError)
    async def handle_olympiad_error(request: Request, exc: OlympiadError):
        if exc.status_code >= 500:
            logger.error(f"[ERROR] {request.method} {request.url.path}: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=error_body(exc.message))

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        problems = []
        for err in exc.errors():
            field = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
            problems.append(f"{field}: {err.get('msg')}" if field else err.get("msg"))
        return JSONResponse(status_code=400, content=error_body("; ".join(problems) or "Invalid request"))

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception):
        logger.exception(f"[ERROR] Unhandled error on {request.method} {request.url.path}")
        return JSONResponse(status_code=500, content=error_body("Internal Server Error"))
