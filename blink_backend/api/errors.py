"""Exception handlers translating errors into the {success: false, error} envelope"""

import logging
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from blink_backend.domain.exceptions import DomainException


def error_response(status_code: int, error: str, details: Optional[Any] = None) -> JSONResponse:
    body = {"success": False, "error": error}
    if details is not None:
        body["details"] = jsonable_encoder(details)
    return JSONResponse(status_code=status_code, content=body)


def register_exception_handlers(app: FastAPI, show_error_detail: bool) -> None:
    """
    Install handlers on the app.

    show_error_detail echoes the exception text of unhandled errors back to
    the client; it is off in production.
    """

    @app.exception_handler(DomainException)
    async def domain_exception_handler(request: Request, exc: DomainException):
        if exc.status_code >= 500:
            logging.error(
                f"{type(exc).__name__}: {exc.message}",
                extra={"request_id": getattr(request.state, "request_id", "unknown"), "path": request.url.path},
            )
        return error_response(exc.status_code, exc.message, exc.details)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        details = [
            {
                "field": ".".join(str(part) for part in error["loc"] if part != "body"),
                "message": error["msg"],
            }
            for error in exc.errors()
        ]
        return error_response(400, "Validation failed", details)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return error_response(exc.status_code, str(exc.detail))

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logging.exception(
            f"Unhandled error: {exc}",
            extra={"request_id": getattr(request.state, "request_id", "unknown"), "path": request.url.path},
        )
        return error_response(500, "Something went wrong!", str(exc) if show_error_detail else None)
