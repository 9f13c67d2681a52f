"""Error taxonomy and the HTTP responses each error maps to."""
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class TuneQueueError(Exception):
    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


class ValidationError(TuneQueueError):
    """Malformed input. Nothing was mutated."""
    status_code = 400


class NotFoundError(TuneQueueError):
    status_code = 404


class ConflictError(TuneQueueError):
    status_code = 409


class UpstreamError(TuneQueueError):
    """A search or recommendation provider failed."""
    status_code = 502


class QuotaExceededError(UpstreamError):
    status_code = 429


async def _handle_app_error(request: Request, exc: TuneQueueError):
    if isinstance(exc, UpstreamError):
        logger.warning(f"Upstream failure on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


async def _handle_request_validation(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"detail": "Invalid request data", "errors": jsonable_errors(exc)},
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", "")}
        for err in exc.errors()
    ]


def register_exception_handlers(app: FastAPI):
    app.add_exception_handler(TuneQueueError, _handle_app_error)
    app.add_exception_handler(RequestValidationError, _handle_request_validation)
