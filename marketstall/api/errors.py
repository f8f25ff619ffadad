import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from marketstall.config import settings
from marketstall.errors import AllocationError, PersistenceFailure

logger = logging.getLogger("marketstall.api")


def _get_request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


def _respond(request: Request, status_code: int, payload: dict) -> JSONResponse:
    request_id = _get_request_id(request)
    payload["request_id"] = request_id

    response = JSONResponse(status_code=status_code, content=payload)
    if request_id:
        response.headers["X-Request-ID"] = request_id
    return response


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AllocationError)
    async def allocation_error_handler(request: Request, exc: AllocationError):
        detail = exc.to_detail()

        if isinstance(exc, PersistenceFailure):
            logger.error(
                "persistence_failure request_id=%s cause=%r",
                _get_request_id(request),
                exc.cause,
            )
            if settings.expose_error_detail and exc.cause is not None:
                detail["cause"] = str(exc.cause)

        return _respond(request, exc.status_code, {"detail": detail, "code": exc.code})

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return _respond(request, exc.status_code, {"detail": exc.detail})

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return _respond(request, 422, {"detail": exc.errors(), "code": "validation_error"})

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception("unhandled_exception request_id=%s", _get_request_id(request), exc_info=exc)
        return _respond(request, 500, {"detail": "Internal Server Error"})
