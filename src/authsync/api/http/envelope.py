"""Uniform ``{success, message, ...}`` response envelope and exception handlers."""

from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from loguru import logger
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import JSONResponse

from src.authsync.core.errors import AuthenticationFailed, AuthError


def success(message: str | None = None, **payload: Any) -> dict[str, Any]:
    body: dict[str, Any] = {"success": True}
    if message:
        body["message"] = message
    body.update(payload)
    return body


def failure_response(
    status_code: int, message: str, **payload: Any
) -> JSONResponse:
    content: dict[str, Any] = {"success": False, "message": message}
    content.update({k: v for k, v in payload.items() if v is not None})
    return JSONResponse(status_code=status_code, content=content)


async def handle_auth_error(request: Request, exc: AuthError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.opt(exception=exc.__cause__ or exc).error(
            "{} on {}: {}", type(exc).__name__, request.url.path, exc.message
        )
    elif isinstance(exc, AuthenticationFailed):
        logger.info("{} on {}", type(exc).__name__, request.url.path)
    else:
        logger.debug("{} on {}: {}", type(exc).__name__, request.url.path, exc.message)

    response = failure_response(exc.status_code, exc.message, **exc.payload)
    if isinstance(exc, AuthenticationFailed):
        request.app.state.app_dependencies.session_manager.clear_session_cookies(response)
    return response


async def handle_validation_error(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = [
        {
            "field": ".".join(str(part) for part in err.get("loc", ())[1:]),
            "message": err.get("msg", "invalid value"),
        }
        for err in exc.errors()
    ]
    logger.debug("Validation failed on {}: {}", request.url.path, errors)
    return failure_response(400, "invalid request", errors=errors)


async def handle_http_exception(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    message = exc.detail if isinstance(exc.detail, str) else "request failed"
    return failure_response(exc.status_code, message)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AuthError, handle_auth_error)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(StarletteHTTPException, handle_http_exception)
