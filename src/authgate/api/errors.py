"""Exception handlers mapping failures to stable error codes."""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from authgate.errors import AuthError, ErrorCode

logger = logging.getLogger(__name__)

# Error code for a malformed body or query, by endpoint name
VALIDATION_ERROR_CODES: dict[str, ErrorCode] = {
    "request_code": ErrorCode.INVALID_PHONE,
    "request_bot_handshake": ErrorCode.INVALID_PHONE,
    "verify_code": ErrorCode.INVALID_OTP,
    "telegram_login": ErrorCode.INVALID_SIGNATURE,
    "session_status": ErrorCode.NOT_FOUND,
}


def error_response(code: ErrorCode, status_code: int) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": code.value})


async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc.code.value} ({exc})")
    return error_response(exc.code, exc.status_code)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    route = request.scope.get("route")
    code = VALIDATION_ERROR_CODES.get(getattr(route, "name", ""))
    if code is None:
        return JSONResponse(status_code=422, content={"error": "invalid_request"})
    return error_response(code, 400)


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"{request.method} {request.url.path} raised {exc!r}")
    return error_response(ErrorCode.SERVER_ERROR, 500)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AuthError, auth_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, validation_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, unhandled_error_handler)
