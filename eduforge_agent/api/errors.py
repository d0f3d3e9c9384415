"""
API Error Handlers

Maps AgentException subclasses to HTTP status codes. Every error body has
the shape {"error": {"message": ..., "code": ...}}.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from eduforge_agent.core.exceptions import AgentException, ErrorCode

logger = logging.getLogger(__name__)


STATUS_BY_CODE: dict[ErrorCode, int] = {
    ErrorCode.SESSION_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.ACTION_NOT_PENDING: status.HTTP_404_NOT_FOUND,
    ErrorCode.ACTION_EXPIRED: status.HTTP_410_GONE,
    ErrorCode.PERMISSION_DENIED: status.HTTP_403_FORBIDDEN,
    ErrorCode.TOOL_NOT_FOUND: status.HTTP_400_BAD_REQUEST,
    ErrorCode.ARGUMENT_PARSE_ERROR: status.HTTP_400_BAD_REQUEST,
    ErrorCode.TOOL_EXECUTION_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorCode.REASONING_SERVICE_ERROR: status.HTTP_502_BAD_GATEWAY,
    ErrorCode.STORE_ERROR: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorCode.REASONING_NOT_CONFIGURED: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorCode.AGENT_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
}

HTTP_ERROR_CODES: dict[int, str] = {
    status.HTTP_400_BAD_REQUEST: "BAD_REQUEST",
    status.HTTP_401_UNAUTHORIZED: "UNAUTHORIZED",
    status.HTTP_403_FORBIDDEN: "FORBIDDEN",
    status.HTTP_404_NOT_FOUND: "NOT_FOUND",
    status.HTTP_405_METHOD_NOT_ALLOWED: "METHOD_NOT_ALLOWED",
}


def error_body(message: str, code: str) -> dict[str, dict[str, str]]:
    return {"error": {"message": message, "code": code}}


async def agent_exception_handler(request: Request, exc: AgentException) -> JSONResponse:
    status_code = STATUS_BY_CODE.get(exc.error_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.code} {exc.message}")
    return JSONResponse(status_code=status_code, content=error_body(exc.message, exc.code))


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    code = HTTP_ERROR_CODES.get(exc.status_code, "HTTP_ERROR")
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(str(exc.detail), code),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Request validation failures (e.g. an empty message) are 400s."""
    errors = exc.errors()
    message = "; ".join(str(error.get("msg", "invalid request")) for error in errors) or "invalid request"
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body(message, "VALIDATION_ERROR"),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AgentException, agent_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
