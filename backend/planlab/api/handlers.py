"""
Exception handlers that render every failure as an error envelope.

    {"ok": false, "code": "<ErrorCode>", "message": "...", "details": ...}
"""

import logging
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from planlab.config import sanitize_error
from planlab.errors import ApiError, ErrorCode
from planlab.schemas.base import ErrorEnvelope

logger = logging.getLogger(__name__)

_HTTP_STATUS_CODES: dict[int, ErrorCode] = {
    status.HTTP_400_BAD_REQUEST: ErrorCode.BAD_REQUEST,
    status.HTTP_401_UNAUTHORIZED: ErrorCode.UNAUTHENTICATED,
    status.HTTP_403_FORBIDDEN: ErrorCode.FORBIDDEN,
    status.HTTP_404_NOT_FOUND: ErrorCode.NOT_FOUND,
    status.HTTP_405_METHOD_NOT_ALLOWED: ErrorCode.BAD_REQUEST,
    status.HTTP_409_CONFLICT: ErrorCode.CONFLICT,
    422: ErrorCode.BAD_REQUEST,
}


def error_response(
    status_code: int, code: ErrorCode, message: str, details: Any = None
) -> JSONResponse:
    body = ErrorEnvelope(code=code.value, message=message, details=details)
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body))


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s %s", request.method, request.url.path, exc.code.value, exc.message)
    return error_response(exc.status_code, exc.code, exc.message, exc.details)


def _field_name(loc: tuple) -> str:
    parts = [str(p) for p in loc if p not in ("body", "query", "path", "header")]
    return ".".join(parts) or "request"


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report the first invalid field; the full list goes in details."""
    errors = [
        {"loc": [str(p) for p in err.get("loc", ())], "msg": err.get("msg", ""), "type": err.get("type", "")}
        for err in exc.errors()
    ]
    if errors:
        first = exc.errors()[0]
        message = f"{_field_name(tuple(first.get('loc', ())))}: {first.get('msg', 'invalid')}"
    else:
        message = "Solicitud inválida."
    return error_response(status.HTTP_400_BAD_REQUEST, ErrorCode.BAD_REQUEST, message, errors)


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    code = _HTTP_STATUS_CODES.get(exc.status_code, ErrorCode.INTERNAL)
    return error_response(exc.status_code, code, str(exc.detail))


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        ErrorCode.INTERNAL,
        sanitize_error(exc, generic_message="Error interno del servidor."),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
