# 📂 backend/mediahub/errors.py — таксономия ошибок API и их JSON-представление
# -----------------------------------------------------------------------------
# Что делает:
#   • Объявляет ошибки домена как наследников HTTPException — роуты просто
#     делают raise, как и везде в FastAPI:
#       ValidationError 400 · Unauthenticated 401 · Forbidden 403 ·
#       NotFound 404 · UpstreamFailure 500 (+ InvalidSignature 400).
#   • register_exception_handlers(app) превращает любые ошибки в конверт
#       {"success": false, "message": "...", "error"?: "..."}.
#   • Необработанные исключения логируются со стектрейсом и отдаются как 500.
# -----------------------------------------------------------------------------

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .utils import get_logger

logger = get_logger("mediahub.errors")


class ApiError(HTTPException):
    """Базовая ошибка API: статус + сообщение + (опционально) текст исходной ошибки."""

    status_code_default = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, error: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(status_code=status_code or self.status_code_default, detail=message)
        self.message = message
        self.error = error


class ValidationError(ApiError):
    status_code_default = status.HTTP_400_BAD_REQUEST


class InvalidSignature(ValidationError):
    def __init__(self, message: str = "Invalid payment signature", error: Optional[str] = None):
        super().__init__(message, error)


class Unauthenticated(ApiError):
    status_code_default = status.HTTP_401_UNAUTHORIZED


class Forbidden(ApiError):
    status_code_default = status.HTTP_403_FORBIDDEN


class NotFound(ApiError):
    status_code_default = status.HTTP_404_NOT_FOUND


class UpstreamFailure(ApiError):
    status_code_default = status.HTTP_500_INTERNAL_SERVER_ERROR


def error_body(message: str, error: Optional[str] = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": False, "message": message}
    if error:
        body["error"] = error
    return body


async def _api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s -> %s: %s (%s)", request.method, request.url.path, exc.status_code, exc.message, exc.error)
    return JSONResponse(status_code=exc.status_code, content=error_body(exc.message, exc.error), headers=exc.headers)


async def _http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    # Стандартные HTTPException (404 роутера, 405 и т.п.) — тот же конверт
    message = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    return JSONResponse(status_code=exc.status_code, content=error_body(message), headers=getattr(exc, "headers", None))


async def _request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(p) for p in first.get("loc", ()) if p not in ("body", "query", "path"))
    message = f"Invalid or missing field: {field}" if field else "Invalid request"
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=error_body(message, first.get("msg")))


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body("Server error", str(exc)),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Подключает обработчики ошибок к приложению (вызывается из main.create_app)."""
    app.add_exception_handler(ApiError, _api_error_handler)
    app.add_exception_handler(StarletteHTTPException, _http_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)
