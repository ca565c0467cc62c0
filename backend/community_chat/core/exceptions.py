from typing import Any, Dict, Optional
from fastapi import Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import OperationalError
from starlette.exceptions import HTTPException as StarletteHTTPException
import structlog

logger = structlog.get_logger()


class ChatError(Exception):
    """
    Base class for errors the chat core reports to callers.
    `code` is the stable machine-readable name used on the wire.
    """
    code = "chat_error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    retryable = False

    def __init__(self, message: str = "", **context: Any):
        super().__init__(message or self.code)
        self.message = message or self.code
        self.context = context

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"detail": self.message, "error": self.code}
        if self.retryable:
            payload["retryable"] = True
        return payload


class NotFound(ChatError):
    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class InvalidRequest(ChatError):
    code = "invalid_request"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class UnsupportedType(ChatError):
    code = "unsupported_type"
    status_code = status.HTTP_415_UNSUPPORTED_MEDIA_TYPE


class TooLarge(ChatError):
    code = "too_large"
    status_code = status.HTTP_413_REQUEST_ENTITY_TOO_LARGE


class StorageUnavailable(ChatError):
    code = "storage_unavailable"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    retryable = True


class TransientFailure(ChatError):
    code = "transient_failure"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    retryable = True


ERRORS_BY_CODE = {
    cls.code: cls
    for cls in (NotFound, InvalidRequest, UnsupportedType, TooLarge, StorageUnavailable, TransientFailure)
}


def error_from_payload(status_code: int, payload: Optional[Dict[str, Any]]) -> ChatError:
    """
    Rebuild a ChatError from an error response body.
    Unknown codes fall back on the status: 5xx is transient, anything else is a generic ChatError.
    """
    payload = payload or {}
    detail = payload.get("detail")
    message = detail if isinstance(detail, str) else f"HTTP {status_code}"
    cls = ERRORS_BY_CODE.get(payload.get("error"))
    if cls is None:
        cls = TransientFailure if status_code >= 500 else ChatError
    return cls(message)


async def chat_exception_handler(request: Request, exc: ChatError):
    """
    Domain errors carry their own status and code.
    """
    log = logger.warning if exc.status_code < 500 else logger.error
    log("chat_error", error=exc.code, message=exc.message, path=request.url.path, **exc.context)
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


async def database_exception_handler(request: Request, exc: OperationalError):
    """
    Database unreachable or locked. Every write in the chat core is safe to retry.
    """
    logger.error("database_unavailable", error=str(exc.orig), path=request.url.path)
    return JSONResponse(
        status_code=TransientFailure.status_code,
        content=TransientFailure("Database temporarily unavailable, please retry.").to_payload(),
    )


async def global_exception_handler(request: Request, exc: Exception):
    """
    Catch-all for unhandled exceptions.
    Prevents stack trace leakage in production.
    """
    logger.error("unhandled_exception", error=str(exc), path=request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "An unexpected error occurred.", "error": ChatError.code},
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """
    Pydantic validation error handler.
    """
    logger.warning("validation_error", errors=exc.errors(), path=request.url.path)
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": "Validation error", "error": InvalidRequest.code, "errors": jsonable_errors(exc)},
    )


def jsonable_errors(exc: RequestValidationError):
    # ctx may hold the raw exception object, which JSONResponse cannot encode
    return [{k: v for k, v in err.items() if k != "ctx"} for err in exc.errors()]
