"""Structured error response middleware."""
from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
import structlog
from ..errors import StorageError, UnserializablePayload
from .correlation import get_correlation_id

log = structlog.get_logger()


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Turns escaped exceptions into structured JSON responses."""

    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except UnserializablePayload as exc:
            correlation_id = get_correlation_id()
            log.warning(
                "payload.unserializable",
                channel=exc.channel,
                error=str(exc),
                path=request.url.path,
                correlation_id=correlation_id,
            )
            return JSONResponse(
                status_code=422,
                content={
                    "ok": False,
                    "error": "UnserializablePayload",
                    "message": "Payload cannot be stored as JSON (integers must fit in 64 bits)",
                    "correlation_id": correlation_id,
                    "path": str(request.url.path),
                },
            )
        except StorageError as exc:
            correlation_id = get_correlation_id()
            log.error(
                "storage.error",
                channel=exc.channel,
                error=str(exc),
                path=request.url.path,
                correlation_id=correlation_id,
            )
            return JSONResponse(
                status_code=503,
                content={
                    "ok": False,
                    "error": "StorageError",
                    "message": "Event could not be persisted",
                    "correlation_id": correlation_id,
                    "path": str(request.url.path),
                },
            )
        except Exception as exc:
            correlation_id = get_correlation_id()
            log.error(
                "unhandled.exception",
                error=str(exc),
                error_type=exc.__class__.__name__,
                path=request.url.path,
                correlation_id=correlation_id,
                exc_info=True,
            )
            return JSONResponse(
                status_code=500,
                content={
                    "ok": False,
                    "error": "InternalServerError",
                    "message": "An unexpected error occurred",
                    "correlation_id": correlation_id,
                    "path": str(request.url.path),
                },
            )
