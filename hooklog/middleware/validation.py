"""Ingest body validation: size cap and JSON well-formedness."""
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse
import structlog
import orjson

log = structlog.get_logger()

INGEST_PREFIX = "/v1/hooks/"


def is_json_content_type(content_type: str | None) -> bool:
    """``application/json`` and ``application/*+json``."""
    if not content_type:
        return False
    mime = content_type.split(";", 1)[0].strip().lower()
    return mime == "application/json" or (mime.startswith("application/") and mime.endswith("+json"))


def _too_large(size: int, max_size: int) -> JSONResponse:
    return JSONResponse(
        status_code=413,
        content={
            "ok": False,
            "error": "PayloadTooLarge",
            "message": f"Request payload exceeds maximum size of {max_size} bytes",
            "max_size": max_size,
            "received_size": size,
        },
    )


class ValidationMiddleware(BaseHTTPMiddleware):
    """
    Rejects oversized webhook bodies (413) and malformed JSON bodies (400).

    Bodies that are not declared as JSON are left alone; the ingest route
    keeps them as raw text when they do not parse.
    """

    def __init__(self, app, max_body_size: int):
        super().__init__(app)
        self.max_body_size = max_body_size

    async def dispatch(self, request: Request, call_next):
        if request.method != "POST" or not request.url.path.startswith(INGEST_PREFIX):
            return await call_next(request)

        content_length = request.headers.get("content-length")
        if content_length and content_length.isdigit() and int(content_length) > self.max_body_size:
            log.warning(
                "payload.too_large",
                size=int(content_length),
                max_size=self.max_body_size,
                path=request.url.path,
            )
            return _too_large(int(content_length), self.max_body_size)

        body = await request.body()
        if len(body) > self.max_body_size:
            log.warning("payload.too_large", size=len(body), max_size=self.max_body_size, path=request.url.path)
            return _too_large(len(body), self.max_body_size)

        if is_json_content_type(request.headers.get("content-type")) and body.strip():
            try:
                orjson.loads(body)
            except orjson.JSONDecodeError as e:
                log.warning("invalid.json", error=str(e), path=request.url.path)
                return JSONResponse(
                    status_code=400,
                    content={
                        "ok": False,
                        "error": "InvalidJSON",
                        "message": "Request body is not valid JSON",
                        "detail": str(e),
                    },
                )

        return await call_next(request)
