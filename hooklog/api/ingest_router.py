"""Webhook receiver."""
from typing import Any
from fastapi import APIRouter, Depends, HTTPException, Request
import orjson

from .dependencies import get_service
from .schemas import IngestResponse
from ..event_models import EventMeta, empty_payload, raw_payload
from ..services import HooklogService

router = APIRouter(prefix="/v1/hooks", tags=["ingest"])


def decode_body(body: bytes) -> Any:
    """
    Turn a request body into a payload.

    Empty bodies and JSON ``null`` become ``{"_empty": true}``; bodies that do
    not parse as JSON are kept verbatim as ``{"_raw": text}``.

    orjson decodes integers wider than 64 bits as floats, so such values lose
    precision before they are stored.
    """
    text = body.decode("utf-8", errors="replace")
    if not text.strip():
        return empty_payload()

    try:
        payload = orjson.loads(body)
    except orjson.JSONDecodeError:
        return raw_payload(text)

    if payload is None:
        return empty_payload()
    return payload


def request_meta(request: Request) -> EventMeta:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        ip = forwarded.split(",")[0].strip()
    else:
        ip = request.client.host if request.client else None

    return EventMeta(
        ip=ip,
        user_agent=request.headers.get("user-agent"),
        content_type=request.headers.get("content-type"),
    )


@router.post("/{channel}", response_model=IngestResponse)
async def receive_webhook(
    channel: str,
    request: Request,
    service: HooklogService = Depends(get_service),
):
    if not service.policy.is_allowed(channel):
        raise HTTPException(404, detail="Not found")

    body = await request.body()
    event = await service.ingest(
        channel,
        decode_body(body),
        request_meta(request),
        size_bytes=len(body),
    )
    return IngestResponse(id=event.id, channel=event.channel)
