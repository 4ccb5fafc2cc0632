"""Operator API: browse, look up, export and clear captured events."""
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response

from .dependencies import get_service, require_scope
from .schemas import (
    ChannelListResponse,
    ClearResponse,
    EventListResponse,
    EventResponse,
    FieldListResponse,
)
from ..auth.api_key import verify_api_key
from ..channels import WILDCARD
from ..export import ExportFormat
from ..query import EventFilter
from ..services import HooklogService
from ..summary import decorate

router = APIRouter(prefix="/v1", tags=["events"], dependencies=[Depends(verify_api_key)])


@router.get("/channels", response_model=ChannelListResponse)
async def list_channels(service: HooklogService = Depends(get_service)):
    """Known channels, preceded by the ``*`` wildcard."""
    channels = await service.list_channels()
    return ChannelListResponse(channels=[WILDCARD] + channels)


@router.get("/fields", response_model=FieldListResponse)
async def list_fields(service: HooklogService = Depends(get_service)):
    """Suggested paths for the selected-field filter."""
    return FieldListResponse(fields=service.field_catalog())


@router.get("/channels/{channel}/events", response_model=EventListResponse)
async def query_events(
    channel: str,
    q: str = "",
    field: str = "",
    value: str = "",
    limit: int | None = None,
    service: HooklogService = Depends(get_service),
):
    """
    Matching events, newest first.

    ``count`` is the total number of matches; ``limit`` bounds ``items``
    (``0`` asks for the maximum page size).
    """
    require_scope(service, channel)
    result = await service.query(channel, EventFilter(q=q, field=field, value=value), limit=limit)
    return EventListResponse(
        channel=channel,
        count=result.count,
        items=[decorate(event) for event in result.items],
    )


@router.get("/channels/{channel}/events/{event_id}", response_model=EventResponse)
async def get_event(channel: str, event_id: str, service: HooklogService = Depends(get_service)):
    require_scope(service, channel)
    event = await service.get_by_id(channel, event_id)
    if event is None:
        raise HTTPException(404, detail="Not found")
    return EventResponse(item=event)


@router.get("/channels/{channel}/export")
async def export_events(
    channel: str,
    format: ExportFormat = ExportFormat.NDJSON,
    q: str = "",
    field: str = "",
    value: str = "",
    limit: int | None = None,
    service: HooklogService = Depends(get_service),
):
    """Download matching events as NDJSON or CSV."""
    require_scope(service, channel)
    result = await service.export(format, channel, EventFilter(q=q, field=field, value=value), cap=limit)
    return Response(
        content=result.body,
        media_type=result.media_type,
        headers={
            "Content-Disposition": f'attachment; filename="{result.filename}"',
            "X-Export-Count": str(result.count),
        },
    )


@router.delete("/channels/{channel}/events", response_model=ClearResponse)
async def clear_events(channel: str, service: HooklogService = Depends(get_service)):
    """Drop a channel's cache and log, or every channel's with ``*``."""
    require_scope(service, channel)
    cleared = await service.clear(channel)
    return ClearResponse(cleared=cleared)
