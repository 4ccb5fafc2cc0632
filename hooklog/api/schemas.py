from pydantic import BaseModel
from typing import Any, Dict, List
from ..event_models import Event


class IngestResponse(BaseModel):
    ok: bool = True
    id: str
    channel: str


class EventListResponse(BaseModel):
    ok: bool = True
    channel: str
    count: int
    items: List[Dict[str, Any]]


class EventResponse(BaseModel):
    ok: bool = True
    item: Event


class ChannelListResponse(BaseModel):
    ok: bool = True
    channels: List[str]


class FieldListResponse(BaseModel):
    ok: bool = True
    fields: List[str]


class ClearResponse(BaseModel):
    ok: bool = True
    cleared: List[str]
