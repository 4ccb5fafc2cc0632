from pydantic import BaseModel, ConfigDict, Field
from typing import Any
import uuid

RAW_KEY = "_raw"
EMPTY_KEY = "_empty"


class EventMeta(BaseModel):
    """Transport metadata captured at ingest."""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    ip: str | None = None
    user_agent: str | None = Field(default=None, alias="userAgent")
    content_type: str | None = Field(default=None, alias="contentType")


class Event(BaseModel):
    """One received webhook payload plus receipt metadata."""
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    channel: str
    received_at: str = Field(..., alias="receivedAt")
    meta: EventMeta = Field(default_factory=EventMeta)
    payload: Any = None

    def to_document(self) -> dict[str, Any]:
        """Wire/persisted representation with camelCase keys."""
        return self.model_dump(by_alias=True)


def raw_payload(text: str) -> dict[str, Any]:
    return {RAW_KEY: text}


def empty_payload() -> dict[str, Any]:
    return {EMPTY_KEY: True}
