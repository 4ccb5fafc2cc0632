"""Display summary derived from an event (pure, no state)."""
from typing import Any
from .event_models import EMPTY_KEY, RAW_KEY, Event

SUMMARY_KEY_LIMIT = 8
EVENT_TYPE_KEYS = ("EventType", "eventType", "type", "event")


def payload_kind(payload: Any) -> str:
    if isinstance(payload, dict) and len(payload) == 1:
        if RAW_KEY in payload:
            return "raw"
        if payload.get(EMPTY_KEY) is True:
            return "empty"
    return "json"


def summarize(event: Event) -> dict[str, Any]:
    payload = event.payload
    keys: list[str] = []
    event_type = None

    if isinstance(payload, dict):
        keys = list(payload)[:SUMMARY_KEY_LIMIT]
        for candidate in EVENT_TYPE_KEYS:
            value = payload.get(candidate)
            if isinstance(value, str) and value:
                event_type = value
                break

    return {
        "kind": payload_kind(payload),
        "eventType": event_type,
        "keys": keys,
        "ip": event.meta.ip,
        "contentType": event.meta.content_type,
    }


def decorate(event: Event) -> dict[str, Any]:
    """Wire document of ``event`` with its summary attached."""
    document = event.to_document()
    document["summary"] = summarize(event)
    return document
