"""Filtered export to NDJSON and CSV."""
from datetime import datetime, timezone
from enum import Enum
import csv
import io
import orjson
import structlog
from pydantic import BaseModel

from .aggregator import Aggregator
from .channels import WILDCARD
from .event_models import Event
from .json_model import render
from .query import EventFilter

log = structlog.get_logger()

CSV_HEADER = ["receivedAt", "id", "channel", "ip", "contentType", "userAgent", "payloadJson"]


class ExportFormat(str, Enum):
    """Supported export formats."""
    NDJSON = "ndjson"
    CSV = "csv"


MEDIA_TYPES = {
    ExportFormat.NDJSON: "application/x-ndjson",
    ExportFormat.CSV: "text/csv; charset=utf-8",
}


class ExportResult(BaseModel):
    body: bytes
    filename: str
    media_type: str
    count: int


def to_ndjson(events: list[Event]) -> bytes:
    """One JSON event per line; trailing newline only when non-empty."""
    if not events:
        return b""
    return b"\n".join(orjson.dumps(event.to_document()) for event in events) + b"\n"


def to_csv(events: list[Event]) -> bytes:
    """Header plus one row per event, quoted where a field needs it."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n", quoting=csv.QUOTE_MINIMAL)
    writer.writerow(CSV_HEADER)
    for event in events:
        writer.writerow([
            event.received_at,
            event.id,
            event.channel,
            event.meta.ip or "",
            event.meta.content_type or "",
            event.meta.user_agent or "",
            render(event.payload),
        ])
    return buffer.getvalue().encode("utf-8")


def export_filename(scope: str, fmt: ExportFormat, filtered: bool, now: datetime | None = None) -> str:
    now = now or datetime.now(timezone.utc)
    label = "all" if scope == WILDCARD else scope
    suffix = "-filtered" if filtered else ""
    return f"hooklog-{label}{suffix}-{now.strftime('%Y%m%d-%H%M%S')}.{fmt.value}"


class Exporter:
    """Re-runs a query over a scope and serializes the capped result."""

    def __init__(self, aggregator: Aggregator, max_events: int = 5000):
        self.aggregator = aggregator
        self.max_events = max_events

    def export(
        self,
        fmt: ExportFormat | str,
        scope: str,
        flt: EventFilter | None = None,
        cap: int | None = None,
    ) -> ExportResult:
        """
        Serialize the newest matching events of ``scope``.

        ``cap`` is clamped to ``max_events`` and applied after ordering, so
        the most recent matches are the ones kept.
        """
        fmt = ExportFormat(fmt)
        flt = flt or EventFilter()
        limit = self.max_events if cap is None or cap <= 0 else min(cap, self.max_events)

        events = self.aggregator.aggregate(flt, scope=scope)[:limit]

        if fmt is ExportFormat.CSV:
            body = to_csv(events)
        else:
            body = to_ndjson(events)

        result = ExportResult(
            body=body,
            filename=export_filename(scope, fmt, flt.is_active),
            media_type=MEDIA_TYPES[fmt],
            count=len(events),
        )
        log.info(
            "export.generated",
            scope=scope,
            format=fmt.value,
            events=result.count,
            size_bytes=len(body),
            filtered=flt.is_active,
        )
        return result
