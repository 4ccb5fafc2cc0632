"""Hooklog service: the async entry point for every core operation."""
from typing import Any
import time
import structlog
from pydantic import BaseModel

from ..aggregator import Aggregator
from ..channels import WILDCARD, ChannelPolicy
from ..config import Settings
from ..event_models import Event, EventMeta
from ..export import Exporter, ExportFormat, ExportResult
from ..metrics import Metrics
from ..query import FIELD_CATALOG, EventFilter, QueryEngine
from ..store import EventStore

log = structlog.get_logger()


class QueryResult(BaseModel):
    """Total match count and the page of events returned."""
    scope: str
    count: int
    items: list[Event]


class HooklogService:
    """
    Composes the store, query engine, aggregator and exporter.

    One instance is built per application and injected into the routers;
    nothing here is module-global.
    """

    def __init__(
        self,
        store: EventStore,
        policy: ChannelPolicy,
        settings: Settings,
        metrics: Metrics | None = None,
        engine: QueryEngine | None = None,
    ):
        self.store = store
        self.policy = policy
        self.settings = settings
        self.metrics = metrics
        self.engine = engine or QueryEngine()
        self.aggregator = Aggregator(store, policy, self.engine)
        self.exporter = Exporter(self.aggregator, max_events=settings.EXPORT_MAX_EVENTS)

    @classmethod
    def from_settings(cls, settings: Settings, metrics: Metrics | None = None) -> "HooklogService":
        return cls(
            store=EventStore.from_settings(settings, metrics=metrics),
            policy=ChannelPolicy.from_settings(settings),
            settings=settings,
            metrics=metrics,
        )

    async def ingest(self, channel: str, payload: Any, meta: EventMeta | dict | None = None, size_bytes: int = 0) -> Event:
        """Persist a decoded payload on ``channel``. Raises StorageError on write failure."""
        start_time = time.time()
        self.policy.require(channel)

        event = self.store.append(channel, payload, meta)

        if self.metrics:
            self.metrics.record_ingest(channel, size_bytes)
        log.info(
            "event.ingested",
            channel=channel,
            id=event.id,
            size_bytes=size_bytes,
            duration_ms=round((time.time() - start_time) * 1000, 2),
        )
        return event

    async def query(self, scope: str, flt: EventFilter | None = None, limit: int | None = None) -> QueryResult:
        """
        Matching events for a channel or ``*``, newest first.

        ``count`` is the number of matches before the page limit is applied.
        """
        self._require_scope(scope)
        matched = self.aggregator.aggregate(flt, scope=scope)
        page = self.page_size(limit)

        if self.metrics:
            self.metrics.record_query("all" if scope == WILDCARD else "channel")
        return QueryResult(scope=scope, count=len(matched), items=matched[:page])

    async def get_by_id(self, scope: str, event_id: str) -> Event | None:
        self._require_scope(scope)
        if scope != WILDCARD:
            return self.store.get_by_id(scope, event_id)

        for channel in self.aggregator.list_channels():
            event = self.store.get_by_id(channel, event_id)
            if event is not None:
                return event
        return None

    async def list_channels(self) -> list[str]:
        return self.aggregator.list_channels()

    async def export(
        self,
        fmt: ExportFormat | str,
        scope: str,
        flt: EventFilter | None = None,
        cap: int | None = None,
    ) -> ExportResult:
        self._require_scope(scope)
        result = self.exporter.export(fmt, scope, flt, cap)
        if self.metrics:
            self.metrics.record_export(ExportFormat(fmt).value)
        return result

    async def clear(self, scope: str) -> list[str]:
        self._require_scope(scope)
        cleared = self.store.clear(scope)
        log.info("events.cleared", scope=scope, channels=len(cleared))
        return cleared

    def field_catalog(self) -> list[str]:
        return list(FIELD_CATALOG)

    def page_size(self, limit: int | None) -> int:
        """``None`` means the default page; ``0`` (or less) means as many as allowed."""
        if limit is None:
            return self.settings.DEFAULT_PAGE_SIZE
        if limit <= 0:
            return self.settings.MAX_PAGE_SIZE
        return min(limit, self.settings.MAX_PAGE_SIZE)

    def _require_scope(self, scope: str):
        if scope != WILDCARD:
            self.policy.require(scope)
