"""Cross-channel enumeration, merge and ordering."""
from datetime import datetime, timedelta, timezone
from typing import Iterable
import structlog

from .channels import WILDCARD, ChannelPolicy
from .event_models import Event
from .query import EventFilter, QueryEngine
from .store import EventStore

log = structlog.get_logger()

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_UNPARSEABLE = float("inf")


def timestamp_micros(received_at: str) -> int | None:
    """Microseconds since the epoch for an ISO-8601 string, or None."""
    try:
        parsed = datetime.fromisoformat(received_at.replace("Z", "+00:00"))
    except (TypeError, ValueError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return (parsed - _EPOCH) // timedelta(microseconds=1)


def order_events(events: Iterable[Event]) -> list[Event]:
    """
    Sort events newest first.

    Key: ``receivedAt`` descending, then channel name ascending, then the
    event's position among its channel's events in the input (input is
    expected newest-first per channel). Unparseable timestamps sort last.
    """
    positions: dict[str, int] = {}
    keyed = []
    for event in events:
        position = positions.get(event.channel, 0)
        positions[event.channel] = position + 1

        micros = timestamp_micros(event.received_at)
        primary = -micros if micros is not None else _UNPARSEABLE
        keyed.append(((primary, event.channel, position), event))

    keyed.sort(key=lambda pair: pair[0])
    return [event for _, event in keyed]


class Aggregator:
    """Reads channel caches through the store and merges them."""

    def __init__(self, store: EventStore, policy: ChannelPolicy, engine: QueryEngine | None = None):
        self.store = store
        self.policy = policy
        self.engine = engine or QueryEngine()

    def list_channels(self) -> list[str]:
        """Channels with a log on disk that the policy accepts, sorted."""
        return sorted(name for name in self.store.channel_names() if self.policy.is_allowed(name))

    def collect(self, scope: str) -> list[Event]:
        """Unfiltered events for a channel or for every channel (``*``)."""
        if scope != WILDCARD:
            return self.store.recent(scope)

        events: list[Event] = []
        for channel in self.list_channels():
            events.extend(self.store.recent(channel))
        return events

    def aggregate(self, flt: EventFilter | None = None, scope: str = WILDCARD) -> list[Event]:
        """Filtered events for ``scope`` in the canonical newest-first order."""
        events = self.collect(scope)
        matched = self.engine.filter(events, flt)
        log.debug("aggregate.completed", scope=scope, scanned=len(events), matched=len(matched))
        return order_events(matched)
