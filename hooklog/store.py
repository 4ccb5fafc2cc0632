"""
Per-channel event log store.

Each channel owns one append-only NDJSON file under ``data_dir`` and a bounded
most-recent-first cache. A channel's cache is hydrated from the tail of its
log on first access and afterwards only changes through :meth:`EventStore.append`
and :meth:`EventStore.clear`.

All methods are synchronous and never yield to the event loop, so a cache is
never observed half-updated by another request.
"""
from collections import deque
from datetime import datetime, timezone
from pathlib import Path
from typing import Any
import os
import orjson
import structlog
from pydantic import ValidationError

from .channels import WILDCARD
from .config import Settings
from .errors import StorageError, UnserializablePayload
from .event_models import Event, EventMeta

log = structlog.get_logger()


def utc_timestamp(now: datetime | None = None) -> str:
    """ISO-8601 UTC with millisecond precision, e.g. ``2026-01-01T12:00:00.123Z``."""
    now = now or datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


class EventStore:
    """Owns every channel's recency cache and log file."""

    def __init__(
        self,
        data_dir: Path | str,
        max_recent: int = 500,
        extension: str = "ndjson",
        fsync: bool = False,
        metrics=None,
    ):
        self.data_dir = Path(data_dir)
        self.max_recent = max_recent
        self.extension = extension
        self.fsync = fsync
        self._metrics = metrics
        self._caches: dict[str, deque[Event]] = {}
        self._last_received_at = ""

    @classmethod
    def from_settings(cls, settings: Settings, metrics=None) -> "EventStore":
        return cls(
            data_dir=settings.DATA_DIR,
            max_recent=settings.MAX_RECENT,
            extension=settings.LOG_EXTENSION,
            fsync=settings.FSYNC_ON_APPEND,
            metrics=metrics,
        )

    def log_path(self, channel: str) -> Path:
        return self.data_dir / f"{channel}.{self.extension}"

    def append(self, channel: str, payload: Any, meta: EventMeta | dict | None = None) -> Event:
        """
        Record a payload on ``channel`` and return the stored event.

        The line is written to disk before the cache is touched. If the write
        fails, :class:`StorageError` is raised and the cache is unchanged.
        Payloads orjson cannot encode raise :class:`UnserializablePayload`
        before anything is written.
        """
        event = Event(
            channel=channel,
            received_at=self._next_timestamp(),
            meta=meta if meta is not None else EventMeta(),
            payload=payload,
        )
        try:
            line = orjson.dumps(event.to_document()) + b"\n"
        except orjson.JSONEncodeError as e:
            log.warning("store.encode_failed", channel=channel, error=str(e))
            raise UnserializablePayload(channel, e) from e

        # Hydrate before writing so the new line is not loaded twice
        cache = self._cache(channel)
        self._write_line(channel, line)

        # deque(maxlen) drops the oldest entry from the right
        cache.appendleft(event)
        self._report_cache_size(channel)
        return event

    def load(self, channel: str) -> list[Event]:
        """
        Read the last ``max_recent`` records of a channel's log, in file order.

        Lines that are not valid event records are skipped.
        """
        path = self.log_path(channel)
        if not path.exists():
            return []

        try:
            text = path.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            log.error("store.read_failed", channel=channel, path=str(path), error=str(e))
            raise StorageError(channel, path, e) from e

        lines = [line for line in text.split("\n") if line.strip()]
        skipped = max(len(lines) - self.max_recent, 0)

        events: list[Event] = []
        for offset, line in enumerate(lines[skipped:]):
            event = self._parse_line(channel, line, lineno=skipped + offset + 1)
            if event is not None:
                events.append(event)
        return events

    def recent(self, channel: str) -> list[Event]:
        """Snapshot of the channel's cache, most recent first."""
        return list(self._cache(channel, create=False))

    def get_by_id(self, channel: str, event_id: str) -> Event | None:
        for event in self._cache(channel, create=False):
            if event.id == event_id:
                return event
        return None

    def clear(self, scope: str) -> list[str]:
        """
        Drop cache entries and delete log files for a channel or ``*``.

        File deletion is best effort: failures are logged, not raised.
        Returns the channel names that were cleared.
        """
        if scope == WILDCARD:
            targets = sorted(set(self._caches) | set(self.channel_names()))
        else:
            targets = [scope]

        for channel in targets:
            dropped = self._caches.pop(channel, None)
            self._delete_log(channel)
            if dropped is not None and self._metrics:
                self._metrics.set_cached_events(channel, 0)

        log.info("store.cleared", scope=scope, channels=targets)
        return targets

    def channel_names(self) -> list[str]:
        """Names of every channel with a log file on disk (unfiltered, unsorted)."""
        if not self.data_dir.is_dir():
            return []
        suffix = f".{self.extension}"
        return [p.name[: -len(suffix)] for p in self.data_dir.glob(f"*{suffix}") if p.is_file()]

    def is_hydrated(self, channel: str) -> bool:
        return channel in self._caches

    def _cache(self, channel: str, create: bool = True) -> deque[Event]:
        cache = self._caches.get(channel)
        if cache is None:
            if not create and not self.log_path(channel).exists():
                # Reads of unknown channels leave no trace behind
                return deque()
            # load() is oldest-first; the cache is newest-first
            cache = deque(reversed(self.load(channel)), maxlen=self.max_recent)
            self._caches[channel] = cache
            log.info("store.hydrated", channel=channel, events=len(cache))
            self._report_cache_size(channel)
        return cache

    def _parse_line(self, channel: str, line: str, lineno: int) -> Event | None:
        try:
            record = orjson.loads(line)
        except orjson.JSONDecodeError as e:
            self._discard(channel, lineno, f"invalid json: {e}")
            return None

        if not isinstance(record, dict):
            self._discard(channel, lineno, "record is not an object")
            return None

        # Records written before channels existed carry no channel field
        record.setdefault("channel", channel)
        try:
            return Event.model_validate(record)
        except ValidationError as e:
            self._discard(channel, lineno, f"invalid record: {e.error_count()} errors")
            return None

    def _discard(self, channel: str, lineno: int, reason: str):
        log.warning("store.line_discarded", channel=channel, line_number=lineno, reason=reason)
        if self._metrics:
            self._metrics.record_line_discarded(channel)

    def _write_line(self, channel: str, line: bytes):
        path = self.log_path(channel)
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            with path.open("ab") as fh:
                fh.write(line)
                if self.fsync:
                    fh.flush()
                    os.fsync(fh.fileno())
        except OSError as e:
            log.error("store.append_failed", channel=channel, path=str(path), error=str(e))
            if self._metrics:
                self._metrics.record_storage_error(channel)
            raise StorageError(channel, path, e) from e

    def _delete_log(self, channel: str):
        path = self.log_path(channel)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            log.warning("store.delete_failed", channel=channel, path=str(path), error=str(e))

    def _next_timestamp(self) -> str:
        # Never hand out a timestamp older than the previous one
        stamp = max(utc_timestamp(), self._last_received_at)
        self._last_received_at = stamp
        return stamp

    def _report_cache_size(self, channel: str):
        if self._metrics:
            self._metrics.set_cached_events(channel, len(self._caches.get(channel, ())))
