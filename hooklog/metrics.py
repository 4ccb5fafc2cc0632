"""
Prometheus metrics for the hooklog service.
"""
from prometheus_client import Counter, Histogram, Gauge, Info, CollectorRegistry
import psutil
import os

from . import SERVICE_NAME, __version__


class Metrics:
    """
    Centralized metrics, one registry per application instance.
    """

    def __init__(self, service_name: str = SERVICE_NAME, version: str = __version__, registry=None):
        self.service_name = service_name
        self.version = version
        self.registry = registry or CollectorRegistry()

        # HTTP Metrics
        self.http_requests_total = Counter(
            "http_requests_total",
            "Total HTTP requests",
            ["service", "method", "path", "status"],
            registry=self.registry,
        )

        self.http_request_duration = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["service", "method", "path"],
            registry=self.registry,
        )

        self.http_requests_active = Gauge(
            "http_requests_active",
            "Number of active HTTP requests",
            ["service"],
            registry=self.registry,
        )
        self.http_requests_active.labels(service=service_name).set(0)

        # Application Info
        self.app_info = Info(
            "app",
            "Application information",
            registry=self.registry,
        )
        self.app_info.info({"service": service_name, "version": version})

        self.app_up = Gauge(
            "app_up",
            "Application up status (1=up, 0=down)",
            ["service", "version"],
            registry=self.registry,
        )
        self.app_up.labels(service=service_name, version=version).set(1)

        # Business Metrics
        self.events_ingested_total = Counter(
            "hooklog_events_ingested_total",
            "Total webhook events ingested",
            ["channel"],
            registry=self.registry,
        )

        self.event_size_bytes = Histogram(
            "hooklog_event_size_bytes",
            "Ingested body size in bytes",
            ["channel"],
            buckets=(128, 512, 2048, 8192, 32768, 131072, 524288, 2097152),
            registry=self.registry,
        )

        self.cached_events = Gauge(
            "hooklog_cached_events",
            "Events held in a channel's recency cache",
            ["channel"],
            registry=self.registry,
        )

        self.queries_total = Counter(
            "hooklog_queries_total",
            "Event queries served",
            ["scope"],
            registry=self.registry,
        )

        self.exports_total = Counter(
            "hooklog_exports_total",
            "Exports generated",
            ["format"],
            registry=self.registry,
        )

        self.storage_errors_total = Counter(
            "hooklog_storage_errors_total",
            "Failed appends to channel logs",
            ["channel"],
            registry=self.registry,
        )

        self.lines_discarded_total = Counter(
            "hooklog_lines_discarded_total",
            "Unparseable log lines skipped during hydration",
            ["channel"],
            registry=self.registry,
        )

        # System Metrics
        self._setup_process_metrics()

    def _setup_process_metrics(self):
        """Set up process-level metrics using psutil."""
        self.process_cpu_seconds = Counter(
            "process_cpu_seconds_total",
            "Total CPU time consumed by process",
            ["service"],
            registry=self.registry,
        )

        self.process_memory_bytes = Gauge(
            "process_resident_memory_bytes",
            "Resident memory size in bytes",
            ["service"],
            registry=self.registry,
        )

        self.process_open_fds = Gauge(
            "process_open_fds",
            "Number of open file descriptors",
            ["service"],
            registry=self.registry,
        )

        self._last_cpu_total = 0.0
        self.update_system_metrics()

    def update_system_metrics(self):
        """Update system metrics from psutil."""
        try:
            process = psutil.Process(os.getpid())
        except psutil.Error:
            return

        cpu_times = process.cpu_times()
        cpu_total = cpu_times.user + cpu_times.system
        cpu_diff = cpu_total - self._last_cpu_total
        if cpu_diff > 0:
            self.process_cpu_seconds.labels(service=self.service_name).inc(cpu_diff)
        self._last_cpu_total = cpu_total

        self.process_memory_bytes.labels(service=self.service_name).set(process.memory_info().rss)

        # num_fds() is POSIX only
        if hasattr(process, "num_fds"):
            self.process_open_fds.labels(service=self.service_name).set(process.num_fds())

    def record_ingest(self, channel: str, size_bytes: int):
        self.events_ingested_total.labels(channel=channel).inc()
        self.event_size_bytes.labels(channel=channel).observe(size_bytes)

    def record_query(self, scope: str):
        self.queries_total.labels(scope=scope).inc()

    def record_export(self, fmt: str):
        self.exports_total.labels(format=fmt).inc()

    def record_storage_error(self, channel: str):
        self.storage_errors_total.labels(channel=channel).inc()

    def record_line_discarded(self, channel: str):
        self.lines_discarded_total.labels(channel=channel).inc()

    def set_cached_events(self, channel: str, count: int):
        self.cached_events.labels(channel=channel).set(count)
