"""
Prometheus metrics for the KeyGate gateway.
"""
from prometheus_client import Counter, Histogram, Gauge, Info, CollectorRegistry
import psutil
import os


class Metrics:
    """
    Centralized metrics for the KeyGate gateway.
    """

    def __init__(self, service_name: str = "keygate", version: str = "0.1.0", registry=None):
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
            registry=self.registry,
        )

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

        # Business Metrics - gate decisions
        self.validations_total = Counter(
            "keygate_validations_total",
            "API key gate decisions",
            ["outcome"],
            registry=self.registry,
        )

        self.validation_duration = Histogram(
            "keygate_validation_duration_seconds",
            "Time spent scanning stored envelopes",
            registry=self.registry,
        )

        self.stored_envelopes = Gauge(
            "keygate_stored_envelopes",
            "Envelopes in the store at the last validation",
            registry=self.registry,
        )

        # System Metrics
        self._setup_process_metrics()

    def _setup_process_metrics(self):
        """Set up process-level metrics using psutil."""
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

        self.update_system_metrics()

    def update_system_metrics(self):
        """Update system metrics from psutil."""
        process = psutil.Process(os.getpid())
        self.process_memory_bytes.labels(service=self.service_name).set(process.memory_info().rss)

        # num_fds() is not available on all platforms
        if hasattr(process, "num_fds"):
            self.process_open_fds.labels(service=self.service_name).set(process.num_fds())

    def record_validation(self, outcome: str, duration_seconds: float | None = None, stored: int | None = None):
        """Record one gate decision."""
        self.validations_total.labels(outcome=outcome).inc()
        if duration_seconds is not None:
            self.validation_duration.observe(duration_seconds)
        if stored is not None:
            self.stored_envelopes.set(stored)
