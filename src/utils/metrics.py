"""
Prometheus metrics for danbot.

Metrics are created on a registry owned by each ``BotMetrics`` instance, so
tests and multiple bot instances never collide on the process-wide default.
"""

from __future__ import annotations

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, start_http_server

# Use standard Prometheus naming conventions: namespace_subsystem_name_unit
NAMESPACE = "danbot"


class BotMetrics:
    """Dispatch, completion and image pipeline instrumentation."""

    def __init__(self, registry: CollectorRegistry | None = None):
        self.registry = registry if registry is not None else CollectorRegistry()

        # ====================================================================
        # Dispatch Metrics
        # ====================================================================

        self.dispatches_total = Counter(
            f"{NAMESPACE}_dispatches_total",
            "Inbound messages dispatched, by intent and outcome",
            ["intent", "outcome"],  # outcome: "success", "error"
            registry=self.registry,
        )

        self.dispatch_duration_seconds = Histogram(
            f"{NAMESPACE}_dispatch_duration_seconds",
            "Time from message receipt to final response",
            ["intent"],
            buckets=(0.5, 1.0, 2.5, 5.0, 10.0, 20.0, 40.0, 80.0),
            registry=self.registry,
        )

        self.dispatch_errors_total = Counter(
            f"{NAMESPACE}_dispatch_errors_total",
            "Dispatch failures by error code",
            ["code"],
            registry=self.registry,
        )

        # ====================================================================
        # Completion Metrics
        # ====================================================================

        self.completion_attempts_total = Counter(
            f"{NAMESPACE}_completion_attempts_total",
            "Text completion attempts by ordinal and outcome",
            ["attempt", "outcome"],  # outcome: "success", "error", "empty"
            registry=self.registry,
        )

        # ====================================================================
        # Context / Image Metrics
        # ====================================================================

        self.context_failures_total = Counter(
            f"{NAMESPACE}_context_failures_total",
            "Non-fatal context store failures",
            ["operation"],  # "load", "append"
            registry=self.registry,
        )

        self.image_archives_total = Counter(
            f"{NAMESPACE}_image_archives_total",
            "Background image archive attempts by outcome",
            ["outcome"],  # "stored", "failed"
            registry=self.registry,
        )

        self.background_uploads_active = Gauge(
            f"{NAMESPACE}_background_uploads_active",
            "Image archive uploads currently in flight",
            registry=self.registry,
        )

        self.image_bytes_total = Counter(
            f"{NAMESPACE}_image_bytes_total",
            "Image bytes delivered per sink",
            ["sink"],  # "chat", "archive"
            registry=self.registry,
        )

    def serve(self, port: int) -> None:
        """Expose this registry over HTTP for scraping."""
        start_http_server(port, registry=self.registry)
