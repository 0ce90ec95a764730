"""Prometheus metrics for the playground control plane.

Each ``Metrics`` instance owns its registry so several control planes (or
tests) can live in one process.
"""

from __future__ import annotations

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)


class Metrics:
    """Deploy/undeploy counters and the deployment duration histogram."""

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self.registry = registry or CollectorRegistry()

        self.deploy_counter = Counter(
            "playground_deploy",
            "Number of session deployments",
            ["template"],
            registry=self.registry,
        )
        self.deploy_failures_counter = Counter(
            "playground_deploy_failures",
            "Number of failed session deployments",
            ["template"],
            registry=self.registry,
        )
        self.undeploy_counter = Counter(
            "playground_undeploy",
            "Number of session undeployments",
            registry=self.registry,
        )
        self.undeploy_failures_counter = Counter(
            "playground_undeploy_failures",
            "Number of failed session undeployments",
            registry=self.registry,
        )
        self.deploy_duration = Histogram(
            "playground_deploy_duration_seconds",
            "Time from submission until a session is running or failed",
            buckets=(1, 5, 10, 30, 60, 120, 300, 600, float("inf")),
            registry=self.registry,
        )

    def inc_deploy_counter(self, template: str) -> None:
        self.deploy_counter.labels(template=template).inc()

    def inc_deploy_failures_counter(self, template: str) -> None:
        self.deploy_failures_counter.labels(template=template).inc()

    def inc_undeploy_counter(self) -> None:
        self.undeploy_counter.inc()

    def inc_undeploy_failures_counter(self) -> None:
        self.undeploy_failures_counter.inc()

    def observe_deploy_duration(self, seconds: float) -> None:
        self.deploy_duration.observe(seconds)

    def export(self) -> tuple[bytes, str]:
        """Prometheus exposition output and its content type."""
        return generate_latest(self.registry), CONTENT_TYPE_LATEST
