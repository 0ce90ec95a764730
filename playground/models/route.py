"""Ingress route table models."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class RoutePath:
    path: str
    port: int


@dataclass
class RouteRule:
    """One ingress rule: all paths of a single host go to one service."""

    host: str
    service_name: str
    paths: list[RoutePath] = field(default_factory=list)


@dataclass
class RouteTable:
    """Snapshot of the ingress rules.

    ``resource_version`` is the optimistic concurrency token of the snapshot;
    writing a table with a stale token fails with ``ConflictError``.
    """

    rules: list[RouteRule] = field(default_factory=list)
    resource_version: str | None = None

    def find(self, host: str) -> RouteRule | None:
        for rule in self.rules:
            if rule.host == host:
                return rule
        return None
