"""Ingress route table manager."""

from playground.managers.route.route import (
    RouteManager,
    exposed_ports,
    service_name,
    session_paths,
)

__all__ = ["RouteManager", "exposed_ports", "service_name", "session_paths"]
