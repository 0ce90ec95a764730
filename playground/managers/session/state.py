"""Derive session state from pod status."""

from __future__ import annotations

import json
from datetime import timedelta

import structlog
from pydantic import TypeAdapter, ValidationError

from playground.drivers.base import ContainerStatus, PodInfo
from playground.labels import (
    OWNER_LABEL,
    POOL_ID_LABEL,
    PORTS_ANNOTATION,
    REPOSITORY_LABEL,
    REPOSITORY_VERSION_LABEL,
    SESSION_DURATION_ANNOTATION,
)
from playground.models.pool import Node
from playground.models.repository import Port
from playground.models.session import Deploying, Failed, Running, Session, SessionState
from playground.utils.datetime import EPOCH, ensure_utc

logger = structlog.get_logger()

# Waiting reasons that will not resolve by themselves
TERMINAL_WAITING_REASONS = frozenset({"CreateContainerConfigError"})

_ports_adapter = TypeAdapter(list[Port])


def pod_status_to_state(pod: PodInfo) -> SessionState:
    """Map the first container's status to a session state.

    Total: anything unexpected maps to ``Deploying``.
    """
    container = pod.container
    if container is None:
        return Deploying()

    if container.status == ContainerStatus.RUNNING:
        start_time = ensure_utc(container.started_at) if container.started_at else EPOCH
        return Running(start_time=start_time, node=Node(hostname=pod.node_name or ""))

    if container.status == ContainerStatus.TERMINATED:
        return Failed(
            reason=container.reason or "",
            message=container.message or "Terminated with an error",
        )

    if container.status == ContainerStatus.WAITING and container.reason in TERMINAL_WAITING_REASONS:
        return Failed(reason=container.reason, message=container.message or "")

    return Deploying()


def duration_to_annotation(duration: timedelta) -> str:
    return str(int(duration.total_seconds()))


def annotation_to_duration(value: str | None) -> timedelta:
    try:
        return timedelta(seconds=int(value or 0))
    except ValueError:
        return timedelta(0)


def ports_to_annotation(ports: list[Port]) -> str:
    return json.dumps([port.model_dump() for port in ports])


def annotation_to_ports(value: str | None) -> list[Port]:
    if not value:
        return []
    try:
        return _ports_adapter.validate_json(value)
    except ValidationError:
        logger.warning("session.ports_annotation.invalid", value=value)
        return []


def pod_to_session(pod: PodInfo) -> Session:
    """Rebuild a session from its pod's labels, annotations and status."""
    return Session(
        id=pod.name,
        owner_id=pod.labels.get(OWNER_LABEL, ""),
        repository_id=pod.labels.get(REPOSITORY_LABEL, ""),
        repository_version_id=pod.labels.get(REPOSITORY_VERSION_LABEL, ""),
        pool_id=pod.labels.get(POOL_ID_LABEL, ""),
        max_duration=annotation_to_duration(pod.annotations.get(SESSION_DURATION_ANNOTATION)),
        state=pod_status_to_state(pod),
        ports=annotation_to_ports(pod.annotations.get(PORTS_ANNOTATION)),
    )
