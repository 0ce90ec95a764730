"""Driver base class - cluster abstraction.

Driver is responsible ONLY for talking to the cluster.
It does NOT handle:
- Admission control
- Retry on conflict
- Compensation of partially provisioned sessions
- Metrics

Every I/O failure is surfaced as a ``PlaygroundError``: absent objects as
``NotFoundError``, name collisions as ``AlreadyExistsError``, stale writes as
``ConflictError`` and anything else as ``CommunicationError``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from playground.config import ResourceSpec
    from playground.models.repository import Port
    from playground.models.route import RouteTable


class ContainerStatus(str, Enum):
    """Container state from the driver's perspective."""

    RUNNING = "running"
    TERMINATED = "terminated"
    WAITING = "waiting"


@dataclass
class ContainerStatusInfo:
    """Status of the first container of a pod."""

    status: ContainerStatus
    started_at: datetime | None = None
    reason: str | None = None
    message: str | None = None


@dataclass
class PodInfo:
    """Pod information from driver."""

    name: str
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)
    node_name: str | None = None
    container: ContainerStatusInfo | None = None


@dataclass
class NodeInfo:
    name: str
    labels: dict[str, str] = field(default_factory=dict)


@dataclass
class VolumeInfo:
    """Persistent volume claim information from driver."""

    name: str
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)
    # Set by get_or_create_volume when the claim did not exist before
    created: bool = False


@dataclass
class ConfigMapInfo:
    name: str
    data: dict[str, str] = field(default_factory=dict)
    resource_version: str | None = None


@dataclass
class PodSpec:
    """Everything needed to submit a session pod."""

    name: str
    image: str
    resources: "ResourceSpec"
    web_port: int
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)
    env: dict[str, str] = field(default_factory=dict)
    ports: list["Port"] = field(default_factory=list)
    node_selector: dict[str, str] = field(default_factory=dict)
    volume_name: str | None = None


@dataclass
class ServiceSpec:
    name: str
    selector: dict[str, str]
    web_port: int
    labels: dict[str, str] = field(default_factory=dict)
    ports: list["Port"] = field(default_factory=list)


@dataclass
class JobSpec:
    """One-shot job (repository clone and build)."""

    name: str
    image: str
    labels: dict[str, str] = field(default_factory=dict)
    env: dict[str, str] = field(default_factory=dict)
    args: list[str] = field(default_factory=list)
    volume_name: str | None = None
    backoff_limit: int = 1


class Driver(ABC):
    """Abstract driver interface for the cluster resource manager.

    All session resources created by a driver MUST be labeled with:
    - app
    - component
    - ownerId
    - resourceId
    """

    # Pods

    @abstractmethod
    async def create_pod(self, spec: PodSpec) -> PodInfo:
        """Submit a pod.

        Args:
            spec: Pod specification

        Returns:
            The created pod

        Raises:
            AlreadyExistsError: If a pod with the same name exists
        """
        ...

    @abstractmethod
    async def get_pod(self, name: str) -> PodInfo | None:
        """Get a pod by name.

        Returns:
            Pod information, or None if the pod does not exist
        """
        ...

    @abstractmethod
    async def list_pods(self, labels: dict[str, str]) -> list[PodInfo]:
        """List pods matching all given labels."""
        ...

    @abstractmethod
    async def delete_pod(self, name: str) -> None:
        """Delete a pod.

        Raises:
            NotFoundError: If the pod does not exist
        """
        ...

    @abstractmethod
    async def patch_pod_annotation(self, name: str, key: str, value: str) -> None:
        """Set a single annotation on a pod."""
        ...

    # Services

    @abstractmethod
    async def create_service(self, spec: ServiceSpec) -> None:
        ...

    @abstractmethod
    async def delete_service(self, name: str) -> None:
        """Delete a service.

        Raises:
            NotFoundError: If the service does not exist
        """
        ...

    # Ingress

    @abstractmethod
    async def get_route_table(self) -> "RouteTable":
        """Read the shared ingress rules with their resource version."""
        ...

    @abstractmethod
    async def replace_route_table(self, table: "RouteTable") -> "RouteTable":
        """Write the full rule set back.

        Args:
            table: Rules to write; ``resource_version`` must match the
                current one

        Returns:
            The written table carrying its new resource version

        Raises:
            ConflictError: If the table changed since it was read
        """
        ...

    # Nodes

    @abstractmethod
    async def list_nodes(self, labels: dict[str, str] | None = None) -> list[NodeInfo]:
        """List cluster nodes, optionally restricted to matching labels."""
        ...

    # Volumes

    @abstractmethod
    async def get_or_create_volume(
        self,
        name: str,
        *,
        template_name: str,
        labels: dict[str, str] | None = None,
    ) -> VolumeInfo:
        """Fetch a workspace volume, cloning it from a template if absent.

        Returns:
            Volume information; ``created`` tells whether it was created
        """
        ...

    @abstractmethod
    async def get_volume(self, name: str) -> VolumeInfo | None:
        ...

    @abstractmethod
    async def list_volumes(self, labels: dict[str, str]) -> list[VolumeInfo]:
        ...

    @abstractmethod
    async def delete_volume(self, name: str) -> None:
        """Delete a volume.

        Raises:
            NotFoundError: If the volume does not exist
        """
        ...

    @abstractmethod
    async def create_volume_template(
        self,
        name: str,
        *,
        labels: dict[str, str] | None = None,
        annotations: dict[str, str] | None = None,
    ) -> VolumeInfo:
        """Create the volume a repository version is cloned and built into.

        Raises:
            AlreadyExistsError: If the template exists
        """
        ...

    @abstractmethod
    async def patch_volume_annotation(self, name: str, key: str, value: str) -> None:
        ...

    # Jobs

    @abstractmethod
    async def create_job(self, spec: JobSpec) -> None:
        ...

    # Config maps

    @abstractmethod
    async def get_config_map(self, name: str) -> ConfigMapInfo | None:
        """Read a whole config map, or None if it does not exist."""
        ...

    @abstractmethod
    async def add_config_map_value(self, name: str, key: str, value: str) -> None:
        """Set one key, creating the config map if needed."""
        ...

    @abstractmethod
    async def remove_config_map_value(self, name: str, key: str) -> None:
        """Remove one key.

        Raises:
            NotFoundError: If the config map does not exist
        """
        ...

    async def close(self) -> None:
        """Release client resources."""
        return None
