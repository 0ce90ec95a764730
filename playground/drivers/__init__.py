"""Driver layer - cluster abstraction."""

from playground.drivers.base import (
    ConfigMapInfo,
    ContainerStatus,
    ContainerStatusInfo,
    Driver,
    JobSpec,
    NodeInfo,
    PodInfo,
    PodSpec,
    ServiceSpec,
    VolumeInfo,
)
from playground.drivers.kubernetes import KubernetesDriver

__all__ = [
    "ConfigMapInfo",
    "ContainerStatus",
    "ContainerStatusInfo",
    "Driver",
    "JobSpec",
    "KubernetesDriver",
    "NodeInfo",
    "PodInfo",
    "PodSpec",
    "ServiceSpec",
    "VolumeInfo",
]
