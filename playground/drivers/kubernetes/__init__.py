"""Kubernetes driver."""

from playground.drivers.kubernetes.kubernetes import KubernetesDriver

__all__ = ["KubernetesDriver"]
