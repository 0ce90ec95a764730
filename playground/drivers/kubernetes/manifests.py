"""Manifest builders for the Kubernetes driver.

Bodies are plain dicts; the API client serializes them as-is.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from playground.labels import NODE_POOL_TYPE_LABEL, USER_POOL_TYPE

if TYPE_CHECKING:
    from playground.drivers.base import JobSpec, PodSpec, ServiceSpec
    from playground.models.route import RouteRule

# Workspace mount path inside session containers (fixed)
WORKSPACE_MOUNT_PATH = "/workspace"
WORKSPACE_VOLUME = "workspace"
SESSION_CONTAINER = "session-container"


def _env(env: dict[str, str]) -> list[dict[str, str]]:
    return [{"name": name, "value": value} for name, value in env.items()]


def _metadata(
    name: str,
    labels: dict[str, str] | None = None,
    annotations: dict[str, str] | None = None,
) -> dict[str, Any]:
    metadata: dict[str, Any] = {"name": name}
    if labels:
        metadata["labels"] = dict(labels)
    if annotations:
        metadata["annotations"] = dict(annotations)
    return metadata


def pod_manifest(spec: "PodSpec") -> dict[str, Any]:
    resources = spec.resources
    container: dict[str, Any] = {
        "name": SESSION_CONTAINER,
        "image": spec.image,
        "env": _env(spec.env),
        "ports": [{"name": "web", "containerPort": spec.web_port, "protocol": "TCP"}]
        + [
            {"name": port.name, "containerPort": port.target or port.port, "protocol": port.protocol}
            for port in spec.ports
        ],
        "resources": {
            "requests": {
                "memory": resources.memory_request,
                "ephemeral-storage": resources.ephemeral_storage,
            },
            "limits": {"memory": resources.memory_limit},
        },
        "securityContext": {"allowPrivilegeEscalation": False},
    }
    pod_spec: dict[str, Any] = {
        "containers": [container],
        "nodeSelector": dict(spec.node_selector),
        "tolerations": [
            {
                "key": NODE_POOL_TYPE_LABEL,
                "operator": "Equal",
                "value": USER_POOL_TYPE,
            }
        ],
        "restartPolicy": "Never",
        "terminationGracePeriodSeconds": 0,
        "automountServiceAccountToken": False,
    }
    if spec.volume_name:
        container["volumeMounts"] = [
            {"name": WORKSPACE_VOLUME, "mountPath": WORKSPACE_MOUNT_PATH}
        ]
        pod_spec["volumes"] = [
            {
                "name": WORKSPACE_VOLUME,
                "persistentVolumeClaim": {"claimName": spec.volume_name},
            }
        ]

    return {
        "apiVersion": "v1",
        "kind": "Pod",
        "metadata": _metadata(spec.name, spec.labels, spec.annotations),
        "spec": pod_spec,
    }


def service_manifest(spec: "ServiceSpec") -> dict[str, Any]:
    # The web port is mandatory, extra ports are appended in declaration order
    ports: list[dict[str, Any]] = [
        {"name": "web", "protocol": "TCP", "port": spec.web_port}
    ]
    for port in spec.ports:
        entry: dict[str, Any] = {
            "name": port.name,
            "protocol": port.protocol,
            "port": port.port,
        }
        if port.target is not None:
            entry["targetPort"] = port.target
        ports.append(entry)

    return {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": _metadata(spec.name, spec.labels),
        "spec": {
            "type": "ClusterIP",
            "selector": dict(spec.selector),
            "ports": ports,
        },
    }


def volume_manifest(
    name: str,
    *,
    storage_size: str,
    storage_class: str | None = None,
    template_name: str | None = None,
    labels: dict[str, str] | None = None,
    annotations: dict[str, str] | None = None,
) -> dict[str, Any]:
    """PersistentVolumeClaim, optionally cloned from ``template_name``."""
    spec: dict[str, Any] = {
        "accessModes": ["ReadWriteOnce"],
        "resources": {"requests": {"storage": storage_size}},
    }
    if storage_class:
        spec["storageClassName"] = storage_class
    if template_name:
        spec["dataSource"] = {
            "kind": "PersistentVolumeClaim",
            "name": template_name,
        }
    return {
        "apiVersion": "v1",
        "kind": "PersistentVolumeClaim",
        "metadata": _metadata(name, labels, annotations),
        "spec": spec,
    }


def job_manifest(spec: "JobSpec") -> dict[str, Any]:
    container: dict[str, Any] = {
        "name": "builder",
        "image": spec.image,
        "args": list(spec.args),
        "env": _env(spec.env),
    }
    pod_spec: dict[str, Any] = {
        "containers": [container],
        "restartPolicy": "Never",
    }
    if spec.volume_name:
        container["volumeMounts"] = [
            {"name": WORKSPACE_VOLUME, "mountPath": WORKSPACE_MOUNT_PATH}
        ]
        pod_spec["volumes"] = [
            {
                "name": WORKSPACE_VOLUME,
                "persistentVolumeClaim": {"claimName": spec.volume_name},
            }
        ]

    return {
        "apiVersion": "batch/v1",
        "kind": "Job",
        "metadata": _metadata(spec.name, spec.labels),
        "spec": {
            "backoffLimit": spec.backoff_limit,
            "template": {
                "metadata": _metadata(spec.name, spec.labels),
                "spec": pod_spec,
            },
        },
    }


def ingress_rule(rule: "RouteRule") -> dict[str, Any]:
    return {
        "host": rule.host,
        "http": {
            "paths": [
                {
                    "path": path.path,
                    "pathType": "Prefix",
                    "backend": {
                        "service": {
                            "name": rule.service_name,
                            "port": {"number": path.port},
                        }
                    },
                }
                for path in rule.paths
            ]
        },
    }
