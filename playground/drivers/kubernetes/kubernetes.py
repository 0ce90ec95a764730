"""Kubernetes driver implementation using kubernetes_asyncio.

Supports:
- Running the control plane inside the cluster (service account)
- Running it outside with a kubeconfig file
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import aiohttp
import structlog
from kubernetes_asyncio import client, config
from kubernetes_asyncio.client.rest import ApiException
from kubernetes_asyncio.config import ConfigException

from playground.config import get_settings
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
from playground.drivers.kubernetes.manifests import (
    ingress_rule,
    job_manifest,
    pod_manifest,
    service_manifest,
    volume_manifest,
)
from playground.errors import (
    AlreadyExistsError,
    CommunicationError,
    ConflictError,
    NotFoundError,
    PlaygroundError,
)
from playground.models.route import RoutePath, RouteRule, RouteTable

if TYPE_CHECKING:
    from playground.config import Settings

logger = structlog.get_logger()


def _selector(labels: dict[str, str] | None) -> str | None:
    if not labels:
        return None
    return ",".join(f"{key}={value}" for key, value in sorted(labels.items()))


def _translate(
    exc: Exception,
    kind: str,
    name: str,
    *,
    on_conflict: type[PlaygroundError] = AlreadyExistsError,
) -> PlaygroundError:
    """Map a client failure onto the error taxonomy."""
    if isinstance(exc, ApiException):
        if exc.status == 404:
            return NotFoundError(f"{kind} not found: {name}")
        if exc.status == 409:
            return on_conflict(f"{kind} {name}: {exc.reason}")
        return CommunicationError(
            f"{kind} {name}: {exc.status} {exc.reason}",
            details={"status": exc.status},
        )
    return CommunicationError(f"{kind} {name}: {exc}")


def _pod_info(pod: Any) -> PodInfo:
    metadata = pod.metadata
    container: ContainerStatusInfo | None = None

    statuses = pod.status.container_statuses if pod.status else None
    if statuses:
        state = statuses[0].state
        if state is not None and state.running is not None:
            container = ContainerStatusInfo(
                status=ContainerStatus.RUNNING,
                started_at=state.running.started_at,
            )
        elif state is not None and state.terminated is not None:
            container = ContainerStatusInfo(
                status=ContainerStatus.TERMINATED,
                started_at=state.terminated.started_at,
                reason=state.terminated.reason,
                message=state.terminated.message,
            )
        elif state is not None and state.waiting is not None:
            container = ContainerStatusInfo(
                status=ContainerStatus.WAITING,
                reason=state.waiting.reason,
                message=state.waiting.message,
            )
        else:
            container = ContainerStatusInfo(status=ContainerStatus.WAITING)

    return PodInfo(
        name=metadata.name,
        labels=dict(metadata.labels or {}),
        annotations=dict(metadata.annotations or {}),
        node_name=pod.spec.node_name if pod.spec else None,
        container=container,
    )


def _volume_info(claim: Any, *, created: bool = False) -> VolumeInfo:
    return VolumeInfo(
        name=claim.metadata.name,
        labels=dict(claim.metadata.labels or {}),
        annotations=dict(claim.metadata.annotations or {}),
        created=created,
    )


def _route_table(ingress: Any) -> RouteTable:
    rules: list[RouteRule] = []
    for rule in (ingress.spec.rules if ingress.spec else None) or []:
        http_paths = (rule.http.paths if rule.http else None) or []
        service_name = ""
        paths: list[RoutePath] = []
        for http_path in http_paths:
            backend = http_path.backend.service
            if backend is None:
                continue
            service_name = service_name or backend.name
            paths.append(RoutePath(path=http_path.path or "/", port=backend.port.number))
        rules.append(RouteRule(host=rule.host, service_name=service_name, paths=paths))
    return RouteTable(rules=rules, resource_version=ingress.metadata.resource_version)


class KubernetesDriver(Driver):
    """Kubernetes driver implementation using kubernetes_asyncio."""

    def __init__(self, settings: "Settings | None" = None) -> None:
        settings = settings or get_settings()
        k8s = settings.driver.k8s
        self._namespace = k8s.namespace
        self._kubeconfig = k8s.kubeconfig
        self._ingress_name = k8s.ingress_name
        self._volume_config = settings.volume
        self._log = logger.bind(driver="k8s", namespace=self._namespace)
        self._api: client.ApiClient | None = None

    async def _get_api(self) -> client.ApiClient:
        """Get or create the API client."""
        if self._api is None:
            if self._kubeconfig:
                await config.load_kube_config(config_file=self._kubeconfig)
            else:
                try:
                    config.load_incluster_config()
                except ConfigException:
                    await config.load_kube_config()
            self._api = client.ApiClient()
        return self._api

    async def _core(self) -> client.CoreV1Api:
        return client.CoreV1Api(await self._get_api())

    async def close(self) -> None:
        """Close the API client."""
        if self._api is not None:
            await self._api.close()
            self._api = None

    # Pods

    async def create_pod(self, spec: PodSpec) -> PodInfo:
        core = await self._core()
        self._log.info("k8s.create_pod", name=spec.name, image=spec.image)
        try:
            pod = await core.create_namespaced_pod(self._namespace, pod_manifest(spec))
        except (ApiException, aiohttp.ClientError) as e:
            raise _translate(e, "Pod", spec.name) from e
        return _pod_info(pod)

    async def get_pod(self, name: str) -> PodInfo | None:
        core = await self._core()
        try:
            pod = await core.read_namespaced_pod(name, self._namespace)
        except ApiException as e:
            if e.status == 404:
                return None
            raise _translate(e, "Pod", name) from e
        except aiohttp.ClientError as e:
            raise _translate(e, "Pod", name) from e
        return _pod_info(pod)

    async def list_pods(self, labels: dict[str, str]) -> list[PodInfo]:
        core = await self._core()
        try:
            pods = await core.list_namespaced_pod(
                self._namespace, label_selector=_selector(labels)
            )
        except (ApiException, aiohttp.ClientError) as e:
            raise _translate(e, "Pods", _selector(labels) or "*") from e
        return [_pod_info(pod) for pod in pods.items]

    async def delete_pod(self, name: str) -> None:
        core = await self._core()
        self._log.info("k8s.delete_pod", name=name)
        try:
            await core.delete_namespaced_pod(name, self._namespace, grace_period_seconds=0)
        except (ApiException, aiohttp.ClientError) as e:
            raise _translate(e, "Pod", name) from e

    async def patch_pod_annotation(self, name: str, key: str, value: str) -> None:
        core = await self._core()
        body = {"metadata": {"annotations": {key: value}}}
        try:
            await core.patch_namespaced_pod(name, self._namespace, body)
        except (ApiException, aiohttp.ClientError) as e:
            raise _translate(e, "Pod", name) from e

    # Services

    async def create_service(self, spec: ServiceSpec) -> None:
        core = await self._core()
        self._log.info("k8s.create_service", name=spec.name)
        try:
            await core.create_namespaced_service(self._namespace, service_manifest(spec))
        except (ApiException, aiohttp.ClientError) as e:
            raise _translate(e, "Service", spec.name) from e

    async def delete_service(self, name: str) -> None:
        core = await self._core()
        self._log.info("k8s.delete_service", name=name)
        try:
            await core.delete_namespaced_service(name, self._namespace)
        except (ApiException, aiohttp.ClientError) as e:
            raise _translate(e, "Service", name) from e

    # Ingress

    async def _read_ingress(self) -> Any:
        networking = client.NetworkingV1Api(await self._get_api())
        try:
            return await networking.read_namespaced_ingress(
                self._ingress_name, self._namespace
            )
        except (ApiException, aiohttp.ClientError) as e:
            raise _translate(e, "Ingress", self._ingress_name) from e

    async def get_route_table(self) -> RouteTable:
        return _route_table(await self._read_ingress())

    async def replace_route_table(self, table: RouteTable) -> RouteTable:
        api = await self._get_api()
        networking = client.NetworkingV1Api(api)
        current = await self._read_ingress()

        body = api.sanitize_for_serialization(current)
        body.setdefault("spec", {})["rules"] = [ingress_rule(rule) for rule in table.rules]
        # The stale token makes the API server reject concurrent writes
        body["metadata"]["resourceVersion"] = table.resource_version

        try:
            written = await networking.replace_namespaced_ingress(
                self._ingress_name, self._namespace, body
            )
        except (ApiException, aiohttp.ClientError) as e:
            raise _translate(
                e, "Ingress", self._ingress_name, on_conflict=ConflictError
            ) from e
        return _route_table(written)

    # Nodes

    async def list_nodes(self, labels: dict[str, str] | None = None) -> list[NodeInfo]:
        core = await self._core()
        try:
            nodes = await core.list_node(label_selector=_selector(labels))
        except (ApiException, aiohttp.ClientError) as e:
            raise _translate(e, "Nodes", _selector(labels) or "*") from e
        return [
            NodeInfo(name=node.metadata.name, labels=dict(node.metadata.labels or {}))
            for node in nodes.items
        ]

    # Volumes

    async def get_or_create_volume(
        self,
        name: str,
        *,
        template_name: str,
        labels: dict[str, str] | None = None,
    ) -> VolumeInfo:
        existing = await self.get_volume(name)
        if existing is not None:
            return existing

        core = await self._core()
        body = volume_manifest(
            name,
            storage_size=self._volume_config.storage_size,
            storage_class=self._volume_config.storage_class,
            template_name=template_name,
            labels=labels,
        )
        self._log.info("k8s.create_volume", name=name, template=template_name)
        try:
            claim = await core.create_namespaced_persistent_volume_claim(
                self._namespace, body
            )
        except (ApiException, aiohttp.ClientError) as e:
            raise _translate(e, "PersistentVolumeClaim", name) from e
        return _volume_info(claim, created=True)

    async def get_volume(self, name: str) -> VolumeInfo | None:
        core = await self._core()
        try:
            claim = await core.read_namespaced_persistent_volume_claim(name, self._namespace)
        except ApiException as e:
            if e.status == 404:
                return None
            raise _translate(e, "PersistentVolumeClaim", name) from e
        except aiohttp.ClientError as e:
            raise _translate(e, "PersistentVolumeClaim", name) from e
        return _volume_info(claim)

    async def list_volumes(self, labels: dict[str, str]) -> list[VolumeInfo]:
        core = await self._core()
        try:
            claims = await core.list_namespaced_persistent_volume_claim(
                self._namespace, label_selector=_selector(labels)
            )
        except (ApiException, aiohttp.ClientError) as e:
            raise _translate(e, "PersistentVolumeClaims", _selector(labels) or "*") from e
        return [_volume_info(claim) for claim in claims.items]

    async def delete_volume(self, name: str) -> None:
        core = await self._core()
        self._log.info("k8s.delete_volume", name=name)
        try:
            await core.delete_namespaced_persistent_volume_claim(name, self._namespace)
        except (ApiException, aiohttp.ClientError) as e:
            raise _translate(e, "PersistentVolumeClaim", name) from e

    async def create_volume_template(
        self,
        name: str,
        *,
        labels: dict[str, str] | None = None,
        annotations: dict[str, str] | None = None,
    ) -> VolumeInfo:
        core = await self._core()
        body = volume_manifest(
            name,
            storage_size=self._volume_config.storage_size,
            storage_class=self._volume_config.storage_class,
            labels=labels,
            annotations=annotations,
        )
        self._log.info("k8s.create_volume_template", name=name)
        try:
            claim = await core.create_namespaced_persistent_volume_claim(
                self._namespace, body
            )
        except (ApiException, aiohttp.ClientError) as e:
            raise _translate(e, "PersistentVolumeClaim", name) from e
        return _volume_info(claim, created=True)

    async def patch_volume_annotation(self, name: str, key: str, value: str) -> None:
        core = await self._core()
        body = {"metadata": {"annotations": {key: value}}}
        try:
            await core.patch_namespaced_persistent_volume_claim(name, self._namespace, body)
        except (ApiException, aiohttp.ClientError) as e:
            raise _translate(e, "PersistentVolumeClaim", name) from e

    # Jobs

    async def create_job(self, spec: JobSpec) -> None:
        batch = client.BatchV1Api(await self._get_api())
        self._log.info("k8s.create_job", name=spec.name, image=spec.image)
        try:
            await batch.create_namespaced_job(self._namespace, job_manifest(spec))
        except (ApiException, aiohttp.ClientError) as e:
            raise _translate(e, "Job", spec.name) from e

    # Config maps

    async def get_config_map(self, name: str) -> ConfigMapInfo | None:
        core = await self._core()
        try:
            config_map = await core.read_namespaced_config_map(name, self._namespace)
        except ApiException as e:
            if e.status == 404:
                return None
            raise _translate(e, "ConfigMap", name) from e
        except aiohttp.ClientError as e:
            raise _translate(e, "ConfigMap", name) from e
        return ConfigMapInfo(
            name=config_map.metadata.name,
            data=dict(config_map.data or {}),
            resource_version=config_map.metadata.resource_version,
        )

    async def add_config_map_value(self, name: str, key: str, value: str) -> None:
        core = await self._core()
        try:
            await core.patch_namespaced_config_map(
                name, self._namespace, {"data": {key: value}}
            )
            return
        except ApiException as e:
            if e.status != 404:
                raise _translate(e, "ConfigMap", name) from e
        except aiohttp.ClientError as e:
            raise _translate(e, "ConfigMap", name) from e

        self._log.info("k8s.create_config_map", name=name)
        body = {
            "apiVersion": "v1",
            "kind": "ConfigMap",
            "metadata": {"name": name},
            "data": {key: value},
        }
        try:
            await core.create_namespaced_config_map(self._namespace, body)
        except (ApiException, aiohttp.ClientError) as e:
            raise _translate(e, "ConfigMap", name, on_conflict=ConflictError) from e

    async def remove_config_map_value(self, name: str, key: str) -> None:
        core = await self._core()
        # A null value removes the key
        try:
            await core.patch_namespaced_config_map(
                name, self._namespace, {"data": {key: None}}
            )
        except (ApiException, aiohttp.ClientError) as e:
            raise _translate(e, "ConfigMap", name) from e
