"""Unit tests for the Kubernetes driver's client object translation."""

from __future__ import annotations

from datetime import datetime, timezone

import aiohttp
import pytest
from kubernetes_asyncio.client import (
    V1Container,
    V1ContainerState,
    V1ContainerStateRunning,
    V1ContainerStateTerminated,
    V1ContainerStateWaiting,
    V1ContainerStatus,
    V1HTTPIngressPath,
    V1HTTPIngressRuleValue,
    V1Ingress,
    V1IngressBackend,
    V1IngressRule,
    V1IngressServiceBackend,
    V1IngressSpec,
    V1ObjectMeta,
    V1Pod,
    V1PodSpec,
    V1PodStatus,
    V1ServiceBackendPort,
    V1TypedLocalObjectReference,
)
from kubernetes_asyncio.client.rest import ApiException

from playground.config import ResourceSpec, Settings
from playground.drivers.base import ContainerStatus, ContainerStatusInfo, PodSpec
from playground.drivers.kubernetes import KubernetesDriver
from playground.drivers.kubernetes.kubernetes import _pod_info, _route_table, _translate
from playground.errors import AlreadyExistsError, CommunicationError, ConflictError, NotFoundError
from playground.models.route import RoutePath, RouteRule

STARTED = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


def _pod(state: V1ContainerState | None = None, node_name: str | None = "node-1") -> V1Pod:
    statuses = None
    if state is not None:
        statuses = [
            V1ContainerStatus(
                name="session-container",
                image="example/image:1",
                image_id="",
                ready=False,
                restart_count=0,
                state=state,
            )
        ]
    return V1Pod(
        metadata=V1ObjectMeta(
            name="s1",
            labels={"ownerId": "alice"},
            annotations={"app.playground/session_duration": "600"},
        ),
        spec=V1PodSpec(containers=[V1Container(name="session-container")], node_name=node_name),
        status=V1PodStatus(container_statuses=statuses),
    )


def _service_path(path: str | None, service: str, port: int) -> V1HTTPIngressPath:
    return V1HTTPIngressPath(
        path=path,
        path_type="Prefix",
        backend=V1IngressBackend(
            service=V1IngressServiceBackend(name=service, port=V1ServiceBackendPort(number=port))
        ),
    )


class TestTranslate:
    def test_not_found(self):
        error = _translate(ApiException(status=404, reason="Not Found"), "Pod", "s1")

        assert isinstance(error, NotFoundError)
        assert "s1" in error.message

    def test_conflict_defaults_to_already_exists(self):
        error = _translate(ApiException(status=409, reason="AlreadyExists"), "Pod", "s1")

        assert isinstance(error, AlreadyExistsError)

    def test_conflict_class_can_be_chosen(self):
        error = _translate(
            ApiException(status=409, reason="Conflict"),
            "Ingress",
            "playground",
            on_conflict=ConflictError,
        )

        assert isinstance(error, ConflictError)

    @pytest.mark.parametrize("status", [400, 403, 500, 503])
    def test_other_statuses_are_communication_errors(self, status):
        error = _translate(ApiException(status=status, reason="Nope"), "Pod", "s1")

        assert isinstance(error, CommunicationError)
        assert error.details == {"status": status}

    def test_transport_failure(self):
        error = _translate(aiohttp.ClientConnectionError("refused"), "Pod", "s1")

        assert isinstance(error, CommunicationError)
        assert "refused" in error.message


class TestPodInfo:
    def test_running(self):
        info = _pod_info(_pod(V1ContainerState(running=V1ContainerStateRunning(started_at=STARTED))))

        assert info.name == "s1"
        assert info.labels == {"ownerId": "alice"}
        assert info.annotations == {"app.playground/session_duration": "600"}
        assert info.node_name == "node-1"
        assert info.container == ContainerStatusInfo(
            status=ContainerStatus.RUNNING, started_at=STARTED
        )

    def test_terminated(self):
        state = V1ContainerState(
            terminated=V1ContainerStateTerminated(
                exit_code=1, started_at=STARTED, reason="Error", message="exit 1"
            )
        )

        info = _pod_info(_pod(state))

        assert info.container == ContainerStatusInfo(
            status=ContainerStatus.TERMINATED,
            started_at=STARTED,
            reason="Error",
            message="exit 1",
        )

    def test_waiting(self):
        state = V1ContainerState(
            waiting=V1ContainerStateWaiting(reason="ImagePullBackOff", message="pull failed")
        )

        info = _pod_info(_pod(state))

        assert info.container == ContainerStatusInfo(
            status=ContainerStatus.WAITING, reason="ImagePullBackOff", message="pull failed"
        )

    def test_empty_state_is_waiting(self):
        info = _pod_info(_pod(V1ContainerState()))

        assert info.container == ContainerStatusInfo(status=ContainerStatus.WAITING)

    def test_unscheduled_pod_has_no_container(self):
        info = _pod_info(_pod(node_name=None))

        assert info.container is None
        assert info.node_name is None

    def test_missing_labels_and_annotations(self):
        pod = V1Pod(metadata=V1ObjectMeta(name="s1"))

        info = _pod_info(pod)

        assert info.labels == {}
        assert info.annotations == {}
        assert info.node_name is None


class TestRouteTable:
    def test_rules_and_resource_version(self):
        ingress = V1Ingress(
            metadata=V1ObjectMeta(name="playground", resource_version="42"),
            spec=V1IngressSpec(
                rules=[
                    V1IngressRule(
                        host="s1.playground.test",
                        http=V1HTTPIngressRuleValue(
                            paths=[
                                _service_path("/", "service-s1", 3000),
                                _service_path("/port-8080", "service-s1", 8080),
                            ]
                        ),
                    )
                ]
            ),
        )

        table = _route_table(ingress)

        assert table.resource_version == "42"
        assert table.rules == [
            RouteRule(
                host="s1.playground.test",
                service_name="service-s1",
                paths=[
                    RoutePath(path="/", port=3000),
                    RoutePath(path="/port-8080", port=8080),
                ],
            )
        ]

    def test_resource_backends_are_skipped_and_missing_path_is_root(self):
        resource_path = V1HTTPIngressPath(
            path="/static",
            path_type="Prefix",
            backend=V1IngressBackend(
                resource=V1TypedLocalObjectReference(kind="Bucket", name="assets")
            ),
        )
        ingress = V1Ingress(
            metadata=V1ObjectMeta(name="playground", resource_version="3"),
            spec=V1IngressSpec(
                rules=[
                    V1IngressRule(
                        host="s1.playground.test",
                        http=V1HTTPIngressRuleValue(
                            paths=[resource_path, _service_path(None, "service-s1", 3000)]
                        ),
                    )
                ]
            ),
        )

        (rule,) = _route_table(ingress).rules

        assert rule.service_name == "service-s1"
        assert rule.paths == [RoutePath(path="/", port=3000)]

    def test_ingress_without_rules(self):
        ingress = V1Ingress(
            metadata=V1ObjectMeta(name="playground", resource_version="1"),
            spec=V1IngressSpec(),
        )

        table = _route_table(ingress)

        assert table.rules == []
        assert table.resource_version == "1"


class FailingCoreApi:
    """CoreV1Api stand-in whose pod calls raise ``error``."""

    def __init__(self, error: Exception) -> None:
        self.error = error

    async def read_namespaced_pod(self, name, namespace):
        raise self.error

    async def create_namespaced_pod(self, namespace, body):
        raise self.error


class TestPodCalls:
    @pytest.fixture
    def k8s(self, test_settings: Settings) -> KubernetesDriver:
        return KubernetesDriver(test_settings)

    def _fail_with(self, k8s: KubernetesDriver, monkeypatch, error: Exception) -> None:
        async def core():
            return FailingCoreApi(error)

        monkeypatch.setattr(k8s, "_core", core)

    async def test_get_absent_pod_is_none(self, k8s: KubernetesDriver, monkeypatch):
        self._fail_with(k8s, monkeypatch, ApiException(status=404, reason="Not Found"))

        assert await k8s.get_pod("s1") is None

    async def test_get_pod_server_error(self, k8s: KubernetesDriver, monkeypatch):
        self._fail_with(k8s, monkeypatch, ApiException(status=500, reason="Internal"))

        with pytest.raises(CommunicationError):
            await k8s.get_pod("s1")

    async def test_create_existing_pod(self, k8s: KubernetesDriver, monkeypatch):
        self._fail_with(k8s, monkeypatch, ApiException(status=409, reason="AlreadyExists"))
        spec = PodSpec(name="s1", image="example/image:1", resources=ResourceSpec(), web_port=3000)

        with pytest.raises(AlreadyExistsError):
            await k8s.create_pod(spec)
