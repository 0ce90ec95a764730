"""Unit tests for RouteManager."""

from __future__ import annotations

from datetime import timedelta

import pytest

from playground.errors import ConflictError
from playground.managers.route import RouteManager, session_paths
from playground.models.repository import Port
from playground.models.route import RoutePath, RouteRule
from playground.models.pool import Node
from playground.models.session import Running, Session
from playground.utils.datetime import utcnow
from tests.fakes import FakeDriver


@pytest.fixture
def routes(driver: FakeDriver) -> RouteManager:
    return RouteManager(driver, host="playground.test", web_port=3000, max_retries=3)


class TestSessionPaths:
    def test_web_port_first_then_declared_ports(self):
        paths = session_paths(
            3000,
            [Port(name="port-8080", port=8080), Port(name="port-9000", port=9000)],
        )

        assert paths == [
            RoutePath(path="/", port=3000),
            RoutePath(path="/port-8080", port=8080),
            RoutePath(path="/port-9000", port=9000),
        ]

    def test_declared_web_port_is_served_only_at_root(self):
        paths = session_paths(
            3000,
            [Port(name="port-3000", port=3000), Port(name="port-8080", port=8080)],
        )

        assert paths == [
            RoutePath(path="/", port=3000),
            RoutePath(path="/port-8080", port=8080),
        ]


class TestAddRoute:
    async def test_add_session_route(self, routes: RouteManager, driver: FakeDriver):
        host = await routes.add_session_route("s1", [])

        assert host == "s1.playground.test"
        assert driver.rules == [
            RouteRule(
                host="s1.playground.test",
                service_name="service-s1",
                paths=[RoutePath(path="/", port=3000)],
            )
        ]

    async def test_adding_existing_host_replaces_rule(
        self, routes: RouteManager, driver: FakeDriver
    ):
        await routes.add_route("a.test", "svc-old", [RoutePath("/", 1)])
        await routes.add_route("a.test", "svc-new", [RoutePath("/", 2)])

        assert len(driver.rules) == 1
        assert driver.rules[0].service_name == "svc-new"

    async def test_retries_on_conflict(self, routes: RouteManager, driver: FakeDriver):
        driver.route_conflicts = 2

        await routes.add_route("a.test", "svc", [RoutePath("/", 1)])

        assert driver.hosts() == ["a.test"]
        assert len(driver.called_with("replace_route_table")) == 3

    async def test_concurrent_writer_rule_is_preserved(
        self, routes: RouteManager, driver: FakeDriver
    ):
        await routes.add_route("a.test", "svc-a", [RoutePath("/", 1)])
        original_replace = driver.replace_route_table
        injected = False

        async def racing_replace(table):
            nonlocal injected
            if not injected:
                injected = True
                # Another writer lands between our read and our write
                driver.rules.append(RouteRule(host="b.test", service_name="svc-b"))
                driver.ingress_version += 1
            return await original_replace(table)

        driver.replace_route_table = racing_replace

        await routes.add_route("c.test", "svc-c", [RoutePath("/", 1)])

        assert driver.hosts() == ["a.test", "b.test", "c.test"]

    async def test_gives_up_after_max_retries(self, routes: RouteManager, driver: FakeDriver):
        driver.route_conflicts = 10

        with pytest.raises(ConflictError):
            await routes.add_route("a.test", "svc", [RoutePath("/", 1)])

        assert len(driver.called_with("replace_route_table")) == 3
        assert driver.rules == []


class TestRemoveRoute:
    async def test_remove_existing(self, routes: RouteManager, driver: FakeDriver):
        await routes.add_session_route("s1", [])
        await routes.add_session_route("s2", [])

        removed = await routes.remove_session_route("s1")

        assert removed is True
        assert driver.hosts() == ["s2.playground.test"]

    async def test_remove_absent_performs_no_write(
        self, routes: RouteManager, driver: FakeDriver
    ):
        await routes.add_session_route("s1", [])
        writes = driver.route_writes
        version = driver.ingress_version

        removed = await routes.remove_route("missing.playground.test")

        assert removed is False
        assert driver.route_writes == writes
        assert driver.ingress_version == version
        assert driver.hosts() == ["s1.playground.test"]


class TestRestore:
    async def test_restore_adds_only_missing_rules(
        self, routes: RouteManager, driver: FakeDriver
    ):
        await routes.add_session_route("s1", [])

        def running(session_id: str) -> Session:
            return Session(
                id=session_id,
                owner_id="alice",
                repository_id="repo",
                repository_version_id="v1",
                pool_id="default",
                max_duration=timedelta(minutes=10),
                state=Running(start_time=utcnow(), node=Node(hostname="node-1")),
                ports=[Port(name="port-8080", port=8080)],
            )

        restored = await routes.restore([running("s1"), running("s2")])

        assert restored == 1
        assert driver.hosts() == ["s1.playground.test", "s2.playground.test"]
        assert driver.rules[1].paths == [
            RoutePath(path="/", port=3000),
            RoutePath(path="/port-8080", port=8080),
        ]

    async def test_restore_nothing_missing_no_write(
        self, routes: RouteManager, driver: FakeDriver
    ):
        writes = driver.route_writes

        assert await routes.restore([]) == 0
        assert driver.route_writes == writes
