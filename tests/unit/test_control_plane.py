"""Unit tests for ControlPlane lifecycle."""

from __future__ import annotations

from datetime import timedelta

import pytest

from playground.config import Settings
from playground.control_plane import ControlPlane
from playground.models.resources import User
from playground.models.session import SessionConfiguration
from playground.utils.datetime import utcnow
from tests.fakes import FakeDriver


@pytest.mark.usefixtures("ready_repository")
class TestControlPlaneLifecycle:
    async def test_start_restores_lost_routes(
        self, control_plane: ControlPlane, driver: FakeDriver
    ):
        """Running sessions missing from the ingress get their rule back."""
        driver.add_node("node-1", pool="default")
        await control_plane.sessions.create_session(
            User(id="alice"), "s1", SessionConfiguration(repository_id="repo")
        )
        driver.set_running("s1", utcnow())
        driver.rules.clear()

        await control_plane.start()
        try:
            assert driver.hosts() == ["s1.playground.test"]
            assert control_plane.reaper.is_running
        finally:
            await control_plane.stop()

        assert not control_plane.reaper.is_running
        assert driver.closed

    async def test_reaper_disabled(self, test_settings: Settings, driver: FakeDriver):
        settings = test_settings.model_copy(
            update={"reaper": test_settings.reaper.model_copy(update={"enabled": False})}
        )
        control_plane = ControlPlane(settings, driver=driver)

        await control_plane.start()

        assert not control_plane.reaper.is_running
        await control_plane.stop()

    async def test_run_on_startup_reaps_before_loop(
        self, test_settings: Settings, driver: FakeDriver, control_plane: ControlPlane
    ):
        driver.add_node("node-1", pool="default")
        await control_plane.sessions.create_session(
            User(id="alice"), "s1", SessionConfiguration(repository_id="repo")
        )
        driver.set_running("s1", utcnow() - timedelta(hours=1))

        settings = test_settings.model_copy(
            update={
                "reaper": test_settings.reaper.model_copy(
                    update={"run_on_startup": True, "interval_seconds": 60}
                )
            }
        )
        restarted = ControlPlane(settings, driver=driver)

        await restarted.start()
        try:
            assert driver.pods == {}
        finally:
            await restarted.stop()
