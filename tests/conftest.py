"""Test configuration and fixtures."""

import pytest

from playground.config import Settings
from playground.control_plane import ControlPlane
from playground.metrics import Metrics
from playground.models.repository import ReadyState, Repository, RuntimeDescriptor
from playground.models.resources import User
from tests.fakes import FakeDriver


@pytest.fixture
def test_settings() -> Settings:
    """Settings pointing at a fake cluster."""
    return Settings(
        driver={"type": "k8s", "k8s": {"namespace": "test", "host": "playground.test"}},
        session={"duration": 10, "max_duration": 60, "max_sessions_per_node": 1},
        reaper={"interval_seconds": 0.01},
    )


@pytest.fixture
def driver() -> FakeDriver:
    return FakeDriver()


@pytest.fixture
def metrics() -> Metrics:
    return Metrics()


@pytest.fixture
def control_plane(test_settings: Settings, driver: FakeDriver, metrics: Metrics) -> ControlPlane:
    return ControlPlane(test_settings, driver=driver, metrics=metrics)


@pytest.fixture
def user() -> User:
    return User(id="alice")


@pytest.fixture
async def ready_repository(control_plane: ControlPlane, driver: FakeDriver) -> Repository:
    """Repository ``repo`` whose current version ``v1`` is Ready."""
    repository = Repository(id="repo", url="https://github.com/example/repo", current_version="v1")
    await control_plane.store.repositories.create(repository)

    await control_plane.repositories.create_version("repo", "v1")
    await control_plane.repositories.update_repository_version_state(
        "repo",
        "v1",
        ReadyState(runtime=RuntimeDescriptor(image="example/image:1", env={"LANG": "C"})),
    )
    driver.calls.clear()
    return repository
