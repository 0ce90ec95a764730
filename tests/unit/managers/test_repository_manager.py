"""Unit tests for RepositoryManager."""

from __future__ import annotations

import json

import pytest

from playground.control_plane import ControlPlane
from playground.errors import AlreadyExistsError, InvalidConfigurationError, NotFoundError
from playground.managers.repository import RepositoryManager
from playground.models.repository import (
    BuildingState,
    CloningState,
    FailedState,
    ReadyState,
    Repository,
    RuntimeDescriptor,
)
from tests.fakes import FakeDriver

STATE_ANNOTATION = "app.playground/repository_version_state"


@pytest.fixture
async def repositories(control_plane: ControlPlane) -> RepositoryManager:
    await control_plane.store.repositories.create(
        Repository(id="repo", url="https://github.com/example/repo")
    )
    return control_plane.repositories


class TestCreateVersion:
    async def test_creates_template_in_cloning_state(
        self, repositories: RepositoryManager, driver: FakeDriver
    ):
        version = await repositories.create_version("repo", "v1")

        assert version.state == CloningState(progress=0)
        template = driver.volumes["workspace-template-repo-v1"]
        assert template.labels["component"] == "workspace-template"
        assert template.labels["repositoryId"] == "repo"
        assert template.labels["repositoryVersionId"] == "v1"
        assert json.loads(template.annotations[STATE_ANNOTATION]) == {
            "type": "cloning",
            "progress": 0,
        }

    async def test_submits_builder_job(
        self, repositories: RepositoryManager, driver: FakeDriver
    ):
        await repositories.create_version("repo", "v1")

        (job,) = driver.jobs
        assert job.name == "builder-repo-v1"
        assert job.args == ["https://github.com/example/repo", "v1"]
        assert job.env["REPOSITORY_URL"] == "https://github.com/example/repo"
        assert job.volume_name == "workspace-template-repo-v1"

    async def test_unknown_repository(self, control_plane: ControlPlane, driver: FakeDriver):
        with pytest.raises(NotFoundError):
            await control_plane.repositories.create_version("nope", "v1")

        assert driver.jobs == []

    async def test_duplicate_version(self, repositories: RepositoryManager):
        await repositories.create_version("repo", "v1")

        with pytest.raises(AlreadyExistsError):
            await repositories.create_version("repo", "v1")


class TestTransitions:
    @pytest.mark.parametrize(
        "steps",
        [
            [BuildingState(progress=10), BuildingState(progress=90)],
            [ReadyState(runtime=RuntimeDescriptor(image="img"))],
            [FailedState(reason="clone failed")],
            [CloningState(progress=50), BuildingState(), FailedState(reason="build failed")],
        ],
    )
    async def test_legal_paths(self, repositories: RepositoryManager, steps):
        await repositories.create_version("repo", "v1")

        for state in steps:
            await repositories.update_repository_version_state("repo", "v1", state)

        version = await repositories.get_version("repo", "v1")
        assert version.state == steps[-1]

    @pytest.mark.parametrize(
        ("reached", "illegal"),
        [
            ([BuildingState()], CloningState()),
            ([FailedState(reason="x")], BuildingState()),
            ([ReadyState(runtime=RuntimeDescriptor(image="img"))], FailedState(reason="x")),
        ],
    )
    async def test_illegal_transitions_are_rejected(
        self, repositories: RepositoryManager, reached, illegal
    ):
        await repositories.create_version("repo", "v1")
        for state in reached:
            await repositories.update_repository_version_state("repo", "v1", state)

        with pytest.raises(InvalidConfigurationError):
            await repositories.update_repository_version_state("repo", "v1", illegal)

        version = await repositories.get_version("repo", "v1")
        assert version.state == reached[-1]

    async def test_unknown_version(self, repositories: RepositoryManager):
        with pytest.raises(NotFoundError):
            await repositories.update_repository_version_state("repo", "v9", BuildingState())


class TestCompleteBuild:
    async def test_valid_devcontainer_makes_version_ready(
        self, repositories: RepositoryManager
    ):
        await repositories.create_version("repo", "v1")

        version = await repositories.complete_build(
            "repo",
            "v1",
            '{"image": "node:20", "forwardPorts": [8080]}',
        )

        assert isinstance(version.state, ReadyState)
        assert version.state.runtime.image == "node:20"
        assert [port.name for port in version.state.runtime.ports] == ["port-8080"]

    async def test_invalid_devcontainer_fails_version(self, repositories: RepositoryManager):
        await repositories.create_version("repo", "v1")

        version = await repositories.complete_build("repo", "v1", '{"forwardPorts": []}')

        assert isinstance(version.state, FailedState)
        stored = await repositories.get_version("repo", "v1")
        assert isinstance(stored.state, FailedState)


class TestQueries:
    async def test_get_absent_version(self, repositories: RepositoryManager):
        assert await repositories.get_version("repo", "v1") is None

    async def test_unreadable_annotation_raises(
        self, repositories: RepositoryManager, driver: FakeDriver
    ):
        await repositories.create_version("repo", "v1")
        driver.volumes["workspace-template-repo-v1"].annotations[STATE_ANNOTATION] = "{oops"

        with pytest.raises(InvalidConfigurationError):
            await repositories.get_version("repo", "v1")

    async def test_list_versions_skips_unreadable_templates(
        self, repositories: RepositoryManager, driver: FakeDriver
    ):
        await repositories.create_version("repo", "v1")
        await repositories.create_version("repo", "v2")
        driver.volumes["workspace-template-repo-v2"].annotations[STATE_ANNOTATION] = "[]"

        versions = await repositories.list_versions("repo")

        assert [version.id for version in versions] == ["v1"]

    async def test_delete_version(self, repositories: RepositoryManager, driver: FakeDriver):
        await repositories.create_version("repo", "v1")

        await repositories.delete_repository_version("repo", "v1")

        assert "workspace-template-repo-v1" not in driver.volumes
        with pytest.raises(NotFoundError):
            await repositories.delete_repository_version("repo", "v1")
