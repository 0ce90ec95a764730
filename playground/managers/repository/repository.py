"""RepositoryManager - repository version clone/build state machine.

Each repository version owns a volume template named
``workspace-template-<repository>-<version>``. A one-shot builder job clones
and builds the repository into it and reports progress by rewriting the
JSON state annotation of the template. Session volumes are cloned from the
template once the version is Ready.

States:
    Cloning -> Building -> Ready | Failed
    Cloning -> Ready (nothing to build)
    Cloning -> Failed
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from pydantic import ValidationError

from playground.config import get_settings
from playground.drivers.base import Driver, JobSpec, VolumeInfo
from playground.errors import InvalidConfigurationError, NotFoundError
from playground.labels import (
    BUILDER_COMPONENT,
    REPOSITORY_LABEL,
    REPOSITORY_VERSION_LABEL,
    REPOSITORY_VERSION_STATE_ANNOTATION,
    TEMPLATE_COMPONENT,
    app_labels,
)
from playground.models.repository import (
    ALLOWED_TRANSITIONS,
    CloningState,
    FailedState,
    ReadyState,
    RepositoryVersion,
    RepositoryVersionState,
    repository_version_state_adapter,
)
from playground.utils.devcontainer import parse_devcontainer

if TYPE_CHECKING:
    from playground.config import Settings
    from playground.managers.resource import ResourceStore

logger = structlog.get_logger()


def template_name(repository_id: str, version_id: str) -> str:
    return f"workspace-template-{repository_id}-{version_id}"


def builder_job_name(repository_id: str, version_id: str) -> str:
    return f"builder-{repository_id}-{version_id}"


def _state_annotation(state: RepositoryVersionState) -> str:
    return state.model_dump_json()


class RepositoryManager:
    """Manages repository versions and their volume templates."""

    def __init__(
        self,
        driver: Driver,
        store: "ResourceStore",
        settings: "Settings | None" = None,
    ) -> None:
        self._driver = driver
        self._store = store
        self._settings = settings or get_settings()
        self._log = logger.bind(manager="repository")

    def _to_version(self, volume: VolumeInfo) -> RepositoryVersion:
        raw = volume.annotations.get(REPOSITORY_VERSION_STATE_ANNOTATION)
        if raw is None:
            raise InvalidConfigurationError(
                f"Volume template {volume.name} has no state annotation"
            )
        try:
            state = repository_version_state_adapter.validate_json(raw)
        except ValidationError as exc:
            raise InvalidConfigurationError(
                f"Volume template {volume.name} has an invalid state annotation",
                details={"error": str(exc)},
            ) from exc
        return RepositoryVersion(
            id=volume.labels.get(REPOSITORY_VERSION_LABEL, ""),
            repository_id=volume.labels.get(REPOSITORY_LABEL, ""),
            state=state,
        )

    async def get_version(self, repository_id: str, version_id: str) -> RepositoryVersion | None:
        volume = await self._driver.get_volume(template_name(repository_id, version_id))
        if volume is None:
            return None
        return self._to_version(volume)

    async def list_versions(self, repository_id: str) -> list[RepositoryVersion]:
        """List versions of a repository, skipping unreadable templates."""
        volumes = await self._driver.list_volumes(
            {**app_labels(TEMPLATE_COMPONENT), REPOSITORY_LABEL: repository_id}
        )
        versions: list[RepositoryVersion] = []
        for volume in volumes:
            try:
                versions.append(self._to_version(volume))
            except InvalidConfigurationError as exc:
                self._log.warning(
                    "repository_version.parse_failed",
                    volume=volume.name,
                    error=exc.message,
                )
        return versions

    async def create_version(self, repository_id: str, version_id: str) -> RepositoryVersion:
        """Create the volume template and submit the builder job.

        Raises:
            NotFoundError: If the repository does not exist
            AlreadyExistsError: If the version already exists
        """
        repository = await self._store.repositories.get(repository_id)
        if repository is None:
            raise NotFoundError(f"Repository not found: {repository_id}")

        labels = {
            **app_labels(TEMPLATE_COMPONENT),
            REPOSITORY_LABEL: repository_id,
            REPOSITORY_VERSION_LABEL: version_id,
        }
        state = CloningState(progress=0)
        name = template_name(repository_id, version_id)

        self._log.info(
            "repository_version.create",
            repository_id=repository_id,
            version_id=version_id,
        )
        await self._driver.create_volume_template(
            name,
            labels=labels,
            annotations={REPOSITORY_VERSION_STATE_ANNOTATION: _state_annotation(state)},
        )

        builder = self._settings.builder
        await self._driver.create_job(
            JobSpec(
                name=builder_job_name(repository_id, version_id),
                image=builder.image,
                labels={
                    **app_labels(BUILDER_COMPONENT),
                    REPOSITORY_LABEL: repository_id,
                    REPOSITORY_VERSION_LABEL: version_id,
                },
                env={
                    "REPOSITORY_ID": repository_id,
                    "REPOSITORY_VERSION_ID": version_id,
                    "REPOSITORY_URL": repository.url,
                },
                args=[repository.url, version_id],
                volume_name=name,
                backoff_limit=builder.backoff_limit,
            )
        )
        return RepositoryVersion(id=version_id, repository_id=repository_id, state=state)

    async def update_repository_version_state(
        self,
        repository_id: str,
        version_id: str,
        state: RepositoryVersionState,
    ) -> RepositoryVersion:
        """Record a state transition reported by the builder job.

        Raises:
            NotFoundError: If the version does not exist
            InvalidConfigurationError: If the transition is not allowed
        """
        current = await self.get_version(repository_id, version_id)
        if current is None:
            raise NotFoundError(
                f"Repository version not found: {repository_id}:{version_id}"
            )

        if state.type not in ALLOWED_TRANSITIONS[current.state.type]:
            raise InvalidConfigurationError(
                f"Illegal repository version transition {current.state.type} -> {state.type}",
                details={
                    "repository_id": repository_id,
                    "repository_version_id": version_id,
                    "from": current.state.type,
                    "to": state.type,
                },
            )

        self._log.info(
            "repository_version.transition",
            repository_id=repository_id,
            version_id=version_id,
            from_state=current.state.type,
            to_state=state.type,
        )
        await self._driver.patch_volume_annotation(
            template_name(repository_id, version_id),
            REPOSITORY_VERSION_STATE_ANNOTATION,
            _state_annotation(state),
        )
        return RepositoryVersion(id=version_id, repository_id=repository_id, state=state)

    async def complete_build(
        self,
        repository_id: str,
        version_id: str,
        devcontainer: str,
    ) -> RepositoryVersion:
        """Move a version to Ready from its devcontainer.json content.

        An unusable devcontainer moves the version to Failed instead.
        """
        try:
            runtime = parse_devcontainer(devcontainer)
        except InvalidConfigurationError as exc:
            self._log.warning(
                "repository_version.devcontainer_invalid",
                repository_id=repository_id,
                version_id=version_id,
                error=exc.message,
            )
            return await self.update_repository_version_state(
                repository_id, version_id, FailedState(reason=exc.message)
            )
        return await self.update_repository_version_state(
            repository_id, version_id, ReadyState(runtime=runtime)
        )

    async def delete_repository_version(self, repository_id: str, version_id: str) -> None:
        """Delete a version's volume template.

        Raises:
            NotFoundError: If the version does not exist
        """
        self._log.info(
            "repository_version.delete",
            repository_id=repository_id,
            version_id=version_id,
        )
        await self._driver.delete_volume(template_name(repository_id, version_id))
