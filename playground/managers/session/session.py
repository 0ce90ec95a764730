"""SessionManager - admission, provisioning and teardown of sessions.

Provisioning order: volume -> route -> pod -> service. Every completed step
pushes a compensating action; when a later step fails the actions run in
reverse order and the original error is re-raised. A workspace volume that
existed before the call is kept, it holds the user's prior work. Losing the
session id to a concurrent create undoes nothing: the route and volume belong
to the winner.
"""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING, Any, Awaitable, Callable

import structlog

from playground.config import get_settings
from playground.drivers.base import Driver, PodSpec, ServiceSpec
from playground.errors import (
    AlreadyExistsError,
    ConcurrentSessionsLimitBreachedError,
    DurationLimitBreachedError,
    NotFoundError,
    RepositoryVersionNotReadyError,
    UnknownPoolError,
)
from playground.labels import (
    NODE_POOL_LABEL,
    OWNER_LABEL,
    POOL_ID_LABEL,
    PORTS_ANNOTATION,
    REPOSITORY_LABEL,
    REPOSITORY_VERSION_LABEL,
    RESOURCE_ID_LABEL,
    SESSION_COMPONENT,
    SESSION_DURATION_ANNOTATION,
    WORKSPACE_COMPONENT,
    app_labels,
)
from playground.managers.repository.repository import template_name
from playground.managers.route.route import exposed_ports, service_name
from playground.managers.session.preferences import resolve_session_preferences
from playground.managers.session.state import (
    duration_to_annotation,
    pod_status_to_state,
    pod_to_session,
    ports_to_annotation,
)
from playground.models.repository import ReadyState
from playground.models.resources import User
from playground.models.session import Deploying, Session, SessionState, Unknown

if TYPE_CHECKING:
    from playground.config import Settings
    from playground.managers.pool import PoolManager
    from playground.managers.repository import RepositoryManager
    from playground.managers.resource import ResourceStore
    from playground.managers.route import RouteManager
    from playground.metrics import Metrics
    from playground.models.session import SessionConfiguration, SessionUpdateConfiguration
    from playground.services.reaper.queue import SubmissionQueue

logger = structlog.get_logger()

Compensation = tuple[str, Callable[[], Awaitable[Any]]]


def volume_name(repository_id: str, owner_id: str) -> str:
    return f"volume-{repository_id}-{owner_id}"


class SessionManager:
    """Manages session lifecycle."""

    def __init__(
        self,
        driver: Driver,
        store: "ResourceStore",
        pools: "PoolManager",
        routes: "RouteManager",
        repositories: "RepositoryManager",
        metrics: "Metrics",
        submissions: "SubmissionQueue | None" = None,
        settings: "Settings | None" = None,
    ) -> None:
        self._driver = driver
        self._store = store
        self._pools = pools
        self._routes = routes
        self._repositories = repositories
        self._metrics = metrics
        self._submissions = submissions
        self._settings = settings or get_settings()
        self._log = logger.bind(manager="session")

    # Queries

    async def get_session(self, session_id: str) -> Session | None:
        pod = await self._driver.get_pod(session_id)
        if pod is None:
            return None
        return pod_to_session(pod)

    async def get_session_state(self, session_id: str) -> SessionState:
        """Current state; ``Unknown`` when no pod backs the session."""
        pod = await self._driver.get_pod(session_id)
        if pod is None:
            return Unknown()
        return pod_status_to_state(pod)

    async def list_sessions(self) -> list[Session]:
        pods = await self._driver.list_pods(app_labels(SESSION_COMPONENT))
        return [pod_to_session(pod) for pod in pods]

    async def list_user_sessions(self, owner_id: str) -> list[Session]:
        pods = await self._driver.list_pods(
            {**app_labels(SESSION_COMPONENT), OWNER_LABEL: owner_id}
        )
        return [pod_to_session(pod) for pod in pods]

    # Commands

    async def create_session(
        self,
        user: "User",
        session_id: str,
        conf: "SessionConfiguration",
    ) -> Session:
        """Admit and provision a new session.

        Args:
            user: Owner of the session
            session_id: Unique session id, also the pod name
            conf: Requested configuration

        Returns:
            The session in ``Deploying`` state

        Raises:
            AlreadyExistsError: If a session with this id exists
            UnknownPoolError: If the resolved pool has no nodes
            ConcurrentSessionsLimitBreachedError: If the pool is full
            NotFoundError: If the repository or version does not exist
            RepositoryVersionNotReadyError: If the version is not Ready
        """
        log = self._log.bind(session_id=session_id, owner_id=user.id)
        defaults = self._settings.session

        if await self._driver.get_pod(session_id) is not None:
            raise AlreadyExistsError(
                f"Session already exists: {session_id}",
                details={"session_id": session_id},
            )

        preferences = await resolve_session_preferences(self._store, user, defaults)

        # Admission
        pool_id = conf.pool_affinity or user.pool_affinity or preferences.pool_affinity
        pool = await self._pools.get_pool(pool_id)
        if pool is None:
            raise UnknownPoolError(pool_id)

        max_sessions = self._pools.max_sessions_allowed(pool)
        active = [
            session
            for session in await self.list_sessions()
            if session.pool_id == pool_id and session.is_active
        ]
        if len(active) >= max_sessions:
            log.warning(
                "session.create.capacity_exceeded",
                pool_id=pool_id,
                sessions=len(active),
                max_sessions=max_sessions,
            )
            raise ConcurrentSessionsLimitBreachedError(len(active), max_sessions, pool_id=pool_id)

        # Repository version
        repository_id = conf.repository_id
        repository = await self._store.repositories.get(repository_id)
        if repository is None:
            raise NotFoundError(f"Repository not found: {repository_id}")

        version_id = conf.repository_version_id or repository.current_version
        if version_id is None:
            raise NotFoundError(
                f"Repository {repository_id} has no current version",
                details={"repository_id": repository_id},
            )
        version = await self._repositories.get_version(repository_id, version_id)
        if version is None:
            raise NotFoundError(f"Repository version not found: {repository_id}:{version_id}")
        if not isinstance(version.state, ReadyState):
            raise RepositoryVersionNotReadyError(repository_id, version_id, version.state.type)
        runtime = version.state.runtime

        duration = (
            timedelta(minutes=conf.duration) if conf.duration else preferences.duration
        )
        ports = exposed_ports(runtime.ports, defaults.web_port)

        log.info(
            "session.create",
            pool_id=pool_id,
            repository_id=repository_id,
            version_id=version_id,
            duration_seconds=int(duration.total_seconds()),
        )

        labels = {
            **app_labels(SESSION_COMPONENT),
            OWNER_LABEL: user.id,
            RESOURCE_ID_LABEL: session_id,
            REPOSITORY_LABEL: repository_id,
            REPOSITORY_VERSION_LABEL: version_id,
            POOL_ID_LABEL: pool_id,
        }
        env = {
            **defaults.env,
            **runtime.env,
            "PLAYGROUND": "",
            "PLAYGROUND_SESSION": session_id,
        }

        compensations: list[Compensation] = []
        try:
            volume = await self._driver.get_or_create_volume(
                volume_name(repository_id, user.id),
                template_name=template_name(repository_id, version_id),
                labels={
                    **app_labels(WORKSPACE_COMPONENT),
                    OWNER_LABEL: user.id,
                    REPOSITORY_LABEL: repository_id,
                },
            )
            if volume.created:
                compensations.append(
                    ("volume", lambda: self._driver.delete_volume(volume.name))
                )

            await self._routes.add_session_route(session_id, ports)
            compensations.append(
                ("route", lambda: self._routes.remove_session_route(session_id))
            )

            pod = PodSpec(
                name=session_id,
                image=runtime.image,
                resources=defaults.resources,
                web_port=defaults.web_port,
                labels=labels,
                annotations={
                    SESSION_DURATION_ANNOTATION: duration_to_annotation(duration),
                    PORTS_ANNOTATION: ports_to_annotation(ports),
                },
                env=env,
                ports=ports,
                node_selector={NODE_POOL_LABEL: pool_id},
                volume_name=volume.name,
            )
            try:
                await self._driver.create_pod(pod)
            except AlreadyExistsError:
                # A concurrent create won the id; its route and volume stay
                compensations.clear()
                raise
            compensations.append(("pod", lambda: self._driver.delete_pod(session_id)))

            await self._driver.create_service(
                ServiceSpec(
                    name=service_name(session_id),
                    selector={RESOURCE_ID_LABEL: session_id},
                    web_port=defaults.web_port,
                    labels={**app_labels(SESSION_COMPONENT), OWNER_LABEL: user.id},
                    ports=ports,
                )
            )
        except Exception as exc:
            log.warning(
                "session.create.failed",
                error=str(exc),
                compensating=[step for step, _ in reversed(compensations)],
            )
            await self._compensate(session_id, compensations)
            self._metrics.inc_deploy_failures_counter(repository_id)
            raise

        self._metrics.inc_deploy_counter(repository_id)
        if self._submissions is not None:
            self._submissions.enqueue(session_id=session_id, template=repository_id)

        return Session(
            id=session_id,
            owner_id=user.id,
            repository_id=repository_id,
            repository_version_id=version_id,
            pool_id=pool_id,
            max_duration=duration,
            state=Deploying(),
            ports=ports,
        )

    async def _compensate(self, session_id: str, compensations: list[Compensation]) -> None:
        """Undo completed provisioning steps, most recent first."""
        for step, action in reversed(compensations):
            try:
                await action()
            except Exception as exc:
                self._log.exception(
                    "session.create.compensation_failed",
                    session_id=session_id,
                    step=step,
                    error=str(exc),
                )

    async def update_session(
        self,
        session_id: str,
        conf: "SessionUpdateConfiguration",
    ) -> Session:
        """Change a session's max duration.

        Raises:
            NotFoundError: If the session does not exist
            DurationLimitBreachedError: If the duration is not below the
                configured maximum
        """
        session = await self.get_session(session_id)
        if session is None:
            raise NotFoundError(f"Session not found: {session_id}")

        owner = await self._store.users.get(session.owner_id) or User(id=session.owner_id)
        preferences = await resolve_session_preferences(
            self._store, owner, self._settings.session
        )
        duration = (
            timedelta(minutes=conf.duration) if conf.duration else preferences.duration
        )
        max_duration = preferences.max_duration
        if duration >= max_duration:
            raise DurationLimitBreachedError(
                int(duration.total_seconds()), int(max_duration.total_seconds())
            )

        if duration != session.max_duration:
            self._log.info(
                "session.update",
                session_id=session_id,
                duration_seconds=int(duration.total_seconds()),
            )
            await self._driver.patch_pod_annotation(
                session_id,
                SESSION_DURATION_ANNOTATION,
                duration_to_annotation(duration),
            )
            session.max_duration = duration

        return session

    async def delete_session(self, session_id: str) -> None:
        """Tear down service, pod and route.

        Every step is attempted; the first failure is raised once all ran.
        Resources already gone are not failures.

        Raises:
            NotFoundError: If the session does not exist
        """
        if await self._driver.get_pod(session_id) is None:
            raise NotFoundError(f"Session not found: {session_id}")

        self._log.info("session.delete", session_id=session_id)
        steps: list[Compensation] = [
            ("service", lambda: self._driver.delete_service(service_name(session_id))),
            ("pod", lambda: self._driver.delete_pod(session_id)),
            ("route", lambda: self._routes.remove_session_route(session_id)),
        ]

        first_error: Exception | None = None
        for step, action in steps:
            try:
                await action()
            except NotFoundError:
                self._log.debug("session.delete.already_gone", session_id=session_id, step=step)
            except Exception as exc:
                self._log.warning(
                    "session.delete.step_failed",
                    session_id=session_id,
                    step=step,
                    error=str(exc),
                )
                if first_error is None:
                    first_error = exc

        if first_error is not None:
            self._metrics.inc_undeploy_failures_counter()
            raise first_error
        self._metrics.inc_undeploy_counter()
