"""Control plane wiring and lifecycle.

Builds the driver, store, managers, metrics and reaper from ``Settings`` and
manages their startup and shutdown.
"""

from __future__ import annotations

import structlog

from playground.config import Settings, get_settings
from playground.drivers.base import Driver
from playground.managers.pool import PoolManager
from playground.managers.repository import RepositoryManager
from playground.managers.resource import ResourceStore
from playground.managers.route import RouteManager
from playground.managers.session import SessionManager
from playground.metrics import Metrics
from playground.models.session import Running
from playground.services.reaper import Reaper, SubmissionQueue

logger = structlog.get_logger()


def create_driver(settings: Settings) -> Driver:
    """Instantiate the configured driver."""
    if settings.driver.type == "k8s":
        from playground.drivers.kubernetes import KubernetesDriver

        return KubernetesDriver(settings)
    raise ValueError(f"Unsupported driver type: {settings.driver.type}")


class ControlPlane:
    """All control plane components sharing one driver."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        driver: Driver | None = None,
        metrics: Metrics | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.driver = driver or create_driver(self.settings)
        self.metrics = metrics or Metrics()
        self.submissions = SubmissionQueue()

        session_defaults = self.settings.session
        self.store = ResourceStore(self.driver)
        self.pools = PoolManager(
            self.driver,
            max_sessions_per_node=session_defaults.max_sessions_per_node,
        )
        self.routes = RouteManager(
            self.driver,
            host=self.settings.driver.k8s.host,
            web_port=session_defaults.web_port,
            max_retries=self.settings.route_table.max_retries,
        )
        self.repositories = RepositoryManager(self.driver, self.store, self.settings)
        self.sessions = SessionManager(
            self.driver,
            self.store,
            self.pools,
            self.routes,
            self.repositories,
            self.metrics,
            submissions=self.submissions,
            settings=self.settings,
        )
        self.reaper = Reaper(
            self.settings.reaper,
            self.sessions,
            self.metrics,
            self.submissions,
        )
        self._log = logger.bind(service="control_plane")

    async def restore_routes(self) -> int:
        """Re-add ingress rules of running sessions lost from the table."""
        sessions = await self.sessions.list_sessions()
        running = [session for session in sessions if isinstance(session.state, Running)]
        return await self.routes.restore(running)

    async def start(self) -> None:
        self._log.info("control_plane.starting", namespace=self.settings.driver.k8s.namespace)

        try:
            restored = await self.restore_routes()
            self._log.info("control_plane.routes_restored", restored=restored)
        except Exception as exc:
            self._log.exception("control_plane.restore_routes_failed", error=str(exc))

        reaper_config = self.settings.reaper
        if not reaper_config.enabled:
            self._log.info("reaper.disabled")
            return

        if reaper_config.run_on_startup:
            try:
                result = await self.reaper.run_once()
                self._log.info("reaper.run_on_startup.complete", reaped=len(result.reaped))
            except Exception as exc:
                self._log.exception("reaper.run_on_startup.failed", error=str(exc))

        await self.reaper.start()

    async def stop(self) -> None:
        self._log.info("control_plane.stopping")
        await self.reaper.stop()
        await self.driver.close()
        self._log.info("control_plane.stopped")
