"""RouteManager - maintains the shared ingress rule set.

Every mutation is a read-modify-write of the whole table. The snapshot's
resource version travels with the write; when another writer got there
first the driver raises ``ConflictError`` and the mutation is re-applied
to a fresh snapshot, up to ``max_retries`` attempts.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable

import structlog

from playground.drivers.base import Driver
from playground.errors import ConflictError
from playground.models.route import RoutePath, RouteRule, RouteTable

if TYPE_CHECKING:
    from playground.models.repository import Port
    from playground.models.session import Session

logger = structlog.get_logger()


def exposed_ports(ports: list["Port"], web_port: int) -> list["Port"]:
    """Declared ports other than the web port, which is always exposed."""
    return [port for port in ports if port.port != web_port]


def session_paths(web_port: int, ports: list["Port"]) -> list[RoutePath]:
    """``/`` for the web port first, then one path per declared port."""
    paths = [RoutePath(path="/", port=web_port)]
    paths.extend(
        RoutePath(path=f"/{port.name}", port=port.port)
        for port in exposed_ports(ports, web_port)
    )
    return paths


def service_name(session_id: str) -> str:
    return f"service-{session_id}"


class RouteManager:
    """Adds and removes per-session subdomain rules."""

    def __init__(
        self,
        driver: Driver,
        *,
        host: str,
        web_port: int,
        max_retries: int = 5,
    ) -> None:
        self._driver = driver
        self._host = host
        self._web_port = web_port
        self._max_retries = max(max_retries, 1)
        self._log = logger.bind(manager="route")

    def subdomain(self, session_id: str) -> str:
        return f"{session_id}.{self._host}"

    async def _mutate(
        self,
        operation: str,
        change: Callable[[RouteTable], list[RouteRule] | None],
    ) -> bool:
        """Apply ``change`` to the current table and write the result.

        ``change`` returns the new rule list, or None when nothing needs to
        be written.

        Returns:
            True if the table was written
        """
        last_error: ConflictError | None = None
        for attempt in range(1, self._max_retries + 1):
            table = await self._driver.get_route_table()
            rules = change(table)
            if rules is None:
                return False
            try:
                await self._driver.replace_route_table(
                    RouteTable(rules=rules, resource_version=table.resource_version)
                )
                return True
            except ConflictError as exc:
                last_error = exc
                self._log.warning(
                    f"route.{operation}.conflict",
                    attempt=attempt,
                    max_retries=self._max_retries,
                )

        self._log.error(f"route.{operation}.retries_exhausted", max_retries=self._max_retries)
        raise ConflictError(
            f"Route table {operation} lost {self._max_retries} concurrent writes",
            details={"operation": operation, "attempts": self._max_retries},
        ) from last_error

    async def add_route(self, subdomain: str, service: str, paths: list[RoutePath]) -> None:
        """Add the rule for ``subdomain``, replacing any existing one."""
        self._log.info("route.add", host=subdomain, service=service, paths=len(paths))
        rule = RouteRule(host=subdomain, service_name=service, paths=list(paths))

        def change(table: RouteTable) -> list[RouteRule]:
            return [r for r in table.rules if r.host != subdomain] + [rule]

        await self._mutate("add", change)

    async def remove_route(self, subdomain: str) -> bool:
        """Remove the rule for ``subdomain``.

        Removing an absent host is a no-op that performs no write.

        Returns:
            True if a rule was removed
        """

        def change(table: RouteTable) -> list[RouteRule] | None:
            if table.find(subdomain) is None:
                return None
            return [r for r in table.rules if r.host != subdomain]

        removed = await self._mutate("remove", change)
        self._log.info("route.remove", host=subdomain, removed=removed)
        return removed

    async def add_session_route(self, session_id: str, ports: list["Port"]) -> str:
        """Route ``<session_id>.<host>`` to the session service."""
        subdomain = self.subdomain(session_id)
        await self.add_route(
            subdomain,
            service_name(session_id),
            session_paths(self._web_port, ports),
        )
        return subdomain

    async def remove_session_route(self, session_id: str) -> bool:
        return await self.remove_route(self.subdomain(session_id))

    async def restore(self, sessions: list["Session"]) -> int:
        """Re-add missing rules for the given sessions in a single write.

        Returns:
            Number of rules restored
        """
        wanted = {
            self.subdomain(session.id): RouteRule(
                host=self.subdomain(session.id),
                service_name=service_name(session.id),
                paths=session_paths(self._web_port, session.ports),
            )
            for session in sessions
        }
        restored: list[str] = []

        def change(table: RouteTable) -> list[RouteRule] | None:
            missing = [rule for host, rule in wanted.items() if table.find(host) is None]
            restored[:] = [rule.host for rule in missing]
            if not missing:
                return None
            return table.rules + missing

        await self._mutate("restore", change)
        self._log.info("route.restore", restored=len(restored), hosts=restored)
        return len(restored)
