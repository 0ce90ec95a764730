"""PoolManager - node pools derived from live node labels."""

from __future__ import annotations

from collections import defaultdict

import structlog

from playground.drivers.base import Driver, NodeInfo
from playground.labels import (
    HOSTNAME_LABEL,
    INSTANCE_TYPE_LABEL,
    NODE_POOL_LABEL,
    NODE_POOL_TYPE_LABEL,
    USER_POOL_TYPE,
)
from playground.models.pool import Node, Pool

logger = structlog.get_logger()

DEFAULT_POOL = "default"
DEFAULT_INSTANCE_TYPE = "local"
UNKNOWN_HOSTNAME = "unknown"


def nodes_to_pool(pool_id: str, nodes: list[NodeInfo]) -> Pool:
    """Build a pool; the instance type is read from the first node."""
    instance_type = DEFAULT_INSTANCE_TYPE
    if nodes:
        instance_type = nodes[0].labels.get(INSTANCE_TYPE_LABEL, DEFAULT_INSTANCE_TYPE)
    return Pool(
        id=pool_id,
        instance_type=instance_type,
        nodes=[
            Node(hostname=node.labels.get(HOSTNAME_LABEL, UNKNOWN_HOSTNAME))
            for node in nodes
        ],
    )


class PoolManager:
    """Read-only registry of node pools."""

    def __init__(self, driver: Driver, *, max_sessions_per_node: int = 1) -> None:
        self._driver = driver
        self._max_sessions_per_node = max_sessions_per_node
        self._log = logger.bind(manager="pool")

    async def get_pool(self, pool_id: str) -> Pool | None:
        """Get a pool, or None when no node carries its label."""
        nodes = await self._driver.list_nodes({NODE_POOL_LABEL: pool_id})
        if not nodes:
            return None
        return nodes_to_pool(pool_id, nodes)

    async def list_pools(self) -> list[Pool]:
        """Group user nodes by pool label; unlabelled nodes go to ``default``.

        System nodes are not schedulable for sessions and are left out.
        """
        groups: dict[str, list[NodeInfo]] = defaultdict(list)
        for node in await self._driver.list_nodes({NODE_POOL_TYPE_LABEL: USER_POOL_TYPE}):
            groups[node.labels.get(NODE_POOL_LABEL, DEFAULT_POOL)].append(node)

        pools = [nodes_to_pool(pool_id, nodes) for pool_id, nodes in sorted(groups.items())]
        self._log.debug("pool.list", pools=[pool.id for pool in pools])
        return pools

    def max_sessions_allowed(self, pool: Pool) -> int:
        return len(pool.nodes) * self._max_sessions_per_node
