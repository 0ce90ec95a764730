"""Pool data models (read-only projections of cluster nodes)."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class Node:
    hostname: str


@dataclass
class Pool:
    """Nodes sharing the same pool label."""

    id: str
    instance_type: str
    nodes: list[Node] = field(default_factory=list)
