"""Node pool registry."""

from playground.managers.pool.pool import PoolManager

__all__ = ["PoolManager"]
