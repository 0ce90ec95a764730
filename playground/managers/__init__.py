"""Manager layer - business logic."""

from playground.managers.pool import PoolManager
from playground.managers.repository import RepositoryManager
from playground.managers.resource import ResourceStore
from playground.managers.route import RouteManager
from playground.managers.session import SessionManager

__all__ = [
    "PoolManager",
    "RepositoryManager",
    "ResourceStore",
    "RouteManager",
    "SessionManager",
]
