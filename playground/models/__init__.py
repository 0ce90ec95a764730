"""Data models."""

from playground.models.pool import Node, Pool
from playground.models.repository import (
    BuildingState,
    CloningState,
    FailedState,
    Port,
    ReadyState,
    Repository,
    RepositoryVersion,
    RepositoryVersionState,
    RuntimeDescriptor,
)
from playground.models.resources import Editor, Preference, Profile, Role, User
from playground.models.route import RoutePath, RouteRule, RouteTable
from playground.models.session import (
    Deploying,
    Failed,
    Running,
    Session,
    SessionConfiguration,
    SessionState,
    SessionUpdateConfiguration,
    Unknown,
)

__all__ = [
    "BuildingState",
    "CloningState",
    "Deploying",
    "Editor",
    "Failed",
    "FailedState",
    "Node",
    "Pool",
    "Port",
    "Preference",
    "Profile",
    "ReadyState",
    "Repository",
    "RepositoryVersion",
    "RepositoryVersionState",
    "Role",
    "RoutePath",
    "RouteRule",
    "RouteTable",
    "Running",
    "RuntimeDescriptor",
    "Session",
    "SessionConfiguration",
    "SessionState",
    "SessionUpdateConfiguration",
    "Unknown",
    "User",
]
