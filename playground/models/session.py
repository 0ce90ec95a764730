"""Session data models.

A session is never stored by the control plane itself. Every field is
derived from the session pod: labels carry identity, annotations carry the
duration and the declared ports, and the container status carries the
lifecycle state.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Union

from pydantic import BaseModel, Field

from playground.models.pool import Node
from playground.models.repository import Port


@dataclass(frozen=True)
class Deploying:
    """Pod submitted, container not yet running."""


@dataclass(frozen=True)
class Running:
    start_time: datetime
    node: Node


@dataclass(frozen=True)
class Failed:
    reason: str
    message: str


@dataclass(frozen=True)
class Unknown:
    """No pod backs this session."""


SessionState = Union[Deploying, Running, Failed, Unknown]


@dataclass
class Session:
    """A user development session."""

    id: str
    owner_id: str
    repository_id: str
    repository_version_id: str
    pool_id: str
    max_duration: timedelta
    state: SessionState = field(default_factory=Deploying)
    ports: list[Port] = field(default_factory=list)

    @property
    def is_active(self) -> bool:
        """Running or still deploying; both count against pool capacity."""
        return isinstance(self.state, (Running, Deploying))


class SessionConfiguration(BaseModel):
    """Request to create a session.

    ``duration`` is in minutes.
    """

    repository_id: str
    repository_version_id: str | None = None
    duration: int | None = Field(default=None, ge=1)
    pool_affinity: str | None = None


class SessionUpdateConfiguration(BaseModel):
    """Request to update a session. ``duration`` is in minutes."""

    duration: int | None = Field(default=None, ge=1)
