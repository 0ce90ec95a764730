"""Repository and repository version models.

Repository versions are persisted as a JSON annotation on their volume
template, so the state is a pydantic discriminated union that round-trips
through ``model_dump_json`` / ``TypeAdapter.validate_json``.
"""

from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter


class Port(BaseModel):
    """A port exposed by a session in addition to the web port."""

    name: str
    port: int
    protocol: str = "TCP"
    target: int | None = None


class RuntimeDescriptor(BaseModel):
    """What a Ready repository version runs with."""

    image: str
    env: dict[str, str] = Field(default_factory=dict)
    ports: list[Port] = Field(default_factory=list)


class CloningState(BaseModel):
    type: Literal["cloning"] = "cloning"
    progress: int = 0


class BuildingState(BaseModel):
    type: Literal["building"] = "building"
    progress: int = 0


class ReadyState(BaseModel):
    type: Literal["ready"] = "ready"
    runtime: RuntimeDescriptor


class FailedState(BaseModel):
    type: Literal["failed"] = "failed"
    reason: str


RepositoryVersionState = Annotated[
    Union[CloningState, BuildingState, ReadyState, FailedState],
    Field(discriminator="type"),
]

repository_version_state_adapter: TypeAdapter[RepositoryVersionState] = TypeAdapter(
    RepositoryVersionState
)

# Allowed transitions of the clone/build pipeline
ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    "cloning": frozenset({"cloning", "building", "ready", "failed"}),
    "building": frozenset({"building", "ready", "failed"}),
    "ready": frozenset(),
    "failed": frozenset(),
}


class RepositoryVersion(BaseModel):
    id: str
    repository_id: str
    state: RepositoryVersionState


class Repository(BaseModel):
    """A git repository sessions can be created from."""

    id: str
    url: str
    current_version: str | None = None
