"""Records kept in the resource store."""

from __future__ import annotations

from pydantic import BaseModel, Field


class User(BaseModel):
    id: str
    roles: list[str] = Field(default_factory=list)
    preferences: dict[str, str] = Field(default_factory=dict)
    pool_affinity: str | None = None
    profile: str | None = None


class Role(BaseModel):
    id: str
    permissions: list[str] = Field(default_factory=list)


class Profile(BaseModel):
    id: str
    preferences: dict[str, str] = Field(default_factory=dict)


class Preference(BaseModel):
    id: str
    value: str


class Editor(BaseModel):
    """An editor image sessions can be started with."""

    id: str
    image: str
    env: dict[str, str] = Field(default_factory=dict)
