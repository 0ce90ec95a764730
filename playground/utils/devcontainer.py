"""devcontainer.json parsing.

See https://containers.dev/implementors/json_reference/
"""

from __future__ import annotations

import json

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from playground.errors import InvalidConfigurationError
from playground.models.repository import Port, RuntimeDescriptor


class DevContainer(BaseModel):
    """Subset of devcontainer.json the control plane cares about."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    image: str
    container_env: dict[str, str] = Field(default_factory=dict)
    forward_ports: list[int] = Field(default_factory=list)


def _string_end(text: str, start: int) -> int:
    """Index just past the string literal opening at ``start``."""
    end = start + 1
    while end < len(text) and text[end] != '"':
        end += 2 if text[end] == "\\" else 1
    return end + 1


def strip_jsonc(text: str) -> str:
    """Remove ``//`` and ``/* */`` comments and trailing commas.

    String literals are copied verbatim, so ``"http://..."`` survives.
    """
    out: list[str] = []
    i = 0
    while i < len(text):
        if text[i] == '"':
            end = _string_end(text, i)
            out.append(text[i:end])
            i = end
        elif text.startswith("//", i):
            newline = text.find("\n", i)
            i = len(text) if newline == -1 else newline
        elif text.startswith("/*", i):
            close = text.find("*/", i + 2)
            i = len(text) if close == -1 else close + 2
        else:
            out.append(text[i])
            i += 1
    stripped = "".join(out)

    out = []
    i = 0
    while i < len(stripped):
        if stripped[i] == '"':
            end = _string_end(stripped, i)
            out.append(stripped[i:end])
            i = end
            continue
        if stripped[i] == ",":
            following = stripped[i + 1 :].lstrip()
            if following[:1] in ("}", "]"):
                i += 1
                continue
        out.append(stripped[i])
        i += 1
    return "".join(out)


def parse_devcontainer(text: str) -> RuntimeDescriptor:
    """Parse devcontainer.json content into a runtime descriptor.

    Raises:
        InvalidConfigurationError: If the content is not valid JSONC or
            does not declare an image
    """
    try:
        data = json.loads(strip_jsonc(text))
    except json.JSONDecodeError as exc:
        raise InvalidConfigurationError(f"Failed to parse devcontainer: {exc}") from exc
    if not isinstance(data, dict):
        raise InvalidConfigurationError("devcontainer must be a JSON object")

    try:
        devcontainer = DevContainer.model_validate(data)
    except ValidationError as exc:
        raise InvalidConfigurationError(
            "Invalid devcontainer",
            details={"errors": [err["msg"] for err in exc.errors()]},
        ) from exc

    return RuntimeDescriptor(
        image=devcontainer.image,
        env=dict(devcontainer.container_env),
        ports=[
            Port(name=f"port-{port}", port=port, protocol="TCP")
            for port in devcontainer.forward_ports
        ],
    )
