"""ResourceStore - keyed records kept in one config map per namespace.

Each namespace (``users``, ``repositories``, ...) maps to the config map
``playground-<namespace>``; every record is one key of that map, its value
the YAML serialization of the record payload.

Reads fetch the whole map. Writes go through the driver's per-key patch
primitives, so two writers on different ids never clobber each other.
Existence checks are read-then-act: two concurrent creates of the same id
both succeed and the last write wins.
"""

from __future__ import annotations

from typing import Any, Callable, Generic, TypeVar

import structlog
import yaml
from pydantic import BaseModel, ValidationError

from playground.drivers.base import Driver
from playground.errors import AlreadyExistsError, NotFoundError
from playground.models.repository import Repository
from playground.models.resources import Editor, Preference, Profile, Role, User

logger = structlog.get_logger()

CONFIG_MAP_PREFIX = "playground-"

Record = dict[str, Any]
ModelT = TypeVar("ModelT", bound=BaseModel)


def config_map_name(namespace: str) -> str:
    return f"{CONFIG_MAP_PREFIX}{namespace}"


def _dump(payload: Record) -> str:
    return yaml.safe_dump(payload, sort_keys=True)


class ResourceStore:
    """Generic CRUD over config-map-backed records."""

    def __init__(self, driver: Driver) -> None:
        self._driver = driver
        self._log = logger.bind(manager="resource_store")

        self.users = ResourceCollection(self, "users", User)
        self.repositories = ResourceCollection(self, "repositories", Repository)
        self.roles = ResourceCollection(self, "roles", Role)
        self.profiles = ResourceCollection(self, "profiles", Profile)
        self.preferences = ResourceCollection(self, "preferences", Preference)
        self.editors = ResourceCollection(self, "editors", Editor)

    async def _values(self, namespace: str) -> dict[str, str]:
        config_map = await self._driver.get_config_map(config_map_name(namespace))
        if config_map is None:
            return {}
        return config_map.data

    def _parse(self, namespace: str, id: str, raw: str) -> Record | None:
        try:
            payload = yaml.safe_load(raw)
        except yaml.YAMLError as exc:
            self._log.warning(
                "resource.parse_failed",
                namespace=namespace,
                id=id,
                error=str(exc),
            )
            return None
        if not isinstance(payload, dict):
            self._log.warning(
                "resource.parse_failed",
                namespace=namespace,
                id=id,
                error="record is not a mapping",
            )
            return None
        return payload

    async def get(self, namespace: str, id: str) -> Record | None:
        raw = (await self._values(namespace)).get(id)
        if raw is None:
            return None
        return self._parse(namespace, id, raw)

    async def list(self, namespace: str) -> list[tuple[str, Record]]:
        """List every parsable record of a namespace.

        Records that fail to parse are skipped with a warning.
        """
        records: list[tuple[str, Record]] = []
        for id, raw in sorted((await self._values(namespace)).items()):
            payload = self._parse(namespace, id, raw)
            if payload is not None:
                records.append((id, payload))
        return records

    async def create(self, namespace: str, id: str, payload: Record) -> Record:
        """Create a record.

        Raises:
            AlreadyExistsError: If ``id`` is already present
        """
        if id in await self._values(namespace):
            raise AlreadyExistsError(
                f"{namespace} {id} already exists",
                details={"namespace": namespace, "id": id},
            )

        self._log.info("resource.create", namespace=namespace, id=id)
        await self._driver.add_config_map_value(config_map_name(namespace), id, _dump(payload))
        return payload

    async def update(
        self,
        namespace: str,
        id: str,
        mutator: Callable[[Record], Record],
    ) -> Record:
        """Replace a record with ``mutator(current)``.

        Raises:
            NotFoundError: If ``id`` is absent
        """
        raw = (await self._values(namespace)).get(id)
        if raw is None:
            raise NotFoundError(
                f"{namespace} {id} not found",
                details={"namespace": namespace, "id": id},
            )

        current = self._parse(namespace, id, raw) or {}
        updated = mutator(dict(current))

        self._log.info("resource.update", namespace=namespace, id=id)
        await self._driver.add_config_map_value(config_map_name(namespace), id, _dump(updated))
        return updated

    async def delete(self, namespace: str, id: str) -> None:
        """Delete a record.

        Raises:
            NotFoundError: If ``id`` is absent
        """
        if id not in await self._values(namespace):
            raise NotFoundError(
                f"{namespace} {id} not found",
                details={"namespace": namespace, "id": id},
            )

        self._log.info("resource.delete", namespace=namespace, id=id)
        await self._driver.remove_config_map_value(config_map_name(namespace), id)


class ResourceCollection(Generic[ModelT]):
    """Typed view over one namespace of the store.

    The record id is the config map key; it is not repeated in the payload.
    """

    def __init__(self, store: ResourceStore, namespace: str, model: type[ModelT]) -> None:
        self._store = store
        self.namespace = namespace
        self._model = model
        self._log = logger.bind(manager="resource_store", namespace=namespace)

    def _load(self, id: str, payload: Record) -> ModelT | None:
        try:
            return self._model.model_validate({**payload, "id": id})
        except ValidationError as exc:
            self._log.warning("resource.invalid", id=id, error=str(exc))
            return None

    @staticmethod
    def _payload(item: BaseModel) -> Record:
        return item.model_dump(mode="json", exclude={"id"})

    async def get(self, id: str) -> ModelT | None:
        payload = await self._store.get(self.namespace, id)
        if payload is None:
            return None
        return self._load(id, payload)

    async def list(self) -> list[ModelT]:
        items: list[ModelT] = []
        for id, payload in await self._store.list(self.namespace):
            item = self._load(id, payload)
            if item is not None:
                items.append(item)
        return items

    async def create(self, item: ModelT) -> ModelT:
        await self._store.create(self.namespace, item.id, self._payload(item))
        return item

    async def update(self, id: str, **changes: Any) -> ModelT:
        """Apply field changes to an existing record."""

        def mutate(current: Record) -> Record:
            merged = self._model.model_validate({**current, **changes, "id": id})
            return self._payload(merged)

        payload = await self._store.update(self.namespace, id, mutate)
        return self._model.model_validate({**payload, "id": id})

    async def delete(self, id: str) -> None:
        await self._store.delete(self.namespace, id)
