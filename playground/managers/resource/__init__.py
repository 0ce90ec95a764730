"""Config-map backed resource store."""

from playground.managers.resource.store import ResourceCollection, ResourceStore

__all__ = ["ResourceCollection", "ResourceStore"]
