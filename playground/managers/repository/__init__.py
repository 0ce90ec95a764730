"""Repository version pipeline."""

from playground.managers.repository.repository import RepositoryManager, template_name

__all__ = ["RepositoryManager", "template_name"]
