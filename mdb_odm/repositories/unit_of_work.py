"""
Unit of Work Pattern

Hands out one Repository per collection name on a single connection and
caches them for the lifetime of the unit of work.
"""

import logging
from typing import Any

from ..constants import DEFAULT_CONNECTION_NAME
from ..datasource import Connection, ConnectionManager
from .base import Document
from .mongo import Repository

logger = logging.getLogger(__name__)


class UnitOfWork:
    """
    Repository locator bound to one connection.

    Usage:
        uow = UnitOfWork(connection, entity_registry={"articles": Article})

        article = uow.articles.get(article_id)
        users = uow.repository("users", entity_class="MyPlugin.SuperUser")

    Repository Naming Convention:
        - Attribute access uses the collection name: uow.users -> users collection
        - The entity class defaults to Document unless registered for the collection
        - Custom Repository subclasses can be registered per collection
    """

    def __init__(
        self,
        connection: Connection | None = None,
        entity_registry: dict[str, type[Document] | str] | None = None,
        repository_classes: dict[str, type[Repository]] | None = None,
    ):
        """
        Initialize the Unit of Work.

        Args:
            connection: Connection repositories are bound to. Defaults to the
                        ``default`` connection in ConnectionManager.
            entity_registry: Optional mapping of collection names to entity
                             classes (or registry names)
            repository_classes: Optional mapping of collection names to
                                Repository subclasses
        """
        self._connection = connection or ConnectionManager.get(DEFAULT_CONNECTION_NAME)
        self._repositories: dict[str, Repository] = {}
        self._entity_registry: dict[str, type[Document] | str] = dict(entity_registry or {})
        self._repository_classes: dict[str, type[Repository]] = dict(repository_classes or {})

    def register_entity(self, collection_name: str, entity_class: type[Document] | str) -> None:
        """Use ``entity_class`` for repositories created for ``collection_name``."""
        self._entity_registry[collection_name] = entity_class

    def register_repository(self, collection_name: str, repository_class: type[Repository]) -> None:
        """Use a Repository subclass for ``collection_name``."""
        self._repository_classes[collection_name] = repository_class

    def repository(
        self,
        name: str,
        entity_class: type[Document] | str | None = None,
    ) -> Repository:
        """
        Get or create the repository for a collection.

        The first call for a name decides its entity class; later calls
        return the cached repository.
        """
        if name in self._repositories:
            return self._repositories[name]

        if entity_class is None:
            entity_class = self._entity_registry.get(name)
        repository_class = self._repository_classes.get(name, Repository)

        repo = repository_class(name=name, connection=self._connection, entity_class=entity_class)
        self._repositories[name] = repo

        logger.debug(f"Created {repository_class.__name__} for '{name}'")
        return repo

    def __getattr__(self, name: str) -> Repository:
        """
        Access repositories via attribute syntax.

        Example:
            uow.users  # Repository for the 'users' collection
        """
        if name.startswith("_"):
            raise AttributeError(f"'{type(self).__name__}' has no attribute '{name}'")
        return self.repository(name)

    @property
    def connection(self) -> Connection:
        return self._connection

    def loaded(self) -> list[str]:
        """Names of repositories created so far."""
        return list(self._repositories)

    def dispose(self) -> None:
        """Forget cached repositories. The connection stays open."""
        self._repositories.clear()
        logger.debug("UnitOfWork disposed")

    def __enter__(self) -> "UnitOfWork":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.dispose()
