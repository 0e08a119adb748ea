"""
MongoDB Repository Implementation

A Repository is the handle to one named collection on one connection. It
builds Document entities from raw data, loads them by id, runs lazy queries
and saves entities back.
"""

import logging
import re
import threading
import time
from collections.abc import Iterable, Mapping
from typing import Any

from bson.errors import BSONError
from pymongo import ReturnDocument
from pymongo.collection import Collection
from pymongo.errors import PyMongoError

from ..constants import (
    DEFAULT_CONNECTION_NAME,
    DEFAULT_FINDER,
    ID_FIELD,
    INITIAL_VERSION,
    MONGO_ID_FIELD,
    VERSION_FIELD,
)
from ..datasource import Connection, ConnectionManager
from ..exceptions import (
    ConfigurationError,
    DocumentNotFoundError,
    PersistenceError,
    UnknownFinderError,
)
from ..observability import get_logger as get_contextual_logger
from ..observability import log_operation, repository_context, track_operation
from .base import Document, from_object_id, to_object_id
from .query import Query
from .registry import DocumentRegistry, default_registry

logger = logging.getLogger(__name__)
contextual_logger = get_contextual_logger(__name__)

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


class Repository:
    """
    Handle to one MongoDB collection.

    Subclass to give the repository a name by convention, a default entity
    class, or custom finders (``find_<type>(query, options)``):

    Example:
        class ArticlesRepository(Repository):
            def find_published(self, query, options):
                return query.where(published=True).apply_options(options)

        articles = ArticlesRepository(connection=connection)  # collection "articles"
        article = articles.new_entity({"title": "Hello"})
        articles.save(article)
        for doc in articles.find("published", limit=5):
            ...
    """

    def __init__(
        self,
        name: str | None = None,
        connection: Connection | None = None,
        entity_class: type[Document] | str | None = None,
        registry: DocumentRegistry | None = None,
    ) -> None:
        """
        Initialize the repository.

        Args:
            name: Collection name. Derived from the class name when omitted
                  (``ArticlesRepository`` -> ``articles``).
            connection: Connection to bind to. Looked up in ConnectionManager
                        under ``default_connection_name()`` when omitted.
            entity_class: Document subclass, or a registry name, results are
                          materialized into. Defaults to Document.
            registry: Document registry used to resolve class names

        Raises:
            ConfigurationError: If no name can be determined or no connection resolved
        """
        self._name = name or self._default_name()
        if not self._name:
            raise ConfigurationError(
                f"{type(self).__name__} has no collection name", config_key="name"
            )

        if connection is None:
            connection_name = self.default_connection_name()
            try:
                connection = ConnectionManager.get(connection_name)
            except ConfigurationError as e:
                raise ConfigurationError(
                    f"No connection available for repository '{self._name}'",
                    config_key="connection",
                    context={"repository": self._name, "connection_name": connection_name},
                ) from e
        self._connection = connection

        self._entity_class = entity_class
        self._registry = registry or default_registry
        self._resolved_classes: dict[Any, type[Document]] = {}
        self._resolve_lock = threading.Lock()

    @classmethod
    def default_connection_name(cls) -> str:
        return DEFAULT_CONNECTION_NAME

    def _default_name(self) -> str:
        class_name = type(self).__name__
        if class_name == "Repository":
            return ""
        if class_name.endswith("Repository"):
            class_name = class_name[: -len("Repository")]
        return _CAMEL_BOUNDARY.sub("_", class_name).lower()

    def __repr__(self) -> str:
        return f"<{type(self).__name__} name={self._name!r} connection={self._connection!r}>"

    @property
    def name(self) -> str:
        return self._name

    @property
    def connection(self) -> Connection:
        return self._connection

    def collection(self) -> Collection:
        """The pymongo collection backing this repository."""
        return self._connection.get_database().get_collection(self._name)

    # ------------------------------------------------------------------
    # Entity classes
    # ------------------------------------------------------------------

    def entity_class(self, name: str | None = None) -> type[Document]:
        """
        Resolve the Document class results are materialized into.

        Args:
            name: Optional override: a bare name (app namespace) or
                  ``"Plugin.Name"`` (plugin namespace)

        Returns:
            The Document subclass. Resolutions are cached per requested name.

        Raises:
            ClassNotFoundError: If the name is not registered
        """
        requested = name if name is not None else self._entity_class
        if requested is None:
            return Document
        if isinstance(requested, type):
            if not issubclass(requested, Document):
                raise TypeError(f"{requested!r} is not a Document subclass")
            return requested

        with self._resolve_lock:
            resolved = self._resolved_classes.get(requested)
            if resolved is None:
                resolved = self._registry.resolve(requested)
                self._resolved_classes[requested] = resolved
                logger.debug(
                    f"Resolved entity class '{requested}' to {resolved.__name__} "
                    f"for repository '{self._name}'"
                )
        return resolved

    def to_entity(self, raw: Mapping[str, Any], id: Any = None) -> Document:
        """
        Build a persisted, clean entity from a stored document.

        ``id`` fills in the identifier when the stored document was projected
        without ``_id``.
        """
        data = dict(raw)
        if MONGO_ID_FIELD in data:
            data[ID_FIELD] = from_object_id(data.pop(MONGO_ID_FIELD))
        elif id is not None:
            data[ID_FIELD] = from_object_id(id)
        return self.entity_class()(data, mark_new=False, source=self._name)

    def new_entity(self, data: Mapping[str, Any] | None = None) -> Document:
        """Build a new entity from raw data. No I/O."""
        return self.entity_class()(data, source=self._name)

    def new_entities(self, data: Iterable[Mapping[str, Any]]) -> list[Document]:
        """Build new entities, in order, from a sequence of raw data."""
        return [self.new_entity(item) for item in data]

    def patch_entity(self, entity: Document, data: Mapping[str, Any]) -> Document:
        """Merge data into an entity, marking the touched fields dirty."""
        return entity.set(dict(data))

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def query(self) -> Query:
        return Query(self)

    def find(self, type: str = DEFAULT_FINDER, **options: Any) -> Query:
        """
        Create a query using a finder. Nothing is executed until the query is consumed.

        Args:
            type: Finder name; dispatches to ``find_<type>``
            **options: conditions, fields, sort, limit, offset, or finder-specific options

        Raises:
            UnknownFinderError: If the repository has no such finder
        """
        finder = getattr(self, f"find_{type}", None)
        if not callable(finder):
            raise UnknownFinderError(
                f"Unknown finder '{type}' on repository '{self._name}'", finder=type
            )
        return finder(Query(self, finder=type), options)

    def find_all(self, query: Query, options: Mapping[str, Any]) -> Query:
        return query.apply_options(options)

    def get(self, id: Any, **options: Any) -> Document:
        """
        Load a single document by id.

        Args:
            id: Document id
            **options: Extra arguments for ``find_one`` (projection, ...)

        Raises:
            DocumentNotFoundError: If no document has this id
            PersistenceError: If the client call fails
        """
        with track_operation("repository.get", repository=self._name):
            try:
                raw = self.collection().find_one({MONGO_ID_FIELD: to_object_id(id)}, **options)
            except (PyMongoError, BSONError) as e:
                logger.exception(f"Failed to load document {id!r} from '{self._name}'")
                raise PersistenceError(
                    "Failed to load document",
                    operation="get",
                    repository=self._name,
                    context={"document_id": id},
                ) from e

        if raw is None:
            raise DocumentNotFoundError(
                f"Document '{id}' not found in '{self._name}'",
                document_id=id,
                repository=self._name,
            )
        return self.to_entity(raw, id=id)

    def exists(self, id: Any) -> bool:
        try:
            raw = self.collection().find_one(
                {MONGO_ID_FIELD: to_object_id(id)}, projection={MONGO_ID_FIELD: 1}
            )
        except (PyMongoError, BSONError) as e:
            raise PersistenceError(
                "Failed to check document existence", operation="exists", repository=self._name
            ) from e
        return raw is not None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @staticmethod
    def _storage_fields(entity: Document) -> dict[str, Any]:
        data = entity.to_dict()
        data.pop(ID_FIELD, None)
        data.pop(VERSION_FIELD, None)
        return data

    def save(self, entity: Document) -> Document:
        """
        Persist an entity.

        New entities are inserted and receive an id and version; existing
        entities are updated (upserted) and receive the next version. Whether
        an entity is inserted or updated depends only on ``is_new()``.

        Returns:
            The same entity instance

        Raises:
            PersistenceError: If the client call fails. The entity is left untouched.
        """
        operation = "insert" if entity.is_new() else "update"
        start_time = time.time()
        with repository_context(self._name, connection=self._connection.name), track_operation(
            "repository.save", repository=self._name, operation=operation
        ):
            try:
                if entity.is_new():
                    self._insert(entity)
                else:
                    self._update(entity)
            except (PyMongoError, BSONError) as e:
                duration_ms = (time.time() - start_time) * 1000
                log_operation(
                    logger,
                    f"repository.save.{operation}",
                    level=logging.ERROR,
                    success=False,
                    duration_ms=duration_ms,
                    repository=self._name,
                    error_type=type(e).__name__,
                )
                raise PersistenceError(
                    f"Failed to {operation} document",
                    operation=operation,
                    repository=self._name,
                    context={"document_id": entity.id, "error_type": type(e).__name__},
                ) from e

        entity.set_source(self._name)
        duration_ms = (time.time() - start_time) * 1000
        log_operation(
            logger,
            f"repository.save.{operation}",
            level=logging.DEBUG,
            duration_ms=duration_ms,
            repository=self._name,
            document_id=entity.id,
            version=entity.version,
        )
        return entity

    def _insert(self, entity: Document) -> None:
        document = self._storage_fields(entity)
        document[VERSION_FIELD] = INITIAL_VERSION
        if entity.id is not None:
            document[MONGO_ID_FIELD] = to_object_id(entity.id)

        result = self.collection().insert_one(document)
        entity.mark_persisted(id=from_object_id(result.inserted_id), version=INITIAL_VERSION)

    def _update(self, entity: Document) -> None:
        if entity.id is None:
            raise PersistenceError(
                "Cannot update a document without an id",
                operation="update",
                repository=self._name,
            )

        update: dict[str, Any] = {"$inc": {VERSION_FIELD: 1}}
        fields = self._storage_fields(entity)
        if fields:
            update["$set"] = fields
        removed = [
            name
            for name in entity.dirty_fields()
            if not entity.has(name) and name not in (ID_FIELD, VERSION_FIELD)
        ]
        if removed:
            update["$unset"] = {name: "" for name in removed}

        raw = self.collection().find_one_and_update(
            {MONGO_ID_FIELD: to_object_id(entity.id)},
            update,
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        version = raw.get(VERSION_FIELD) if raw is not None else None
        entity.mark_persisted(version=version)

    def delete(self, entity: Document) -> bool:
        """
        Delete a persisted entity.

        Returns:
            True if a document was removed, False for new entities or missing documents

        Raises:
            PersistenceError: If the client call fails
        """
        if entity.is_new() or entity.id is None:
            return False
        with track_operation("repository.delete", repository=self._name):
            try:
                result = self.collection().delete_one({MONGO_ID_FIELD: to_object_id(entity.id)})
            except (PyMongoError, BSONError) as e:
                raise PersistenceError(
                    "Failed to delete document",
                    operation="delete",
                    repository=self._name,
                    context={"document_id": entity.id},
                ) from e
        deleted = result.deleted_count > 0
        contextual_logger.debug(
            "Document deleted" if deleted else "Document to delete was not found",
            extra={"repository": self._name, "document_id": entity.id},
        )
        return deleted
