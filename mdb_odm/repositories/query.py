"""
Lazy repository queries.

A Query collects filter conditions, projection, sort and pagination and only
talks to the server when it is iterated or materialized. Results are cached
until the query is modified again, so a query can be re-run after changing it.
"""

import logging
from collections.abc import Iterator, Mapping
from typing import TYPE_CHECKING, Any

from bson.errors import BSONError
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import PyMongoError

from ..constants import ID_FIELD, MONGO_ID_FIELD
from ..exceptions import PersistenceError
from ..observability import get_logger as get_contextual_logger
from ..observability import track_operation
from .base import Document, to_object_id

if TYPE_CHECKING:
    from .mongo import Repository

logger = logging.getLogger(__name__)
contextual_logger = get_contextual_logger(__name__)

_OPTION_ALIASES = {"order": "sort", "skip": "offset"}


def _storage_field(field: str) -> str:
    return MONGO_ID_FIELD if field == ID_FIELD else field


def _normalize_sort(sort: Any) -> list[tuple[str, int]]:
    """Turn "field", "-field", (field, dir), dicts or lists of those into pymongo sort keys."""
    if sort is None:
        return []
    if isinstance(sort, str):
        if sort.startswith("-"):
            return [(sort[1:], DESCENDING)]
        return [(sort, ASCENDING)]
    if isinstance(sort, Mapping):
        return [(field, int(direction)) for field, direction in sort.items()]
    if isinstance(sort, tuple) and len(sort) == 2 and isinstance(sort[1], int):
        return [(sort[0], sort[1])]
    keys: list[tuple[str, int]] = []
    for item in sort:
        keys.extend(_normalize_sort(item))
    return keys


class Query:
    """
    A deferred find against one repository.

    Queries are created by ``Repository.find`` and always report the
    repository that created them through ``repository()``.

    Example:
        query = articles.find("all", conditions={"published": True}, limit=10)
        query.order("-created").offset(20)
        for article in query:   # runs here
            print(article.title)
    """

    def __init__(
        self,
        repository: "Repository",
        finder: str = "all",
        options: Mapping[str, Any] | None = None,
    ) -> None:
        self._repository = repository
        self._finder = finder
        self._conditions: dict[str, Any] = {}
        self._fields: dict[str, Any] | None = None
        self._sort: list[tuple[str, int]] = []
        self._limit: int | None = None
        self._offset: int = 0
        self._options: dict[str, Any] = {}
        self._results: list[Document] | None = None
        if options:
            self.apply_options(options)

    def __repr__(self) -> str:
        return (
            f"<Query repository={self._repository.name!r} finder={self._finder!r} "
            f"conditions={self._conditions!r} limit={self._limit} offset={self._offset}>"
        )

    def repository(self) -> "Repository":
        return self._repository

    def finder(self) -> str:
        return self._finder

    def options(self) -> dict[str, Any]:
        """Options passed to the query that are not query clauses (for custom finders)."""
        return dict(self._options)

    # ------------------------------------------------------------------
    # Builder
    # ------------------------------------------------------------------

    def _changed(self) -> "Query":
        self._results = None
        return self

    def where(self, conditions: Mapping[str, Any] | None = None, **fields: Any) -> "Query":
        """
        Merge filter conditions into the query.

        Conditions on ``id`` are stored against ``_id``, with ObjectId-looking
        strings converted.
        """
        for field, value in {**(conditions or {}), **fields}.items():
            if field == ID_FIELD:
                field, value = MONGO_ID_FIELD, to_object_id(value)
            self._conditions[field] = value
        return self._changed()

    def select(self, fields: Any) -> "Query":
        """Restrict returned fields; accepts a list of names or a projection dict."""
        if fields is None:
            self._fields = None
        elif isinstance(fields, Mapping):
            self._fields = dict(fields)
        else:
            self._fields = {name: 1 for name in fields}
        return self._changed()

    def order(self, sort: Any) -> "Query":
        self._sort.extend(
            (_storage_field(field), direction) for field, direction in _normalize_sort(sort)
        )
        return self._changed()

    def limit(self, limit: int | None) -> "Query":
        if limit is not None and limit < 0:
            raise ValueError(f"limit must be >= 0, got {limit}")
        self._limit = limit
        return self._changed()

    def offset(self, offset: int) -> "Query":
        if offset < 0:
            raise ValueError(f"offset must be >= 0, got {offset}")
        self._offset = offset
        return self._changed()

    def apply_options(self, options: Mapping[str, Any]) -> "Query":
        """
        Apply find options.

        Recognized keys: ``conditions``, ``fields``, ``sort`` (or ``order``),
        ``limit``, ``offset`` (or ``skip``). Other keys are kept and exposed
        through ``options()``.
        """
        for key, value in options.items():
            key = _OPTION_ALIASES.get(key, key)
            if key == "conditions":
                self.where(value)
            elif key == "fields":
                self.select(value)
            elif key == "sort":
                self.order(value)
            elif key == "limit":
                self.limit(value)
            elif key == "offset":
                self.offset(value)
            else:
                self._options[key] = value
        return self._changed()

    def clause(self, name: str) -> Any:
        """Return the current value of a clause (conditions, fields, sort, limit, offset)."""
        clauses = {
            "conditions": dict(self._conditions),
            "fields": self._fields,
            "sort": list(self._sort),
            "limit": self._limit,
            "offset": self._offset,
        }
        return clauses[name]

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def _cursor(self, limit: int | None):
        collection = self._repository.collection()
        kwargs: dict[str, Any] = {}
        if self._fields is not None:
            kwargs["projection"] = self._fields
        cursor = collection.find(dict(self._conditions), **kwargs)
        if self._sort:
            cursor = cursor.sort(self._sort)
        if self._offset:
            cursor = cursor.skip(self._offset)
        if limit:
            cursor = cursor.limit(limit)
        return cursor

    def _run(self, limit: int | None) -> list[Document]:
        name = self._repository.name
        with track_operation("query.execute", repository=name):
            try:
                raw_documents = list(self._cursor(limit))
            except (PyMongoError, BSONError) as e:
                logger.exception(f"Query on '{name}' failed")
                raise PersistenceError(
                    "Failed to execute query",
                    operation="find",
                    repository=name,
                    context={"finder": self._finder},
                ) from e
        contextual_logger.debug(
            "Query executed",
            extra={"repository": name, "finder": self._finder, "count": len(raw_documents)},
        )
        return [self._repository.to_entity(raw) for raw in raw_documents]

    def all(self) -> list[Document]:
        """Execute the query (once) and return the resulting documents."""
        if self._results is None:
            self._results = self._run(self._limit)
        return list(self._results)

    to_list = all

    def __iter__(self) -> Iterator[Document]:
        return iter(self.all())

    def first(self) -> Document | None:
        """Return the first result, fetching a single document if not yet executed."""
        if self._results is not None:
            return self._results[0] if self._results else None
        results = self._run(1)
        return results[0] if results else None

    def count(self) -> int:
        """Count documents matching the conditions, ignoring limit and offset."""
        name = self._repository.name
        with track_operation("query.count", repository=name):
            try:
                return self._repository.collection().count_documents(dict(self._conditions))
            except (PyMongoError, BSONError) as e:
                raise PersistenceError(
                    "Failed to count documents", operation="count", repository=name
                ) from e
