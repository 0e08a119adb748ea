"""
Pytest configuration and shared fixtures for MDB_ODM tests.

This module provides:
- Registry/metrics isolation between tests
- Mock connection fixtures
- An in-memory stand-in for a pymongo collection, for save/get round trips
"""

import copy
from typing import Any, Dict, List
from unittest.mock import MagicMock

import pytest
from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from mdb_odm.datasource import Connection, ConnectionManager
from mdb_odm.observability import get_metrics_collector
from mdb_odm.repositories import Repository, default_registry


def pytest_configure(config):
    config.addinivalue_line("markers", "integration: tests that need a running MongoDB server")


# ============================================================================
# ISOLATION
# ============================================================================


@pytest.fixture(autouse=True)
def reset_global_state():
    """Clear process-wide registries and metrics around every test."""
    ConnectionManager.reset()
    default_registry.clear()
    get_metrics_collector().reset()
    yield
    ConnectionManager.reset()
    default_registry.clear()
    get_metrics_collector().reset()


# ============================================================================
# IN-MEMORY COLLECTION
# ============================================================================


def _matches(document: Dict[str, Any], filter: Dict[str, Any]) -> bool:
    """Simple equality filter matching for testing."""
    return all(key in document and document[key] == value for key, value in filter.items())


def _project(document: Dict[str, Any], projection: Dict[str, Any] | None) -> Dict[str, Any]:
    if not projection:
        return copy.deepcopy(document)
    included = {key for key, value in projection.items() if value}
    if included:
        if projection.get("_id", 1):
            included.add("_id")
        return {key: copy.deepcopy(value) for key, value in document.items() if key in included}
    excluded = {key for key, value in projection.items() if not value}
    return {key: copy.deepcopy(value) for key, value in document.items() if key not in excluded}


class InMemoryCursor:
    """Cursor over a snapshot of documents supporting sort/skip/limit chaining."""

    def __init__(self, documents: List[Dict[str, Any]]):
        self._documents = documents
        self._skip = 0
        self._limit = 0

    def sort(self, keys):
        for field, direction in reversed(keys):
            self._documents.sort(key=lambda doc: doc.get(field), reverse=direction < 0)
        return self

    def skip(self, count: int):
        self._skip = count
        return self

    def limit(self, count: int):
        self._limit = count
        return self

    def __iter__(self):
        documents = self._documents[self._skip :]
        if self._limit:
            documents = documents[: self._limit]
        return iter(documents)


class InMemoryCollection:
    """
    Minimal pymongo Collection stand-in.

    Supports the calls repositories and queries make: find_one, find,
    insert_one, find_one_and_update, delete_one and count_documents.
    """

    def __init__(self, name: str):
        self.name = name
        self.documents: Dict[Any, Dict[str, Any]] = {}

    def find_one(self, filter=None, projection=None, **kwargs):
        for document in self.documents.values():
            if _matches(document, filter or {}):
                return _project(document, projection)
        return None

    def find(self, filter=None, projection=None, **kwargs):
        return InMemoryCursor(
            [
                _project(document, projection)
                for document in self.documents.values()
                if _matches(document, filter or {})
            ]
        )

    def insert_one(self, document):
        document.setdefault("_id", ObjectId())
        if document["_id"] in self.documents:
            raise DuplicateKeyError(f"duplicate key: {document['_id']!r}")
        self.documents[document["_id"]] = copy.deepcopy(document)
        return MagicMock(inserted_id=document["_id"], acknowledged=True)

    def find_one_and_update(self, filter, update, upsert=False, return_document=None):
        document = next(
            (doc for doc in self.documents.values() if _matches(doc, filter)),
            None,
        )
        if document is None:
            if not upsert:
                return None
            document = {"_id": filter["_id"]}
            self.documents[document["_id"]] = document
        before = copy.deepcopy(document)
        document.update(copy.deepcopy(update.get("$set", {})))
        for field in update.get("$unset", {}):
            document.pop(field, None)
        for field, amount in update.get("$inc", {}).items():
            document[field] = document.get(field, 0) + amount
        return copy.deepcopy(document if return_document == ReturnDocument.AFTER else before)

    def delete_one(self, filter):
        for key, document in list(self.documents.items()):
            if _matches(document, filter):
                del self.documents[key]
                return MagicMock(deleted_count=1)
        return MagicMock(deleted_count=0)

    def count_documents(self, filter):
        return sum(1 for document in self.documents.values() if _matches(document, filter))


# ============================================================================
# CONNECTION FIXTURES
# ============================================================================


@pytest.fixture
def mock_connection() -> MagicMock:
    """A Connection mock whose database/collection calls return mocks."""
    return MagicMock(spec=Connection)


@pytest.fixture
def memory_collections() -> Dict[str, InMemoryCollection]:
    return {}


@pytest.fixture
def memory_connection(memory_collections) -> MagicMock:
    """A Connection mock backed by in-memory collections, one per name."""
    connection = MagicMock(spec=Connection)
    database = connection.get_database.return_value
    database.get_collection.side_effect = lambda name: memory_collections.setdefault(
        name, InMemoryCollection(name)
    )
    return connection


@pytest.fixture
def articles(memory_connection) -> Repository:
    """An 'articles' repository on the in-memory connection."""
    return Repository(name="articles", connection=memory_connection)


@pytest.fixture
def seeded_articles(articles, memory_collections) -> Repository:
    """The articles repository with three stored documents."""
    collection = memory_collections.setdefault("articles", InMemoryCollection("articles"))
    for id, title, rank, published in [
        ("a1", "First article", 3, True),
        ("a2", "Second article", 1, False),
        ("a3", "Third article", 2, True),
    ]:
        collection.insert_one(
            {"_id": id, "title": title, "rank": rank, "published": published, "_version": 1}
        )
    return articles
