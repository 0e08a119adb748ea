"""
Unit tests for Query.

Tests the builder, deferred execution, result caching and materialization.
"""

from unittest.mock import MagicMock

import pytest
from bson import ObjectId
from bson.errors import InvalidDocument
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import OperationFailure

from mdb_odm.exceptions import PersistenceError
from mdb_odm.observability import get_metrics_collector
from mdb_odm.repositories import Document, Query, Repository


class TestQueryBuilder:
    """Test building query clauses without executing."""

    def test_repository_back_reference(self, mock_connection):
        repo = Repository(name="articles", connection=mock_connection)

        query = Query(repo)

        assert query.repository() is repo
        assert query.finder() == "all"

    def test_where_merges_conditions(self, mock_connection):
        query = Query(Repository(name="articles", connection=mock_connection))

        query.where({"published": True}).where(author="jane")

        assert query.clause("conditions") == {"published": True, "author": "jane"}

    def test_where_on_id_targets_stored_id(self, mock_connection):
        object_id = ObjectId()
        query = Query(Repository(name="articles", connection=mock_connection))

        query.where({"id": str(object_id)})
        assert query.clause("conditions") == {"_id": object_id}

        query.where(id="a1")
        assert query.clause("conditions") == {"_id": "a1"}

    def test_order_on_id_targets_stored_id(self, mock_connection):
        query = Query(Repository(name="articles", connection=mock_connection))

        query.order("-id")

        assert query.clause("sort") == [("_id", DESCENDING)]

    def test_select_list_and_mapping(self, mock_connection):
        query = Query(Repository(name="articles", connection=mock_connection))

        assert query.select(["title", "body"]).clause("fields") == {"title": 1, "body": 1}
        assert query.select({"body": 0}).clause("fields") == {"body": 0}
        assert query.select(None).clause("fields") is None

    @pytest.mark.parametrize(
        "sort,expected",
        [
            ("title", [("title", ASCENDING)]),
            ("-title", [("title", DESCENDING)]),
            (("rank", DESCENDING), [("rank", DESCENDING)]),
            ({"rank": -1, "title": 1}, [("rank", DESCENDING), ("title", ASCENDING)]),
            (["-rank", ("title", 1)], [("rank", DESCENDING), ("title", ASCENDING)]),
        ],
    )
    def test_order_normalization(self, mock_connection, sort, expected):
        query = Query(Repository(name="articles", connection=mock_connection))

        assert query.order(sort).clause("sort") == expected

    def test_negative_limit_and_offset(self, mock_connection):
        query = Query(Repository(name="articles", connection=mock_connection))

        with pytest.raises(ValueError):
            query.limit(-1)
        with pytest.raises(ValueError):
            query.offset(-1)

    def test_apply_options(self, mock_connection):
        query = Query(Repository(name="articles", connection=mock_connection))

        query.apply_options(
            {
                "conditions": {"published": True},
                "fields": ["title"],
                "order": "-rank",
                "limit": 10,
                "skip": 20,
                "with_drafts": False,
            }
        )

        assert query.clause("conditions") == {"published": True}
        assert query.clause("fields") == {"title": 1}
        assert query.clause("sort") == [("rank", DESCENDING)]
        assert query.clause("limit") == 10
        assert query.clause("offset") == 20
        assert query.options() == {"with_drafts": False}

    def test_building_does_not_execute(self, mock_connection):
        repo = Repository(name="articles", connection=mock_connection)

        repo.find("all").where(published=True).order("title").limit(3)

        mock_connection.get_database.assert_not_called()


class TestQueryExecution:
    """Test execution against the in-memory collection."""

    def test_all_returns_persisted_entities(self, seeded_articles):
        results = seeded_articles.find("all").all()

        assert [doc.id for doc in results] == ["a1", "a2", "a3"]
        assert all(isinstance(doc, Document) for doc in results)
        assert all(not doc.is_new() and not doc.dirty() for doc in results)
        assert results[0].to_dict() == {
            "id": "a1",
            "title": "First article",
            "rank": 3,
            "published": True,
            "_version": 1,
        }

    def test_iteration(self, seeded_articles):
        titles = [doc.title for doc in seeded_articles.find(conditions={"published": True})]

        assert titles == ["First article", "Third article"]

    def test_sort_skip_limit(self, seeded_articles):
        query = seeded_articles.find("all", sort="rank", offset=1, limit=1)

        assert [doc.id for doc in query] == ["a3"]

    def test_projection(self, seeded_articles):
        doc = seeded_articles.find(fields=["title"]).first()

        assert doc.to_dict() == {"id": "a1", "title": "First article"}

    def test_first_and_empty_first(self, seeded_articles):
        assert seeded_articles.find(sort="-rank").first().id == "a1"
        assert seeded_articles.find(conditions={"title": "nope"}).first() is None

    def test_count_ignores_pagination(self, seeded_articles):
        query = seeded_articles.find(conditions={"published": True}, limit=1)

        assert query.count() == 2

    def test_results_are_cached_until_modified(self, seeded_articles, memory_collections):
        query = seeded_articles.find("all")
        assert len(query.all()) == 3

        memory_collections["articles"].documents.pop("a3")
        assert len(query.all()) == 3

        query.where(published=True)
        assert [doc.id for doc in query] == ["a1"]

    def test_where_by_id(self, seeded_articles):
        results = seeded_articles.find().where(id="a2").all()

        assert [a.id for a in results] == ["a2"]

    def test_first_uses_cached_results(self, seeded_articles):
        query = seeded_articles.find(sort="-rank")
        query.all()

        assert query.first().id == "a1"
        assert get_metrics_collector().get_operation_count("query.execute") == 1

    def test_uses_repository_entity_class(self, memory_connection, seeded_articles):
        class Article(Document):
            pass

        repo = Repository(name="articles", connection=memory_connection, entity_class=Article)

        assert all(isinstance(doc, Article) for doc in repo.find())


class TestQueryCursorCalls:
    """Test the calls a query makes on the pymongo cursor."""

    def test_cursor_chain(self, mock_connection):
        repo = Repository(name="articles", connection=mock_connection)
        collection = mock_connection.get_database.return_value.get_collection.return_value
        cursor = MagicMock()
        cursor.sort.return_value = cursor
        cursor.skip.return_value = cursor
        cursor.limit.return_value = cursor
        cursor.__iter__.return_value = iter([{"_id": "x", "title": "T"}])
        collection.find.return_value = cursor

        results = repo.find(
            conditions={"published": True}, fields=["title"], sort="-rank", offset=5, limit=2
        ).all()

        collection.find.assert_called_once_with({"published": True}, projection={"title": 1})
        cursor.sort.assert_called_once_with([("rank", DESCENDING)])
        cursor.skip.assert_called_once_with(5)
        cursor.limit.assert_called_once_with(2)
        assert results[0].to_dict() == {"id": "x", "title": "T"}

    def test_execution_failure(self, mock_connection):
        repo = Repository(name="articles", connection=mock_connection)
        collection = mock_connection.get_database.return_value.get_collection.return_value
        collection.find.side_effect = OperationFailure("DB error")

        with pytest.raises(PersistenceError, match="Failed to execute query") as exc_info:
            repo.find().all()

        assert exc_info.value.context["finder"] == "all"
        assert get_metrics_collector().get_error_count("query.execute") == 1

    def test_unencodable_condition_is_wrapped(self, mock_connection):
        repo = Repository(name="articles", connection=mock_connection)
        collection = mock_connection.get_database.return_value.get_collection.return_value
        collection.find.side_effect = InvalidDocument("cannot encode object: {1, 2}")

        with pytest.raises(PersistenceError, match="Failed to execute query") as exc_info:
            repo.find().where(tags={1, 2}).all()

        assert isinstance(exc_info.value.__cause__, InvalidDocument)

    def test_count_failure(self, mock_connection):
        repo = Repository(name="articles", connection=mock_connection)
        collection = mock_connection.get_database.return_value.get_collection.return_value
        collection.count_documents.side_effect = OperationFailure("DB error")

        with pytest.raises(PersistenceError, match="Failed to count documents"):
            repo.find().count()
