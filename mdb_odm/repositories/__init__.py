"""
MDB ODM Repositories

Documents, repositories, lazy queries and the document class registry.

Usage:
    from mdb_odm.repositories import Document, Repository, document

    @document("Article")
    class Article(Document):
        pass

    articles = Repository(name="articles", connection=connection, entity_class="Article")
    article = articles.new_entity({"title": "Hello"})
    articles.save(article)
    same = articles.get(article.id)
"""

from .base import Document
from .mongo import Repository
from .query import Query
from .registry import DocumentRegistry, default_registry, document
from .unit_of_work import UnitOfWork

__all__ = [
    "Document",
    "Repository",
    "Query",
    "DocumentRegistry",
    "default_registry",
    "document",
    "UnitOfWork",
]
