"""
MDB_ODM - MongoDB Object-Document Mapper

Repositories, dirty-tracking documents and lazy queries on top of pymongo.
"""

from .config import ConnectionConfig
from .datasource import Connection, ConnectionManager
from .exceptions import (
    ClassNotFoundError,
    ConfigurationError,
    DocumentMapperError,
    DocumentNotFoundError,
    PersistenceError,
    UnknownFinderError,
)
from .repositories import (
    Document,
    DocumentRegistry,
    Query,
    Repository,
    UnitOfWork,
    default_registry,
    document,
)

__version__ = "0.1.0"

__all__ = [
    # Repositories
    "Document",
    "Repository",
    "Query",
    "UnitOfWork",
    "DocumentRegistry",
    "default_registry",
    "document",
    # Datasource
    "Connection",
    "ConnectionManager",
    "ConnectionConfig",
    # Errors
    "DocumentMapperError",
    "ConfigurationError",
    "ClassNotFoundError",
    "DocumentNotFoundError",
    "PersistenceError",
    "UnknownFinderError",
]
