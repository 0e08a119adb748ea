"""
MongoDB connection handle.

A Connection owns one lazily created pymongo MongoClient and knows which
database repositories bound to it should use. Repositories borrow a
Connection and never close it.

This module is part of MDB_ODM.

Usage:
    from mdb_odm.datasource import Connection

    connection = Connection({"uri": "mongodb://localhost:27017", "database": "blog"})
    articles = connection.get_collection("articles")
"""

import logging
import threading
import time
from typing import Any, Mapping

from pymongo import MongoClient
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import ConnectionFailure, PyMongoError, ServerSelectionTimeoutError

from ..config import ConnectionConfig
from ..exceptions import ConfigurationError
from ..observability import get_logger as get_contextual_logger
from ..observability import record_operation

logger = logging.getLogger(__name__)
contextual_logger = get_contextual_logger(__name__)


class Connection:
    """
    A named, long-lived handle to one MongoDB database.

    The underlying MongoClient is created on first use so that building a
    Connection never performs I/O.
    """

    def __init__(
        self,
        config: ConnectionConfig | Mapping[str, Any],
        name: str | None = None,
        client: MongoClient | None = None,
    ) -> None:
        """
        Initialize the connection.

        Args:
            config: ConnectionConfig or a mapping of its fields
            name: Registry name of this connection (informational)
            client: Optional pre-built MongoClient to use instead of creating one

        Raises:
            ConfigurationError: If the configuration is invalid
        """
        if not isinstance(config, ConnectionConfig):
            config = ConnectionConfig.build(**dict(config))
        self._config = config
        self._name = name
        self._client: MongoClient | None = client
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        return f"<Connection name={self._name!r} database={self._config.database!r}>"

    @property
    def name(self) -> str | None:
        return self._name

    @property
    def config(self) -> ConnectionConfig:
        return self._config

    @property
    def client(self) -> MongoClient:
        """The MongoClient for this connection, created on first access."""
        if self._client is not None:
            return self._client

        with self._lock:
            # Another thread may have created it while we waited
            if self._client is None:
                self._client = self._create_client()
        return self._client

    def _create_client(self) -> MongoClient:
        config = self._config
        contextual_logger.info(
            "Creating MongoDB client",
            extra={
                "connection": self._name,
                "db_name": config.database,
                "pool_size": f"{config.min_pool_size}-{config.max_pool_size}",
            },
        )
        try:
            return MongoClient(
                config.uri,
                serverSelectionTimeoutMS=config.server_selection_timeout_ms,
                appname=config.app_name,
                maxPoolSize=config.max_pool_size,
                minPoolSize=config.min_pool_size,
                maxIdleTimeMS=config.max_idle_time_ms,
                retryWrites=True,
                retryReads=True,
                connect=False,
            )
        except (PyMongoError, ValueError, TypeError) as e:
            logger.error(f"Failed to create MongoDB client: {e}", exc_info=True)
            raise ConfigurationError(
                f"Failed to create MongoDB client: {e}",
                config_key="uri",
                context={"connection": self._name, "error_type": type(e).__name__},
            ) from e

    def get_database(self) -> Database:
        """Return the database repositories on this connection store documents in."""
        return self.client.get_database(self._config.database)

    def get_collection(self, name: str) -> Collection:
        """Return the collection with the given name."""
        return self.get_database().get_collection(name)

    def ping(self) -> bool:
        """
        Check that the server is reachable.

        Returns:
            True if the server answered, False otherwise
        """
        start_time = time.time()
        try:
            self.client.admin.command("ping")
        except (ConnectionFailure, ServerSelectionTimeoutError) as e:
            duration_ms = (time.time() - start_time) * 1000
            record_operation("connection.ping", duration_ms, success=False)
            logger.warning(f"MongoDB ping failed for connection {self._name!r}: {e}")
            return False
        duration_ms = (time.time() - start_time) * 1000
        record_operation("connection.ping", duration_ms, success=True)
        return True

    def close(self) -> None:
        """
        Close the underlying client.

        Idempotent; a later access to ``client`` creates a new one.
        """
        with self._lock:
            if self._client is not None:
                self._client.close()
                self._client = None
                contextual_logger.info("MongoDB client closed", extra={"connection": self._name})
