"""
Process-wide connection registry.

Connections are configured once (usually at application startup) and looked
up by name afterwards. Repositories that are not given a connection fall back
to the registry entry named by ``Repository.default_connection_name()``.
"""

import logging
import threading
from typing import Any, Mapping

from ..config import ConnectionConfig
from ..exceptions import ConfigurationError
from .connection import Connection

logger = logging.getLogger(__name__)


class ConnectionManager:
    """
    Registry of named connections.

    All methods are classmethods operating on shared state, guarded by a
    lock so configuration from several threads cannot interleave.

    Example:
        ConnectionManager.configure("default", {"uri": MONGO_URI, "database": "blog"})
        ConnectionManager.alias("default", "test")
        connection = ConnectionManager.get("test")
    """

    _connections: dict[str, Connection] = {}
    _aliases: dict[str, str] = {}
    _lock = threading.RLock()

    @classmethod
    def configure(
        cls,
        name: str,
        config: Connection | ConnectionConfig | Mapping[str, Any],
    ) -> Connection:
        """
        Register a connection under a name.

        Args:
            name: Registry key
            config: A ready Connection, a ConnectionConfig, or a mapping of its fields

        Returns:
            The registered Connection

        Raises:
            ConfigurationError: If the name is taken or the config is invalid
        """
        with cls._lock:
            if name in cls._connections:
                raise ConfigurationError(
                    f"Connection '{name}' is already configured", config_key=name
                )
            connection = config if isinstance(config, Connection) else Connection(config, name=name)
            cls._connections[name] = connection
        logger.debug(f"Configured connection '{name}'")
        return connection

    @classmethod
    def alias(cls, source: str, alias: str) -> None:
        """
        Make ``alias`` resolve to the connection registered as ``source``.

        Raises:
            ConfigurationError: If ``source`` is not configured
        """
        with cls._lock:
            if source not in cls._connections:
                raise ConfigurationError(
                    f"Cannot alias '{alias}' to unknown connection '{source}'",
                    config_key=source,
                )
            cls._aliases[alias] = source

    @classmethod
    def get(cls, name: str) -> Connection:
        """
        Look up a connection by name or alias.

        Raises:
            ConfigurationError: If nothing is registered under the name
        """
        with cls._lock:
            key = cls._aliases.get(name, name)
            connection = cls._connections.get(key)
        if connection is None:
            raise ConfigurationError(
                f"No connection configured under '{name}'",
                config_key=name,
                context={"configured": sorted(cls.configured())},
            )
        return connection

    @classmethod
    def configured(cls) -> list[str]:
        """Names of all configured connections (aliases excluded)."""
        with cls._lock:
            return list(cls._connections)

    @classmethod
    def drop(cls, name: str) -> bool:
        """
        Remove a connection and any aliases pointing at it.

        The connection is not closed; it may still be borrowed by repositories.

        Returns:
            True if a connection was removed
        """
        with cls._lock:
            removed = cls._connections.pop(name, None)
            for alias, source in list(cls._aliases.items()):
                if source == name or alias == name:
                    del cls._aliases[alias]
        return removed is not None

    @classmethod
    def reset(cls) -> None:
        """Forget every connection and alias (useful in test teardown)."""
        with cls._lock:
            cls._connections.clear()
            cls._aliases.clear()
