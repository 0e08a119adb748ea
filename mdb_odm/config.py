"""
Configuration management for MDB_ODM.

Connection settings are described by a Pydantic model so that invalid values
are rejected before a client is ever created. Settings can be passed directly
or read from environment variables.
"""

import os
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .constants import (
    DEFAULT_APP_NAME,
    DEFAULT_APP_NAMESPACE,
    DEFAULT_MAX_IDLE_TIME_MS,
    DEFAULT_MAX_POOL_SIZE,
    DEFAULT_MIN_POOL_SIZE,
    DEFAULT_SERVER_SELECTION_TIMEOUT_MS,
)
from .exceptions import ConfigurationError


class ConnectionConfig(BaseModel):
    """
    MongoDB connection configuration.

    Example:
        # Using environment variables
        config = ConnectionConfig.from_env()

        # Or using direct parameters
        config = ConnectionConfig(uri="mongodb://localhost:27017", database="my_db")
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    uri: str = Field(..., min_length=1, description="MongoDB connection URI")
    database: str = Field(..., min_length=1, description="Database name")
    max_pool_size: int = Field(
        DEFAULT_MAX_POOL_SIZE, ge=1, description="Maximum connection pool size"
    )
    min_pool_size: int = Field(
        DEFAULT_MIN_POOL_SIZE, ge=0, description="Minimum connection pool size"
    )
    server_selection_timeout_ms: int = Field(
        DEFAULT_SERVER_SELECTION_TIMEOUT_MS,
        ge=1,
        description="Server selection timeout in milliseconds",
    )
    max_idle_time_ms: int = Field(
        DEFAULT_MAX_IDLE_TIME_MS, ge=0, description="Maximum idle time for pooled connections"
    )
    app_name: str = Field(DEFAULT_APP_NAME, description="Application name sent to the server")

    @model_validator(mode="after")
    def _check_pool_bounds(self) -> "ConnectionConfig":
        if self.min_pool_size > self.max_pool_size:
            raise ValueError(
                f"min_pool_size ({self.min_pool_size}) cannot be greater than "
                f"max_pool_size ({self.max_pool_size})"
            )
        return self

    @classmethod
    def build(cls, **values: Any) -> "ConnectionConfig":
        """
        Validate values and return a config.

        Raises:
            ConfigurationError: If any value is missing or invalid
        """
        try:
            return cls(**values)
        except ValidationError as e:
            first = e.errors()[0]
            key = ".".join(str(part) for part in first.get("loc", ())) or None
            raise ConfigurationError(
                f"Invalid connection configuration: {first.get('msg')}",
                config_key=key,
                context={"error_count": e.error_count()},
            ) from e

    @classmethod
    def from_env(cls, **overrides: Any) -> "ConnectionConfig":
        """
        Build a config from environment variables.

        Reads MONGO_URI, DB_NAME, MONGO_MAX_POOL_SIZE, MONGO_MIN_POOL_SIZE and
        MONGO_SERVER_SELECTION_TIMEOUT_MS. Explicit keyword arguments win over
        the environment.
        """
        values: dict[str, Any] = {
            "uri": os.getenv("MONGO_URI", ""),
            "database": os.getenv("DB_NAME", ""),
            "max_pool_size": os.getenv("MONGO_MAX_POOL_SIZE", str(DEFAULT_MAX_POOL_SIZE)),
            "min_pool_size": os.getenv("MONGO_MIN_POOL_SIZE", str(DEFAULT_MIN_POOL_SIZE)),
            "server_selection_timeout_ms": os.getenv(
                "MONGO_SERVER_SELECTION_TIMEOUT_MS", str(DEFAULT_SERVER_SELECTION_TIMEOUT_MS)
            ),
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls.build(**values)


def get_app_namespace() -> str:
    """Namespace bare document class names resolve into (MDB_ODM_APP_NAMESPACE)."""
    return os.getenv("MDB_ODM_APP_NAMESPACE", DEFAULT_APP_NAMESPACE)
