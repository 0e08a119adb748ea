"""
Constants for MDB_ODM.

Shared defaults used by the connection layer and the repositories.
"""

from typing import Final

# ============================================================================
# CONNECTION CONSTANTS
# ============================================================================

DEFAULT_CONNECTION_NAME: Final[str] = "default"
"""Connection name repositories look up when none is supplied."""

DEFAULT_MAX_POOL_SIZE: Final[int] = 50
"""Default maximum MongoDB connection pool size."""

DEFAULT_MIN_POOL_SIZE: Final[int] = 10
"""Default minimum MongoDB connection pool size."""

DEFAULT_SERVER_SELECTION_TIMEOUT_MS: Final[int] = 5000
"""Default server selection timeout in milliseconds."""

DEFAULT_MAX_IDLE_TIME_MS: Final[int] = 45000
"""Default maximum idle time before closing connections (milliseconds)."""

DEFAULT_APP_NAME: Final[str] = "MDB_ODM"
"""Application name reported to the MongoDB server."""

# ============================================================================
# DOCUMENT CONSTANTS
# ============================================================================

ID_FIELD: Final[str] = "id"
"""Field holding the document identifier on entities."""

MONGO_ID_FIELD: Final[str] = "_id"
"""Field holding the document identifier in stored documents."""

VERSION_FIELD: Final[str] = "_version"
"""Field holding the version token, both on entities and in storage."""

NEW_FLAG_FIELD: Final[str] = "_new"
"""Optional marker in raw data that states whether a document is new."""

INITIAL_VERSION: Final[int] = 1
"""Version assigned to a document on its first save."""

# ============================================================================
# ENTITY CLASS RESOLUTION CONSTANTS
# ============================================================================

DEFAULT_APP_NAMESPACE: Final[str] = "app"
"""Namespace bare entity class names resolve into."""

DOCUMENTS_NAMESPACE: Final[str] = "documents"
"""Sub-namespace holding document classes inside an app or plugin."""

PLUGIN_SEPARATOR: Final[str] = "."
"""Separator between plugin name and class name ("Plugin.Name")."""

# ============================================================================
# QUERY CONSTANTS
# ============================================================================

DEFAULT_FINDER: Final[str] = "all"
"""Finder used by Repository.find when none is given."""
