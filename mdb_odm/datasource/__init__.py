"""
Datasource layer.

Connection handles around pymongo and the process-wide registry that
repositories resolve their default connection from.
"""

from .connection import Connection
from .manager import ConnectionManager

__all__ = [
    "Connection",
    "ConnectionManager",
]
