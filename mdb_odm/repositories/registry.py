"""
Document class registry.

Maps qualified names to Document subclasses so repositories can resolve an
entity class from a short name:

- ``"TestUser"`` resolves to ``"<app namespace>.documents.TestUser"``
- ``"MyPlugin.SuperUser"`` resolves to ``"MyPlugin.documents.SuperUser"``

Applications and plugins populate the registry at import time, usually with
the ``document`` decorator.
"""

import logging
import threading
from collections.abc import Callable

from ..config import get_app_namespace
from ..constants import DOCUMENTS_NAMESPACE, PLUGIN_SEPARATOR
from ..exceptions import ClassNotFoundError
from .base import Document

logger = logging.getLogger(__name__)


class DocumentRegistry:
    """
    Thread-safe mapping of qualified names to Document subclasses.

    Example:
        registry = DocumentRegistry()
        registry.register("TestUser", TestUser)
        registry.register("SuperUser", SuperUser, plugin="MyPlugin")

        registry.resolve("TestUser")            # TestUser
        registry.resolve("MyPlugin.SuperUser")  # SuperUser
    """

    def __init__(self, app_namespace: str | None = None):
        """
        Args:
            app_namespace: Namespace bare names resolve into. Defaults to the
                           MDB_ODM_APP_NAMESPACE setting, read at lookup time.
        """
        self._app_namespace = app_namespace
        self._classes: dict[str, type[Document]] = {}
        self._lock = threading.Lock()

    @property
    def app_namespace(self) -> str:
        return self._app_namespace or get_app_namespace()

    def qualify(self, name: str, plugin: str | None = None) -> str:
        """
        Expand a bare or plugin-qualified name into its registry key.

        Args:
            name: ``"Name"`` or ``"Plugin.Name"``
            plugin: Explicit plugin; overrides any plugin prefix in ``name``
        """
        if plugin is None and PLUGIN_SEPARATOR in name:
            plugin, name = name.rsplit(PLUGIN_SEPARATOR, 1)
        namespace = plugin or self.app_namespace
        return f"{namespace}.{DOCUMENTS_NAMESPACE}.{name}"

    def register(
        self, name: str, document_class: type[Document], plugin: str | None = None
    ) -> str:
        """
        Register a document class.

        Returns:
            The qualified key the class was stored under

        Raises:
            TypeError: If ``document_class`` is not a Document subclass
        """
        if not (isinstance(document_class, type) and issubclass(document_class, Document)):
            raise TypeError(f"{document_class!r} is not a Document subclass")
        key = self.qualify(name, plugin)
        with self._lock:
            previous = self._classes.get(key)
            self._classes[key] = document_class
        if previous is not None and previous is not document_class:
            logger.warning(f"Document class '{key}' re-registered ({previous.__name__} replaced)")
        return key

    def unregister(self, name: str, plugin: str | None = None) -> bool:
        key = self.qualify(name, plugin)
        with self._lock:
            return self._classes.pop(key, None) is not None

    def resolve(self, name: str) -> type[Document]:
        """
        Look up the document class for a bare or plugin-qualified name.

        Raises:
            ClassNotFoundError: If nothing is registered under the qualified name
        """
        key = self.qualify(name)
        with self._lock:
            document_class = self._classes.get(key)
        if document_class is None:
            raise ClassNotFoundError(
                f"Document class '{name}' could not be found",
                class_name=name,
                qualified_name=key,
            )
        return document_class

    def __contains__(self, name: object) -> bool:
        if not isinstance(name, str):
            return False
        with self._lock:
            return self.qualify(name) in self._classes

    def clear(self) -> None:
        with self._lock:
            self._classes.clear()


default_registry = DocumentRegistry()


def document(
    name: str | None = None,
    plugin: str | None = None,
    registry: DocumentRegistry | None = None,
) -> Callable[[type[Document]], type[Document]]:
    """
    Class decorator registering a Document subclass.

    Usage:
        @document()                       # app.documents.Article
        class Article(Document): ...

        @document("SuperUser", plugin="MyPlugin")
        class SuperUser(Document): ...
    """

    def decorator(cls: type[Document]) -> type[Document]:
        (registry or default_registry).register(name or cls.__name__, cls, plugin=plugin)
        return cls

    return decorator
